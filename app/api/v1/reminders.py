# ============================================================================
# app/api/v1/reminders.py
# Interface for the external messaging dispatcher
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from typing import List, Optional
from uuid import UUID

from app.config.database import get_db
from app.schemas.scheduling import ReminderResponse, ReminderStatusUpdate
from app.services.reminder.reminder_service import ReminderService

router = APIRouter(prefix="/reminders", tags=["reminders"])


@router.get("/due", response_model=List[ReminderResponse])
async def due_reminders(
        limit: Optional[int] = Query(None, ge=1, description="Capped at REMINDER_BATCH_SIZE"),
        business_id: Optional[UUID] = Query(None),
        db: Session = Depends(get_db)
):
    """Pending reminders whose fire time has passed, oldest first"""
    return ReminderService.due_reminders(db, limit=limit, business_id=business_id)


@router.patch("/{reminder_id}", response_model=ReminderResponse)
async def mark_reminder(
        payload: ReminderStatusUpdate,
        reminder_id: UUID = Path(...),
        db: Session = Depends(get_db)
):
    """Terminal status reported by the dispatcher"""
    return ReminderService.mark_reminder(db, reminder_id, payload.status, payload.error_message)
