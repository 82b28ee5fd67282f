# ============================================================================
# app/api/v1/recurring.py
# Recurring appointment series - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from typing import Optional
from uuid import UUID

from app.api.dependencies import get_business
from app.config.database import get_db
from app.models.business import Business
from app.schemas.scheduling import (
    RecurringTemplateCreate,
    RecurringTemplateUpdate,
    ExpandRequest,
    ExpansionResponse,
)
from app.services.recurring.recurring_service import RecurringService

router = APIRouter(prefix="/businesses/{business_id}/recurring", tags=["recurring"])


@router.get("")
async def list_recurring(
        staff_id: Optional[UUID] = Query(None, description="Series for this staff member plus unassigned ones"),
        is_active: Optional[bool] = Query(None),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return {"recurring_appointments": RecurringService.list_templates(db, business.id, staff_id, is_active)}


@router.post("", status_code=201)
async def create_recurring(
        payload: RecurringTemplateCreate,
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Create a series and generate the first horizon of appointments"""
    template, result = RecurringService.create_template(
        db,
        business_id=business.id,
        service_id=payload.service_id,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        frequency=payload.frequency,
        start_date=payload.start_date,
        time_of_day=payload.time_of_day,
        staff_id=payload.staff_id,
        customer_email=payload.customer_email,
        end_date=payload.end_date,
        notes=payload.notes
    )
    return {
        "success": True,
        "recurring_appointment": RecurringService.serialize(template),
        "expansion": result.to_dict() if result else None
    }


@router.post("/expand")
async def expand_recurring(
        payload: ExpandRequest,
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Manual expansion of one series, or of every active series of the business"""
    if payload.template_id:
        result = RecurringService.expand(
            db, payload.template_id, payload.horizon_days, business_id=business.id
        )
        return ExpansionResponse(**result.to_dict())

    return RecurringService.expand_all(db, business.id, payload.horizon_days)


@router.patch("/{template_id}")
async def update_recurring(
        payload: RecurringTemplateUpdate,
        template_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Partial update; is_active=false cancels the future appointments of the series"""
    template = RecurringService.update_template(
        db, template_id, payload.model_dump(exclude_unset=True), business_id=business.id
    )
    return {"success": True, "recurring_appointment": RecurringService.serialize(template)}


@router.delete("/{template_id}")
async def delete_recurring(
        template_id: UUID = Path(...),
        cancel_future: bool = Query(True, description="Cancel the series' future appointments"),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    result = RecurringService.delete_template(db, template_id, business.id, cancel_future)
    return {"success": True, **result}
