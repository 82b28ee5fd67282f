# ============================================================================
# app/api/v1/appointments.py
# Staff-side calendar endpoints - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, HTTPException, Query, Path, Response
from sqlalchemy.orm import Session
from datetime import date
from typing import List, Optional
from uuid import UUID

from app.api.dependencies import get_business
from app.config.database import get_db
from app.models.business import Business
from app.schemas.scheduling import (
    BookingRequest,
    RescheduleRequest,
    CancelRequest,
    AppointmentResponse,
    CustomReminderCreate,
    ReminderResponse,
)
from app.services.appointment.appointment_service import AppointmentService
from app.services.appointment.appointment_query_service import AppointmentQueryService
from app.services.appointment.calendar_export_service import CalendarExportService
from app.services.reminder.reminder_service import ReminderService

router = APIRouter(prefix="/businesses/{business_id}/appointments", tags=["appointments"])


@router.get("")
async def list_appointments(
        start_date: Optional[date] = Query(None, description="Appointments on or after this local date"),
        end_date: Optional[date] = Query(None, description="Appointments on or before this local date"),
        staff_id: Optional[UUID] = Query(None, description="Only this staff member's calendar"),
        unassigned: bool = Query(False, description="Only appointments without staff"),
        status: Optional[List[str]] = Query(None, description="pending, confirmed, canceled, completed, no_show"),
        recurring_id: Optional[UUID] = Query(None, description="Only instances of this recurring series"),
        customer_phone: Optional[str] = Query(None),
        skip: int = Query(0, ge=0),
        limit: int = Query(50, ge=1, le=100),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.list_appointments(
        db=db,
        business=business,
        start_date=start_date,
        end_date=end_date,
        staff_id=staff_id,
        unassigned_only=unassigned,
        statuses=status,
        recurring_id=recurring_id,
        customer_phone=customer_phone,
        skip=skip,
        limit=limit
    )


@router.get("/upcoming", response_model=List[AppointmentResponse])
async def get_upcoming(
        days: int = Query(7, ge=1, le=90),
        staff_id: Optional[UUID] = Query(None),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentQueryService.get_upcoming(db, business.id, days, staff_id)


@router.get("/{appointment_id}.ics")
async def export_appointment_ics(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    content = CalendarExportService.export_appointment(db, business.id, appointment_id)
    return Response(
        content=content,
        media_type="text/calendar; charset=utf-8",
        headers={"Content-Disposition": f'attachment; filename="appointment-{appointment_id}.ics"'}
    )


@router.get("/{appointment_id}")
async def get_appointment(
        appointment_id: UUID = Path(..., description="The appointment ID"),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    result = AppointmentQueryService.get_appointment_by_id(db, business.id, appointment_id)
    if not result:
        raise HTTPException(status_code=404, detail="Appointment not found")
    return result


@router.post("", response_model=AppointmentResponse, status_code=201)
async def create_appointment(
        payload: BookingRequest,
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Book a slot. 409 when the time is taken or outside opening hours."""
    return AppointmentService.create(
        db,
        business_id=business.id,
        service_id=payload.service_id,
        starts_at=payload.starts_at,
        customer_name=payload.customer_name,
        customer_phone=payload.customer_phone,
        customer_email=payload.customer_email,
        staff_id=payload.staff_id,
        notes=payload.notes,
        deposit_cents=payload.deposit_cents,
        source=payload.source,
        customer_locale=payload.customer_locale,
        enforce_hours=payload.enforce_hours
    )


@router.patch("/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule_appointment(
        payload: RescheduleRequest,
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.reschedule(
        db,
        appointment_id=appointment_id,
        new_starts_at=payload.starts_at,
        business_id=business.id,
        enforce_hours=payload.enforce_hours
    )


@router.patch("/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel_appointment(
        payload: Optional[CancelRequest] = None,
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Idempotent; canceling twice returns the canceled appointment"""
    return AppointmentService.cancel(
        db,
        appointment_id=appointment_id,
        business_id=business.id,
        reason=payload.reason if payload else None
    )


@router.patch("/{appointment_id}/confirm", response_model=AppointmentResponse)
async def confirm_appointment(
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.confirm(db, appointment_id, business.id)


@router.patch("/{appointment_id}/complete", response_model=AppointmentResponse)
async def complete_appointment(
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.complete(db, appointment_id, business.id)


@router.patch("/{appointment_id}/no-show", response_model=AppointmentResponse)
async def mark_no_show(
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.mark_no_show(db, appointment_id, business.id)


# ============================================================================
# Reminders of one appointment
# ============================================================================

@router.get("/{appointment_id}/reminders", response_model=List[ReminderResponse])
async def list_reminders(
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    AppointmentService.get_appointment(db, appointment_id, business.id)
    return ReminderService.list_for_appointment(db, appointment_id)


@router.post("/{appointment_id}/reminders", response_model=ReminderResponse, status_code=201)
async def add_custom_reminder(
        payload: CustomReminderCreate,
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    AppointmentService.get_appointment(db, appointment_id, business.id)
    return ReminderService.add_custom_reminder(
        db,
        appointment_id=appointment_id,
        scheduled_for=payload.scheduled_for,
        message=payload.message,
        delivery_method=payload.delivery_method
    )
