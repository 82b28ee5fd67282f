# ============================================================================
# app/api/v1/public/booking.py
# Customer booking page endpoints (no authentication)
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import Optional
from uuid import UUID

from app.api.dependencies import get_public_business
from app.config.database import get_db
from app.models.business import Business
from app.schemas.scheduling import (
    BookingRequest,
    RescheduleRequest,
    AppointmentResponse,
    SlotResponse,
    SlotsResponse,
)
from app.services.appointment.appointment_service import AppointmentService
from app.services.availability.slot_service import SlotService

router = APIRouter(prefix="/public/{slug}", tags=["public-booking"])


@router.get("/slots", response_model=SlotsResponse)
async def get_open_slots(
        service_id: UUID = Query(...),
        target_date: date = Query(..., alias="date"),
        staff_id: Optional[UUID] = Query(None),
        business: Business = Depends(get_public_business),
        db: Session = Depends(get_db)
):
    """Free start times only"""
    slots = SlotService.get_available_slots(db, business.id, service_id, target_date, staff_id)
    return SlotsResponse(
        business_id=business.id,
        service_id=service_id,
        staff_id=staff_id,
        date=target_date,
        timezone=business.timezone or "UTC",
        slots=[SlotResponse(start_time=s.start, end_time=s.end) for s in slots if s.available]
    )


@router.post("/appointments", response_model=AppointmentResponse, status_code=201)
async def book(
        payload: BookingRequest,
        business: Business = Depends(get_public_business),
        db: Session = Depends(get_db)
):
    """Customer booking; always checked against opening hours"""
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
        customer_locale=payload.customer_locale,
        source="public"
    )


@router.patch("/appointments/{appointment_id}/reschedule", response_model=AppointmentResponse)
async def reschedule(
        payload: RescheduleRequest,
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_public_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.reschedule(db, appointment_id, payload.starts_at, business_id=business.id)


@router.patch("/appointments/{appointment_id}/cancel", response_model=AppointmentResponse)
async def cancel(
        appointment_id: UUID = Path(...),
        business: Business = Depends(get_public_business),
        db: Session = Depends(get_db)
):
    return AppointmentService.cancel(db, appointment_id, business_id=business.id, reason="canceled by customer")
