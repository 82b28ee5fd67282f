# ============================================================================
# app/api/v1/availability.py
# Opening hours, date exceptions and slot lookups - thin HTTP layer
# ============================================================================
from fastapi import APIRouter, Depends, Query, Path
from sqlalchemy.orm import Session
from datetime import date
from typing import List, Optional
from uuid import UUID

from app.api.dependencies import get_business
from app.config.database import get_db
from app.models.business import Business
from app.schemas.scheduling import (
    AvailabilityRuleCreate,
    AvailabilityRuleResponse,
    AvailabilityExceptionUpsert,
    AvailabilityExceptionResponse,
    EffectiveHoursResponse,
    TimeWindow,
    SlotResponse,
    SlotsResponse,
)
from app.services.availability.availability_service import AvailabilityService
from app.services.availability.slot_service import SlotService

router = APIRouter(prefix="/businesses/{business_id}", tags=["availability"])


# ============================================================================
# Weekly rules
# ============================================================================

@router.get("/availability/rules", response_model=List[AvailabilityRuleResponse])
async def list_rules(
        staff_id: Optional[UUID] = Query(None, description="Only rules for this staff member"),
        include_inactive: bool = Query(False),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AvailabilityService.list_rules(db, business.id, staff_id, include_inactive)


@router.post("/availability/rules", response_model=AvailabilityRuleResponse, status_code=201)
async def add_rule(
        payload: AvailabilityRuleCreate,
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Add a weekly window. Several windows on one weekday make a split shift."""
    return AvailabilityService.add_rule(
        db,
        business_id=business.id,
        weekday=payload.weekday,
        start_time=payload.start_time,
        end_time=payload.end_time,
        staff_id=payload.staff_id
    )


@router.delete("/availability/rules/{rule_id}", response_model=AvailabilityRuleResponse)
async def deactivate_rule(
        rule_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AvailabilityService.deactivate_rule(db, business.id, rule_id)


@router.post("/availability/default-schedule")
async def setup_default_schedule(
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Seed Mon-Fri 9-5 and Sat 10-3 for a business with no rules yet"""
    created = AvailabilityService.setup_default_schedule(db, business.id)
    return {"success": True, "rules_created": created}


# ============================================================================
# Date exceptions
# ============================================================================

@router.get("/availability/exceptions", response_model=List[AvailabilityExceptionResponse])
async def list_exceptions(
        start_date: Optional[date] = Query(None),
        end_date: Optional[date] = Query(None),
        staff_id: Optional[UUID] = Query(None),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    return AvailabilityService.list_exceptions(db, business.id, start_date, end_date, staff_id)


@router.put("/availability/exceptions", response_model=AvailabilityExceptionResponse)
async def upsert_exception(
        payload: AvailabilityExceptionUpsert,
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Close a date or override its hours. Last write wins."""
    return AvailabilityService.upsert_exception(
        db,
        business_id=business.id,
        target_date=payload.date,
        is_closed=payload.is_closed,
        start_time=payload.start_time,
        end_time=payload.end_time,
        reason=payload.reason,
        staff_id=payload.staff_id
    )


@router.delete("/availability/exceptions/{exception_id}")
async def delete_exception(
        exception_id: UUID = Path(...),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    AvailabilityService.delete_exception(db, business.id, exception_id)
    return {"success": True}


@router.get("/availability/hours", response_model=EffectiveHoursResponse)
async def get_effective_hours(
        target_date: date = Query(..., alias="date"),
        staff_id: Optional[UUID] = Query(None),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Opening windows that apply on one date after exceptions"""
    hours = AvailabilityService.get_effective_hours(db, business.id, target_date, staff_id)
    return EffectiveHoursResponse(
        date=target_date,
        closed=hours.closed,
        windows=[TimeWindow(start_time=start, end_time=end) for start, end in hours.windows],
        source=hours.source
    )


# ============================================================================
# Slots
# ============================================================================

@router.get("/slots", response_model=SlotsResponse)
async def get_slots(
        service_id: UUID = Query(...),
        target_date: date = Query(..., alias="date"),
        staff_id: Optional[UUID] = Query(None),
        interval_minutes: Optional[int] = Query(None, ge=5, le=240),
        include_unavailable: bool = Query(False, description="Also return booked slots, marked unavailable"),
        business: Business = Depends(get_business),
        db: Session = Depends(get_db)
):
    """Bookable start times for a service on a date, in the business timezone"""
    slots = SlotService.get_available_slots(
        db, business.id, service_id, target_date, staff_id, interval_minutes
    )
    if not include_unavailable:
        slots = [slot for slot in slots if slot.available]

    return SlotsResponse(
        business_id=business.id,
        service_id=service_id,
        staff_id=staff_id,
        date=target_date,
        timezone=business.timezone or "UTC",
        slots=[SlotResponse(start_time=s.start, end_time=s.end, available=s.available) for s in slots]
    )
