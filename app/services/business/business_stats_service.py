# app/services/business/business_stats_service.py
"""Materialized business counters, recomputed after bookings commit"""
from datetime import datetime, time
from typing import Dict, Optional
from uuid import UUID
import logging

from sqlalchemy import func
from sqlalchemy.orm import Session

from app.config.database import commit_or_raise
from app.models.appointment import Appointment
from app.models.business import Business, Staff
from app.utils.time_utils import get_tz, local_today, localize, resolve_now, to_utc_naive

logger = logging.getLogger(__name__)


class BusinessStatsService:

    @staticmethod
    def recompute_counters(
            db: Session,
            business_id: UUID,
            now: Optional[datetime] = None
    ) -> Dict[str, int]:
        """
        Recount active staff and appointments created in the current
        business-local calendar month. Runs in its own transaction after the
        booking commit, so a failure here never undoes a booking.
        """
        business = db.query(Business).filter(Business.id == business_id).first()
        if not business:
            return {}

        tz = get_tz(business.timezone)
        current = resolve_now(now)
        month_start = to_utc_naive(localize(local_today(tz, current).replace(day=1), time.min, tz))

        staff_count = db.query(func.count(Staff.id)).filter(
            Staff.business_id == business_id,
            Staff.is_active == True
        ).scalar() or 0

        monthly_bookings = db.query(func.count(Appointment.id)).filter(
            Appointment.business_id == business_id,
            Appointment.created_at >= month_start
        ).scalar() or 0

        business.staff_count = staff_count
        business.monthly_bookings_count = monthly_bookings
        commit_or_raise(db, "update business counters")

        return {"staff_count": staff_count, "monthly_bookings_count": monthly_bookings}

    @staticmethod
    def refresh_quietly(db: Session, business_id: UUID, now: Optional[datetime] = None) -> None:
        """Best-effort recompute; errors are logged, never raised"""
        try:
            BusinessStatsService.recompute_counters(db, business_id, now)
        except Exception as e:
            db.rollback()
            logger.error(f"Error updating counters for business {business_id}: {e}", exc_info=True)
