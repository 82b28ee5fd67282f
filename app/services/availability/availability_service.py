# ===== app/services/availability/availability_service.py =====
"""
Calendar rule store: weekly hour rules plus per-date exceptions, and the
effective opening hours they produce for a given date.
"""
from dataclasses import dataclass, field
from datetime import date, time
from typing import List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.config.database import commit_or_raise
from app.core.exceptions import InvalidInput, NotFound
from app.models.availability import AvailabilityRule, AvailabilityException
from app.services.business.business_service import BusinessService
from app.utils.time_utils import sunday_weekday

logger = logging.getLogger(__name__)

# Mon-Fri 9-5, Sat 10-3 (0=Sunday)
DEFAULT_SCHEDULE = [
    (1, time(9, 0), time(17, 0)),
    (2, time(9, 0), time(17, 0)),
    (3, time(9, 0), time(17, 0)),
    (4, time(9, 0), time(17, 0)),
    (5, time(9, 0), time(17, 0)),
    (6, time(10, 0), time(15, 0)),
]


@dataclass
class EffectiveHours:
    closed: bool
    windows: List[Tuple[time, time]] = field(default_factory=list)
    source: str = "none"  # exception, staff_rules, business_rules, none


class AvailabilityService:
    """Weekly rules and date exceptions per business / staff member"""

    # ------------------------------------------------------------------
    # Effective hours
    # ------------------------------------------------------------------

    @staticmethod
    def get_effective_hours(
            db: Session,
            business_id: UUID,
            target_date: date,
            staff_id: Optional[UUID] = None
    ) -> EffectiveHours:
        """
        Resolve the opening windows for one date.

        An exception for the date wins: closed means no windows, override
        hours become the single window. Otherwise the weekday's rules apply;
        staff rules replace (never add to) business-wide rules when present.
        No rule for the weekday means closed.
        """
        exception = AvailabilityService.find_exception(db, business_id, target_date, staff_id)
        if exception is not None:
            if exception.is_closed:
                return EffectiveHours(closed=True, source="exception")
            if exception.has_override_hours:
                return EffectiveHours(
                    closed=False,
                    windows=[(exception.start_time, exception.end_time)],
                    source="exception"
                )

        weekday = sunday_weekday(target_date)
        rules = []
        source = "none"

        if staff_id is not None:
            rules = AvailabilityService._active_rules(db, business_id, weekday, staff_id)
            source = "staff_rules"
        if not rules:
            rules = AvailabilityService._active_rules(db, business_id, weekday, None)
            source = "business_rules"

        if not rules:
            return EffectiveHours(closed=True, source="none")

        windows = sorted((r.start_time, r.end_time) for r in rules)
        return EffectiveHours(closed=False, windows=windows, source=source)

    @staticmethod
    def find_exception(
            db: Session,
            business_id: UUID,
            target_date: date,
            staff_id: Optional[UUID] = None
    ) -> Optional[AvailabilityException]:
        """Staff exception first, then the business-wide one for that date"""
        if staff_id is not None:
            exception = AvailabilityService._exception_for_scope(db, business_id, target_date, staff_id)
            if exception is not None:
                return exception
        return AvailabilityService._exception_for_scope(db, business_id, target_date, None)

    @staticmethod
    def _exception_for_scope(
            db: Session,
            business_id: UUID,
            target_date: date,
            staff_id: Optional[UUID]
    ) -> Optional[AvailabilityException]:
        query = db.query(AvailabilityException).filter(
            AvailabilityException.business_id == business_id,
            AvailabilityException.date == target_date
        )
        if staff_id is None:
            query = query.filter(AvailabilityException.staff_id.is_(None))
        else:
            query = query.filter(AvailabilityException.staff_id == staff_id)
        return query.first()

    @staticmethod
    def _active_rules(
            db: Session,
            business_id: UUID,
            weekday: int,
            staff_id: Optional[UUID]
    ) -> List[AvailabilityRule]:
        query = db.query(AvailabilityRule).filter(
            AvailabilityRule.business_id == business_id,
            AvailabilityRule.weekday == weekday,
            AvailabilityRule.is_active == True
        )
        if staff_id is None:
            query = query.filter(AvailabilityRule.staff_id.is_(None))
        else:
            query = query.filter(AvailabilityRule.staff_id == staff_id)
        return query.order_by(AvailabilityRule.start_time.asc()).all()

    # ------------------------------------------------------------------
    # Rules
    # ------------------------------------------------------------------

    @staticmethod
    def add_rule(
            db: Session,
            business_id: UUID,
            weekday: int,
            start_time: time,
            end_time: time,
            staff_id: Optional[UUID] = None
    ) -> AvailabilityRule:
        """Add a weekly window. Several rules per weekday make a split shift."""
        if not isinstance(weekday, int) or not 0 <= weekday <= 6:
            raise InvalidInput("Weekday must be between 0 (Sunday) and 6 (Saturday)", {"weekday": weekday})
        if start_time >= end_time:
            raise InvalidInput("Rule start time must be before end time")

        BusinessService.get_business(db, business_id)
        BusinessService.get_staff(db, business_id, staff_id)

        rule = AvailabilityRule(
            business_id=business_id,
            staff_id=staff_id,
            weekday=weekday,
            start_time=start_time,
            end_time=end_time,
            is_active=True
        )
        db.add(rule)
        commit_or_raise(db, "create availability rule")
        db.refresh(rule)

        logger.info(f"Added availability rule {rule.id} for business {business_id} weekday {weekday}")
        return rule

    @staticmethod
    def list_rules(
            db: Session,
            business_id: UUID,
            staff_id: Optional[UUID] = None,
            include_inactive: bool = False
    ) -> List[AvailabilityRule]:
        query = db.query(AvailabilityRule).filter(AvailabilityRule.business_id == business_id)
        if staff_id is not None:
            query = query.filter(AvailabilityRule.staff_id == staff_id)
        if not include_inactive:
            query = query.filter(AvailabilityRule.is_active == True)
        return query.order_by(AvailabilityRule.weekday.asc(), AvailabilityRule.start_time.asc()).all()

    @staticmethod
    def deactivate_rule(db: Session, business_id: UUID, rule_id: UUID) -> AvailabilityRule:
        rule = db.query(AvailabilityRule).filter(
            AvailabilityRule.id == rule_id,
            AvailabilityRule.business_id == business_id
        ).first()
        if not rule:
            raise NotFound("Availability rule not found", {"rule_id": str(rule_id)})

        rule.is_active = False
        commit_or_raise(db, "deactivate availability rule")
        return rule

    @staticmethod
    def setup_default_schedule(db: Session, business_id: UUID) -> int:
        """Seed Mon-Fri 09:00-17:00 and Sat 10:00-15:00 unless rules already exist"""
        BusinessService.get_business(db, business_id)

        existing = db.query(AvailabilityRule).filter(
            AvailabilityRule.business_id == business_id
        ).count()
        if existing:
            logger.info(f"Business {business_id} already has availability rules, skipping default schedule")
            return 0

        db.add_all([
            AvailabilityRule(
                business_id=business_id,
                weekday=weekday,
                start_time=start,
                end_time=end,
                is_active=True
            )
            for weekday, start, end in DEFAULT_SCHEDULE
        ])
        commit_or_raise(db, "create default schedule")

        logger.info(f"Default schedule created for business {business_id}")
        return len(DEFAULT_SCHEDULE)

    # ------------------------------------------------------------------
    # Exceptions
    # ------------------------------------------------------------------

    @staticmethod
    def upsert_exception(
            db: Session,
            business_id: UUID,
            target_date: date,
            is_closed: bool,
            start_time: Optional[time] = None,
            end_time: Optional[time] = None,
            reason: Optional[str] = None,
            staff_id: Optional[UUID] = None
    ) -> AvailabilityException:
        """One exception per (business, staff-or-null, date); last write wins"""
        if (start_time is None) != (end_time is None):
            raise InvalidInput("Override start and end times must be given together")
        if start_time is not None and start_time >= end_time:
            raise InvalidInput("Override start time must be before end time")

        BusinessService.get_business(db, business_id)
        BusinessService.get_staff(db, business_id, staff_id)

        exception = AvailabilityService._exception_for_scope(db, business_id, target_date, staff_id)
        if exception is None:
            exception = AvailabilityException(
                business_id=business_id,
                staff_id=staff_id,
                date=target_date
            )
            db.add(exception)

        exception.is_closed = is_closed
        exception.start_time = None if is_closed else start_time
        exception.end_time = None if is_closed else end_time
        exception.reason = reason

        commit_or_raise(db, "save availability exception")
        db.refresh(exception)

        logger.info(
            f"Saved availability exception for business {business_id} on {target_date} "
            f"(closed={is_closed}, staff={staff_id})"
        )
        return exception

    @staticmethod
    def list_exceptions(
            db: Session,
            business_id: UUID,
            start_date: Optional[date] = None,
            end_date: Optional[date] = None,
            staff_id: Optional[UUID] = None
    ) -> List[AvailabilityException]:
        query = db.query(AvailabilityException).filter(AvailabilityException.business_id == business_id)
        if start_date:
            query = query.filter(AvailabilityException.date >= start_date)
        if end_date:
            query = query.filter(AvailabilityException.date <= end_date)
        if staff_id is not None:
            query = query.filter(AvailabilityException.staff_id == staff_id)
        return query.order_by(AvailabilityException.date.asc()).all()

    @staticmethod
    def delete_exception(db: Session, business_id: UUID, exception_id: UUID) -> None:
        """Reset a date back to its weekly rules"""
        exception = db.query(AvailabilityException).filter(
            AvailabilityException.id == exception_id,
            AvailabilityException.business_id == business_id
        ).first()
        if not exception:
            raise NotFound("Availability exception not found", {"exception_id": str(exception_id)})

        db.delete(exception)
        commit_or_raise(db, "delete availability exception")
        logger.info(f"Deleted availability exception {exception_id} for business {business_id}")
