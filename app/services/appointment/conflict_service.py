# app/services/appointment/conflict_service.py
"""Overlap detection against the appointments table"""
from datetime import datetime, timedelta
from typing import Iterable, List, Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.models.appointment import Appointment, ACTIVE_STATUSES
from app.models.service import Service
from app.utils.time_utils import to_utc_naive

logger = logging.getLogger(__name__)


def intervals_overlap(s1: datetime, e1: datetime, s2: datetime, e2: datetime) -> bool:
    """Half-open [s, e) overlap: touching intervals do not conflict"""
    return s1 < e2 and s2 < e1


class ConflictService:
    """
    Scope: same business, status pending/confirmed, and the same staff
    member. Staff-less appointments only conflict with other staff-less ones.
    Callers must hold the calendar lock in the same transaction as the write.
    """

    @staticmethod
    def find_conflicts(
            db: Session,
            business_id: UUID,
            staff_id: Optional[UUID],
            start: datetime,
            end: datetime,
            exclude_appointment_id: Optional[UUID] = None
    ) -> List[Appointment]:
        start = to_utc_naive(start)
        end = to_utc_naive(end)

        query = db.query(Appointment).filter(
            Appointment.business_id == business_id,
            Appointment.status.in_(ACTIVE_STATUSES),
            Appointment.starts_at < end,
            Appointment.ends_at > start
        )
        if staff_id is None:
            query = query.filter(Appointment.staff_id.is_(None))
        else:
            query = query.filter(Appointment.staff_id == staff_id)
        if exclude_appointment_id is not None:
            query = query.filter(Appointment.id != exclude_appointment_id)

        return query.order_by(Appointment.starts_at.asc()).all()

    @staticmethod
    def has_conflict(
            db: Session,
            business_id: UUID,
            staff_id: Optional[UUID],
            start: datetime,
            end: datetime,
            exclude_appointment_id: Optional[UUID] = None
    ) -> bool:
        return bool(ConflictService.find_conflicts(
            db, business_id, staff_id, start, end, exclude_appointment_id
        ))

    @staticmethod
    def padded_interval(service: Service, start: datetime, end: datetime) -> Tuple[datetime, datetime]:
        """Candidate interval widened by the service's buffers"""
        return (
            start - timedelta(minutes=service.buffer_before_minutes or 0),
            end + timedelta(minutes=service.buffer_after_minutes or 0),
        )

    @staticmethod
    def fits_capacity(service: Service, overlapping: Iterable[Appointment]) -> bool:
        """
        A single-seat service fits only an empty interval. A group service
        (max_per_slot > 1) tolerates overlaps with itself up to capacity; any
        overlap with a different service is a conflict.
        """
        overlapping = list(overlapping)
        if not overlapping:
            return True
        if (service.max_per_slot or 1) <= 1:
            return False
        if any(appt.service_id != service.id for appt in overlapping):
            return False
        return len(overlapping) < service.max_per_slot

    @staticmethod
    def is_interval_free(
            db: Session,
            business_id: UUID,
            service: Service,
            staff_id: Optional[UUID],
            start: datetime,
            end: datetime,
            exclude_appointment_id: Optional[UUID] = None
    ) -> bool:
        """Full booking check: buffers plus group capacity"""
        padded_start, padded_end = ConflictService.padded_interval(service, to_utc_naive(start), to_utc_naive(end))
        overlapping = ConflictService.find_conflicts(
            db, business_id, staff_id, padded_start, padded_end, exclude_appointment_id
        )
        free = ConflictService.fits_capacity(service, overlapping)
        if not free:
            logger.info(
                f"Interval {start} - {end} unavailable for business {business_id} staff {staff_id}: "
                f"{len(overlapping)} overlapping appointment(s)"
            )
        return free
