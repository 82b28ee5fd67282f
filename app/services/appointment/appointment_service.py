# ============================================================================
# app/services/appointment/appointment_service.py
# ============================================================================
"""
Booking transaction coordinator.

create/reschedule take the calendar lock, run the conflict check and write
in one transaction, so two concurrent requests for the same interval cannot
both succeed.
"""
from datetime import datetime, timedelta
from typing import Optional, Tuple
from uuid import UUID
import logging

from sqlalchemy.orm import Session

from app.config.database import commit_or_raise, unit_of_work
from app.core.exceptions import InvalidInput, InvalidState, NotFound, SlotUnavailable
from app.models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from app.models.business import Business
from app.models.service import Service
from app.services.appointment.conflict_service import ConflictService
from app.services.availability.slot_service import SlotService
from app.services.business.business_service import BusinessService
from app.services.business.business_stats_service import BusinessStatsService
from app.services.locking.lock_service import LockService
from app.services.reminder.reminder_service import ReminderService
from app.utils.time_utils import resolve_now, to_utc_naive

logger = logging.getLogger(__name__)

# target status -> statuses it may be reached from
TRANSITIONS = {
    AppointmentStatus.CONFIRMED.value: (AppointmentStatus.PENDING.value,),
    AppointmentStatus.CANCELED.value: ACTIVE_STATUSES,
    AppointmentStatus.COMPLETED.value: ACTIVE_STATUSES,
    AppointmentStatus.NO_SHOW.value: ACTIVE_STATUSES,
}


class AppointmentService:
    """Handles appointment create / reschedule / status transitions"""

    @staticmethod
    def get_appointment(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None) -> Appointment:
        query = db.query(Appointment).filter(Appointment.id == appointment_id)
        if business_id is not None:
            query = query.filter(Appointment.business_id == business_id)
        appointment = query.first()
        if not appointment:
            raise NotFound("Appointment not found", {"appointment_id": str(appointment_id)})
        return appointment

    @staticmethod
    def _check_slot(
            db: Session,
            business: Business,
            service: Service,
            staff_id: Optional[UUID],
            start: datetime,
            end: datetime,
            enforce_hours: bool,
            exclude_appointment_id: Optional[UUID] = None
    ) -> None:
        """Hours first, then lock + conflict check. Caller commits."""
        if enforce_hours and not SlotService.fits_business_hours(db, business, staff_id, start, end):
            raise SlotUnavailable(
                "Requested time is outside business hours",
                {"starts_at": start.isoformat(), "ends_at": end.isoformat()}
            )

        LockService.lock_calendar(db, business.id, staff_id)

        if not ConflictService.is_interval_free(
                db, business.id, service, staff_id, start, end, exclude_appointment_id
        ):
            raise SlotUnavailable(
                "Requested time overlaps an existing appointment",
                {"starts_at": start.isoformat(), "ends_at": end.isoformat()}
            )

    @staticmethod
    def _interval(service: Service, starts_at: datetime, current: datetime) -> Tuple[datetime, datetime]:
        start = to_utc_naive(starts_at)
        if start <= current:
            raise InvalidInput("Appointment start must be in the future", {"starts_at": start.isoformat()})
        return start, start + timedelta(minutes=service.duration_minutes)

    # ========================================================================
    # Create
    # ========================================================================

    @staticmethod
    def create(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            starts_at: datetime,
            customer_name: str,
            customer_phone: str,
            customer_email: Optional[str] = None,
            staff_id: Optional[UUID] = None,
            notes: Optional[str] = None,
            deposit_cents: Optional[int] = None,
            source: str = "public",
            customer_locale: Optional[str] = None,
            now: Optional[datetime] = None,
            enforce_hours: bool = True
    ) -> Appointment:
        """
        Book one appointment.

        Status is pending while a deposit is outstanding, otherwise confirmed.
        Raises SlotUnavailable on overlap or when outside opening hours.
        """
        if not customer_name or not customer_name.strip():
            raise InvalidInput("Customer name is required")
        if not customer_phone or not customer_phone.strip():
            raise InvalidInput("Customer phone is required")

        business = BusinessService.get_business(db, business_id)
        service = BusinessService.get_service(db, business_id, service_id)
        BusinessService.get_staff(db, business_id, staff_id)

        current = resolve_now(now)
        start, end = AppointmentService._interval(service, starts_at, current)

        deposit = service.deposit_cents if deposit_cents is None else deposit_cents
        if deposit < 0:
            raise InvalidInput("Deposit cannot be negative", {"deposit_cents": deposit})

        with unit_of_work(db, "create appointment"):
            AppointmentService._check_slot(db, business, service, staff_id, start, end, enforce_hours)

            appointment = Appointment(
                business_id=business_id,
                service_id=service.id,
                staff_id=staff_id,
                customer_name=customer_name.strip(),
                customer_phone=customer_phone.strip(),
                customer_email=customer_email,
                starts_at=start,
                ends_at=end,
                status=(AppointmentStatus.PENDING.value if deposit > 0 else AppointmentStatus.CONFIRMED.value),
                source=source,
                price_cents=service.price_cents or 0,
                deposit_cents=deposit,
                notes=notes,
                created_at=current,
                updated_at=current
            )
            if customer_locale:
                appointment.customer_locale = customer_locale
            appointment.business = business
            appointment.service = service
            db.add(appointment)
            db.flush()

            ReminderService.schedule_standard_reminders(db, appointment, current, commit=False)

        db.refresh(appointment)

        logger.info(
            f"Appointment {appointment.id} created for business {business_id} "
            f"at {appointment.starts_at} ({appointment.status})"
        )

        BusinessStatsService.refresh_quietly(db, business_id, current)
        return appointment

    # ========================================================================
    # Reschedule
    # ========================================================================

    @staticmethod
    def reschedule(
            db: Session,
            appointment_id: UUID,
            new_starts_at: datetime,
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None,
            enforce_hours: bool = True
    ) -> Appointment:
        """Move an active appointment; status is kept, reminders follow the new start"""
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)
        if not appointment.is_active:
            raise InvalidState(
                f"Cannot reschedule {appointment.status} appointment",
                {"appointment_id": str(appointment_id), "status": appointment.status}
            )

        business = BusinessService.get_business(db, appointment.business_id)
        service = BusinessService.get_service(db, appointment.business_id, appointment.service_id, require_active=False)

        current = resolve_now(now)
        start, end = AppointmentService._interval(service, new_starts_at, current)
        previous_start = appointment.starts_at

        with unit_of_work(db, "reschedule appointment"):
            AppointmentService._check_slot(
                db, business, service, appointment.staff_id, start, end, enforce_hours,
                exclude_appointment_id=appointment.id
            )

            appointment.starts_at = start
            appointment.ends_at = end
            appointment.updated_at = current
            ReminderService.reschedule_reminders(db, appointment, previous_start, current)

        db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} rescheduled from {previous_start} to {start}")
        return appointment

    # ========================================================================
    # Status transitions
    # ========================================================================

    @staticmethod
    def _transition(
            db: Session,
            appointment_id: UUID,
            target: str,
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None,
            reason: Optional[str] = None
    ) -> Appointment:
        appointment = AppointmentService.get_appointment(db, appointment_id, business_id)

        # Repeating a transition is a no-op
        if appointment.status == target:
            return appointment

        if appointment.status not in TRANSITIONS[target]:
            raise InvalidState(
                f"Cannot change appointment from {appointment.status} to {target}",
                {"appointment_id": str(appointment_id), "status": appointment.status}
            )

        current = resolve_now(now)
        appointment.status = target
        appointment.updated_at = current

        if target == AppointmentStatus.CANCELED.value:
            appointment.cancelled_at = current
            appointment.cancellation_reason = reason

        if target != AppointmentStatus.CONFIRMED.value:
            skipped = ReminderService.skip_pending_reminders(db, appointment.id)
            if skipped:
                logger.info(f"Skipped {skipped} pending reminder(s) for appointment {appointment.id}")

        commit_or_raise(db, f"mark appointment {target}")
        db.refresh(appointment)

        logger.info(f"Appointment {appointment.id} is now {target}")
        return appointment

    @staticmethod
    def cancel(
            db: Session,
            appointment_id: UUID,
            business_id: Optional[UUID] = None,
            reason: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Appointment:
        """Idempotent: canceling a canceled appointment returns it unchanged"""
        return AppointmentService._transition(
            db, appointment_id, AppointmentStatus.CANCELED.value, business_id, now, reason
        )

    @staticmethod
    def confirm(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                now: Optional[datetime] = None) -> Appointment:
        """pending -> confirmed, e.g. once the deposit is paid"""
        return AppointmentService._transition(db, appointment_id, AppointmentStatus.CONFIRMED.value, business_id, now)

    @staticmethod
    def complete(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                 now: Optional[datetime] = None) -> Appointment:
        return AppointmentService._transition(db, appointment_id, AppointmentStatus.COMPLETED.value, business_id, now)

    @staticmethod
    def mark_no_show(db: Session, appointment_id: UUID, business_id: Optional[UUID] = None,
                     now: Optional[datetime] = None) -> Appointment:
        return AppointmentService._transition(db, appointment_id, AppointmentStatus.NO_SHOW.value, business_id, now)
