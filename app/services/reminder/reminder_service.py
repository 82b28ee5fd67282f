# app/services/reminder/reminder_service.py
"""
Reminder scheduling.

Reminders are created when an appointment is booked, handed to an external
dispatcher through due_reminders(), and closed with mark_sent/mark_failed.
Delivery itself and any retry policy belong to the dispatcher.
"""
from datetime import datetime, timedelta
from typing import Dict, List, Optional
from uuid import UUID
import logging

from sqlalchemy import or_
from sqlalchemy.orm import Session

from app.config.database import commit_or_raise
from app.config.settings import get_settings
from app.core.exceptions import InvalidInput, InvalidState, NotFound
from app.models.appointment import Appointment, ACTIVE_STATUSES
from app.models.reminder import Reminder, ReminderStatus, ReminderType
from app.utils.time_utils import get_tz, resolve_now, to_local, to_utc_naive

logger = logging.getLogger(__name__)

# Fixed offsets before starts_at
STANDARD_REMINDERS = [
    (ReminderType.TWENTY_FOUR_HOUR.value, timedelta(hours=24)),
    (ReminderType.ONE_HOUR.value, timedelta(hours=1)),
]


class ReminderService:
    """Creates, hands out and closes appointment reminders"""

    # ------------------------------------------------------------------
    # Message rendering
    # ------------------------------------------------------------------

    @staticmethod
    def _delivery_method(appointment: Appointment) -> str:
        business = appointment.business
        if business is not None and business.messaging_mode == "manual":
            return "whatsapp"
        return "sms"

    @staticmethod
    def _render_message(appointment: Appointment, reminder_type: str) -> str:
        business = appointment.business
        service = appointment.service
        tz = get_tz(business.timezone if business else None)
        local_start = to_local(appointment.starts_at, tz)
        start_text = local_start.strftime("%I:%M %p").lstrip("0")
        service_name = service.name if service else "your appointment"
        business_name = business.name if business else ""

        if reminder_type == ReminderType.TWENTY_FOUR_HOUR.value:
            return (
                f"Reminder: You have an appointment tomorrow at {start_text} "
                f"for {service_name} at {business_name}."
            )
        if reminder_type == ReminderType.ONE_HOUR.value:
            return f"Reminder: Your appointment is in 1 hour at {start_text} for {service_name}."
        return f"Reminder: Your appointment for {service_name} is at {start_text}."

    @staticmethod
    def _by_type(db: Session, appointment_id: UUID) -> Dict[str, Reminder]:
        reminders = db.query(Reminder).filter(Reminder.appointment_id == appointment_id).all()
        return {r.reminder_type: r for r in reminders}

    # ------------------------------------------------------------------
    # Creation
    # ------------------------------------------------------------------

    @staticmethod
    def schedule_standard_reminders(
            db: Session,
            appointment: Appointment,
            now: Optional[datetime] = None,
            commit: bool = True
    ) -> int:
        """
        Create the 24h and 1h reminders. Fire-times already in the past are
        skipped, never created; existing (appointment, type) pairs are left alone.
        """
        current = resolve_now(now)
        existing = ReminderService._by_type(db, appointment.id)

        created = 0
        for reminder_type, offset in STANDARD_REMINDERS:
            fire_at = appointment.starts_at - offset
            if fire_at <= current or reminder_type in existing:
                continue
            db.add(Reminder(
                appointment_id=appointment.id,
                reminder_type=reminder_type,
                scheduled_for=fire_at,
                status=ReminderStatus.PENDING.value,
                message_content=ReminderService._render_message(appointment, reminder_type),
                delivery_method=ReminderService._delivery_method(appointment)
            ))
            created += 1

        if commit:
            commit_or_raise(db, "schedule reminders")

        if created:
            logger.info(f"Scheduled {created} reminder(s) for appointment {appointment.id}")
        return created

    @staticmethod
    def add_custom_reminder(
            db: Session,
            appointment_id: UUID,
            scheduled_for: datetime,
            message: Optional[str] = None,
            delivery_method: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Reminder:
        """One custom reminder per appointment; a pending one is replaced"""
        appointment = db.query(Appointment).filter(Appointment.id == appointment_id).first()
        if not appointment:
            raise NotFound("Appointment not found", {"appointment_id": str(appointment_id)})
        if not appointment.is_active:
            raise InvalidState(
                "Reminders can only be added to pending or confirmed appointments",
                {"status": appointment.status}
            )

        fire_at = to_utc_naive(scheduled_for)
        if fire_at <= resolve_now(now):
            raise InvalidInput("Reminder time must be in the future")

        reminder = ReminderService._by_type(db, appointment.id).get(ReminderType.CUSTOM.value)
        if reminder is not None and reminder.status != ReminderStatus.PENDING.value:
            raise InvalidState(
                "Appointment already has a custom reminder",
                {"reminder_id": str(reminder.id), "status": reminder.status}
            )
        if reminder is None:
            reminder = Reminder(
                appointment_id=appointment.id,
                reminder_type=ReminderType.CUSTOM.value,
                status=ReminderStatus.PENDING.value
            )
            db.add(reminder)

        reminder.scheduled_for = fire_at
        reminder.message_content = message or ReminderService._render_message(
            appointment, ReminderType.CUSTOM.value
        )
        reminder.delivery_method = delivery_method or ReminderService._delivery_method(appointment)

        commit_or_raise(db, "save custom reminder")
        db.refresh(reminder)
        return reminder

    # ------------------------------------------------------------------
    # Cascades from the booking coordinator (no commit, caller owns the txn)
    # ------------------------------------------------------------------

    @staticmethod
    def skip_pending_reminders(db: Session, appointment_id: UUID) -> int:
        """Canceled appointment: pending reminders become skipped"""
        reminders = db.query(Reminder).filter(
            Reminder.appointment_id == appointment_id,
            Reminder.status == ReminderStatus.PENDING.value
        ).all()
        for reminder in reminders:
            reminder.status = ReminderStatus.SKIPPED.value
        return len(reminders)

    @staticmethod
    def reschedule_reminders(
            db: Session,
            appointment: Appointment,
            previous_starts_at: datetime,
            now: Optional[datetime] = None
    ) -> None:
        """
        Recompute fire-times for a moved appointment. Standard reminders are
        re-armed for the new start (or skipped if now in the past); a pending
        custom reminder keeps its distance to the start.
        """
        current = resolve_now(now)
        by_type = ReminderService._by_type(db, appointment.id)

        for reminder_type, offset in STANDARD_REMINDERS:
            fire_at = appointment.starts_at - offset
            reminder = by_type.get(reminder_type)

            if fire_at > current:
                if reminder is None:
                    reminder = Reminder(appointment_id=appointment.id, reminder_type=reminder_type)
                    db.add(reminder)
                reminder.scheduled_for = fire_at
                reminder.status = ReminderStatus.PENDING.value
                reminder.message_content = ReminderService._render_message(appointment, reminder_type)
                reminder.delivery_method = ReminderService._delivery_method(appointment)
                reminder.dispatched_at = None
                reminder.sent_at = None
                reminder.error_message = None
            elif reminder is not None and reminder.status == ReminderStatus.PENDING.value:
                reminder.status = ReminderStatus.SKIPPED.value

        custom = by_type.get(ReminderType.CUSTOM.value)
        if custom is not None and custom.status == ReminderStatus.PENDING.value:
            shifted = custom.scheduled_for + (appointment.starts_at - previous_starts_at)
            if shifted > current:
                custom.scheduled_for = shifted
                custom.dispatched_at = None
            else:
                custom.status = ReminderStatus.SKIPPED.value

    # ------------------------------------------------------------------
    # Dispatcher interface
    # ------------------------------------------------------------------

    @staticmethod
    def due_reminders(
            db: Session,
            now: Optional[datetime] = None,
            limit: Optional[int] = None,
            business_id: Optional[UUID] = None
    ) -> List[Reminder]:
        """
        Pending reminders with scheduled_for <= now, oldest first, capped per
        call. A reminder handed off within the lease window is left out until
        the dispatcher reports back or the lease runs out.
        """
        settings = get_settings()
        batch_size = settings.REMINDER_BATCH_SIZE
        limit = batch_size if limit is None else max(0, min(limit, batch_size))
        current = resolve_now(now)
        lease_cutoff = current - timedelta(seconds=settings.REMINDER_DISPATCH_LEASE_SECONDS)

        query = db.query(Reminder).join(Appointment, Reminder.appointment_id == Appointment.id).filter(
            Reminder.status == ReminderStatus.PENDING.value,
            Reminder.scheduled_for <= current,
            or_(Reminder.dispatched_at.is_(None), Reminder.dispatched_at <= lease_cutoff),
            Appointment.status.in_(ACTIVE_STATUSES)
        )
        if business_id is not None:
            query = query.filter(Appointment.business_id == business_id)

        return query.order_by(Reminder.scheduled_for.asc(), Reminder.id.asc()).limit(limit).all()

    @staticmethod
    def list_for_appointment(db: Session, appointment_id: UUID) -> List[Reminder]:
        return db.query(Reminder).filter(
            Reminder.appointment_id == appointment_id
        ).order_by(Reminder.scheduled_for.asc()).all()

    @staticmethod
    def _get(db: Session, reminder_id: UUID) -> Reminder:
        reminder = db.query(Reminder).filter(Reminder.id == reminder_id).first()
        if not reminder:
            raise NotFound("Reminder not found", {"reminder_id": str(reminder_id)})
        return reminder

    @staticmethod
    def mark_dispatched(db: Session, reminder_id: UUID, now: Optional[datetime] = None) -> Reminder:
        """Claim a pending reminder after hand-off. Status stays pending."""
        reminder = ReminderService._get(db, reminder_id)
        if reminder.status != ReminderStatus.PENDING.value:
            raise InvalidState("Only pending reminders can be dispatched", {"status": reminder.status})

        reminder.dispatched_at = resolve_now(now)
        commit_or_raise(db, "mark reminder dispatched")

        logger.info(f"Reminder {reminder_id} handed to dispatcher")
        return reminder

    @staticmethod
    def mark_sent(db: Session, reminder_id: UUID, now: Optional[datetime] = None) -> Reminder:
        reminder = ReminderService._get(db, reminder_id)
        if reminder.status == ReminderStatus.SENT.value:
            return reminder
        # failed -> sent is allowed: the dispatcher owns retries
        if reminder.status not in (ReminderStatus.PENDING.value, ReminderStatus.FAILED.value):
            raise InvalidState("Reminder can no longer be sent", {"status": reminder.status})

        reminder.status = ReminderStatus.SENT.value
        reminder.sent_at = resolve_now(now)
        reminder.error_message = None
        commit_or_raise(db, "mark reminder sent")

        logger.info(f"Reminder {reminder_id} marked as sent")
        return reminder

    @staticmethod
    def mark_failed(db: Session, reminder_id: UUID, error_message: Optional[str] = None) -> Reminder:
        reminder = ReminderService._get(db, reminder_id)
        if reminder.status == ReminderStatus.FAILED.value:
            reminder.error_message = error_message or reminder.error_message
            commit_or_raise(db, "mark reminder failed")
            return reminder
        if reminder.status != ReminderStatus.PENDING.value:
            raise InvalidState("Only pending reminders can fail", {"status": reminder.status})

        reminder.status = ReminderStatus.FAILED.value
        reminder.error_message = error_message or "Unknown error"
        commit_or_raise(db, "mark reminder failed")

        logger.warning(f"Reminder {reminder_id} failed: {reminder.error_message}")
        return reminder

    @staticmethod
    def mark_reminder(
            db: Session,
            reminder_id: UUID,
            status: str,
            error_message: Optional[str] = None,
            now: Optional[datetime] = None
    ) -> Reminder:
        """Terminal status update from the dispatcher"""
        if status == ReminderStatus.SENT.value:
            return ReminderService.mark_sent(db, reminder_id, now)
        if status == ReminderStatus.FAILED.value:
            return ReminderService.mark_failed(db, reminder_id, error_message)
        raise InvalidInput("Reminder status must be 'sent' or 'failed'", {"status": status})
