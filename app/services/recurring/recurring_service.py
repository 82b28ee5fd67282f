# ===== app/services/recurring/recurring_service.py =====
"""
Recurring appointment templates and their expansion into calendar instances.

Occurrences are anchored on the template's start_date, so a template never
drifts off its weekday or day-of-month however late it is expanded. Only
occurrences from the business-local today up to today + horizon are
materialized. Each template is expanded in its own transaction.
"""
from dataclasses import dataclass, field
from datetime import date, datetime, time, timedelta
from typing import Any, Dict, List, Optional, Tuple
from uuid import UUID
import logging

from dateutil.relativedelta import relativedelta
from sqlalchemy import func, or_
from sqlalchemy.orm import Session

from app.config.database import commit_or_raise, unit_of_work
from app.config.settings import get_settings
from app.core.exceptions import InvalidInput, NotFound
from app.models.appointment import Appointment, AppointmentStatus, ACTIVE_STATUSES
from app.models.recurring import RecurringTemplate, RecurrenceFrequency
from app.services.appointment.conflict_service import ConflictService
from app.services.business.business_service import BusinessService
from app.services.business.business_stats_service import BusinessStatsService
from app.services.locking.lock_service import LockService
from app.services.reminder.reminder_service import ReminderService
from app.utils.time_utils import get_tz, local_today, localize, resolve_now, to_utc_naive

logger = logging.getLogger(__name__)

FREQUENCIES = [f.value for f in RecurrenceFrequency]

CANCELED_NOTE = " (Recurring series canceled)"
DELETED_NOTE = " (Recurring series deleted)"

# Fields update_template accepts
UPDATABLE_FIELDS = (
    "service_id", "staff_id", "customer_name", "customer_phone", "customer_email",
    "frequency", "end_date", "time_of_day", "notes", "is_active",
)
REQUIRED_FIELDS = ("service_id", "customer_name", "customer_phone", "frequency", "time_of_day", "is_active")


@dataclass
class ExpansionResult:
    template_id: UUID
    created_ids: List[UUID] = field(default_factory=list)
    skipped_existing: int = 0
    skipped_past: int = 0
    skipped_conflict: List[date] = field(default_factory=list)

    @property
    def created_count(self) -> int:
        return len(self.created_ids)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "template_id": str(self.template_id),
            "created": self.created_count,
            "created_ids": [str(i) for i in self.created_ids],
            "skipped_existing": self.skipped_existing,
            "skipped_past": self.skipped_past,
            "skipped_conflict": [d.isoformat() for d in self.skipped_conflict],
        }


def nth_occurrence(template: RecurringTemplate, n: int) -> date:
    """The n-th occurrence date counted from start_date (n=0 is start_date)"""
    if template.frequency == RecurrenceFrequency.WEEKLY.value:
        return template.start_date + timedelta(days=7 * n)
    if template.frequency == RecurrenceFrequency.BI_WEEKLY.value:
        return template.start_date + timedelta(days=14 * n)
    if template.frequency == RecurrenceFrequency.MONTHLY.value:
        # relativedelta clamps the 31st to the last day of shorter months
        return template.start_date + relativedelta(months=n)
    raise InvalidInput("Unsupported recurrence frequency", {"frequency": template.frequency})


def occurrence_dates(template: RecurringTemplate, from_date: date, to_date: date) -> List[date]:
    """Occurrence dates within [from_date, to_date] and not after end_date"""
    last = to_date
    if template.end_date is not None and template.end_date < last:
        last = template.end_date

    # skip ahead to just before from_date instead of walking from start_date
    n = 0
    if from_date > template.start_date:
        if template.frequency == RecurrenceFrequency.MONTHLY.value:
            delta = relativedelta(from_date, template.start_date)
            n = max(0, delta.years * 12 + delta.months - 1)
        else:
            step = 14 if template.frequency == RecurrenceFrequency.BI_WEEKLY.value else 7
            n = max(0, (from_date - template.start_date).days // step - 1)

    dates = []
    while True:
        current = nth_occurrence(template, n)
        if current > last:
            break
        if current >= from_date:
            dates.append(current)
        n += 1
    return dates


class RecurringService:
    """Template CRUD plus idempotent expansion"""

    # ------------------------------------------------------------------
    # Lookups
    # ------------------------------------------------------------------

    @staticmethod
    def get_template(db: Session, template_id: UUID, business_id: Optional[UUID] = None) -> RecurringTemplate:
        query = db.query(RecurringTemplate).filter(RecurringTemplate.id == template_id)
        if business_id is not None:
            query = query.filter(RecurringTemplate.business_id == business_id)
        template = query.first()
        if not template:
            raise NotFound("Recurring appointment not found", {"template_id": str(template_id)})
        return template

    @staticmethod
    def list_templates(
            db: Session,
            business_id: UUID,
            staff_id: Optional[UUID] = None,
            is_active: Optional[bool] = None
    ) -> List[Dict[str, Any]]:
        """Templates with generated-appointment totals, newest first"""
        stats = db.query(
            Appointment.recurring_id.label("recurring_id"),
            func.count(Appointment.id).label("total_appointments"),
            func.max(Appointment.starts_at).label("last_appointment_date")
        ).filter(
            Appointment.recurring_id.isnot(None)
        ).group_by(Appointment.recurring_id).subquery()

        query = db.query(
            RecurringTemplate, stats.c.total_appointments, stats.c.last_appointment_date
        ).outerjoin(
            stats, stats.c.recurring_id == RecurringTemplate.id
        ).filter(RecurringTemplate.business_id == business_id)

        if staff_id is not None:
            # staff view also shows unassigned series
            query = query.filter(or_(
                RecurringTemplate.staff_id == staff_id,
                RecurringTemplate.staff_id.is_(None)
            ))
        if is_active is not None:
            query = query.filter(RecurringTemplate.is_active == is_active)

        rows = query.order_by(RecurringTemplate.created_at.desc()).all()

        result = []
        for template, total, last in rows:
            item = RecurringService.serialize(template)
            item["total_appointments"] = total or 0
            item["last_appointment_date"] = last.isoformat() if last else None
            result.append(item)
        return result

    @staticmethod
    def active_template_ids(db: Session, business_id: Optional[UUID] = None) -> List[UUID]:
        query = db.query(RecurringTemplate.id).filter(RecurringTemplate.is_active == True)
        if business_id is not None:
            query = query.filter(RecurringTemplate.business_id == business_id)
        return [row.id for row in query.order_by(RecurringTemplate.created_at.asc()).all()]

    # ------------------------------------------------------------------
    # Template management
    # ------------------------------------------------------------------

    @staticmethod
    def _validate_pattern(frequency: str, start_date: date, end_date: Optional[date]) -> None:
        if frequency not in FREQUENCIES:
            raise InvalidInput(
                "Frequency must be weekly, bi-weekly, or monthly", {"frequency": frequency}
            )
        if end_date is not None and end_date < start_date:
            raise InvalidInput("End date cannot be before start date")

    @staticmethod
    def create_template(
            db: Session,
            business_id: UUID,
            service_id: UUID,
            customer_name: str,
            customer_phone: str,
            frequency: str,
            start_date: date,
            time_of_day: time,
            staff_id: Optional[UUID] = None,
            customer_email: Optional[str] = None,
            end_date: Optional[date] = None,
            notes: Optional[str] = None,
            expand: bool = True,
            now: Optional[datetime] = None
    ) -> Tuple[RecurringTemplate, Optional[ExpansionResult]]:
        """Create a series and materialize its first horizon of appointments"""
        if not customer_name or not customer_phone:
            raise InvalidInput("Customer name and phone are required")
        RecurringService._validate_pattern(frequency, start_date, end_date)

        BusinessService.get_business(db, business_id)
        service = BusinessService.get_service(db, business_id, service_id)
        BusinessService.get_staff(db, business_id, staff_id)

        template = RecurringTemplate(
            business_id=business_id,
            service_id=service.id,
            staff_id=staff_id,
            customer_name=customer_name,
            customer_phone=customer_phone,
            customer_email=customer_email,
            frequency=frequency,
            start_date=start_date,
            end_date=end_date,
            time_of_day=time_of_day,
            duration_minutes=service.duration_minutes,
            notes=notes,
            is_active=True
        )
        db.add(template)
        commit_or_raise(db, "create recurring appointment")
        db.refresh(template)

        logger.info(
            f"Recurring appointment {template.id} created for business {business_id} "
            f"({frequency} from {start_date})"
        )

        result = RecurringService.expand(db, template.id, now=now) if expand else None
        return template, result

    @staticmethod
    def update_template(
            db: Session,
            template_id: UUID,
            changes: Dict[str, Any],
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> RecurringTemplate:
        """
        Partial update. Already generated appointments keep their times;
        setting is_active=False cancels the series' future appointments.
        """
        template = RecurringService.get_template(db, template_id, business_id)

        unknown = set(changes) - set(UPDATABLE_FIELDS)
        if unknown:
            raise InvalidInput("Unknown fields in update", {"fields": sorted(unknown)})

        for key in REQUIRED_FIELDS:
            if key in changes and changes[key] in (None, ""):
                raise InvalidInput(f"{key} cannot be empty")

        deactivating = changes.get("is_active") is False and template.is_active

        frequency = changes.get("frequency", template.frequency)
        end_date = changes.get("end_date", template.end_date)
        RecurringService._validate_pattern(frequency, template.start_date, end_date)

        if "service_id" in changes and changes["service_id"] != template.service_id:
            service = BusinessService.get_service(db, template.business_id, changes["service_id"])
            template.duration_minutes = service.duration_minutes
        if changes.get("staff_id") is not None:
            BusinessService.get_staff(db, template.business_id, changes["staff_id"])

        for key, value in changes.items():
            setattr(template, key, value)

        current = resolve_now(now)
        template.updated_at = current

        canceled = 0
        if deactivating:
            canceled = RecurringService._cancel_future(db, template.id, current, CANCELED_NOTE)

        commit_or_raise(db, "update recurring appointment")
        db.refresh(template)

        if deactivating:
            logger.info(f"Recurring appointment {template.id} deactivated, {canceled} future appointment(s) canceled")
        else:
            logger.info(f"Recurring appointment {template.id} updated")
        return template

    @staticmethod
    def deactivate_template(
            db: Session,
            template_id: UUID,
            business_id: Optional[UUID] = None,
            now: Optional[datetime] = None
    ) -> RecurringTemplate:
        return RecurringService.update_template(db, template_id, {"is_active": False}, business_id, now)

    @staticmethod
    def delete_template(
            db: Session,
            template_id: UUID,
            business_id: Optional[UUID] = None,
            cancel_future: bool = True,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """
        Delete a series. Generated appointments are never deleted: the
        back-reference is cleared on every survivor before the template goes.
        """
        template = RecurringService.get_template(db, template_id, business_id)
        customer_name = template.customer_name

        canceled = 0
        with unit_of_work(db, "delete recurring appointment"):
            if cancel_future:
                canceled = RecurringService._cancel_future(db, template.id, resolve_now(now), DELETED_NOTE)

            db.flush()
            detached = db.query(Appointment).filter(
                Appointment.recurring_id == template.id
            ).update({Appointment.recurring_id: None}, synchronize_session="fetch")

            db.delete(template)

        logger.info(
            f"Recurring appointment {template_id} deleted "
            f"({detached} appointment(s) detached, {canceled} canceled)"
        )
        return {
            "deleted_customer": customer_name,
            "canceled_future": canceled,
            "detached_appointments": detached,
        }

    @staticmethod
    def _cancel_future(db: Session, template_id: UUID, current: datetime, note: str) -> int:
        """Cancel the series' active appointments starting after now. No commit."""
        appointments = db.query(Appointment).filter(
            Appointment.recurring_id == template_id,
            Appointment.starts_at > current,
            Appointment.status.in_(ACTIVE_STATUSES)
        ).all()

        for appointment in appointments:
            appointment.status = AppointmentStatus.CANCELED.value
            appointment.cancelled_at = current
            appointment.cancellation_reason = "recurring series ended"
            appointment.notes = (appointment.notes or "") + note
            ReminderService.skip_pending_reminders(db, appointment.id)

        return len(appointments)

    # ------------------------------------------------------------------
    # Expansion
    # ------------------------------------------------------------------

    @staticmethod
    def expand(
            db: Session,
            template_id: UUID,
            horizon_days: Optional[int] = None,
            now: Optional[datetime] = None,
            business_id: Optional[UUID] = None
    ) -> ExpansionResult:
        """
        Materialize occurrences up to today + horizon_days.

        Occurrences that already exist (same template and date, or same
        template and starts_at) are skipped, so re-running is a no-op.
        Conflicting occurrences are logged and skipped, never fatal.
        """
        horizon = get_settings().RECURRENCE_HORIZON_DAYS if horizon_days is None else horizon_days
        if horizon < 0:
            raise InvalidInput("Horizon must not be negative", {"horizon_days": horizon})

        template = RecurringService.get_template(db, template_id, business_id)
        result = ExpansionResult(template_id=template.id)
        if not template.is_active:
            logger.info(f"Recurring appointment {template.id} is inactive, nothing to expand")
            return result

        with unit_of_work(db, "expand recurring appointment"):
            LockService.lock_template(db, template.id)
            LockService.lock_calendar(db, template.business_id, template.staff_id)

            business = BusinessService.get_business(db, template.business_id)
            service = BusinessService.get_service(db, template.business_id, template.service_id, require_active=False)

            tz = get_tz(business.timezone)
            current = resolve_now(now)
            today = local_today(tz, current)
            duration = timedelta(minutes=template.duration_minutes or service.duration_minutes)

            existing = db.query(Appointment.occurrence_date, Appointment.starts_at).filter(
                Appointment.recurring_id == template.id
            ).all()
            existing_dates = {row.occurrence_date for row in existing if row.occurrence_date}
            existing_starts = {row.starts_at for row in existing}

            for occurrence in occurrence_dates(template, today, today + timedelta(days=horizon)):
                start = to_utc_naive(localize(occurrence, template.time_of_day, tz))
                end = start + duration

                if occurrence in existing_dates or start in existing_starts:
                    result.skipped_existing += 1
                    continue
                if start <= current:
                    result.skipped_past += 1
                    continue
                if not ConflictService.is_interval_free(db, business.id, service, template.staff_id, start, end):
                    logger.info(f"Recurring appointment {template.id}: skipping {occurrence}, time slot is taken")
                    result.skipped_conflict.append(occurrence)
                    continue

                appointment = Appointment(
                    business_id=business.id,
                    service_id=service.id,
                    staff_id=template.staff_id,
                    recurring_id=template.id,
                    occurrence_date=occurrence,
                    customer_name=template.customer_name,
                    customer_phone=template.customer_phone,
                    customer_email=template.customer_email,
                    starts_at=start,
                    ends_at=end,
                    status=AppointmentStatus.CONFIRMED.value,
                    source="recurring",
                    price_cents=service.price_cents or 0,
                    deposit_cents=0,
                    notes=template.notes,
                    created_at=current,
                    updated_at=current
                )
                appointment.business = business
                appointment.service = service
                db.add(appointment)
                db.flush()

                ReminderService.schedule_standard_reminders(db, appointment, current, commit=False)
                result.created_ids.append(appointment.id)

            template.last_expanded_at = current

        logger.info(
            f"Recurring appointment {template.id} expanded: {result.created_count} created, "
            f"{result.skipped_existing} existing, {len(result.skipped_conflict)} conflicts"
        )

        if result.created_ids:
            BusinessStatsService.refresh_quietly(db, business.id, current)
        return result

    @staticmethod
    def expand_all(
            db: Session,
            business_id: Optional[UUID] = None,
            horizon_days: Optional[int] = None,
            now: Optional[datetime] = None
    ) -> Dict[str, Any]:
        """Expand every active template; one failing template never stops the rest"""
        summary = {
            "templates": 0,
            "created": 0,
            "skipped_existing": 0,
            "skipped_conflict": 0,
            "failed": [],
        }

        for template_id in RecurringService.active_template_ids(db, business_id):
            summary["templates"] += 1
            try:
                result = RecurringService.expand(db, template_id, horizon_days, now)
            except Exception as e:
                db.rollback()
                logger.error(f"Error expanding recurring appointment {template_id}: {e}", exc_info=True)
                summary["failed"].append(str(template_id))
                continue

            summary["created"] += result.created_count
            summary["skipped_existing"] += result.skipped_existing
            summary["skipped_conflict"] += len(result.skipped_conflict)

        logger.info(
            f"Recurring expansion finished: {summary['templates']} template(s), "
            f"{summary['created']} appointment(s) created, {len(summary['failed'])} failed"
        )
        return summary

    @staticmethod
    def serialize(template: RecurringTemplate) -> Dict[str, Any]:
        return {
            "id": str(template.id),
            "business_id": str(template.business_id),
            "service_id": str(template.service_id),
            "staff_id": str(template.staff_id) if template.staff_id else None,
            "customer_name": template.customer_name,
            "customer_phone": template.customer_phone,
            "customer_email": template.customer_email,
            "frequency": template.frequency,
            "start_date": template.start_date.isoformat(),
            "end_date": template.end_date.isoformat() if template.end_date else None,
            "time_of_day": template.time_of_day.strftime("%H:%M"),
            "duration_minutes": template.duration_minutes,
            "notes": template.notes,
            "is_active": template.is_active,
            "last_expanded_at": template.last_expanded_at.isoformat() if template.last_expanded_at else None,
        }
