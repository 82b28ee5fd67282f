# ===== app/tasks/scheduling_tasks.py =====
"""
Cron-driven scheduling work, fired by celery beat.

Each recurring template is expanded in its own session and transaction,
behind a non-blocking redis lock, so overlapping beat firings skip a
template that is already being expanded and one failure never stops the
others. Reminder hand-off publishes each due reminder to the external
messaging dispatcher and claims it; the dispatcher reports sent or failed.
"""
from contextlib import contextmanager
from typing import Optional
from uuid import UUID
import logging

from kombu.exceptions import KombuError
from redis.exceptions import LockError, RedisError

from app.config.celery_config import celery_app
from app.config.database import SessionLocal
from app.config.redis import RedisKeys, get_sync_redis
from app.config.settings import get_settings
from app.core.exceptions import SchedulingError
from app.schemas.task_payloads import ExpandRecurringPayload, ReminderDispatchPayload
from app.services.recurring.recurring_service import RecurringService
from app.services.reminder.reminder_service import ReminderService

logger = logging.getLogger(__name__)
settings = get_settings()


@contextmanager
def _redis_lock(key: str, timeout: int):
    """
    Yields True when the lock was taken, False when someone else holds it.
    If redis is unreachable the work goes ahead; database locks still apply.
    """
    lock = None
    try:
        lock = get_sync_redis().lock(key, timeout=timeout, blocking=False)
        acquired = lock.acquire(blocking=False)
    except RedisError as e:
        logger.warning(f"Redis lock {key} unavailable, continuing without it: {e}")
        lock = None
        acquired = True

    try:
        yield acquired
    finally:
        if lock is not None and acquired:
            try:
                lock.release()
            except (LockError, RedisError) as e:
                logger.warning(f"Could not release redis lock {key}: {e}")


def _template_lock(template_id: UUID):
    return _redis_lock(
        RedisKeys.RECURRENCE_EXPANSION_LOCK.format(template_id=template_id),
        settings.RECURRENCE_LOCK_TIMEOUT_SECONDS
    )


@celery_app.task(name="tasks.expand_recurring_appointments", bind=True, max_retries=3)
def expand_recurring_appointments(
        self,
        business_id: Optional[str] = None,
        template_id: Optional[str] = None,
        horizon_days: Optional[int] = None
):
    """Materialize recurring appointments up to the rolling horizon"""
    payload = ExpandRecurringPayload(
        business_id=business_id, template_id=template_id, horizon_days=horizon_days
    )

    if payload.template_id:
        template_ids = [UUID(payload.template_id)]
    else:
        db = SessionLocal()
        try:
            template_ids = RecurringService.active_template_ids(
                db, UUID(payload.business_id) if payload.business_id else None
            )
        finally:
            db.close()

    summary = {"templates": len(template_ids), "created": 0, "skipped_conflict": 0, "locked": 0, "failed": []}

    for tid in template_ids:
        with _template_lock(tid) as acquired:
            if not acquired:
                logger.info(f"Recurring appointment {tid} is being expanded elsewhere, skipping")
                summary["locked"] += 1
                continue

            db = SessionLocal()
            try:
                result = RecurringService.expand(db, tid, payload.horizon_days)
                summary["created"] += result.created_count
                summary["skipped_conflict"] += len(result.skipped_conflict)
            except SchedulingError as e:
                db.rollback()
                logger.error(f"Expansion of recurring appointment {tid} failed: {e.message}")
                summary["failed"].append(str(tid))
            except Exception as e:
                db.rollback()
                logger.error(f"Unexpected error expanding recurring appointment {tid}: {e}", exc_info=True)
                summary["failed"].append(str(tid))
            finally:
                db.close()

    logger.info(
        f"Recurring expansion task finished: {summary['created']} created across "
        f"{summary['templates']} template(s), {len(summary['failed'])} failed, {summary['locked']} locked"
    )
    return summary


@celery_app.task(name="tasks.dispatch_due_reminders", bind=True, max_retries=3)
def dispatch_due_reminders(self, limit: Optional[int] = None):
    """Hand due reminders to the messaging dispatcher"""
    with _redis_lock(RedisKeys.REMINDER_DISPATCH_LOCK, settings.REMINDER_DISPATCH_INTERVAL_SECONDS) as acquired:
        if not acquired:
            logger.info("Reminder dispatch already running, skipping")
            return {"status": "skipped", "reason": "already_running"}

        db = SessionLocal()
        try:
            reminders = ReminderService.due_reminders(db, limit=limit)
            queued, failed = 0, 0

            for reminder in reminders:
                appointment = reminder.appointment
                message = ReminderDispatchPayload(
                    reminder_id=str(reminder.id),
                    appointment_id=str(appointment.id),
                    business_id=str(appointment.business_id),
                    to_phone=appointment.customer_phone,
                    customer_name=appointment.customer_name,
                    channel=reminder.delivery_method or "sms",
                    message_body=reminder.message_content,
                    reminder_type=reminder.reminder_type,
                    scheduled_for=reminder.scheduled_for
                )

                try:
                    celery_app.send_task(settings.REMINDER_DISPATCH_TASK, kwargs=message.model_dump(mode="json"))
                except (KombuError, OSError) as e:
                    logger.error(f"Could not hand off reminder {reminder.id}: {e}")
                    ReminderService.mark_failed(db, reminder.id, f"Dispatch failed: {e}")
                    failed += 1
                    continue

                ReminderService.mark_dispatched(db, reminder.id)
                queued += 1

            logger.info(f"Reminder dispatch: {queued} handed off, {failed} failed")
            return {"status": "success", "queued": queued, "failed": failed}
        finally:
            db.close()
