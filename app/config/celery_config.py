# app/config/celery_config.py
"""Celery application factory and beat schedule"""
from celery import Celery
from celery.schedules import crontab

from app.config.settings import get_settings

settings = get_settings()


def create_celery_app() -> Celery:
    """Create and configure the Celery application"""
    app = Celery(
        "scheduling",
        broker=settings.CELERY_BROKER_URL,
        backend=settings.CELERY_RESULT_BACKEND,
        include=["app.tasks.scheduling_tasks"],
    )

    app.conf.update(
        task_serializer=settings.CELERY_TASK_SERIALIZER,
        result_serializer="json",
        accept_content=["json"],
        timezone="UTC",
        enable_utc=True,
        task_acks_late=True,
        worker_prefetch_multiplier=1,
    )

    # External triggers: no in-process scheduler, beat fires the sweeps
    app.conf.beat_schedule = {
        "expand-recurring-appointments": {
            "task": "tasks.expand_recurring_appointments",
            "schedule": crontab(minute=settings.RECURRENCE_EXPANSION_CRON_MINUTE),
        },
        "dispatch-due-reminders": {
            "task": "tasks.dispatch_due_reminders",
            "schedule": float(settings.REMINDER_DISPATCH_INTERVAL_SECONDS),
        },
    }

    return app


celery_app = create_celery_app()
