"""
Celery worker entry point
Runs recurrence expansion and reminder hand-off; start beat alongside it
"""
import logging
from celery.signals import worker_ready, worker_shutdown

from app.config.celery_config import celery_app
from app.config.settings import get_settings
from app.utils.my_logging import setup_logging

# Setup logging first
setup_logging()
logger = logging.getLogger(__name__)

settings = get_settings()


@worker_ready.connect
def worker_ready_handler(sender=None, **kwargs):
    """Handle worker startup"""
    logger.info("Celery worker ready")
    logger.info(f"Registered tasks: {[name for name in celery_app.tasks.keys() if name.startswith('tasks.')]}")
    logger.info(
        f"Recurrence horizon {settings.RECURRENCE_HORIZON_DAYS} days, "
        f"reminder batch size {settings.REMINDER_BATCH_SIZE}"
    )


@worker_shutdown.connect
def worker_shutdown_handler(sender=None, **kwargs):
    """Handle worker shutdown"""
    logger.info("Celery worker shutting down")


if __name__ == "__main__":
    # Run worker directly, with the beat scheduler embedded
    celery_app.start([
        'worker',
        '--beat',
        '--loglevel=info',
        '--concurrency=4',
        '--max-tasks-per-child=1000'
    ])
