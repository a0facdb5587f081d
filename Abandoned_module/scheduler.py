"""
Scheduler setup for background tasks.
Uses APScheduler to run the abandoned-cart reminder job on a fixed interval.
"""
import logging
from apscheduler.schedulers.background import BackgroundScheduler
from apscheduler.triggers.interval import IntervalTrigger

from config import settings
from .reminder_job import run_reminder_job

logger = logging.getLogger(__name__)

# Global scheduler instance
scheduler = None


def start_scheduler():
    """
    Start the background scheduler for periodic tasks.
    - Abandoned-cart reminders: every REMINDER_INTERVAL_MINUTES (15 by default)
    """
    global scheduler

    if not settings.SCHEDULER_ENABLED:
        logger.info("Background scheduler disabled (SCHEDULER_ENABLED=false)")
        return None

    if scheduler is not None:
        logger.warning("Scheduler is already running")
        return scheduler

    scheduler = BackgroundScheduler()

    # One run at a time; missed runs collapse into one
    scheduler.add_job(
        run_reminder_job,
        trigger=IntervalTrigger(minutes=settings.REMINDER_INTERVAL_MINUTES),
        id='abandoned_cart_reminders',
        name='Send abandoned-cart reminders',
        replace_existing=True,
        max_instances=1,
        coalesce=True
    )

    scheduler.start()
    logger.info(f"Background scheduler started. Abandoned-cart reminders every {settings.REMINDER_INTERVAL_MINUTES} minutes.")

    return scheduler


def shutdown_scheduler():
    """
    Shutdown the background scheduler.
    """
    global scheduler

    if scheduler is not None:
        scheduler.shutdown()
        scheduler = None
        logger.info("Background scheduler stopped.")
