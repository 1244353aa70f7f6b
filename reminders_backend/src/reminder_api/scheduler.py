from __future__ import annotations

import logging
from typing import Optional

from apscheduler.schedulers.background import BackgroundScheduler

from .errors import ReminderJobError
from .jobs import run_reminder_job
from .repositories import get_assignment_repository, get_audit_log_repository
from .settings import get_settings

logger = logging.getLogger(__name__)

JOB_ID = "send_assignment_reminders"

# Set once started; a second start is a no-op
_scheduler: Optional[BackgroundScheduler] = None


# PUBLIC_INTERFACE
def start_scheduler() -> Optional[BackgroundScheduler]:
    """
    Start the in-process daily reminder run.

    - Respects ENABLE_SCHEDULER (disabled by default; an external cron calling
      POST /api/v1/reminders/run is the usual trigger)
    - Prevents double start
    - max_instances=1 keeps runs in this process from overlapping

    Returns the running scheduler, or None when disabled.
    """
    global _scheduler

    settings = get_settings()
    if not settings.enable_scheduler:
        logger.info("Reminder scheduler disabled (ENABLE_SCHEDULER=false)")
        return None

    if _scheduler is not None:
        logger.info("Reminder scheduler already running, skipping initialization")
        return _scheduler

    scheduler = BackgroundScheduler(timezone=settings.reminder_timezone)
    scheduler.add_job(
        run_scheduled_reminders,
        trigger="cron",
        hour=settings.reminder_cron_hour,
        minute=0,
        id=JOB_ID,
        replace_existing=True,
        max_instances=1,
        coalesce=True,
    )
    scheduler.start()
    _scheduler = scheduler

    logger.info(
        "Reminder scheduler started: daily at %02d:00 %s",
        settings.reminder_cron_hour,
        settings.reminder_timezone,
    )
    return scheduler


# PUBLIC_INTERFACE
def shutdown_scheduler() -> None:
    """Stop the scheduler if it is running."""
    global _scheduler

    if _scheduler is None:
        return
    _scheduler.shutdown(wait=False)
    _scheduler = None
    logger.info("Reminder scheduler stopped")


def run_scheduled_reminders() -> None:
    """
    Scheduled entry point. Failures are logged; the next tick retries naturally.
    """
    logger.info("Running scheduled assignment reminders")
    try:
        result = run_reminder_job(get_assignment_repository(), get_audit_log_repository())
    except ReminderJobError:
        logger.exception("Scheduled reminder run failed")
        return
    logger.info("Scheduled reminder run processed %d reminders", result.processed)
