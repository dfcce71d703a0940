"""APScheduler job definitions."""

import logging

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger

from pricetracker.config import settings
from pricetracker.worker.tasks import TaskRunner, task_runner

logger = logging.getLogger(__name__)


def setup_scheduler(runner: TaskRunner = task_runner) -> AsyncIOScheduler:
    """
    Setup and configure APScheduler.

    The daily update runs once a day at ``settings.daily_update_hour`` UTC.
    Overlapping runs are prevented and missed runs are coalesced into one.

    Returns:
        Configured scheduler instance
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        runner.scheduled_daily_update,
        CronTrigger(hour=settings.daily_update_hour, minute=0, timezone="UTC"),
        id="daily_update",
        name="Daily competitor pricing update",
        max_instances=1,
        coalesce=True,
        misfire_grace_time=3600,
        replace_existing=True,
    )

    logger.info(f"Scheduler configured: daily update at {settings.daily_update_hour:02d}:00 UTC")
    return scheduler
