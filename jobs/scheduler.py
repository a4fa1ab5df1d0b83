"""
Referral job scheduler.

Enqueues the reconciliation actor on an interval and once a day, and
serves the health endpoints for the scheduler process.
"""

import asyncio
import sys

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from loguru import logger

from app.config.logging import setup_logging
from app.config.operational_constants import (
    HEALTH_SERVER_STOP_TIMEOUT,
    SCHEDULER_MISFIRE_GRACE_TIME,
)
from app.config.settings import settings
from jobs.health import set_scheduler, start_health_server, stop_health_server
from jobs.tasks.referral_reconciliation import resync_referral_stats

INTERVAL_JOB_ID = "referral_stats_resync"
DAILY_JOB_ID = "referral_stats_daily_resync"


def enqueue_resync(trigger: str) -> None:
    """Send a resync message to the workers."""
    resync_referral_stats.send(trigger)
    logger.debug(f"Referral stats resync enqueued ({trigger})")


def create_scheduler() -> AsyncIOScheduler:
    """
    Build the scheduler with both resync jobs registered.

    Returns:
        Scheduler, not yet started
    """
    scheduler = AsyncIOScheduler(timezone="UTC")

    scheduler.add_job(
        enqueue_resync,
        "interval",
        minutes=settings.referral_sync_interval_minutes,
        args=["interval"],
        id=INTERVAL_JOB_ID,
        name="Referral stats resync",
        replace_existing=True,
        coalesce=True,
        max_instances=1,
        misfire_grace_time=SCHEDULER_MISFIRE_GRACE_TIME,
    )
    scheduler.add_job(
        enqueue_resync,
        "cron",
        hour=settings.referral_daily_sync_hour,
        minute=0,
        args=["daily"],
        id=DAILY_JOB_ID,
        name="Referral stats daily resync",
        replace_existing=True,
        coalesce=True,
        misfire_grace_time=SCHEDULER_MISFIRE_GRACE_TIME,
    )
    return scheduler


async def main() -> None:
    """Run the scheduler and its health server until interrupted."""
    setup_logging("scheduler")

    scheduler = create_scheduler()
    scheduler.start()
    set_scheduler(scheduler)
    logger.info(
        f"Scheduler started: resync every {settings.referral_sync_interval_minutes} min, "
        f"daily at {settings.referral_daily_sync_hour:02d}:00 UTC"
    )

    runner, _site = await start_health_server(port=settings.health_check_port)
    try:
        await asyncio.Event().wait()
    finally:
        scheduler.shutdown(wait=False)
        await stop_health_server(runner, timeout=HEALTH_SERVER_STOP_TIMEOUT)


if __name__ == "__main__":
    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Scheduler stopped by user (KeyboardInterrupt)")
    except Exception as e:
        logger.exception(f"Scheduler crashed: {e}")
        sys.exit(1)
