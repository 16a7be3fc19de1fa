"""Task scheduler using APScheduler."""

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.cron import CronTrigger
import structlog

from magpie.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

scheduler = AsyncIOScheduler(timezone="UTC")


def setup_scheduler():
    """Configure the scheduler."""

    # Import tasks here to avoid circular imports
    from magpie.workers.tasks import run_scholarship_discovery_task

    # ============================================
    # DISCOVERY SCHEDULES
    # ============================================

    # Scholarship discovery - Daily at 7 AM UTC
    scheduler.add_job(
        lambda: run_scholarship_discovery_task.send("scheduler"),
        trigger=CronTrigger(hour=7, minute=0, timezone="UTC"),
        id="scholarship_discovery",
        name="Discovery: Scholarships for all user locations (daily)",
        replace_existing=True,
    )

    logger.info("Scheduler configured with jobs")


def start_scheduler():
    """Start the scheduler."""
    setup_scheduler()
    scheduler.start()
    logger.info("Scheduler started")


def stop_scheduler():
    """Stop the scheduler."""
    scheduler.shutdown()
    logger.info("Scheduler stopped")


# For running as standalone scheduler process
if __name__ == "__main__":
    import asyncio

    async def main():
        start_scheduler()

        # Keep the scheduler running
        try:
            while True:
                await asyncio.sleep(3600)
        except asyncio.CancelledError:
            pass
        finally:
            stop_scheduler()

    try:
        asyncio.run(main())
    except KeyboardInterrupt:
        logger.info("Scheduler shutdown by keyboard interrupt")
