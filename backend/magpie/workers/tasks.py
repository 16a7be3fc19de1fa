"""Background task definitions using Dramatiq."""

import asyncio

import dramatiq
from dramatiq.brokers.redis import RedisBroker
import structlog

from magpie.config import get_settings

settings = get_settings()
logger = structlog.get_logger()

# Configure Redis broker
redis_broker = RedisBroker(url=str(settings.redis_url))
dramatiq.set_broker(redis_broker)


def run_async(coro):
    """Helper to run async functions in sync context."""
    loop = asyncio.new_event_loop()
    try:
        return loop.run_until_complete(coro)
    finally:
        loop.close()


# ============================================
# DISCOVERY TASKS
# ============================================


async def run_discovery_batch(trigger: str = "scheduler") -> dict:
    """Run one discovery batch over every distinct user location."""
    from magpie.db import async_session_factory
    from magpie.engines.discovery import DiscoveryOrchestrator, HttpDiscoveryInvoker

    async with HttpDiscoveryInvoker() as invoker:
        orchestrator = DiscoveryOrchestrator(async_session_factory, invoker, trigger=trigger)
        report = await orchestrator.run()
    return report.to_dict()


# The batch has its own time budget and records failures per location,
# so a retry would only repeat finished work.
@dramatiq.actor(max_retries=0, time_limit=int(settings.discovery_batch_budget_seconds + 120) * 1000)
def run_scholarship_discovery_task(trigger: str = "scheduler"):
    """Discover scholarships for all user locations."""
    logger.info("Starting scholarship discovery task", trigger=trigger)
    result = run_async(run_discovery_batch(trigger))
    logger.info(
        "Scholarship discovery task complete",
        processed=result["locationsProcessed"],
        failed=result["locationsFailed"],
        skipped=result["locationsSkipped"],
    )
