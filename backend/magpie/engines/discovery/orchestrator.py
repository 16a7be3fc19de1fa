"""Discovery Orchestrator - the scheduled scholarship discovery batch.

The orchestrator:
1. Collects every distinct user location (case-insensitive)
2. Asks the discovery service for candidates, once per location
3. Queues each location's candidates for moderation in one transaction
4. Records a per-location outcome instead of aborting on failure
5. Stops launching work once the batch budget is spent
6. Tracks the batch as a DiscoveryRun with a progress log
"""

import asyncio
import time
from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Callable, Optional
from uuid import UUID

import structlog
from sqlalchemy import or_, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from magpie.config import get_settings
from magpie.db.models import DiscoveryRun, Profile, utcnow
from magpie.engines.discovery.base import DiscoveryBatch, DiscoveryInvoker, DiscoveryProfile
from magpie.engines.discovery.locations import Location, dedupe_locations
from magpie.engines.moderation.store import IngestSummary, ModerationStore
from magpie.errors import UpstreamUnavailable

settings = get_settings()
logger = structlog.get_logger()

BUDGET_EXHAUSTED = "Batch time budget exhausted"


@dataclass
class LocationOutcome:
    """What happened for one location: a summary or an error, never both."""

    location: Location
    summary: Optional[IngestSummary] = None
    batch: Optional[DiscoveryBatch] = None
    error: Optional[str] = None

    @property
    def ok(self) -> bool:
        return self.error is None

    def to_result(self) -> dict:
        if not self.ok:
            return {"success": False, "error": self.error}
        result = {"success": True, **self.summary.to_dict()}
        if self.batch is not None:
            result["queried"] = self.batch.queried
            result["urlsDiscovered"] = self.batch.urls_discovered
            result["upstreamErrors"] = self.batch.errors
        return result


@dataclass
class BatchReport:
    """Outcome of a discovery batch, complete or cut short by the budget."""

    outcomes: list[LocationOutcome] = field(default_factory=list)
    locations_total: int = 0
    budget_exhausted: bool = False
    run_id: Optional[UUID] = None

    @property
    def locations_processed(self) -> int:
        return len(self.outcomes)

    @property
    def locations_failed(self) -> int:
        return sum(1 for outcome in self.outcomes if not outcome.ok)

    @property
    def locations_skipped(self) -> int:
        return self.locations_total - self.locations_processed

    @property
    def candidates_queued(self) -> int:
        return sum(o.summary.queued for o in self.outcomes if o.summary is not None)

    @property
    def status(self) -> str:
        if self.locations_failed == 0 and self.locations_skipped == 0:
            return "completed"
        if self.locations_failed == self.locations_processed and self.locations_processed:
            return "failed"
        return "partial"

    def to_dict(self) -> dict:
        return {
            "success": True,
            "locationsProcessed": self.locations_processed,
            "locationsFailed": self.locations_failed,
            "locationsSkipped": self.locations_skipped,
            "budgetExhausted": self.budget_exhausted,
            "runId": str(self.run_id) if self.run_id else None,
            "results": [
                {
                    "city": outcome.location.city,
                    "state": outcome.location.state,
                    "result": outcome.to_result(),
                }
                for outcome in self.outcomes
            ],
        }


class DiscoveryOrchestrator:
    """Runs discovery for every distinct user location under a time budget."""

    def __init__(
        self,
        session_factory: async_sessionmaker[AsyncSession],
        invoker: DiscoveryInvoker,
        budget_seconds: Optional[float] = None,
        call_timeout_seconds: Optional[float] = None,
        concurrency: Optional[int] = None,
        trigger: str = "cron",
        clock: Callable[[], float] = time.monotonic,
    ):
        """Initialize the orchestrator.

        Args:
            session_factory: Creates sessions; each location ingests in its own
            invoker: Discovery service client
            budget_seconds: Wall-clock budget for the whole batch
            call_timeout_seconds: Upper bound for one location's discovery call
            concurrency: Locations discovered at the same time
            trigger: Recorded on the DiscoveryRun (cron, scheduler, manual)
            clock: Monotonic clock, injectable for tests
        """
        self.session_factory = session_factory
        self.invoker = invoker
        self.budget_seconds = (
            budget_seconds if budget_seconds is not None else settings.discovery_batch_budget_seconds
        )
        self.call_timeout_seconds = (
            call_timeout_seconds
            if call_timeout_seconds is not None
            else settings.discovery_timeout_seconds
        )
        self.concurrency = max(1, concurrency or settings.discovery_concurrency)
        self.trigger = trigger
        self.clock = clock
        self._run_lock = asyncio.Lock()

    async def load_locations(self) -> list[Location]:
        """Distinct profile locations, first-seen casing preserved."""
        async with self.session_factory() as db:
            result = await db.execute(
                select(Profile.city, Profile.state)
                .where(or_(Profile.city.isnot(None), Profile.state.isnot(None)))
                .order_by(Profile.created_at, Profile.id)
            )
            rows = result.all()
        return dedupe_locations((row[0], row[1]) for row in rows)

    async def run(self, locations: Optional[list[Location]] = None) -> BatchReport:
        """Run one batch.

        Args:
            locations: Locations to process; loaded from profiles when omitted

        Returns:
            BatchReport with one outcome per attempted location
        """
        started = self.clock()
        deadline = started + self.budget_seconds

        if locations is None:
            locations = await self.load_locations()
        else:
            locations = dedupe_locations((loc.city, loc.state) for loc in locations)

        report = BatchReport(locations_total=len(locations))

        async with self.session_factory() as run_db:
            run = await self._start_run(run_db, len(locations))
            report.run_id = run.id if run else None

            logger.info(
                "Starting scholarship discovery batch",
                locations=len(locations),
                budget_seconds=self.budget_seconds,
                concurrency=self.concurrency,
            )

            semaphore = asyncio.Semaphore(self.concurrency)

            async def worker(location: Location) -> Optional[LocationOutcome]:
                async with semaphore:
                    if self.clock() >= deadline:
                        return None
                    outcome = await self._process_location(location, deadline)
                    await self._log_to_run(
                        run_db,
                        run,
                        "info" if outcome.ok else "error",
                        f"{'Processed' if outcome.ok else 'Failed'} {_describe(location)}",
                        data=outcome.to_result(),
                    )
                    return outcome

            results = await asyncio.gather(*(worker(location) for location in locations))

            report.outcomes = [outcome for outcome in results if outcome is not None]
            report.budget_exhausted = report.locations_skipped > 0 or any(
                outcome.error == BUDGET_EXHAUSTED for outcome in report.outcomes
            )

            await self._finish_run(run_db, run, report)

        logger.info(
            "Scholarship discovery batch finished",
            status=report.status,
            processed=report.locations_processed,
            failed=report.locations_failed,
            skipped=report.locations_skipped,
            queued=report.candidates_queued,
            duration_seconds=round(self.clock() - started, 2),
        )
        return report

    async def run_for_profile(self, profile: DiscoveryProfile) -> LocationOutcome:
        """Discover and queue candidates for a single full profile."""
        location = Location(city=profile.city, state=profile.state)
        deadline = self.clock() + self.call_timeout_seconds
        return await self._process_location(location, deadline, profile=profile)

    async def _process_location(
        self,
        location: Location,
        deadline: float,
        profile: Optional[DiscoveryProfile] = None,
    ) -> LocationOutcome:
        """Discover one location and queue its candidates.

        The discovery call is bounded by the remaining budget. Ingestion is
        not interrupted once it starts, so a location is either fully queued
        or not queued at all.
        """
        profile = profile or DiscoveryProfile.for_location(location)
        remaining = deadline - self.clock()
        timeout = min(remaining, self.call_timeout_seconds)
        log = logger.bind(city=location.city, state=location.state)

        try:
            batch = await asyncio.wait_for(self.invoker.discover(profile), timeout=timeout)
        except asyncio.TimeoutError:
            error = BUDGET_EXHAUSTED if remaining <= self.call_timeout_seconds else "Discovery timed out"
            log.warning("Discovery call timed out", timeout_seconds=round(timeout, 2))
            return LocationOutcome(location, error=error)
        except UpstreamUnavailable as e:
            log.warning("Discovery failed for location", error=e.message)
            return LocationOutcome(location, error=e.message)
        except Exception as e:
            log.error("Unexpected discovery error", error=str(e), exc_info=True)
            return LocationOutcome(location, error="Discovery failed")

        try:
            async with self.session_factory() as db:
                summary = await ModerationStore(db).enqueue(batch.candidates)
        except Exception as e:
            log.error("Failed to queue discovered scholarships", error=str(e), exc_info=True)
            return LocationOutcome(location, batch=batch, error="Failed to queue candidates")

        log.info(
            "Location processed",
            received=summary.received,
            queued=summary.queued,
            duplicates=summary.skipped_duplicates,
        )
        return LocationOutcome(location, summary=summary, batch=batch)

    async def _start_run(self, db: AsyncSession, total: int) -> Optional[DiscoveryRun]:
        run = DiscoveryRun(
            trigger=self.trigger,
            status="running",
            locations_total=total,
            logs=[],
            current_step="Discovering locations",
        )
        db.add(run)
        try:
            await db.commit()
        except Exception as e:
            logger.warning("Failed to create discovery run", error=str(e))
            await db.rollback()
            return None
        return run

    async def _log_to_run(
        self,
        db: AsyncSession,
        run: Optional[DiscoveryRun],
        level: str,
        msg: str,
        data: Optional[dict] = None,
    ) -> None:
        """Append a progress entry and commit it for real-time visibility."""
        if run is None:
            return

        log_entry = {
            "ts": datetime.now(timezone.utc).isoformat(),
            "level": level,
            "msg": msg,
            "run_id": str(run.id)[:8],
        }
        if data:
            log_entry["data"] = data

        async with self._run_lock:
            # New list so the JSON column registers the change
            run.logs = (run.logs or []) + [log_entry]
            if level == "error":
                run.locations_failed += 1
            run.locations_processed += 1
            try:
                await db.commit()
            except Exception as e:
                logger.warning("Failed to log to discovery run", error=str(e))
                await db.rollback()

    async def _finish_run(
        self,
        db: AsyncSession,
        run: Optional[DiscoveryRun],
        report: BatchReport,
    ) -> None:
        if run is None:
            return

        async with self._run_lock:
            run.status = report.status
            run.locations_processed = report.locations_processed
            run.locations_failed = report.locations_failed
            run.candidates_queued = report.candidates_queued
            run.budget_exhausted = report.budget_exhausted
            run.current_step = None
            run.completed_at = utcnow()
            if report.budget_exhausted:
                run.error_message = (
                    f"Budget of {self.budget_seconds:.0f}s exhausted; "
                    f"{report.locations_skipped} location(s) not started"
                )
            try:
                await db.commit()
            except Exception as e:
                logger.warning("Failed to complete discovery run", error=str(e))
                await db.rollback()


def _describe(location: Location) -> str:
    return ", ".join(part for part in (location.city, location.state) if part)
