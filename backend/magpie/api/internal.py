"""Internal endpoints called by the scheduler."""

import structlog
from fastapi import APIRouter, Depends

from magpie.api.deps import get_discovery_orchestrator, require_cron
from magpie.engines.discovery import DiscoveryOrchestrator

logger = structlog.get_logger()

router = APIRouter()


@router.get("/scholarships-discovery")
async def run_scholarships_discovery(
    _: None = Depends(require_cron),
    orchestrator: DiscoveryOrchestrator = Depends(get_discovery_orchestrator),
):
    """Run discovery for every distinct user location.

    Runs inside the request under the batch budget and returns the
    per-location results. Locations not started before the budget ran out
    are reported as skipped.
    """
    report = await orchestrator.run()
    return report.to_dict()
