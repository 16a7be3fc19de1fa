"""Scholarship search and single-profile discovery endpoints."""

from typing import Literal, Optional

import structlog
from fastapi import APIRouter, Depends, Query

from magpie.api.deps import get_discovery_orchestrator, get_identity, get_search_engine, require_pipeline
from magpie.auth import Identity
from magpie.engines.discovery import DiscoveryOrchestrator, DiscoveryProfile
from magpie.engines.search import DEFAULT_LIMIT, MAX_LIMIT, SearchEngine, SearchFilters, SearchResponse
from magpie.errors import UpstreamUnavailable, ValidationFailed

logger = structlog.get_logger()

router = APIRouter()


@router.get("/search", response_model=SearchResponse)
async def search_scholarships(
    location: Literal["all", "local", "state", "national"] = Query("all"),
    amount: Literal["any", "1k", "5k", "10k"] = Query("any"),
    deadline: Literal["any", "month", "quarter"] = Query("any"),
    competition: Literal["any", "low", "medium", "high"] = Query("any"),
    requires_essay: Literal["any", "yes", "no"] = Query("any", alias="requiresEssay"),
    cursor: Optional[str] = Query(None, max_length=512),
    limit: int = Query(DEFAULT_LIMIT, ge=1, le=MAX_LIMIT),
    identity: Identity = Depends(get_identity),
    engine: SearchEngine = Depends(get_search_engine),
):
    """Search published scholarships the caller is eligible for.

    Results are ordered by deadline, then optionally reordered by the
    ranking service within the page (``aiRanked``). Pass ``nextCursor``
    back as ``cursor`` to get the next page.
    """
    filters = SearchFilters(
        location=location,
        amount=amount,
        deadline=deadline,
        competition=competition,
        requires_essay=requires_essay,
    )
    return await engine.search(identity.subject, filters, cursor=cursor, limit=limit)


@router.post("/discover")
async def discover_for_profile(
    profile: DiscoveryProfile,
    _: None = Depends(require_pipeline),
    orchestrator: DiscoveryOrchestrator = Depends(get_discovery_orchestrator),
):
    """Run discovery for one full profile and queue the candidates.

    Trusted automation only.
    """
    if not profile.has_location:
        raise ValidationFailed(
            "City or state is required to run discovery.",
            issues=[{"path": ["city"], "message": "City or state is required"}],
        )

    outcome = await orchestrator.run_for_profile(profile)
    if not outcome.ok:
        raise UpstreamUnavailable(outcome.error)

    return outcome.to_result()
