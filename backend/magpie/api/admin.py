"""Admin API endpoints: the moderation queue and discovery run history."""

from datetime import datetime
from typing import Any, Optional
from uuid import UUID

import structlog
from fastapi import APIRouter, Depends, Path, Query
from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import select
from sqlalchemy.ext.asyncio import AsyncSession

from magpie.api.deps import get_moderation_store, require_admin, require_moderation_reader
from magpie.auth import Caller
from magpie.db import DiscoveryRun, get_db
from magpie.engines.moderation import ModerationStore, parse_status_filter

logger = structlog.get_logger()

router = APIRouter()


# ============================================
# MODERATION QUEUE
# ============================================


class PendingScholarshipResponse(BaseModel):
    """A moderation record."""

    id: UUID
    source_url: str
    raw_page_text: Optional[str] = None
    extracted_data: Optional[dict[str, Any]] = None
    extraction_model: Optional[str] = None
    extraction_confidence: Optional[float] = None
    status: str
    reviewer_notes: Optional[str] = None
    reviewed_by: Optional[str] = None
    reviewed_at: Optional[datetime] = None
    scholarship_id: Optional[UUID] = None
    created_at: datetime

    model_config = ConfigDict(from_attributes=True)


class PendingListResponse(BaseModel):
    items: list[PendingScholarshipResponse]


class ReviewDecision(BaseModel):
    """Optional body of an approve/reject request."""

    model_config = ConfigDict(populate_by_name=True)

    reviewer_notes: Optional[str] = Field(None, alias="reviewerNotes", max_length=2000)


class DecisionResponse(BaseModel):
    model_config = ConfigDict(populate_by_name=True)

    success: bool = True
    status: str
    scholarship_id: Optional[UUID] = Field(None, alias="scholarshipId")


@router.get("/pending", response_model=PendingListResponse)
async def list_pending(
    status: Optional[str] = Query(None, description="Comma-separated statuses"),
    limit: int = Query(50, ge=1, le=100),
    caller: Caller = Depends(require_moderation_reader),
    store: ModerationStore = Depends(get_moderation_store),
):
    """List moderation records, newest first.

    Defaults to records awaiting a decision (pending, needs_review).
    Readable by admins and by trusted automation.
    """
    statuses = parse_status_filter(status)
    items = await store.list_items(statuses, limit)
    logger.debug(
        "Listed pending scholarships",
        actor=caller.actor,
        statuses=[s.value for s in statuses],
        count=len(items),
    )
    return PendingListResponse(
        items=[PendingScholarshipResponse.model_validate(item) for item in items]
    )


@router.post(
    "/pending/{pending_id}/approve",
    response_model=DecisionResponse,
    response_model_exclude_none=True,
)
async def approve_pending(
    pending_id: UUID = Path(...),
    decision: Optional[ReviewDecision] = None,
    caller: Caller = Depends(require_admin),
    store: ModerationStore = Depends(get_moderation_store),
):
    """Approve a record and publish it to search."""
    outcome = await store.approve(
        pending_id,
        actor=caller.actor,
        notes=decision.reviewer_notes if decision else None,
    )
    return DecisionResponse(status=outcome.status.value, scholarship_id=outcome.scholarship_id)


@router.post(
    "/pending/{pending_id}/reject",
    response_model=DecisionResponse,
    response_model_exclude_none=True,
)
async def reject_pending(
    pending_id: UUID = Path(...),
    decision: Optional[ReviewDecision] = None,
    caller: Caller = Depends(require_admin),
    store: ModerationStore = Depends(get_moderation_store),
):
    """Reject a record, withdrawing it from search if it was published."""
    outcome = await store.reject(
        pending_id,
        actor=caller.actor,
        notes=decision.reviewer_notes if decision else None,
    )
    return DecisionResponse(status=outcome.status.value)


# ============================================
# DISCOVERY RUNS
# ============================================


class DiscoveryRunResponse(BaseModel):
    """Discovery run with its progress log."""

    id: UUID
    trigger: str
    status: str
    locations_total: int
    locations_processed: int
    locations_failed: int
    candidates_queued: int
    budget_exhausted: bool
    error_message: Optional[str] = None
    current_step: Optional[str] = None
    logs: Optional[list] = None
    started_at: datetime
    completed_at: Optional[datetime] = None

    model_config = ConfigDict(from_attributes=True)


@router.get("/discovery/runs")
async def get_discovery_runs(
    status: Optional[str] = Query(None),
    limit: int = Query(20, ge=1, le=100),
    caller: Caller = Depends(require_admin),
    db: AsyncSession = Depends(get_db),
):
    """Get recent discovery runs, newest first."""
    query = select(DiscoveryRun).order_by(DiscoveryRun.started_at.desc()).limit(limit)
    if status:
        query = query.where(DiscoveryRun.status == status)

    result = await db.execute(query)
    runs = result.scalars().all()

    return {
        "runs": [DiscoveryRunResponse.model_validate(run) for run in runs],
    }
