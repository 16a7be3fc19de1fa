"""Moderation queue for discovered scholarships.

Candidates enter as ``pending`` or ``needs_review`` and leave through an
admin decision. Decisions are last-write-wins: an approved or rejected
record may be decided again, and every decision rewrites the audit
columns (``reviewed_by``, ``reviewed_at``, ``reviewer_notes``).

Approving publishes the extracted data as a ``Scholarship`` in the same
transaction; rejecting a previously approved record hides its published
scholarship from search.
"""

from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Optional, Sequence
from uuid import UUID

import structlog
from sqlalchemy import select, update
from sqlalchemy.dialects import postgresql, sqlite
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from magpie.db.models import (
    PendingScholarship,
    Scholarship,
    ScholarshipRegion,
    normalize_source_url,
    utcnow,
)
from magpie.engines.moderation.publish import published_fields, region_pairs
from magpie.engines.moderation.states import AWAITING_DECISION, ReviewStatus
from magpie.errors import NotFound

if TYPE_CHECKING:
    from magpie.engines.discovery.base import DiscoveredCandidate

logger = structlog.get_logger()

DEFAULT_PAGE_SIZE = 50
MAX_PAGE_SIZE = 100

# INSERT ... ON CONFLICT DO NOTHING per dialect
UPSERT_INSERTS = {"postgresql": postgresql.insert, "sqlite": sqlite.insert}


@dataclass
class IngestSummary:
    """Result of queueing one discovery batch."""

    received: int = 0
    queued: int = 0
    needs_review: int = 0
    skipped_duplicates: int = 0
    queued_ids: list[UUID] = field(default_factory=list)

    def to_dict(self) -> dict:
        return {
            "received": self.received,
            "queued": self.queued,
            "needsReview": self.needs_review,
            "skippedDuplicates": self.skipped_duplicates,
        }


@dataclass
class ReviewOutcome:
    """Result of an approve/reject decision."""

    pending_id: UUID
    status: ReviewStatus
    scholarship_id: Optional[UUID] = None


class ModerationStore:
    """Persistence and state transitions for pending scholarships."""

    def __init__(self, db: AsyncSession):
        self.db = db

    async def list_items(
        self,
        statuses: Sequence[ReviewStatus] = AWAITING_DECISION,
        limit: int = DEFAULT_PAGE_SIZE,
    ) -> list[PendingScholarship]:
        """List records in any of ``statuses``, newest first."""
        limit = max(1, min(limit, MAX_PAGE_SIZE))
        result = await self.db.execute(
            select(PendingScholarship)
            .where(PendingScholarship.status.in_([s.value for s in statuses]))
            .order_by(PendingScholarship.created_at.desc(), PendingScholarship.id.desc())
            .limit(limit)
        )
        return list(result.scalars().all())

    async def get(self, pending_id: UUID) -> PendingScholarship:
        result = await self.db.execute(
            select(PendingScholarship).where(PendingScholarship.id == pending_id)
        )
        pending = result.scalar_one_or_none()
        if not pending:
            raise NotFound("Pending record not found")
        return pending

    async def approve(
        self,
        pending_id: UUID,
        actor: str,
        notes: Optional[str] = None,
    ) -> ReviewOutcome:
        """Approve a record and publish its scholarship."""
        pending = await self.get(pending_id)
        fields = published_fields(pending.extracted_data, pending.source_url)
        regions = region_pairs(pending.extracted_data or {})
        now = utcnow()

        try:
            scholarship = await self._publish(pending, fields, regions, now)
            self._record_decision(pending, ReviewStatus.APPROVED, actor, notes, now)
            pending.scholarship_id = scholarship.id
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "Pending scholarship approved",
            pending_id=str(pending_id),
            scholarship_id=str(scholarship.id),
            reviewer=actor,
        )
        return ReviewOutcome(pending_id, ReviewStatus.APPROVED, scholarship.id)

    async def reject(
        self,
        pending_id: UUID,
        actor: str,
        notes: Optional[str] = None,
    ) -> ReviewOutcome:
        """Reject a record, hiding any scholarship an earlier approval published."""
        pending = await self.get(pending_id)
        now = utcnow()

        try:
            self._record_decision(pending, ReviewStatus.REJECTED, actor, notes, now)
            if pending.scholarship_id:
                await self.db.execute(
                    update(Scholarship)
                    .where(Scholarship.id == pending.scholarship_id)
                    .values(is_active=False, updated_at=now)
                )
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info("Pending scholarship rejected", pending_id=str(pending_id), reviewer=actor)
        return ReviewOutcome(pending_id, ReviewStatus.REJECTED, pending.scholarship_id)

    async def enqueue(self, candidates: Sequence["DiscoveredCandidate"]) -> IngestSummary:
        """Queue discovery candidates in a single transaction.

        Candidates whose source page is already published, already queued,
        or repeated within ``candidates`` are skipped. The unique
        ``source_key`` decides between concurrent batches, so a page found
        by two locations at once is queued only once.
        """
        summary = IngestSummary(received=len(candidates))
        if not candidates:
            return summary

        by_key: dict[str, "DiscoveredCandidate"] = {}
        for candidate in candidates:
            key = normalize_source_url(candidate.source_url)
            if key in by_key:
                summary.skipped_duplicates += 1
            else:
                by_key[key] = candidate

        try:
            published = await self.db.execute(
                select(Scholarship.source_key).where(Scholarship.source_key.in_(list(by_key)))
            )
            for key in set(published.scalars().all()):
                del by_key[key]
                summary.skipped_duplicates += 1

            insert = self._insert_ignoring_duplicates()
            for key, candidate in by_key.items():
                result = await self.db.execute(
                    insert(PendingScholarship)
                    .values(
                        source_url=candidate.source_url,
                        source_key=key,
                        raw_page_text=candidate.raw_page_text,
                        extracted_data=candidate.extracted_data,
                        extraction_model=candidate.extraction_model,
                        extraction_confidence=candidate.extraction_confidence,
                        status=candidate.status,
                    )
                    .on_conflict_do_nothing(index_elements=["source_key"])
                    .returning(PendingScholarship.id)
                )
                pending_id = result.scalar_one_or_none()
                if pending_id is None:
                    summary.skipped_duplicates += 1
                    continue
                summary.queued += 1
                summary.queued_ids.append(pending_id)
                if candidate.needs_review:
                    summary.needs_review += 1

            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        return summary

    def _insert_ignoring_duplicates(self):
        dialect = self.db.get_bind().dialect.name
        if dialect not in UPSERT_INSERTS:
            raise RuntimeError(f"Unsupported database dialect: {dialect}")
        return UPSERT_INSERTS[dialect]

    async def _publish(
        self,
        pending: PendingScholarship,
        fields: dict,
        regions: list[tuple[str, str]],
        now,
    ) -> Scholarship:
        scholarship = None
        if pending.scholarship_id:
            result = await self.db.execute(
                select(Scholarship)
                .options(selectinload(Scholarship.regions))
                .where(Scholarship.id == pending.scholarship_id)
            )
            scholarship = result.scalar_one_or_none()

        if scholarship is None:
            scholarship = Scholarship(source="pipeline", regions=[])
            self.db.add(scholarship)

        for name, value in fields.items():
            setattr(scholarship, name, value)
        scholarship.is_active = True
        scholarship.last_verified = now
        scholarship.regions = [
            ScholarshipRegion(kind=kind, value=value, value_key=value.lower())
            for kind, value in regions
        ]

        await self.db.flush()
        return scholarship

    @staticmethod
    def _record_decision(
        pending: PendingScholarship,
        status: ReviewStatus,
        actor: str,
        notes: Optional[str],
        now,
    ) -> None:
        pending.status = status.value
        pending.reviewer_notes = notes
        pending.reviewed_by = actor
        pending.reviewed_at = now
