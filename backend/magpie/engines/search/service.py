"""Search Engine - filtered, cursor-paginated, optionally ranked search.

Two stages per request:
1. Filter and sort: eligibility + filters, ordered by (deadline, id) and
   paginated with a keyset cursor. This result is correct on its own.
2. Rank: an optional ranker reorders the page under its own timeout. Any
   ranker failure keeps the stage 1 order and reports ``aiRanked=false``.
"""

import asyncio
from datetime import date
from typing import Callable, Optional

import structlog
from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel
from sqlalchemy import and_, func, or_, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession
from sqlalchemy.orm import selectinload

from magpie.config import get_settings
from magpie.db.models import Profile, Scholarship, User
from magpie.engines.search.cursor import Cursor, CursorCodec
from magpie.engines.search.filters import CallerProfile, SearchFilters, build_conditions
from magpie.engines.search.ranker import Ranker, apply_ranking
from magpie.errors import ScholarshipSearchError

settings = get_settings()
logger = structlog.get_logger()

DEFAULT_LIMIT = 20
MAX_LIMIT = 20


class ResponseModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class ScholarshipResult(ResponseModel):
    """A published scholarship as seen by one caller on one day."""

    id: str
    name: str
    organization: Optional[str] = None
    amount: Optional[int] = None
    deadline: date
    application_url: str
    short_description: Optional[str] = None
    full_description: Optional[str] = None
    competition_level: Optional[str] = None
    estimated_applicants: Optional[int] = None
    requires_essay: bool = False
    requires_recommendation: bool = False
    requires_transcript: bool = False
    requires_resume: bool = False
    essay_word_count: Optional[int] = None
    essay_prompts: Optional[list[str]] = None
    is_national: bool = False
    is_local: bool = False
    days_until_deadline: int
    match_reason: Optional[str] = None
    min_gpa: Optional[float] = None

    @classmethod
    def from_scholarship(
        cls,
        scholarship: Scholarship,
        caller: CallerProfile,
        today: date,
        match_reason: Optional[str] = None,
    ) -> "ScholarshipResult":
        return cls(
            id=str(scholarship.id),
            name=scholarship.name,
            organization=scholarship.organization,
            amount=scholarship.amount,
            deadline=scholarship.deadline,
            application_url=scholarship.application_url,
            short_description=scholarship.short_description,
            full_description=scholarship.full_description,
            competition_level=scholarship.competition_level,
            estimated_applicants=scholarship.estimated_applicants,
            requires_essay=bool(scholarship.requires_essay),
            requires_recommendation=bool(scholarship.requires_recommendation),
            requires_transcript=bool(scholarship.requires_transcript),
            requires_resume=bool(scholarship.requires_resume),
            essay_word_count=scholarship.essay_word_count,
            essay_prompts=scholarship.essay_prompts,
            is_national=bool(scholarship.is_national),
            is_local=scholarship.has_region("city", caller.city),
            # Derived per request so it never goes stale across a day boundary
            days_until_deadline=(scholarship.deadline - today).days,
            match_reason=match_reason,
            min_gpa=scholarship.min_gpa,
        )


class SearchResponse(ResponseModel):
    scholarships: list[ScholarshipResult] = []
    next_cursor: Optional[str] = None
    total_count: int = 0
    ai_ranked: bool = False


class SearchEngine:
    """Searches published scholarships for an authenticated caller."""

    def __init__(
        self,
        db: AsyncSession,
        cursor_codec: CursorCodec,
        ranker: Optional[Ranker] = None,
        ranking_timeout_seconds: Optional[float] = None,
        search_timeout_seconds: Optional[float] = None,
        today: Callable[[], date] = date.today,
    ):
        self.db = db
        self.cursor_codec = cursor_codec
        self.ranker = ranker
        self.ranking_timeout_seconds = (
            ranking_timeout_seconds
            if ranking_timeout_seconds is not None
            else settings.ranking_timeout_seconds
        )
        self.search_timeout_seconds = (
            search_timeout_seconds
            if search_timeout_seconds is not None
            else settings.search_timeout_seconds
        )
        self.today = today

    async def search(
        self,
        identity: str,
        filters: Optional[SearchFilters] = None,
        cursor: Optional[str] = None,
        limit: int = DEFAULT_LIMIT,
    ) -> SearchResponse:
        """Return one page of results for ``identity``.

        Raises:
            ScholarshipSearchError: 400 for a bad limit or cursor, 500 when
                the database fails, 504 when the request runs out of time
        """
        if not 1 <= limit <= MAX_LIMIT:
            raise ScholarshipSearchError(400, f"limit must be between 1 and {MAX_LIMIT}")
        position = self.cursor_codec.decode(cursor) if cursor else None

        try:
            return await asyncio.wait_for(
                self._search(identity, filters or SearchFilters(), position, limit),
                timeout=self.search_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning("Scholarship search timed out", timeout_seconds=self.search_timeout_seconds)
            raise ScholarshipSearchError(504, "Search timed out") from None
        except SQLAlchemyError as e:
            logger.error("Scholarship search failed", error=str(e))
            raise ScholarshipSearchError(500, "Failed to load scholarships") from e

    async def _search(
        self,
        identity: str,
        filters: SearchFilters,
        position: Optional[Cursor],
        limit: int,
    ) -> SearchResponse:
        caller = await self._load_caller(identity)
        if caller is None:
            logger.info("Search without a profile, returning empty results")
            return SearchResponse()

        today = self.today()
        conditions = build_conditions(filters, caller, today)

        total_count = await self.db.scalar(
            select(func.count()).select_from(Scholarship).where(*conditions)
        )

        page_query = (
            select(Scholarship)
            .options(selectinload(Scholarship.regions))
            .where(*conditions)
            .order_by(Scholarship.deadline.asc(), Scholarship.id.asc())
            .limit(limit + 1)
        )
        if position is not None:
            page_query = page_query.where(
                or_(
                    Scholarship.deadline > position.deadline,
                    and_(
                        Scholarship.deadline == position.deadline,
                        Scholarship.id > position.id,
                    ),
                )
            )

        result = await self.db.execute(page_query)
        rows = list(result.scalars().all())
        page, has_more = rows[:limit], len(rows) > limit

        # Cursor follows the deterministic order, whatever the ranker does
        next_cursor = None
        if has_more:
            last = page[-1]
            next_cursor = self.cursor_codec.encode(Cursor(deadline=last.deadline, id=last.id))

        ranked, ai_ranked = await self._rank(caller, page)

        logger.info(
            "Scholarship search complete",
            results=len(ranked),
            total=total_count,
            ai_ranked=ai_ranked,
            has_more=has_more,
        )
        return SearchResponse(
            scholarships=[
                ScholarshipResult.from_scholarship(scholarship, caller, today, reason)
                for scholarship, reason in ranked
            ],
            next_cursor=next_cursor,
            total_count=total_count or 0,
            ai_ranked=ai_ranked,
        )

    async def _load_caller(self, identity: str) -> Optional[CallerProfile]:
        result = await self.db.execute(
            select(User, Profile)
            .outerjoin(Profile, Profile.user_id == User.id)
            .where(User.auth_id == identity)
            .limit(1)
        )
        row = result.first()
        if row is None or row[1] is None:
            return None
        return CallerProfile.from_models(row[0], row[1])

    async def _rank(
        self,
        caller: CallerProfile,
        page: list[Scholarship],
    ) -> tuple[list[tuple[Scholarship, Optional[str]]], bool]:
        """Reorder the page with the ranker, or keep it as is."""
        unranked = [(scholarship, None) for scholarship in page]
        if not page or self.ranker is None or not self.ranker.is_available:
            return unranked, False

        try:
            ranking = await asyncio.wait_for(
                self.ranker.rank(caller, page),
                timeout=self.ranking_timeout_seconds,
            )
        except asyncio.TimeoutError:
            logger.warning(
                "Ranking timed out, using deterministic order",
                timeout_seconds=self.ranking_timeout_seconds,
            )
            return unranked, False
        except Exception as e:
            logger.warning("Ranking failed, using deterministic order", error=str(e))
            return unranked, False

        return apply_ranking(page, ranking), True
