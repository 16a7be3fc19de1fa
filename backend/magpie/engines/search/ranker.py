"""Best-effort relevance ranking of a search page."""

import json
from abc import ABC, abstractmethod
from typing import Optional, Sequence

import instructor
import structlog
from openai import AsyncOpenAI
from pydantic import BaseModel, Field

from magpie.config import get_settings
from magpie.db.models import Scholarship
from magpie.engines.search.filters import CallerProfile

settings = get_settings()
logger = structlog.get_logger()

SYSTEM_PROMPT = """You are a scholarship matching assistant. Rank the provided scholarships by relevance to the student profile, most relevant first.

Ranking criteria (in order of importance):
1. Geographic proximity: local (city match) > state match > national
2. GPA fit: closer to minGpa is a better match
3. Demographic alignment: requiredDemographics overlap with the profile
4. Deadline urgency: sooner deadlines rank higher among similar matches
5. Competition level: lower competition ranks higher among equal matches

For each scholarship return its id exactly as given and one short sentence telling the student why it fits them."""


class RankedScholarship(BaseModel):
    """One ranked scholarship with the reason it fits the student."""

    id: str = Field(description="Scholarship id, copied exactly from the input")
    reason: str = Field(description="One sentence explaining the match")


class RankedScholarships(BaseModel):
    rankings: list[RankedScholarship] = Field(default_factory=list)


class Ranker(ABC):
    """Reorders a page of scholarships for a caller.

    Implementations may raise anything; the search engine treats every
    failure as "not ranked" and keeps the deterministic order.
    """

    @property
    def is_available(self) -> bool:
        return True

    @abstractmethod
    async def rank(
        self,
        caller: CallerProfile,
        scholarships: Sequence[Scholarship],
    ) -> list[RankedScholarship]:
        pass


class LLMRanker(Ranker):
    """Ranker backed by an OpenAI model with structured output."""

    def __init__(self, api_key: Optional[str] = None, model: Optional[str] = None):
        self.api_key = api_key if api_key is not None else settings.openai_api_key
        self.model = model or settings.openai_model
        self._client = None

    @property
    def client(self):
        """Lazy-load the OpenAI client only when needed."""
        if self._client is None:
            self._client = instructor.from_openai(AsyncOpenAI(api_key=self.api_key))
        return self._client

    @property
    def is_available(self) -> bool:
        """Check if ranking is available (API key configured)."""
        return bool(self.api_key and self.api_key not in ("", "sk-placeholder"))

    async def rank(
        self,
        caller: CallerProfile,
        scholarships: Sequence[Scholarship],
    ) -> list[RankedScholarship]:
        payload = [_scholarship_payload(scholarship) for scholarship in scholarships]

        logger.info("Running LLM ranking", candidates=len(payload))

        result = await self.client.chat.completions.create(
            model=self.model,
            response_model=RankedScholarships,
            temperature=0,
            max_retries=0,
            messages=[
                {"role": "system", "content": SYSTEM_PROMPT},
                {
                    "role": "user",
                    "content": (
                        f"STUDENT PROFILE:\n{json.dumps(caller.to_prompt_dict())}\n\n"
                        f"SCHOLARSHIPS:\n{json.dumps(payload)}"
                    ),
                },
            ],
            max_tokens=2000,
        )
        return result.rankings


def _scholarship_payload(scholarship: Scholarship) -> dict:
    return {
        "id": str(scholarship.id),
        "name": scholarship.name,
        "amount": scholarship.amount,
        "deadline": scholarship.deadline.isoformat(),
        "competitionLevel": scholarship.competition_level,
        "estimatedApplicants": scholarship.estimated_applicants,
        "isNational": scholarship.is_national,
        "states": scholarship.region_values("state") or None,
        "cities": scholarship.region_values("city") or None,
        "requiredDemographics": scholarship.required_demographics,
        "minGpa": scholarship.min_gpa,
    }


def apply_ranking(
    page: Sequence[Scholarship],
    ranking: Sequence[RankedScholarship],
) -> list[tuple[Scholarship, Optional[str]]]:
    """Reorder ``page`` by ``ranking``.

    Unknown and repeated ids are ignored. Page items the ranking omits
    follow in their original order without a reason.
    """
    by_id = {str(scholarship.id): scholarship for scholarship in page}
    ordered: list[tuple[Scholarship, Optional[str]]] = []
    seen: set[str] = set()

    for item in ranking:
        key = item.id.strip().lower()
        if key in by_id and key not in seen:
            seen.add(key)
            ordered.append((by_id[key], item.reason.strip() or None))

    ordered.extend(
        (scholarship, None) for scholarship in page if str(scholarship.id) not in seen
    )
    return ordered
