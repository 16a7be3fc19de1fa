"""Contract with the external scholarship discovery service."""

from abc import ABC, abstractmethod
from typing import Any, Optional

from pydantic import BaseModel, ConfigDict, Field
from pydantic.alias_generators import to_camel

from magpie.engines.discovery.locations import Location


class CamelModel(BaseModel):
    """Model serialised with camelCase keys, accepting either spelling."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


class DiscoveryProfile(CamelModel):
    """Profile handed to the discovery service.

    Only city/state are needed to trigger discovery; the remaining
    attributes sharpen relevance when present.
    """

    city: Optional[str] = None
    state: Optional[str] = None
    gpa: Optional[float] = None
    graduation_year: Optional[int] = None
    ethnicity: Optional[list[str]] = None
    gender: Optional[str] = None
    first_generation: Optional[bool] = None
    agi_range: Optional[str] = None
    intended_major: Optional[str] = None
    athletics: Optional[list[str]] = None
    ec_categories: Optional[list[str]] = None

    @classmethod
    def for_location(cls, location: Location) -> "DiscoveryProfile":
        return cls(city=location.city, state=location.state)

    @property
    def has_location(self) -> bool:
        return bool(self.city or self.state)


class DiscoveredCandidate(CamelModel):
    """A single scholarship page found by the discovery service."""

    source_url: str
    raw_page_text: Optional[str] = None
    extracted_data: Optional[dict[str, Any]] = None
    extraction_model: Optional[str] = None
    extraction_confidence: Optional[float] = None
    needs_review: bool = False

    @property
    def status(self) -> str:
        return "needs_review" if self.needs_review else "pending"


class DiscoveryBatch(CamelModel):
    """Everything the discovery service returned for one profile."""

    candidates: list[DiscoveredCandidate] = Field(default_factory=list)
    queried: int = 0
    urls_discovered: int = 0
    errors: list[str] = Field(default_factory=list)


class DiscoveryInvoker(ABC):
    """Produces candidate scholarships for a profile.

    Implementations raise ``UpstreamUnavailable`` when the service cannot
    be reached or answers with something unusable. An empty batch is a
    valid answer.
    """

    @abstractmethod
    async def discover(self, profile: DiscoveryProfile) -> DiscoveryBatch:
        pass

    async def close(self) -> None:
        """Release any held resources."""
        pass

    async def __aenter__(self):
        return self

    async def __aexit__(self, exc_type, exc_val, exc_tb):
        await self.close()
