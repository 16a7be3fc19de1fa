"""Search Engine - ranked retrieval of published scholarships.

This module provides:
- SearchFilters: The user-selectable filter set
- CursorCodec: Signed keyset pagination cursors
- Ranker / LLMRanker: Optional relevance ranking of a page
- SearchEngine: Filter, paginate, then optionally rank
"""

from magpie.engines.search.cursor import Cursor, CursorCodec
from magpie.engines.search.filters import CallerProfile, SearchFilters, build_conditions
from magpie.engines.search.ranker import (
    LLMRanker,
    RankedScholarship,
    RankedScholarships,
    Ranker,
    apply_ranking,
)
from magpie.engines.search.service import (
    DEFAULT_LIMIT,
    MAX_LIMIT,
    ScholarshipResult,
    SearchEngine,
    SearchResponse,
)

__all__ = [
    "Cursor",
    "CursorCodec",
    "CallerProfile",
    "SearchFilters",
    "build_conditions",
    "LLMRanker",
    "RankedScholarship",
    "RankedScholarships",
    "Ranker",
    "apply_ranking",
    "DEFAULT_LIMIT",
    "MAX_LIMIT",
    "ScholarshipResult",
    "SearchEngine",
    "SearchResponse",
]
