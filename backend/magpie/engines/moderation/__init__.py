"""Moderation queue for discovered scholarships."""

from magpie.engines.moderation.states import (
    AWAITING_DECISION,
    ReviewStatus,
    parse_status_filter,
)
from magpie.engines.moderation.store import IngestSummary, ModerationStore, ReviewOutcome

__all__ = [
    "AWAITING_DECISION",
    "ReviewStatus",
    "parse_status_filter",
    "IngestSummary",
    "ModerationStore",
    "ReviewOutcome",
]
