"""Review states of discovered scholarships."""

from enum import Enum
from typing import Optional

from magpie.errors import ValidationFailed


class ReviewStatus(str, Enum):
    PENDING = "pending"
    NEEDS_REVIEW = "needs_review"
    APPROVED = "approved"
    REJECTED = "rejected"


# Both buckets mean "awaiting a decision"
AWAITING_DECISION = (ReviewStatus.PENDING, ReviewStatus.NEEDS_REVIEW)


def parse_status_filter(raw: Optional[str]) -> list[ReviewStatus]:
    """Parse a comma-separated status list.

    Blank input (or only separators) falls back to the awaiting-decision
    buckets. Unknown names fail validation.
    """
    names = [value.strip() for value in (raw or "").split(",") if value.strip()]
    if not names:
        return list(AWAITING_DECISION)

    statuses: list[ReviewStatus] = []
    issues = []
    for name in names:
        try:
            status = ReviewStatus(name)
        except ValueError:
            issues.append({
                "path": ["status"],
                "message": f"Unknown status '{name}'",
            })
            continue
        if status not in statuses:
            statuses.append(status)

    if issues:
        raise ValidationFailed(issues=issues)
    return statuses
