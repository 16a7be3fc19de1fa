"""Convert extracted scholarship data into published scholarship fields."""

import math
from datetime import date
from typing import Any, Optional

from magpie.errors import ValidationFailed

COMPETITION_LEVELS = {"local", "regional", "state", "national"}


def as_string(value: Any) -> Optional[str]:
    if isinstance(value, str) and value.strip():
        return value.strip()
    return None


def as_number(value: Any) -> Optional[float]:
    if isinstance(value, bool) or not isinstance(value, (int, float)):
        return None
    return value if math.isfinite(value) else None


def as_int(value: Any) -> Optional[int]:
    number = as_number(value)
    return int(number) if number is not None else None


def as_string_list(value: Any) -> Optional[list[str]]:
    if not isinstance(value, list):
        return None
    return [item for item in value if isinstance(item, str)]


def as_bool(value: Any) -> bool:
    return value is True


def parse_deadline(value: Optional[str]) -> Optional[date]:
    if not value:
        return None
    try:
        return date.fromisoformat(value[:10])
    except ValueError:
        return None


def published_fields(
    extracted: Optional[dict[str, Any]],
    source_url: str,
) -> dict[str, Any]:
    """Map extracted data (camelCase keys) onto Scholarship columns.

    Raises ValidationFailed when the record cannot be published: no
    extracted data, or a missing name, deadline or application URL.
    """
    if not extracted:
        raise ValidationFailed("No extracted data to approve")

    name = as_string(extracted.get("name"))
    deadline = parse_deadline(as_string(extracted.get("deadline")))
    application_url = as_string(extracted.get("applicationUrl")) or as_string(source_url)

    missing = [
        field
        for field, value in (
            ("name", name),
            ("deadline", deadline),
            ("applicationUrl", application_url),
        )
        if value is None
    ]
    if missing:
        raise ValidationFailed(
            "Missing required fields (name, deadline, applicationUrl).",
            issues=[
                {"path": ["extractedData", field], "message": "Required"}
                for field in missing
            ],
        )

    competition_level = as_string(extracted.get("competitionLevel"))
    if competition_level not in COMPETITION_LEVELS:
        competition_level = None

    return {
        "name": name,
        "organization": as_string(extracted.get("organization")),
        "amount": as_int(extracted.get("amount")),
        "deadline": deadline,
        "application_url": application_url,
        "short_description": as_string(extracted.get("shortDescription")),
        "full_description": as_string(extracted.get("fullDescription")),
        "min_gpa": as_number(extracted.get("minGpa")),
        "max_gpa": as_number(extracted.get("maxGpa")),
        "min_graduation_year": None,
        "max_graduation_year": None,
        "required_demographics": as_string_list(extracted.get("requiredDemographics")),
        "is_national": as_bool(extracted.get("isNational")),
        "requires_essay": as_bool(extracted.get("requiresEssay")),
        "essay_prompts": as_string_list(extracted.get("essayPrompts")),
        "essay_word_count": as_int(extracted.get("essayWordCount")),
        "requires_recommendation": as_bool(extracted.get("requiresRecommendation")),
        "requires_transcript": as_bool(extracted.get("requiresTranscript")),
        "requires_resume": as_bool(extracted.get("requiresResume")),
        "competition_level": competition_level,
        "estimated_applicants": as_int(extracted.get("estimatedApplicants")),
        "source_url": source_url,
    }


def region_pairs(extracted: dict[str, Any]) -> list[tuple[str, str]]:
    """(kind, value) pairs for the states and cities a scholarship targets."""
    pairs: list[tuple[str, str]] = []
    seen: set[tuple[str, str]] = set()
    for kind, field in (("state", "states"), ("city", "cities")):
        for value in as_string_list(extracted.get(field)) or []:
            value = value.strip()
            key = (kind, value.lower())
            if value and key not in seen:
                seen.add(key)
                pairs.append((kind, value))
    return pairs
