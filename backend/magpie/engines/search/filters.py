"""Translate search filters into SQL predicates over published scholarships."""

from dataclasses import dataclass
from datetime import date, timedelta
from typing import Literal, Optional
from uuid import UUID

from pydantic import BaseModel, ConfigDict, Field
from sqlalchemy import ColumnElement, and_, exists, false, or_, select

from magpie.db.models import Profile, Scholarship, ScholarshipRegion, User, UserScholarship

AMOUNT_MINIMUMS = {"1k": 1000, "5k": 5000, "10k": 10000}
DEADLINE_WINDOWS = {"month": 30, "quarter": 90}

LOW_COMPETITION_APPLICANTS = 100
HIGH_COMPETITION_APPLICANTS = 500


class SearchFilters(BaseModel):
    """User-facing search filters. Every field defaults to no constraint."""

    model_config = ConfigDict(populate_by_name=True, frozen=True)

    location: Literal["all", "local", "state", "national"] = "all"
    amount: Literal["any", "1k", "5k", "10k"] = "any"
    deadline: Literal["any", "month", "quarter"] = "any"
    competition: Literal["any", "low", "medium", "high"] = "any"
    requires_essay: Literal["any", "yes", "no"] = Field("any", alias="requiresEssay")


@dataclass(frozen=True)
class CallerProfile:
    """The searching user's location and eligibility attributes."""

    user_id: UUID
    city: Optional[str] = None
    state: Optional[str] = None
    gpa: Optional[float] = None
    graduation_year: Optional[int] = None
    gender: Optional[str] = None
    ethnicity: Optional[list[str]] = None
    first_generation: Optional[bool] = None
    agi_range: Optional[str] = None
    intended_major: Optional[str] = None

    @classmethod
    def from_models(cls, user: User, profile: Profile) -> "CallerProfile":
        return cls(
            user_id=user.id,
            city=profile.city,
            state=profile.state,
            gpa=profile.gpa,
            graduation_year=profile.graduation_year,
            gender=profile.gender,
            ethnicity=profile.ethnicity,
            first_generation=profile.first_generation,
            agi_range=profile.agi_range,
            intended_major=profile.intended_major,
        )

    def to_prompt_dict(self) -> dict:
        return {
            "city": self.city,
            "state": self.state,
            "gpa": self.gpa,
            "graduationYear": self.graduation_year,
            "gender": self.gender,
            "ethnicity": self.ethnicity,
            "firstGeneration": self.first_generation,
            "agiRange": self.agi_range,
            "intendedMajor": self.intended_major,
        }


def in_region(kind: str, value: str) -> ColumnElement[bool]:
    """The scholarship lists ``value`` among its regions of ``kind``."""
    return exists().where(
        ScholarshipRegion.scholarship_id == Scholarship.id,
        ScholarshipRegion.kind == kind,
        ScholarshipRegion.value_key == value.strip().lower(),
    )


def unrestricted(kind: str) -> ColumnElement[bool]:
    """The scholarship has no regions of ``kind``."""
    return ~exists().where(
        ScholarshipRegion.scholarship_id == Scholarship.id,
        ScholarshipRegion.kind == kind,
    )


def _region_eligible(kind: str, value: Optional[str]) -> ColumnElement[bool]:
    if value and value.strip():
        return or_(unrestricted(kind), in_region(kind, value))
    return unrestricted(kind)


def _within_bounds(lower, upper, value) -> ColumnElement[bool]:
    # Callers without the attribute only see scholarships that don't bound it
    if value is None:
        return and_(lower.is_(None), upper.is_(None))
    return and_(
        or_(lower.is_(None), lower <= value),
        or_(upper.is_(None), upper >= value),
    )


def base_eligibility_conditions(caller: CallerProfile, today: date) -> list[ColumnElement[bool]]:
    """Predicates applied to every search regardless of filters."""
    saved = select(UserScholarship.scholarship_id).where(UserScholarship.user_id == caller.user_id)
    return [
        Scholarship.is_active.is_(True),
        Scholarship.deadline >= today,
        _region_eligible("state", caller.state),
        _region_eligible("city", caller.city),
        _within_bounds(Scholarship.min_gpa, Scholarship.max_gpa, caller.gpa),
        _within_bounds(
            Scholarship.min_graduation_year,
            Scholarship.max_graduation_year,
            caller.graduation_year,
        ),
        Scholarship.id.not_in(saved),
    ]


def filter_conditions(
    filters: SearchFilters,
    caller: CallerProfile,
    today: date,
) -> list[ColumnElement[bool]]:
    """Predicates for the user-selected filters, ANDed with eligibility."""
    conditions: list[ColumnElement[bool]] = []

    if filters.location == "local":
        conditions.append(in_region("city", caller.city) if caller.city else false())
    elif filters.location == "state":
        conditions.append(in_region("state", caller.state) if caller.state else false())
    elif filters.location == "national":
        conditions.append(Scholarship.is_national.is_(True))

    if filters.amount in AMOUNT_MINIMUMS:
        conditions.append(Scholarship.amount >= AMOUNT_MINIMUMS[filters.amount])

    if filters.deadline in DEADLINE_WINDOWS:
        conditions.append(
            Scholarship.deadline <= today + timedelta(days=DEADLINE_WINDOWS[filters.deadline])
        )

    applicants = Scholarship.estimated_applicants
    if filters.competition == "low":
        conditions.append(
            or_(
                applicants < LOW_COMPETITION_APPLICANTS,
                Scholarship.competition_level == "local",
            )
        )
    elif filters.competition == "medium":
        conditions.append(
            and_(
                applicants >= LOW_COMPETITION_APPLICANTS,
                applicants <= HIGH_COMPETITION_APPLICANTS,
            )
        )
    elif filters.competition == "high":
        conditions.append(
            or_(
                applicants > HIGH_COMPETITION_APPLICANTS,
                Scholarship.competition_level == "national",
            )
        )

    if filters.requires_essay == "yes":
        conditions.append(Scholarship.requires_essay.is_(True))
    elif filters.requires_essay == "no":
        conditions.append(Scholarship.requires_essay.is_(False))

    return conditions


def build_conditions(
    filters: SearchFilters,
    caller: CallerProfile,
    today: date,
) -> list[ColumnElement[bool]]:
    return base_eligibility_conditions(caller, today) + filter_conditions(filters, caller, today)
