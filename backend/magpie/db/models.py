"""SQLAlchemy database models."""

from datetime import date, datetime, timezone
from typing import Any, Optional
from urllib.parse import urlparse
from uuid import UUID, uuid4

from sqlalchemy import (
    JSON,
    Boolean,
    Date,
    DateTime,
    Float,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    UniqueConstraint,
    Uuid,
    func,
)
from sqlalchemy.dialects.postgresql import JSONB
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column, relationship, validates

# JSONB on PostgreSQL, plain JSON elsewhere (SQLite in tests)
JSONType = JSON().with_variant(JSONB(), "postgresql")


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def normalize_source_url(url: str) -> str:
    """Identity of a source page: lowercased host + path, no trailing slash."""
    try:
        parsed = urlparse(url.strip())
    except ValueError:
        return url.strip().lower()
    if not parsed.netloc:
        return url.strip().lower().rstrip("/")
    return f"{parsed.hostname or ''}{parsed.path}".lower().rstrip("/")


class Base(DeclarativeBase):
    """Base class for all models."""

    pass


class User(Base):
    """Account known to the identity provider."""

    __tablename__ = "users"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    auth_id: Mapped[str] = mapped_column(
        String(255), unique=True, nullable=False
    )  # subject claim from the identity provider
    email: Mapped[Optional[str]] = mapped_column(String(255))
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Relationships
    profile: Mapped[Optional["Profile"]] = relationship(back_populates="user", uselist=False)
    saved_scholarships: Mapped[list["UserScholarship"]] = relationship(back_populates="user")


class Profile(Base):
    """Student profile used for discovery and eligibility."""

    __tablename__ = "profiles"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), unique=True, nullable=False
    )

    # Location (drives discovery)
    city: Mapped[Optional[str]] = mapped_column(Text)
    state: Mapped[Optional[str]] = mapped_column(Text)

    # Eligibility attributes
    gpa: Mapped[Optional[float]] = mapped_column(Float)
    graduation_year: Mapped[Optional[int]] = mapped_column(Integer)
    gender: Mapped[Optional[str]] = mapped_column(String(50))
    ethnicity: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    first_generation: Mapped[Optional[bool]] = mapped_column(Boolean)
    agi_range: Mapped[Optional[str]] = mapped_column(String(50))  # under_30k, 30k_60k, ...
    intended_major: Mapped[Optional[str]] = mapped_column(Text)
    athletics: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    ec_categories: Mapped[Optional[list[str]]] = mapped_column(JSONType)

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="profile")

    __table_args__ = (Index("idx_profiles_location", "city", "state"),)


class Scholarship(Base):
    """Published scholarship visible to search."""

    __tablename__ = "scholarships"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    name: Mapped[str] = mapped_column(Text, nullable=False)
    organization: Mapped[Optional[str]] = mapped_column(Text)
    amount: Mapped[Optional[int]] = mapped_column(Integer)
    deadline: Mapped[date] = mapped_column(Date, nullable=False)
    application_url: Mapped[str] = mapped_column(Text, nullable=False)
    short_description: Mapped[Optional[str]] = mapped_column(Text)
    full_description: Mapped[Optional[str]] = mapped_column(Text)

    # Eligibility bounds
    min_gpa: Mapped[Optional[float]] = mapped_column(Float)
    max_gpa: Mapped[Optional[float]] = mapped_column(Float)
    min_graduation_year: Mapped[Optional[int]] = mapped_column(Integer)
    max_graduation_year: Mapped[Optional[int]] = mapped_column(Integer)
    required_demographics: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    is_national: Mapped[bool] = mapped_column(Boolean, default=False)

    # Requirements
    requires_essay: Mapped[bool] = mapped_column(Boolean, default=False)
    essay_prompts: Mapped[Optional[list[str]]] = mapped_column(JSONType)
    essay_word_count: Mapped[Optional[int]] = mapped_column(Integer)
    requires_recommendation: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_transcript: Mapped[bool] = mapped_column(Boolean, default=False)
    requires_resume: Mapped[bool] = mapped_column(Boolean, default=False)

    # Competition
    competition_level: Mapped[Optional[str]] = mapped_column(
        String(20)
    )  # local, regional, state, national
    estimated_applicants: Mapped[Optional[int]] = mapped_column(Integer)

    # Provenance
    source: Mapped[Optional[str]] = mapped_column(String(50))  # pipeline, manual
    source_url: Mapped[Optional[str]] = mapped_column(Text)
    source_key: Mapped[Optional[str]] = mapped_column(Text, index=True)
    last_verified: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
    is_active: Mapped[bool] = mapped_column(Boolean, default=True)
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), onupdate=utcnow
    )

    # Relationships
    regions: Mapped[list["ScholarshipRegion"]] = relationship(
        back_populates="scholarship", cascade="all, delete-orphan"
    )

    @validates("source_url")
    def _set_source_key(self, key, value):
        self.source_key = normalize_source_url(value) if value else None
        return value

    __table_args__ = (
        Index("idx_scholarships_deadline_id", "deadline", "id"),
        Index("idx_scholarships_active", "is_active"),
        Index("idx_scholarships_amount", "amount"),
        Index("idx_scholarships_competition", "competition_level"),
    )

    def region_values(self, kind: str) -> list[str]:
        return [region.value for region in self.regions if region.kind == kind]

    def has_region(self, kind: str, value: Optional[str]) -> bool:
        if not value:
            return False
        key = value.strip().lower()
        return any(r.kind == kind and r.value_key == key for r in self.regions)


class ScholarshipRegion(Base):
    """A state or city a scholarship is restricted to.

    A scholarship without rows of a given kind is unrestricted for that kind.
    """

    __tablename__ = "scholarship_regions"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    scholarship_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("scholarships.id", ondelete="CASCADE"), nullable=False
    )
    kind: Mapped[str] = mapped_column(String(10), nullable=False)  # state, city
    value: Mapped[str] = mapped_column(Text, nullable=False)
    value_key: Mapped[str] = mapped_column(Text, nullable=False)  # lower(strip(value))

    # Relationships
    scholarship: Mapped["Scholarship"] = relationship(back_populates="regions")

    __table_args__ = (
        Index("idx_scholarship_regions_lookup", "kind", "value_key", "scholarship_id"),
    )


class UserScholarship(Base):
    """Scholarship a user already saved or applied to."""

    __tablename__ = "user_scholarships"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    user_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("users.id", ondelete="CASCADE"), nullable=False
    )
    scholarship_id: Mapped[UUID] = mapped_column(
        Uuid, ForeignKey("scholarships.id", ondelete="CASCADE"), nullable=False
    )
    status: Mapped[str] = mapped_column(String(20), nullable=False)  # saved, applied, won
    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )

    # Relationships
    user: Mapped["User"] = relationship(back_populates="saved_scholarships")

    __table_args__ = (
        UniqueConstraint("user_id", "scholarship_id", name="uq_user_scholarships_user_scholarship"),
    )


class PendingScholarship(Base):
    """Discovered candidate awaiting a moderation decision.

    Never deleted; the review columns form the audit trail.
    """

    __tablename__ = "scholarships_pending"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)
    source_url: Mapped[str] = mapped_column(Text, nullable=False)
    # One queue record per source page, whichever location found it
    source_key: Mapped[str] = mapped_column(Text, nullable=False, unique=True)
    raw_page_text: Mapped[Optional[str]] = mapped_column(Text)
    extracted_data: Mapped[Optional[dict[str, Any]]] = mapped_column(JSONType)
    extraction_model: Mapped[Optional[str]] = mapped_column(String(100))
    extraction_confidence: Mapped[Optional[float]] = mapped_column(Float)

    # Review state
    status: Mapped[str] = mapped_column(
        String(20), default="pending", index=True
    )  # pending, needs_review, approved, rejected
    reviewer_notes: Mapped[Optional[str]] = mapped_column(Text)
    reviewed_by: Mapped[Optional[str]] = mapped_column(String(255))
    reviewed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))

    # Published scholarship (set on approval)
    scholarship_id: Mapped[Optional[UUID]] = mapped_column(
        Uuid, ForeignKey("scholarships.id", ondelete="SET NULL")
    )

    created_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now(), index=True
    )

    @validates("source_url")
    def _set_source_key(self, key, value):
        self.source_key = normalize_source_url(value)
        return value


class DiscoveryRun(Base):
    """Track scheduled discovery batches for monitoring and debugging."""

    __tablename__ = "discovery_runs"

    id: Mapped[UUID] = mapped_column(Uuid, primary_key=True, default=uuid4)

    trigger: Mapped[str] = mapped_column(String(50), default="cron")  # cron, scheduler, manual
    status: Mapped[str] = mapped_column(
        String(20), default="running"
    )  # running, completed, partial, failed

    # Stats
    locations_total: Mapped[int] = mapped_column(Integer, default=0)
    locations_processed: Mapped[int] = mapped_column(Integer, default=0)
    locations_failed: Mapped[int] = mapped_column(Integer, default=0)
    candidates_queued: Mapped[int] = mapped_column(Integer, default=0)
    budget_exhausted: Mapped[bool] = mapped_column(Boolean, default=False)

    error_message: Mapped[Optional[str]] = mapped_column(Text)

    # Progress logs - list of log entries with timestamp, level, message
    # Each entry: {"ts": "2024-01-01T12:00:00Z", "level": "info", "msg": "...", "data": {...}}
    logs: Mapped[Optional[list]] = mapped_column(JSONType, default=list)
    current_step: Mapped[Optional[str]] = mapped_column(String(200))

    started_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), default=utcnow, server_default=func.now()
    )
    completed_at: Mapped[Optional[datetime]] = mapped_column(DateTime(timezone=True))
