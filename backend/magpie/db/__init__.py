"""Database module."""

from magpie.db.session import get_db, engine, async_session_factory
from magpie.db.models import (
    Base,
    User,
    Profile,
    Scholarship,
    ScholarshipRegion,
    UserScholarship,
    PendingScholarship,
    DiscoveryRun,
)

__all__ = [
    "get_db",
    "engine",
    "async_session_factory",
    "Base",
    "User",
    "Profile",
    "Scholarship",
    "ScholarshipRegion",
    "UserScholarship",
    "PendingScholarship",
    "DiscoveryRun",
]
