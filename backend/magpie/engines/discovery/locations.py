"""Location deduplication for discovery batches."""

from dataclasses import dataclass
from typing import Iterable, Optional


@dataclass(frozen=True)
class Location:
    """A city/state pair exactly as first seen in profile data."""

    city: Optional[str]
    state: Optional[str]

    @property
    def key(self) -> str:
        return location_key(self.city, self.state)


def location_key(city: Optional[str], state: Optional[str]) -> str:
    """Canonical, case-insensitive identity of a city/state pair.

    Returns an empty string when neither part is present.
    """
    if not city and not state:
        return ""
    return f"{(city or '').lower()}|{(state or '').lower()}"


def dedupe_locations(
    pairs: Iterable[tuple[Optional[str], Optional[str]]],
) -> list[Location]:
    """Reduce profile locations to a unique list keyed by ``location_key``.

    Order and casing follow the first occurrence of each key. Pairs with
    neither a city nor a state are dropped.
    """
    seen: dict[str, Location] = {}
    for city, state in pairs:
        key = location_key(city, state)
        if not key or key in seen:
            continue
        seen[key] = Location(city=city or None, state=state or None)
    return list(seen.values())
