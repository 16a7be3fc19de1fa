"""Discovery Engine - finds candidate scholarships for user locations.

This module provides:
- dedupe_locations: Case-insensitive reduction of profile locations
- DiscoveryInvoker: Contract with the external discovery service
- HttpDiscoveryInvoker: httpx implementation of that contract
- DiscoveryOrchestrator: The time-boxed, per-location discovery batch
"""

from magpie.engines.discovery.base import (
    DiscoveredCandidate,
    DiscoveryBatch,
    DiscoveryInvoker,
    DiscoveryProfile,
)
from magpie.engines.discovery.locations import Location, dedupe_locations, location_key
from magpie.engines.discovery.orchestrator import (
    BatchReport,
    DiscoveryOrchestrator,
    LocationOutcome,
)
from magpie.engines.discovery.service import HttpDiscoveryInvoker

__all__ = [
    # Locations
    "Location",
    "dedupe_locations",
    "location_key",
    # Discovery service contract
    "DiscoveredCandidate",
    "DiscoveryBatch",
    "DiscoveryInvoker",
    "DiscoveryProfile",
    "HttpDiscoveryInvoker",
    # Batch
    "BatchReport",
    "DiscoveryOrchestrator",
    "LocationOutcome",
]
