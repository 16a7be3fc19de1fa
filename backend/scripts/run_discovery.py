#!/usr/bin/env python3
"""
Run Scholarship Discovery Manually

This script:
1. Collects every distinct user location (or the ones given on the command line)
2. Runs the discovery batch under the configured time budget
3. Prints the per-location results as JSON

Usage:
    python -m scripts.run_discovery
    python -m scripts.run_discovery --location "Austin,TX" --location ",CA"
"""

import argparse
import asyncio
import json
import sys
from typing import Optional

import structlog

from magpie.db import async_session_factory
from magpie.engines.discovery import DiscoveryOrchestrator, HttpDiscoveryInvoker, Location

logger = structlog.get_logger()


def parse_location(value: str) -> Location:
    """Parse "City,ST"; either side may be empty."""
    city, _, state = value.partition(",")
    location = Location(city=city.strip() or None, state=state.strip() or None)
    if not location.key:
        raise argparse.ArgumentTypeError(f"Location needs a city or a state: {value!r}")
    return location


async def main(locations: list[Location], budget: Optional[float]) -> int:
    async with HttpDiscoveryInvoker() as invoker:
        if not invoker.is_available:
            logger.error("DISCOVERY_SERVICE_URL is not configured")
            return 1

        orchestrator = DiscoveryOrchestrator(
            async_session_factory,
            invoker,
            budget_seconds=budget,
            trigger="manual",
        )
        report = await orchestrator.run(locations or None)

    print(json.dumps(report.to_dict(), indent=2))
    return 0 if report.locations_failed == 0 else 2


if __name__ == "__main__":
    parser = argparse.ArgumentParser(description="Run scholarship discovery")
    parser.add_argument(
        "--location",
        action="append",
        type=parse_location,
        default=[],
        help='Location as "City,ST" (repeatable). Defaults to all user locations.',
    )
    parser.add_argument("--budget", type=float, default=None, help="Batch budget in seconds")
    args = parser.parse_args()

    sys.exit(asyncio.run(main(args.location, args.budget)))
