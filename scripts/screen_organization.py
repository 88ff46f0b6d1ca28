#!/usr/bin/env python3
"""
Organization Screening Script
=============================

Screen one organization against a register export and print its
aggregate report as JSON.

Usage:
    python scripts/screen_organization.py --register register.json --profile org.json
    python scripts/screen_organization.py -r register.json -p org.json --location site-1
    python scripts/screen_organization.py -r register.json -p org.json --completeness

Version: 0.1.0
"""

import argparse
import asyncio
import json
import sys
from pathlib import Path

# Add project root to path
sys.path.insert(0, str(Path(__file__).parent.parent))

from shared.logging import get_logger, setup_logging

setup_logging(log_level="WARNING", json_logs=False, service_name="screen-organization")
logger = get_logger(__name__)


async def main(args: argparse.Namespace) -> int:
    """Load the register and profile, screen, print."""
    from services.applicability.errors import ApplicabilityError
    from services.applicability.services import (
        ApplicabilityEngine,
        InMemoryMatchCache,
        JsonFileRegulationSource,
        ProfileAnalyzer,
        ProfileStore,
        RegulationStore,
    )
    from shared.models.organization import OrganizationCreate

    engine = ApplicabilityEngine(
        regulations=RegulationStore(),
        profiles=ProfileStore(),
        cache=InMemoryMatchCache(),
        max_concurrent_locations=args.concurrency,
    )

    try:
        await engine.regulations.load_from(JsonFileRegulationSource(args.register))
        payload = OrganizationCreate.model_validate_json(Path(args.profile).read_text())
        profile = engine.profiles.register(payload)

        if args.completeness:
            output = ProfileAnalyzer().analyze(profile).to_dict()
        elif args.location:
            result = await engine.match_location(profile.organization_id, args.location)
            output = result.model_dump(mode="json")
        else:
            report = await engine.aggregate(profile.organization_id)
            output = report.model_dump(mode="json")
    except ApplicabilityError as e:
        logger.error("screening_failed", error_code=e.error_code, error=e.message)
        return 1
    except (OSError, ValueError) as e:
        logger.error("screening_input_invalid", error=str(e))
        return 2

    print(json.dumps(output, indent=2 if args.pretty else None))
    return 0


def parse_args() -> argparse.Namespace:
    """Parse command line arguments."""
    parser = argparse.ArgumentParser(
        description="Screen an organization against a regulation register",
        formatter_class=argparse.RawDescriptionHelpFormatter,
    )

    parser.add_argument(
        "--register", "-r",
        required=True,
        help="Register export (JSON object with 'version' and 'regulations', or a list)",
    )
    parser.add_argument(
        "--profile", "-p",
        required=True,
        help="Organization profile (JSON, same shape as POST /api/v1/organizations)",
    )
    parser.add_argument(
        "--location", "-l",
        help="Screen a single location instead of the whole organization",
    )
    parser.add_argument(
        "--completeness",
        action="store_true",
        help="Print the profile completeness analysis instead of matches",
    )
    parser.add_argument(
        "--concurrency",
        type=int,
        default=8,
        help="Maximum locations evaluated concurrently (default: 8)",
    )
    parser.add_argument(
        "--pretty",
        action="store_true",
        help="Indent JSON output",
    )

    return parser.parse_args()


if __name__ == "__main__":
    args = parse_args()
    exit_code = asyncio.run(main(args))
    sys.exit(exit_code)
