"""Print a training report for an activity export.

Usage:
    python -m marathon_analytics activities.json --profile profile.json
    python -m marathon_analytics run.gpx --now 2024-06-01T12:00:00

The input may be a JSON list of raw activity records, a GPX or TCX file,
or the fitness API's activities.csv export.
"""

import argparse
import json
import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Any, List, Optional

from pydantic import ValidationError as SchemaValidationError

from marathon_analytics.core.config import settings
from marathon_analytics.core.exceptions import AnalyticsError, ParseError
from marathon_analytics.core.logging import setup_logging
from marathon_analytics.report import build_training_report
from marathon_analytics.schemas import UserProfile
from marathon_analytics.services.activity_normalizer import parse_activities_csv
from marathon_analytics.services.track_files import parse_gpx, parse_tcx

logger = logging.getLogger("marathon_analytics")


def load_records(path: Path) -> List[Any]:
    """Raw records from a JSON, GPX, TCX or CSV file, chosen by extension."""
    text = path.read_text(encoding="utf-8")
    suffix = path.suffix.lower()

    if suffix == ".gpx":
        return parse_gpx(text)
    if suffix == ".tcx":
        return parse_tcx(text)
    if suffix == ".csv":
        return parse_activities_csv(text)

    try:
        data = json.loads(text)
    except json.JSONDecodeError as e:
        raise ParseError(f"{path.name} is not valid JSON: {e}", source="json") from e
    if isinstance(data, dict):
        data = data.get("activities", [])
    if not isinstance(data, list):
        raise ParseError(f"{path.name} must contain a list of activities", source="json")
    return data


def load_profile(path: Path) -> UserProfile:
    try:
        return UserProfile.model_validate_json(path.read_text(encoding="utf-8"))
    except SchemaValidationError as e:
        raise ParseError(f"Invalid profile {path.name}: {e}", source="profile") from e


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(prog="marathon-analytics")
    parser.add_argument("activities", type=Path, help="JSON, GPX, TCX or CSV activity file")
    parser.add_argument("--profile", type=Path, help="user profile JSON")
    parser.add_argument("--now", help="reference time, ISO-8601 (default: current time)")
    parser.add_argument("--indent", type=int, default=2, help="JSON indent (default: 2)")
    args = parser.parse_args(argv)

    setup_logging(settings, stream=sys.stderr)

    try:
        now = datetime.fromisoformat(args.now.replace("Z", "+00:00")) if args.now else None
    except ValueError:
        logger.error(f"Invalid --now value: {args.now}")
        return 2

    try:
        records = load_records(args.activities)
        profile = load_profile(args.profile) if args.profile else None
        report = build_training_report(records, profile=profile, now=now, config=settings)
    except OSError as e:
        logger.error(f"Cannot read input: {e}")
        return 2
    except AnalyticsError as e:
        logger.error(f"{e.error_code}: {e.detail}")
        return 1

    json.dump(report, sys.stdout, indent=args.indent)
    sys.stdout.write("\n")
    return 0


if __name__ == "__main__":
    raise SystemExit(main())
