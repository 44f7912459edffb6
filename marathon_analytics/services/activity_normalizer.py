"""
Activity Normalizer

Translates raw activity records into canonical Activity objects.
This is the only place that knows provider field names, so schema
changes upstream stay contained here.

Sources:
- intervals.icu / Strava style summaries (moving_time, average_heartrate,
  start_date_local, total_elevation_gain)
- Garmin style summaries (activityId, startTimeLocal, averageHeartRate)
- Records produced by services.track_files from GPX / TCX documents

ARCHITECTURE:
- normalize() is lossy-tolerant: one bad record is dropped, never the batch
- deduplicate() makes repeated syncs of the same window idempotent
- filter_running() prefers a real activity type and only falls back to the
  pace/distance heuristic when the provider sends none
"""

from dataclasses import dataclass, field
from datetime import date, datetime, timezone
from typing import Any, Dict, Iterable, List, Optional, Tuple
import csv
import hashlib
import io
import logging
import math

from pydantic import ValidationError as SchemaValidationError

from marathon_analytics.core.numbers import round_half_up
from marathon_analytics.schemas import Activity, TrackPoint

logger = logging.getLogger(__name__)


# Provider aliases, checked in order. Moving time wins over elapsed time.
ID_FIELDS = ("id", "activityId", "activity_id")
DATE_FIELDS = ("date", "start_date_local", "start_date", "startTimeLocal", "startTime", "start_time")
DISTANCE_FIELDS = ("distance", "distance_m", "distanceInMeters")
DURATION_FIELDS = ("duration", "moving_time", "elapsed_time", "duration_s")
AVG_HR_FIELDS = ("avgHeartRate", "avg_heart_rate", "avg_hr", "avgHr", "average_heartrate", "averageHeartRate")
MAX_HR_FIELDS = ("maxHeartRate", "max_heart_rate", "max_hr", "maxHr", "max_heartrate")
ELEVATION_FIELDS = ("elevationGain", "elevation_gain", "total_elevation_gain")
TRACK_FIELDS = ("trackPoints", "track_points")
SPORT_FIELDS = ("type", "sport", "sport_type", "activity_type")

RUNNING_SPORTS = {
    "run", "running", "trailrun", "trail_run", "trail_running", "virtualrun",
    "virtual_run", "treadmill", "treadmill_running", "track_running", "street_running",
}

# Heuristic bounds used when no activity type is available
MIN_RUN_KM = 1.0
MAX_RUN_KM = 50.0
MIN_RUN_PACE_MIN_PER_KM = 3.0
MAX_RUN_PACE_MIN_PER_KM = 8.0


class InvalidRecord(ValueError):
    """A raw record that cannot become an Activity."""


@dataclass
class NormalizationResult:
    """Outcome of normalizing one batch."""
    activities: List[Activity]
    dropped: int = 0
    errors: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        return {
            "normalized": len(self.activities),
            "dropped": self.dropped,
            "errors": list(self.errors),
        }


# =========================================================================
# FIELD COERCION
# =========================================================================

def _first_present(raw: Dict[str, Any], names: Iterable[str]) -> Any:
    for name in names:
        value = raw.get(name)
        if value is not None and value != "":
            return value
    return None


def _coerce_number(value: Any, field_name: str) -> Optional[float]:
    """Numeric value clamped at 0; raises InvalidRecord for non-numeric input."""
    if value is None:
        return None
    if isinstance(value, bool):
        raise InvalidRecord(f"{field_name} is not numeric: {value!r}")
    try:
        number = float(value)
    except (TypeError, ValueError):
        raise InvalidRecord(f"{field_name} is not numeric: {value!r}")
    if math.isnan(number) or math.isinf(number):
        raise InvalidRecord(f"{field_name} is not finite: {value!r}")
    return max(0.0, number)


def _coerce_heart_rate(value: Any) -> Optional[int]:
    """Optional field: anything unusable becomes None instead of dropping the record."""
    if value is None or isinstance(value, bool):
        return None
    try:
        bpm = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(bpm) or math.isinf(bpm):
        return None
    rounded = round_half_up(bpm)
    return rounded if rounded > 0 else None


def _coerce_optional_number(value: Any) -> Optional[float]:
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    if math.isnan(number) or math.isinf(number):
        return None
    return max(0.0, number)


def parse_timestamp(value: Any) -> Optional[datetime]:
    """
    Parse an activity timestamp.

    Accepts datetime, date, ISO-8601 strings (trailing Z allowed) and
    epoch milliseconds. Returns None when the value cannot be read.
    """
    if value is None:
        return None
    if isinstance(value, datetime):
        return value
    if isinstance(value, date):
        return datetime(value.year, value.month, value.day)
    if isinstance(value, (int, float)) and not isinstance(value, bool):
        try:
            return datetime.fromtimestamp(float(value) / 1000.0, tz=timezone.utc)
        except (OverflowError, OSError, ValueError):
            return None
    if isinstance(value, str):
        text = value.strip()
        if not text:
            return None
        try:
            return datetime.fromisoformat(text.replace("Z", "+00:00"))
        except ValueError:
            pass
        for fmt in ("%Y-%m-%dT%H:%M:%S", "%Y-%m-%d %H:%M:%S", "%Y-%m-%d"):
            try:
                return datetime.strptime(text, fmt)
            except ValueError:
                continue
    return None


def _parse_track_points(value: Any) -> Optional[Tuple[TrackPoint, ...]]:
    if not value or not isinstance(value, (list, tuple)):
        return None

    points: List[TrackPoint] = []
    for raw_point in value:
        if isinstance(raw_point, TrackPoint):
            points.append(raw_point)
            continue
        if not isinstance(raw_point, dict):
            continue
        lat = _coerce_coordinate(raw_point.get("lat"))
        lng = _coerce_coordinate(raw_point.get("lng", raw_point.get("lon")))
        if lat is None or lng is None:
            continue
        elevation = raw_point.get("elevation", raw_point.get("ele"))
        try:
            elevation = float(elevation) if elevation is not None else None
        except (TypeError, ValueError):
            elevation = None
        points.append(TrackPoint(
            lat=lat,
            lng=lng,
            elevation=elevation,
            time=parse_timestamp(raw_point.get("time")),
        ))

    return tuple(points) if points else None


def _coerce_coordinate(value: Any) -> Optional[float]:
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if math.isfinite(number) else None


def _generated_id(when: Optional[datetime], distance: float, duration: float) -> str:
    """Stable id for records that arrive without one."""
    digest = hashlib.sha1(_fingerprint(when, distance, duration).encode("utf-8")).hexdigest()
    return f"generated-{digest[:12]}"


# =========================================================================
# NORMALIZATION
# =========================================================================

def normalize_record(raw: Any) -> Activity:
    """
    Translate one raw record into an Activity.

    Raises InvalidRecord when the record is unusable: not a mapping,
    missing both distance and duration, or carrying non-numeric
    distance / duration.
    """
    if isinstance(raw, Activity):
        return raw
    if not isinstance(raw, dict):
        raise InvalidRecord(f"record is not a mapping: {type(raw).__name__}")

    raw_distance = _first_present(raw, DISTANCE_FIELDS)
    raw_duration = _first_present(raw, DURATION_FIELDS)
    if raw_distance is None and raw_duration is None:
        raise InvalidRecord("record has neither distance nor duration")

    distance = _coerce_number(raw_distance, "distance") or 0.0
    duration = _coerce_number(raw_duration, "duration") or 0.0
    when = parse_timestamp(_first_present(raw, DATE_FIELDS))

    raw_id = _first_present(raw, ID_FIELDS)
    activity_id = str(raw_id) if raw_id is not None else _generated_id(when, distance, duration)

    sport = _first_present(raw, SPORT_FIELDS)

    return Activity(
        id=activity_id,
        date=when,
        distance=distance,
        duration=duration,
        avg_heart_rate=_coerce_heart_rate(_first_present(raw, AVG_HR_FIELDS)),
        max_heart_rate=_coerce_heart_rate(_first_present(raw, MAX_HR_FIELDS)),
        elevation_gain=_coerce_optional_number(_first_present(raw, ELEVATION_FIELDS)),
        track_points=_parse_track_points(_first_present(raw, TRACK_FIELDS)),
        sport=str(sport) if sport is not None else None,
    )


def normalize_with_report(raw_records: Iterable[Any]) -> NormalizationResult:
    """Normalize a batch and report how many records were dropped and why."""
    activities: List[Activity] = []
    errors: List[str] = []

    for index, raw in enumerate(raw_records or []):
        try:
            activities.append(normalize_record(raw))
        except InvalidRecord as e:
            errors.append(f"record {index}: {e}")
        except SchemaValidationError as e:
            errors.append(f"record {index}: {e.error_count()} invalid field(s)")

    result = NormalizationResult(activities=activities, dropped=len(errors), errors=errors)
    if result.dropped:
        logger.info(
            f"Normalized {len(activities)} activities, dropped {result.dropped} invalid records"
        )
        for message in errors:
            logger.debug(f"Dropped {message}")
    return result


def normalize(raw_records: Iterable[Any]) -> List[Activity]:
    """Canonical activities from raw provider / file records. Never raises for bad records."""
    return normalize_with_report(raw_records).activities


# =========================================================================
# DEDUPLICATION
# =========================================================================

def _fingerprint(when: Optional[datetime], distance: float, duration: float) -> str:
    stamp = when.isoformat() if when else "none"
    return f"{stamp}-{round_half_up(distance)}-{round_half_up(duration)}"


def activity_fingerprint(activity: Activity) -> str:
    """Identity used for dedup: start time, rounded distance and rounded duration."""
    return _fingerprint(activity.date, activity.distance, activity.duration)


def deduplicate(activities: Iterable[Activity]) -> List[Activity]:
    """
    Drop repeated activities, keeping the first occurrence.

    Idempotent: deduplicate(deduplicate(x)) == deduplicate(x) and
    deduplicate(x + x) == deduplicate(x).
    """
    seen = set()
    unique: List[Activity] = []

    for activity in activities:
        fingerprint = activity_fingerprint(activity)
        if fingerprint in seen:
            logger.debug(f"Found duplicate: activity {activity.id} ({fingerprint})")
            continue
        seen.add(fingerprint)
        unique.append(activity)

    return unique


# =========================================================================
# RUNNING FILTER
# =========================================================================

def is_running_sport(sport: str) -> bool:
    key = sport.strip().lower().replace(" ", "_").replace("-", "_")
    return key in RUNNING_SPORTS or key.replace("_", "") in RUNNING_SPORTS


def is_probable_run(activity: Activity) -> bool:
    """
    Pace/distance heuristic standing in for a missing activity type.

    Keeps 1-50 km at 3:00-8:00 min/km. This is approximate: fast hikes,
    slow runs and some cardio sessions will be misclassified.
    """
    pace = activity.pace_seconds_per_km
    if pace is None:
        return False

    pace_min_per_km = pace / 60
    return (
        MIN_RUN_KM <= activity.distance_km <= MAX_RUN_KM
        and MIN_RUN_PACE_MIN_PER_KM <= pace_min_per_km <= MAX_RUN_PACE_MIN_PER_KM
    )


def is_run(activity: Activity) -> bool:
    """An upstream activity type is authoritative; otherwise use the heuristic."""
    if activity.sport:
        return is_running_sport(activity.sport)
    return is_probable_run(activity)


def filter_running(activities: Iterable[Activity]) -> List[Activity]:
    """Keep running activities only."""
    return [activity for activity in activities if is_run(activity)]


# =========================================================================
# CSV EXPORT
# =========================================================================

def parse_activities_csv(text: str) -> List[Dict[str, Any]]:
    """
    Read the fitness API's activities.csv export into raw records.

    Column names are the provider's (start_date_local, moving_time, ...);
    normalize() maps them. Empty cells are left out of the record.
    """
    if not text or not text.strip():
        return []

    reader = csv.DictReader(io.StringIO(text.strip()))
    records: List[Dict[str, Any]] = []
    for row in reader:
        record = {
            key.strip(): value.strip()
            for key, value in row.items()
            if key and value is not None and value.strip() != ""
        }
        if record:
            records.append(record)
    return records
