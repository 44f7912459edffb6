"""
Canonical records shared by every analytics service.

All models are frozen: services never mutate an activity or a record in
place, they return new objects. Units are always meters and seconds.
Every model serialises to plain JSON with model_dump(mode="json").
"""
from pydantic import BaseModel, ConfigDict, Field, field_validator
from dataclasses import dataclass
from datetime import datetime, date, timedelta
from enum import Enum
from typing import Optional, Tuple, Iterator

from marathon_analytics.core.dates import iter_days, parse_hms
from marathon_analytics.core.exceptions import ValidationError


DEFAULT_THRESHOLD_HR = 170
# Lactate threshold sits at roughly 88% of heart-rate reserve
THRESHOLD_HRR_FRACTION = 0.88
THRESHOLD_MAX_HR_FRACTION = 0.9
MARATHON_METERS = 42195


class ConfidenceLevel(str, Enum):
    """Three-tier confidence used for predictions and records."""
    LOW = "low"
    MEDIUM = "medium"
    HIGH = "high"


class TrainingLevel(str, Enum):
    BEGINNER = "beginner"
    INTERMEDIATE = "intermediate"
    ADVANCED = "advanced"


class PRCategory(str, Enum):
    """Personal-record categories, each tracked independently."""
    FASTEST_1K = "fastest_1k"
    FASTEST_5K = "fastest_5k"
    FASTEST_10K = "fastest_10k"
    FASTEST_HALF_MARATHON = "fastest_half_marathon"
    FASTEST_MARATHON = "fastest_marathon"
    LONGEST_RUN = "longest_run"
    MOST_WEEKLY_VOLUME = "most_weekly_volume"
    MOST_ELEVATION_GAIN = "most_elevation_gain"

    @property
    def lower_is_better(self) -> bool:
        """Time categories improve downwards; distance, volume and elevation upwards."""
        return self.value.startswith("fastest_")


class TrackPoint(BaseModel):
    model_config = ConfigDict(frozen=True)

    lat: float
    lng: float
    elevation: Optional[float] = None
    time: Optional[datetime] = None


class Activity(BaseModel):
    """
    One recorded activity in canonical units.

    distance is meters, duration is seconds. Activities without a date
    are kept but excluded from every date-based aggregation.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    date: Optional[datetime] = None
    distance: float = Field(default=0.0, ge=0)
    duration: float = Field(default=0.0, ge=0)
    avg_heart_rate: Optional[int] = Field(default=None, gt=0)
    max_heart_rate: Optional[int] = Field(default=None, gt=0)
    elevation_gain: Optional[float] = Field(default=None, ge=0)
    track_points: Optional[Tuple[TrackPoint, ...]] = None
    sport: Optional[str] = None  # Upstream activity type when the provider sends one

    @property
    def distance_km(self) -> float:
        return self.distance / 1000

    @property
    def pace_seconds_per_km(self) -> Optional[float]:
        """Seconds per km, or None when distance or duration is zero."""
        if self.distance <= 0 or self.duration <= 0:
            return None
        return self.duration / (self.distance / 1000)

    @property
    def has_gps(self) -> bool:
        return bool(self.track_points)


class UserProfile(BaseModel):
    """Read-only personalisation input. Edited and stored elsewhere."""
    model_config = ConfigDict(frozen=True)

    name: str
    race_date: Optional[date] = None
    goal_time: Optional[str] = None  # HH:MM:SS
    max_heart_rate: Optional[int] = Field(default=None, gt=0)
    resting_heart_rate: Optional[int] = Field(default=None, gt=0)
    threshold_heart_rate: Optional[int] = Field(default=None, gt=0)
    training_level: TrainingLevel = TrainingLevel.BEGINNER

    @field_validator("goal_time")
    @classmethod
    def _check_goal_time(cls, value: Optional[str]) -> Optional[str]:
        if value is None:
            return value
        try:
            parse_hms(value)
        except ValidationError as e:
            raise ValueError(e.detail) from e
        return value.strip()

    @property
    def goal_time_seconds(self) -> Optional[int]:
        if not self.goal_time:
            return None
        return parse_hms(self.goal_time)

    def effective_threshold_heart_rate(self, default: int = DEFAULT_THRESHOLD_HR) -> int:
        """
        Threshold HR used for heart-rate based intensity.

        Priority: explicit threshold, 88% of heart-rate reserve,
        90% of max HR, then the population default.
        """
        if self.threshold_heart_rate:
            return self.threshold_heart_rate
        if self.max_heart_rate and self.resting_heart_rate and self.max_heart_rate > self.resting_heart_rate:
            reserve = self.max_heart_rate - self.resting_heart_rate
            return int(round(self.resting_heart_rate + reserve * THRESHOLD_HRR_FRACTION))
        if self.max_heart_rate:
            return int(round(self.max_heart_rate * THRESHOLD_MAX_HR_FRACTION))
        return default


@dataclass(frozen=True)
class DateRange:
    """Inclusive calendar-day range."""
    start: date
    end: date

    def __post_init__(self):
        if self.end < self.start:
            raise ValidationError(
                f"Date range end {self.end.isoformat()} is before start {self.start.isoformat()}",
                field="end"
            )

    @classmethod
    def ending_on(cls, end: date, days: int) -> "DateRange":
        """The `days` calendar days ending on (and including) end."""
        if days < 1:
            raise ValidationError(f"Range must cover at least one day, got {days}", field="days")
        return cls(start=end - timedelta(days=days - 1), end=end)

    @property
    def days(self) -> int:
        return (self.end - self.start).days + 1

    def __iter__(self) -> Iterator[date]:
        return iter_days(self.start, self.end)

    def __contains__(self, day: date) -> bool:
        return self.start <= day <= self.end


class WeeklyBucket(BaseModel):
    model_config = ConfigDict(frozen=True)

    week_start: date  # Monday
    total_km: float


class TrainingLoadPoint(BaseModel):
    """One day of the fitness / fatigue / form curve."""
    model_config = ConfigDict(frozen=True)

    date: date
    daily_stress: float
    chronic_load: float   # fitness
    acute_load: float     # fatigue
    balance: float        # form = chronic - acute
    fitness_level: float  # chronic capped at 100
    fatigue_level: float  # acute capped at 100
    form_level: float     # balance clamped to +/-50


class PredictionResult(BaseModel):
    """
    Marathon finish-time estimate.

    confidence_interval_seconds is one population standard deviation
    (~68% band), not a 95% interval.
    """
    model_config = ConfigDict(frozen=True)

    seconds: int
    confidence_interval_seconds: int
    reliability: ConfidenceLevel
    sample_size: int

    @property
    def has_estimate(self) -> bool:
        return self.seconds > 0


class PersonalRecord(BaseModel):
    """
    One best effort. value is seconds for time categories and meters
    for distance, volume and elevation categories.
    """
    model_config = ConfigDict(frozen=True)

    id: str
    category: PRCategory
    value: float
    date: datetime
    activity_id: Optional[str] = None
    previous_value: Optional[float] = None
    improvement_absolute: Optional[float] = None
    improvement_percent: Optional[float] = None
    confidence: ConfidenceLevel = ConfidenceLevel.LOW
    pace: Optional[float] = None  # seconds per km for time categories
