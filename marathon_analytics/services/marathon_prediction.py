"""
Marathon Time Predictor

Predicts marathon finish time from recent qualifying runs.

Method:
1. Select qualifying runs (>= 2 km, >= 6 min, 3:00-12:00 /km), newest 50
2. Scale each run to marathon distance with Riegel: T2 = T1 * (D2/D1)^1.06
3. Sort ascending and trim the fastest and slowest 10%
4. Mean of the trimmed times is the prediction; one population SD is the band

The band is +/- 1 SD (~68%). It is reported as-is and never widened
to a 95% interval.

No model fitting - pure calculation.
"""

from dataclasses import dataclass, asdict
from datetime import datetime
from typing import Any, Dict, Iterable, List, Optional
import logging
import math
import statistics

from marathon_analytics.core.numbers import round_half_up
from marathon_analytics.schemas import (
    Activity,
    ConfidenceLevel,
    MARATHON_METERS,
    PredictionResult,
    UserProfile,
)

logger = logging.getLogger(__name__)


# =============================================================================
# CONSTANTS
# =============================================================================

RIEGEL_EXPONENT = 1.06

MIN_QUALIFYING_DISTANCE_M = 2000
MIN_QUALIFYING_DURATION_S = 360
MIN_QUALIFYING_PACE_S_PER_KM = 180   # 3:00 /km
MAX_QUALIFYING_PACE_S_PER_KM = 720   # 12:00 /km
MAX_QUALIFYING_RUNS = 50
MIN_RUNS_FOR_PREDICTION = 3

TRIM_LOWER = 0.1
TRIM_UPPER = 0.9


# =============================================================================
# DATA STRUCTURES
# =============================================================================

@dataclass
class GoalComparison:
    """Predicted marathon time against the athlete's goal."""
    predicted_seconds: int
    goal_seconds: int
    difference_seconds: int  # positive = slower than goal
    within_band: bool  # goal lies inside the +/- 1 SD band
    on_track: bool

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =============================================================================
# SELECTION AND SCALING
# =============================================================================

def is_qualifying_run(activity: Activity) -> bool:
    if activity.distance < MIN_QUALIFYING_DISTANCE_M:
        return False
    if activity.duration < MIN_QUALIFYING_DURATION_S:
        return False
    pace = activity.pace_seconds_per_km
    return pace is not None and MIN_QUALIFYING_PACE_S_PER_KM <= pace <= MAX_QUALIFYING_PACE_S_PER_KM


def _date_key(activity: Activity):
    # Undated runs sort first; wall clock only so naive and aware dates mix
    if activity.date is None:
        return (0, datetime.min)
    return (1, activity.date.replace(tzinfo=None))


def select_qualifying_runs(activities: Iterable[Activity]) -> List[Activity]:
    """
    Qualifying runs ordered by date, newest last, capped at the 50 newest.

    The sort is stable, so runs sharing a timestamp keep input order.
    """
    qualifying = [a for a in activities if is_qualifying_run(a)]
    qualifying.sort(key=_date_key)
    return qualifying[-MAX_QUALIFYING_RUNS:]


def equivalent_time(seconds: float, distance_m: float, target_m: float) -> Optional[float]:
    """Riegel scaling of a performance to another distance. None for non-positive distance."""
    if distance_m <= 0:
        return None
    return seconds * math.pow(target_m / distance_m, RIEGEL_EXPONENT)


def equivalent_marathon_time(run: Activity) -> Optional[float]:
    """
    Marathon-equivalent seconds for one run.

    Formula:
    T = duration * (42.195 / distance_km)^1.06
    """
    return equivalent_time(run.duration, run.distance, MARATHON_METERS)


# =============================================================================
# PREDICTION
# =============================================================================

def _assess_reliability(sample_size: int, mean: float, std_dev: float) -> ConfidenceLevel:
    if sample_size >= 10 and std_dev < mean * 0.15:
        return ConfidenceLevel.HIGH
    if sample_size >= 5 and std_dev < mean * 0.25:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


def _insufficient_data(sample_size: int) -> PredictionResult:
    return PredictionResult(
        seconds=0,
        confidence_interval_seconds=0,
        reliability=ConfidenceLevel.LOW,
        sample_size=sample_size,
    )


def predict(activities: Iterable[Activity]) -> PredictionResult:
    """
    Predict marathon time from the qualifying runs in activities.

    Fewer than 3 qualifying runs yields a zeroed, low-reliability result
    rather than an error. sample_size is the number of qualifying runs
    before trimming.
    """
    runs = select_qualifying_runs(activities)
    sample_size = len(runs)

    if sample_size < MIN_RUNS_FOR_PREDICTION:
        logger.debug(f"Only {sample_size} qualifying runs, prediction needs {MIN_RUNS_FOR_PREDICTION}")
        return _insufficient_data(sample_size)

    times = sorted(equivalent_marathon_time(run) for run in runs)

    # Outlier removal
    n = len(times)
    trimmed = times[math.floor(n * TRIM_LOWER):math.ceil(n * TRIM_UPPER)]

    mean = statistics.fmean(trimmed)
    std_dev = statistics.pstdev(trimmed)

    reliability = _assess_reliability(sample_size, mean, std_dev)
    logger.debug(
        f"Marathon prediction from {sample_size} runs ({len(trimmed)} after trimming): "
        f"{mean:.0f}s +/- {std_dev:.0f}s, {reliability.value}"
    )

    return PredictionResult(
        seconds=round_half_up(mean),
        confidence_interval_seconds=round_half_up(std_dev),
        reliability=reliability,
        sample_size=sample_size,
    )


def goal_gap(prediction: PredictionResult, profile: UserProfile) -> Optional[GoalComparison]:
    """Compare a prediction with the profile's goal. None when either is missing."""
    goal_seconds = profile.goal_time_seconds
    if not prediction.has_estimate or not goal_seconds:
        return None

    difference = prediction.seconds - goal_seconds
    return GoalComparison(
        predicted_seconds=prediction.seconds,
        goal_seconds=goal_seconds,
        difference_seconds=difference,
        within_band=abs(difference) <= prediction.confidence_interval_seconds,
        on_track=difference <= 0,
    )
