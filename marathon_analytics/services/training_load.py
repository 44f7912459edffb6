"""
Training Load Model

Calculates training stress metrics:
- TSS (Training Stress Score) per activity
- ATL (Acute Training Load) - fatigue (7-day EMA)
- CTL (Chronic Training Load) - fitness (42-day EMA)
- TSB (Training Stress Balance) - form (CTL - ATL)

Intensity comes from the best available signal:
1. Heart rate against threshold HR
2. Pace bands when heart rate is missing
3. A moderate default when neither is usable

Both EMAs are seeded at 0 on the first day of the requested range, so
the chronic figure is biased low until ~42 days of lead-in have passed.
Callers wanting a meaningful CTL on day one pass a range that starts
at least 42 days before the days they care about.
"""

from collections import defaultdict
from dataclasses import dataclass, field, asdict
from datetime import date, timedelta
from enum import Enum
from typing import Any, Dict, Iterable, List, Optional
import logging
import statistics

from marathon_analytics.core.dates import week_start
from marathon_analytics.core.exceptions import ValidationError
from marathon_analytics.core.numbers import round_half_up, safe_ratio
from marathon_analytics.schemas import (
    Activity,
    DateRange,
    DEFAULT_THRESHOLD_HR,
    TrainingLoadPoint,
)

logger = logging.getLogger(__name__)


# Constants for exponential decay
ATL_DECAY_DAYS = 7   # Acute (fatigue) - short term
CTL_DECAY_DAYS = 42  # Chronic (fitness) - long term
ATL_ALPHA = 2 / (ATL_DECAY_DAYS + 1)
CTL_ALPHA = 2 / (CTL_DECAY_DAYS + 1)

HR_INTENSITY_CAP = 1.2
DEFAULT_INTENSITY = 0.7

# (pace upper bound in min/km, intensity factor), checked in order
PACE_INTENSITY_BANDS = (
    (3.5, 1.0),
    (4.0, 0.95),
    (4.5, 0.85),
    (5.0, 0.75),
    (5.5, 0.65),
)
SLOWEST_PACE_INTENSITY = 0.55

# Display scaling used by the recommender
LEVEL_CAP = 100.0
FORM_LIMIT = 50.0

# Look-back for the fitness change in summarize_load
FITNESS_CHANGE_DAYS = 7


class IntensitySource(str, Enum):
    """Which signal an intensity factor was derived from."""
    HEART_RATE = "heart_rate"
    PACE = "pace"
    DEFAULT = "default"


@dataclass(frozen=True)
class IntensityEstimate:
    source: IntensitySource
    value: float


class WorkoutType(str, Enum):
    REST = "rest"
    RECOVERY = "recovery"
    EASY = "easy"
    TEMPO = "tempo"
    INTERVAL = "interval"


@dataclass
class Recommendation:
    """Suggested next session with its rationale."""
    workout_type: WorkoutType
    reason: str
    confidence: float  # 0-1
    target_duration_minutes: Optional[int] = None
    target_intensity: Optional[float] = None
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["workout_type"] = self.workout_type.value
        return data


@dataclass
class LoadSummary:
    """Where the athlete stands on the last day of a load curve."""
    date: date
    chronic_load: float
    acute_load: float
    balance: float
    fitness_level: float
    fatigue_level: float
    form_level: float
    form_state: str  # "fresh" or "fatigued"
    fitness_change_7_days: Optional[float]  # None when the curve is shorter than 8 days
    stress_last_7_days: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["date"] = self.date.isoformat()
        return data


@dataclass
class WeeklyLoad:
    """One Monday-keyed week of the load curve"""
    week_start: date
    total_stress: float
    total_km: float
    days_with_activity: int
    avg_ctl: float
    avg_atl: float
    avg_tsb: float

    def to_dict(self) -> Dict[str, Any]:
        data = asdict(self)
        data["week_start"] = self.week_start.isoformat()
        return data


@dataclass
class ConsistencyReport:
    score: int  # 0-100
    insights: List[str]
    recommendations: List[str]

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


# =========================================================================
# INTENSITY AND TSS
# =========================================================================

def heart_rate_intensity(activity: Activity, threshold_hr: float) -> Optional[float]:
    """avg HR / threshold HR, capped at 1.2. None without usable heart rate."""
    if not activity.avg_heart_rate or threshold_hr <= 0:
        return None
    return min(activity.avg_heart_rate / threshold_hr, HR_INTENSITY_CAP)


def pace_intensity(activity: Activity) -> Optional[float]:
    """Step function over whole-activity pace. None when pace is undefined."""
    pace = activity.pace_seconds_per_km
    if pace is None:
        return None

    pace_min_per_km = pace / 60
    for upper_bound, intensity in PACE_INTENSITY_BANDS:
        if pace_min_per_km < upper_bound:
            return intensity
    return SLOWEST_PACE_INTENSITY


def resolve_intensity(
    activity: Activity,
    threshold_hr: float = DEFAULT_THRESHOLD_HR
) -> IntensityEstimate:
    """
    Pick the intensity factor for an activity.

    Heart rate wins over pace; pace wins over the default.
    """
    value = heart_rate_intensity(activity, threshold_hr)
    if value is not None:
        return IntensityEstimate(source=IntensitySource.HEART_RATE, value=value)

    value = pace_intensity(activity)
    if value is not None:
        return IntensityEstimate(source=IntensitySource.PACE, value=value)

    return IntensityEstimate(source=IntensitySource.DEFAULT, value=DEFAULT_INTENSITY)


def daily_stress(activity: Activity, threshold_hr: float = DEFAULT_THRESHOLD_HR) -> float:
    """
    TSS for one activity.

    Formula:
    TSS = duration_hours * IF^2 * 100
    """
    duration_hours = activity.duration / 3600
    if duration_hours <= 0:
        return 0.0

    intensity = resolve_intensity(activity, threshold_hr).value
    return duration_hours * intensity * intensity * 100


# =========================================================================
# ATL / CTL / TSB
# =========================================================================

def _load_point(day: date, stress: float, ctl: float, atl: float) -> TrainingLoadPoint:
    tsb = ctl - atl
    return TrainingLoadPoint(
        date=day,
        daily_stress=stress,
        chronic_load=ctl,
        acute_load=atl,
        balance=tsb,
        fitness_level=min(ctl, LEVEL_CAP),
        fatigue_level=min(atl, LEVEL_CAP),
        form_level=max(min(tsb, FORM_LIMIT), -FORM_LIMIT),
    )


def build_daily_series(
    activities: Iterable[Activity],
    date_range: DateRange,
    threshold_hr: float = DEFAULT_THRESHOLD_HR
) -> Dict[date, float]:
    """
    Total TSS per calendar day over date_range.

    Every day in the range is present; rest days map to 0. Undated
    activities and activities outside the range are ignored.
    """
    series: Dict[date, float] = {day: 0.0 for day in date_range}

    for activity in activities:
        if activity.date is None:
            continue
        day = activity.date.date()
        if day not in date_range:
            continue
        series[day] += daily_stress(activity, threshold_hr)

    return series


def compute_load_curve(
    daily_series: Dict[date, float],
    date_range: DateRange
) -> List[TrainingLoadPoint]:
    """
    Run both EMAs forward over date_range, one point per day.

    Days missing from daily_series count as zero stress.
    """
    current_atl = 0.0
    current_ctl = 0.0
    points: List[TrainingLoadPoint] = []

    for day in date_range:
        day_tss = daily_series.get(day, 0.0)

        # Exponential moving average update
        current_atl = current_atl * (1 - ATL_ALPHA) + day_tss * ATL_ALPHA
        current_ctl = current_ctl * (1 - CTL_ALPHA) + day_tss * CTL_ALPHA

        points.append(_load_point(day, day_tss, current_ctl, current_atl))

    return points


def training_load_curve(
    activities: Iterable[Activity],
    date_range: DateRange,
    threshold_hr: float = DEFAULT_THRESHOLD_HR
) -> List[TrainingLoadPoint]:
    """build_daily_series followed by compute_load_curve."""
    series = build_daily_series(activities, date_range, threshold_hr)
    points = compute_load_curve(series, date_range)
    logger.debug(
        f"Computed load curve {date_range.start.isoformat()}..{date_range.end.isoformat()} "
        f"({len(points)} days)"
    )
    return points


def project_load(
    point: TrainingLoadPoint,
    planned_stress: Optional[List[float]] = None,
    days_ahead: int = 14
) -> List[TrainingLoadPoint]:
    """
    Project the curve forward from point.

    Args:
        point: Last known load point
        planned_stress: Optional planned TSS per future day.
                        Days beyond the list are assumed rest (TSS=0)
        days_ahead: Number of days to project

    Returns:
        One projected point per future day
    """
    if days_ahead < 0:
        raise ValidationError(f"days_ahead must be >= 0, got {days_ahead}", field="days_ahead")

    current_atl = point.acute_load
    current_ctl = point.chronic_load
    projections: List[TrainingLoadPoint] = []

    for day_offset in range(1, days_ahead + 1):
        if planned_stress and day_offset <= len(planned_stress):
            day_tss = planned_stress[day_offset - 1]
        else:
            day_tss = 0.0

        current_atl = current_atl * (1 - ATL_ALPHA) + day_tss * ATL_ALPHA
        current_ctl = current_ctl * (1 - CTL_ALPHA) + day_tss * CTL_ALPHA

        projections.append(
            _load_point(point.date + timedelta(days=day_offset), day_tss, current_ctl, current_atl)
        )

    return projections


def days_since_rest(points: List[TrainingLoadPoint]) -> int:
    """Consecutive days with stress, counting back from the last point."""
    count = 0
    for point in reversed(points):
        if point.daily_stress <= 0:
            break
        count += 1
    return count


# =========================================================================
# RECOMMENDATION
# =========================================================================

def recommend_workout(point: TrainingLoadPoint, days_since_rest: int = 0) -> Recommendation:
    """
    Decision table over form, fitness, fatigue and days since rest.

    First matching rule wins:
    - rest:     TSB < -30, fatigue > 85 or more than 6 days without rest
    - recovery: TSB < -15 or fatigue > 70
    - easy:     TSB < 0 or fitness < 40
    - interval: TSB > 15 and fitness > 60
    - tempo:    TSB > 5 and fitness > 45
    - easy otherwise
    """
    tsb = point.balance
    fitness = point.fitness_level
    fatigue = point.fatigue_level

    warnings: List[str] = []
    if fatigue > 80:
        warnings.append("High fatigue detected - consider easier training")
    if fitness < 20:
        warnings.append("Building base fitness - focus on consistency over intensity")
    if days_since_rest > 6:
        warnings.append("Overdue for rest day")

    if tsb < -30 or fatigue > 85 or days_since_rest > 6:
        if tsb < -30:
            reason = "High negative TSB indicates accumulated fatigue"
        elif days_since_rest > 6:
            reason = "Overdue for recovery"
        else:
            reason = "Very high acute training load"
        return Recommendation(
            workout_type=WorkoutType.REST,
            reason=reason,
            confidence=0.9,
            warnings=warnings
        )

    if tsb < -15 or fatigue > 70:
        return Recommendation(
            workout_type=WorkoutType.RECOVERY,
            reason="Moderate fatigue - active recovery recommended",
            confidence=0.8,
            target_duration_minutes=30,
            target_intensity=0.6,
            warnings=warnings
        )

    if tsb < 0 or fitness < 40:
        return Recommendation(
            workout_type=WorkoutType.EASY,
            reason=(
                "Building aerobic base with easy effort" if fitness < 40
                else "Slight fatigue - easy pace recommended"
            ),
            confidence=0.7,
            target_duration_minutes=45,
            target_intensity=0.7,
            warnings=warnings
        )

    if tsb > 15 and fitness > 60:
        return Recommendation(
            workout_type=WorkoutType.INTERVAL,
            reason="Great form detected - ready for high-intensity work",
            confidence=0.8,
            target_duration_minutes=60,
            target_intensity=0.9,
            warnings=warnings
        )

    if tsb > 5 and fitness > 45:
        return Recommendation(
            workout_type=WorkoutType.TEMPO,
            reason="Good fitness with manageable fatigue - tempo effort appropriate",
            confidence=0.7,
            target_duration_minutes=50,
            target_intensity=0.8,
            warnings=warnings
        )

    return Recommendation(
        workout_type=WorkoutType.EASY,
        reason="Balanced training load - maintaining aerobic fitness",
        confidence=0.6,
        target_duration_minutes=45,
        target_intensity=0.7,
        warnings=warnings
    )


# =========================================================================
# SUMMARY
# =========================================================================

def summarize_load(points: List[TrainingLoadPoint]) -> Optional[LoadSummary]:
    """
    Current fitness, fatigue and form from the last point of a curve.

    Form is "fresh" while balance is positive, "fatigued" otherwise.
    fitness_change_7_days compares chronic load with the point 7 days
    earlier. Returns None for an empty curve.
    """
    if not points:
        return None

    current = points[-1]
    fitness_change = None
    if len(points) > FITNESS_CHANGE_DAYS:
        earlier = points[-1 - FITNESS_CHANGE_DAYS]
        fitness_change = round(current.chronic_load - earlier.chronic_load, 1)

    return LoadSummary(
        date=current.date,
        chronic_load=round(current.chronic_load, 1),
        acute_load=round(current.acute_load, 1),
        balance=round(current.balance, 1),
        fitness_level=round(current.fitness_level, 1),
        fatigue_level=round(current.fatigue_level, 1),
        form_level=round(current.form_level, 1),
        form_state="fresh" if current.balance > 0 else "fatigued",
        fitness_change_7_days=fitness_change,
        stress_last_7_days=round(sum(p.daily_stress for p in points[-FITNESS_CHANGE_DAYS:]), 1),
    )


# =========================================================================
# WEEKLY LOAD AND CONSISTENCY
# =========================================================================

def weekly_load_summary(
    points: List[TrainingLoadPoint],
    activities: Iterable[Activity] = ()
) -> List[WeeklyLoad]:
    """
    Group a load curve into Monday-keyed weeks, oldest first.

    Distance comes from the dated activities falling on the curve's days.
    """
    if not points:
        return []

    first_day, last_day = points[0].date, points[-1].date
    km_by_week: Dict[date, float] = defaultdict(float)
    for activity in activities:
        if activity.date is None:
            continue
        day = activity.date.date()
        if first_day <= day <= last_day:
            km_by_week[week_start(day)] += activity.distance_km

    grouped: Dict[date, List[TrainingLoadPoint]] = defaultdict(list)
    for point in points:
        grouped[week_start(point.date)].append(point)

    weeks: List[WeeklyLoad] = []
    for monday in sorted(grouped):
        week_points = grouped[monday]
        count = len(week_points)
        weeks.append(WeeklyLoad(
            week_start=monday,
            total_stress=round(sum(p.daily_stress for p in week_points), 1),
            total_km=round(km_by_week.get(monday, 0.0), 1),
            days_with_activity=sum(1 for p in week_points if p.daily_stress > 0),
            avg_ctl=round(sum(p.chronic_load for p in week_points) / count, 1),
            avg_atl=round(sum(p.acute_load for p in week_points) / count, 1),
            avg_tsb=round(sum(p.balance for p in week_points) / count, 1),
        ))

    return weeks


def analyze_consistency(weeks: List[WeeklyLoad]) -> ConsistencyReport:
    """
    Score week-to-week consistency from 0 to 100.

    Averages three components: low stress variability, low distance
    variability, and training frequency (days per week / 7). Needs at
    least 4 weeks.
    """
    if len(weeks) < 4:
        return ConsistencyReport(
            score=0,
            insights=["Not enough data for consistency analysis"],
            recommendations=["Continue logging activities for better insights"]
        )

    stresses = [w.total_stress for w in weeks]
    distances = [w.total_km for w in weeks]
    avg_stress, stress_std = statistics.fmean(stresses), statistics.pstdev(stresses)
    avg_km, km_std = statistics.fmean(distances), statistics.pstdev(distances)
    avg_days = sum(w.days_with_activity for w in weeks) / len(weeks)

    # Lower variability = higher consistency; a zero mean has nothing to score
    stress_cv = safe_ratio(stress_std, avg_stress)
    km_cv = safe_ratio(km_std, avg_km)
    stress_consistency = max(0.0, 100 - stress_cv * 100) if stress_cv is not None else 0.0
    km_consistency = max(0.0, 100 - km_cv * 100) if km_cv is not None else 0.0
    frequency_consistency = (avg_days / 7) * 100

    score = round_half_up((stress_consistency + km_consistency + frequency_consistency) / 3)

    insights: List[str] = []
    recommendations: List[str] = []

    if score > 80:
        insights.append("Excellent training consistency")
    elif score > 60:
        insights.append("Good training consistency with room for improvement")
    else:
        insights.append("Training consistency needs attention")

    if avg_days < 3:
        insights.append("Training frequency is quite low")
        recommendations.append("Try to increase training frequency to 3-4 days per week")

    if stress_cv is not None and stress_cv > 0.5:
        insights.append("High week-to-week training load variability")
        recommendations.append("Consider more consistent weekly training loads")

    return ConsistencyReport(score=score, insights=insights, recommendations=recommendations)
