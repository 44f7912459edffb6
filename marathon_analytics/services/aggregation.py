"""
Aggregation Engine

Calendar-aware rollups of activity distance:
- weekly_distance: sparse Monday-keyed weekly totals
- last_n_days_distance: rolling window ending at an explicit `now`
- activity_summary: headline totals for a dashboard
- load_ratio: 7-day volume against the 4-week average (injury-risk signal)

Every date-based function skips activities without a date. Nothing here
reads the clock; callers pass `now`.
"""

from collections import defaultdict
from dataclasses import dataclass, asdict
from datetime import date, datetime
from typing import Any, Dict, Iterable, List, Optional
import logging

from marathon_analytics.core.dates import week_start, within_window
from marathon_analytics.core.numbers import safe_ratio
from marathon_analytics.schemas import Activity, WeeklyBucket

logger = logging.getLogger(__name__)

DEFAULT_ACTIVITY_CAP = 1000

# Acute:chronic volume bands
ELEVATED_RISK_RATIO = 1.5
UNDERTRAINING_RATIO = 0.8


@dataclass
class ActivitySummary:
    """Headline numbers for a set of activities."""
    activity_count: int
    dated_count: int
    gps_count: int
    total_km: float
    total_duration_seconds: float
    average_speed_mps: Optional[float]
    last_7_days_km: float
    last_30_days_km: float

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class LoadRatioAssessment:
    """Last-7-days km compared with the weekly average of the last 28 days."""
    acute_km: float
    chronic_weekly_km: float
    ratio: Optional[float]
    status: str  # "elevated_risk", "undertraining", "stable", "insufficient_data"
    message: str

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


def _dated(activities: Iterable[Activity]) -> List[Activity]:
    return [a for a in activities if a.date is not None]


def _recency_key(activity: Activity):
    # Wall clock only, so naive and aware dates sort together
    if activity.date is None:
        return (0, datetime.min)
    return (1, activity.date.replace(tzinfo=None))


def weekly_distance(activities: Iterable[Activity]) -> List[WeeklyBucket]:
    """
    Sum distance (km) per ISO week, keyed by the Monday of the week.

    Weeks without activity are not synthesized. Output is ascending.
    """
    totals: Dict[date, float] = defaultdict(float)
    for activity in _dated(activities):
        totals[week_start(activity.date)] += activity.distance_km

    return [
        WeeklyBucket(week_start=monday, total_km=totals[monday])
        for monday in sorted(totals)
    ]


def last_n_days_distance(activities: Iterable[Activity], n: float, now: datetime) -> float:
    """
    Total km of activities dated within [now - n days, now].

    Rolling wall-clock window, not calendar-day truncation.
    """
    return sum(
        activity.distance_km
        for activity in _dated(activities)
        if within_window(activity.date, now, n)
    )


def cap_recent(activities: Iterable[Activity], limit: int = DEFAULT_ACTIVITY_CAP) -> List[Activity]:
    """
    Keep only the `limit` most recent activities.

    Undated activities sort oldest. Input order is preserved among the
    survivors.
    """
    activities = list(activities)
    if limit <= 0 or len(activities) <= limit:
        return activities

    indexed = list(enumerate(activities))
    ranked = sorted(indexed, key=lambda pair: _recency_key(pair[1]))
    keep = {index for index, _ in ranked[-limit:]}
    logger.debug(f"Capped {len(activities)} activities to the {limit} most recent")
    return [activity for index, activity in indexed if index in keep]


def activity_summary(activities: Iterable[Activity], now: datetime) -> ActivitySummary:
    activities = list(activities)
    total_distance = sum(a.distance for a in activities)
    total_duration = sum(a.duration for a in activities)

    return ActivitySummary(
        activity_count=len(activities),
        dated_count=len(_dated(activities)),
        gps_count=sum(1 for a in activities if a.has_gps),
        total_km=total_distance / 1000,
        total_duration_seconds=total_duration,
        average_speed_mps=safe_ratio(total_distance, total_duration),
        last_7_days_km=last_n_days_distance(activities, 7, now),
        last_30_days_km=last_n_days_distance(activities, 30, now),
    )


def load_ratio(activities: Iterable[Activity], now: datetime) -> LoadRatioAssessment:
    """
    Acute:chronic volume ratio.

    > 1.5 flags elevated injury risk, < 0.8 flags undertraining.
    """
    activities = list(activities)
    acute_km = last_n_days_distance(activities, 7, now)
    chronic_weekly_km = last_n_days_distance(activities, 28, now) / 4

    ratio = safe_ratio(acute_km, chronic_weekly_km)
    if ratio is None:
        return LoadRatioAssessment(
            acute_km=acute_km,
            chronic_weekly_km=chronic_weekly_km,
            ratio=None,
            status="insufficient_data",
            message="Not enough recent volume to assess load.",
        )

    if ratio > ELEVATED_RISK_RATIO:
        status = "elevated_risk"
        message = "Volume increased sharply. Elevated injury risk."
    elif ratio < UNDERTRAINING_RATIO:
        status = "undertraining"
        message = "Volume well below your recent average. Possible detraining."
    else:
        status = "stable"
        message = "Training load is stable."

    return LoadRatioAssessment(
        acute_km=acute_km,
        chronic_weekly_km=chronic_weekly_km,
        ratio=round(ratio, 2),
        status=status,
        message=message,
    )
