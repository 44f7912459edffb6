"""
Training Report

Composes the analytics services into one JSON-ready report:
normalize -> dedupe -> running only -> cap, then weekly volume, load
curve and recommendation, marathon prediction, personal records and
personalised zones.

The services never call each other; this module is the caller that
wires their outputs together and applies the configured policies
(activity cap, load window, default threshold HR).
"""

from dataclasses import asdict
from datetime import datetime, timedelta
from typing import Any, Dict, Iterable, Optional
import logging

from marathon_analytics.core.config import Settings, settings as default_settings
from marathon_analytics.schemas import DateRange, UserProfile
from marathon_analytics.services.activity_normalizer import (
    deduplicate,
    filter_running,
    normalize_with_report,
)
from marathon_analytics.services.aggregation import (
    activity_summary,
    cap_recent,
    load_ratio,
    weekly_distance,
)
from marathon_analytics.services.marathon_prediction import goal_gap, predict
from marathon_analytics.services.personal_records import analyze_progress, scan_activities
from marathon_analytics.services.training_load import (
    analyze_consistency,
    days_since_rest,
    recommend_workout,
    summarize_load,
    training_load_curve,
    weekly_load_summary,
)
from marathon_analytics.services.training_zones import (
    format_duration,
    heart_rate_zones,
    pace_zones,
)

logger = logging.getLogger(__name__)


def _threshold_hr(profile: Optional[UserProfile], config: Settings) -> int:
    if profile is None:
        return config.DEFAULT_THRESHOLD_HR
    return profile.effective_threshold_heart_rate(default=config.DEFAULT_THRESHOLD_HR)


def _zones(profile: Optional[UserProfile]) -> Dict[str, Any]:
    zones: Dict[str, Any] = {"pace": [], "heart_rate": []}
    if profile is None:
        return zones

    if profile.goal_time_seconds:
        zones["pace"] = [
            {**asdict(zone), "formatted": zone.formatted}
            for zone in pace_zones(profile.goal_time_seconds)
        ]

    if (
        profile.max_heart_rate and profile.resting_heart_rate
        and profile.max_heart_rate > profile.resting_heart_rate
    ):
        zones["heart_rate"] = [
            asdict(zone)
            for zone in heart_rate_zones(profile.max_heart_rate, profile.resting_heart_rate)
        ]

    return zones


def build_training_report(
    raw_records: Iterable[Any],
    profile: Optional[UserProfile] = None,
    now: Optional[datetime] = None,
    config: Optional[Settings] = None
) -> Dict[str, Any]:
    """
    Build the full analytics report for one athlete.

    Args:
        raw_records: Provider / file records, see activity_normalizer
        profile: Optional personalisation (threshold HR, goal time, zones)
        now: Reference time for every rolling window; defaults to the clock
        config: Settings override

    Returns:
        JSON-serialisable dict
    """
    config = config or default_settings
    now = now or datetime.now()

    normalization = normalize_with_report(raw_records)
    activities = filter_running(deduplicate(normalization.activities))
    activities = cap_recent(activities, config.MAX_ACTIVITIES)
    logger.info(
        f"Building report from {len(activities)} running activities "
        f"({normalization.dropped} records dropped)"
    )

    # Training load over the reported window plus lead-in
    today = now.date()
    window = DateRange.ending_on(today, config.LOAD_WINDOW_DAYS)
    full_range = DateRange(start=window.start - timedelta(days=config.LOAD_LEAD_IN_DAYS), end=today)
    curve = training_load_curve(activities, full_range, _threshold_hr(profile, config))
    reported = [point for point in curve if point.date in window]

    recommendation = recommend_workout(curve[-1], days_since_rest(curve))
    weeks = weekly_load_summary(reported, activities)

    prediction = predict(activities)
    comparison = goal_gap(prediction, profile) if profile else None

    ledger, _ = scan_activities(activities)
    summaries = [ledger.summarize(category, now) for category in ledger.categories()]

    return {
        "generated_at": now.isoformat(),
        "profile": profile.model_dump(mode="json") if profile else None,
        "normalization": normalization.to_dict(),
        "summary": activity_summary(activities, now).to_dict(),
        "weekly_distance": [bucket.model_dump(mode="json") for bucket in weekly_distance(activities)],
        "load_ratio": load_ratio(activities, now).to_dict(),
        "training_load": {
            "curve": [point.model_dump(mode="json") for point in reported],
            "summary": summarize_load(curve).to_dict(),
            "recommendation": recommendation.to_dict(),
            "weekly": [week.to_dict() for week in weeks],
            "consistency": analyze_consistency(weeks).to_dict(),
        },
        "prediction": {
            **prediction.model_dump(mode="json"),
            "formatted": format_duration(prediction.seconds) if prediction.has_estimate else None,
            "goal": comparison.to_dict() if comparison else None,
        },
        "personal_records": {
            "current": [
                {
                    "category": summary.category.value,
                    "record": summary.current.model_dump(mode="json"),
                    "record_count": summary.record_count,
                    "improvement_30_days": round(summary.improvement_30_days, 2),
                    "improvement_90_days": round(summary.improvement_90_days, 2),
                    "trend": summary.trend,
                }
                for summary in summaries
            ],
            "analysis": analyze_progress(ledger, now).to_dict(),
        },
        "zones": _zones(profile),
    }
