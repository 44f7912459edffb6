"""
Personal Record (PR) Tracking Service

Tracks best efforts across standard distances with GPS tolerance handling,
plus auxiliary categories: estimated fastest 1K, longest run, most weekly
volume and most elevation gain.

The ledger is append-only. Detection never mutates a ledger; callers get
new records back and append them to obtain a new ledger.
"""
from collections import defaultdict
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, Iterable, List, Mapping, Optional, Sequence, Tuple
import logging

from marathon_analytics.core.dates import align, within_window
from marathon_analytics.core.numbers import safe_ratio
from marathon_analytics.schemas import Activity, ConfidenceLevel, PersonalRecord, PRCategory

logger = logging.getLogger(__name__)


@dataclass(frozen=True)
class DistanceCategory:
    """A standard race distance with a symmetric match tolerance."""
    category: PRCategory
    display_name: str
    meters: float
    tolerance: float  # fraction of meters

    @property
    def bounds(self) -> Tuple[float, float]:
        margin = self.meters * self.tolerance
        return self.meters - margin, self.meters + margin


# Distance categories with tolerance for imperfect GPS measurement
DISTANCE_CATEGORIES: Tuple[DistanceCategory, ...] = (
    DistanceCategory(PRCategory.FASTEST_5K, "5K", 5000, 0.04),              # 4.8K - 5.2K
    DistanceCategory(PRCategory.FASTEST_10K, "10K", 10000, 0.04),           # 9.6K - 10.4K
    DistanceCategory(PRCategory.FASTEST_HALF_MARATHON, "Half Marathon", 21097, 0.02),
    DistanceCategory(PRCategory.FASTEST_MARATHON, "Marathon", 42195, 0.01),
)

MIN_1K_ESTIMATE_DISTANCE_M = 1000
CONFIDENT_1K_ESTIMATE_DISTANCE_M = 5000
WEEKLY_WINDOW_DAYS = 7

# Progress analysis
SIGNIFICANT_IMPROVEMENT_PERCENT = 5
TREND_THRESHOLD_PERCENT = 2


@dataclass
class CategorySummary:
    """Current standing and recent improvement for one category."""
    category: PRCategory
    current: Optional[PersonalRecord]
    previous: Optional[PersonalRecord]
    record_count: int
    improvement_30_days: float
    improvement_90_days: float
    trend: str  # "improving", "stable", "declining"


@dataclass
class PRAnalysis:
    """Recent record activity and the injury-risk signal derived from it."""
    recent_records: List[PersonalRecord]
    count_30_days: int
    count_90_days: int
    average_improvement: float
    significant_improvements: List[PersonalRecord]
    rapid_improvement: bool
    frequent_records: bool
    risk_score: int  # 0-100
    warnings: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "recent_records": [r.model_dump(mode="json") for r in self.recent_records],
            "improvements": {
                "count_30_days": self.count_30_days,
                "count_90_days": self.count_90_days,
                "average_improvement": round(self.average_improvement, 2),
                "significant_improvements": [r.id for r in self.significant_improvements],
            },
            "injury_risk": {
                "rapid_improvement": self.rapid_improvement,
                "frequent_records": self.frequent_records,
                "risk_score": self.risk_score,
                "warnings": list(self.warnings),
            },
        }


def _wall_clock(moment: datetime) -> datetime:
    return moment.replace(tzinfo=None)


class RecordLedger:
    """
    Immutable, category-indexed history of personal records.

    Each category's history is ordered oldest first; the last entry is
    the current record. append() returns a new ledger and leaves this
    one untouched.
    """

    def __init__(self, histories: Optional[Mapping[PRCategory, Sequence[PersonalRecord]]] = None):
        self._histories: Dict[PRCategory, Tuple[PersonalRecord, ...]] = {
            PRCategory(category): tuple(records)
            for category, records in (histories or {}).items()
            if records
        }

    @classmethod
    def from_records(cls, records: Iterable[PersonalRecord]) -> "RecordLedger":
        """Group loose records by category, each history sorted by date."""
        grouped: Dict[PRCategory, List[PersonalRecord]] = defaultdict(list)
        for record in records:
            grouped[record.category].append(record)
        return cls({
            category: sorted(history, key=lambda r: _wall_clock(r.date))
            for category, history in grouped.items()
        })

    def current(self, category: PRCategory) -> Optional[PersonalRecord]:
        history = self._histories.get(category)
        return history[-1] if history else None

    def history(self, category: PRCategory) -> Tuple[PersonalRecord, ...]:
        return self._histories.get(category, ())

    def categories(self) -> List[PRCategory]:
        return [c for c in PRCategory if c in self._histories]

    def records(self) -> List[PersonalRecord]:
        """Every record in the ledger, grouped by category."""
        return [record for category in self.categories() for record in self._histories[category]]

    def append(self, records: Iterable[PersonalRecord]) -> "RecordLedger":
        histories: Dict[PRCategory, Tuple[PersonalRecord, ...]] = dict(self._histories)
        for record in records:
            histories[record.category] = histories.get(record.category, ()) + (record,)
        return RecordLedger(histories)

    def summarize(self, category: PRCategory, now: datetime) -> Optional[CategorySummary]:
        """
        Current and previous record with cumulative improvement over
        the last 30 and 90 days. Trend is improving above +2%,
        declining below -2%, stable otherwise.
        """
        history = self.history(category)
        if not history:
            return None

        improvement_30 = sum(r.improvement_percent or 0 for r in history if _since(r.date, now, 30))
        improvement_90 = sum(r.improvement_percent or 0 for r in history if _since(r.date, now, 90))

        if improvement_30 > TREND_THRESHOLD_PERCENT:
            trend = "improving"
        elif improvement_30 < -TREND_THRESHOLD_PERCENT:
            trend = "declining"
        else:
            trend = "stable"

        return CategorySummary(
            category=category,
            current=history[-1],
            previous=history[-2] if len(history) > 1 else None,
            record_count=len(history),
            improvement_30_days=improvement_30,
            improvement_90_days=improvement_90,
            trend=trend,
        )

    def __len__(self) -> int:
        return sum(len(history) for history in self._histories.values())

    def __eq__(self, other) -> bool:
        if not isinstance(other, RecordLedger):
            return NotImplemented
        return self._histories == other._histories

    def __repr__(self) -> str:
        counts = ", ".join(f"{c.value}={len(self._histories[c])}" for c in self.categories())
        return f"RecordLedger({counts})"


def _since(moment: datetime, now: datetime, days: int) -> bool:
    moment, now = align(moment, now)
    return moment >= now - timedelta(days=days)


# =========================================================================
# MATCHING AND CONFIDENCE
# =========================================================================

def is_distance_match(distance: float, category: DistanceCategory) -> bool:
    """|distance - canonical| <= canonical * tolerance"""
    return abs(distance - category.meters) <= category.meters * category.tolerance


def get_distance_category(distance_meters: float) -> Optional[DistanceCategory]:
    """The standard distance an activity counts toward, if any."""
    if not distance_meters or distance_meters <= 0:
        return None
    for category in DISTANCE_CATEGORIES:
        if is_distance_match(distance_meters, category):
            return category
    return None


def record_confidence(activity: Activity) -> ConfidenceLevel:
    """
    Confidence in a record set by activity.

    Score: GPS track +3, complete core fields +2, pace within
    3:00-8:00 /km +2, heart rate +1. 6+ is high, 4-5 medium.
    """
    score = 0

    if activity.has_gps:
        score += 3

    if activity.distance > 0 and activity.duration > 0 and activity.date is not None:
        score += 2

    pace = activity.pace_seconds_per_km
    if pace is not None and 3 <= pace / 60 <= 8:
        score += 2

    if activity.avg_heart_rate:
        score += 1

    if score >= 6:
        return ConfidenceLevel.HIGH
    if score >= 4:
        return ConfidenceLevel.MEDIUM
    return ConfidenceLevel.LOW


# =========================================================================
# DETECTION
# =========================================================================

def _improves(category: PRCategory, value: float, current: Optional[PersonalRecord]) -> bool:
    if current is None:
        return True
    if category.lower_is_better:
        return value < current.value
    return value > current.value


def _new_record(
    category: PRCategory,
    value: float,
    when: datetime,
    activity_id: str,
    current: Optional[PersonalRecord],
    confidence: ConfidenceLevel,
    pace: Optional[float] = None,
) -> PersonalRecord:
    previous = current.value if current else None
    improvement = None
    improvement_percent = None
    if previous is not None:
        improvement = previous - value if category.lower_is_better else value - previous
        ratio = safe_ratio(improvement, previous)
        improvement_percent = ratio * 100 if ratio is not None else None

    return PersonalRecord(
        id=f"{category.value}_{activity_id}_{when.isoformat()}",
        category=category,
        value=value,
        date=when,
        activity_id=activity_id,
        previous_value=previous,
        improvement_absolute=improvement,
        improvement_percent=improvement_percent,
        confidence=confidence,
        pace=pace,
    )


def detect_weekly_volume_record(
    window: Iterable[Activity],
    ledger: RecordLedger
) -> Optional[PersonalRecord]:
    """
    Weekly volume record for a set of activities (meters).

    Dated at the last dated activity in the window. None when the
    window is empty, undated or not an improvement.
    """
    window = list(window)
    total = sum(a.distance for a in window)
    if total <= 0:
        return None

    dated = sorted((a for a in window if a.date is not None), key=lambda a: _wall_clock(a.date))
    if not dated:
        return None

    category = PRCategory.MOST_WEEKLY_VOLUME
    current = ledger.current(category)
    if not _improves(category, total, current):
        return None

    last = dated[-1]
    return _new_record(category, total, last.date, last.id, current, ConfidenceLevel.HIGH)


def _weekly_window(activity: Activity, history: Iterable[Activity]) -> List[Activity]:
    window = [
        a for a in history
        if a.date is not None and a.id != activity.id
        and within_window(a.date, activity.date, WEEKLY_WINDOW_DAYS)
    ]
    window.append(activity)
    return window


def _sliding_windows(ordered: Sequence[Activity]) -> Iterable[Tuple[Activity, List[Activity]]]:
    """Pair each activity of a wall-clock sorted list with its 7-day window."""
    start = end = 0
    span = timedelta(days=WEEKLY_WINDOW_DAYS)
    for activity in ordered:
        moment = _wall_clock(activity.date)
        while end < len(ordered) and _wall_clock(ordered[end].date) <= moment:
            end += 1
        while _wall_clock(ordered[start].date) < moment - span:
            start += 1
        window = [a for a in ordered[start:end] if a.id != activity.id]
        window.append(activity)
        yield activity, window


def detect_records(
    activity: Activity,
    ledger: RecordLedger,
    history: Optional[Iterable[Activity]] = None
) -> List[PersonalRecord]:
    """
    Records set by one activity against the ledger's current bests.

    history, when given, is the athlete's activity list; the 7-day
    window ending at this activity is checked for a weekly volume
    record. Activities missing a date, distance or duration set nothing.
    """
    window = None
    if history is not None and activity.date is not None:
        window = _weekly_window(activity, history)
    return _detect(activity, ledger, window)


def _detect(
    activity: Activity,
    ledger: RecordLedger,
    window: Optional[List[Activity]]
) -> List[PersonalRecord]:
    if activity.date is None or activity.distance <= 0 or activity.duration <= 0:
        return []

    records: List[PersonalRecord] = []
    confidence = record_confidence(activity)
    pace = activity.pace_seconds_per_km

    for distance_category in DISTANCE_CATEGORIES:
        if not is_distance_match(activity.distance, distance_category):
            continue
        category = distance_category.category
        current = ledger.current(category)
        if _improves(category, activity.duration, current):
            records.append(_new_record(
                category, activity.duration, activity.date, activity.id, current, confidence, pace
            ))

    # Estimated from whole-activity pace; split data would be more accurate
    if activity.distance >= MIN_1K_ESTIMATE_DISTANCE_M:
        category = PRCategory.FASTEST_1K
        current = ledger.current(category)
        if _improves(category, pace, current):
            estimate_confidence = (
                ConfidenceLevel.MEDIUM if activity.distance >= CONFIDENT_1K_ESTIMATE_DISTANCE_M
                else ConfidenceLevel.LOW
            )
            records.append(_new_record(
                category, pace, activity.date, activity.id, current, estimate_confidence, pace
            ))

    category = PRCategory.LONGEST_RUN
    current = ledger.current(category)
    if _improves(category, activity.distance, current):
        records.append(_new_record(
            category, activity.distance, activity.date, activity.id, current, ConfidenceLevel.HIGH
        ))

    if activity.elevation_gain:
        category = PRCategory.MOST_ELEVATION_GAIN
        current = ledger.current(category)
        if _improves(category, activity.elevation_gain, current):
            records.append(_new_record(
                category, activity.elevation_gain, activity.date, activity.id, current, ConfidenceLevel.HIGH
            ))

    if window is not None:
        weekly = detect_weekly_volume_record(window, ledger)
        if weekly is not None:
            records.append(weekly)

    return records


def scan_activities(
    activities: Iterable[Activity],
    ledger: Optional[RecordLedger] = None
) -> Tuple[RecordLedger, List[PersonalRecord]]:
    """
    Run detection over activities in date order.

    Each activity is checked against the ledger as updated by the
    activities before it. Returns the final ledger and the records
    emitted along the way.
    """
    ledger = ledger or RecordLedger()
    ordered = sorted(
        (a for a in activities if a.date is not None),
        key=lambda a: _wall_clock(a.date)
    )

    emitted: List[PersonalRecord] = []
    for activity, window in _sliding_windows(ordered):
        records = _detect(activity, ledger, window)
        if records:
            ledger = ledger.append(records)
            emitted.extend(records)

    logger.info(f"Scanned {len(ordered)} activities, {len(emitted)} new personal records")
    return ledger, emitted


# =========================================================================
# PROGRESS ANALYSIS
# =========================================================================

def analyze_progress(ledger: RecordLedger, now: datetime) -> PRAnalysis:
    """
    Injury-risk signal from recent records.

    Looks at records from the last 90 days. Contributions are additive:
    - rapid improvement (3+ records improving > 5% and 2+ in 30 days): +40
    - frequent records (4+ in 30 days): +30
    - average improvement above 10%: +30
    """
    recent = [r for r in ledger.records() if _since(r.date, now, 90)]
    last_30 = [r for r in recent if _since(r.date, now, 30)]
    significant = [
        r for r in recent
        if r.improvement_percent and r.improvement_percent > SIGNIFICANT_IMPROVEMENT_PERCENT
    ]

    average_improvement = (
        sum(r.improvement_percent or 0 for r in recent) / len(recent) if recent else 0.0
    )

    rapid_improvement = len(significant) >= 3 and len(last_30) >= 2
    frequent_records = len(last_30) >= 4

    risk_score = 0
    warnings: List[str] = []

    if rapid_improvement:
        risk_score += 40
        warnings.append("Multiple significant improvements detected - monitor for overtraining")

    if frequent_records:
        risk_score += 30
        warnings.append("High frequency of PRs - ensure adequate recovery")

    if average_improvement > 10:
        risk_score += 30
        warnings.append("Very rapid pace improvements - risk of injury if not managed carefully")

    return PRAnalysis(
        recent_records=recent,
        count_30_days=len(last_30),
        count_90_days=len(recent),
        average_improvement=average_improvement,
        significant_improvements=significant,
        rapid_improvement=rapid_improvement,
        frequent_records=frequent_records,
        risk_score=min(risk_score, 100),
        warnings=warnings,
    )
