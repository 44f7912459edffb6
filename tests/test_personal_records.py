"""
Unit tests for Personal Record Tracking

Tests distance matching with GPS tolerance, confidence scoring,
monotonic detection on the append-only ledger and progress analysis.
"""

import pytest
from datetime import datetime, timedelta

from marathon_analytics.schemas import ConfidenceLevel, PersonalRecord, PRCategory
from marathon_analytics.services.marathon_prediction import predict
from marathon_analytics.services.personal_records import (
    DISTANCE_CATEGORIES,
    RecordLedger,
    analyze_progress,
    detect_records,
    detect_weekly_volume_record,
    get_distance_category,
    is_distance_match,
    record_confidence,
    scan_activities,
)


def category_def(category):
    return next(c for c in DISTANCE_CATEGORIES if c.category == category)


def record(category, value, when, improvement_percent=None, previous_value=None):
    return PersonalRecord(
        id=f"{category.value}_{when.isoformat()}",
        category=category,
        value=value,
        date=when,
        previous_value=previous_value,
        improvement_percent=improvement_percent,
    )


class TestDistanceMatching:

    @pytest.mark.parametrize("category,distance,expected", [
        (PRCategory.FASTEST_5K, 4800, True),
        (PRCategory.FASTEST_5K, 5200, True),
        (PRCategory.FASTEST_5K, 4799, False),
        (PRCategory.FASTEST_10K, 10400, True),
        (PRCategory.FASTEST_10K, 10401, False),
        (PRCategory.FASTEST_HALF_MARATHON, 20676, True),   # 21097 - 2%
        (PRCategory.FASTEST_HALF_MARATHON, 20675, False),
        (PRCategory.FASTEST_MARATHON, 41774, True),        # 42195 - 1%
        (PRCategory.FASTEST_MARATHON, 41772, False),
    ])
    def test_tolerance(self, category, distance, expected):
        assert is_distance_match(distance, category_def(category)) is expected

    def test_get_distance_category(self):
        assert get_distance_category(10050).category == PRCategory.FASTEST_10K
        assert get_distance_category(7000) is None
        assert get_distance_category(0) is None


class TestConfidence:

    def test_high_with_gps_and_heart_rate(self, make_activity, gps_points):
        activity = make_activity(track_points=gps_points, avg_heart_rate=150)
        assert record_confidence(activity) == ConfidenceLevel.HIGH

    def test_medium_without_gps(self, make_activity):
        assert record_confidence(make_activity(avg_heart_rate=150)) == ConfidenceLevel.MEDIUM
        assert record_confidence(make_activity()) == ConfidenceLevel.MEDIUM

    def test_low_with_implausible_pace(self, make_activity):
        # 2:00 /km, no GPS, no HR -> only the complete-fields points
        assert record_confidence(make_activity(distance=5000, duration=600)) == ConfidenceLevel.LOW

    def test_gps_alone_is_low(self, make_activity, gps_points):
        activity = make_activity(distance=5000, duration=600, date=None, track_points=gps_points)
        assert record_confidence(activity) == ConfidenceLevel.LOW


class TestDetection:

    def test_first_run_sets_records(self, make_activity):
        activity = make_activity(distance=5000, duration=1500, elevation_gain=40)

        records = detect_records(activity, RecordLedger())

        categories = {r.category for r in records}
        assert categories == {
            PRCategory.FASTEST_5K,
            PRCategory.FASTEST_1K,
            PRCategory.LONGEST_RUN,
            PRCategory.MOST_ELEVATION_GAIN,
        }
        five_k = next(r for r in records if r.category == PRCategory.FASTEST_5K)
        assert five_k.value == 1500
        assert five_k.previous_value is None
        assert five_k.improvement_percent is None
        assert five_k.pace == pytest.approx(300)
        assert five_k.id == f"fastest_5k_{activity.id}_{activity.date.isoformat()}"

    def test_fastest_1k_confidence(self, make_activity):
        short = detect_records(make_activity(distance=3000, duration=900), RecordLedger())
        longer = detect_records(make_activity(distance=6000, duration=1800), RecordLedger())

        short_1k = next(r for r in short if r.category == PRCategory.FASTEST_1K)
        longer_1k = next(r for r in longer if r.category == PRCategory.FASTEST_1K)
        assert short_1k.confidence == ConfidenceLevel.LOW
        assert short_1k.value == pytest.approx(300)
        assert longer_1k.confidence == ConfidenceLevel.MEDIUM

    def test_incomplete_activity_sets_nothing(self, make_activity):
        ledger = RecordLedger()
        assert detect_records(make_activity(date=None), ledger) == []
        assert detect_records(make_activity(duration=0), ledger) == []
        assert detect_records(make_activity(distance=0), ledger) == []

    def test_improvement_fields(self, make_activity, now):
        first = make_activity(distance=5000, duration=1500, date=now - timedelta(days=3))
        second = make_activity(distance=5000, duration=1450, date=now - timedelta(days=1))

        _, emitted = scan_activities([second, first])

        five_ks = [r for r in emitted if r.category == PRCategory.FASTEST_5K]
        assert [r.value for r in five_ks] == [1500, 1450]
        assert five_ks[1].previous_value == 1500
        assert five_ks[1].improvement_absolute == 50
        assert five_ks[1].improvement_percent == pytest.approx(50 / 1500 * 100)

    def test_records_are_monotonic(self, make_activity):
        """A slower run never replaces the current best."""
        durations = [1500, 1520, 1480, 1490, 1470, 1600]
        activities = [
            make_activity(distance=5000, duration=d, date=datetime(2024, 3, 1) + timedelta(days=7 * i))
            for i, d in enumerate(durations)
        ]

        ledger, _ = scan_activities(activities)

        history = [r.value for r in ledger.history(PRCategory.FASTEST_5K)]
        assert history == [1500, 1480, 1470]
        assert all(b < a for a, b in zip(history, history[1:]))
        assert ledger.current(PRCategory.FASTEST_5K).value == 1470

    def test_distance_categories_grow_upwards(self, make_activity):
        activities = [
            make_activity(distance=d, duration=d * 0.3, date=datetime(2024, 3, 1) + timedelta(days=10 * i))
            for i, d in enumerate([8000, 12000, 9000, 15000])
        ]

        ledger, _ = scan_activities(activities)

        assert [r.value for r in ledger.history(PRCategory.LONGEST_RUN)] == [8000, 12000, 15000]

    def test_undated_activities_skipped_by_scan(self, make_activity):
        ledger, emitted = scan_activities([make_activity(date=None)])
        assert emitted == []
        assert len(ledger) == 0


class TestWeeklyVolume:

    def test_window_accumulates(self, make_activity):
        start = datetime(2024, 5, 6, 7, 0)
        activities = [
            make_activity(distance=10000, date=start + timedelta(days=d))
            for d in (0, 2, 4)
        ]

        ledger, _ = scan_activities(activities)

        volumes = [r.value for r in ledger.history(PRCategory.MOST_WEEKLY_VOLUME)]
        assert volumes == [10000, 20000, 30000]
        assert ledger.current(PRCategory.MOST_WEEKLY_VOLUME).confidence == ConfidenceLevel.HIGH

    def test_isolated_run_does_not_beat_volume(self, make_activity):
        start = datetime(2024, 5, 6, 7, 0)
        activities = [
            make_activity(distance=10000, date=start),
            make_activity(distance=10000, date=start + timedelta(days=1)),
            make_activity(distance=12000, date=start + timedelta(days=20)),
        ]

        ledger, _ = scan_activities(activities)

        assert ledger.current(PRCategory.MOST_WEEKLY_VOLUME).value == 20000

    def test_window_slides_with_inclusive_edges(self, make_activity):
        start = datetime(2024, 5, 6, 7, 0)
        activities = [
            make_activity(distance=distance, date=start + timedelta(days=day))
            for day, distance in ((0, 5000), (3, 6000), (7, 4000), (8, 3000), (15, 20000))
        ]

        ledger, _ = scan_activities(reversed(activities))

        volumes = [r.value for r in ledger.history(PRCategory.MOST_WEEKLY_VOLUME)]
        # Day 7 still counts day 0; day 8 no longer does
        assert volumes == [5000, 11000, 15000, 23000]

    def test_long_daily_history(self, make_activity):
        start = datetime(2024, 1, 1, 7, 0)
        activities = [make_activity(distance=1000, date=start + timedelta(days=d)) for d in range(200)]

        ledger, _ = scan_activities(activities)

        assert ledger.current(PRCategory.MOST_WEEKLY_VOLUME).value == 8000

    def test_same_start_time_counts_both(self, make_activity):
        when = datetime(2024, 5, 6, 7, 0)
        activities = [make_activity(distance=5000, date=when), make_activity(distance=5000, date=when)]

        ledger, _ = scan_activities(activities)

        assert [r.value for r in ledger.history(PRCategory.MOST_WEEKLY_VOLUME)] == [10000]

    def test_scan_matches_single_detection(self, make_activity):
        start = datetime(2024, 5, 6, 7, 0)
        history = [make_activity(distance=8000, date=start + timedelta(days=d)) for d in (0, 2, 9)]

        _, emitted = scan_activities(history)
        scanned = [r.value for r in emitted if r.category == PRCategory.MOST_WEEKLY_VOLUME]

        single = detect_records(history[1], RecordLedger(), history=history)
        weekly = [r.value for r in single if r.category == PRCategory.MOST_WEEKLY_VOLUME]
        assert weekly == [16000]
        assert scanned == [8000, 16000]

    def test_empty_or_undated_window(self, make_activity):
        assert detect_weekly_volume_record([], RecordLedger()) is None
        assert detect_weekly_volume_record([make_activity(date=None)], RecordLedger()) is None


class TestRecordLedger:

    def test_append_returns_new_ledger(self, now):
        ledger = RecordLedger()
        pr = record(PRCategory.FASTEST_5K, 1500, now)

        updated = ledger.append([pr])

        assert len(ledger) == 0
        assert len(updated) == 1
        assert ledger.current(PRCategory.FASTEST_5K) is None
        assert updated.current(PRCategory.FASTEST_5K) == pr

    def test_from_records_orders_history(self, now):
        older = record(PRCategory.LONGEST_RUN, 20000, now - timedelta(days=30))
        newer = record(PRCategory.LONGEST_RUN, 25000, now - timedelta(days=2))

        ledger = RecordLedger.from_records([newer, older])

        assert ledger.history(PRCategory.LONGEST_RUN) == (older, newer)
        assert ledger.categories() == [PRCategory.LONGEST_RUN]

    def test_equality(self, now):
        pr = record(PRCategory.FASTEST_5K, 1500, now)
        assert RecordLedger().append([pr]) == RecordLedger.from_records([pr])

    def test_summarize_trend(self, now):
        ledger = RecordLedger.from_records([
            record(PRCategory.FASTEST_10K, 3100, now - timedelta(days=60)),
            record(PRCategory.FASTEST_10K, 3000, now - timedelta(days=10), improvement_percent=3.2, previous_value=3100),
        ])

        summary = ledger.summarize(PRCategory.FASTEST_10K, now)

        assert summary.current.value == 3000
        assert summary.previous.value == 3100
        assert summary.record_count == 2
        assert summary.improvement_30_days == pytest.approx(3.2)
        assert summary.trend == "improving"

    def test_summarize_stable_and_missing(self, now):
        ledger = RecordLedger.from_records([record(PRCategory.FASTEST_10K, 3100, now - timedelta(days=60))])

        assert ledger.summarize(PRCategory.FASTEST_10K, now).trend == "stable"
        assert ledger.summarize(PRCategory.FASTEST_5K, now) is None


class TestProgressAnalysis:

    def test_no_risk(self, now):
        ledger = RecordLedger.from_records([
            record(PRCategory.FASTEST_5K, 1500, now - timedelta(days=60), improvement_percent=3),
            record(PRCategory.FASTEST_10K, 3100, now - timedelta(days=120), improvement_percent=20),
        ])

        analysis = analyze_progress(ledger, now)

        assert analysis.count_90_days == 1
        assert analysis.count_30_days == 0
        assert analysis.risk_score == 0
        assert analysis.warnings == []

    def test_all_signals(self, now):
        ledger = RecordLedger.from_records([
            record(category, 100, now - timedelta(days=d), improvement_percent=12)
            for category, d in (
                (PRCategory.FASTEST_5K, 2),
                (PRCategory.FASTEST_10K, 5),
                (PRCategory.FASTEST_1K, 9),
                (PRCategory.LONGEST_RUN, 20),
            )
        ])

        analysis = analyze_progress(ledger, now)

        assert analysis.rapid_improvement is True
        assert analysis.frequent_records is True
        assert analysis.average_improvement == pytest.approx(12)
        assert analysis.risk_score == 100
        assert len(analysis.warnings) == 3
        assert analysis.to_dict()["injury_risk"]["risk_score"] == 100

    def test_rapid_improvement_only(self, now):
        ledger = RecordLedger.from_records([
            record(PRCategory.FASTEST_5K, 100, now - timedelta(days=3), improvement_percent=6),
            record(PRCategory.FASTEST_10K, 100, now - timedelta(days=10), improvement_percent=6),
            record(PRCategory.LONGEST_RUN, 100, now - timedelta(days=50), improvement_percent=6),
        ])

        analysis = analyze_progress(ledger, now)

        assert analysis.rapid_improvement is True
        assert analysis.frequent_records is False
        assert analysis.risk_score == 40
        assert analysis.warnings == ["Multiple significant improvements detected - monitor for overtraining"]

    def test_empty_ledger(self, now):
        analysis = analyze_progress(RecordLedger(), now)
        assert analysis.risk_score == 0
        assert analysis.average_improvement == 0


class TestEndToEnd:
    """Three race-distance efforts feed both records and prediction."""

    def test_three_efforts(self, make_activity):
        activities = [
            make_activity(distance=5000, duration=1500, date=datetime(2024, 6, 1, 8)),
            make_activity(distance=10000, duration=3000, date=datetime(2024, 6, 8, 8)),
            make_activity(distance=21097, duration=6300, date=datetime(2024, 6, 15, 8)),
        ]

        ledger, emitted = scan_activities(activities)

        race_categories = {c.category for c in DISTANCE_CATEGORIES}
        race_records = [r for r in emitted if r.category in race_categories]
        assert [r.category for r in race_records] == [
            PRCategory.FASTEST_5K,
            PRCategory.FASTEST_10K,
            PRCategory.FASTEST_HALF_MARATHON,
        ]
        assert all(r.previous_value is None for r in race_records)

        prediction = predict(activities)
        assert prediction.sample_size == 3
        assert prediction.reliability == ConfidenceLevel.LOW
        assert prediction.seconds > 0
