"""
Pytest configuration and fixtures

Every test passes `now` explicitly; nothing here reads the clock.
"""
import pytest
from datetime import datetime, timedelta

from marathon_analytics.schemas import Activity, TrackPoint, UserProfile


REFERENCE_NOW = datetime(2024, 6, 15, 12, 0, 0)  # Saturday


@pytest.fixture
def now():
    return REFERENCE_NOW


@pytest.fixture
def make_activity():
    """Factory for canonical activities with sensible running defaults."""
    counter = {"n": 0}

    def _make(
        distance=10000,
        duration=3000,
        date=REFERENCE_NOW - timedelta(days=1),
        **kwargs
    ):
        counter["n"] += 1
        kwargs.setdefault("id", f"act-{counter['n']}")
        return Activity(distance=distance, duration=duration, date=date, **kwargs)

    return _make


@pytest.fixture
def gps_points():
    return tuple(
        TrackPoint(lat=52.37 + i * 0.001, lng=4.89, elevation=5.0 + i)
        for i in range(5)
    )


@pytest.fixture
def profile():
    return UserProfile(
        name="Test Runner",
        goal_time="3:30:00",
        max_heart_rate=190,
        resting_heart_rate=50,
    )


@pytest.fixture
def strava_record():
    """Raw record shaped like a fitness-API activity summary."""
    return {
        "id": 987654321,
        "type": "Run",
        "start_date_local": "2024-06-10T07:15:00Z",
        "distance": 10012.4,
        "moving_time": 2950,
        "elapsed_time": 3100,
        "average_heartrate": 151.6,
        "max_heartrate": 172,
        "total_elevation_gain": 48.2,
    }
