"""
Calendar helpers shared by the analytics services.

Activity timestamps keep whatever wall clock the provider reported.
Week and day keys are taken from that wall clock, so an activity logged
at 23:30 local time stays on its local day.
"""
import re
from datetime import date, datetime, timedelta
from typing import Iterator, Tuple

from marathon_analytics.core.exceptions import ValidationError

_HMS_PATTERN = re.compile(r"^\d{1,2}:\d{2}:\d{2}$")


def week_start(moment: datetime) -> date:
    """Monday of the ISO week containing moment's wall-clock date."""
    day = moment.date() if isinstance(moment, datetime) else moment
    return day - timedelta(days=day.weekday())


def iter_days(start: date, end: date) -> Iterator[date]:
    """Every calendar day from start to end, both inclusive."""
    current = start
    while current <= end:
        yield current
        current += timedelta(days=1)


def align(moment: datetime, reference: datetime) -> Tuple[datetime, datetime]:
    """
    Make two datetimes comparable.

    Mixing naive and aware values raises TypeError in comparisons.
    When only one side carries a timezone both are compared on their
    wall clocks.
    """
    if (moment.tzinfo is None) != (reference.tzinfo is None):
        return moment.replace(tzinfo=None), reference.replace(tzinfo=None)
    return moment, reference


def within_window(moment: datetime, now: datetime, days: float) -> bool:
    """True when moment falls in [now - days, now]."""
    moment, now = align(moment, now)
    return now - timedelta(days=days) <= moment <= now


def parse_hms(text: str, field: str = "goal_time") -> int:
    """
    Parse "H:MM:SS" / "HH:MM:SS" into seconds.

    Hours must be 0-23, minutes and seconds 0-59.
    """
    if not isinstance(text, str) or not _HMS_PATTERN.match(text.strip()):
        raise ValidationError(f"Expected HH:MM:SS, got {text!r}", field=field)

    hours, minutes, seconds = (int(part) for part in text.strip().split(":"))
    if hours > 23 or minutes > 59 or seconds > 59:
        raise ValidationError(f"Time out of range: {text!r}", field=field)
    return hours * 3600 + minutes * 60 + seconds
