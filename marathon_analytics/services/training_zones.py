"""
Training Zones

Personalised pace zones from a marathon goal time and heart-rate zones
from max / resting heart rate (Karvonen, % of heart-rate reserve).

Usage:
    zones = pace_zones(parse_goal_time("3:30:00"))
    easy = zone_for_workout(zones, "easy")
    format_pace(easy.seconds_per_km)   # "6:28"
"""

from dataclasses import dataclass
from typing import List, Optional, Tuple

from marathon_analytics.core.dates import parse_hms
from marathon_analytics.core.exceptions import ValidationError
from marathon_analytics.core.numbers import round_half_up
from marathon_analytics.schemas import MARATHON_METERS


# Multipliers on marathon pace (seconds per km)
PACE_ZONE_MULTIPLIERS = (
    ("easy", "Easy", 1.3),
    ("long", "Long Run", 1.15),
    ("marathon", "Marathon", 1.0),
    ("tempo", "Tempo", 1.05),
    ("interval", "Interval", 0.9),
)

WORKOUT_ZONE_ALIASES = {
    "easy": "easy",
    "recovery": "easy",
    "easy_run": "easy",
    "long": "long",
    "long_run": "long",
    "marathon": "marathon",
    "mp": "marathon",
    "marathon_pace": "marathon",
    "tempo": "tempo",
    "threshold": "tempo",
    "interval": "interval",
    "intervals": "interval",
    "vo2max": "interval",
}

# (zone, name, lower % HRR, upper % HRR, description)
HEART_RATE_ZONES = (
    (1, "Active Recovery", 0.50, 0.60, "Very light intensity for recovery and warm-up"),
    (2, "Aerobic Base", 0.60, 0.70, "Easy conversational pace, builds aerobic base"),
    (3, "Aerobic", 0.70, 0.80, "Moderate intensity, comfortably hard effort"),
    (4, "Lactate Threshold", 0.80, 0.90, "Hard intensity, sustainable for ~1 hour"),
    (5, "VO2 Max", 0.90, 1.00, "Very hard, maximum sustainable for 3-8 minutes"),
)


@dataclass(frozen=True)
class PaceZone:
    key: str
    name: str
    multiplier: float
    seconds_per_km: float

    @property
    def formatted(self) -> str:
        return f"{format_pace(self.seconds_per_km)}/km"


@dataclass(frozen=True)
class HeartRateZone:
    zone: int
    name: str
    percentage: Tuple[int, int]
    bpm: Tuple[int, int]
    description: str

    def contains(self, heart_rate: float) -> bool:
        return self.bpm[0] <= heart_rate <= self.bpm[1]


def parse_goal_time(text: str) -> int:
    """Goal time "H:MM:SS" in seconds. Raises ValidationError when malformed."""
    return parse_hms(text, field="goal_time")


def pace_zones(goal_seconds: float) -> List[PaceZone]:
    """Training paces derived from marathon pace = goal / 42.195 km."""
    if goal_seconds <= 0:
        raise ValidationError(f"Goal time must be positive, got {goal_seconds}", field="goal_time")

    marathon_pace = goal_seconds / (MARATHON_METERS / 1000)
    return [
        PaceZone(key=key, name=name, multiplier=multiplier, seconds_per_km=marathon_pace * multiplier)
        for key, name, multiplier in PACE_ZONE_MULTIPLIERS
    ]


def zone_for_workout(zones: List[PaceZone], workout_type: str) -> Optional[PaceZone]:
    """Pace zone to run a workout type in, e.g. "recovery" -> easy."""
    key = WORKOUT_ZONE_ALIASES.get((workout_type or "").strip().lower())
    if key is None:
        return None
    for zone in zones:
        if zone.key == key:
            return zone
    return None


def estimate_max_heart_rate(age: int, method: str = "tanaka") -> int:
    """
    Age-predicted max HR.

    tanaka: 208 - 0.7 * age
    fox:    220 - age
    """
    if age <= 0:
        raise ValidationError(f"Age must be positive, got {age}", field="age")

    if method == "tanaka":
        return round_half_up(208 - 0.7 * age)
    if method == "fox":
        return 220 - age
    raise ValidationError(f"Unknown max heart rate method: {method}", field="method")


def heart_rate_zones(max_hr: int, resting_hr: int) -> List[HeartRateZone]:
    """Five Karvonen zones; zone 5 tops out at max HR."""
    if max_hr <= resting_hr:
        raise ValidationError(
            f"Max heart rate {max_hr} must exceed resting heart rate {resting_hr}",
            field="max_heart_rate"
        )

    reserve = max_hr - resting_hr
    zones: List[HeartRateZone] = []
    for zone, name, low, high, description in HEART_RATE_ZONES:
        upper_bpm = max_hr if high >= 1.0 else round_half_up(resting_hr + reserve * high)
        zones.append(HeartRateZone(
            zone=zone,
            name=name,
            percentage=(round_half_up(low * 100), round_half_up(high * 100)),
            bpm=(round_half_up(resting_hr + reserve * low), upper_bpm),
            description=description,
        ))
    return zones


def format_pace(seconds_per_km: float) -> str:
    """Format pace as m:ss."""
    total = round_half_up(seconds_per_km)
    minutes, seconds = divmod(total, 60)
    return f"{minutes}:{seconds:02d}"


def format_duration(total_seconds: float) -> str:
    """Format a duration as h:mm:ss."""
    total = round_half_up(total_seconds)
    hours, remainder = divmod(total, 3600)
    minutes, seconds = divmod(remainder, 60)
    return f"{hours}:{minutes:02d}:{seconds:02d}"
