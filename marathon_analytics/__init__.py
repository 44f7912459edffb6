"""
Marathon Analytics

Deterministic training analytics over a runner's activity history:
- Activity normalization (provider records, GPX/TCX, CSV exports)
- Weekly and rolling-window volume
- Training load (CTL / ATL / TSB) and workout recommendation
- Marathon time prediction with a confidence band
- Personal-record detection on an append-only ledger

Design Principles:
- Pure functions over immutable records, no I/O and no global state
- Bad records are dropped, never raised; thin data yields empty results
- Meters and seconds everywhere; formatting happens at the edges
"""

from .core.exceptions import AnalyticsError, ParseError, ValidationError
from .schemas import (
    Activity,
    ConfidenceLevel,
    DateRange,
    PersonalRecord,
    PRCategory,
    PredictionResult,
    TrackPoint,
    TrainingLevel,
    TrainingLoadPoint,
    UserProfile,
    WeeklyBucket,
)
from .services.activity_normalizer import deduplicate, filter_running, normalize
from .services.aggregation import last_n_days_distance, weekly_distance
from .services.marathon_prediction import predict
from .services.personal_records import RecordLedger, analyze_progress, detect_records, scan_activities
from .services.training_load import build_daily_series, compute_load_curve, daily_stress, recommend_workout
from .report import build_training_report

__version__ = "0.1.0"

__all__ = [
    # Errors
    'AnalyticsError',
    'ParseError',
    'ValidationError',

    # Records
    'Activity',
    'ConfidenceLevel',
    'DateRange',
    'PersonalRecord',
    'PRCategory',
    'PredictionResult',
    'TrackPoint',
    'TrainingLevel',
    'TrainingLoadPoint',
    'UserProfile',
    'WeeklyBucket',

    # Engines
    'normalize',
    'deduplicate',
    'filter_running',
    'weekly_distance',
    'last_n_days_distance',
    'daily_stress',
    'build_daily_series',
    'compute_load_curve',
    'recommend_workout',
    'predict',
    'RecordLedger',
    'detect_records',
    'scan_activities',
    'analyze_progress',
    'build_training_report',
]
