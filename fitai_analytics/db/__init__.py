"""Database module for the FitAI analytics engine."""

from .database import Database
from .models import (
    WorkoutSession,
    WorkoutExercise,
    HealthMetric,
    HRVData,
    SleepData,
    UserGoal,
    AnalyticsSnapshotRecord,
    ProgressPredictionRecord,
    RecoveryRecommendationRecord,
)
from .store import RecordKey, RecordStore, SqlRecordStore

__all__ = [
    "Database",
    "WorkoutSession",
    "WorkoutExercise",
    "HealthMetric",
    "HRVData",
    "SleepData",
    "UserGoal",
    "AnalyticsSnapshotRecord",
    "ProgressPredictionRecord",
    "RecoveryRecommendationRecord",
    "RecordKey",
    "RecordStore",
    "SqlRecordStore",
]
