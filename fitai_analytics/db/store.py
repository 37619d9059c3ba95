"""Record store interface and its SQLAlchemy implementation.

The analytics components never talk to the database directly. They read raw
events and write derived records through a ``RecordStore`` handed to them at
construction time, which keeps them testable against an in-memory SQLite
database or any other backend.

Sources are plain strings. Some carry a qualifier after a colon:

    workout_sessions, workout_exercises, hrv_data, sleep_data, user_goals,
    recovery_recommendations, health_metrics:<metric_type>,
    analytics_snapshots:<period_type>, progress_predictions:<prediction_type>
"""

import logging
from abc import ABC, abstractmethod
from collections import namedtuple
from datetime import datetime
from typing import Any, Dict, List, Optional, Tuple

from sqlalchemy.exc import SQLAlchemyError

from ..exceptions import StoreUnavailable
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

logger = logging.getLogger(__name__)

WORKOUT_SESSIONS = "workout_sessions"
WORKOUT_EXERCISES = "workout_exercises"
HRV_DATA = "hrv_data"
SLEEP_DATA = "sleep_data"
USER_GOALS = "user_goals"
RECOVERY_RECOMMENDATIONS = "recovery_recommendations"
HEALTH_METRICS = "health_metrics"
ANALYTICS_SNAPSHOTS = "analytics_snapshots"
PROGRESS_PREDICTIONS = "progress_predictions"

# Natural key of a stored record: the source it belongs to, its owner and
# the value of the source's time column.
RecordKey = namedtuple("RecordKey", ["source", "user_id", "stamp"])


def health_source(metric_type: str) -> str:
    return f"{HEALTH_METRICS}:{metric_type}"


def snapshot_source(period_type: str) -> str:
    return f"{ANALYTICS_SNAPSHOTS}:{period_type}"


def prediction_source(prediction_type: str) -> str:
    return f"{PROGRESS_PREDICTIONS}:{prediction_type}"


class RecordStore(ABC):
    """Read/write access to per-user time-stamped records."""

    @abstractmethod
    def fetch_events(self, user_id: str, source: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        """Rows of ``source`` with time in ``[start, end)``, oldest first."""

    @abstractmethod
    def upsert(self, key: RecordKey, record: Dict[str, Any]) -> None:
        """Insert or fully overwrite the record identified by ``key``."""

    @abstractmethod
    def latest(self, user_id: str, source: str, n: int) -> List[Dict[str, Any]]:
        """The ``n`` most recent rows of ``source``, returned oldest first."""


class SqlRecordStore(RecordStore):
    """RecordStore backed by the SQLAlchemy models."""

    # source -> (model, time column, qualifier column)
    SOURCES = {
        WORKOUT_SESSIONS: (WorkoutSession, "started_at", None),
        WORKOUT_EXERCISES: (WorkoutExercise, "performed_at", None),
        HRV_DATA: (HRVData, "recorded_at", None),
        SLEEP_DATA: (SleepData, "sleep_date", None),
        USER_GOALS: (UserGoal, "target_date", None),
        RECOVERY_RECOMMENDATIONS: (RecoveryRecommendationRecord, "recommendation_date", None),
        HEALTH_METRICS: (HealthMetric, "recorded_at", "metric_type"),
        ANALYTICS_SNAPSHOTS: (AnalyticsSnapshotRecord, "period_start", "period_type"),
        PROGRESS_PREDICTIONS: (ProgressPredictionRecord, "prediction_date", "prediction_type"),
    }

    def __init__(self, db: Database):
        self.db = db

    def _resolve(self, source: str) -> Tuple[Any, str, Optional[str], Optional[str]]:
        table, _, qualifier = source.partition(":")
        if table not in self.SOURCES:
            raise ValueError(f"Unknown record source: {source}")
        model, time_column, qualifier_column = self.SOURCES[table]
        if qualifier_column and not qualifier:
            raise ValueError(f"Source {table} requires a qualifier, e.g. {table}:<type>")
        return model, time_column, qualifier_column, qualifier or None

    def _base_query(self, session, user_id: str, source: str):
        model, time_column, qualifier_column, qualifier = self._resolve(source)
        query = session.query(model).filter(model.user_id == user_id)
        if qualifier_column:
            query = query.filter(getattr(model, qualifier_column) == qualifier)
        return query, model, getattr(model, time_column)

    @staticmethod
    def _to_dict(row) -> Dict[str, Any]:
        return {column.name: getattr(row, column.name) for column in row.__table__.columns}

    def fetch_events(self, user_id, source, start, end):
        try:
            with self.db.get_session() as session:
                query, model, time_col = self._base_query(session, user_id, source)
                rows = (
                    query.filter(time_col >= start, time_col < end)
                    .order_by(time_col.asc(), model.id.asc())
                    .all()
                )
                return [self._to_dict(row) for row in rows]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to read {source}: {e}", source=source) from e

    def latest(self, user_id, source, n):
        if n <= 0:
            return []
        try:
            with self.db.get_session() as session:
                query, model, time_col = self._base_query(session, user_id, source)
                rows = query.order_by(time_col.desc(), model.id.desc()).limit(n).all()
                return [self._to_dict(row) for row in reversed(rows)]
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to read {source}: {e}", source=source) from e

    def upsert(self, key, record):
        model, time_column, qualifier_column, qualifier = self._resolve(key.source)
        natural_key = {"user_id": key.user_id, time_column: key.stamp}
        if qualifier_column:
            natural_key[qualifier_column] = qualifier

        fields = {name: value for name, value in record.items() if name != "id"}
        fields.update(natural_key)

        try:
            with self.db.get_session() as session:
                existing = session.query(model).filter_by(**natural_key).one_or_none()
                if existing:
                    for name, value in fields.items():
                        setattr(existing, name, value)
                else:
                    session.add(model(**fields))
        except SQLAlchemyError as e:
            raise StoreUnavailable(f"Failed to write {key.source}: {e}", source=key.source) from e

        logger.debug("Upserted %s for user %s at %s", key.source, key.user_id, key.stamp)
