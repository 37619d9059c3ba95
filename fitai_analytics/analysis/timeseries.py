"""Time-series extraction from the record store."""

import logging
from datetime import datetime
from typing import Any, Dict, List, Optional

import numpy as np
import pandas as pd

from ..db.store import (
    RecordStore,
    WORKOUT_SESSIONS,
    WORKOUT_EXERCISES,
    HRV_DATA,
    SLEEP_DATA,
    USER_GOALS,
    health_source,
    snapshot_source,
)
from .periods import validate_range
from .records import (
    WorkoutSession,
    ExerciseEntry,
    HRVSample,
    SleepSample,
    MetricSample,
    Goal,
    SeriesPoint,
)

logger = logging.getLogger(__name__)


def to_series(rows: List[Dict[str, Any]], time_field: str, value_field: str,
              positive_only: bool = False) -> List[SeriesPoint]:
    """Normalize raw rows into a time-ordered numeric series.

    Values that are missing, non-numeric or non-finite are dropped.
    """
    if not rows:
        return []

    frame = pd.DataFrame(rows, columns=[time_field, value_field])
    frame[value_field] = pd.to_numeric(frame[value_field], errors="coerce")
    frame[time_field] = pd.to_datetime(frame[time_field], errors="coerce")
    frame = frame.replace([np.inf, -np.inf], np.nan).dropna()
    if positive_only:
        frame = frame[frame[value_field] > 0]
    frame = frame.sort_values(time_field, kind="stable")

    return [
        SeriesPoint(timestamp=ts.to_pydatetime(), value=float(value))
        for ts, value in zip(frame[time_field], frame[value_field])
    ]


class TimeSeriesExtractor:
    """Reads raw events for a user and maps them onto typed records."""

    def __init__(self, store: RecordStore):
        self.store = store

    def _fetch(self, user_id: str, source: str, start: datetime, end: datetime) -> List[Dict[str, Any]]:
        validate_range(start, end)
        return self.store.fetch_events(user_id, source, start, end)

    def workouts(self, user_id: str, start: datetime, end: datetime) -> List[WorkoutSession]:
        return [WorkoutSession.from_row(r) for r in self._fetch(user_id, WORKOUT_SESSIONS, start, end)]

    def exercises(self, user_id: str, start: datetime, end: datetime) -> List[ExerciseEntry]:
        return [ExerciseEntry.from_row(r) for r in self._fetch(user_id, WORKOUT_EXERCISES, start, end)]

    def hrv(self, user_id: str, start: datetime, end: datetime) -> List[HRVSample]:
        return [HRVSample.from_row(r) for r in self._fetch(user_id, HRV_DATA, start, end)]

    def sleep(self, user_id: str, start: datetime, end: datetime) -> List[SleepSample]:
        return [SleepSample.from_row(r) for r in self._fetch(user_id, SLEEP_DATA, start, end)]

    def health_metric(self, user_id: str, metric_type: str, start: datetime, end: datetime) -> List[MetricSample]:
        rows = self._fetch(user_id, health_source(metric_type), start, end)
        return [MetricSample.from_row(r) for r in rows]

    def goals(self, user_id: str, start: datetime, end: datetime) -> List[Goal]:
        return [Goal.from_row(r) for r in self._fetch(user_id, USER_GOALS, start, end)]

    def snapshot_series(self, user_id: str, period_type: str, metric: str, limit: int,
                        positive_only: bool = False) -> List[SeriesPoint]:
        """Most recent ``limit`` stored snapshot values of ``metric``, oldest first."""
        # Zero values are placeholders for empty periods; look further back to fill the limit
        fetch = limit * 2 if positive_only else limit
        rows = self.store.latest(user_id, snapshot_source(period_type), fetch)
        return to_series(rows, "period_start", metric, positive_only=positive_only)[-limit:]

    def metric_series(self, user_id: str, metric_type: str, limit: int) -> List[SeriesPoint]:
        """Most recent ``limit`` samples of a health metric, oldest first."""
        rows = self.store.latest(user_id, health_source(metric_type), limit)
        return to_series(rows, "recorded_at", "value")

    def previous_snapshot(self, user_id: str, period_type: str, start: datetime,
                          end: datetime) -> Optional[Dict[str, Any]]:
        rows = self._fetch(user_id, snapshot_source(period_type), start, end)
        return rows[-1] if rows else None
