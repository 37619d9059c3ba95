"""Tests for the SQLAlchemy record store."""

from datetime import datetime, timedelta

import pytest
from sqlalchemy.exc import IntegrityError

from fitai_analytics.db import (
    Database,
    HealthMetric,
    HRVData,
    ProgressPredictionRecord,
    RecordKey,
    WorkoutExercise,
    WorkoutSession,
)
from fitai_analytics.db.store import HRV_DATA, health_source, prediction_source
from fitai_analytics.exceptions import StoreUnavailable

from conftest import NOW, USER


class TestReads:
    """Test fetch_events and latest."""

    @pytest.fixture(autouse=True)
    def seed(self, add_rows):
        rows = [
            HRVData(user_id=USER, recorded_at=NOW - timedelta(days=d), recovery_score=50 + d)
            for d in (3, 1, 2, 5, 4)
        ]
        rows.append(HRVData(user_id="someone-else", recorded_at=NOW - timedelta(days=1), recovery_score=10))
        add_rows(*rows)

    def test_fetch_events_ordered_oldest_first(self, store):
        rows = store.fetch_events(USER, HRV_DATA, NOW - timedelta(days=10), NOW)
        assert [r["recovery_score"] for r in rows] == [55, 54, 53, 52, 51]

    def test_fetch_events_window_is_half_open(self, store):
        start = NOW - timedelta(days=4)
        rows = store.fetch_events(USER, HRV_DATA, start, NOW - timedelta(days=1))
        assert [r["recorded_at"] for r in rows] == [start, NOW - timedelta(days=3), NOW - timedelta(days=2)]

    def test_fetch_events_filters_user(self, store):
        rows = store.fetch_events("someone-else", HRV_DATA, NOW - timedelta(days=10), NOW)
        assert len(rows) == 1
        assert rows[0]["recovery_score"] == 10

    def test_latest_returns_most_recent_oldest_first(self, store):
        rows = store.latest(USER, HRV_DATA, 2)
        assert [r["recovery_score"] for r in rows] == [52, 51]

    def test_latest_with_zero_rows_requested(self, store):
        assert store.latest(USER, HRV_DATA, 0) == []


class TestQualifiedSources:
    """Test sources that carry a type qualifier."""

    def test_health_metrics_filtered_by_type(self, store, add_rows):
        add_rows(
            HealthMetric(user_id=USER, metric_type="body_weight", value=80.0, recorded_at=NOW - timedelta(days=2)),
            HealthMetric(user_id=USER, metric_type="resting_heart_rate", value=58, recorded_at=NOW - timedelta(days=1)),
        )
        rows = store.fetch_events(USER, health_source("body_weight"), NOW - timedelta(days=7), NOW)
        assert [r["value"] for r in rows] == [80.0]

    def test_unknown_source_rejected(self, store):
        with pytest.raises(ValueError):
            store.fetch_events(USER, "steps", NOW - timedelta(days=1), NOW)

    def test_missing_qualifier_rejected(self, store):
        with pytest.raises(ValueError):
            store.latest(USER, "health_metrics", 5)


class TestUpsert:
    """Test natural-key upserts."""

    def _count(self, db):
        with db.get_session() as session:
            return session.query(ProgressPredictionRecord).count()

    def test_insert_then_overwrite(self, store, db):
        key = RecordKey(prediction_source("strength_volume"), USER, datetime(2024, 8, 13))
        store.upsert(key, {"predicted_value": 260.0, "confidence": 95, "model_version": "linear_v1.0"})
        store.upsert(key, {"predicted_value": 270.0, "confidence": 90, "model_version": "linear_v1.0"})

        assert self._count(db) == 1
        rows = store.latest(USER, prediction_source("strength_volume"), 1)
        assert rows[0]["predicted_value"] == 270.0
        assert rows[0]["confidence"] == 90
        assert rows[0]["prediction_type"] == "strength_volume"

    def test_different_keys_create_rows(self, store, db):
        for day in (13, 14):
            key = RecordKey(prediction_source("strength_volume"), USER, datetime(2024, 8, day))
            store.upsert(key, {"predicted_value": 1.0})
        assert self._count(db) == 2


class TestFailures:
    """Database errors surface as StoreUnavailable."""

    def test_read_failure_wrapped(self, store, db):
        db.drop_tables()
        with pytest.raises(StoreUnavailable) as excinfo:
            store.fetch_events(USER, HRV_DATA, NOW - timedelta(days=1), NOW)
        assert excinfo.value.source == HRV_DATA

    def test_write_failure_wrapped(self, store, db):
        db.drop_tables()
        key = RecordKey(prediction_source("fitness_score"), USER, datetime(2024, 7, 14))
        with pytest.raises(StoreUnavailable):
            store.upsert(key, {"predicted_value": 70.0})


class TestDatabase:
    """Test engine setup and table management."""

    def test_create_tables_reports_only_new_tables(self):
        database = Database("sqlite:///:memory:")
        created = database.create_tables()
        assert "analytics_snapshots" in created
        assert "workout_sessions" in created
        assert database.create_tables() == []
        assert set(created) == set(database.table_names())
        database.close()

    def test_exercise_requires_existing_session(self, db):
        with pytest.raises(IntegrityError):
            with db.get_session() as session:
                session.add(WorkoutExercise(session_id=999, user_id=USER, performed_at=NOW, sets=3, reps=5))

    def test_deleting_session_removes_exercises(self, db, add_rows):
        add_rows(WorkoutSession(user_id=USER, started_at=NOW, status="completed",
                                exercises=[WorkoutExercise(user_id=USER, performed_at=NOW, sets=3, reps=5)]))
        with db.get_session() as session:
            session.delete(session.query(WorkoutSession).one())
        with db.get_session() as session:
            assert session.query(WorkoutExercise).count() == 0
