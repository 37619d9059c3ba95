"""Tests for calendar periods and snapshot aggregation."""

from datetime import datetime, timedelta

import pytest

from fitai_analytics.analysis.periods import period_window, weeks_elapsed
from fitai_analytics.analysis.snapshot import SnapshotAggregator, consistency_score
from fitai_analytics.db import (
    AnalyticsSnapshotRecord,
    HealthMetric,
    HRVData,
    SleepData,
    UserGoal,
    WorkoutExercise,
    WorkoutSession,
)
from fitai_analytics.exceptions import InvalidPeriod, StoreUnavailable

from conftest import NOW, USER, FailingStore


class TestPeriods:
    """Test calendar-aligned windows."""

    def test_weekly_starts_monday(self):
        window = period_window("weekly", now=NOW)
        assert window.start == datetime(2024, 5, 13)
        assert window.end == datetime(2024, 5, 20)

    def test_monthly_back(self):
        window = period_window("monthly", 1, NOW)
        assert (window.start, window.end) == (datetime(2024, 4, 1), datetime(2024, 5, 1))

    def test_quarterly(self):
        window = period_window("quarterly", now=NOW)
        assert (window.start, window.end) == (datetime(2024, 4, 1), datetime(2024, 7, 1))

    def test_yearly_back(self):
        window = period_window("yearly", 2, NOW)
        assert (window.start, window.end) == (datetime(2022, 1, 1), datetime(2023, 1, 1))

    @pytest.mark.parametrize("period_type", ["weekly", "monthly", "quarterly", "yearly"])
    def test_consecutive_windows_are_disjoint(self, period_type):
        windows = [period_window(period_type, back, NOW) for back in range(14)]
        for newer, older in zip(windows, windows[1:]):
            assert older.end == newer.start
            assert older.start < older.end

    def test_invalid_period_type(self):
        with pytest.raises(InvalidPeriod):
            period_window("daily", now=NOW)

    def test_negative_offset(self):
        with pytest.raises(InvalidPeriod):
            period_window("monthly", -1, NOW)

    def test_weeks_elapsed(self):
        assert weeks_elapsed(period_window("monthly", 0, NOW), NOW) == 3
        assert weeks_elapsed(period_window("monthly", 1, NOW), NOW) == 5
        assert weeks_elapsed(period_window("weekly", 0, NOW), NOW) == 1

    def test_future_window_has_no_elapsed_weeks(self):
        window = period_window("monthly", 0, NOW + timedelta(days=40))
        assert weeks_elapsed(window, NOW) == 0

    def test_consistency_zero_expected(self):
        assert consistency_score(5, 0, 3) == 0
        assert consistency_score(5, 2, 0) == 0

    def test_consistency_capped(self):
        assert consistency_score(20, 2, 3) == 100
        assert consistency_score(3, 3, 3) == 33


def seed_month(add_rows):
    """May 2024 history for USER plus one earlier endurance session."""
    def day(d):
        return datetime(2024, 5, d, 7, 0)

    add_rows(
        WorkoutSession(user_id=USER, started_at=datetime(2024, 4, 20, 7), status="completed",
                       duration_minutes=50, distance_km=5.5),
        WorkoutSession(user_id=USER, started_at=day(2), status="completed", duration_minutes=60, intensity=7,
                       calories_burned=500, distance_km=5.0,
                       exercises=[WorkoutExercise(user_id=USER, performed_at=day(2), sets=3, reps=10, weight_kg=50,
                                                  is_personal_record=True)]),
        WorkoutSession(user_id=USER, started_at=day(6), status="completed", duration_minutes=45, intensity=0,
                       calories_burned=300,
                       exercises=[WorkoutExercise(user_id=USER, performed_at=day(6), sets=4, reps=8, weight_kg=60)]),
        WorkoutSession(user_id=USER, started_at=day(10), status="completed", duration_minutes=30, intensity=8,
                       calories_burned=200, distance_km=6.0),
        WorkoutSession(user_id=USER, started_at=day(12), status="planned", duration_minutes=90, intensity=9,
                       exercises=[WorkoutExercise(user_id=USER, performed_at=day(12), sets=3, reps=10, weight_kg=100)]),
        SleepData(user_id=USER, sleep_date=day(3), total_sleep_minutes=420, sleep_efficiency=80, recovery_score=70),
        SleepData(user_id=USER, sleep_date=day(9), total_sleep_minutes=480, sleep_efficiency=90, recovery_score=80),
        HRVData(user_id=USER, recorded_at=day(3), recovery_score=60),
        HRVData(user_id=USER, recorded_at=day(9), recovery_score=80),
        HealthMetric(user_id=USER, metric_type="resting_heart_rate", value=58, recorded_at=day(4)),
        HealthMetric(user_id=USER, metric_type="resting_heart_rate", value=62, recorded_at=day(11)),
        HealthMetric(user_id=USER, metric_type="body_weight", value=80.0, recorded_at=day(1)),
        HealthMetric(user_id=USER, metric_type="body_weight", value=79.2, recorded_at=day(14)),
        UserGoal(user_id=USER, title="Bench 80kg", target_date=day(20), status="achieved", achieved_at=day(10)),
        UserGoal(user_id=USER, title="Run 10k", target_date=day(25), status="active"),
    )


class TestSnapshotAggregator:
    """Test aggregation of a seeded month."""

    def test_workout_metrics(self, store, add_rows):
        seed_month(add_rows)
        snapshot = SnapshotAggregator(store).aggregate_period(USER, "monthly", now=NOW)

        assert snapshot.period_start == datetime(2024, 5, 1)
        assert snapshot.period_end == datetime(2024, 6, 1)
        assert snapshot.total_workouts == 3
        assert snapshot.total_workout_minutes == pytest.approx(135)
        assert snapshot.total_volume_kg == pytest.approx(1500 + 1920)
        assert snapshot.avg_workout_intensity == pytest.approx(7.5)
        assert snapshot.total_calories_burned == pytest.approx(1000)
        assert snapshot.total_distance_km == pytest.approx(11.0)

    def test_performance_health_and_goals(self, store, add_rows):
        seed_month(add_rows)
        snapshot = SnapshotAggregator(store).aggregate_period(USER, "monthly", now=NOW)

        assert snapshot.strength_pr_count == 1
        assert snapshot.endurance_improvements == 1
        assert snapshot.consistency_score == 33
        assert snapshot.avg_sleep_hours == pytest.approx(7.5)
        assert snapshot.avg_sleep_efficiency == pytest.approx(85)
        assert snapshot.avg_recovery_score == pytest.approx(75)
        assert snapshot.avg_hrv_score == pytest.approx(70)
        assert snapshot.avg_resting_hr == pytest.approx(60)
        assert snapshot.weight_change_kg == pytest.approx(-0.8)
        assert snapshot.body_fat_change == 0
        assert (snapshot.goals_total, snapshot.goals_achieved) == (2, 1)
        assert snapshot.goal_completion_rate == pytest.approx(50)

    def test_composite_scores(self, store, add_rows):
        seed_month(add_rows)
        snapshot = SnapshotAggregator(store).aggregate_period(USER, "monthly", now=NOW)

        # 0.30*33 + 0.20*75 + 0.20*70 + 0.15*85 + 0.15*(1/3*100)
        assert snapshot.overall_fitness_score == pytest.approx(56.65)
        assert snapshot.progress_velocity == pytest.approx(0.3 / 3 + 0.2 / 3)
        assert snapshot.adherence_score == pytest.approx(0.6 * 33 + 0.4 * 50)
        assert snapshot.failed_groups == []

    def test_volume_growth_against_previous_period(self, store, add_rows):
        seed_month(add_rows)
        add_rows(AnalyticsSnapshotRecord(user_id=USER, period_type="monthly", period_start=datetime(2024, 4, 1),
                                         period_end=datetime(2024, 5, 1), total_volume_kg=1710))
        snapshot = SnapshotAggregator(store).aggregate_period(USER, "monthly", now=NOW)
        assert snapshot.progress_velocity == pytest.approx(0.5 * 1.0 + 0.3 / 3 + 0.2 / 3)

    def test_empty_period(self, store):
        snapshot = SnapshotAggregator(store).aggregate_period(USER, "weekly", now=NOW)
        assert snapshot.total_workouts == 0
        assert snapshot.consistency_score == 0
        assert snapshot.avg_sleep_hours == 0
        assert snapshot.progress_velocity == 0
        # Only the neutral recovery and sleep terms contribute
        assert snapshot.overall_fitness_score == pytest.approx(0.20 * 50 + 0.15 * 50)

    def test_upsert_is_idempotent(self, store, add_rows, db):
        seed_month(add_rows)
        aggregator = SnapshotAggregator(store)
        aggregator.aggregate_period(USER, "monthly", now=NOW)
        first = self._stored_rows(db)
        aggregator.aggregate_period(USER, "monthly", now=NOW + timedelta(hours=6))
        second = self._stored_rows(db)

        assert len(first) == len(second) == 1
        assert first == second
        assert first[0]["overall_fitness_score"] == 56.65

    def test_invalid_period(self, store):
        with pytest.raises(InvalidPeriod):
            SnapshotAggregator(store).aggregate_period(USER, "fortnightly", now=NOW)

    @staticmethod
    def _stored_rows(db):
        with db.get_session() as session:
            rows = session.query(AnalyticsSnapshotRecord).all()
            return [
                {c.name: getattr(r, c.name) for c in r.__table__.columns if c.name not in ("id", "updated_at")}
                for r in rows
            ]


class TestDegradedAggregation:
    """A failing metric group falls back to defaults."""

    def test_sleep_outage_keeps_workouts(self, store, add_rows):
        seed_month(add_rows)
        flaky = FailingStore(store, failing_sources={"sleep_data"})
        snapshot = SnapshotAggregator(flaky).aggregate_period(USER, "monthly", now=NOW)

        assert snapshot.total_workouts == 3
        assert snapshot.total_volume_kg == pytest.approx(3420)
        assert snapshot.avg_sleep_hours == 0
        assert snapshot.avg_sleep_efficiency == 0
        assert snapshot.avg_recovery_score == 0
        assert snapshot.avg_hrv_score == pytest.approx(70)
        assert snapshot.failed_groups == ["sleep"]
        assert flaky.upserts == 1

    def test_timeout_is_recoverable(self, store, add_rows):
        seed_month(add_rows)
        flaky = FailingStore(store, failing_sources={"workout_exercises"}, error=TimeoutError)
        snapshot = SnapshotAggregator(flaky).aggregate_period(USER, "monthly", now=NOW)

        assert snapshot.total_volume_kg == 0
        assert snapshot.total_workouts == 0
        assert snapshot.strength_pr_count == 0
        assert snapshot.avg_sleep_hours == pytest.approx(7.5)
        assert set(snapshot.failed_groups) == {"workouts", "performance"}

    def test_write_failure_propagates(self, store, add_rows):
        seed_month(add_rows)
        flaky = FailingStore(store, fail_writes=True)
        with pytest.raises(StoreUnavailable):
            SnapshotAggregator(flaky).aggregate_period(USER, "monthly", now=NOW)
