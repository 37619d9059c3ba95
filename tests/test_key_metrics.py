"""Tests for dashboard key metrics."""

from datetime import datetime

import pytest

from fitai_analytics.analysis import AnalyticsEngine
from fitai_analytics.analysis.key_metrics import trend_from_change, workout_target
from fitai_analytics.analysis.regression import TrendDirection
from fitai_analytics.db import AnalyticsSnapshotRecord
from fitai_analytics.exceptions import InvalidPeriod

from conftest import NOW, USER


def monthly(start, end, **values):
    return AnalyticsSnapshotRecord(user_id=USER, period_type="monthly", period_start=start, period_end=end, **values)


class TestHelpers:
    """Test change classification and workout targets."""

    @pytest.mark.parametrize("change,expected", [
        (6, TrendDirection.IMPROVING),
        (-6, TrendDirection.DECLINING),
        (1.5, TrendDirection.PLATEAUING),
        (0, TrendDirection.PLATEAUING),
        (3, TrendDirection.VOLATILE),
        (-3, TrendDirection.VOLATILE),
    ])
    def test_trend_from_change(self, change, expected):
        assert trend_from_change(change) == expected

    def test_workout_target(self):
        assert workout_target(datetime(2024, 5, 1), datetime(2024, 6, 1)) == 12
        assert workout_target(datetime(2024, 5, 13), datetime(2024, 5, 20)) == 3
        assert workout_target(datetime(2024, 4, 1), datetime(2024, 7, 1)) == 39


class TestKeyMetrics:
    """Test the comparison of stored snapshots."""

    def test_latest_two_snapshots_compared(self, store, add_rows):
        add_rows(
            monthly(datetime(2024, 3, 1), datetime(2024, 4, 1), overall_fitness_score=40, total_volume_kg=400),
            monthly(datetime(2024, 4, 1), datetime(2024, 5, 1), overall_fitness_score=60, avg_recovery_score=70,
                    total_volume_kg=1000, total_workouts=9, strength_pr_count=1),
            monthly(datetime(2024, 5, 1), datetime(2024, 6, 1), overall_fitness_score=68, avg_recovery_score=71.5,
                    total_volume_kg=1500, total_workouts=10, strength_pr_count=2),
        )
        metrics = AnalyticsEngine(store).key_metrics(USER, now=NOW)

        assert metrics.period_start == datetime(2024, 5, 1)
        assert metrics.previous_period_start == datetime(2024, 4, 1)
        assert metrics.fitness_score.current == pytest.approx(68)
        assert metrics.fitness_score.change == pytest.approx(8)
        assert metrics.fitness_score.trend == TrendDirection.IMPROVING
        assert metrics.recovery_score.change == pytest.approx(1.5)
        assert metrics.recovery_score.trend == TrendDirection.PLATEAUING
        assert metrics.recovery_score.in_optimal_range
        assert (metrics.workout_frequency.current, metrics.workout_frequency.target) == (10, 12)
        assert metrics.workout_frequency.completion_rate == pytest.approx(83.33)
        assert metrics.strength_progress.personal_records == 2
        assert metrics.strength_progress.volume_change_kg == pytest.approx(500)
        assert metrics.to_dict()["fitness_score"]["trend"] == "improving"

    def test_declining_fitness(self, store, add_rows):
        add_rows(
            monthly(datetime(2024, 4, 1), datetime(2024, 5, 1), overall_fitness_score=70, avg_recovery_score=80),
            monthly(datetime(2024, 5, 1), datetime(2024, 6, 1), overall_fitness_score=58, avg_recovery_score=60),
        )
        metrics = AnalyticsEngine(store).key_metrics(USER, now=NOW)
        assert metrics.fitness_score.trend == TrendDirection.DECLINING
        assert metrics.recovery_score.trend == TrendDirection.DECLINING
        assert not metrics.recovery_score.in_optimal_range

    def test_without_stored_snapshots_aggregates_current_period(self, store):
        metrics = AnalyticsEngine(store).key_metrics(USER, "weekly", now=NOW)

        assert metrics.period_start == datetime(2024, 5, 13)
        assert metrics.previous_period_start is None
        assert metrics.fitness_score.change == 0
        assert metrics.fitness_score.trend == TrendDirection.PLATEAUING
        assert metrics.workout_frequency.target == 3
        assert metrics.workout_frequency.completion_rate == 0
        assert len(store.latest(USER, "analytics_snapshots:weekly", 5)) == 1

    def test_invalid_period(self, store):
        with pytest.raises(InvalidPeriod):
            AnalyticsEngine(store).key_metrics(USER, "daily", now=NOW)
