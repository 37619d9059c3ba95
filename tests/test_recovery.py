"""Tests for recovery scoring."""

from datetime import datetime, timedelta

import pytest

from fitai_analytics.analysis.records import HRVSample, WorkoutSession as Session
from fitai_analytics.analysis.recovery import (
    FactorInfluence,
    RecoveryScoringEngine,
    RecoveryTrend,
    TrainingReadiness,
    classify_readiness,
    compute_recovery_score,
    hrv_trend,
    workload_balance,
)
from fitai_analytics.db import HRVData, RecoveryRecommendationRecord, SleepData, WorkoutSession

from conftest import NOW, USER


def _hrv(scores):
    return [HRVSample(recorded_at=NOW - timedelta(days=len(scores) - i), recovery_score=s)
            for i, s in enumerate(scores)]


class TestRecoveryScore:
    """Test the score formula."""

    def test_no_data_gives_base_score(self):
        assert compute_recovery_score(None, None) == 50

    def test_hrv_weight(self):
        assert compute_recovery_score(80, None) == 62

    def test_sleep_bonus_and_penalty(self):
        assert compute_recovery_score(50, 90) == 60
        assert compute_recovery_score(50, 60) == 35
        assert compute_recovery_score(50, 80) == 50

    @pytest.mark.parametrize("hrv,expected", [(1000, 100), (-1000, 0)])
    def test_extreme_inputs_clamped(self, hrv, expected):
        assert compute_recovery_score(hrv, 90) == expected
        assert compute_recovery_score(hrv, 50) == expected

    def test_readiness_bands(self):
        assert classify_readiness(80) == TrainingReadiness.HIGH
        assert classify_readiness(79) == TrainingReadiness.MODERATE
        assert classify_readiness(60) == TrainingReadiness.MODERATE
        assert classify_readiness(40) == TrainingReadiness.LOW
        assert classify_readiness(39) == TrainingReadiness.REST


class TestHRVTrend:
    """Test the short-term HRV trend."""

    def test_flat_is_stable(self):
        assert hrv_trend(_hrv([60] * 7)) == RecoveryTrend.STABLE

    def test_rising_is_improving(self):
        assert hrv_trend(_hrv([40, 42, 44, 50, 60, 62, 64])) == RecoveryTrend.IMPROVING

    def test_falling_is_declining(self):
        assert hrv_trend(_hrv([70, 68, 66, 60, 50, 48, 46])) == RecoveryTrend.DECLINING

    def test_too_few_samples_is_stable(self):
        assert hrv_trend(_hrv([20, 90])) == RecoveryTrend.STABLE


class TestWorkloadBalance:
    """Test the acute:chronic workload factor."""

    def _sessions(self, minutes_by_day):
        return [Session(id=i, started_at=NOW - timedelta(days=d), status="completed", duration_minutes=m)
                for i, (d, m) in enumerate(minutes_by_day)]

    def test_no_history_is_neutral(self):
        assert workload_balance([], NOW) == FactorInfluence.NEUTRAL

    def test_steady_load_is_positive(self):
        sessions = self._sessions([(d, 60) for d in (2, 9, 16, 23)])
        assert workload_balance(sessions, NOW) == FactorInfluence.POSITIVE

    def test_spike_is_negative(self):
        sessions = self._sessions([(1, 120), (2, 120), (3, 120), (20, 30)])
        assert workload_balance(sessions, NOW) == FactorInfluence.NEGATIVE


class TestRecoveryScoringEngine:
    """Test scoring against stored HRV and sleep data."""

    def _seed(self, add_rows, hrv_score, efficiency, minutes=420):
        rows = []
        for day in range(1, 7):
            rows.append(HRVData(user_id=USER, recorded_at=NOW - timedelta(days=day), recovery_score=hrv_score))
            rows.append(SleepData(user_id=USER, sleep_date=NOW - timedelta(days=day),
                                  total_sleep_minutes=minutes, sleep_efficiency=efficiency))
        add_rows(*rows)

    def test_poor_recovery(self, store, add_rows):
        self._seed(add_rows, hrv_score=30, efficiency=65)
        analysis = RecoveryScoringEngine(store).score_recovery(USER, NOW)

        assert analysis.current_score == 27
        assert analysis.training_readiness == TrainingReadiness.REST
        assert analysis.factors["hrv"] == FactorInfluence.NEGATIVE
        assert analysis.factors["sleep"] == FactorInfluence.NEGATIVE
        assert analysis.factors["workload_balance"] == FactorInfluence.NEUTRAL
        assert analysis.trend == RecoveryTrend.STABLE
        assert len(analysis.recommendations) == 5
        assert analysis.recommendations[-1] == "Schedule an active rest day"
        assert analysis.next_recommendation_at == NOW + timedelta(days=1)

    def test_good_recovery(self, store, add_rows):
        self._seed(add_rows, hrv_score=90, efficiency=92)
        analysis = RecoveryScoringEngine(store).score_recovery(USER, NOW)

        assert analysis.current_score == 76
        assert analysis.factors["hrv"] == FactorInfluence.POSITIVE
        assert analysis.factors["sleep"] == FactorInfluence.POSITIVE
        assert analysis.recommendations == []

    def test_sleep_average_ignores_missing_efficiency(self, store, add_rows):
        add_rows(
            SleepData(user_id=USER, sleep_date=NOW - timedelta(days=1), total_sleep_minutes=480, sleep_efficiency=90),
            SleepData(user_id=USER, sleep_date=NOW - timedelta(days=2), total_sleep_minutes=480),
        )
        analysis = RecoveryScoringEngine(store).score_recovery(USER, NOW)
        assert analysis.avg_sleep_efficiency == pytest.approx(90)
        assert analysis.current_score == 60

    def test_samples_outside_window_ignored(self, store, add_rows):
        add_rows(HRVData(user_id=USER, recorded_at=NOW - timedelta(days=10), recovery_score=100))
        analysis = RecoveryScoringEngine(store).score_recovery(USER, NOW)
        assert analysis.hrv_samples == 0
        assert analysis.current_score == 50

    def test_consistency_factor(self, store, add_rows):
        add_rows(*[
            WorkoutSession(user_id=USER, started_at=NOW - timedelta(days=d), status="completed", duration_minutes=45)
            for d in (1, 3, 5, 8, 10, 12)
        ])
        analysis = RecoveryScoringEngine(store).score_recovery(USER, NOW)
        assert analysis.factors["consistency"] == FactorInfluence.POSITIVE

    def test_persist_is_idempotent_per_day(self, store, add_rows, db):
        self._seed(add_rows, hrv_score=60, efficiency=80)
        engine = RecoveryScoringEngine(store)
        engine.score_recovery(USER, NOW, persist=True)
        engine.score_recovery(USER, NOW + timedelta(hours=3), persist=True)

        with db.get_session() as session:
            rows = session.query(RecoveryRecommendationRecord).all()
            assert len(rows) == 1
            assert rows[0].recommendation_date == datetime(2024, 5, 15)
            assert rows[0].recovery_score == 54
            assert rows[0].training_readiness == "low"
            assert rows[0].factors["hrv"] == "neutral"
