"""Dashboard key metrics: the latest period snapshot against the one before it."""

from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Dict, Optional

from ..config import config
from .regression import TrendDirection
from .snapshot import AnalyticsSnapshot


@dataclass
class FitnessScoreMetric:
    current: float
    change: float
    trend: TrendDirection


@dataclass
class WorkoutFrequencyMetric:
    current: int
    target: int
    completion_rate: float


@dataclass
class RecoveryScoreMetric:
    current: float
    change: float
    trend: TrendDirection
    in_optimal_range: bool


@dataclass
class StrengthProgressMetric:
    personal_records: int
    volume_change_kg: float


@dataclass
class KeyMetrics:
    """Headline changes between two consecutive snapshots of one period type."""
    user_id: str
    period_type: str
    period_start: datetime
    previous_period_start: Optional[datetime]
    fitness_score: FitnessScoreMetric
    workout_frequency: WorkoutFrequencyMetric
    recovery_score: RecoveryScoreMetric
    strength_progress: StrengthProgressMetric

    def to_dict(self) -> Dict:
        data = asdict(self)
        data["fitness_score"]["trend"] = self.fitness_score.trend.value
        data["recovery_score"]["trend"] = self.recovery_score.trend.value
        return data


def trend_from_change(change: float) -> TrendDirection:
    """Direction of a point-to-point change in score points.

    Beyond the change threshold the score is moving; within the plateau
    threshold it is flat; anything in between is too noisy to call.
    """
    if change > config.KEY_METRIC_CHANGE_THRESHOLD:
        return TrendDirection.IMPROVING
    if change < -config.KEY_METRIC_CHANGE_THRESHOLD:
        return TrendDirection.DECLINING
    if abs(change) <= config.KEY_METRIC_PLATEAU_THRESHOLD:
        return TrendDirection.PLATEAUING
    return TrendDirection.VOLATILE


def workout_target(period_start: datetime, period_end: datetime) -> int:
    """Workouts expected in a period at the weekly target (12 for a month at 3/week)."""
    weeks = max(1, round((period_end - period_start).days / 7))
    return int(round(weeks * config.TARGET_WORKOUTS_PER_WEEK))


def compare_snapshots(current: AnalyticsSnapshot, previous: Optional[AnalyticsSnapshot] = None) -> KeyMetrics:
    """Key metrics of ``current``; changes are 0 without a previous snapshot."""
    def change(name):
        if previous is None:
            return 0.0
        return round(float(getattr(current, name) or 0) - float(getattr(previous, name) or 0), 2)

    fitness_change = change("overall_fitness_score")
    recovery_change = change("avg_recovery_score")
    workouts = int(current.total_workouts or 0)
    target = workout_target(current.period_start, current.period_end)
    recovery = float(current.avg_recovery_score or 0)

    return KeyMetrics(
        user_id=current.user_id,
        period_type=current.period_type,
        period_start=current.period_start,
        previous_period_start=previous.period_start if previous is not None else None,
        fitness_score=FitnessScoreMetric(
            current=float(current.overall_fitness_score or 0),
            change=fitness_change,
            trend=trend_from_change(fitness_change),
        ),
        workout_frequency=WorkoutFrequencyMetric(
            current=workouts,
            target=target,
            completion_rate=round(min(100.0, workouts / target * 100), 2) if target else 0.0,
        ),
        recovery_score=RecoveryScoreMetric(
            current=recovery,
            change=recovery_change,
            trend=trend_from_change(recovery_change),
            in_optimal_range=recovery > config.OPTIMAL_RECOVERY_SCORE,
        ),
        strength_progress=StrengthProgressMetric(
            personal_records=int(current.strength_pr_count or 0),
            volume_change_kg=change("total_volume_kg"),
        ),
    )
