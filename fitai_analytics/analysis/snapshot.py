"""Periodic analytics snapshots.

A snapshot rolls one user's workouts, biometrics and goals for one calendar
period into a flat record of totals, averages and composite scores. Each
metric group is read and computed independently; if the store fails for one
group its fields fall back to their defaults and the rest of the snapshot
still completes.
"""

import logging
from dataclasses import asdict, dataclass, field, fields
from datetime import datetime, timedelta
from typing import Any, Callable, Dict, List, Optional

import numpy as np

from ..config import config
from ..db.store import RecordKey, RecordStore, snapshot_source
from ..exceptions import StoreUnavailable
from .periods import PeriodWindow, period_window, utc_now, weeks_elapsed
from .records import as_float
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)

# Failures that degrade a metric group instead of failing the snapshot
RECOVERABLE_ERRORS = (StoreUnavailable, TimeoutError, ConnectionError)

ENDURANCE_LOOKBACK_DAYS = 365

BODY_COMPOSITION_METRICS = {
    "weight_change_kg": "body_weight",
    "body_fat_change": "body_fat_percentage",
    "muscle_mass_change": "muscle_mass",
}


@dataclass
class AnalyticsSnapshot:
    """Rolled-up metrics for one user and period."""
    user_id: str
    period_type: str
    period_start: datetime
    period_end: datetime

    # Workout metrics
    total_workouts: int = 0
    total_workout_minutes: float = 0.0
    total_volume_kg: float = 0.0
    avg_workout_intensity: float = 0.0
    total_calories_burned: float = 0.0
    total_distance_km: float = 0.0

    # Performance metrics
    strength_pr_count: int = 0
    endurance_improvements: int = 0
    consistency_score: float = 0.0

    # Health metrics
    avg_recovery_score: float = 0.0
    avg_sleep_hours: float = 0.0
    avg_sleep_efficiency: float = 0.0
    avg_hrv_score: float = 0.0
    avg_resting_hr: float = 0.0

    # Body composition
    weight_change_kg: float = 0.0
    body_fat_change: float = 0.0
    muscle_mass_change: float = 0.0

    # Goals
    goals_achieved: int = 0
    goals_total: int = 0
    goal_completion_rate: float = 0.0

    # Composite scores
    overall_fitness_score: float = 0.0
    progress_velocity: float = 0.0
    adherence_score: float = 0.0

    failed_groups: List[str] = field(default_factory=list)

    def to_record(self) -> Dict[str, Any]:
        """Stored columns; floats rounded so recomputation is byte-stable."""
        record = asdict(self)
        for name in ("user_id", "period_type", "period_start"):
            record.pop(name)
        for name, value in record.items():
            if isinstance(value, float):
                record[name] = round(value, config.SNAPSHOT_PRECISION)
        return record

    @classmethod
    def from_record(cls, record: Dict[str, Any]) -> "AnalyticsSnapshot":
        names = {f.name for f in fields(cls)}
        values = {name: value for name, value in record.items() if name in names}
        values["failed_groups"] = list(values.get("failed_groups") or [])
        return cls(**values)


def _safe_mean(values) -> Optional[float]:
    values = [v for v in values if v is not None]
    if not values:
        return None
    return float(np.mean(values))


def _clamp(value: float, low: float = 0.0, high: float = 100.0) -> float:
    return max(low, min(high, value))


def _ratio(numerator: float, denominator: float) -> float:
    return numerator / denominator if denominator else 0.0


def consistency_score(total_workouts: int, weeks: int, target_per_week: float) -> float:
    """Workouts done against workouts expected, capped at 100."""
    expected = weeks * target_per_week
    if expected <= 0:
        return 0.0
    return float(round(min(100.0, total_workouts / expected * 100)))


class SnapshotAggregator:
    """Computes and stores period snapshots."""

    def __init__(self, store: RecordStore, extractor: Optional[TimeSeriesExtractor] = None):
        self.store = store
        self.extractor = extractor or TimeSeriesExtractor(store)

    def aggregate_period(self, user_id: str, period_type: str, periods_back: int = 0,
                         now: Optional[datetime] = None) -> AnalyticsSnapshot:
        """Aggregate one calendar period and upsert the snapshot.

        Args:
            user_id: User identifier
            period_type: weekly, monthly, quarterly or yearly
            periods_back: Whole periods before the current one
            now: Reference time (defaults to current UTC time)

        Returns:
            The stored AnalyticsSnapshot

        Raises:
            InvalidPeriod: Unknown period type or negative offset
            StoreUnavailable: The snapshot could not be written
        """
        now = now or utc_now()
        window = period_window(period_type, periods_back, now)
        snapshot = self.compute(user_id, window, now)

        key = RecordKey(snapshot_source(period_type), user_id, window.start)
        self.store.upsert(key, snapshot.to_record())
        logger.info(
            "Stored %s snapshot for %s starting %s (%d workouts)",
            period_type, user_id, window.start.date(), snapshot.total_workouts,
        )
        return snapshot

    def compute(self, user_id: str, window: PeriodWindow, now: datetime) -> AnalyticsSnapshot:
        """Build the snapshot for ``window`` without storing it."""
        failed: List[str] = []
        snapshot = AnalyticsSnapshot(user_id, window.period_type, window.start, window.end)

        workouts = self._run_group("workouts", lambda: self._workout_metrics(user_id, window), failed)
        performance = self._run_group("performance", lambda: self._performance_metrics(user_id, window), failed)
        sleep = self._run_group("sleep", lambda: self._sleep_metrics(user_id, window), failed)
        hrv = self._run_group("hrv", lambda: self._hrv_metrics(user_id, window), failed)
        heart_rate = self._run_group("resting_hr", lambda: self._resting_hr_metrics(user_id, window), failed)
        body = self._run_group("body_composition", lambda: self._body_composition(user_id, window), failed)
        goals = self._run_group("goals", lambda: self._goal_metrics(user_id, window), failed)
        previous = self._run_group("previous_snapshot", lambda: self._previous_snapshot(user_id, window), failed)

        for group in (workouts, performance, sleep, hrv, heart_rate, body, goals):
            for name, value in group.items():
                if hasattr(snapshot, name):
                    setattr(snapshot, name, value if value is not None else 0.0)

        snapshot.consistency_score = consistency_score(
            snapshot.total_workouts, weeks_elapsed(window, now), config.TARGET_WORKOUTS_PER_WEEK
        )
        snapshot.overall_fitness_score = self._overall_fitness(snapshot, hrv, sleep)
        snapshot.progress_velocity = self._progress_velocity(snapshot, previous.get("total_volume_kg"))
        snapshot.adherence_score = self._adherence(snapshot)
        snapshot.failed_groups = failed
        return snapshot

    def _run_group(self, name: str, compute: Callable[[], Dict[str, Any]], failed: List[str]) -> Dict[str, Any]:
        try:
            return compute()
        except RECOVERABLE_ERRORS as e:
            logger.warning("Metric group '%s' unavailable, using defaults: %s", name, e)
            failed.append(name)
            return {}

    # Metric groups

    def _workout_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        sessions = [s for s in self.extractor.workouts(user_id, window.start, window.end) if s.completed]
        completed_ids = {s.id for s in sessions}
        exercises = self.extractor.exercises(user_id, window.start, window.end) if sessions else []

        intensities = [s.intensity for s in sessions if s.intensity]
        return {
            "total_workouts": len(sessions),
            "total_workout_minutes": sum(s.duration_minutes or 0.0 for s in sessions),
            "total_volume_kg": sum(e.volume_kg for e in exercises if e.session_id in completed_ids),
            "avg_workout_intensity": _safe_mean(intensities) or 0.0,
            "total_calories_burned": sum(s.calories_burned or 0.0 for s in sessions),
            "total_distance_km": sum(s.distance_km or 0.0 for s in sessions),
        }

    def _performance_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        exercises = self.extractor.exercises(user_id, window.start, window.end)

        history = self.extractor.workouts(user_id, window.start - timedelta(days=ENDURANCE_LOOKBACK_DAYS), window.end)
        best = None
        improvements = 0
        for session in history:
            if not session.completed or not session.distance_km:
                continue
            if window.contains(session.started_at) and best is not None and session.distance_km > best:
                improvements += 1
            best = session.distance_km if best is None else max(best, session.distance_km)

        return {
            "strength_pr_count": sum(1 for e in exercises if e.is_personal_record),
            "endurance_improvements": improvements,
        }

    def _sleep_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        nights = self.extractor.sleep(user_id, window.start, window.end)
        return {
            "avg_recovery_score": _safe_mean(n.recovery_score for n in nights),
            "avg_sleep_hours": _safe_mean(n.hours for n in nights),
            "avg_sleep_efficiency": _safe_mean(n.sleep_efficiency for n in nights),
        }

    def _hrv_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        samples = self.extractor.hrv(user_id, window.start, window.end)
        return {"avg_hrv_score": _safe_mean(s.recovery_score for s in samples)}

    def _resting_hr_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        samples = self.extractor.health_metric(user_id, "resting_heart_rate", window.start, window.end)
        return {"avg_resting_hr": _safe_mean(s.value for s in samples)}

    def _body_composition(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        changes = {}
        for field_name, metric_type in BODY_COMPOSITION_METRICS.items():
            values = [s.value for s in self.extractor.health_metric(user_id, metric_type, window.start, window.end)
                      if s.value is not None]
            changes[field_name] = values[-1] - values[0] if values else 0.0
        return changes

    def _goal_metrics(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        goals = self.extractor.goals(user_id, window.start, window.end)
        achieved = sum(
            1 for g in goals
            if g.achieved and (g.achieved_at is None or g.achieved_at < window.end)
        )
        return {
            "goals_total": len(goals),
            "goals_achieved": achieved,
            "goal_completion_rate": _ratio(achieved, len(goals)) * 100,
        }

    def _previous_snapshot(self, user_id: str, window: PeriodWindow) -> Dict[str, Any]:
        previous_window = period_window(window.period_type, 1, window.start)
        record = self.extractor.previous_snapshot(user_id, window.period_type, previous_window.start, window.start)
        return record or {}

    # Composite scores

    def _overall_fitness(self, snapshot: AnalyticsSnapshot, hrv: Dict[str, Any], sleep: Dict[str, Any]) -> float:
        """Weighted blend of consistency, intensity, recovery, sleep and endurance (0-100).

        Recovery and sleep terms fall back to a neutral score when the period
        has no samples; the endurance term is the share of workouts that set
        a distance best, 0 without workouts.
        """
        weights = config.get_fitness_weights()
        neutral = config.NEUTRAL_HEALTH_SCORE
        recovery = hrv.get("avg_hrv_score")
        efficiency = sleep.get("avg_sleep_efficiency")

        terms = {
            "consistency": snapshot.consistency_score,
            "intensity": _clamp(snapshot.avg_workout_intensity * 10),
            "recovery": _clamp(recovery) if recovery is not None else neutral,
            "sleep": _clamp(efficiency) if efficiency is not None else neutral,
            "endurance": _clamp(_ratio(snapshot.endurance_improvements, snapshot.total_workouts) * 100),
        }
        return _clamp(sum(weights[name] * value for name, value in terms.items()))

    def _progress_velocity(self, snapshot: AnalyticsSnapshot, previous_volume: Any) -> float:
        """Volume growth against the previous period plus PRs and endurance bests per workout."""
        weights = config.get_velocity_weights()
        previous_volume = as_float(previous_volume)

        volume_change = 0.0
        if previous_volume:
            volume_change = (snapshot.total_volume_kg - previous_volume) / previous_volume

        return (
            weights["volume"] * volume_change
            + weights["prs"] * _ratio(snapshot.strength_pr_count, snapshot.total_workouts)
            + weights["endurance"] * _ratio(snapshot.endurance_improvements, snapshot.total_workouts)
        )

    def _adherence(self, snapshot: AnalyticsSnapshot) -> float:
        """Consistency blended with goal completion; without goals consistency stands in."""
        weights = config.get_adherence_weights()
        goal_term = snapshot.goal_completion_rate if snapshot.goals_total else snapshot.consistency_score
        return _clamp(weights["consistency"] * snapshot.consistency_score + weights["goals"] * goal_term)
