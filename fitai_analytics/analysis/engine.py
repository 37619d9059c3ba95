"""Single entry point over the analytics components.

All collaborators are passed in explicitly; the engine holds no global
state. The optional cache memoizes snapshots and prediction lists and never
changes what is returned.
"""

import copy
import logging
from datetime import date, datetime
from typing import Dict, List, Optional

from ..cache import KeyValueCache, predictions_cache_key, snapshot_cache_key
from ..config import config
from ..db.store import RecordStore, snapshot_source
from ..exceptions import InvalidPeriod
from .adjustment import (
    AdaptiveRecommendationEngine,
    HeartRateCheck,
    SkipDecision,
    WorkoutAdjustment,
    WorkoutPersonalization,
)
from .key_metrics import KeyMetrics, compare_snapshots
from .periods import PERIOD_TYPES, period_window, utc_now
from .prediction import Prediction, PredictionOutcome, PredictiveProjector
from .recovery import RecoveryAnalysis, RecoveryScoringEngine
from .regression import TrendAnalyzer, TrendResult
from .snapshot import AnalyticsSnapshot, SnapshotAggregator
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)


class AnalyticsEngine:
    """Facade exposing snapshot, recovery, trend, prediction and adjustment operations."""

    def __init__(self, store: RecordStore, cache: Optional[KeyValueCache] = None,
                 cache_ttl_seconds: Optional[int] = None):
        self.store = store
        self.cache = cache
        self.cache_ttl_seconds = cache_ttl_seconds if cache_ttl_seconds is not None else config.CACHE_TTL_SECONDS

        extractor = TimeSeriesExtractor(store)
        self.aggregator = SnapshotAggregator(store, extractor)
        self.recovery = RecoveryScoringEngine(store, extractor)
        self.trends = TrendAnalyzer(store, extractor)
        self.projector = PredictiveProjector(store, extractor)
        self.adjustments = AdaptiveRecommendationEngine(store, self.recovery, extractor)

    def aggregate_period(self, user_id: str, period_type: str = "monthly", periods_back: int = 0,
                         now: Optional[datetime] = None, refresh: bool = False) -> AnalyticsSnapshot:
        """Snapshot for one period, served from cache unless ``refresh`` is set."""
        now = now or utc_now()
        window = period_window(period_type, periods_back, now)
        key = snapshot_cache_key(user_id, period_type, window.start)

        if self.cache is not None and not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Snapshot cache hit: %s", key)
                return copy.deepcopy(cached)

        snapshot = self.aggregator.aggregate_period(user_id, period_type, periods_back, now)
        if self.cache is not None:
            self.cache.set(key, copy.deepcopy(snapshot), self.cache_ttl_seconds)
        return snapshot

    def score_recovery(self, user_id: str, now: Optional[datetime] = None, persist: bool = False) -> RecoveryAnalysis:
        return self.recovery.score_recovery(user_id, now, persist)

    def analyze_trend(self, user_id: str, metric: str, period_type: str = "monthly", limit: int = 6) -> TrendResult:
        return self.trends.analyze_trend(user_id, metric, period_type, limit)

    def analyze_trends(self, user_id: str, period_type: str = "monthly", limit: int = 6) -> Dict[str, TrendResult]:
        return self.trends.analyze_trends(user_id, period_type, limit)

    def predict(self, user_id: str, prediction_type: str, now: Optional[datetime] = None,
                persist: bool = False) -> PredictionOutcome:
        return self.projector.predict(user_id, prediction_type, now, persist)

    def generate_predictions(self, user_id: str, now: Optional[datetime] = None, persist: bool = True,
                             refresh: bool = False) -> List[PredictionOutcome]:
        """All prediction types for the user, memoized per day."""
        now = now or utc_now()
        key = predictions_cache_key(user_id, now.date())

        if self.cache is not None and not refresh:
            cached = self.cache.get(key)
            if cached is not None:
                logger.debug("Prediction cache hit: %s", key)
                return copy.deepcopy(cached)

        outcomes = self.projector.predict_all(user_id, now, persist)
        if self.cache is not None:
            self.cache.set(key, copy.deepcopy(outcomes), self.cache_ttl_seconds)
        return outcomes

    def record_prediction_outcome(self, user_id: str, prediction_type: str, target_date: date,
                                  actual_value: float, now: Optional[datetime] = None) -> Optional[Prediction]:
        return self.projector.record_outcome(user_id, prediction_type, target_date, actual_value, now)

    def recommend_adjustment(self, user_id: str, now: Optional[datetime] = None) -> WorkoutAdjustment:
        return self.adjustments.recommend_adjustment(user_id, now)

    def should_skip_workout(self, user_id: str, now: Optional[datetime] = None) -> SkipDecision:
        return self.adjustments.should_skip_workout(user_id, now)

    def personalize_workout(self, user_id: str, base_duration_minutes: float = 45, base_rest_seconds: float = 60,
                            age: Optional[int] = None, now: Optional[datetime] = None) -> WorkoutPersonalization:
        return self.adjustments.personalize_workout(user_id, base_duration_minutes, base_rest_seconds, age, now)

    def check_heart_rate(self, user_id: str, current_heart_rate: float, workout_minutes: float,
                         age: Optional[int] = None, now: Optional[datetime] = None) -> HeartRateCheck:
        return self.adjustments.check_heart_rate(user_id, current_heart_rate, workout_minutes, age, now)

    def key_metrics(self, user_id: str, period_type: str = "monthly", now: Optional[datetime] = None) -> KeyMetrics:
        """Compare the latest stored snapshot with the one before it.

        Without any stored snapshot of ``period_type`` the current period is
        aggregated first, and the result carries no previous period.
        """
        if period_type not in PERIOD_TYPES:
            raise InvalidPeriod(f"Unknown period type '{period_type}', expected one of {', '.join(PERIOD_TYPES)}")

        rows = self.store.latest(user_id, snapshot_source(period_type), 2)
        if rows:
            snapshots = [AnalyticsSnapshot.from_record(row) for row in rows]
        else:
            snapshots = [self.aggregate_period(user_id, period_type, now=now)]

        current = snapshots[-1]
        previous = snapshots[-2] if len(snapshots) > 1 else None
        return compare_snapshots(current, previous)
