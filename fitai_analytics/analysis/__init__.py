"""Analysis module for fitness analytics."""

from .engine import AnalyticsEngine
from .snapshot import AnalyticsSnapshot, SnapshotAggregator
from .recovery import RecoveryAnalysis, RecoveryScoringEngine
from .regression import TrendAnalyzer, TrendDirection, TrendResult, fit_linear_trend
from .prediction import Prediction, PredictiveProjector, SkippedPrediction
from .adjustment import AdaptiveRecommendationEngine, SkipDecision, WorkoutAdjustment
from .key_metrics import KeyMetrics

__all__ = [
    "AnalyticsEngine",
    "AnalyticsSnapshot",
    "SnapshotAggregator",
    "RecoveryAnalysis",
    "RecoveryScoringEngine",
    "TrendAnalyzer",
    "TrendDirection",
    "TrendResult",
    "fit_linear_trend",
    "Prediction",
    "PredictiveProjector",
    "SkippedPrediction",
    "AdaptiveRecommendationEngine",
    "SkipDecision",
    "WorkoutAdjustment",
    "KeyMetrics",
]
