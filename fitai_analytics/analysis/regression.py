"""Trend and regression analysis of metric histories.

Fits an ordinary least-squares line over chronologically ordered values and
classifies the direction of change. All guards return zero/neutral values
instead of NaN so degenerate inputs (constant series, too few points) never
leak non-finite numbers to callers.
"""

import logging
from dataclasses import dataclass, field
from enum import Enum
from typing import Dict, Iterable, List, Optional, Sequence

import numpy as np

from ..config import config
from ..db.store import RecordStore
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)

MIN_TREND_POINTS = 3

_EPSILON = 1e-12


class TrendDirection(Enum):
    """Qualitative direction of a metric."""
    IMPROVING = "improving"
    DECLINING = "declining"
    PLATEAUING = "plateauing"
    VOLATILE = "volatile"


@dataclass
class LinearFit:
    """Least-squares line ``y = intercept + slope * x``."""
    slope: float
    intercept: float
    r_squared: float
    n: int
    degenerate: bool = False

    def predict(self, x: float) -> float:
        return self.intercept + self.slope * x


@dataclass
class TrendResult:
    """Direction and strength of a metric's recent change."""
    metric: str
    direction: TrendDirection
    confidence: int
    significant_change: bool
    change_percent: float
    slope: float
    r_squared: float
    data_points: int
    projected_value: Optional[float] = None
    insufficient_data: bool = False
    recommendations: List[str] = field(default_factory=list)

    def to_dict(self) -> Dict:
        return {
            "metric": self.metric,
            "direction": self.direction.value,
            "confidence": self.confidence,
            "significant_change": self.significant_change,
            "change_percent": self.change_percent,
            "slope": self.slope,
            "r_squared": self.r_squared,
            "data_points": self.data_points,
            "projected_value": self.projected_value,
            "insufficient_data": self.insufficient_data,
            "recommendations": list(self.recommendations),
        }


def fit_linear_trend(values: Sequence[float], xs: Optional[Sequence[float]] = None) -> LinearFit:
    """Fit an OLS line over ``values``.

    Args:
        values: Observations, oldest first
        xs: Positions of the observations (defaults to 0..n-1)

    Returns:
        LinearFit; slope is 0 with fewer than 2 points or constant x,
        R² is 0 with fewer than 3 points or a zero-variance series.
    """
    y = np.asarray(list(values), dtype=float)
    x = np.arange(len(y), dtype=float) if xs is None else np.asarray(list(xs), dtype=float)
    if len(x) != len(y):
        raise ValueError("x and y must have the same length")

    finite = np.isfinite(x) & np.isfinite(y)
    x, y = x[finite], y[finite]
    n = len(y)

    if n == 0:
        return LinearFit(slope=0.0, intercept=0.0, r_squared=0.0, n=0, degenerate=True)
    if n < 2:
        return LinearFit(slope=0.0, intercept=float(y[0]), r_squared=0.0, n=1, degenerate=True)

    sum_x, sum_y = x.sum(), y.sum()
    sum_xy, sum_xx = (x * y).sum(), (x * x).sum()
    denominator = n * sum_xx - sum_x ** 2

    if abs(denominator) < _EPSILON:
        return LinearFit(slope=0.0, intercept=float(y.mean()), r_squared=0.0, n=n, degenerate=True)

    slope = float((n * sum_xy - sum_x * sum_y) / denominator)
    intercept = float((sum_y - slope * sum_x) / n)
    if not (np.isfinite(slope) and np.isfinite(intercept)):
        return LinearFit(slope=0.0, intercept=float(y.mean()), r_squared=0.0, n=n, degenerate=True)

    ss_tot = float(((y - y.mean()) ** 2).sum())
    if ss_tot < _EPSILON:
        return LinearFit(slope=0.0, intercept=float(y.mean()), r_squared=0.0, n=n, degenerate=True)

    r_squared = 0.0
    if n >= MIN_TREND_POINTS:
        ss_res = float(((y - (intercept + slope * x)) ** 2).sum())
        r_squared = float(np.clip(1 - ss_res / ss_tot, 0.0, 1.0))

    return LinearFit(slope=slope, intercept=intercept, r_squared=r_squared, n=n)


def trend_confidence(r_squared: float, n: int) -> int:
    """0-100 confidence from fit quality, discounted for short histories."""
    if n < MIN_TREND_POINTS:
        return 0
    coverage = min(1.0, n / config.TREND_FULL_CONFIDENCE_SAMPLES)
    return int(min(config.TREND_CONFIDENCE_CAP, round(100 * r_squared * coverage)))


def percent_change(earliest: float, latest: float, reference: Optional[float] = None) -> float:
    """Relative change in percent.

    A zero baseline has no relative change, so the change is measured
    against ``reference`` instead (typically the largest magnitude in the
    series). Without a usable reference the result is 0.
    """
    base = abs(earliest)
    if base < _EPSILON:
        base = abs(reference) if reference is not None else 0.0
        if base < _EPSILON:
            return 0.0
    change = (latest - earliest) / base * 100
    return float(change) if np.isfinite(change) else 0.0


def classify_direction(values: Sequence[float], slope: float, change: float,
                       lower_is_better: bool = False) -> TrendDirection:
    """Map a series onto a trend direction.

    A change within the significance threshold is a plateau. A significant
    change counts as a clean trend only when the overall slope agrees with it
    and neither half of the series moves the opposite way.
    """
    if abs(change) <= config.SIGNIFICANT_CHANGE_PERCENT:
        return TrendDirection.PLATEAUING

    sign = 1.0 if change > 0 else -1.0
    consistent = slope * sign > 0

    if consistent and len(values) >= 4:
        middle = len(values) // 2
        for half in (values[:middle], values[middle:]):
            if fit_linear_trend(half).slope * sign < 0:
                consistent = False
                break

    if not consistent:
        return TrendDirection.VOLATILE

    rising = sign > 0
    return TrendDirection.IMPROVING if rising != lower_is_better else TrendDirection.DECLINING


class TrendAnalyzer:
    """Classifies the direction of stored snapshot metrics."""

    KEY_METRICS = [
        "overall_fitness_score",
        "strength_pr_count",
        "consistency_score",
        "avg_recovery_score",
        "total_volume_kg",
    ]

    LOWER_IS_BETTER = {"avg_resting_hr"}

    def __init__(self, store: RecordStore, extractor: Optional[TimeSeriesExtractor] = None):
        self.store = store
        self.extractor = extractor or TimeSeriesExtractor(store)

    def analyze_values(self, metric: str, values: Iterable[float]) -> TrendResult:
        """Classify an in-memory series, oldest value first."""
        values = [float(v) for v in values if v is not None and np.isfinite(v)]
        n = len(values)
        fit = fit_linear_trend(values)

        if n < 2:
            return TrendResult(
                metric=metric,
                direction=TrendDirection.PLATEAUING,
                confidence=0,
                significant_change=False,
                change_percent=0.0,
                slope=0.0,
                r_squared=0.0,
                data_points=n,
                projected_value=values[-1] if values else None,
                insufficient_data=True,
                recommendations=["insufficient_data"],
            )

        change = percent_change(values[0], values[-1], reference=max(abs(v) for v in values))
        direction = classify_direction(values, fit.slope, change, metric in self.LOWER_IS_BETTER)
        confidence = trend_confidence(fit.r_squared, n)

        result = TrendResult(
            metric=metric,
            direction=direction,
            confidence=confidence,
            significant_change=abs(change) > config.SIGNIFICANT_CHANGE_PERCENT,
            change_percent=round(change, 2),
            slope=round(fit.slope, 4),
            r_squared=round(fit.r_squared, 4),
            data_points=n,
            projected_value=round(values[-1] + fit.slope, 2),
            insufficient_data=n < MIN_TREND_POINTS,
        )
        result.recommendations = self._recommendation_tokens(result)
        return result

    def analyze_trend(self, user_id: str, metric: str, period_type: str = "monthly", limit: int = 6) -> TrendResult:
        """Trend of a snapshot metric over the user's latest ``limit`` periods.

        Args:
            user_id: User identifier
            metric: Snapshot column, e.g. ``total_volume_kg``
            period_type: Snapshot period type to read
            limit: Number of most recent periods to fit

        Returns:
            TrendResult for the metric
        """
        series = self.extractor.snapshot_series(user_id, period_type, metric, limit)
        result = self.analyze_values(metric, [point.value for point in series])
        logger.debug("Trend %s for %s: %s (confidence %s)", metric, user_id, result.direction.value, result.confidence)
        return result

    def analyze_trends(self, user_id: str, period_type: str = "monthly", limit: int = 6,
                       metrics: Optional[List[str]] = None) -> Dict[str, TrendResult]:
        """Trends of the key snapshot metrics."""
        return {
            metric: self.analyze_trend(user_id, metric, period_type, limit)
            for metric in (metrics or self.KEY_METRICS)
        }

    @staticmethod
    def _recommendation_tokens(result: TrendResult) -> List[str]:
        tokens = []
        if result.insufficient_data:
            tokens.append("insufficient_data")

        if result.direction == TrendDirection.IMPROVING:
            tokens.append("maintain_progression")
        elif result.direction == TrendDirection.DECLINING:
            tokens.append("investigate_decline")
        elif result.direction == TrendDirection.PLATEAUING:
            tokens.append("vary_stimulus")
        else:
            tokens.append("stabilize_routine")

        if not result.insufficient_data and result.confidence < 50:
            tokens.append("low_confidence")
        return tokens[:3]
