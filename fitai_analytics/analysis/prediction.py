"""Forward projections of strength volume, fitness score and body weight.

Each prediction type has a policy describing where its history comes from,
how much of it is needed, how far ahead to project and how to bound the
result. Histories too short to fit are reported as skipped rather than
guessed at low confidence.
"""

import logging
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence, Union

import numpy as np

from ..config import config
from ..db.store import RecordKey, RecordStore, prediction_source
from .periods import utc_now
from .regression import fit_linear_trend
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)

SNAPSHOT_HISTORY = "snapshot"
HEALTH_HISTORY = "health_metric"


@dataclass(frozen=True)
class PredictionPolicy:
    """How one prediction type is fitted and bounded."""
    prediction_type: str
    metric: str
    history: str  # snapshot or health_metric
    history_limit: int
    min_samples: int
    horizon_units: int  # steps of the history's own cadence
    horizon_days: int
    model_version: str
    period_type: Optional[str] = None
    improvement_only: bool = False
    positive_only: bool = False
    lower_bound: Optional[float] = None
    upper_bound: Optional[float] = None
    decimals: int = 0


POLICIES = {
    "strength_volume": PredictionPolicy(
        prediction_type="strength_volume",
        metric="total_volume_kg",
        history=SNAPSHOT_HISTORY,
        period_type="monthly",
        history_limit=6,
        min_samples=3,
        horizon_units=3,
        horizon_days=90,
        model_version="linear_v1.0",
        improvement_only=True,
        lower_bound=0.0,
    ),
    "fitness_score": PredictionPolicy(
        prediction_type="fitness_score",
        metric="overall_fitness_score",
        history=SNAPSHOT_HISTORY,
        period_type="monthly",
        history_limit=6,
        min_samples=3,
        horizon_units=2,
        horizon_days=60,
        model_version="trend_v1.0",
        positive_only=True,
        lower_bound=0.0,
        upper_bound=100.0,
    ),
    "weight_progress": PredictionPolicy(
        prediction_type="weight_progress",
        metric="body_weight",
        history=HEALTH_HISTORY,
        history_limit=12,
        min_samples=4,
        horizon_units=4,
        horizon_days=30,
        model_version="linear_v1.0",
        decimals=1,
    ),
}


@dataclass
class Prediction:
    """A projected metric value at a target date."""
    user_id: str
    prediction_type: str
    metric: str
    target_date: date
    predicted_value: float
    confidence: int
    model_version: str
    input_data_points: int
    horizon_days: int
    slope: float = 0.0
    r_squared: float = 0.0
    actual_value: Optional[float] = None
    accuracy_score: Optional[float] = None
    achieved_at: Optional[datetime] = None

    def to_record(self) -> Dict:
        return {
            "metric": self.metric,
            "predicted_value": self.predicted_value,
            "confidence": self.confidence,
            "model_version": self.model_version,
            "input_data_points": self.input_data_points,
            "horizon_days": self.horizon_days,
            "actual_value": self.actual_value,
            "accuracy_score": self.accuracy_score,
            "achieved_at": self.achieved_at,
        }

    @classmethod
    def from_record(cls, record: Dict) -> "Prediction":
        target = record["prediction_date"]
        return cls(
            user_id=record["user_id"],
            prediction_type=record["prediction_type"],
            metric=record.get("metric"),
            target_date=target.date() if isinstance(target, datetime) else target,
            predicted_value=record.get("predicted_value"),
            confidence=int(record.get("confidence") or 0),
            model_version=record.get("model_version"),
            input_data_points=int(record.get("input_data_points") or 0),
            horizon_days=int(record.get("horizon_days") or 0),
            actual_value=record.get("actual_value"),
            accuracy_score=record.get("accuracy_score"),
            achieved_at=record.get("achieved_at"),
        )


@dataclass
class SkippedPrediction:
    """Explicit "no prediction" outcome."""
    user_id: str
    prediction_type: str
    reason: str  # insufficient_data, non_positive_trend, non_finite
    input_data_points: int = 0


PredictionOutcome = Union[Prediction, SkippedPrediction]


def prediction_confidence(r_squared: float, n: int) -> int:
    """Confidence grows with fit quality and sample count, within fixed bounds."""
    raw = (config.PREDICTION_CONFIDENCE_BASE
           + r_squared * config.PREDICTION_CONFIDENCE_R2_WEIGHT
           + n * config.PREDICTION_CONFIDENCE_PER_SAMPLE)
    bounded = min(config.PREDICTION_CONFIDENCE_MAX, max(config.PREDICTION_CONFIDENCE_MIN, raw))
    return int(round(bounded))


def score_outcome(predicted: float, actual: float) -> float:
    """Accuracy of a prediction in percent (100 = exact)."""
    if actual == 0:
        return 100.0 if predicted == 0 else 0.0
    error = abs(predicted - actual) / abs(actual) * 100
    return round(max(0.0, 100.0 - error), 2)


def _bound(policy: PredictionPolicy, value: float) -> float:
    if policy.lower_bound is not None:
        value = max(policy.lower_bound, value)
    if policy.upper_bound is not None:
        value = min(policy.upper_bound, value)
    return value


class PredictiveProjector:
    """Projects metric histories forward per prediction policy."""

    def __init__(self, store: RecordStore, extractor: Optional[TimeSeriesExtractor] = None):
        self.store = store
        self.extractor = extractor or TimeSeriesExtractor(store)

    def project_values(self, user_id: str, prediction_type: str, values: Sequence[float],
                       today: Optional[date] = None) -> PredictionOutcome:
        """Project an in-memory history, oldest value first.

        Args:
            user_id: User identifier
            prediction_type: Key of POLICIES
            values: Observed history
            today: Date the horizon counts from

        Returns:
            Prediction, or SkippedPrediction with the reason
        """
        policy = POLICIES[prediction_type]
        today = today or utc_now().date()
        n = len(values)

        if n < max(policy.min_samples, 3):
            return SkippedPrediction(user_id, prediction_type, "insufficient_data", n)

        fit = fit_linear_trend(values)
        if policy.improvement_only and fit.slope <= 0:
            return SkippedPrediction(user_id, prediction_type, "non_positive_trend", n)

        projected = float(values[-1]) + fit.slope * policy.horizon_units
        if not np.isfinite(projected):
            return SkippedPrediction(user_id, prediction_type, "non_finite", n)

        projected = float(round(_bound(policy, projected), policy.decimals))

        return Prediction(
            user_id=user_id,
            prediction_type=prediction_type,
            metric=policy.metric,
            target_date=today + timedelta(days=policy.horizon_days),
            predicted_value=projected,
            confidence=prediction_confidence(fit.r_squared, n),
            model_version=policy.model_version,
            input_data_points=n,
            horizon_days=policy.horizon_days,
            slope=round(fit.slope, 4),
            r_squared=round(fit.r_squared, 4),
        )

    def history(self, user_id: str, prediction_type: str) -> List[float]:
        policy = POLICIES[prediction_type]
        if policy.history == SNAPSHOT_HISTORY:
            series = self.extractor.snapshot_series(
                user_id, policy.period_type, policy.metric, policy.history_limit,
                positive_only=policy.positive_only,
            )
        else:
            series = self.extractor.metric_series(user_id, policy.metric, policy.history_limit)
        return [point.value for point in series]

    def predict(self, user_id: str, prediction_type: str, now: Optional[datetime] = None,
                persist: bool = False) -> PredictionOutcome:
        """Predict one metric from the user's stored history."""
        if prediction_type not in POLICIES:
            raise ValueError(f"Unknown prediction type '{prediction_type}', expected one of {', '.join(POLICIES)}")

        now = now or utc_now()
        outcome = self.project_values(user_id, prediction_type, self.history(user_id, prediction_type), now.date())

        if isinstance(outcome, SkippedPrediction):
            logger.info("Skipped %s prediction for %s: %s", prediction_type, user_id, outcome.reason)
        elif persist:
            self.save(outcome)
        return outcome

    def predict_all(self, user_id: str, now: Optional[datetime] = None, persist: bool = False) -> List[PredictionOutcome]:
        return [self.predict(user_id, prediction_type, now, persist) for prediction_type in POLICIES]

    def save(self, prediction: Prediction):
        key = RecordKey(
            prediction_source(prediction.prediction_type),
            prediction.user_id,
            datetime.combine(prediction.target_date, time()),
        )
        self.store.upsert(key, prediction.to_record())

    def record_outcome(self, user_id: str, prediction_type: str, target_date: date, actual_value: float,
                       now: Optional[datetime] = None) -> Optional[Prediction]:
        """Attach the realized value and accuracy to a stored prediction.

        Returns:
            The updated Prediction, or None when nothing was predicted for that date
        """
        day = datetime.combine(target_date, time())
        rows = self.store.fetch_events(user_id, prediction_source(prediction_type), day, day + timedelta(days=1))
        if not rows:
            logger.warning("No %s prediction for %s on %s", prediction_type, user_id, target_date)
            return None

        prediction = Prediction.from_record(rows[-1])
        prediction.actual_value = float(actual_value)
        prediction.accuracy_score = score_outcome(prediction.predicted_value, prediction.actual_value)
        prediction.achieved_at = now or utc_now()
        self.save(prediction)
        return prediction
