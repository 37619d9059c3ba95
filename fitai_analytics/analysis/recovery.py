"""Recovery scoring from recent HRV, sleep and training history.

The score starts from a neutral base of 50, moves with the average HRV
recovery score (40% weight) and receives a flat bonus or penalty from sleep
efficiency. Workload balance and training consistency are reported as
factors but do not move the score.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum
from typing import Dict, List, Optional

import numpy as np

from ..config import config
from ..db.store import RecordKey, RecordStore, RECOVERY_RECOMMENDATIONS
from .periods import start_of_day, utc_now
from .records import HRVSample, SleepSample, WorkoutSession
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)


class RecoveryTrend(Enum):
    """Short-term direction of HRV recovery."""
    IMPROVING = "improving"
    STABLE = "stable"
    DECLINING = "declining"


class FactorInfluence(Enum):
    """How a factor is currently affecting recovery."""
    POSITIVE = "positive"
    NEGATIVE = "negative"
    NEUTRAL = "neutral"


class TrainingReadiness(Enum):
    """Readiness band derived from the recovery score."""
    HIGH = "high"
    MODERATE = "moderate"
    LOW = "low"
    REST = "rest"


# Suggested relative training intensity per readiness band
RECOMMENDED_INTENSITY = {
    TrainingReadiness.HIGH: 1.1,
    TrainingReadiness.MODERATE: 1.0,
    TrainingReadiness.LOW: 0.8,
    TrainingReadiness.REST: 0.6,
}

# Ranked rule table: (factor, influence) -> advice
RECOMMENDATION_RULES = [
    ("sleep", FactorInfluence.NEGATIVE, [
        "Prioritize 7-9 hours of sleep per night",
        "Keep a regular sleep schedule",
    ]),
    ("hrv", FactorInfluence.NEGATIVE, [
        "Consider reducing training intensity",
        "Add relaxation techniques and breathing exercises",
    ]),
    ("workload_balance", FactorInfluence.NEGATIVE, [
        "Training load has spiked above your usual level; ease volume for a few days",
    ]),
    ("consistency", FactorInfluence.NEGATIVE, [
        "Spread sessions evenly through the week to build a steadier routine",
    ]),
]

LOW_SCORE_RECOMMENDATION = "Schedule an active rest day"
LOW_SCORE_THRESHOLD = 40

HRV_POSITIVE_THRESHOLD = 70
HRV_NEGATIVE_THRESHOLD = 40
SLEEP_POSITIVE_THRESHOLD = 85
SLEEP_NEGATIVE_THRESHOLD = 70
TREND_THRESHOLD = 5
TREND_SAMPLES = 3


@dataclass
class RecoveryAnalysis:
    """Recovery assessment for one user at one point in time."""
    user_id: str
    assessed_at: datetime
    current_score: int
    trend: RecoveryTrend
    factors: Dict[str, FactorInfluence]
    training_readiness: TrainingReadiness
    next_recommendation_at: datetime
    recommendations: List[str] = field(default_factory=list)
    avg_hrv_recovery: Optional[float] = None
    avg_sleep_efficiency: Optional[float] = None
    hrv_samples: int = 0
    sleep_samples: int = 0

    @property
    def recommended_intensity(self) -> float:
        return RECOMMENDED_INTENSITY[self.training_readiness]

    def to_record(self) -> Dict:
        """Flat record for the daily recovery recommendation table."""
        return {
            "recovery_score": self.current_score,
            "trend": self.trend.value,
            "training_readiness": self.training_readiness.value,
            "recommended_intensity": self.recommended_intensity,
            "factors": {name: influence.value for name, influence in self.factors.items()},
            "recommendations": list(self.recommendations),
        }


def _safe_mean(values) -> Optional[float]:
    values = [v for v in values if v is not None]
    if not values:
        return None
    return float(np.mean(values))


def compute_recovery_score(avg_hrv_recovery: Optional[float], avg_sleep_efficiency: Optional[float]) -> int:
    """Combine HRV and sleep averages into a 0-100 score."""
    score = config.RECOVERY_BASE_SCORE
    if avg_hrv_recovery is not None:
        score += (avg_hrv_recovery - 50) * config.RECOVERY_HRV_WEIGHT
    if avg_sleep_efficiency is not None:
        if avg_sleep_efficiency > SLEEP_POSITIVE_THRESHOLD:
            score += config.RECOVERY_SLEEP_BONUS
        elif avg_sleep_efficiency < SLEEP_NEGATIVE_THRESHOLD:
            score -= config.RECOVERY_SLEEP_PENALTY
    if not np.isfinite(score):
        score = config.RECOVERY_BASE_SCORE
    return int(round(min(100.0, max(0.0, score))))


def classify_readiness(score: float) -> TrainingReadiness:
    if score >= 80:
        return TrainingReadiness.HIGH
    if score >= 60:
        return TrainingReadiness.MODERATE
    if score >= 40:
        return TrainingReadiness.LOW
    return TrainingReadiness.REST


def hrv_trend(samples: List[HRVSample]) -> RecoveryTrend:
    """Compare the 3 most recent HRV recovery scores with the 3 oldest."""
    scores = [s.recovery_score for s in samples if s.recovery_score is not None]
    if len(scores) < TREND_SAMPLES:
        return RecoveryTrend.STABLE

    oldest = np.mean(scores[:TREND_SAMPLES])
    recent = np.mean(scores[-TREND_SAMPLES:])
    if recent > oldest + TREND_THRESHOLD:
        return RecoveryTrend.IMPROVING
    if recent < oldest - TREND_THRESHOLD:
        return RecoveryTrend.DECLINING
    return RecoveryTrend.STABLE


def workload_balance(workouts: List[WorkoutSession], now: datetime) -> FactorInfluence:
    """Acute:chronic ratio of completed training minutes."""
    completed = [w for w in workouts if w.completed and w.duration_minutes]
    if not completed:
        return FactorInfluence.NEUTRAL

    acute_start = now - timedelta(days=config.ACUTE_WORKLOAD_DAYS)
    acute = sum(w.duration_minutes for w in completed if w.started_at >= acute_start)
    chronic_weekly = sum(w.duration_minutes for w in completed) / (config.CHRONIC_WORKLOAD_DAYS / 7)
    if chronic_weekly <= 0:
        return FactorInfluence.NEUTRAL

    ratio = acute / chronic_weekly
    if ratio > 1.5:
        return FactorInfluence.NEGATIVE
    if 0.8 <= ratio <= 1.3:
        return FactorInfluence.POSITIVE
    return FactorInfluence.NEUTRAL


def training_consistency(workouts: List[WorkoutSession], now: datetime) -> FactorInfluence:
    """Completed sessions over the last two weeks against the weekly target."""
    if not workouts:
        return FactorInfluence.NEUTRAL

    since = now - timedelta(days=14)
    completed = sum(1 for w in workouts if w.completed and w.started_at >= since)
    expected = config.TARGET_WORKOUTS_PER_WEEK * 2
    if expected <= 0:
        return FactorInfluence.NEUTRAL

    ratio = completed / expected
    if ratio >= 1.0:
        return FactorInfluence.POSITIVE
    if ratio < 0.5:
        return FactorInfluence.NEGATIVE
    return FactorInfluence.NEUTRAL


class RecoveryScoringEngine:
    """Scores recovery from the last week of biometric data."""

    def __init__(self, store: RecordStore, extractor: Optional[TimeSeriesExtractor] = None):
        self.store = store
        self.extractor = extractor or TimeSeriesExtractor(store)

    def score_recovery(self, user_id: str, now: Optional[datetime] = None, persist: bool = False) -> RecoveryAnalysis:
        """Assess current recovery.

        Args:
            user_id: User identifier
            now: Assessment time (defaults to current UTC time)
            persist: Write the result as today's recovery recommendation

        Returns:
            RecoveryAnalysis
        """
        now = now or utc_now()
        window_start = now - timedelta(days=config.RECOVERY_WINDOW_DAYS)

        hrv = self.extractor.hrv(user_id, window_start, now)
        sleep = self.extractor.sleep(user_id, window_start, now)
        workouts = self.extractor.workouts(user_id, now - timedelta(days=config.CHRONIC_WORKLOAD_DAYS), now)

        analysis = self.analyze(user_id, hrv, sleep, workouts, now)

        if persist:
            key = RecordKey(RECOVERY_RECOMMENDATIONS, user_id, start_of_day(now))
            self.store.upsert(key, analysis.to_record())
            logger.info("Saved recovery recommendation for %s (score %s)", user_id, analysis.current_score)

        return analysis

    def analyze(self, user_id: str, hrv: List[HRVSample], sleep: List[SleepSample],
                workouts: List[WorkoutSession], now: datetime) -> RecoveryAnalysis:
        """Score already-fetched samples."""
        avg_hrv = _safe_mean(s.recovery_score for s in hrv)
        avg_efficiency = _safe_mean(s.sleep_efficiency for s in sleep)

        factors = {
            "sleep": FactorInfluence.NEUTRAL,
            "hrv": FactorInfluence.NEUTRAL,
            "workload_balance": workload_balance(workouts, now),
            "consistency": training_consistency(workouts, now),
        }
        if avg_hrv is not None:
            if avg_hrv > HRV_POSITIVE_THRESHOLD:
                factors["hrv"] = FactorInfluence.POSITIVE
            elif avg_hrv < HRV_NEGATIVE_THRESHOLD:
                factors["hrv"] = FactorInfluence.NEGATIVE
        if avg_efficiency is not None:
            if avg_efficiency > SLEEP_POSITIVE_THRESHOLD:
                factors["sleep"] = FactorInfluence.POSITIVE
            elif avg_efficiency < SLEEP_NEGATIVE_THRESHOLD:
                factors["sleep"] = FactorInfluence.NEGATIVE

        score = compute_recovery_score(avg_hrv, avg_efficiency)

        recommendations = []
        for factor, influence, advice in RECOMMENDATION_RULES:
            if factors[factor] == influence:
                recommendations.extend(advice)
        if score < LOW_SCORE_THRESHOLD:
            recommendations.append(LOW_SCORE_RECOMMENDATION)

        return RecoveryAnalysis(
            user_id=user_id,
            assessed_at=now,
            current_score=score,
            trend=hrv_trend(hrv),
            factors=factors,
            training_readiness=classify_readiness(score),
            next_recommendation_at=now + timedelta(days=1),
            recommendations=recommendations,
            avg_hrv_recovery=avg_hrv,
            avg_sleep_efficiency=avg_efficiency,
            hrv_samples=len(hrv),
            sleep_samples=len(sleep),
        )
