"""Rule-based workout adjustments driven by recovery, sleep and HRV.

Recovery bands set the base intensity, duration and rest multipliers.
Poor sleep and high stress then discount intensity multiplicatively. A
separate skip decision can override the whole adjustment with low-intensity
alternatives.
"""

import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from typing import Dict, List, Optional

import numpy as np

from ..config import config
from ..db.store import RecordStore
from .periods import start_of_day, utc_now
from .records import HRVSample, SleepSample
from .recovery import FactorInfluence, RecoveryAnalysis, RecoveryScoringEngine, RecoveryTrend
from .timeseries import TimeSeriesExtractor

logger = logging.getLogger(__name__)

# Multipliers are (intensity, duration, rest); the 60-80 band keeps the plan unchanged
RECOVERY_BANDS = {
    "poor": {
        "multipliers": (0.6, 0.7, 1.5),
        "recommended": ["walking", "gentle_yoga", "stretching"],
        "avoid": ["high_intensity", "heavy_lifting"],
        "warning": "Very low recovery: consider active rest",
    },
    "moderate": {
        "multipliers": (0.8, 0.9, 1.2),
        "recommended": ["moderate_cardio", "light_strength"],
        "avoid": [],
        "warning": None,
    },
    "good": {
        "multipliers": (1.0, 1.0, 1.0),
        "recommended": [],
        "avoid": [],
        "warning": None,
    },
    "excellent": {
        "multipliers": (1.1, 1.1, 0.9),
        "recommended": ["high_intensity", "strength_training", "intervals"],
        "avoid": [],
        "warning": None,
    },
}

TRAINING_ACTIVITIES = ["high_intensity", "heavy_lifting", "strength_training", "intervals"]

LOW_SLEEP_EFFICIENCY = 70
SHORT_SLEEP_MINUTES = 360
HIGH_STRESS_SCORE = 70
SLEEP_EFFICIENCY_DISCOUNT = 0.8
SHORT_SLEEP_DISCOUNT = 0.7
HIGH_STRESS_DISCOUNT = 0.8

SKIP_ALTERNATIVES_LOW_RECOVERY = [
    "Light walk for 10-15 minutes",
    "Gentle stretching",
    "Meditation or breathing exercises",
    "A 20-minute nap",
]
SKIP_ALTERNATIVES_SHORT_SLEEP = [
    "Restorative yoga",
    "Walk outdoors",
    "Mobility exercises",
]
CAUTION_ALTERNATIVES = [
    "Reduce intensity by 30%",
    "Shorten the workout",
    "Focus on technique over load or speed",
]

NUTRITION_ADVICE = [
    "Stay hydrated during training",
    "Eat protein within 30 minutes after training",
]
GENERAL_RECOVERY_ACTIONS = [
    "Stretch for 10 minutes after training",
    "Consider a cold or warm bath",
]

BASE_CONFIDENCE = 70
SIGNAL_CONFIDENCE_BONUS = 10


@dataclass
class SkipDecision:
    """Whether today's workout should be skipped."""
    should_skip: bool
    reason: Optional[str] = None
    alternatives: List[str] = field(default_factory=list)


@dataclass
class WorkoutAdjustment:
    """Multipliers and activity guidance for the next workout."""
    user_id: str
    recovery_score: int
    intensity_multiplier: float
    duration_multiplier: float
    rest_multiplier: float
    recommended_activities: List[str]
    avoid_activities: List[str]
    warning_flags: List[str]
    recovery_actions: List[str]
    nutrition_advice: List[str]
    confidence: int
    skip: SkipDecision

    def to_dict(self) -> Dict:
        return {
            "user_id": self.user_id,
            "recovery_score": self.recovery_score,
            "intensity_multiplier": self.intensity_multiplier,
            "duration_multiplier": self.duration_multiplier,
            "rest_multiplier": self.rest_multiplier,
            "recommended_activities": list(self.recommended_activities),
            "avoid_activities": list(self.avoid_activities),
            "warning_flags": list(self.warning_flags),
            "recovery_actions": list(self.recovery_actions),
            "nutrition_advice": list(self.nutrition_advice),
            "confidence": self.confidence,
            "should_skip": self.skip.should_skip,
            "skip_reason": self.skip.reason,
            "alternatives": list(self.skip.alternatives),
        }


@dataclass
class HeartRateZone:
    min_bpm: int
    max_bpm: int


@dataclass
class WorkoutPersonalization:
    """Workout parameters scaled to the user's current recovery."""
    intensity_multiplier: float
    suggested_duration_minutes: int
    rest_between_sets_seconds: int
    resting_heart_rate: int
    max_heart_rate: int
    heart_rate_zones: Dict[str, HeartRateZone]


@dataclass
class HeartRateCheck:
    """In-workout heart rate status."""
    status: str  # low, optimal, high, danger
    percent_of_max: float
    alerts: List[str] = field(default_factory=list)
    suggestions: List[str] = field(default_factory=list)


def recovery_band(score: float) -> str:
    if score < 40:
        return "poor"
    if score < 60:
        return "moderate"
    if score > 80:
        return "excellent"
    return "good"


def estimate_max_heart_rate(age: int) -> int:
    """Tanaka formula: 208 - 0.7 x age."""
    return int(round(208 - 0.7 * age))


def heart_rate_zones(resting_hr: float, max_hr: float) -> Dict[str, HeartRateZone]:
    """Karvonen zones as fractions of heart rate reserve."""
    reserve = max_hr - resting_hr

    def at(fraction):
        return int(round(resting_hr + reserve * fraction))

    return {
        "warmup": HeartRateZone(at(0.3), at(0.4)),
        "moderate": HeartRateZone(at(0.5), at(0.6)),
        "vigorous": HeartRateZone(at(0.7), at(0.8)),
        "maximum": HeartRateZone(at(0.9), int(round(max_hr))),
    }


def decide_skip(recovery: RecoveryAnalysis, last_sleep: Optional[SleepSample]) -> SkipDecision:
    """Hard skip on very low recovery or a very short night."""
    if recovery.current_score < config.SKIP_RECOVERY_THRESHOLD:
        return SkipDecision(
            should_skip=True,
            reason="Recovery score is very low; your body needs rest",
            alternatives=list(SKIP_ALTERNATIVES_LOW_RECOVERY),
        )

    if (last_sleep is not None and last_sleep.total_sleep_minutes is not None
            and last_sleep.total_sleep_minutes < config.SKIP_SLEEP_MINUTES):
        return SkipDecision(
            should_skip=True,
            reason="Not enough sleep last night; rest is crucial for performance",
            alternatives=list(SKIP_ALTERNATIVES_SHORT_SLEEP),
        )

    if recovery.trend == RecoveryTrend.DECLINING and recovery.current_score < 50:
        return SkipDecision(
            should_skip=False,
            reason="Recovery is declining; train at a lower intensity today",
            alternatives=list(CAUTION_ALTERNATIVES),
        )

    return SkipDecision(should_skip=False)


def build_adjustment(user_id: str, recovery: RecoveryAnalysis, last_sleep: Optional[SleepSample],
                     latest_hrv: Optional[HRVSample]) -> WorkoutAdjustment:
    """Combine recovery band, secondary discounts and the skip decision."""
    band = RECOVERY_BANDS[recovery_band(recovery.current_score)]
    intensity, duration, rest = band["multipliers"]
    recommended = list(band["recommended"])
    avoid = list(band["avoid"])
    warnings = [band["warning"]] if band["warning"] else []
    recovery_actions = []

    if last_sleep is not None:
        if last_sleep.sleep_efficiency is not None and last_sleep.sleep_efficiency < LOW_SLEEP_EFFICIENCY:
            intensity *= SLEEP_EFFICIENCY_DISCOUNT
            warnings.append("Low sleep quality: intensity adjusted")
            recovery_actions.append("Prioritize better sleep hygiene")
        if last_sleep.total_sleep_minutes is not None and last_sleep.total_sleep_minutes < SHORT_SLEEP_MINUTES:
            intensity *= SHORT_SLEEP_DISCOUNT
            warnings.append("Short sleep: consider light training")

    if latest_hrv is not None and latest_hrv.stress_score is not None and latest_hrv.stress_score > HIGH_STRESS_SCORE:
        intensity *= HIGH_STRESS_DISCOUNT
        recovery_actions.append("Include stress management techniques")
        warnings.append("Elevated stress levels detected")

    recovery_actions.extend(GENERAL_RECOVERY_ACTIONS)

    confidence = BASE_CONFIDENCE
    if last_sleep is not None:
        confidence += SIGNAL_CONFIDENCE_BONUS
    if latest_hrv is not None:
        confidence += SIGNAL_CONFIDENCE_BONUS
    if any(influence != FactorInfluence.NEUTRAL for influence in recovery.factors.values()):
        confidence += SIGNAL_CONFIDENCE_BONUS

    skip = decide_skip(recovery, last_sleep)
    if skip.should_skip:
        intensity = config.SKIP_INTENSITY_MULTIPLIER
        duration = config.SKIP_DURATION_MULTIPLIER
        rest = config.SKIP_REST_MULTIPLIER
        recommended = list(skip.alternatives)
        avoid = sorted(set(avoid) | set(TRAINING_ACTIVITIES))
        warnings.append(skip.reason)

    return WorkoutAdjustment(
        user_id=user_id,
        recovery_score=recovery.current_score,
        intensity_multiplier=round(intensity, 4),
        duration_multiplier=round(duration, 4),
        rest_multiplier=round(rest, 4),
        recommended_activities=recommended,
        avoid_activities=avoid,
        warning_flags=warnings,
        recovery_actions=recovery_actions,
        nutrition_advice=list(NUTRITION_ADVICE),
        confidence=min(100, confidence),
        skip=skip,
    )


class AdaptiveRecommendationEngine:
    """Turns fresh recovery signals into workout adjustments.

    Holds no state between calls: every method re-reads the store.
    """

    def __init__(self, store: RecordStore, recovery_engine: Optional[RecoveryScoringEngine] = None,
                 extractor: Optional[TimeSeriesExtractor] = None):
        self.store = store
        self.extractor = extractor or TimeSeriesExtractor(store)
        self.recovery_engine = recovery_engine or RecoveryScoringEngine(store, self.extractor)

    def _last_sleep(self, user_id: str, now: datetime) -> Optional[SleepSample]:
        # Last night's sleep is stamped yesterday or today
        nights = self.extractor.sleep(user_id, start_of_day(now) - timedelta(days=1), now)
        return nights[-1] if nights else None

    def _latest_hrv(self, user_id: str, now: datetime) -> Optional[HRVSample]:
        samples = self.extractor.hrv(user_id, now - timedelta(days=3), now)
        return samples[-1] if samples else None

    def recommend_adjustment(self, user_id: str, now: Optional[datetime] = None) -> WorkoutAdjustment:
        """Adjustment for the user's next workout.

        Args:
            user_id: User identifier
            now: Reference time (defaults to current UTC time)

        Returns:
            WorkoutAdjustment including the skip decision
        """
        now = now or utc_now()
        recovery = self.recovery_engine.score_recovery(user_id, now)
        adjustment = build_adjustment(user_id, recovery, self._last_sleep(user_id, now), self._latest_hrv(user_id, now))
        if adjustment.skip.should_skip:
            logger.info("Recommending %s skip today's workout: %s", user_id, adjustment.skip.reason)
        return adjustment

    def should_skip_workout(self, user_id: str, now: Optional[datetime] = None) -> SkipDecision:
        now = now or utc_now()
        recovery = self.recovery_engine.score_recovery(user_id, now)
        return decide_skip(recovery, self._last_sleep(user_id, now))

    def average_resting_heart_rate(self, user_id: str, now: datetime) -> int:
        samples = self.extractor.health_metric(user_id, "resting_heart_rate", now - timedelta(days=14), now)
        values = [s.value for s in samples if s.value is not None]
        if not values:
            return int(config.DEFAULT_RESTING_HR)
        return int(round(np.mean(values)))

    def personalize_workout(self, user_id: str, base_duration_minutes: float = 45, base_rest_seconds: float = 60,
                            age: Optional[int] = None, now: Optional[datetime] = None) -> WorkoutPersonalization:
        """Heart rate zones and recovery-scaled duration and rest."""
        now = now or utc_now()
        recovery = self.recovery_engine.score_recovery(user_id, now)
        intensity, duration, rest = RECOVERY_BANDS[recovery_band(recovery.current_score)]["multipliers"]

        resting_hr = self.average_resting_heart_rate(user_id, now)
        max_hr = estimate_max_heart_rate(age if age is not None else config.DEFAULT_AGE)

        return WorkoutPersonalization(
            intensity_multiplier=intensity,
            suggested_duration_minutes=int(round(base_duration_minutes * duration)),
            rest_between_sets_seconds=int(round(base_rest_seconds * rest)),
            resting_heart_rate=resting_hr,
            max_heart_rate=max_hr,
            heart_rate_zones=heart_rate_zones(resting_hr, max_hr),
        )

    def check_heart_rate(self, user_id: str, current_heart_rate: float, workout_minutes: float,
                         age: Optional[int] = None, now: Optional[datetime] = None) -> HeartRateCheck:
        """Classify an in-workout heart rate against the estimated maximum."""
        personalization = self.personalize_workout(user_id, age=age, now=now)
        percent = current_heart_rate / personalization.max_heart_rate * 100

        check = HeartRateCheck(status="optimal", percent_of_max=round(percent, 1))
        if percent > 95:
            check.status = "danger"
            check.alerts.append("Heart rate very high: consider resting")
        elif percent > 85:
            check.status = "high"
            check.suggestions.append("Anaerobic zone: good for short intervals")
        elif percent < 50:
            check.status = "low"
            check.suggestions.append("You can raise the intensity for more cardiovascular benefit")

        if workout_minutes > personalization.suggested_duration_minutes + 15:
            check.alerts.append("Past your recommended duration: consider finishing soon")
        return check
