"""Configuration management for the FitAI analytics engine."""

import os
from typing import Dict
from dotenv import load_dotenv

load_dotenv()


class Config:
    """Application configuration."""

    # Database
    DATABASE_URL: str = os.getenv("DATABASE_URL", "sqlite:///./fitai_analytics.db")

    # Application
    LOG_LEVEL: str = os.getenv("LOG_LEVEL", "INFO")
    CACHE_TTL_SECONDS: int = int(os.getenv("CACHE_TTL_SECONDS", "3600"))
    CACHE_MAX_ENTRIES: int = int(os.getenv("CACHE_MAX_ENTRIES", "1024"))
    REDIS_URL: str = os.getenv("REDIS_URL", "")

    # Snapshot aggregation
    TARGET_WORKOUTS_PER_WEEK: float = float(os.getenv("TARGET_WORKOUTS_PER_WEEK", "3"))
    SNAPSHOT_PRECISION: int = 2  # decimals kept on stored floats

    # Overall fitness composite (weights sum to 1.0)
    FITNESS_WEIGHT_CONSISTENCY: float = float(os.getenv("FITNESS_WEIGHT_CONSISTENCY", "0.30"))
    FITNESS_WEIGHT_INTENSITY: float = float(os.getenv("FITNESS_WEIGHT_INTENSITY", "0.20"))
    FITNESS_WEIGHT_RECOVERY: float = float(os.getenv("FITNESS_WEIGHT_RECOVERY", "0.20"))
    FITNESS_WEIGHT_SLEEP: float = float(os.getenv("FITNESS_WEIGHT_SLEEP", "0.15"))
    FITNESS_WEIGHT_ENDURANCE: float = float(os.getenv("FITNESS_WEIGHT_ENDURANCE", "0.15"))
    NEUTRAL_HEALTH_SCORE: float = 50.0  # used when no biometric samples exist

    # Progress velocity composite
    VELOCITY_WEIGHT_VOLUME: float = float(os.getenv("VELOCITY_WEIGHT_VOLUME", "0.5"))
    VELOCITY_WEIGHT_PRS: float = float(os.getenv("VELOCITY_WEIGHT_PRS", "0.3"))
    VELOCITY_WEIGHT_ENDURANCE: float = float(os.getenv("VELOCITY_WEIGHT_ENDURANCE", "0.2"))

    # Adherence composite
    ADHERENCE_WEIGHT_CONSISTENCY: float = float(os.getenv("ADHERENCE_WEIGHT_CONSISTENCY", "0.6"))
    ADHERENCE_WEIGHT_GOALS: float = float(os.getenv("ADHERENCE_WEIGHT_GOALS", "0.4"))

    # Recovery scoring
    RECOVERY_WINDOW_DAYS: int = int(os.getenv("RECOVERY_WINDOW_DAYS", "7"))
    RECOVERY_BASE_SCORE: float = 50.0
    RECOVERY_HRV_WEIGHT: float = 0.4
    RECOVERY_SLEEP_BONUS: float = 10.0
    RECOVERY_SLEEP_PENALTY: float = 15.0
    ACUTE_WORKLOAD_DAYS: int = 7
    CHRONIC_WORKLOAD_DAYS: int = 28

    # Trend analysis
    SIGNIFICANT_CHANGE_PERCENT: float = float(os.getenv("SIGNIFICANT_CHANGE_PERCENT", "5.0"))
    TREND_FULL_CONFIDENCE_SAMPLES: int = 6
    TREND_CONFIDENCE_CAP: int = 95

    # Dashboard key metrics (score points between consecutive snapshots)
    KEY_METRIC_CHANGE_THRESHOLD: float = 5.0
    KEY_METRIC_PLATEAU_THRESHOLD: float = 2.0
    OPTIMAL_RECOVERY_SCORE: float = 70.0

    # Prediction confidence
    PREDICTION_CONFIDENCE_BASE: float = 50.0
    PREDICTION_CONFIDENCE_R2_WEIGHT: float = 30.0
    PREDICTION_CONFIDENCE_PER_SAMPLE: float = 5.0
    PREDICTION_CONFIDENCE_MIN: float = 50.0
    PREDICTION_CONFIDENCE_MAX: float = 95.0

    # Workout adjustment
    SKIP_RECOVERY_THRESHOLD: float = float(os.getenv("SKIP_RECOVERY_THRESHOLD", "30"))
    SKIP_SLEEP_MINUTES: float = float(os.getenv("SKIP_SLEEP_MINUTES", "300"))
    SKIP_INTENSITY_MULTIPLIER: float = 0.5
    SKIP_DURATION_MULTIPLIER: float = 0.5
    SKIP_REST_MULTIPLIER: float = 1.5
    DEFAULT_AGE: int = int(os.getenv("DEFAULT_AGE", "30"))
    DEFAULT_RESTING_HR: float = float(os.getenv("DEFAULT_RESTING_HR", "60"))

    @classmethod
    def get_fitness_weights(cls) -> Dict[str, float]:
        """Weights of the overall fitness composite."""
        return {
            "consistency": cls.FITNESS_WEIGHT_CONSISTENCY,
            "intensity": cls.FITNESS_WEIGHT_INTENSITY,
            "recovery": cls.FITNESS_WEIGHT_RECOVERY,
            "sleep": cls.FITNESS_WEIGHT_SLEEP,
            "endurance": cls.FITNESS_WEIGHT_ENDURANCE,
        }

    @classmethod
    def get_velocity_weights(cls) -> Dict[str, float]:
        """Weights of the progress velocity composite."""
        return {
            "volume": cls.VELOCITY_WEIGHT_VOLUME,
            "prs": cls.VELOCITY_WEIGHT_PRS,
            "endurance": cls.VELOCITY_WEIGHT_ENDURANCE,
        }

    @classmethod
    def get_adherence_weights(cls) -> Dict[str, float]:
        """Weights of the adherence composite."""
        return {
            "consistency": cls.ADHERENCE_WEIGHT_CONSISTENCY,
            "goals": cls.ADHERENCE_WEIGHT_GOALS,
        }


config = Config()
