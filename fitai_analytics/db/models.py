"""Database models for workout history, biometrics and derived analytics."""

from datetime import datetime, timezone
from sqlalchemy import (
    Column, Integer, String, Float, DateTime, Boolean, JSON, ForeignKey, UniqueConstraint,
)
from sqlalchemy.orm import declarative_base, relationship

Base = declarative_base()


def _utcnow() -> datetime:
    return datetime.now(timezone.utc).replace(tzinfo=None)


class WorkoutSession(Base):
    """A single workout session."""

    __tablename__ = "workout_sessions"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    started_at = Column(DateTime, nullable=False)
    workout_type = Column(String(50))  # strength, cardio, hiit, mobility
    status = Column(String(20), default="completed")  # completed, planned, skipped
    duration_minutes = Column(Float)
    intensity = Column(Float)  # perceived effort, 1-10
    calories_burned = Column(Float)
    distance_km = Column(Float)
    created_at = Column(DateTime, default=_utcnow)

    exercises = relationship("WorkoutExercise", back_populates="session", cascade="all, delete-orphan")

    def __repr__(self):
        return f"<WorkoutSession(user={self.user_id}, started={self.started_at}, status={self.status})>"


class WorkoutExercise(Base):
    """An exercise performed within a session."""

    __tablename__ = "workout_exercises"

    id = Column(Integer, primary_key=True)
    session_id = Column(Integer, ForeignKey("workout_sessions.id"), nullable=False)
    user_id = Column(String(64), nullable=False, index=True)
    performed_at = Column(DateTime, nullable=False)
    exercise_name = Column(String(100))
    sets = Column(Integer)
    reps = Column(Integer)
    weight_kg = Column(Float)
    is_personal_record = Column(Boolean, default=False)

    session = relationship("WorkoutSession", back_populates="exercises")

    def __repr__(self):
        return f"<WorkoutExercise(name={self.exercise_name}, {self.sets}x{self.reps}@{self.weight_kg})>"


class HealthMetric(Base):
    """Generic typed body or health measurement (body_weight, resting_heart_rate, ...)."""

    __tablename__ = "health_metrics"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    metric_type = Column(String(50), nullable=False)
    value = Column(Float)
    unit = Column(String(20))
    recorded_at = Column(DateTime, nullable=False)

    def __repr__(self):
        return f"<HealthMetric(type={self.metric_type}, value={self.value}, at={self.recorded_at})>"


class HRVData(Base):
    """Heart rate variability reading."""

    __tablename__ = "hrv_data"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    recorded_at = Column(DateTime, nullable=False)
    rmssd = Column(Float)  # ms
    recovery_score = Column(Float)  # 0-100
    stress_score = Column(Float)  # 0-100

    def __repr__(self):
        return f"<HRVData(at={self.recorded_at}, recovery={self.recovery_score})>"


class SleepData(Base):
    """Nightly sleep summary."""

    __tablename__ = "sleep_data"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    sleep_date = Column(DateTime, nullable=False)
    total_sleep_minutes = Column(Float)
    sleep_efficiency = Column(Float)  # percent
    recovery_score = Column(Float)  # 0-100

    def __repr__(self):
        return f"<SleepData(date={self.sleep_date}, minutes={self.total_sleep_minutes})>"


class UserGoal(Base):
    """A user goal with an optional due date."""

    __tablename__ = "user_goals"

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    goal_type = Column(String(50))
    title = Column(String(255))
    target_value = Column(Float)
    current_value = Column(Float)
    target_date = Column(DateTime, nullable=False)
    status = Column(String(20), default="active")  # active, achieved, abandoned
    achieved_at = Column(DateTime)
    created_at = Column(DateTime, default=_utcnow)

    def __repr__(self):
        return f"<UserGoal(title={self.title}, due={self.target_date}, status={self.status})>"


class AnalyticsSnapshotRecord(Base):
    """Aggregated metrics for one user and calendar period."""

    __tablename__ = "analytics_snapshots"
    __table_args__ = (UniqueConstraint("user_id", "period_type", "period_start"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    period_type = Column(String(20), nullable=False)  # weekly, monthly, quarterly, yearly
    period_start = Column(DateTime, nullable=False)
    period_end = Column(DateTime, nullable=False)

    # Workout metrics
    total_workouts = Column(Integer, default=0)
    total_workout_minutes = Column(Float, default=0.0)
    total_volume_kg = Column(Float, default=0.0)
    avg_workout_intensity = Column(Float, default=0.0)
    total_calories_burned = Column(Float, default=0.0)
    total_distance_km = Column(Float, default=0.0)

    # Performance metrics
    strength_pr_count = Column(Integer, default=0)
    endurance_improvements = Column(Integer, default=0)
    consistency_score = Column(Float, default=0.0)

    # Health metrics
    avg_recovery_score = Column(Float, default=0.0)
    avg_sleep_hours = Column(Float, default=0.0)
    avg_sleep_efficiency = Column(Float, default=0.0)
    avg_hrv_score = Column(Float, default=0.0)
    avg_resting_hr = Column(Float, default=0.0)

    # Body composition
    weight_change_kg = Column(Float, default=0.0)
    body_fat_change = Column(Float, default=0.0)
    muscle_mass_change = Column(Float, default=0.0)

    # Goals
    goals_achieved = Column(Integer, default=0)
    goals_total = Column(Integer, default=0)
    goal_completion_rate = Column(Float, default=0.0)

    # Composite scores
    overall_fitness_score = Column(Float, default=0.0)
    progress_velocity = Column(Float, default=0.0)
    adherence_score = Column(Float, default=0.0)

    failed_groups = Column(JSON)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<AnalyticsSnapshot(user={self.user_id}, {self.period_type} from {self.period_start})>"


class ProgressPredictionRecord(Base):
    """Forward projection of a metric to a target date."""

    __tablename__ = "progress_predictions"
    __table_args__ = (UniqueConstraint("user_id", "prediction_type", "prediction_date"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    prediction_type = Column(String(50), nullable=False)  # strength_volume, fitness_score, weight_progress
    prediction_date = Column(DateTime, nullable=False)
    metric = Column(String(50))
    predicted_value = Column(Float)
    confidence = Column(Float)
    model_version = Column(String(20))
    input_data_points = Column(Integer)
    horizon_days = Column(Integer)

    # Filled in once the outcome is known
    actual_value = Column(Float)
    accuracy_score = Column(Float)
    achieved_at = Column(DateTime)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<ProgressPrediction({self.prediction_type} on {self.prediction_date}: {self.predicted_value})>"


class RecoveryRecommendationRecord(Base):
    """Daily recovery assessment and training readiness."""

    __tablename__ = "recovery_recommendations"
    __table_args__ = (UniqueConstraint("user_id", "recommendation_date"),)

    id = Column(Integer, primary_key=True)
    user_id = Column(String(64), nullable=False, index=True)
    recommendation_date = Column(DateTime, nullable=False)
    recovery_score = Column(Integer)
    trend = Column(String(20))
    training_readiness = Column(String(20))  # high, moderate, low, rest
    recommended_intensity = Column(Float)
    factors = Column(JSON)
    recommendations = Column(JSON)
    updated_at = Column(DateTime, default=_utcnow, onupdate=_utcnow)

    def __repr__(self):
        return f"<RecoveryRecommendation(user={self.user_id}, date={self.recommendation_date}, score={self.recovery_score})>"
