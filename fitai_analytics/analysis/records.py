"""Typed views of raw store rows.

Every row coming out of the record store is converted here, right after the
store call, so the scoring code only ever does arithmetic on validated
fields. Unparseable or non-finite numbers become ``None``.
"""

from dataclasses import dataclass
from datetime import datetime
from typing import Any, Dict, Optional

import numpy as np


def as_float(value: Any) -> Optional[float]:
    """Coerce a raw value to a finite float, or None."""
    if value is None or isinstance(value, bool):
        return None
    try:
        number = float(value)
    except (TypeError, ValueError):
        return None
    return number if np.isfinite(number) else None


def as_int(value: Any) -> int:
    number = as_float(value)
    return int(number) if number is not None else 0


@dataclass
class WorkoutSession:
    id: Optional[int]
    started_at: datetime
    status: str
    workout_type: Optional[str] = None
    duration_minutes: Optional[float] = None
    intensity: Optional[float] = None
    calories_burned: Optional[float] = None
    distance_km: Optional[float] = None

    @property
    def completed(self) -> bool:
        return self.status == "completed"

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "WorkoutSession":
        return cls(
            id=row.get("id"),
            started_at=row["started_at"],
            status=(row.get("status") or "completed"),
            workout_type=row.get("workout_type"),
            duration_minutes=as_float(row.get("duration_minutes")),
            intensity=as_float(row.get("intensity")),
            calories_burned=as_float(row.get("calories_burned")),
            distance_km=as_float(row.get("distance_km")),
        )


@dataclass
class ExerciseEntry:
    session_id: Optional[int]
    performed_at: datetime
    sets: int = 0
    reps: int = 0
    weight_kg: float = 0.0
    is_personal_record: bool = False

    @property
    def volume_kg(self) -> float:
        return self.sets * self.reps * self.weight_kg

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "ExerciseEntry":
        return cls(
            session_id=row.get("session_id"),
            performed_at=row["performed_at"],
            sets=as_int(row.get("sets")),
            reps=as_int(row.get("reps")),
            weight_kg=as_float(row.get("weight_kg")) or 0.0,
            is_personal_record=bool(row.get("is_personal_record")),
        )


@dataclass
class HRVSample:
    recorded_at: datetime
    recovery_score: Optional[float] = None
    stress_score: Optional[float] = None
    rmssd: Optional[float] = None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "HRVSample":
        return cls(
            recorded_at=row["recorded_at"],
            recovery_score=as_float(row.get("recovery_score")),
            stress_score=as_float(row.get("stress_score")),
            rmssd=as_float(row.get("rmssd")),
        )


@dataclass
class SleepSample:
    sleep_date: datetime
    total_sleep_minutes: Optional[float] = None
    sleep_efficiency: Optional[float] = None
    recovery_score: Optional[float] = None

    @property
    def hours(self) -> Optional[float]:
        if self.total_sleep_minutes is None:
            return None
        return self.total_sleep_minutes / 60

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "SleepSample":
        return cls(
            sleep_date=row["sleep_date"],
            total_sleep_minutes=as_float(row.get("total_sleep_minutes")),
            sleep_efficiency=as_float(row.get("sleep_efficiency")),
            recovery_score=as_float(row.get("recovery_score")),
        )


@dataclass
class MetricSample:
    recorded_at: datetime
    value: Optional[float]

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "MetricSample":
        return cls(recorded_at=row["recorded_at"], value=as_float(row.get("value")))


@dataclass
class Goal:
    target_date: datetime
    status: str
    achieved_at: Optional[datetime] = None
    title: Optional[str] = None

    @property
    def achieved(self) -> bool:
        return self.status == "achieved" or self.achieved_at is not None

    @classmethod
    def from_row(cls, row: Dict[str, Any]) -> "Goal":
        return cls(
            target_date=row["target_date"],
            status=row.get("status") or "active",
            achieved_at=row.get("achieved_at"),
            title=row.get("title"),
        )


@dataclass
class SeriesPoint:
    """One observation of a metric time series."""
    timestamp: datetime
    value: float
