"""Calendar-aligned reporting periods.

Windows are half-open ``[start, end)`` and aligned to calendar boundaries
(weeks start on Monday), so consecutive windows of one period type never
overlap and a recomputation always lands on the same natural key.
"""

import math
from dataclasses import dataclass
from datetime import datetime, timedelta, timezone
from typing import Optional

import pandas as pd

from ..exceptions import InvalidPeriod

PERIOD_TYPES = ("weekly", "monthly", "quarterly", "yearly")

# period type -> (DateOffset unit, units per period)
_PERIOD_STEPS = {
    "weekly": ("weeks", 1),
    "monthly": ("months", 1),
    "quarterly": ("months", 3),
    "yearly": ("years", 1),
}


def utc_now() -> datetime:
    """Current UTC time as a naive datetime, matching stored timestamps."""
    return datetime.now(timezone.utc).replace(tzinfo=None)


def start_of_day(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


@dataclass(frozen=True)
class PeriodWindow:
    """One reporting period."""
    period_type: str
    start: datetime
    end: datetime

    @property
    def days(self) -> float:
        return (self.end - self.start).total_seconds() / 86400

    def contains(self, moment: datetime) -> bool:
        return self.start <= moment < self.end


def validate_range(start: datetime, end: datetime):
    """Raise InvalidPeriod for an inverted range."""
    if start > end:
        raise InvalidPeriod(f"Range start {start} is after end {end}")


def period_window(period_type: str, periods_back: int = 0, now: Optional[datetime] = None) -> PeriodWindow:
    """Window of the period containing ``now``, shifted back ``periods_back`` periods.

    Args:
        period_type: weekly, monthly, quarterly or yearly
        periods_back: Whole periods to step back (0 = current period)
        now: Reference time (defaults to current UTC time)

    Returns:
        PeriodWindow with calendar-aligned boundaries
    """
    if period_type not in _PERIOD_STEPS:
        raise InvalidPeriod(f"Unknown period type '{period_type}', expected one of {', '.join(PERIOD_TYPES)}")
    if isinstance(periods_back, bool) or not isinstance(periods_back, int) or periods_back < 0:
        raise InvalidPeriod(f"periods_back must be a non-negative integer, got {periods_back!r}")

    today = pd.Timestamp(now or utc_now()).normalize()
    if period_type == "weekly":
        anchor = today - pd.Timedelta(days=today.weekday())
    elif period_type == "monthly":
        anchor = today.replace(day=1)
    elif period_type == "quarterly":
        anchor = today.replace(month=3 * ((today.month - 1) // 3) + 1, day=1)
    else:
        anchor = today.replace(month=1, day=1)

    unit, size = _PERIOD_STEPS[period_type]
    start = anchor - pd.DateOffset(**{unit: size * periods_back})
    end = start + pd.DateOffset(**{unit: size})
    return PeriodWindow(period_type, start.to_pydatetime(), end.to_pydatetime())


def weeks_elapsed(window: PeriodWindow, now: Optional[datetime] = None) -> int:
    """Weeks of ``window`` that have started by the end of today.

    Past windows count in full; the current window counts up to the end of
    the current day so the result stays stable for the whole day.
    """
    horizon = start_of_day(now or utc_now()) + timedelta(days=1)
    effective_end = min(window.end, horizon)
    if effective_end <= window.start:
        return 0
    elapsed_days = (effective_end - window.start).total_seconds() / 86400
    return math.ceil(elapsed_days / 7)
