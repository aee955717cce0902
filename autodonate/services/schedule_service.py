"""
Next-run calculation for recurring donations.

All arithmetic happens in UTC so daylight-saving shifts never move a
schedule. Naive datetimes are taken to already be UTC.
"""

from __future__ import annotations

import enum
from datetime import datetime, timedelta, timezone

from dateutil.relativedelta import relativedelta


class ScheduleComputationError(ValueError):
    """A stored frequency value that the scheduler does not know."""


class Frequency(str, enum.Enum):
    # "minute" only exists to exercise the cron loop by hand
    MINUTE = "minute"
    DAILY = "daily"
    WEEKLY = "weekly"
    MONTHLY = "monthly"


_STEPS = {
    Frequency.MINUTE: relativedelta(minutes=1),
    Frequency.DAILY: relativedelta(days=1),
    Frequency.WEEKLY: relativedelta(days=7),
    Frequency.MONTHLY: relativedelta(months=1),
}


def parse_frequency(value) -> Frequency:
    if isinstance(value, Frequency):
        return value
    try:
        return Frequency(str(value).strip().lower())
    except ValueError:
        raise ScheduleComputationError(f"unknown frequency {value!r}") from None


def as_utc(instant: datetime) -> datetime:
    if instant.tzinfo is None:
        return instant.replace(tzinfo=timezone.utc)
    return instant.astimezone(timezone.utc)


def next_run(frequency, from_instant: datetime) -> datetime:
    """
    Return the instant one period after ``from_instant``.

    Monthly steps are calendar-aware: Jan 31 -> Feb 29 (leap year) or Feb 28.
    """
    step = _STEPS[parse_frequency(frequency)]
    return as_utc(from_instant) + step


def failure_retry_at(now: datetime, hours: int = 24) -> datetime:
    """Retry instant after an insufficient-balance attempt, whatever the frequency."""
    return as_utc(now) + timedelta(hours=hours)
