"""
Calendar helpers for billing periods.

All instants are timezone-aware UTC. Day counts are whole calendar days
between two instants, matching how billing periods are quoted to users.
"""

import calendar
from datetime import UTC, datetime, timedelta
from typing import Annotated

from pydantic import AfterValidator


def utcnow() -> datetime:
    return datetime.now(UTC)


def ensure_utc(value: datetime) -> datetime:
    """Attach UTC to naive datetimes (SQLite drops tzinfo) and normalise aware ones."""
    if value.tzinfo is None:
        return value.replace(tzinfo=UTC)
    return value.astimezone(UTC)


UTCDateTime = Annotated[datetime, AfterValidator(ensure_utc)]
"""Pydantic field type that always holds a UTC-aware datetime."""


def days_between(start: datetime, end: datetime) -> int:
    """Whole days from ``start`` to ``end``; negative when ``end`` precedes ``start``."""
    return (ensure_utc(end) - ensure_utc(start)).days


def add_months(value: datetime, months: int) -> datetime:
    """Add calendar months, clamping the day to the target month's length."""
    month_index = value.month - 1 + months
    year = value.year + month_index // 12
    month = month_index % 12 + 1
    day = min(value.day, calendar.monthrange(year, month)[1])
    return value.replace(year=year, month=month, day=day)


def add_years(value: datetime, years: int) -> datetime:
    """Add calendar years; 29 February maps to 28 February in non-leap years."""
    year = value.year + years
    day = value.day
    if value.month == 2 and day == 29 and not calendar.isleap(year):
        day = 28
    return value.replace(year=year, day=day)


def add_days(value: datetime, days: int) -> datetime:
    return value + timedelta(days=days)
