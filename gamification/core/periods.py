"""Time period and season boundary helpers.

All boundaries are computed in UTC. Weeks start on Monday, months (and
therefore seasons) on the first day of the calendar month.
"""

from datetime import date, datetime, timedelta, timezone
from enum import Enum

ALL_TIME_START = datetime(1970, 1, 1, tzinfo=timezone.utc)


class TimePeriod(str, Enum):
    WEEK = "week"
    MONTH = "month"
    ALL_TIME = "all_time"


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def as_utc(value: datetime) -> datetime:
    """Treat naive datetimes as UTC and convert aware ones to UTC."""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def start_of_day(at: datetime) -> datetime:
    at = as_utc(at)
    return at.replace(hour=0, minute=0, second=0, microsecond=0)


def month_start(at: datetime) -> datetime:
    return start_of_day(at).replace(day=1)


def next_month_start(at: datetime) -> datetime:
    start = month_start(at)
    if start.month == 12:
        return start.replace(year=start.year + 1, month=1)
    return start.replace(month=start.month + 1)


def previous_month_start(at: datetime) -> datetime:
    start = month_start(at)
    if start.month == 1:
        return start.replace(year=start.year - 1, month=12)
    return start.replace(month=start.month - 1)


def period_bounds(period: TimePeriod, at: datetime) -> tuple[datetime, datetime | None]:
    """Return ``(period_start, period_end)`` of the period containing ``at``.

    ``period_end`` is exclusive and ``None`` for the unbounded all-time period.
    """
    if period == TimePeriod.WEEK:
        day = start_of_day(at)
        start = day - timedelta(days=day.weekday())
        return start, start + timedelta(days=7)
    if period == TimePeriod.MONTH:
        return month_start(at), next_month_start(at)
    return ALL_TIME_START, None


def season_label(season_start: datetime | date) -> str:
    """Human readable season label, e.g. ``"March 2025"``."""
    return season_start.strftime("%B %Y")


def season_bounds(at: datetime) -> tuple[datetime, datetime]:
    return month_start(at), next_month_start(at)


def previous_season_start(now: datetime) -> datetime:
    """Start of the most recently completed season relative to ``now``."""
    return previous_month_start(now)
