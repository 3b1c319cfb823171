from datetime import datetime, timedelta
from enum import Enum
from typing import Callable, Optional, Union
from zoneinfo import ZoneInfo

from config import get_settings


Clock = Callable[[], datetime]


class TimePeriod(str, Enum):
    day = "day"
    week = "week"
    month = "month"
    quarter = "quarter"
    year = "year"


def local_now() -> datetime:
    """Current wall-clock time in the configured timezone, as a naive datetime."""
    tz = ZoneInfo(get_settings().timezone)
    return datetime.now(tz).replace(tzinfo=None)


def to_local_naive(moment: datetime) -> datetime:
    """Drop timezone info after converting to the configured local time."""
    if moment.tzinfo is None:
        return moment
    tz = ZoneInfo(get_settings().timezone)
    return moment.astimezone(tz).replace(tzinfo=None)


def _midnight(moment: datetime) -> datetime:
    return moment.replace(hour=0, minute=0, second=0, microsecond=0)


def resolve_range_start(
    period: Union[TimePeriod, str, None] = None,
    offset: int = 0,
    *,
    now: Optional[datetime] = None,
) -> datetime:
    """Start of the period ``offset`` periods away from the current one.

    The result is an inclusive lower bound; there is no matching upper bound,
    so callers get "this period so far" (and everything after it).
    """
    effective = TimePeriod(period) if period else TimePeriod.month
    now = now or local_now()
    today = _midnight(now)

    if effective == TimePeriod.day:
        return today + timedelta(days=offset)
    if effective == TimePeriod.week:
        # weekday() is Monday=0; weeks here start on Sunday.
        days_since_sunday = (today.weekday() + 1) % 7
        return today - timedelta(days=days_since_sunday) + timedelta(weeks=offset)
    if effective == TimePeriod.quarter:
        target_quarter = (now.month - 1) // 3 + offset
        year = now.year + target_quarter // 4
        return datetime(year, (target_quarter % 4) * 3 + 1, 1)
    if effective == TimePeriod.year:
        return datetime(now.year + offset, 1, 1)

    target_month = now.month - 1 + offset
    year = now.year + target_month // 12
    return datetime(year, target_month % 12 + 1, 1)
