"""
Timezone utilities for the scheduling core.

Slots store a wall-clock date and time plus the owner's timezone name.
Every rule that compares a slot with "now" converts through here.
"""

from datetime import date, datetime, time, timedelta
from typing import Callable

import pytz

Clock = Callable[[], datetime]


def utc_now() -> datetime:
    """Current aware UTC datetime. Default clock for services."""
    return datetime.now(pytz.UTC)


def get_timezone(tz_name: str) -> pytz.BaseTzInfo:
    """
    Resolve a timezone name.

    Raises:
        pytz.UnknownTimeZoneError: If the name is not a known zone
    """
    return pytz.timezone(tz_name)


def is_valid_timezone(tz_name: str) -> bool:
    try:
        get_timezone(tz_name)
    except pytz.UnknownTimeZoneError:
        return False
    return True


def ensure_utc(dt: datetime) -> datetime:
    """Return dt as aware UTC; naive values are assumed to already be UTC."""
    if dt.tzinfo is None:
        return pytz.UTC.localize(dt)
    return dt.astimezone(pytz.UTC)


def local_to_utc(day: date, wall_time: time, tz_name: str) -> datetime:
    """
    Convert a wall-clock date and time in tz_name to aware UTC.

    Ambiguous DST wall times resolve to standard time.
    """
    tz = get_timezone(tz_name)
    local_dt = tz.localize(datetime.combine(day, wall_time), is_dst=False)
    return local_dt.astimezone(pytz.UTC)


def today_in_timezone(now: datetime, tz_name: str) -> date:
    """'Today' for a user in tz_name at the instant now."""
    return ensure_utc(now).astimezone(get_timezone(tz_name)).date()


def hours_between(start: datetime, end: datetime) -> float:
    return (end - start).total_seconds() / 3600


def minutes_between(start_time: time, end_time: time) -> int:
    """Duration of a same-day time range in minutes."""
    reference = date(2000, 1, 1)  # reference calculation only
    delta = datetime.combine(reference, end_time) - datetime.combine(reference, start_time)
    return int(delta.total_seconds() // 60)


def add_minutes(value: time, minutes: int) -> time:
    """Add minutes to a time of day, clamped to 23:59 on overflow."""
    reference = date(2000, 1, 1)
    shifted = datetime.combine(reference, value) + timedelta(minutes=minutes)
    if shifted.date() != reference:
        return time(23, 59)
    return shifted.time()
