# backend/tests/helpers.py
"""Builders and constants shared across scheduling tests."""

from datetime import date, datetime, time, timedelta

import pytz

from dateplanner.schemas.availability import SlotCreate

# 2025-02-20 12:00 UTC, nine days before the reference date slot
NOW = datetime(2025, 2, 20, 12, 0, tzinfo=pytz.UTC)
DATE_DAY = date(2025, 3, 1)

OWNER_ID = "01JOWNER00000000000000000A"
BOOKER_ID = "01JBOOKER0000000000000000B"
OTHER_ID = "01JOTHER00000000000000000C"


class FrozenClock:
    """Callable clock that only moves when a test moves it."""

    def __init__(self, now: datetime):
        self.current = now

    def __call__(self) -> datetime:
        return self.current

    def advance(self, **kwargs) -> None:
        self.current = self.current + timedelta(**kwargs)

    def set(self, now: datetime) -> None:
        self.current = now


def slot_payload(
    slot_date: date = DATE_DAY,
    start: str = "18:00",
    end: str = "20:00",
    **overrides,
) -> SlotCreate:
    data = {
        "slot_date": slot_date,
        "start_time": time.fromisoformat(start),
        "end_time": time.fromisoformat(end),
    }
    data.update(overrides)
    return SlotCreate(**data)


def utc(year: int, month: int, day: int, hour: int = 0, minute: int = 0) -> datetime:
    return datetime(year, month, day, hour, minute, tzinfo=pytz.UTC)
