# backend/dateplanner/services/availability_stats_service.py
"""
Availability statistics for slot owners.

Read-only summaries over an owner's non-deleted slots: counts by state,
hours offered and booked, and a per-day calendar for one month.
"""

import calendar
from collections import defaultdict
from datetime import date
import logging
from typing import Dict, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import ValidationException
from ..core.timezone_utils import Clock
from ..models.availability import SlotStatus
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.booking_repository import BookingRepository
from ..schemas.stats import AvailabilityStats, CalendarDay, CalendarView
from .base import BaseService

logger = logging.getLogger(__name__)


def _rate(part: int, whole: int) -> float:
    return round(part / whole * 100, 2) if whole else 0.0


class AvailabilityStatsService(BaseService):
    def __init__(
        self,
        db: Session,
        slot_repository: Optional[AvailabilityRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)
        self.slot_repository = slot_repository or RepositoryFactory.create_availability_repository(
            db
        )
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )

    @BaseService.measure_operation("get_availability_stats")
    def get_availability_stats(
        self, owner_user_id: str, start_date: date, end_date: date
    ) -> AvailabilityStats:
        """
        Slot and booking totals for owner_user_id in [start_date, end_date].

        booking_rate is booked or completed slots as a percentage of
        slots that were bookable (active or completed).
        """
        if end_date < start_date:
            raise ValidationException("end_date must not be before start_date")

        slots = self.slot_repository.get_slots_in_range(owner_user_id, start_date, end_date)
        active_bookings = self.booking_repository.get_active_bookings_for_slots(s.id for s in slots)

        active = [s for s in slots if s.status == SlotStatus.ACTIVE.value]
        booked = [s for s in active if s.id in active_bookings]
        completed = [s for s in slots if s.status == SlotStatus.COMPLETED.value]
        cancelled = [s for s in slots if s.status == SlotStatus.CANCELLED.value]

        offered_minutes = sum(s.duration_minutes for s in active + completed)
        booked_minutes = sum(s.duration_minutes for s in booked + completed)

        return AvailabilityStats(
            start_date=start_date,
            end_date=end_date,
            total_slots=len(slots),
            active_slots=len(active),
            booked_slots=len(booked),
            available_slots=len(active) - len(booked),
            completed_slots=len(completed),
            cancelled_slots=len(cancelled),
            total_hours=round(offered_minutes / 60, 2),
            booked_hours=round(booked_minutes / 60, 2),
            booking_rate=_rate(len(booked) + len(completed), len(active) + len(completed)),
        )

    @BaseService.measure_operation("get_calendar_view")
    def get_calendar_view(self, owner_user_id: str, month: str) -> CalendarView:
        """
        Per-day counts of open and booked active slots for a "YYYY-MM" month.
        """
        try:
            year, month_number = (int(part) for part in month.split("-"))
            _, last_day = calendar.monthrange(year, month_number)
        except (TypeError, ValueError) as exc:
            raise ValidationException(
                f"Invalid month {month!r}; expected YYYY-MM", code="INVALID_MONTH"
            ) from exc

        first = date(year, month_number, 1)
        last = date(year, month_number, last_day)
        slots = self.slot_repository.get_slots_in_range(owner_user_id, first, last)
        slots = [s for s in slots if s.status == SlotStatus.ACTIVE.value]
        active_bookings = self.booking_repository.get_active_bookings_for_slots(s.id for s in slots)

        available: Dict[date, int] = defaultdict(int)
        booked: Dict[date, int] = defaultdict(int)
        for slot in slots:
            if slot.id in active_bookings:
                booked[slot.slot_date] += 1
            else:
                available[slot.slot_date] += 1

        days: List[CalendarDay] = []
        for day_number in range(1, last_day + 1):
            day = date(year, month_number, day_number)
            days.append(
                CalendarDay(
                    day=day,
                    has_availability=available[day] > 0,
                    available_slots=available[day],
                    booked_slots=booked[day],
                )
            )

        total_booked = sum(booked.values())
        return CalendarView(
            month=f"{year:04d}-{month_number:02d}",
            days=days,
            total_days_with_slots=sum(1 for d in days if d.available_slots or d.booked_slots),
            total_slots=len(slots),
            booking_rate=_rate(total_booked, len(slots)),
        )
