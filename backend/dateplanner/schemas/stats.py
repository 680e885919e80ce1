"""Availability statistics and calendar schemas."""

from datetime import date
from typing import List

from .base import StandardizedModel


class AvailabilityStats(StandardizedModel):
    start_date: date
    end_date: date
    total_slots: int
    active_slots: int
    booked_slots: int
    available_slots: int
    completed_slots: int
    cancelled_slots: int
    total_hours: float
    booked_hours: float
    booking_rate: float


class CalendarDay(StandardizedModel):
    day: date
    has_availability: bool
    available_slots: int
    booked_slots: int


class CalendarView(StandardizedModel):
    month: str
    days: List[CalendarDay]
    total_days_with_slots: int
    total_slots: int
    booking_rate: float
