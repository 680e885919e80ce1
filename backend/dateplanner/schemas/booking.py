# backend/dateplanner/schemas/booking.py
"""Booking request and response schemas."""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import ConfigDict, Field

from ..models.booking import BookingStatus, DateActivity
from .base import PageInfo, PageParams, StandardizedModel, StrictModel


class BookingCreate(StrictModel):
    slot_id: str = Field(min_length=1, max_length=26)
    selected_activity: Optional[DateActivity] = None
    booking_notes: Optional[str] = Field(default=None, max_length=2000)


class BookingUpdate(StrictModel):
    """Fields the booker may edit while the booking is active."""

    selected_activity: Optional[DateActivity] = None
    booking_notes: Optional[str] = Field(default=None, max_length=2000)

    def changes(self) -> dict:
        return self.model_dump(exclude_unset=True)


class BookingListFilters(PageParams):
    statuses: Optional[List[BookingStatus]] = None
    upcoming_only: bool = False


class BookedSlotInfo(StandardizedModel):
    """Slot fields a booking response needs."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    owner_user_id: str
    slot_date: date
    start_time: time
    end_time: time
    timezone: str
    date_type: str
    cancellation_policy: str
    title: Optional[str] = None
    location_preference: Optional[str] = None


class BookingResponse(StandardizedModel):
    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    slot_id: str
    booker_user_id: str
    status: BookingStatus
    selected_activity: Optional[DateActivity] = None
    booking_notes: Optional[str] = None
    cancellation_reason: Optional[str] = None
    cancelled_by_user_id: Optional[str] = None
    within_policy: Optional[bool] = None
    confirmed_at: Optional[datetime] = None
    cancelled_at: Optional[datetime] = None
    completed_at: Optional[datetime] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None
    slot: Optional[BookedSlotInfo] = None


class BookingListSummary(StandardizedModel):
    total_bookings: int
    upcoming_bookings: int
    completed_bookings: int
    cancelled_bookings: int


class BookingListResponse(StandardizedModel):
    items: List[BookingResponse]
    pagination: PageInfo
    summary: BookingListSummary
