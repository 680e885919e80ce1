# backend/dateplanner/models/booking.py
"""
Availability booking model.

A booking is one user's claim on exactly one slot. Bookings are never
physically deleted; cancelled and completed rows form the audit trail.

At most one booking per slot may be pending or confirmed. The service
layer checks this inside a unit of work and the partial unique index
below enforces it at the storage layer as a backstop.
"""

from datetime import datetime
from enum import Enum
import logging
from typing import Any, Optional, cast

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    DateTime,
    ForeignKey,
    Index,
    String,
    Text,
    text,
)
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class BookingStatus(str, Enum):
    """Booking lifecycle statuses."""

    PENDING = "pending"  # Awaiting slot owner approval
    CONFIRMED = "confirmed"
    CANCELLED = "cancelled"
    COMPLETED = "completed"


class DateActivity(str, Enum):
    """What the two users plan to do."""

    ACTIVITY = "activity"
    CASUAL = "casual"
    COFFEE = "coffee"
    DINNER = "dinner"
    DRINKS = "drinks"
    FORMAL = "formal"
    LUNCH = "lunch"
    MOVIE = "movie"
    WALK = "walk"


ACTIVE_BOOKING_STATUSES = (BookingStatus.PENDING.value, BookingStatus.CONFIRMED.value)
TERMINAL_BOOKING_STATUSES = (BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value)

ACTIVE_BOOKING_UNIQUE_INDEX = "uq_availability_bookings_active_slot"

_ACTIVE_PREDICATE = "status IN ('pending', 'confirmed')"


class AvailabilityBooking(Base):
    """A claim by a non-owner on an availability slot."""

    __tablename__ = "availability_bookings"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    slot_id = Column(
        String(26),
        ForeignKey("availability_slots.id", ondelete="RESTRICT"),
        nullable=False,
        index=True,
    )
    booker_user_id = Column(String(26), nullable=False, index=True)

    status = Column(String(20), nullable=False, default=BookingStatus.PENDING.value, index=True)
    selected_activity = Column(String(20), nullable=True)
    booking_notes = Column(Text, nullable=True)

    # Cancellation tracking
    cancellation_reason = Column(Text, nullable=True)
    cancelled_by_user_id = Column(String(26), nullable=True)
    within_policy = Column(Boolean, nullable=True)

    confirmed_at = Column(DateTime(timezone=True), nullable=True)
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    completed_at = Column(DateTime(timezone=True), nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())

    __table_args__ = (
        CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_availability_bookings_status",
        ),
        CheckConstraint(
            "selected_activity IS NULL OR selected_activity IN "
            "('activity', 'casual', 'coffee', 'dinner', 'drinks', 'formal', 'lunch', 'movie', 'walk')",
            name="ck_availability_bookings_activity",
        ),
        Index(
            ACTIVE_BOOKING_UNIQUE_INDEX,
            "slot_id",
            unique=True,
            postgresql_where=text(_ACTIVE_PREDICATE),
            sqlite_where=text(_ACTIVE_PREDICATE),
        ),
        Index("ix_availability_bookings_booker_status", "booker_user_id", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilityBooking {self.id}: slot={self.slot_id}, "
            f"booker={self.booker_user_id}, status={self.status}>"
        )

    @property
    def is_active(self) -> bool:
        return self.status in ACTIVE_BOOKING_STATUSES

    @property
    def is_terminal(self) -> bool:
        return self.status in TERMINAL_BOOKING_STATUSES

    def to_dict(self) -> dict[str, Any]:
        def _iso(value: Any) -> Optional[str]:
            return cast(datetime, value).isoformat() if value else None

        return {
            "id": self.id,
            "slot_id": self.slot_id,
            "booker_user_id": self.booker_user_id,
            "status": self.status,
            "selected_activity": self.selected_activity,
            "booking_notes": self.booking_notes,
            "cancellation_reason": self.cancellation_reason,
            "cancelled_by_user_id": self.cancelled_by_user_id,
            "within_policy": self.within_policy,
            "confirmed_at": _iso(self.confirmed_at),
            "cancelled_at": _iso(self.cancelled_at),
            "completed_at": _iso(self.completed_at),
        }
