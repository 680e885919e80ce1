# backend/dateplanner/models/availability.py
"""
Availability slot model.

A slot is a span of time a user publishes for a date on a single calendar
day. Slots reference bookings, recurrence parents and audit rows by id
only; there are no ORM relationship graphs between scheduling tables.

A single status column carries the whole "is this slot usable" meaning:
cancelled and deleted slots are retained for audit but never block or
appear in availability queries.
"""

from datetime import date, time
from enum import Enum
import logging
from typing import Any, Optional, cast

from sqlalchemy import (
    Boolean,
    CheckConstraint,
    Column,
    Date,
    DateTime,
    ForeignKey,
    Index,
    Integer,
    String,
    Text,
    Time,
)
from sqlalchemy.sql import func

from ..core.timezone_utils import minutes_between
from ..core.ulid_helper import generate_ulid
from ..database import Base

logger = logging.getLogger(__name__)


class SlotStatus(str, Enum):
    """Availability slot lifecycle statuses."""

    ACTIVE = "active"
    CANCELLED = "cancelled"
    COMPLETED = "completed"
    DELETED = "deleted"


class DateType(str, Enum):
    ONLINE = "online"
    OFFLINE = "offline"


class RecurrenceType(str, Enum):
    NONE = "none"
    WEEKLY = "weekly"
    CUSTOM = "custom"


class CancellationPolicy(str, Enum):
    """Minimum lead time before slot start within which cancelling is refused."""

    FLEXIBLE = "flexible"
    HOURS_24 = "24_hours"
    HOURS_48 = "48_hours"
    STRICT = "strict"


# Statuses that occupy time on the owner's calendar
BLOCKING_SLOT_STATUSES = (SlotStatus.ACTIVE.value, SlotStatus.COMPLETED.value)

# PostgreSQL exclusion constraint over blocking slots, see the alembic migration
SLOT_NO_OVERLAP_CONSTRAINT = "availability_slots_no_overlap_per_owner"


class AvailabilitySlot(Base):
    """Owner-published span of bookable time."""

    __tablename__ = "availability_slots"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    owner_user_id = Column(String(26), nullable=False, index=True)

    slot_date = Column(Date, nullable=False)
    start_time = Column(Time, nullable=False)
    end_time = Column(Time, nullable=False)
    timezone = Column(String(50), nullable=False, default="UTC")

    date_type = Column(String(20), nullable=False, default=DateType.OFFLINE.value)
    status = Column(String(20), nullable=False, default=SlotStatus.ACTIVE.value, index=True)

    # Recurrence
    is_recurring = Column(Boolean, nullable=False, default=False)
    recurrence_type = Column(String(20), nullable=False, default=RecurrenceType.NONE.value)
    recurrence_end_date = Column(Date, nullable=True)
    # Weak back-reference to the generating slot, never ownership
    parent_slot_id = Column(
        String(26),
        ForeignKey("availability_slots.id", ondelete="SET NULL"),
        nullable=True,
        index=True,
    )

    buffer_time_minutes = Column(Integer, nullable=False, default=30)
    preparation_time_minutes = Column(Integer, nullable=False, default=15)
    cancellation_policy = Column(
        String(20), nullable=False, default=CancellationPolicy.HOURS_24.value
    )

    title = Column(String(255), nullable=True)
    notes = Column(Text, nullable=True)
    location_preference = Column(Text, nullable=True)

    # Reason recorded when the slot was cancelled or deleted
    status_reason = Column(String(500), nullable=True)

    created_at = Column(DateTime(timezone=True), server_default=func.now())
    updated_at = Column(DateTime(timezone=True), server_default=func.now(), onupdate=func.now())
    cancelled_at = Column(DateTime(timezone=True), nullable=True)
    deleted_at = Column(DateTime(timezone=True), nullable=True)

    __table_args__ = (
        CheckConstraint(
            "status IN ('active', 'cancelled', 'completed', 'deleted')",
            name="ck_availability_slots_status",
        ),
        CheckConstraint(
            "date_type IN ('online', 'offline')",
            name="ck_availability_slots_date_type",
        ),
        CheckConstraint(
            "recurrence_type IN ('none', 'weekly', 'custom')",
            name="ck_availability_slots_recurrence_type",
        ),
        CheckConstraint(
            "cancellation_policy IN ('flexible', '24_hours', '48_hours', 'strict')",
            name="ck_availability_slots_cancellation_policy",
        ),
        CheckConstraint("start_time < end_time", name="ck_availability_slots_time_order"),
        CheckConstraint("buffer_time_minutes >= 0", name="ck_availability_slots_buffer"),
        CheckConstraint(
            "preparation_time_minutes >= 0", name="ck_availability_slots_preparation"
        ),
        Index("ix_availability_slots_owner_date_status", "owner_user_id", "slot_date", "status"),
        Index("ix_availability_slots_date_status", "slot_date", "status"),
    )

    def __repr__(self) -> str:
        return (
            f"<AvailabilitySlot {self.id}: owner={self.owner_user_id}, date={self.slot_date}, "
            f"time={self.start_time}-{self.end_time}, status={self.status}>"
        )

    @property
    def duration_minutes(self) -> int:
        return minutes_between(cast(time, self.start_time), cast(time, self.end_time))

    @property
    def is_active(self) -> bool:
        return self.status == SlotStatus.ACTIVE.value

    @property
    def is_blocking(self) -> bool:
        """Whether this slot participates in conflict detection."""
        return self.status in BLOCKING_SLOT_STATUSES

    def time_range_label(self) -> str:
        start = cast(time, self.start_time)
        end = cast(time, self.end_time)
        return f"{start.strftime('%H:%M')}-{end.strftime('%H:%M')}"

    def to_dict(self) -> dict[str, Any]:
        """Plain snapshot used for audit rows and event payloads."""
        slot_date = cast(Optional[date], self.slot_date)
        recurrence_end = cast(Optional[date], self.recurrence_end_date)
        return {
            "id": self.id,
            "owner_user_id": self.owner_user_id,
            "slot_date": slot_date.isoformat() if slot_date else None,
            "start_time": self.start_time.isoformat() if self.start_time else None,
            "end_time": self.end_time.isoformat() if self.end_time else None,
            "timezone": self.timezone,
            "date_type": self.date_type,
            "status": self.status,
            "is_recurring": self.is_recurring,
            "recurrence_type": self.recurrence_type,
            "recurrence_end_date": recurrence_end.isoformat() if recurrence_end else None,
            "parent_slot_id": self.parent_slot_id,
            "buffer_time_minutes": self.buffer_time_minutes,
            "preparation_time_minutes": self.preparation_time_minutes,
            "cancellation_policy": self.cancellation_policy,
            "title": self.title,
            "notes": self.notes,
            "location_preference": self.location_preference,
            "status_reason": self.status_reason,
        }
