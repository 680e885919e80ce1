"""SQLAlchemy models for the scheduling core."""

from .audit_log import AvailabilityAuditLog
from .availability import (
    BLOCKING_SLOT_STATUSES,
    AvailabilitySlot,
    CancellationPolicy,
    DateType,
    RecurrenceType,
    SlotStatus,
)
from .booking import (
    ACTIVE_BOOKING_STATUSES,
    TERMINAL_BOOKING_STATUSES,
    AvailabilityBooking,
    BookingStatus,
    DateActivity,
)

__all__ = [
    "ACTIVE_BOOKING_STATUSES",
    "BLOCKING_SLOT_STATUSES",
    "TERMINAL_BOOKING_STATUSES",
    "AvailabilityAuditLog",
    "AvailabilityBooking",
    "AvailabilitySlot",
    "BookingStatus",
    "CancellationPolicy",
    "DateActivity",
    "DateType",
    "RecurrenceType",
    "SlotStatus",
]
