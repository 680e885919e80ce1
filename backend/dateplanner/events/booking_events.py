"""Booking domain events."""
from dataclasses import asdict, dataclass
from datetime import datetime
from typing import Any, Dict, Optional


@dataclass
class BookingCreated:
    """Fired after a booking is successfully created."""

    booking_id: str
    slot_id: str
    booker_user_id: str
    created_at: datetime
    selected_activity: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingConfirmed:
    """Fired after the slot owner approves a booking."""

    booking_id: str
    slot_id: str
    booker_user_id: str
    confirmed_at: datetime

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)


@dataclass
class BookingCancelled:
    """Fired after a booking is cancelled."""

    booking_id: str
    slot_id: str
    booker_user_id: str
    cancelled_by_user_id: str  # booker or slot owner
    cancelled_at: datetime
    reason: Optional[str] = None

    def to_dict(self) -> Dict[str, Any]:
        return asdict(self)
