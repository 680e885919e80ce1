from .booking_events import BookingCancelled, BookingConfirmed, BookingCreated
from .publisher import EventPublisher

__all__ = ["BookingCancelled", "BookingConfirmed", "BookingCreated", "EventPublisher"]
