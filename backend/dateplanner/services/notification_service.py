# backend/dateplanner/services/notification_service.py
"""
Booking notifications.

The booking service calls a BookingNotifier after each successful
transition, once the transaction has committed. Notifiers are
fire-and-forget: the caller logs a failure and moves on.
"""

import logging
from typing import Optional, Protocol, cast

from ..events import BookingCancelled, BookingConfirmed, BookingCreated, EventPublisher
from ..models.booking import AvailabilityBooking

logger = logging.getLogger(__name__)


class BookingNotifier(Protocol):
    def notify_booking_created(self, booking: AvailabilityBooking) -> None:
        ...

    def notify_booking_confirmed(self, booking: AvailabilityBooking) -> None:
        ...

    def notify_booking_cancelled(self, booking: AvailabilityBooking) -> None:
        ...


class EventPublishingNotifier:
    """Default notifier: turns booking transitions into domain events."""

    def __init__(self, publisher: Optional[EventPublisher] = None):
        self.publisher = publisher or EventPublisher()

    def notify_booking_created(self, booking: AvailabilityBooking) -> None:
        self.publisher.publish(
            BookingCreated(
                booking_id=cast(str, booking.id),
                slot_id=cast(str, booking.slot_id),
                booker_user_id=cast(str, booking.booker_user_id),
                created_at=booking.created_at,
                selected_activity=booking.selected_activity,
            )
        )

    def notify_booking_confirmed(self, booking: AvailabilityBooking) -> None:
        self.publisher.publish(
            BookingConfirmed(
                booking_id=cast(str, booking.id),
                slot_id=cast(str, booking.slot_id),
                booker_user_id=cast(str, booking.booker_user_id),
                confirmed_at=booking.confirmed_at,
            )
        )

    def notify_booking_cancelled(self, booking: AvailabilityBooking) -> None:
        self.publisher.publish(
            BookingCancelled(
                booking_id=cast(str, booking.id),
                slot_id=cast(str, booking.slot_id),
                booker_user_id=cast(str, booking.booker_user_id),
                cancelled_by_user_id=cast(str, booking.cancelled_by_user_id),
                cancelled_at=booking.cancelled_at,
                reason=booking.cancellation_reason,
            )
        )


class NullNotifier:
    """Discards notifications; used by the CLI."""

    def notify_booking_created(self, booking: AvailabilityBooking) -> None:
        logger.debug(f"Skipping created notification for booking {booking.id}")

    def notify_booking_confirmed(self, booking: AvailabilityBooking) -> None:
        logger.debug(f"Skipping confirmed notification for booking {booking.id}")

    def notify_booking_cancelled(self, booking: AvailabilityBooking) -> None:
        logger.debug(f"Skipping cancelled notification for booking {booking.id}")
