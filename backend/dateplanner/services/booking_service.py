# backend/dateplanner/services/booking_service.py
"""
Booking Service for the scheduling core.

Owns the booking state machine:

    pending   -> confirmed | cancelled
    confirmed -> cancelled | completed

cancelled and completed are terminal. A slot counts as booked while it
has a pending or confirmed booking; the check runs under a row lock on
the slot and the partial unique index on availability_bookings backs it
up at the storage layer.

Notifications go out after commit and never fail the booking call.
"""

from datetime import date, datetime, timedelta
import logging
from typing import Callable, Dict, FrozenSet, List, Optional, Tuple, cast

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    ActiveBookingExistsException,
    BusinessRuleException,
    CancellationWindowElapsedException,
    InvalidBookingTransitionException,
    NotFoundException,
    RepositoryException,
    ValidationException,
)
from ..core.timezone_utils import Clock, hours_between, local_to_utc, today_in_timezone
from ..models.availability import AvailabilitySlot, SlotStatus
from ..models.booking import (
    ACTIVE_BOOKING_UNIQUE_INDEX,
    AvailabilityBooking,
    BookingStatus,
)
from ..repositories import RepositoryFactory
from ..repositories.audit_repository import AuditRepository
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.booking_repository import BookingRepository, BookingWithSlot
from ..schemas.booking import BookingCreate, BookingListFilters, BookingUpdate
from .base import BaseService
from .notification_service import BookingNotifier, EventPublishingNotifier

logger = logging.getLogger(__name__)

BOOKING_TRANSITIONS: Dict[str, FrozenSet[str]] = {
    BookingStatus.PENDING.value: frozenset(
        {BookingStatus.CONFIRMED.value, BookingStatus.CANCELLED.value}
    ),
    BookingStatus.CONFIRMED.value: frozenset(
        {BookingStatus.CANCELLED.value, BookingStatus.COMPLETED.value}
    ),
    BookingStatus.CANCELLED.value: frozenset(),
    BookingStatus.COMPLETED.value: frozenset(),
}


def can_transition(current_status: str, target_status: str) -> bool:
    return target_status in BOOKING_TRANSITIONS.get(current_status, frozenset())


class BookingService(BaseService):
    """
    Service layer for the booking lifecycle.

    Every read is scoped to a participant: the booker or the slot owner.
    Anyone else gets NotFoundException.
    """

    def __init__(
        self,
        db: Session,
        notifier: Optional[BookingNotifier] = None,
        slot_repository: Optional[AvailabilityRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
        audit_repository: Optional[AuditRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)
        self.notifier: BookingNotifier = notifier or EventPublishingNotifier()
        self.slot_repository = slot_repository or RepositoryFactory.create_availability_repository(
            db
        )
        self.repository = booking_repository or RepositoryFactory.create_booking_repository(db)
        self.audit_repository = audit_repository or RepositoryFactory.create_audit_repository(db)

    # Policy helpers

    def slot_start_utc(self, slot: AvailabilitySlot) -> datetime:
        return local_to_utc(slot.slot_date, slot.start_time, slot.timezone)

    def slot_end_utc(self, slot: AvailabilitySlot) -> datetime:
        return local_to_utc(slot.slot_date, slot.end_time, slot.timezone)

    def cancellation_deadline(self, slot: AvailabilitySlot) -> datetime:
        """Last instant (exclusive) a booking on slot may be cancelled."""
        hours = self.settings.cancellation_hours_for(cast(str, slot.cancellation_policy))
        return self.slot_start_utc(slot) - timedelta(hours=hours)

    def can_cancel_now(self, slot: AvailabilitySlot) -> bool:
        return self.now() < self.cancellation_deadline(slot)

    def _ensure_cancellation_window(self, slot: AvailabilitySlot) -> None:
        if self.can_cancel_now(slot):
            return
        policy = cast(str, slot.cancellation_policy)
        hours_until = hours_between(self.now(), self.slot_start_utc(slot))
        self.logger.warning(
            f"Late cancellation refused for slot {slot.id}: {hours_until:.1f}h before start "
            f"under '{policy}' policy"
        )
        raise CancellationWindowElapsedException(
            policy=policy,
            required_hours=self.settings.cancellation_hours_for(policy),
            hours_until_start=hours_until,
        )

    @staticmethod
    def _ensure_transition(booking: AvailabilityBooking, target_status: str) -> None:
        current = cast(str, booking.status)
        if not can_transition(current, target_status):
            raise InvalidBookingTransitionException(cast(str, booking.id), current, target_status)

    # Lifecycle

    @BaseService.measure_operation("create_booking")
    def create_booking(self, booker_user_id: str, data: BookingCreate) -> AvailabilityBooking:
        """
        Book a slot. The new booking starts pending.

        Raises:
            NotFoundException: Slot unknown or deleted
            ValidationException: Booker owns the slot
            BusinessRuleException: Slot not active or already started
            ActiveBookingExistsException: Slot already has an active booking
        """
        self.log_operation("create_booking", booker_user_id=booker_user_id, slot_id=data.slot_id)

        with self.transaction():
            slot = self.slot_repository.get_slot_for_update(data.slot_id)
            if not slot:
                raise NotFoundException(
                    "Availability slot not found",
                    code="SLOT_NOT_FOUND",
                    details={"slot_id": data.slot_id},
                )
            if slot.owner_user_id == booker_user_id:
                raise ValidationException("Cannot book own slot", code="CANNOT_BOOK_OWN_SLOT")
            if not slot.is_active:
                raise BusinessRuleException(
                    f"Slot is not available for booking (status is {slot.status})",
                    code="SLOT_NOT_AVAILABLE",
                )
            if self.slot_start_utc(slot) <= self.now():
                raise BusinessRuleException(
                    "Cannot book a slot that has already started", code="SLOT_IN_PAST"
                )
            if self.repository.find_active_booking_for_slot(data.slot_id):
                raise ActiveBookingExistsException(data.slot_id)

            try:
                booking = self.repository.create_booking(
                    slot_id=data.slot_id,
                    booker_user_id=booker_user_id,
                    status=BookingStatus.PENDING.value,
                    selected_activity=data.selected_activity,
                    booking_notes=data.booking_notes,
                )
            except RepositoryException as exc:
                if exc.constraint == ACTIVE_BOOKING_UNIQUE_INDEX:
                    raise ActiveBookingExistsException(data.slot_id) from exc
                raise

            self._audit(booking, "created", booker_user_id, before=None)
            self._notify_after_commit(self.notifier.notify_booking_created, booking)

        self.logger.info(f"Booking {booking.id} created on slot {slot.id} by {booker_user_id}")
        return booking

    @BaseService.measure_operation("confirm_booking")
    def confirm_booking(self, booking_id: str, owner_user_id: str) -> AvailabilityBooking:
        """
        Owner approves a pending booking.

        Raises:
            NotFoundException: Unknown booking or caller is not the slot owner
            InvalidBookingTransitionException: Booking is not pending
        """
        with self.transaction():
            booking, slot = self._get_participant_booking(booking_id, owner_user_id)
            if slot.owner_user_id != owner_user_id:
                raise self._not_found(booking_id)
            self._ensure_transition(booking, BookingStatus.CONFIRMED.value)

            before = booking.to_dict()
            booking.status = BookingStatus.CONFIRMED.value
            booking.confirmed_at = self.now()
            self.db.flush()

            self._audit(booking, "confirmed", owner_user_id, before=before)
            self._notify_after_commit(self.notifier.notify_booking_confirmed, booking)

        self.logger.info(f"Booking {booking_id} confirmed by owner {owner_user_id}")
        return booking

    @BaseService.measure_operation("cancel_booking")
    def cancel_booking(
        self, booking_id: str, actor_user_id: str, reason: Optional[str] = None
    ) -> AvailabilityBooking:
        """
        Cancel a pending or confirmed booking, by booker or slot owner.

        Raises:
            NotFoundException: Unknown booking or caller not a participant
            InvalidBookingTransitionException: Booking already terminal
            CancellationWindowElapsedException: Policy deadline has passed
        """
        with self.transaction():
            booking, slot = self._get_participant_booking(booking_id, actor_user_id)
            self._cancel(booking, slot, actor_user_id, reason)

        return booking

    def cancel_active_booking_for_slot(
        self, slot: AvailabilitySlot, actor_user_id: str, reason: Optional[str] = None
    ) -> Optional[AvailabilityBooking]:
        """
        Cancel whatever active booking holds slot, if any.

        Used by slot cancellation, inside its unit of work. The policy
        window applies here too.
        """
        with self.transaction():
            booking = self.repository.find_active_booking_for_slot(cast(str, slot.id))
            if booking is None:
                return None
            self._cancel(booking, slot, actor_user_id, reason)
        return booking

    def _cancel(
        self,
        booking: AvailabilityBooking,
        slot: AvailabilitySlot,
        actor_user_id: str,
        reason: Optional[str],
    ) -> None:
        self._ensure_transition(booking, BookingStatus.CANCELLED.value)
        self._ensure_cancellation_window(slot)

        before = booking.to_dict()
        booking.status = BookingStatus.CANCELLED.value
        booking.cancelled_at = self.now()
        booking.cancelled_by_user_id = actor_user_id
        booking.cancellation_reason = reason
        booking.within_policy = True
        self.db.flush()

        self._audit(booking, "cancelled", actor_user_id, before=before, reason=reason)
        self._notify_after_commit(self.notifier.notify_booking_cancelled, booking)
        self.logger.info(f"Booking {booking.id} on slot {slot.id} cancelled by {actor_user_id}")

    @BaseService.measure_operation("complete_booking")
    def complete_booking(self, booking_id: str, actor_user_id: str) -> AvailabilityBooking:
        """
        Mark a confirmed booking done once the date has ended.

        The slot moves to completed with it.

        Raises:
            NotFoundException: Unknown booking or caller not a participant
            InvalidBookingTransitionException: Booking is not confirmed
            BusinessRuleException: Slot end time not reached yet
        """
        with self.transaction():
            booking, slot = self._get_participant_booking(booking_id, actor_user_id)
            self._ensure_transition(booking, BookingStatus.COMPLETED.value)
            if self.now() < self.slot_end_utc(slot):
                raise BusinessRuleException(
                    "Booking cannot be completed before the date has ended",
                    code="BOOKING_NOT_FINISHED",
                    details={"booking_id": booking_id},
                )

            before = booking.to_dict()
            booking.status = BookingStatus.COMPLETED.value
            booking.completed_at = self.now()
            self.db.flush()
            self._audit(booking, "completed", actor_user_id, before=before)

            if slot.is_active:
                self.slot_repository.set_status(slot, SlotStatus.COMPLETED.value)
                self.audit_repository.record(
                    entity_type="slot",
                    entity_id=slot.id,
                    slot_id=slot.id,
                    actor_user_id=actor_user_id,
                    action="completed",
                    old_values={"status": SlotStatus.ACTIVE.value},
                    new_values={"status": SlotStatus.COMPLETED.value},
                )

        self.logger.info(f"Booking {booking_id} completed by {actor_user_id}")
        return booking

    @BaseService.measure_operation("update_booking")
    def update_booking(
        self, booking_id: str, booker_user_id: str, patch: BookingUpdate
    ) -> AvailabilityBooking:
        """Booker edits activity or notes while the booking is active."""
        changes = patch.changes()
        with self.transaction():
            booking, _slot = self._get_participant_booking(booking_id, booker_user_id)
            if booking.booker_user_id != booker_user_id:
                raise self._not_found(booking_id)
            if not changes:
                return booking
            if not booking.is_active:
                raise BusinessRuleException(
                    f"Only active bookings can be updated (status is {booking.status})",
                    code="BOOKING_NOT_ACTIVE",
                )

            before = booking.to_dict()
            for field, value in changes.items():
                setattr(booking, field, value)
            self.db.flush()
            self._audit(booking, "updated", booker_user_id, before=before, fields=sorted(changes))

        return booking

    # Reads

    def get_booking(self, booking_id: str, user_id: str) -> BookingWithSlot:
        return self._get_participant_booking(booking_id, user_id)

    def list_my_bookings(
        self, booker_user_id: str, filters: BookingListFilters
    ) -> Tuple[List[BookingWithSlot], int, Dict[str, int]]:
        rows, total = self.repository.list_for_booker(
            booker_user_id,
            statuses=filters.statuses,
            from_date=self._upcoming_from(filters),
            offset=filters.offset,
            limit=filters.limit,
        )
        summary = self.repository.summarize(
            booker_user_id=booker_user_id, today=self._today_utc()
        )
        return rows, total, summary

    def list_incoming_bookings(
        self, owner_user_id: str, filters: BookingListFilters
    ) -> Tuple[List[BookingWithSlot], int, Dict[str, int]]:
        rows, total = self.repository.list_incoming(
            owner_user_id,
            statuses=filters.statuses,
            from_date=self._upcoming_from(filters),
            offset=filters.offset,
            limit=filters.limit,
        )
        summary = self.repository.summarize(owner_user_id=owner_user_id, today=self._today_utc())
        return rows, total, summary

    def _today_utc(self) -> date:
        return today_in_timezone(self.now(), "UTC")

    def _upcoming_from(self, filters: BookingListFilters) -> Optional[date]:
        return self._today_utc() if filters.upcoming_only else None

    def _get_participant_booking(self, booking_id: str, user_id: str) -> BookingWithSlot:
        row = self.repository.get_with_slot(booking_id)
        if row is None:
            raise self._not_found(booking_id)
        booking, slot = row
        if user_id not in (booking.booker_user_id, slot.owner_user_id):
            raise self._not_found(booking_id)
        return booking, slot

    @staticmethod
    def _not_found(booking_id: str) -> NotFoundException:
        return NotFoundException(
            "Booking not found", code="BOOKING_NOT_FOUND", details={"booking_id": booking_id}
        )

    # Side effects

    def _audit(
        self,
        booking: AvailabilityBooking,
        action: str,
        actor_user_id: str,
        before: Optional[dict],
        reason: Optional[str] = None,
        fields: Optional[List[str]] = None,
    ) -> None:
        after = booking.to_dict()
        if before is not None and fields is None:
            fields = sorted(k for k in after if after[k] != before.get(k))
        self.audit_repository.record(
            entity_type="booking",
            entity_id=cast(str, booking.id),
            slot_id=cast(str, booking.slot_id),
            actor_user_id=actor_user_id,
            action=action,
            changed_fields=fields,
            old_values={k: before.get(k) for k in fields} if before and fields else None,
            new_values={k: after.get(k) for k in fields} if fields else after,
            reason=reason,
        )

    def _notify_after_commit(
        self, send: Callable[[AvailabilityBooking], None], booking: AvailabilityBooking
    ) -> None:
        def _send() -> None:
            try:
                send(booking)
            except Exception as e:
                self.logger.error(
                    f"Notification {getattr(send, '__name__', send)} failed for booking "
                    f"{booking.id}: {str(e)}",
                    exc_info=True,
                )

        self.after_commit(_send)
