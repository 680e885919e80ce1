"""
Tests for the booking lifecycle: state machine, cancellation window,
participant scoping and notifications.
"""

from datetime import date

import pytest

from dateplanner.core.exceptions import (
    ActiveBookingExistsException,
    BusinessRuleException,
    CancellationWindowElapsedException,
    InvalidBookingTransitionException,
    NotFoundException,
    ValidationException,
)
from dateplanner.models.booking import AvailabilityBooking
from dateplanner.schemas.booking import BookingCreate, BookingListFilters, BookingUpdate
from dateplanner.services.booking_service import can_transition
from tests.helpers import BOOKER_ID, OTHER_ID, OWNER_ID, slot_payload, utc


@pytest.fixture
def slot(slot_manager):
    return slot_manager.create_slot(OWNER_ID, slot_payload(cancellation_policy="48_hours"))


@pytest.fixture
def booking(booking_service, slot) -> AvailabilityBooking:
    return booking_service.create_booking(
        BOOKER_ID, BookingCreate(slot_id=slot.id, selected_activity="dinner")
    )


class TestTransitionTable:
    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "confirmed"),
            ("pending", "cancelled"),
            ("confirmed", "cancelled"),
            ("confirmed", "completed"),
        ],
    )
    def test_allowed(self, current, target):
        assert can_transition(current, target)

    @pytest.mark.parametrize(
        "current,target",
        [
            ("pending", "completed"),
            ("cancelled", "confirmed"),
            ("cancelled", "pending"),
            ("completed", "cancelled"),
            ("confirmed", "pending"),
        ],
    )
    def test_refused(self, current, target):
        assert not can_transition(current, target)


class TestCreateBooking:
    def test_new_booking_is_pending(self, booking, slot, notifier):
        assert booking.status == "pending"
        assert booking.slot_id == slot.id
        assert booking.selected_activity == "dinner"
        notifier.notify_booking_created.assert_called_once_with(booking)

    def test_cannot_book_own_slot(self, booking_service, slot):
        with pytest.raises(ValidationException) as exc_info:
            booking_service.create_booking(OWNER_ID, BookingCreate(slot_id=slot.id))

        assert exc_info.value.code == "CANNOT_BOOK_OWN_SLOT"

    def test_second_active_booking_is_refused(self, booking_service, booking, slot, notifier):
        with pytest.raises(ActiveBookingExistsException):
            booking_service.create_booking(OTHER_ID, BookingCreate(slot_id=slot.id))

        assert notifier.notify_booking_created.call_count == 1

    def test_slot_can_be_rebooked_after_cancellation(self, booking_service, booking, slot):
        booking_service.cancel_booking(booking.id, BOOKER_ID)

        again = booking_service.create_booking(OTHER_ID, BookingCreate(slot_id=slot.id))

        assert again.status == "pending"

    def test_unknown_slot(self, booking_service):
        with pytest.raises(NotFoundException):
            booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id="missing"))

    def test_deleted_slot_is_not_found(self, booking_service, slot_manager, slot):
        slot_manager.soft_delete_slot(slot.id, OWNER_ID)

        with pytest.raises(NotFoundException):
            booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id=slot.id))

    def test_cancelled_slot_is_not_available(self, booking_service, slot_manager, slot):
        slot_manager.cancel_slot(slot.id, OWNER_ID)

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id=slot.id))

        assert exc_info.value.code == "SLOT_NOT_AVAILABLE"

    def test_started_slot_cannot_be_booked(self, booking_service, slot, clock):
        clock.set(utc(2025, 3, 1, 18))

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id=slot.id))

        assert exc_info.value.code == "SLOT_IN_PAST"

    def test_unique_index_backstops_the_active_check(
        self, booking_service, booking, slot, monkeypatch
    ):
        # Simulate a concurrent writer that passed the check first
        monkeypatch.setattr(
            booking_service.repository, "find_active_booking_for_slot", lambda slot_id: None
        )

        with pytest.raises(ActiveBookingExistsException):
            booking_service.create_booking(OTHER_ID, BookingCreate(slot_id=slot.id))

    def test_failing_notifier_does_not_fail_booking(self, booking_service, slot, notifier, db):
        notifier.notify_booking_created.side_effect = RuntimeError("smtp down")

        created = booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id=slot.id))

        assert db.get(AvailabilityBooking, created.id).status == "pending"


class TestConfirm:
    def test_owner_confirms(self, booking_service, booking, notifier):
        confirmed = booking_service.confirm_booking(booking.id, OWNER_ID)

        assert confirmed.status == "confirmed"
        assert confirmed.confirmed_at is not None
        notifier.notify_booking_confirmed.assert_called_once_with(booking)

    def test_booker_cannot_confirm(self, booking_service, booking):
        with pytest.raises(NotFoundException):
            booking_service.confirm_booking(booking.id, BOOKER_ID)

    def test_confirming_twice_is_an_invalid_transition(self, booking_service, booking):
        booking_service.confirm_booking(booking.id, OWNER_ID)

        with pytest.raises(InvalidBookingTransitionException):
            booking_service.confirm_booking(booking.id, OWNER_ID)


class TestCancellationWindow:
    def test_cancel_allowed_49_hours_before(self, booking_service, booking, clock):
        clock.set(utc(2025, 2, 27, 17))

        cancelled = booking_service.cancel_booking(booking.id, BOOKER_ID, reason="Conflict")

        assert cancelled.status == "cancelled"
        assert cancelled.within_policy is True
        assert cancelled.cancelled_by_user_id == BOOKER_ID

    def test_cancel_refused_47_hours_before(self, booking_service, booking, clock, notifier):
        clock.set(utc(2025, 2, 27, 19))

        with pytest.raises(CancellationWindowElapsedException) as exc_info:
            booking_service.cancel_booking(booking.id, BOOKER_ID)

        assert exc_info.value.details["required_hours"] == 48
        assert booking.status == "pending"
        notifier.notify_booking_cancelled.assert_not_called()

    def test_deadline_itself_is_too_late(self, booking_service, booking, slot, clock):
        clock.set(booking_service.cancellation_deadline(slot))

        with pytest.raises(CancellationWindowElapsedException):
            booking_service.cancel_booking(booking.id, OWNER_ID)

    def test_owner_may_cancel(self, booking_service, booking):
        cancelled = booking_service.cancel_booking(booking.id, OWNER_ID)

        assert cancelled.cancelled_by_user_id == OWNER_ID

    def test_cancelled_booking_stays_cancelled(self, booking_service, booking):
        booking_service.cancel_booking(booking.id, BOOKER_ID)

        with pytest.raises(InvalidBookingTransitionException):
            booking_service.cancel_booking(booking.id, BOOKER_ID)
        with pytest.raises(InvalidBookingTransitionException):
            booking_service.confirm_booking(booking.id, OWNER_ID)


class TestComplete:
    def test_completes_after_the_date(self, booking_service, booking, slot, clock):
        booking_service.confirm_booking(booking.id, OWNER_ID)
        clock.set(utc(2025, 3, 1, 20, 30))

        completed = booking_service.complete_booking(booking.id, BOOKER_ID)

        assert completed.status == "completed"
        assert completed.completed_at is not None
        assert slot.status == "completed"

    def test_cannot_complete_before_end(self, booking_service, booking, clock):
        booking_service.confirm_booking(booking.id, OWNER_ID)
        clock.set(utc(2025, 3, 1, 19))

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.complete_booking(booking.id, OWNER_ID)

        assert exc_info.value.code == "BOOKING_NOT_FINISHED"

    def test_pending_booking_cannot_complete(self, booking_service, booking, clock):
        clock.set(utc(2025, 3, 2))

        with pytest.raises(InvalidBookingTransitionException):
            booking_service.complete_booking(booking.id, OWNER_ID)


class TestParticipantScoping:
    def test_outsider_sees_nothing(self, booking_service, booking):
        with pytest.raises(NotFoundException):
            booking_service.get_booking(booking.id, OTHER_ID)
        with pytest.raises(NotFoundException):
            booking_service.cancel_booking(booking.id, OTHER_ID)

    def test_both_participants_can_read(self, booking_service, booking):
        for user in (BOOKER_ID, OWNER_ID):
            found, found_slot = booking_service.get_booking(booking.id, user)
            assert found.id == booking.id
            assert found_slot.owner_user_id == OWNER_ID


class TestUpdateBooking:
    def test_booker_edits_notes(self, booking_service, booking):
        updated = booking_service.update_booking(
            booking.id, BOOKER_ID, BookingUpdate(booking_notes="Vegetarian", selected_activity="walk")
        )

        assert updated.booking_notes == "Vegetarian"
        assert updated.selected_activity == "walk"

    def test_owner_cannot_edit_booking(self, booking_service, booking):
        with pytest.raises(NotFoundException):
            booking_service.update_booking(booking.id, OWNER_ID, BookingUpdate(booking_notes="x"))

    def test_terminal_booking_cannot_be_edited(self, booking_service, booking):
        booking_service.cancel_booking(booking.id, BOOKER_ID)

        with pytest.raises(BusinessRuleException) as exc_info:
            booking_service.update_booking(booking.id, BOOKER_ID, BookingUpdate(booking_notes="x"))

        assert exc_info.value.code == "BOOKING_NOT_ACTIVE"


class TestListings:
    def test_lists_and_summaries(self, booking_service, slot_manager, booking):
        second_slot = slot_manager.create_slot(
            OWNER_ID, slot_payload(slot_date=date(2025, 3, 2))
        )
        second = booking_service.create_booking(BOOKER_ID, BookingCreate(slot_id=second_slot.id))
        booking_service.cancel_booking(second.id, BOOKER_ID)

        rows, total, summary = booking_service.list_my_bookings(BOOKER_ID, BookingListFilters())
        assert total == 2
        assert [b.id for b, _ in rows] == [booking.id, second.id]
        assert summary == {"total": 2, "upcoming": 1, "completed": 0, "cancelled": 1}

        rows, total, _ = booking_service.list_incoming_bookings(
            OWNER_ID, BookingListFilters(statuses=["pending"])
        )
        assert total == 1
        assert rows[0][0].id == booking.id

        _, total, summary = booking_service.list_my_bookings(OTHER_ID, BookingListFilters())
        assert total == 0
        assert summary["total"] == 0
