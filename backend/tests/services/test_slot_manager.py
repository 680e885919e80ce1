"""
Tests for SlotManager: creation rules, updates, cancellation and deletion.
"""

from datetime import date, time, timedelta

import pytest

from dateplanner.core.exceptions import (
    AvailabilityOverlapException,
    BusinessRuleException,
    CancellationWindowElapsedException,
    NotFoundException,
    SlotLockedException,
    ValidationException,
)
from dateplanner.models.availability import AvailabilitySlot
from dateplanner.models.booking import AvailabilityBooking
from dateplanner.schemas.availability import SlotListFilters, SlotUpdate
from dateplanner.schemas.booking import BookingCreate
from tests.helpers import BOOKER_ID, DATE_DAY, OTHER_ID, OWNER_ID, slot_payload, utc


def _book(booking_service, slot_id: str, booker: str = BOOKER_ID) -> AvailabilityBooking:
    return booking_service.create_booking(booker, BookingCreate(slot_id=slot_id))


class TestCreateSlot:
    def test_creates_active_slot_with_defaults(self, slot_manager, orchestrator):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())

        assert slot.id
        assert slot.status == "active"
        assert slot.owner_user_id == OWNER_ID
        assert slot.buffer_time_minutes == 30
        assert slot.preparation_time_minutes == 15
        assert slot.parent_slot_id is None

        audit = orchestrator.audit_repository.list_for_slot(slot.id)
        assert [row.action for row in audit] == ["created"]

    def test_rejects_overlap_with_existing_slot(self, slot_manager, db):
        existing = slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))

        with pytest.raises(AvailabilityOverlapException) as exc_info:
            slot_manager.create_slot(OWNER_ID, slot_payload(start="19:00", end="21:00"))

        conflicts = exc_info.value.details["conflicts"]
        assert [c["conflicting_slot_id"] for c in conflicts] == [existing.id]
        assert db.query(AvailabilitySlot).count() == 1

    def test_touching_slots_are_allowed(self, slot_manager):
        slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))
        slot = slot_manager.create_slot(OWNER_ID, slot_payload(start="20:00", end="21:00"))

        assert slot.status == "active"

    def test_other_owners_do_not_conflict(self, slot_manager):
        slot_manager.create_slot(OWNER_ID, slot_payload())

        assert slot_manager.create_slot(OTHER_ID, slot_payload()).owner_user_id == OTHER_ID

    def test_cancelled_slot_no_longer_blocks(self, slot_manager):
        first = slot_manager.create_slot(OWNER_ID, slot_payload())
        slot_manager.cancel_slot(first.id, OWNER_ID)

        assert slot_manager.create_slot(OWNER_ID, slot_payload()).id != first.id

    @pytest.mark.parametrize(
        "start,end,code",
        [("18:00", "18:20", "MIN_DURATION"), ("08:00", "17:00", "MAX_DURATION")],
    )
    def test_duration_limits(self, slot_manager, start, end, code):
        with pytest.raises(ValidationException) as exc_info:
            slot_manager.create_slot(OWNER_ID, slot_payload(start=start, end=end))

        assert exc_info.value.code == code

    def test_rejects_past_date(self, slot_manager):
        with pytest.raises(ValidationException) as exc_info:
            slot_manager.create_slot(OWNER_ID, slot_payload(slot_date=date(2025, 2, 19)))

        assert exc_info.value.code == "PAST_DATE"

    def test_rejects_date_too_far_ahead(self, slot_manager):
        with pytest.raises(ValidationException) as exc_info:
            slot_manager.create_slot(OWNER_ID, slot_payload(slot_date=date(2025, 6, 1)))

        assert exc_info.value.code == "MAX_FUTURE_DAYS"

    def test_today_is_allowed(self, slot_manager):
        slot = slot_manager.create_slot(
            OWNER_ID, slot_payload(slot_date=date(2025, 2, 20), start="18:00", end="19:00")
        )

        assert slot.slot_date == date(2025, 2, 20)


class TestValidateSlot:
    def test_reports_conflicts_with_suggestion(self, slot_manager):
        slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))

        report = slot_manager.validate_slot(OWNER_ID, DATE_DAY, time(19), time(21))

        assert not report.is_valid
        assert len(report.conflicts) == 1
        conflict = report.conflicts[0]
        assert conflict.conflict_description == "Overlaps with existing slot from 18:00 to 20:00"
        assert conflict.suggested_alternatives[0].start_time == time(20)
        assert conflict.suggested_alternatives[0].end_time == time(22)

    def test_collects_every_violation(self, slot_manager):
        report = slot_manager.validate_slot(OWNER_ID, date(2025, 2, 1), time(18), time(18, 10))

        assert not report.is_valid
        assert {v.rule for v in report.violations} == {"min_duration", "past_date"}

    def test_warns_when_slot_starts_soon(self, slot_manager):
        report = slot_manager.validate_slot(OWNER_ID, date(2025, 2, 20), time(20), time(21))

        assert report.is_valid
        assert report.warnings


class TestUpdateSlot:
    def test_updates_descriptive_fields(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())

        updated = slot_manager.update_slot(slot.id, OWNER_ID, SlotUpdate(title="Dinner?"))

        assert updated.title == "Dinner?"

    def test_moving_slot_ignores_itself_in_conflict_check(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))

        updated = slot_manager.update_slot(
            slot.id, OWNER_ID, SlotUpdate(start_time=time(19), end_time=time(21))
        )

        assert updated.start_time == time(19)

    def test_moving_onto_another_slot_conflicts(self, slot_manager):
        slot_manager.create_slot(OWNER_ID, slot_payload(start="12:00", end="14:00"))
        slot = slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))

        with pytest.raises(AvailabilityOverlapException):
            slot_manager.update_slot(
                slot.id, OWNER_ID, SlotUpdate(start_time=time(13), end_time=time(15))
            )

    def test_revalidates_new_times_against_existing_end(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload(start="18:00", end="20:00"))

        with pytest.raises(ValidationException) as exc_info:
            slot_manager.update_slot(slot.id, OWNER_ID, SlotUpdate(start_time=time(21)))

        assert exc_info.value.code == "TIME_LOGIC"

    def test_booked_slot_allows_only_descriptive_fields(self, slot_manager, booking_service):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        _book(booking_service, slot.id)

        updated = slot_manager.update_slot(
            slot.id, OWNER_ID, SlotUpdate(notes="Bring an umbrella", location_preference="Cafe")
        )
        assert updated.notes == "Bring an umbrella"

        with pytest.raises(SlotLockedException) as exc_info:
            slot_manager.update_slot(slot.id, OWNER_ID, SlotUpdate(start_time=time(17)))
        assert exc_info.value.details["locked_fields"] == ["start_time"]

    def test_cancelled_slot_cannot_be_updated(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        slot_manager.cancel_slot(slot.id, OWNER_ID)

        with pytest.raises(BusinessRuleException) as exc_info:
            slot_manager.update_slot(slot.id, OWNER_ID, SlotUpdate(title="Again"))

        assert exc_info.value.code == "SLOT_NOT_ACTIVE"

    def test_other_owner_gets_not_found(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())

        with pytest.raises(NotFoundException):
            slot_manager.update_slot(slot.id, OTHER_ID, SlotUpdate(title="Mine now"))


class TestCancelSlot:
    def test_cancels_slot(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())

        cancelled = slot_manager.cancel_slot(slot.id, OWNER_ID, reason="Out of town")

        assert cancelled.status == "cancelled"
        assert cancelled.status_reason == "Out of town"
        assert cancelled.cancelled_at is not None

    def test_cancelling_twice_is_a_no_op(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        slot_manager.cancel_slot(slot.id, OWNER_ID)

        again = slot_manager.cancel_slot(slot.id, OWNER_ID)

        assert again.status == "cancelled"

    def test_cancels_active_booking_first(self, slot_manager, booking_service, notifier):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        booking = _book(booking_service, slot.id)

        slot_manager.cancel_slot(slot.id, OWNER_ID, reason="Sick")

        assert booking.status == "cancelled"
        assert booking.cancelled_by_user_id == OWNER_ID
        assert booking.cancellation_reason == "Sick"
        notifier.notify_booking_cancelled.assert_called_once_with(booking)

    def test_late_cancel_of_booked_slot_is_refused(self, slot_manager, booking_service, clock):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload(cancellation_policy="48_hours"))
        booking = _book(booking_service, slot.id)
        clock.set(utc(2025, 2, 27, 19))  # 47 hours before start

        with pytest.raises(CancellationWindowElapsedException):
            slot_manager.cancel_slot(slot.id, OWNER_ID)

        assert slot.status == "active"
        assert booking.status == "pending"


class TestSoftDelete:
    def test_deleted_slot_disappears(self, slot_manager):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())

        slot_manager.soft_delete_slot(slot.id, OWNER_ID)

        with pytest.raises(NotFoundException):
            slot_manager.get_slot(slot.id, OWNER_ID)
        with pytest.raises(NotFoundException):
            slot_manager.soft_delete_slot(slot.id, OWNER_ID)

    def test_slot_with_active_booking_cannot_be_deleted(self, slot_manager, booking_service):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        _book(booking_service, slot.id)

        with pytest.raises(BusinessRuleException) as exc_info:
            slot_manager.soft_delete_slot(slot.id, OWNER_ID)

        assert exc_info.value.code == "SLOT_HAS_ACTIVE_BOOKING"


class TestReads:
    def test_list_slots_filters_and_paginates(self, slot_manager):
        for offset in range(3):
            slot_manager.create_slot(
                OWNER_ID, slot_payload(slot_date=DATE_DAY + timedelta(days=offset))
            )
        slot_manager.create_slot(OWNER_ID, slot_payload(start="10:00", end="11:00", date_type="online"))

        items, total = slot_manager.list_slots(OWNER_ID, SlotListFilters(limit=2))
        assert total == 4
        assert len(items) == 2

        online, total_online = slot_manager.list_slots(
            OWNER_ID, SlotListFilters(date_type="online")
        )
        assert total_online == 1
        assert online[0].date_type == "online"

    def test_response_helper_fields(self, slot_manager, booking_service):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        open_response = slot_manager.build_response(slot)

        assert open_response.duration_minutes == 120
        assert not open_response.is_booked
        assert open_response.can_cancel and open_response.can_modify

        _book(booking_service, slot.id)
        booked_response = slot_manager.build_response(slot)

        assert booked_response.is_booked
        assert booked_response.booking_count == 1
        assert booked_response.active_booking.booker_user_id == BOOKER_ID

    def test_booked_slot_cannot_be_modified_inside_a_day(
        self, slot_manager, booking_service, clock
    ):
        slot = slot_manager.create_slot(OWNER_ID, slot_payload())
        _book(booking_service, slot.id)
        clock.set(utc(2025, 3, 1, 6))  # 12 hours before start

        response = slot_manager.build_response(slot)

        assert not response.can_modify
        assert not response.can_cancel
