"""Tests for AvailabilityRepository queries against SQLite."""

from datetime import date, time

import pytest

from dateplanner.models.availability import AvailabilitySlot
from dateplanner.models.booking import AvailabilityBooking
from dateplanner.repositories import RepositoryFactory
from dateplanner.repositories.availability_repository import AvailabilityRepository
from tests.helpers import BOOKER_ID, OTHER_ID, OWNER_ID

DAY = date(2025, 3, 1)


@pytest.fixture
def repo(db) -> AvailabilityRepository:
    return RepositoryFactory.create_availability_repository(db)


def _slot(repo, owner=OWNER_ID, day=DAY, start="18:00", end="20:00", status="active", **extra):
    return repo.create_slot(
        owner_user_id=owner,
        slot_date=day,
        start_time=time.fromisoformat(start),
        end_time=time.fromisoformat(end),
        status=status,
        **extra,
    )


def test_create_generates_ulid_and_defaults(repo):
    slot = _slot(repo)

    assert len(slot.id) == 26
    assert slot.timezone == "UTC"
    assert slot.cancellation_policy == "24_hours"
    assert slot.is_recurring is False


def test_find_active_slots_by_owner_uses_blocking_statuses(repo):
    active = _slot(repo, start="08:00", end="09:00")
    completed = _slot(repo, start="10:00", end="11:00", status="completed")
    _slot(repo, start="12:00", end="13:00", status="cancelled")
    _slot(repo, start="14:00", end="15:00", status="deleted")
    _slot(repo, owner=OTHER_ID)

    found = repo.find_active_slots_by_owner(OWNER_ID, DAY)

    assert [s.id for s in found] == [active.id, completed.id]
    assert repo.find_active_slots_by_owner(OWNER_ID, DAY, exclude_slot_id=active.id) == [completed]


def test_deleted_slots_are_invisible(repo):
    slot = _slot(repo, status="deleted")

    assert repo.get_slot(slot.id) is None
    assert repo.get_slot_for_owner(slot.id, OWNER_ID) is None
    assert repo.get_slot_for_update(slot.id) is None
    assert repo.get_by_id(slot.id) is slot
    assert repo.list_owner_slots(OWNER_ID) == ([], 0)


def test_get_slot_for_owner_hides_other_owners(repo):
    slot = _slot(repo)

    assert repo.get_slot_for_owner(slot.id, OTHER_ID) is None
    assert repo.get_slot_for_owner(slot.id, OWNER_ID) is slot


def test_search_open_slots_excludes_booked_and_own(repo, db):
    open_slot = _slot(repo, owner=OTHER_ID)
    booked = _slot(repo, owner=OTHER_ID, start="10:00", end="11:00")
    _slot(repo, owner=BOOKER_ID, start="12:00", end="13:00")
    db.add(AvailabilityBooking(slot_id=booked.id, booker_user_id=BOOKER_ID, status="confirmed"))
    db.flush()

    found = repo.search_open_slots(exclude_owner_id=BOOKER_ID, date_from=DAY, date_to=DAY)

    assert found == [open_slot]


def test_search_open_slots_lists_slot_again_after_cancelled_booking(repo, db):
    slot = _slot(repo, owner=OTHER_ID)
    db.add(AvailabilityBooking(slot_id=slot.id, booker_user_id=BOOKER_ID, status="cancelled"))
    db.flush()

    assert repo.search_open_slots(exclude_owner_id=BOOKER_ID, date_from=DAY, date_to=DAY) == [slot]


def test_find_by_parent(repo):
    parent = _slot(repo)
    child = _slot(repo, day=date(2025, 3, 8), parent_slot_id=parent.id)
    _slot(repo, day=date(2025, 3, 15), parent_slot_id=parent.id, status="cancelled")

    assert repo.find_by_parent(parent.id) == [child]


def test_set_status_stamps_timestamps(repo, clock):
    slot = _slot(repo)

    repo.set_status(slot, "cancelled", reason="Rain", at=clock())

    assert slot.status == "cancelled"
    assert slot.status_reason == "Rain"
    assert slot.cancelled_at == clock()
    assert slot.deleted_at is None


def test_count_slots_by_status(repo):
    _slot(repo, start="08:00", end="09:00")
    _slot(repo, start="10:00", end="11:00", status="cancelled")

    assert repo.count_slots_by_status(OWNER_ID) == {
        "active": 1,
        "cancelled": 1,
        "completed": 0,
        "deleted": 0,
    }


def test_advisory_lock_is_a_no_op_on_sqlite(repo):
    repo.lock_owner_schedule(OWNER_ID)

    assert repo.dialect_name == "sqlite"


def test_list_owner_slots_orders_by_date_and_time(repo):
    later = _slot(repo, day=date(2025, 3, 2))
    evening = _slot(repo)
    morning = _slot(repo, start="08:00", end="09:00")

    items, total = repo.list_owner_slots(OWNER_ID)

    assert total == 3
    assert [s.id for s in items] == [morning.id, evening.id, later.id]
    assert isinstance(items[0], AvailabilitySlot)
