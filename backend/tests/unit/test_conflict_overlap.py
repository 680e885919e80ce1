"""
Tests for the pure overlap test and conflict filtering.

No database: find_conflicts runs over plain objects carrying the slot
attributes it reads.
"""

from datetime import date, time
from types import SimpleNamespace

import pytest

from dateplanner.services.conflict_checker import (
    find_conflicts,
    ranges_overlap,
    suggest_alternative,
)

DAY = date(2025, 3, 1)


def t(value: str) -> time:
    return time.fromisoformat(value)


def make_slot(start: str, end: str, **overrides) -> SimpleNamespace:
    fields = {
        "id": f"slot-{start}-{end}",
        "owner_user_id": "owner",
        "slot_date": DAY,
        "start_time": t(start),
        "end_time": t(end),
        "status": "active",
    }
    fields.update(overrides)
    return SimpleNamespace(**fields)


class TestRangesOverlap:
    @pytest.mark.parametrize(
        "existing,new",
        [
            (("10:00", "12:00"), ("11:00", "13:00")),  # new starts inside
            (("10:00", "12:00"), ("09:00", "11:00")),  # new ends inside
            (("10:00", "12:00"), ("09:00", "13:00")),  # new contains existing
            (("10:00", "12:00"), ("10:30", "11:30")),  # existing contains new
            (("10:00", "12:00"), ("10:00", "12:00")),  # identical
        ],
    )
    def test_overlapping_ranges(self, existing, new):
        assert ranges_overlap(t(existing[0]), t(existing[1]), t(new[0]), t(new[1]))

    @pytest.mark.parametrize(
        "existing,new",
        [
            (("10:00", "11:00"), ("11:00", "12:00")),
            (("11:00", "12:00"), ("10:00", "11:00")),
            (("10:00", "11:00"), ("13:00", "14:00")),
        ],
    )
    def test_touching_or_disjoint_ranges_do_not_overlap(self, existing, new):
        assert not ranges_overlap(t(existing[0]), t(existing[1]), t(new[0]), t(new[1]))

    @pytest.mark.parametrize(
        "a,b",
        [
            (("10:00", "12:00"), ("11:00", "13:00")),
            (("10:00", "11:00"), ("11:00", "12:00")),
            (("09:00", "17:00"), ("12:00", "12:30")),
            (("08:00", "09:00"), ("20:00", "21:00")),
        ],
    )
    def test_symmetric(self, a, b):
        forward = ranges_overlap(t(a[0]), t(a[1]), t(b[0]), t(b[1]))
        backward = ranges_overlap(t(b[0]), t(b[1]), t(a[0]), t(a[1]))
        assert forward == backward


class TestFindConflicts:
    def test_returns_only_overlapping_slots(self):
        slots = [make_slot("10:00", "11:00"), make_slot("18:00", "20:00")]

        found = find_conflicts(slots, "owner", DAY, t("19:00"), t("21:00"))

        assert [s.id for s in found] == ["slot-18:00-20:00"]

    def test_ignores_other_owners_and_dates(self):
        slots = [
            make_slot("18:00", "20:00", owner_user_id="someone-else"),
            make_slot("18:00", "20:00", slot_date=date(2025, 3, 2)),
        ]

        assert find_conflicts(slots, "owner", DAY, t("18:00"), t("20:00")) == []

    @pytest.mark.parametrize("status", ["cancelled", "deleted"])
    def test_non_blocking_statuses_are_ignored(self, status):
        slots = [make_slot("18:00", "20:00", status=status)]

        assert find_conflicts(slots, "owner", DAY, t("18:00"), t("20:00")) == []

    def test_completed_slots_still_block(self):
        slots = [make_slot("18:00", "20:00", status="completed")]

        assert len(find_conflicts(slots, "owner", DAY, t("19:00"), t("19:30"))) == 1

    def test_excluded_slot_is_skipped(self):
        slot = make_slot("18:00", "20:00")

        assert find_conflicts([slot], "owner", DAY, t("18:30"), t("20:30"), slot.id) == []


class TestSuggestAlternative:
    def test_starts_when_conflicting_slot_ends(self):
        suggestion = suggest_alternative(make_slot("18:00", "20:00"), 90)

        assert len(suggestion) == 1
        assert suggestion[0].start_time == t("20:00")
        assert suggestion[0].end_time == t("21:30")

    def test_no_suggestion_past_midnight(self):
        assert suggest_alternative(make_slot("21:00", "23:00"), 120) == []
