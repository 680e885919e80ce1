# backend/dateplanner/services/conflict_checker.py
"""
Conflict Checker Service for the scheduling core.

Handles all slot conflict detection and time validation including:
- Detecting overlap between a requested range and an owner's slots
- Validating duration bounds
- Validating the date window a slot may be published in
- Suggesting a non-overlapping alternative for each conflict

find_conflicts is a pure function over a slot collection; the service
only loads the owner's candidate slots and shapes the result.
"""

from datetime import date, time
import logging
from typing import Iterable, List, Optional

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.timezone_utils import Clock, add_minutes, minutes_between, today_in_timezone
from ..models.availability import BLOCKING_SLOT_STATUSES, AvailabilitySlot
from ..repositories import RepositoryFactory
from ..repositories.availability_repository import AvailabilityRepository
from ..schemas.availability import RuleViolation, SlotConflict, TimeRange
from .base import BaseService

logger = logging.getLogger(__name__)


def ranges_overlap(
    existing_start: time, existing_end: time, new_start: time, new_end: time
) -> bool:
    """
    Whether two same-day ranges overlap.

    Covers a new range starting inside the existing one, ending inside it,
    or fully containing it. Touching endpoints (10:00-11:00 and 11:00-12:00)
    do not overlap. The test is symmetric in its two ranges.
    """
    return (
        (existing_start <= new_start < existing_end)
        or (existing_start < new_end <= existing_end)
        or (new_start <= existing_start and new_end >= existing_end)
    )


def find_conflicts(
    slots: Iterable[AvailabilitySlot],
    owner_user_id: str,
    check_date: date,
    start_time: time,
    end_time: time,
    exclude_slot_id: Optional[str] = None,
) -> List[AvailabilitySlot]:
    """
    Slots in ``slots`` that block the requested range.

    Only slots of the same owner on the same date with a blocking status
    (active or completed) count. An empty list means no conflict.
    """
    return [
        slot
        for slot in slots
        if slot.owner_user_id == owner_user_id
        and slot.slot_date == check_date
        and slot.status in BLOCKING_SLOT_STATUSES
        and (exclude_slot_id is None or slot.id != exclude_slot_id)
        and ranges_overlap(slot.start_time, slot.end_time, start_time, end_time)
    ]


def suggest_alternative(conflicting: AvailabilitySlot, duration_minutes: int) -> List[TimeRange]:
    """Same-length range starting when the conflicting slot ends, if the day allows."""
    start = conflicting.end_time
    end = add_minutes(start, duration_minutes)
    if minutes_between(start, end) < duration_minutes:
        return []
    return [TimeRange(start_time=start, end_time=end)]


class ConflictChecker(BaseService):
    """
    Service for checking slot conflicts and time validation.

    This service centralizes all conflict detection logic to ensure
    consistent validation across slot creation, updates and recurrence.
    """

    def __init__(
        self,
        db: Session,
        repository: Optional[AvailabilityRepository] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)

    @BaseService.measure_operation("check_slot_conflicts")
    def check_slot_conflicts(
        self,
        owner_user_id: str,
        check_date: date,
        start_time: time,
        end_time: time,
        exclude_slot_id: Optional[str] = None,
    ) -> List[SlotConflict]:
        """
        Check if a time range conflicts with the owner's existing slots.

        Args:
            owner_user_id: The slot owner to check
            check_date: The date to check
            start_time: Start time of the range to check
            end_time: End time of the range to check
            exclude_slot_id: Slot to ignore, used when re-checking an update

        Returns:
            One SlotConflict per overlapping slot, each with a suggested alternative
        """
        candidates = self.repository.find_active_slots_by_owner(
            owner_user_id, check_date, check_date, exclude_slot_id=exclude_slot_id
        )
        overlapping = find_conflicts(
            candidates, owner_user_id, check_date, start_time, end_time, exclude_slot_id
        )

        duration = minutes_between(start_time, end_time)
        conflicts = [
            SlotConflict(
                conflicting_slot_id=slot.id,
                conflict_type="overlap",
                conflict_description=(
                    f"Overlaps with existing slot from {slot.start_time.strftime('%H:%M')} "
                    f"to {slot.end_time.strftime('%H:%M')}"
                ),
                start_time=slot.start_time,
                end_time=slot.end_time,
                suggested_alternatives=suggest_alternative(slot, duration),
            )
            for slot in overlapping
        ]

        if conflicts:
            self.logger.warning(
                f"Found {len(conflicts)} slot conflicts for {owner_user_id} "
                f"on {check_date} between {start_time}-{end_time}"
            )

        return conflicts

    def validate_time_range(self, start_time: time, end_time: time) -> List[RuleViolation]:
        """
        Validate a time range for basic constraints.

        Returns:
            Rule violations; empty when the range is acceptable
        """
        if end_time <= start_time:
            return [
                RuleViolation(rule="time_logic", description="Start time must be before end time")
            ]

        violations = []
        duration_minutes = minutes_between(start_time, end_time)
        min_minutes = self.settings.slot_min_duration_minutes
        max_minutes = self.settings.slot_max_duration_minutes

        if duration_minutes < min_minutes:
            violations.append(
                RuleViolation(
                    rule="min_duration", description=f"Minimum duration is {min_minutes} minutes"
                )
            )
        if duration_minutes > max_minutes:
            violations.append(
                RuleViolation(
                    rule="max_duration", description=f"Maximum duration is {max_minutes} minutes"
                )
            )
        return violations

    def validate_date_window(self, slot_date: date, tz_name: str) -> List[RuleViolation]:
        """
        Check slot_date lies in [today, today + max future days] in the slot's zone.
        """
        today = today_in_timezone(self.now(), tz_name)
        max_days = self.settings.slot_max_future_days

        if slot_date < today:
            return [
                RuleViolation(
                    rule="past_date", description="Cannot create availability for past dates"
                )
            ]
        if (slot_date - today).days > max_days:
            return [
                RuleViolation(
                    rule="max_future_days",
                    description=f"Cannot create availability more than {max_days} days in advance",
                )
            ]
        return []
