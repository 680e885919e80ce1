# backend/dateplanner/services/recurring_slot_generator.py
"""
Recurring Slot Generator for the scheduling core.

Expands a base slot into weekly copies up to an end date. Each copy is
created through SlotManager.create_slot in its own unit of work, so a
batch that stops early keeps the copies made before it stopped. Every
copy points back to the base slot through parent_slot_id; that group is
what cancel_recurring_group operates on.
"""

from datetime import date, timedelta
import logging
from typing import List, Optional

from pydantic import ValidationError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    BusinessRuleException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from ..core.timezone_utils import Clock
from ..models.availability import AvailabilitySlot
from ..schemas.availability import (
    RecurringGenerationOptions,
    RecurringGenerationResult,
    RecurringGenerationSummary,
    SlotConflict,
    SlotCreate,
    SlotCreationResult,
)
from .base import BaseService
from .slot_manager import SlotManager

logger = logging.getLogger(__name__)

WEEK = timedelta(days=7)
WEEKEND_DAYS = (5, 6)  # Saturday, Sunday


def candidate_dates(base_date: date, end_date: date) -> List[date]:
    """Weekly dates after base_date up to and including end_date."""
    dates = []
    current = base_date + WEEK
    while current <= end_date:
        dates.append(current)
        current += WEEK
    return dates


class RecurringSlotGenerator(BaseService):
    """Weekly recurrence on top of SlotManager."""

    def __init__(
        self,
        db: Session,
        slot_manager: Optional[SlotManager] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)
        self.slot_manager = slot_manager or SlotManager(db, settings=self.settings, clock=self.clock)

    def _validate_end_date(self, base: AvailabilitySlot, end_date: date) -> None:
        if end_date <= base.slot_date:
            raise ValidationException(
                "Recurrence end date must be after the base slot date",
                code="INVALID_RECURRENCE_END",
            )
        max_weeks = self.settings.recurrence_max_weeks
        if end_date > base.slot_date + timedelta(weeks=max_weeks):
            raise ValidationException(
                f"Recurrence cannot extend more than {max_weeks} weeks past the base slot",
                code="RECURRENCE_TOO_LONG",
                details={"max_weeks": max_weeks},
            )

    def _copy_of(self, base: AvailabilitySlot, slot_date: date) -> SlotCreate:
        return SlotCreate(
            slot_date=slot_date,
            start_time=base.start_time,
            end_time=base.end_time,
            timezone=base.timezone,
            date_type=base.date_type,
            cancellation_policy=base.cancellation_policy,
            buffer_time_minutes=base.buffer_time_minutes,
            preparation_time_minutes=base.preparation_time_minutes,
            title=base.title,
            notes=base.notes,
            location_preference=base.location_preference,
        )

    @BaseService.measure_operation("generate_recurring")
    def generate(
        self,
        owner_user_id: str,
        base_slot_id: str,
        end_date: date,
        options: Optional[RecurringGenerationOptions] = None,
    ) -> RecurringGenerationResult:
        """
        Create weekly copies of a base slot.

        Weekend dates are dropped silently when skip_weekends is set; custom
        skip dates are reported as skipped. With skip_conflicts a conflict is
        recorded as a failed result and generation continues; without it the
        conflict aborts the batch and is raised to the caller, and the base
        slot keeps its previous recurrence settings.

        Raises:
            NotFoundException: Base slot unknown or not owned by caller
            BusinessRuleException: Base slot is not active
            ValidationException: End date before base date or too far out
            ConflictException: A copy overlaps and skip_conflicts is off
        """
        options = options or RecurringGenerationOptions()
        base = self.slot_manager.get_slot(base_slot_id, owner_user_id)
        if not base.is_active:
            raise BusinessRuleException(
                f"Only active slots can be repeated (status is {base.status})",
                code="SLOT_NOT_ACTIVE",
                details={"slot_id": base_slot_id},
            )
        self._validate_end_date(base, end_date)

        skip_dates = set(options.custom_skip_dates)

        results: List[SlotCreationResult] = []
        for candidate in candidate_dates(base.slot_date, end_date):
            if options.skip_weekends and candidate.weekday() in WEEKEND_DAYS:
                continue

            if candidate in skip_dates:
                results.append(
                    SlotCreationResult(
                        candidate_date=candidate,
                        success=False,
                        skipped=True,
                        error="Date skipped by request",
                        error_code="CUSTOM_SKIP_DATE",
                    )
                )
                continue

            try:
                slot = self.slot_manager.create_slot(
                    owner_user_id, self._copy_of(base, candidate), parent_slot_id=base.id
                )
            except ConflictException as exc:
                if not options.skip_conflicts:
                    self.logger.warning(
                        f"Recurring generation for slot {base.id} aborted on {candidate}: "
                        f"{exc.message}"
                    )
                    raise
                results.append(
                    SlotCreationResult(
                        candidate_date=candidate,
                        success=False,
                        error=exc.message,
                        error_code=exc.code,
                        conflicts=[
                            SlotConflict.model_validate(c)
                            for c in exc.details.get("conflicts", [])
                        ],
                    )
                )
                continue
            except (ValidationException, ValidationError) as exc:
                message = exc.message if isinstance(exc, ValidationException) else str(exc)
                results.append(
                    SlotCreationResult(
                        candidate_date=candidate,
                        success=False,
                        error=message,
                        error_code=getattr(exc, "code", "VALIDATION_ERROR"),
                    )
                )
                continue

            results.append(
                SlotCreationResult(
                    candidate_date=candidate,
                    success=True,
                    slot=self.slot_manager.build_response(slot),
                )
            )

        # Only a batch that ran to the end marks the base as recurring
        self.slot_manager.mark_recurring(base, end_date)

        summary = RecurringGenerationSummary(
            total_attempted=len(results),
            created=sum(1 for r in results if r.success),
            failed=sum(1 for r in results if not r.success and not r.skipped),
            skipped=sum(1 for r in results if r.skipped),
        )
        self.logger.info(
            f"Recurring generation for slot {base.id} until {end_date}: "
            f"{summary.created} created, {summary.failed} failed, {summary.skipped} skipped"
        )
        return RecurringGenerationResult(
            base_slot_id=base.id, end_date=end_date, results=results, summary=summary
        )

    @BaseService.measure_operation("cancel_recurring_group")
    def cancel_recurring_group(
        self, parent_slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> int:
        """
        Cancel every still-active slot generated from parent_slot_id.

        Each slot is cancelled on its own through SlotManager.cancel_slot.
        A slot whose booking can no longer be cancelled is left as it is.

        Returns:
            Number of slots actually cancelled
        """
        parent = self.slot_manager.get_slot(parent_slot_id, owner_user_id)
        children = self.slot_manager.repository.find_by_parent(parent.id)

        cancelled = 0
        for child in children:
            try:
                self.slot_manager.cancel_slot(child.id, owner_user_id, reason)
                cancelled += 1
            except BusinessRuleException as exc:
                self.logger.warning(f"Could not cancel recurring slot {child.id}: {exc.message}")
            except NotFoundException:
                self.logger.info(f"Recurring slot {child.id} disappeared before cancellation")

        self.logger.info(
            f"Cancelled {cancelled} of {len(children)} slots in recurrence group {parent.id}"
        )
        return cancelled
