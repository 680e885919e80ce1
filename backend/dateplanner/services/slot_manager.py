# backend/dateplanner/services/slot_manager.py
"""
Slot Manager Service for the scheduling core.

Manages availability slot operations including:
- Creating slots after shape, date-window and conflict validation
- Partial updates, with booked slots locked to descriptive fields
- Cancelling (active booking resolved first) and soft-deleting
- Ownership-checked reads and response shaping

Every lookup is scoped to the caller: a slot owned by someone else is
reported as not found, never as forbidden.
"""

from datetime import date, time
import logging
from typing import TYPE_CHECKING, Dict, List, Optional, Sequence, Tuple, cast

from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import (
    AvailabilityOverlapException,
    BusinessRuleException,
    NotFoundException,
    RepositoryException,
    SlotLockedException,
    ValidationException,
)
from ..core.timezone_utils import Clock, hours_between, local_to_utc
from ..models.availability import (
    SLOT_NO_OVERLAP_CONSTRAINT,
    AvailabilitySlot,
    RecurrenceType,
    SlotStatus,
)
from ..models.booking import AvailabilityBooking
from ..repositories import RepositoryFactory
from ..repositories.audit_repository import AuditRepository
from ..repositories.availability_repository import AvailabilityRepository
from ..repositories.booking_repository import BookingRepository
from ..schemas.availability import (
    BookingSummary,
    RuleViolation,
    SlotConflict,
    SlotCreate,
    SlotListFilters,
    SlotResponse,
    SlotUpdate,
    SlotValidationResult,
)
from .base import BaseService
from .conflict_checker import ConflictChecker

if TYPE_CHECKING:
    from .booking_service import BookingService

logger = logging.getLogger(__name__)

# Fields a slot owner may still edit once someone has booked the slot
BOOKED_EDITABLE_FIELDS = frozenset({"title", "notes", "location_preference"})

# Fields that move the slot in time and need re-validation
_SCHEDULE_FIELDS = frozenset({"slot_date", "start_time", "end_time", "timezone"})

# Minimum notice, in hours, for modifying a slot
MODIFY_NOTICE_HOURS = 2
MODIFY_NOTICE_HOURS_BOOKED = 24


class SlotManager(BaseService):
    """
    Service for managing availability slots.

    Owns the slot lifecycle: active -> cancelled | deleted, and
    active -> completed when its booking completes.
    """

    def __init__(
        self,
        db: Session,
        conflict_checker: Optional[ConflictChecker] = None,
        repository: Optional[AvailabilityRepository] = None,
        booking_repository: Optional[BookingRepository] = None,
        audit_repository: Optional[AuditRepository] = None,
        booking_service: Optional["BookingService"] = None,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
    ):
        """Initialize slot manager service."""
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)
        self.repository = repository or RepositoryFactory.create_availability_repository(db)
        self.booking_repository = booking_repository or RepositoryFactory.create_booking_repository(
            db
        )
        self.audit_repository = audit_repository or RepositoryFactory.create_audit_repository(db)
        self.conflict_checker = conflict_checker or ConflictChecker(
            db, repository=self.repository, settings=self.settings, clock=self.clock
        )
        self._booking_service = booking_service

    @property
    def booking_service(self) -> "BookingService":
        """Booking lifecycle manager used to resolve bookings on cancel."""
        if self._booking_service is None:
            from .booking_service import BookingService

            self._booking_service = BookingService(
                self.db,
                slot_repository=self.repository,
                booking_repository=self.booking_repository,
                audit_repository=self.audit_repository,
                settings=self.settings,
                clock=self.clock,
            )
        return self._booking_service

    # Validation

    def validate_slot(
        self,
        owner_user_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        tz_name: str = "UTC",
        exclude_slot_id: Optional[str] = None,
    ) -> SlotValidationResult:
        """
        Full validation report for a prospective slot, without writing.

        Collects every rule violation and every conflict instead of failing
        on the first, so callers can show all problems at once.
        """
        violations: List[RuleViolation] = list(
            self.conflict_checker.validate_time_range(start_time, end_time)
        )
        violations.extend(self.conflict_checker.validate_date_window(slot_date, tz_name))

        conflicts: List[SlotConflict] = []
        if end_time > start_time:
            conflicts = self.conflict_checker.check_slot_conflicts(
                owner_user_id, slot_date, start_time, end_time, exclude_slot_id
            )

        warnings = []
        if not violations:
            hours_until = hours_between(self.now(), local_to_utc(slot_date, start_time, tz_name))
            if hours_until < MODIFY_NOTICE_HOURS_BOOKED:
                warnings.append("Slot starts within 24 hours; fewer people will be able to book it")

        is_valid = not any(v.severity == "error" for v in violations) and not conflicts
        self.logger.debug(
            f"Validated slot for {owner_user_id} on {slot_date}: valid={is_valid}, "
            f"conflicts={len(conflicts)}"
        )
        return SlotValidationResult(
            is_valid=is_valid, conflicts=conflicts, violations=violations, warnings=warnings
        )

    def _ensure_valid_shape(self, slot_date: date, start_time: time, end_time: time, tz_name: str) -> None:
        violations = self.conflict_checker.validate_time_range(start_time, end_time)
        violations += self.conflict_checker.validate_date_window(slot_date, tz_name)
        if violations:
            first = violations[0]
            raise ValidationException(
                first.description,
                code=first.rule.upper(),
                details={"violations": [v.model_dump() for v in violations]},
            )

    def _ensure_no_conflicts(
        self,
        owner_user_id: str,
        slot_date: date,
        start_time: time,
        end_time: time,
        exclude_slot_id: Optional[str] = None,
    ) -> None:
        conflicts = self.conflict_checker.check_slot_conflicts(
            owner_user_id, slot_date, start_time, end_time, exclude_slot_id
        )
        if conflicts:
            first = conflicts[0]
            raise AvailabilityOverlapException(
                specific_date=slot_date.isoformat(),
                new_range=f"{start_time.strftime('%H:%M')}-{end_time.strftime('%H:%M')}",
                conflicting_range=(
                    f"{first.start_time.strftime('%H:%M')}-{first.end_time.strftime('%H:%M')}"
                ),
                conflicts=[c.model_dump(mode="json") for c in conflicts],
            )

    # Lifecycle

    @BaseService.measure_operation("create_slot")
    def create_slot(
        self,
        owner_user_id: str,
        data: SlotCreate,
        parent_slot_id: Optional[str] = None,
    ) -> AvailabilitySlot:
        """
        Create a new availability slot.

        Shape and date-window rules are checked first; the conflict check
        and the insert then run in one unit of work under the owner's
        schedule lock.

        Args:
            owner_user_id: The slot owner
            data: Validated slot payload
            parent_slot_id: Base slot id when generated by recurrence

        Returns:
            Created availability slot

        Raises:
            ValidationException: If duration or date rules fail
            AvailabilityOverlapException: If the range overlaps another slot
        """
        self._ensure_valid_shape(data.slot_date, data.start_time, data.end_time, data.timezone)

        with self.transaction():
            self.repository.lock_owner_schedule(owner_user_id)
            self._ensure_no_conflicts(owner_user_id, data.slot_date, data.start_time, data.end_time)

            try:
                slot = self._insert_slot(owner_user_id, data, parent_slot_id)
            except RepositoryException as exc:
                raise self._overlap_from(exc, data.slot_date, data.start_time, data.end_time)
            self.audit_repository.record(
                entity_type="slot",
                entity_id=slot.id,
                slot_id=slot.id,
                actor_user_id=owner_user_id,
                action="created",
                new_values=slot.to_dict(),
            )

        self.logger.info(
            f"Created slot {slot.id} for {owner_user_id} on {slot.slot_date}: "
            f"{slot.time_range_label()}"
        )
        return slot

    def _insert_slot(
        self, owner_user_id: str, data: SlotCreate, parent_slot_id: Optional[str]
    ) -> AvailabilitySlot:
        return self.repository.create_slot(
            owner_user_id=owner_user_id,
            slot_date=data.slot_date,
            start_time=data.start_time,
            end_time=data.end_time,
            timezone=data.timezone,
            date_type=data.date_type,
            status=SlotStatus.ACTIVE.value,
            is_recurring=data.is_recurring,
            recurrence_type=data.recurrence_type,
            recurrence_end_date=data.recurrence_end_date,
            parent_slot_id=parent_slot_id,
            buffer_time_minutes=(
                data.buffer_time_minutes
                if data.buffer_time_minutes is not None
                else self.settings.slot_default_buffer_minutes
            ),
            preparation_time_minutes=(
                data.preparation_time_minutes
                if data.preparation_time_minutes is not None
                else self.settings.slot_default_preparation_minutes
            ),
            cancellation_policy=data.cancellation_policy,
            title=data.title,
            notes=data.notes,
            location_preference=data.location_preference,
        )

    @staticmethod
    def _overlap_from(
        exc: RepositoryException, slot_date: date, start_time: time, end_time: time
    ) -> Exception:
        """Storage-level overlap rejection as the domain conflict; anything else unchanged."""
        if exc.constraint != SLOT_NO_OVERLAP_CONSTRAINT:
            return exc
        new_range = f"{start_time.strftime('%H:%M')}-{end_time.strftime('%H:%M')}"
        return AvailabilityOverlapException(
            specific_date=slot_date.isoformat(),
            new_range=new_range,
            conflicting_range="an existing slot",
        )

    @BaseService.measure_operation("update_slot")
    def update_slot(self, slot_id: str, owner_user_id: str, patch: SlotUpdate) -> AvailabilitySlot:
        """
        Apply a partial update.

        Only fields present in the patch are validated and written. While
        the slot has an active booking only title, notes and location may
        change.

        Raises:
            NotFoundException: Unknown slot or not owned by caller
            BusinessRuleException: Slot is not active
            SlotLockedException: Restricted field on a booked slot
            ValidationException: New times or date break a rule
            AvailabilityOverlapException: New range overlaps another slot
        """
        changes = patch.changes()

        with self.transaction():
            slot = self._get_owned_slot(slot_id, owner_user_id)
            if not changes:
                return slot

            if not slot.is_active:
                raise BusinessRuleException(
                    f"Only active slots can be updated (status is {slot.status})",
                    code="SLOT_NOT_ACTIVE",
                )

            self.repository.lock_owner_schedule(owner_user_id)
            if self.has_active_booking(slot_id):
                locked = set(changes) - BOOKED_EDITABLE_FIELDS
                if locked:
                    raise SlotLockedException(slot_id, sorted(locked))

            if _SCHEDULE_FIELDS & set(changes):
                new_date = changes.get("slot_date", slot.slot_date)
                new_start = changes.get("start_time", slot.start_time)
                new_end = changes.get("end_time", slot.end_time)
                new_tz = changes.get("timezone", slot.timezone)
                self._ensure_valid_shape(new_date, new_start, new_end, new_tz)
                self._ensure_no_conflicts(
                    owner_user_id, new_date, new_start, new_end, exclude_slot_id=slot_id
                )

            before = slot.to_dict()
            try:
                updated = cast(AvailabilitySlot, self.repository.update_slot(slot_id, **changes))
            except RepositoryException as exc:
                raise self._overlap_from(
                    exc,
                    changes.get("slot_date", slot.slot_date),
                    changes.get("start_time", slot.start_time),
                    changes.get("end_time", slot.end_time),
                )
            after = updated.to_dict()
            self.audit_repository.record(
                entity_type="slot",
                entity_id=slot_id,
                slot_id=slot_id,
                actor_user_id=owner_user_id,
                action="updated",
                changed_fields=sorted(changes),
                old_values={k: before.get(k) for k in changes},
                new_values={k: after.get(k) for k in changes},
            )

        self.logger.info(f"Updated slot {slot_id}: {', '.join(sorted(changes))}")
        return updated

    @BaseService.measure_operation("cancel_slot")
    def cancel_slot(
        self, slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> AvailabilitySlot:
        """
        Cancel a slot.

        Any active booking is cancelled first through the booking lifecycle,
        including its cancellation-window check, so a slot can never end up
        cancelled under a live booking. Cancelling an already cancelled slot
        returns it unchanged.

        Raises:
            NotFoundException: Unknown slot or not owned by caller
            BusinessRuleException: Slot completed, or booking window elapsed
        """
        with self.transaction():
            slot = self._get_owned_slot(slot_id, owner_user_id)
            if slot.status == SlotStatus.CANCELLED.value:
                self.logger.info(f"Slot {slot_id} already cancelled")
                return slot
            if not slot.is_active:
                raise BusinessRuleException(
                    f"Only active slots can be cancelled (status is {slot.status})",
                    code="SLOT_NOT_ACTIVE",
                )

            self.repository.lock_owner_schedule(owner_user_id)
            self.booking_service.cancel_active_booking_for_slot(
                slot, actor_user_id=owner_user_id, reason=reason or "Slot cancelled by owner"
            )

            self.repository.set_status(
                slot, SlotStatus.CANCELLED.value, reason=reason, at=self.now()
            )
            self.audit_repository.record(
                entity_type="slot",
                entity_id=slot_id,
                slot_id=slot_id,
                actor_user_id=owner_user_id,
                action="cancelled",
                old_values={"status": SlotStatus.ACTIVE.value},
                new_values={"status": SlotStatus.CANCELLED.value},
                reason=reason,
            )

        self.logger.info(f"Cancelled slot {slot_id} for {owner_user_id}")
        return slot

    @BaseService.measure_operation("soft_delete_slot")
    def soft_delete_slot(
        self, slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> AvailabilitySlot:
        """
        Mark a slot deleted; it disappears from every later query.

        Raises:
            NotFoundException: Unknown slot or not owned by caller
            BusinessRuleException: Slot has an active booking
        """
        with self.transaction():
            slot = self._get_owned_slot(slot_id, owner_user_id)
            if self.has_active_booking(slot_id):
                raise BusinessRuleException(
                    "Cannot delete a slot with an active booking; cancel it instead",
                    code="SLOT_HAS_ACTIVE_BOOKING",
                    details={"slot_id": slot_id},
                )

            previous_status = slot.status
            self.repository.set_status(slot, SlotStatus.DELETED.value, reason=reason, at=self.now())
            self.audit_repository.record(
                entity_type="slot",
                entity_id=slot_id,
                slot_id=slot_id,
                actor_user_id=owner_user_id,
                action="deleted",
                old_values={"status": previous_status},
                new_values={"status": SlotStatus.DELETED.value},
                reason=reason,
            )

        self.logger.info(f"Soft-deleted slot {slot_id} for {owner_user_id}")
        return slot

    def mark_recurring(self, slot: AvailabilitySlot, end_date: date) -> AvailabilitySlot:
        """Flag a slot as the base of a weekly recurrence group."""
        with self.transaction():
            self.repository.update_slot(
                slot.id,
                is_recurring=True,
                recurrence_type=RecurrenceType.WEEKLY.value,
                recurrence_end_date=end_date,
            )
        return slot

    # Reads

    def get_slot(self, slot_id: str, owner_user_id: str) -> AvailabilitySlot:
        return self._get_owned_slot(slot_id, owner_user_id)

    def list_slots(
        self, owner_user_id: str, filters: SlotListFilters
    ) -> Tuple[List[AvailabilitySlot], int]:
        return self.repository.list_owner_slots(
            owner_user_id,
            start_date=filters.start_date,
            end_date=filters.end_date,
            statuses=filters.statuses,
            date_type=filters.date_type,
            offset=filters.offset,
            limit=filters.limit,
        )

    def has_active_booking(self, slot_id: str) -> bool:
        return self.booking_repository.find_active_booking_for_slot(slot_id) is not None

    def _get_owned_slot(self, slot_id: str, owner_user_id: str) -> AvailabilitySlot:
        slot = self.repository.get_slot_for_owner(slot_id, owner_user_id)
        if not slot:
            raise NotFoundException(
                "Availability slot not found", code="SLOT_NOT_FOUND", details={"slot_id": slot_id}
            )
        return slot

    # Response shaping

    def build_responses(self, slots: Sequence[AvailabilitySlot]) -> List[SlotResponse]:
        """SlotResponse for each slot, with booking helper fields, in two queries."""
        slot_ids = [cast(str, s.id) for s in slots]
        active = self.booking_repository.get_active_bookings_for_slots(slot_ids)
        counts = self.booking_repository.count_bookings_for_slots(slot_ids)
        return [self._to_response(s, active.get(s.id), counts.get(s.id, 0)) for s in slots]

    def build_response(self, slot: AvailabilitySlot) -> SlotResponse:
        return self.build_responses([slot])[0]

    def _to_response(
        self,
        slot: AvailabilitySlot,
        active_booking: Optional[AvailabilityBooking],
        booking_count: int,
    ) -> SlotResponse:
        is_booked = active_booking is not None
        flags = self._action_flags(slot, is_booked)
        response = SlotResponse.model_validate(slot)
        return response.model_copy(
            update={
                "duration_minutes": slot.duration_minutes,
                "is_booked": is_booked,
                "active_booking": (
                    BookingSummary.model_validate(active_booking) if active_booking else None
                ),
                "booking_count": booking_count,
                **flags,
            }
        )

    def _action_flags(self, slot: AvailabilitySlot, is_booked: bool) -> Dict[str, bool]:
        if not slot.is_active:
            return {"can_cancel": False, "can_modify": False}

        start_utc = local_to_utc(slot.slot_date, slot.start_time, slot.timezone)
        hours_until = hours_between(self.now(), start_utc)

        can_cancel = hours_until > 0
        if is_booked:
            can_cancel = hours_until > self.settings.cancellation_hours_for(
                cast(str, slot.cancellation_policy)
            )

        notice = MODIFY_NOTICE_HOURS_BOOKED if is_booked else MODIFY_NOTICE_HOURS
        return {"can_cancel": can_cancel, "can_modify": hours_until > notice}
