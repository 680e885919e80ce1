# backend/dateplanner/services/scheduling_orchestrator.py
"""
Scheduling Orchestrator for the scheduling core.

The public surface of the package. Wires one set of repositories and
services around a Session and exposes the slot, recurrence, booking,
search and statistics use cases.

Inputs may be schema instances or plain mappings; mappings are coerced
here and pydantic errors come back as ValidationException. Outputs are
response schemas, never ORM rows. Domain exceptions raised below pass
through unchanged.
"""

from collections import OrderedDict
from datetime import date, time, timedelta
import logging
from typing import Any, Dict, List, Mapping, Optional, Type, TypeVar, Union

from pydantic import BaseModel, ValidationError
from sqlalchemy.orm import Session

from ..core.config import Settings
from ..core.exceptions import ConflictException, ValidationException
from ..core.timezone_utils import Clock, local_to_utc, today_in_timezone
from ..repositories import RepositoryFactory
from ..repositories.booking_repository import BookingWithSlot
from ..schemas.availability import (
    AvailableUserMatch,
    BulkCreateResult,
    BulkCreateSummary,
    BulkSkippedSlot,
    BulkSlotCreate,
    ConflictCheckRequest,
    RecurringGenerationOptions,
    RecurringGenerationResult,
    SearchAvailableRequest,
    SearchAvailableResponse,
    SlotConflict,
    SlotCreate,
    SlotListFilters,
    SlotListResponse,
    SlotResponse,
    SlotUpdate,
    SlotValidationResult,
)
from ..schemas.base import PageInfo
from ..schemas.booking import (
    BookedSlotInfo,
    BookingCreate,
    BookingListFilters,
    BookingListResponse,
    BookingListSummary,
    BookingResponse,
    BookingUpdate,
)
from ..schemas.stats import AvailabilityStats, CalendarView
from .availability_stats_service import AvailabilityStatsService
from .base import BaseService
from .booking_service import BookingService
from .conflict_checker import ConflictChecker
from .notification_service import BookingNotifier
from .ranking import AvailabilityRanker, EarliestAvailabilityRanker
from .recurring_slot_generator import RecurringSlotGenerator
from .slot_manager import SlotManager

logger = logging.getLogger(__name__)

M = TypeVar("M", bound=BaseModel)

# Search window when the caller gives no date_to
DEFAULT_SEARCH_DAYS = 7


def coerce(model: Type[M], data: Union[M, Mapping[str, Any], None]) -> M:
    """Validate caller input into a schema, raising ValidationException on bad shape."""
    if isinstance(data, model):
        return data
    try:
        return model.model_validate(data or {})
    except ValidationError as exc:
        errors = [
            {"loc": [str(part) for part in err["loc"]], "msg": err["msg"], "type": err["type"]}
            for err in exc.errors()
        ]
        first = errors[0] if errors else {"msg": "Invalid input", "loc": []}
        where = ".".join(first["loc"])
        raise ValidationException(
            f"{where}: {first['msg']}" if where else first["msg"],
            code="INVALID_INPUT",
            details={"errors": errors},
        ) from exc


class SchedulingOrchestrator(BaseService):
    """
    Façade over slot management, recurrence, bookings and search.

    Usage:
        orchestrator = SchedulingOrchestrator(db, settings=settings)
        slot = orchestrator.create_slot(owner_id, {"slot_date": "2025-03-01", ...})
    """

    def __init__(
        self,
        db: Session,
        settings: Optional[Settings] = None,
        clock: Optional[Clock] = None,
        notifier: Optional[BookingNotifier] = None,
        ranker: Optional[AvailabilityRanker] = None,
    ):
        super().__init__(db, settings=settings, clock=clock)
        self.logger = logging.getLogger(__name__)

        slot_repository = RepositoryFactory.create_availability_repository(db)
        booking_repository = RepositoryFactory.create_booking_repository(db)
        audit_repository = RepositoryFactory.create_audit_repository(db)
        shared: Dict[str, Any] = {"settings": self.settings, "clock": self.clock}

        self.slot_repository = slot_repository
        self.audit_repository = audit_repository
        self.conflict_checker = ConflictChecker(db, repository=slot_repository, **shared)
        self.booking_service = BookingService(
            db,
            notifier=notifier,
            slot_repository=slot_repository,
            booking_repository=booking_repository,
            audit_repository=audit_repository,
            **shared,
        )
        self.slot_manager = SlotManager(
            db,
            conflict_checker=self.conflict_checker,
            repository=slot_repository,
            booking_repository=booking_repository,
            audit_repository=audit_repository,
            booking_service=self.booking_service,
            **shared,
        )
        self.recurring_generator = RecurringSlotGenerator(
            db, slot_manager=self.slot_manager, **shared
        )
        self.stats_service = AvailabilityStatsService(
            db, slot_repository=slot_repository, booking_repository=booking_repository, **shared
        )
        self.ranker: AvailabilityRanker = ranker or EarliestAvailabilityRanker()

    # Slots

    def create_slot(
        self, owner_user_id: str, data: Union[SlotCreate, Mapping[str, Any]]
    ) -> SlotResponse:
        """Create one slot. Recurrence is expanded only by generate_recurring."""
        payload = coerce(SlotCreate, data)
        slot = self.slot_manager.create_slot(owner_user_id, payload)
        return self.slot_manager.build_response(slot)

    def validate_slot(
        self,
        owner_user_id: str,
        data: Union[SlotCreate, Mapping[str, Any]],
        exclude_slot_id: Optional[str] = None,
    ) -> SlotValidationResult:
        payload = coerce(SlotCreate, data)
        return self.slot_manager.validate_slot(
            owner_user_id,
            payload.slot_date,
            payload.start_time,
            payload.end_time,
            payload.timezone,
            exclude_slot_id=exclude_slot_id,
        )

    def update_slot(
        self, slot_id: str, owner_user_id: str, patch: Union[SlotUpdate, Mapping[str, Any]]
    ) -> SlotResponse:
        slot = self.slot_manager.update_slot(slot_id, owner_user_id, coerce(SlotUpdate, patch))
        return self.slot_manager.build_response(slot)

    def cancel_slot(
        self, slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> SlotResponse:
        slot = self.slot_manager.cancel_slot(slot_id, owner_user_id, reason)
        return self.slot_manager.build_response(slot)

    def delete_slot(
        self, slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> SlotResponse:
        slot = self.slot_manager.soft_delete_slot(slot_id, owner_user_id, reason)
        return self.slot_manager.build_response(slot)

    def get_slot(self, slot_id: str, owner_user_id: str) -> SlotResponse:
        return self.slot_manager.build_response(self.slot_manager.get_slot(slot_id, owner_user_id))

    def list_slots(
        self,
        owner_user_id: str,
        filters: Union[SlotListFilters, Mapping[str, Any], None] = None,
    ) -> SlotListResponse:
        params = coerce(SlotListFilters, filters)
        slots, total = self.slot_manager.list_slots(owner_user_id, params)
        return SlotListResponse(
            items=self.slot_manager.build_responses(slots),
            pagination=PageInfo.build(params.page, params.limit, total),
        )

    def check_conflicts(
        self,
        owner_user_id: str,
        check_date: Union[date, str],
        start_time: Union[time, str],
        end_time: Union[time, str],
        exclude_slot_id: Optional[str] = None,
    ) -> List[SlotConflict]:
        """Conflict probe for pre-submission validation; never writes."""
        probe = coerce(
            ConflictCheckRequest,
            {
                "slot_date": check_date,
                "start_time": start_time,
                "end_time": end_time,
                "exclude_slot_id": exclude_slot_id,
            },
        )
        return self.conflict_checker.check_slot_conflicts(
            owner_user_id, probe.slot_date, probe.start_time, probe.end_time, probe.exclude_slot_id
        )

    @BaseService.measure_operation("bulk_create_slots")
    def bulk_create(
        self, owner_user_id: str, request: Union[BulkSlotCreate, Mapping[str, Any]]
    ) -> BulkCreateResult:
        """
        Create many slots, each in its own unit of work.

        With skip_conflicts (the default) a slot that conflicts or fails
        validation is reported in skipped and the batch continues. Without
        it the first failure is raised; slots created before it remain.
        """
        bulk = coerce(BulkSlotCreate, request)
        created: List[SlotResponse] = []
        skipped: List[BulkSkippedSlot] = []
        errors = 0

        for index, slot_data in enumerate(bulk.slots):
            try:
                slot = self.slot_manager.create_slot(owner_user_id, slot_data)
            except ConflictException as exc:
                if not bulk.skip_conflicts:
                    raise
                conflicts = exc.details.get("conflicts", [])
                reason = ", ".join(c["conflict_description"] for c in conflicts) or exc.message
                skipped.append(
                    BulkSkippedSlot(index=index, slot=slot_data, reason=reason, code=exc.code)
                )
                continue
            except ValidationException as exc:
                errors += 1
                if not bulk.skip_conflicts:
                    raise
                skipped.append(
                    BulkSkippedSlot(index=index, slot=slot_data, reason=exc.message, code=exc.code)
                )
                continue
            created.append(self.slot_manager.build_response(slot))

        summary = BulkCreateSummary(
            total_requested=len(bulk.slots),
            created=len(created),
            skipped=len(skipped),
            errors=errors,
        )
        self.logger.info(
            f"Bulk create for {owner_user_id}: {summary.created}/{summary.total_requested} "
            f"created, {summary.skipped} skipped"
        )
        return BulkCreateResult(created=created, skipped=skipped, summary=summary)

    # Recurrence

    def generate_recurring(
        self,
        owner_user_id: str,
        base_slot_id: str,
        end_date: Union[date, str, None] = None,
        options: Union[RecurringGenerationOptions, Mapping[str, Any], None] = None,
    ) -> RecurringGenerationResult:
        """
        Expand base_slot_id weekly until end_date.

        end_date defaults to the base slot's recurrence_end_date.
        """
        opts = coerce(RecurringGenerationOptions, options)
        if end_date is None:
            base = self.slot_manager.get_slot(base_slot_id, owner_user_id)
            if base.recurrence_end_date is None:
                raise ValidationException(
                    "An end date is required to generate recurring slots",
                    code="RECURRENCE_END_REQUIRED",
                )
            end_date = base.recurrence_end_date
        elif isinstance(end_date, str):
            try:
                end_date = date.fromisoformat(end_date)
            except ValueError as exc:
                raise ValidationException(
                    f"Invalid end date {end_date!r}", code="INVALID_INPUT"
                ) from exc

        return self.recurring_generator.generate(owner_user_id, base_slot_id, end_date, opts)

    def cancel_recurring_group(
        self, parent_slot_id: str, owner_user_id: str, reason: Optional[str] = None
    ) -> int:
        return self.recurring_generator.cancel_recurring_group(
            parent_slot_id, owner_user_id, reason
        )

    # Bookings

    def book_slot(
        self, booker_user_id: str, data: Union[BookingCreate, Mapping[str, Any]]
    ) -> BookingResponse:
        booking = self.booking_service.create_booking(booker_user_id, coerce(BookingCreate, data))
        return self._booking_response(self.booking_service.get_booking(booking.id, booker_user_id))

    def confirm_booking(self, booking_id: str, owner_user_id: str) -> BookingResponse:
        self.booking_service.confirm_booking(booking_id, owner_user_id)
        return self.get_booking(booking_id, owner_user_id)

    def cancel_booking(
        self, booking_id: str, actor_user_id: str, reason: Optional[str] = None
    ) -> BookingResponse:
        self.booking_service.cancel_booking(booking_id, actor_user_id, reason)
        return self.get_booking(booking_id, actor_user_id)

    def complete_booking(self, booking_id: str, actor_user_id: str) -> BookingResponse:
        self.booking_service.complete_booking(booking_id, actor_user_id)
        return self.get_booking(booking_id, actor_user_id)

    def update_booking(
        self,
        booking_id: str,
        booker_user_id: str,
        patch: Union[BookingUpdate, Mapping[str, Any]],
    ) -> BookingResponse:
        self.booking_service.update_booking(booking_id, booker_user_id, coerce(BookingUpdate, patch))
        return self.get_booking(booking_id, booker_user_id)

    def get_booking(self, booking_id: str, user_id: str) -> BookingResponse:
        return self._booking_response(self.booking_service.get_booking(booking_id, user_id))

    def list_my_bookings(
        self,
        booker_user_id: str,
        filters: Union[BookingListFilters, Mapping[str, Any], None] = None,
    ) -> BookingListResponse:
        params = coerce(BookingListFilters, filters)
        rows, total, summary = self.booking_service.list_my_bookings(booker_user_id, params)
        return self._booking_list(rows, total, summary, params)

    def list_incoming_bookings(
        self,
        owner_user_id: str,
        filters: Union[BookingListFilters, Mapping[str, Any], None] = None,
    ) -> BookingListResponse:
        params = coerce(BookingListFilters, filters)
        rows, total, summary = self.booking_service.list_incoming_bookings(owner_user_id, params)
        return self._booking_list(rows, total, summary, params)

    @staticmethod
    def _booking_response(row: BookingWithSlot) -> BookingResponse:
        booking, slot = row
        response = BookingResponse.model_validate(booking)
        return response.model_copy(update={"slot": BookedSlotInfo.model_validate(slot)})

    def _booking_list(
        self,
        rows: List[BookingWithSlot],
        total: int,
        summary: Dict[str, int],
        params: BookingListFilters,
    ) -> BookingListResponse:
        return BookingListResponse(
            items=[self._booking_response(row) for row in rows],
            pagination=PageInfo.build(params.page, params.limit, total),
            summary=BookingListSummary(
                total_bookings=summary["total"],
                upcoming_bookings=summary["upcoming"],
                completed_bookings=summary["completed"],
                cancelled_bookings=summary["cancelled"],
            ),
        )

    # Search

    @BaseService.measure_operation("search_available")
    def search_available(
        self,
        requester_user_id: str,
        request: Union[SearchAvailableRequest, Mapping[str, Any]],
    ) -> SearchAvailableResponse:
        """
        Other users' open slots in a window, grouped per owner.

        Open means active, not yet started and with no pending or confirmed
        booking. Owner groups are ordered by the ranker, then paginated.
        """
        search = coerce(SearchAvailableRequest, request)
        today = today_in_timezone(self.now(), "UTC")
        date_from = max(search.date_from, today)
        date_to = search.date_to or search.date_from + timedelta(days=DEFAULT_SEARCH_DAYS)
        limit = min(search.limit or self.settings.search_default_limit, self.settings.search_max_limit)

        if date_to < date_from:
            return SearchAvailableResponse(
                matches=[], pagination=PageInfo.build(search.page, limit, 0), total_slots=0
            )

        slots = self.slot_repository.search_open_slots(
            exclude_owner_id=requester_user_id,
            date_from=date_from,
            date_to=date_to,
            earliest_start=search.earliest_start,
            latest_end=search.latest_end,
            date_type=search.date_type,
        )
        # A slot that has started can no longer be booked
        now = self.now()
        slots = [s for s in slots if local_to_utc(s.slot_date, s.start_time, s.timezone) > now]

        grouped: "OrderedDict[str, List[SlotResponse]]" = OrderedDict()
        for response in self.slot_manager.build_responses(slots):
            grouped.setdefault(response.owner_user_id, []).append(response)

        matches = self.ranker.rank(
            requester_user_id,
            [AvailableUserMatch(user_id=user_id, slots=items) for user_id, items in grouped.items()],
        )
        offset = (search.page - 1) * limit
        self.logger.debug(
            f"Search for {requester_user_id}: {len(matches)} users, {len(slots)} open slots"
        )
        return SearchAvailableResponse(
            matches=matches[offset : offset + limit],
            pagination=PageInfo.build(search.page, limit, len(matches)),
            total_slots=len(slots),
        )

    # Statistics

    def get_availability_stats(
        self, owner_user_id: str, start_date: date, end_date: date
    ) -> AvailabilityStats:
        return self.stats_service.get_availability_stats(owner_user_id, start_date, end_date)

    def get_calendar_view(self, owner_user_id: str, month: str) -> CalendarView:
        return self.stats_service.get_calendar_view(owner_user_id, month)
