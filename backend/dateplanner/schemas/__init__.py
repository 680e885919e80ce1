from .availability import (
    AvailableUserMatch,
    BookingSummary,
    BulkCreateResult,
    BulkCreateSummary,
    BulkSkippedSlot,
    BulkSlotCreate,
    ConflictCheckRequest,
    RecurringGenerationOptions,
    RecurringGenerationResult,
    RecurringGenerationSummary,
    RuleViolation,
    SearchAvailableRequest,
    SearchAvailableResponse,
    SlotConflict,
    SlotCreate,
    SlotCreationResult,
    SlotListFilters,
    SlotListResponse,
    SlotResponse,
    SlotUpdate,
    SlotValidationResult,
    TimeRange,
)
from .base import PageInfo, PageParams, StandardizedModel, StrictModel
from .booking import (
    BookedSlotInfo,
    BookingCreate,
    BookingListFilters,
    BookingListResponse,
    BookingListSummary,
    BookingResponse,
    BookingUpdate,
)
from .stats import AvailabilityStats, CalendarDay, CalendarView

__all__ = [
    "AvailabilityStats",
    "AvailableUserMatch",
    "BookedSlotInfo",
    "BookingCreate",
    "BookingListFilters",
    "BookingListResponse",
    "BookingListSummary",
    "BookingResponse",
    "BookingSummary",
    "BookingUpdate",
    "BulkCreateResult",
    "BulkCreateSummary",
    "BulkSkippedSlot",
    "BulkSlotCreate",
    "CalendarDay",
    "CalendarView",
    "ConflictCheckRequest",
    "PageInfo",
    "PageParams",
    "RecurringGenerationOptions",
    "RecurringGenerationResult",
    "RecurringGenerationSummary",
    "RuleViolation",
    "SearchAvailableRequest",
    "SearchAvailableResponse",
    "SlotConflict",
    "SlotCreate",
    "SlotCreationResult",
    "SlotListFilters",
    "SlotListResponse",
    "SlotResponse",
    "SlotUpdate",
    "SlotValidationResult",
    "StandardizedModel",
    "StrictModel",
    "TimeRange",
]
