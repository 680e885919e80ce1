# backend/dateplanner/schemas/availability.py
"""
Availability slot schemas.

Requests use StrictModel so unknown fields and malformed values are
rejected at the boundary; responses use StandardizedModel.
"""

from datetime import date, datetime, time
from typing import List, Optional

from pydantic import ConfigDict, Field, field_validator, model_validator

from ..core.timezone_utils import is_valid_timezone
from ..models.availability import CancellationPolicy, DateType, RecurrenceType, SlotStatus
from .base import PageInfo, PageParams, StandardizedModel, StrictModel

# Fields that must never be nulled out through a patch
_NON_NULLABLE_PATCH_FIELDS = (
    "slot_date",
    "start_time",
    "end_time",
    "timezone",
    "date_type",
    "cancellation_policy",
    "buffer_time_minutes",
    "preparation_time_minutes",
)


def _check_timezone(v: Optional[str]) -> Optional[str]:
    if v is not None and not is_valid_timezone(v):
        raise ValueError(f"Unknown timezone: {v}")
    return v


class SlotCreate(StrictModel):
    """Schema for creating a new availability slot."""

    slot_date: date
    start_time: time
    end_time: time
    timezone: str = "UTC"
    date_type: DateType = DateType.OFFLINE
    cancellation_policy: CancellationPolicy = CancellationPolicy.HOURS_24
    buffer_time_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    preparation_time_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    title: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)
    location_preference: Optional[str] = Field(default=None, max_length=1000)
    is_recurring: bool = False
    recurrence_type: RecurrenceType = RecurrenceType.NONE
    recurrence_end_date: Optional[date] = None

    normalize_timezone = field_validator("timezone")(_check_timezone)

    @field_validator("end_time")
    @classmethod
    def validate_time_order(cls, v, info):
        """Ensure end time is after start time."""
        if info.data.get("start_time") and v <= info.data["start_time"]:
            raise ValueError("End time must be after start time")
        return v

    @model_validator(mode="after")
    def validate_recurrence(self) -> "SlotCreate":
        if self.recurrence_end_date is not None and self.recurrence_end_date <= self.slot_date:
            raise ValueError("Recurrence end date must be after the slot date")
        return self


class SlotUpdate(StrictModel):
    """
    Partial update for a slot.

    Only fields explicitly present in the payload are applied; see
    model_fields_set.
    """

    slot_date: Optional[date] = None
    start_time: Optional[time] = None
    end_time: Optional[time] = None
    timezone: Optional[str] = None
    date_type: Optional[DateType] = None
    cancellation_policy: Optional[CancellationPolicy] = None
    buffer_time_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    preparation_time_minutes: Optional[int] = Field(default=None, ge=0, le=240)
    title: Optional[str] = Field(default=None, max_length=255)
    notes: Optional[str] = Field(default=None, max_length=2000)
    location_preference: Optional[str] = Field(default=None, max_length=1000)

    normalize_timezone = field_validator("timezone")(_check_timezone)

    @model_validator(mode="after")
    def validate_patch(self) -> "SlotUpdate":
        nulled = [
            name
            for name in _NON_NULLABLE_PATCH_FIELDS
            if name in self.model_fields_set and getattr(self, name) is None
        ]
        if nulled:
            raise ValueError(f"Fields cannot be null: {', '.join(nulled)}")
        if self.start_time and self.end_time and self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self

    def changes(self) -> dict:
        """Only the fields the caller actually sent."""
        return self.model_dump(exclude_unset=True)


class SlotListFilters(PageParams):
    start_date: Optional[date] = None
    end_date: Optional[date] = None
    statuses: Optional[List[SlotStatus]] = None
    date_type: Optional[DateType] = None


class TimeRange(StandardizedModel):
    start_time: time
    end_time: time


class SlotConflict(StandardizedModel):
    """One existing slot that overlaps a requested range."""

    conflicting_slot_id: str
    conflict_type: str = "overlap"
    conflict_description: str
    start_time: time
    end_time: time
    suggested_alternatives: List[TimeRange] = Field(default_factory=list)


class RuleViolation(StandardizedModel):
    rule: str
    description: str
    severity: str = "error"


class SlotValidationResult(StandardizedModel):
    is_valid: bool
    conflicts: List[SlotConflict] = Field(default_factory=list)
    violations: List[RuleViolation] = Field(default_factory=list)
    warnings: List[str] = Field(default_factory=list)


class BookingSummary(StandardizedModel):
    """Active booking attached to a slot response."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    booker_user_id: str
    status: str
    selected_activity: Optional[str] = None
    confirmed_at: Optional[datetime] = None


class SlotResponse(StandardizedModel):
    """Slot as returned to callers, with booking helper fields."""

    model_config = ConfigDict(from_attributes=True, use_enum_values=True)

    id: str
    owner_user_id: str
    slot_date: date
    start_time: time
    end_time: time
    timezone: str
    date_type: DateType
    status: SlotStatus
    is_recurring: bool
    recurrence_type: RecurrenceType
    recurrence_end_date: Optional[date] = None
    parent_slot_id: Optional[str] = None
    buffer_time_minutes: int
    preparation_time_minutes: int
    cancellation_policy: CancellationPolicy
    title: Optional[str] = None
    notes: Optional[str] = None
    location_preference: Optional[str] = None
    status_reason: Optional[str] = None
    created_at: Optional[datetime] = None
    updated_at: Optional[datetime] = None

    # Helper fields, filled in by the orchestrator
    duration_minutes: int = 0
    is_booked: bool = False
    active_booking: Optional[BookingSummary] = None
    booking_count: int = 0
    can_cancel: bool = False
    can_modify: bool = False


class SlotListResponse(StandardizedModel):
    items: List[SlotResponse]
    pagination: PageInfo


class RecurringGenerationOptions(StrictModel):
    skip_weekends: bool = False
    skip_conflicts: bool = False
    custom_skip_dates: List[date] = Field(default_factory=list)


class SlotCreationResult(StandardizedModel):
    """Outcome of one recurring-generation attempt."""

    candidate_date: date
    success: bool
    skipped: bool = False
    slot: Optional[SlotResponse] = None
    error: Optional[str] = None
    error_code: Optional[str] = None
    conflicts: List[SlotConflict] = Field(default_factory=list)


class RecurringGenerationSummary(StandardizedModel):
    total_attempted: int
    created: int
    failed: int
    skipped: int


class RecurringGenerationResult(StandardizedModel):
    base_slot_id: str
    end_date: date
    results: List[SlotCreationResult]
    summary: RecurringGenerationSummary


class BulkSlotCreate(StrictModel):
    slots: List[SlotCreate] = Field(min_length=1, max_length=100)
    skip_conflicts: bool = True


class BulkSkippedSlot(StandardizedModel):
    index: int
    slot: SlotCreate
    reason: str
    code: Optional[str] = None


class BulkCreateSummary(StandardizedModel):
    total_requested: int
    created: int
    skipped: int
    errors: int


class BulkCreateResult(StandardizedModel):
    created: List[SlotResponse]
    skipped: List[BulkSkippedSlot]
    summary: BulkCreateSummary


class SearchAvailableRequest(StrictModel):
    """Filters for finding other users' open slots."""

    date_from: date
    date_to: Optional[date] = None
    earliest_start: Optional[time] = None
    latest_end: Optional[time] = None
    date_type: Optional[DateType] = None
    page: int = Field(default=1, ge=1)
    limit: Optional[int] = Field(default=None, ge=1)

    @model_validator(mode="after")
    def validate_window(self) -> "SearchAvailableRequest":
        if self.date_to is not None and self.date_to < self.date_from:
            raise ValueError("date_to must not be before date_from")
        if self.earliest_start and self.latest_end and self.latest_end <= self.earliest_start:
            raise ValueError("latest_end must be after earliest_start")
        return self


class AvailableUserMatch(StandardizedModel):
    user_id: str
    slots: List[SlotResponse]
    score: Optional[float] = None


class SearchAvailableResponse(StandardizedModel):
    matches: List[AvailableUserMatch]
    pagination: PageInfo
    total_slots: int


class ConflictCheckRequest(StrictModel):
    """Pre-submission conflict probe."""

    slot_date: date
    start_time: time
    end_time: time
    exclude_slot_id: Optional[str] = None

    @model_validator(mode="after")
    def validate_range(self) -> "ConflictCheckRequest":
        if self.end_time <= self.start_time:
            raise ValueError("End time must be after start time")
        return self
