# backend/dateplanner/core/exceptions.py
"""
Domain-specific exceptions for the date scheduling core.

These exceptions provide clear, business-focused error messages
that can be caught and translated by whatever transport layer
sits in front of the core. No HTTP concepts live here.
"""

from typing import Any, Dict, Optional


class DomainException(Exception):
    """Base exception for all domain-specific errors."""

    def __init__(
        self,
        message: str,
        code: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.message = message
        self.code = code or self.__class__.__name__
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self) -> Dict[str, Any]:
        """Serializable representation for the calling layer."""
        return {
            "message": self.message,
            "code": self.code,
            "details": self.details,
        }


class ValidationException(DomainException):
    """Raised when caller input is malformed or violates shape rules."""


class NotFoundException(DomainException):
    """Raised when a resource is unknown or not visible to the caller."""


class ConflictException(DomainException):
    """Raised when there's a conflict with existing data."""


class BusinessRuleException(DomainException):
    """Raised when a business rule or lifecycle rule is violated."""


class ServiceException(DomainException):
    """Raised when infrastructure fails; callers should retry the whole request."""


class RepositoryException(ServiceException):
    """
    Exception raised for repository layer errors.

    This exception is used when data access operations fail,
    such as database connection issues, query failures, or
    constraint violations.
    """

    def __init__(
        self,
        message: str,
        *,
        constraint: Optional[str] = None,
        details: Optional[Dict[str, Any]] = None,
    ) -> None:
        self.constraint = constraint
        super().__init__(message=message, code="REPOSITORY_ERROR", details=details)


# Specific business exceptions


class AvailabilityOverlapException(ConflictException):
    """Raised when an availability slot overlaps with an existing slot."""

    def __init__(
        self,
        specific_date: str,
        new_range: str,
        conflicting_range: str,
        conflicts: Optional[list] = None,
    ):
        super().__init__(
            message=(
                f"Overlapping slot on {specific_date}: {new_range} conflicts with {conflicting_range}"
            ),
            code="AVAILABILITY_OVERLAP",
            details={
                "date": specific_date,
                "new_slot": new_range,
                "conflicting_slot": conflicting_range,
                "conflicts": conflicts or [],
            },
        )


class ActiveBookingExistsException(BusinessRuleException):
    """Raised when a slot already has a pending or confirmed booking."""

    def __init__(self, slot_id: str, message: Optional[str] = None):
        super().__init__(
            message=message or "This slot already has an active booking",
            code="ACTIVE_BOOKING_EXISTS",
            details={"slot_id": slot_id},
        )


class CancellationWindowElapsedException(BusinessRuleException):
    """Raised when a booking is cancelled after its policy deadline."""

    def __init__(self, policy: str, required_hours: int, hours_until_start: float):
        super().__init__(
            message=(
                f"Cancellation window elapsed: the '{policy}' policy requires cancelling "
                f"at least {required_hours} hours before the date starts"
            ),
            code="CANCELLATION_WINDOW_ELAPSED",
            details={
                "cancellation_policy": policy,
                "required_hours": required_hours,
                "hours_until_start": round(hours_until_start, 2),
            },
        )


class InvalidBookingTransitionException(BusinessRuleException):
    """Raised when a booking status change is not allowed by the state machine."""

    def __init__(self, booking_id: str, current_status: str, target_status: str):
        super().__init__(
            message=f"Booking cannot move from {current_status} to {target_status}",
            code="INVALID_BOOKING_TRANSITION",
            details={
                "booking_id": booking_id,
                "current_status": current_status,
                "target_status": target_status,
            },
        )


class SlotLockedException(BusinessRuleException):
    """Raised when a booked slot is edited outside the allowed fields."""

    def __init__(self, slot_id: str, locked_fields: list):
        super().__init__(
            message=(
                "Slot has an active booking; only title, notes and location can change "
                f"(attempted: {', '.join(sorted(locked_fields))})"
            ),
            code="SLOT_LOCKED",
            details={"slot_id": slot_id, "locked_fields": sorted(locked_fields)},
        )
