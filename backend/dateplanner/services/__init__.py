# backend/dateplanner/services/__init__.py
"""
Service layer for the scheduling core.

Services own business rules and transactions; repositories only touch
the database. Callers normally go through SchedulingOrchestrator, which
wires the rest together around one Session.
"""

from .availability_stats_service import AvailabilityStatsService
from .base import BaseService
from .booking_service import BookingService
from .conflict_checker import ConflictChecker, find_conflicts, ranges_overlap
from .notification_service import BookingNotifier, EventPublishingNotifier, NullNotifier
from .ranking import AvailabilityRanker, EarliestAvailabilityRanker
from .recurring_slot_generator import RecurringSlotGenerator
from .scheduling_orchestrator import SchedulingOrchestrator
from .slot_manager import SlotManager

__all__ = [
    "AvailabilityRanker",
    "AvailabilityStatsService",
    "BaseService",
    "BookingNotifier",
    "BookingService",
    "ConflictChecker",
    "EarliestAvailabilityRanker",
    "EventPublishingNotifier",
    "NullNotifier",
    "RecurringSlotGenerator",
    "SchedulingOrchestrator",
    "SlotManager",
    "find_conflicts",
    "ranges_overlap",
]
