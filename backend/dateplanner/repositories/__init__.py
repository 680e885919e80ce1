# backend/dateplanner/repositories/__init__.py
"""
Repository layer for the scheduling core.

Key Components:
- BaseRepository: generic CRUD; never commits
- AvailabilityRepository: slot queries, open-slot search, owner schedule lock
- BookingRepository: booking queries joined to their slots
- AuditRepository: append-only audit rows
- RepositoryFactory: central construction point used by services

Usage:
    from dateplanner.repositories import RepositoryFactory

    repo = RepositoryFactory.create_availability_repository(db)
    slots = repo.find_active_slots_by_owner(owner_id, day)
"""

from .audit_repository import AuditRepository
from .availability_repository import AvailabilityRepository
from .base_repository import BaseRepository, IRepository
from .booking_repository import BookingRepository
from .factory import RepositoryFactory

__all__ = [
    "AuditRepository",
    "AvailabilityRepository",
    "BaseRepository",
    "BookingRepository",
    "IRepository",
    "RepositoryFactory",
]
