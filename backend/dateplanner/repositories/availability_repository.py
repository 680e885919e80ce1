# backend/dateplanner/repositories/availability_repository.py
"""
Availability Repository for the scheduling core.

Data access for availability slots: conflict candidates, owner listings,
recurrence children, open-slot search and the per-owner schedule lock.

Deleted slots are invisible to every query here except get_by_id, which
the audit and admin paths use to read historical rows.
"""

from datetime import date, datetime, time
import logging
from typing import Iterable, List, Optional, Sequence, Tuple, cast
import zlib

from sqlalchemy import and_, exists, func, text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.availability import (
    BLOCKING_SLOT_STATUSES,
    SLOT_NO_OVERLAP_CONSTRAINT,
    AvailabilitySlot,
    SlotStatus,
)
from ..models.booking import ACTIVE_BOOKING_STATUSES, AvailabilityBooking
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _owner_lock_key(owner_user_id: str) -> int:
    """Stable signed 32-bit key for pg_advisory_xact_lock."""
    return zlib.crc32(f"availability:{owner_user_id}".encode("utf-8")) - 2**31


class AvailabilityRepository(BaseRepository[AvailabilitySlot]):
    """Repository for availability slot data access."""

    known_constraints = {SLOT_NO_OVERLAP_CONSTRAINT: SLOT_NO_OVERLAP_CONSTRAINT}

    def __init__(self, db: Session):
        super().__init__(db, AvailabilitySlot)
        self.logger = logging.getLogger(__name__)

    # Locking

    def lock_owner_schedule(self, owner_user_id: str) -> None:
        """
        Serialize schedule writes for one owner until the transaction ends.

        Uses a transaction-scoped advisory lock on PostgreSQL. SQLite takes a
        database-wide write lock on the first write, so nothing is needed there.
        """
        if self.dialect_name != "postgresql":
            return
        try:
            self.db.execute(
                text("SELECT pg_advisory_xact_lock(:key)"),
                {"key": _owner_lock_key(owner_user_id)},
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking schedule for owner {owner_user_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock owner schedule: {str(e)}")

    def get_slot_for_update(self, slot_id: str) -> Optional[AvailabilitySlot]:
        """Fetch a non-deleted slot with a row lock (no-op lock on SQLite)."""
        try:
            return cast(
                Optional[AvailabilitySlot],
                self.db.query(AvailabilitySlot)
                .filter(
                    AvailabilitySlot.id == slot_id,
                    AvailabilitySlot.status != SlotStatus.DELETED.value,
                )
                .with_for_update()
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock slot: {str(e)}")

    # Lookups

    def get_slot(self, slot_id: str) -> Optional[AvailabilitySlot]:
        """Non-deleted slot by id."""
        try:
            return cast(
                Optional[AvailabilitySlot],
                self.db.query(AvailabilitySlot)
                .filter(
                    AvailabilitySlot.id == slot_id,
                    AvailabilitySlot.status != SlotStatus.DELETED.value,
                )
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to get slot: {str(e)}")

    def get_slot_for_owner(self, slot_id: str, owner_user_id: str) -> Optional[AvailabilitySlot]:
        """
        Non-deleted slot by id, only if owned by owner_user_id.

        Returning None for someone else's slot keeps existence private.
        """
        try:
            return cast(
                Optional[AvailabilitySlot],
                self.db.query(AvailabilitySlot)
                .filter(
                    AvailabilitySlot.id == slot_id,
                    AvailabilitySlot.owner_user_id == owner_user_id,
                    AvailabilitySlot.status != SlotStatus.DELETED.value,
                )
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slot {slot_id} for owner: {str(e)}")
            raise RepositoryException(f"Failed to get slot: {str(e)}")

    def find_active_slots_by_owner(
        self,
        owner_user_id: str,
        start_date: date,
        end_date: Optional[date] = None,
        statuses: Sequence[str] = BLOCKING_SLOT_STATUSES,
        exclude_slot_id: Optional[str] = None,
    ) -> List[AvailabilitySlot]:
        """
        Owner's slots in [start_date, end_date] with one of statuses.

        Defaults to the statuses that block the calendar, which is what the
        conflict checker wants.
        """
        try:
            query = self.db.query(AvailabilitySlot).filter(
                AvailabilitySlot.owner_user_id == owner_user_id,
                AvailabilitySlot.slot_date >= start_date,
                AvailabilitySlot.slot_date <= (end_date or start_date),
                AvailabilitySlot.status.in_(list(statuses)),
            )
            if exclude_slot_id:
                query = query.filter(AvailabilitySlot.id != exclude_slot_id)

            return cast(
                List[AvailabilitySlot],
                query.order_by(AvailabilitySlot.slot_date, AvailabilitySlot.start_time).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slots for owner {owner_user_id}: {str(e)}")
            raise RepositoryException(f"Failed to get owner slots: {str(e)}")

    def find_by_parent(
        self,
        parent_slot_id: str,
        statuses: Sequence[str] = (SlotStatus.ACTIVE.value,),
    ) -> List[AvailabilitySlot]:
        """Slots generated from parent_slot_id, in date order."""
        try:
            return cast(
                List[AvailabilitySlot],
                self.db.query(AvailabilitySlot)
                .filter(
                    AvailabilitySlot.parent_slot_id == parent_slot_id,
                    AvailabilitySlot.status.in_(list(statuses)),
                )
                .order_by(AvailabilitySlot.slot_date)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting children of slot {parent_slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to get recurring slots: {str(e)}")

    def list_owner_slots(
        self,
        owner_user_id: str,
        *,
        start_date: Optional[date] = None,
        end_date: Optional[date] = None,
        statuses: Optional[Iterable[str]] = None,
        date_type: Optional[str] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[AvailabilitySlot], int]:
        """Page of an owner's slots plus the total matching count."""
        try:
            query = self.db.query(AvailabilitySlot).filter(
                AvailabilitySlot.owner_user_id == owner_user_id,
                AvailabilitySlot.status != SlotStatus.DELETED.value,
            )
            if start_date:
                query = query.filter(AvailabilitySlot.slot_date >= start_date)
            if end_date:
                query = query.filter(AvailabilitySlot.slot_date <= end_date)
            if statuses:
                query = query.filter(AvailabilitySlot.status.in_(list(statuses)))
            if date_type:
                query = query.filter(AvailabilitySlot.date_type == date_type)

            total = query.count()
            items = (
                query.order_by(AvailabilitySlot.slot_date, AvailabilitySlot.start_time)
                .offset(offset)
                .limit(limit)
                .all()
            )
            return cast(List[AvailabilitySlot], items), total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing slots for owner {owner_user_id}: {str(e)}")
            raise RepositoryException(f"Failed to list slots: {str(e)}")

    def search_open_slots(
        self,
        *,
        exclude_owner_id: str,
        date_from: date,
        date_to: date,
        earliest_start: Optional[time] = None,
        latest_end: Optional[time] = None,
        date_type: Optional[str] = None,
    ) -> List[AvailabilitySlot]:
        """
        Active, unbooked slots of other users inside a date and time window.

        Ordered by owner, then date and start time, so callers can group
        per owner without re-sorting.
        """
        active_booking = exists().where(
            and_(
                AvailabilityBooking.slot_id == AvailabilitySlot.id,
                AvailabilityBooking.status.in_(ACTIVE_BOOKING_STATUSES),
            )
        )
        try:
            query = self.db.query(AvailabilitySlot).filter(
                AvailabilitySlot.status == SlotStatus.ACTIVE.value,
                AvailabilitySlot.owner_user_id != exclude_owner_id,
                AvailabilitySlot.slot_date >= date_from,
                AvailabilitySlot.slot_date <= date_to,
                ~active_booking,
            )
            if earliest_start:
                query = query.filter(AvailabilitySlot.start_time >= earliest_start)
            if latest_end:
                query = query.filter(AvailabilitySlot.end_time <= latest_end)
            if date_type:
                query = query.filter(AvailabilitySlot.date_type == date_type)

            return cast(
                List[AvailabilitySlot],
                query.order_by(
                    AvailabilitySlot.owner_user_id,
                    AvailabilitySlot.slot_date,
                    AvailabilitySlot.start_time,
                ).all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error searching open slots: {str(e)}")
            raise RepositoryException(f"Failed to search slots: {str(e)}")

    def get_slots_in_range(
        self, owner_user_id: str, start_date: date, end_date: date
    ) -> List[AvailabilitySlot]:
        """All non-deleted slots in a range, for statistics."""
        try:
            return cast(
                List[AvailabilitySlot],
                self.db.query(AvailabilitySlot)
                .filter(
                    AvailabilitySlot.owner_user_id == owner_user_id,
                    AvailabilitySlot.slot_date >= start_date,
                    AvailabilitySlot.slot_date <= end_date,
                    AvailabilitySlot.status != SlotStatus.DELETED.value,
                )
                .order_by(AvailabilitySlot.slot_date, AvailabilitySlot.start_time)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting slots in range: {str(e)}")
            raise RepositoryException(f"Failed to get slots: {str(e)}")

    def count_slots_by_status(self, owner_user_id: Optional[str] = None) -> dict[str, int]:
        """Slot counts grouped by status, all statuses present."""
        try:
            query = self.db.query(
                AvailabilitySlot.status, func.count(AvailabilitySlot.id).label("count")
            )
            if owner_user_id:
                query = query.filter(AvailabilitySlot.owner_user_id == owner_user_id)
            counts = {status.value: 0 for status in SlotStatus}
            for row in query.group_by(AvailabilitySlot.status).all():
                counts[row.status] = row.count
            return counts
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting slots by status: {str(e)}")
            raise RepositoryException(f"Failed to count slots: {str(e)}")

    # Writes

    def create_slot(self, **fields) -> AvailabilitySlot:
        return self.create(**fields)

    def update_slot(self, slot_id: str, **fields) -> Optional[AvailabilitySlot]:
        return self.update(slot_id, **fields)

    def set_status(
        self,
        slot: AvailabilitySlot,
        status: str,
        *,
        reason: Optional[str] = None,
        at: Optional[datetime] = None,
    ) -> AvailabilitySlot:
        """Move a slot to status, stamping cancelled_at or deleted_at."""
        try:
            slot.status = status
            if reason is not None:
                slot.status_reason = reason
            if status == SlotStatus.CANCELLED.value:
                slot.cancelled_at = at
            elif status == SlotStatus.DELETED.value:
                slot.deleted_at = at
            self.db.flush()
            return slot
        except SQLAlchemyError as e:
            self.logger.error(f"Error setting status of slot {slot.id}: {str(e)}")
            raise RepositoryException(f"Failed to update slot status: {str(e)}")
