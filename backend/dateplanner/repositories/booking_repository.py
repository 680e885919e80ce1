# backend/dateplanner/repositories/booking_repository.py
"""
Booking Repository for the scheduling core.

Bookings join to slots by slot_id only. Listing methods return
(booking, slot) pairs so services never issue a query per row.
"""

from datetime import date
import logging
from typing import Dict, Iterable, List, Optional, Sequence, Tuple, cast

from sqlalchemy import func
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Query, Session

from ..core.exceptions import RepositoryException
from ..models.availability import AvailabilitySlot
from ..models.booking import (
    ACTIVE_BOOKING_STATUSES,
    ACTIVE_BOOKING_UNIQUE_INDEX,
    AvailabilityBooking,
    BookingStatus,
)
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)

BookingWithSlot = Tuple[AvailabilityBooking, AvailabilitySlot]


class BookingRepository(BaseRepository[AvailabilityBooking]):
    """Repository for booking data access."""

    # SQLite reports the failing columns, not the index name
    known_constraints = {
        ACTIVE_BOOKING_UNIQUE_INDEX: ACTIVE_BOOKING_UNIQUE_INDEX,
        "availability_bookings.slot_id": ACTIVE_BOOKING_UNIQUE_INDEX,
    }

    def __init__(self, db: Session):
        super().__init__(db, AvailabilityBooking)
        self.logger = logging.getLogger(__name__)

    def create_booking(self, **fields) -> AvailabilityBooking:
        """
        Insert a booking.

        Raises:
            RepositoryException: constraint is ACTIVE_BOOKING_UNIQUE_INDEX when
                another active booking already holds the slot
        """
        return self.create(**fields)

    def find_active_booking_for_slot(self, slot_id: str) -> Optional[AvailabilityBooking]:
        try:
            return cast(
                Optional[AvailabilityBooking],
                self.db.query(AvailabilityBooking)
                .filter(
                    AvailabilityBooking.slot_id == slot_id,
                    AvailabilityBooking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active booking for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to get active booking: {str(e)}")

    def get_active_bookings_for_slots(
        self, slot_ids: Iterable[str]
    ) -> Dict[str, AvailabilityBooking]:
        """Map of slot id to its active booking, for slots that have one."""
        ids = list(slot_ids)
        if not ids:
            return {}
        try:
            rows = (
                self.db.query(AvailabilityBooking)
                .filter(
                    AvailabilityBooking.slot_id.in_(ids),
                    AvailabilityBooking.status.in_(ACTIVE_BOOKING_STATUSES),
                )
                .all()
            )
            return {cast(str, booking.slot_id): booking for booking in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting active bookings for slots: {str(e)}")
            raise RepositoryException(f"Failed to get active bookings: {str(e)}")

    def count_bookings_for_slots(self, slot_ids: Iterable[str]) -> Dict[str, int]:
        """Total bookings ever made per slot, any status."""
        ids = list(slot_ids)
        if not ids:
            return {}
        try:
            rows = (
                self.db.query(AvailabilityBooking.slot_id, func.count(AvailabilityBooking.id))
                .filter(AvailabilityBooking.slot_id.in_(ids))
                .group_by(AvailabilityBooking.slot_id)
                .all()
            )
            return {slot_id: count for slot_id, count in rows}
        except SQLAlchemyError as e:
            self.logger.error(f"Error counting bookings for slots: {str(e)}")
            raise RepositoryException(f"Failed to count bookings: {str(e)}")

    def get_with_slot(self, booking_id: str) -> Optional[BookingWithSlot]:
        try:
            row = (
                self.db.query(AvailabilityBooking, AvailabilitySlot)
                .join(AvailabilitySlot, AvailabilitySlot.id == AvailabilityBooking.slot_id)
                .filter(AvailabilityBooking.id == booking_id)
                .first()
            )
            return cast(Optional[BookingWithSlot], tuple(row) if row else None)
        except SQLAlchemyError as e:
            self.logger.error(f"Error getting booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to get booking: {str(e)}")

    def get_for_update(self, booking_id: str) -> Optional[AvailabilityBooking]:
        try:
            return cast(
                Optional[AvailabilityBooking],
                self.db.query(AvailabilityBooking)
                .filter(AvailabilityBooking.id == booking_id)
                .with_for_update()
                .first(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error locking booking {booking_id}: {str(e)}")
            raise RepositoryException(f"Failed to lock booking: {str(e)}")

    # Listings

    def list_for_booker(
        self,
        booker_user_id: str,
        *,
        statuses: Optional[Sequence[str]] = None,
        from_date: Optional[date] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[BookingWithSlot], int]:
        """Bookings the user made, soonest slot first."""
        query = self._joined().filter(AvailabilityBooking.booker_user_id == booker_user_id)
        return self._page(query, statuses, from_date, offset, limit)

    def list_incoming(
        self,
        owner_user_id: str,
        *,
        statuses: Optional[Sequence[str]] = None,
        from_date: Optional[date] = None,
        offset: int = 0,
        limit: int = 20,
    ) -> Tuple[List[BookingWithSlot], int]:
        """Bookings other users made on owner_user_id's slots."""
        query = self._joined().filter(AvailabilitySlot.owner_user_id == owner_user_id)
        return self._page(query, statuses, from_date, offset, limit)

    def summarize(
        self,
        *,
        today: date,
        booker_user_id: Optional[str] = None,
        owner_user_id: Optional[str] = None,
    ) -> Dict[str, int]:
        """
        Counts for a booking list header.

        Returns keys total, upcoming, completed, cancelled.
        """
        try:
            query = self.db.query(
                AvailabilityBooking.status,
                AvailabilitySlot.slot_date,
            ).join(AvailabilitySlot, AvailabilitySlot.id == AvailabilityBooking.slot_id)
            if booker_user_id:
                query = query.filter(AvailabilityBooking.booker_user_id == booker_user_id)
            if owner_user_id:
                query = query.filter(AvailabilitySlot.owner_user_id == owner_user_id)

            summary = {"total": 0, "upcoming": 0, "completed": 0, "cancelled": 0}
            for status, slot_date in query.all():
                summary["total"] += 1
                if status in ACTIVE_BOOKING_STATUSES and slot_date >= today:
                    summary["upcoming"] += 1
                elif status == BookingStatus.COMPLETED.value:
                    summary["completed"] += 1
                elif status == BookingStatus.CANCELLED.value:
                    summary["cancelled"] += 1
            return summary
        except SQLAlchemyError as e:
            self.logger.error(f"Error summarizing bookings: {str(e)}")
            raise RepositoryException(f"Failed to summarize bookings: {str(e)}")

    def _joined(self) -> Query:
        return self.db.query(AvailabilityBooking, AvailabilitySlot).join(
            AvailabilitySlot, AvailabilitySlot.id == AvailabilityBooking.slot_id
        )

    def _page(
        self,
        query: Query,
        statuses: Optional[Sequence[str]],
        from_date: Optional[date],
        offset: int,
        limit: int,
    ) -> Tuple[List[BookingWithSlot], int]:
        try:
            if statuses:
                query = query.filter(AvailabilityBooking.status.in_(list(statuses)))
            if from_date:
                query = query.filter(AvailabilitySlot.slot_date >= from_date)
            total = query.count()
            rows = (
                query.order_by(
                    AvailabilitySlot.slot_date,
                    AvailabilitySlot.start_time,
                    AvailabilityBooking.created_at,
                )
                .offset(offset)
                .limit(limit)
                .all()
            )
            return [(booking, slot) for booking, slot in rows], total
        except SQLAlchemyError as e:
            self.logger.error(f"Error listing bookings: {str(e)}")
            raise RepositoryException(f"Failed to list bookings: {str(e)}")
