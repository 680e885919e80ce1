# backend/dateplanner/repositories/audit_repository.py
"""Append-only access to availability_audit_logs."""

from datetime import date, datetime, time
from enum import Enum
import logging
from typing import Any, List, Mapping, Optional, Sequence, cast

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from ..core.exceptions import RepositoryException
from ..models.audit_log import AvailabilityAuditLog
from .base_repository import BaseRepository

logger = logging.getLogger(__name__)


def _json_safe(value: Any) -> Any:
    if isinstance(value, Enum):
        return value.value
    if isinstance(value, (date, datetime, time)):
        return value.isoformat()
    return value


class AuditRepository(BaseRepository[AvailabilityAuditLog]):
    def __init__(self, db: Session):
        super().__init__(db, AvailabilityAuditLog)

    def record(
        self,
        *,
        entity_type: str,
        entity_id: str,
        action: str,
        slot_id: Optional[str] = None,
        actor_user_id: Optional[str] = None,
        old_values: Optional[Mapping[str, Any]] = None,
        new_values: Optional[Mapping[str, Any]] = None,
        changed_fields: Optional[Sequence[str]] = None,
        reason: Optional[str] = None,
    ) -> AvailabilityAuditLog:
        old = {k: _json_safe(v) for k, v in old_values.items()} if old_values else None
        new = {k: _json_safe(v) for k, v in new_values.items()} if new_values else None
        if changed_fields is None and new is not None:
            changed_fields = sorted(new)
        return self.create(
            entity_type=entity_type,
            entity_id=entity_id,
            slot_id=slot_id,
            actor_user_id=actor_user_id,
            action=action,
            changed_fields=list(changed_fields) if changed_fields else None,
            old_values=old,
            new_values=new,
            reason=reason,
        )

    def list_for_slot(self, slot_id: str) -> List[AvailabilityAuditLog]:
        """Audit rows touching a slot or its bookings, oldest first."""
        try:
            return cast(
                List[AvailabilityAuditLog],
                self.db.query(AvailabilityAuditLog)
                .filter(AvailabilityAuditLog.slot_id == slot_id)
                .order_by(AvailabilityAuditLog.created_at, AvailabilityAuditLog.id)
                .all(),
            )
        except SQLAlchemyError as e:
            self.logger.error(f"Error reading audit log for slot {slot_id}: {str(e)}")
            raise RepositoryException(f"Failed to read audit log: {str(e)}")
