"""Append-only audit trail for slot and booking transitions."""

from sqlalchemy import JSON, Column, DateTime, Index, String, Text
from sqlalchemy.sql import func

from ..core.ulid_helper import generate_ulid
from ..database import Base


class AvailabilityAuditLog(Base):
    """One row per slot or booking state change."""

    __tablename__ = "availability_audit_logs"

    id = Column(String(26), primary_key=True, default=generate_ulid)
    entity_type = Column(String(20), nullable=False)  # "slot" | "booking"
    entity_id = Column(String(26), nullable=False)
    slot_id = Column(String(26), nullable=True)
    actor_user_id = Column(String(26), nullable=True)
    action = Column(String(50), nullable=False)
    changed_fields = Column(JSON, nullable=True)
    old_values = Column(JSON, nullable=True)
    new_values = Column(JSON, nullable=True)
    reason = Column(Text, nullable=True)
    created_at = Column(DateTime(timezone=True), server_default=func.now(), nullable=False)

    __table_args__ = (
        Index("ix_availability_audit_entity", "entity_type", "entity_id"),
        Index("ix_availability_audit_slot", "slot_id"),
    )

    def __repr__(self) -> str:
        return f"<AvailabilityAuditLog {self.action} {self.entity_type}={self.entity_id}>"
