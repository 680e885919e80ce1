# backend/alembic/versions/001_availability_scheduling.py
"""Availability slots, bookings and audit log

Revision ID: 001_availability_scheduling
Revises:
Create Date: 2025-02-10 00:00:00.000000
"""
from typing import Sequence, Union

from alembic import op
import sqlalchemy as sa

# revision identifiers, used by Alembic.
revision: str = "001_availability_scheduling"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

ACTIVE_BOOKING_PREDICATE = "status IN ('pending', 'confirmed')"


def _is_postgres() -> bool:
    bind = op.get_bind()
    return bind is not None and bind.dialect.name == "postgresql"


def upgrade() -> None:
    """Create availability scheduling tables."""
    print("Creating availability_slots table...")
    op.create_table(
        "availability_slots",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("owner_user_id", sa.String(26), nullable=False),
        sa.Column("slot_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column("timezone", sa.String(50), nullable=False, server_default="UTC"),
        sa.Column("date_type", sa.String(20), nullable=False, server_default="offline"),
        sa.Column("status", sa.String(20), nullable=False, server_default="active"),
        sa.Column("is_recurring", sa.Boolean(), nullable=False, server_default=sa.false()),
        sa.Column("recurrence_type", sa.String(20), nullable=False, server_default="none"),
        sa.Column("recurrence_end_date", sa.Date(), nullable=True),
        sa.Column("parent_slot_id", sa.String(26), nullable=True),
        sa.Column("buffer_time_minutes", sa.Integer(), nullable=False, server_default="30"),
        sa.Column("preparation_time_minutes", sa.Integer(), nullable=False, server_default="15"),
        sa.Column(
            "cancellation_policy", sa.String(20), nullable=False, server_default="24_hours"
        ),
        sa.Column("title", sa.String(255), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("location_preference", sa.Text(), nullable=True),
        sa.Column("status_reason", sa.String(500), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("deleted_at", sa.DateTime(timezone=True), nullable=True),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["parent_slot_id"], ["availability_slots.id"], ondelete="SET NULL"
        ),
        sa.CheckConstraint(
            "status IN ('active', 'cancelled', 'completed', 'deleted')",
            name="ck_availability_slots_status",
        ),
        sa.CheckConstraint(
            "date_type IN ('online', 'offline')", name="ck_availability_slots_date_type"
        ),
        sa.CheckConstraint(
            "recurrence_type IN ('none', 'weekly', 'custom')",
            name="ck_availability_slots_recurrence_type",
        ),
        sa.CheckConstraint(
            "cancellation_policy IN ('flexible', '24_hours', '48_hours', 'strict')",
            name="ck_availability_slots_cancellation_policy",
        ),
        sa.CheckConstraint("start_time < end_time", name="ck_availability_slots_time_order"),
        sa.CheckConstraint("buffer_time_minutes >= 0", name="ck_availability_slots_buffer"),
        sa.CheckConstraint(
            "preparation_time_minutes >= 0", name="ck_availability_slots_preparation"
        ),
    )
    op.create_index("ix_availability_slots_owner_user_id", "availability_slots", ["owner_user_id"])
    op.create_index("ix_availability_slots_status", "availability_slots", ["status"])
    op.create_index(
        "ix_availability_slots_parent_slot_id", "availability_slots", ["parent_slot_id"]
    )
    op.create_index(
        "ix_availability_slots_owner_date_status",
        "availability_slots",
        ["owner_user_id", "slot_date", "status"],
    )
    op.create_index(
        "ix_availability_slots_date_status", "availability_slots", ["slot_date", "status"]
    )

    if _is_postgres():
        op.execute("CREATE EXTENSION IF NOT EXISTS btree_gist")
        op.execute(
            """
            ALTER TABLE availability_slots
              ADD CONSTRAINT availability_slots_no_overlap_per_owner
              EXCLUDE USING gist (
                owner_user_id WITH =,
                tsrange(
                  (slot_date::timestamp + start_time),
                  (slot_date::timestamp + end_time),
                  '[)'
                ) WITH &&
              )
              WHERE (status IN ('active', 'completed'))
            """
        )

    print("Creating availability_bookings table...")
    op.create_table(
        "availability_bookings",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("slot_id", sa.String(26), nullable=False),
        sa.Column("booker_user_id", sa.String(26), nullable=False),
        sa.Column("status", sa.String(20), nullable=False, server_default="pending"),
        sa.Column("selected_activity", sa.String(20), nullable=True),
        sa.Column("booking_notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column("cancelled_by_user_id", sa.String(26), nullable=True),
        sa.Column("within_policy", sa.Boolean(), nullable=True),
        sa.Column("confirmed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("cancelled_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column("completed_at", sa.DateTime(timezone=True), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.Column(
            "updated_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=True
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(["slot_id"], ["availability_slots.id"], ondelete="RESTRICT"),
        sa.CheckConstraint(
            "status IN ('pending', 'confirmed', 'cancelled', 'completed')",
            name="ck_availability_bookings_status",
        ),
        sa.CheckConstraint(
            "selected_activity IS NULL OR selected_activity IN "
            "('activity', 'casual', 'coffee', 'dinner', 'drinks', 'formal', 'lunch', 'movie', 'walk')",
            name="ck_availability_bookings_activity",
        ),
    )
    op.create_index("ix_availability_bookings_slot_id", "availability_bookings", ["slot_id"])
    op.create_index(
        "ix_availability_bookings_booker_user_id", "availability_bookings", ["booker_user_id"]
    )
    op.create_index("ix_availability_bookings_status", "availability_bookings", ["status"])
    op.create_index(
        "ix_availability_bookings_booker_status",
        "availability_bookings",
        ["booker_user_id", "status"],
    )
    op.create_index(
        "uq_availability_bookings_active_slot",
        "availability_bookings",
        ["slot_id"],
        unique=True,
        postgresql_where=sa.text(ACTIVE_BOOKING_PREDICATE),
        sqlite_where=sa.text(ACTIVE_BOOKING_PREDICATE),
    )

    print("Creating availability_audit_logs table...")
    op.create_table(
        "availability_audit_logs",
        sa.Column("id", sa.String(26), nullable=False),
        sa.Column("entity_type", sa.String(20), nullable=False),
        sa.Column("entity_id", sa.String(26), nullable=False),
        sa.Column("slot_id", sa.String(26), nullable=True),
        sa.Column("actor_user_id", sa.String(26), nullable=True),
        sa.Column("action", sa.String(50), nullable=False),
        sa.Column("changed_fields", sa.JSON(), nullable=True),
        sa.Column("old_values", sa.JSON(), nullable=True),
        sa.Column("new_values", sa.JSON(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at", sa.DateTime(timezone=True), server_default=sa.func.now(), nullable=False
        ),
        sa.PrimaryKeyConstraint("id"),
    )
    op.create_index(
        "ix_availability_audit_entity", "availability_audit_logs", ["entity_type", "entity_id"]
    )
    op.create_index("ix_availability_audit_slot", "availability_audit_logs", ["slot_id"])


def downgrade() -> None:
    """Drop availability scheduling tables."""
    print("Dropping availability scheduling tables...")

    op.drop_index("ix_availability_audit_slot", table_name="availability_audit_logs")
    op.drop_index("ix_availability_audit_entity", table_name="availability_audit_logs")
    op.drop_table("availability_audit_logs")

    op.drop_index("uq_availability_bookings_active_slot", table_name="availability_bookings")
    op.drop_index("ix_availability_bookings_booker_status", table_name="availability_bookings")
    op.drop_index("ix_availability_bookings_status", table_name="availability_bookings")
    op.drop_index("ix_availability_bookings_booker_user_id", table_name="availability_bookings")
    op.drop_index("ix_availability_bookings_slot_id", table_name="availability_bookings")
    op.drop_table("availability_bookings")

    if _is_postgres():
        op.execute(
            "ALTER TABLE availability_slots "
            "DROP CONSTRAINT IF EXISTS availability_slots_no_overlap_per_owner"
        )
    op.drop_index("ix_availability_slots_date_status", table_name="availability_slots")
    op.drop_index("ix_availability_slots_owner_date_status", table_name="availability_slots")
    op.drop_index("ix_availability_slots_parent_slot_id", table_name="availability_slots")
    op.drop_index("ix_availability_slots_status", table_name="availability_slots")
    op.drop_index("ix_availability_slots_owner_user_id", table_name="availability_slots")
    op.drop_table("availability_slots")
