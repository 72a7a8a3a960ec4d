"""Appointment status history table model using SQLAlchemy Core.

Rows are append-only: one per accepted status transition.
"""

from uuid import uuid4

from sqlalchemy import Column, DateTime, Enum, ForeignKey, Index, Table, Text, Uuid

from app.models.appointments import appointment_status_enum, metadata, utcnow
from app.schemas.appointments import CancellationType

cancellation_type_enum = Enum(CancellationType, name="cancellation_type", metadata=metadata)

appointment_status_history = Table(
    "appointment_status_history",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column(
        "appointment_id",
        Uuid,
        ForeignKey("appointments.id", name="fk_history_appointment", ondelete="RESTRICT"),
        nullable=False,
    ),
    Column("old_status", appointment_status_enum, nullable=True),
    Column("new_status", appointment_status_enum, nullable=False),
    Column("changed_by_id", Uuid, nullable=True),
    # Only set when new_status is CANCELLED
    Column("cancellation_type", cancellation_type_enum, nullable=True),
    # Only set when cancellation_type is RESCHEDULED
    Column("rescheduled_to_appointment_id", Uuid, nullable=True),
    Column("reason", Text, nullable=True),
    Column("changed_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Index("ix_appointment_status_history_appointment_id", "appointment_id"),
)
