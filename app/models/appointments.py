"""Appointments table model using SQLAlchemy Core."""

from datetime import UTC, datetime
from uuid import uuid4

from sqlalchemy import (
    Column,
    Date,
    DateTime,
    Enum,
    Index,
    MetaData,
    String,
    Table,
    Text,
    Time,
    UniqueConstraint,
    Uuid,
    func,
    text,
)

from app.schemas.appointments import AppointmentStatus, ConsultationType


# Stands in for a missing practice in the slot index
NO_PRACTICE_ID = "00000000-0000-0000-0000-000000000000"

APPOINTMENT_NUMBER_CONSTRAINT = "uq_appointments_appointment_number"


def utcnow() -> datetime:
    """Current time in UTC."""
    return datetime.now(UTC)


# Metadata for all tables
metadata = MetaData()

# Shared by appointments and appointment_status_history
appointment_status_enum = Enum(AppointmentStatus, name="appointment_status", metadata=metadata)
consultation_type_enum = Enum(ConsultationType, name="consultation_type", metadata=metadata)

# Appointments table
appointments = Table(
    "appointments",
    metadata,
    Column("id", Uuid, primary_key=True, default=uuid4),
    Column("appointment_number", String(32), nullable=False),
    # References owned by other services
    Column("doctor_id", Uuid, nullable=False),
    Column("patient_id", Uuid, nullable=False),
    Column("session_type_id", Uuid, nullable=False),
    Column("practice_id", Uuid, nullable=True),
    Column("branch_id", Uuid, nullable=True),
    # Booked slot
    Column("appointment_date", Date, nullable=False),
    Column("start_time", Time, nullable=False),
    Column("end_time", Time, nullable=False),
    # Status management
    Column(
        "status",
        appointment_status_enum,
        nullable=False,
        default=AppointmentStatus.SCHEDULED,
    ),
    Column(
        "consultation_type",
        consultation_type_enum,
        nullable=False,
        default=ConsultationType.IN_PERSON,
    ),
    Column("checked_in_at", DateTime(timezone=True), nullable=True),
    # Metadata
    Column("notes", Text, nullable=True),
    Column("cancellation_reason", Text, nullable=True),
    # Audit fields
    Column("created_at", DateTime(timezone=True), nullable=False, default=utcnow),
    Column("updated_at", DateTime(timezone=True), nullable=False, default=utcnow),
    # Constraints
    UniqueConstraint("appointment_number", name=APPOINTMENT_NUMBER_CONSTRAINT),
    Index("ix_appointments_doctor_date", "doctor_id", "appointment_date"),
    Index("ix_appointments_branch_id", "branch_id"),
    Index("ix_appointments_checked_in_at", "checked_in_at"),
)

# A missing practice is the same practice for slot uniqueness on every backend
Index(
    "uq_appointments_doctor_practice_slot",
    appointments.c.doctor_id,
    func.coalesce(appointments.c.practice_id, text(f"'{NO_PRACTICE_ID}'")),
    appointments.c.appointment_date,
    appointments.c.start_time,
    unique=True,
)
