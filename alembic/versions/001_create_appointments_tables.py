"""Create appointments and appointment_status_history tables.

Revision ID: 001
Revises:
Create Date: 2026-10-19 00:00:00.000000

"""

from typing import Sequence, Union

import sqlalchemy as sa
from sqlalchemy.dialects import postgresql

from alembic import op

# revision identifiers, used by Alembic.
revision: str = "001"
down_revision: Union[str, None] = None
branch_labels: Union[str, Sequence[str], None] = None
depends_on: Union[str, Sequence[str], None] = None

appointment_status = postgresql.ENUM(
    "SCHEDULED", "CHECKED_IN", "COMPLETED", "CANCELLED", name="appointment_status"
)
consultation_type = postgresql.ENUM("IN_PERSON", "TELEMEDICINE", name="consultation_type")
cancellation_type = postgresql.ENUM(
    "NO_SHOW",
    "CANCELLED_BY_DOCTOR",
    "CANCELLED_BY_PATIENT",
    "RESCHEDULED",
    name="cancellation_type",
)


def _enum_column_type(enum: postgresql.ENUM) -> postgresql.ENUM:
    return postgresql.ENUM(name=enum.name, create_type=False)


def upgrade() -> None:
    """Upgrade database schema."""
    bind = op.get_bind()
    appointment_status.create(bind, checkfirst=True)
    consultation_type.create(bind, checkfirst=True)
    cancellation_type.create(bind, checkfirst=True)

    # Create appointments table
    op.create_table(
        "appointments",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("appointment_number", sa.VARCHAR(length=32), nullable=False),
        sa.Column("doctor_id", postgresql.UUID(), nullable=False),
        sa.Column("patient_id", postgresql.UUID(), nullable=False),
        sa.Column("session_type_id", postgresql.UUID(), nullable=False),
        sa.Column("practice_id", postgresql.UUID(), nullable=True),
        sa.Column("branch_id", postgresql.UUID(), nullable=True),
        sa.Column("appointment_date", sa.Date(), nullable=False),
        sa.Column("start_time", sa.Time(), nullable=False),
        sa.Column("end_time", sa.Time(), nullable=False),
        sa.Column(
            "status",
            _enum_column_type(appointment_status),
            server_default="SCHEDULED",
            nullable=False,
        ),
        sa.Column(
            "consultation_type",
            _enum_column_type(consultation_type),
            server_default="IN_PERSON",
            nullable=False,
        ),
        sa.Column("checked_in_at", postgresql.TIMESTAMP(timezone=True), nullable=True),
        sa.Column("notes", sa.Text(), nullable=True),
        sa.Column("cancellation_reason", sa.Text(), nullable=True),
        sa.Column(
            "created_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.Column(
            "updated_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.UniqueConstraint("appointment_number", name="uq_appointments_appointment_number"),
    )

    op.create_index(
        "uq_appointments_doctor_practice_slot",
        "appointments",
        [
            "doctor_id",
            sa.text("coalesce(practice_id, '00000000-0000-0000-0000-000000000000'::uuid)"),
            "appointment_date",
            "start_time",
        ],
        unique=True,
    )
    op.create_index(
        "ix_appointments_doctor_date", "appointments", ["doctor_id", "appointment_date"]
    )
    op.create_index("ix_appointments_branch_id", "appointments", ["branch_id"])
    op.create_index("ix_appointments_checked_in_at", "appointments", ["checked_in_at"])

    # Create appointment_status_history table
    op.create_table(
        "appointment_status_history",
        sa.Column(
            "id", postgresql.UUID(), server_default=sa.text("gen_random_uuid()"), nullable=False
        ),
        sa.Column("appointment_id", postgresql.UUID(), nullable=False),
        sa.Column("old_status", _enum_column_type(appointment_status), nullable=True),
        sa.Column("new_status", _enum_column_type(appointment_status), nullable=False),
        sa.Column("changed_by_id", postgresql.UUID(), nullable=True),
        sa.Column("cancellation_type", _enum_column_type(cancellation_type), nullable=True),
        sa.Column("rescheduled_to_appointment_id", postgresql.UUID(), nullable=True),
        sa.Column("reason", sa.Text(), nullable=True),
        sa.Column(
            "changed_at",
            postgresql.TIMESTAMP(timezone=True),
            server_default=sa.text("NOW()"),
            nullable=False,
        ),
        sa.PrimaryKeyConstraint("id"),
        sa.ForeignKeyConstraint(
            ["appointment_id"],
            ["appointments.id"],
            name="fk_history_appointment",
            ondelete="RESTRICT",
        ),
    )

    op.create_index(
        "ix_appointment_status_history_appointment_id",
        "appointment_status_history",
        ["appointment_id"],
    )


def downgrade() -> None:
    """Downgrade database schema."""
    op.drop_index(
        "ix_appointment_status_history_appointment_id",
        table_name="appointment_status_history",
    )
    op.drop_table("appointment_status_history")

    op.drop_index("ix_appointments_checked_in_at", table_name="appointments")
    op.drop_index("ix_appointments_branch_id", table_name="appointments")
    op.drop_index("ix_appointments_doctor_date", table_name="appointments")
    op.drop_index("uq_appointments_doctor_practice_slot", table_name="appointments")
    op.drop_table("appointments")

    bind = op.get_bind()
    cancellation_type.drop(bind, checkfirst=True)
    consultation_type.drop(bind, checkfirst=True)
    appointment_status.drop(bind, checkfirst=True)
