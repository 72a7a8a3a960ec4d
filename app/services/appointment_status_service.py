"""Appointment status transitions and their audit trail."""

from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, exists, insert, select, update
from sqlalchemy.engine import Row
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.exceptions import (
    ConcurrentModificationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.models.appointment_status_history import appointment_status_history
from app.models.appointments import appointments, utcnow
from app.schemas.appointment_status_history import (
    AppointmentStatusChange,
    AppointmentStatusHistoryResponse,
)
from app.schemas.appointments import AppointmentResponse, AppointmentStatus, CancellationType

logger = structlog.get_logger()


class AppointmentStatusService:
    """
    Applies status transitions.

    Every accepted transition updates the appointment and appends exactly one
    history row in the same transaction. History rows are never modified.
    Any target status is accepted; the rules enforced on top are check-in at
    most once and cancellation metadata scoped to cancellations.
    """

    def __init__(self, db: AsyncSession):
        """Initialize service with database session."""
        self.db = db

    async def change_status(
        self,
        appointment_id: UUID,
        data: AppointmentStatusChange,
    ) -> AppointmentResponse:
        """
        Move an appointment to a new status and record the transition.

        Args:
            appointment_id: Appointment ID
            data: Target status, actor and cancellation metadata

        Returns:
            Updated appointment

        Raises:
            NotFoundException: If appointment not found
            ConflictException: If the appointment is already checked in
            ConcurrentModificationException: If the status moved since it was read
            ValidationException: If cancellation metadata is missing or misplaced
        """
        current = await self._get_appointment_row(appointment_id)
        old_status = AppointmentStatus(current.status)
        new_status = data.status

        self._validate_cancellation_metadata(appointment_id, data)

        if new_status == AppointmentStatus.CHECKED_IN and current.checked_in_at is not None:
            self._log_check_in_rejected(appointment_id)
            raise ConflictException("Appointment is already checked in")

        try:
            row = await self._apply_status(appointment_id, old_status, new_status)
            await self._append_history(appointment_id, old_status, data)
            await self.db.commit()
        except Exception:
            await self.db.rollback()
            raise

        logger.info(
            "appointment_status_changed",
            appointment_id=str(appointment_id),
            old_status=old_status.value,
            new_status=new_status.value,
            changed_by_id=str(data.changed_by_id),
            cancellation_type=data.cancellation_type.value if data.cancellation_type else None,
        )
        return AppointmentResponse.model_validate(dict(row._mapping))

    async def get_history(self, appointment_id: UUID) -> list[AppointmentStatusHistoryResponse]:
        """
        Get the status history of an appointment, most recent first.

        Rows sharing a timestamp come back in a fixed order, by descending id.

        Raises:
            NotFoundException: If appointment not found
        """
        found = await self.db.execute(
            select(exists().where(appointments.c.id == appointment_id))
        )
        if not found.scalar():
            raise NotFoundException(f"Appointment not found with id {appointment_id}")

        stmt = (
            select(appointment_status_history)
            .where(appointment_status_history.c.appointment_id == appointment_id)
            .order_by(
                appointment_status_history.c.changed_at.desc(),
                appointment_status_history.c.id.desc(),
            )
        )
        result = await self.db.execute(stmt)
        return [
            AppointmentStatusHistoryResponse.model_validate(dict(row._mapping))
            for row in result.fetchall()
        ]

    async def _get_appointment_row(self, appointment_id: UUID) -> Row:
        result = await self.db.execute(select(appointments).where(appointments.c.id == appointment_id))
        row = result.fetchone()
        if not row:
            raise NotFoundException(f"Appointment not found with id {appointment_id}")
        return row

    def _validate_cancellation_metadata(
        self,
        appointment_id: UUID,
        data: AppointmentStatusChange,
    ) -> None:
        if data.status != AppointmentStatus.CANCELLED:
            if data.cancellation_type is not None or data.rescheduled_to_appointment_id is not None:
                raise ValidationException(
                    "cancellation_type and rescheduled_to_appointment_id are only allowed "
                    "when status is CANCELLED"
                )
            return

        if data.cancellation_type is None:
            if settings.require_cancellation_type:
                raise ValidationException("cancellation_type is required when status is CANCELLED")
            if data.rescheduled_to_appointment_id is not None:
                raise ValidationException(
                    "rescheduled_to_appointment_id requires cancellation_type RESCHEDULED"
                )
            return

        if data.cancellation_type == CancellationType.RESCHEDULED:
            # The replacement is trusted caller data; only its presence is checked
            if data.rescheduled_to_appointment_id is None:
                raise ValidationException(
                    "rescheduled_to_appointment_id is required when cancellation_type is RESCHEDULED"
                )
            if data.rescheduled_to_appointment_id == appointment_id:
                raise ValidationException("An appointment cannot be rescheduled to itself")
        elif data.rescheduled_to_appointment_id is not None:
            raise ValidationException(
                "rescheduled_to_appointment_id requires cancellation_type RESCHEDULED"
            )

    async def _apply_status(
        self,
        appointment_id: UUID,
        old_status: AppointmentStatus,
        new_status: AppointmentStatus,
    ) -> Row:
        """
        Conditionally write the new status.

        The update only matches while the row still has the status that was
        read, so history stays gapless under concurrent writers. A check-in
        additionally requires checked_in_at to be unset.
        """
        now = utcnow()
        values: dict[str, Any] = {"status": new_status, "updated_at": now}
        conditions = [
            appointments.c.id == appointment_id,
            appointments.c.status == old_status,
        ]

        if new_status == AppointmentStatus.CHECKED_IN:
            values["checked_in_at"] = now
            conditions.append(appointments.c.checked_in_at.is_(None))

        stmt = update(appointments).where(and_(*conditions)).values(**values).returning(appointments)
        result = await self.db.execute(stmt)
        row = result.fetchone()
        if row is not None:
            return row

        # Lost a race: work out against what
        latest = await self._get_appointment_row(appointment_id)
        if new_status == AppointmentStatus.CHECKED_IN and latest.checked_in_at is not None:
            self._log_check_in_rejected(appointment_id)
            raise ConflictException("Appointment is already checked in")
        raise ConcurrentModificationException()

    async def _append_history(
        self,
        appointment_id: UUID,
        old_status: AppointmentStatus,
        data: AppointmentStatusChange,
    ) -> None:
        await self.db.execute(
            insert(appointment_status_history).values(
                appointment_id=appointment_id,
                old_status=old_status,
                new_status=data.status,
                changed_by_id=data.changed_by_id,
                cancellation_type=data.cancellation_type,
                rescheduled_to_appointment_id=data.rescheduled_to_appointment_id,
                reason=data.reason,
                changed_at=utcnow(),
            )
        )

    def _log_check_in_rejected(self, appointment_id: UUID) -> None:
        logger.info("appointment_check_in_rejected", appointment_id=str(appointment_id))
