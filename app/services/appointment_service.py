"""Appointment service for business logic."""

from datetime import date, datetime, time, timedelta
from typing import Any
from uuid import UUID

import structlog
from sqlalchemy import and_, delete, exists, func, insert, or_, select, update
from sqlalchemy.exc import IntegrityError
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.core.appointment_number import generate_appointment_number
from app.core.exceptions import (
    AppointmentNumberConflictException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.models.appointment_status_history import appointment_status_history
from app.models.appointments import APPOINTMENT_NUMBER_CONSTRAINT, appointments, utcnow
from app.schemas.appointments import (
    ACTIVE_STATUSES,
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatistics,
    AppointmentStatus,
    AppointmentUpdate,
    parse_status_filter,
)
from app.services.integration_service import ReferenceValidator

logger = structlog.get_logger()

DEFAULT_EXISTING_STATUS_FILTER = "SCHEDULED,CHECKED_IN"
SQLITE_NUMBER_VIOLATION = "UNIQUE constraint failed: appointments.appointment_number"


def compute_end_time(start_time: time, duration_minutes: int) -> time:
    """
    Derive the end of a slot from its start and duration.

    Raises:
        ValidationException: If the slot would run past midnight
    """
    start = datetime.combine(date.min, start_time)
    end = start + timedelta(minutes=duration_minutes)
    if end.date() != start.date():
        raise ValidationException("Appointment must end on the same day it starts")
    return end.time()


def violated_constraint(exc: IntegrityError) -> str | None:
    """Name of the constraint behind an integrity error, when the driver reports it."""
    # asyncpg exposes it on the driver error wrapped by the DBAPI adapter
    for error in (exc.orig, getattr(exc.orig, "__cause__", None)):
        name = getattr(error, "constraint_name", None)
        if name:
            return name
    return None


def is_number_collision(exc: IntegrityError) -> bool:
    """Whether an integrity error came from the appointment number constraint."""
    name = violated_constraint(exc)
    if name is not None:
        return name == APPOINTMENT_NUMBER_CONSTRAINT
    # SQLite names the columns of a plain unique constraint instead
    return str(exc.orig) == SQLITE_NUMBER_VIOLATION


class AppointmentService:
    """Service for managing appointments."""

    def __init__(self, db: AsyncSession, reference_validator: ReferenceValidator | None = None):
        """Initialize service with database session and optional reference checks."""
        self.db = db
        self.reference_validator = reference_validator

    async def create_appointment(self, data: AppointmentCreate) -> AppointmentResponse:
        """
        Create a new appointment in the SCHEDULED state.

        The slot pre-check only rejects early; the unique constraint on
        (doctor, practice, date, start time) decides between concurrent writers.

        Args:
            data: Appointment creation data

        Returns:
            Created appointment

        Raises:
            ConflictException: If the slot is already booked
            AppointmentNumberConflictException: If no unique number could be allocated
            ValidationException: If the slot would run past midnight
        """
        duration = data.duration_minutes or settings.default_appointment_duration_minutes
        end_time = compute_end_time(data.start_time, duration)

        if self.reference_validator is not None:
            await self.reference_validator.validate(
                data.doctor_id,
                data.session_type_id,
                data.practice_id,
                data.appointment_date,
                data.start_time,
                end_time,
                patient_id=data.patient_id,
            )

        if await self._slot_taken(
            data.doctor_id, data.practice_id, data.appointment_date, data.start_time
        ):
            logger.info(
                "appointment_slot_conflict",
                doctor_id=str(data.doctor_id),
                appointment_date=data.appointment_date.isoformat(),
                start_time=data.start_time.isoformat(),
            )
            raise ConflictException("Time slot already booked for this doctor/practice")

        now = utcnow()
        values: dict[str, Any] = {
            "doctor_id": data.doctor_id,
            "patient_id": data.patient_id,
            "session_type_id": data.session_type_id,
            "practice_id": data.practice_id,
            "branch_id": data.branch_id,
            "appointment_date": data.appointment_date,
            "start_time": data.start_time,
            "end_time": end_time,
            "status": AppointmentStatus.SCHEDULED,
            "consultation_type": data.consultation_type,
            "notes": data.notes,
            "created_at": now,
            "updated_at": now,
        }

        for attempt in range(1, settings.appointment_number_max_attempts + 1):
            values["appointment_number"] = generate_appointment_number()
            stmt = insert(appointments).values(**values).returning(appointments)
            try:
                result = await self.db.execute(stmt)
                row = result.fetchone()
                await self.db.commit()
            except IntegrityError as e:
                await self.db.rollback()
                if is_number_collision(e):
                    logger.warning(
                        "appointment_number_collision",
                        appointment_number=values["appointment_number"],
                        attempt=attempt,
                    )
                    continue
                logger.info(
                    "appointment_slot_conflict",
                    doctor_id=str(data.doctor_id),
                    appointment_date=data.appointment_date.isoformat(),
                    start_time=data.start_time.isoformat(),
                )
                raise ConflictException("Time slot already booked for this doctor/practice") from e

            logger.info(
                "appointment_created",
                appointment_id=str(row.id),
                appointment_number=row.appointment_number,
                doctor_id=str(row.doctor_id),
            )
            return AppointmentResponse.model_validate(dict(row._mapping))

        raise AppointmentNumberConflictException()

    async def _slot_taken(
        self,
        doctor_id: UUID,
        practice_id: UUID | None,
        appointment_date: date,
        start_time: time,
    ) -> bool:
        practice_condition = (
            appointments.c.practice_id.is_(None)
            if practice_id is None
            else appointments.c.practice_id == practice_id
        )
        stmt = select(
            exists().where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    practice_condition,
                    appointments.c.appointment_date == appointment_date,
                    appointments.c.start_time == start_time,
                )
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def get_appointment(self, appointment_id: UUID) -> AppointmentResponse:
        """
        Get appointment by ID.

        Raises:
            NotFoundException: If appointment not found
        """
        stmt = select(appointments).where(appointments.c.id == appointment_id)
        result = await self.db.execute(stmt)
        row = result.fetchone()

        if not row:
            raise NotFoundException(f"Appointment not found with id {appointment_id}")

        return AppointmentResponse.model_validate(dict(row._mapping))

    async def get_appointment_by_number(self, appointment_number: str) -> AppointmentResponse:
        """
        Get appointment by its human-facing number.

        Raises:
            NotFoundException: If appointment not found
        """
        stmt = select(appointments).where(appointments.c.appointment_number == appointment_number)
        result = await self.db.execute(stmt)
        row = result.fetchone()

        if not row:
            raise NotFoundException(f"Appointment not found with number {appointment_number}")

        return AppointmentResponse.model_validate(dict(row._mapping))

    async def search_appointments(self, filters: AppointmentFilters) -> AppointmentListResponse:
        """
        Search appointments with filtering and pagination.

        Args:
            filters: Filter and pagination parameters

        Returns:
            Paginated list of appointments ordered by date and start time
        """
        conditions: list[Any] = []

        if filters.doctor_id:
            conditions.append(appointments.c.doctor_id == filters.doctor_id)

        if filters.patient_id:
            conditions.append(appointments.c.patient_id == filters.patient_id)

        if filters.practice_id:
            conditions.append(appointments.c.practice_id == filters.practice_id)

        if filters.session_type_id:
            conditions.append(appointments.c.session_type_id == filters.session_type_id)

        if filters.branch_id:
            # Appointments booked before branches existed stay visible everywhere
            conditions.append(
                or_(
                    appointments.c.branch_id == filters.branch_id,
                    appointments.c.branch_id.is_(None),
                )
            )

        if filters.appointment_date:
            conditions.append(appointments.c.appointment_date == filters.appointment_date)
        else:
            if filters.start_date:
                conditions.append(appointments.c.appointment_date >= filters.start_date)
            if filters.end_date:
                conditions.append(appointments.c.appointment_date <= filters.end_date)

        if filters.statuses:
            conditions.append(appointments.c.status.in_(filters.statuses))

        if filters.consultation_type:
            conditions.append(appointments.c.consultation_type == filters.consultation_type)

        # Count total
        count_stmt = select(func.count()).select_from(appointments).where(and_(True, *conditions))
        total_result = await self.db.execute(count_stmt)
        total = total_result.scalar() or 0

        # Get paginated results
        offset = (filters.page - 1) * filters.page_size

        stmt = (
            select(appointments)
            .where(and_(True, *conditions))
            .order_by(appointments.c.appointment_date, appointments.c.start_time)
            .limit(filters.page_size)
            .offset(offset)
        )

        result = await self.db.execute(stmt)
        rows = result.fetchall()

        items = [AppointmentResponse.model_validate(dict(row._mapping)) for row in rows]

        return AppointmentListResponse(
            total=total,
            page=filters.page,
            page_size=filters.page_size,
            items=items,
        )

    async def update_appointment(
        self,
        appointment_id: UUID,
        data: AppointmentUpdate,
    ) -> AppointmentResponse:
        """
        Update notes, consultation type or cancellation reason.

        Status never changes here; use the status service for that.

        Raises:
            NotFoundException: If appointment not found
        """
        current = await self.get_appointment(appointment_id)

        update_values: dict[str, Any] = data.model_dump(exclude_unset=True)
        # An explicit null clears the text fields; consultation type is required
        if "consultation_type" in update_values and update_values["consultation_type"] is None:
            del update_values["consultation_type"]

        if not update_values:
            # No changes, return current state
            return current

        update_values["updated_at"] = utcnow()

        stmt = (
            update(appointments)
            .where(appointments.c.id == appointment_id)
            .values(**update_values)
            .returning(appointments)
        )

        result = await self.db.execute(stmt)
        row = result.fetchone()
        await self.db.commit()

        if not row:
            raise NotFoundException(f"Appointment not found with id {appointment_id}")

        logger.info(
            "appointment_updated",
            appointment_id=str(appointment_id),
            fields=sorted(update_values),
        )
        return AppointmentResponse.model_validate(dict(row._mapping))

    async def delete_appointment(self, appointment_id: UUID) -> None:
        """
        Delete an appointment that has never changed status.

        Raises:
            NotFoundException: If appointment not found
            ConflictException: If the appointment already has status history
        """
        await self.get_appointment(appointment_id)

        history_stmt = select(
            exists().where(appointment_status_history.c.appointment_id == appointment_id)
        )
        if (await self.db.execute(history_stmt)).scalar():
            raise ConflictException(
                "Appointment has status history and cannot be deleted; cancel it instead"
            )

        try:
            await self.db.execute(delete(appointments).where(appointments.c.id == appointment_id))
            await self.db.commit()
        except IntegrityError as e:
            # History was appended between the check and the delete
            await self.db.rollback()
            raise ConflictException(
                "Appointment has status history and cannot be deleted; cancel it instead"
            ) from e

        logger.info("appointment_deleted", appointment_id=str(appointment_id))

    async def has_time_slot_conflict(
        self,
        doctor_id: UUID,
        appointment_date: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        """
        Check whether [start_time, end_time) overlaps any active appointment.

        Two ranges overlap when each starts before the other ends, so
        back-to-back slots do not conflict.

        Raises:
            ValidationException: If end_time is not after start_time
        """
        if end_time <= start_time:
            raise ValidationException("End time must be after start time")

        stmt = select(
            exists().where(
                and_(
                    appointments.c.doctor_id == doctor_id,
                    appointments.c.appointment_date == appointment_date,
                    appointments.c.status.in_(ACTIVE_STATUSES),
                    appointments.c.start_time < end_time,
                    appointments.c.end_time > start_time,
                )
            )
        )
        result = await self.db.execute(stmt)
        return bool(result.scalar())

    async def get_existing_appointments(
        self,
        doctor_id: UUID,
        appointment_date: date,
        status_filter: str | None = DEFAULT_EXISTING_STATUS_FILTER,
    ) -> list[AppointmentResponse]:
        """
        List a doctor's appointments on a date, optionally narrowed by status.

        Args:
            doctor_id: Doctor ID
            appointment_date: Day to list
            status_filter: Comma-separated statuses; empty means all

        Raises:
            ValidationException: If the status filter names an unknown status
        """
        statuses = parse_status_filter(status_filter)

        conditions = [
            appointments.c.doctor_id == doctor_id,
            appointments.c.appointment_date == appointment_date,
        ]
        if statuses:
            conditions.append(appointments.c.status.in_(statuses))

        stmt = select(appointments).where(and_(*conditions)).order_by(appointments.c.start_time)
        result = await self.db.execute(stmt)
        return [AppointmentResponse.model_validate(dict(row._mapping)) for row in result.fetchall()]

    async def get_statistics(self, branch_id: UUID | None = None) -> AppointmentStatistics:
        """Count appointments per status, optionally within one branch."""
        stmt = select(appointments.c.status, func.count()).group_by(appointments.c.status)
        if branch_id:
            stmt = stmt.where(appointments.c.branch_id == branch_id)

        result = await self.db.execute(stmt)
        by_status = {status: 0 for status in AppointmentStatus}
        for status, count in result.fetchall():
            by_status[AppointmentStatus(status)] = count

        return AppointmentStatistics(
            branch_id=branch_id,
            total=sum(by_status.values()),
            by_status=by_status,
        )
