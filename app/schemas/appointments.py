"""Appointment schemas for request/response validation."""

from datetime import date, datetime, time
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field

from app.core.exceptions import ValidationException


class AppointmentStatus(str, Enum):
    """Appointment lifecycle states."""

    SCHEDULED = "SCHEDULED"
    CHECKED_IN = "CHECKED_IN"
    COMPLETED = "COMPLETED"
    CANCELLED = "CANCELLED"


# Statuses that still occupy the doctor's calendar
ACTIVE_STATUSES = (AppointmentStatus.SCHEDULED, AppointmentStatus.CHECKED_IN)


class CancellationType(str, Enum):
    """Why an appointment was cancelled."""

    NO_SHOW = "NO_SHOW"
    CANCELLED_BY_DOCTOR = "CANCELLED_BY_DOCTOR"
    CANCELLED_BY_PATIENT = "CANCELLED_BY_PATIENT"
    RESCHEDULED = "RESCHEDULED"


class ConsultationType(str, Enum):
    """How the consultation takes place."""

    IN_PERSON = "IN_PERSON"
    TELEMEDICINE = "TELEMEDICINE"


class AppointmentCreate(BaseModel):
    """Schema for creating a new appointment."""

    doctor_id: UUID
    patient_id: UUID
    session_type_id: UUID
    practice_id: UUID | None = None
    branch_id: UUID | None = None
    appointment_date: date
    start_time: time
    duration_minutes: int | None = Field(None, ge=1, le=24 * 60)
    consultation_type: ConsultationType = ConsultationType.IN_PERSON
    notes: str | None = Field(None, max_length=2000)


class AppointmentUpdate(BaseModel):
    """Schema for updating the mutable, non-lifecycle fields of an appointment."""

    consultation_type: ConsultationType | None = None
    notes: str | None = Field(None, max_length=2000)
    cancellation_reason: str | None = Field(None, max_length=2000)


class AppointmentResponse(BaseModel):
    """Schema for appointment response."""

    id: UUID
    appointment_number: str
    doctor_id: UUID
    patient_id: UUID
    session_type_id: UUID
    practice_id: UUID | None = None
    branch_id: UUID | None = None
    appointment_date: date
    start_time: time
    end_time: time
    status: AppointmentStatus
    consultation_type: ConsultationType
    checked_in_at: datetime | None = None
    notes: str | None = None
    cancellation_reason: str | None = None
    created_at: datetime
    updated_at: datetime

    model_config = {"from_attributes": True}


class AppointmentListResponse(BaseModel):
    """Schema for paginated appointment list response."""

    total: int
    page: int
    page_size: int
    items: list[AppointmentResponse]


class AppointmentFilters(BaseModel):
    """Schema for appointment filtering."""

    doctor_id: UUID | None = None
    patient_id: UUID | None = None
    practice_id: UUID | None = None
    session_type_id: UUID | None = None
    branch_id: UUID | None = None
    appointment_date: date | None = None
    start_date: date | None = None
    end_date: date | None = None
    statuses: list[AppointmentStatus] | None = None
    consultation_type: ConsultationType | None = None
    page: int = Field(default=1, ge=1)
    page_size: int = Field(default=20, ge=1, le=100)


class TimeSlotConflictResponse(BaseModel):
    """Result of a time slot conflict check."""

    doctor_id: UUID
    appointment_date: date
    start_time: time
    end_time: time
    has_conflict: bool


class AppointmentStatistics(BaseModel):
    """Appointment counts, overall and per status."""

    branch_id: UUID | None = None
    total: int
    by_status: dict[AppointmentStatus, int]


def parse_status_filter(raw: str | None) -> list[AppointmentStatus] | None:
    """
    Parse a comma-separated status filter such as ``"SCHEDULED,CHECKED_IN"``.

    Returns None for an empty filter.

    Raises:
        ValidationException: If any entry is not a known status
    """
    if raw is None or not raw.strip():
        return None

    statuses = []
    for part in raw.split(","):
        value = part.strip().upper()
        if not value:
            raise ValidationException(f"Invalid appointment status filter: {raw!r}")
        try:
            statuses.append(AppointmentStatus(value))
        except ValueError:
            valid = ", ".join(s.value for s in AppointmentStatus)
            raise ValidationException(
                f"Invalid appointment status: {part.strip()}. Valid statuses are: {valid}"
            ) from None
    return statuses
