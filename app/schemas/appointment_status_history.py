"""Status change and status history schemas."""

from datetime import datetime
from uuid import UUID

from pydantic import BaseModel, Field

from app.schemas.appointments import AppointmentStatus, CancellationType


class AppointmentStatusChange(BaseModel):
    """Schema for requesting an appointment status transition."""

    status: AppointmentStatus
    changed_by_id: UUID
    reason: str | None = Field(None, max_length=2000)
    cancellation_type: CancellationType | None = None
    rescheduled_to_appointment_id: UUID | None = None


class AppointmentStatusHistoryResponse(BaseModel):
    """One recorded status transition."""

    id: UUID
    appointment_id: UUID
    old_status: AppointmentStatus | None = None
    new_status: AppointmentStatus
    changed_by_id: UUID | None = None
    cancellation_type: CancellationType | None = None
    rescheduled_to_appointment_id: UUID | None = None
    reason: str | None = None
    changed_at: datetime

    model_config = {"from_attributes": True}
