"""Branch transfer schemas."""

from datetime import date, datetime
from enum import Enum
from uuid import UUID

from pydantic import BaseModel, Field, model_validator


class TransferType(str, Enum):
    """Kind of transfer requested."""

    APPOINTMENT_TRANSFER = "APPOINTMENT_TRANSFER"
    DOCTOR_TRANSFER = "DOCTOR_TRANSFER"
    BULK_APPOINTMENT_TRANSFER = "BULK_APPOINTMENT_TRANSFER"
    EMERGENCY_TRANSFER = "EMERGENCY_TRANSFER"


class TransferStatus(str, Enum):
    """Overall outcome of a transfer."""

    SUCCESS = "SUCCESS"
    PARTIAL_SUCCESS = "PARTIAL_SUCCESS"
    FAILED = "FAILED"


class TransferItemType(str, Enum):
    """Kind of item moved by a transfer."""

    APPOINTMENT = "APPOINTMENT"
    DOCTOR = "DOCTOR"


class BranchTransferRequest(BaseModel):
    """Schema for a branch transfer request."""

    source_branch_id: UUID
    target_branch_id: UUID
    transfer_type: TransferType
    appointment_ids: list[UUID] = Field(default_factory=list)
    doctor_ids: list[UUID] = Field(default_factory=list)
    start_date: date | None = None
    end_date: date | None = None
    reason: str | None = Field(None, max_length=2000)
    notes: str | None = Field(None, max_length=2000)

    @model_validator(mode="after")
    def validate_date_range(self) -> "BranchTransferRequest":
        """Validate the bulk date range is ordered."""
        if self.start_date and self.end_date and self.end_date < self.start_date:
            raise ValueError("end_date must not be before start_date")
        return self


class TransferItemResult(BaseModel):
    """Outcome for a single transferred item."""

    item_id: UUID
    item_type: TransferItemType
    success: bool
    error_message: str | None = None


class BranchTransferResponse(BaseModel):
    """Schema for a branch transfer response."""

    transfer_id: UUID
    status: TransferStatus
    message: str
    transferred_at: datetime
    total_items_requested: int
    successful_transfers: int
    failed_transfers: int
    results: list[TransferItemResult] = Field(default_factory=list)
    errors: list[str] = Field(default_factory=list)
