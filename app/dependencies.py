"""FastAPI dependencies."""

from typing import Annotated

import httpx
from fastapi import Depends, Request
from sqlalchemy.ext.asyncio import AsyncSession

from app.config import settings
from app.database import get_db
from app.services.appointment_service import AppointmentService
from app.services.appointment_status_service import AppointmentStatusService
from app.services.branch_transfer_service import BranchTransferService
from app.services.integration_service import (
    AddressServiceClient,
    DoctorServiceClient,
    ReferenceValidator,
    SessionServiceClient,
    TimingServiceClient,
    UserServiceClient,
)


def get_http_client(request: Request) -> httpx.AsyncClient | None:
    """
    Shared collaborator HTTP client opened by the application lifespan.

    Returns None when the lifespan did not run; clients then open a
    short-lived connection per call.
    """
    return getattr(request.app.state, "http_client", None)


# Type aliases for dependency injection
DatabaseSession = Annotated[AsyncSession, Depends(get_db)]
HttpClient = Annotated[httpx.AsyncClient | None, Depends(get_http_client)]


def get_reference_validator(http_client: HttpClient) -> ReferenceValidator | None:
    """Reference checks against collaborators, when enabled."""
    if not settings.validate_references:
        return None
    return ReferenceValidator(
        doctor_client=DoctorServiceClient(http_client),
        session_client=SessionServiceClient(http_client),
        timing_client=TimingServiceClient(http_client),
        address_client=AddressServiceClient(http_client),
        user_client=UserServiceClient(http_client),
    )


def get_appointment_service(
    db: DatabaseSession,
    reference_validator: Annotated[ReferenceValidator | None, Depends(get_reference_validator)],
) -> AppointmentService:
    """Appointment store bound to the request session."""
    return AppointmentService(db, reference_validator=reference_validator)


def get_appointment_status_service(db: DatabaseSession) -> AppointmentStatusService:
    """Status transition service bound to the request session."""
    return AppointmentStatusService(db)


def get_branch_transfer_service(
    db: DatabaseSession,
    http_client: HttpClient,
) -> BranchTransferService:
    """Branch transfer service bound to the request session."""
    return BranchTransferService(
        db,
        address_client=AddressServiceClient(http_client),
        doctor_client=DoctorServiceClient(http_client),
    )


AppointmentServiceDep = Annotated[AppointmentService, Depends(get_appointment_service)]
AppointmentStatusServiceDep = Annotated[
    AppointmentStatusService, Depends(get_appointment_status_service)
]
BranchTransferServiceDep = Annotated[BranchTransferService, Depends(get_branch_transfer_service)]
