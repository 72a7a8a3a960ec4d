"""Appointment endpoints."""

from datetime import date, time
from uuid import UUID

from fastapi import APIRouter, Query, status

from app.dependencies import AppointmentServiceDep, AppointmentStatusServiceDep
from app.schemas.appointment_status_history import (
    AppointmentStatusChange,
    AppointmentStatusHistoryResponse,
)
from app.schemas.appointments import (
    AppointmentCreate,
    AppointmentFilters,
    AppointmentListResponse,
    AppointmentResponse,
    AppointmentStatistics,
    AppointmentUpdate,
    ConsultationType,
    TimeSlotConflictResponse,
    parse_status_filter,
)
from app.services.appointment_service import DEFAULT_EXISTING_STATUS_FILTER

router = APIRouter()


@router.post(
    "/",
    response_model=AppointmentResponse,
    status_code=status.HTTP_201_CREATED,
    tags=["Appointments"],
    summary="Create new appointment",
)
async def create_appointment(
    data: AppointmentCreate,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Book a slot for a patient with a doctor.

    Args:
        data: Appointment creation data
        service: Appointment service

    Returns:
        Created appointment in SCHEDULED status
    """
    return await service.create_appointment(data)


@router.get(
    "/",
    response_model=AppointmentListResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Search appointments",
)
async def search_appointments(
    service: AppointmentServiceDep,
    doctor_id: UUID | None = Query(None),
    patient_id: UUID | None = Query(None),
    practice_id: UUID | None = Query(None),
    session_type_id: UUID | None = Query(None),
    branch_id: UUID | None = Query(None),
    appointment_date: date | None = Query(None, alias="date"),
    start_date: date | None = Query(None),
    end_date: date | None = Query(None),
    status_filter: str | None = Query(None, alias="status", description="Comma-separated"),
    consultation_type: ConsultationType | None = Query(None),
    page: int = Query(1, ge=1),
    page_size: int = Query(20, ge=1, le=100),
) -> AppointmentListResponse:
    """
    Search appointments with filtering and pagination.

    Args:
        service: Appointment service
        doctor_id: Filter by doctor ID
        patient_id: Filter by patient ID
        practice_id: Filter by practice ID
        session_type_id: Filter by session type ID
        branch_id: Filter by branch ID
        appointment_date: Filter by a single date
        start_date: Filter from this date
        end_date: Filter up to this date
        status_filter: Comma-separated statuses
        consultation_type: Filter by consultation type
        page: Page number
        page_size: Items per page

    Returns:
        Paginated list of appointments
    """
    filters = AppointmentFilters(
        doctor_id=doctor_id,
        patient_id=patient_id,
        practice_id=practice_id,
        session_type_id=session_type_id,
        branch_id=branch_id,
        appointment_date=appointment_date,
        start_date=start_date,
        end_date=end_date,
        statuses=parse_status_filter(status_filter),
        consultation_type=consultation_type,
        page=page,
        page_size=page_size,
    )
    return await service.search_appointments(filters)


@router.get(
    "/conflicts",
    response_model=TimeSlotConflictResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Check time slot conflict",
)
async def check_time_slot_conflict(
    service: AppointmentServiceDep,
    doctor_id: UUID = Query(...),
    appointment_date: date = Query(..., alias="date"),
    start_time: time = Query(...),
    end_time: time = Query(...),
) -> TimeSlotConflictResponse:
    """Check whether a time range overlaps any active appointment of the doctor."""
    has_conflict = await service.has_time_slot_conflict(
        doctor_id, appointment_date, start_time, end_time
    )
    return TimeSlotConflictResponse(
        doctor_id=doctor_id,
        appointment_date=appointment_date,
        start_time=start_time,
        end_time=end_time,
        has_conflict=has_conflict,
    )


@router.get(
    "/existing",
    response_model=list[AppointmentResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get existing appointments",
)
async def get_existing_appointments(
    service: AppointmentServiceDep,
    doctor_id: UUID = Query(...),
    appointment_date: date = Query(..., alias="date"),
    status_filter: str = Query(DEFAULT_EXISTING_STATUS_FILTER, alias="status"),
) -> list[AppointmentResponse]:
    """List a doctor's appointments on a date, filtered by comma-separated statuses."""
    return await service.get_existing_appointments(doctor_id, appointment_date, status_filter)


@router.get(
    "/statistics",
    response_model=AppointmentStatistics,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Appointment statistics",
)
async def get_statistics(
    service: AppointmentServiceDep,
    branch_id: UUID | None = Query(None),
) -> AppointmentStatistics:
    """Count appointments per status, optionally for one branch."""
    return await service.get_statistics(branch_id)


@router.get(
    "/number/{appointment_number}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by number",
)
async def get_appointment_by_number(
    appointment_number: str,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """Get an appointment by its human-facing number."""
    return await service.get_appointment_by_number(appointment_number)


@router.get(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment by ID",
)
async def get_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Get a specific appointment by ID.

    Raises:
        NotFoundException: If appointment not found
    """
    return await service.get_appointment(appointment_id)


@router.put(
    "/{appointment_id}",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Update appointment",
)
async def update_appointment(
    appointment_id: UUID,
    data: AppointmentUpdate,
    service: AppointmentServiceDep,
) -> AppointmentResponse:
    """
    Update notes, consultation type or cancellation reason.

    Args:
        appointment_id: Appointment ID
        data: Update data
        service: Appointment service

    Returns:
        Updated appointment
    """
    return await service.update_appointment(appointment_id, data)


@router.delete(
    "/{appointment_id}",
    status_code=status.HTTP_204_NO_CONTENT,
    tags=["Appointments"],
    summary="Delete appointment",
)
async def delete_appointment(
    appointment_id: UUID,
    service: AppointmentServiceDep,
) -> None:
    """
    Delete an appointment that has never changed status.

    Raises:
        NotFoundException: If appointment not found
        ConflictException: If the appointment has status history
    """
    await service.delete_appointment(appointment_id)


@router.post(
    "/{appointment_id}/status",
    response_model=AppointmentResponse,
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Change appointment status",
)
async def change_appointment_status(
    appointment_id: UUID,
    data: AppointmentStatusChange,
    service: AppointmentStatusServiceDep,
) -> AppointmentResponse:
    """
    Move an appointment to a new status (check in, complete, cancel).

    Args:
        appointment_id: Appointment ID
        data: Target status, actor and cancellation details
        service: Status service

    Returns:
        Updated appointment
    """
    return await service.change_status(appointment_id, data)


@router.get(
    "/{appointment_id}/history",
    response_model=list[AppointmentStatusHistoryResponse],
    status_code=status.HTTP_200_OK,
    tags=["Appointments"],
    summary="Get appointment status history",
)
async def get_appointment_history(
    appointment_id: UUID,
    service: AppointmentStatusServiceDep,
) -> list[AppointmentStatusHistoryResponse]:
    """Status changes of an appointment, most recent first."""
    return await service.get_history(appointment_id)
