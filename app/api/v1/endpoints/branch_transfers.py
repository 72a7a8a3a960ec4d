"""Branch transfer endpoints."""

from fastapi import APIRouter, status

from app.dependencies import BranchTransferServiceDep
from app.schemas.branch_transfers import BranchTransferRequest, BranchTransferResponse

router = APIRouter()


@router.post(
    "/appointments",
    response_model=BranchTransferResponse,
    status_code=status.HTTP_200_OK,
    tags=["Branch Transfers"],
    summary="Transfer appointments between branches",
)
async def transfer_appointments(
    data: BranchTransferRequest,
    service: BranchTransferServiceDep,
) -> BranchTransferResponse:
    """
    Move appointments, picked by ID or by date range, to another branch.

    Args:
        data: Transfer request
        service: Branch transfer service

    Returns:
        Per-appointment results and an overall status
    """
    return await service.transfer_appointments(data)


@router.post(
    "/doctors",
    response_model=BranchTransferResponse,
    status_code=status.HTTP_200_OK,
    tags=["Branch Transfers"],
    summary="Transfer doctors between branches",
)
async def transfer_doctors(
    data: BranchTransferRequest,
    service: BranchTransferServiceDep,
) -> BranchTransferResponse:
    """Ask the doctor service to move doctors to another branch."""
    return await service.transfer_doctors(data)
