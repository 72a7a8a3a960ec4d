"""Moving appointments and doctors between branches."""

from uuid import UUID, uuid4

import structlog
from sqlalchemy import and_, select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession

from app.core.exceptions import (
    BadRequestException,
    IntegrationException,
    NotFoundException,
)
from app.models.appointments import appointments, utcnow
from app.schemas.branch_transfers import (
    BranchTransferRequest,
    BranchTransferResponse,
    TransferItemResult,
    TransferItemType,
    TransferStatus,
)
from app.services.integration_service import AddressServiceClient, DoctorServiceClient

logger = structlog.get_logger()


class BranchTransferService:
    """Service for branch-to-branch transfers."""

    def __init__(
        self,
        db: AsyncSession,
        address_client: AddressServiceClient | None = None,
        doctor_client: DoctorServiceClient | None = None,
    ):
        """Initialize service with database session and collaborator clients."""
        self.db = db
        self.address_client = address_client or AddressServiceClient()
        self.doctor_client = doctor_client or DoctorServiceClient()

    async def transfer_appointments(self, request: BranchTransferRequest) -> BranchTransferResponse:
        """
        Move appointments from the source branch to the target branch.

        Appointments are picked by explicit IDs, or else by source branch and
        appointment date range. Each one is committed on its own, so one bad
        item does not undo the others.

        Raises:
            BadRequestException: If source and target are the same branch
            NotFoundException: If either branch does not exist
            IntegrationException: If the address service cannot be reached
        """
        await self._validate_branches(request.source_branch_id, request.target_branch_id)

        appointment_ids = await self._select_appointment_ids(request)
        if not appointment_ids:
            return self._build_response(
                [],
                empty_message="No appointments found for transfer",
            )

        results = []
        for appointment_id in appointment_ids:
            results.append(await self._transfer_single_appointment(appointment_id, request))

        response = self._build_response(results)
        logger.info(
            "branch_transfer_completed",
            item_type=TransferItemType.APPOINTMENT.value,
            transfer_id=str(response.transfer_id),
            source_branch_id=str(request.source_branch_id),
            target_branch_id=str(request.target_branch_id),
            successful=response.successful_transfers,
            failed=response.failed_transfers,
        )
        return response

    async def transfer_doctors(self, request: BranchTransferRequest) -> BranchTransferResponse:
        """
        Ask the doctor service to move each requested doctor.

        Raises:
            BadRequestException: If source and target are the same branch
            NotFoundException: If either branch does not exist
            IntegrationException: If the address service cannot be reached
        """
        await self._validate_branches(request.source_branch_id, request.target_branch_id)

        if not request.doctor_ids:
            return self._build_response([], empty_message="No doctors specified for transfer")

        results = []
        for doctor_id in request.doctor_ids:
            try:
                moved = await self.doctor_client.transfer_doctor(
                    doctor_id, request.source_branch_id, request.target_branch_id
                )
            except IntegrationException as e:
                logger.error("doctor_transfer_failed", doctor_id=str(doctor_id), error=e.message)
                results.append(self._failed(doctor_id, TransferItemType.DOCTOR, e.message))
                continue

            if moved:
                results.append(
                    TransferItemResult(
                        item_id=doctor_id, item_type=TransferItemType.DOCTOR, success=True
                    )
                )
            else:
                results.append(
                    self._failed(doctor_id, TransferItemType.DOCTOR, "Doctor service refused transfer")
                )

        response = self._build_response(results)
        logger.info(
            "branch_transfer_completed",
            item_type=TransferItemType.DOCTOR.value,
            transfer_id=str(response.transfer_id),
            source_branch_id=str(request.source_branch_id),
            target_branch_id=str(request.target_branch_id),
            successful=response.successful_transfers,
            failed=response.failed_transfers,
        )
        return response

    async def _validate_branches(self, source_branch_id: UUID, target_branch_id: UUID) -> None:
        if source_branch_id == target_branch_id:
            raise BadRequestException("Source and target branches cannot be the same")

        if not await self.address_client.branch_exists(source_branch_id):
            raise NotFoundException(f"Source branch does not exist: {source_branch_id}")
        if not await self.address_client.branch_exists(target_branch_id):
            raise NotFoundException(f"Target branch does not exist: {target_branch_id}")

    async def _select_appointment_ids(self, request: BranchTransferRequest) -> list[UUID]:
        if request.appointment_ids:
            return list(request.appointment_ids)

        if request.start_date and request.end_date:
            stmt = select(appointments.c.id).where(
                and_(
                    appointments.c.branch_id == request.source_branch_id,
                    appointments.c.appointment_date >= request.start_date,
                    appointments.c.appointment_date <= request.end_date,
                )
            )
            result = await self.db.execute(stmt)
            return [row.id for row in result.fetchall()]

        return []

    async def _transfer_single_appointment(
        self,
        appointment_id: UUID,
        request: BranchTransferRequest,
    ) -> TransferItemResult:
        result = await self.db.execute(
            select(appointments.c.branch_id).where(appointments.c.id == appointment_id)
        )
        row = result.fetchone()
        if row is None:
            return self._failed(appointment_id, TransferItemType.APPOINTMENT, "Appointment not found")

        if row.branch_id != request.source_branch_id:
            return self._failed(
                appointment_id,
                TransferItemType.APPOINTMENT,
                "Appointment does not belong to source branch",
            )

        try:
            moved = await self.db.execute(
                update(appointments)
                .where(
                    and_(
                        appointments.c.id == appointment_id,
                        appointments.c.branch_id == request.source_branch_id,
                    )
                )
                .values(branch_id=request.target_branch_id, updated_at=utcnow())
            )
            await self.db.commit()
        except SQLAlchemyError as e:
            await self.db.rollback()
            logger.error(
                "appointment_transfer_failed",
                appointment_id=str(appointment_id),
                error=str(e),
            )
            return self._failed(appointment_id, TransferItemType.APPOINTMENT, "Database error")

        if moved.rowcount == 0:
            # Moved by someone else since it was read
            return self._failed(
                appointment_id,
                TransferItemType.APPOINTMENT,
                "Appointment does not belong to source branch",
            )

        return TransferItemResult(
            item_id=appointment_id,
            item_type=TransferItemType.APPOINTMENT,
            success=True,
        )

    @staticmethod
    def _failed(item_id: UUID, item_type: TransferItemType, message: str) -> TransferItemResult:
        return TransferItemResult(
            item_id=item_id,
            item_type=item_type,
            success=False,
            error_message=message,
        )

    @staticmethod
    def _build_response(
        results: list[TransferItemResult],
        empty_message: str | None = None,
    ) -> BranchTransferResponse:
        successful = sum(1 for item in results if item.success)
        failed = len(results) - successful

        if results and successful == len(results):
            status = TransferStatus.SUCCESS
        elif successful > 0:
            status = TransferStatus.PARTIAL_SUCCESS
        else:
            status = TransferStatus.FAILED

        errors = [
            f"Failed to transfer {item.item_type.value.lower()} {item.item_id}: {item.error_message}"
            for item in results
            if not item.success
        ]
        if empty_message:
            errors.append(empty_message)

        return BranchTransferResponse(
            transfer_id=uuid4(),
            status=status,
            message=empty_message
            or f"Transfer completed: {successful} successful, {failed} failed",
            transferred_at=utcnow(),
            total_items_requested=len(results),
            successful_transfers=successful,
            failed_transfers=failed,
            results=results,
            errors=errors,
        )
