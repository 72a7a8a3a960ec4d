"""Clients for the sibling services the scheduler depends on.

Each check answers with a plain bool when the collaborator gave a definitive
answer and raises IntegrationException when it could not be reached or
replied with an unexpected status. Nothing here retries.
"""

from datetime import date, time
from typing import Any
from uuid import UUID

import httpx
import structlog

from app.config import settings
from app.core.exceptions import ConflictException, IntegrationException, NotFoundException

logger = structlog.get_logger()


class ServiceClient:
    """Base class for collaborator HTTP clients."""

    service_name = "service"

    def __init__(
        self,
        base_url: str,
        client: httpx.AsyncClient | None = None,
        timeout: float | None = None,
    ):
        """
        Initialize client.

        Args:
            base_url: Collaborator base URL, without trailing slash
            client: Shared HTTP client; a short-lived one is opened per call when omitted
            timeout: Request timeout in seconds
        """
        self.base_url = base_url.rstrip("/")
        self._client = client
        self.timeout = timeout if timeout is not None else settings.integration_timeout_seconds

    async def _request(self, method: str, path: str, **kwargs: Any) -> httpx.Response:
        url = f"{self.base_url}{path}"
        try:
            if self._client is not None:
                return await self._client.request(method, url, **kwargs)
            async with httpx.AsyncClient(timeout=self.timeout) as client:
                return await client.request(method, url, **kwargs)
        except httpx.HTTPError as e:
            logger.error(
                "integration_request_failed",
                service=self.service_name,
                method=method,
                url=url,
                error=str(e),
            )
            raise IntegrationException(f"Error calling {self.service_name}") from e

    def _unexpected(self, response: httpx.Response) -> IntegrationException:
        logger.warning(
            "integration_unexpected_status",
            service=self.service_name,
            url=str(response.request.url),
            status_code=response.status_code,
        )
        return IntegrationException(
            f"{self.service_name} responded with status {response.status_code}"
        )

    def _read_bool(self, response: httpx.Response, key: str | None = None) -> bool:
        """Read a boolean answer, either a bare JSON bool or a field of an object."""
        try:
            payload = response.json()
        except ValueError as e:
            raise IntegrationException(f"{self.service_name} returned a malformed body") from e

        if isinstance(payload, dict):
            for candidate in (key, "data"):
                if candidate and isinstance(payload.get(candidate), bool):
                    return payload[candidate]
        elif isinstance(payload, bool):
            return payload

        raise IntegrationException(f"{self.service_name} returned a malformed body")

    async def _exists(self, path: str) -> bool:
        """GET a resource; 2xx means it exists, 404 means it does not."""
        response = await self._request("GET", path)
        if response.status_code == 404:
            return False
        if response.is_success:
            return True
        raise self._unexpected(response)

    async def _check(self, path: str, key: str | None = None, **kwargs: Any) -> bool:
        response = await self._request("GET", path, **kwargs)
        if not response.is_success:
            raise self._unexpected(response)
        return self._read_bool(response, key)


class DoctorServiceClient(ServiceClient):
    """Doctor service: existence, ownership and branch moves."""

    service_name = "doctor-service"

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        super().__init__(base_url or settings.doctor_service_url, client)

    async def doctor_exists(self, doctor_id: UUID) -> bool:
        """Check the doctor exists."""
        return await self._exists(f"/{doctor_id}")

    async def is_doctor_owner(self, doctor_id: UUID, user_id: UUID) -> bool:
        """Check the user owns the doctor profile."""
        return await self._check(f"/{doctor_id}/owner", params={"userId": str(user_id)})

    async def transfer_doctor(
        self,
        doctor_id: UUID,
        source_branch_id: UUID,
        target_branch_id: UUID,
    ) -> bool:
        """
        Ask the doctor service to move a doctor between branches.

        Returns:
            True if the move was accepted, False if the doctor service refused it
        """
        response = await self._request(
            "POST",
            f"/{doctor_id}/transfer",
            json={
                "sourceBranchId": str(source_branch_id),
                "targetBranchId": str(target_branch_id),
                "transferType": "BRANCH_TRANSFER",
            },
        )
        if response.is_success:
            return True
        if response.is_client_error:
            logger.warning(
                "doctor_transfer_refused",
                doctor_id=str(doctor_id),
                status_code=response.status_code,
            )
            return False
        raise self._unexpected(response)


class AddressServiceClient(ServiceClient):
    """Address service: branches and practices."""

    service_name = "address-service"

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        super().__init__(base_url or settings.address_service_url, client)

    async def branch_exists(self, branch_id: UUID) -> bool:
        """Check the branch exists."""
        response = await self._request("GET", f"/branch/{branch_id}/exists")
        if response.status_code == 404:
            return False
        if not response.is_success:
            raise self._unexpected(response)
        return self._read_bool(response, "exists")

    async def practice_exists(self, practice_id: UUID) -> bool:
        """Check the practice address exists."""
        return await self._exists(f"/{practice_id}")


class UserServiceClient(ServiceClient):
    """User service: patients and their owners."""

    service_name = "user-service"

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        super().__init__(base_url or settings.user_service_url, client)

    async def user_exists(self, user_id: UUID) -> bool:
        """Check the user exists."""
        return await self._exists(f"/{user_id}")

    async def is_patient_owner(self, patient_id: UUID, user_id: UUID) -> bool:
        """Check the authenticated user owns the patient record."""
        return await self._check(f"/{patient_id}/owner", params={"userId": str(user_id)})


class SessionServiceClient(ServiceClient):
    """Session type catalogue."""

    service_name = "session-service"

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        super().__init__(base_url or settings.session_service_url, client)

    async def session_type_exists(self, session_type_id: UUID) -> bool:
        """Check the session type exists."""
        return await self._exists(f"/{session_type_id}")


class TimingServiceClient(ServiceClient):
    """Doctor working hours."""

    service_name = "timing-service"

    def __init__(self, client: httpx.AsyncClient | None = None, base_url: str | None = None):
        super().__init__(base_url or settings.timing_service_url, client)

    async def is_slot_available(
        self,
        doctor_id: UUID,
        practice_id: UUID | None,
        appointment_date: date,
        start_time: time,
        end_time: time,
    ) -> bool:
        """Check the slot falls inside the doctor's working hours."""
        params = {
            "date": appointment_date.isoformat(),
            "startTime": start_time.isoformat(),
            "endTime": end_time.isoformat(),
        }
        if practice_id is not None:
            params["practiceId"] = str(practice_id)
        return await self._check(
            f"/doctors/{doctor_id}/slots/available", key="available", params=params
        )


class ReferenceValidator:
    """Checks the references of a new appointment with the owning services."""

    def __init__(
        self,
        doctor_client: DoctorServiceClient | None = None,
        session_client: SessionServiceClient | None = None,
        timing_client: TimingServiceClient | None = None,
        address_client: AddressServiceClient | None = None,
        user_client: UserServiceClient | None = None,
    ):
        self.doctor_client = doctor_client or DoctorServiceClient()
        self.session_client = session_client or SessionServiceClient()
        self.timing_client = timing_client or TimingServiceClient()
        self.address_client = address_client or AddressServiceClient()
        self.user_client = user_client or UserServiceClient()

    async def validate(
        self,
        doctor_id: UUID,
        session_type_id: UUID,
        practice_id: UUID | None,
        appointment_date: date,
        start_time: time,
        end_time: time,
        patient_id: UUID | None = None,
    ) -> None:
        """
        Validate a slot before it is booked.

        The practice and patient are only checked when given.

        Raises:
            NotFoundException: If the doctor, session type, practice or patient does not exist
            ConflictException: If the slot is outside the doctor's hours
            IntegrationException: If a collaborator cannot be reached
        """
        if not await self.doctor_client.doctor_exists(doctor_id):
            raise NotFoundException(f"Doctor not found: {doctor_id}")

        if not await self.session_client.session_type_exists(session_type_id):
            raise NotFoundException(f"Session type not found: {session_type_id}")

        if practice_id is not None and not await self.address_client.practice_exists(practice_id):
            raise NotFoundException(f"Practice not found: {practice_id}")

        if patient_id is not None and not await self.user_client.user_exists(patient_id):
            raise NotFoundException(f"Patient not found: {patient_id}")

        if not await self.timing_client.is_slot_available(
            doctor_id, practice_id, appointment_date, start_time, end_time
        ):
            raise ConflictException("Requested slot is not available for this doctor")
