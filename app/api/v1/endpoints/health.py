"""Liveness and readiness probes."""

from fastapi import APIRouter, Response, status
from pydantic import BaseModel

from app.config import settings
from app.database import check_database_connection

router = APIRouter()

HEALTHY = "healthy"
UNHEALTHY = "unhealthy"


class HealthResponse(BaseModel):
    """Service identity and overall state."""

    status: str
    service: str
    version: str
    environment: str


class ReadinessResponse(HealthResponse):
    """Overall state plus the result of each dependency check."""

    checks: dict[str, str]
    reference_validation: bool


@router.get(
    "/health",
    response_model=HealthResponse,
    status_code=status.HTTP_200_OK,
    summary="Liveness probe",
)
async def health_check() -> HealthResponse:
    """Answer as long as the process can serve requests."""
    return HealthResponse(
        status=HEALTHY,
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
    )


@router.get(
    "/health/detailed",
    response_model=ReadinessResponse,
    status_code=status.HTTP_200_OK,
    responses={status.HTTP_503_SERVICE_UNAVAILABLE: {"model": ReadinessResponse}},
    summary="Readiness probe",
)
async def detailed_health_check(response: Response) -> ReadinessResponse:
    """
    Check the database can be queried.

    Collaborator services are not probed here; a slow sibling must not
    take the scheduler out of rotation.

    Returns:
        Readiness with per-dependency results; 503 when the database is down
    """
    db_state = HEALTHY if await check_database_connection() else UNHEALTHY
    if db_state != HEALTHY:
        response.status_code = status.HTTP_503_SERVICE_UNAVAILABLE

    return ReadinessResponse(
        status=db_state,
        service=settings.app_name,
        version=settings.app_version,
        environment=settings.environment,
        checks={"database": db_state},
        reference_validation=settings.validate_references,
    )


@router.get("/ping", status_code=status.HTTP_200_OK, summary="Simple ping")
async def ping() -> dict[str, str]:
    return {"message": "pong"}
