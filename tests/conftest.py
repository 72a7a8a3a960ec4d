import os
from collections.abc import AsyncGenerator, Awaitable, Callable
from datetime import date, time
from typing import Any
from uuid import UUID, uuid4

import pytest
import pytest_asyncio
from dotenv import load_dotenv
from httpx import ASGITransport, AsyncClient
from sqlalchemy.ext.asyncio import AsyncEngine, AsyncSession, async_sessionmaker
from sqlalchemy.pool import NullPool

# Load environment variables from .env file
load_dotenv()

from app.config import settings
from app.database import build_engine, get_db
from app.main import app
from app.models import metadata
from app.schemas.appointments import AppointmentCreate, AppointmentResponse
from app.services.appointment_service import AppointmentService

# Test database URL - MUST be different from production.
# Without TEST_DATABASE_URL each test gets its own SQLite file.
TEST_DATABASE_URL = os.getenv("TEST_DATABASE_URL")

if TEST_DATABASE_URL and TEST_DATABASE_URL == settings.database_url:
    pytest.exit(
        "TEST_DATABASE_URL is the same as DATABASE_URL; tests drop every table they create",
        returncode=1,
    )


@pytest.fixture
def database_url(tmp_path) -> str:
    """Async URL of the database used by a single test."""
    if TEST_DATABASE_URL:
        if TEST_DATABASE_URL.startswith("postgresql://"):
            return TEST_DATABASE_URL.replace("postgresql://", "postgresql+asyncpg://", 1)
        return TEST_DATABASE_URL
    return f"sqlite+aiosqlite:///{tmp_path / 'schedule_test.db'}"


@pytest_asyncio.fixture
async def test_engine(database_url: str) -> AsyncGenerator[AsyncEngine, None]:
    """Engine with freshly created tables, dropped again after the test."""
    # NullPool avoids event loop issues between tests
    engine = build_engine(database_url, poolclass=NullPool)
    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
        await conn.run_sync(metadata.create_all)

    yield engine

    async with engine.begin() as conn:
        await conn.run_sync(metadata.drop_all)
    await engine.dispose()


@pytest.fixture
def session_factory(test_engine: AsyncEngine) -> async_sessionmaker[AsyncSession]:
    """Factory for extra sessions, used to play a second concurrent writer."""
    return async_sessionmaker(test_engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(
    session_factory: async_sessionmaker[AsyncSession],
) -> AsyncGenerator[AsyncSession, None]:
    """Create a test database session."""
    async with session_factory() as session:
        yield session


@pytest_asyncio.fixture
async def client(db_session: AsyncSession) -> AsyncGenerator[AsyncClient, None]:
    """Create a test HTTP client."""

    async def override_get_db() -> AsyncGenerator[AsyncSession, None]:
        yield db_session

    app.dependency_overrides[get_db] = override_get_db

    async with AsyncClient(transport=ASGITransport(app=app), base_url="http://test") as client:
        yield client

    app.dependency_overrides.clear()


@pytest.fixture
def doctor_id() -> UUID:
    return uuid4()


@pytest.fixture
def practice_id() -> UUID:
    return uuid4()


@pytest.fixture
def sample_appointment_data(doctor_id: UUID, practice_id: UUID) -> dict:
    """Sample appointment payload for testing."""
    return {
        "doctor_id": str(doctor_id),
        "patient_id": str(uuid4()),
        "session_type_id": str(uuid4()),
        "practice_id": str(practice_id),
        "appointment_date": "2024-06-01",
        "start_time": "09:00:00",
        "duration_minutes": 30,
        "consultation_type": "IN_PERSON",
        "notes": "First visit",
    }


@pytest.fixture
def appointment_service(db_session: AsyncSession) -> AppointmentService:
    return AppointmentService(db_session)


@pytest.fixture
def make_appointment(
    appointment_service: AppointmentService,
    doctor_id: UUID,
    practice_id: UUID,
) -> Callable[..., Awaitable[AppointmentResponse]]:
    """Book an appointment for the shared doctor and practice, overriding any field."""

    async def _make(**overrides: Any) -> AppointmentResponse:
        values: dict[str, Any] = {
            "doctor_id": doctor_id,
            "patient_id": uuid4(),
            "session_type_id": uuid4(),
            "practice_id": practice_id,
            "appointment_date": date(2024, 6, 1),
            "start_time": time(9, 0),
            "duration_minutes": 30,
        }
        values.update(overrides)
        return await appointment_service.create_appointment(AppointmentCreate(**values))

    return _make
