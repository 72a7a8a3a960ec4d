"""Tests for appointment status transitions and history."""

from datetime import UTC, datetime, time
from uuid import uuid4

import pytest
from httpx import AsyncClient
from sqlalchemy import func, insert, select
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from app.config import settings
from app.core.exceptions import (
    ConcurrentModificationException,
    ConflictException,
    NotFoundException,
    ValidationException,
)
from app.models.appointment_status_history import appointment_status_history
from app.schemas.appointment_status_history import AppointmentStatusChange
from app.schemas.appointments import AppointmentStatus, CancellationType
from app.services.appointment_status_service import AppointmentStatusService


def status_change(status: AppointmentStatus, **kwargs) -> AppointmentStatusChange:
    kwargs.setdefault("changed_by_id", uuid4())
    return AppointmentStatusChange(status=status, **kwargs)


async def history_count(db: AsyncSession, appointment_id) -> int:
    result = await db.execute(
        select(func.count())
        .select_from(appointment_status_history)
        .where(appointment_status_history.c.appointment_id == appointment_id)
    )
    return result.scalar()


@pytest.fixture
def status_service(db_session: AsyncSession) -> AppointmentStatusService:
    return AppointmentStatusService(db_session)


@pytest.mark.asyncio
async def test_check_in_then_doctor_cancellation(make_appointment, status_service) -> None:
    """Book, check in and cancel, recording one history row per step."""
    patient_user_id = uuid4()
    doctor_user_id = uuid4()

    appointment = await make_appointment()
    assert appointment.status == AppointmentStatus.SCHEDULED
    assert appointment.end_time == time(9, 30)

    checked_in = await status_service.change_status(
        appointment.id,
        status_change(AppointmentStatus.CHECKED_IN, changed_by_id=patient_user_id),
    )
    assert checked_in.status == AppointmentStatus.CHECKED_IN
    assert checked_in.checked_in_at is not None

    cancelled = await status_service.change_status(
        appointment.id,
        status_change(
            AppointmentStatus.CANCELLED,
            changed_by_id=doctor_user_id,
            reason="emergency",
            cancellation_type=CancellationType.CANCELLED_BY_DOCTOR,
        ),
    )
    assert cancelled.status == AppointmentStatus.CANCELLED
    assert cancelled.checked_in_at == checked_in.checked_in_at

    history = await status_service.get_history(appointment.id)
    assert len(history) == 2

    latest, first = history
    assert first.old_status == AppointmentStatus.SCHEDULED
    assert first.new_status == AppointmentStatus.CHECKED_IN
    assert first.changed_by_id == patient_user_id
    assert first.cancellation_type is None

    assert latest.old_status == AppointmentStatus.CHECKED_IN
    assert latest.new_status == AppointmentStatus.CANCELLED
    assert latest.cancellation_type == CancellationType.CANCELLED_BY_DOCTOR
    assert latest.changed_by_id == doctor_user_id
    assert latest.reason == "emergency"


@pytest.mark.asyncio
async def test_history_chain_matches_transitions(make_appointment, status_service) -> None:
    """Each transition adds exactly one row whose old status is the previous new status."""
    appointment = await make_appointment()
    targets = [
        AppointmentStatus.CHECKED_IN,
        AppointmentStatus.SCHEDULED,
        AppointmentStatus.COMPLETED,
    ]

    for target in targets:
        await status_service.change_status(appointment.id, status_change(target))

    history = list(reversed(await status_service.get_history(appointment.id)))
    assert [row.new_status for row in history] == targets
    assert [row.old_status for row in history] == [AppointmentStatus.SCHEDULED, *targets[:-1]]


@pytest.mark.asyncio
async def test_history_with_equal_timestamps_has_fixed_order(
    make_appointment,
    status_service,
    db_session,
) -> None:
    appointment = await make_appointment()
    changed_at = datetime(2024, 6, 1, 9, 0, tzinfo=UTC)
    ids = [uuid4() for _ in range(3)]

    await db_session.execute(
        insert(appointment_status_history),
        [
            {
                "id": history_id,
                "appointment_id": appointment.id,
                "old_status": AppointmentStatus.SCHEDULED,
                "new_status": AppointmentStatus.SCHEDULED,
                "changed_at": changed_at,
            }
            for history_id in ids
        ],
    )
    await db_session.commit()

    first = await status_service.get_history(appointment.id)
    second = await status_service.get_history(appointment.id)

    assert [row.id for row in first] == sorted(ids, reverse=True)
    assert [row.id for row in second] == [row.id for row in first]


@pytest.mark.asyncio
async def test_same_status_transition_is_recorded(make_appointment, status_service) -> None:
    """Any target status is accepted, including the current one."""
    appointment = await make_appointment()

    updated = await status_service.change_status(
        appointment.id, status_change(AppointmentStatus.SCHEDULED)
    )

    assert updated.status == AppointmentStatus.SCHEDULED
    history = await status_service.get_history(appointment.id)
    assert len(history) == 1
    assert history[0].old_status == history[0].new_status == AppointmentStatus.SCHEDULED


@pytest.mark.asyncio
async def test_second_check_in_is_rejected(make_appointment, status_service, db_session) -> None:
    """Check-in happens at most once and its timestamp never moves."""
    appointment = await make_appointment()
    first = await status_service.change_status(
        appointment.id, status_change(AppointmentStatus.CHECKED_IN)
    )

    with pytest.raises(ConflictException, match="already checked in"):
        await status_service.change_status(
            appointment.id, status_change(AppointmentStatus.CHECKED_IN)
        )

    # Moving away and back does not allow a second check-in either
    await status_service.change_status(appointment.id, status_change(AppointmentStatus.SCHEDULED))
    with pytest.raises(ConflictException, match="already checked in"):
        await status_service.change_status(
            appointment.id, status_change(AppointmentStatus.CHECKED_IN)
        )

    current = await status_service._get_appointment_row(appointment.id)
    assert current.status == AppointmentStatus.SCHEDULED
    assert first.checked_in_at is not None
    assert current.checked_in_at.replace(tzinfo=None) == first.checked_in_at.replace(tzinfo=None)
    assert await history_count(db_session, appointment.id) == 2


@pytest.mark.asyncio
async def test_check_in_race_has_one_winner(
    make_appointment,
    status_service,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch,
) -> None:
    """A writer acting on a stale read loses to the check-in that committed first."""
    appointment = await make_appointment()

    stale = await status_service._get_appointment_row(appointment.id)
    await db_session.commit()

    async with session_factory() as other_session:
        winner = await AppointmentStatusService(other_session).change_status(
            appointment.id, status_change(AppointmentStatus.CHECKED_IN)
        )

    real_get = status_service._get_appointment_row
    reads = iter([stale])

    async def stale_first_read(appointment_id):
        row = next(reads, None)
        return row if row is not None else await real_get(appointment_id)

    monkeypatch.setattr(status_service, "_get_appointment_row", stale_first_read)

    with pytest.raises(ConflictException, match="already checked in"):
        await status_service.change_status(
            appointment.id, status_change(AppointmentStatus.CHECKED_IN)
        )

    monkeypatch.undo()
    current = await status_service._get_appointment_row(appointment.id)
    assert current.checked_in_at.replace(tzinfo=None) == winner.checked_in_at.replace(tzinfo=None)
    assert await history_count(db_session, appointment.id) == 1


@pytest.mark.asyncio
async def test_stale_status_is_rejected(
    make_appointment,
    status_service,
    db_session: AsyncSession,
    session_factory: async_sessionmaker[AsyncSession],
    monkeypatch,
) -> None:
    """A transition based on an outdated status would break the history chain."""
    appointment = await make_appointment()

    stale = await status_service._get_appointment_row(appointment.id)
    await db_session.commit()

    async with session_factory() as other_session:
        await AppointmentStatusService(other_session).change_status(
            appointment.id, status_change(AppointmentStatus.COMPLETED)
        )

    async def stale_read(appointment_id):
        return stale

    monkeypatch.setattr(status_service, "_get_appointment_row", stale_read)

    with pytest.raises(ConcurrentModificationException):
        await status_service.change_status(
            appointment.id,
            status_change(
                AppointmentStatus.CANCELLED, cancellation_type=CancellationType.NO_SHOW
            ),
        )

    monkeypatch.undo()
    current = await status_service._get_appointment_row(appointment.id)
    assert current.status == AppointmentStatus.COMPLETED
    assert await history_count(db_session, appointment.id) == 1


@pytest.mark.asyncio
async def test_failed_history_write_rolls_back_status(
    make_appointment,
    status_service,
    db_session,
    monkeypatch,
) -> None:
    """The status never changes without its history row."""
    appointment = await make_appointment()

    async def broken_append(*args, **kwargs):
        raise RuntimeError("history table unavailable")

    monkeypatch.setattr(status_service, "_append_history", broken_append)

    with pytest.raises(RuntimeError):
        await status_service.change_status(
            appointment.id, status_change(AppointmentStatus.CHECKED_IN)
        )

    monkeypatch.undo()
    current = await status_service._get_appointment_row(appointment.id)
    assert current.status == AppointmentStatus.SCHEDULED
    assert current.checked_in_at is None
    assert await history_count(db_session, appointment.id) == 0


@pytest.mark.asyncio
async def test_rescheduled_cancellation_records_replacement(
    make_appointment,
    status_service,
) -> None:
    """The replacement appointment is stored on the history row."""
    original = await make_appointment()
    replacement = await make_appointment(start_time=time(14, 0))

    await status_service.change_status(
        original.id,
        status_change(
            AppointmentStatus.CANCELLED,
            cancellation_type=CancellationType.RESCHEDULED,
            rescheduled_to_appointment_id=replacement.id,
        ),
    )

    (row,) = await status_service.get_history(original.id)
    assert row.cancellation_type == CancellationType.RESCHEDULED
    assert row.rescheduled_to_appointment_id == replacement.id


@pytest.mark.asyncio
@pytest.mark.parametrize(
    "kwargs",
    [
        {"status": AppointmentStatus.COMPLETED, "cancellation_type": CancellationType.NO_SHOW},
        {"status": AppointmentStatus.CHECKED_IN, "rescheduled_to_appointment_id": uuid4()},
        {"status": AppointmentStatus.CANCELLED, "cancellation_type": CancellationType.RESCHEDULED},
        {
            "status": AppointmentStatus.CANCELLED,
            "cancellation_type": CancellationType.CANCELLED_BY_PATIENT,
            "rescheduled_to_appointment_id": uuid4(),
        },
        {"status": AppointmentStatus.CANCELLED},
    ],
)
async def test_invalid_cancellation_metadata(
    make_appointment,
    status_service,
    db_session,
    kwargs,
) -> None:
    """Cancellation details only travel with cancellations and must be consistent."""
    appointment = await make_appointment()
    kwargs = dict(kwargs)
    status = kwargs.pop("status")

    with pytest.raises(ValidationException):
        await status_service.change_status(appointment.id, status_change(status, **kwargs))

    current = await status_service._get_appointment_row(appointment.id)
    assert current.status == AppointmentStatus.SCHEDULED
    assert await history_count(db_session, appointment.id) == 0


@pytest.mark.asyncio
async def test_reschedule_to_itself_is_rejected(make_appointment, status_service) -> None:
    appointment = await make_appointment()

    with pytest.raises(ValidationException, match="itself"):
        await status_service.change_status(
            appointment.id,
            status_change(
                AppointmentStatus.CANCELLED,
                cancellation_type=CancellationType.RESCHEDULED,
                rescheduled_to_appointment_id=appointment.id,
            ),
        )


@pytest.mark.asyncio
async def test_cancellation_type_optional_when_configured(
    make_appointment,
    status_service,
    monkeypatch,
) -> None:
    """With the requirement switched off a bare cancellation is accepted."""
    monkeypatch.setattr(settings, "require_cancellation_type", False)
    appointment = await make_appointment()

    cancelled = await status_service.change_status(
        appointment.id, status_change(AppointmentStatus.CANCELLED, reason="patient called")
    )

    assert cancelled.status == AppointmentStatus.CANCELLED
    (row,) = await status_service.get_history(appointment.id)
    assert row.cancellation_type is None


@pytest.mark.asyncio
async def test_unknown_appointment(status_service) -> None:
    with pytest.raises(NotFoundException):
        await status_service.change_status(uuid4(), status_change(AppointmentStatus.CHECKED_IN))

    with pytest.raises(NotFoundException):
        await status_service.get_history(uuid4())


@pytest.mark.asyncio
async def test_status_endpoint_and_history(
    client: AsyncClient,
    sample_appointment_data: dict,
) -> None:
    """Test the status and history endpoints."""
    created = (await client.post("/api/v1/appointments/", json=sample_appointment_data)).json()
    changed_by_id = str(uuid4())

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/status",
        json={"status": "CHECKED_IN", "changed_by_id": changed_by_id},
    )
    assert response.status_code == 200
    assert response.json()["status"] == "CHECKED_IN"
    assert response.json()["checked_in_at"] is not None

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/status",
        json={"status": "CHECKED_IN", "changed_by_id": changed_by_id},
    )
    assert response.status_code == 409

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/status",
        json={"status": "CANCELLED", "changed_by_id": changed_by_id},
    )
    assert response.status_code == 422

    response = await client.post(
        f"/api/v1/appointments/{created['id']}/status",
        json={"status": "ARCHIVED", "changed_by_id": changed_by_id},
    )
    assert response.status_code == 422

    response = await client.get(f"/api/v1/appointments/{created['id']}/history")
    assert response.status_code == 200
    history = response.json()
    assert len(history) == 1
    assert history[0]["old_status"] == "SCHEDULED"
    assert history[0]["new_status"] == "CHECKED_IN"
    assert history[0]["changed_by_id"] == changed_by_id
