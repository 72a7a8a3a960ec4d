"""Database models."""

from app.models.appointment_status_history import appointment_status_history
from app.models.appointments import appointments, metadata

__all__ = [
    "appointment_status_history",
    "appointments",
    "metadata",
]
