"""Appointment number generation."""

import threading
import time

from app.config import settings

_lock = threading.Lock()
_last_micros = 0


def generate_appointment_number(prefix: str | None = None) -> str:
    """
    Generate a human-facing appointment number such as ``APT-1717232400123456``.

    The numeric part is the wall clock in microseconds, bumped by one when the
    clock has not advanced, so numbers from one process are strictly
    increasing. Uniqueness across processes relies on the database
    constraint; collisions there are reported as retryable conflicts.
    """
    global _last_micros

    with _lock:
        micros = max(time.time_ns() // 1000, _last_micros + 1)
        _last_micros = micros

    return f"{prefix if prefix is not None else settings.appointment_number_prefix}{micros}"
