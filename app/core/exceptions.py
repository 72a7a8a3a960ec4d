"""Domain exceptions mapped to HTTP responses by the error handlers."""


class AppException(Exception):
    """
    Base application exception.

    Subclasses set the HTTP status code. ``retryable`` marks failures the
    caller may resolve by sending the same request again.
    """

    status_code = 500
    retryable = False
    default_message = "Internal error"

    def __init__(self, message: str | None = None, status_code: int | None = None):
        self.message = message or self.default_message
        if status_code is not None:
            self.status_code = status_code
        super().__init__(self.message)


class NotFoundException(AppException):
    """Appointment, history or referenced resource does not exist."""

    status_code = 404
    default_message = "Resource not found"


class BadRequestException(AppException):
    """Request is well formed but cannot be acted on as given."""

    status_code = 400
    default_message = "Bad request"


class ConflictException(AppException):
    """Request clashes with the current state, e.g. a booked slot or a repeated check-in."""

    status_code = 409
    default_message = "Conflict"


class ConcurrentModificationException(ConflictException):
    """The appointment changed between read and write."""

    retryable = True
    default_message = "Appointment status was changed concurrently, please retry"


class AppointmentNumberConflictException(ConflictException):
    """No unused appointment number could be allocated."""

    retryable = True
    default_message = "Appointment number already in use, please retry"


class ValidationException(AppException):
    """Request data breaks a domain rule."""

    status_code = 422
    default_message = "Validation error"


class IntegrationException(AppException):
    """A collaborator service call failed or answered with an unexpected status."""

    status_code = 502
    default_message = "Integration error"
