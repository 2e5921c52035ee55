"""Domain errors raised by the store, the services and the HTTP layer."""
from __future__ import annotations

from typing import TYPE_CHECKING, Optional

if TYPE_CHECKING:  # pragma: no cover
    from .models import Registration


class EventPassError(Exception):
    """Base class for errors that map onto an HTTP status code."""

    status_code = 500
    # Shown instead of ``message`` for server-side failures outside development.
    public_message = "Internal server error"

    def __init__(self, message: str) -> None:
        super().__init__(message)
        self.message = message


class ValidationError(EventPassError):
    """A required field is missing or malformed."""

    status_code = 400

    def __init__(self, message: str, *, field: Optional[str] = None) -> None:
        super().__init__(message)
        self.field = field


class DuplicateEmailError(EventPassError):
    status_code = 400

    def __init__(self, message: str = "This email is already registered for the event") -> None:
        super().__init__(message)


class InvalidCredentialError(EventPassError):
    """The identity token supplied at login could not be verified."""

    status_code = 400


class NotFoundError(EventPassError):
    status_code = 404


class UnauthorizedError(EventPassError):
    status_code = 401


class ForbiddenError(EventPassError):
    status_code = 403


class AlreadyMarkedError(EventPassError):
    """Attendance was already recorded; carries the stored registration."""

    status_code = 400

    def __init__(self, registration: "Registration") -> None:
        super().__init__("Attendance already marked for this user")
        self.registration = registration


class MailDeliveryError(EventPassError):
    """The confirmation email could not be handed to the SMTP relay."""

    status_code = 500
    public_message = "Registration failed. Please try again."


class ConfigurationError(RuntimeError):
    """Raised when the service is started with invalid settings."""


__all__ = [
    "AlreadyMarkedError",
    "ConfigurationError",
    "DuplicateEmailError",
    "EventPassError",
    "ForbiddenError",
    "InvalidCredentialError",
    "MailDeliveryError",
    "NotFoundError",
    "UnauthorizedError",
    "ValidationError",
]
