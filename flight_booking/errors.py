"""Exceptions raised by the flight booking services."""
from __future__ import annotations

from typing import Dict, Mapping


class FlightBookingError(Exception):
    """Base class for every error raised by this package."""


class UnauthenticatedError(FlightBookingError):
    """Raised when an operation needs a signed-in user and there is none."""


class ForbiddenError(FlightBookingError):
    """Raised when the signed-in user lacks the administrator role."""


class NotFoundError(FlightBookingError, LookupError):
    """Raised when a referenced flight or booking does not exist."""


class SoldOutError(FlightBookingError):
    """Raised when a flight has no seats left."""


class BackendError(FlightBookingError, RuntimeError):
    """Raised when the identity provider or the row store rejects a call."""

    def __init__(self, message: str, *, status_code: int | None = None) -> None:
        super().__init__(message)
        self.status_code = status_code


class ValidationError(FlightBookingError, ValueError):
    """Raised when submitted form fields are missing or out of range."""

    def __init__(self, errors: Mapping[str, str]) -> None:
        self.errors: Dict[str, str] = dict(errors)
        detail = "; ".join(f"{field}: {message}" for field, message in self.errors.items())
        super().__init__(detail or "invalid input")
