"""Flight booking storefront: search, booking and inventory administration."""
from typing import Any

from .admin import create_flight, delete_flight, update_flight, validate_flight_fields
from .auth_provider import AuthSession, AuthUser, RestIdentityProvider
from .booking import SeatAllocator, book_flight, cancel_booking, list_user_bookings
from .catalog import CITIES, City, generate_sample_flights, get_city, seed_catalog
from .cli import main as cli_main
from .config import Settings, load_settings
from .database import create_session_factory, init_db
from .errors import (
    BackendError,
    FlightBookingError,
    ForbiddenError,
    NotFoundError,
    SoldOutError,
    UnauthenticatedError,
    ValidationError,
)
from .identity import IdentityAdapter, User
from .notifications import Notifier
from .search import get_flight_by_id, list_flights, search_flights


def create_app(*args: Any, **kwargs: Any):  # pragma: no cover - thin wrapper
    from .web import create_app as _create_app

    return _create_app(*args, **kwargs)


__all__ = [
    "AuthSession",
    "AuthUser",
    "BackendError",
    "CITIES",
    "City",
    "FlightBookingError",
    "ForbiddenError",
    "IdentityAdapter",
    "NotFoundError",
    "Notifier",
    "RestIdentityProvider",
    "SeatAllocator",
    "Settings",
    "SoldOutError",
    "UnauthenticatedError",
    "User",
    "ValidationError",
    "book_flight",
    "cancel_booking",
    "cli_main",
    "create_app",
    "create_flight",
    "create_session_factory",
    "delete_flight",
    "generate_sample_flights",
    "get_city",
    "get_flight_by_id",
    "init_db",
    "list_flights",
    "list_user_bookings",
    "load_settings",
    "search_flights",
    "seed_catalog",
    "update_flight",
    "validate_flight_fields",
]
