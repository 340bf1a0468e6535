"""Administrator maintenance of the flight inventory."""
from __future__ import annotations

import logging
from datetime import date, time
from typing import Any, Dict, Mapping, Optional

from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .catalog import DEFAULT_AIRLINE, get_city
from .errors import NotFoundError, ValidationError
from .identity import IdentityAdapter
from .models import Flight
from .notifications import Notifier, notify

logger = logging.getLogger(__name__)

TEXT_FIELDS = ("flight_number", "airline", "duration", "aircraft")
CODE_FIELDS = ("source", "destination")
DATE_FIELDS = ("departure_date", "arrival_date")
TIME_FIELDS = ("departure_time", "arrival_time")
SEAT_FIELDS = ("total_seats", "available_seats")
FLIGHT_FIELDS = TEXT_FIELDS + CODE_FIELDS + DATE_FIELDS + TIME_FIELDS + ("price",) + SEAT_FIELDS


def _blank(value: Any) -> bool:
    return value is None or (isinstance(value, str) and not value.strip())


def _as_date(value: Any) -> date:
    if isinstance(value, date):
        return value
    return date.fromisoformat(str(value).strip())


def _as_time(value: Any) -> time:
    if isinstance(value, time):
        return value
    return time.fromisoformat(str(value).strip())


def validate_flight_fields(fields: Mapping[str, Any], *, partial: bool = False) -> Dict[str, Any]:
    """Check and coerce the flight entry form.

    Returns the cleaned values keyed by column name. With ``partial`` only
    the supplied fields are required, which is how edits are validated.
    ``available_seats`` defaults to ``total_seats`` for new flights.
    Raises :class:`ValidationError` listing every offending field.
    """

    errors: Dict[str, str] = {}
    cleaned: Dict[str, Any] = {}
    unknown = set(fields) - set(FLIGHT_FIELDS)
    for name in sorted(unknown):
        errors[name] = "unknown field"

    for name in FLIGHT_FIELDS:
        if name not in fields or _blank(fields[name]):
            if name == "available_seats" or (partial and name not in fields):
                continue
            if name == "airline" and not partial:
                cleaned[name] = DEFAULT_AIRLINE
                continue
            errors[name] = "required"
            continue
        raw = fields[name]
        try:
            if name in TEXT_FIELDS:
                cleaned[name] = str(raw).strip()
            elif name in CODE_FIELDS:
                code = str(raw).strip().upper()
                if get_city(code) is None:
                    raise ValueError(f"unknown city code '{code}'")
                cleaned[name] = code
            elif name in DATE_FIELDS:
                cleaned[name] = _as_date(raw)
            elif name in TIME_FIELDS:
                cleaned[name] = _as_time(raw)
            elif name == "price":
                cleaned[name] = float(raw)
                if cleaned[name] < 0:
                    raise ValueError("must not be negative")
            else:
                cleaned[name] = int(raw)
                if cleaned[name] < 0:
                    raise ValueError("must not be negative")
        except (TypeError, ValueError) as exc:
            errors[name] = str(exc)

    if not partial and "available_seats" not in cleaned and "total_seats" in cleaned:
        cleaned["available_seats"] = cleaned["total_seats"]
    if cleaned.get("source") and cleaned.get("source") == cleaned.get("destination"):
        errors["destination"] = "must differ from source"
    if (
        "available_seats" in cleaned
        and "total_seats" in cleaned
        and cleaned["available_seats"] > cleaned["total_seats"]
    ):
        errors["available_seats"] = "cannot exceed total seats"

    if errors:
        raise ValidationError(errors)
    return cleaned


def create_flight(
    session: Session,
    identity: IdentityAdapter,
    fields: Mapping[str, Any],
    *,
    notifier: Optional[Notifier] = None,
) -> Optional[Flight]:
    """Add a flight to the inventory; the store assigns its id and timestamp."""

    admin = identity.require_admin()
    values = validate_flight_fields(fields)
    flight = Flight(**values)
    try:
        session.add(flight)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Creating flight %s failed", values.get("flight_number"))
        notify(notifier, "error", "Failed to add flight")
        return None
    logger.info("Admin %s created flight %s (%s)", admin.id, flight.flight_number, flight.id)
    notify(notifier, "success", "Flight added successfully")
    return flight


def update_flight(
    session: Session,
    identity: IdentityAdapter,
    flight_id: int,
    fields: Mapping[str, Any],
    *,
    notifier: Optional[Notifier] = None,
) -> Optional[Flight]:
    """Replace the given fields of flight ``flight_id``."""

    admin = identity.require_admin()
    values = validate_flight_fields(fields, partial=True)
    try:
        flight = session.get(Flight, flight_id)
    except SQLAlchemyError:
        logger.exception("Loading flight %s for update failed", flight_id)
        notify(notifier, "error", "Failed to update flight")
        return None
    if flight is None:
        notify(notifier, "error", "Flight not found")
        raise NotFoundError(f"flight {flight_id} not found")

    merged = {name: getattr(flight, name) for name in FLIGHT_FIELDS}
    merged.update(values)
    # Re-check the cross-field rules against the stored values.
    validate_flight_fields(merged)
    for name, value in values.items():
        setattr(flight, name, value)
    try:
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Updating flight %s failed", flight_id)
        notify(notifier, "error", "Failed to update flight")
        return None
    logger.info("Admin %s updated flight %s: %s", admin.id, flight_id, sorted(values))
    notify(notifier, "success", "Flight updated successfully")
    return flight


def delete_flight(
    session: Session,
    identity: IdentityAdapter,
    flight_id: int,
    *,
    notifier: Optional[Notifier] = None,
) -> bool:
    """Remove a flight. Bookings keep their own copy of its details."""

    admin = identity.require_admin()
    try:
        flight = session.get(Flight, flight_id)
        if flight is None:
            notify(notifier, "error", "Flight not found")
            return False
        session.delete(flight)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Deleting flight %s failed", flight_id)
        notify(notifier, "error", "Failed to delete flight")
        return False
    logger.info("Admin %s deleted flight %s", admin.id, flight_id)
    notify(notifier, "success", "Flight deleted successfully")
    return True
