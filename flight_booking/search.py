"""Flight lookup over the persisted inventory."""
from __future__ import annotations

import logging
from datetime import date, datetime
from typing import List, Optional, Union

from sqlalchemy import Select, select
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import ValidationError
from .models import Flight
from .notifications import Notifier, notify

logger = logging.getLogger(__name__)

DateLike = Union[date, str, None]


def parse_date(value: DateLike) -> Optional[date]:
    """Accept a ``date`` or an ISO ``YYYY-MM-DD`` string; blank means no date."""

    if value is None:
        return None
    if isinstance(value, datetime):
        return value.date()
    if isinstance(value, date):
        return value
    value = value.strip()
    if not value:
        return None
    try:
        return date.fromisoformat(value)
    except ValueError as exc:
        raise ValidationError({"date": f"'{value}' is not a YYYY-MM-DD date"}) from exc


def _normalize_code(value: Optional[str]) -> Optional[str]:
    if value is None:
        return None
    return value.strip().upper() or None


def search_flights(
    session: Session,
    *,
    source: Optional[str] = None,
    destination: Optional[str] = None,
    departure_date: DateLike = None,
    notifier: Optional[Notifier] = None,
) -> List[Flight]:
    """Return flights matching every filter given, in catalog order.

    Codes and the date are compared for equality; an omitted or blank filter
    matches every flight.
    """

    day = parse_date(departure_date)
    source = _normalize_code(source)
    destination = _normalize_code(destination)
    stmt: Select[tuple[Flight]] = select(Flight)
    if source:
        stmt = stmt.where(Flight.source == source)
    if destination:
        stmt = stmt.where(Flight.destination == destination)
    if day is not None:
        stmt = stmt.where(Flight.departure_date == day)
    try:
        return list(session.scalars(stmt.order_by(Flight.id)))
    except SQLAlchemyError:
        logger.exception("Flight search failed")
        notify(notifier, "error", "Failed to search flights")
        return []


def list_flights(session: Session, *, notifier: Optional[Notifier] = None) -> List[Flight]:
    return search_flights(session, notifier=notifier)


def get_flight_by_id(
    session: Session, flight_id: int, *, notifier: Optional[Notifier] = None
) -> Optional[Flight]:
    try:
        return session.get(Flight, flight_id)
    except SQLAlchemyError:
        logger.exception("Flight lookup failed for %s", flight_id)
        notify(notifier, "error", "Failed to load flight")
        return None
