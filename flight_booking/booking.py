"""Seat booking, cancellation and the "my bookings" listing."""
from __future__ import annotations

import logging
import random
from typing import List, Optional, Sequence

from sqlalchemy import select, update
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.orm import Session

from .errors import NotFoundError, SoldOutError, UnauthenticatedError
from .identity import GUEST_NAME, IdentityAdapter
from .models import BOOKING_CANCELLED, BOOKING_CONFIRMED, Flight, FlightBooking, utcnow
from .notifications import Notifier, notify

logger = logging.getLogger(__name__)


class SeatAllocator:
    """Draws a seat from a 30-row cabin with seats A-F.

    Seats already held by other passengers are not consulted, so two
    bookings on one flight may be handed the same seat.
    """

    rows: int = 30
    seat_letters: Sequence[str] = tuple("ABCDEF")

    @classmethod
    def random_seat(cls, rng: Optional[random.Random] = None) -> str:
        rng = rng or random
        return f"{rng.randint(1, cls.rows)}{rng.choice(cls.seat_letters)}"


def book_flight(
    session: Session,
    identity: IdentityAdapter,
    *,
    flight_id: int,
    rng: Optional[random.Random] = None,
    notifier: Optional[Notifier] = None,
) -> Optional[FlightBooking]:
    """Book one seat on ``flight_id`` for the signed-in user.

    Raises :class:`UnauthenticatedError`, :class:`NotFoundError` or
    :class:`SoldOutError` before anything is written. A row-store failure is
    reported through ``notifier`` and yields ``None``.

    The flight's ``available_seats`` counter is left as it is.
    """

    user = identity.current_user()
    if user is None:
        notify(notifier, "error", "You must be logged in to book a flight")
        raise UnauthenticatedError("sign in to book a flight")

    try:
        flight = session.get(Flight, flight_id)
    except SQLAlchemyError:
        logger.exception("Flight lookup failed for %s", flight_id)
        notify(notifier, "error", "Failed to load flight")
        return None
    if flight is None:
        notify(notifier, "error", "Flight not found")
        raise NotFoundError(f"flight {flight_id} not found")
    if flight.available_seats <= 0:
        notify(notifier, "error", "No seats available on this flight")
        raise SoldOutError(f"flight {flight.flight_number} is sold out")

    booking = FlightBooking.from_flight(
        flight,
        user_id=user.id,
        seat_number=SeatAllocator.random_seat(rng),
        passenger_name=user.display_name or GUEST_NAME,
        passenger_email=user.email,
    )
    try:
        session.add(booking)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Booking insert failed for flight %s", flight_id)
        notify(notifier, "error", "Failed to book flight")
        return None

    logger.info(
        "Booked seat %s on %s for user %s (booking %s)",
        booking.seat_number,
        booking.flight_number,
        user.id,
        booking.id,
    )
    notify(notifier, "success", "Flight booked successfully!")
    return booking


def list_user_bookings(
    session: Session,
    identity: IdentityAdapter,
    *,
    notifier: Optional[Notifier] = None,
) -> List[FlightBooking]:
    """The signed-in user's bookings, newest first; empty when signed out."""

    user = identity.current_user()
    if user is None:
        return []
    stmt = (
        select(FlightBooking)
        .where(FlightBooking.user_id == user.id)
        .order_by(FlightBooking.created_at.desc(), FlightBooking.id.desc())
    )
    try:
        return list(session.scalars(stmt))
    except SQLAlchemyError:
        logger.exception("Fetching bookings failed for user %s", user.id)
        notify(notifier, "error", "Failed to fetch bookings")
        return []


def cancel_booking(
    session: Session,
    identity: IdentityAdapter,
    *,
    booking_id: int,
    notifier: Optional[Notifier] = None,
) -> bool:
    """Mark one of the signed-in user's bookings as cancelled.

    Only rows matching both ``booking_id`` and the user's id are touched.
    Cancelling an already-cancelled booking succeeds without changing it
    further; pending bookings cannot be cancelled.
    """

    user = identity.current_user()
    if user is None:
        notify(notifier, "error", "You must be logged in to cancel a booking")
        return False

    stmt = (
        update(FlightBooking)
        .where(
            FlightBooking.id == booking_id,
            FlightBooking.user_id == user.id,
            FlightBooking.status.in_((BOOKING_CONFIRMED, BOOKING_CANCELLED)),
        )
        .values(status=BOOKING_CANCELLED, updated_at=utcnow())
        .execution_options(synchronize_session="fetch")
    )
    try:
        result = session.execute(stmt)
        session.commit()
    except SQLAlchemyError:
        session.rollback()
        logger.exception("Cancelling booking %s failed", booking_id)
        notify(notifier, "error", "Failed to cancel booking")
        return False

    if result.rowcount == 0:
        notify(notifier, "error", "Booking not found")
        return False
    logger.info("Cancelled booking %s for user %s", booking_id, user.id)
    notify(notifier, "success", "Booking cancelled successfully")
    return True
