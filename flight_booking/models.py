"""SQLAlchemy models for the flight booking storefront."""
from __future__ import annotations

from dataclasses import dataclass
from datetime import date, datetime, time, timezone

from sqlalchemy import (
    CheckConstraint,
    Date,
    DateTime,
    Enum,
    Integer,
    Numeric,
    String,
    Time,
)
from sqlalchemy.orm import DeclarativeBase, Mapped, mapped_column

BOOKING_CONFIRMED = "confirmed"
BOOKING_CANCELLED = "cancelled"
BOOKING_PENDING = "pending"

PAYMENT_PAID = "paid"
PAYMENT_PENDING = "pending"
PAYMENT_FAILED = "failed"


def utcnow() -> datetime:
    """Naive UTC timestamp, the representation stored in every DateTime column."""

    return datetime.now(timezone.utc).replace(tzinfo=None)


class Base(DeclarativeBase):
    pass


class Flight(Base):
    __tablename__ = "flights"
    __table_args__ = (
        CheckConstraint("total_seats >= 0", name="ck_total_seats_non_negative"),
        CheckConstraint("available_seats >= 0", name="ck_available_non_negative"),
        CheckConstraint("available_seats <= total_seats", name="ck_available_within_total"),
        CheckConstraint("price >= 0", name="ck_price_non_negative"),
        CheckConstraint("source <> destination", name="ck_distinct_route"),
    )

    id: Mapped[int] = mapped_column(primary_key=True)
    flight_number: Mapped[str] = mapped_column(String(10), nullable=False)
    airline: Mapped[str] = mapped_column(String(80), nullable=False)
    source: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    destination: Mapped[str] = mapped_column(String(3), nullable=False, index=True)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False, index=True)
    departure_time: Mapped[time] = mapped_column(Time, nullable=False)
    arrival_date: Mapped[date] = mapped_column(Date, nullable=False)
    arrival_time: Mapped[time] = mapped_column(Time, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    available_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    total_seats: Mapped[int] = mapped_column(Integer, nullable=False)
    duration: Mapped[str] = mapped_column(String(20), nullable=False)
    aircraft: Mapped[str] = mapped_column(String(40), nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, onupdate=utcnow, nullable=True)

    @property
    def route(self) -> str:
        return f"{self.source}-{self.destination}"

    @property
    def is_sold_out(self) -> bool:
        return self.available_seats <= 0


@dataclass(frozen=True)
class FlightSnapshot:
    """Flight fields copied onto a booking at the time it was made."""

    flight_id: int
    flight_number: str
    airline: str
    source: str
    destination: str
    departure_date: date
    departure_time: time
    arrival_date: date
    arrival_time: time
    price: float
    aircraft: str


class FlightBooking(Base):
    """A seat booked by one user.

    Flight fields are denormalized onto the row so a booking keeps describing
    the trip that was sold even after the inventory record is edited or
    deleted. ``flight_id`` is therefore a plain reference, not a foreign key.
    """

    __tablename__ = "flight_bookings"

    id: Mapped[int] = mapped_column(primary_key=True)
    user_id: Mapped[str] = mapped_column(String(64), nullable=False, index=True)
    flight_id: Mapped[int] = mapped_column(Integer, nullable=False, index=True)
    flight_number: Mapped[str] = mapped_column(String(10), nullable=False)
    airline: Mapped[str] = mapped_column(String(80), nullable=False)
    source: Mapped[str] = mapped_column(String(3), nullable=False)
    destination: Mapped[str] = mapped_column(String(3), nullable=False)
    departure_date: Mapped[date] = mapped_column(Date, nullable=False)
    departure_time: Mapped[time] = mapped_column(Time, nullable=False)
    arrival_date: Mapped[date] = mapped_column(Date, nullable=False)
    arrival_time: Mapped[time] = mapped_column(Time, nullable=False)
    price: Mapped[float] = mapped_column(Numeric(10, 2, asdecimal=False), nullable=False)
    aircraft: Mapped[str] = mapped_column(String(40), nullable=False)
    seat_number: Mapped[str] = mapped_column(String(4), nullable=False)
    passenger_name: Mapped[str] = mapped_column(String(120), nullable=False)
    passenger_email: Mapped[str] = mapped_column(String(120), nullable=False)
    status: Mapped[str] = mapped_column(
        Enum(BOOKING_CONFIRMED, BOOKING_CANCELLED, BOOKING_PENDING, name="booking_status"),
        default=BOOKING_CONFIRMED,
        nullable=False,
    )
    payment_status: Mapped[str] = mapped_column(
        Enum(PAYMENT_PAID, PAYMENT_PENDING, PAYMENT_FAILED, name="payment_status"),
        default=PAYMENT_PENDING,
        nullable=False,
    )
    booking_date: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=utcnow, nullable=False)
    updated_at: Mapped[datetime | None] = mapped_column(DateTime, onupdate=utcnow, nullable=True)

    @classmethod
    def from_flight(
        cls,
        flight: Flight,
        *,
        user_id: str,
        seat_number: str,
        passenger_name: str,
        passenger_email: str,
    ) -> "FlightBooking":
        return cls(
            user_id=user_id,
            flight_id=flight.id,
            flight_number=flight.flight_number,
            airline=flight.airline,
            source=flight.source,
            destination=flight.destination,
            departure_date=flight.departure_date,
            departure_time=flight.departure_time,
            arrival_date=flight.arrival_date,
            arrival_time=flight.arrival_time,
            price=flight.price,
            aircraft=flight.aircraft,
            seat_number=seat_number,
            passenger_name=passenger_name,
            passenger_email=passenger_email,
        )

    @property
    def flight(self) -> FlightSnapshot:
        return FlightSnapshot(
            flight_id=self.flight_id,
            flight_number=self.flight_number,
            airline=self.airline,
            source=self.source,
            destination=self.destination,
            departure_date=self.departure_date,
            departure_time=self.departure_time,
            arrival_date=self.arrival_date,
            arrival_time=self.arrival_time,
            price=self.price,
            aircraft=self.aircraft,
        )

    @property
    def is_cancelled(self) -> bool:
        return self.status == BOOKING_CANCELLED
