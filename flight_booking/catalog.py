"""Static reference data: cities served and the seed flight inventory."""
from __future__ import annotations

import logging
import random
from dataclasses import dataclass
from datetime import date, datetime, time, timedelta
from typing import Dict, List, Optional, Sequence

from sqlalchemy import func, select
from sqlalchemy.orm import Session, sessionmaker

from .database import session_scope
from .models import Flight

logger = logging.getLogger(__name__)

DEFAULT_AIRLINE = "IFHE AIRLINES"


@dataclass(frozen=True)
class City:
    code: str
    name: str
    country: str


CITIES: Sequence[City] = (
    City("JFK", "New York", "United States"),
    City("LAX", "Los Angeles", "United States"),
    City("ORD", "Chicago", "United States"),
    City("SFO", "San Francisco", "United States"),
    City("LHR", "London", "United Kingdom"),
    City("CDG", "Paris", "France"),
    City("DXB", "Dubai", "United Arab Emirates"),
    City("HND", "Tokyo", "Japan"),
    City("SIN", "Singapore", "Singapore"),
    City("SYD", "Sydney", "Australia"),
    City("DEL", "Delhi", "India"),
    City("BOM", "Mumbai", "India"),
    City("HYD", "Hyderabad", "India"),
)

_CITIES_BY_CODE: Dict[str, City] = {city.code: city for city in CITIES}

AIRCRAFT = ("Airbus A320", "Airbus A350", "Boeing 737", "Boeing 787", "Boeing 777")


def get_city(code: str) -> Optional[City]:
    return _CITIES_BY_CODE.get(code.strip().upper())


def city_label(code: str) -> str:
    """``"New York (JFK)"`` for known codes, the bare code otherwise."""

    city = get_city(code)
    if city is None:
        return code
    return f"{city.name} ({city.code})"


def format_duration(minutes: int) -> str:
    return f"{minutes // 60}h {minutes % 60}m"


def _seed(
    flight_number: str,
    source: str,
    destination: str,
    departure: str,
    minutes: int,
    price: float,
    aircraft: str,
    *,
    total_seats: int = 180,
    available_seats: Optional[int] = None,
) -> Dict[str, object]:
    leaves = datetime.fromisoformat(departure)
    lands = leaves + timedelta(minutes=minutes)
    return {
        "flight_number": flight_number,
        "airline": DEFAULT_AIRLINE,
        "source": source,
        "destination": destination,
        "departure_date": leaves.date(),
        "departure_time": leaves.time(),
        "arrival_date": lands.date(),
        "arrival_time": lands.time(),
        "price": price,
        "available_seats": total_seats if available_seats is None else available_seats,
        "total_seats": total_seats,
        "duration": format_duration(minutes),
        "aircraft": aircraft,
    }


# Arrival times are computed in the departure city's clock.
SEED_FLIGHTS: Sequence[Dict[str, object]] = (
    _seed("IF101", "JFK", "LAX", "2025-04-15T08:00", 360, 299.0, "Boeing 737", available_seats=42),
    _seed("IF102", "LAX", "JFK", "2025-04-16T09:30", 330, 319.0, "Boeing 737", available_seats=57),
    _seed("IF201", "LHR", "JFK", "2025-04-15T11:00", 480, 649.0, "Boeing 787", total_seats=250, available_seats=88),
    _seed("IF202", "JFK", "LHR", "2025-04-18T19:45", 420, 629.0, "Boeing 787", total_seats=250, available_seats=12),
    _seed("IF301", "DXB", "SIN", "2025-04-15T02:15", 445, 549.0, "Airbus A350", total_seats=300, available_seats=150),
    _seed("IF401", "HYD", "DEL", "2025-04-15T06:10", 130, 89.0, "Airbus A320", available_seats=0),
    _seed("IF402", "HYD", "BOM", "2025-04-17T14:20", 85, 69.0, "Airbus A320", available_seats=96),
    _seed("IF501", "CDG", "HND", "2025-04-20T21:00", 830, 899.0, "Boeing 777", total_seats=320, available_seats=201),
    _seed("IF601", "SFO", "SYD", "2025-04-21T22:30", 880, 1099.0, "Boeing 777", total_seats=320, available_seats=64),
    _seed("IF701", "ORD", "SFO", "2025-04-15T13:05", 280, 189.0, "Boeing 737", available_seats=23),
)


def seed_catalog(session_factory: sessionmaker[Session]) -> int:
    """Load :data:`SEED_FLIGHTS` into an empty inventory.

    Returns the number of flights inserted; an inventory that already holds
    flights is left untouched.
    """

    with session_scope(session_factory) as session:
        existing = session.scalar(select(func.count(Flight.id)))
        if existing:
            logger.info("Inventory already holds %d flights; skipping seed", existing)
            return 0
        session.add_all(Flight(**fields) for fields in SEED_FLIGHTS)
    logger.info("Seeded %d catalog flights", len(SEED_FLIGHTS))
    return len(SEED_FLIGHTS)


def _random_departure(rng: random.Random, start: date) -> datetime:
    day = start + timedelta(days=rng.randint(1, 30))
    return datetime.combine(day, time(hour=rng.randint(5, 22), minute=rng.choice((0, 15, 30, 45))))


def generate_sample_flights(
    session_factory: sessionmaker[Session],
    *,
    flights: int = 25,
    start: Optional[date] = None,
) -> List[int]:
    """Populate the inventory with deterministic pseudo-random flights."""

    rng = random.Random(42)
    start = start or date.today()
    codes = [city.code for city in CITIES]
    created: List[Flight] = []
    with session_scope(session_factory) as session:
        for index in range(flights):
            source, destination = rng.sample(codes, 2)
            leaves = _random_departure(rng, start)
            minutes = rng.randint(6, 72) * 10
            lands = leaves + timedelta(minutes=minutes)
            total = rng.choice((120, 180, 250))
            flight = Flight(
                flight_number=f"IF{2000 + index}",
                airline=DEFAULT_AIRLINE,
                source=source,
                destination=destination,
                departure_date=leaves.date(),
                departure_time=leaves.time(),
                arrival_date=lands.date(),
                arrival_time=lands.time(),
                price=float(rng.choice((79, 129, 199, 349, 599, 899))),
                available_seats=rng.randint(0, total),
                total_seats=total,
                duration=format_duration(minutes),
                aircraft=rng.choice(AIRCRAFT),
            )
            session.add(flight)
            created.append(flight)
        session.flush()
        ids = [flight.id for flight in created]
    logger.info("Generated %d sample flights", len(ids))
    return ids
