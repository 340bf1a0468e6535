from __future__ import annotations

from datetime import date

import pytest
from sqlalchemy.exc import OperationalError

from flight_booking.catalog import SEED_FLIGHTS
from flight_booking.errors import ValidationError
from flight_booking.notifications import Notifier
from flight_booking.search import get_flight_by_id, list_flights, search_flights


def test_blank_filters_return_full_catalog_in_order(db):
    flights = search_flights(db, source="", destination="  ", departure_date="")

    assert [flight.flight_number for flight in flights] == [seed["flight_number"] for seed in SEED_FLIGHTS]
    assert [flight.id for flight in flights] == sorted(flight.id for flight in flights)
    assert len(list_flights(db)) == len(SEED_FLIGHTS)


def test_exact_route_and_date_returns_single_flight(db):
    flights = search_flights(db, source="JFK", destination="LAX", departure_date="2025-04-15")

    assert len(flights) == 1
    assert flights[0].flight_number == "IF101"
    assert flights[0].departure_date == date(2025, 4, 15)


def test_codes_are_normalized_before_matching(db):
    flights = search_flights(db, source=" jfk ", destination="lax", departure_date=date(2025, 4, 15))

    assert [flight.flight_number for flight in flights] == ["IF101"]


def test_unmatched_route_returns_empty_list(db):
    assert search_flights(db, source="SYD", destination="HYD") == []


def test_date_filter_is_applied(db):
    assert search_flights(db, source="JFK", destination="LAX", departure_date="2025-04-16") == []

    same_day = search_flights(db, departure_date="2025-04-15")
    assert {flight.flight_number for flight in same_day} == {"IF101", "IF201", "IF301", "IF401", "IF701"}


def test_partial_codes_do_not_match(db):
    assert search_flights(db, source="J") == []
    assert search_flights(db, destination="LA") == []


def test_source_only_filter(db):
    flights = search_flights(db, source="HYD")

    assert [flight.flight_number for flight in flights] == ["IF401", "IF402"]


def test_invalid_date_is_rejected(db):
    with pytest.raises(ValidationError) as excinfo:
        search_flights(db, departure_date="15/04/2025")

    assert "date" in excinfo.value.errors


def test_get_flight_by_id(db):
    flight = search_flights(db, source="JFK", destination="LAX")[0]

    assert get_flight_by_id(db, flight.id).flight_number == "IF101"
    assert get_flight_by_id(db, 987654) is None


def test_backend_failure_resolves_to_empty_list(db, monkeypatch):
    def broken(*args, **kwargs):
        raise OperationalError("SELECT", {}, Exception("database is locked"))

    monkeypatch.setattr(db, "scalars", broken)
    notifier = Notifier()

    assert search_flights(db, source="JFK", notifier=notifier) == []
    assert [notice.message for notice in notifier.notices] == ["Failed to search flights"]
