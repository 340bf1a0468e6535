from __future__ import annotations

import pytest
from fastapi.testclient import TestClient
from sqlalchemy import select

from flight_booking import web
from flight_booking.auth_provider import RestIdentityProvider
from flight_booking.config import Settings
from flight_booking.models import Flight, FlightBooking

from conftest import PASSWORD, FakeIdentityProvider, FakeResponse


@pytest.fixture
def client(seeded_factory, directory):
    app = web.create_app(
        Settings(seed_catalog=False),
        session_factory=seeded_factory,
        provider_factory=lambda: FakeIdentityProvider(directory),
    )
    return TestClient(app)


def _flight_id(session_factory, flight_number):
    with session_factory() as session:
        return session.scalars(select(Flight.id).where(Flight.flight_number == flight_number)).one()


def _login(client, email="alice@example.com"):
    response = client.post("/auth/login", data={"email": email, "password": PASSWORD}, follow_redirects=False)
    assert response.status_code == 303
    return response


def test_index_lists_catalog(client):
    response = client.get("/")

    assert response.status_code == 200
    assert "All flights" in response.text
    assert "IF101" in response.text
    assert "IF601" in response.text


def test_index_search_filters_results(client):
    response = client.get("/", params={"source": "JFK", "destination": "LAX", "date": "2025-04-15"})

    assert response.status_code == 200
    assert "Search results" in response.text
    assert "IF101" in response.text
    assert "IF201" not in response.text


def test_index_reports_bad_date(client):
    response = client.get("/", params={"date": "April 15"})

    assert response.status_code == 200
    assert "is not a YYYY-MM-DD date" in response.text
    assert "No flights found" in response.text


def test_protected_pages_redirect_to_auth(client, seeded_factory):
    for path in ("/bookings", "/admin", f"/booking/{_flight_id(seeded_factory, 'IF101')}"):
        response = client.get(path, follow_redirects=False)
        assert response.status_code == 303
        assert response.headers["location"] == "/auth"


def test_login_sets_session_cookie(client):
    response = _login(client)

    assert response.headers["location"] == "/"
    assert web.ACCESS_COOKIE in response.cookies
    home = client.get("/")
    assert "Alice Traveler" in home.text
    assert "Successfully logged in!" in home.text
    assert client.get("/auth", follow_redirects=False).headers["location"] == "/"
    assert client.get("/login", follow_redirects=False).headers["location"] == "/"


def test_failed_login_renders_form(client):
    response = client.post("/auth/login", data={"email": "alice@example.com", "password": "Wrong1234"})

    assert response.status_code == 401
    assert "Invalid email or password" in response.text


def test_login_and_signup_aliases(client):
    assert client.get("/login", follow_redirects=False).headers["location"] == "/auth?view=login"
    assert client.get("/signup", follow_redirects=False).headers["location"] == "/auth?view=signup"
    assert "Create an account" in client.get("/auth", params={"view": "signup"}).text


def test_signup_then_book_and_cancel(client, seeded_factory):
    signup = client.post(
        "/auth/signup",
        data={"first_name": "Carol", "last_name": "Jet", "email": "carol@example.com", "password": "Secret123"},
        follow_redirects=False,
    )
    assert signup.headers["location"] == "/"

    flight_id = _flight_id(seeded_factory, "IF101")
    page = client.get(f"/booking/{flight_id}")
    assert page.status_code == 200
    assert "Confirm booking" in page.text

    booked = client.post(f"/booking/{flight_id}", follow_redirects=False)
    assert booked.headers["location"] == "/bookings"

    listing = client.get("/bookings")
    assert "Flight booked successfully!" in listing.text
    assert "IF101" in listing.text

    with seeded_factory() as session:
        booking = session.scalars(select(FlightBooking)).one()
    assert booking.passenger_email == "carol@example.com"

    client.post(f"/bookings/{booking.id}/cancel")
    with seeded_factory() as session:
        assert session.get(FlightBooking, booking.id).status == "cancelled"


def test_sold_out_booking_is_refused(client, seeded_factory):
    _login(client)

    response = client.post(f"/booking/{_flight_id(seeded_factory, 'IF401')}")

    assert response.status_code == 409
    assert "No seats available on this flight" in response.text


def test_unknown_flight_page_is_404(client):
    _login(client)

    response = client.get("/booking/999999")

    assert response.status_code == 404
    assert "Page not found" in response.text


def test_unknown_route_is_404(client):
    response = client.get("/no/such/page")

    assert response.status_code == 404
    assert "Oops! Page not found." in response.text


def test_admin_requires_admin_role(client):
    _login(client)

    response = client.get("/admin", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/"


def test_admin_creates_and_deletes_flights(client, seeded_factory):
    _login(client, "admin@example.com")
    assert client.get("/admin").status_code == 200

    form = {
        "flight_number": "IF950",
        "airline": "IFHE AIRLINES",
        "source": "SIN",
        "destination": "SYD",
        "departure_date": "2025-06-01",
        "departure_time": "09:00",
        "arrival_date": "2025-06-01",
        "arrival_time": "19:30",
        "price": "720",
        "total_seats": "250",
        "available_seats": "250",
        "duration": "8h 30m",
        "aircraft": "Airbus A350",
    }
    created = client.post("/admin/flights", data=form, follow_redirects=False)
    assert created.status_code == 303

    flight_id = _flight_id(seeded_factory, "IF950")
    assert "Edit flight IF950" in client.get("/admin", params={"edit": flight_id}).text

    client.post(f"/admin/flights/{flight_id}", data={**form, "price": "680"})
    with seeded_factory() as session:
        assert session.get(Flight, flight_id).price == 680.0

    client.post(f"/admin/flights/{flight_id}/delete")
    with seeded_factory() as session:
        assert session.get(Flight, flight_id) is None


def test_admin_form_errors_are_shown(client):
    _login(client, "admin@example.com")

    response = client.post("/admin/flights", data={"flight_number": "IF951", "source": "SIN", "destination": "SIN"})

    assert response.status_code == 400
    assert "must differ from source" in response.text


def test_non_admin_cannot_post_inventory_changes(client, seeded_factory):
    _login(client)
    flight_id = _flight_id(seeded_factory, "IF101")

    response = client.post(f"/admin/flights/{flight_id}/delete", follow_redirects=False)

    assert response.headers["location"] == "/"
    with seeded_factory() as session:
        assert session.get(Flight, flight_id) is not None


def test_export_inventory_csv(client):
    _login(client, "admin@example.com")

    response = client.get("/admin/export/csv")

    assert response.status_code == 200
    assert response.headers["content-type"].startswith("text/csv")
    assert response.text.splitlines()[0].startswith("id,flight_number,airline,duration")
    assert "IF101" in response.text


def test_export_inventory_excel(client):
    _login(client, "admin@example.com")

    response = client.get("/admin/export/xlsx")

    assert response.status_code == 200
    assert response.content[:2] == b"PK"


def test_logout_clears_cookies(client):
    _login(client)

    client.post("/auth/logout")

    response = client.get("/bookings", follow_redirects=False)
    assert response.status_code == 303
    assert response.headers["location"] == "/auth"


TRAVELER = {
    "id": "7d1e0a42",
    "email": "alice@example.com",
    "user_metadata": {"first_name": "Alice", "last_name": "Traveler"},
    "app_metadata": {"provider": "email"},
}


def _rest_client(session_factory):
    """A client whose stored tokens are checked against the HTTP identity service."""

    app = web.create_app(
        Settings(seed_catalog=False),
        session_factory=session_factory,
        provider_factory=lambda: RestIdentityProvider("https://auth.example.test", "anon-key"),
    )
    client = TestClient(app)
    client.cookies.set(web.ACCESS_COOKIE, "access-1")
    client.cookies.set(web.REFRESH_COOKIE, "refresh-1")
    return client


def _cookie_headers(response, name):
    return [header for header in response.headers.get_list("set-cookie") if header.startswith(f"{name}=")]


def test_identity_outage_keeps_stored_session(seeded_factory, install):
    install(FakeResponse(503, {"msg": "upstream unavailable"}))
    client = _rest_client(seeded_factory)

    response = client.get("/")

    assert response.status_code == 200
    assert _cookie_headers(response, web.ACCESS_COOKIE) == []
    assert _cookie_headers(response, web.REFRESH_COOKIE) == []
    assert client.cookies.get(web.ACCESS_COOKIE) == "access-1"


def test_rejected_session_clears_cookies(seeded_factory, install):
    install(
        FakeResponse(401, {"msg": "JWT expired"}),
        FakeResponse(400, {"error_description": "Refresh Token Not Found"}),
    )
    client = _rest_client(seeded_factory)

    response = client.get("/")

    assert response.status_code == 200
    cleared = _cookie_headers(response, web.ACCESS_COOKIE)
    assert len(cleared) == 1 and "Max-Age=0" in cleared[0]


def test_refreshed_tokens_survive_guard_redirect(seeded_factory, install):
    transport = install(
        FakeResponse(401, {"msg": "JWT expired"}),
        FakeResponse(
            200,
            {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 3600, "user": TRAVELER},
        ),
    )
    client = _rest_client(seeded_factory)

    response = client.get("/admin", follow_redirects=False)

    assert response.status_code == 303
    assert response.headers["location"] == "/"
    assert transport.requests[1]["url"].endswith("/auth/v1/token?grant_type=refresh_token")
    assert response.cookies[web.ACCESS_COOKIE] == "access-2"
    assert response.cookies[web.REFRESH_COOKIE] == "refresh-2"


def test_refreshed_tokens_survive_not_found_page(seeded_factory, install):
    install(
        FakeResponse(401, {"msg": "JWT expired"}),
        FakeResponse(
            200,
            {"access_token": "access-2", "refresh_token": "refresh-2", "expires_in": 3600, "user": TRAVELER},
        ),
    )
    client = _rest_client(seeded_factory)

    response = client.get("/booking/999999")

    assert response.status_code == 404
    assert "Alice Traveler" in response.text
    assert response.cookies[web.ACCESS_COOKIE] == "access-2"
