from __future__ import annotations

import itertools
import json
import tempfile
from pathlib import Path
from typing import Any, Dict, Optional, Tuple

import pytest

from flight_booking import auth_provider
from flight_booking.auth_provider import (
    SIGNED_IN,
    SIGNED_OUT,
    AuthSession,
    AuthStateChannel,
    AuthUser,
)
from flight_booking.catalog import seed_catalog
from flight_booking.database import create_session_factory
from flight_booking.errors import BackendError
from flight_booking.identity import IdentityAdapter
from flight_booking.models import Base

PASSWORD = "Password123"


class FakeResponse:
    def __init__(self, status_code, payload=None):
        self.status_code = status_code
        self._payload = payload
        self.content = b"" if payload is None else json.dumps(payload).encode()

    def json(self):
        if self._payload is None:
            raise ValueError("no body")
        return self._payload


class Transport:
    """Replays canned responses in place of ``requests.request`` and records the calls."""

    def __init__(self, *responses):
        self.responses = list(responses)
        self.requests = []

    def __call__(self, method, url, headers=None, json=None, timeout=None):
        self.requests.append({"method": method, "url": url, "headers": headers, "json": json, "timeout": timeout})
        response = self.responses.pop(0)
        if isinstance(response, Exception):
            raise response
        return response


def make_session_factory():
    db_file = Path(tempfile.mkstemp(prefix="flight-booking-test", suffix=".db")[1])
    engine, session_factory = create_session_factory(f"sqlite+pysqlite:///{db_file}")
    Base.metadata.create_all(engine)
    return session_factory


class AccountDirectory:
    """Server-side state of the fake identity service, shared by its clients."""

    def __init__(self) -> None:
        self.accounts: Dict[str, Tuple[str, AuthUser]] = {}
        self.tokens: Dict[str, str] = {}
        self.unavailable = False
        self._ids = itertools.count(1)

    def register(
        self,
        email: str,
        password: str = PASSWORD,
        *,
        first_name: str = "",
        last_name: str = "",
        admin: bool = False,
    ) -> AuthUser:
        user = AuthUser(
            id=f"user-{next(self._ids)}",
            email=email,
            user_metadata={"first_name": first_name, "last_name": last_name},
            app_metadata={"role": "admin"} if admin else {},
        )
        self.accounts[email] = (password, user)
        return user

    def issue_token(self, email: str) -> str:
        token = f"token-{next(self._ids)}"
        self.tokens[token] = email
        return token


class FakeIdentityProvider:
    """In-memory stand-in for the hosted identity service."""

    def __init__(self, directory: AccountDirectory) -> None:
        self.directory = directory
        self._session: Optional[AuthSession] = None
        self._channel = AuthStateChannel()
        self.calls = []

    def _check_available(self) -> None:
        if self.directory.unavailable:
            raise BackendError("identity provider unreachable")

    def get_session(self) -> Optional[AuthSession]:
        return self._session

    def get_user(self) -> Optional[AuthUser]:
        return None if self._session is None else self._session.user

    def set_session(self, access_token: str, refresh_token: str = "") -> Optional[AuthSession]:
        self._check_available()
        email = self.directory.tokens.get(access_token)
        if email is None:
            raise BackendError("invalid JWT", status_code=401)
        self._session = AuthSession(access_token, refresh_token, self.directory.accounts[email][1])
        return self._session

    def sign_in_with_password(self, email: str, password: str) -> Optional[AuthSession]:
        self.calls.append(("sign_in", email))
        self._check_available()
        account = self.directory.accounts.get(email)
        if account is None or account[0] != password:
            return None
        token = self.directory.issue_token(email)
        self._session = AuthSession(token, f"refresh-{token}", account[1])
        self._channel.emit(SIGNED_IN, self._session)
        return self._session

    def sign_up(
        self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[AuthSession]:
        self.calls.append(("sign_up", email))
        self._check_available()
        if email in self.directory.accounts:
            raise BackendError("User already registered", status_code=422)
        metadata = metadata or {}
        self.directory.register(
            email,
            password,
            first_name=metadata.get("first_name", ""),
            last_name=metadata.get("last_name", ""),
        )
        return self.sign_in_with_password(email, password)

    def sign_out(self) -> None:
        if self._session is None:
            return
        self.directory.tokens.pop(self._session.access_token, None)
        self._session = None
        self._channel.emit(SIGNED_OUT, None)

    def on_auth_state_change(self, listener):
        return self._channel.subscribe(listener)


@pytest.fixture
def session_factory():
    return make_session_factory()


@pytest.fixture
def seeded_factory(session_factory):
    seed_catalog(session_factory)
    return session_factory


@pytest.fixture
def db(seeded_factory):
    with seeded_factory() as session:
        yield session


@pytest.fixture
def directory():
    accounts = AccountDirectory()
    accounts.register("alice@example.com", first_name="Alice", last_name="Traveler")
    accounts.register("bob@example.com", first_name="Bob", last_name="Flyer")
    accounts.register("admin@example.com", first_name="Admin", last_name="User", admin=True)
    return accounts


@pytest.fixture
def sign_in(directory):
    """Return a factory producing an adapter signed in as ``email``."""

    def _sign_in(email: str, password: str = PASSWORD, notifier=None) -> IdentityAdapter:
        identity = IdentityAdapter(FakeIdentityProvider(directory), notifier)
        assert identity.login(email, password)
        return identity

    return _sign_in


@pytest.fixture
def anonymous(directory):
    return IdentityAdapter(FakeIdentityProvider(directory))


@pytest.fixture
def alice(sign_in):
    return sign_in("alice@example.com")


@pytest.fixture
def bob(sign_in):
    return sign_in("bob@example.com")


@pytest.fixture
def admin(sign_in):
    return sign_in("admin@example.com")


@pytest.fixture
def install(monkeypatch):
    """Route the identity client's HTTP calls to a :class:`Transport`."""

    def _install(*responses):
        transport = Transport(*responses)
        monkeypatch.setattr(auth_provider.requests, "request", transport)
        return transport

    return _install
