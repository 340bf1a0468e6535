"""Client for the hosted identity provider (GoTrue-compatible REST API)."""
from __future__ import annotations

import itertools
import logging
import time
from dataclasses import dataclass, field
from typing import Any, Callable, Dict, Optional, Protocol

import requests

from .errors import BackendError

logger = logging.getLogger(__name__)

SIGNED_IN = "SIGNED_IN"
SIGNED_OUT = "SIGNED_OUT"
TOKEN_REFRESHED = "TOKEN_REFRESHED"

# Refresh a session this many seconds before the provider would reject it.
EXPIRY_MARGIN_SECONDS = 10


@dataclass
class AuthUser:
    id: str
    email: str
    user_metadata: Dict[str, Any] = field(default_factory=dict)
    app_metadata: Dict[str, Any] = field(default_factory=dict)

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthUser":
        return cls(
            id=str(payload["id"]),
            email=payload.get("email") or "",
            user_metadata=dict(payload.get("user_metadata") or {}),
            app_metadata=dict(payload.get("app_metadata") or {}),
        )


@dataclass
class AuthSession:
    access_token: str
    refresh_token: str
    user: AuthUser
    expires_at: Optional[float] = None

    @classmethod
    def from_payload(cls, payload: Dict[str, Any]) -> "AuthSession":
        expires_at = payload.get("expires_at")
        if expires_at is None and payload.get("expires_in") is not None:
            expires_at = time.time() + float(payload["expires_in"])
        return cls(
            access_token=payload["access_token"],
            refresh_token=payload.get("refresh_token") or "",
            user=AuthUser.from_payload(payload["user"]),
            expires_at=None if expires_at is None else float(expires_at),
        )

    def expires_soon(self, margin: float = EXPIRY_MARGIN_SECONDS) -> bool:
        if self.expires_at is None:
            return False
        return self.expires_at - time.time() <= margin


AuthListener = Callable[[str, Optional[AuthSession]], None]


@dataclass
class Subscription:
    """Handle returned by :meth:`IdentityProvider.on_auth_state_change`."""

    id: int
    _cancel: Callable[[int], None]

    def unsubscribe(self) -> None:
        self._cancel(self.id)


class AuthStateChannel:
    """Fan-out of auth state changes to registered listeners."""

    def __init__(self) -> None:
        self._listeners: Dict[int, AuthListener] = {}
        self._ids = itertools.count(1)

    def subscribe(self, listener: AuthListener) -> Subscription:
        subscription_id = next(self._ids)
        self._listeners[subscription_id] = listener
        return Subscription(subscription_id, self._cancel)

    def _cancel(self, subscription_id: int) -> None:
        self._listeners.pop(subscription_id, None)

    def emit(self, event: str, session: Optional[AuthSession]) -> None:
        logger.debug("auth state change: %s", event)
        for listener in list(self._listeners.values()):
            try:
                listener(event, session)
            except Exception:
                logger.exception("Auth state listener failed on %s", event)


class IdentityProvider(Protocol):
    """Operations the application consumes from the identity provider."""

    def get_session(self) -> Optional[AuthSession]: ...

    def get_user(self) -> Optional[AuthUser]: ...

    def set_session(self, access_token: str, refresh_token: str = "") -> Optional[AuthSession]: ...

    def sign_in_with_password(self, email: str, password: str) -> Optional[AuthSession]: ...

    def sign_up(
        self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[AuthSession]: ...

    def sign_out(self) -> None: ...

    def on_auth_state_change(self, listener: AuthListener) -> Subscription: ...


class RestIdentityProvider:
    """Talks to ``/auth/v1`` of a hosted identity service.

    The client is the single holder of session state: the tokens it receives
    stay in memory on this object and nowhere else.
    """

    def __init__(self, base_url: str, api_key: str, *, timeout: float = 30.0) -> None:
        self.base_url = base_url.rstrip("/")
        self.api_key = api_key
        self.timeout = timeout
        self._session: Optional[AuthSession] = None
        self._channel = AuthStateChannel()

    def _request(
        self,
        method: str,
        path: str,
        *,
        json: Optional[Dict[str, Any]] = None,
        access_token: Optional[str] = None,
    ) -> Dict[str, Any]:
        url = f"{self.base_url}/auth/v1/{path}"
        headers = {"apikey": self.api_key, "Content-Type": "application/json"}
        if access_token:
            headers["Authorization"] = f"Bearer {access_token}"
        try:
            response = requests.request(method, url, headers=headers, json=json, timeout=self.timeout)
        except requests.RequestException as exc:
            raise BackendError(f"Identity provider unreachable: {exc}") from exc
        if response.status_code >= 400:
            raise BackendError(_error_message(response), status_code=response.status_code)
        if not response.content:
            return {}
        return response.json()

    def _establish(self, payload: Dict[str, Any], event: str) -> AuthSession:
        self._session = AuthSession.from_payload(payload)
        self._channel.emit(event, self._session)
        return self._session

    def _drop_session(self) -> None:
        had_session = self._session is not None
        self._session = None
        if had_session:
            self._channel.emit(SIGNED_OUT, None)

    def sign_in_with_password(self, email: str, password: str) -> Optional[AuthSession]:
        """Return a new session, or ``None`` when the credentials are rejected."""

        try:
            payload = self._request(
                "POST", "token?grant_type=password", json={"email": email, "password": password}
            )
        except BackendError as exc:
            if exc.status_code in (400, 401):
                logger.info("Sign-in rejected for %s", email)
                return None
            raise
        logger.info("Signed in %s", email)
        return self._establish(payload, SIGNED_IN)

    def sign_up(
        self, email: str, password: str, metadata: Optional[Dict[str, Any]] = None
    ) -> Optional[AuthSession]:
        """Register an account.

        Returns the session when the provider signs the new user in straight
        away, ``None`` when it first requires email confirmation.
        """

        payload = self._request(
            "POST", "signup", json={"email": email, "password": password, "data": metadata or {}}
        )
        logger.info("Registered %s", email)
        if "access_token" not in payload:
            return None
        return self._establish(payload, SIGNED_IN)

    def refresh_session(self) -> Optional[AuthSession]:
        if self._session is None or not self._session.refresh_token:
            return None
        try:
            payload = self._request(
                "POST",
                "token?grant_type=refresh_token",
                json={"refresh_token": self._session.refresh_token},
            )
        except BackendError:
            logger.warning("Session refresh failed; signing out", exc_info=True)
            self._drop_session()
            return None
        return self._establish(payload, TOKEN_REFRESHED)

    def get_session(self) -> Optional[AuthSession]:
        if self._session is not None and self._session.expires_soon():
            return self.refresh_session()
        return self._session

    def get_user(self) -> Optional[AuthUser]:
        session = self.get_session()
        if session is None:
            return None
        payload = self._request("GET", "user", access_token=session.access_token)
        session.user = AuthUser.from_payload(payload)
        return session.user

    def set_session(self, access_token: str, refresh_token: str = "") -> Optional[AuthSession]:
        """Adopt tokens stored by the presentation layer (e.g. cookies)."""

        try:
            payload = self._request("GET", "user", access_token=access_token)
        except BackendError as exc:
            if exc.status_code != 401 or not refresh_token:
                raise
            self._session = AuthSession(access_token, refresh_token, AuthUser(id="", email=""), expires_at=0)
            return self.refresh_session()
        self._session = AuthSession(access_token, refresh_token, AuthUser.from_payload(payload))
        return self._session

    def sign_out(self) -> None:
        session = self._session
        if session is not None:
            try:
                self._request("POST", "logout", access_token=session.access_token)
            except BackendError:
                logger.warning("Provider logout failed; clearing local session", exc_info=True)
        self._drop_session()

    def on_auth_state_change(self, listener: AuthListener) -> Subscription:
        return self._channel.subscribe(listener)


def _error_message(response: requests.Response) -> str:
    try:
        body = response.json()
    except ValueError:
        body = {}
    if isinstance(body, dict):
        for key in ("error_description", "msg", "message", "error"):
            if body.get(key):
                return str(body[key])
    return f"Identity provider request failed with status {response.status_code}"
