"""Session/identity adapter used by the services and the web layer."""
from __future__ import annotations

import logging
import re
from dataclasses import dataclass
from typing import Callable, Optional

from .auth_provider import AuthSession, AuthUser, IdentityProvider
from .errors import BackendError, ForbiddenError, UnauthenticatedError
from .notifications import Notifier, notify

logger = logging.getLogger(__name__)

_EMAIL_RE = re.compile(r"^[^\s@]+@[^\s@]+\.[^\s@]+$")
_PASSWORD_RE = re.compile(r"^(?=.*[a-z])(?=.*[A-Z])(?=.*\d)[a-zA-Z\d]{8,}$")

GUEST_NAME = "Guest User"


def validate_email(email: str) -> bool:
    return bool(_EMAIL_RE.match(email))


def validate_password(password: str) -> bool:
    """At least 8 letters/digits with an upper-case, a lower-case and a digit."""

    return bool(_PASSWORD_RE.match(password))


@dataclass(frozen=True)
class User:
    id: str
    email: str
    first_name: str = ""
    last_name: str = ""
    is_admin: bool = False

    @property
    def display_name(self) -> str:
        return " ".join(part for part in (self.first_name, self.last_name) if part)

    @classmethod
    def from_auth_user(cls, auth_user: AuthUser) -> "User":
        profile = auth_user.user_metadata
        # app_metadata is writable by the service only, unlike user_metadata.
        claims = auth_user.app_metadata
        return cls(
            id=auth_user.id,
            email=auth_user.email,
            first_name=str(profile.get("first_name") or ""),
            last_name=str(profile.get("last_name") or ""),
            is_admin=claims.get("role") == "admin" or claims.get("is_admin") is True,
        )


UserListener = Callable[[str, Optional[User]], None]


class IdentityAdapter:
    """Read-through view of the provider's session.

    Nothing is cached here; every question is answered from the provider so
    there is exactly one source of truth for who is signed in.
    """

    def __init__(self, provider: IdentityProvider, notifier: Optional[Notifier] = None) -> None:
        self.provider = provider
        self.notifier = notifier

    def current_session(self) -> Optional[AuthSession]:
        try:
            return self.provider.get_session()
        except BackendError:
            logger.exception("Could not read the current session")
            return None

    def current_user(self) -> Optional[User]:
        session = self.current_session()
        if session is None:
            return None
        return User.from_auth_user(session.user)

    def is_authenticated(self) -> bool:
        return self.current_user() is not None

    def is_admin(self) -> bool:
        user = self.current_user()
        return user is not None and user.is_admin

    def require_user(self) -> User:
        user = self.current_user()
        if user is None:
            raise UnauthenticatedError("sign in required")
        return user

    def require_admin(self) -> User:
        user = self.require_user()
        if not user.is_admin:
            raise ForbiddenError("administrator role required")
        return user

    def login(self, email: str, password: str) -> bool:
        email = email.strip()
        if not validate_email(email) or not password:
            notify(self.notifier, "error", "Invalid email or password")
            return False
        try:
            session = self.provider.sign_in_with_password(email, password)
        except BackendError as exc:
            logger.exception("Sign-in failed for %s", email)
            notify(self.notifier, "error", str(exc))
            return False
        if session is None:
            notify(self.notifier, "error", "Invalid email or password")
            return False
        user = User.from_auth_user(session.user)
        notify(self.notifier, "success", "Administrator logged in!" if user.is_admin else "Successfully logged in!")
        return True

    def signup(self, first_name: str, last_name: str, email: str, password: str) -> bool:
        email = email.strip()
        if not first_name.strip():
            notify(self.notifier, "error", "First name is required")
            return False
        if not validate_email(email):
            notify(self.notifier, "error", "Please enter a valid email address")
            return False
        if not validate_password(password):
            notify(
                self.notifier,
                "error",
                "Password must be at least 8 characters with an uppercase letter, "
                "a lowercase letter and a number",
            )
            return False
        metadata = {"first_name": first_name.strip(), "last_name": last_name.strip()}
        try:
            session = self.provider.sign_up(email, password, metadata)
        except BackendError as exc:
            logger.exception("Sign-up failed for %s", email)
            notify(self.notifier, "error", str(exc))
            return False
        if session is None:
            notify(self.notifier, "info", "Check your email to confirm your account")
        else:
            notify(self.notifier, "success", "Account created successfully!")
        return True

    def logout(self) -> None:
        self.provider.sign_out()
        notify(self.notifier, "success", "Logged out successfully")

    def subscribe(self, listener: UserListener) -> Callable[[], None]:
        """Call ``listener(event, user)`` on sign-in, sign-out and token refresh.

        Returns a function that cancels the subscription.
        """

        def forward(event: str, session: Optional[AuthSession]) -> None:
            listener(event, None if session is None else User.from_auth_user(session.user))

        subscription = self.provider.on_auth_state_change(forward)
        return subscription.unsubscribe
