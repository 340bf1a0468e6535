"""Application configuration read from the environment."""
from __future__ import annotations

import logging
import os
from dataclasses import dataclass
from typing import Mapping, Optional

from dotenv import load_dotenv

from .database import DEFAULT_DATABASE_URL

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

_TRUTHY = {"1", "true", "yes", "on"}


@dataclass(frozen=True)
class Settings:
    database_url: str = DEFAULT_DATABASE_URL
    auth_url: str = "http://localhost:54321"
    auth_api_key: str = ""
    auth_timeout: float = 30.0
    log_level: str = "INFO"
    seed_catalog: bool = True


def load_settings(environ: Optional[Mapping[str, str]] = None) -> Settings:
    """Build :class:`Settings` from ``FLIGHT_BOOKING_*`` variables.

    When ``environ`` is omitted the process environment is used, after
    loading a ``.env`` file from the working directory if one exists.
    """

    if environ is None:
        load_dotenv()
        environ = os.environ
    defaults = Settings()
    return Settings(
        database_url=environ.get("FLIGHT_BOOKING_DATABASE_URL", defaults.database_url),
        auth_url=environ.get("FLIGHT_BOOKING_AUTH_URL", defaults.auth_url).rstrip("/"),
        auth_api_key=environ.get("FLIGHT_BOOKING_AUTH_KEY", defaults.auth_api_key),
        auth_timeout=float(environ.get("FLIGHT_BOOKING_AUTH_TIMEOUT", defaults.auth_timeout)),
        log_level=environ.get("FLIGHT_BOOKING_LOG_LEVEL", defaults.log_level).upper(),
        seed_catalog=environ.get("FLIGHT_BOOKING_SEED_CATALOG", "1").strip().lower() in _TRUTHY,
    )


def configure_logging(level: str = "INFO") -> None:
    logging.basicConfig(level=getattr(logging, level.upper(), logging.INFO), format=LOG_FORMAT)
