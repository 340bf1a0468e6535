"""Database helpers for the flight booking storefront."""
from __future__ import annotations

import logging
from contextlib import contextmanager
from typing import Any, Dict, Iterator, Tuple

from sqlalchemy import create_engine
from sqlalchemy.engine import Engine
from sqlalchemy.orm import Session, sessionmaker
from sqlalchemy.pool import StaticPool

from .models import Base

logger = logging.getLogger(__name__)

DEFAULT_DATABASE_URL = "sqlite+pysqlite:///flight_booking.db"


def create_session_factory(
    db_url: str = DEFAULT_DATABASE_URL, *, echo: bool = False
) -> Tuple[Engine, sessionmaker[Session]]:
    """Return an engine and a session factory bound to it.

    SQLite connections are shared across the web server's worker threads, and
    an in-memory database is pinned to a single connection so that every
    session sees the same tables.
    """

    engine_kwargs: Dict[str, Any] = {"echo": echo}
    if db_url.startswith("sqlite"):
        engine_kwargs["connect_args"] = {"check_same_thread": False}
        if db_url.endswith(":memory:"):
            engine_kwargs["poolclass"] = StaticPool
    engine = create_engine(db_url, **engine_kwargs)
    return engine, sessionmaker(bind=engine, expire_on_commit=False)


def init_db(db_url: str = DEFAULT_DATABASE_URL, *, echo: bool = False) -> sessionmaker[Session]:
    """Create the ``flights`` and ``flight_bookings`` tables if missing."""

    engine, session_factory = create_session_factory(db_url, echo=echo)
    Base.metadata.create_all(engine)
    logger.info("Database ready at %s", engine.url.render_as_string(hide_password=True))
    return session_factory


@contextmanager
def session_scope(session_factory: sessionmaker[Session]) -> Iterator[Session]:
    """Commit on success, roll back and re-raise on error."""

    session = session_factory()
    try:
        yield session
        session.commit()
    except Exception:
        session.rollback()
        logger.warning("Rolled back transaction", exc_info=True)
        raise
    finally:
        session.close()
