"""Helpers for configuring SQLAlchemy engine and session factories."""

from __future__ import annotations

from functools import lru_cache
from typing import Iterator

from sqlalchemy import Engine, create_engine, event
from sqlalchemy.orm import Session, sessionmaker

from ..settings import get_settings
from . import Base


def get_engine(database_url: str | None = None, **kwargs: object) -> Engine:
    """Create a SQLAlchemy engine.

    Args:
        database_url: Optional database URL. When ``None`` the ``DATABASE_URL``
            setting is used.
        **kwargs: Additional keyword arguments forwarded to
            :func:`sqlalchemy.create_engine`.

    Returns:
        Configured SQLAlchemy :class:`~sqlalchemy.engine.Engine` instance.
    """

    url = database_url or get_settings().database_url
    if not url:
        raise RuntimeError("DATABASE_URL is not configured.")

    kwargs.setdefault("echo", get_settings().sql_echo)
    engine = create_engine(url, **kwargs)

    if engine.dialect.name == "sqlite":

        @event.listens_for(engine, "connect")
        def _configure_sqlite(dbapi_connection, _connection_record):  # pragma: no cover - dialect hook
            dbapi_connection.execute("PRAGMA foreign_keys=ON")

    return engine


def get_sessionmaker(database_url: str | None = None, **kwargs: object) -> sessionmaker[Session]:
    """Return a session factory bound to the configured engine."""

    engine = get_engine(database_url=database_url, **kwargs)
    return sessionmaker(bind=engine, expire_on_commit=False, future=True)


@lru_cache(maxsize=1)
def default_sessionmaker() -> sessionmaker[Session]:
    """Process-wide session factory used by the HTTP and WebSocket surface."""

    factory = get_sessionmaker()
    Base.metadata.create_all(factory.kw["bind"])
    return factory


def get_session_factory() -> sessionmaker[Session]:
    """FastAPI dependency for handlers that open their own short sessions."""

    return default_sessionmaker()


def get_db_session() -> Iterator[Session]:
    """FastAPI dependency yielding one session per request.

    Routers own the commit/rollback decision; this only guarantees the
    session is closed.
    """

    session = default_sessionmaker()()
    try:
        yield session
    finally:
        session.close()


__all__ = [
    "Base",
    "default_sessionmaker",
    "get_db_session",
    "get_session_factory",
    "get_engine",
    "get_sessionmaker",
]
