"""SQLAlchemy engine factory.

Single shared engine with connection pooling.  All assistant queries run
through `readonly_connection`, which sets the transaction to READ ONLY (and a
statement timeout) on PostgreSQL before executing.
"""
from __future__ import annotations

from contextlib import contextmanager
from typing import Generator

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine

from src.core.config import get_settings
from src.core.logging import get_logger

logger = get_logger(__name__)

_engine: Engine | None = None


def get_engine() -> Engine:
    """Return the shared SQLAlchemy engine (lazy-created, cached)."""
    global _engine
    if _engine is None:
        settings = get_settings()
        kwargs: dict = {"pool_pre_ping": True, "echo": False}
        if settings.database_url.startswith("postgresql"):
            kwargs.update(pool_size=5, max_overflow=10)
        _engine = create_engine(settings.database_url, **kwargs)
        logger.info("DB engine created  dialect=%s", _engine.dialect.name)
    return _engine


def set_engine(engine: Engine | None) -> None:
    """Replace the shared engine (tests, scripts).  ``None`` resets it."""
    global _engine
    _engine = engine


@contextmanager
def readonly_connection() -> Generator[Connection, None, None]:
    """Yield a connection in READ ONLY transaction mode.

    On PostgreSQL the transaction is set READ ONLY with a per-statement
    timeout; other dialects (SQLite in local runs) get a plain connection.
    The transaction is rolled back and the connection returned to the pool
    on exit.
    """
    settings = get_settings()
    engine = get_engine()
    with engine.connect() as conn:
        if conn.dialect.name == "postgresql":
            conn.execute(text("SET TRANSACTION READ ONLY"))
            conn.execute(text(f"SET LOCAL statement_timeout = {int(settings.query_timeout_ms)}"))
        try:
            yield conn
        finally:
            conn.rollback()
