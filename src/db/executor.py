"""
Read-only statement runner.

Every CRM query is a SQLAlchemy Core statement built from a fixed template;
this module only runs them:
  1. Opens a READ ONLY transaction (Postgres-enforced)
  2. Executes the pre-built, parameter-bound statement
  3. Optionally converts Decimal/date/datetime to JSON-safe Python types
"""
from __future__ import annotations

import decimal
import datetime
from typing import Any

from sqlalchemy.sql import Executable

from src.db.connection import readonly_connection
from src.core.logging import get_logger

logger = get_logger(__name__)


def _serialise_value(val: Any) -> Any:
    """Convert DB types to JSON-serialisable Python types."""
    if isinstance(val, decimal.Decimal):
        return float(val)
    if isinstance(val, (datetime.date, datetime.datetime)):
        return val.isoformat()
    if isinstance(val, datetime.timedelta):
        return str(val)
    return val


def serialise_row(row: dict[str, Any]) -> dict[str, Any]:
    return {col: _serialise_value(val) for col, val in row.items()}


def fetch_rows(stmt: Executable, serialise: bool = True) -> list[dict[str, Any]]:
    """Execute *stmt* read-only and return rows as dicts.

    ``serialise=False`` keeps native types (datetimes) for in-process filtering.
    """
    with readonly_connection() as conn:
        result = conn.execute(stmt)
        rows = [dict(row) for row in result.mappings().all()]

    logger.info("Returned %d rows", len(rows))
    if serialise:
        return [serialise_row(r) for r in rows]
    return rows


def fetch_scalar(stmt: Executable) -> Any:
    """Execute *stmt* read-only and return the first column of the first row."""
    with readonly_connection() as conn:
        value = conn.execute(stmt).scalar()
    return _serialise_value(value)
