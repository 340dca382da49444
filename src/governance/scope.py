"""
Scope resolution -- maps a caller and a scope onto an ownership predicate.

``user`` scope restricts a query to rows owned by the caller, using the
table's fixed ownership column from the catalog.  ``global`` (and any missing
or unrecognised scope) applies no predicate.
"""
from __future__ import annotations

from typing import Any

from src.assistant.intent import CallerContext
from src.governance.catalog import load_catalog, CrmCatalog
from src.core.logging import get_logger

logger = get_logger(__name__)

SCOPES = ("user", "global")
DEFAULT_SCOPE = "global"


def normalize_scope(scope: str | None) -> str:
    return scope if scope in SCOPES else DEFAULT_SCOPE


def ownership_column(table: str, catalog: CrmCatalog | None = None) -> str | None:
    """Return the ownership column for *table* (None when the table has none)."""
    if catalog is None:
        catalog = load_catalog()
    table_def = catalog.table(table)
    return table_def.ownership_column if table_def else None


def resolve_ownership(
    table: str,
    caller: CallerContext | None,
    scope: str | None,
    catalog: CrmCatalog | None = None,
) -> tuple[str, Any] | None:
    """Return ``(column, owner_id)`` for a user-scoped query, else None."""
    if normalize_scope(scope) != "user":
        return None

    column = ownership_column(table, catalog)
    if column is None:
        logger.info("Table %s has no ownership column -- user scope applies no filter", table)
        return None

    owner_id = caller.ownership_id if caller else None
    if owner_id is None:
        logger.warning("User scope requested but caller has no ownership id -- no filter applied")
        return None

    return column, owner_id
