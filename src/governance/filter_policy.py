"""
Filter-key allow-lists, selected by (table, query_type).

Aggregate queries share one fixed key list from the catalog.  Non-aggregate
queries may filter on the target table's real columns; the leads table also
accepts ``lead_id``, which the query builder maps onto its display identifier.
"""
from __future__ import annotations

from typing import Callable

from src.governance.catalog import load_catalog, CrmCatalog, TableDef

# Keys that are not columns but are understood by the query builder.
PSEUDO_KEYS: frozenset[str] = frozenset({"time_range"})
LEADS_PSEUDO_KEYS: frozenset[str] = frozenset({"time_range", "lead_id"})

_Policy = Callable[[CrmCatalog, TableDef], frozenset[str]]


def _aggregate_keys(catalog: CrmCatalog, table: TableDef) -> frozenset[str]:
    return frozenset(catalog.aggregate_filter_keys)


def _leads_columns(catalog: CrmCatalog, table: TableDef) -> frozenset[str]:
    return frozenset(table.columns) | LEADS_PSEUDO_KEYS


def _table_columns(catalog: CrmCatalog, table: TableDef) -> frozenset[str]:
    return frozenset(table.columns) | PSEUDO_KEYS


# "*" matches any table / any query_type; most specific entry wins.
_POLICIES: dict[tuple[str, str], _Policy] = {
    ("*", "aggregate"): _aggregate_keys,
    ("leads_table", "*"): _leads_columns,
    ("*", "*"): _table_columns,
}


def _lookup(table: str, query_type: str) -> _Policy:
    for key in ((table, query_type), ("*", query_type), (table, "*"), ("*", "*")):
        policy = _POLICIES.get(key)
        if policy is not None:
            return policy
    raise LookupError(f"No filter policy for ({table}, {query_type})")


def allowed_filter_keys(
    table: str,
    query_type: str,
    catalog: CrmCatalog | None = None,
) -> frozenset[str]:
    """Return the filter keys permitted for *query_type* against *table*."""
    if catalog is None:
        catalog = load_catalog()
    table_def = catalog.table(table)
    if table_def is None:
        return frozenset()
    return _lookup(table, query_type)(catalog, table_def)
