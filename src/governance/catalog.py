"""
Loads, parses, and caches the CRM catalog YAML into strongly-typed objects.

The catalog is the single source of truth for:
  - allowed tables   (columns + types, ownership column, display field)
  - allowed metrics  (target table, answer phrase)
  - aggregate filter keys
  - revenue keywords that are always rejected
  - security limits  (list row cap)
"""
from __future__ import annotations

from dataclasses import dataclass, field
from pathlib import Path
from functools import lru_cache
from typing import Any

import yaml

_CATALOG_PATH = Path(__file__).resolve().parents[2] / "semantic_layer" / "crm_catalog.yml"

_COLUMN_TYPES = {"integer", "string", "float", "boolean", "datetime"}


# ── Typed domain objects ─────────────────────────────────

@dataclass(frozen=True)
class TableDef:
    name: str
    description: str
    columns: dict[str, str]             # column name -> logical type
    ownership_column: str | None = None
    display_field: str | None = None
    date_column: str | None = "created_at"
    display_id_column: str | None = None

    def has_column(self, name: str) -> bool:
        return name in self.columns

    def column_names(self) -> list[str]:
        return list(self.columns.keys())


@dataclass(frozen=True)
class MetricDef:
    name: str
    description: str
    table: str
    phrase: str
    unit: str = ""
    filters: tuple[str, ...] = ()  # aggregate filter keys besides time_range


@dataclass(frozen=True)
class SecurityRules:
    list_row_limit: int = 100


@dataclass
class CrmCatalog:
    """Fully parsed CRM catalog."""

    version: int
    tables: dict[str, TableDef]          # keyed by name
    metrics: dict[str, MetricDef]        # keyed by name
    aggregate_filter_keys: list[str]
    revenue_keywords: list[str]
    security: SecurityRules = field(default_factory=SecurityRules)

    # ── Convenience look-ups ─────────────────────────

    def table(self, name: str | None) -> TableDef | None:
        if not name:
            return None
        return self.tables.get(name)

    def metric(self, name: str | None) -> MetricDef | None:
        if not name:
            return None
        return self.metrics.get(name)

    def get_table_names(self) -> list[str]:
        return list(self.tables.keys())

    def get_metric_names(self) -> list[str]:
        return list(self.metrics.keys())

    def is_known_column(self, name: str) -> bool:
        """True when *name* is a column of any allowed table."""
        return any(t.has_column(name) for t in self.tables.values())

    def get_metrics_list(self) -> list[dict[str, Any]]:
        """Return metrics as a list of dicts (for API responses)."""
        return [
            {"name": m.name, "description": m.description, "table": m.table}
            for m in self.metrics.values()
        ]

    def get_tables_list(self) -> list[dict[str, Any]]:
        """Return tables as a list of dicts (for API responses)."""
        return [
            {
                "name": t.name,
                "description": t.description,
                "columns": t.column_names(),
                "display_field": t.display_field,
            }
            for t in self.tables.values()
        ]


# ── Parsing ──────────────────────────────────────────────

def _parse_table(raw: dict[str, Any]) -> TableDef:
    columns = {str(k): str(v).lower() for k, v in (raw.get("columns") or {}).items()}
    unknown = {v for v in columns.values() if v not in _COLUMN_TYPES}
    if unknown:
        raise ValueError(
            f"Table '{raw['name']}' uses unknown column types: {', '.join(sorted(unknown))}"
        )
    return TableDef(
        name=raw["name"],
        description=raw.get("description", ""),
        columns=columns,
        ownership_column=raw.get("ownership_column"),
        display_field=raw.get("display_field"),
        date_column=raw.get("date_column", "created_at"),
        display_id_column=raw.get("display_id_column"),
    )


def _parse_metric(raw: dict[str, Any]) -> MetricDef:
    return MetricDef(
        name=raw["name"],
        description=raw.get("description", ""),
        table=raw["table"],
        phrase=raw.get("phrase", raw["name"]),
        unit=raw.get("unit", ""),
        filters=tuple(raw.get("filters") or ()),
    )


def _parse_catalog(raw_yaml: dict[str, Any]) -> CrmCatalog:
    tables = {t["name"]: _parse_table(t) for t in raw_yaml.get("tables", [])}
    metrics = {m["name"]: _parse_metric(m) for m in raw_yaml.get("metrics", [])}
    for m in metrics.values():
        if m.table not in tables:
            raise ValueError(f"Metric '{m.name}' targets unknown table '{m.table}'")
    security_raw = raw_yaml.get("security") or {}
    return CrmCatalog(
        version=raw_yaml.get("version", 1),
        tables=tables,
        metrics=metrics,
        aggregate_filter_keys=list(raw_yaml.get("aggregate_filter_keys", [])),
        revenue_keywords=[k.lower() for k in raw_yaml.get("revenue_keywords", [])],
        security=SecurityRules(list_row_limit=security_raw.get("list_row_limit", 100)),
    )


# ── Public API ───────────────────────────────────────────

@lru_cache
def load_catalog() -> CrmCatalog:
    """Load and cache the CRM catalog from YAML."""
    with open(_CATALOG_PATH) as f:
        raw = yaml.safe_load(f)
    return _parse_catalog(raw)


def get_metric_names() -> list[str]:
    return load_catalog().get_metric_names()


def get_table_names() -> list[str]:
    return load_catalog().get_table_names()
