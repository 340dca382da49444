"""
Generic filtered-query builder for record_lookup / field_lookup / list.

Assembles a SQLAlchemy Core ``select()`` over exactly one catalog table:

  1. ownership predicate (user scope) first
  2. each filter as an equality predicate, with these special keys:
       time_range         -> created_at between the resolved bounds
       id / *_id          -> row-identifier match
       lead_id "LD-101"   -> match on the leads display identifier
       status             -> case-normalised before matching
  3. after every predicate the statement is re-checked: still a Select over
     the target table and nothing else

An inconsistent statement is rebuilt once from scratch; a second failure
raises ``QueryBuildError``.
"""
from __future__ import annotations

import re
from datetime import datetime
from typing import Any, Iterable

from sqlalchemy import Select, Table, select
from sqlalchemy.sql.elements import ColumnElement

from src.assistant.errors import QueryBuildError
from src.db.schema import get_table
from src.governance.catalog import load_catalog, CrmCatalog
from src.governance.time_range import resolve_time_range
from src.core.logging import get_logger

logger = get_logger(__name__)

# Human-readable external lead code, e.g. LD-101
DISPLAY_CODE_RE = re.compile(r"^[A-Za-z]{1,5}-\d+$")

_LEADS_TABLE = "leads_table"


class _InconsistentStatement(Exception):
    pass


def normalize_status(value: Any) -> Any:
    """Upper-case the first letter, lower-case the rest ("follow up" -> "Follow up")."""
    if not isinstance(value, str) or not value:
        return value
    value = value.strip()
    return value[:1].upper() + value[1:].lower()


def is_display_code(value: Any) -> bool:
    return isinstance(value, str) and bool(DISPLAY_CODE_RE.match(value.strip()))


def coerce_value(kind: str, value: Any) -> Any:
    """Coerce a filter value to the column's logical type where unambiguous."""
    if kind == "integer" and isinstance(value, str) and value.strip().lstrip("-").isdigit():
        return int(value.strip())
    if kind == "float" and isinstance(value, str):
        try:
            return float(value)
        except ValueError:
            return value
    return value


class FilteredQueryBuilder:
    """Build a consistent, parameter-bound ``Select`` for one table."""

    def __init__(
        self,
        table: str,
        catalog: CrmCatalog | None = None,
        now: datetime | None = None,
    ) -> None:
        self.catalog = catalog or load_catalog()
        self.table_def = self.catalog.table(table)
        if self.table_def is None:
            raise QueryBuildError(f"Unknown table: {table}")
        self.table: Table = get_table(table)
        self.now = now

    # ── Public ───────────────────────────────────────────

    def build(
        self,
        filters: dict[str, Any] | None = None,
        ownership: tuple[str, Any] | None = None,
        columns: Iterable[str] | None = None,
    ) -> Select:
        filters = dict(filters or {})
        for attempt in (1, 2):
            try:
                return self._assemble(filters, ownership, columns)
            except _InconsistentStatement as exc:
                logger.warning(
                    "Query for %s became inconsistent (attempt %d): %s",
                    self.table.name, attempt, exc,
                )
        raise QueryBuildError(
            f"Could not build a consistent query for {self.table.name}",
            details={"table": self.table.name, "filters": filters},
        )

    # ── Assembly ─────────────────────────────────────────

    def _assemble(
        self,
        filters: dict[str, Any],
        ownership: tuple[str, Any] | None,
        columns: Iterable[str] | None,
    ) -> Select:
        if columns:
            stmt = select(*(self.table.c[name] for name in columns))
        else:
            stmt = select(self.table)
        self._check(stmt)

        if ownership is not None:
            column, owner_id = ownership
            stmt = stmt.where(self._eq(column, owner_id))
            self._check(stmt)

        for key, value in filters.items():
            if value is None:
                continue
            for clause in self.predicates(key, value):
                stmt = stmt.where(clause)
                self._check(stmt)

        return stmt

    def predicates(self, key: str, value: Any) -> list[ColumnElement[bool]]:
        """Translate one filter into WHERE clauses over the target table."""
        t = self.table

        if key == "time_range":
            start, end = resolve_time_range(value, self.now)
            date_col = t.c[self.table_def.date_column or "created_at"]
            return [date_col >= start, date_col <= end]

        if key == "lead_id":
            return [self._lead_id_clause(value)]

        if key == "status":
            return [self._eq(key, normalize_status(value))]

        return [self._eq(key, value)]

    # ── Helpers ──────────────────────────────────────────

    def _eq(self, column: str, value: Any) -> ColumnElement[bool]:
        kind = self.table_def.columns.get(column, "string")
        return self.table.c[column] == coerce_value(kind, value)

    def _lead_id_clause(self, value: Any) -> ColumnElement[bool]:
        t = self.table
        if is_display_code(value):
            code = value.strip().upper()
            if t.name == _LEADS_TABLE:
                id_column = self.table_def.display_id_column or "text"
                return t.c[id_column] == code
            leads = get_table(_LEADS_TABLE)
            leads_def = self.catalog.table(_LEADS_TABLE)
            id_column = (leads_def.display_id_column if leads_def else None) or "text"
            return t.c.lead_id.in_(select(leads.c.id).where(leads.c[id_column] == code))

        # Plain identifier: the leads table's own primary key, else the FK column.
        if t.name == _LEADS_TABLE:
            return self._eq("id", value)
        return self._eq("lead_id", value)

    def _check(self, stmt: Any) -> None:
        if not isinstance(stmt, Select):
            raise _InconsistentStatement(f"expected Select, got {type(stmt).__name__}")
        froms = stmt.get_final_froms()
        if len(froms) != 1 or froms[0] is not self.table:
            names = [getattr(f, "name", str(f)) for f in froms]
            raise _InconsistentStatement(f"statement selects from {names}")
