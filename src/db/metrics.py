"""
Metric registry -- one fixed query template per aggregate metric.

Every metric is a strategy object bound to exactly one catalog table.  Its
query shape is fixed; the only variable parts are the optional predicate
slots it declares (status-like equality slots, the time window, ownership),
and every value is bound as a parameter.

Three families:

  CountMetric          -- COUNT(*) pushed down to the database
  FilteredCountMetric  -- fetch a few columns, count rows matching a Python
                          predicate (fuzzy text, fallback date columns)
  AverageScoreMetric   -- mean of total_score / 100, as a rounded percentage
"""
from __future__ import annotations

from dataclasses import dataclass, field
from decimal import ROUND_HALF_UP, Decimal
from datetime import datetime
from typing import Any, Callable

from sqlalchemy import Select, func, select

from src.assistant.errors import UnknownMetric
from src.assistant.intent import CallerContext
from src.db.executor import fetch_rows, fetch_scalar
from src.db.query_builder import normalize_status, coerce_value
from src.db.schema import get_table
from src.governance.catalog import load_catalog
from src.governance.scope import resolve_ownership
from src.governance.time_range import resolve_time_range
from src.core.logging import get_logger

logger = get_logger(__name__)

Window = tuple[datetime, datetime]
RowPredicate = Callable[[dict[str, Any], datetime], bool]


# ── Base ─────────────────────────────────────────────────

@dataclass(frozen=True)
class Metric:
    name: str
    table: str
    fixed: dict[str, Any] = field(default_factory=dict)
    slots: tuple[str, ...] = ()

    def execute(
        self,
        filters: dict[str, Any] | None,
        caller: CallerContext | None,
        scope: str | None,
        now: datetime | None = None,
    ) -> Any:
        now = now or datetime.now()
        filters = dict(filters or {})
        window = resolve_time_range(filters["time_range"], now) if filters.get("time_range") else None
        ownership = resolve_ownership(self.table, caller, scope)
        ignored = set(filters) - set(self.slots) - {"time_range"}
        if ignored:
            logger.debug("Metric %s ignores filters %s", self.name, sorted(ignored))
        logger.info(
            "Metric %s  table=%s  window=%s  ownership=%s",
            self.name, self.table, bool(window), ownership is not None,
        )
        return self.run(filters, ownership, window, now)

    def run(
        self,
        filters: dict[str, Any],
        ownership: tuple[str, Any] | None,
        window: Window | None,
        now: datetime,
    ) -> Any:
        raise NotImplementedError

    # Predicate slots shared by every family

    def _base(self, stmt: Select, filters: dict[str, Any], ownership: tuple[str, Any] | None) -> Select:
        t = get_table(self.table)
        kinds = load_catalog().tables[self.table].columns
        if ownership is not None:
            column, owner_id = ownership
            stmt = stmt.where(t.c[column] == coerce_value(kinds[column], owner_id))
        for column, value in self.fixed.items():
            stmt = stmt.where(t.c[column] == value)
        for slot in self.slots:
            value = filters.get(slot)
            if value is None:
                continue
            if slot == "status":
                value = normalize_status(value)
            stmt = stmt.where(t.c[slot] == coerce_value(kinds[slot], value))
        return stmt

    def _windowed(self, stmt: Select, window: Window | None) -> Select:
        if window is None:
            return stmt
        created = get_table(self.table).c.created_at
        return stmt.where(created >= window[0], created <= window[1])


# ── Families ─────────────────────────────────────────────

@dataclass(frozen=True)
class CountMetric(Metric):
    """COUNT(*) over the table with every predicate pushed down."""

    def run(self, filters, ownership, window, now) -> int:
        stmt = select(func.count()).select_from(get_table(self.table))
        stmt = self._windowed(self._base(stmt, filters, ownership), window)
        return int(fetch_scalar(stmt) or 0)


def _naive(value: Any) -> datetime | None:
    if not isinstance(value, datetime):
        return None
    if value.tzinfo is not None:
        return value.astimezone().replace(tzinfo=None)
    return value


def _activity_in_window(row: dict[str, Any], window: Window) -> bool:
    """Window test on last_attempted_at, falling back to created_at."""
    when = _naive(row.get("last_attempted_at")) or _naive(row.get("created_at"))
    if when is None:
        return False
    return window[0] <= when <= window[1]


@dataclass(frozen=True)
class FilteredCountMetric(Metric):
    """Fetch candidate rows, then count those matching ``predicate``."""

    columns: tuple[str, ...] = ()
    predicate: RowPredicate = lambda row, now: True
    activity_window: bool = True

    def run(self, filters, ownership, window, now) -> int:
        t = get_table(self.table)
        stmt = self._base(select(*(t.c[c] for c in self.columns)), filters, ownership)
        rows = fetch_rows(stmt, serialise=False)
        count = 0
        for row in rows:
            if not self.predicate(row, now):
                continue
            if window is not None and self.activity_window and not _activity_in_window(row, window):
                continue
            count += 1
        return count


@dataclass(frozen=True)
class AverageScoreMetric(Metric):
    """Average of ``total_score / 100`` expressed as a whole percentage, halves rounded up."""

    def run(self, filters, ownership, window, now) -> int:
        t = get_table(self.table)
        stmt = self._windowed(self._base(select(t.c.total_score), filters, ownership), window)
        scores = [
            Decimal(str(row["total_score"]))
            for row in fetch_rows(stmt, serialise=False)
            if row["total_score"] is not None
        ]
        if not scores:
            return 0
        # total_score is already on a 0-100 scale; halves round up
        mean = sum(scores) / len(scores)
        return int(mean.quantize(Decimal("1"), rounding=ROUND_HALF_UP))


# ── Row predicates ───────────────────────────────────────

def _is_qualified(row: dict[str, Any], now: datetime) -> bool:
    return "qualified" in str(row.get("lead_qualification") or "").lower()


def _first_call_done(row: dict[str, Any], now: datetime) -> bool:
    return str(row.get("first_call_done") or "").lower() == "done"


def _is_overdue(row: dict[str, Any], now: datetime) -> bool:
    if row.get("status") == "Completed":
        return False
    due = _naive(row.get("due_date"))
    return due is not None and due < now


_ACTIVITY_COLUMNS = ("id", "created_at", "last_attempted_at", "assigned_to")


# ── Registry ─────────────────────────────────────────────

METRICS: dict[str, Metric] = {
    m.name: m
    for m in (
        CountMetric("lead_count", "leads_table", slots=("status", "current_stage", "assigned_to")),
        FilteredCountMetric(
            "qualified_lead_count", "leads_table",
            columns=_ACTIVITY_COLUMNS + ("lead_qualification",),
            slots=("assigned_to",),
            predicate=_is_qualified,
        ),
        CountMetric(
            "prospect_count", "prospects_table",
            slots=("status", "current_stage", "next_stage", "assigned_to"),
        ),
        CountMetric("stage_count", "leads_table", slots=("status", "current_stage", "assigned_to")),
        FilteredCountMetric(
            "call_count", "leads_table",
            columns=_ACTIVITY_COLUMNS + ("first_call_done",),
            slots=("assigned_to",),
            predicate=_first_call_done,
        ),
        FilteredCountMetric(
            "followup_count", "leads_table",
            fixed={"status": "Follow up"},
            columns=_ACTIVITY_COLUMNS + ("status",),
            slots=("assigned_to",),
        ),
        CountMetric("task_pending_count", "tasks_table", fixed={"status": "Pending"}, slots=("type",)),
        FilteredCountMetric(
            "task_overdue_count", "tasks_table",
            columns=("id", "due_date", "status", "sales_person_id"),
            slots=("type",),
            predicate=_is_overdue,
            activity_window=False,
        ),
        CountMetric(
            "meeting_scheduled_count", "appointments",
            fixed={"status": "scheduled"}, slots=("salesperson_id",),
        ),
        CountMetric(
            "meeting_conducted_count", "appointments",
            fixed={"status": "completed"}, slots=("salesperson_id",),
        ),
        CountMetric("booking_count", "bookings"),
        AverageScoreMetric("conversion_probability", "leads_table", slots=("assigned_to",)),
    )
}


def get_metric(name: str | None) -> Metric:
    metric = METRICS.get(name or "")
    if metric is None:
        raise UnknownMetric(f"Unknown metric: {name}", details={"metric": name})
    return metric
