"""
Executes a validated intent against the CRM database.

  aggregate      -> the metric's fixed template (src.db.metrics)
  record_lookup  -> at most one full row, or None
  field_lookup   -> one column of at most one row, or None
  list           -> up to the configured row limit

Database errors are wrapped in ``QueryExecutionFailed`` with the metric,
table and filters attached for diagnostics.
"""
from __future__ import annotations

from datetime import datetime

from sqlalchemy.exc import SQLAlchemyError

from src.assistant.errors import QueryExecutionFailed
from src.assistant.intent import CallerContext, Intent, QueryResult
from src.db.executor import fetch_rows
from src.db.metrics import get_metric
from src.db.query_builder import FilteredQueryBuilder
from src.governance.catalog import load_catalog
from src.governance.scope import resolve_ownership
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import timer

logger = get_logger(__name__)


def _row_limit() -> int:
    return min(get_settings().list_row_limit, load_catalog().security.list_row_limit)


def _run(intent: Intent, caller: CallerContext | None, now: datetime | None) -> QueryResult:
    if intent.query_type == "aggregate":
        metric = get_metric(intent.metric)
        return QueryResult.of_value(metric.execute(intent.filters, caller, intent.scope, now))

    builder = FilteredQueryBuilder(intent.table or "", now=now)
    ownership = resolve_ownership(intent.table or "", caller, intent.scope)

    if intent.query_type == "record_lookup":
        rows = fetch_rows(builder.build(intent.filters, ownership).limit(1))
        return QueryResult.of_record(rows[0] if rows else None)

    if intent.query_type == "field_lookup":
        field = intent.field or ""
        rows = fetch_rows(builder.build(intent.filters, ownership, columns=[field]).limit(1))
        return QueryResult.of_value(rows[0][field] if rows else None)

    if intent.query_type == "list":
        stmt = builder.build(intent.filters, ownership)
        stmt = stmt.order_by(builder.table.c.id).limit(_row_limit())
        return QueryResult.of_rows(fetch_rows(stmt))

    raise QueryExecutionFailed(
        f"Unknown query type: {intent.query_type}",
        details={"query_type": intent.query_type},
    )


def execute_query(
    intent: Intent,
    caller: CallerContext | None = None,
    now: datetime | None = None,
) -> QueryResult:
    """Run the template selected by a validated *intent*."""
    try:
        with timer() as t:
            result = _run(intent, caller, now)
    except SQLAlchemyError as exc:
        logger.exception("Query failed  type=%s  table=%s", intent.query_type, intent.table)
        raise QueryExecutionFailed(
            str(exc),
            details={
                "metric": intent.metric,
                "table": intent.table,
                "filters": intent.filters,
            },
        ) from exc

    logger.info(
        "Executed %s on %s in %.1f ms",
        intent.query_type, intent.table, t["elapsed_ms"],
    )
    return result
