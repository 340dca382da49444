"""
Validates an extracted Intent against the CRM catalog.

Checks performed (after the normalization stage):
  1. Conversational / unsupported intents short-circuit as valid
  2. Any metric naming money (revenue, price, ...) is rejected outright,
     before the table is even looked at
  3. Table is in the allow-list
  4. Aggregate: metric is in the allow-list (column names get a corrective hint)
  5. Field lookup: field is a non-empty column of the target table
  6. metric only on aggregate, field only on field_lookup
  7. Every filter key is allowed for (table, query_type), and aggregate keys
     are ones the chosen metric honours
  8. Filter values are scalars; time_range is a relative token, never a date
  9. Scope is "user", "global", or absent
"""
from __future__ import annotations

from dataclasses import dataclass
from typing import Any

from src.assistant.intent import Intent
from src.governance.catalog import load_catalog, CrmCatalog
from src.governance.filter_policy import allowed_filter_keys
from src.governance.normalizer import normalize_intent
from src.governance.scope import SCOPES
from src.governance.time_range import looks_like_literal_date
from src.core.logging import get_logger

logger = get_logger(__name__)

_SCALAR_TYPES = (str, int, float, bool)


@dataclass
class ValidationResult:
    valid: bool
    error: str | None = None
    error_code: str | None = None  # invalid_intent | forbidden_metric
    is_conversation: bool = False
    intent: Intent | None = None


def is_revenue_metric(metric: str | None, catalog: CrmCatalog | None = None) -> bool:
    """True when *metric* mentions money, whether or not it is whitelisted."""
    if catalog is None:
        catalog = load_catalog()
    lower = (metric or "").lower()
    return any(kw in lower for kw in catalog.revenue_keywords)


def _reject(error: str, intent: Intent, code: str = "invalid_intent") -> ValidationResult:
    logger.warning("Intent rejected (%s): %s", code, error)
    return ValidationResult(valid=False, error=error, error_code=code, intent=intent)


def _check_filters(intent: Intent, catalog: CrmCatalog) -> str | None:
    filters: dict[str, Any] = intent.filters
    allowed = allowed_filter_keys(intent.table or "", intent.query_type, catalog)

    invalid_keys = [k for k in filters if k not in allowed]
    if invalid_keys:
        return (
            f"Invalid filter keys: {', '.join(invalid_keys)}. "
            f"Allowed keys: {', '.join(sorted(allowed))}"
        )

    for key, value in filters.items():
        if value is not None and not isinstance(value, _SCALAR_TYPES):
            return f"Filter '{key}' must be a single value, got {type(value).__name__}."

    time_range = filters.get("time_range")
    if time_range is not None:
        if not isinstance(time_range, str):
            return "Filter 'time_range' must be a relative time range name."
        if looks_like_literal_date(time_range):
            return (
                f"Literal dates are not accepted for time_range ('{time_range}'). "
                "Use a relative range such as 'today' or 'last_month'."
            )
    return None


def _check_metric_filters(intent: Intent, catalog: CrmCatalog) -> str | None:
    metric_def = catalog.metrics[intent.metric]
    unsupported = [k for k in intent.filters if k != "time_range" and k not in metric_def.filters]
    if not unsupported:
        return None
    honoured = ", ".join(("time_range",) + metric_def.filters)
    return (
        f"Metric '{metric_def.name}' cannot be filtered by {', '.join(unsupported)}. "
        f"Supported filters: {honoured}"
    )


def validate_intent(
    intent: Intent,
    question: str = "",
    catalog: CrmCatalog | None = None,
) -> ValidationResult:
    """Normalize *intent* and check it against the catalog.

    The returned ``intent`` is the normalized copy; the input is not modified.
    """
    if catalog is None:
        catalog = load_catalog()

    if intent.is_conversation:
        return ValidationResult(valid=True, is_conversation=True, intent=intent)
    if intent.query_type == "unsupported":
        return ValidationResult(valid=True, intent=intent)

    intent = normalize_intent(intent, question)

    if intent.metric and is_revenue_metric(intent.metric, catalog):
        return _reject(
            f"Metric '{intent.metric}' is revenue or money related and is not available.",
            intent,
            code="forbidden_metric",
        )

    if catalog.table(intent.table) is None:
        return _reject(
            f"Invalid table: {intent.table or 'undefined'}. "
            f"Allowed tables: {', '.join(catalog.get_table_names())}",
            intent,
        )
    table_def = catalog.tables[intent.table]

    if intent.query_type == "aggregate":
        if not intent.metric:
            return _reject("Aggregate queries require a metric.", intent)
        if catalog.metric(intent.metric) is None:
            if catalog.is_known_column(intent.metric):
                return _reject(
                    f"'{intent.metric}' is a column, not a metric. "
                    f"Use it as a filter with one of the metrics: "
                    f"{', '.join(catalog.get_metric_names())}",
                    intent,
                )
            return _reject(
                f"Invalid metric: {intent.metric}. "
                f"Allowed metrics: {', '.join(catalog.get_metric_names())}",
                intent,
            )
    elif intent.metric:
        return _reject(f"Metric is only allowed on aggregate queries, not {intent.query_type}.", intent)

    if intent.query_type == "field_lookup":
        if not isinstance(intent.field, str) or not intent.field.strip():
            return _reject("Missing or invalid 'field' for field_lookup query.", intent)
        if not table_def.has_column(intent.field):
            return _reject(
                f"Field '{intent.field}' is not an allowed column of {table_def.name}. "
                f"Allowed: {', '.join(table_def.column_names())}",
                intent,
            )
    elif intent.field:
        return _reject(f"Field is only allowed on field_lookup queries, not {intent.query_type}.", intent)

    filter_error = _check_filters(intent, catalog)
    if filter_error:
        return _reject(filter_error, intent)

    if intent.query_type == "aggregate":
        metric_error = _check_metric_filters(intent, catalog)
        if metric_error:
            return _reject(metric_error, intent)

    if intent.scope not in SCOPES:
        return _reject(f'Invalid scope: {intent.scope}. Allowed values: "user", "global"', intent)

    return ValidationResult(valid=True, intent=intent)
