"""
Answer generation -- turns a computed QueryResult into the reply text.

Each query_type has its own output contract:

  aggregate       one sentence that repeats the computed value verbatim
                  (model at temperature 0; checked after the call)
  field_lookup    the raw value as a string, no model call
  record_lookup   one short sentence about the record's display label
                  (model at temperature 0.1)
  list            one "- <label>" line per record, no model call
  general_message one natural sentence (model at temperature 0.7)
  unsupported     a fixed sentence

Works in ``mock`` mode (deterministic templates, no API key needed) and with
any configured LLM provider.  Backend failures raise AnswerGenerationFailed;
a reply is never replaced by raw data.
"""
from __future__ import annotations

import re
from typing import Any

from src.assistant.errors import AnswerGenerationFailed
from src.assistant.llm_client import call_llm
from src.governance.catalog import load_catalog
from src.governance.time_range import describe_time_range
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import truncate

logger = get_logger(__name__)

NO_RECORDS = "No records found matching the specified criteria."
NO_RECORD = "No record found matching the specified criteria."
NO_VALUE = "No value found for {field} matching the specified criteria."
UNSUPPORTED = (
    "I'm here to help with sales and CRM-related questions. "
    "Let me know if you need help with leads, tasks, or performance insights."
)

AGGREGATE_TEMPERATURE = 0.0
RECORD_TEMPERATURE = 0.1
CONVERSATION_TEMPERATURE = 0.7

# Tried in order when the table's own display field is empty.
_FALLBACK_LABEL_FIELDS = ("title", "name", "lead_name", "task_title", "contact_name")
_TIMESTAMP_FIELDS = {"created_at", "updated_at"}


def _resolve_mode(mode: str | None) -> str:
    return (mode or get_settings().llm_provider).lower()


def _generate(system: str, user: str, temperature: float, mode: str) -> str:
    """Call the model; any backend failure or empty reply is an AnswerGenerationFailed."""
    try:
        reply = call_llm(system, user, temperature=temperature, provider=mode)
    except Exception as exc:
        logger.exception("Answer generation call failed (provider=%s)", mode)
        raise AnswerGenerationFailed(details={"error": str(exc)}) from exc

    reply = (reply or "").strip()
    if not reply:
        raise AnswerGenerationFailed(details={"error": "empty model reply"})
    logger.debug("Answer model reply: %s", truncate(reply))
    return reply


# ── Display labels ───────────────────────────────────────

def _is_identifier(key: str) -> bool:
    return key == "id" or key.endswith("_id")


def primary_display_label(record: dict[str, Any] | None, table: str | None) -> str | None:
    """The one value that names a record.

    Table display field, then common title/name fields, then the first
    non-identifier, non-timestamp field that has a value.
    """
    if not record:
        return None

    table_def = load_catalog().table(table)
    candidates: list[str] = []
    if table_def and table_def.display_field:
        candidates.append(table_def.display_field)
    candidates.extend(_FALLBACK_LABEL_FIELDS)

    for key in candidates:
        value = record.get(key)
        if value not in (None, ""):
            return str(value)

    for key, value in record.items():
        if _is_identifier(key) or key in _TIMESTAMP_FIELDS:
            continue
        if value not in (None, ""):
            return str(value)
    return None


# ── Aggregate ────────────────────────────────────────────

_AGGREGATE_SYSTEM = """\
You are a Sales CRM assistant.  The backend has already computed the answer.

Rules:
- Reply with exactly ONE sentence.
- The sentence MUST contain the computed value exactly as given.
- Do NOT invent, round or change numbers.
- No extra commentary, no follow-up questions.
"""


def _format_value(value: Any, unit: str) -> str:
    return f"{value}{unit}"


def _aggregate_template(metric: str, value: Any, filters: dict[str, Any]) -> str:
    metric_def = load_catalog().metric(metric)
    phrase = metric_def.phrase if metric_def else "items"
    unit = metric_def.unit if metric_def else ""
    when = describe_time_range(filters.get("time_range"))
    suffix = f" {when}" if when else ""

    if unit:
        return f"The {phrase} is {_format_value(value, unit)}{suffix}."

    status = filters.get("status")
    if status and metric in ("lead_count", "stage_count"):
        phrase = f"{str(status).lower()} leads"
    elif status and metric == "prospect_count":
        phrase = f"{str(status).lower()} prospects"
    return f"There are {value} {phrase}{suffix}."


def _mentions_value(reply: str, value: Any) -> bool:
    """True when *value* appears in *reply* as a whole number, not inside a longer one."""
    pattern = rf"(?<![\d.]){re.escape(str(value))}(?![\d]|\.\d)"
    return re.search(pattern, reply) is not None


def generate_aggregate_answer(
    question: str,
    metric: str,
    value: Any,
    filters: dict[str, Any] | None = None,
    mode: str | None = None,
) -> str:
    filters = filters or {}
    mode = _resolve_mode(mode)
    if mode == "mock":
        return _aggregate_template(metric, value, filters)

    metric_def = load_catalog().metric(metric)
    unit = metric_def.unit if metric_def else ""
    when = describe_time_range(filters.get("time_range"))
    user = (
        f'The user asked: "{question}"\n\n'
        f"Metric: {metric}\n"
        f"Computed value: {_format_value(value, unit)}\n"
        + (f"Time range: {when}\n" if when else "")
        + f"\nAnswer in one sentence using the computed value {value} exactly."
    )
    reply = _generate(_AGGREGATE_SYSTEM, user, AGGREGATE_TEMPERATURE, mode)

    if not _mentions_value(reply, value):
        logger.warning("Aggregate reply dropped the computed value %r: %s", value, truncate(reply))
        raise AnswerGenerationFailed(
            details={"error": "reply does not contain the computed value", "value": value},
        )
    return reply


# ── Field / list (deterministic) ─────────────────────────

def generate_field_answer(field: str, value: Any) -> str:
    """The literal value, or a fixed sentence when absent."""
    if value is None:
        return NO_VALUE.format(field=field)
    return str(value)


def _list_label(record: dict[str, Any], table: str | None) -> str:
    label = primary_display_label(record, table)
    if label:
        return label
    if record.get("id") is not None:
        return f"Record {record['id']}"
    return "Record"


def generate_list_answer(table: str | None, records: list[dict[str, Any]] | None) -> str:
    """One "- <label>" line per record; records without a label show their id."""
    if not records:
        return NO_RECORDS
    return "\n".join(f"- {_list_label(r, table)}" for r in records)


# ── Record ───────────────────────────────────────────────

_RECORD_SYSTEM = """\
You are a Sales CRM assistant.

Rules for describing a record:
- Return ONLY one short sentence.
- Mention the record by its name: {label}
- Do NOT use bullet points and do NOT list raw fields.
- No extra explanation.
"""


def generate_record_answer(
    question: str,
    table: str | None,
    record: dict[str, Any] | None,
    mode: str | None = None,
) -> str:
    if not record:
        return NO_RECORD

    label = primary_display_label(record, table) or "Record"
    mode = _resolve_mode(mode)
    if mode == "mock":
        return f"Found record: {label}."

    user = (
        f'The user asked: "{question}"\n\n'
        f"Record found in {table}: {label}\n\n"
        "Describe this record in one short sentence."
    )
    return _generate(_RECORD_SYSTEM.format(label=label), user, RECORD_TEMPERATURE, mode)


# ── Conversation / unsupported ───────────────────────────

_CONVERSATION_SYSTEM = """\
You are a quiet, professional in-app assistant for a sales CRM.

The user sent a greeting, small talk or an acknowledgement.
- Reply in ONE short sentence.
- Do not repeat the user's greeting.
- Do not list your capabilities unless asked.
- No marketing tone, no emojis.

Examples:
"Hello" -> "Hi!"
"How are you" -> "I'm doing well, thanks!"
"Thanks" -> "You're welcome!"
"Help" -> "Sure, what do you need help with?"
"""

_MOCK_REPLIES: tuple[tuple[re.Pattern[str], str], ...] = (
    (re.compile(r"\b(thanks|thank\s+you|thx)\b", re.IGNORECASE), "You're welcome!"),
    (re.compile(r"\bhow\s+are\s+you\b", re.IGNORECASE), "I'm doing well, thanks!"),
    (re.compile(r"\bhelp\b", re.IGNORECASE), "Sure, what do you need help with?"),
)
_MOCK_GREETING = "Hi!"


def generate_conversational_answer(question: str, mode: str | None = None) -> str:
    mode = _resolve_mode(mode)
    if mode == "mock":
        for pattern, reply in _MOCK_REPLIES:
            if pattern.search(question or ""):
                return reply
        return _MOCK_GREETING

    user = f'The user said: "{question}"\n\nReply with one short, natural sentence.'
    return _generate(_CONVERSATION_SYSTEM, user, CONVERSATION_TEMPERATURE, mode)


def generate_unsupported_answer(question: str = "") -> str:
    return UNSUPPORTED
