"""
Extractor -- converts a natural-language CRM question into an Intent.

Two modes:
  mock     → deterministic keyword extraction (no API key needed, great for tests)
  openai / anthropic / ollama → LLM-backed extraction via llm_client

The model's reply is untrusted.  It is cleaned (code fences stripped, first
JSON object taken), parsed fail-closed, and structurally checked.  Malformed
JSON and structurally incomplete JSON raise different errors.  When either
happens on an obvious greeting or thank-you, the question is answered as small
talk instead of failing.
"""
from __future__ import annotations

import json
import re
from typing import Any

from src.assistant.errors import ExtractionFailed, IntentStructureError, MalformedModelOutput
from src.assistant.intent import DATA_QUERY_TYPES, Intent
from src.governance.catalog import load_catalog, CrmCatalog
from src.governance.time_range import TIME_RANGE_TOKENS
from src.core.config import get_settings
from src.core.logging import get_logger
from src.core.utils import truncate

logger = get_logger(__name__)

# ── Small-talk fallback ──────────────────────────────────

_SMALLTALK_PATTERNS: tuple[re.Pattern[str], ...] = tuple(
    re.compile(p, re.IGNORECASE)
    for p in (
        r"^(hi|hello|hey|hii|hyy|hiii|hallo|hiya|hlo|greetings)(\s|$|[!?.,])",
        r"^(good\s+(morning|afternoon|evening))(\s|$|[!?.,])",
        r"^(how are you|how r u|how are u|who are you|what are you)(\s|$|[!?.,])",
        r"^(thanks|thank you|thx|ty|ok|okay|k|sure|yep|yeah)(\s|$|[!?.,])",
        r"^(what's up|whats up|sup|how's it going|hows it going)(\s|$|[!?.,])",
        r"^(help|what can you do)(\s|$|[!?.,])",
    )
)


def is_smalltalk(question: str) -> bool:
    q = (question or "").strip()
    return any(p.search(q) for p in _SMALLTALK_PATTERNS)


# ── Reply parsing ────────────────────────────────────────

_FENCE_RE = re.compile(r"```(?:json)?", re.IGNORECASE)


def _first_json_object(text: str) -> str | None:
    """Return the first balanced top-level ``{...}`` block in *text*."""
    start = text.find("{")
    if start == -1:
        return None
    depth = 0
    in_string = False
    escaped = False
    for i in range(start, len(text)):
        ch = text[i]
        if in_string:
            if escaped:
                escaped = False
            elif ch == "\\":
                escaped = True
            elif ch == '"':
                in_string = False
            continue
        if ch == '"':
            in_string = True
        elif ch == "{":
            depth += 1
        elif ch == "}":
            depth -= 1
            if depth == 0:
                return text[start : i + 1]
    return text[start:]


def clean_reply(text: str) -> str:
    """Strip code fences and any prose around the first JSON object."""
    cleaned = _FENCE_RE.sub("", text or "").strip()
    block = _first_json_object(cleaned)
    return block.strip() if block is not None else cleaned


def parse_reply(text: str) -> dict[str, Any]:
    """Parse a model reply into a JSON object, failing closed."""
    cleaned = clean_reply(text)
    if not cleaned.startswith("{"):
        raise MalformedModelOutput(details={"reply": truncate(cleaned)})
    try:
        data = json.loads(cleaned)
    except json.JSONDecodeError as exc:
        raise MalformedModelOutput(details={"reply": truncate(cleaned), "error": str(exc)}) from exc
    if not isinstance(data, dict):
        raise MalformedModelOutput(details={"reply": truncate(cleaned)})
    return data


def _classify(data: dict[str, Any]) -> str:
    """Map the loose shapes a model may answer with onto a query_type."""
    intent_type = data.get("intent_type")
    query_type = data.get("query_type")

    if (
        data.get("type") == "conversation"
        or data.get("intent") == "conversation"
        or intent_type in ("general_message", "conversation")
        or query_type == "general_message"
    ):
        return "general_message"
    if (
        intent_type == "unsupported"
        or query_type == "unsupported"
        or data.get("error") == "unsupported_query"
    ):
        return "unsupported"
    if query_type is not None:
        return str(query_type)
    if intent_type == "crm_query":
        raise IntentStructureError(details={"reason": "crm_query without query_type"})
    logger.warning("Reply carries no classification -- treating as general message: %s", truncate(data))
    return "general_message"


def _optional_str(data: dict[str, Any], key: str) -> str | None:
    value = data.get(key)
    if value is None or value == "":
        return None
    if not isinstance(value, str):
        raise IntentStructureError(details={"reason": f"'{key}' must be a string"})
    return value


def intent_from_payload(data: dict[str, Any]) -> Intent:
    """Structurally check a parsed payload and build an (unvalidated) Intent."""
    query_type = _classify(data)
    if query_type in ("general_message", "unsupported"):
        return Intent(query_type=query_type)

    if query_type not in DATA_QUERY_TYPES:
        raise IntentStructureError(details={"reason": f"invalid query_type {query_type!r}"})

    table = _optional_str(data, "table")
    if not table:
        raise IntentStructureError(details={"reason": "missing 'table'"})

    metric = _optional_str(data, "metric")
    if query_type == "aggregate" and not metric:
        raise IntentStructureError(details={"reason": "aggregate query without 'metric'"})

    field = _optional_str(data, "field")
    if query_type == "field_lookup" and not field:
        raise IntentStructureError(details={"reason": "field_lookup query without 'field'"})

    filters = data.get("filters")
    if filters is None:
        filters = {}
    if not isinstance(filters, dict):
        raise IntentStructureError(details={"reason": "'filters' must be an object"})

    scope = data.get("scope")
    return Intent(
        query_type=query_type,
        table=table,
        metric=metric,
        field=field,
        filters=filters,
        scope=scope if isinstance(scope, str) and scope else None,
    )


def parse_intent_reply(reply: str, question: str) -> Intent:
    """Turn a raw model reply into an Intent, recovering obvious small talk."""
    try:
        return intent_from_payload(parse_reply(reply))
    except ExtractionFailed as exc:
        if is_smalltalk(question):
            logger.warning("Extraction failed (%s) but question is small talk -- answering conversationally", exc.details)
            return Intent(query_type="general_message")
        logger.error("Extraction failed: %s %s", type(exc).__name__, exc.details)
        raise


# ── Mock extractor ───────────────────────────────────────

_TABLE_KEYWORDS: list[tuple[str, str]] = [
    ("prospect", "prospects_table"),
    ("task", "tasks_table"),
    ("meeting", "appointments"),
    ("appointment", "appointments"),
    ("booking", "bookings"),
    ("lead", "leads_table"),
]

_TIME_RANGE_PATTERNS: list[tuple[str, str]] = [
    (r"\btoday\b", "today"),
    (r"\b(this|current)\s+week\b", "this_week"),
    (r"\b(last|previous)\s+week\b", "last_week"),
    (r"\b(this|current)\s+month\b", "this_month"),
    (r"\b(last|previous)\s+month\b", "last_month"),
    (r"\b(last\s+7\s+days|past\s+week)\b", "last_7_days"),
    (r"\b(last\s+30\s+days|past\s+month)\b", "last_30_days"),
]

_STATUS_WORDS = ("won", "lost", "new", "contacted", "negotiation", "pending", "completed")

_AGGREGATE_RE = re.compile(r"\b(how many|count|number of|total|average|probability|rate)\b")
_LIST_RE = re.compile(r"\b(list|show|get all|all|display)\b")
_USER_SCOPE_RE = re.compile(r"\b(my|me|mine|i have|i've)\b")
_MONEY_RE = re.compile(r"\b(revenue|money|income|payments?|price|cost|amount)\b")
_CODE_RE = re.compile(r"\b([A-Za-z]{1,5}-\d+)\b")
_FIELD_OF_RE = re.compile(
    r"what\s+is\s+the\s+(?P<field>[a-z_ ]+?)\s+(?:of|for)\s+(?:lead\s+)?(?P<code>[A-Za-z]{1,5}-\d+)",
    re.IGNORECASE,
)
_RECORD_ID_RE = re.compile(r"\b(task|meeting|appointment|booking|prospect)\s+(?:with\s+id\s+|#)?(\d+)\b")


def _mock_metric(table: str, q: str) -> str:
    money = _MONEY_RE.search(q)
    if money:
        return money.group(1)
    if table == "leads_table":
        if "qualified" in q:
            return "qualified_lead_count"
        if "call" in q:
            return "call_count"
        if "follow" in q:
            return "followup_count"
        if "conversion" in q or "probability" in q:
            return "conversion_probability"
        if "stage" in q:
            return "stage_count"
        return "lead_count"
    if table == "tasks_table":
        return "task_overdue_count" if "overdue" in q else "task_pending_count"
    if table == "appointments":
        if "conducted" in q or "completed" in q:
            return "meeting_conducted_count"
        return "meeting_scheduled_count"
    if table == "bookings":
        return "booking_count"
    return "prospect_count"


def _extract_mock_payload(question: str, catalog: CrmCatalog) -> dict[str, Any]:
    """Deterministic keyword-based question → intent payload."""
    q = question.lower().strip()
    smalltalk = is_smalltalk(q)
    mentions_crm = any(kw in q for kw, _ in _TABLE_KEYWORDS) or bool(_CODE_RE.search(question))

    # "Hey, how many leads?" is a data question; a bare "hey" is not
    if smalltalk and not mentions_crm:
        return {"query_type": "general_message"}

    scope = "user" if _USER_SCOPE_RE.search(q) else "global"

    field_match = _FIELD_OF_RE.search(question)
    if field_match:
        field = re.sub(r"\s+", "_", field_match.group("field").strip().lower())
        return {
            "query_type": "field_lookup",
            "table": "leads_table",
            "field": field,
            "scope": scope,
            "filters": {"lead_id": field_match.group("code").upper()},
        }

    table = next((t for kw, t in _TABLE_KEYWORDS if kw in q), None)
    if table is None:
        if _MONEY_RE.search(q):
            table = "leads_table"
        else:
            return {"query_type": "unsupported"}

    filters: dict[str, Any] = {}
    for pattern, token in _TIME_RANGE_PATTERNS:
        if re.search(pattern, q):
            filters["time_range"] = token
            break

    code_match = _CODE_RE.search(question)
    if code_match and table == "leads_table":
        return {
            "query_type": "record_lookup",
            "table": table,
            "scope": scope,
            "filters": {"lead_id": code_match.group(1).upper()},
        }
    id_match = _RECORD_ID_RE.search(q)
    if id_match:
        return {
            "query_type": "record_lookup",
            "table": table,
            "scope": scope,
            "filters": {"id": id_match.group(2)},
        }

    status = next((w for w in _STATUS_WORDS if re.search(rf"\b{w}\b", q)), None)

    if _AGGREGATE_RE.search(q):
        metric = _mock_metric(table, q)
        if status and metric in ("lead_count", "stage_count", "prospect_count"):
            filters["status"] = status.title()
        return {
            "query_type": "aggregate",
            "table": table,
            "metric": metric,
            "scope": scope,
            "filters": filters,
        }

    if _LIST_RE.search(q):
        if status:
            filters["status"] = status.title()
        return {"query_type": "list", "table": table, "scope": scope, "filters": filters}

    if smalltalk:
        return {"query_type": "general_message"}
    return {"query_type": "unsupported"}


# ── LLM extractor ───────────────────────────────────────

_LLM_SYSTEM_PROMPT = """\
You are a Sales CRM intent extractor. Respond ONLY with one raw JSON object. \
No markdown, no backticks, no text before or after the JSON.

Classify the message first:
  - Greetings, thanks, small talk, help requests -> {{"query_type": "general_message"}}
  - Topics outside the CRM -> {{"query_type": "unsupported"}}
  - Otherwise a CRM data question with this exact shape:
    {{
      "query_type": "aggregate" | "record_lookup" | "field_lookup" | "list",
      "table":  one of the allowed tables,
      "metric": one of the supported metrics (aggregate ONLY, omit otherwise),
      "field":  a column name (field_lookup ONLY, omit otherwise),
      "scope":  "user" | "global",
      "filters": {{}}
    }}

Query types:
  - counts, totals, rates                        -> aggregate
  - one specific record ("lead LD-101")          -> record_lookup
  - one column of one record ("email of LD-101") -> field_lookup
  - several records ("show all ...", "list ...") -> list

Scope: "my", "me", "mine", "I have" -> "user"; otherwise "global".

Time: NEVER output dates. Use filters.time_range with one of: {time_ranges}. \
Any question mentioning "today" MUST include {{"time_range": "today"}}.

SUPPORTED METRICS: {metrics}
ALLOWED TABLES: {tables}
ALLOWED FILTER KEYS FOR AGGREGATE: {filter_keys}
FILTERS EACH METRIC ACCEPTS besides time_range (use no others): {metric_filters}
ALLOWED COLUMNS FOR leads_table (fields and filters): {lead_columns}
Lead codes such as "LD-101" go in filters as {{"lead_id": "LD-101"}}.
Revenue and money questions are not supported.

EXAMPLES:
{examples}"""

_EXAMPLES: list[tuple[str, dict[str, Any]]] = [
    ("What is the total lead count?",
     {"query_type": "aggregate", "metric": "lead_count", "table": "leads_table", "scope": "global", "filters": {}}),
    ("How many won leads?",
     {"query_type": "aggregate", "metric": "lead_count", "table": "leads_table", "scope": "global", "filters": {"status": "Won"}}),
    ("How many leads have arrived today?",
     {"query_type": "aggregate", "metric": "lead_count", "table": "leads_table", "scope": "global", "filters": {"time_range": "today"}}),
    ("How many of my tasks are overdue?",
     {"query_type": "aggregate", "metric": "task_overdue_count", "table": "tasks_table", "scope": "user", "filters": {}}),
    ("What is the lead name of LD-101?",
     {"query_type": "field_lookup", "table": "leads_table", "field": "lead_name", "scope": "global", "filters": {"lead_id": "LD-101"}}),
    ("Tell me about lead LD-204",
     {"query_type": "record_lookup", "table": "leads_table", "scope": "global", "filters": {"lead_id": "LD-204"}}),
    ("Show all pending tasks",
     {"query_type": "list", "table": "tasks_table", "scope": "global", "filters": {"status": "Pending"}}),
    ("Hello", {"query_type": "general_message"}),
    ("Who won the football match?", {"query_type": "unsupported"}),
]


def build_system_prompt(catalog: CrmCatalog | None = None) -> str:
    """Render the fixed extraction instruction from the catalog."""
    if catalog is None:
        catalog = load_catalog()
    leads = catalog.table("leads_table")
    examples = "\n".join(f'- "{q}" -> {json.dumps(p)}' for q, p in _EXAMPLES)
    return _LLM_SYSTEM_PROMPT.format(
        time_ranges=", ".join(TIME_RANGE_TOKENS),
        metrics=", ".join(catalog.get_metric_names()),
        tables=", ".join(catalog.get_table_names()),
        filter_keys=", ".join(catalog.aggregate_filter_keys),
        metric_filters="; ".join(
            f"{m.name}: {', '.join(m.filters) or 'none'}" for m in catalog.metrics.values()
        ),
        lead_columns=", ".join(leads.column_names()) if leads else "",
        examples=examples,
    )


def _extract_llm(question: str, provider: str, catalog: CrmCatalog) -> Intent:
    from src.assistant.llm_client import call_llm

    try:
        reply = call_llm(build_system_prompt(catalog), question, temperature=0.0, provider=provider)
    except Exception as exc:
        logger.error("Intent extraction backend call failed: %s", exc)
        raise ExtractionFailed(backend_error=True, details={"error": str(exc)}) from exc

    logger.debug("Raw extraction reply: %s", truncate(reply, 500))
    return parse_intent_reply(reply, question)


# ── Public API ───────────────────────────────────────────

def extract_intent(question: str, mode: str | None = None) -> Intent:
    """Parse *question* into an unvalidated Intent.

    Modes
    -----
    mock                       — rule-based keyword extraction (no API key needed)
    openai / anthropic / ollama — LLM-backed extraction via llm_client
    """
    catalog = load_catalog()
    if mode is None:
        mode = get_settings().llm_provider.lower()

    if mode == "mock":
        intent = intent_from_payload(_extract_mock_payload(question, catalog))
    else:
        intent = _extract_llm(question, mode, catalog)

    logger.info("Extractor[%s] -> %s", mode, intent.model_dump_json())
    return intent
