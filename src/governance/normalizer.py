"""
Corrective normalizations applied to an extracted intent before validation.

Only two corrections exist, and each is a named step:

  default_scope      -- a missing scope becomes "global"
  inject_time_range  -- an aggregate question that says "today" but whose
                        intent carries no time_range gets time_range="today"

Steps never mutate their input; each returns a new Intent.
"""
from __future__ import annotations

import re
from typing import Callable

from src.assistant.intent import Intent
from src.governance.scope import DEFAULT_SCOPE
from src.core.logging import get_logger

logger = get_logger(__name__)

_TODAY_RE = re.compile(r"\b(today|this\s+day)\b", re.IGNORECASE)


def default_scope(intent: Intent, question: str) -> Intent:
    if intent.scope:
        return intent
    return intent.model_copy(update={"scope": DEFAULT_SCOPE})


def inject_time_range(intent: Intent, question: str) -> Intent:
    if intent.query_type != "aggregate" or "time_range" in intent.filters:
        return intent
    if not _TODAY_RE.search(question or ""):
        return intent
    logger.info("Question mentions today but intent has no time_range -- injecting 'today'")
    return intent.model_copy(update={"filters": {**intent.filters, "time_range": "today"}})


NORMALIZATION_STEPS: tuple[Callable[[Intent, str], Intent], ...] = (
    default_scope,
    inject_time_range,
)


def normalize_intent(intent: Intent, question: str = "") -> Intent:
    """Run every normalization step in order."""
    for step in NORMALIZATION_STEPS:
        intent = step(intent, question)
    return intent
