"""
Assistant service -- orchestrates extract -> validate -> execute -> answer.

Stages run strictly in order and each either hands a value to the next or
raises a typed AssistantError; no stage produces a partial answer.

  1. extract_intent     question -> unvalidated Intent
  2. validate_intent    normalization + allow-list checks
  3. execute_query      fixed, parameter-bound query template
  4. answer_generator   per-query_type output contract
"""
from __future__ import annotations

from datetime import datetime

from src.assistant.answer_generator import (
    generate_aggregate_answer,
    generate_conversational_answer,
    generate_field_answer,
    generate_list_answer,
    generate_record_answer,
    generate_unsupported_answer,
)
from src.assistant.errors import ForbiddenMetric, InvalidIntent, MalformedRequest
from src.assistant.extractor import extract_intent
from src.assistant.intent import Answer, CallerContext, Intent, QueryResult
from src.db.query_executor import execute_query
from src.governance.validator import validate_intent
from src.core.logging import get_logger
from src.core.utils import timer, truncate

logger = get_logger(__name__)


def _answer_from_result(
    question: str,
    intent: Intent,
    result: QueryResult,
    mode: str | None,
) -> Answer:
    if intent.query_type == "aggregate":
        text = generate_aggregate_answer(
            question, intent.metric or "", result.value, intent.filters, mode=mode,
        )
        return Answer(answer=text, value=result.value)

    if intent.query_type == "field_lookup":
        return Answer(answer=generate_field_answer(intent.field or "", result.value), value=result.value)

    if intent.query_type == "record_lookup":
        text = generate_record_answer(question, intent.table, result.record, mode=mode)
        return Answer(answer=text, record=result.record)

    return Answer(
        answer=generate_list_answer(intent.table, result.data),
        data=result.data,
        count=result.count,
    )


def ask(
    question: str,
    caller: CallerContext | None = None,
    mode: str | None = None,
    now: datetime | None = None,
) -> Answer:
    """End-to-end: question -> Answer.

    Parameters
    ----------
    question : str
        Free-text CRM question.
    caller : CallerContext | None
        Identity resolved by the auth layer; needed for "my ..." questions.
    mode : str | None
        LLM provider override ("mock", "openai", "anthropic", "ollama").
        Defaults to the configured provider.
    now : datetime | None
        Reference time for relative time ranges (tests).
    """
    if not isinstance(question, str) or not question.strip():
        raise MalformedRequest()
    question = question.strip()

    with timer() as t:
        logger.info(
            "Assistant.ask | question=%s | mode=%s | user=%s",
            truncate(question, 120), mode, caller.user_id if caller else None,
        )

        # 1. Extract
        intent = extract_intent(question, mode=mode)

        # 2. Validate (+ normalize)
        verdict = validate_intent(intent, question)
        if not verdict.valid:
            error_cls = ForbiddenMetric if verdict.error_code == "forbidden_metric" else InvalidIntent
            raise error_cls(verdict.error, details={"intent": intent.model_dump()})

        if verdict.is_conversation:
            answer = Answer(
                answer=generate_conversational_answer(question, mode=mode),
                source="ai_conversation",
            )
        elif intent.query_type == "unsupported":
            answer = Answer(answer=generate_unsupported_answer(question), source="unsupported")
        else:
            intent = verdict.intent or intent
            # 3. Execute
            result = execute_query(intent, caller, now=now)
            # 4. Answer
            answer = _answer_from_result(question, intent, result, mode)

    logger.info("Assistant.ask done | source=%s | %d ms", answer.source, t["elapsed_ms"])
    return answer
