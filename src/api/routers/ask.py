"""POST /ask -- main assistant endpoint, plus a dry-run /ask/explain."""
from __future__ import annotations

from typing import Any

from pydantic import BaseModel, Field, field_validator
from fastapi import APIRouter, Header

from src.assistant.extractor import extract_intent
from src.assistant.intent import CallerContext
from src.assistant.service import ask as assistant_ask
from src.governance.validator import validate_intent
from src.core.logging import get_logger

logger = get_logger(__name__)
router = APIRouter()



class AskRequest(BaseModel):
    question: str = Field(..., min_length=1, max_length=1000, description="Free-text CRM question")
    mode: str | None = Field(None, description="mock | openai | anthropic | ollama (defaults to settings)")

    @field_validator("question")
    @classmethod
    def _not_blank(cls, value: str) -> str:
        if not value.strip():
            raise ValueError("question must not be blank")
        return value.strip()


class AskResponse(BaseModel):
    answer: str
    source: str
    value: Any = None
    record: dict[str, Any] | None = None
    data: list[dict[str, Any]] | None = None
    count: int | None = None


class IntentResponse(BaseModel):
    query_type: str
    table: str | None
    metric: str | None
    field: str | None
    filters: dict[str, Any]
    scope: str | None


class ExplainResponse(BaseModel):
    question: str
    intent: IntentResponse
    is_valid: bool
    error: str | None = None
    error_code: str | None = None



def caller_from_headers(
    x_user_id: str | None,
    x_user_role: str | None,
    x_ownership_id: str | None,
) -> CallerContext | None:
    """Build the caller identity forwarded by the upstream auth layer."""
    if not x_user_id:
        return None
    ownership: int | str | None = x_ownership_id
    if x_ownership_id and x_ownership_id.isdigit():
        ownership = int(x_ownership_id)
    return CallerContext(user_id=x_user_id, role=x_user_role or "sales", ownership_id=ownership)


@router.post("", response_model=AskResponse, response_model_exclude_none=True)
def ask_endpoint(
    req: AskRequest,
    x_user_id: str | None = Header(None),
    x_user_role: str | None = Header(None),
    x_ownership_id: str | None = Header(None),
):
    """Full pipeline: question -> intent -> validate -> query -> answer.

    Pipeline failures propagate as AssistantError and are rendered by the
    application's exception handlers.
    """
    caller = caller_from_headers(x_user_id, x_user_role, x_ownership_id)
    answer = assistant_ask(req.question, caller=caller, mode=req.mode)
    return AskResponse(**answer.model_dump())


@router.post("/explain", response_model=ExplainResponse)
def explain_endpoint(req: AskRequest):
    """Dry-run: question -> intent -> validate (nothing is executed)."""
    intent = extract_intent(req.question, mode=req.mode)
    verdict = validate_intent(intent, req.question)
    shown = verdict.intent or intent
    return ExplainResponse(
        question=req.question,
        intent=IntentResponse(**shown.model_dump()),
        is_valid=verdict.valid,
        error=verdict.error,
        error_code=verdict.error_code,
    )
