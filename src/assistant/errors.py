"""
Error taxonomy for the question-answering pipeline.

Every error carries a stable machine-readable ``code`` and the HTTP status the
API layer should answer with.  Client-class errors (4xx) come from bad input or
policy; server-class errors (5xx) come from the model backend or the database.
"""
from __future__ import annotations

from typing import Any


class AssistantError(Exception):
    """Base class for all pipeline failures."""

    code = "internal_error"
    status_code = 500
    default_message = "An unexpected error occurred while processing your request."

    def __init__(self, message: str | None = None, *, details: dict[str, Any] | None = None):
        self.message = message or self.default_message
        self.details = details or {}
        super().__init__(self.message)

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        body: dict[str, Any] = {"error": self.code, "message": self.message}
        if include_details and self.details:
            body["details"] = self.details
        return body


class MalformedRequest(AssistantError):
    code = "malformed_request"
    status_code = 400
    default_message = "The request is missing a valid 'question'."


# ── Extraction ──────────────────────────────────────────


class ExtractionFailed(AssistantError):
    code = "extraction_failed"
    status_code = 422
    default_message = "Failed to understand the question. Please try rephrasing."

    def __init__(self, message: str | None = None, *, backend_error: bool = False, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.backend_error = backend_error
        if backend_error:
            self.status_code = 502


class MalformedModelOutput(ExtractionFailed):
    """The model reply could not be read as one JSON object."""


class IntentStructureError(ExtractionFailed):
    """The model reply is JSON but lacks the keys its query_type requires."""


# ── Validation / policy ─────────────────────────────────


class InvalidIntent(AssistantError):
    code = "invalid_intent"
    status_code = 400
    default_message = "The question could not be mapped to a supported query."


class ForbiddenMetric(AssistantError):
    code = "forbidden_metric"
    status_code = 400
    default_message = "Revenue and money-related metrics are not available."


# ── Execution ───────────────────────────────────────────


class QueryExecutionFailed(AssistantError):
    code = "query_execution_failed"
    status_code = 500
    default_message = "Failed to execute query."

    # (substring, category, friendlier message) -- first match wins
    _CATEGORIES: tuple[tuple[tuple[str, ...], str, str], ...] = (
        (
            ("could not connect", "connection refused", "timeout", "timed out",
             "server closed the connection", "unable to open database"),
            "database_unavailable",
            "The CRM database is currently unreachable.",
        ),
        (
            ("does not exist", "no such table", "no such column", "syntax error",
             "permission denied", "invalid input syntax"),
            "database_query_failed",
            "Failed to execute database query.",
        ),
    )

    def __init__(self, message: str | None = None, **kwargs: Any):
        super().__init__(message, **kwargs)
        self.category = self.classify(message or "")
        for _, category, friendly in self._CATEGORIES:
            if category == self.category:
                if message:
                    self.details.setdefault("error", message)
                self.message = friendly
                break

    @classmethod
    def classify(cls, text: str) -> str:
        lower = text.lower()
        for needles, category, _ in cls._CATEGORIES:
            if any(n in lower for n in needles):
                return category
        return "query_execution_failed"

    def to_dict(self, include_details: bool = False) -> dict[str, Any]:
        body = super().to_dict(include_details)
        body["category"] = self.category
        return body


class UnknownMetric(QueryExecutionFailed):
    """The executor was handed a metric with no registered strategy."""


class QueryBuildError(QueryExecutionFailed):
    """The filtered query could not be built into a consistent statement."""


# ── Answering ───────────────────────────────────────────


class AnswerGenerationFailed(AssistantError):
    code = "answer_generation_failed"
    status_code = 502
    default_message = "Failed to generate a natural language answer."
