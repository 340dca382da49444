"""
Intent -- the structured intermediate representation between a natural-language
question and a templated CRM query, plus the other request-scoped value types
that flow through the pipeline.
"""
from __future__ import annotations

from typing import Any, Literal

from pydantic import BaseModel, Field

QueryType = Literal[
    "aggregate",
    "record_lookup",
    "field_lookup",
    "list",
    "general_message",
    "unsupported",
]

DATA_QUERY_TYPES: tuple[str, ...] = ("aggregate", "record_lookup", "field_lookup", "list")


class Intent(BaseModel):
    """Parsed representation of a CRM question.

    Produced by the extractor from untrusted model output; only the validator
    may turn it into something the executor will run.
    """

    query_type: QueryType
    table: str | None = Field(None, description="Target table, e.g. 'leads_table'")
    metric: str | None = Field(None, description="Aggregate metric name (aggregate only)")
    field: str | None = Field(None, description="Column to read (field_lookup only)")
    filters: dict[str, Any] = Field(
        default_factory=dict,
        description="Filter key -> scalar value, e.g. {'status': 'Won'}",
    )
    scope: str | None = Field(None, description="user | global")

    @property
    def is_conversation(self) -> bool:
        return self.query_type == "general_message"


class CallerContext(BaseModel):
    """Identity of the asking user, resolved by the external auth layer."""

    user_id: str
    role: str = "sales"
    ownership_id: int | str | None = Field(
        None, description="Sales-person id used for user-scoped queries"
    )


class QueryResult(BaseModel):
    """Tagged result of one executed query.

    aggregate / field_lookup fill ``value``; record_lookup fills ``record``;
    list fills ``data`` and ``count``.
    """

    kind: Literal["value", "record", "list"]
    value: Any = None
    record: dict[str, Any] | None = None
    data: list[dict[str, Any]] = Field(default_factory=list)
    count: int = 0

    @classmethod
    def of_value(cls, value: Any) -> "QueryResult":
        return cls(kind="value", value=value)

    @classmethod
    def of_record(cls, record: dict[str, Any] | None) -> "QueryResult":
        return cls(kind="record", record=record)

    @classmethod
    def of_rows(cls, rows: list[dict[str, Any]]) -> "QueryResult":
        return cls(kind="list", data=rows, count=len(rows))


class Answer(BaseModel):
    """Final response text plus where it came from."""

    answer: str
    source: Literal["crm_database", "ai_conversation", "unsupported"] = "crm_database"
    value: Any = None
    record: dict[str, Any] | None = None
    data: list[dict[str, Any]] | None = None
    count: int | None = None
