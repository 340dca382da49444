"""
GET /metrics, GET /tables, GET /catalog -- allow-list metadata endpoints.
"""
from __future__ import annotations

from fastapi import APIRouter
from pydantic import BaseModel

from src.governance.catalog import load_catalog
from src.governance.time_range import TIME_RANGE_TOKENS

router = APIRouter()



class MetricItem(BaseModel):
    name: str
    description: str
    table: str


class TableItem(BaseModel):
    name: str
    description: str
    columns: list[str]
    display_field: str | None = None


class CatalogResponse(BaseModel):
    metrics: list[MetricItem]
    tables: list[TableItem]
    aggregate_filter_keys: list[str]
    time_ranges: list[str]
    list_row_limit: int



@router.get("/metrics")
def list_metrics() -> dict:
    """Return the supported aggregate metric names."""
    return {"metrics": load_catalog().get_metric_names()}


@router.get("/tables", response_model=list[TableItem])
def list_tables() -> list[TableItem]:
    """Return allowed tables with their column allow-lists."""
    return [TableItem(**t) for t in load_catalog().get_tables_list()]


@router.get("/catalog", response_model=CatalogResponse)
def full_catalog() -> CatalogResponse:
    """Return the complete allow-list catalog."""
    catalog = load_catalog()
    return CatalogResponse(
        metrics=[MetricItem(**m) for m in catalog.get_metrics_list()],
        tables=[TableItem(**t) for t in catalog.get_tables_list()],
        aggregate_filter_keys=catalog.aggregate_filter_keys,
        time_ranges=list(TIME_RANGE_TOKENS),
        list_row_limit=catalog.security.list_row_limit,
    )
