"""
SQLAlchemy Core table definitions for the CRM tables.

Built from the catalog so the executor can only ever reference allow-listed
tables and columns.  Every query template selects from one of these Table
objects and binds every filter value as a parameter.
"""
from __future__ import annotations

from functools import lru_cache

from sqlalchemy import Boolean, Column, DateTime, Float, Integer, MetaData, String, Table

from src.governance.catalog import load_catalog, CrmCatalog, TableDef

_TYPE_MAP = {
    "integer": Integer,
    "string": String,
    "float": Float,
    "boolean": Boolean,
    "datetime": DateTime,
}


def _build_table(table_def: TableDef, metadata: MetaData) -> Table:
    columns = [
        Column(name, _TYPE_MAP[kind](), primary_key=(name == "id"))
        for name, kind in table_def.columns.items()
    ]
    return Table(table_def.name, metadata, *columns)


def build_metadata(catalog: CrmCatalog) -> MetaData:
    metadata = MetaData()
    for table_def in catalog.tables.values():
        _build_table(table_def, metadata)
    return metadata


@lru_cache
def get_metadata() -> MetaData:
    """Return the (cached) MetaData holding every allow-listed CRM table."""
    return build_metadata(load_catalog())


def get_table(name: str) -> Table:
    """Return the Table for *name*; raises KeyError for tables outside the catalog."""
    return get_metadata().tables[name]
