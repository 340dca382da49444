"""
Unit tests -- filtered-query builder (statement shape, no execution).
"""
import pytest
from sqlalchemy import Select

from src.assistant.errors import QueryBuildError
from src.db.query_builder import (
    FilteredQueryBuilder,
    coerce_value,
    is_display_code,
    normalize_status,
)
from src.db.schema import get_table


def _params(stmt) -> dict:
    return stmt.compile().params


def _sql(stmt) -> str:
    return str(stmt.compile())


def test_status_case_normalised():
    assert normalize_status("won") == "Won"
    assert normalize_status("PENDING") == "Pending"
    assert normalize_status("follow up") == "Follow up"
    assert normalize_status(3) == 3


@pytest.mark.parametrize("value", ["LD-101", "ld-7", "ABCDE-1"])
def test_display_codes(value):
    assert is_display_code(value)


@pytest.mark.parametrize("value", ["101", 101, "ABCDEF-1", "LD101", "LD-"])
def test_not_display_codes(value):
    assert not is_display_code(value)


def test_coerce_integer_strings():
    assert coerce_value("integer", "12") == 12
    assert coerce_value("integer", "abc") == "abc"
    assert coerce_value("string", "12") == "12"


def test_single_table_select():
    stmt = FilteredQueryBuilder("tasks_table").build({})
    assert isinstance(stmt, Select)
    assert stmt.get_final_froms() == [get_table("tasks_table")]


def test_values_are_bound_parameters():
    stmt = FilteredQueryBuilder("leads_table").build({"lead_name": "x'; DROP TABLE leads_table; --"})
    assert "DROP" not in _sql(stmt)
    assert "x'; DROP TABLE leads_table; --" in _params(stmt).values()


def test_ownership_applied_first():
    stmt = FilteredQueryBuilder("tasks_table").build({"status": "pending"}, ownership=("sales_person_id", 4))
    where = _sql(stmt).split("WHERE", 1)[1]
    assert where.index("tasks_table.sales_person_id") < where.index("tasks_table.status")
    assert set(_params(stmt).values()) == {4, "Pending"}


def test_time_range_becomes_created_at_bounds():
    stmt = FilteredQueryBuilder("appointments").build({"time_range": "today"})
    sql = _sql(stmt)
    assert "appointments.created_at >=" in sql
    assert "appointments.created_at <=" in sql


def test_display_code_on_leads_matches_text_column():
    stmt = FilteredQueryBuilder("leads_table").build({"lead_id": "ld-101"})
    assert "leads_table.text =" in _sql(stmt)
    assert "LD-101" in _params(stmt).values()


def test_display_code_elsewhere_uses_subselect():
    stmt = FilteredQueryBuilder("tasks_table").build({"lead_id": "LD-101"})
    sql = _sql(stmt)
    assert "tasks_table.lead_id IN (SELECT leads_table.id" in sql
    assert stmt.get_final_froms() == [get_table("tasks_table")]


def test_numeric_lead_id_on_leads_matches_primary_key():
    stmt = FilteredQueryBuilder("leads_table").build({"lead_id": "7"})
    assert "leads_table.id =" in _sql(stmt)
    assert 7 in _params(stmt).values()


def test_id_suffix_is_identifier_match():
    stmt = FilteredQueryBuilder("appointments").build({"salesperson_id": "3"})
    assert 3 in _params(stmt).values()


def test_field_projection():
    stmt = FilteredQueryBuilder("leads_table").build({"lead_id": "LD-101"}, columns=["email"])
    assert [c.name for c in stmt.selected_columns] == ["email"]


def test_none_values_skipped():
    stmt = FilteredQueryBuilder("tasks_table").build({"status": None})
    assert "WHERE" not in _sql(stmt)


def test_unknown_table():
    with pytest.raises(QueryBuildError):
        FilteredQueryBuilder("users")


def test_inconsistent_statement_rebuilt_once(monkeypatch):
    builder = FilteredQueryBuilder("tasks_table")
    leads = get_table("leads_table")
    original = builder.predicates
    attempts = {"n": 0}

    def flaky(key, value):
        attempts["n"] += 1
        if attempts["n"] == 1:
            return [leads.c.status == value]  # drags a second table into FROM
        return original(key, value)

    monkeypatch.setattr(builder, "predicates", flaky)
    stmt = builder.build({"status": "Pending"})
    assert attempts["n"] == 2
    assert stmt.get_final_froms() == [get_table("tasks_table")]


def test_persistent_inconsistency_raises(monkeypatch):
    builder = FilteredQueryBuilder("tasks_table")
    leads = get_table("leads_table")
    monkeypatch.setattr(builder, "predicates", lambda key, value: [leads.c.status == value])
    with pytest.raises(QueryBuildError):
        builder.build({"status": "Pending"})
