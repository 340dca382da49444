"""
Unit tests -- scope resolution onto ownership predicates.
"""
from src.assistant.intent import CallerContext
from src.governance.scope import normalize_scope, ownership_column, resolve_ownership

SALES = CallerContext(user_id="u-7", role="sales", ownership_id=7)


def test_ownership_columns():
    assert ownership_column("leads_table") == "assigned_to"
    assert ownership_column("prospects_table") == "assigned_to"
    assert ownership_column("tasks_table") == "sales_person_id"
    assert ownership_column("appointments") == "salesperson_id"
    assert ownership_column("bookings") is None


def test_normalize_scope():
    assert normalize_scope("user") == "user"
    assert normalize_scope("global") == "global"
    assert normalize_scope(None) == "global"
    assert normalize_scope("team") == "global"


def test_user_scope_filters_by_owner():
    assert resolve_ownership("tasks_table", SALES, "user") == ("sales_person_id", 7)


def test_global_scope_has_no_predicate():
    assert resolve_ownership("leads_table", SALES, "global") is None


def test_missing_scope_is_global():
    assert resolve_ownership("leads_table", SALES, None) is None


def test_bookings_never_filtered():
    assert resolve_ownership("bookings", SALES, "user") is None


def test_user_scope_without_ownership_id(caplog):
    caller = CallerContext(user_id="admin-1", role="admin")
    assert resolve_ownership("leads_table", caller, "user") is None
    assert "no ownership id" in caplog.text


def test_user_scope_without_caller():
    assert resolve_ownership("leads_table", None, "user") is None
