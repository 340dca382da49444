"""
API tests -- FastAPI endpoints via TestClient (no live server needed).
"""
import pytest
from fastapi.testclient import TestClient

from src.api.main import app
from src.api.routers.ask import caller_from_headers

client = TestClient(app)



def test_health():
    resp = client.get("/health")
    assert resp.status_code == 200
    data = resp.json()
    assert data["status"] == "ok"
    assert "mock" in data["providers"]


def test_metrics_list():
    resp = client.get("/metrics")
    assert resp.status_code == 200
    data = resp.json()
    assert "lead_count" in data["metrics"]
    assert "revenue" not in data["metrics"]
    assert len(data["metrics"]) == 12


def test_tables_list():
    resp = client.get("/tables")
    assert resp.status_code == 200
    items = resp.json()
    names = [t["name"] for t in items]
    assert "leads_table" in names
    leads = next(t for t in items if t["name"] == "leads_table")
    assert "email" in leads["columns"]
    assert leads["display_field"] == "lead_name"


def test_full_catalog():
    resp = client.get("/catalog")
    assert resp.status_code == 200
    data = resp.json()
    assert "today" in data["time_ranges"]
    assert "status" in data["aggregate_filter_keys"]
    assert data["list_row_limit"] > 0
    lead_count = next(m for m in data["metrics"] if m["name"] == "lead_count")
    assert lead_count["table"] == "leads_table"



def test_ask_aggregate(crm_db):
    resp = client.post("/ask", json={"question": "How many won leads?", "mode": "mock"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["source"] == "crm_database"
    assert data["value"] == 2
    assert data["answer"] == "There are 2 won leads."
    assert "record" not in data


def test_ask_user_scope_from_headers(crm_db):
    resp = client.post(
        "/ask",
        json={"question": "How many pending tasks do I have?", "mode": "mock"},
        headers={"X-User-Id": "u1", "X-Ownership-Id": "1"},
    )
    assert resp.status_code == 200
    assert resp.json()["value"] == 1


def test_ask_list(crm_db):
    resp = client.post("/ask", json={"question": "Show all pending tasks", "mode": "mock"})
    data = resp.json()
    assert data["count"] == 2
    assert data["answer"].splitlines() == ["- Call Acme", "- Follow up Globex"]


def test_ask_greeting():
    resp = client.post("/ask", json={"question": "Hi there", "mode": "mock"})
    assert resp.status_code == 200
    assert resp.json()["source"] == "ai_conversation"



@pytest.mark.parametrize("body", [{"question": ""}, {"question": "   "}, {}])
def test_ask_malformed(body):
    resp = client.post("/ask", json=body)
    assert resp.status_code == 400
    assert resp.json()["error"] == "malformed_request"


def test_ask_forbidden_metric():
    resp = client.post("/ask", json={"question": "What is the total revenue from leads?", "mode": "mock"})
    assert resp.status_code == 400
    data = resp.json()
    assert data["error"] == "forbidden_metric"
    assert "message" in data
    assert data["details"]["intent"]["metric"] == "revenue"


def test_ask_database_unavailable(crm_db, monkeypatch):
    from src.assistant.errors import QueryExecutionFailed
    from src.assistant import service

    def down(*args, **kwargs):
        raise QueryExecutionFailed("could not connect to server")

    monkeypatch.setattr(service, "execute_query", down)
    resp = client.post("/ask", json={"question": "How many leads?", "mode": "mock"})
    assert resp.status_code == 500
    data = resp.json()
    assert data["error"] == "query_execution_failed"
    assert data["category"] == "database_unavailable"



def test_explain_valid():
    resp = client.post("/ask/explain", json={"question": "How many won leads?", "mode": "mock"})
    assert resp.status_code == 200
    data = resp.json()
    assert data["is_valid"] is True
    assert data["intent"]["metric"] == "lead_count"
    assert data["intent"]["filters"] == {"status": "Won"}
    assert data["intent"]["scope"] == "global"


def test_explain_rejected():
    resp = client.post("/ask/explain", json={"question": "What is the total revenue from leads?", "mode": "mock"})
    data = resp.json()
    assert data["is_valid"] is False
    assert data["error_code"] == "forbidden_metric"



def test_caller_from_headers():
    assert caller_from_headers(None, "sales", "3") is None
    caller = caller_from_headers("u7", None, "3")
    assert caller.role == "sales"
    assert caller.ownership_id == 3
    assert caller_from_headers("u7", "admin", "abc").ownership_id == "abc"
