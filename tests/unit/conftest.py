"""
Shared fixtures -- an in-memory SQLite CRM database with a small, known dataset.

Reference time for every relative range is NOW (Wednesday 2025-06-18 12:00);
the current week therefore starts on Sunday 2025-06-15.
"""
from datetime import datetime

import pytest
from sqlalchemy import create_engine
from sqlalchemy.pool import StaticPool

from src.db.connection import set_engine
from src.db.schema import get_metadata

NOW = datetime(2025, 6, 18, 12, 0)


LEADS = [
    {"id": 1, "text": "LD-101", "lead_name": "Acme Corp", "contact_name": "Ann Lee",
     "email": "ann@acme.test", "status": "Won", "current_stage": "Closed", "assigned_to": 1,
     "created_at": datetime(2025, 6, 18, 9, 0), "last_attempted_at": None,
     "lead_qualification": "Qualified", "first_call_done": "done", "total_score": 80.0,
     "attempt_count": 3},
    {"id": 2, "text": "LD-102", "lead_name": "Globex", "contact_name": "Bo Chen",
     "email": "bo@globex.test", "status": "Won", "current_stage": "Closed", "assigned_to": 2,
     "created_at": datetime(2025, 6, 10, 14, 0), "last_attempted_at": datetime(2025, 6, 18, 10, 0),
     "lead_qualification": "Pending", "first_call_done": "Done", "total_score": 60.0,
     "attempt_count": 5},
    {"id": 3, "text": "LD-103", "lead_name": "Initech", "contact_name": "Cy Diaz",
     "email": "cy@initech.test", "status": "Follow up", "current_stage": "Proposal", "assigned_to": 1,
     "created_at": datetime(2025, 5, 20, 11, 0), "last_attempted_at": datetime(2025, 6, 17, 16, 0),
     "lead_qualification": "qualified", "first_call_done": None, "total_score": None,
     "attempt_count": 1},
    {"id": 4, "text": "LD-104", "lead_name": "Umbrella", "contact_name": "Di Evans",
     "email": None, "status": "New", "current_stage": "Discovery", "assigned_to": 2,
     "created_at": datetime(2025, 6, 18, 8, 0), "last_attempted_at": None,
     "lead_qualification": None, "first_call_done": "pending", "total_score": 40.0,
     "attempt_count": 0},
]

PROSPECTS = [
    {"id": 1, "lead_id": 2, "lead_name": "Globex", "status": "Active", "current_stage": "Proposal",
     "next_stage": "Negotiation", "assigned_to": 2, "created_at": datetime(2025, 6, 12, 9, 0)},
    {"id": 2, "lead_id": 1, "lead_name": "Acme Corp", "status": "Won", "current_stage": "Closed",
     "next_stage": "Closed", "assigned_to": 1, "created_at": datetime(2025, 4, 1, 9, 0)},
]

TASKS = [
    {"id": 1, "lead_id": 1, "sales_person_id": 1, "title": "Call Acme", "type": "Call",
     "status": "Pending", "due_date": datetime(2025, 6, 17, 9, 0), "created_at": datetime(2025, 6, 16, 9, 0)},
    {"id": 2, "lead_id": 1, "sales_person_id": 2, "title": "Email Acme", "type": "Email",
     "status": "Completed", "due_date": datetime(2025, 6, 10, 9, 0), "created_at": datetime(2025, 6, 5, 9, 0)},
    {"id": 3, "lead_id": 3, "sales_person_id": 1, "title": "Demo Initech", "type": "Meeting",
     "status": "In progress", "due_date": datetime(2025, 6, 25, 9, 0), "created_at": datetime(2025, 6, 18, 9, 0)},
    {"id": 4, "lead_id": 2, "sales_person_id": 2, "title": "Follow up Globex", "type": "Follow up",
     "status": "Pending", "due_date": datetime(2025, 6, 1, 9, 0), "created_at": datetime(2025, 5, 20, 9, 0)},
]

APPOINTMENTS = [
    {"id": 1, "lead_id": 1, "salesperson_id": 1, "title": "Demo with Acme", "status": "scheduled",
     "created_at": datetime(2025, 6, 17, 9, 0)},
    {"id": 2, "lead_id": 2, "salesperson_id": 2, "title": "Review with Globex", "status": "completed",
     "created_at": datetime(2025, 6, 11, 9, 0)},
    {"id": 3, "lead_id": 3, "salesperson_id": 2, "title": "Kickoff with Initech", "status": "scheduled",
     "created_at": datetime(2025, 5, 1, 9, 0)},
]

BOOKINGS = [
    {"id": 1, "title": "Intro call", "invitee_name": "Eve Fox", "status": "accepted",
     "created_at": datetime(2025, 6, 18, 7, 0)},
    {"id": 2, "title": "Product demo", "invitee_name": "Gil Hart", "status": "accepted",
     "created_at": datetime(2025, 5, 2, 7, 0)},
]


@pytest.fixture
def crm_db():
    """Install an in-memory SQLite CRM database as the shared engine."""
    engine = create_engine(
        "sqlite://",
        connect_args={"check_same_thread": False},
        poolclass=StaticPool,
    )
    metadata = get_metadata()
    metadata.create_all(engine)
    with engine.begin() as conn:
        for name, rows in (
            ("leads_table", LEADS),
            ("prospects_table", PROSPECTS),
            ("tasks_table", TASKS),
            ("appointments", APPOINTMENTS),
            ("bookings", BOOKINGS),
        ):
            conn.execute(metadata.tables[name].insert(), rows)

    set_engine(engine)
    yield engine
    set_engine(None)
    engine.dispose()
