"""
Seed data generator — creates realistic CRM data for the five catalog tables.

Generates:
  - ~500 leads       (display codes LD-101, LD-102, ...)
  - ~150 prospects   (promoted from leads)
  - ~800 tasks
  - ~300 appointments
  - ~120 bookings

Tables are created from the catalog schema if missing, then truncated and
refilled.  Timestamps fall in the last 90 days so every relative time range
("today", "last_month", ...) has data.
Run:  python -m pipelines.seed.seed_data
"""
from __future__ import annotations

import random
from datetime import datetime, timedelta

from faker import Faker
from sqlalchemy import create_engine, delete

from src.core.config import get_settings
from src.db.schema import get_metadata

fake = Faker()
Faker.seed(42)
random.seed(42)

# ── Tunables ─────────────────────────────────────────────
NUM_SALES_PEOPLE = 8
NUM_LEADS = 500
NUM_PROSPECTS = 150
NUM_TASKS = 800
NUM_APPOINTMENTS = 300
NUM_BOOKINGS = 120
LEAD_CODE_START = 101

LEAD_STATUSES = ["New", "Contacted", "Follow up", "Negotiation", "Won", "Lost"]
LEAD_STATUS_WEIGHTS = [0.25, 0.20, 0.15, 0.15, 0.15, 0.10]
STAGES = ["Discovery", "Qualification", "Proposal", "Negotiation", "Closed"]
QUALIFICATIONS = ["Qualified", "Not qualified", "Unqualified", "Pending review", None]
SOURCES = ["Website", "Referral", "LinkedIn", "Cold call", "Event", "Booking page"]
INDUSTRIES = ["SaaS", "Retail", "Healthcare", "Finance", "Education", "Manufacturing"]
COMPANY_SIZES = ["1-10", "11-50", "51-200", "201-1000", "1000+"]
PRIORITIES = ["Low", "Medium", "High"]
TASK_TYPES = ["Call", "Email", "Meeting", "Follow up"]
TASK_STATUSES = ["Pending", "In progress", "Completed"]
APPOINTMENT_STATUSES = ["scheduled", "completed", "cancelled"]
BOOKING_STATUSES = ["accepted", "cancelled", "rescheduled"]

# ── Helper: date ranges ─────────────────────────────────
NOW = datetime.now().replace(microsecond=0)
DATE_RANGE_DAYS = 90


def _rand_ts(days_back: int = DATE_RANGE_DAYS) -> datetime:
    return NOW - timedelta(
        days=random.randint(0, days_back),
        hours=random.randint(0, 23),
        minutes=random.randint(0, 59),
    )


def _owner() -> int:
    return random.randint(1, NUM_SALES_PEOPLE)


# ── Generators ───────────────────────────────────────────

def gen_leads() -> list[dict]:
    rows = []
    for lid in range(1, NUM_LEADS + 1):
        created = _rand_ts()
        attempted = created + timedelta(days=random.randint(0, 10)) if random.random() < 0.7 else None
        if attempted and attempted > NOW:
            attempted = NOW
        total = round(random.uniform(0, 100), 1)
        rows.append({
            "id": lid,
            "text": f"LD-{LEAD_CODE_START + lid - 1}",
            "lead_name": fake.company(),
            "contact_name": fake.name(),
            "email": fake.company_email(),
            "phone": fake.phone_number(),
            "lead_source": random.choice(SOURCES),
            "industry_type": random.choice(INDUSTRIES),
            "company_size": random.choice(COMPANY_SIZES),
            "turnover": f"{random.randint(1, 500)}M",
            "status": random.choices(LEAD_STATUSES, weights=LEAD_STATUS_WEIGHTS, k=1)[0],
            "priority": random.choice(PRIORITIES),
            "current_stage": random.choice(STAGES),
            "lead_qualification": random.choice(QUALIFICATIONS),
            "meeting_status": random.choice(["Not scheduled", "Scheduled", "Done"]),
            "assigned_to": _owner(),
            "due_date": created + timedelta(days=random.randint(3, 30)),
            "created_at": created,
            "last_attempted_at": attempted,
            "attempt_count": random.randint(0, 8),
            "first_call_done": random.choice(["done", "pending", None]),
            "lead_score": round(random.uniform(0, 10), 1),
            "responsiveness_score": round(random.uniform(0, 10), 1),
            "conversion_chance": round(random.uniform(0, 1), 2),
            "conversion_probability_score": round(random.uniform(0, 1), 2),
            "total_score": total,
            "email_status": random.choice(["sent", "opened", "bounced", None]),
            "whatsapp_status": random.choice(["sent", "read", None]),
            "n8n_status": random.choice(["synced", None]),
            "recording_links": None,
            "next_stage_notes": fake.sentence(nb_words=8),
            "is_manual": random.random() < 0.2,
        })
    return rows


def gen_prospects(leads: list[dict]) -> list[dict]:
    rows = []
    for pid, lead in enumerate(random.sample(leads, NUM_PROSPECTS), 1):
        rows.append({
            "id": pid,
            "lead_id": lead["id"],
            "lead_name": lead["lead_name"],
            "contact_name": lead["contact_name"],
            "email": lead["email"],
            "phone": lead["phone"],
            "status": random.choice(["Active", "On hold", "Won", "Lost"]),
            "current_stage": random.choice(STAGES),
            "next_stage": random.choice(STAGES),
            "assigned_to": lead["assigned_to"],
            "created_at": lead["created_at"] + timedelta(days=random.randint(1, 14)),
        })
    return rows


def gen_tasks(leads: list[dict]) -> list[dict]:
    rows = []
    for tid in range(1, NUM_TASKS + 1):
        lead = random.choice(leads)
        kind = random.choice(TASK_TYPES)
        created = _rand_ts()
        rows.append({
            "id": tid,
            "lead_id": lead["id"],
            "sales_person_id": lead["assigned_to"],
            "title": f"{kind} {lead['contact_name']}",
            "type": kind,
            "priority": random.choice(PRIORITIES),
            "status": random.choice(TASK_STATUSES),
            "comments": fake.sentence(nb_words=6),
            "due_date": created + timedelta(days=random.randint(-5, 20)),
            "created_at": created,
            "updated_at": created + timedelta(hours=random.randint(0, 72)),
        })
    return rows


def gen_appointments(leads: list[dict]) -> list[dict]:
    rows = []
    for aid in range(1, NUM_APPOINTMENTS + 1):
        lead = random.choice(leads)
        start = _rand_ts() + timedelta(days=random.randint(0, 14))
        rows.append({
            "id": aid,
            "lead_id": lead["id"],
            "salesperson_id": lead["assigned_to"],
            "title": f"Demo with {lead['lead_name']}",
            "start_time": start,
            "end_time": start + timedelta(minutes=random.choice([30, 45, 60])),
            "status": random.choice(APPOINTMENT_STATUSES),
            "attendee_name": lead["contact_name"],
            "attendee_email": lead["email"],
            "created_at": start - timedelta(days=random.randint(1, 7)),
        })
    return rows


def gen_bookings() -> list[dict]:
    rows = []
    for bid in range(1, NUM_BOOKINGS + 1):
        start = _rand_ts() + timedelta(days=random.randint(0, 21))
        rows.append({
            "id": bid,
            "title": random.choice(["Intro call", "Product demo", "Pricing walkthrough"]),
            "invitee_name": fake.name(),
            "invitee_email": fake.email(),
            "start_time": start,
            "end_time": start + timedelta(minutes=30),
            "status": random.choice(BOOKING_STATUSES),
            "created_at": start - timedelta(days=random.randint(0, 10)),
        })
    return rows


# ── Bulk insert helper ───────────────────────────────────

def _bulk_insert(engine, table, rows: list[dict], batch_size: int = 500):
    """Insert rows into *table* in batches."""
    if not rows:
        return
    with engine.begin() as conn:
        for i in range(0, len(rows), batch_size):
            conn.execute(table.insert(), rows[i : i + batch_size])
    print(f"  ✓ {table.name}: {len(rows):,} rows")


# ── Main ─────────────────────────────────────────────────

def main():
    print("═══ CRM Seed Data Generator ═══")
    engine = create_engine(get_settings().database_url, echo=False)
    metadata = get_metadata()
    tables = metadata.tables

    print("Creating missing tables …")
    metadata.create_all(engine)

    # Clear existing data for idempotency
    print("Clearing CRM tables …")
    with engine.begin() as conn:
        for name in ["bookings", "appointments", "tasks_table", "prospects_table", "leads_table"]:
            conn.execute(delete(tables[name]))

    print("Generating data …")
    leads = gen_leads()
    prospects = gen_prospects(leads)
    tasks = gen_tasks(leads)
    appointments = gen_appointments(leads)
    bookings = gen_bookings()

    print("Inserting …")
    _bulk_insert(engine, tables["leads_table"], leads)
    _bulk_insert(engine, tables["prospects_table"], prospects)
    _bulk_insert(engine, tables["tasks_table"], tasks)
    _bulk_insert(engine, tables["appointments"], appointments)
    _bulk_insert(engine, tables["bookings"], bookings)

    print(f"\nDone — seeded {len(leads):,} leads, {len(prospects):,} prospects, "
          f"{len(tasks):,} tasks, {len(appointments):,} appointments, {len(bookings):,} bookings.")


if __name__ == "__main__":
    main()
