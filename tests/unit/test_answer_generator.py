"""
Unit tests -- answer generation contracts per query type.
"""
import pytest
from src.assistant import answer_generator as ag
from src.assistant.errors import AnswerGenerationFailed


@pytest.fixture
def llm_reply(monkeypatch):
    """Patch the model call; returns the list of captured calls."""
    calls = []

    def install(reply):
        def fake_call(system, user, temperature=0.0, provider=None):
            calls.append({"system": system, "user": user, "temperature": temperature, "provider": provider})
            if isinstance(reply, Exception):
                raise reply
            return reply

        monkeypatch.setattr(ag, "call_llm", fake_call)
        return calls

    return install


# ── Display label chain ──────────────────────────────────

def test_label_uses_table_display_field():
    record = {"id": 1, "title": "Other", "lead_name": "Acme Corp"}
    assert ag.primary_display_label(record, "leads_table") == "Acme Corp"


def test_label_falls_back_to_common_names():
    assert ag.primary_display_label({"id": 1, "name": "Widget"}, "leads_table") == "Widget"


def test_label_falls_back_to_first_plain_field():
    record = {"id": 9, "lead_id": 3, "created_at": "2025-01-01", "status": "Pending"}
    assert ag.primary_display_label(record, "tasks_table") == "Pending"


def test_label_none_when_only_identifiers():
    assert ag.primary_display_label({"id": 1, "lead_id": 2}, "tasks_table") is None


# ── Aggregate ────────────────────────────────────────────

def test_aggregate_mock_template():
    text = ag.generate_aggregate_answer(
        "How many won leads today?", "lead_count", 5, {"status": "Won", "time_range": "today"}, mode="mock",
    )
    assert text == "There are 5 won leads today."


def test_aggregate_mock_without_time_range():
    assert ag.generate_aggregate_answer("q", "task_pending_count", 3, {}, mode="mock") == "There are 3 pending tasks."


def test_aggregate_mock_percentage():
    text = ag.generate_aggregate_answer("q", "conversion_probability", 60, {}, mode="mock")
    assert text == "The conversion probability is 60%."


def test_aggregate_llm_contains_value(llm_reply):
    calls = llm_reply("You have 12 pending tasks this week.")
    text = ag.generate_aggregate_answer("q", "task_pending_count", 12, {"time_range": "this_week"}, mode="openai")
    assert "12" in text
    assert calls[0]["temperature"] == 0.0
    assert "this week" in calls[0]["user"]


def test_aggregate_llm_must_repeat_value(llm_reply):
    llm_reply("You have a dozen pending tasks.")
    with pytest.raises(AnswerGenerationFailed):
        ag.generate_aggregate_answer("q", "task_pending_count", 12, {}, mode="openai")


@pytest.mark.parametrize("reply", ["There are 10 leads.", "There are 21 leads.", "The rate is 1.5 today."])
def test_aggregate_value_must_stand_alone(llm_reply, reply):
    llm_reply(reply)
    with pytest.raises(AnswerGenerationFailed):
        ag.generate_aggregate_answer("q", "lead_count", 1, {}, mode="openai")


def test_aggregate_value_at_sentence_end(llm_reply):
    llm_reply("Your lead count is 1.")
    assert ag.generate_aggregate_answer("q", "lead_count", 1, {}, mode="openai") == "Your lead count is 1."


def test_aggregate_mock_prospect_status():
    text = ag.generate_aggregate_answer("q", "prospect_count", 1, {"status": "Won"}, mode="mock")
    assert text == "There are 1 won prospects."


def test_aggregate_backend_failure(llm_reply):
    llm_reply(RuntimeError("timed out"))
    with pytest.raises(AnswerGenerationFailed) as exc_info:
        ag.generate_aggregate_answer("q", "lead_count", 4, {}, mode="ollama")
    assert exc_info.value.status_code == 502


def test_empty_reply_is_failure(llm_reply):
    llm_reply("   ")
    with pytest.raises(AnswerGenerationFailed):
        ag.generate_aggregate_answer("q", "lead_count", 4, {}, mode="ollama")


# ── Field lookup ─────────────────────────────────────────

def test_field_literal_value(llm_reply):
    calls = llm_reply("should not be used")
    assert ag.generate_field_answer("email", "ann@acme.test") == "ann@acme.test"
    assert calls == []


def test_field_zero_is_a_value():
    assert ag.generate_field_answer("attempt_count", 0) == "0"


def test_field_missing():
    assert ag.generate_field_answer("email", None) == (
        "No value found for email matching the specified criteria."
    )


# ── Record lookup ────────────────────────────────────────

def test_record_missing():
    assert ag.generate_record_answer("q", "leads_table", None, mode="openai") == ag.NO_RECORD


def test_record_mock():
    record = {"id": 1, "lead_name": "Acme Corp", "email": "ann@acme.test"}
    assert ag.generate_record_answer("q", "leads_table", record, mode="mock") == "Found record: Acme Corp."


def test_record_llm_uses_label_only(llm_reply):
    calls = llm_reply("Acme Corp is a won lead.")
    record = {"id": 1, "lead_name": "Acme Corp", "email": "ann@acme.test"}
    assert ag.generate_record_answer("q", "leads_table", record, mode="openai") == "Acme Corp is a won lead."
    assert calls[0]["temperature"] == 0.1
    assert "Acme Corp" in calls[0]["system"]
    assert "ann@acme.test" not in calls[0]["user"]


# ── List ─────────────────────────────────────────────────

def test_list_bullets():
    records = [{"id": 1, "title": "Call Acme"}, {"id": 2, "title": "Email Globex"}]
    assert ag.generate_list_answer("tasks_table", records) == "- Call Acme\n- Email Globex"


def test_list_line_count_matches_records():
    records = [{"id": i, "lead_name": f"Lead {i}"} for i in range(7)]
    assert len(ag.generate_list_answer("leads_table", records).splitlines()) == 7


def test_list_unlabelled_record_keeps_its_line():
    records = [{"id": 1, "title": "Call Acme"}, {"id": 2, "lead_id": 3, "title": None}]
    lines = ag.generate_list_answer("tasks_table", records).splitlines()
    assert lines == ["- Call Acme", "- Record 2"]


def test_list_only_identifiers_is_not_empty():
    text = ag.generate_list_answer("tasks_table", [{"id": 5, "lead_id": 1}])
    assert text == "- Record 5"
    assert ag.generate_list_answer("tasks_table", [{}]) == "- Record"


def test_list_empty():
    assert ag.generate_list_answer("tasks_table", []) == ag.NO_RECORDS
    assert ag.generate_list_answer("tasks_table", None) == ag.NO_RECORDS


# ── Conversation / unsupported ───────────────────────────

def test_conversation_mock():
    assert ag.generate_conversational_answer("hello", mode="mock") == "Hi!"
    assert ag.generate_conversational_answer("thanks!", mode="mock") == "You're welcome!"


def test_conversation_llm_temperature(llm_reply):
    calls = llm_reply("Hi!")
    assert ag.generate_conversational_answer("hey", mode="anthropic") == "Hi!"
    assert calls[0]["temperature"] == 0.7


def test_unsupported_is_fixed(llm_reply):
    calls = llm_reply("should not be used")
    assert ag.generate_unsupported_answer("weather?") == ag.UNSUPPORTED
    assert calls == []
