"""
Unit tests -- relative time-range resolution.
"""
from datetime import datetime, time

import pytest
from src.governance.time_range import (
    DEFAULT_TOKEN,
    TIME_RANGE_TOKENS,
    describe_time_range,
    is_known_token,
    looks_like_literal_date,
    resolve_time_range,
)

# Wednesday
NOW = datetime(2025, 6, 18, 12, 30)
END_OF_TODAY = datetime.combine(NOW.date(), time.max)


def test_today():
    start, end = resolve_time_range("today", NOW)
    assert start == datetime(2025, 6, 18, 0, 0)
    assert end == END_OF_TODAY


def test_end_of_day_is_last_microsecond():
    _, end = resolve_time_range("today", NOW)
    assert (end.hour, end.minute, end.second, end.microsecond) == (23, 59, 59, 999999)


def test_this_week_starts_sunday():
    start, end = resolve_time_range("this_week", NOW)
    assert start == datetime(2025, 6, 15)
    assert start.weekday() == 6
    assert end == END_OF_TODAY


def test_this_week_on_sunday_is_today():
    sunday = datetime(2025, 6, 15, 10, 0)
    start, _ = resolve_time_range("this_week", sunday)
    assert start == datetime(2025, 6, 15)


def test_last_week_is_previous_sunday_to_saturday():
    start, end = resolve_time_range("last_week", NOW)
    assert start == datetime(2025, 6, 8)
    assert end == datetime.combine(datetime(2025, 6, 14).date(), time.max)


def test_this_month():
    start, end = resolve_time_range("this_month", NOW)
    assert start == datetime(2025, 6, 1)
    assert end == END_OF_TODAY


def test_last_month_is_full_previous_month():
    start, end = resolve_time_range("last_month", NOW)
    assert start == datetime(2025, 5, 1)
    assert end.date() == datetime(2025, 5, 31).date()
    assert end.time() == time.max


def test_last_month_across_year_boundary():
    start, end = resolve_time_range("last_month", datetime(2025, 1, 10))
    assert start == datetime(2024, 12, 1)
    assert end.date() == datetime(2024, 12, 31).date()


def test_last_7_days():
    start, end = resolve_time_range("last_7_days", NOW)
    assert start == datetime(2025, 6, 11)
    assert end == END_OF_TODAY


def test_last_30_days():
    start, _ = resolve_time_range("last_30_days", NOW)
    assert start == datetime(2025, 5, 19)


def test_unknown_token_defaults_to_last_7_days(caplog):
    assert resolve_time_range("fortnight", NOW) == resolve_time_range(DEFAULT_TOKEN, NOW)
    assert "fortnight" in caplog.text


def test_resolution_is_pure():
    for token in TIME_RANGE_TOKENS:
        assert resolve_time_range(token, NOW) == resolve_time_range(token, NOW)


@pytest.mark.parametrize("token", TIME_RANGE_TOKENS)
def test_start_never_after_end(token):
    start, end = resolve_time_range(token, NOW)
    assert start <= end


def test_known_tokens():
    assert is_known_token("today")
    assert not is_known_token("yesterday")
    assert not is_known_token(None)


@pytest.mark.parametrize("value", ["2025-06-18", "18/06/2025", "6.18.25"])
def test_literal_dates_detected(value):
    assert looks_like_literal_date(value)


def test_token_is_not_literal_date():
    assert not looks_like_literal_date("last_7_days")


def test_describe():
    assert describe_time_range("last_7_days") == "the last 7 days"
    assert describe_time_range("today") == "today"
    assert describe_time_range(None) == ""
