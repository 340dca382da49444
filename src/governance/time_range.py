"""
Time-range resolution -- relative tokens to absolute [start, end] bounds.

The extraction stage never supplies literal dates; it names one of a fixed set
of relative windows and the server resolves it here.  Resolution is pure: the
same (token, now) always yields the same bounds.

Weeks start on Sunday.  Windows that include the current day end at the last
microsecond of today.
"""
from __future__ import annotations

import re
from datetime import date, datetime, time, timedelta

from src.core.logging import get_logger

logger = get_logger(__name__)

DEFAULT_TOKEN = "last_7_days"

_LABELS: dict[str, str] = {
    "today": "today",
    "this_week": "this week",
    "last_week": "last week",
    "this_month": "this month",
    "last_month": "last month",
    "last_7_days": "the last 7 days",
    "last_30_days": "the last 30 days",
}

TIME_RANGE_TOKENS: tuple[str, ...] = tuple(_LABELS)

# A literal calendar date (2025-01-31, 31/01/2025, ...) is never a valid token.
_LITERAL_DATE_RE = re.compile(r"\d{4}-\d{1,2}-\d{1,2}|\d{1,2}[/.]\d{1,2}[/.]\d{2,4}")


def _day_start(d: date) -> datetime:
    return datetime.combine(d, time.min)


def _day_end(d: date) -> datetime:
    return datetime.combine(d, time.max)


def _week_start(d: date) -> date:
    """Most recent Sunday on or before *d*."""
    return d - timedelta(days=(d.weekday() + 1) % 7)


def is_known_token(token: str | None) -> bool:
    return token in _LABELS


def looks_like_literal_date(value: str) -> bool:
    return bool(_LITERAL_DATE_RE.search(value))


def resolve_time_range(token: str | None, now: datetime | None = None) -> tuple[datetime, datetime]:
    """Convert a relative *token* to inclusive ``(start, end)`` datetimes.

    Unknown tokens fall back to ``last_7_days`` (logged) rather than failing.
    """
    if now is None:
        now = datetime.now()
    today = now.date()

    if not is_known_token(token):
        logger.warning("Unknown time_range token %r -- defaulting to %s", token, DEFAULT_TOKEN)
        token = DEFAULT_TOKEN

    if token == "today":
        return _day_start(today), _day_end(today)

    if token == "this_week":
        return _day_start(_week_start(today)), _day_end(today)

    if token == "last_week":
        this_sunday = _week_start(today)
        start = this_sunday - timedelta(days=7)
        end = this_sunday - timedelta(days=1)
        return _day_start(start), _day_end(end)

    if token == "this_month":
        return _day_start(today.replace(day=1)), _day_end(today)

    if token == "last_month":
        last_day_prev = today.replace(day=1) - timedelta(days=1)
        return _day_start(last_day_prev.replace(day=1)), _day_end(last_day_prev)

    if token == "last_30_days":
        return _day_start(today - timedelta(days=30)), _day_end(today)

    # last_7_days
    return _day_start(today - timedelta(days=7)), _day_end(today)


def describe_time_range(token: str | None) -> str:
    """Human-readable label for *token* ("the last 7 days")."""
    if not token:
        return ""
    return _LABELS.get(token, token)
