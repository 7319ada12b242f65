"""Relative time-period extraction for temporal query filters."""

from __future__ import annotations

import re
from datetime import datetime, timedelta, timezone

from hybrid_engine.models.domain import TemporalFilter

TEMPORAL_PATTERN = re.compile(
    r"\b(?:(?:last|past|this|in the(?: last| past)?)\s+(2 weeks?|two weeks|week|month|day)|(today))\b",
    re.IGNORECASE,
)

_PERIOD_DAYS = {
    "week": 7,
    "2_weeks": 14,
    "month": 30,
}


def _normalize_period(raw: str) -> str:
    raw = raw.lower()
    if raw in ("today", "day"):
        return "day"
    if raw.startswith("2 week") or raw == "two weeks":
        return "2_weeks"
    return raw


def extract_temporal(query: str, now: datetime | None = None) -> TemporalFilter | None:
    """Convert a relative period in ``query`` to an absolute ``[start, end)`` range."""
    match = TEMPORAL_PATTERN.search(query)
    if not match:
        return None

    now = now or datetime.now(timezone.utc)
    period = _normalize_period(match.group(1) or match.group(2))

    if period == "day":
        start = now.replace(hour=0, minute=0, second=0, microsecond=0)
        return TemporalFilter(start=start, end=now, period=period)

    days = _PERIOD_DAYS.get(period)
    if days is None:
        return None
    return TemporalFilter(start=now - timedelta(days=days), end=now, period=period)


def default_window(days: int, period: str, now: datetime | None = None) -> TemporalFilter:
    now = now or datetime.now(timezone.utc)
    return TemporalFilter(start=now - timedelta(days=days), end=now, period=period)
