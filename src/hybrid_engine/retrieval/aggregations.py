"""In-memory post-processing for exact query results.

The operational store only filters on equality and a single range field, so
status bucketing, text containment, grouping and scoring happen here.
"""

from __future__ import annotations

import math
from collections import Counter
from datetime import datetime, timezone

SEARCHABLE_FIELDS = (("text", "title"), ("description", "description"), ("notes", "notes"))
IN_PROGRESS_STATUS = "pomodoro"


def as_utc(value: datetime | None) -> datetime | None:
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value


def days_since(created_at: datetime | None, now: datetime) -> float:
    created_at = as_utc(created_at)
    if created_at is None:
        return 0.0
    return (now - created_at).total_seconds() / 86400


def status_breakdown(tasks: list[dict]) -> dict[str, int]:
    breakdown = {"todo": 0, "in_progress": 0, "completed": 0}
    for task in tasks:
        if task.get("completed"):
            breakdown["completed"] += 1
        elif task.get("status") == IN_PROGRESS_STATUS:
            breakdown["in_progress"] += 1
        else:
            breakdown["todo"] += 1
    return breakdown


def group_by_project(records: list[dict]) -> dict[str, int]:
    return dict(Counter(r.get("project_name") or "Unassigned" for r in records))


def searchable_text(task: dict) -> str:
    return " ".join(task.get(f) or "" for f, _ in SEARCHABLE_FIELDS).lower()


def matched_fields(task: dict, term: str) -> list[str]:
    term = term.lower()
    return [label for f, label in SEARCHABLE_FIELDS if term in (task.get(f) or "").lower()]


def relevance_score(task: dict, term: str, now: datetime) -> int:
    """occurrences * 10, +20 for a title hit, plus up to 30 for recency."""
    term = term.lower()
    score = searchable_text(task).count(term) * 10.0
    if term in (task.get("text") or "").lower():
        score += 20
    if task.get("created_at") is not None:
        score += max(0.0, 30 - days_since(task["created_at"], now))
    return round(score)


def diversity_score(minutes_by_project: list[float]) -> float:
    """Shannon entropy (log2) of the time distribution across projects."""
    if len(minutes_by_project) <= 1:
        return 0.0
    total = sum(minutes_by_project)
    if total <= 0:
        return 0.0
    entropy = 0.0
    for minutes in minutes_by_project:
        if minutes <= 0:
            continue
        ratio = minutes / total
        entropy -= ratio * math.log2(ratio)
    return round(entropy, 2)


def data_health(tasks: list[dict]) -> str:
    if not tasks:
        return "poor"
    total = len(tasks)
    notes = sum(1 for t in tasks if (t.get("notes") or "").strip()) / total
    description = sum(1 for t in tasks if (t.get("description") or "").strip()) / total
    project = sum(1 for t in tasks if t.get("project_name")) / total
    coverage = (notes + description + project) / 3
    if coverage > 0.8:
        return "excellent"
    if coverage > 0.6:
        return "good"
    if coverage > 0.4:
        return "fair"
    return "poor"
