"""Exact-query adapter over the operational store.

One handler per classification type. Each handler issues store queries with
at most one range field and finishes the work in memory.
"""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from datetime import datetime, timedelta, timezone

from hybrid_engine.config.settings import Settings
from hybrid_engine.exceptions import BackendError
from hybrid_engine.models.domain import (
    ExactMetadata,
    ExactResult,
    OrderBy,
    QueryClassification,
    QueryType,
    StoreFilter,
)
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.protocols.operational_store import OperationalStore
from hybrid_engine.query.temporal import default_window
from hybrid_engine.retrieval.aggregations import (
    as_utc,
    data_health,
    days_since,
    diversity_score,
    group_by_project,
    matched_fields,
    relevance_score,
    searchable_text,
    status_breakdown,
)

logger = get_logger("exact_engine")

TASKS = "tasks"
WORK_SESSIONS = "work_sessions"
BACKEND = "exact"


class ExactQueryEngine:
    def __init__(
        self,
        store: OperationalStore,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._max_results = settings.exact_max_results
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._handlers: dict[
            QueryType, Callable[[QueryClassification, str], Awaitable[ExactResult]]
        ] = {
            QueryType.COUNT: self._count,
            QueryType.LIST: self._list_untouched,
            QueryType.SEARCH: self._search,
            QueryType.COMPARE: self._compare,
            QueryType.ANALYZE: self._analyze,
        }

    async def execute(self, classification: QueryClassification, user_id: str) -> ExactResult:
        handler = self._handlers.get(classification.type)
        if handler is None:
            raise BackendError(
                BACKEND, f"Unsupported query type for exact backend: {classification.type.value}"
            )

        start = time.monotonic()
        try:
            result = await handler(classification, user_id)
        except BackendError:
            raise
        except Exception as e:
            logger.error("exact_query_failed", type=classification.type.value, error=str(e))
            raise BackendError(BACKEND, f"Exact query failed: {e}") from e

        result.metadata.elapsed_ms = (time.monotonic() - start) * 1000
        logger.info(
            "exact_query_completed",
            type=classification.type.value,
            kind=result.kind,
            items_scanned=result.metadata.items_scanned,
            elapsed_ms=round(result.metadata.elapsed_ms, 2),
        )
        return result

    async def _count(self, classification: QueryClassification, user_id: str) -> ExactResult:
        if classification.count_target == "projects":
            return await self._count_projects(user_id)

        project = classification.entity("project")
        only_incomplete = classification.entity("status") is not None

        filters = [StoreFilter("user_id", "==", user_id)]
        if project:
            filters.append(StoreFilter("project_name", "==", project.value))
        if only_incomplete:
            filters.append(StoreFilter("completed", "==", False))
        if classification.temporal:
            filters.append(StoreFilter("created_at", ">=", classification.temporal.start))
            filters.append(StoreFilter("created_at", "<", classification.temporal.end))

        tasks = await self._store.query(TASKS, filters)
        return ExactResult(
            kind="count",
            value=len(tasks),
            details={
                "project_name": project.value if project else None,
                "period": classification.temporal.period if classification.temporal else None,
                "breakdown": status_breakdown(tasks),
                "only_incomplete": only_incomplete,
            },
            metadata=ExactMetadata(items_scanned=len(tasks), accuracy=1.0),
        )

    async def _count_projects(self, user_id: str) -> ExactResult:
        """Distinct project names across the user's tasks, compared case-insensitively."""
        tasks = await self._store.query(TASKS, [StoreFilter("user_id", "==", user_id)])
        projects: dict[str, str] = {}
        for task in tasks:
            name = (task.get("project_name") or "").strip()
            if name:
                projects.setdefault(name.lower(), name)
        return ExactResult(
            kind="count",
            value=len(projects),
            details={
                "counted": "projects",
                "projects": sorted(projects.values(), key=str.lower),
                "project_name": None,
                "period": None,
            },
            metadata=ExactMetadata(items_scanned=len(tasks), accuracy=1.0),
        )

    async def _list_untouched(
        self, classification: QueryClassification, user_id: str
    ) -> ExactResult:
        now = self._clock()
        filters = [
            StoreFilter("user_id", "==", user_id),
            StoreFilter("time_spent", "==", 0),
        ]
        if classification.temporal:
            filters.append(StoreFilter("created_at", ">=", classification.temporal.start))
            filters.append(StoreFilter("created_at", "<", classification.temporal.end))
        else:
            filters.append(StoreFilter("created_at", "<=", now - timedelta(days=7)))

        records = await self._store.query(
            TASKS, filters, order_by=OrderBy("created_at", descending=True), limit=self._max_results
        )
        tasks = [
            {**r, "days_untouched": int(days_since(r.get("created_at"), now))} for r in records
        ]
        days = [t["days_untouched"] for t in tasks]
        return ExactResult(
            kind="list",
            value=tasks,
            details={
                "count": len(tasks),
                "avg_days_untouched": round(sum(days) / len(days)) if days else 0,
                "project_breakdown": group_by_project(tasks),
                "oldest_days": max(days) if days else 0,
            },
            metadata=ExactMetadata(items_scanned=len(records), accuracy=1.0),
        )

    async def _search(self, classification: QueryClassification, user_id: str) -> ExactResult:
        now = self._clock()
        entity = classification.entity("person") or classification.entity("keyword")
        term = entity.value.lower() if entity else None

        records = await self._store.query(TASKS, [StoreFilter("user_id", "==", user_id)])
        matches: list[dict] = []
        if term:
            matches = [
                {
                    **task,
                    "matched_fields": matched_fields(task, term),
                    "relevance_score": relevance_score(task, term, now),
                }
                for task in records
                if term in searchable_text(task)
            ]
            matches.sort(key=lambda t: t["relevance_score"], reverse=True)
            matches = matches[: self._max_results]

        avg_relevance = (
            round(sum(t["relevance_score"] for t in matches) / len(matches)) if matches else 0
        )
        return ExactResult(
            kind="list",
            value=matches,
            details={
                "search_term": entity.value if entity else None,
                "count": len(matches),
                "total_scanned": len(records),
                "avg_relevance": avg_relevance,
                "top_match": matches[0] if matches else None,
            },
            metadata=ExactMetadata(
                items_scanned=len(records), accuracy=0.95, method="client_side_filtering"
            ),
        )

    async def _compare(self, classification: QueryClassification, user_id: str) -> ExactResult:
        temporal = classification.temporal or default_window(14, "2_weeks", self._clock())
        sessions = await self._store.query(
            WORK_SESSIONS,
            [
                StoreFilter("user_id", "==", user_id),
                StoreFilter("start_time", ">=", temporal.start),
                StoreFilter("start_time", "<", temporal.end),
            ],
        )

        minutes: dict[str, float] = {}
        counts: dict[str, int] = {}
        for session in sessions:
            name = session.get("project_name") or "Unassigned"
            minutes[name] = minutes.get(name, 0) + (session.get("duration") or 0)
            counts[name] = counts.get(name, 0) + 1

        total = sum(minutes.values())
        ranking = sorted(
            (
                {
                    "project": name,
                    "time_minutes": spent,
                    "time_hours": round(spent / 60, 1),
                    "sessions": counts[name],
                    "avg_session_minutes": round(spent / counts[name], 1),
                    "percentage": round(spent / total * 100) if total > 0 else 0,
                }
                for name, spent in minutes.items()
            ),
            key=lambda p: p["time_minutes"],
            reverse=True,
        )
        return ExactResult(
            kind="analysis",
            value=ranking,
            details={
                "period": temporal.period,
                "total_time": total,
                "total_sessions": len(sessions),
                "top_project": ranking[0]["project"] if ranking else None,
                "diversity_score": diversity_score([p["time_minutes"] for p in ranking]),
                "time_range": {
                    "start": as_utc(temporal.start).isoformat(),
                    "end": as_utc(temporal.end).isoformat(),
                },
            },
            metadata=ExactMetadata(items_scanned=len(sessions), accuracy=1.0),
        )

    async def _analyze(self, classification: QueryClassification, user_id: str) -> ExactResult:
        project = classification.entity("project")
        filters = [StoreFilter("user_id", "==", user_id)]
        if project:
            filters.append(StoreFilter("project_name", "==", project.value))

        records = await self._store.query(TASKS, filters)
        tasks = [
            {
                "id": r.get("id"),
                "text": r.get("text") or "",
                "description": r.get("description") or "",
                "notes": r.get("notes") or "",
                "status": r.get("status"),
                "completed": bool(r.get("completed")),
                "created_at": r.get("created_at"),
                "time_spent": r.get("time_spent") or 0,
                "project_name": r.get("project_name"),
                "full_content": " ".join(
                    part for part in (r.get("text"), r.get("description"), r.get("notes")) if part
                ),
            }
            for r in records
        ]
        completed = sum(1 for t in tasks if t["completed"])
        avg_length = (
            round(sum(len(t["full_content"]) for t in tasks) / len(tasks)) if tasks else 0
        )
        return ExactResult(
            kind="analysis",
            value=tasks,
            details={
                "project_name": project.value if project else None,
                "total_tasks": len(tasks),
                "completed_tasks": completed,
                "pending_tasks": len(tasks) - completed,
                "avg_content_length": avg_length,
                "tasks_by_status": {
                    "completed": completed,
                    "pending": len(tasks) - completed,
                    "with_notes": sum(1 for t in tasks if t["notes"]),
                    "with_description": sum(1 for t in tasks if t["description"]),
                },
            },
            metadata=ExactMetadata(
                items_scanned=len(records),
                accuracy=1.0,
                completeness=1.0,
                ready_for_analysis=True,
            ),
        )

    async def get_query_stats(self, user_id: str) -> dict:
        """Record totals and a data-health grade for monitoring."""
        user_filter = [StoreFilter("user_id", "==", user_id)]
        try:
            tasks, sessions = await asyncio.gather(
                self._store.query(TASKS, user_filter),
                self._store.query(WORK_SESSIONS, user_filter),
            )
        except Exception as e:
            raise BackendError(BACKEND, f"Query stats failed: {e}") from e

        projects = {t.get("project_name") for t in tasks if t.get("project_name")}
        return {
            "total_tasks": len(tasks),
            "total_projects": len(projects),
            "total_sessions": len(sessions),
            "data_health": data_health(tasks),
        }
