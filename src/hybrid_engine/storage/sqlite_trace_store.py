"""SQLite-backed query trace store for observability."""

from __future__ import annotations

import json
from datetime import datetime, timezone

import aiosqlite

from hybrid_engine.models.domain import QueryTrace
from hybrid_engine.storage.migrations import initialize_trace_db


class SQLiteTraceStore:
    def __init__(self, db_path: str) -> None:
        self._db_path = db_path

    async def initialize(self) -> None:
        await initialize_trace_db(self._db_path)

    async def save_trace(self, trace: QueryTrace) -> None:
        async with aiosqlite.connect(self._db_path) as db:
            await db.execute(
                "INSERT OR REPLACE INTO query_traces "
                "(trace_id, user_id, query, timestamp, latency_ms, query_type, confidence, "
                "cache_hit, data_sources_used, error, spans) "
                "VALUES (?, ?, ?, ?, ?, ?, ?, ?, ?, ?, ?)",
                (
                    trace.trace_id,
                    trace.user_id,
                    trace.query,
                    trace.timestamp.isoformat(),
                    trace.latency_ms,
                    trace.query_type,
                    trace.confidence,
                    int(trace.cache_hit),
                    json.dumps(trace.data_sources_used),
                    trace.error,
                    json.dumps(trace.spans, default=str),
                ),
            )
            await db.commit()

    async def get_trace(self, trace_id: str) -> QueryTrace | None:
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(
                "SELECT * FROM query_traces WHERE trace_id = ?", (trace_id,)
            ) as cursor:
                row = await cursor.fetchone()
                if row is None:
                    return None
                return self._row_to_trace(row)

    async def get_recent_traces(
        self, limit: int = 100, user_id: str | None = None
    ) -> list[QueryTrace]:
        sql = "SELECT * FROM query_traces"
        params: tuple = ()
        if user_id is not None:
            sql += " WHERE user_id = ?"
            params = (user_id,)
        sql += " ORDER BY timestamp DESC LIMIT ?"
        async with aiosqlite.connect(self._db_path) as db:
            db.row_factory = aiosqlite.Row
            async with db.execute(sql, (*params, limit)) as cursor:
                rows = await cursor.fetchall()
                return [self._row_to_trace(row) for row in rows]

    @staticmethod
    def _row_to_trace(row: aiosqlite.Row) -> QueryTrace:
        timestamp = datetime.fromisoformat(row["timestamp"])
        if timestamp.tzinfo is None:
            timestamp = timestamp.replace(tzinfo=timezone.utc)
        return QueryTrace(
            trace_id=row["trace_id"],
            user_id=row["user_id"],
            query=row["query"],
            timestamp=timestamp,
            latency_ms=row["latency_ms"],
            query_type=row["query_type"],
            confidence=row["confidence"],
            cache_hit=bool(row["cache_hit"]),
            data_sources_used=json.loads(row["data_sources_used"]),
            error=row["error"],
            spans=json.loads(row["spans"]),
        )
