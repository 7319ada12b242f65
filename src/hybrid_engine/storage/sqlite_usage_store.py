"""SQLite-backed per-(user, day) usage ledger store."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace
from datetime import datetime, timezone

import aiosqlite

from hybrid_engine.models.domain import UsageLedger
from hybrid_engine.storage.migrations import initialize_usage_db

_COLUMNS = "model_calls, embedding_calls, completion_calls, tokens_used, estimated_cost_usd"


class SQLiteUsageStore:
    """Read-modify-write runs under one lock inside a single transaction."""

    def __init__(self, db_path: str) -> None:
        self._db_path = db_path
        self._lock = asyncio.Lock()

    async def initialize(self) -> None:
        await initialize_usage_db(self._db_path)

    async def get(self, key: str) -> UsageLedger | None:
        async with aiosqlite.connect(self._db_path) as db:
            return await self._fetch(db, key)

    async def update(
        self, key: str, mutate: Callable[[UsageLedger], UsageLedger]
    ) -> UsageLedger:
        async with self._lock:
            async with aiosqlite.connect(self._db_path) as db:
                current = await self._fetch(db, key) or UsageLedger()
                updated = mutate(replace(current))
                await db.execute(
                    f"INSERT OR REPLACE INTO usage_ledgers (ledger_key, {_COLUMNS}, updated_at) "
                    "VALUES (?, ?, ?, ?, ?, ?, ?)",
                    (
                        key,
                        updated.model_calls,
                        updated.embedding_calls,
                        updated.completion_calls,
                        updated.tokens_used,
                        updated.estimated_cost_usd,
                        datetime.now(timezone.utc).isoformat(),
                    ),
                )
                await db.commit()
                return updated

    async def keys(self) -> list[str]:
        async with aiosqlite.connect(self._db_path) as db:
            async with db.execute("SELECT ledger_key FROM usage_ledgers") as cursor:
                rows = await cursor.fetchall()
                return [row[0] for row in rows]

    async def delete(self, key: str) -> None:
        async with self._lock:
            async with aiosqlite.connect(self._db_path) as db:
                await db.execute("DELETE FROM usage_ledgers WHERE ledger_key = ?", (key,))
                await db.commit()

    @staticmethod
    async def _fetch(db: aiosqlite.Connection, key: str) -> UsageLedger | None:
        async with db.execute(
            f"SELECT {_COLUMNS} FROM usage_ledgers WHERE ledger_key = ?", (key,)
        ) as cursor:
            row = await cursor.fetchone()
            if row is None:
                return None
            return UsageLedger(
                model_calls=row[0],
                embedding_calls=row[1],
                completion_calls=row[2],
                tokens_used=row[3],
                estimated_cost_usd=row[4],
            )
