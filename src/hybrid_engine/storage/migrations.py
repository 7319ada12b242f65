"""Idempotent database schema creation."""

from __future__ import annotations

import aiosqlite

USAGE_TABLE = """
CREATE TABLE IF NOT EXISTS usage_ledgers (
    ledger_key TEXT PRIMARY KEY,
    model_calls INTEGER NOT NULL DEFAULT 0,
    embedding_calls INTEGER NOT NULL DEFAULT 0,
    completion_calls INTEGER NOT NULL DEFAULT 0,
    tokens_used INTEGER NOT NULL DEFAULT 0,
    estimated_cost_usd REAL NOT NULL DEFAULT 0,
    updated_at TEXT NOT NULL
)
"""

TRACES_TABLE = """
CREATE TABLE IF NOT EXISTS query_traces (
    trace_id TEXT PRIMARY KEY,
    user_id TEXT NOT NULL,
    query TEXT NOT NULL,
    timestamp TEXT NOT NULL,
    latency_ms REAL NOT NULL,
    query_type TEXT NOT NULL,
    confidence REAL NOT NULL,
    cache_hit INTEGER NOT NULL DEFAULT 0,
    data_sources_used TEXT NOT NULL DEFAULT '[]',
    error TEXT,
    spans TEXT NOT NULL DEFAULT '[]'
)
"""

TRACES_TIMESTAMP_INDEX = """
CREATE INDEX IF NOT EXISTS idx_query_traces_timestamp ON query_traces(timestamp)
"""

TRACES_USER_INDEX = """
CREATE INDEX IF NOT EXISTS idx_query_traces_user ON query_traces(user_id, timestamp)
"""


async def initialize_usage_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(USAGE_TABLE)
        await db.commit()


async def initialize_trace_db(db_path: str) -> None:
    async with aiosqlite.connect(db_path) as db:
        await db.execute(TRACES_TABLE)
        await db.execute(TRACES_TIMESTAMP_INDEX)
        await db.execute(TRACES_USER_INDEX)
        await db.commit()
