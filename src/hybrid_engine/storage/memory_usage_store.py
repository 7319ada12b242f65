"""In-memory usage ledger store for single-process hosts and tests."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import replace

from hybrid_engine.models.domain import UsageLedger


class InMemoryUsageStore:
    def __init__(self) -> None:
        self._ledgers: dict[str, UsageLedger] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: str) -> UsageLedger | None:
        ledger = self._ledgers.get(key)
        return replace(ledger) if ledger else None

    async def update(
        self, key: str, mutate: Callable[[UsageLedger], UsageLedger]
    ) -> UsageLedger:
        async with self._lock:
            current = self._ledgers.get(key) or UsageLedger()
            updated = mutate(replace(current))
            self._ledgers[key] = updated
            return replace(updated)

    async def keys(self) -> list[str]:
        return list(self._ledgers)

    async def delete(self, key: str) -> None:
        async with self._lock:
            self._ledgers.pop(key, None)
