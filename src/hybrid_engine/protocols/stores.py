"""Protocols for the per-key state stores injected into the orchestrator."""

from __future__ import annotations

from collections.abc import Callable
from typing import Protocol

from hybrid_engine.models.domain import UsageLedger
from hybrid_engine.models.schemas import HybridAnswer


class AnswerCacheStore(Protocol):
    def get(self, key: str) -> HybridAnswer | None: ...

    def set(self, key: str, answer: HybridAnswer) -> None: ...

    def set_if_absent(self, key: str, answer: HybridAnswer) -> bool: ...

    def clear(self) -> None: ...

    def stats(self) -> dict: ...

    @property
    def size(self) -> int: ...


class UsageLedgerStore(Protocol):
    async def get(self, key: str) -> UsageLedger | None: ...

    async def update(
        self, key: str, mutate: Callable[[UsageLedger], UsageLedger]
    ) -> UsageLedger:
        """Atomic read-modify-write; creates the ledger lazily."""
        ...

    async def keys(self) -> list[str]: ...

    async def delete(self, key: str) -> None: ...
