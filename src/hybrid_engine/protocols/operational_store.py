"""Protocol for the operational (exact) record store."""

from __future__ import annotations

from typing import Protocol

from hybrid_engine.models.domain import OrderBy, StoreFilter


class OperationalStore(Protocol):
    async def query(
        self,
        collection: str,
        filters: list[StoreFilter],
        order_by: OrderBy | None = None,
        limit: int | None = None,
    ) -> list[dict]:
        """Return matching records.

        Range operators (``>=``, ``<=``, ``>``, ``<``) may target at most one
        field per call; ``in`` accepts at most 10 values.
        """
        ...
