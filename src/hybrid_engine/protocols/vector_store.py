"""Protocol for the vector-similarity store."""

from __future__ import annotations

from typing import Protocol

from hybrid_engine.models.domain import TemporalFilter, VectorMatch


class VectorStore(Protocol):
    async def match_documents(
        self,
        embedding: list[float],
        threshold: float,
        top_k: int,
        user_id: str,
        content_types: list[str] | None = None,
    ) -> list[VectorMatch]:
        """Server-side similarity search. May raise when the function is unavailable."""
        ...

    async def scan_documents(
        self,
        user_id: str,
        content_types: list[str] | None = None,
        temporal: TemporalFilter | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        """Page raw documents (``id``, ``content``, ``content_type``, ``embedding``,
        ``metadata``, ``created_at``) for client-side similarity."""
        ...
