"""Manual vector search used when the store's similarity RPC is unavailable."""

from __future__ import annotations

from datetime import datetime

from hybrid_engine.models.domain import TemporalFilter, VectorMatch
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.protocols.vector_store import VectorStore
from hybrid_engine.retrieval.similarity import cosine_similarity

logger = get_logger("vector_fallback")


class ManualVectorSearch:
    """Pages candidate documents and scores them client-side."""

    def __init__(self, store: VectorStore, page_size: int = 50, max_pages: int = 10) -> None:
        self._store = store
        self._page_size = page_size
        self._max_pages = max_pages

    @property
    def page_size(self) -> int:
        return self._page_size

    async def search(
        self,
        embedding: list[float],
        user_id: str,
        threshold: float,
        match_count: int,
        content_types: list[str] | None = None,
        temporal: TemporalFilter | None = None,
    ) -> list[VectorMatch]:
        matches: list[VectorMatch] = []
        scanned = 0
        for page in range(self._max_pages):
            rows = await self._store.scan_documents(
                user_id,
                content_types=content_types or None,
                temporal=temporal,
                limit=self._page_size,
                offset=page * self._page_size,
            )
            scanned += len(rows)
            for row in rows:
                vector = row.get("embedding")
                if not vector:
                    continue
                similarity = cosine_similarity(embedding, vector)
                if similarity >= threshold:
                    matches.append(_to_match(row, similarity))
            if len(rows) < self._page_size:
                break

        matches.sort(key=lambda m: m.similarity, reverse=True)
        logger.info(
            "manual_vector_search",
            scanned=scanned,
            above_threshold=len(matches),
            threshold=threshold,
        )
        return matches[:match_count]


def _to_match(row: dict, similarity: float) -> VectorMatch:
    created_at = row.get("created_at")
    if isinstance(created_at, str):
        created_at = datetime.fromisoformat(created_at)
    return VectorMatch(
        id=str(row["id"]),
        content=row.get("content") or "",
        content_type=row.get("content_type") or "unknown",
        similarity=similarity,
        metadata=row.get("metadata") or {},
        created_at=created_at,
    )
