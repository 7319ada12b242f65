"""In-memory vector store with a native similarity RPC and a paged scan."""

from __future__ import annotations

from datetime import datetime, timezone
from uuid import uuid4

import numpy as np

from hybrid_engine.exceptions import BackendError
from hybrid_engine.models.domain import TemporalFilter, VectorMatch
from hybrid_engine.observability.logger import get_logger

logger = get_logger("memory_vector_store")


class InMemoryVectorStore:
    """Documents are dicts with ``user_id``, ``content``, ``content_type``,
    ``embedding``, ``metadata`` and ``created_at``.

    With ``rpc_available=False`` ``match_documents`` raises the way a store
    without the similarity function does, forcing the manual scan path.
    """

    def __init__(self, rpc_available: bool = True) -> None:
        self.rpc_available = rpc_available
        self._documents: list[dict] = []
        self.rpc_calls = 0
        self.scan_calls = 0

    def add(
        self,
        user_id: str,
        content: str,
        embedding: list[float],
        content_type: str = "task",
        metadata: dict | None = None,
        created_at: datetime | None = None,
        doc_id: str | None = None,
    ) -> str:
        doc_id = doc_id or uuid4().hex[:12]
        self._documents.append(
            {
                "id": doc_id,
                "user_id": user_id,
                "content": content,
                "content_type": content_type,
                "embedding": list(embedding),
                "metadata": metadata or {},
                "created_at": created_at or datetime.now(timezone.utc),
            }
        )
        return doc_id

    async def match_documents(
        self,
        embedding: list[float],
        threshold: float,
        top_k: int,
        user_id: str,
        content_types: list[str] | None = None,
    ) -> list[VectorMatch]:
        self.rpc_calls += 1
        if not self.rpc_available:
            raise BackendError("semantic", "function match_documents does not exist")

        candidates = [
            d
            for d in self._documents
            if d["user_id"] == user_id
            and d["embedding"]
            and (not content_types or d["content_type"] in content_types)
            and len(d["embedding"]) == len(embedding)
        ]
        if not candidates:
            return []

        query = np.asarray(embedding, dtype=np.float64)
        matrix = np.asarray([d["embedding"] for d in candidates], dtype=np.float64)
        norms = np.linalg.norm(matrix, axis=1) * np.linalg.norm(query)
        scores = np.divide(matrix @ query, norms, out=np.zeros(len(candidates)), where=norms > 0)

        order = np.argsort(-scores)
        matches = [
            VectorMatch(
                id=candidates[i]["id"],
                content=candidates[i]["content"],
                content_type=candidates[i]["content_type"],
                similarity=float(scores[i]),
                metadata=candidates[i]["metadata"],
                created_at=candidates[i]["created_at"],
            )
            for i in order
            if scores[i] >= threshold
        ]
        return matches[:top_k]

    async def scan_documents(
        self,
        user_id: str,
        content_types: list[str] | None = None,
        temporal: TemporalFilter | None = None,
        limit: int = 50,
        offset: int = 0,
    ) -> list[dict]:
        self.scan_calls += 1
        rows = [
            dict(d)
            for d in self._documents
            if d["user_id"] == user_id
            and (not content_types or d["content_type"] in content_types)
            and (temporal is None or temporal.start <= d["created_at"] < temporal.end)
        ]
        return rows[offset : offset + limit]
