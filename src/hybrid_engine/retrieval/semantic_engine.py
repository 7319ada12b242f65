"""Semantic-query adapter: embed, search the vector store, summarize matches."""

from __future__ import annotations

import time
from collections import Counter
from dataclasses import dataclass

from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import CostGovernor, estimate_tokens
from hybrid_engine.exceptions import BackendError, CostLimitExceeded
from hybrid_engine.models.domain import (
    QueryClassification,
    QueryType,
    SemanticMetadata,
    SemanticResult,
    SemanticSource,
    TemporalFilter,
    UsageOperation,
    VectorMatch,
)
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.protocols.embedder import Embedder
from hybrid_engine.protocols.vector_store import VectorStore
from hybrid_engine.retrieval.fallback import ManualVectorSearch
from hybrid_engine.retrieval.insights import average_similarity, build_insights

logger = get_logger("semantic_engine")

BACKEND = "semantic"
SNIPPET_CHARS = 200
PROBE_QUERY = "productivity patterns"


@dataclass(frozen=True)
class SearchParameters:
    content_types: tuple[str, ...]
    threshold: float
    match_count: int
    temporal: TemporalFilter | None = None


_PARAMETERS: dict[QueryType, tuple[tuple[str, ...], float, int]] = {
    QueryType.COUNT: (("task", "project_summary"), 0.8, 5),
    QueryType.LIST: (("task", "project_summary"), 0.8, 8),
    QueryType.SEARCH: (("task", "session"), 0.7, 10),
    QueryType.COMPARE: (("project_summary", "daily_summary", "temporal_pattern"), 0.6, 15),
    QueryType.ANALYZE: (("task", "project_summary"), 0.75, 12),
    QueryType.SEMANTIC: ((), 0.7, 10),
}


def search_parameters(classification: QueryClassification) -> SearchParameters:
    content_types, threshold, match_count = _PARAMETERS[classification.type]
    return SearchParameters(content_types, threshold, match_count, classification.temporal)


def to_source(match: VectorMatch) -> SemanticSource:
    snippet = match.content
    if len(snippet) > SNIPPET_CHARS:
        snippet = snippet[:SNIPPET_CHARS] + "..."
    return SemanticSource(
        id=match.id,
        content_type=match.content_type,
        snippet=snippet,
        relevance_score=match.similarity,
        metadata={
            "created_at": match.created_at.isoformat() if match.created_at else None,
            "content_type": match.content_type,
            **match.metadata,
        },
    )


class SemanticQueryEngine:
    def __init__(
        self,
        embedder: Embedder,
        vector_store: VectorStore,
        cost_governor: CostGovernor,
        settings: Settings,
    ) -> None:
        self._embedder = embedder
        self._store = vector_store
        self._governor = cost_governor
        self._manual = ManualVectorSearch(
            vector_store,
            page_size=settings.vector_scan_page_size,
            max_pages=settings.vector_scan_max_pages,
        )

    async def execute(
        self, classification: QueryClassification, user_id: str, query: str
    ) -> SemanticResult:
        start = time.monotonic()
        try:
            embedding = await self._embed(user_id, query)
            params = search_parameters(classification)
            matches, method = await self._search(embedding, user_id, params)
        except (BackendError, CostLimitExceeded):
            raise
        except Exception as e:
            logger.error("semantic_query_failed", type=classification.type.value, error=str(e))
            raise BackendError(BACKEND, f"Vector query failed: {e}") from e

        elapsed_ms = (time.monotonic() - start) * 1000
        result = SemanticResult(
            insights=build_insights(matches, classification.type),
            sources=[to_source(m) for m in matches],
            metadata=SemanticMetadata(
                elapsed_ms=elapsed_ms,
                dimension=len(embedding),
                result_count=len(matches),
                avg_similarity=average_similarity(matches),
                method=method,
            ),
        )
        logger.info(
            "semantic_query_completed",
            type=classification.type.value,
            method=method,
            results=len(matches),
            avg_similarity=round(result.metadata.avg_similarity, 4),
            elapsed_ms=round(elapsed_ms, 2),
        )
        return result

    async def _embed(self, user_id: str, query: str) -> list[float]:
        tokens = estimate_tokens(query)
        check = await self._governor.check_cost_limits(user_id, UsageOperation.EMBEDDING, tokens)
        if not check.allowed:
            logger.warning("embedding_denied", user_id=user_id, reason=check.reason)
            raise CostLimitExceeded(check.reason or "embedding", check.recommendations)

        try:
            embedding = await self._embedder.embed_query(query)
        except Exception:
            await self._governor.record_failed_call(user_id, UsageOperation.EMBEDDING)
            raise
        await self._governor.record_usage(user_id, UsageOperation.EMBEDDING, tokens=tokens)
        return embedding

    async def _search(
        self, embedding: list[float], user_id: str, params: SearchParameters
    ) -> tuple[list[VectorMatch], str]:
        content_types = list(params.content_types) or None
        try:
            matches = await self._store.match_documents(
                embedding, params.threshold, params.match_count, user_id, content_types
            )
            return matches, "rpc"
        except Exception as e:
            logger.warning("vector_rpc_unavailable", error=str(e))

        matches = await self._manual.search(
            embedding,
            user_id,
            threshold=params.threshold,
            match_count=params.match_count,
            content_types=content_types,
            temporal=params.temporal,
        )
        return matches, "manual"

    async def probe(self, user_id: str, query: str = PROBE_QUERY) -> dict:
        """Run a small semantic search and report whether it worked."""
        classification = QueryClassification(
            type=QueryType.SEMANTIC,
            confidence=0.8,
            needs_exact_backend=False,
            needs_semantic_backend=True,
        )
        try:
            result = await self.execute(classification, user_id, query)
        except (BackendError, CostLimitExceeded) as e:
            return {"success": False, "result_count": 0, "avg_similarity": 0.0, "error": str(e)}
        return {
            "success": True,
            "result_count": result.metadata.result_count,
            "avg_similarity": result.metadata.avg_similarity,
            "method": result.metadata.method,
        }

    async def get_vector_stats(self, user_id: str) -> dict:
        """Document counts per content type and embedding coverage."""
        page_size = self._manual.page_size
        rows: list[dict] = []
        offset = 0
        try:
            while True:
                page = await self._store.scan_documents(user_id, limit=page_size, offset=offset)
                rows.extend(page)
                if len(page) < page_size:
                    break
                offset += page_size
        except Exception as e:
            raise BackendError(BACKEND, f"Vector stats failed: {e}") from e

        with_embeddings = [r for r in rows if r.get("embedding")]
        return {
            "total_documents": len(rows),
            "documents_with_embeddings": len(with_embeddings),
            "content_type_breakdown": dict(Counter(r.get("content_type") for r in rows)),
            "embedding_dimensions": len(with_embeddings[0]["embedding"]) if with_embeddings else 0,
        }
