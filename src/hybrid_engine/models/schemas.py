"""Pydantic models for the caller-facing answer shape."""

from __future__ import annotations

from typing import Literal

from pydantic import BaseModel, ConfigDict, Field


class AnswerSource(BaseModel):
    model_config = ConfigDict(frozen=True)

    id: str
    type: Literal["operational_data", "semantic_context"]
    title: str
    snippet: str
    confidence: float
    source: Literal["exact", "semantic"]


class AnswerMetadata(BaseModel):
    model_config = ConfigDict(frozen=True)

    query_type: str
    classification_confidence: float = 0.0
    needs_exact_backend: bool = False
    needs_semantic_backend: bool = False
    exact_success: bool = False
    semantic_success: bool = False
    exact_accuracy: float = 0.0
    semantic_relevance: float = 0.0
    total_query_time_ms: float = 0.0
    fallback: bool = False

    data_sources_used: list[str] = Field(default_factory=list)
    cache_hit: bool = False
    execution_time_ms: float = 0.0
    query_id: str | None = None
    model_used: bool = False
    cost_limited: bool = False
    context_length: int = 0
    response_length: int = 0
    error: str | None = None


class HybridAnswer(BaseModel):
    """The externally visible result of one query. Immutable once built."""

    model_config = ConfigDict(frozen=True)

    text: str
    sources: list[AnswerSource]
    confidence: float = Field(ge=0.0, le=1.0)
    metadata: AnswerMetadata

    def as_cache_hit(self, execution_time_ms: float, query_id: str | None) -> HybridAnswer:
        metadata = self.metadata.model_copy(
            update={
                "cache_hit": True,
                "execution_time_ms": round(execution_time_ms, 2),
                "query_id": query_id,
            }
        )
        return self.model_copy(update={"metadata": metadata})


class HealthReport(BaseModel):
    status: Literal["healthy", "degraded", "unhealthy"]
    exact: bool
    semantic: bool
    cache: bool
    breakers: dict[str, str]
    details: dict = Field(default_factory=dict)
