"""Core domain objects used throughout the system."""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime
from enum import Enum
from typing import Any, Generic, TypeVar

T = TypeVar("T")


class QueryType(str, Enum):
    COUNT = "count"
    LIST = "list"
    SEARCH = "search"
    COMPARE = "compare"
    ANALYZE = "analyze"
    SEMANTIC = "semantic"


class Backend(str, Enum):
    EXACT = "exact"
    SEMANTIC = "semantic"


@dataclass(frozen=True)
class ExtractedEntity:
    type: str  # "project", "person", "status", "keyword"
    value: str
    confidence: float


@dataclass(frozen=True)
class TemporalFilter:
    start: datetime
    end: datetime
    period: str  # "day", "week", "2_weeks", "month"


@dataclass(frozen=True)
class QueryClassification:
    type: QueryType
    confidence: float
    needs_exact_backend: bool
    needs_semantic_backend: bool
    entities: tuple[ExtractedEntity, ...] = ()
    temporal: TemporalFilter | None = None
    # What a COUNT query counts: "tasks" or "projects".
    count_target: str = "tasks"

    def entity(self, entity_type: str) -> ExtractedEntity | None:
        return next((e for e in self.entities if e.type == entity_type), None)

    @property
    def is_high_confidence(self) -> bool:
        return self.confidence >= 0.8

    @property
    def needs_exact_data(self) -> bool:
        return self.type in (QueryType.COUNT, QueryType.LIST, QueryType.SEARCH)


@dataclass
class ExactMetadata:
    items_scanned: int
    accuracy: float
    elapsed_ms: float = 0.0
    method: str = "store_query"
    completeness: float | None = None
    ready_for_analysis: bool = False


@dataclass
class ExactResult:
    kind: str  # "count", "list", "analysis"
    value: Any
    details: dict
    metadata: ExactMetadata


@dataclass
class VectorMatch:
    id: str
    content: str
    content_type: str
    similarity: float
    metadata: dict = field(default_factory=dict)
    created_at: datetime | None = None


@dataclass
class SemanticSource:
    id: str
    content_type: str
    snippet: str
    relevance_score: float
    metadata: dict = field(default_factory=dict)


@dataclass
class SemanticMetadata:
    elapsed_ms: float
    dimension: int
    result_count: int
    avg_similarity: float
    method: str  # "rpc", "manual"


@dataclass
class SemanticResult:
    insights: list[str]
    sources: list[SemanticSource]
    metadata: SemanticMetadata


@dataclass(frozen=True)
class StoreFilter:
    field: str
    op: str  # "==", ">=", "<=", ">", "<", "in"
    value: Any


@dataclass(frozen=True)
class OrderBy:
    field: str
    descending: bool = False


@dataclass(frozen=True)
class BackendOutcome(Generic[T]):
    """Tagged result returned at the orchestrator's adapter boundary."""

    backend: str
    value: T | None = None
    error: BaseException | None = None
    elapsed_ms: float = 0.0

    @classmethod
    def ok(cls, backend: str, value: T, elapsed_ms: float = 0.0) -> BackendOutcome[T]:
        return cls(backend=backend, value=value, elapsed_ms=elapsed_ms)

    @classmethod
    def failed(
        cls, backend: str, error: BaseException, elapsed_ms: float = 0.0
    ) -> BackendOutcome[T]:
        return cls(backend=backend, error=error, elapsed_ms=elapsed_ms)

    @property
    def succeeded(self) -> bool:
        return self.error is None and self.value is not None


class CircuitState(str, Enum):
    CLOSED = "CLOSED"
    OPEN = "OPEN"
    HALF_OPEN = "HALF_OPEN"


@dataclass
class CircuitBreakerStats:
    state: CircuitState
    failures: int
    successes: int
    total_attempts: int
    last_failure_at: float
    last_success_at: float
    half_open_probes_used: int
    uptime_ms: float


class UsageOperation(str, Enum):
    EMBEDDING = "embedding"
    COMPLETION = "completion"
    GENERAL = "general"


@dataclass
class UsageLedger:
    model_calls: int = 0
    embedding_calls: int = 0
    completion_calls: int = 0
    tokens_used: int = 0
    estimated_cost_usd: float = 0.0


@dataclass(frozen=True)
class CostLimits:
    daily_model_calls: int
    daily_embedding_calls: int
    daily_completion_calls: int
    daily_token_limit: int
    daily_cost_limit_usd: float


@dataclass
class CostCheckResult:
    allowed: bool
    usage: UsageLedger
    reason: str | None = None
    exceeded: list[str] = field(default_factory=list)
    recommendations: list[str] = field(default_factory=list)


@dataclass
class CostAnalytics:
    usage: UsageLedger
    limits: CostLimits
    utilization_percentage: int
    recommended_actions: list[str]
    is_near_limit: bool
    projected_monthly_cost_usd: float


@dataclass
class QueryTrace:
    trace_id: str
    user_id: str
    query: str
    timestamp: datetime
    latency_ms: float
    query_type: str
    confidence: float
    cache_hit: bool
    data_sources_used: list[str]
    error: str | None
    spans: list[dict]
