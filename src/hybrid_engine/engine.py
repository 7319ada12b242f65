"""Wiring for in-process hosts: build a ready-to-use orchestrator."""

from __future__ import annotations

from pathlib import Path

from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import CostGovernor
from hybrid_engine.embeddings.openai_embedder import OpenAIEmbedder
from hybrid_engine.exceptions import ConfigurationError
from hybrid_engine.generation.gemini_provider import GeminiProvider
from hybrid_engine.generation.synthesizer import ResponseSynthesizer
from hybrid_engine.observability.logger import get_logger, setup_logging
from hybrid_engine.pipeline.cache import InMemoryAnswerCache
from hybrid_engine.pipeline.orchestrator import HybridQueryOrchestrator
from hybrid_engine.protocols.embedder import Embedder
from hybrid_engine.protocols.llm import LLMProvider
from hybrid_engine.protocols.operational_store import OperationalStore
from hybrid_engine.protocols.stores import AnswerCacheStore, UsageLedgerStore
from hybrid_engine.protocols.vector_store import VectorStore
from hybrid_engine.query.classifier import QueryClassifier
from hybrid_engine.reliability.circuit_breaker import (
    CircuitBreakerConfig,
    CircuitBreakerRegistry,
)
from hybrid_engine.retrieval.exact_engine import ExactQueryEngine
from hybrid_engine.retrieval.semantic_engine import SemanticQueryEngine
from hybrid_engine.storage.memory_usage_store import InMemoryUsageStore
from hybrid_engine.storage.sqlite_trace_store import SQLiteTraceStore
from hybrid_engine.storage.sqlite_usage_store import SQLiteUsageStore

logger = get_logger("engine")


def build_orchestrator(
    settings: Settings,
    operational_store: OperationalStore,
    vector_store: VectorStore,
    embedder: Embedder | None = None,
    llm: LLMProvider | None = None,
    usage_store: UsageLedgerStore | None = None,
    cache: AnswerCacheStore | None = None,
    breakers: CircuitBreakerRegistry | None = None,
    trace_store: SQLiteTraceStore | None = None,
) -> HybridQueryOrchestrator:
    """Assemble every component from ``settings``.

    Missing providers fall back to the OpenAI embedder and, when a Google key
    is configured, the Gemini provider. Without an LLM every answer uses the
    deterministic template.
    """
    if embedder is None:
        if not settings.openai_api_key:
            raise ConfigurationError("HYBRID_OPENAI_API_KEY is required when no embedder is given")
        embedder = OpenAIEmbedder(
            api_key=settings.openai_api_key,
            model=settings.embedding_model,
            dimensions=settings.embedding_dimensions,
        )
    if llm is None and settings.google_api_key:
        llm = GeminiProvider(
            api_key=settings.google_api_key,
            model=settings.gemini_model,
            temperature=settings.gemini_temperature,
        )

    governor = CostGovernor(usage_store or InMemoryUsageStore(), settings)
    orchestrator = HybridQueryOrchestrator(
        classifier=QueryClassifier(),
        exact_engine=ExactQueryEngine(operational_store, settings),
        semantic_engine=SemanticQueryEngine(embedder, vector_store, governor, settings),
        synthesizer=ResponseSynthesizer(llm, governor, settings),
        breakers=breakers or CircuitBreakerRegistry(CircuitBreakerConfig.from_settings(settings)),
        cache=cache or InMemoryAnswerCache(settings.cache_ttl_ms, settings.cache_max_entries),
        settings=settings,
        trace_store=trace_store,
    )
    logger.info(
        "orchestrator_built",
        llm=type(llm).__name__ if llm else None,
        embedder=type(embedder).__name__,
        traces=trace_store is not None,
    )
    return orchestrator


async def create_engine(
    operational_store: OperationalStore,
    vector_store: VectorStore,
    settings: Settings | None = None,
    embedder: Embedder | None = None,
    llm: LLMProvider | None = None,
) -> HybridQueryOrchestrator:
    """Configure logging and SQLite persistence, then build the orchestrator."""
    settings = settings or Settings()
    setup_logging(settings.log_level, settings.log_json)

    for path in (settings.sqlite_usage_db_path, settings.sqlite_trace_db_path):
        Path(path).parent.mkdir(parents=True, exist_ok=True)

    usage_store = SQLiteUsageStore(settings.sqlite_usage_db_path)
    await usage_store.initialize()
    trace_store = SQLiteTraceStore(settings.sqlite_trace_db_path)
    await trace_store.initialize()

    return build_orchestrator(
        settings,
        operational_store,
        vector_store,
        embedder=embedder,
        llm=llm,
        usage_store=usage_store,
        trace_store=trace_store,
    )
