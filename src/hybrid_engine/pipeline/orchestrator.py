"""Hybrid query orchestrator: classify, cache, fan out, synthesize."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from typing import Any

import structlog

from hybrid_engine.config.settings import Settings
from hybrid_engine.exceptions import (
    AllBackendsFailed,
    BackendError,
    BackendTimeout,
    CostLimitExceeded,
)
from hybrid_engine.generation.synthesizer import ExecutionInfo, ResponseSynthesizer
from hybrid_engine.models.domain import (
    Backend,
    BackendOutcome,
    ExactResult,
    QueryClassification,
    SemanticResult,
)
from hybrid_engine.models.schemas import HealthReport, HybridAnswer
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.observability.metrics import (
    PerformanceStats,
    log_backend_metrics,
    log_latency,
)
from hybrid_engine.observability.tracing import TraceContext
from hybrid_engine.pipeline.cache import build_cache_key
from hybrid_engine.protocols.stores import AnswerCacheStore
from hybrid_engine.query.classifier import QueryClassifier
from hybrid_engine.reliability.circuit_breaker import CircuitBreakerRegistry
from hybrid_engine.retrieval.exact_engine import ExactQueryEngine
from hybrid_engine.retrieval.semantic_engine import SemanticQueryEngine
from hybrid_engine.storage.sqlite_trace_store import SQLiteTraceStore

logger = get_logger("orchestrator")

QUERY_DEADLINE_ERROR = "query deadline exceeded"


class HybridQueryOrchestrator:
    """Runs one query end to end. ``execute`` never raises for query text."""

    def __init__(
        self,
        classifier: QueryClassifier,
        exact_engine: ExactQueryEngine,
        semantic_engine: SemanticQueryEngine,
        synthesizer: ResponseSynthesizer,
        breakers: CircuitBreakerRegistry,
        cache: AnswerCacheStore,
        settings: Settings,
        trace_store: SQLiteTraceStore | None = None,
    ) -> None:
        self._classifier = classifier
        self._exact = exact_engine
        self._semantic = semantic_engine
        self._synthesizer = synthesizer
        self._breakers = breakers
        self._cache = cache
        self._settings = settings
        self._trace_store = trace_store
        self._stats = PerformanceStats(settings.stats_smoothing)
        self._background: set[asyncio.Task] = set()

    async def process_query(self, text: str, user_id: str) -> HybridAnswer:
        return await self.execute(text, user_id)

    async def execute(
        self, query: str, user_id: str, allow_semantic_skip: bool = False
    ) -> HybridAnswer:
        trace = TraceContext()
        with structlog.contextvars.bound_contextvars(query_id=trace.trace_id, user_id=user_id):
            return await self._execute(trace, query, user_id, allow_semantic_skip)

    async def _execute(
        self, trace: TraceContext, query: str, user_id: str, allow_semantic_skip: bool
    ) -> HybridAnswer:
        with trace.span("classification"):
            classification = self._classifier.classify(
                query, allow_semantic_skip=allow_semantic_skip
            )

        cache_key = build_cache_key(user_id, query, classification)
        cached = self._cache.get(cache_key)
        if cached is not None:
            answer = cached.as_cache_hit(trace.elapsed_ms, trace.trace_id)
            self._stats.record_cache_hit()
            self._stats.record_query(trace.elapsed_ms)
            logger.info("cache_hit", type=classification.type.value)
            self._persist_trace(trace, user_id, query, answer)
            return answer

        try:
            answer = await asyncio.wait_for(
                self._run(trace, query, classification, user_id),
                timeout=self._settings.query_timeout_ms / 1000,
            )
        except asyncio.TimeoutError:
            logger.error("query_deadline_exceeded", timeout_ms=self._settings.query_timeout_ms)
            answer = self._failure(trace, classification, QUERY_DEADLINE_ERROR)
        except AllBackendsFailed as e:
            logger.error("all_backends_failed", errors={k: str(v) for k, v in e.errors.items()})
            answer = self._failure(trace, classification, str(e))
        except Exception as e:
            logger.exception("query_failed", error=str(e))
            answer = self._failure(trace, classification, f"{type(e).__name__}: {e}")

        if not answer.metadata.fallback and answer.confidence > self._settings.cache_min_confidence:
            self._cache.set(cache_key, answer)

        self._stats.record_query(trace.elapsed_ms, failed=answer.metadata.fallback)
        log_latency(trace.trace_id, "total", trace.elapsed_ms)
        logger.info(
            "query_completed",
            type=classification.type.value,
            confidence=answer.confidence,
            sources=answer.metadata.data_sources_used,
            fallback=answer.metadata.fallback,
            model_used=answer.metadata.model_used,
            elapsed_ms=round(trace.elapsed_ms, 2),
        )
        self._persist_trace(trace, user_id, query, answer)
        return answer

    async def _run(
        self,
        trace: TraceContext,
        query: str,
        classification: QueryClassification,
        user_id: str,
    ) -> HybridAnswer:
        calls: list[Awaitable[BackendOutcome]] = []
        if classification.needs_exact_backend:
            calls.append(
                self._guarded(
                    trace,
                    Backend.EXACT,
                    lambda: self._exact.execute(classification, user_id),
                    self._settings.exact_timeout_ms,
                )
            )
        if classification.needs_semantic_backend:
            calls.append(
                self._guarded(
                    trace,
                    Backend.SEMANTIC,
                    lambda: self._semantic.execute(classification, user_id, query),
                    self._settings.semantic_timeout_ms,
                )
            )

        outcomes: list[BackendOutcome] = list(await asyncio.gather(*calls))
        by_backend = {o.backend: o for o in outcomes}
        exact = self._value(by_backend.get(Backend.EXACT.value), ExactResult)
        semantic = self._value(by_backend.get(Backend.SEMANTIC.value), SemanticResult)

        if exact is None and semantic is None:
            raise AllBackendsFailed({o.backend: o.error for o in outcomes})

        info = ExecutionInfo(
            query_id=trace.trace_id,
            user_id=user_id,
            exact_success=exact is not None,
            semantic_success=semantic is not None,
            total_query_time_ms=trace.elapsed_ms,
        )
        with trace.span("synthesis"):
            return await self._synthesizer.synthesize(
                query, classification, exact, semantic, info
            )

    async def _guarded(
        self,
        trace: TraceContext,
        backend: Backend,
        call: Callable[[], Awaitable[Any]],
        timeout_ms: int,
    ) -> BackendOutcome:
        """deadline(breaker(call)); every failure becomes a failed outcome."""
        name = backend.value
        breaker = self._breakers.get(name)
        start = time.monotonic()
        error: BackendError
        with trace.span(f"{name}_backend"):
            try:
                value = await asyncio.wait_for(
                    breaker.execute(call, operation_name=f"{name}_query"),
                    timeout=timeout_ms / 1000,
                )
            except asyncio.TimeoutError:
                error = BackendTimeout(name, timeout_ms)
            except BackendError as e:
                error = e
            except CostLimitExceeded as e:
                error = BackendError(name, f"Blocked by usage limits: {e.limit_type}")
                error.__cause__ = e
            except Exception as e:
                error = BackendError(name, str(e))
                error.__cause__ = e
            else:
                elapsed_ms = (time.monotonic() - start) * 1000
                log_backend_metrics(trace.trace_id, name, True, elapsed_ms)
                return BackendOutcome.ok(name, value, elapsed_ms)

        elapsed_ms = (time.monotonic() - start) * 1000
        logger.warning("backend_failed", backend=name, error=str(error))
        log_backend_metrics(trace.trace_id, name, False, elapsed_ms, str(error))
        return BackendOutcome.failed(name, error, elapsed_ms)

    @staticmethod
    def _value(outcome: BackendOutcome | None, expected: type):
        if outcome is None or not outcome.succeeded:
            return None
        return outcome.value if isinstance(outcome.value, expected) else None

    def _failure(
        self, trace: TraceContext, classification: QueryClassification, error: str
    ) -> HybridAnswer:
        return self._synthesizer.failure_answer(
            classification, trace.trace_id, trace.elapsed_ms, error
        )

    def _persist_trace(
        self, trace: TraceContext, user_id: str, query: str, answer: HybridAnswer
    ) -> None:
        if self._trace_store is None:
            return
        record = trace.to_trace(
            user_id=user_id,
            query=query,
            query_type=answer.metadata.query_type,
            confidence=answer.confidence,
            cache_hit=answer.metadata.cache_hit,
            data_sources_used=answer.metadata.data_sources_used,
            error=answer.metadata.error,
        )
        task = asyncio.create_task(self._save_trace(record))
        self._background.add(task)
        task.add_done_callback(self._background.discard)

    async def _save_trace(self, record) -> None:
        try:
            await self._trace_store.save_trace(record)
        except Exception as e:
            logger.warning("trace_save_failed", trace_id=record.trace_id, error=str(e))

    async def drain(self) -> None:
        """Wait for pending trace writes."""
        if self._background:
            await asyncio.gather(*self._background, return_exceptions=True)

    async def health_check(self, user_id: str) -> HealthReport:
        exact_ok = semantic_ok = False
        details: dict[str, Any] = {}

        try:
            details["exact"] = await asyncio.wait_for(
                self._exact.get_query_stats(user_id),
                timeout=self._settings.exact_timeout_ms / 1000,
            )
            exact_ok = True
        except Exception as e:
            details["exact"] = {"error": str(e) or type(e).__name__}

        try:
            probe = await asyncio.wait_for(
                self._semantic.probe(user_id),
                timeout=self._settings.semantic_timeout_ms / 1000,
            )
            semantic_ok = bool(probe.get("success"))
            details["semantic"] = probe
        except Exception as e:
            details["semantic"] = {"error": str(e) or type(e).__name__}

        cache_ok = True
        try:
            details["cache"] = self._cache.stats()
        except Exception as e:
            cache_ok = False
            details["cache"] = {"error": str(e)}

        healthy = sum((exact_ok, semantic_ok))
        status = "healthy" if healthy == 2 else "degraded" if healthy == 1 else "unhealthy"
        report = HealthReport(
            status=status,
            exact=exact_ok,
            semantic=semantic_ok,
            cache=cache_ok,
            breakers=self._breakers.states(),
            details=details,
        )
        logger.info("health_check", status=status, exact=exact_ok, semantic=semantic_ok)
        return report

    def performance_stats(self) -> dict:
        return {
            **self._stats.as_dict(),
            "cache": self._cache.stats(),
            "breakers": {
                name: self._breakers.get(name).health_status()
                for name in self._breakers.states()
            },
        }

    def cache_stats(self) -> dict:
        return self._cache.stats()

    def clear_cache(self) -> None:
        self._cache.clear()
        logger.info("cache_cleared")

    def reset_stats(self) -> None:
        self._stats.reset()
        logger.info("stats_reset")
