"""Metric logging helpers and rolling performance counters."""

from __future__ import annotations

from dataclasses import asdict, dataclass

from hybrid_engine.observability.logger import get_logger

logger = get_logger("metrics")


def log_backend_metrics(
    trace_id: str,
    backend: str,
    succeeded: bool,
    duration_ms: float,
    error: str | None = None,
) -> None:
    logger.info(
        "backend_metrics",
        trace_id=trace_id,
        backend=backend,
        succeeded=succeeded,
        duration_ms=round(duration_ms, 2),
        error=error,
    )


def log_synthesis_metrics(
    trace_id: str,
    query_type: str,
    confidence: float,
    model_used: bool,
    cost_limited: bool,
    context_length: int,
) -> None:
    logger.info(
        "synthesis_metrics",
        trace_id=trace_id,
        query_type=query_type,
        confidence=round(confidence, 4),
        model_used=model_used,
        cost_limited=cost_limited,
        context_length=context_length,
    )


def log_latency(trace_id: str, stage: str, duration_ms: float) -> None:
    logger.info(
        "latency",
        trace_id=trace_id,
        stage=stage,
        duration_ms=round(duration_ms, 2),
    )


@dataclass
class PerformanceSnapshot:
    total_queries: int
    cache_hits: int
    cache_hit_rate: float
    average_response_time_ms: float
    error_rate: float


class PerformanceStats:
    """Exponential moving averages of latency and error rate.

    The first observation seeds the latency average directly; the error rate
    starts at zero and drifts toward 1.0 on every failed query.
    """

    def __init__(self, smoothing: float = 0.1) -> None:
        self._alpha = smoothing
        self.reset()

    def reset(self) -> None:
        self.total_queries = 0
        self.cache_hits = 0
        self.average_response_time_ms = 0.0
        self.error_rate = 0.0

    def record_query(self, elapsed_ms: float, failed: bool = False) -> None:
        self.total_queries += 1
        if self.total_queries == 1:
            self.average_response_time_ms = elapsed_ms
        else:
            self.average_response_time_ms = (
                self._alpha * elapsed_ms + (1 - self._alpha) * self.average_response_time_ms
            )
        self.error_rate = self._alpha * (1.0 if failed else 0.0) + (1 - self._alpha) * self.error_rate

    def record_cache_hit(self) -> None:
        self.cache_hits += 1

    def snapshot(self) -> PerformanceSnapshot:
        lookups = self.total_queries
        return PerformanceSnapshot(
            total_queries=self.total_queries,
            cache_hits=self.cache_hits,
            cache_hit_rate=round(self.cache_hits / lookups, 4) if lookups else 0.0,
            average_response_time_ms=round(self.average_response_time_ms, 2),
            error_rate=round(self.error_rate, 4),
        )

    def as_dict(self) -> dict:
        return asdict(self.snapshot())
