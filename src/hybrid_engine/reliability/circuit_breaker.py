"""Per-backend circuit breaker: CLOSED -> OPEN -> HALF_OPEN -> CLOSED."""

from __future__ import annotations

import asyncio
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import TypeVar

from hybrid_engine.config.settings import Settings
from hybrid_engine.exceptions import CircuitOpenError, CostLimitExceeded
from hybrid_engine.models.domain import CircuitBreakerStats, CircuitState
from hybrid_engine.observability.logger import get_logger

logger = get_logger("circuit_breaker")

T = TypeVar("T")


@dataclass(frozen=True)
class CircuitBreakerConfig:
    failure_threshold: int = 5
    timeout_ms: int = 30000
    half_open_max_attempts: int = 3
    monitor_period_ms: int = 60000

    @classmethod
    def from_settings(cls, settings: Settings) -> CircuitBreakerConfig:
        return cls(
            failure_threshold=settings.breaker_failure_threshold,
            timeout_ms=settings.breaker_timeout_ms,
            half_open_max_attempts=settings.breaker_half_open_max_attempts,
            monitor_period_ms=settings.breaker_monitor_period_ms,
        )


class CircuitBreaker:
    """Guards one backend. State is mutated only inside this class.

    ``clock`` returns seconds; it defaults to ``time.monotonic`` and is
    injectable so tests can move time deterministically.
    """

    def __init__(
        self,
        name: str,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self.name = name
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._total_attempts = 0
        self._last_failure_at = 0.0
        self._last_success_at = 0.0
        self._half_open_probes = 0
        self._started_at = clock()
        logger.info(
            "breaker_initialized",
            backend=name,
            failure_threshold=self._config.failure_threshold,
            timeout_ms=self._config.timeout_ms,
            half_open_max_attempts=self._config.half_open_max_attempts,
        )

    @property
    def state(self) -> CircuitState:
        return self._state

    @property
    def failure_count(self) -> int:
        return self._failures

    @property
    def config(self) -> CircuitBreakerConfig:
        return self._config

    async def execute(
        self,
        operation: Callable[[], Awaitable[T]],
        operation_name: str = "unknown",
    ) -> T:
        self._total_attempts += 1
        attempt = self._total_attempts
        entry_state = self._state
        logger.debug(
            "breaker_execute",
            backend=self.name,
            operation=operation_name,
            attempt=attempt,
            state=entry_state.value,
            failures=self._failures,
        )

        if self._state is CircuitState.OPEN:
            if self._timeout_elapsed():
                self._transition(CircuitState.HALF_OPEN, attempt)
                self._half_open_probes = 0
            else:
                retry_after_ms = self._retry_after_ms()
                logger.warning(
                    "breaker_rejected",
                    backend=self.name,
                    operation=operation_name,
                    attempt=attempt,
                    retry_after_ms=retry_after_ms,
                )
                raise CircuitOpenError(self.name, retry_after_ms)

        if self._state is CircuitState.HALF_OPEN:
            if self._half_open_probes >= self._config.half_open_max_attempts:
                logger.warning(
                    "breaker_probe_limit",
                    backend=self.name,
                    operation=operation_name,
                    attempt=attempt,
                )
                raise CircuitOpenError(
                    self.name,
                    self._config.timeout_ms,
                    f"Circuit breaker for {self.name} is HALF_OPEN and max probe attempts reached.",
                )
            self._half_open_probes += 1

        start = self._clock()
        try:
            result = await operation()
        except CostLimitExceeded:
            # Budget denials are per user; they neither open nor close the circuit.
            if self._state is CircuitState.HALF_OPEN:
                self._half_open_probes = max(0, self._half_open_probes - 1)
            raise
        except asyncio.CancelledError:
            self._on_failure(attempt, "cancelled")
            raise
        except Exception as e:
            self._on_failure(attempt, str(e))
            raise
        else:
            self._on_success(attempt)
            return result
        finally:
            logger.debug(
                "breaker_exit",
                backend=self.name,
                operation=operation_name,
                attempt=attempt,
                entry_state=entry_state.value,
                exit_state=self._state.value,
                duration_ms=round((self._clock() - start) * 1000, 2),
            )

    def is_operation_allowed(self) -> bool:
        """Side-effect-free pre-check for callers that want to skip a doomed call."""
        if self._state is CircuitState.CLOSED:
            return True
        if self._state is CircuitState.HALF_OPEN:
            return self._half_open_probes < self._config.half_open_max_attempts
        return self._timeout_elapsed()

    def _on_success(self, attempt: int) -> None:
        self._successes += 1
        self._last_success_at = self._clock()
        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.CLOSED, attempt)
            self._failures = 0
            self._half_open_probes = 0
        elif self._state is CircuitState.CLOSED:
            self._failures = max(0, self._failures - 1)

    def _on_failure(self, attempt: int, error: str) -> None:
        self._failures += 1
        self._last_failure_at = self._clock()
        logger.info(
            "breaker_failure",
            backend=self.name,
            attempt=attempt,
            failures=self._failures,
            threshold=self._config.failure_threshold,
            error=error,
        )
        if self._state is CircuitState.HALF_OPEN:
            self._transition(CircuitState.OPEN, attempt)
        elif (
            self._state is CircuitState.CLOSED
            and self._failures >= self._config.failure_threshold
        ):
            self._transition(CircuitState.OPEN, attempt)

    def _transition(self, new_state: CircuitState, attempt: int) -> None:
        if new_state is self._state:
            return
        logger.warning(
            "breaker_transition",
            backend=self.name,
            attempt=attempt,
            from_state=self._state.value,
            to_state=new_state.value,
            failures=self._failures,
        )
        self._state = new_state

    def _elapsed_since_failure_ms(self) -> float:
        return (self._clock() - self._last_failure_at) * 1000

    def _timeout_elapsed(self) -> bool:
        return self._elapsed_since_failure_ms() > self._config.timeout_ms

    def _retry_after_ms(self) -> int:
        return max(0, int(self._config.timeout_ms - self._elapsed_since_failure_ms()))

    def stats(self) -> CircuitBreakerStats:
        return CircuitBreakerStats(
            state=self._state,
            failures=self._failures,
            successes=self._successes,
            total_attempts=self._total_attempts,
            last_failure_at=self._last_failure_at,
            last_success_at=self._last_success_at,
            half_open_probes_used=self._half_open_probes,
            uptime_ms=(self._clock() - self._started_at) * 1000,
        )

    def health_status(self) -> dict:
        stats = self.stats()
        failure_rate = stats.failures / stats.total_attempts if stats.total_attempts else 0.0
        recommendations: list[str] = []
        if stats.state is CircuitState.OPEN:
            recommendations.append(
                "Service is currently unavailable. Check underlying service health."
            )
        if failure_rate > 0.2:
            recommendations.append(
                "High failure rate detected. Consider investigating service stability."
            )
        if stats.state is CircuitState.HALF_OPEN:
            recommendations.append("Service is recovering. Monitor next few operations closely.")
        return {
            "healthy": stats.state is CircuitState.CLOSED and failure_rate < 0.1,
            "state": stats.state.value,
            "failure_rate": round(failure_rate * 100),
            "uptime": f"{round(stats.uptime_ms / 3_600_000, 1)}h",
            "recommendations": recommendations,
        }

    def reset(self) -> None:
        logger.info("breaker_reset", backend=self.name)
        self._state = CircuitState.CLOSED
        self._failures = 0
        self._successes = 0
        self._half_open_probes = 0
        self._last_failure_at = 0.0
        self._last_success_at = self._clock()

    def force_open(self, reason: str | None = None) -> None:
        logger.warning("breaker_forced_open", backend=self.name, reason=reason)
        self._state = CircuitState.OPEN
        self._last_failure_at = self._clock()


class CircuitBreakerRegistry:
    """One independent breaker per backend name."""

    def __init__(
        self,
        config: CircuitBreakerConfig | None = None,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._config = config or CircuitBreakerConfig()
        self._clock = clock
        self._breakers: dict[str, CircuitBreaker] = {}

    def get(self, backend: str) -> CircuitBreaker:
        breaker = self._breakers.get(backend)
        if breaker is None:
            breaker = CircuitBreaker(backend, self._config, self._clock)
            self._breakers[backend] = breaker
        return breaker

    def states(self) -> dict[str, str]:
        return {name: b.state.value for name, b in self._breakers.items()}

    def reset_all(self) -> None:
        for breaker in self._breakers.values():
            breaker.reset()
