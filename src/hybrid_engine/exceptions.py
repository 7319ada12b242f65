"""Custom exception hierarchy for the hybrid query engine."""


class HybridEngineError(Exception):
    """Base exception for all hybrid engine errors."""


class ClassificationError(HybridEngineError):
    """The classifier was handed something other than query text."""


class ConfigurationError(HybridEngineError):
    """Error in system configuration."""


class StoreQueryError(HybridEngineError):
    """A store query violated the operational store's filter rules."""


class BackendError(HybridEngineError):
    """Store or network failure in one of the two data backends."""

    def __init__(self, backend: str, message: str = "") -> None:
        self.backend = backend
        super().__init__(message or f"{backend} backend failed")


class BackendTimeout(BackendError):
    """A backend call exceeded its deadline."""

    def __init__(self, backend: str, timeout_ms: int) -> None:
        self.timeout_ms = timeout_ms
        super().__init__(backend, f"{backend} backend timed out after {timeout_ms}ms")


class CircuitOpenError(BackendError):
    """The backend's circuit breaker is rejecting calls."""

    def __init__(self, backend: str, retry_after_ms: int, message: str = "") -> None:
        self.retry_after_ms = retry_after_ms
        super().__init__(
            backend,
            message
            or f"Circuit breaker for {backend} is OPEN. Service unavailable, retry in {retry_after_ms}ms.",
        )


class AllBackendsFailed(HybridEngineError):
    """Both the exact and the semantic backend failed for one query."""

    def __init__(self, errors: dict[str, BaseException | None]) -> None:
        self.errors = errors
        detail = ", ".join(f"{name}: {err}" for name, err in errors.items())
        super().__init__(f"Both backends failed ({detail})")


class CostLimitExceeded(HybridEngineError):
    """A per-user daily usage ceiling blocks a language-model call."""

    def __init__(self, limit_type: str, recommendations: list[str] | None = None) -> None:
        self.limit_type = limit_type
        self.recommendations = recommendations or []
        super().__init__(f"Cost limit exceeded: {limit_type}")


class EmbeddingError(HybridEngineError):
    """Error generating embeddings."""


class SynthesisError(HybridEngineError):
    """The language-model completion used for synthesis failed."""
