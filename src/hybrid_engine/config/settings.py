"""Central configuration via Pydantic Settings. All values driven by env vars."""

from __future__ import annotations

from pydantic_settings import BaseSettings


class Settings(BaseSettings):
    # API Keys
    openai_api_key: str = ""
    google_api_key: str = ""

    # Embedding
    embedding_model: str = "text-embedding-3-small"
    embedding_dimensions: int = 1536

    # LLM / Gemini
    gemini_model: str = "gemini-2.0-flash"
    gemini_temperature: float = 0.3
    completion_max_tokens: int = 800

    # Circuit breakers (one per backend)
    breaker_failure_threshold: int = 5
    breaker_timeout_ms: int = 30000
    breaker_half_open_max_attempts: int = 3
    breaker_monitor_period_ms: int = 60000

    # Answer cache
    cache_ttl_ms: int = 300000
    cache_max_entries: int = 1000
    cache_min_confidence: float = 0.6

    # Deadlines
    exact_timeout_ms: int = 10000
    semantic_timeout_ms: int = 8000
    completion_timeout_ms: int = 8000
    query_timeout_ms: int = 20000

    # Daily per-user ceilings
    daily_model_calls: int = 1000
    daily_embedding_calls: int = 500
    daily_completion_calls: int = 200
    daily_token_limit: int = 100000
    daily_cost_limit_usd: float = 5.0
    ledger_sweep_interval_s: int = 3600

    # Cost rates (USD per 1K tokens)
    embedding_rate_per_1k: float = 0.00002
    completion_input_rate_per_1k: float = 0.00015
    completion_output_rate_per_1k: float = 0.0006

    # Synthesis
    max_context_chars: int = 8000
    max_answer_chars: int = 2000
    slow_query_ms: int = 8000

    # Performance counters
    stats_smoothing: float = 0.1

    # Exact backend
    exact_max_results: int = 100

    # Semantic backend manual fallback
    vector_scan_page_size: int = 50
    vector_scan_max_pages: int = 10

    # Storage paths
    sqlite_usage_db_path: str = "data/usage.db"
    sqlite_trace_db_path: str = "data/traces.db"

    # Logging
    log_level: str = "INFO"
    log_json: bool = True

    model_config = {"env_file": ".env", "env_prefix": "HYBRID_"}
