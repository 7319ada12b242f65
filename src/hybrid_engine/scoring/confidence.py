"""Answer confidence, derived only from the answer's own metadata."""

from __future__ import annotations

from hybrid_engine.models.schemas import AnswerMetadata

FALLBACK_CONFIDENCE = 0.1
MIN_CONFIDENCE = 0.1
MAX_CONFIDENCE = 1.0


def score_confidence(metadata: AnswerMetadata, slow_query_ms: float = 8000) -> float:
    """Classification confidence adjusted by backend outcomes.

    Boosts are capped at 1.0 as they are applied; penalties follow and the
    result is clamped to [0.1, 1.0]. Fallback answers are pinned to 0.1.
    """
    if metadata.fallback:
        return FALLBACK_CONFIDENCE

    conf = metadata.classification_confidence
    if metadata.exact_success and metadata.exact_accuracy > 0.9:
        conf = min(MAX_CONFIDENCE, conf + 0.2)
    if metadata.semantic_success and metadata.semantic_relevance > 0.8:
        conf = min(MAX_CONFIDENCE, conf + 0.1)

    if metadata.needs_exact_backend and not metadata.exact_success:
        conf -= 0.3
    if metadata.needs_semantic_backend and not metadata.semantic_success:
        conf -= 0.2
    if metadata.total_query_time_ms > slow_query_ms:
        conf -= 0.1

    return round(max(MIN_CONFIDENCE, min(MAX_CONFIDENCE, conf)), 4)
