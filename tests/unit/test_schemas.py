"""Tests for Pydantic answer schemas and the backend outcome type."""

import pytest
from pydantic import ValidationError

from hybrid_engine.exceptions import BackendError
from hybrid_engine.models.domain import BackendOutcome
from hybrid_engine.models.schemas import (
    AnswerMetadata,
    AnswerSource,
    HealthReport,
    HybridAnswer,
)


def _answer():
    return HybridAnswer(
        text="You have **7 tasks** in project Alpha.",
        sources=[
            AnswerSource(
                id="exact_operational",
                type="operational_data",
                title="Count Data",
                snippet="Exact count: 7 items",
                confidence=1.0,
                source="exact",
            )
        ],
        confidence=0.95,
        metadata=AnswerMetadata(query_type="count", query_id="query_a", execution_time_ms=120.0),
    )


def test_answer_is_immutable():
    answer = _answer()
    with pytest.raises(ValidationError):
        answer.text = "changed"
    with pytest.raises(ValidationError):
        answer.metadata.cache_hit = True


def test_confidence_bounds():
    with pytest.raises(ValidationError):
        HybridAnswer(text="x", sources=[], confidence=1.5, metadata=AnswerMetadata(query_type="count"))


def test_source_type_is_validated():
    with pytest.raises(ValidationError):
        AnswerSource(id="x", type="web", title="t", snippet="s", confidence=0.5, source="exact")


def test_as_cache_hit_only_touches_request_fields():
    original = _answer()
    hit = original.as_cache_hit(2.5, "query_b")

    assert hit.metadata.cache_hit is True
    assert hit.metadata.execution_time_ms == 2.5
    assert hit.metadata.query_id == "query_b"
    assert hit.text == original.text
    assert hit.sources == original.sources
    assert hit.confidence == original.confidence
    assert original.metadata.cache_hit is False
    assert original.metadata.query_id == "query_a"


def test_answer_serialization():
    data = _answer().model_dump()
    assert data["metadata"]["data_sources_used"] == []
    assert data["sources"][0]["id"] == "exact_operational"


def test_backend_outcome():
    ok = BackendOutcome.ok("exact", 7, 3.0)
    assert ok.succeeded
    assert ok.value == 7

    failed = BackendOutcome.failed("semantic", BackendError("semantic", "down"))
    assert not failed.succeeded
    assert failed.value is None
    assert str(failed.error) == "down"


def test_health_report_status_values():
    report = HealthReport(status="degraded", exact=True, semantic=False, cache=True, breakers={})
    assert report.status == "degraded"
    with pytest.raises(ValidationError):
        HealthReport(status="fine", exact=True, semantic=True, cache=True, breakers={})
