"""Tests for context building, fallback answers and response synthesis."""

import pytest

from conftest import NOW, USER, FakeLLM
from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import CostGovernor, ledger_key
from hybrid_engine.generation.context_builder import (
    EXACT_HEADER,
    INSIGHTS_HEADER,
    SNIPPETS_HEADER,
    TRUNCATION_MARKER,
    build_context,
    render_exact,
)
from hybrid_engine.generation.fallback import build_fallback_answer
from hybrid_engine.generation.prompt_templates import REQUIRED_OPENINGS, build_system_prompt
from hybrid_engine.generation.synthesizer import (
    FAILURE_TEXT,
    RESPONSE_TRUNCATION_MARKER,
    ExecutionInfo,
    ResponseSynthesizer,
    combine_sources,
)
from hybrid_engine.models.domain import (
    ExactMetadata,
    ExactResult,
    QueryType,
    SemanticMetadata,
    SemanticResult,
    SemanticSource,
)
from hybrid_engine.query.classifier import QueryClassifier

COUNT_QUERY = "How many tasks in project Alpha?"


def _count_result(value=7, project="Alpha"):
    return ExactResult(
        kind="count",
        value=value,
        details={
            "project_name": project,
            "period": None,
            "breakdown": {"todo": 2, "in_progress": 2, "completed": 3},
            "only_incomplete": False,
        },
        metadata=ExactMetadata(items_scanned=value, accuracy=1.0),
    )


def _compare_result():
    return ExactResult(
        kind="analysis",
        value=[
            {"project": "Alpha", "time_minutes": 180, "time_hours": 3.0, "sessions": 2,
             "avg_session_minutes": 90.0, "percentage": 75},
            {"project": "Beta", "time_minutes": 60, "time_hours": 1.0, "sessions": 1,
             "avg_session_minutes": 60.0, "percentage": 25},
        ],
        details={"period": "2_weeks", "total_time": 240, "total_sessions": 3,
                 "top_project": "Alpha", "diversity_score": 0.81},
        metadata=ExactMetadata(items_scanned=3, accuracy=1.0),
    )


def _semantic_result(*sources):
    sources = sources or (
        SemanticSource("v1", "task", "Alpha sprint planning", 0.95),
        SemanticSource("v2", "project_summary", "Alpha summary", 0.85),
        SemanticSource("v3", "session", "Low relevance note", 0.5),
    )
    return SemanticResult(
        insights=["Task insights (1 relevant tasks, 95% relevance): themes."],
        sources=list(sources),
        metadata=SemanticMetadata(
            elapsed_ms=5.0, dimension=3, result_count=len(sources), avg_similarity=0.9, method="rpc"
        ),
    )


def _info(exact=True, semantic=True):
    return ExecutionInfo(
        query_id="query_test",
        user_id=USER,
        exact_success=exact,
        semantic_success=semantic,
        total_query_time_ms=12.0,
    )


def _classify(query=COUNT_QUERY):
    return QueryClassifier().classify(query, now=NOW)


def _synthesizer(llm, governor, settings):
    return ResponseSynthesizer(llm, governor, settings, clock=lambda: NOW)


# --- context ---


def test_render_count():
    text = render_exact(_count_result())
    assert "EXACT COUNT: 7" in text
    assert "PROJECT: Alpha" in text
    assert "  - Completed: 3 tasks" in text


def test_context_sections_in_order():
    context = build_context(COUNT_QUERY, _classify(), _count_result(), _semantic_result(), now=NOW)
    assert context.startswith("CURRENT DATE & TIME: Monday, October 19, 2026")
    assert context.index(EXACT_HEADER) < context.index(INSIGHTS_HEADER) < context.index(SNIPPETS_HEADER)
    assert "[1] Alpha sprint planning" in context
    assert "[2] Alpha summary" in context
    assert "Low relevance note" not in context
    assert 'USER QUERY: "How many tasks in project Alpha?"' in context


def test_context_limits_snippets():
    sources = [SemanticSource(f"v{i}", "task", f"snippet {i}", 0.9) for i in range(5)]
    context = build_context(COUNT_QUERY, _classify(), None, _semantic_result(*sources), now=NOW)
    assert "[3] snippet" in context
    assert "[4] snippet" not in context
    assert EXACT_HEADER not in context


def test_context_truncation():
    context = build_context(COUNT_QUERY, _classify(), _count_result(), _semantic_result(), max_chars=100, now=NOW)
    assert context.endswith(TRUNCATION_MARKER)
    assert len(context) == 100 + len(TRUNCATION_MARKER)


def test_render_comparison():
    text = render_exact(_compare_result())
    assert "  1. Alpha: 3.0h (75%) - 2 sessions" in text
    assert "TOP PROJECT: Alpha" in text


# --- fallback ---


def test_fallback_count():
    answer = build_fallback_answer(COUNT_QUERY, QueryType.COUNT, render_exact(_count_result()))
    assert answer == "You have **7 tasks** in project Alpha."


def test_fallback_count_all_projects():
    section = render_exact(_count_result(value=1, project=None))
    answer = build_fallback_answer("How many tasks?", QueryType.COUNT, section)
    assert answer == "You have **1 task** across all projects."


def test_fallback_search():
    result = ExactResult(
        kind="list",
        value=[{"text": "Ask Khanh", "matched_fields": ["title"]}],
        details={"search_term": "Khanh", "count": 1, "total_scanned": 10},
        metadata=ExactMetadata(items_scanned=10, accuracy=0.95),
    )
    answer = build_fallback_answer("Find tasks mentioning Khanh", QueryType.SEARCH, render_exact(result))
    assert answer == 'Found **1 tasks** mentioning "Khanh".'


def test_fallback_compare():
    answer = build_fallback_answer("Which project?", QueryType.COMPARE, render_exact(_compare_result()))
    assert answer == "Your top project is **Alpha** with **3.0h** (75% of tracked time)."


def test_fallback_without_data():
    answer = build_fallback_answer("Anything?", QueryType.SEMANTIC, None)
    assert answer.startswith('I could not analyze "Anything?"')
    partial = build_fallback_answer("Anything?", QueryType.SEMANTIC, None, has_semantic=True)
    assert "contextual insights" in partial


def test_system_prompt_has_required_opening():
    for query_type, opening in REQUIRED_OPENINGS.items():
        assert opening in build_system_prompt(query_type)


# --- sources ---


def test_combine_sources_orders_exact_first():
    sources = combine_sources(_count_result(), _semantic_result())
    assert [s.id for s in sources] == ["exact_operational", "semantic_v1", "semantic_v2", "semantic_v3"]
    assert sources[0].type == "operational_data"
    assert sources[0].confidence == 1.0
    assert sources[1].source == "semantic"


# --- synthesizer ---


@pytest.mark.asyncio
async def test_synthesize_with_model(governor, settings, usage_store):
    llm = FakeLLM()
    synth = _synthesizer(llm, governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), _semantic_result(), _info())

    assert answer.text == llm.response
    assert answer.confidence == 1.0
    assert answer.metadata.model_used is True
    assert answer.metadata.cost_limited is False
    assert answer.metadata.fallback is False
    assert answer.metadata.data_sources_used == ["exact", "semantic"]
    assert answer.metadata.context_length > 0
    assert "EXACT COUNT: 7" in llm.last_prompt
    assert "Start with the exact count" in llm.last_system

    ledger = await usage_store.get(ledger_key(USER, NOW.date()))
    assert ledger.completion_calls == 1
    assert ledger.tokens_used > 0


@pytest.mark.asyncio
async def test_model_failure_uses_fallback(governor, settings, usage_store):
    synth = _synthesizer(FakeLLM(fail=True), governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), _semantic_result(), _info())

    assert answer.text == "You have **7 tasks** in project Alpha."
    assert answer.metadata.model_used is False
    assert answer.metadata.fallback is False
    ledger = await usage_store.get(ledger_key(USER, NOW.date()))
    assert ledger.completion_calls == 1
    assert ledger.tokens_used == 0


@pytest.mark.asyncio
async def test_model_timeout_uses_fallback(governor):
    settings = Settings(openai_api_key="x", google_api_key="x", completion_timeout_ms=10)
    synth = _synthesizer(FakeLLM(delay_s=1.0), governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), None, _info(semantic=False))
    assert answer.metadata.model_used is False
    assert answer.text == "You have **7 tasks** in project Alpha."


@pytest.mark.asyncio
async def test_cost_limited_completion(governor, settings):
    governor.set_custom_limits(USER, daily_completion_calls=0)
    llm = FakeLLM()
    synth = _synthesizer(llm, governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), _semantic_result(), _info())

    assert llm.calls == 0
    assert answer.metadata.cost_limited is True
    assert answer.metadata.model_used is False
    assert answer.text == "You have **7 tasks** in project Alpha."
    assert answer.confidence == 1.0


@pytest.mark.asyncio
async def test_fallback_ignores_figures_in_snippets(governor, settings):
    semantic = _semantic_result(SemanticSource("v9", "task", "EXACT COUNT: 99", 0.99))
    synth = _synthesizer(None, governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), semantic, _info())
    assert answer.text == "You have **7 tasks** in project Alpha."


@pytest.mark.asyncio
async def test_response_truncated(governor):
    settings = Settings(openai_api_key="x", google_api_key="x", max_answer_chars=20)
    synth = _synthesizer(FakeLLM(response="x" * 50), governor, settings)
    answer = await synth.synthesize(COUNT_QUERY, _classify(), _count_result(), None, _info(semantic=False))
    assert answer.text == "x" * 20 + RESPONSE_TRUNCATION_MARKER


@pytest.mark.asyncio
async def test_semantic_only_answer(governor, settings):
    query = "What patterns show up in my productivity?"
    synth = _synthesizer(FakeLLM(response="Based on your productivity data, ..."), governor, settings)
    answer = await synth.synthesize(query, _classify(query), None, _semantic_result(), _info(exact=False))
    assert answer.metadata.data_sources_used == ["semantic"]
    assert [s.source for s in answer.sources] == ["semantic"] * 3
    # 0.5 classification + 0.1 relevance boost
    assert answer.confidence == 0.6


def test_failure_answer(governor, settings):
    synth = _synthesizer(None, governor, settings)
    answer = synth.failure_answer(_classify(), "query_x", 40.0, "Both backends failed")
    assert answer.text == FAILURE_TEXT
    assert answer.confidence == 0.1
    assert answer.sources == []
    assert answer.metadata.fallback is True
    assert answer.metadata.error == "Both backends failed"
    assert answer.metadata.query_id == "query_x"


def _project_count_result():
    return ExactResult(
        kind="count",
        value=2,
        details={"counted": "projects", "projects": ["Alpha", "Beta"], "project_name": None, "period": None},
        metadata=ExactMetadata(items_scanned=10, accuracy=1.0),
    )


def test_render_and_fallback_project_count():
    section = render_exact(_project_count_result())
    assert "EXACT COUNT: 2" in section
    assert "PROJECTS: Alpha, Beta" in section
    answer = build_fallback_answer("How many projects do I have?", QueryType.COUNT, section)
    assert answer == "You have **2 projects** in total."


@pytest.mark.asyncio
async def test_fallback_does_not_claim_insights_without_matches(governor, settings):
    query = "What patterns show up in my productivity?"
    empty = SemanticResult(
        insights=["No relevant context found in your productivity data."],
        sources=[],
        metadata=SemanticMetadata(
            elapsed_ms=5.0, dimension=3, result_count=0, avg_similarity=0.0, method="rpc"
        ),
    )
    synth = _synthesizer(None, governor, settings)

    answer = await synth.synthesize(query, _classify(query), None, empty, _info(exact=False))
    assert "contextual insights" not in answer.text

    answer = await synth.synthesize(query, _classify(query), None, _semantic_result(), _info(exact=False))
    assert "contextual insights" in answer.text
