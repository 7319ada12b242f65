"""Merges exact and semantic results into one scored, attributed answer."""

from __future__ import annotations

import asyncio
from collections.abc import Callable
from dataclasses import dataclass
from datetime import datetime

from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import CostGovernor, estimate_tokens
from hybrid_engine.generation.context_builder import build_context, render_exact
from hybrid_engine.generation.fallback import build_fallback_answer
from hybrid_engine.generation.prompt_templates import SYNTHESIS_PROMPT, build_system_prompt
from hybrid_engine.models.domain import (
    ExactResult,
    QueryClassification,
    SemanticResult,
    UsageOperation,
)
from hybrid_engine.models.schemas import AnswerMetadata, AnswerSource, HybridAnswer
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.observability.metrics import log_synthesis_metrics
from hybrid_engine.protocols.llm import LLMProvider
from hybrid_engine.scoring.confidence import score_confidence

logger = get_logger("synthesizer")

RESPONSE_TRUNCATION_MARKER = "\n\n[Response truncated for length]"
FAILURE_TEXT = "I couldn't process this right now. Please try again in a moment."


@dataclass
class ExecutionInfo:
    """What the orchestrator observed while gathering backend results."""

    query_id: str
    user_id: str
    exact_success: bool
    semantic_success: bool
    total_query_time_ms: float


def exact_snippet(result: ExactResult) -> str:
    details = result.details
    if result.kind == "count" and details.get("counted") == "projects":
        return f"Exact count: {result.value} projects"
    if result.kind == "count":
        breakdown = ", ".join(f"{k}: {v}" for k, v in (details.get("breakdown") or {}).items())
        return f"Exact count: {result.value} items" + (f" ({breakdown})" if breakdown else "")
    if result.kind == "list":
        age = details.get("avg_days_untouched")
        suffix = f", avg {age} days old" if age else ""
        return f"Complete list of {len(result.value)} items{suffix}"
    if "diversity_score" in details:
        return (
            f"Time ranking of {len(result.value)} projects over {details.get('period')}, "
            f"top: {details.get('top_project') or 'none'}"
        )
    return (
        f"Analysis of {details.get('total_tasks', 0)} tasks "
        f"({details.get('completed_tasks', 0)} completed, {details.get('pending_tasks', 0)} pending)"
    )


def combine_sources(
    exact: ExactResult | None, semantic: SemanticResult | None
) -> list[AnswerSource]:
    sources: list[AnswerSource] = []
    if exact is not None:
        sources.append(
            AnswerSource(
                id="exact_operational",
                type="operational_data",
                title=f"{exact.kind.capitalize()} Data",
                snippet=exact_snippet(exact),
                confidence=exact.metadata.accuracy,
                source="exact",
            )
        )
    if semantic is not None:
        ranked = sorted(semantic.sources, key=lambda s: s.relevance_score, reverse=True)
        for src in ranked:
            sources.append(
                AnswerSource(
                    id=f"semantic_{src.id}",
                    type="semantic_context",
                    title=f"{src.content_type.replace('_', ' ').title()} Context",
                    snippet=src.snippet,
                    confidence=round(src.relevance_score, 4),
                    source="semantic",
                )
            )
    return sources


def truncate_response(text: str, max_chars: int) -> str:
    if len(text) <= max_chars:
        return text
    return text[:max_chars] + RESPONSE_TRUNCATION_MARKER


class ResponseSynthesizer:
    def __init__(
        self,
        llm: LLMProvider | None,
        cost_governor: CostGovernor,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._llm = llm
        self._governor = cost_governor
        self._settings = settings
        self._clock = clock

    async def synthesize(
        self,
        query: str,
        classification: QueryClassification,
        exact: ExactResult | None,
        semantic: SemanticResult | None,
        info: ExecutionInfo,
    ) -> HybridAnswer:
        now = self._clock() if self._clock else None
        context = build_context(
            query, classification, exact, semantic, self._settings.max_context_chars, now
        )
        exact_section = render_exact(exact) if exact is not None else None

        text, model_used, cost_limited = await self._generate(
            query, classification, context, info.user_id
        )
        if not model_used:
            text = build_fallback_answer(
                query,
                classification.type,
                exact_section,
                has_semantic=semantic is not None and semantic.metadata.result_count > 0,
            )
        text = truncate_response(text, self._settings.max_answer_chars)

        data_sources = []
        if exact is not None:
            data_sources.append("exact")
        if semantic is not None:
            data_sources.append("semantic")

        metadata = AnswerMetadata(
            query_type=classification.type.value,
            classification_confidence=classification.confidence,
            needs_exact_backend=classification.needs_exact_backend,
            needs_semantic_backend=classification.needs_semantic_backend,
            exact_success=info.exact_success,
            semantic_success=info.semantic_success,
            exact_accuracy=exact.metadata.accuracy if exact is not None else 0.0,
            semantic_relevance=semantic.metadata.avg_similarity if semantic is not None else 0.0,
            total_query_time_ms=round(info.total_query_time_ms, 2),
            data_sources_used=data_sources,
            execution_time_ms=round(info.total_query_time_ms, 2),
            query_id=info.query_id,
            model_used=model_used,
            cost_limited=cost_limited,
            context_length=len(context),
            response_length=len(text),
        )
        confidence = score_confidence(metadata, self._settings.slow_query_ms)
        log_synthesis_metrics(
            info.query_id,
            classification.type.value,
            confidence,
            model_used,
            cost_limited,
            len(context),
        )
        return HybridAnswer(
            text=text,
            sources=combine_sources(exact, semantic),
            confidence=confidence,
            metadata=metadata,
        )

    async def _generate(
        self,
        query: str,
        classification: QueryClassification,
        context: str,
        user_id: str,
    ) -> tuple[str, bool, bool]:
        """Returns (text, model_used, cost_limited). Empty text means use the fallback."""
        if self._llm is None:
            return "", False, False

        system = build_system_prompt(classification.type)
        prompt = SYNTHESIS_PROMPT.format(context=context, query=query)
        input_tokens = estimate_tokens(system) + estimate_tokens(prompt)

        check = await self._governor.check_cost_limits(
            user_id, UsageOperation.COMPLETION, input_tokens
        )
        if not check.allowed:
            logger.warning("completion_denied", user_id=user_id, reason=check.reason)
            return "", False, True

        try:
            text = await asyncio.wait_for(
                self._llm.complete(
                    prompt, system=system, max_tokens=self._settings.completion_max_tokens
                ),
                timeout=self._settings.completion_timeout_ms / 1000,
            )
        except Exception as e:
            logger.warning("completion_failed", error=str(e) or type(e).__name__)
            await self._governor.record_failed_call(user_id, UsageOperation.COMPLETION)
            return "", False, False

        output_tokens = estimate_tokens(text)
        await self._governor.record_usage(
            user_id,
            UsageOperation.COMPLETION,
            tokens=input_tokens + output_tokens,
            input_tokens=input_tokens,
            output_tokens=output_tokens,
        )
        return text, True, False

    def failure_answer(
        self,
        classification: QueryClassification,
        query_id: str,
        elapsed_ms: float,
        error: str,
    ) -> HybridAnswer:
        """Low-confidence answer returned when no backend data could be gathered."""
        metadata = AnswerMetadata(
            query_type=classification.type.value,
            classification_confidence=classification.confidence,
            needs_exact_backend=classification.needs_exact_backend,
            needs_semantic_backend=classification.needs_semantic_backend,
            total_query_time_ms=round(elapsed_ms, 2),
            fallback=True,
            execution_time_ms=round(elapsed_ms, 2),
            query_id=query_id,
            response_length=len(FAILURE_TEXT),
            error=error,
        )
        return HybridAnswer(
            text=FAILURE_TEXT,
            sources=[],
            confidence=score_confidence(metadata, self._settings.slow_query_ms),
            metadata=metadata,
        )
