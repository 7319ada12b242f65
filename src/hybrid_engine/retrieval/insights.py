"""Human-readable insight sentences summarizing semantic matches."""

from __future__ import annotations

from hybrid_engine.models.domain import QueryType, VectorMatch

NO_CONTEXT = "No relevant context found in your productivity data."
INSIGHT_MIN_SIMILARITY = 0.6
HIGH_SIMILARITY = 0.8

_CONTENT_TYPE_TEMPLATES = {
    "task": "Task insights ({n} relevant tasks, {pct}% relevance): "
    "Your task patterns show related work themes.",
    "project_summary": "Project analysis ({n} projects, {pct}% relevance): "
    "Your project portfolio shows relevant context.",
    "session": "Work session patterns ({n} sessions, {pct}% relevance): "
    "Your recent work habits are relevant.",
    "daily_summary": "Daily productivity trends ({n} days, {pct}% relevance): "
    "Your productivity patterns provide context.",
    "temporal_pattern": "Time-based insights ({n} patterns, {pct}% relevance): "
    "Your work timing patterns are relevant.",
}
_GENERIC_TEMPLATE = (
    "Contextual insights ({n} items, {pct}% relevance): Related patterns found in your data."
)


def average_similarity(matches: list[VectorMatch]) -> float:
    return sum(m.similarity for m in matches) / len(matches) if matches else 0.0


def content_type_insight(content_type: str, matches: list[VectorMatch]) -> str | None:
    avg = average_similarity(matches)
    if avg < INSIGHT_MIN_SIMILARITY:
        return None
    template = _CONTENT_TYPE_TEMPLATES.get(content_type, _GENERIC_TEMPLATE)
    return template.format(n=len(matches), pct=round(avg * 100))


def query_type_insight(matches: list[VectorMatch], query_type: QueryType) -> str | None:
    if not matches:
        return None
    n = len(matches)
    if query_type is QueryType.COUNT:
        strong = sum(1 for m in matches if m.similarity > HIGH_SIMILARITY)
        return f"Found {strong} highly relevant data points for accurate counting."
    if query_type is QueryType.LIST:
        return f"Located {n} contextual references to enhance list results."
    if query_type is QueryType.SEARCH:
        return f"Semantic search found {n} related items beyond exact text matches."
    if query_type is QueryType.COMPARE:
        return f"Comparative analysis enhanced with {n} relevant data patterns."
    if query_type is QueryType.ANALYZE:
        pct = round(average_similarity(matches) * 100)
        return f"Deep analysis supported by {n} contextual data sources ({pct}% avg relevance)."
    return None


def build_insights(matches: list[VectorMatch], query_type: QueryType) -> list[str]:
    if not matches:
        return [NO_CONTEXT]

    grouped: dict[str, list[VectorMatch]] = {}
    for match in matches:
        grouped.setdefault(match.content_type, []).append(match)

    insights: list[str] = []
    for content_type, group in grouped.items():
        insight = content_type_insight(content_type, group)
        if insight:
            insights.append(insight)
    extra = query_type_insight(matches, query_type)
    if extra:
        insights.append(extra)
    return insights or ["Context available from your productivity data."]
