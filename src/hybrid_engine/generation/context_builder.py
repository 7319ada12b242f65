"""Bounded textual context merged from the exact and semantic results."""

from __future__ import annotations

from datetime import datetime, timezone

from hybrid_engine.models.domain import ExactResult, QueryClassification, SemanticResult

EXACT_HEADER = "EXACT CURRENT DATA:"
INSIGHTS_HEADER = "CONTEXTUAL INSIGHTS:"
SNIPPETS_HEADER = "HIGH-RELEVANCE CONTEXT:"
TRUNCATION_MARKER = "\n\n[Context truncated for length...]"
SNIPPET_MIN_RELEVANCE = 0.8
MAX_SNIPPETS = 3
SAMPLE_ITEMS = 5


def render_count(result: ExactResult) -> str:
    details = result.details
    if details.get("counted") == "projects":
        names = details.get("projects") or []
        return "\n".join(
            [
                f"EXACT COUNT: {result.value}",
                "COUNTED: projects",
                f"PROJECTS: {', '.join(names) if names else 'None'}",
            ]
        )
    breakdown = details.get("breakdown") or {}
    lines = [
        f"EXACT COUNT: {result.value}",
        f"PROJECT: {details.get('project_name') or 'Not specified'}",
    ]
    if any(breakdown.values()):
        lines.append("STATUS BREAKDOWN:")
        for key, label in (("todo", "To-do"), ("in_progress", "In Progress"), ("completed", "Completed")):
            if breakdown.get(key):
                lines.append(f"  - {label}: {breakdown[key]} tasks")
    if details.get("period"):
        lines.append(f"TIME PERIOD: {details['period']}")
    if details.get("only_incomplete"):
        lines.append("FILTER: Only incomplete tasks included")
    return "\n".join(lines)


def render_list(result: ExactResult) -> str:
    items = result.value if isinstance(result.value, list) else []
    details = result.details
    lines = [f"TOTAL ITEMS: {details.get('count', len(items))}"]
    if details.get("avg_days_untouched"):
        lines.append(f"AVERAGE AGE: {details['avg_days_untouched']} days untouched")
    if details.get("oldest_days"):
        lines.append(f"OLDEST ITEM: {details['oldest_days']} days")
    if details.get("avg_relevance"):
        lines.append(f"AVERAGE RELEVANCE: {details['avg_relevance']}")
    if details.get("project_breakdown"):
        lines.append("PROJECT BREAKDOWN:")
        for project, count in details["project_breakdown"].items():
            lines.append(f"  - {project}: {count} tasks")
    if details.get("search_term"):
        lines.append(f'SEARCH TERM: "{details["search_term"]}"')
        lines.append(f"TOTAL SCANNED: {details.get('total_scanned', 0)} tasks")

    if items:
        lines.append("\nSAMPLE ITEMS:")
        for i, item in enumerate(items[:SAMPLE_ITEMS], 1):
            title = item.get("text") or item.get("title") or "Untitled"
            project = f" ({item['project_name']})" if item.get("project_name") else ""
            age = f" - {item['days_untouched']} days old" if item.get("days_untouched") else ""
            fields = f" - matched {', '.join(item['matched_fields'])}" if item.get("matched_fields") else ""
            lines.append(f"  {i}. {title}{project}{age}{fields}")
        if len(items) > SAMPLE_ITEMS:
            lines.append(f"  ... and {len(items) - SAMPLE_ITEMS} more items")
    return "\n".join(lines)


def render_comparison(result: ExactResult) -> str:
    details = result.details
    lines = [
        "ANALYSIS TYPE: Project Time Comparison",
        f"TIME PERIOD: {details.get('period') or 'Not specified'}",
        f"TOTAL TIME: {round((details.get('total_time') or 0) / 60, 1)} hours",
        f"TOTAL SESSIONS: {details.get('total_sessions', 0)}",
        "PROJECT RANKINGS:",
    ]
    for i, project in enumerate(result.value[:SAMPLE_ITEMS], 1):
        lines.append(
            f"  {i}. {project['project']}: {project['time_hours']}h "
            f"({project['percentage']}%) - {project['sessions']} sessions"
        )
    lines.append(f"WORK DIVERSITY SCORE: {details.get('diversity_score', 0)} (higher = more balanced)")
    if details.get("top_project"):
        lines.append(f"TOP PROJECT: {details['top_project']}")
    return "\n".join(lines)


def render_task_analysis(result: ExactResult) -> str:
    details = result.details
    by_status = details.get("tasks_by_status") or {}
    completeness = result.metadata.completeness
    lines = [
        "ANALYSIS TYPE: Task Content Analysis",
        f"PROJECT: {details.get('project_name') or 'All projects'}",
        f"TOTAL TASKS: {details.get('total_tasks', 0)}",
        f"COMPLETED: {details.get('completed_tasks', 0)}",
        f"PENDING: {details.get('pending_tasks', 0)}",
        f"AVERAGE CONTENT LENGTH: {details.get('avg_content_length', 0)} characters",
        "CONTENT COVERAGE:",
        f"  - With descriptions: {by_status.get('with_description', 0)}",
        f"  - With notes: {by_status.get('with_notes', 0)}",
        f"DATA COMPLETENESS: {round((completeness or 0) * 100)}%",
        f"READY FOR ANALYSIS: {'Yes' if result.metadata.ready_for_analysis else 'No'}",
    ]
    tasks = result.value if isinstance(result.value, list) else []
    if tasks:
        lines.append("\nTASKS:")
        for task in tasks:
            status = "done" if task.get("completed") else "pending"
            lines.append(f"  - [{status}] {task.get('full_content') or task.get('text') or 'Untitled'}")
    return "\n".join(lines)


def render_exact(result: ExactResult) -> str:
    if result.kind == "count":
        return render_count(result)
    if result.kind == "list":
        return render_list(result)
    if "diversity_score" in result.details:
        return render_comparison(result)
    return render_task_analysis(result)


def render_query(query: str, classification: QueryClassification) -> str:
    lines = [f'USER QUERY: "{query}"', f"QUERY TYPE: {classification.type.value}"]
    if classification.entities:
        entities = ", ".join(
            f"{e.type}:{e.value} ({round(e.confidence * 100)}%)" for e in classification.entities
        )
        lines.append(f"ENTITIES: {entities}")
    if classification.temporal:
        t = classification.temporal
        lines.append(f"TIME FILTER: {t.period} ({t.start.date().isoformat()} to {t.end.date().isoformat()})")
    return "\n".join(lines)


def build_context(
    query: str,
    classification: QueryClassification,
    exact: ExactResult | None,
    semantic: SemanticResult | None,
    max_chars: int = 8000,
    now: datetime | None = None,
) -> str:
    now = now or datetime.now(timezone.utc)
    sections = [f"CURRENT DATE & TIME: {now.strftime('%A, %B %d, %Y at %I:%M %p')}"]

    if exact is not None:
        sections.append(f"\n{EXACT_HEADER}")
        sections.append(render_exact(exact))

    if semantic is not None and semantic.insights:
        sections.append(f"\n{INSIGHTS_HEADER}")
        sections.append("\n".join(semantic.insights))
        snippets = [s for s in semantic.sources if s.relevance_score > SNIPPET_MIN_RELEVANCE]
        snippets.sort(key=lambda s: s.relevance_score, reverse=True)
        if snippets:
            sections.append(f"\n{SNIPPETS_HEADER}")
            for i, source in enumerate(snippets[:MAX_SNIPPETS], 1):
                sections.append(f"[{i}] {source.snippet}")

    sections.append("\n" + render_query(query, classification))

    context = "\n".join(sections)
    if len(context) > max_chars:
        return context[:max_chars] + TRUNCATION_MARKER
    return context
