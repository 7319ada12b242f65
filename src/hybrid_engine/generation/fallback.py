"""Deterministic answers built from the rendered exact section.

Figures are pulled from the structured lines ``render_exact`` wrote, so a
fallback answer always agrees with the real count or list.
"""

from __future__ import annotations

import re

from hybrid_engine.models.domain import QueryType

COUNT_PATTERN = re.compile(r"EXACT COUNT: (\d+)")
COUNTED_PATTERN = re.compile(r"^COUNTED: (\w+)", re.MULTILINE)
PROJECT_PATTERN = re.compile(r"^PROJECT: ([^\n]+)", re.MULTILINE)
TOTAL_ITEMS_PATTERN = re.compile(r"TOTAL ITEMS: (\d+)")
SEARCH_TERM_PATTERN = re.compile(r'SEARCH TERM: "([^"]+)"')
TOP_PROJECT_PATTERN = re.compile(r"TOP PROJECT: ([^\n]+)")
RANKING_PATTERN = re.compile(r"^\s+1\. [^:]+: ([\d.]+)h \((\d+)%\)", re.MULTILINE)
TOTAL_TASKS_PATTERN = re.compile(r"TOTAL TASKS: (\d+)")
COMPLETED_PATTERN = re.compile(r"COMPLETED: (\d+)")
PENDING_PATTERN = re.compile(r"PENDING: (\d+)")

NOT_SPECIFIED = ("Not specified", "All projects")


def _first(pattern: re.Pattern[str], text: str) -> str | None:
    match = pattern.search(text)
    return match.group(1).strip() if match else None


def build_fallback_answer(
    query: str,
    query_type: QueryType,
    exact_section: str | None,
    has_semantic: bool = False,
) -> str:
    has_exact = exact_section is not None
    context = exact_section or ""

    if has_exact and query_type is QueryType.COUNT:
        count = _first(COUNT_PATTERN, context)
        if count is not None and _first(COUNTED_PATTERN, context) == "projects":
            noun = "project" if count == "1" else "projects"
            return f"You have **{count} {noun}** in total."
        if count is not None:
            project = _first(PROJECT_PATTERN, context)
            scope = f"in project {project}" if project and project not in NOT_SPECIFIED else "across all projects"
            noun = "task" if count == "1" else "tasks"
            return f"You have **{count} {noun}** {scope}."

    if has_exact and query_type in (QueryType.LIST, QueryType.SEARCH):
        items = _first(TOTAL_ITEMS_PATTERN, context)
        if items is not None:
            term = _first(SEARCH_TERM_PATTERN, context)
            if term:
                return f'Found **{items} tasks** mentioning "{term}".'
            return f"Found **{items} items** matching your criteria."

    if has_exact and query_type is QueryType.COMPARE:
        top = _first(TOP_PROJECT_PATTERN, context)
        if top:
            ranking = RANKING_PATTERN.search(context)
            share = f" with **{ranking.group(1)}h** ({ranking.group(2)}% of tracked time)" if ranking else ""
            return f"Your top project is **{top}**{share}."
        return "No work sessions were recorded in that period."

    if has_exact and query_type is QueryType.ANALYZE:
        total = _first(TOTAL_TASKS_PATTERN, context)
        if total is not None:
            completed = _first(COMPLETED_PATTERN, context) or "0"
            pending = _first(PENDING_PATTERN, context) or "0"
            return (
                f"Analysis of **{total} tasks**: {completed} completed and {pending} pending. "
                "A detailed categorization is not available right now."
            )

    if has_exact or has_semantic:
        available = []
        if has_exact:
            available.append("exact data")
        if has_semantic:
            available.append("contextual insights")
        return (
            f'I found {" and ".join(available)} for "{query}" but could not generate '
            "a detailed response right now. Please try again in a moment."
        )

    return (
        f'I could not analyze "{query}" right now. '
        "Please try rephrasing your question or try again in a moment."
    )
