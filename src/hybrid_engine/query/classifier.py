"""Rule-based query classification, entity extraction and temporal parsing."""

from __future__ import annotations

import re
from dataclasses import dataclass
from datetime import datetime

from hybrid_engine.exceptions import ClassificationError
from hybrid_engine.models.domain import (
    ExtractedEntity,
    QueryClassification,
    QueryType,
)
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.query.temporal import extract_temporal

logger = get_logger("classifier")

PROJECT_PATTERN = re.compile(
    r"\bprojects?\s+(?:named\s+|called\s+)?[\"']?([A-Za-z0-9_-]+)", re.IGNORECASE
)
PERSON_PATTERN = re.compile(r"\b([A-Z][a-z]+)\b")
INCOMPLETE_PATTERN = re.compile(r"\b(?:incomplete|incompleted|unfinished|pending)\b", re.IGNORECASE)
KEYWORD_PATTERN = re.compile(
    r"\b(?:mentioning|mentions?|containing|contains|about)\s+[\"']?([\w-]+)", re.IGNORECASE
)
PROJECT_WORD_PATTERN = re.compile(r"\bprojects?\b", re.IGNORECASE)
TASK_WORD_PATTERN = re.compile(r"\btasks?\b", re.IGNORECASE)

# Words that look like names or projects but are query vocabulary.
PERSON_STOPLIST = frozenset(
    {
        "How", "What", "Which", "Who", "When", "Where", "Why", "Give", "Tell", "Show",
        "List", "Find", "Search", "Compare", "Analyze", "Analyse", "Read", "Categorize",
        "Identify", "Count", "Project", "Projects", "Task", "Tasks", "Session", "Sessions",
        "The", "In", "Me", "My", "Do", "Did", "Does", "Can", "Could", "Please", "Last",
        "This", "Past", "Today", "Is", "Are", "Have", "Has", "All",
    }
)
PROJECT_STOPLIST = frozenset(
    {
        "i", "that", "which", "where", "with", "is", "are", "the", "a", "an", "did", "do",
        "have", "has", "in", "of", "for", "was", "were", "me", "my", "you", "and", "or",
    }
)


@dataclass(frozen=True)
class ClassificationRule:
    """One entry in the ordered rule table. Confidence lives with its rule."""

    query_type: QueryType
    confidence: float
    patterns: tuple[re.Pattern[str], ...]

    def matches(self, query: str) -> bool:
        return any(p.search(query) for p in self.patterns)


RULES: tuple[ClassificationRule, ...] = (
    ClassificationRule(
        QueryType.COUNT,
        0.95,
        (re.compile(r"\b(?:how many|count|number of)\s+(.+)", re.IGNORECASE),),
    ),
    ClassificationRule(
        QueryType.LIST,
        0.90,
        (
            re.compile(r"\b(?:give me|show me|list)\s+(?:all|the)?\s*(.+)", re.IGNORECASE),
            re.compile(
                r"\b(?:never worked|did not work|didn't work|haven't worked|untouched)",
                re.IGNORECASE,
            ),
        ),
    ),
    ClassificationRule(
        QueryType.SEARCH,
        0.85,
        (
            re.compile(
                r"\b(?:task|project)s?\s+(?:that|where|with|mentioning|containing)\s+(.+)",
                re.IGNORECASE,
            ),
        ),
    ),
    ClassificationRule(
        QueryType.COMPARE,
        0.80,
        (
            re.compile(
                r"\b(?:compare|which|what)\s+(.+?)\s+(?:spent|time|most|better)",
                re.IGNORECASE,
            ),
        ),
    ),
    ClassificationRule(
        QueryType.ANALYZE,
        0.90,
        (
            re.compile(r"\b(?:analy[sz]e|read|categorize|identify)\s+(.+)", re.IGNORECASE),
            re.compile(r"\b(?:feature|bug|fix|build)s?\b", re.IGNORECASE),
        ),
    ),
)

DEFAULT_CONFIDENCE = 0.5
MAX_RULE_CONFIDENCE = max(rule.confidence for rule in RULES)

_SUMMARIES = {
    QueryType.COUNT: "Count Query - Returns exact numbers",
    QueryType.LIST: "List Query - Returns specific items",
    QueryType.SEARCH: "Search Query - Finds matching items",
    QueryType.COMPARE: "Comparison Query - Analyzes relationships",
    QueryType.ANALYZE: "Analysis Query - Deep content analysis",
    QueryType.SEMANTIC: "Semantic Query - Pattern recognition",
}


class QueryClassifier:
    """Maps a raw query to a QueryClassification. Pure and total."""

    def __init__(self, rules: tuple[ClassificationRule, ...] = RULES) -> None:
        self._rules = rules

    def classify(
        self,
        query: str,
        now: datetime | None = None,
        allow_semantic_skip: bool = False,
    ) -> QueryClassification:
        if query is not None and not isinstance(query, str):
            raise ClassificationError(f"Expected query text, got {type(query).__name__}")
        text = (query or "").strip()
        entities = tuple(self.extract_entities(text))
        temporal = extract_temporal(text, now)

        rule = next((r for r in self._rules if r.matches(text)), None)
        if rule is None:
            query_type, confidence = QueryType.SEMANTIC, DEFAULT_CONFIDENCE
        else:
            query_type, confidence = rule.query_type, rule.confidence

        needs_exact = query_type is not QueryType.SEMANTIC
        needs_semantic = not (
            allow_semantic_skip
            and query_type is QueryType.COUNT
            and confidence >= MAX_RULE_CONFIDENCE
        )
        count_target = "tasks"
        if (
            query_type is QueryType.COUNT
            and PROJECT_WORD_PATTERN.search(text)
            and not TASK_WORD_PATTERN.search(text)
            and not any(e.type == "project" for e in entities)
        ):
            count_target = "projects"

        classification = QueryClassification(
            type=query_type,
            confidence=confidence,
            needs_exact_backend=needs_exact,
            needs_semantic_backend=needs_semantic,
            entities=entities,
            temporal=temporal,
            count_target=count_target,
        )
        logger.debug(
            "query_classified",
            type=query_type.value,
            confidence=confidence,
            needs_exact=needs_exact,
            needs_semantic=needs_semantic,
            entities=len(entities),
            temporal=temporal.period if temporal else None,
        )
        return classification

    @staticmethod
    def extract_entities(query: str) -> list[ExtractedEntity]:
        entities: list[ExtractedEntity] = []

        project = None
        for match in PROJECT_PATTERN.finditer(query):
            candidate = match.group(1)
            if candidate.lower() not in PROJECT_STOPLIST:
                project = candidate
                break
        if project:
            entities.append(ExtractedEntity(type="project", value=project, confidence=0.9))

        seen: set[str] = set()
        for name in PERSON_PATTERN.findall(query):
            if name in PERSON_STOPLIST or name == project or name in seen:
                continue
            seen.add(name)
            entities.append(ExtractedEntity(type="person", value=name, confidence=0.7))

        if INCOMPLETE_PATTERN.search(query):
            entities.append(ExtractedEntity(type="status", value="incomplete", confidence=0.8))

        keyword = KEYWORD_PATTERN.search(query)
        if keyword and keyword.group(1).lower() not in PROJECT_STOPLIST:
            entities.append(
                ExtractedEntity(type="keyword", value=keyword.group(1), confidence=0.75)
            )

        return entities

    @staticmethod
    def summary(classification: QueryClassification) -> str:
        return _SUMMARIES.get(classification.type, "Unknown query type")
