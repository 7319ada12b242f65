"""Bounded TTL cache for synthesized answers."""

from __future__ import annotations

import hashlib
import json
import re
import time
from collections import OrderedDict
from collections.abc import Callable
from dataclasses import dataclass

from hybrid_engine.models.domain import QueryClassification
from hybrid_engine.models.schemas import HybridAnswer

_WHITESPACE = re.compile(r"\s+")


@dataclass(frozen=True)
class CacheEntry:
    key: str
    result: HybridAnswer
    stored_at: float


def normalize_query(query: str) -> str:
    return _WHITESPACE.sub(" ", query.strip().lower()).rstrip("?!. ")


def _digest(text: str) -> str:
    return hashlib.sha256(text.encode("utf-8")).hexdigest()[:16]


def classification_key(classification: QueryClassification) -> str:
    temporal = None
    if classification.temporal is not None:
        temporal = {
            "period": classification.temporal.period,
            "start": classification.temporal.start.strftime("%Y-%m-%dT%H"),
        }
    return json.dumps(
        {
            "type": classification.type.value,
            "needs_exact": classification.needs_exact_backend,
            "needs_semantic": classification.needs_semantic_backend,
            "entities": sorted((e.type, e.value.lower()) for e in classification.entities),
            "temporal": temporal,
            "count_target": classification.count_target,
        },
        sort_keys=True,
    )


def build_cache_key(user_id: str, query: str, classification: QueryClassification) -> str:
    """Temporal filters are bucketed to the hour so repeats within it share a key."""
    return f"{user_id}:{_digest(normalize_query(query))}:{_digest(classification_key(classification))}"


class InMemoryAnswerCache:
    """Entries older than ``ttl_ms`` read as absent. At capacity the oldest entry goes."""

    def __init__(
        self,
        ttl_ms: int = 300000,
        max_entries: int = 1000,
        clock: Callable[[], float] = time.monotonic,
    ) -> None:
        self._ttl_s = ttl_ms / 1000
        self._max_entries = max_entries
        self._clock = clock
        self._entries: OrderedDict[str, CacheEntry] = OrderedDict()
        self.hits = 0
        self.misses = 0

    def get(self, key: str) -> HybridAnswer | None:
        entry = self._entries.get(key)
        if entry is None:
            self.misses += 1
            return None
        if self._clock() - entry.stored_at > self._ttl_s:
            del self._entries[key]
            self.misses += 1
            return None
        self.hits += 1
        return entry.result

    def set(self, key: str, answer: HybridAnswer) -> None:
        self._entries.pop(key, None)
        while len(self._entries) >= self._max_entries:
            self._entries.popitem(last=False)
        self._entries[key] = CacheEntry(key=key, result=answer, stored_at=self._clock())

    def set_if_absent(self, key: str, answer: HybridAnswer) -> bool:
        entry = self._entries.get(key)
        if entry is not None and self._clock() - entry.stored_at <= self._ttl_s:
            return False
        self.set(key, answer)
        return True

    def clear(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    @property
    def size(self) -> int:
        return len(self._entries)

    def stats(self) -> dict:
        lookups = self.hits + self.misses
        return {
            "size": len(self._entries),
            "max_entries": self._max_entries,
            "ttl_ms": int(self._ttl_s * 1000),
            "hits": self.hits,
            "misses": self.misses,
            "hit_rate": round(self.hits / lookups, 4) if lookups else 0.0,
        }
