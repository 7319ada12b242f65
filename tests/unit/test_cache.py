"""Tests for the answer cache and cache-key derivation."""

from datetime import datetime, timezone

import pytest

from conftest import FakeClock
from hybrid_engine.models.schemas import AnswerMetadata, HybridAnswer
from hybrid_engine.pipeline.cache import (
    InMemoryAnswerCache,
    build_cache_key,
    normalize_query,
)
from hybrid_engine.query.classifier import QueryClassifier


def _answer(text="You have **7 tasks** in project Alpha."):
    return HybridAnswer(
        text=text,
        sources=[],
        confidence=0.9,
        metadata=AnswerMetadata(query_type="count", query_id="q1"),
    )


def _key(user, query, now=None):
    classification = QueryClassifier().classify(query, now=now)
    return build_cache_key(user, query, classification)


@pytest.fixture
def clock():
    return FakeClock()


def test_normalize_query():
    assert normalize_query("  How MANY   tasks?? ") == "how many tasks"
    assert normalize_query("List tasks.") == "list tasks"


def test_key_ignores_case_and_punctuation():
    assert _key("u1", "How many tasks in project Alpha?") == _key(
        "u1", "how many tasks in project alpha"
    )


def test_key_is_scoped_per_user():
    query = "How many tasks in project Alpha?"
    assert _key("u1", query) != _key("u2", query)
    assert _key("u1", query).startswith("u1:")


def test_key_differs_by_query():
    assert _key("u1", "How many tasks in project Alpha?") != _key(
        "u1", "How many tasks in project Beta?"
    )


def test_temporal_key_buckets_by_hour():
    query = "How many tasks this week?"
    early = _key("u1", query, datetime(2026, 10, 19, 12, 5, tzinfo=timezone.utc))
    late = _key("u1", query, datetime(2026, 10, 19, 12, 55, tzinfo=timezone.utc))
    next_hour = _key("u1", query, datetime(2026, 10, 19, 13, 5, tzinfo=timezone.utc))
    assert early == late
    assert early != next_hour


def test_get_and_set(clock):
    cache = InMemoryAnswerCache(ttl_ms=1000, clock=clock)
    assert cache.get("k") is None
    cache.set("k", _answer())
    assert cache.get("k").text.startswith("You have")


def test_entries_expire_after_ttl(clock):
    cache = InMemoryAnswerCache(ttl_ms=1000, clock=clock)
    cache.set("k", _answer())
    clock.advance_ms(999)
    assert cache.get("k") is not None
    clock.advance_ms(2)
    assert cache.get("k") is None
    assert cache.size == 0


def test_oldest_entry_evicted_at_capacity(clock):
    cache = InMemoryAnswerCache(ttl_ms=1000, max_entries=2, clock=clock)
    cache.set("a", _answer("a"))
    cache.set("b", _answer("b"))
    cache.set("c", _answer("c"))
    assert cache.size == 2
    assert cache.get("a") is None
    assert cache.get("b").text == "b"
    assert cache.get("c").text == "c"


def test_set_if_absent(clock):
    cache = InMemoryAnswerCache(ttl_ms=1000, clock=clock)
    assert cache.set_if_absent("k", _answer("first"))
    assert not cache.set_if_absent("k", _answer("second"))
    assert cache.get("k").text == "first"
    clock.advance_ms(1001)
    assert cache.set_if_absent("k", _answer("third"))
    assert cache.get("k").text == "third"


def test_stats_and_clear(clock):
    cache = InMemoryAnswerCache(ttl_ms=1000, max_entries=10, clock=clock)
    cache.set("k", _answer())
    cache.get("k")
    cache.get("missing")
    stats = cache.stats()
    assert stats["hits"] == 1
    assert stats["misses"] == 1
    assert stats["hit_rate"] == 0.5
    assert stats["ttl_ms"] == 1000

    cache.clear()
    assert cache.size == 0
    assert cache.stats()["hits"] == 0
