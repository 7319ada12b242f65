"""Tests for per-user daily cost ceilings."""

import asyncio
from datetime import timedelta

import pytest

from conftest import NOW, USER
from hybrid_engine.config.settings import Settings
from hybrid_engine.cost.governor import (
    LEDGER_UNAVAILABLE,
    CostGovernor,
    estimate_tokens,
    ledger_key,
)
from hybrid_engine.models.domain import UsageOperation
from hybrid_engine.storage.memory_usage_store import InMemoryUsageStore


class BrokenUsageStore:
    async def get(self, key):
        raise ConnectionError("ledger offline")

    async def update(self, key, mutate):
        raise ConnectionError("ledger offline")

    async def keys(self):
        raise ConnectionError("ledger offline")

    async def delete(self, key):
        raise ConnectionError("ledger offline")


def test_estimate_tokens():
    assert estimate_tokens("") == 0
    assert estimate_tokens("abcd") == 1
    assert estimate_tokens("abcde") == 2


def test_ledger_key():
    assert ledger_key("u1", NOW.date()) == "u1:2026-10-19"


@pytest.mark.asyncio
async def test_fresh_user_is_allowed(governor):
    check = await governor.check_cost_limits(USER, UsageOperation.EMBEDDING, 10)
    assert check.allowed
    assert check.reason is None
    assert check.exceeded == []
    assert check.usage.model_calls == 0


@pytest.mark.asyncio
async def test_record_embedding_usage(governor):
    usage = await governor.record_usage(USER, UsageOperation.EMBEDDING, tokens=1000)
    assert usage.model_calls == 1
    assert usage.embedding_calls == 1
    assert usage.completion_calls == 0
    assert usage.tokens_used == 1000
    assert usage.estimated_cost_usd == pytest.approx(0.00002)


@pytest.mark.asyncio
async def test_record_completion_usage(governor):
    usage = await governor.record_usage(
        USER, UsageOperation.COMPLETION, tokens=2000, input_tokens=1000, output_tokens=1000
    )
    assert usage.completion_calls == 1
    assert usage.estimated_cost_usd == pytest.approx(0.00015 + 0.0006)


@pytest.mark.asyncio
async def test_cost_ceiling_denies_with_recommendations(usage_store):
    settings = Settings(openai_api_key="x", google_api_key="x", daily_cost_limit_usd=0.0005)
    governor = CostGovernor(usage_store, settings, clock=lambda: NOW)
    await governor.record_usage(
        USER, UsageOperation.COMPLETION, tokens=2000, input_tokens=1000, output_tokens=1000
    )

    check = await governor.check_cost_limits(USER, UsageOperation.COMPLETION, 100)
    assert not check.allowed
    assert "daily cost limit" in check.exceeded
    assert check.reason.startswith("Exceeded")
    assert "Consider using cache more aggressively to reduce API calls" in check.recommendations


@pytest.mark.asyncio
async def test_embedding_ceiling_only_blocks_embeddings(governor):
    governor.set_custom_limits(USER, daily_embedding_calls=1)
    await governor.record_usage(USER, UsageOperation.EMBEDDING, tokens=5)

    embedding = await governor.check_cost_limits(USER, UsageOperation.EMBEDDING)
    completion = await governor.check_cost_limits(USER, UsageOperation.COMPLETION)
    assert not embedding.allowed
    assert embedding.exceeded == ["daily embedding limit"]
    assert completion.allowed


@pytest.mark.asyncio
async def test_token_ceiling_includes_estimate(governor):
    governor.set_custom_limits(USER, daily_token_limit=100)
    assert (await governor.check_cost_limits(USER, UsageOperation.COMPLETION, 99)).allowed
    denied = await governor.check_cost_limits(USER, UsageOperation.COMPLETION, 100)
    assert not denied.allowed
    assert "daily token limit" in denied.exceeded


def test_unknown_custom_limit_rejected(governor):
    with pytest.raises(ValueError):
        governor.set_custom_limits(USER, daily_magic=3)


def test_custom_limits_override_defaults(governor, settings):
    governor.set_custom_limits(USER, daily_model_calls=3)
    assert governor.get_limits(USER).daily_model_calls == 3
    assert governor.get_limits("someone-else").daily_model_calls == settings.daily_model_calls


@pytest.mark.asyncio
async def test_near_limit_advisory(governor):
    governor.set_custom_limits(USER, daily_model_calls=10)
    for _ in range(9):
        await governor.record_usage(USER, UsageOperation.GENERAL)

    check = await governor.check_cost_limits(USER, UsageOperation.GENERAL)
    assert check.allowed
    assert "Approaching daily limits - consider optimizing queries" in check.recommendations
    assert "Current utilization: 90%" in check.recommendations


@pytest.mark.asyncio
async def test_ledger_failure_denies(settings):
    governor = CostGovernor(BrokenUsageStore(), settings, clock=lambda: NOW)
    check = await governor.check_cost_limits(USER, UsageOperation.EMBEDDING)
    assert not check.allowed
    assert check.reason == LEDGER_UNAVAILABLE


@pytest.mark.asyncio
async def test_failed_call_counts_without_tokens(governor):
    usage = await governor.record_failed_call(USER, UsageOperation.COMPLETION)
    assert usage.model_calls == 1
    assert usage.completion_calls == 1
    assert usage.tokens_used == 0
    assert usage.estimated_cost_usd == 0.0


@pytest.mark.asyncio
async def test_new_day_starts_fresh_and_sweeps(usage_store, settings):
    now = {"value": NOW}
    governor = CostGovernor(usage_store, settings, clock=lambda: now["value"])
    await governor.record_usage(USER, UsageOperation.EMBEDDING, tokens=10)

    now["value"] = NOW + timedelta(days=1)
    check = await governor.check_cost_limits(USER, UsageOperation.EMBEDDING)
    assert check.usage.model_calls == 0
    assert await usage_store.keys() == []


@pytest.mark.asyncio
async def test_cleanup_old_data_keeps_today(usage_store, governor):
    await governor.record_usage(USER, UsageOperation.GENERAL)
    await usage_store.update(ledger_key(USER, (NOW - timedelta(days=2)).date()), lambda ledger: ledger)
    assert await governor.cleanup_old_data() == 1
    assert await usage_store.keys() == [ledger_key(USER, NOW.date())]


@pytest.mark.asyncio
async def test_concurrent_recording_is_not_lost(governor):
    await asyncio.gather(
        *(governor.record_usage(USER, UsageOperation.EMBEDDING, tokens=1) for _ in range(20))
    )
    analytics = await governor.get_cost_analytics(USER)
    assert analytics.usage.model_calls == 20
    assert analytics.usage.tokens_used == 20


@pytest.mark.asyncio
async def test_usage_summary_and_analytics(governor):
    summary = await governor.get_usage_summary(USER)
    assert summary["cost_efficiency"] == "Very efficient"
    assert summary["recommendations"] == ["Usage within healthy limits"]

    governor.set_custom_limits(USER, daily_completion_calls=2)
    await governor.record_usage(USER, UsageOperation.COMPLETION, tokens=10, input_tokens=10)
    await governor.record_usage(USER, UsageOperation.COMPLETION, tokens=10, input_tokens=10)
    analytics = await governor.get_cost_analytics(USER)
    assert analytics.utilization_percentage == 100
    assert analytics.is_near_limit
    assert "High completion usage - consider shorter responses" in analytics.recommended_actions


@pytest.mark.asyncio
async def test_all_usage_stats_and_reset(governor):
    await governor.record_usage(USER, UsageOperation.GENERAL)
    await governor.record_usage("user-9", UsageOperation.GENERAL)
    stats = await governor.get_all_usage_stats()
    assert stats["total_users"] == 2

    await governor.reset_usage(USER)
    assert (await governor.get_cost_analytics(USER)).usage.model_calls == 0
    assert (await governor.get_cost_analytics("user-9")).usage.model_calls == 1

    await governor.reset_usage()
    assert (await governor.get_all_usage_stats())["total_users"] == 0


@pytest.mark.asyncio
async def test_memory_store_returns_copies():
    store = InMemoryUsageStore()

    def bump(ledger):
        ledger.model_calls += 1
        return ledger

    await store.update("k", bump)
    copy = await store.get("k")
    copy.model_calls = 99
    assert (await store.get("k")).model_calls == 1


@pytest.mark.asyncio
async def test_record_usage_survives_ledger_write_failure(settings):
    governor = CostGovernor(BrokenUsageStore(), settings, clock=lambda: NOW)
    assert await governor.record_usage(USER, UsageOperation.EMBEDDING, tokens=10) is None
    assert await governor.record_failed_call(USER, UsageOperation.COMPLETION) is None


@pytest.mark.asyncio
async def test_zero_limits_do_not_break_analytics(governor):
    governor.set_custom_limits(
        USER,
        daily_model_calls=0,
        daily_embedding_calls=0,
        daily_completion_calls=0,
        daily_token_limit=0,
        daily_cost_limit_usd=0.0,
    )
    check = await governor.check_cost_limits(USER, UsageOperation.EMBEDDING)
    assert not check.allowed

    analytics = await governor.get_cost_analytics(USER)
    assert analytics.utilization_percentage == 100
    assert analytics.is_near_limit
    assert (await governor.get_usage_summary(USER))["cost_efficiency"] == "High usage"


@pytest.mark.asyncio
async def test_zero_cost_limit_in_all_usage_stats(governor):
    await governor.record_usage(USER, UsageOperation.GENERAL)
    governor.set_custom_limits(USER, daily_cost_limit_usd=0.0)
    stats = await governor.get_all_usage_stats()
    assert stats["total_users"] == 1
    assert stats["users_near_limit"] == 1
