"""Per-user, per-day usage ceilings for billable language-model calls."""

from __future__ import annotations

from collections.abc import Callable
from dataclasses import asdict, replace
from datetime import date, datetime, timezone

from hybrid_engine.config.settings import Settings
from hybrid_engine.models.domain import (
    CostAnalytics,
    CostCheckResult,
    CostLimits,
    UsageLedger,
    UsageOperation,
)
from hybrid_engine.observability.logger import get_logger
from hybrid_engine.protocols.stores import UsageLedgerStore

logger = get_logger("cost_governor")

LEDGER_UNAVAILABLE = "usage ledger unavailable"
NEAR_LIMIT_RATIO = 0.8


def estimate_tokens(text: str) -> int:
    """Rough token estimate (4 characters per token)."""
    return max(1, (len(text) + 3) // 4) if text else 0


def ledger_key(user_id: str, day: date) -> str:
    return f"{user_id}:{day.isoformat()}"


def _split_key(key: str) -> tuple[str, str]:
    user_id, _, day = key.rpartition(":")
    return user_id, day


def _ratio(used: float, limit: float) -> float:
    """Fraction of a ceiling in use. A ceiling of 0 is fully used."""
    if limit <= 0:
        return 1.0
    return used / limit


class CostGovernor:
    """Checks and records usage against five daily ceilings.

    ``check_cost_limits`` and ``record_usage`` never raise. ``record_usage`` is
    invoked only after a call has actually happened; a ledger write that fails
    is logged and leaves that call unaccounted.
    """

    def __init__(
        self,
        store: UsageLedgerStore,
        settings: Settings,
        clock: Callable[[], datetime] | None = None,
    ) -> None:
        self._store = store
        self._clock = clock or (lambda: datetime.now(timezone.utc))
        self._default_limits = CostLimits(
            daily_model_calls=settings.daily_model_calls,
            daily_embedding_calls=settings.daily_embedding_calls,
            daily_completion_calls=settings.daily_completion_calls,
            daily_token_limit=settings.daily_token_limit,
            daily_cost_limit_usd=settings.daily_cost_limit_usd,
        )
        self._custom_limits: dict[str, dict] = {}
        self._rates = {
            "embedding": settings.embedding_rate_per_1k / 1000,
            "completion_input": settings.completion_input_rate_per_1k / 1000,
            "completion_output": settings.completion_output_rate_per_1k / 1000,
        }
        self._sweep_interval_s = settings.ledger_sweep_interval_s
        self._last_sweep: datetime | None = None

    def _today(self) -> date:
        return self._clock().date()

    def _key(self, user_id: str) -> str:
        return ledger_key(user_id, self._today())

    def get_limits(self, user_id: str) -> CostLimits:
        custom = self._custom_limits.get(user_id)
        return replace(self._default_limits, **custom) if custom else self._default_limits

    def set_custom_limits(self, user_id: str, **limits) -> None:
        unknown = set(limits) - set(asdict(self._default_limits))
        if unknown:
            raise ValueError(f"Unknown cost limits: {', '.join(sorted(unknown))}")
        self._custom_limits[user_id] = limits
        logger.info("custom_limits_set", user_id=user_id, limits=limits)

    async def check_cost_limits(
        self,
        user_id: str,
        operation: UsageOperation,
        estimated_tokens: int = 0,
    ) -> CostCheckResult:
        await self._maybe_sweep()
        try:
            usage = await self._store.get(self._key(user_id)) or UsageLedger()
        except Exception as e:
            logger.error("usage_ledger_unavailable", user_id=user_id, error=str(e))
            return CostCheckResult(
                allowed=False,
                usage=UsageLedger(),
                reason=LEDGER_UNAVAILABLE,
                recommendations=["Usage tracking is unavailable; retry once the ledger recovers"],
            )

        limits = self.get_limits(user_id)
        checks = {
            "daily model call limit": usage.model_calls < limits.daily_model_calls,
            "daily embedding limit": operation is not UsageOperation.EMBEDDING
            or usage.embedding_calls < limits.daily_embedding_calls,
            "daily completion limit": operation is not UsageOperation.COMPLETION
            or usage.completion_calls < limits.daily_completion_calls,
            "daily token limit": usage.tokens_used + estimated_tokens < limits.daily_token_limit,
            "daily cost limit": usage.estimated_cost_usd < limits.daily_cost_limit_usd,
        }
        exceeded = [name for name, ok in checks.items() if not ok]
        recommendations: list[str] = []
        reason = None

        if exceeded:
            reason = f"Exceeded {', '.join(exceeded)}"
            if "daily cost limit" in exceeded or "daily token limit" in exceeded:
                recommendations.append("Consider using cache more aggressively to reduce API calls")
                recommendations.append("Try shorter, more specific queries")
            if "daily embedding limit" in exceeded:
                recommendations.append(
                    "Reduce vector search frequency or increase similarity thresholds"
                )
            if "daily completion limit" in exceeded:
                recommendations.append("Use simpler responses or increase cache TTL")
            if "daily model call limit" in exceeded:
                recommendations.append("Daily model call budget is spent; usage resets tomorrow")
        else:
            utilization = max(
                _ratio(usage.model_calls, limits.daily_model_calls),
                _ratio(usage.estimated_cost_usd, limits.daily_cost_limit_usd),
            )
            if utilization > NEAR_LIMIT_RATIO:
                recommendations.append("Approaching daily limits - consider optimizing queries")
                recommendations.append(f"Current utilization: {round(utilization * 100)}%")

        logger.info(
            "cost_check",
            user_id=user_id,
            operation=operation.value,
            allowed=not exceeded,
            reason=reason,
            cost_usd=round(usage.estimated_cost_usd, 4),
        )
        return CostCheckResult(
            allowed=not exceeded,
            usage=usage,
            reason=reason,
            exceeded=exceeded,
            recommendations=recommendations,
        )

    async def record_usage(
        self,
        user_id: str,
        operation: UsageOperation,
        tokens: int = 0,
        input_tokens: int = 0,
        output_tokens: int = 0,
    ) -> UsageLedger | None:
        rates = self._rates

        def apply(ledger: UsageLedger) -> UsageLedger:
            ledger.model_calls += 1
            ledger.tokens_used += tokens
            if operation is UsageOperation.EMBEDDING:
                ledger.embedding_calls += 1
                ledger.estimated_cost_usd += tokens * rates["embedding"]
            elif operation is UsageOperation.COMPLETION:
                ledger.completion_calls += 1
                ledger.estimated_cost_usd += input_tokens * rates["completion_input"]
                ledger.estimated_cost_usd += output_tokens * rates["completion_output"]
            return ledger

        try:
            usage = await self._store.update(self._key(user_id), apply)
        except Exception as e:
            logger.warning(
                "usage_record_failed",
                user_id=user_id,
                operation=operation.value,
                tokens=tokens,
                error=str(e) or type(e).__name__,
            )
            return None
        logger.info(
            "usage_recorded",
            user_id=user_id,
            operation=operation.value,
            tokens=tokens,
            total_cost_usd=round(usage.estimated_cost_usd, 6),
            calls_left=self.get_limits(user_id).daily_model_calls - usage.model_calls,
        )
        return usage

    async def record_failed_call(
        self, user_id: str, operation: UsageOperation
    ) -> UsageLedger | None:
        """A failed call costs one call against the count ceilings and no tokens."""
        return await self.record_usage(user_id, operation)

    async def get_cost_analytics(self, user_id: str) -> CostAnalytics:
        usage = await self._store.get(self._key(user_id)) or UsageLedger()
        limits = self.get_limits(user_id)
        utilization = max(
            _ratio(usage.model_calls, limits.daily_model_calls),
            _ratio(usage.embedding_calls, limits.daily_embedding_calls),
            _ratio(usage.completion_calls, limits.daily_completion_calls),
            _ratio(usage.tokens_used, limits.daily_token_limit),
            _ratio(usage.estimated_cost_usd, limits.daily_cost_limit_usd),
        ) * 100
        is_near_limit = utilization > NEAR_LIMIT_RATIO * 100
        projected_monthly = usage.estimated_cost_usd * 30

        actions: list[str] = []
        if is_near_limit:
            actions.append("Approaching daily limits - optimize query frequency")
        if usage.embedding_calls > limits.daily_embedding_calls * 0.7:
            actions.append("High embedding usage - consider increasing cache TTL")
        if usage.completion_calls > limits.daily_completion_calls * 0.7:
            actions.append("High completion usage - consider shorter responses")
        if projected_monthly > 50:
            actions.append("High monthly cost projection - review usage patterns")
        if not actions:
            actions.append("Usage within healthy limits")

        return CostAnalytics(
            usage=usage,
            limits=limits,
            utilization_percentage=round(utilization),
            recommended_actions=actions,
            is_near_limit=is_near_limit,
            projected_monthly_cost_usd=projected_monthly,
        )

    async def get_usage_summary(self, user_id: str) -> dict:
        analytics = await self.get_cost_analytics(user_id)
        pct = analytics.utilization_percentage
        if pct < 30:
            efficiency = "Very efficient"
        elif pct < 60:
            efficiency = "Efficient"
        elif pct < 85:
            efficiency = "Moderate"
        else:
            efficiency = "High usage"
        return {
            "today": analytics.usage,
            "cost_efficiency": efficiency,
            "recommendations": analytics.recommended_actions,
        }

    async def get_all_usage_stats(self) -> dict:
        today = self._today().isoformat()
        total_cost = 0.0
        total_utilization = 0.0
        near_limit = 0
        users = 0
        for key in await self._store.keys():
            user_id, day = _split_key(key)
            if day != today:
                continue
            usage = await self._store.get(key)
            if usage is None:
                continue
            users += 1
            limits = self.get_limits(user_id)
            utilization = max(
                _ratio(usage.estimated_cost_usd, limits.daily_cost_limit_usd),
                _ratio(usage.model_calls, limits.daily_model_calls),
            ) * 100
            total_cost += usage.estimated_cost_usd
            total_utilization += utilization
            if utilization > NEAR_LIMIT_RATIO * 100:
                near_limit += 1
        return {
            "total_users": users,
            "total_daily_cost_usd": round(total_cost, 2),
            "average_utilization": round(total_utilization / users) if users else 0,
            "users_near_limit": near_limit,
        }

    async def reset_usage(self, user_id: str | None = None) -> None:
        if user_id is not None:
            await self._store.delete(self._key(user_id))
        else:
            for key in await self._store.keys():
                await self._store.delete(key)
        logger.info("usage_reset", user_id=user_id)

    async def cleanup_old_data(self) -> int:
        """Delete every ledger whose day is not today. Returns the number removed."""
        today = self._today().isoformat()
        stale = [k for k in await self._store.keys() if _split_key(k)[1] != today]
        for key in stale:
            await self._store.delete(key)
        self._last_sweep = self._clock()
        if stale:
            logger.info("usage_ledgers_swept", removed=len(stale))
        return len(stale)

    async def _maybe_sweep(self) -> None:
        now = self._clock()
        if (
            self._last_sweep is not None
            and (now - self._last_sweep).total_seconds() < self._sweep_interval_s
        ):
            return
        try:
            await self.cleanup_old_data()
        except Exception as e:
            self._last_sweep = now
            logger.warning("usage_sweep_failed", error=str(e))
