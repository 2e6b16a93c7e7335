"""Wiring of policy, store, enforcer, reporter and sweeper from configuration."""

from __future__ import annotations

from .clock import Clock, SystemClock
from .config import QuotaConfig, QuotaSection
from .enforcer import QuotaEnforcer
from .memory import InMemoryCounterStore
from .policy import QuotaPolicy
from .redis_store import RedisCounterStore
from .reporter import UsageReporter
from .store import CounterStore
from .sweeper import Sweeper


def build_store(section: QuotaSection, policy: QuotaPolicy, clock: Clock) -> CounterStore:
    if section.store.backend == "redis":
        redis = section.store.redis
        return RedisCounterStore.from_url(redis.url, policy.reset_of, key_prefix=redis.key_prefix)
    return InMemoryCounterStore(clock)


class QuotaTracker:
    """Entry point holding one enforcer and one reporter over a shared store."""

    def __init__(
        self,
        policy: QuotaPolicy,
        store: CounterStore,
        clock: Clock | None = None,
        *,
        default_tier: str = "free",
        failure_mode: str = "open",
        store_timeout_seconds: float = 0.5,
        sweep_interval_seconds: float = 6 * 60 * 60,
        environment: str = "development",
    ) -> None:
        self.clock = clock or SystemClock()
        self.policy = policy
        self.store = store
        self.default_tier = default_tier
        self.environment = environment
        self.enforcer = QuotaEnforcer(
            policy,
            store,
            self.clock,
            failure_mode=failure_mode,  # type: ignore[arg-type]
            store_timeout_seconds=store_timeout_seconds,
        )
        self.reporter = UsageReporter(policy, store, self.clock)
        self.sweeper = Sweeper(
            store,
            policy.reset_of,
            self.clock,
            interval_seconds=sweep_interval_seconds,
        )

    @classmethod
    def from_config(
        cls,
        config: QuotaConfig,
        *,
        clock: Clock | None = None,
        store: CounterStore | None = None,
    ) -> QuotaTracker:
        section = config.quota
        clock = clock or SystemClock()
        policy = QuotaPolicy.from_config(section)
        return cls(
            policy,
            store or build_store(section, policy, clock),
            clock,
            default_tier=section.default_tier,
            failure_mode=section.failure_mode,
            store_timeout_seconds=section.store_timeout_seconds,
            sweep_interval_seconds=section.sweep_interval_seconds,
            environment=section.environment,
        )

    async def start(self) -> None:
        await self.sweeper.start()

    async def stop(self) -> None:
        await self.sweeper.stop()
        await self.store.close()
