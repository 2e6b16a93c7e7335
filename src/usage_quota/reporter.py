"""Read-only usage reporting."""

from __future__ import annotations

from .clock import Clock, SystemClock
from .models import UNLIMITED, Limit, MetricUsage, Subject, Unlimited, UsageSnapshot
from .policy import QuotaPolicy
from .resolve import resolve
from .store import CounterStore


def percentage_used(current: int, limit: Limit) -> float:
    if isinstance(limit, Unlimited):
        return 0.0
    if limit == 0:
        return 100.0 if current > 0 else 0.0
    return round(current / limit * 100, 1)


class UsageReporter:
    """Builds usage snapshots. Never mutates counters."""

    def __init__(
        self,
        policy: QuotaPolicy,
        store: CounterStore,
        clock: Clock | None = None,
    ) -> None:
        self._policy = policy
        self._store = store
        self._clock = clock or SystemClock()

    async def snapshot(self, service: str, subject: Subject) -> UsageSnapshot:
        now = self._clock.now()
        usages: dict[str, MetricUsage] = {}
        for definition in self._policy.metrics(service):
            res = resolve(self._policy, service, subject, definition.name, now)
            current = await self._store.get(res.key)
            limit = res.limit
            remaining: Limit = UNLIMITED if isinstance(limit, Unlimited) else max(0, limit - current)
            usages[definition.name] = MetricUsage(
                current=current,
                limit=res.limit,
                remaining=remaining,
                percentage_used=percentage_used(current, res.limit),
                reset=definition.reset,
                period_key=res.key.period_key,
                next_reset_at=res.reset_at,
            )
        return UsageSnapshot(
            service=service,
            subject_id=subject.subject_id,
            tier=subject.tier,
            generated_at=now,
            metrics=usages,
            features=self._policy.features(service, subject.tier),
            restrictions=self._policy.restrictions(service, subject.tier),
            upgrade_available=self._policy.upgrade_available(service, subject.tier),
        )

    def limits_table(self, service: str) -> dict[str, dict[str, Limit]]:
        return self._policy.limits_table(service)
