"""InMemoryCounterStore 実装"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone

from .clock import Clock, SystemClock
from .models import CounterKey, IncrementResult
from .period import is_sweepable
from .store import CounterStore, PolicyResolver, check_delta, check_limit


class _Counter:
    __slots__ = ("value", "last_updated")

    def __init__(self, value: int, last_updated: datetime) -> None:
        self.value = value
        self.last_updated = last_updated


class InMemoryCounterStore(CounterStore):
    """プロセス内カウンターストア。

    単一インスタンス構成向け。プロセス再起動で内容は失われる。
    """

    def __init__(self, clock: Clock | None = None) -> None:
        self._clock = clock or SystemClock()
        self._counters: dict[CounterKey, _Counter] = {}
        self._lock = asyncio.Lock()

    async def get(self, key: CounterKey) -> int:
        counter = self._counters.get(key)
        return counter.value if counter is not None else 0

    async def increment_and_get(self, key: CounterKey, delta: int) -> int:
        check_delta(delta)
        async with self._lock:
            return self._add(key, delta)

    async def try_increment(self, key: CounterKey, delta: int, limit: int) -> IncrementResult:
        check_delta(delta)
        check_limit(limit)
        async with self._lock:
            counter = self._counters.get(key)
            current = counter.value if counter is not None else 0
            if current + delta > limit:
                return IncrementResult(applied=False, value=current)
            return IncrementResult(applied=True, value=self._add(key, delta))

    async def release(self, key: CounterKey, delta: int) -> int:
        check_delta(delta)
        async with self._lock:
            counter = self._counters.get(key)
            if counter is None:
                return 0
            counter.value = max(0, counter.value - delta)
            counter.last_updated = self._clock.now().astimezone(timezone.utc)
            return counter.value

    async def sweep_expired(self, now: datetime, policy_of: PolicyResolver) -> int:
        candidates = [
            key
            for key in list(self._counters)
            if (policy := policy_of(key.service, key.metric)) is not None
            and is_sweepable(policy, key.period_key, now)
        ]
        removed = 0
        for key in candidates:
            async with self._lock:
                if self._counters.pop(key, None) is not None:
                    removed += 1
        return removed

    async def size(self) -> int:
        return len(self._counters)

    def last_updated(self, key: CounterKey) -> datetime | None:
        """Last mutation time of a counter. For testing."""
        counter = self._counters.get(key)
        return counter.last_updated if counter is not None else None

    def _add(self, key: CounterKey, delta: int) -> int:
        now = self._clock.now().astimezone(timezone.utc)
        counter = self._counters.get(key)
        if counter is None:
            counter = _Counter(0, now)
            self._counters[key] = counter
        counter.value += delta
        counter.last_updated = now
        return counter.value
