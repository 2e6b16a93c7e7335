"""Sweeper のユニットテスト"""

import asyncio
from datetime import timedelta
from unittest.mock import AsyncMock, MagicMock

from usage_quota.clock import ManualClock
from usage_quota.enforcer import QuotaEnforcer
from usage_quota.memory import InMemoryCounterStore
from usage_quota.models import Subject
from usage_quota.policy import QuotaPolicy
from usage_quota.sweeper import Sweeper


async def test_sweep_once_removes_expired_counters(
    enforcer: QuotaEnforcer,
    store: InMemoryCounterStore,
    policy: QuotaPolicy,
    clock: ManualClock,
) -> None:
    """保持期間を過ぎた日次カウンターのみ削除されること。"""
    subject = Subject("u1", "free")
    await enforcer.try_consume("budget-analyzer", subject, "daily_analyses")
    await enforcer.try_consume("budget-analyzer", subject, "monthly_analyses")
    await enforcer.try_consume("cash-flow", subject, "organizations")
    clock.advance(timedelta(days=2))
    await enforcer.try_consume("budget-analyzer", subject, "daily_analyses")

    sweeper = Sweeper(store, policy.reset_of, clock)
    removed = await sweeper.sweep_once()

    assert removed == 1
    assert await store.size() == 3


async def test_sweep_keeps_current_period(
    enforcer: QuotaEnforcer,
    store: InMemoryCounterStore,
    policy: QuotaPolicy,
    clock: ManualClock,
) -> None:
    """現在期間のカウンターは削除されないこと。"""
    await enforcer.try_consume("budget-analyzer", Subject("u1", "free"), "daily_analyses")
    sweeper = Sweeper(store, policy.reset_of, clock)
    assert await sweeper.sweep_once() == 0
    assert await store.size() == 1


async def test_start_and_stop(store: InMemoryCounterStore, policy: QuotaPolicy) -> None:
    sweeper = Sweeper(store, policy.reset_of, interval_seconds=0.01)
    await sweeper.start()
    assert sweeper.running is True
    await asyncio.sleep(0.05)
    await sweeper.stop()
    assert sweeper.running is False


async def test_loop_survives_store_errors(policy: QuotaPolicy) -> None:
    """掃除失敗時もループが継続すること。"""
    store = MagicMock()
    store.sweep_expired = AsyncMock(side_effect=[RuntimeError("boom"), 0, 0, 0, 0, 0, 0, 0])
    sweeper = Sweeper(store, policy.reset_of, interval_seconds=0.01)
    await sweeper.start()
    await asyncio.sleep(0.05)
    await sweeper.stop()
    assert store.sweep_expired.await_count >= 2
