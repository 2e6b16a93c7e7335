"""UsageReporter tests."""

from datetime import datetime, timedelta, timezone

from usage_quota.clock import ManualClock
from usage_quota.enforcer import QuotaEnforcer
from usage_quota.memory import InMemoryCounterStore
from usage_quota.models import UNLIMITED, ResetPolicy, Subject
from usage_quota.reporter import UsageReporter, percentage_used

FREE = Subject("u1", "free")


async def test_snapshot_without_activity(reporter: UsageReporter) -> None:
    snapshot = await reporter.snapshot("budget-analyzer", FREE)
    daily = snapshot.metrics["daily_analyses"]
    assert daily.current == 0
    assert daily.limit == 3
    assert daily.remaining == 3
    assert daily.percentage_used == 0
    assert set(snapshot.metrics) == {"daily_analyses", "monthly_analyses"}


async def test_snapshot_reflects_consumption(
    enforcer: QuotaEnforcer, reporter: UsageReporter
) -> None:
    await enforcer.try_consume("budget-analyzer", FREE, "daily_analyses", amount=2)
    snapshot = await reporter.snapshot("budget-analyzer", FREE)
    daily = snapshot.metrics["daily_analyses"]
    assert daily.current == 2
    assert daily.remaining == 1
    assert daily.percentage_used == 66.7
    assert daily.next_reset_at == datetime(2026, 10, 19, tzinfo=timezone.utc)
    monthly = snapshot.metrics["monthly_analyses"]
    assert monthly.current == 0
    assert monthly.reset is ResetPolicy.MONTHLY
    assert monthly.next_reset_at == datetime(2026, 11, 1, tzinfo=timezone.utc)


async def test_snapshot_unlimited(enforcer: QuotaEnforcer, reporter: UsageReporter) -> None:
    subject = Subject("corp", "enterprise")
    for _ in range(1000):
        await enforcer.try_consume("budget-analyzer", subject, "daily_analyses")
    snapshot = await reporter.snapshot("budget-analyzer", subject)
    daily = snapshot.metrics["daily_analyses"]
    assert daily.current == 1000
    assert daily.remaining is UNLIMITED
    assert daily.percentage_used == 0
    rendered = snapshot.to_dict()["metrics"]["daily_analyses"]  # type: ignore[index]
    assert rendered["remaining"] == "unlimited"
    assert rendered["limit"] == "unlimited"
    assert rendered["percentage_used"] == 0


async def test_snapshot_does_not_mutate(
    reporter: UsageReporter, store: InMemoryCounterStore
) -> None:
    for _ in range(5):
        await reporter.snapshot("budget-analyzer", FREE)
    assert await store.size() == 0


async def test_reporter_and_enforcer_agree_on_bucket(
    enforcer: QuotaEnforcer, reporter: UsageReporter, clock: ManualClock
) -> None:
    clock.set(datetime(2026, 10, 31, 23, 59, 59, tzinfo=timezone.utc))
    decision = await enforcer.try_consume("budget-analyzer", FREE, "monthly_analyses")
    snapshot = await reporter.snapshot("budget-analyzer", FREE)
    monthly = snapshot.metrics["monthly_analyses"]
    assert monthly.period_key == decision.period_key == "2026-10"
    assert monthly.limit == decision.limit
    assert monthly.current == 1

    clock.advance(timedelta(seconds=1))
    snapshot = await reporter.snapshot("budget-analyzer", FREE)
    assert snapshot.metrics["monthly_analyses"].period_key == "2026-11"
    assert snapshot.metrics["monthly_analyses"].current == 0


async def test_limits_table(reporter: UsageReporter) -> None:
    table = reporter.limits_table("cost-control")
    assert table["global"] == {"daily_cost_cents": 500, "hourly_analyses": 10}
    assert table["free"]["hourly_analyses"] is UNLIMITED


def test_percentage_used() -> None:
    assert percentage_used(0, 10) == 0
    assert percentage_used(5, 10) == 50.0
    assert percentage_used(1, 3) == 33.3
    assert percentage_used(7, UNLIMITED) == 0
    assert percentage_used(0, 0) == 0
    assert percentage_used(1, 0) == 100.0


async def test_snapshot_carries_plan(reporter: UsageReporter) -> None:
    snapshot = await reporter.snapshot("cash-flow", FREE)
    assert snapshot.features == ["basic_cashflow"]
    assert snapshot.restrictions == {"max_months_history": 3, "categories_limit": 10}
    assert snapshot.upgrade_available is True
    rendered = snapshot.to_dict()
    assert rendered["restrictions"] == {"max_months_history": 3, "categories_limit": 10}

    top = await reporter.snapshot("cash-flow", Subject("corp", "enterprise"))
    assert top.features == []
    assert top.upgrade_available is False
