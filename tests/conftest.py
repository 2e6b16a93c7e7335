"""Shared fixtures."""

from datetime import datetime, timezone

import pytest
from usage_quota.clock import ManualClock
from usage_quota.config import ServiceSection
from usage_quota.enforcer import QuotaEnforcer
from usage_quota.memory import InMemoryCounterStore
from usage_quota.policy import QuotaPolicy
from usage_quota.reporter import UsageReporter

START = datetime(2026, 10, 18, 12, 30, tzinfo=timezone.utc)


def make_services() -> dict[str, ServiceSection]:
    return {
        "budget-analyzer": ServiceSection.model_validate(
            {
                "name": "Budget Analyzer",
                "metrics": {
                    "daily_analyses": {"reset": "daily"},
                    "monthly_analyses": {"reset": "monthly"},
                },
                "tiers": {
                    "free": {"daily_analyses": 3, "monthly_analyses": 50},
                    "pro": {"daily_analyses": 50, "monthly_analyses": 500},
                    "enterprise": {"daily_analyses": "unlimited", "monthly_analyses": -1},
                },
                "plans": {
                    "free": {"features": ["basic_analysis", "pdf_upload"]},
                    "pro": {"features": ["basic_analysis", "pdf_upload", "comparisons"]},
                },
            }
        ),
        "cost-control": ServiceSection.model_validate(
            {
                "metrics": {
                    "daily_cost_cents": {"reset": "daily", "error_code": "DAILY_COST_LIMIT"},
                    "hourly_analyses": {"reset": "hourly", "error_code": "HOURLY_ANALYSIS_LIMIT"},
                },
                "tiers": {
                    "global": {"daily_cost_cents": 500, "hourly_analyses": 10},
                    "free": {"daily_cost_cents": 200, "hourly_analyses": "unlimited"},
                },
            }
        ),
        "cash-flow": ServiceSection.model_validate(
            {
                "metrics": {"organizations": {"reset": "never"}},
                "tiers": {"free": {"organizations": 1}, "enterprise": {"organizations": -1}},
                "plans": {
                    "free": {
                        "features": ["basic_cashflow"],
                        "restrictions": {"max_months_history": 3, "categories_limit": 10},
                    }
                },
            }
        ),
    }


@pytest.fixture
def clock() -> ManualClock:
    return ManualClock(START)


@pytest.fixture
def policy() -> QuotaPolicy:
    return QuotaPolicy(make_services())


@pytest.fixture
def store(clock: ManualClock) -> InMemoryCounterStore:
    return InMemoryCounterStore(clock)


@pytest.fixture
def enforcer(
    policy: QuotaPolicy, store: InMemoryCounterStore, clock: ManualClock
) -> QuotaEnforcer:
    return QuotaEnforcer(policy, store, clock)


@pytest.fixture
def reporter(
    policy: QuotaPolicy, store: InMemoryCounterStore, clock: ManualClock
) -> UsageReporter:
    return UsageReporter(policy, store, clock)
