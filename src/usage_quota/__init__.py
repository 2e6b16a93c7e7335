"""usage_quota: time-bucketed usage counters and tier quotas."""

from .api import (
    RequireQuota,
    create_router,
    default_subject_resolver,
    install,
    record_usage,
)
from .app import create_app
from .clock import Clock, ManualClock, SystemClock
from .config import QuotaConfig, load, load_for_environment
from .enforcer import QuotaEnforcer
from .exceptions import (
    InvalidPolicyError,
    QuotaError,
    QuotaErrorCodes,
    QuotaExceededError,
    StoreUnavailableError,
    UnknownMetricError,
    UnknownServiceError,
    UnknownTierOrMetricError,
)
from .logger import new_logger
from .memory import InMemoryCounterStore
from .models import (
    UNLIMITED,
    CounterKey,
    Decision,
    IncrementResult,
    Limit,
    MetricDefinition,
    MetricUsage,
    ResetPolicy,
    Subject,
    UsageSnapshot,
)
from .period import period_end, period_key
from .policy import QuotaPolicy
from .redis_store import RedisCounterStore
from .reporter import UsageReporter
from .store import CounterStore
from .sweeper import Sweeper
from .tracker import QuotaTracker

__all__ = [
    "UNLIMITED",
    "Clock",
    "CounterKey",
    "CounterStore",
    "Decision",
    "InMemoryCounterStore",
    "IncrementResult",
    "InvalidPolicyError",
    "Limit",
    "ManualClock",
    "MetricDefinition",
    "MetricUsage",
    "QuotaConfig",
    "QuotaEnforcer",
    "QuotaError",
    "QuotaErrorCodes",
    "QuotaExceededError",
    "QuotaPolicy",
    "QuotaTracker",
    "RedisCounterStore",
    "RequireQuota",
    "ResetPolicy",
    "StoreUnavailableError",
    "Subject",
    "Sweeper",
    "SystemClock",
    "UnknownMetricError",
    "UnknownServiceError",
    "UnknownTierOrMetricError",
    "UsageReporter",
    "UsageSnapshot",
    "create_app",
    "create_router",
    "default_subject_resolver",
    "install",
    "load",
    "load_for_environment",
    "new_logger",
    "period_end",
    "period_key",
    "record_usage",
]
