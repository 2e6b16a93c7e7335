"""Quota data models."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from datetime import datetime, timedelta
from enum import Enum, StrEnum
from typing import Union

ANONYMOUS_SUBJECT_ID = "anonymous"
GLOBAL_SUBJECT_ID = "__global__"
GLOBAL_TIER = "global"


class ResetPolicy(StrEnum):
    """Counter reset policies."""

    HOURLY = "hourly"
    DAILY = "daily"
    MONTHLY = "monthly"
    NEVER = "never"


class Unlimited(Enum):
    """Sentinel type for limits that are never enforced."""

    UNLIMITED = "unlimited"

    def __repr__(self) -> str:
        return "UNLIMITED"


UNLIMITED = Unlimited.UNLIMITED

Limit = Union[int, Unlimited]


@dataclass(frozen=True)
class Subject:
    """Who is consuming quota."""

    subject_id: str
    tier: str

    @classmethod
    def anonymous(cls, tier: str) -> Subject:
        return cls(subject_id=ANONYMOUS_SUBJECT_ID, tier=tier)

    @classmethod
    def global_scope(cls) -> Subject:
        """Synthetic subject used for service-wide caps."""
        return cls(subject_id=GLOBAL_SUBJECT_ID, tier=GLOBAL_TIER)

    @property
    def is_global(self) -> bool:
        return self.subject_id == GLOBAL_SUBJECT_ID


@dataclass(frozen=True)
class MetricDefinition:
    """A countable quantity of a service."""

    name: str
    reset: ResetPolicy
    error_code: str = ""

    def __post_init__(self) -> None:
        if not self.name:
            raise ValueError("metric name cannot be empty")
        if not self.error_code:
            object.__setattr__(self, "error_code", f"{self.name.upper()}_LIMIT")


@dataclass(frozen=True)
class CounterKey:
    """Identity of a usage counter."""

    service: str
    subject_id: str
    metric: str
    period_key: str

    def render(self, prefix: str = "") -> str:
        """Flat string form used by external stores."""
        body = ":".join((self.service, self.subject_id, self.metric, self.period_key))
        return f"{prefix}{body}" if prefix else body


@dataclass(frozen=True)
class IncrementResult:
    """Outcome of an atomic compare-and-increment."""

    applied: bool
    value: int


@dataclass(frozen=True)
class Decision:
    """Allowed/denied outcome of an enforcement check."""

    allowed: bool
    service: str
    metric: str
    subject_id: str
    period_key: str
    current: int
    limit: Limit
    remaining: Limit
    reset_at: datetime | None = None
    retry_after: timedelta | None = None
    error_code: str = ""
    degraded: bool = False

    @property
    def counter_key(self) -> CounterKey:
        return CounterKey(self.service, self.subject_id, self.metric, self.period_key)

    @property
    def retry_after_seconds(self) -> int | None:
        if self.retry_after is None:
            return None
        return max(0, math.ceil(self.retry_after.total_seconds()))


@dataclass(frozen=True)
class MetricUsage:
    """Read-only usage figures for one metric."""

    current: int
    limit: Limit
    remaining: Limit
    percentage_used: float
    reset: ResetPolicy
    period_key: str
    next_reset_at: datetime | None

    def to_dict(self) -> dict[str, object]:
        return {
            "current": self.current,
            "limit": render_limit(self.limit),
            "remaining": render_limit(self.remaining),
            "percentage_used": self.percentage_used,
            "reset_type": self.reset.value,
            "period_key": self.period_key,
            "next_reset": self.next_reset_at.isoformat() if self.next_reset_at else None,
        }


@dataclass(frozen=True)
class UsageSnapshot:
    """Per-metric usage of one subject within one service."""

    service: str
    subject_id: str
    tier: str
    generated_at: datetime
    metrics: dict[str, MetricUsage] = field(default_factory=dict)
    features: list[str] = field(default_factory=list)
    restrictions: dict[str, int | bool | str] = field(default_factory=dict)
    upgrade_available: bool = False

    def to_dict(self) -> dict[str, object]:
        return {
            "service": self.service,
            "subject_id": self.subject_id,
            "tier": self.tier,
            "generated_at": self.generated_at.isoformat(),
            "metrics": {name: usage.to_dict() for name, usage in self.metrics.items()},
            "features": list(self.features),
            "restrictions": dict(self.restrictions),
            "upgrade_available": self.upgrade_available,
        }


def render_limit(limit: Limit) -> int | str:
    return limit.value if isinstance(limit, Unlimited) else limit
