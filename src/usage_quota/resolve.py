"""Counter resolution shared by the enforcer and the reporter."""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime

from .models import CounterKey, Limit, MetricDefinition, Subject
from .period import period_end, period_key
from .policy import QuotaPolicy


@dataclass(frozen=True)
class Resolution:
    definition: MetricDefinition
    key: CounterKey
    limit: Limit
    now: datetime
    reset_at: datetime | None


def resolve(
    policy: QuotaPolicy,
    service: str,
    subject: Subject,
    metric: str,
    now: datetime,
) -> Resolution:
    """Bucket key and limit for ``subject``'s ``metric`` at ``now``."""
    definition = policy.metric(service, metric)
    key = CounterKey(
        service=service,
        subject_id=subject.subject_id,
        metric=metric,
        period_key=period_key(definition.reset, now),
    )
    limit = policy.limit_for(service, subject.tier, metric)
    return Resolution(
        definition=definition,
        key=key,
        limit=limit,
        now=now,
        reset_at=period_end(definition.reset, now),
    )
