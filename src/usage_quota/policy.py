"""Quota policy: static per-service metric definitions and tier limits."""

from __future__ import annotations

from collections.abc import Mapping

from .config import LimitValue, PlanSection, QuotaSection, ServiceSection
from .exceptions import (
    InvalidPolicyError,
    UnknownMetricError,
    UnknownServiceError,
    UnknownTierOrMetricError,
)
from .models import GLOBAL_TIER, UNLIMITED, Limit, MetricDefinition, ResetPolicy
from .period import parse_policy


def _parse_limit(value: LimitValue) -> Limit:
    if value == "unlimited" or value == -1:
        return UNLIMITED
    return int(value)


class _Service:
    __slots__ = ("name", "display_name", "metrics", "tiers", "plans", "top_tier")

    def __init__(
        self,
        name: str,
        display_name: str,
        metrics: dict[str, MetricDefinition],
        tiers: dict[str, dict[str, Limit]],
        plans: dict[str, PlanSection],
        top_tier: str,
    ) -> None:
        self.name = name
        self.display_name = display_name
        self.metrics = metrics
        self.tiers = tiers
        self.plans = plans
        self.top_tier = top_tier


class QuotaPolicy:
    """Pure lookup over the configured limits table.

    The table is validated on construction: every metric of a service must
    have a limit in every tier that service offers.
    """

    def __init__(self, services: Mapping[str, ServiceSection]) -> None:
        self._services: dict[str, _Service] = {}
        for name, section in services.items():
            metrics = {
                metric: MetricDefinition(
                    name=metric,
                    reset=parse_policy(entry.reset),
                    error_code=entry.error_code,
                )
                for metric, entry in section.metrics.items()
            }
            tiers = {
                tier: {metric: _parse_limit(limit) for metric, limit in limits.items()}
                for tier, limits in section.tiers.items()
            }
            self._services[name] = _Service(
                name,
                section.name or name,
                metrics,
                tiers,
                dict(section.plans),
                section.top_tier,
            )
        self.validate()

    @classmethod
    def from_config(cls, section: QuotaSection) -> QuotaPolicy:
        return cls(section.services)

    def validate(self) -> None:
        for service in self._services.values():
            if not service.tiers and service.metrics:
                raise InvalidPolicyError(f"Service {service.name} defines no tiers")
            for tier, limits in service.tiers.items():
                missing = sorted(set(service.metrics) - set(limits))
                if missing:
                    raise InvalidPolicyError(
                        f"Tier {service.name}.{tier} has no limit for: {', '.join(missing)}"
                    )
                extra = sorted(set(limits) - set(service.metrics))
                if extra:
                    raise InvalidPolicyError(
                        f"Tier {service.name}.{tier} limits undefined metrics: {', '.join(extra)}"
                    )
            unknown_plans = sorted(set(service.plans) - set(service.tiers))
            if unknown_plans:
                raise InvalidPolicyError(
                    f"Service {service.name} has plans for undefined tiers: "
                    f"{', '.join(unknown_plans)}"
                )

    @property
    def services(self) -> list[str]:
        return list(self._services)

    def has_service(self, service: str) -> bool:
        return service in self._services

    def display_name(self, service: str) -> str:
        return self._service(service).display_name

    def tiers(self, service: str) -> list[str]:
        return list(self._service(service).tiers)

    def has_tier(self, service: str, tier: str) -> bool:
        return tier in self._service(service).tiers

    def features(self, service: str, tier: str) -> list[str]:
        plan = self._service(service).plans.get(tier)
        return list(plan.features) if plan is not None else []

    def restrictions(self, service: str, tier: str) -> dict[str, int | bool | str]:
        plan = self._service(service).plans.get(tier)
        return dict(plan.restrictions) if plan is not None else {}

    def upgrade_available(self, service: str, tier: str) -> bool:
        """True unless ``tier`` is the service's top tier or the global cap."""
        svc = self._service(service)
        return tier != svc.top_tier and tier != GLOBAL_TIER

    def metric(self, service: str, name: str) -> MetricDefinition:
        svc = self._services.get(service)
        definition = svc.metrics.get(name) if svc is not None else None
        if definition is None:
            raise UnknownMetricError(service, name)
        return definition

    def metrics(self, service: str) -> list[MetricDefinition]:
        return list(self._service(service).metrics.values())

    def limit_for(self, service: str, tier: str, metric: str) -> Limit:
        svc = self._services.get(service)
        if svc is None:
            raise UnknownTierOrMetricError(service, tier, metric)
        limits = svc.tiers.get(tier)
        if limits is None or metric not in limits:
            raise UnknownTierOrMetricError(service, tier, metric)
        return limits[metric]

    def reset_of(self, service: str, metric: str) -> ResetPolicy | None:
        """Resolver handed to counter stores; None for unknown metrics."""
        svc = self._services.get(service)
        if svc is None or metric not in svc.metrics:
            return None
        return svc.metrics[metric].reset

    def limits_table(self, service: str) -> dict[str, dict[str, Limit]]:
        return {tier: dict(limits) for tier, limits in self._service(service).tiers.items()}

    def _service(self, service: str) -> _Service:
        svc = self._services.get(service)
        if svc is None:
            raise UnknownServiceError(service)
        return svc
