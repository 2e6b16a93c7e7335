"""usage_quota ライブラリの例外型定義"""

from __future__ import annotations

from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from .models import Decision


class QuotaError(Exception):
    """usage_quota ライブラリのエラー基底クラス。"""

    def __init__(
        self,
        code: str,
        message: str,
        cause: Exception | None = None,
    ) -> None:
        super().__init__(message)
        self.code = code
        if cause is not None:
            self.__cause__ = cause

    def __str__(self) -> str:
        return f"{self.code}: {super().__str__()}"


class QuotaErrorCodes:
    """QuotaError のエラーコード定数。"""

    INVALID_POLICY: str = "INVALID_POLICY"
    UNKNOWN_SERVICE: str = "UNKNOWN_SERVICE"
    UNKNOWN_METRIC: str = "UNKNOWN_METRIC"
    UNKNOWN_TIER_OR_METRIC: str = "UNKNOWN_TIER_OR_METRIC"
    STORE_UNAVAILABLE: str = "STORE_UNAVAILABLE"
    QUOTA_EXCEEDED: str = "QUOTA_EXCEEDED"
    READ_FILE: str = "READ_FILE_ERROR"
    PARSE_YAML: str = "PARSE_YAML_ERROR"
    VALIDATION: str = "VALIDATION_ERROR"


class InvalidPolicyError(QuotaError):
    """Unrecognized reset policy or an incomplete limits table."""

    def __init__(self, message: str) -> None:
        super().__init__(QuotaErrorCodes.INVALID_POLICY, message)


class UnknownServiceError(QuotaError):
    """Service not configured."""

    def __init__(self, service: str) -> None:
        self.service = service
        super().__init__(QuotaErrorCodes.UNKNOWN_SERVICE, f"Unknown service: {service}")


class UnknownMetricError(QuotaError):
    """Metric not configured for the service."""

    def __init__(self, service: str, metric: str) -> None:
        self.service = service
        self.metric = metric
        super().__init__(
            QuotaErrorCodes.UNKNOWN_METRIC,
            f"Unknown metric: {service}.{metric}",
        )


class UnknownTierOrMetricError(QuotaError):
    """No limit configured for the (service, tier, metric) combination."""

    def __init__(self, service: str, tier: str, metric: str) -> None:
        self.service = service
        self.tier = tier
        self.metric = metric
        super().__init__(
            QuotaErrorCodes.UNKNOWN_TIER_OR_METRIC,
            f"No limit configured for {service}.{metric} (tier={tier})",
        )


class StoreUnavailableError(QuotaError):
    """The counter store could not be reached in time."""

    def __init__(self, message: str, cause: Exception | None = None) -> None:
        super().__init__(QuotaErrorCodes.STORE_UNAVAILABLE, message, cause)


class QuotaExceededError(QuotaError):
    """Raised at the HTTP boundary when a decision denies the request."""

    def __init__(self, decision: Decision, tier: str) -> None:
        self.decision = decision
        self.tier = tier
        super().__init__(
            QuotaErrorCodes.QUOTA_EXCEEDED,
            f"Quota exceeded: {decision.service}.{decision.metric}, "
            f"current={decision.current}, limit={decision.limit}",
        )
