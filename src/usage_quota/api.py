"""FastAPI integration: enforcement dependency, error mapping and status routes."""

from __future__ import annotations

import inspect
from collections.abc import Awaitable, Callable
from typing import Any

import structlog
from fastapi import APIRouter, FastAPI, Query, Request, Response
from fastapi.responses import JSONResponse

from .exceptions import (
    InvalidPolicyError,
    QuotaError,
    QuotaExceededError,
    StoreUnavailableError,
    UnknownMetricError,
    UnknownServiceError,
    UnknownTierOrMetricError,
)
from .models import GLOBAL_TIER, Decision, Limit, Subject, render_limit
from .tracker import QuotaTracker

logger = structlog.get_logger(__name__)

SubjectResolver = Callable[[Request], Subject | Awaitable[Subject]]


def default_subject_resolver(request: Request) -> Subject:
    """Subject from ``request.state.user`` as set by the authentication layer.

    Accepts a mapping or an object exposing ``id`` and ``tier``. Requests
    without a user are charged to the anonymous subject on the default tier.
    """
    tracker = get_tracker(request)
    user = getattr(request.state, "user", None)
    if user is None:
        return Subject.anonymous(tracker.default_tier)
    if isinstance(user, dict):
        user_id, tier = user.get("id"), user.get("tier")
    else:
        user_id, tier = getattr(user, "id", None), getattr(user, "tier", None)
    if not user_id:
        return Subject.anonymous(tier or tracker.default_tier)
    return Subject(subject_id=str(user_id), tier=tier or tracker.default_tier)


def get_tracker(request: Request) -> QuotaTracker:
    return request.app.state.quota_tracker


async def resolve_subject(request: Request) -> Subject:
    resolver: SubjectResolver = getattr(
        request.app.state, "subject_resolver", default_subject_resolver
    )
    subject = resolver(request)
    if inspect.isawaitable(subject):
        subject = await subject
    return subject


def _timestamp(tracker: QuotaTracker) -> str:
    return tracker.clock.now().isoformat()


def _render_table(table: dict[str, dict[str, Limit]]) -> dict[str, dict[str, int | str]]:
    return {
        tier: {metric: render_limit(limit) for metric, limit in limits.items()}
        for tier, limits in table.items()
    }


def _charged_subjects(
    tracker: QuotaTracker, service: str, subject: Subject, include_global: bool
) -> list[Subject]:
    subjects: list[Subject] = []
    if include_global and tracker.policy.has_tier(service, GLOBAL_TIER):
        subjects.append(Subject.global_scope())
    subjects.append(subject)
    return subjects


async def record_usage(
    request: Request,
    service: str,
    metric: str,
    amount: int,
    *,
    include_global: bool = True,
) -> list[Decision]:
    """Register usage measured after the work ran, such as its actual cost.

    Charges the caller and, when the service has a ``global`` tier, the
    service-wide counter, without checking limits.
    """
    tracker = get_tracker(request)
    subject = await resolve_subject(request)
    subjects = _charged_subjects(tracker, service, subject, include_global)
    return await tracker.enforcer.record(service, subjects, metric, amount)


class RequireQuota:
    """Dependency consuming quota before the endpoint runs.

    When the service defines a ``global`` tier the service-wide counter is
    checked first, then the caller's own counter.
    """

    def __init__(
        self,
        service: str,
        metric: str,
        amount: int = 1,
        *,
        include_global: bool = True,
    ) -> None:
        self.service = service
        self.metric = metric
        self.amount = amount
        self.include_global = include_global

    async def __call__(self, request: Request, response: Response) -> Decision:
        tracker = get_tracker(request)
        subject = await resolve_subject(request)
        subjects = _charged_subjects(tracker, self.service, subject, self.include_global)

        decisions = await tracker.enforcer.try_consume_all(
            self.service, subjects, self.metric, self.amount
        )
        last = decisions[-1]
        if not last.allowed:
            denied = subjects[len(decisions) - 1]
            raise QuotaExceededError(last, tier=denied.tier)

        response.headers["X-Usage-Service"] = self.service
        response.headers["X-Usage-Current"] = str(last.current)
        response.headers["X-Usage-Limit"] = str(render_limit(last.limit))
        response.headers["X-Usage-Remaining"] = str(render_limit(last.remaining))
        response.headers["X-Usage-Tier"] = subject.tier
        if any(d.degraded for d in decisions):
            response.headers["X-Usage-Degraded"] = "true"
        return last


async def _quota_exceeded_handler(request: Request, exc: QuotaExceededError) -> JSONResponse:
    tracker = get_tracker(request)
    decision = exc.decision
    retry_after = decision.retry_after_seconds
    headers = {"Retry-After": str(retry_after)} if retry_after is not None else None
    return JSONResponse(
        status_code=429,
        headers=headers,
        content={
            "success": False,
            "message": (
                f"Usage limit reached for {decision.metric} "
                f"({decision.current}/{render_limit(decision.limit)}, tier {exc.tier})"
            ),
            "error_code": decision.error_code,
            "retry_after": retry_after,
            "current": decision.current,
            "limit": render_limit(decision.limit),
            "service": decision.service,
            "metric": decision.metric,
            "tier": exc.tier,
            "upgrade_available": tracker.policy.upgrade_available(decision.service, exc.tier),
            "next_reset": decision.reset_at.isoformat() if decision.reset_at else None,
            "timestamp": _timestamp(tracker),
        },
    )


async def _store_unavailable_handler(
    request: Request, exc: StoreUnavailableError
) -> JSONResponse:
    return JSONResponse(
        status_code=503,
        content={
            "success": False,
            "message": "Usage tracking is temporarily unavailable",
            "error_code": exc.code,
            "timestamp": _timestamp(get_tracker(request)),
        },
    )


async def _configuration_error_handler(request: Request, exc: QuotaError) -> JSONResponse:
    logger.error("Quota configuration error", path=request.url.path, error=str(exc))
    return JSONResponse(
        status_code=500,
        content={
            "success": False,
            "message": "Quota configuration error",
            "error_code": exc.code,
            "timestamp": _timestamp(get_tracker(request)),
        },
    )


def install_exception_handlers(app: FastAPI) -> None:
    app.add_exception_handler(QuotaExceededError, _quota_exceeded_handler)
    app.add_exception_handler(StoreUnavailableError, _store_unavailable_handler)
    for error in (
        InvalidPolicyError,
        UnknownMetricError,
        UnknownServiceError,
        UnknownTierOrMetricError,
    ):
        app.add_exception_handler(error, _configuration_error_handler)


def create_router() -> APIRouter:
    router = APIRouter()

    @router.get("/usage/stats")
    async def usage_stats(
        request: Request,
        service: str | None = Query(default=None),
    ) -> Any:
        tracker = get_tracker(request)
        if not service or not tracker.policy.has_service(service):
            return JSONResponse(
                status_code=400,
                content={
                    "success": False,
                    "message": "Invalid or missing service",
                    "supported_services": tracker.policy.services,
                },
            )
        subject = await resolve_subject(request)
        snapshot = await tracker.reporter.snapshot(service, subject)
        rendered = snapshot.to_dict()
        data: dict[str, Any] = {
            "service": service,
            "name": tracker.policy.display_name(service),
            "environment": tracker.environment,
            "tier": subject.tier,
            "subject_id": subject.subject_id,
            "features": rendered["features"],
            "restrictions": rendered["restrictions"],
            "upgrade_available": rendered["upgrade_available"],
            "metrics": rendered["metrics"],
            "limits": _render_table(tracker.reporter.limits_table(service)),
        }
        if tracker.policy.has_tier(service, GLOBAL_TIER):
            global_snapshot = await tracker.reporter.snapshot(service, Subject.global_scope())
            data["global_usage"] = global_snapshot.to_dict()["metrics"]
        return {"success": True, "data": data, "timestamp": _timestamp(tracker)}

    @router.get("/usage/health")
    async def usage_health(request: Request) -> Any:
        tracker = get_tracker(request)
        return {
            "success": True,
            "service": "Usage Metrics API",
            "status": "healthy",
            "environment": tracker.environment,
            "supported_services": tracker.policy.services,
            "tracked_keys": await tracker.store.size(),
            "sweeper_running": tracker.sweeper.running,
            "timestamp": _timestamp(tracker),
        }

    return router


def install(
    app: FastAPI,
    tracker: QuotaTracker,
    *,
    subject_resolver: SubjectResolver | None = None,
    prefix: str = "/api",
) -> None:
    """Attach the tracker, error handlers and status routes to ``app``."""
    app.state.quota_tracker = tracker
    app.state.subject_resolver = subject_resolver or default_subject_resolver
    install_exception_handlers(app)
    app.include_router(create_router(), prefix=prefix)
