"""Quota enforcement."""

from __future__ import annotations

import asyncio
from collections.abc import Awaitable, Sequence
from typing import Literal, TypeVar

import structlog

from .clock import Clock, SystemClock
from .exceptions import StoreUnavailableError
from .metrics import quota_decisions_total, quota_store_errors_total
from .models import UNLIMITED, Decision, Limit, Subject, Unlimited, render_limit
from .policy import QuotaPolicy
from .resolve import Resolution, resolve
from .store import CounterStore

logger = structlog.get_logger(__name__)

FailureMode = Literal["open", "closed"]

_T = TypeVar("_T")


class QuotaEnforcer:
    """Decides whether a subject may consume an amount of a metric now.

    The check and the increment are a single store operation
    (``CounterStore.try_increment``), so concurrent callers for the same
    counter can never push it past its limit. Denials leave the store
    untouched.
    """

    def __init__(
        self,
        policy: QuotaPolicy,
        store: CounterStore,
        clock: Clock | None = None,
        *,
        failure_mode: FailureMode = "open",
        store_timeout_seconds: float = 0.5,
    ) -> None:
        if failure_mode not in ("open", "closed"):
            raise ValueError(f"failure_mode must be 'open' or 'closed', got {failure_mode!r}")
        self._policy = policy
        self._store = store
        self._clock = clock or SystemClock()
        self._failure_mode = failure_mode
        self._timeout = store_timeout_seconds

    @property
    def failure_mode(self) -> FailureMode:
        return self._failure_mode

    async def try_consume(
        self,
        service: str,
        subject: Subject,
        metric: str,
        amount: int = 1,
    ) -> Decision:
        if amount < 1:
            raise ValueError(f"amount must be >= 1, got {amount}")
        res = resolve(self._policy, service, subject, metric, self._clock.now())
        try:
            decision = await self._consume(res, subject, amount)
        except StoreUnavailableError as e:
            return self._on_store_failure(res, subject, e)

        quota_decisions_total.add(
            1,
            {
                "service": service,
                "metric": metric,
                "outcome": "allowed" if decision.allowed else "denied",
            },
        )
        if decision.allowed:
            logger.debug(
                "Quota consumed",
                service=service,
                metric=metric,
                subject_id=subject.subject_id,
                tier=subject.tier,
                amount=amount,
                current=decision.current,
                limit=render_limit(decision.limit),
            )
        else:
            logger.info(
                "Quota denied",
                service=service,
                metric=metric,
                subject_id=subject.subject_id,
                tier=subject.tier,
                amount=amount,
                current=decision.current,
                limit=render_limit(decision.limit),
                retry_after_seconds=decision.retry_after_seconds,
            )
        return decision

    async def try_consume_all(
        self,
        service: str,
        subjects: Sequence[Subject],
        metric: str,
        amount: int = 1,
    ) -> list[Decision]:
        """Consume from each subject in order, stopping at the first denial.

        On a denial the increments already applied to earlier subjects are
        released again, so a denied request leaves every counter as it was.
        The returned decisions of those subjects still show the values seen
        before the release.
        """
        decisions: list[Decision] = []
        for subject in subjects:
            decision = await self.try_consume(service, subject, metric, amount)
            decisions.append(decision)
            if not decision.allowed:
                await self._release(decisions[:-1], amount)
                break
        return decisions

    async def record(
        self,
        service: str,
        subjects: Sequence[Subject],
        metric: str,
        amount: int,
    ) -> list[Decision]:
        """Add ``amount`` to every subject's counter without checking limits.

        Registers usage known only after the work is done, such as the actual
        cost of an analysis. Counters may end above their limit, in which case
        later ``try_consume`` calls are denied until the period resets.
        """
        if amount < 1:
            raise ValueError(f"amount must be >= 1, got {amount}")
        now = self._clock.now()
        decisions: list[Decision] = []
        for subject in subjects:
            res = resolve(self._policy, service, subject, metric, now)
            try:
                value = await self._bounded(self._store.increment_and_get(res.key, amount))
            except StoreUnavailableError as e:
                decisions.append(self._on_store_failure(res, subject, e))
                continue
            limit = res.limit
            remaining: Limit = UNLIMITED if isinstance(limit, Unlimited) else max(0, limit - value)
            logger.info(
                "Usage recorded",
                service=service,
                metric=metric,
                subject_id=subject.subject_id,
                amount=amount,
                current=value,
                limit=render_limit(limit),
            )
            decisions.append(
                self._decision(res, subject, allowed=True, current=value, remaining=remaining)
            )
        return decisions

    async def _release(self, admitted: Sequence[Decision], amount: int) -> None:
        for decision in admitted:
            if decision.degraded:
                continue
            try:
                value = await self._bounded(self._store.release(decision.counter_key, amount))
            except StoreUnavailableError as e:
                quota_store_errors_total.add(
                    1, {"service": decision.service, "failure_mode": self._failure_mode}
                )
                logger.error(
                    "Quota release failed",
                    service=decision.service,
                    metric=decision.metric,
                    subject_id=decision.subject_id,
                    amount=amount,
                    error=str(e),
                )
                if self._failure_mode == "closed":
                    raise
                continue
            logger.debug(
                "Quota released",
                service=decision.service,
                metric=decision.metric,
                subject_id=decision.subject_id,
                amount=amount,
                current=value,
            )

    async def _consume(self, res: Resolution, subject: Subject, amount: int) -> Decision:
        limit = res.limit
        if isinstance(limit, Unlimited):
            value = await self._bounded(self._store.increment_and_get(res.key, amount))
            return self._decision(res, subject, allowed=True, current=value, remaining=UNLIMITED)

        result = await self._bounded(self._store.try_increment(res.key, amount, limit))
        if not result.applied:
            return self._decision(
                res,
                subject,
                allowed=False,
                current=result.value,
                remaining=max(0, limit - result.value),
                with_retry=True,
            )
        return self._decision(
            res, subject, allowed=True, current=result.value, remaining=limit - result.value
        )

    async def _bounded(self, call: Awaitable[_T]) -> _T:
        try:
            return await asyncio.wait_for(call, timeout=self._timeout)
        except TimeoutError as e:
            raise StoreUnavailableError(
                f"Counter store did not respond within {self._timeout}s", cause=e
            ) from e

    def _decision(
        self,
        res: Resolution,
        subject: Subject,
        *,
        allowed: bool,
        current: int,
        remaining: Limit,
        with_retry: bool = False,
        degraded: bool = False,
    ) -> Decision:
        retry_after = None
        if with_retry and res.reset_at is not None:
            retry_after = res.reset_at - res.now
        return Decision(
            allowed=allowed,
            service=res.key.service,
            metric=res.key.metric,
            subject_id=subject.subject_id,
            period_key=res.key.period_key,
            current=current,
            limit=res.limit,
            remaining=remaining,
            reset_at=res.reset_at,
            retry_after=retry_after,
            error_code=res.definition.error_code,
            degraded=degraded,
        )

    def _on_store_failure(
        self, res: Resolution, subject: Subject, error: StoreUnavailableError
    ) -> Decision:
        quota_store_errors_total.add(
            1, {"service": res.key.service, "failure_mode": self._failure_mode}
        )
        logger.error(
            "Counter store unavailable",
            service=res.key.service,
            metric=res.key.metric,
            subject_id=subject.subject_id,
            failure_mode=self._failure_mode,
            error=str(error),
        )
        if self._failure_mode == "closed":
            raise error
        return self._decision(
            res,
            subject,
            allowed=True,
            current=0,
            remaining=res.limit,
            degraded=True,
        )
