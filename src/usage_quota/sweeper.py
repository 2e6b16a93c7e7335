"""Sweeper: asyncio Task ベースの期限切れカウンター掃除"""

from __future__ import annotations

import asyncio
import contextlib

import structlog

from .clock import Clock, SystemClock
from .metrics import quota_swept_keys_total
from .store import CounterStore, PolicyResolver

logger = structlog.get_logger(__name__)


class Sweeper:
    """期限切れカウンターを定期的に削除する。

    現在の期間のカウンターは保持期間内なので削除対象にならない。
    """

    def __init__(
        self,
        store: CounterStore,
        policy_of: PolicyResolver,
        clock: Clock | None = None,
        *,
        interval_seconds: float = 6 * 60 * 60,
    ) -> None:
        self._store = store
        self._policy_of = policy_of
        self._clock = clock or SystemClock()
        self._interval = interval_seconds
        self._task: asyncio.Task[None] | None = None
        self._running = False

    @property
    def running(self) -> bool:
        return self._running

    async def start(self) -> None:
        """掃除タスクを開始する。"""
        if self._task is not None:
            return
        self._running = True
        self._task = asyncio.create_task(self._loop())

    async def stop(self) -> None:
        """掃除タスクを停止する。"""
        self._running = False
        if self._task is not None:
            self._task.cancel()
            with contextlib.suppress(asyncio.CancelledError):
                await self._task
            self._task = None

    async def sweep_once(self) -> int:
        """1回の掃除を実行して削除件数を返す。"""
        removed = await self._store.sweep_expired(self._clock.now(), self._policy_of)
        if removed:
            quota_swept_keys_total.add(removed)
        logger.info("Swept expired counters", removed=removed)
        return removed

    async def _loop(self) -> None:
        while self._running:
            try:
                await self.sweep_once()
            except Exception as e:
                logger.error("Counter sweep failed", error=str(e))
            await asyncio.sleep(self._interval)
