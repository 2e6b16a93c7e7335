"""CounterStore 抽象基底クラス"""

from __future__ import annotations

from abc import ABC, abstractmethod
from collections.abc import Callable
from datetime import datetime

from .models import CounterKey, IncrementResult, ResetPolicy

PolicyResolver = Callable[[str, str], ResetPolicy | None]
"""(service, metric) -> reset policy, or None when the metric is unknown."""


class CounterStore(ABC):
    """使用量カウンターストア抽象基底クラス。

    同一キーに対する更新の直列化はストア実装の責務。
    """

    @abstractmethod
    async def get(self, key: CounterKey) -> int:
        """現在値を取得する。存在しなければ 0。"""
        ...

    @abstractmethod
    async def increment_and_get(self, key: CounterKey, delta: int) -> int:
        """delta を加算して新しい値を返す。"""
        ...

    @abstractmethod
    async def try_increment(self, key: CounterKey, delta: int, limit: int) -> IncrementResult:
        """加算後の値が limit 以下の場合のみ加算する。判定と加算はアトミック。"""
        ...

    @abstractmethod
    async def release(self, key: CounterKey, delta: int) -> int:
        """加算済みの delta を取り消して新しい値を返す。値は 0 未満にならない。"""
        ...

    @abstractmethod
    async def sweep_expired(self, now: datetime, policy_of: PolicyResolver) -> int:
        """保持期間を過ぎたカウンターを削除し、削除件数を返す。"""
        ...

    @abstractmethod
    async def size(self) -> int:
        """保持しているカウンター数を返す。"""
        ...

    async def close(self) -> None:
        """接続を解放する。"""
        return None


def check_delta(delta: int) -> None:
    if delta < 1:
        raise ValueError(f"delta must be >= 1, got {delta}")


def check_limit(limit: int) -> None:
    if limit < 0:
        raise ValueError(f"limit must be >= 0, got {limit}")
