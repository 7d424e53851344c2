"""有界并发的 map：限制同时进行的读取数，单个失败只影响自己那一项。"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Awaitable, Callable, Generic, Iterable, Optional, TypeVar

K = TypeVar("K")
V = TypeVar("V")


@dataclass(frozen=True)
class MapResult(Generic[K, V]):
    key: K
    value: Optional[V] = None
    error: Optional[BaseException] = None

    @property
    def ok(self) -> bool:
        return self.error is None


async def bounded_map(
    fn: Callable[[K], Awaitable[V]],
    keys: Iterable[K],
    *,
    max_concurrency: int = 16,
    timeout: Optional[float] = None,
) -> list[MapResult[K, V]]:
    """结果顺序与输入顺序一致；超时以 asyncio.TimeoutError 记在对应项上。"""
    semaphore = asyncio.Semaphore(max(1, int(max_concurrency)))

    async def run(key: K) -> MapResult[K, V]:
        async with semaphore:
            try:
                if timeout is not None and timeout > 0:
                    value = await asyncio.wait_for(fn(key), timeout)
                else:
                    value = await fn(key)
                return MapResult(key=key, value=value)
            except asyncio.CancelledError:
                raise
            except Exception as exc:
                return MapResult(key=key, error=exc)

    return list(await asyncio.gather(*(run(k) for k in keys)))
