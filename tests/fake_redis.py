from __future__ import annotations

import time
from typing import Any, Optional


class FakePipeline:
    def __init__(self, redis: "FakeRedis"):
        self._redis = redis
        self._ops: list[tuple[str, tuple[Any, ...], dict[str, Any]]] = []

    def get(self, key: str) -> "FakePipeline":
        self._ops.append(("get", (key,), {}))
        return self

    def set(self, key: str, value: str, *, ex: Optional[int] = None) -> "FakePipeline":
        self._ops.append(("set", (key, value), {"ex": ex}))
        return self

    async def execute(self) -> list[Any]:
        results: list[Any] = []
        for name, args, kwargs in self._ops:
            func = getattr(self._redis, name)
            results.append(await func(*args, **kwargs))
        self._ops.clear()
        return results


class FakeRedis:
    """
    进程内 Redis 最小实现（覆盖标签质量缓存所需命令）

    目的：在无法建立 socket 的环境中做集成级验证，不依赖真实 Redis。
    """

    def __init__(self):
        self._strings: dict[str, tuple[str, Optional[float]]] = {}
        self.commands: list[str] = []

    def pipeline(self) -> FakePipeline:
        return FakePipeline(self)

    async def ping(self) -> str:
        return "PONG"

    async def flushdb(self) -> bool:
        self._strings.clear()
        return True

    async def set(self, key: str, value: str, *, nx: bool = False, ex: Optional[int] = None):
        self.commands.append("set")
        now = time.time()
        if nx:
            existing = self._strings.get(key)
            if existing is not None:
                _, expire_at = existing
                if expire_at is None or expire_at > now:
                    return None
        expire_at = (now + ex) if ex else None
        self._strings[key] = (str(value), expire_at)
        return True

    async def get(self, key: str) -> Optional[str]:
        self.commands.append("get")
        now = time.time()
        existing = self._strings.get(key)
        if existing is None:
            return None
        value, expire_at = existing
        if expire_at is not None and expire_at <= now:
            del self._strings[key]
            return None
        return value

    async def delete(self, key: str) -> int:
        if key in self._strings:
            del self._strings[key]
            return 1
        return 0

    def ttl_of(self, key: str) -> Optional[float]:
        existing = self._strings.get(key)
        if existing is None or existing[1] is None:
            return None
        return existing[1] - time.time()


class BrokenRedis(FakeRedis):
    """所有读写都抛连接错误，用来验证缓存降级。"""

    async def get(self, key: str) -> Optional[str]:
        raise ConnectionError("redis down")

    async def set(self, key: str, value: str, *, nx: bool = False, ex: Optional[int] = None):
        raise ConnectionError("redis down")


class FakeRedisClient:
    def __init__(self, client: FakeRedis, *, connected: bool = True):
        self._client = client
        self._connected = connected

    @property
    def is_connected(self) -> bool:
        return self._connected

    @property
    def client(self) -> FakeRedis:
        return self._client
