from __future__ import annotations

import json
from typing import Iterable

from loguru import logger

from app.core.redis_client import RedisClient
from app.ranking.entities import QualityResult


class RedisQualityCache:
    """
    标签质量分缓存（可丢弃）

    key = {prefix}tag_quality:{tag}，value 为 QualityResult 的 JSON。
    Redis 不可用或读写出错时当作未命中，不影响排序结果。
    """

    def __init__(self, redis_client: RedisClient, *, prefix: str = "ranking:", ttl_seconds: int = 300):
        self._redis_client = redis_client
        self._prefix = prefix or ""
        self._ttl = max(1, int(ttl_seconds))

    def key(self, tag: str) -> str:
        return f"{self._prefix}tag_quality:{tag}"

    def _available(self) -> bool:
        return bool(getattr(self._redis_client, "is_connected", True))

    async def get_many(self, tags: Iterable[str]) -> dict[str, QualityResult]:
        tags = list(dict.fromkeys(tags))
        if not tags or not self._available():
            return {}
        try:
            pipe = self._redis_client.client.pipeline()
            for tag in tags:
                pipe.get(self.key(tag))
            raw_values = await pipe.execute()
        except Exception as exc:
            logger.warning(f"标签质量缓存读取失败，直接回源: {exc}")
            return {}

        found: dict[str, QualityResult] = {}
        for tag, raw in zip(tags, raw_values):
            if not raw:
                continue
            try:
                found[tag] = QualityResult.from_dict(json.loads(raw))
            except (ValueError, KeyError, TypeError):
                logger.debug(f"忽略损坏的缓存项: tag='{tag}'")
        return found

    async def set_many(self, results: Iterable[QualityResult]) -> None:
        results = list(results)
        if not results or not self._available():
            return
        try:
            pipe = self._redis_client.client.pipeline()
            for result in results:
                pipe.set(self.key(result.tag), json.dumps(result.to_dict(), ensure_ascii=False), ex=self._ttl)
            await pipe.execute()
        except Exception as exc:
            logger.warning(f"标签质量缓存写入失败: {exc}")
