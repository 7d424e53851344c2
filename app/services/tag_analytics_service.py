"""
标签分析

热门 / 趋势 / 高效 / 低效标签，以及给 AI 打标签用的参考集合。
match_rate 无定义（search_count 为 0）的标签在这些列表里按 0 处理。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime, timedelta
from typing import Callable, Iterable, Optional

from loguru import logger

from app.abtest.assigner import ExperimentAssigner, ExperimentType, Variant
from app.ranking.entities import QualityResult, TagUsageStats, ensure_utc, utcnow
from app.ranking.quality import INSUFFICIENT_DATA, LOW_THRESHOLD, TagQualityEvaluator, filter_low_quality
from app.ranking.signal_store import SignalStore

DEFAULT_MIN_SEARCHES = 5
DEFAULT_TRENDING_DAYS = 7


def _match_rate(stats: TagUsageStats) -> float:
    rate = stats.match_rate
    return rate if rate is not None else 0.0


def rank_top(usage: Iterable[TagUsageStats], limit: int) -> list[TagUsageStats]:
    return sorted(usage, key=lambda s: (-s.usage_count, s.tag))[:limit]


def rank_trending(usage: Iterable[TagUsageStats], limit: int, since: datetime) -> list[TagUsageStats]:
    recent = [s for s in usage if s.last_used is not None and ensure_utc(s.last_used) >= since]
    return sorted(recent, key=lambda s: (-s.search_count, s.tag))[:limit]


def rank_effective(usage: Iterable[TagUsageStats], limit: int, min_searches: int) -> list[TagUsageStats]:
    eligible = [s for s in usage if s.search_count >= min_searches]
    return sorted(eligible, key=lambda s: (-_match_rate(s), s.tag))[:limit]


def rank_ineffective(usage: Iterable[TagUsageStats], limit: int, min_searches: int) -> list[TagUsageStats]:
    eligible = [s for s in usage if s.search_count >= min_searches and _match_rate(s) < LOW_THRESHOLD]
    return sorted(eligible, key=lambda s: (_match_rate(s), s.tag))[:limit]


@dataclass(frozen=True)
class TagSuggestions:
    top: list[TagUsageStats]
    trending: list[TagUsageStats]
    effective: list[TagUsageStats]
    ineffective: list[TagUsageStats]


class TagAnalyticsService:
    def __init__(
        self,
        store: SignalStore,
        evaluator: TagQualityEvaluator,
        assigner: ExperimentAssigner,
        *,
        experiment_id: str = "ai_tag_quality_v1",
        read_timeout: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._evaluator = evaluator
        self._assigner = assigner
        self._experiment_id = experiment_id
        self._read_timeout = read_timeout
        self._clock = clock

    async def _usage(self) -> list[TagUsageStats]:
        try:
            return await asyncio.wait_for(self._store.list_tag_usage(), self._read_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"标签统计读取失败，返回空列表: {exc!r}")
            return []

    @staticmethod
    def _check_limit(limit: int) -> None:
        if limit <= 0:
            raise ValueError("limit 必须 > 0")

    async def top_tags(self, limit: int = 10) -> list[TagUsageStats]:
        self._check_limit(limit)
        return rank_top(await self._usage(), limit)

    async def trending_tags(self, limit: int = 10, days: int = DEFAULT_TRENDING_DAYS) -> list[TagUsageStats]:
        self._check_limit(limit)
        if days <= 0:
            raise ValueError("days 必须 > 0")
        since = self._clock() - timedelta(days=days)
        return rank_trending(await self._usage(), limit, since)

    async def effective_tags(self, limit: int = 10, min_searches: int = DEFAULT_MIN_SEARCHES) -> list[TagUsageStats]:
        self._check_limit(limit)
        return rank_effective(await self._usage(), limit, min_searches)

    async def ineffective_tags(self, limit: int = 10, min_searches: int = DEFAULT_MIN_SEARCHES) -> list[TagUsageStats]:
        self._check_limit(limit)
        return rank_ineffective(await self._usage(), limit, min_searches)

    async def tag_suggestions(self, limit: int = 10) -> TagSuggestions:
        """一次读取，四个列表，给 AI 打标签的提示词做参考。"""
        self._check_limit(limit)
        usage = await self._usage()
        since = self._clock() - timedelta(days=DEFAULT_TRENDING_DAYS)
        return TagSuggestions(
            top=rank_top(usage, limit),
            trending=rank_trending(usage, limit, since),
            effective=rank_effective(usage, limit, DEFAULT_MIN_SEARCHES),
            ineffective=rank_ineffective(usage, limit, DEFAULT_MIN_SEARCHES),
        )

    async def quality(self, tags: Iterable[str]) -> dict[str, QualityResult]:
        tags = [t.strip() for t in tags if t and t.strip()]
        if not tags:
            raise ValueError("tags 不能为空")
        return await self._evaluator.quality_scores(tags)

    async def filter_suggested_tags(
        self,
        subject_id: str,
        tags: Iterable[str],
        *,
        threshold: Optional[float] = None,
    ) -> tuple[Variant, list[str]]:
        """
        AI 标签质量实验：B 组用质量分过滤低质量标签，A 组原样返回。
        """
        if not subject_id or not str(subject_id).strip():
            raise ValueError("subjectId 不能为空")
        tags = list(dict.fromkeys(t.strip() for t in tags if t and t.strip()))
        variant = self._assigner.assign(self._experiment_id, subject_id, ExperimentType.AI_TAG_VARIANTS)
        self._assigner.record_exposure(
            self._experiment_id,
            subject_id,
            ExperimentType.AI_TAG_VARIANTS,
            metadata={"tag_count": len(tags)},
        )
        if variant is not Variant.B or not tags:
            return variant, tags

        # 没有历史数据的标签视为未知，不参与过滤
        scores = {
            tag: result
            for tag, result in (await self._evaluator.quality_scores(tags)).items()
            if INSUFFICIENT_DATA not in result.reasons
        }
        if threshold is None:
            kept = filter_low_quality(tags, scores)
        else:
            kept = filter_low_quality(tags, scores, threshold)
        logger.info(f"AI 标签过滤: subject_id='{subject_id}', before={len(tags)}, after={len(kept)}")
        return variant, kept
