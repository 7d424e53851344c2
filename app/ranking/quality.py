"""
标签质量评估

quality = matchRate × conversionRate × freshness，三个因子都在 [0, 1]：
- matchRate = match_count / search_count，无搜索数据时取 0.5
- conversionRate = 0.3·CTR + 0.4·contactRate + 0.3·orderConversion，无曝光数据时取 0.5
- freshness = exp(-days / 30)，没有 last_used 时取 0.5

存储读取失败 / 超时时整项退化为 0.5，并给出 "insufficient data" 说明。
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime
from typing import Callable, Iterable, Mapping, Optional

from loguru import logger

from app.ranking.cache import RedisQualityCache
from app.ranking.entities import (
    QualityResult,
    TagConversionMetrics,
    TagUsageStats,
    clamp,
    days_since,
    ensure_utc,
    utcnow,
)
from app.ranking.parallel import bounded_map
from app.ranking.signal_store import SignalStore

NEUTRAL_SCORE = 0.5
HIGH_THRESHOLD = 0.7
LOW_THRESHOLD = 0.3
FRESHNESS_DECAY_DAYS = 30.0
DEFAULT_FILTER_THRESHOLD = 0.3

CTR_WEIGHT = 0.3
CONTACT_WEIGHT = 0.4
ORDER_WEIGHT = 0.3

INSUFFICIENT_DATA = "insufficient data"


def compute_match_rate(usage: Optional[TagUsageStats]) -> float:
    if usage is None or usage.match_rate is None:
        return NEUTRAL_SCORE
    return usage.match_rate


def compute_conversion_rate(metrics: Optional[TagConversionMetrics]) -> float:
    if metrics is None or not metrics.has_data:
        return NEUTRAL_SCORE
    return clamp(
        CTR_WEIGHT * metrics.click_through_rate
        + CONTACT_WEIGHT * metrics.contact_rate
        + ORDER_WEIGHT * metrics.conversion_rate
    )


def compute_freshness(last_used: Optional[datetime], now: datetime) -> float:
    if last_used is None:
        return NEUTRAL_SCORE
    return clamp(math.exp(-days_since(last_used, now) / FRESHNESS_DECAY_DAYS))


def latest_use(usage: Optional[TagUsageStats], metrics: Optional[TagConversionMetrics]) -> Optional[datetime]:
    candidates = [
        ensure_utc(ts)
        for ts in (usage.last_used if usage else None, metrics.last_used if metrics else None)
        if ts is not None
    ]
    return max(candidates) if candidates else None


def explain(match_rate: float, conversion_rate: float, freshness: float) -> list[str]:
    reasons: list[str] = []
    if match_rate > HIGH_THRESHOLD:
        reasons.append("high match rate")
    elif match_rate < LOW_THRESHOLD:
        reasons.append("low match rate")
    if conversion_rate > HIGH_THRESHOLD:
        reasons.append("high conversion")
    elif conversion_rate < LOW_THRESHOLD:
        reasons.append("low conversion")
    if freshness > HIGH_THRESHOLD:
        reasons.append("recently used")
    elif freshness < LOW_THRESHOLD:
        reasons.append("stale tag")
    return reasons


def evaluate_quality(
    tag: str,
    usage: Optional[TagUsageStats],
    metrics: Optional[TagConversionMetrics],
    now: datetime,
) -> QualityResult:
    """纯函数：给定快照和当前时间，算出质量分。"""
    match_rate = compute_match_rate(usage)
    conversion_rate = compute_conversion_rate(metrics)
    last_used = latest_use(usage, metrics)
    freshness = compute_freshness(last_used, now)

    reasons = explain(match_rate, conversion_rate, freshness)
    has_any_data = (usage is not None and usage.match_rate is not None) or (
        metrics is not None and metrics.has_data
    ) or last_used is not None
    if not has_any_data:
        reasons.append(INSUFFICIENT_DATA)

    return QualityResult(
        tag=tag,
        quality=clamp(match_rate * conversion_rate * freshness),
        match_rate=match_rate,
        conversion_rate=conversion_rate,
        freshness=freshness,
        reasons=tuple(reasons),
    )


def insufficient_data(tag: str) -> QualityResult:
    return QualityResult(
        tag=tag,
        quality=NEUTRAL_SCORE,
        match_rate=NEUTRAL_SCORE,
        conversion_rate=NEUTRAL_SCORE,
        freshness=NEUTRAL_SCORE,
        reasons=(INSUFFICIENT_DATA,),
    )


def filter_low_quality(
    tags: Iterable[str],
    scores: Mapping[str, QualityResult],
    threshold: float = DEFAULT_FILTER_THRESHOLD,
) -> list[str]:
    """保留 quality ≥ threshold 的标签；没有分数的标签不惩罚，原样保留。"""
    kept: list[str] = []
    for tag in tags:
        result = scores.get(tag)
        if result is None or result.quality >= threshold:
            kept.append(tag)
    return kept


class TagQualityEvaluator:
    def __init__(
        self,
        store: SignalStore,
        *,
        read_timeout: float = 0.5,
        max_concurrency: int = 16,
        cache: Optional[RedisQualityCache] = None,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._read_timeout = read_timeout
        self._max_concurrency = max_concurrency
        self._cache = cache
        self._clock = clock

    async def _load(self, tag: str) -> tuple[Optional[TagUsageStats], Optional[TagConversionMetrics]]:
        usage, metrics = await asyncio.gather(
            self._store.get_tag_usage(tag),
            self._store.get_tag_conversion(tag),
        )
        return usage, metrics

    async def quality(self, tag: str, now: Optional[datetime] = None) -> QualityResult:
        scores = await self.quality_scores([tag], now=now)
        return scores[tag]

    async def quality_scores(self, tags: Iterable[str], now: Optional[datetime] = None) -> dict[str, QualityResult]:
        unique = [t for t in dict.fromkeys(tags) if t]
        if not unique:
            return {}
        now = now or self._clock()

        results: dict[str, QualityResult] = {}
        if self._cache is not None:
            results.update(await self._cache.get_many(unique))

        missing = [t for t in unique if t not in results]
        fresh: list[QualityResult] = []
        outcomes = await bounded_map(
            self._load,
            missing,
            max_concurrency=self._max_concurrency,
            timeout=self._read_timeout,
        )
        for outcome in outcomes:
            if outcome.ok:
                usage, metrics = outcome.value
                result = evaluate_quality(outcome.key, usage, metrics, now)
                fresh.append(result)
            else:
                logger.warning(f"标签信号读取失败，使用中性分: tag='{outcome.key}', err={outcome.error!r}")
                result = insufficient_data(outcome.key)
            results[outcome.key] = result

        if self._cache is not None and fresh:
            await self._cache.set_many(fresh)

        return {tag: results[tag] for tag in unique}
