"""
商品健康分

分项（满分 100）：
- conversion   0-30  下单数 / 浏览数
- engagement   0-30  浏览 + 点击 + 联系 的总次数
- completeness 0-20  从 20 起扣：标签 <3、无图片且无 logo、描述 <50 字各扣 5
- ranking      0-20  代表性查询下的平均排名（超过 50 按 50 算），无排名数据时给 10

每个分项没拿满都会附带一条建议；总分 <50 时在最前面插入一条总体告警。
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from enum import Enum
from typing import Callable, Optional, Sequence

from loguru import logger

from app.ranking.composer import RankingComposer
from app.ranking.entities import InteractionCounts, Listing, utcnow
from app.ranking.formula import STANDARD
from app.ranking.parallel import bounded_map
from app.ranking.signal_store import SignalStore

RANK_CAP = 50
DEFAULT_RANKING_POINTS = 10
MIN_TAGS = 3
MIN_DESCRIPTION_LENGTH = 50
COMPLETENESS_PENALTY = 5

# (下限, 分数)，自上而下取第一个满足的
CONVERSION_BANDS: tuple[tuple[float, int], ...] = ((0.10, 30), (0.05, 20), (0.02, 15), (0.01, 10))
CONVERSION_FLOOR = 5
ENGAGEMENT_BANDS: tuple[tuple[int, int], ...] = ((100, 30), (50, 25), (20, 20), (10, 15), (5, 10))
ENGAGEMENT_FLOOR = 5
# (平均排名上限, 分数)
RANKING_BANDS: tuple[tuple[float, int], ...] = ((5, 20), (10, 15), (20, 10), (30, 5))
RANKING_FLOOR = 0

REC_CRITICAL = "Listing health is critical: fix the tags and rewrite the description."
REC_CONVERSION_LOW = "Conversion is very low: optimize the description and the price."
REC_CONVERSION_MID = "Conversion is below 10%: improve the title and tags to attract buyers."
REC_ENGAGEMENT_LOW = "Almost no engagement: improve the tags or check the category."
REC_ENGAGEMENT_MID = "Engagement is moderate: refresh the photos and title to get more views."
REC_RANKING_LOW = "Search position is low: optimize tags and description."
REC_RANKING_MID = "Search position can improve: add tags that match common queries."
REC_ADD_TAGS = "Add tags (3-7 recommended) to improve search matching."
REC_ADD_IMAGE = "Add an image or logo: listings with pictures get about 2x views."
REC_EXTEND_DESCRIPTION = "Extend the description to at least 50 characters to build buyer trust."


class HealthStatus(str, Enum):
    HEALTHY = "healthy"
    NEEDS_IMPROVEMENT = "needs_improvement"
    CRITICAL = "critical"


@dataclass(frozen=True)
class HealthFactors:
    conversion: int
    engagement: int
    completeness: int
    ranking: int

    @property
    def total(self) -> int:
        return self.conversion + self.engagement + self.completeness + self.ranking


@dataclass(frozen=True)
class HealthScore:
    score: int
    status: HealthStatus
    factors: HealthFactors
    recommendations: tuple[str, ...] = ()
    average_rank: Optional[float] = None


@dataclass(frozen=True)
class HealthBadge:
    text: str
    emoji: str


def conversion_points(rate: float) -> int:
    for threshold, points in CONVERSION_BANDS:
        if rate >= threshold:
            return points
    return CONVERSION_FLOOR


def engagement_points(total_interactions: int) -> int:
    for threshold, points in ENGAGEMENT_BANDS:
        if total_interactions >= threshold:
            return points
    return ENGAGEMENT_FLOOR


def average_rank(ranks: Sequence[int]) -> Optional[float]:
    if not ranks:
        return None
    return sum(min(max(1, r), RANK_CAP) for r in ranks) / len(ranks)


def ranking_points(avg_rank: Optional[float]) -> int:
    if avg_rank is None:
        return DEFAULT_RANKING_POINTS
    for limit, points in RANKING_BANDS:
        if avg_rank <= limit:
            return points
    return RANKING_FLOOR


def completeness(listing: Optional[Listing]) -> tuple[int, list[str]]:
    points = 20
    recommendations: list[str] = []
    if listing is None:
        return points, recommendations
    if len([t for t in listing.tags if t]) < MIN_TAGS:
        points -= COMPLETENESS_PENALTY
        recommendations.append(REC_ADD_TAGS)
    if not listing.image_url and not listing.logo_url:
        points -= COMPLETENESS_PENALTY
        recommendations.append(REC_ADD_IMAGE)
    if len((listing.description or "").strip()) < MIN_DESCRIPTION_LENGTH:
        points -= COMPLETENESS_PENALTY
        recommendations.append(REC_EXTEND_DESCRIPTION)
    return points, recommendations


def status_for(score: int) -> HealthStatus:
    if score < 40:
        return HealthStatus.CRITICAL
    if score < 70:
        return HealthStatus.NEEDS_IMPROVEMENT
    return HealthStatus.HEALTHY


def badge(score: int) -> HealthBadge:
    if score >= 70:
        return HealthBadge(text="Healthy", emoji="🟢")
    if score >= 40:
        return HealthBadge(text="Needs improvement", emoji="🟡")
    return HealthBadge(text="Critical", emoji="🔴")


def compute_health_score(
    counts: InteractionCounts,
    listing: Optional[Listing],
    ranks: Sequence[int] = (),
) -> HealthScore:
    """纯函数，便于单测。"""
    recommendations: list[str] = []

    conversion = conversion_points(counts.conversion_rate)
    if conversion == CONVERSION_FLOOR:
        recommendations.append(REC_CONVERSION_LOW)
    elif conversion < CONVERSION_BANDS[0][1]:
        recommendations.append(REC_CONVERSION_MID)

    engagement = engagement_points(counts.total_engagement)
    if engagement == ENGAGEMENT_FLOOR:
        recommendations.append(REC_ENGAGEMENT_LOW)
    elif engagement < ENGAGEMENT_BANDS[0][1]:
        recommendations.append(REC_ENGAGEMENT_MID)

    completeness_score, completeness_recs = completeness(listing)
    recommendations.extend(completeness_recs)

    avg_rank = average_rank(ranks)
    ranking = ranking_points(avg_rank)
    if avg_rank is not None:
        if ranking == RANKING_FLOOR:
            recommendations.append(REC_RANKING_LOW)
        elif ranking < RANKING_BANDS[0][1]:
            recommendations.append(REC_RANKING_MID)

    factors = HealthFactors(
        conversion=conversion,
        engagement=engagement,
        completeness=completeness_score,
        ranking=ranking,
    )
    score = factors.total
    if score < 50:
        recommendations.insert(0, REC_CRITICAL)

    return HealthScore(
        score=score,
        status=status_for(score),
        factors=factors,
        recommendations=tuple(recommendations),
        average_rank=avg_rank,
    )


class ItemNotFoundError(LookupError):
    pass


class HealthScoreAggregator:
    def __init__(
        self,
        store: SignalStore,
        composer: RankingComposer,
        *,
        rank_depth: int = RANK_CAP,
        max_queries: int = 5,
        read_timeout: float = 0.5,
        max_concurrency: int = 4,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._composer = composer
        self._rank_depth = rank_depth
        self._max_queries = max_queries
        self._read_timeout = read_timeout
        self._max_concurrency = max_concurrency
        self._clock = clock

    async def _read(self, coro, default, label: str):
        try:
            return await asyncio.wait_for(coro, self._read_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"健康分信号读取失败，使用默认值: {label}, err={exc!r}")
            return default

    async def probe_ranks(
        self,
        listing: Listing,
        queries: Sequence[str],
        now: Optional[datetime] = None,
    ) -> list[int]:
        """每个查询在活跃商品中跑一次标准公式排序，取该商品的 1-based 名次；不在前 N 名记 N+1。"""
        queries = [q for q in queries if q and q.strip()][: self._max_queries]
        if not queries:
            return []
        now = now or self._clock()
        active = await self._read(self._store.list_active_items(), None, "list_active_items")
        if active is None:
            return []
        if all(item.item_id != listing.item_id for item in active):
            active = [*active, listing]

        async def rank_for(query: str) -> int:
            ranked = await self._composer.rank(query, active, formula=STANDARD, now=now)
            for position, entry in enumerate(ranked[: self._rank_depth], start=1):
                if entry.item_id == listing.item_id:
                    return position
            return self._rank_depth + 1

        outcomes = await bounded_map(rank_for, queries, max_concurrency=self._max_concurrency)
        ranks: list[int] = []
        for outcome in outcomes:
            if outcome.ok:
                ranks.append(outcome.value)
            else:
                logger.warning(f"排名探测失败，跳过该查询: query='{outcome.key}', err={outcome.error!r}")
        return ranks

    async def health(self, item_id: str, queries: Optional[Sequence[str]] = None) -> HealthScore:
        now = self._clock()
        try:
            listing = await asyncio.wait_for(self._store.get_item(item_id), self._read_timeout)
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"商品读取失败，跳过完整度与排名检查: item_id='{item_id}', err={exc!r}")
            listing = None
        else:
            if listing is None:
                raise ItemNotFoundError(f"商品不存在: {item_id}")

        counts = await self._read(
            self._store.get_item_interaction_counts(item_id),
            InteractionCounts(),
            f"interaction_counts({item_id})",
        )

        ranks: list[int] = []
        if listing is not None:
            probe_queries = list(queries) if queries else list(listing.tags)
            ranks = await self.probe_ranks(listing, probe_queries, now=now)

        result = compute_health_score(counts, listing, ranks)
        logger.info(f"健康分: item_id='{item_id}', score={result.score}, status={result.status.value}")
        return result
