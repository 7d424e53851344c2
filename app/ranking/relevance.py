"""
文本相关性打分

score(query, item) 只依赖查询、商品文本和显式传入的 now，没有隐藏状态。
空查询 / 纯标点查询由调用方跳过，这里直接返回 0。
"""

from __future__ import annotations

from dataclasses import dataclass
from datetime import datetime
from functools import lru_cache
from typing import Optional

from app.ranking.entities import Listing, ensure_utc
from app.ranking.normalization import has_searchable_content, normalize_text
from app.ranking.synonyms import build_search_variations, find_condition_groups

EXACT_TITLE_BONUS = 50.0
EXACT_DESCRIPTION_BONUS = 20.0
VARIATION_TITLE_BONUS = 30.0
VARIATION_DESCRIPTION_BONUS = 10.0
CONDITION_BONUS = 15.0
VARIATION_CACHE_SIZE = 4096

# (发布后小时数上限, 加分)
RECENCY_BONUS_STEPS: tuple[tuple[float, float], ...] = ((24, 10.0), (48, 8.0), (72, 5.0))


@dataclass(frozen=True)
class RelevanceBreakdown:
    exact: float = 0.0
    variations: float = 0.0
    condition: float = 0.0
    recency: float = 0.0

    @property
    def total(self) -> float:
        return self.exact + self.variations + self.condition + self.recency


# 进程级打分器会被所有请求共用，变体缓存必须有上限
@lru_cache(maxsize=VARIATION_CACHE_SIZE)
def cached_variations(query: str, category: Optional[str]) -> tuple[str, ...]:
    return tuple(build_search_variations(query, category))


def recency_bonus(created_at: Optional[datetime], now: datetime) -> float:
    if created_at is None:
        return 0.0
    hours = (ensure_utc(now) - ensure_utc(created_at)).total_seconds() / 3600
    if hours < 0:
        hours = 0.0
    for limit, bonus in RECENCY_BONUS_STEPS:
        if hours < limit:
            return bonus
    return 0.0


class TextRelevanceScorer:
    """查询与商品标题/描述的词面相关性。"""

    def __init__(self, *, category: Optional[str] = None):
        self._category = category

    def variations(self, query: str, category: Optional[str] = None) -> list[str]:
        return list(cached_variations(query, category or self._category))

    def breakdown(
        self,
        query: str,
        item: Listing,
        *,
        now: datetime,
        category: Optional[str] = None,
    ) -> RelevanceBreakdown:
        if not has_searchable_content(query):
            return RelevanceBreakdown()

        normalized_query = normalize_text(query)
        title = normalize_text(item.title)
        description = normalize_text(item.description)

        exact = 0.0
        if normalized_query in title:
            exact = EXACT_TITLE_BONUS
        elif normalized_query in description:
            exact = EXACT_DESCRIPTION_BONUS

        # 每个变体单独计分后求和；同一个变体标题命中就不再看描述
        variation_score = 0.0
        for variation in self.variations(query, category or item.category):
            if variation in title:
                variation_score += VARIATION_TITLE_BONUS
            elif variation in description:
                variation_score += VARIATION_DESCRIPTION_BONUS

        condition = 0.0
        query_conditions = find_condition_groups(query)
        if query_conditions:
            item_conditions = find_condition_groups(f"{item.title} {item.description}")
            if query_conditions & item_conditions:
                condition = CONDITION_BONUS

        return RelevanceBreakdown(
            exact=exact,
            variations=variation_score,
            condition=condition,
            recency=recency_bonus(item.created_at, now),
        )

    def score(
        self,
        query: str,
        item: Listing,
        *,
        now: datetime,
        category: Optional[str] = None,
    ) -> float:
        return self.breakdown(query, item, now=now, category=category).total
