"""
排序合成

finalScore = 文本相关性 + Σ(命中标签) [base + quality×scaling×w_q + personalization×w_p]

排序键：分数降序 → 置顶/推广降序 → 发布时间降序 → item_id 升序，完全确定。
分页游标记录上一页最后一项的排序键和首页的排序时刻，而不是偏移量，新插入的商品不会让已看过的结果错位。
"""

from __future__ import annotations

import base64
import binascii
import json
from dataclasses import dataclass
from datetime import datetime, timezone
from typing import Callable, Iterable, Mapping, Optional, Sequence

from loguru import logger

from app.ranking.entities import Listing, QualityResult, RankedItem, UserTagPreference, ensure_utc, utcnow
from app.ranking.formula import STANDARD, RankingFormula
from app.ranking.normalization import (
    TAG_SEPARATOR,
    extract_query_tags,
    has_searchable_content,
    normalize_tag,
)
from app.ranking.personalization import PersonalizationProfile, personalization_boost
from app.ranking.quality import NEUTRAL_SCORE, TagQualityEvaluator
from app.ranking.relevance import TextRelevanceScorer

DEFAULT_PAGE_SIZE = 20

SortKey = tuple[float, int, float, str]


def tags_match(item_tag: str, query_tag: str) -> bool:
    """完全相同、互相包含，或按 '-' 切词后有公共词。"""
    if not item_tag or not query_tag:
        return False
    if item_tag == query_tag or query_tag in item_tag or item_tag in query_tag:
        return True
    item_words = {w for w in item_tag.split(TAG_SEPARATOR) if w}
    query_words = {w for w in query_tag.split(TAG_SEPARATOR) if w}
    return bool(item_words & query_words)


def find_matched_tags(
    item_tags: Iterable[str],
    query_tags: Sequence[str],
    context_tags: Iterable[str] = (),
) -> tuple[str, ...]:
    context = {normalize_tag(t) for t in context_tags if t}
    matched: list[str] = []
    for raw in item_tags:
        tag = normalize_tag(raw)
        if not tag or tag in matched:
            continue
        if tag in context or any(tags_match(tag, q) for q in query_tags):
            matched.append(tag)
    return tuple(matched)


def _created_ts(created_at: Optional[datetime]) -> Optional[float]:
    return ensure_utc(created_at).timestamp() if created_at is not None else None


def _key(score: float, is_boosted: bool, created_ts: Optional[float], item_id: str) -> SortKey:
    # 没有发布时间的排在同分商品的最后
    return (-score, -int(bool(is_boosted)), -created_ts if created_ts is not None else float("inf"), item_id)


def sort_key(ranked: RankedItem) -> SortKey:
    item = ranked.item
    return _key(ranked.score, item.is_boosted, _created_ts(item.created_at), item.item_id)


def tag_contribution(
    tag: str,
    formula: RankingFormula,
    quality_scores: Mapping[str, QualityResult],
    prefs: Mapping[str, UserTagPreference],
) -> float:
    quality = quality_scores.get(tag)
    quality_value = quality.quality if quality is not None else NEUTRAL_SCORE
    quality_boost = min(1.0, quality_value * formula.quality_scaling)
    score = formula.base_tag_score + quality_boost * formula.quality_weight
    if formula.uses_personalization and prefs:
        score += personalization_boost(tag, prefs) * formula.personalization_weight
    return score


class RankingComposer:
    def __init__(
        self,
        scorer: TextRelevanceScorer,
        quality: TagQualityEvaluator,
        personalization: PersonalizationProfile,
        *,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._scorer = scorer
        self._quality = quality
        self._personalization = personalization
        self._clock = clock

    async def rank(
        self,
        query: str,
        candidates: Iterable[Listing],
        *,
        user_id: Optional[str] = None,
        formula: RankingFormula = STANDARD,
        context_tags: Iterable[str] = (),
        category: Optional[str] = None,
        now: Optional[datetime] = None,
    ) -> list[RankedItem]:
        now = now or self._clock()
        candidates = list(candidates)
        if not candidates:
            return []

        searchable = has_searchable_content(query or "")
        query_tags = extract_query_tags(query) if searchable else []
        context_tags = list(context_tags or ())

        matched_by_item = {
            item.item_id: find_matched_tags(item.tags, query_tags, context_tags) for item in candidates
        }
        all_tags = list(dict.fromkeys(t for tags in matched_by_item.values() for t in tags))

        quality_scores: dict[str, QualityResult] = {}
        if all_tags:
            try:
                quality_scores = await self._quality.quality_scores(all_tags, now=now)
            except Exception as exc:
                logger.warning(f"标签质量计算失败，按中性分处理: {exc!r}")

        prefs: dict[str, UserTagPreference] = {}
        if formula.uses_personalization and user_id and all_tags:
            prefs = await self._personalization.preferences(user_id, now=now)

        ranked: list[RankedItem] = []
        for item in candidates:
            matched = matched_by_item[item.item_id]
            relevance = self._scorer.score(query, item, now=now, category=category) if searchable else 0.0
            tag_score = sum(tag_contribution(t, formula, quality_scores, prefs) for t in matched)
            ranked.append(RankedItem(item=item, score=relevance + tag_score, matched_tags=matched))
            logger.debug(f"item={item.item_id} relevance={relevance:.2f} tags={matched} tag_score={tag_score:.2f}")

        ranked.sort(key=sort_key)
        return ranked


@dataclass(frozen=True)
class Page:
    items: list[RankedItem]
    next_cursor: Optional[str]


def encode_cursor(ranked: RankedItem, ranked_at: Optional[datetime] = None) -> str:
    payload = {
        "s": ranked.score,
        "b": int(bool(ranked.item.is_boosted)),
        "c": _created_ts(ranked.item.created_at),
        "i": ranked.item_id,
    }
    if ranked_at is not None:
        payload["n"] = ensure_utc(ranked_at).timestamp()
    raw = json.dumps(payload, separators=(",", ":")).encode("utf-8")
    return base64.urlsafe_b64encode(raw).decode("ascii").rstrip("=")


def _cursor_payload(cursor: str) -> dict:
    try:
        padded = cursor + "=" * (-len(cursor) % 4)
        payload = json.loads(base64.urlsafe_b64decode(padded.encode("ascii")))
    except (binascii.Error, UnicodeError, ValueError) as exc:
        raise ValueError(f"无效的分页游标: {cursor!r}") from exc
    if not isinstance(payload, dict):
        raise ValueError(f"无效的分页游标: {cursor!r}")
    return payload


def decode_cursor(cursor: str) -> SortKey:
    payload = _cursor_payload(cursor)
    try:
        created = payload["c"]
        return _key(
            float(payload["s"]),
            bool(payload["b"]),
            float(created) if created is not None else None,
            str(payload["i"]),
        )
    except (ValueError, KeyError, TypeError) as exc:
        raise ValueError(f"无效的分页游标: {cursor!r}") from exc


def cursor_ranked_at(cursor: str) -> Optional[datetime]:
    """
    游标里记下的首页排序时刻

    时效加分、新鲜度都依赖 now，后续页必须用同一个 now 重排，否则分数跨过
    24h/48h/72h 台阶的商品会在边界另一侧重复出现。
    """
    payload = _cursor_payload(cursor)
    ranked_at = payload.get("n")
    if ranked_at is None:
        return None
    try:
        return datetime.fromtimestamp(float(ranked_at), tz=timezone.utc)
    except (ValueError, TypeError, OverflowError, OSError) as exc:
        raise ValueError(f"无效的分页游标: {cursor!r}") from exc


def paginate(
    ranked: Sequence[RankedItem],
    cursor: Optional[str] = None,
    limit: int = DEFAULT_PAGE_SIZE,
    *,
    ranked_at: Optional[datetime] = None,
) -> Page:
    """ranked 必须已按 sort_key 排好；下一页从游标边界之后严格开始。"""
    if limit <= 0:
        raise ValueError("limit 必须 > 0")
    remaining = list(ranked)
    if cursor:
        boundary = decode_cursor(cursor)
        remaining = [r for r in remaining if sort_key(r) > boundary]
    items = remaining[:limit]
    next_cursor = encode_cursor(items[-1], ranked_at) if len(remaining) > limit else None
    return Page(items=items, next_cursor=next_cursor)
