from __future__ import annotations

import asyncio
from dataclasses import dataclass
from datetime import datetime
from typing import Callable, Iterable, Optional, Sequence

from loguru import logger

from app.abtest.assigner import ExperimentAssigner, ExperimentType, Variant
from app.ranking.composer import DEFAULT_PAGE_SIZE, Page, RankingComposer, cursor_ranked_at, paginate
from app.ranking.entities import Listing, UserTagPreference, utcnow
from app.ranking.formula import STANDARD, RankingFormula, formula_for_variant
from app.ranking.normalization import has_searchable_content
from app.ranking.personalization import PersonalizationProfile
from app.ranking.signal_store import SignalStore


@dataclass(frozen=True)
class SearchOutcome:
    formula: RankingFormula
    page: Page
    total: int
    experiment_variant: Optional[Variant] = None


class RankingService:
    """搜索排序入口：选公式（按实验分桶）→ 排序 → 游标分页。"""

    def __init__(
        self,
        store: SignalStore,
        composer: RankingComposer,
        personalization: PersonalizationProfile,
        assigner: ExperimentAssigner,
        *,
        experiment_id: str = "ranking_formula_v1",
        read_timeout: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._composer = composer
        self._personalization = personalization
        self._assigner = assigner
        self._experiment_id = experiment_id
        self._read_timeout = read_timeout
        self._clock = clock

    @property
    def window_days(self) -> int:
        return self._personalization.window_days

    def choose_formula(self, user_id: Optional[str]) -> tuple[RankingFormula, Optional[Variant]]:
        # 与 /abtest/assign 一致：去掉首尾空白后再分桶
        user_id = user_id.strip() if user_id else None
        if not user_id:
            return STANDARD, None
        variant = self._assigner.assign(self._experiment_id, user_id, ExperimentType.RANKING_FORMULA)
        return formula_for_variant(variant), variant

    async def search(
        self,
        query: str,
        *,
        user_id: Optional[str] = None,
        category: Optional[str] = None,
        candidates: Optional[Sequence[Listing]] = None,
        context_tags: Iterable[str] = (),
        limit: int = DEFAULT_PAGE_SIZE,
        cursor: Optional[str] = None,
    ) -> SearchOutcome:
        context_tags = [t for t in (context_tags or ()) if t and t.strip()]
        if not has_searchable_content(query or "") and not context_tags:
            raise ValueError("query 不能为空（或只包含标点），且未提供 contextTags")
        if limit <= 0:
            raise ValueError("limit 必须 > 0")
        user_id = (user_id or "").strip() or None
        # 翻页沿用首页的排序时刻
        now = (cursor_ranked_at(cursor) if cursor else None) or self._clock()

        if candidates is None:
            candidates = await asyncio.wait_for(self._store.list_active_items(), self._read_timeout)

        formula, variant = self.choose_formula(user_id)
        if variant is not None:
            self._assigner.record_exposure(
                self._experiment_id,
                user_id,
                ExperimentType.RANKING_FORMULA,
                metadata={"query": query, "formula": formula.name},
            )

        ranked = await self._composer.rank(
            query,
            candidates,
            user_id=user_id,
            formula=formula,
            context_tags=context_tags,
            category=category,
            now=now,
        )
        page = paginate(ranked, cursor=cursor, limit=limit, ranked_at=now)
        logger.info(
            f"排序完成: query='{query}', user_id={user_id}, formula={formula.name}, "
            f"candidates={len(candidates)}, returned={len(page.items)}"
        )
        return SearchOutcome(formula=formula, page=page, total=len(ranked), experiment_variant=variant)

    async def preferences(self, user_id: str, window_days: Optional[int] = None) -> list[UserTagPreference]:
        if not user_id or not user_id.strip():
            raise ValueError("userId 不能为空")
        prefs = await self._personalization.preferences(user_id, window_days=window_days)
        return sorted(prefs.values(), key=lambda p: (-p.preference_score, p.tag))
