"""
搜索排序 API

- 排序：文本相关性 + 标签质量 + 个性化，按用户分桶选择公式
- 偏好：查看用户在窗口内的标签偏好（现算，不落库）
"""

from __future__ import annotations

import asyncio
from typing import Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.api.deps import get_ranking_service
from app.schemas.common import ApiResponse
from app.schemas.ranking_schema import (
    PreferencesResult,
    RankedItemOut,
    SearchRequest,
    SearchResult,
    UserTagPreferenceOut,
)
from app.services.ranking_service import RankingService

router = APIRouter()


@router.post("/search", response_model=ApiResponse[SearchResult], summary="搜索结果排序")
async def search(
    req: SearchRequest,
    service: RankingService = Depends(get_ranking_service),
) -> ApiResponse[SearchResult]:
    try:
        candidates = [c.to_listing() for c in req.candidates] if req.candidates is not None else None
        outcome = await service.search(
            req.query,
            user_id=req.user_id,
            category=req.category,
            candidates=candidates,
            context_tags=req.context_tags,
            limit=req.limit,
            cursor=req.cursor,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except asyncio.TimeoutError as exc:
        logger.error(f"候选商品读取超时: query='{req.query}'")
        raise HTTPException(status_code=503, detail="候选商品读取超时") from exc
    except Exception as exc:
        logger.error(f"搜索排序失败: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    items = [
        RankedItemOut(
            item_id=r.item_id,
            score=round(r.score, 6),
            is_boosted=r.item.is_boosted,
            created_at=r.item.created_at,
            matched_tags=list(r.matched_tags),
        )
        for r in outcome.page.items
    ]
    variant = outcome.experiment_variant.value if outcome.experiment_variant else None
    return ApiResponse(
        data=SearchResult(
            experiment_variant=variant,
            formula=outcome.formula.name,
            total=outcome.total,
            items=items,
            next_cursor=outcome.page.next_cursor,
        )
    )


@router.get("/preferences/{user_id}", response_model=ApiResponse[PreferencesResult], summary="用户标签偏好")
async def preferences(
    user_id: str,
    window_days: Optional[int] = Query(None, alias="windowDays", ge=1, le=365),
    service: RankingService = Depends(get_ranking_service),
) -> ApiResponse[PreferencesResult]:
    try:
        prefs = await service.preferences(user_id, window_days=window_days)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"读取用户偏好失败: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return ApiResponse(
        data=PreferencesResult(
            user_id=user_id,
            window_days=window_days or service.window_days,
            preferences=[
                UserTagPreferenceOut(
                    tag=p.tag,
                    view_count=p.view_count,
                    click_count=p.click_count,
                    last_viewed=p.last_viewed,
                    preference_score=p.preference_score,
                )
                for p in prefs
            ],
        )
    )
