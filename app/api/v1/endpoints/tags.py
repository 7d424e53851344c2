"""
标签分析 API

质量分、热门 / 趋势 / 高效 / 低效标签，以及 AI 标签质量实验的过滤接口。
"""

from __future__ import annotations

from typing import Iterable, List

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.api.deps import get_tag_analytics_service
from app.ranking.entities import TagUsageStats
from app.schemas.common import ApiResponse
from app.schemas.tag_schema import (
    FilterTagsRequest,
    FilterTagsResult,
    QualityResultOut,
    TagQualityMap,
    TagStatsOut,
    TagSuggestionsOut,
)
from app.services.tag_analytics_service import TagAnalyticsService

router = APIRouter()


def _stats_out(rows: Iterable[TagUsageStats]) -> list[TagStatsOut]:
    return [
        TagStatsOut(
            tag=s.tag,
            usage_count=s.usage_count,
            search_count=s.search_count,
            match_count=s.match_count,
            match_rate=s.match_rate,
            last_used=s.last_used,
        )
        for s in rows
    ]


@router.get("/quality", response_model=ApiResponse[TagQualityMap], summary="标签质量分")
async def tag_quality(
    tags: List[str] = Query(..., description="可重复传参，也支持逗号分隔"),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[TagQualityMap]:
    flat = [t for raw in tags for t in raw.split(",")]
    try:
        scores = await service.quality(flat)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"标签质量计算失败: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ApiResponse(
        data=TagQualityMap(
            scores={
                tag: QualityResultOut(
                    tag=r.tag,
                    quality=r.quality,
                    match_rate=r.match_rate,
                    conversion_rate=r.conversion_rate,
                    freshness=r.freshness,
                    reasons=list(r.reasons),
                )
                for tag, r in scores.items()
            }
        )
    )


@router.get("/top", response_model=ApiResponse[list[TagStatsOut]], summary="使用最多的标签")
async def top_tags(
    limit: int = Query(10, ge=1, le=100),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[list[TagStatsOut]]:
    return ApiResponse(data=_stats_out(await service.top_tags(limit)))


@router.get("/trending", response_model=ApiResponse[list[TagStatsOut]], summary="近期搜索最多的标签")
async def trending_tags(
    limit: int = Query(10, ge=1, le=100),
    days: int = Query(7, ge=1, le=90),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[list[TagStatsOut]]:
    return ApiResponse(data=_stats_out(await service.trending_tags(limit, days=days)))


@router.get("/effective", response_model=ApiResponse[list[TagStatsOut]], summary="匹配率最高的标签")
async def effective_tags(
    limit: int = Query(10, ge=1, le=100),
    min_searches: int = Query(5, alias="minSearches", ge=0),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[list[TagStatsOut]]:
    return ApiResponse(data=_stats_out(await service.effective_tags(limit, min_searches=min_searches)))


@router.get("/ineffective", response_model=ApiResponse[list[TagStatsOut]], summary="匹配率过低的标签")
async def ineffective_tags(
    limit: int = Query(10, ge=1, le=100),
    min_searches: int = Query(5, alias="minSearches", ge=0),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[list[TagStatsOut]]:
    return ApiResponse(data=_stats_out(await service.ineffective_tags(limit, min_searches=min_searches)))


@router.get("/suggestions", response_model=ApiResponse[TagSuggestionsOut], summary="AI 打标签参考集合")
async def tag_suggestions(
    limit: int = Query(10, ge=1, le=100),
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[TagSuggestionsOut]:
    suggestions = await service.tag_suggestions(limit)
    return ApiResponse(
        data=TagSuggestionsOut(
            top=_stats_out(suggestions.top),
            trending=_stats_out(suggestions.trending),
            effective=_stats_out(suggestions.effective),
            ineffective=_stats_out(suggestions.ineffective),
        )
    )


@router.post("/filter", response_model=ApiResponse[FilterTagsResult], summary="AI 标签质量实验过滤")
async def filter_tags(
    req: FilterTagsRequest,
    service: TagAnalyticsService = Depends(get_tag_analytics_service),
) -> ApiResponse[FilterTagsResult]:
    try:
        variant, kept = await service.filter_suggested_tags(req.subject_id, req.tags, threshold=req.threshold)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"标签过滤失败: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc
    return ApiResponse(data=FilterTagsResult(variant=variant.value, tags=kept))
