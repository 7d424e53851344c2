from __future__ import annotations

from typing import List, Optional

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.api.deps import get_health_aggregator
from app.health.aggregator import HealthScoreAggregator, ItemNotFoundError, badge
from app.schemas.common import ApiResponse
from app.schemas.health_schema import HealthBadgeOut, HealthFactorsOut, HealthScoreOut

router = APIRouter()


@router.get("/{item_id}", response_model=ApiResponse[HealthScoreOut], summary="商品健康分")
async def item_health(
    item_id: str,
    queries: Optional[List[str]] = Query(None, description="代表性查询，默认取商品前几个标签"),
    aggregator: HealthScoreAggregator = Depends(get_health_aggregator),
) -> ApiResponse[HealthScoreOut]:
    try:
        result = await aggregator.health(item_id, queries=queries)
    except ItemNotFoundError as exc:
        raise HTTPException(status_code=404, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"健康分计算失败: item_id='{item_id}', err={exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    b = badge(result.score)
    return ApiResponse(
        data=HealthScoreOut(
            item_id=item_id,
            score=result.score,
            status=result.status.value,
            factors=HealthFactorsOut(
                conversion=result.factors.conversion,
                engagement=result.factors.engagement,
                completeness=result.factors.completeness,
                ranking=result.factors.ranking,
            ),
            recommendations=list(result.recommendations),
            average_rank=result.average_rank,
            badge=HealthBadgeOut(text=b.text, emoji=b.emoji),
        )
    )
