from __future__ import annotations

import math

from fastapi import APIRouter, Depends, HTTPException, Query
from loguru import logger

from app.api.deps import get_experiment_service
from app.schemas.common import AcceptedResult, ApiResponse
from app.schemas.experiment_schema import (
    AssignResult,
    ConversionRequest,
    ExposureRequest,
    VariantResultOut,
)
from app.services.experiment_service import ExperimentService


router = APIRouter()


@router.get("/assign", response_model=ApiResponse[AssignResult])
def assign(
    experiment_id: str = Query(..., alias="experimentId"),
    subject_id: str = Query(..., alias="subjectId"),
    experiment_type: str = Query(..., alias="experimentType"),
    service: ExperimentService = Depends(get_experiment_service),
) -> ApiResponse[AssignResult]:
    try:
        variant = service.assign(experiment_id, subject_id, experiment_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(
        data=AssignResult(
            experiment_id=experiment_id,
            subject_id=subject_id,
            experiment_type=experiment_type,
            variant=variant.value,
        )
    )


@router.post("/exposures", response_model=ApiResponse[AcceptedResult])
async def record_exposure(
    req: ExposureRequest,
    service: ExperimentService = Depends(get_experiment_service),
) -> ApiResponse[AcceptedResult]:
    # 需要运行中的事件循环来投递后台记录任务，所以是 async 接口
    try:
        variant = service.record_exposure(
            req.experiment_id,
            req.subject_id,
            req.experiment_type,
            item_id=req.item_id,
            metadata=req.metadata,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=AcceptedResult(variant=variant.value))


@router.post("/conversions", response_model=ApiResponse[AcceptedResult])
async def record_conversion(
    req: ConversionRequest,
    service: ExperimentService = Depends(get_experiment_service),
) -> ApiResponse[AcceptedResult]:
    try:
        service.record_conversion(
            req.experiment_id,
            req.subject_id,
            req.experiment_type,
            stage=req.stage,
            metadata=req.metadata,
        )
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    return ApiResponse(data=AcceptedResult())


@router.get("/results", response_model=ApiResponse[list[VariantResultOut]])
async def results(
    experiment_id: str = Query(..., alias="experimentId"),
    experiment_type: str = Query(..., alias="experimentType"),
    service: ExperimentService = Depends(get_experiment_service),
) -> ApiResponse[list[VariantResultOut]]:
    try:
        rows = await service.results(experiment_id, experiment_type)
    except ValueError as exc:
        raise HTTPException(status_code=400, detail=str(exc)) from exc
    except Exception as exc:
        logger.error(f"实验结果汇总失败: {exc}")
        raise HTTPException(status_code=500, detail=str(exc)) from exc

    return ApiResponse(
        data=[
            VariantResultOut(
                variant=r.variant,
                views=r.views,
                clicks=r.clicks,
                contacts=r.contacts,
                orders=r.orders,
                conversion_rate=r.conversion_rate,
                is_winner=r.is_winner,
                p_value=None if math.isnan(r.p_value) else r.p_value,
            )
            for r in rows
        ]
    )
