from __future__ import annotations

from typing import Any, Dict, Optional

from pydantic import BaseModel, ConfigDict, Field


class AssignResult(BaseModel):
    experiment_id: str = Field(..., alias="experimentId")
    subject_id: str = Field(..., alias="subjectId")
    experiment_type: str = Field(..., alias="experimentType")
    variant: str

    model_config = ConfigDict(populate_by_name=True)


class ExposureRequest(BaseModel):
    experiment_id: str = Field(..., alias="experimentId", min_length=1)
    subject_id: str = Field(..., alias="subjectId", min_length=1)
    experiment_type: str = Field(..., alias="experimentType")
    item_id: Optional[str] = Field(default=None, alias="itemId")
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class ConversionRequest(BaseModel):
    experiment_id: str = Field(..., alias="experimentId", min_length=1)
    subject_id: str = Field(..., alias="subjectId", min_length=1)
    experiment_type: str = Field(..., alias="experimentType")
    stage: str = "order"
    metadata: Dict[str, Any] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class VariantResultOut(BaseModel):
    variant: str
    views: int
    clicks: int
    contacts: int
    orders: int
    conversion_rate: float = Field(..., alias="conversionRate")
    is_winner: bool = Field(..., alias="isWinner")
    # NaN 在 JSON 里没有合法表示，输出为 null
    p_value: Optional[float] = Field(default=None, alias="pValue")

    model_config = ConfigDict(populate_by_name=True)
