from __future__ import annotations

from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field


class HealthFactorsOut(BaseModel):
    conversion: int
    engagement: int
    completeness: int
    ranking: int

    model_config = ConfigDict(populate_by_name=True)


class HealthBadgeOut(BaseModel):
    text: str
    emoji: str

    model_config = ConfigDict(populate_by_name=True)


class HealthScoreOut(BaseModel):
    item_id: str = Field(..., alias="itemId")
    score: int = Field(..., ge=0, le=100)
    status: str
    factors: HealthFactorsOut
    recommendations: List[str] = Field(default_factory=list)
    average_rank: Optional[float] = Field(default=None, alias="averageRank")
    badge: HealthBadgeOut

    model_config = ConfigDict(populate_by_name=True)
