from __future__ import annotations

from datetime import datetime
from typing import Dict, List, Optional

from pydantic import BaseModel, ConfigDict, Field


class QualityResultOut(BaseModel):
    tag: str
    quality: float
    match_rate: float = Field(..., alias="matchRate")
    conversion_rate: float = Field(..., alias="conversionRate")
    freshness: float
    reasons: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class TagStatsOut(BaseModel):
    tag: str
    usage_count: int = Field(..., alias="usageCount")
    search_count: int = Field(..., alias="searchCount")
    match_count: int = Field(..., alias="matchCount")
    match_rate: Optional[float] = Field(default=None, alias="matchRate")
    last_used: Optional[datetime] = Field(default=None, alias="lastUsed")

    model_config = ConfigDict(populate_by_name=True)


class TagSuggestionsOut(BaseModel):
    top: List[TagStatsOut] = Field(default_factory=list)
    trending: List[TagStatsOut] = Field(default_factory=list)
    effective: List[TagStatsOut] = Field(default_factory=list)
    ineffective: List[TagStatsOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)


class TagQualityMap(BaseModel):
    scores: Dict[str, QualityResultOut] = Field(default_factory=dict)

    model_config = ConfigDict(populate_by_name=True)


class FilterTagsRequest(BaseModel):
    subject_id: str = Field(..., alias="subjectId", min_length=1)
    tags: List[str] = Field(default_factory=list)
    threshold: Optional[float] = Field(default=None, ge=0.0, le=1.0)

    model_config = ConfigDict(populate_by_name=True)


class FilterTagsResult(BaseModel):
    variant: str
    tags: List[str] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
