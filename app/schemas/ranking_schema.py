from __future__ import annotations

from datetime import datetime
from typing import List, Optional

from pydantic import BaseModel, ConfigDict, Field

from app.ranking.entities import Listing


class CandidateItem(BaseModel):
    item_id: str = Field(..., alias="itemId", min_length=1)
    title: str
    description: str = ""
    tags: List[str] = Field(default_factory=list)
    category: Optional[str] = None
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    is_boosted: bool = Field(default=False, alias="isBoosted")
    image_url: Optional[str] = Field(default=None, alias="imageUrl")
    logo_url: Optional[str] = Field(default=None, alias="logoUrl")

    model_config = ConfigDict(populate_by_name=True)

    def to_listing(self) -> Listing:
        return Listing(
            item_id=self.item_id,
            title=self.title,
            description=self.description,
            tags=tuple(self.tags),
            category=self.category,
            created_at=self.created_at,
            is_boosted=self.is_boosted,
            image_url=self.image_url,
            logo_url=self.logo_url,
        )


class SearchRequest(BaseModel):
    query: str = ""
    user_id: Optional[str] = Field(default=None, alias="userId")
    category: Optional[str] = None
    candidates: Optional[List[CandidateItem]] = None
    context_tags: List[str] = Field(default_factory=list, alias="contextTags")
    limit: int = Field(default=20, ge=1, le=100)
    cursor: Optional[str] = None

    model_config = ConfigDict(populate_by_name=True)


class RankedItemOut(BaseModel):
    item_id: str = Field(..., alias="itemId")
    score: float
    is_boosted: bool = Field(..., alias="isBoosted")
    created_at: Optional[datetime] = Field(default=None, alias="createdAt")
    matched_tags: List[str] = Field(default_factory=list, alias="matchedTags")

    model_config = ConfigDict(populate_by_name=True)


class SearchResult(BaseModel):
    experiment_variant: Optional[str] = Field(default=None, alias="experimentVariant")
    formula: str
    total: int
    items: List[RankedItemOut] = Field(default_factory=list)
    next_cursor: Optional[str] = Field(default=None, alias="nextCursor")

    model_config = ConfigDict(populate_by_name=True)


class UserTagPreferenceOut(BaseModel):
    tag: str
    view_count: int = Field(..., alias="viewCount")
    click_count: int = Field(..., alias="clickCount")
    last_viewed: datetime = Field(..., alias="lastViewed")
    preference_score: float = Field(..., alias="preferenceScore")

    model_config = ConfigDict(populate_by_name=True)


class PreferencesResult(BaseModel):
    user_id: str = Field(..., alias="userId")
    window_days: int = Field(..., alias="windowDays")
    preferences: List[UserTagPreferenceOut] = Field(default_factory=list)

    model_config = ConfigDict(populate_by_name=True)
