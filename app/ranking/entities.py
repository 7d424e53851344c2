"""
排序引擎值对象

所有实体都是外部读模型的只读快照，引擎本身不持有跨请求的可变状态。
"""

from __future__ import annotations

from dataclasses import dataclass, field
from datetime import datetime, timezone
from enum import Enum
from typing import Optional

SECONDS_PER_DAY = 24 * 60 * 60


class InteractionType(str, Enum):
    VIEW = "view"
    CLICK = "click"
    CONTACT = "contact"
    ORDER = "order"


def ensure_utc(value: Optional[datetime]) -> Optional[datetime]:
    """无时区的时间一律按 UTC 处理。"""
    if value is None:
        return None
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value.astimezone(timezone.utc)


def utcnow() -> datetime:
    return datetime.now(timezone.utc)


def days_since(then: datetime, now: datetime) -> float:
    """经过的天数，未来时间按 0 天处理。"""
    elapsed = (ensure_utc(now) - ensure_utc(then)).total_seconds() / SECONDS_PER_DAY
    return max(0.0, elapsed)


def clamp(value: float, low: float = 0.0, high: float = 1.0) -> float:
    if value != value:  # NaN
        return low
    return max(low, min(high, value))


def safe_ratio(numerator: int, denominator: int) -> float:
    if denominator <= 0:
        return 0.0
    return clamp(max(0, numerator) / denominator)


@dataclass(frozen=True)
class Listing:
    item_id: str
    title: str
    description: str = ""
    tags: tuple[str, ...] = ()
    category: Optional[str] = None
    created_at: Optional[datetime] = None
    is_boosted: bool = False
    image_url: Optional[str] = None
    logo_url: Optional[str] = None


@dataclass(frozen=True)
class Interaction:
    item_id: str
    user_id: str
    interaction_type: InteractionType
    timestamp: datetime
    matched_tags: frozenset[str] = frozenset()
    query: Optional[str] = None


@dataclass(frozen=True)
class TagUsageStats:
    tag: str
    usage_count: int = 0
    search_count: int = 0
    match_count: int = 0
    last_used: Optional[datetime] = None

    @property
    def match_rate(self) -> Optional[float]:
        """search_count 为 0 时无定义。"""
        if self.search_count <= 0:
            return None
        return clamp(max(0, self.match_count) / self.search_count)


@dataclass(frozen=True)
class TagConversionMetrics:
    tag: str
    view_count: int = 0
    click_count: int = 0
    contact_count: int = 0
    order_count: int = 0
    last_used: Optional[datetime] = None

    @property
    def click_through_rate(self) -> float:
        return safe_ratio(self.click_count, self.view_count)

    @property
    def contact_rate(self) -> float:
        return safe_ratio(self.contact_count, self.click_count)

    @property
    def conversion_rate(self) -> float:
        return safe_ratio(self.order_count, self.contact_count)

    @property
    def has_data(self) -> bool:
        return self.view_count > 0


@dataclass(frozen=True)
class UserTagPreference:
    user_id: str
    tag: str
    view_count: int
    click_count: int
    last_viewed: datetime
    preference_score: float


@dataclass(frozen=True)
class QualityResult:
    tag: str
    quality: float
    match_rate: float
    conversion_rate: float
    freshness: float
    reasons: tuple[str, ...] = ()

    def to_dict(self) -> dict:
        return {
            "tag": self.tag,
            "quality": self.quality,
            "matchRate": self.match_rate,
            "conversionRate": self.conversion_rate,
            "freshness": self.freshness,
            "reasons": list(self.reasons),
        }

    @classmethod
    def from_dict(cls, payload: dict) -> "QualityResult":
        return cls(
            tag=str(payload["tag"]),
            quality=float(payload["quality"]),
            match_rate=float(payload["matchRate"]),
            conversion_rate=float(payload["conversionRate"]),
            freshness=float(payload["freshness"]),
            reasons=tuple(payload.get("reasons") or ()),
        )


@dataclass(frozen=True)
class InteractionCounts:
    views: int = 0
    clicks: int = 0
    contacts: int = 0
    orders: int = 0

    @property
    def total_engagement(self) -> int:
        return max(0, self.views) + max(0, self.clicks) + max(0, self.contacts)

    @property
    def conversion_rate(self) -> float:
        return safe_ratio(self.orders, self.views)


@dataclass(frozen=True)
class RankedItem:
    item: Listing
    score: float
    matched_tags: tuple[str, ...] = field(default_factory=tuple)

    @property
    def item_id(self) -> str:
        return self.item.item_id
