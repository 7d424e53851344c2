"""
信号存储接口

引擎所有组件都只通过 SignalStore 读取聚合数据；SQL 实现见 repository.py，
测试 / 演示使用 InMemorySignalStore。
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from datetime import datetime
from typing import Iterable, Optional

from app.ranking.aggregation import aggregate_tag_conversions, count_item_interactions
from app.ranking.entities import (
    Interaction,
    InteractionCounts,
    Listing,
    TagConversionMetrics,
    TagUsageStats,
    ensure_utc,
)


class SignalStore(ABC):
    @abstractmethod
    async def get_tag_usage(self, tag: str) -> Optional[TagUsageStats]:
        ...

    @abstractmethod
    async def get_tag_conversion(self, tag: str) -> Optional[TagConversionMetrics]:
        ...

    @abstractmethod
    async def list_tag_usage(self) -> list[TagUsageStats]:
        ...

    @abstractmethod
    async def list_user_interactions(self, user_id: str, since: datetime) -> list[Interaction]:
        ...

    @abstractmethod
    async def get_item(self, item_id: str) -> Optional[Listing]:
        ...

    @abstractmethod
    async def list_active_items(self) -> list[Listing]:
        ...

    @abstractmethod
    async def get_item_interaction_counts(self, item_id: str) -> InteractionCounts:
        ...


class InMemorySignalStore(SignalStore):
    """
    内存实现

    显式给出的 usage / conversion 快照优先；没有快照的标签按已记录的交互现算。
    """

    def __init__(
        self,
        *,
        listings: Iterable[Listing] = (),
        usage: Iterable[TagUsageStats] = (),
        conversions: Iterable[TagConversionMetrics] = (),
        interactions: Iterable[Interaction] = (),
    ):
        self._listings: dict[str, Listing] = {item.item_id: item for item in listings}
        self._usage: dict[str, TagUsageStats] = {stats.tag: stats for stats in usage}
        self._conversions: dict[str, TagConversionMetrics] = {m.tag: m for m in conversions}
        self._interactions: list[Interaction] = list(interactions)

    def add_listing(self, listing: Listing) -> None:
        self._listings[listing.item_id] = listing

    def set_tag_usage(self, stats: TagUsageStats) -> None:
        self._usage[stats.tag] = stats

    def set_tag_conversion(self, metrics: TagConversionMetrics) -> None:
        self._conversions[metrics.tag] = metrics

    def add_interaction(self, interaction: Interaction) -> None:
        self._interactions.append(interaction)

    async def get_tag_usage(self, tag: str) -> Optional[TagUsageStats]:
        return self._usage.get(tag)

    async def get_tag_conversion(self, tag: str) -> Optional[TagConversionMetrics]:
        metrics = self._conversions.get(tag)
        if metrics is not None:
            return metrics
        relevant = [i for i in self._interactions if tag in i.matched_tags]
        if not relevant:
            return None
        return aggregate_tag_conversions(relevant).get(tag)

    async def list_tag_usage(self) -> list[TagUsageStats]:
        return list(self._usage.values())

    async def list_user_interactions(self, user_id: str, since: datetime) -> list[Interaction]:
        since = ensure_utc(since)
        return [
            i
            for i in self._interactions
            if i.user_id == user_id and ensure_utc(i.timestamp) >= since
        ]

    async def get_item(self, item_id: str) -> Optional[Listing]:
        return self._listings.get(item_id)

    async def list_active_items(self) -> list[Listing]:
        return list(self._listings.values())

    async def get_item_interaction_counts(self, item_id: str) -> InteractionCounts:
        return count_item_interactions(self._interactions, item_id)
