"""交互事件 → 聚合快照（纯函数，供刷新任务与内存存储复用）。"""

from __future__ import annotations

from collections import defaultdict
from datetime import datetime
from typing import Iterable, Optional

from app.ranking.entities import (
    Interaction,
    InteractionCounts,
    InteractionType,
    TagConversionMetrics,
    ensure_utc,
)

_COUNT_FIELDS = {
    InteractionType.VIEW: "view_count",
    InteractionType.CLICK: "click_count",
    InteractionType.CONTACT: "contact_count",
    InteractionType.ORDER: "order_count",
}


def aggregate_tag_conversions(interactions: Iterable[Interaction]) -> dict[str, TagConversionMetrics]:
    """按 matched_tags 把漏斗各阶段计数汇总到标签上，每个标签一行。"""
    counts: dict[str, dict[str, int]] = defaultdict(lambda: dict.fromkeys(_COUNT_FIELDS.values(), 0))
    last_used: dict[str, Optional[datetime]] = {}

    for interaction in interactions:
        field_name = _COUNT_FIELDS.get(InteractionType(interaction.interaction_type))
        if field_name is None:
            continue
        ts = ensure_utc(interaction.timestamp)
        for tag in interaction.matched_tags:
            if not tag:
                continue
            counts[tag][field_name] += 1
            prev = last_used.get(tag)
            if prev is None or (ts is not None and ts > prev):
                last_used[tag] = ts

    return {
        tag: TagConversionMetrics(tag=tag, last_used=last_used.get(tag), **fields)
        for tag, fields in sorted(counts.items())
    }


def count_item_interactions(interactions: Iterable[Interaction], item_id: str) -> InteractionCounts:
    totals = dict.fromkeys(_COUNT_FIELDS.values(), 0)
    for interaction in interactions:
        if interaction.item_id != item_id:
            continue
        totals[_COUNT_FIELDS[InteractionType(interaction.interaction_type)]] += 1
    return InteractionCounts(
        views=totals["view_count"],
        clicks=totals["click_count"],
        contacts=totals["contact_count"],
        orders=totals["order_count"],
    )
