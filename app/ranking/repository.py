"""
基于 SQLAlchemy 的信号存储

同步 Session 的查询放到工作线程里执行（asyncio.to_thread），每次调用一个短生命周期会话。
数据库里的时间按无时区 UTC 存储，读出后统一补上 UTC。
"""

from __future__ import annotations

import asyncio
from datetime import datetime, timezone
from typing import Callable, Optional

from sqlalchemy import func, select
from sqlalchemy.orm import Session

from app.models.listing import ListingInteraction, MarketListing
from app.models.signals import TagConversionMetric, TagUsage
from app.ranking.entities import (
    Interaction,
    InteractionCounts,
    InteractionType,
    Listing,
    TagConversionMetrics,
    TagUsageStats,
    ensure_utc,
)
from app.ranking.signal_store import SignalStore

ACTIVE_STATUS = "active"


def to_naive_utc(value: datetime) -> datetime:
    return ensure_utc(value).astimezone(timezone.utc).replace(tzinfo=None)


def listing_from_row(row: MarketListing) -> Listing:
    return Listing(
        item_id=row.listing_id,
        title=row.title or "",
        description=row.description or "",
        tags=tuple(str(t) for t in (row.tags or []) if t),
        category=row.category,
        created_at=ensure_utc(row.created_at),
        is_boosted=bool(row.is_boosted),
        image_url=row.image_url,
        logo_url=row.logo_url,
    )


def interaction_from_row(row: ListingInteraction) -> Optional[Interaction]:
    try:
        interaction_type = InteractionType(row.interaction_type)
    except ValueError:
        return None
    return Interaction(
        item_id=row.listing_id,
        user_id=row.user_id,
        interaction_type=interaction_type,
        timestamp=ensure_utc(row.created_at),
        matched_tags=frozenset(str(t) for t in (row.matched_tags or []) if t),
        query=row.search_query,
    )


def usage_from_row(row: TagUsage) -> TagUsageStats:
    return TagUsageStats(
        tag=row.tag,
        usage_count=max(0, row.usage_count or 0),
        search_count=max(0, row.search_count or 0),
        match_count=max(0, row.match_count or 0),
        last_used=ensure_utc(row.last_used),
    )


def conversion_from_row(row: TagConversionMetric) -> TagConversionMetrics:
    return TagConversionMetrics(
        tag=row.tag,
        view_count=max(0, row.view_count or 0),
        click_count=max(0, row.click_count or 0),
        contact_count=max(0, row.contact_count or 0),
        order_count=max(0, row.order_count or 0),
        last_used=ensure_utc(row.last_used),
    )


class SqlSignalStore(SignalStore):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _run(self, fn):
        db: Session = self._session_factory()
        try:
            return fn(db)
        finally:
            db.close()

    async def get_tag_usage(self, tag: str) -> Optional[TagUsageStats]:
        def query(db: Session):
            row = db.get(TagUsage, tag)
            return usage_from_row(row) if row else None

        return await asyncio.to_thread(self._run, query)

    async def get_tag_conversion(self, tag: str) -> Optional[TagConversionMetrics]:
        def query(db: Session):
            row = db.get(TagConversionMetric, tag)
            return conversion_from_row(row) if row else None

        return await asyncio.to_thread(self._run, query)

    async def list_tag_usage(self) -> list[TagUsageStats]:
        def query(db: Session):
            rows = db.execute(select(TagUsage)).scalars().all()
            return [usage_from_row(r) for r in rows]

        return await asyncio.to_thread(self._run, query)

    async def list_user_interactions(self, user_id: str, since: datetime) -> list[Interaction]:
        boundary = to_naive_utc(since)

        def query(db: Session):
            stmt = (
                select(ListingInteraction)
                .where(ListingInteraction.user_id == user_id)
                .where(ListingInteraction.created_at >= boundary)
                .order_by(ListingInteraction.created_at.desc())
            )
            rows = db.execute(stmt).scalars().all()
            return [i for i in (interaction_from_row(r) for r in rows) if i is not None]

        return await asyncio.to_thread(self._run, query)

    async def get_item(self, item_id: str) -> Optional[Listing]:
        def query(db: Session):
            row = db.get(MarketListing, item_id)
            return listing_from_row(row) if row else None

        return await asyncio.to_thread(self._run, query)

    async def list_active_items(self) -> list[Listing]:
        def query(db: Session):
            stmt = select(MarketListing).where(MarketListing.status == ACTIVE_STATUS)
            return [listing_from_row(r) for r in db.execute(stmt).scalars().all()]

        return await asyncio.to_thread(self._run, query)

    async def get_item_interaction_counts(self, item_id: str) -> InteractionCounts:
        def query(db: Session):
            stmt = (
                select(ListingInteraction.interaction_type, func.count(ListingInteraction.id))
                .where(ListingInteraction.listing_id == item_id)
                .group_by(ListingInteraction.interaction_type)
            )
            counts = {kind: int(n) for kind, n in db.execute(stmt).all()}
            return InteractionCounts(
                views=counts.get(InteractionType.VIEW.value, 0),
                clicks=counts.get(InteractionType.CLICK.value, 0),
                contacts=counts.get(InteractionType.CONTACT.value, 0),
                orders=counts.get(InteractionType.ORDER.value, 0),
            )

        return await asyncio.to_thread(self._run, query)

    def list_interactions_since(self, since: datetime) -> list[Interaction]:
        """刷新任务用的同步读取。"""

        def query(db: Session):
            stmt = select(ListingInteraction).where(ListingInteraction.created_at >= to_naive_utc(since))
            rows = db.execute(stmt).scalars().all()
            return [i for i in (interaction_from_row(r) for r in rows) if i is not None]

        return self._run(query)
