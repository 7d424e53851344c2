"""
标签漏斗指标刷新任务（建议由 CronJob 定时触发）

从 listing_interactions 里取回溯窗口内的交互，按标签重建 tag_conversion_metrics（窗口外的旧标签行会被删除）。
刷新后顺手清掉 Redis 里的标签质量缓存，让新指标尽快生效。

示例（每小时一次）：
  0 * * * *  cd <project> && python -m app.jobs.refresh_tag_metrics --days 30
"""

from __future__ import annotations

import argparse
import asyncio
from datetime import timedelta
from typing import Callable, Iterable

from loguru import logger
from sqlalchemy import delete, select
from sqlalchemy.orm import Session

from app.core.config import settings
from app.core.database import SessionLocal
from app.core.redis_client import redis_client
from app.models.signals import TagConversionMetric
from app.ranking.aggregation import aggregate_tag_conversions
from app.ranking.cache import RedisQualityCache
from app.ranking.entities import TagConversionMetrics, utcnow
from app.ranking.repository import SqlSignalStore, to_naive_utc


def write_metrics(session_factory: Callable[[], Session], metrics: Iterable[TagConversionMetrics]) -> list[str]:
    """
    用新聚合结果重建 tag_conversion_metrics（同一事务内）

    窗口内出现的标签整行覆盖写入（merge），窗口内已无交互的旧标签行删除。
    返回被删除的标签，调用方据此一并清理缓存。
    """
    db: Session = session_factory()
    metrics = list(metrics)
    keep = {m.tag for m in metrics}
    try:
        existing = db.execute(select(TagConversionMetric.tag)).scalars().all()
        stale = sorted(tag for tag in existing if tag not in keep)
        if stale:
            db.execute(delete(TagConversionMetric).where(TagConversionMetric.tag.in_(stale)))
        updated_at = to_naive_utc(utcnow())
        for m in metrics:
            db.merge(
                TagConversionMetric(
                    tag=m.tag,
                    view_count=m.view_count,
                    click_count=m.click_count,
                    contact_count=m.contact_count,
                    order_count=m.order_count,
                    click_through_rate=m.click_through_rate,
                    contact_rate=m.contact_rate,
                    conversion_rate=m.conversion_rate,
                    last_used=to_naive_utc(m.last_used) if m.last_used else None,
                    updated_at=updated_at,
                )
            )
        db.commit()
    except Exception:
        db.rollback()
        raise
    finally:
        db.close()
    return stale


def refresh(session_factory: Callable[[], Session], days: int) -> tuple[list[TagConversionMetrics], list[str]]:
    """返回 (新指标, 被移除的标签)。"""
    if days <= 0:
        raise ValueError("days 必须 > 0")
    store = SqlSignalStore(session_factory)
    interactions = store.list_interactions_since(utcnow() - timedelta(days=days))
    metrics = list(aggregate_tag_conversions(interactions).values())
    stale = write_metrics(session_factory, metrics)
    logger.info(
        f"标签指标刷新完成: interactions={len(interactions)}, tags={len(metrics)}, removed={len(stale)}, days={days}"
    )
    return metrics, stale


async def invalidate_quality_cache(tags: Iterable[str]) -> None:
    await redis_client.connect()
    try:
        if not redis_client.is_connected:
            return
        cache = RedisQualityCache(redis_client, prefix=settings.RANKING_KEY_PREFIX)
        try:
            for tag in tags:
                await redis_client.client.delete(cache.key(tag))
        except Exception as exc:
            logger.warning(f"清理标签质量缓存失败（缓存会按 TTL 自然过期）: {exc}")
    finally:
        await redis_client.close()


async def run_once(days: int) -> None:
    metrics, stale = await asyncio.to_thread(refresh, SessionLocal, days)
    await invalidate_quality_cache([m.tag for m in metrics] + stale)


def main() -> None:
    parser = argparse.ArgumentParser(description="重算标签漏斗指标")
    parser.add_argument("--days", type=int, default=settings.PERSONALIZATION_WINDOW_DAYS, help="回溯天数")
    args = parser.parse_args()
    asyncio.run(run_once(args.days))


if __name__ == "__main__":
    main()
