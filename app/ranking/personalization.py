"""
用户标签偏好

每次请求时从窗口内的交互现算，不落库：
  activity   = min(1, (views·0.1 + clicks·0.5) / 10)
  recency    = exp(-daysSinceLastView / 7)
  preference = activity × recency
"""

from __future__ import annotations

import asyncio
import math
from datetime import datetime, timedelta
from typing import Callable, Iterable, Mapping, Optional

from loguru import logger

from app.ranking.entities import (
    Interaction,
    InteractionType,
    UserTagPreference,
    clamp,
    days_since,
    ensure_utc,
    utcnow,
)
from app.ranking.normalization import TAG_SEPARATOR
from app.ranking.signal_store import SignalStore

VIEW_WEIGHT = 0.1
CLICK_WEIGHT = 0.5
ACTIVITY_SCALE = 10.0
RECENCY_DECAY_DAYS = 7.0

BOOST_WEIGHT = 0.5
RELATED_WEIGHT = 0.3
RELATED_SCALE = 0.5

DEFAULT_WINDOW_DAYS = 30


def build_preferences(
    user_id: str,
    interactions: Iterable[Interaction],
    now: datetime,
) -> dict[str, UserTagPreference]:
    views: dict[str, int] = {}
    clicks: dict[str, int] = {}
    last_seen: dict[str, datetime] = {}

    for interaction in interactions:
        ts = ensure_utc(interaction.timestamp)
        kind = InteractionType(interaction.interaction_type)
        for tag in interaction.matched_tags:
            if not tag:
                continue
            views.setdefault(tag, 0)
            clicks.setdefault(tag, 0)
            # 只统计浏览和点击，但任何交互都会刷新最近时间
            if kind is InteractionType.VIEW:
                views[tag] += 1
            elif kind is InteractionType.CLICK:
                clicks[tag] += 1
            if tag not in last_seen or ts > last_seen[tag]:
                last_seen[tag] = ts

    prefs: dict[str, UserTagPreference] = {}
    for tag in sorted(last_seen):
        activity = min(1.0, (views[tag] * VIEW_WEIGHT + clicks[tag] * CLICK_WEIGHT) / ACTIVITY_SCALE)
        recency = math.exp(-days_since(last_seen[tag], now) / RECENCY_DECAY_DAYS)
        prefs[tag] = UserTagPreference(
            user_id=user_id,
            tag=tag,
            view_count=views[tag],
            click_count=clicks[tag],
            last_viewed=last_seen[tag],
            preference_score=clamp(activity * recency),
        )
    return prefs


def boost(tag: str, prefs: Mapping[str, UserTagPreference]) -> float:
    pref = prefs.get(tag)
    if pref is None:
        return 0.0
    return clamp(pref.preference_score) * BOOST_WEIGHT


def related_boost(tag: str, prefs: Mapping[str, UserTagPreference]) -> float:
    """同前缀（第一个 '-' 之前）的其它偏好标签，取最大 preference×0.3，再乘 0.5。"""
    prefix = tag.split(TAG_SEPARATOR, 1)[0]
    if not prefix:
        return 0.0
    head = prefix + TAG_SEPARATOR
    best = 0.0
    for pref_tag, pref in prefs.items():
        if pref_tag != tag and pref_tag.startswith(head):
            best = max(best, clamp(pref.preference_score) * RELATED_WEIGHT)
    return best * RELATED_SCALE


def personalization_boost(tag: str, prefs: Mapping[str, UserTagPreference]) -> float:
    return boost(tag, prefs) + related_boost(tag, prefs)


class PersonalizationProfile:
    def __init__(
        self,
        store: SignalStore,
        *,
        window_days: int = DEFAULT_WINDOW_DAYS,
        read_timeout: float = 0.5,
        clock: Callable[[], datetime] = utcnow,
    ):
        self._store = store
        self._window_days = window_days
        self._read_timeout = read_timeout
        self._clock = clock

    @property
    def window_days(self) -> int:
        return self._window_days

    async def preferences(
        self,
        user_id: str,
        window_days: Optional[int] = None,
        now: Optional[datetime] = None,
    ) -> dict[str, UserTagPreference]:
        if not user_id:
            return {}
        now = now or self._clock()
        days = window_days if window_days is not None else self._window_days
        if days <= 0:
            raise ValueError("window_days 必须 > 0")
        since = ensure_utc(now) - timedelta(days=days)

        try:
            interactions = await asyncio.wait_for(
                self._store.list_user_interactions(user_id, since),
                self._read_timeout,
            )
        except asyncio.CancelledError:
            raise
        except Exception as exc:
            logger.warning(f"用户交互读取失败，跳过个性化: user_id='{user_id}', err={exc!r}")
            return {}

        return build_preferences(user_id, interactions, now)
