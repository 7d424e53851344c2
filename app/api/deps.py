# 依赖注入：信号存储、实验分桶与各个服务
from __future__ import annotations

from functools import lru_cache
from typing import Optional

from fastapi import Depends

from app.abtest.assigner import ExperimentAssigner
from app.abtest.recorder import ExposureRecorder, SqlExposureRecorder
from app.core.config import settings
from app.core.database import SessionLocal
from app.core.redis_client import RedisClient, get_redis_client
from app.health.aggregator import HealthScoreAggregator
from app.ranking.cache import RedisQualityCache
from app.ranking.composer import RankingComposer
from app.ranking.personalization import PersonalizationProfile
from app.ranking.quality import TagQualityEvaluator
from app.ranking.relevance import TextRelevanceScorer
from app.ranking.repository import SqlSignalStore
from app.ranking.signal_store import SignalStore
from app.services.experiment_service import ExperimentService
from app.services.ranking_service import RankingService
from app.services.tag_analytics_service import TagAnalyticsService


@lru_cache
def get_signal_store() -> SignalStore:
    return SqlSignalStore(SessionLocal)


@lru_cache
def get_exposure_recorder() -> ExposureRecorder:
    return SqlExposureRecorder(SessionLocal)


@lru_cache
def get_assigner() -> ExperimentAssigner:
    # 后台记录任务挂在实例上，必须是进程级单例
    return ExperimentAssigner(get_exposure_recorder())


@lru_cache
def get_relevance_scorer() -> TextRelevanceScorer:
    return TextRelevanceScorer()


def get_quality_cache(redis: RedisClient = Depends(get_redis_client)) -> Optional[RedisQualityCache]:
    if not redis.is_connected:
        return None
    return RedisQualityCache(
        redis,
        prefix=settings.RANKING_KEY_PREFIX,
        ttl_seconds=settings.QUALITY_CACHE_TTL_SECONDS,
    )


def get_quality_evaluator(
    store: SignalStore = Depends(get_signal_store),
    cache: Optional[RedisQualityCache] = Depends(get_quality_cache),
) -> TagQualityEvaluator:
    return TagQualityEvaluator(
        store,
        read_timeout=settings.SIGNAL_READ_TIMEOUT_SECONDS,
        max_concurrency=settings.SIGNAL_MAX_CONCURRENCY,
        cache=cache,
    )


def get_personalization(store: SignalStore = Depends(get_signal_store)) -> PersonalizationProfile:
    return PersonalizationProfile(
        store,
        window_days=settings.PERSONALIZATION_WINDOW_DAYS,
        read_timeout=settings.SIGNAL_READ_TIMEOUT_SECONDS,
    )


def get_composer(
    scorer: TextRelevanceScorer = Depends(get_relevance_scorer),
    evaluator: TagQualityEvaluator = Depends(get_quality_evaluator),
    personalization: PersonalizationProfile = Depends(get_personalization),
) -> RankingComposer:
    return RankingComposer(scorer, evaluator, personalization)


def get_ranking_service(
    store: SignalStore = Depends(get_signal_store),
    composer: RankingComposer = Depends(get_composer),
    personalization: PersonalizationProfile = Depends(get_personalization),
    assigner: ExperimentAssigner = Depends(get_assigner),
) -> RankingService:
    return RankingService(
        store,
        composer,
        personalization,
        assigner,
        experiment_id=settings.RANKING_EXPERIMENT_ID,
        read_timeout=settings.SIGNAL_READ_TIMEOUT_SECONDS,
    )


def get_experiment_service(assigner: ExperimentAssigner = Depends(get_assigner)) -> ExperimentService:
    return ExperimentService(assigner)


def get_health_aggregator(
    store: SignalStore = Depends(get_signal_store),
    composer: RankingComposer = Depends(get_composer),
) -> HealthScoreAggregator:
    return HealthScoreAggregator(
        store,
        composer,
        rank_depth=settings.HEALTH_RANK_DEPTH,
        max_queries=settings.HEALTH_MAX_QUERIES,
        read_timeout=settings.SIGNAL_READ_TIMEOUT_SECONDS,
    )


def get_tag_analytics_service(
    store: SignalStore = Depends(get_signal_store),
    evaluator: TagQualityEvaluator = Depends(get_quality_evaluator),
    assigner: ExperimentAssigner = Depends(get_assigner),
) -> TagAnalyticsService:
    return TagAnalyticsService(
        store,
        evaluator,
        assigner,
        experiment_id=settings.TAG_QUALITY_EXPERIMENT_ID,
        read_timeout=settings.SIGNAL_READ_TIMEOUT_SECONDS,
    )
