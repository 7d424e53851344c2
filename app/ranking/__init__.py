"""
排序与个性化引擎

文本相关性、标签质量、用户偏好三路信号合成最终排序；所有读取都经由注入的 SignalStore。
"""

from app.ranking.composer import RankingComposer
from app.ranking.personalization import PersonalizationProfile
from app.ranking.quality import TagQualityEvaluator
from app.ranking.relevance import TextRelevanceScorer
from app.ranking.repository import SqlSignalStore
from app.ranking.signal_store import InMemorySignalStore, SignalStore

__all__ = [
    "InMemorySignalStore",
    "PersonalizationProfile",
    "RankingComposer",
    "SignalStore",
    "SqlSignalStore",
    "TagQualityEvaluator",
    "TextRelevanceScorer",
]
