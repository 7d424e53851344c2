"""
服务模块入口。

注意：这里不要做“强导入”，否则导入任意子模块时会连带加载数据库模型等依赖，
给测试与轻量脚本带来副作用。
"""

from __future__ import annotations

from typing import Any

__all__ = ["ExperimentService", "RankingService", "TagAnalyticsService"]


_LAZY_IMPORTS = {
    "ExperimentService": (".experiment_service", "ExperimentService"),
    "RankingService": (".ranking_service", "RankingService"),
    "TagAnalyticsService": (".tag_analytics_service", "TagAnalyticsService"),
}


def __getattr__(name: str) -> Any:
    if name not in _LAZY_IMPORTS:
        raise AttributeError(name)
    module_path, attr = _LAZY_IMPORTS[name]
    from importlib import import_module

    module = import_module(module_path, __name__)
    return getattr(module, attr)
