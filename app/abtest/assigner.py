"""
实验分桶

assign_variant 是纯函数：同一个 (experiment_id, subject_id, experiment_type) 永远落在同一个桶，
不需要查库。哈希算法版本冻结为 HASH_VERSION=1，改动常量会让所有已有实验的用户翻桶。

曝光 / 转化记录是后台任务，失败只写日志，不影响调用方。
"""

from __future__ import annotations

import asyncio
from datetime import datetime
from enum import Enum
from typing import Any, Callable, Coroutine, Optional, Union

from loguru import logger

from app.abtest.recorder import ConversionStage, ExposureRecord, ExposureRecorder
from app.abtest.stats import VariantResult, compute_variant_results
from app.ranking.entities import utcnow

HASH_VERSION = 1

_MASK_32 = 0xFFFFFFFF
_SIGN_BIT = 0x80000000


class ExperimentType(str, Enum):
    RANKING_FORMULA = "ranking_formula"
    AI_TAG_VARIANTS = "ai_tag_variants"
    UI_VARIANT = "ui_variant"


class Variant(str, Enum):
    A = "A"
    B = "B"
    C = "C"


VARIANT_ORDER: tuple[Variant, ...] = (Variant.A, Variant.B, Variant.C)

VARIANT_COUNTS: dict[ExperimentType, int] = {
    ExperimentType.RANKING_FORMULA: 2,
    ExperimentType.AI_TAG_VARIANTS: 2,
    ExperimentType.UI_VARIANT: 3,
}


def parse_experiment_type(value: Union[str, ExperimentType]) -> ExperimentType:
    try:
        return ExperimentType(value)
    except ValueError:
        allowed = ", ".join(t.value for t in ExperimentType)
        raise ValueError(f"未知实验类型: {value}（可选: {allowed}）") from None


def rolling_hash(value: str) -> int:
    """h = h*31 + code_unit，按 32 位有符号整数回绕；按 UTF-16 码元遍历。"""
    data = value.encode("utf-16-le")
    h = 0
    for i in range(0, len(data), 2):
        h = (h * 31 + (data[i] | (data[i + 1] << 8))) & _MASK_32
    return h - (1 << 32) if h & _SIGN_BIT else h


def variant_count(experiment_type: Union[str, ExperimentType]) -> int:
    return VARIANT_COUNTS[parse_experiment_type(experiment_type)]


def assign_variant(
    experiment_id: str,
    subject_id: Union[str, int],
    experiment_type: Union[str, ExperimentType],
) -> Variant:
    exp_type = parse_experiment_type(experiment_type)
    h = rolling_hash(f"{experiment_id}:{subject_id}:{exp_type.value}")
    return VARIANT_ORDER[abs(h) % VARIANT_COUNTS[exp_type]]


class ExperimentAssigner:
    def __init__(self, recorder: ExposureRecorder, *, clock: Callable[[], datetime] = utcnow):
        self._recorder = recorder
        self._clock = clock
        self._pending: set[asyncio.Task] = set()

    @staticmethod
    def assign(
        experiment_id: str,
        subject_id: Union[str, int],
        experiment_type: Union[str, ExperimentType],
    ) -> Variant:
        return assign_variant(experiment_id, subject_id, experiment_type)

    def _spawn(self, coro: Coroutine[Any, Any, Any], label: str) -> Optional[asyncio.Task]:
        try:
            loop = asyncio.get_running_loop()
        except RuntimeError:
            coro.close()
            logger.error(f"实验{label}记录被丢弃：当前没有运行中的事件循环")
            return None
        task = loop.create_task(self._guard(coro, label))
        self._pending.add(task)
        task.add_done_callback(self._pending.discard)
        return task

    @staticmethod
    async def _guard(coro: Coroutine[Any, Any, Any], label: str) -> None:
        try:
            await coro
        except Exception as exc:
            logger.error(f"实验{label}记录失败（已忽略）: {exc!r}")

    def record_exposure(
        self,
        experiment_id: str,
        subject_id: Union[str, int],
        experiment_type: Union[str, ExperimentType],
        *,
        item_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Optional[asyncio.Task]:
        """追加一条曝光（后台执行）。重试造成的重复曝光在分析侧去重。"""
        try:
            exp_type = parse_experiment_type(experiment_type)
            record = ExposureRecord(
                experiment_id=experiment_id,
                experiment_type=exp_type.value,
                variant=assign_variant(experiment_id, subject_id, exp_type).value,
                subject_id=str(subject_id),
                item_id=item_id,
                metadata=dict(metadata or {}),
                created_at=self._clock(),
            )
        except Exception as exc:
            logger.error(f"实验曝光记录失败（已忽略）: {exc!r}")
            return None
        return self._spawn(self._recorder.insert_exposure(record), "曝光")

    def record_conversion(
        self,
        experiment_id: str,
        subject_id: Union[str, int],
        experiment_type: Union[str, ExperimentType],
        *,
        stage: Union[str, ConversionStage] = ConversionStage.ORDER,
        metadata: Optional[dict] = None,
    ) -> Optional[asyncio.Task]:
        """把最近一条匹配的曝光标记为已转化（后台执行）。"""
        try:
            exp_type = parse_experiment_type(experiment_type)
            conversion_stage = ConversionStage(stage)
        except Exception as exc:
            logger.error(f"实验转化记录失败（已忽略）: {exc!r}")
            return None
        return self._spawn(
            self._recorder.mark_stage(
                experiment_id,
                exp_type.value,
                str(subject_id),
                conversion_stage,
                metadata=dict(metadata or {}),
                at=self._clock(),
            ),
            "转化",
        )

    async def drain(self) -> None:
        """等待所有后台记录结束（测试与停机时使用）。"""
        if self._pending:
            await asyncio.gather(*list(self._pending), return_exceptions=True)

    async def results(
        self,
        experiment_id: str,
        experiment_type: Union[str, ExperimentType],
    ) -> list[VariantResult]:
        exp_type = parse_experiment_type(experiment_type)
        try:
            exposures = await self._recorder.list_exposures(experiment_id, exp_type.value)
        except Exception as exc:
            logger.error(f"读取实验曝光失败: experiment_id='{experiment_id}', err={exc!r}")
            return []
        return compute_variant_results(exposures)
