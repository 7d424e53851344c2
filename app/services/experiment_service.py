from __future__ import annotations

from typing import Optional

from app.abtest.assigner import ExperimentAssigner, Variant, parse_experiment_type
from app.abtest.recorder import ConversionStage
from app.abtest.stats import VariantResult


def _require(value: Optional[str], name: str) -> str:
    if value is None or not str(value).strip():
        raise ValueError(f"{name} 不能为空")
    return str(value).strip()


class ExperimentService:
    """实验接口的参数校验层；记录类操作只负责投递，从不向调用方报错。"""

    def __init__(self, assigner: ExperimentAssigner):
        self._assigner = assigner

    def assign(self, experiment_id: str, subject_id: str, experiment_type: str) -> Variant:
        return self._assigner.assign(
            _require(experiment_id, "experimentId"),
            _require(subject_id, "subjectId"),
            parse_experiment_type(experiment_type),
        )

    def record_exposure(
        self,
        experiment_id: str,
        subject_id: str,
        experiment_type: str,
        *,
        item_id: Optional[str] = None,
        metadata: Optional[dict] = None,
    ) -> Variant:
        variant = self.assign(experiment_id, subject_id, experiment_type)
        self._assigner.record_exposure(
            experiment_id.strip(),
            subject_id.strip(),
            experiment_type,
            item_id=item_id,
            metadata=metadata,
        )
        return variant

    def record_conversion(
        self,
        experiment_id: str,
        subject_id: str,
        experiment_type: str,
        *,
        stage: str = ConversionStage.ORDER.value,
        metadata: Optional[dict] = None,
    ) -> None:
        _require(experiment_id, "experimentId")
        _require(subject_id, "subjectId")
        parse_experiment_type(experiment_type)
        try:
            conversion_stage = ConversionStage(stage)
        except ValueError:
            raise ValueError(f"未知转化阶段: {stage}（可选: click, contact, order）") from None
        self._assigner.record_conversion(
            experiment_id.strip(),
            subject_id.strip(),
            experiment_type,
            stage=conversion_stage,
            metadata=metadata,
        )

    async def results(self, experiment_id: str, experiment_type: str) -> list[VariantResult]:
        return await self._assigner.results(_require(experiment_id, "experimentId"), parse_experiment_type(experiment_type))
