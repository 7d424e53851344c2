from __future__ import annotations

import asyncio
from abc import ABC, abstractmethod
from dataclasses import dataclass, field, replace
from datetime import datetime
from enum import Enum
from typing import Callable, Optional

from sqlalchemy import select
from sqlalchemy.orm import Session

from app.models.experiment import ExperimentExposure
from app.ranking.entities import ensure_utc
from app.ranking.repository import to_naive_utc


class ConversionStage(str, Enum):
    CLICK = "click"
    CONTACT = "contact"
    ORDER = "order"


# 点击 / 联系只写进 metadata，下单才置 converted
STAGE_FLAGS = {
    ConversionStage.CLICK: "clicked",
    ConversionStage.CONTACT: "contacted",
    ConversionStage.ORDER: "converted",
}


@dataclass
class ExposureRecord:
    experiment_id: str
    experiment_type: str
    variant: str
    subject_id: str
    created_at: datetime
    item_id: Optional[str] = None
    metadata: dict = field(default_factory=dict)
    converted: bool = False
    converted_at: Optional[datetime] = None

    @property
    def clicked(self) -> bool:
        return bool(self.metadata.get(STAGE_FLAGS[ConversionStage.CLICK]))

    @property
    def contacted(self) -> bool:
        return bool(self.metadata.get(STAGE_FLAGS[ConversionStage.CONTACT]))


def apply_stage(
    record: ExposureRecord,
    stage: ConversionStage,
    metadata: dict,
    at: datetime,
) -> ExposureRecord:
    merged = {**record.metadata, **metadata, STAGE_FLAGS[stage]: True}
    if stage is ConversionStage.ORDER:
        return replace(record, metadata=merged, converted=True, converted_at=at)
    return replace(record, metadata=merged)


class ExposureRecorder(ABC):
    @abstractmethod
    async def insert_exposure(self, record: ExposureRecord) -> None:
        ...

    @abstractmethod
    async def mark_stage(
        self,
        experiment_id: str,
        experiment_type: str,
        subject_id: str,
        stage: ConversionStage,
        *,
        metadata: dict,
        at: datetime,
    ) -> bool:
        """标记最近一条匹配曝光；没有匹配时返回 False。"""

    @abstractmethod
    async def list_exposures(self, experiment_id: str, experiment_type: str) -> list[ExposureRecord]:
        ...


class InMemoryExposureRecorder(ExposureRecorder):
    def __init__(self):
        self.records: list[ExposureRecord] = []

    async def insert_exposure(self, record: ExposureRecord) -> None:
        self.records.append(record)

    async def mark_stage(self, experiment_id, experiment_type, subject_id, stage, *, metadata, at) -> bool:
        latest_index = None
        for index, record in enumerate(self.records):
            if (
                record.experiment_id == experiment_id
                and record.experiment_type == experiment_type
                and record.subject_id == subject_id
            ):
                if latest_index is None or ensure_utc(record.created_at) >= ensure_utc(
                    self.records[latest_index].created_at
                ):
                    latest_index = index
        if latest_index is None:
            return False
        self.records[latest_index] = apply_stage(self.records[latest_index], stage, metadata, at)
        return True

    async def list_exposures(self, experiment_id: str, experiment_type: str) -> list[ExposureRecord]:
        return [
            r
            for r in self.records
            if r.experiment_id == experiment_id and r.experiment_type == experiment_type
        ]


def record_from_row(row: ExperimentExposure) -> ExposureRecord:
    return ExposureRecord(
        experiment_id=row.experiment_id,
        experiment_type=row.experiment_type,
        variant=row.variant,
        subject_id=row.subject_id,
        created_at=ensure_utc(row.created_at),
        item_id=row.item_id,
        metadata=dict(row.extra or {}),
        converted=bool(row.converted),
        converted_at=ensure_utc(row.converted_at),
    )


class SqlExposureRecorder(ExposureRecorder):
    def __init__(self, session_factory: Callable[[], Session]):
        self._session_factory = session_factory

    def _insert(self, record: ExposureRecord) -> None:
        db: Session = self._session_factory()
        try:
            db.add(
                ExperimentExposure(
                    experiment_id=record.experiment_id,
                    experiment_type=record.experiment_type,
                    variant=record.variant,
                    subject_id=record.subject_id,
                    item_id=record.item_id,
                    extra=dict(record.metadata),
                    converted=record.converted,
                    converted_at=to_naive_utc(record.converted_at) if record.converted_at else None,
                    created_at=to_naive_utc(record.created_at),
                )
            )
            db.commit()
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _mark(self, experiment_id, experiment_type, subject_id, stage, metadata, at) -> bool:
        db: Session = self._session_factory()
        try:
            stmt = (
                select(ExperimentExposure)
                .where(ExperimentExposure.experiment_id == experiment_id)
                .where(ExperimentExposure.experiment_type == experiment_type)
                .where(ExperimentExposure.subject_id == subject_id)
                .order_by(ExperimentExposure.created_at.desc(), ExperimentExposure.id.desc())
                .limit(1)
            )
            row = db.execute(stmt).scalars().first()
            if row is None:
                return False
            updated = apply_stage(record_from_row(row), stage, metadata, at)
            # JSON 列需要整体赋值才会被识别为变更
            row.extra = dict(updated.metadata)
            row.converted = updated.converted
            row.converted_at = to_naive_utc(updated.converted_at) if updated.converted_at else None
            db.commit()
            return True
        except Exception:
            db.rollback()
            raise
        finally:
            db.close()

    def _list(self, experiment_id: str, experiment_type: str) -> list[ExposureRecord]:
        db: Session = self._session_factory()
        try:
            stmt = (
                select(ExperimentExposure)
                .where(ExperimentExposure.experiment_id == experiment_id)
                .where(ExperimentExposure.experiment_type == experiment_type)
            )
            return [record_from_row(r) for r in db.execute(stmt).scalars().all()]
        finally:
            db.close()

    async def insert_exposure(self, record: ExposureRecord) -> None:
        await asyncio.to_thread(self._insert, record)

    async def mark_stage(self, experiment_id, experiment_type, subject_id, stage, *, metadata, at) -> bool:
        return await asyncio.to_thread(self._mark, experiment_id, experiment_type, subject_id, stage, metadata, at)

    async def list_exposures(self, experiment_id: str, experiment_type: str) -> list[ExposureRecord]:
        return await asyncio.to_thread(self._list, experiment_id, experiment_type)
