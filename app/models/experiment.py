from __future__ import annotations

from datetime import datetime

from sqlalchemy import JSON, Boolean, DateTime, Index, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class ExperimentExposure(Base):
    """实验曝光记录，只用于分析；分桶结果由哈希决定，不依赖这张表。"""

    __tablename__ = "experiments"
    __table_args__ = (
        Index("ix_experiments_lookup", "experiment_id", "experiment_type", "subject_id"),
    )

    id: Mapped[int] = mapped_column(Integer, primary_key=True, autoincrement=True)
    experiment_id: Mapped[str] = mapped_column(String(128), index=True)
    experiment_type: Mapped[str] = mapped_column(String(32))
    variant: Mapped[str] = mapped_column(String(4))
    subject_id: Mapped[str] = mapped_column(String(128))
    item_id: Mapped[str | None] = mapped_column(String(64), nullable=True)
    # "metadata" 在 declarative 类上是保留属性名，这里只让列名保持一致
    extra: Mapped[dict] = mapped_column("metadata", JSON, default=dict)
    converted: Mapped[bool] = mapped_column(Boolean, default=False)
    converted_at: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    created_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, index=True)
