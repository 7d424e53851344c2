from __future__ import annotations

from datetime import datetime

from sqlalchemy import DateTime, Float, Integer, String
from sqlalchemy.orm import Mapped, mapped_column

from app.core.database import Base


class TagUsage(Base):
    __tablename__ = "tag_usage"

    tag: Mapped[str] = mapped_column(String(128), primary_key=True)
    usage_count: Mapped[int] = mapped_column(Integer, default=0)
    search_count: Mapped[int] = mapped_column(Integer, default=0)
    match_count: Mapped[int] = mapped_column(Integer, default=0)
    last_used: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)


class TagConversionMetric(Base):
    """标签漏斗快照，由 app.jobs.refresh_tag_metrics 定期重算。"""

    __tablename__ = "tag_conversion_metrics"

    tag: Mapped[str] = mapped_column(String(128), primary_key=True)
    view_count: Mapped[int] = mapped_column(Integer, default=0)
    click_count: Mapped[int] = mapped_column(Integer, default=0)
    contact_count: Mapped[int] = mapped_column(Integer, default=0)
    order_count: Mapped[int] = mapped_column(Integer, default=0)
    # 冗余存储的比率，方便直接查表；引擎读取时按计数重算
    click_through_rate: Mapped[float] = mapped_column(Float, default=0.0)
    contact_rate: Mapped[float] = mapped_column(Float, default=0.0)
    conversion_rate: Mapped[float] = mapped_column(Float, default=0.0)
    last_used: Mapped[datetime | None] = mapped_column(DateTime, nullable=True)
    updated_at: Mapped[datetime] = mapped_column(DateTime, default=datetime.utcnow, onupdate=datetime.utcnow)
