"""
SLA 报告模型

每个 (year, month) 一行，重复生成时覆盖更新。
"""
from datetime import datetime

from sqlalchemy import Integer, Float, DateTime, JSON, UniqueConstraint
from sqlalchemy.orm import Mapped, mapped_column

from healthwatch.core.database import Base


class SlaReport(Base):
    """月度 SLA 报告表。"""
    __tablename__ = "sla_reports"
    __table_args__ = (UniqueConstraint("year", "month", name="uq_sla_reports_year_month"),)

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    year: Mapped[int] = mapped_column(Integer, nullable=False)
    month: Mapped[int] = mapped_column(Integer, nullable=False)  # 1-12
    uptime_percent: Mapped[float] = mapped_column(Float, nullable=False, default=100.0)
    total_checks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    failed_checks: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    downtime_minutes: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 估算值：CRITICAL 次数 × 检查间隔
    avg_latency_ms: Mapped[int] = mapped_column(Integer, nullable=False, default=0)
    incidents_by_category: Mapped[dict] = mapped_column(JSON, nullable=False, default=dict)  # {"API": 3, ...}
    generated_at: Mapped[datetime] = mapped_column(DateTime(timezone=True), nullable=False)
