"""
告警状态模型 (Alert State Model)

每个服务一行，记录最近一次实际发送告警的时间与连续告警次数，用于冷却去重。
恢复时只清零计数，不删除记录，保留"该服务曾经失败过"的历史。

One row per service, holding the last fired alert time and the consecutive alert
count used for cooldown deduplication. Recovery zeroes the counter but never deletes
the row.
"""
from datetime import datetime

from sqlalchemy import String, Integer, DateTime, Boolean, func
from sqlalchemy.orm import Mapped, mapped_column

from healthwatch.core.database import Base


class AlertState(Base):
    """告警状态表，service 唯一。"""
    __tablename__ = "alert_states"

    id: Mapped[int] = mapped_column(primary_key=True, autoincrement=True)
    service: Mapped[str] = mapped_column(String(100), nullable=False, unique=True, index=True)
    last_alert_at: Mapped[datetime | None] = mapped_column(DateTime(timezone=True), nullable=True)  # 仅在实际发送时更新
    fail_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 连续告警周期数
    is_suppressed: Mapped[bool] = mapped_column(Boolean, nullable=False, default=False)  # 预留：人工静音
    updated_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), server_default=func.now(), onupdate=func.now()
    )
