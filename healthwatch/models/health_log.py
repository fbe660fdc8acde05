"""
健康日志模型 (Health Log Model)

定义探测结果的持久化表结构以及状态、分类两个封闭枚举。
每个监控周期每个探测结果写入一行，只追加不修改，仅由保留期清理删除。

Defines the persisted table for probe results plus the closed status and category
enumerations. One row per probe result per monitoring cycle; append-only, deleted
only by retention cleanup.
"""
import enum
from datetime import datetime

from sqlalchemy import BigInteger, Integer, String, Text, DateTime, func
from sqlalchemy.orm import Mapped, mapped_column

from healthwatch.core.database import Base


class HealthStatus(str, enum.Enum):
    """健康状态，严重程度全序：OK < WARNING < CRITICAL。"""
    OK = "OK"
    WARNING = "WARNING"
    CRITICAL = "CRITICAL"

    @property
    def severity(self) -> int:
        return _SEVERITY[self]

    @property
    def is_failure(self) -> bool:
        return self is not HealthStatus.OK


_SEVERITY = {HealthStatus.OK: 0, HealthStatus.WARNING: 1, HealthStatus.CRITICAL: 2}

# 计入失败 / 事件统计的状态 (Statuses counted as failures / incidents)
FAILURE_STATUSES = (HealthStatus.CRITICAL.value, HealthStatus.WARNING.value)


class HealthCategory(str, enum.Enum):
    """被探测接口的粗粒度分组（封闭枚举）。"""
    AUTH = "AUTH"
    DATABASE = "DATABASE"
    API = "API"
    REQUESTS = "REQUESTS"
    MESSAGING = "MESSAGING"
    UPLOADS = "UPLOADS"
    SECURITY = "SECURITY"
    CACHE = "CACHE"


class LogSource(str, enum.Enum):
    """日志来源：monitor 为探测结果，user 为真实请求触发的应用错误。"""
    MONITOR = "monitor"
    USER = "user"


class HealthLog(Base):
    """
    健康日志表 (Health Log Table)

    存储每次探测的观测结果与诊断信息，为仪表盘查询和 SLA 汇总提供数据基础。

    Stores each probe observation with its diagnostic payload; the data source
    for dashboard queries and SLA aggregation.
    """
    __tablename__ = "health_logs"

    id: Mapped[int] = mapped_column(BigInteger, primary_key=True, autoincrement=True)
    service: Mapped[str] = mapped_column(String(100), nullable=False, index=True)  # 探测服务标识 (Service identifier)
    category: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # HealthCategory
    status: Mapped[str] = mapped_column(String(20), nullable=False, index=True)  # HealthStatus
    latency_ms: Mapped[int | None] = mapped_column(Integer, nullable=True)  # 往返耗时 (Round-trip time)
    status_code: Mapped[int | None] = mapped_column(Integer, nullable=True)  # HTTP 状态码
    url: Mapped[str | None] = mapped_column(String(1024), nullable=True)
    error_message: Mapped[str | None] = mapped_column(Text, nullable=True)
    details: Mapped[str | None] = mapped_column(Text, nullable=True)
    retry_count: Mapped[int] = mapped_column(Integer, nullable=False, default=0)  # 写入时所在的重试序号 (Retries before this attempt)
    source: Mapped[str] = mapped_column(String(20), nullable=False, default=LogSource.MONITOR.value, index=True)
    tested_at: Mapped[datetime] = mapped_column(
        DateTime(timezone=True), nullable=False, server_default=func.now(), index=True
    )
