"""
健康检查相关数据模型

定义探测结果 CheckResult、健康日志查询、状态看板和公开状态页的数据结构。
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel

from healthwatch.models.health_log import HealthCategory, HealthStatus


class CheckResult(BaseModel):
    """单次探测产生的观测结果（不持久化，写入时转换为 HealthLog）。"""
    service: str
    category: HealthCategory
    status: HealthStatus
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    details: Optional[str] = None


class HealthLogResponse(BaseModel):
    """健康日志响应体。"""
    id: int
    service: str
    category: str
    status: str
    latency_ms: Optional[int] = None
    status_code: Optional[int] = None
    url: Optional[str] = None
    error_message: Optional[str] = None
    details: Optional[str] = None
    retry_count: int = 0
    source: str
    tested_at: datetime

    model_config = {"from_attributes": True}


class CategoryStatus(BaseModel):
    """某分类最近一次检查的状态。"""
    status: str = HealthStatus.OK.value
    latency_ms: Optional[int] = None
    last_checked: Optional[datetime] = None


class CategoryCount(BaseModel):
    category: str
    count: int


class LatencyPoint(BaseModel):
    """延迟趋势数据点（按小时）。"""
    time: str
    avg_ms: int


class CycleSummary(BaseModel):
    """一次监控周期的摘要。"""
    started_at: datetime
    finished_at: datetime
    attempts: int
    total: int
    ok: int
    warnings: int
    critical: int
    alerts_fired: int = 0
    alerts_suppressed: int = 0


class HealthStatusResponse(BaseModel):
    """管理端健康看板（最近 24 小时）。"""
    uptime_percent: float
    total_checks: int
    failed_checks: int
    avg_latency_ms: int
    category_status: dict[str, CategoryStatus]
    recent_logs: list[HealthLogResponse]
    errors_by_category: list[CategoryCount]
    latency_trend: list[LatencyPoint]
    last_cycle: Optional[CycleSummary] = None


class ErrorListResponse(BaseModel):
    """用户触发的应用错误列表。"""
    errors: list[HealthLogResponse]
    category_groups: dict[str, int]
    total: int


class RunResponse(BaseModel):
    """手动触发检查的结果。"""
    total: int
    ok: int
    warnings: int
    critical: int
    results: list[CheckResult]


class PublicIncident(BaseModel):
    """公开状态页的事件条目（不含敏感信息）。"""
    id: int
    service: str
    category: str
    message: Optional[str] = None
    time: datetime


class PublicStatusResponse(BaseModel):
    """公开状态页响应体。"""
    status: str  # OPERATIONAL / DEGRADED / DOWN
    uptime_24h: float
    checked_at: datetime
    components: dict[str, CategoryStatus]
    incidents: list[PublicIncident]
