"""
SLA 相关请求/响应模型
"""
from datetime import datetime
from typing import Optional

from pydantic import BaseModel


class SlaReportData(BaseModel):
    """SLA 汇总计算结果（不含生成时间），同一输入必定得到相同结果。"""
    year: int
    month: int
    uptime_percent: float
    total_checks: int
    failed_checks: int
    downtime_minutes: int
    avg_latency_ms: int
    incidents_by_category: dict[str, int]


class SlaReportResponse(SlaReportData):
    """已存储的 SLA 报告。"""
    id: int
    generated_at: datetime

    model_config = {"from_attributes": True}


class SlaGenerateRequest(BaseModel):
    """手动生成 SLA 报告的请求体，缺省为当前月份。"""
    year: Optional[int] = None
    month: Optional[int] = None


class SlaOverviewResponse(BaseModel):
    """已存储的报告列表 + 当月实时计算结果。"""
    reports: list[SlaReportResponse]
    current_month: SlaReportData
