"""
数据模型包 (Data Models Package)

集中导出所有 SQLAlchemy ORM 模型：健康日志、告警状态与 SLA 报告。

Centrally exports all SQLAlchemy ORM models: health logs, alert state and SLA reports.
"""
from healthwatch.models.health_log import HealthLog, HealthStatus, HealthCategory, LogSource
from healthwatch.models.alert_state import AlertState
from healthwatch.models.sla_report import SlaReport

__all__ = [
    "HealthLog", "HealthStatus", "HealthCategory", "LogSource",
    "AlertState", "SlaReport",
]
