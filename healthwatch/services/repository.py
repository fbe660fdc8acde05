"""
健康数据仓储服务 (Health Data Repository Service)

封装健康日志、告警状态和 SLA 报告的全部读写操作，核心流程只通过该接口访问存储。
upsert 采用"先查询再更新/插入"的方式，兼容 PostgreSQL 与 SQLite。

Wraps every read and write of health logs, alert state and SLA reports; the core
only reaches storage through this interface. Upserts are select-then-update/insert
so they work on both PostgreSQL and SQLite.
"""
import logging
from datetime import datetime, timezone
from typing import Any, Iterable, Optional

from sqlalchemy import delete, select
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.models.alert_state import AlertState
from healthwatch.models.health_log import HealthLog, LogSource
from healthwatch.models.sla_report import SlaReport
from healthwatch.schemas.health import CheckResult

logger = logging.getLogger(__name__)


def _log_from_result(
    result: CheckResult, tested_at: datetime, retry_count: int, source: str
) -> HealthLog:
    return HealthLog(
        service=result.service,
        category=result.category.value,
        status=result.status.value,
        latency_ms=result.latency_ms,
        status_code=result.status_code,
        url=result.url,
        error_message=result.error_message,
        details=result.details,
        retry_count=retry_count,
        source=source,
        tested_at=tested_at,
    )


class HealthRepository:
    """健康数据仓储类"""

    def __init__(self, db: AsyncSession):
        self.db = db

    # ── 健康日志 (Health Logs) ────────────────────────────────────────

    async def create_log_entry(
        self,
        result: CheckResult,
        tested_at: Optional[datetime] = None,
        retry_count: int = 0,
        source: str = LogSource.MONITOR.value,
    ) -> HealthLog:
        """写入单条健康日志并提交。"""
        entry = _log_from_result(result, tested_at or datetime.now(timezone.utc), retry_count, source)
        self.db.add(entry)
        await self.db.commit()
        return entry

    async def create_log_entries(
        self,
        results: Iterable[CheckResult],
        tested_at: Optional[datetime] = None,
        retry_count: int = 0,
    ) -> list[HealthLog]:
        """
        批量写入一个周期的全部结果，单次提交

        Args:
            results: 最终一次尝试的探测结果
            tested_at: 写入时间，缺省为当前 UTC 时间
            retry_count: 最终尝试之前的重试次数

        Returns:
            list[HealthLog]: 已持久化的日志行
        """
        tested_at = tested_at or datetime.now(timezone.utc)
        entries = [
            _log_from_result(r, tested_at, retry_count, LogSource.MONITOR.value) for r in results
        ]
        self.db.add_all(entries)
        await self.db.commit()
        return entries

    async def query_logs(
        self,
        service: Optional[str] = None,
        status: Optional[str] = None,
        since: Optional[datetime] = None,
        until: Optional[datetime] = None,
        source: Optional[str] = None,
        limit: Optional[int] = 50,
    ) -> list[HealthLog]:
        """按服务/状态/时间范围/来源筛选日志，按时间倒序返回。"""
        query = select(HealthLog)
        if service:
            query = query.where(HealthLog.service == service)
        if status:
            query = query.where(HealthLog.status == status)
        if since is not None:
            query = query.where(HealthLog.tested_at >= since)
        if until is not None:
            query = query.where(HealthLog.tested_at < until)
        if source:
            query = query.where(HealthLog.source == source)
        query = query.order_by(HealthLog.tested_at.desc(), HealthLog.id.desc())
        if limit is not None:
            query = query.limit(limit)
        result = await self.db.execute(query)
        return list(result.scalars().all())

    async def delete_logs_older_than(self, cutoff: datetime) -> int:
        """删除 tested_at 早于 cutoff 的日志，返回删除条数。"""
        result = await self.db.execute(delete(HealthLog).where(HealthLog.tested_at < cutoff))
        await self.db.commit()
        return result.rowcount or 0

    # ── 告警状态 (Alert State) ────────────────────────────────────────

    async def get_alert_state(self, service: str) -> Optional[AlertState]:
        result = await self.db.execute(select(AlertState).where(AlertState.service == service))
        return result.scalar_one_or_none()

    async def upsert_alert_state(self, service: str, **fields: Any) -> AlertState:
        """按 service 更新告警状态，不存在时插入。"""
        state = await self.get_alert_state(service)
        if state is None:
            state = AlertState(service=service, fail_count=0, is_suppressed=False)
            self.db.add(state)
        for key, value in fields.items():
            setattr(state, key, value)
        await self.db.commit()
        return state

    # ── SLA 报告 (SLA Reports) ───────────────────────────────────────

    async def upsert_sla_report(self, year: int, month: int, fields: dict[str, Any]) -> SlaReport:
        """按自然键 (year, month) 覆盖写入报告的全部字段。"""
        result = await self.db.execute(
            select(SlaReport).where(SlaReport.year == year, SlaReport.month == month)
        )
        report = result.scalar_one_or_none()
        if report is None:
            report = SlaReport(year=year, month=month)
            self.db.add(report)
        for key, value in fields.items():
            setattr(report, key, value)
        await self.db.commit()
        return report

    async def list_sla_reports(self, limit: int = 24) -> list[SlaReport]:
        """按年月倒序返回已存储的报告。"""
        result = await self.db.execute(
            select(SlaReport).order_by(SlaReport.year.desc(), SlaReport.month.desc()).limit(limit)
        )
        return list(result.scalars().all())
