"""
健康数据只读查询服务

为管理端看板和公开状态页提供只读聚合：最近 24 小时可用率/延迟/错误数、
各分类最新状态、最近日志、按小时延迟趋势以及最近事件。
"""
import logging
from collections import defaultdict
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.core.database import as_utc
from healthwatch.models.health_log import FAILURE_STATUSES, HealthCategory, HealthLog, HealthStatus, LogSource
from healthwatch.schemas.health import (
    CategoryCount,
    CategoryStatus,
    CycleSummary,
    ErrorListResponse,
    HealthLogResponse,
    HealthStatusResponse,
    LatencyPoint,
    PublicIncident,
    PublicStatusResponse,
)
from healthwatch.services.repository import HealthRepository

logger = logging.getLogger(__name__)


async def _window_counts(db: AsyncSession, since: datetime) -> tuple[int, int]:
    """返回 since 之后的 (总检查数, 失败数)。"""
    total = (await db.execute(
        select(func.count(HealthLog.id)).where(HealthLog.tested_at >= since)
    )).scalar() or 0
    failed = (await db.execute(
        select(func.count(HealthLog.id)).where(
            HealthLog.tested_at >= since, HealthLog.status.in_(FAILURE_STATUSES)
        )
    )).scalar() or 0
    return total, failed


async def _latest_by_category(db: AsyncSession) -> dict[str, CategoryStatus]:
    """每个分类最近一次检查的状态；从未检查过的分类视为 OK。"""
    statuses: dict[str, CategoryStatus] = {}
    for cat in HealthCategory:
        latest = (await db.execute(
            select(HealthLog)
            .where(HealthLog.category == cat.value)
            .order_by(HealthLog.tested_at.desc(), HealthLog.id.desc())
            .limit(1)
        )).scalar_one_or_none()
        if latest is None:
            statuses[cat.value] = CategoryStatus()
        else:
            statuses[cat.value] = CategoryStatus(
                status=latest.status,
                latency_ms=latest.latency_ms,
                last_checked=as_utc(latest.tested_at),
            )
    return statuses


async def _latency_trend(db: AsyncSession, since: datetime) -> list[LatencyPoint]:
    """按小时分桶的平均延迟。"""
    rows = (await db.execute(
        select(HealthLog.tested_at, HealthLog.latency_ms)
        .where(HealthLog.tested_at >= since, HealthLog.latency_ms.is_not(None))
        .order_by(HealthLog.tested_at)
    )).all()
    buckets: dict[datetime, list[int]] = defaultdict(list)
    for tested_at, latency_ms in rows:
        hour = as_utc(tested_at).replace(minute=0, second=0, microsecond=0)
        buckets[hour].append(latency_ms)
    return [
        LatencyPoint(time=hour.isoformat(), avg_ms=round(sum(values) / len(values)))
        for hour, values in sorted(buckets.items())
    ]


async def get_status_overview(
    db: AsyncSession,
    last_cycle: Optional[CycleSummary] = None,
    now: Optional[datetime] = None,
    recent_limit: int = 50,
) -> HealthStatusResponse:
    """管理端健康看板数据（最近 24 小时）。"""
    now = now or datetime.now(timezone.utc)
    since_24h = now - timedelta(hours=24)

    total, failed = await _window_counts(db, since_24h)
    uptime = round((total - failed) / total * 100, 1) if total > 0 else 100.0

    avg_latency = (await db.execute(
        select(func.avg(HealthLog.latency_ms)).where(
            HealthLog.tested_at >= since_24h, HealthLog.latency_ms.is_not(None)
        )
    )).scalar()

    error_rows = (await db.execute(
        select(HealthLog.category, func.count(HealthLog.id))
        .where(HealthLog.tested_at >= since_24h, HealthLog.status.in_(FAILURE_STATUSES))
        .group_by(HealthLog.category)
    )).all()

    recent = await HealthRepository(db).query_logs(limit=recent_limit)

    return HealthStatusResponse(
        uptime_percent=uptime,
        total_checks=total,
        failed_checks=failed,
        avg_latency_ms=round(avg_latency) if avg_latency is not None else 0,
        category_status=await _latest_by_category(db),
        recent_logs=[HealthLogResponse.model_validate(r) for r in recent],
        errors_by_category=[CategoryCount(category=row[0], count=row[1]) for row in error_rows],
        latency_trend=await _latency_trend(db, now - timedelta(hours=12)),
        last_cycle=last_cycle,
    )


async def get_recent_errors(
    db: AsyncSession, now: Optional[datetime] = None, limit: int = 50
) -> ErrorListResponse:
    """最近 24 小时由真实请求触发的应用错误。"""
    now = now or datetime.now(timezone.utc)
    errors = await HealthRepository(db).query_logs(
        source=LogSource.USER.value, since=now - timedelta(hours=24), limit=limit
    )
    groups: dict[str, int] = defaultdict(int)
    for e in errors:
        groups[e.category] += 1
    return ErrorListResponse(
        errors=[HealthLogResponse.model_validate(e) for e in errors],
        category_groups=dict(groups),
        total=len(errors),
    )


def overall_status(components: dict[str, CategoryStatus]) -> str:
    """任一分类 CRITICAL 为 DOWN，任一 WARNING 为 DEGRADED，否则 OPERATIONAL。"""
    statuses = {c.status for c in components.values()}
    if HealthStatus.CRITICAL.value in statuses:
        return "DOWN"
    if HealthStatus.WARNING.value in statuses:
        return "DEGRADED"
    return "OPERATIONAL"


async def get_public_status(
    db: AsyncSession, now: Optional[datetime] = None, incident_limit: int = 20
) -> PublicStatusResponse:
    """公开状态页：不包含 URL、响应体等敏感信息。"""
    now = now or datetime.now(timezone.utc)
    components = await _latest_by_category(db)

    incidents = (await db.execute(
        select(HealthLog)
        .where(and_(
            HealthLog.tested_at >= now - timedelta(hours=72),
            HealthLog.status == HealthStatus.CRITICAL.value,
        ))
        .order_by(HealthLog.tested_at.desc(), HealthLog.id.desc())
        .limit(incident_limit)
    )).scalars().all()

    total, failed = await _window_counts(db, now - timedelta(hours=24))
    uptime = round((total - failed) / total * 100, 2) if total > 0 else 100.0

    return PublicStatusResponse(
        status=overall_status(components),
        uptime_24h=uptime,
        checked_at=now,
        components=components,
        incidents=[
            PublicIncident(
                id=i.id,
                service=i.service,
                category=i.category,
                message=i.error_message,
                time=as_utc(i.tested_at),
            )
            for i in incidents
        ],
    )
