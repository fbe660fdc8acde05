"""
健康监控管理路由 (Health Monitoring Admin Router)

提供健康看板、日志查询、用户错误列表和手动触发检查接口，均需管理员令牌。
"""
from datetime import datetime, timezone
from typing import AsyncIterator, Optional

import redis.asyncio as redis
from fastapi import APIRouter, Depends, Query
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.core.config import settings
from healthwatch.core.database import async_session, get_db
from healthwatch.core.deps import verify_admin_token
from healthwatch.core.redis import get_redis
from healthwatch.models.health_log import HealthStatus
from healthwatch.schemas.health import (
    ErrorListResponse,
    HealthLogResponse,
    HealthStatusResponse,
    RunResponse,
)
from healthwatch.services.cycle_cache import load_last_cycle
from healthwatch.services.health_query import get_recent_errors, get_status_overview
from healthwatch.services.probe_runner import ProbeRunner
from healthwatch.services.probes import DEFAULT_PROBES, probe_context
from healthwatch.services.repository import HealthRepository

router = APIRouter(
    prefix="/api/v1/health",
    tags=["health"],
    dependencies=[Depends(verify_admin_token)],
)


async def get_probe_runner() -> AsyncIterator[ProbeRunner]:
    """FastAPI 依赖项：在请求期间提供持有独立 HTTP 客户端的探测执行器。"""
    async with probe_context(settings, async_session) as ctx:
        yield ProbeRunner(DEFAULT_PROBES, ctx)


@router.get("/status", response_model=HealthStatusResponse)
async def health_status(
    db: AsyncSession = Depends(get_db),
    r: redis.Redis = Depends(get_redis),
):
    """最近 24 小时健康看板数据。"""
    last_cycle = await load_last_cycle(r)
    return await get_status_overview(db, last_cycle=last_cycle)


@router.get("/logs", response_model=list[HealthLogResponse])
async def list_logs(
    service: Optional[str] = None,
    status: Optional[HealthStatus] = None,
    source: Optional[str] = None,
    limit: int = Query(50, ge=1, le=500),
    db: AsyncSession = Depends(get_db),
):
    """按服务/状态/来源筛选最近的健康日志。"""
    rows = await HealthRepository(db).query_logs(
        service=service,
        status=status.value if status else None,
        source=source,
        limit=limit,
    )
    return [HealthLogResponse.model_validate(r) for r in rows]


@router.get("/errors", response_model=ErrorListResponse)
async def list_errors(db: AsyncSession = Depends(get_db)):
    """最近 24 小时由真实请求触发的应用错误。"""
    return await get_recent_errors(db)


@router.post("/run", response_model=RunResponse)
async def run_checks(
    runner: ProbeRunner = Depends(get_probe_runner),
    db: AsyncSession = Depends(get_db),
):
    """手动执行一次探测（不重试、不告警），结果写入健康日志。"""
    results = await runner.run()
    await HealthRepository(db).create_log_entries(results, tested_at=datetime.now(timezone.utc))
    statuses = [r.status for r in results]
    return RunResponse(
        total=len(results),
        ok=statuses.count(HealthStatus.OK),
        warnings=statuses.count(HealthStatus.WARNING),
        critical=statuses.count(HealthStatus.CRITICAL),
        results=results,
    )
