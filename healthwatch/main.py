"""
HealthWatch 应用入口模块 (HealthWatch Application Entry Module)

负责 FastAPI 应用的完整生命周期：启动时创建数据表并（按配置）启动健康检查、
日志清理和 SLA 月报三个后台循环；关闭时取消后台任务并释放数据库与 Redis 连接。

Application entry point responsible for the FastAPI lifecycle: creates tables and,
when enabled, starts the health, retention and SLA loops at startup; cancels them and
releases database and Redis connections at shutdown.
"""
import logging
from contextlib import AsyncExitStack, asynccontextmanager
from datetime import datetime, timezone

from fastapi import FastAPI
from sqlalchemy import text

from healthwatch import __version__
from healthwatch.core.config import settings
from healthwatch.core.database import Base, async_session, engine
from healthwatch.core.error_monitoring import ErrorMonitoringMiddleware
from healthwatch.core.exceptions import register_exception_handlers
from healthwatch.core.redis import close_redis
# 导入所有模型以确保 SQLAlchemy 表注册 (Import all models to register tables)
from healthwatch.models import AlertState, HealthLog, SlaReport  # noqa: F401
from healthwatch.routers import health, sla, status
from healthwatch.tasks.scheduler import monitoring_runtime, start_background_tasks, stop_background_tasks

logger = logging.getLogger(__name__)


@asynccontextmanager
async def lifespan(app: FastAPI):
    """
    应用生命周期管理器 (Application Lifecycle Manager)

    SCHEDULER_ENABLED=false 时只提供 API，后台循环可由 `healthwatch monitor` 单独运行。
    """
    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)

    async with AsyncExitStack() as stack:
        tasks = []
        if settings.scheduler_enabled:
            monitor = await stack.enter_async_context(monitoring_runtime(settings, async_session))
            tasks = start_background_tasks(monitor, settings, async_session)
            logger.info("Background monitoring loops started")

        yield

        await stop_background_tasks(tasks)

    await close_redis()
    await engine.dispose()


app = FastAPI(
    title="HealthWatch",
    description="Synthetic health monitoring and alerting | 合成健康监控与告警",
    version=__version__,
    lifespan=lifespan,
)

# 注册全局异常处理器 (Register global exception handlers)
register_exception_handlers(app)

# 记录未处理异常和慢请求 (Record unhandled exceptions and slow requests)
app.add_middleware(ErrorMonitoringMiddleware)

app.include_router(health.router)  # 健康看板与日志 (Health dashboard and logs)
app.include_router(sla.router)  # SLA 报告 (SLA reports)
app.include_router(status.router)  # 公开状态页 (Public status page)


@app.get("/health")
async def liveness():
    """
    存活检查接口 (Liveness Endpoint)

    返回本进程及数据库连通性，供负载均衡器和容器编排使用。
    """
    checks = {"api": "ok"}
    try:
        async with engine.connect() as conn:
            await conn.execute(text("SELECT 1"))
        checks["database"] = "ok"
    except Exception:
        checks["database"] = "error"

    overall = "ok" if all(v == "ok" for v in checks.values()) else "degraded"
    return {
        "status": overall,
        "checks": checks,
        "timestamp": datetime.now(timezone.utc).isoformat(),
    }
