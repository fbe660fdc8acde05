"""
调度装配模块 (Scheduler Assembly Module)

根据配置组装探测执行器、通知渠道和健康监控器，并启动三个独立的后台循环：
健康检查（每 N 分钟）、日志清理（每日）和 SLA 月报（每月）。
API 进程的 lifespan 与 CLI 的 monitor 命令共用这里的装配逻辑。

Wires the probe runner, notification channels and health monitor from settings and
starts the three independent loops: health cycle, log retention and monthly SLA.
"""
import asyncio
import logging
from contextlib import asynccontextmanager
from datetime import timedelta
from typing import AsyncIterator

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.config import ChannelConfig, Settings, settings
from healthwatch.core.database import async_session
from healthwatch.services.notifier import build_channels
from healthwatch.services.probe_runner import ProbeRunner
from healthwatch.services.probes import DEFAULT_PROBES, ProbeContext, probe_context
from healthwatch.tasks.health_cycle import HealthMonitor, health_loop
from healthwatch.tasks.log_cleanup import log_cleanup_loop
from healthwatch.tasks.sla_scheduler import sla_scheduler_loop

logger = logging.getLogger(__name__)


def build_monitor(
    cfg: Settings, ctx: ProbeContext, session_factory: async_sessionmaker[AsyncSession]
) -> HealthMonitor:
    """按配置构建健康监控器，通知渠道复用探测上下文的 HTTP 客户端。"""
    channels = build_channels(ChannelConfig.from_settings(cfg), client=ctx.client)
    if not channels:
        logger.warning("No notification channel configured, alerts will only be logged")
    else:
        logger.info(f"Notification channels: {', '.join(c.name for c in channels)}")
    return HealthMonitor(
        ProbeRunner(DEFAULT_PROBES, ctx),
        session_factory,
        channels=channels,
        max_retries=cfg.max_retries,
        retry_delay_seconds=cfg.retry_delay_seconds,
        cooldown=timedelta(minutes=cfg.alert_cooldown_minutes),
    )


@asynccontextmanager
async def monitoring_runtime(
    cfg: Settings = settings,
    session_factory: async_sessionmaker[AsyncSession] = async_session,
) -> AsyncIterator[HealthMonitor]:
    """在共享 HTTP 客户端的生命周期内提供健康监控器。"""
    async with probe_context(cfg, session_factory) as ctx:
        yield build_monitor(cfg, ctx, session_factory)


def start_background_tasks(
    monitor: HealthMonitor,
    cfg: Settings = settings,
    session_factory: async_sessionmaker[AsyncSession] = async_session,
) -> list[asyncio.Task]:
    """启动三个后台循环，返回任务列表供关闭时取消。"""
    return [
        asyncio.create_task(health_loop(monitor, cfg.check_interval_minutes)),
        asyncio.create_task(
            log_cleanup_loop(session_factory, cfg.log_retention_days, cfg.retention_hour_utc)
        ),
        asyncio.create_task(
            sla_scheduler_loop(session_factory, cfg.sla_day_of_month, cfg.sla_hour_utc)
        ),
    ]


async def stop_background_tasks(tasks: list[asyncio.Task]) -> None:
    """取消全部后台任务并等待其退出。"""
    for task in tasks:
        task.cancel()
    await asyncio.gather(*tasks, return_exceptions=True)
