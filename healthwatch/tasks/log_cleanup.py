"""
日志清理任务模块。

每天在配置的 UTC 时刻删除超过保留期限的健康日志，防止数据无限增长。
默认保留 30 天，可通过环境变量 LOG_RETENTION_DAYS 配置。
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.config import settings
from healthwatch.services.repository import HealthRepository
from healthwatch.tasks.schedule import next_daily_run, seconds_until

logger = logging.getLogger(__name__)


async def cleanup_old_logs(
    session_factory: async_sessionmaker[AsyncSession],
    retention_days: Optional[int] = None,
    now: Optional[datetime] = None,
) -> int:
    """
    删除 tested_at 早于 (now - retention_days) 的健康日志

    Returns:
        int: 删除条数
    """
    if retention_days is None:
        retention_days = settings.log_retention_days
    now = now or datetime.now(timezone.utc)
    cutoff = now - timedelta(days=retention_days)

    async with session_factory() as db:
        deleted = await HealthRepository(db).delete_logs_older_than(cutoff)

    if deleted > 0:
        logger.info(f"Log cleanup: deleted {deleted} entries older than {retention_days} days")
    else:
        logger.debug(f"Log cleanup: no entries older than {retention_days} days found")
    return deleted


async def log_cleanup_loop(
    session_factory: async_sessionmaker[AsyncSession],
    retention_days: Optional[int] = None,
    hour_utc: Optional[int] = None,
):
    """日志清理后台循环，每天 hour_utc:00 (UTC) 执行一次。"""
    if retention_days is None:
        retention_days = settings.log_retention_days
    if hour_utc is None:
        hour_utc = settings.retention_hour_utc

    logger.info(f"Starting log cleanup loop with {retention_days} days retention")

    last_run = datetime.now(timezone.utc)
    while True:
        # 以上次触发时刻为基准，避免提前唤醒导致同一时刻重复执行
        target = next_daily_run(max(datetime.now(timezone.utc), last_run), hour_utc)
        last_run = target
        await asyncio.sleep(seconds_until(target))
        try:
            await cleanup_old_logs(session_factory, retention_days)
        except Exception as e:
            logger.exception(f"Log cleanup error: {e}")
