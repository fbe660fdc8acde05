"""
SLA 月报定时生成任务

每月 sla_day_of_month 日 sla_hour_utc 点（UTC，默认 1 日 01:00）为上一个自然月生成 SLA 报告。
一月触发时报告上一年十二月。生成失败只记录日志，下个月照常执行。
"""
import asyncio
import logging
from datetime import datetime, timezone
from typing import Optional

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.config import settings
from healthwatch.models.sla_report import SlaReport
from healthwatch.services.sla import previous_month, upsert_sla_report
from healthwatch.tasks.schedule import next_monthly_run, seconds_until

logger = logging.getLogger(__name__)


async def generate_previous_month_report(
    session_factory: async_sessionmaker[AsyncSession],
    now: Optional[datetime] = None,
    check_interval_minutes: Optional[int] = None,
) -> SlaReport:
    """为 now 所在月份的上一个月生成并保存 SLA 报告。"""
    now = now or datetime.now(timezone.utc)
    year, month = previous_month(now.date())
    if check_interval_minutes is None:
        check_interval_minutes = settings.check_interval_minutes
    logger.info("开始生成 SLA 月报: %04d-%02d", year, month)
    async with session_factory() as db:
        return await upsert_sla_report(
            db, year, month, now=now, check_interval_minutes=check_interval_minutes
        )


async def sla_scheduler_loop(
    session_factory: async_sessionmaker[AsyncSession],
    day_of_month: Optional[int] = None,
    hour_utc: Optional[int] = None,
):
    """SLA 月报定时生成主循环。"""
    if day_of_month is None:
        day_of_month = settings.sla_day_of_month
    if hour_utc is None:
        hour_utc = settings.sla_hour_utc

    logger.info("SLA 月报定时任务已启动 (day=%d, %02d:00 UTC)", day_of_month, hour_utc)
    last_run = datetime.now(timezone.utc)
    while True:
        target = next_monthly_run(max(datetime.now(timezone.utc), last_run), day_of_month, hour_utc)
        last_run = target
        await asyncio.sleep(seconds_until(target))
        try:
            await generate_previous_month_report(session_factory)
        except Exception as e:
            logger.exception(f"SLA report generation failed: {e}")
