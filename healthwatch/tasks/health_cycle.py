"""
健康检查周期任务 (Health Check Cycle Task)

一个周期依次执行：带重试的探测集合 → 持久化最终一次尝试的全部结果 → 告警去重与通知。
持久化先于告警评估完成，告警不会基于尚未落库的数据触发。

进程内使用 asyncio.Lock 防止周期重叠：上一个周期仍在运行时，本次调度直接跳过并记录警告。

One cycle runs: retried probe set → persist every result of the final attempt →
alert deduplication. Persistence happens-before alert evaluation. An in-process
lock skips a tick while the previous cycle is still running.
"""
import asyncio
import logging
from datetime import datetime, timedelta, timezone
from typing import Awaitable, Callable, Optional, Sequence

import redis.asyncio as redis
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.redis import get_redis
from healthwatch.models.health_log import HealthStatus
from healthwatch.schemas.health import CheckResult, CycleSummary
from healthwatch.services.alerting import ALERT_COOLDOWN, process_results
from healthwatch.services.cycle_cache import cache_cycle_summary, publish_fired_alerts
from healthwatch.services.notifier import Channel
from healthwatch.services.repository import HealthRepository
from healthwatch.services.retry import MAX_RETRIES, RETRY_DELAY_SECONDS, run_with_retry

logger = logging.getLogger(__name__)


class HealthMonitor:
    """
    健康监控器 (Health Monitor)

    持有探测执行器、会话工厂和通知渠道，全部显式注入，便于测试替换。
    """

    def __init__(
        self,
        run_probe_set: Callable[[], Awaitable[list[CheckResult]]],
        session_factory: async_sessionmaker[AsyncSession],
        channels: Sequence[Channel] = (),
        max_retries: int = MAX_RETRIES,
        retry_delay_seconds: float = RETRY_DELAY_SECONDS,
        cooldown: timedelta = ALERT_COOLDOWN,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        redis_getter: Optional[Callable[[], Awaitable[redis.Redis]]] = get_redis,
    ):
        self.run_probe_set = run_probe_set
        self.session_factory = session_factory
        self.channels = list(channels)
        self.max_retries = max_retries
        self.retry_delay_seconds = retry_delay_seconds
        self.cooldown = cooldown
        self.sleep = sleep
        self.redis_getter = redis_getter
        self._lock = asyncio.Lock()

    @property
    def running(self) -> bool:
        return self._lock.locked()

    async def run_cycle(self) -> Optional[CycleSummary]:
        """执行一个完整周期；上一个周期未结束时跳过并返回 None。"""
        if self._lock.locked():
            logger.warning("Previous health cycle still running, skipping this tick")
            return None
        async with self._lock:
            return await self._run_cycle()

    async def _run_cycle(self) -> CycleSummary:
        started_at = datetime.now(timezone.utc)
        logger.info("Health cycle started")

        outcome = await run_with_retry(
            self.run_probe_set, self.max_retries, self.retry_delay_seconds, self.sleep
        )
        finished_at = datetime.now(timezone.utc)

        async with self.session_factory() as db:
            repo = HealthRepository(db)
            await repo.create_log_entries(
                outcome.results, tested_at=finished_at, retry_count=outcome.attempts - 1
            )
            alerts = await process_results(
                repo, outcome.results, self.channels, now=finished_at, cooldown=self.cooldown
            )

        statuses = [r.status for r in outcome.results]
        summary = CycleSummary(
            started_at=started_at,
            finished_at=finished_at,
            attempts=outcome.attempts,
            total=len(statuses),
            ok=statuses.count(HealthStatus.OK),
            warnings=statuses.count(HealthStatus.WARNING),
            critical=statuses.count(HealthStatus.CRITICAL),
            alerts_fired=len(alerts.fired),
            alerts_suppressed=len(alerts.suppressed),
        )
        logger.info(
            "Health cycle finished: %d OK, %d warning(s), %d critical (attempts=%d, alerts=%d, suppressed=%d)",
            summary.ok, summary.warnings, summary.critical,
            summary.attempts, summary.alerts_fired, summary.alerts_suppressed,
        )

        if self.redis_getter is not None:
            r = await self.redis_getter()
            await cache_cycle_summary(r, summary)
            if alerts.fired:
                await publish_fired_alerts(r, alerts.fired)
        return summary

    async def run_cycle_logged(self) -> Optional[CycleSummary]:
        """供调度循环使用：周期内任何异常只记录日志，不影响后续周期。"""
        try:
            return await self.run_cycle()
        except Exception as e:
            logger.exception(f"Health cycle failed: {e}")
            return None


async def health_loop(monitor: HealthMonitor, interval_minutes: int = 5):
    """
    健康检查调度循环：启动后立即执行一次，此后每 interval_minutes 分钟执行一次。

    每个周期在独立任务中运行，调度节拍不受周期耗时影响；重叠由 HealthMonitor 的锁跳过。
    """
    logger.info(f"Health check loop started (every {interval_minutes} min)")
    running: set[asyncio.Task] = set()
    try:
        while True:
            task = asyncio.create_task(monitor.run_cycle_logged())
            running.add(task)
            task.add_done_callback(running.discard)
            await asyncio.sleep(interval_minutes * 60)
    finally:
        pending = list(running)
        for task in pending:
            task.cancel()
        await asyncio.gather(*pending, return_exceptions=True)
