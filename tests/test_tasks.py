"""
后台任务测试：健康检查周期、日志清理与调度时间计算。
"""
import asyncio
import json
from datetime import datetime, timedelta, timezone
from unittest.mock import AsyncMock

import httpx
import pytest
from sqlalchemy import select

from healthwatch.models.health_log import HealthCategory, HealthLog, HealthStatus
from healthwatch.schemas.health import CheckResult
from healthwatch.services.cycle_cache import ALERT_EVENTS_CHANNEL, LAST_CYCLE_KEY, load_last_cycle
from healthwatch.services.notifier import Channel
from healthwatch.services.probe_runner import ProbeRunner
from healthwatch.services.probes import DEFAULT_PROBES
from healthwatch.tasks.health_cycle import HealthMonitor, health_loop
from healthwatch.tasks.log_cleanup import cleanup_old_logs
from healthwatch.tasks.schedule import next_daily_run, next_monthly_run, seconds_until


class HangingSession:
    """execute 永不返回的会话，模拟数据库无响应。"""

    async def __aenter__(self):
        return self

    async def __aexit__(self, *exc):
        return False

    async def execute(self, statement):
        await asyncio.sleep(10)


def healthy_target(request: httpx.Request) -> httpx.Response:
    if request.method == "POST" or request.url.path == "/api/admin/users":
        return httpx.Response(401)
    return httpx.Response(200)


class TestHealthCycle:
    async def test_database_timeout_persisted_once_and_alerted_once(
        self, make_probe_context, session_factory, db_session, fake_redis
    ):
        ctx = make_probe_context(healthy_target, session_factory=HangingSession, timeout=0.05)
        email = AsyncMock(return_value=True)
        slack = AsyncMock(return_value=True)
        sleep = AsyncMock()

        async def redis_getter():
            return fake_redis

        monitor = HealthMonitor(
            ProbeRunner(DEFAULT_PROBES, ctx),
            session_factory,
            channels=[Channel("email", email), Channel("slack", slack)],
            sleep=sleep,
            redis_getter=redis_getter,
        )

        summary = await monitor.run_cycle()

        assert summary.attempts == 3
        assert summary.critical == 1
        assert summary.ok == summary.total - 1
        assert summary.alerts_fired == 1
        assert sleep.await_count == 2

        rows = (await db_session.execute(
            select(HealthLog).where(HealthLog.service == "db-connection")
        )).scalars().all()
        assert len(rows) == 1
        assert rows[0].status == HealthStatus.CRITICAL.value
        assert rows[0].retry_count == 2

        all_rows = (await db_session.execute(select(HealthLog))).scalars().all()
        assert len(all_rows) == summary.total

        assert email.await_count == 1
        assert slack.await_count == 1

        cached = await load_last_cycle(fake_redis)
        assert cached == summary
        assert LAST_CYCLE_KEY in fake_redis._store
        assert len(fake_redis.published) == 1
        channel, message = fake_redis.published[0]
        assert channel == ALERT_EVENTS_CHANNEL
        assert json.loads(message)["service"] == "db-connection"

    async def test_overlapping_cycle_is_skipped(self, session_factory):
        release = asyncio.Event()
        calls = 0

        async def slow_probe_set():
            nonlocal calls
            calls += 1
            await release.wait()
            return [CheckResult(service="svc", category=HealthCategory.API, status=HealthStatus.OK)]

        monitor = HealthMonitor(slow_probe_set, session_factory, redis_getter=None)
        first = asyncio.create_task(monitor.run_cycle())
        await asyncio.sleep(0)
        assert monitor.running

        assert await monitor.run_cycle() is None

        release.set()
        summary = await first
        assert summary.ok == 1
        assert calls == 1
        assert not monitor.running

    async def test_cycle_failure_is_logged_not_raised(self, session_factory):
        async def probe_set():
            return [CheckResult(service="svc", category=HealthCategory.API, status=HealthStatus.OK)]

        def broken_factory():
            raise RuntimeError("database unavailable")

        monitor = HealthMonitor(probe_set, broken_factory, redis_getter=None)
        assert await monitor.run_cycle_logged() is None
        assert not monitor.running

    async def test_health_loop_runs_immediately(self):
        ran = asyncio.Event()
        monitor = AsyncMock()
        monitor.run_cycle_logged.side_effect = lambda: ran.set()

        task = asyncio.create_task(health_loop(monitor, interval_minutes=5))
        await asyncio.wait_for(ran.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert monitor.run_cycle_logged.await_count == 1

    async def test_health_loop_reaps_cycle_on_shutdown(self):
        started = asyncio.Event()
        reaped = []

        class SlowMonitor:
            async def run_cycle_logged(self):
                started.set()
                try:
                    await asyncio.sleep(60)
                finally:
                    reaped.append(True)

        task = asyncio.create_task(health_loop(SlowMonitor(), interval_minutes=5))
        await asyncio.wait_for(started.wait(), timeout=1)
        task.cancel()
        with pytest.raises(asyncio.CancelledError):
            await task
        assert reaped == [True]


class TestLogCleanup:
    async def test_deletes_only_expired_rows(self, session_factory, db_session):
        now = datetime(2024, 3, 31, tzinfo=timezone.utc)
        db_session.add_all([
            HealthLog(service="old", category="API", status="OK", tested_at=now - timedelta(days=31)),
            HealthLog(service="new", category="API", status="OK", tested_at=now - timedelta(days=29)),
        ])
        await db_session.commit()

        deleted = await cleanup_old_logs(session_factory, retention_days=30, now=now)

        assert deleted == 1
        db_session.expire_all()
        services = (await db_session.execute(select(HealthLog.service))).scalars().all()
        assert services == ["new"]


class TestSchedule:
    def test_next_daily_run(self):
        now = datetime(2024, 3, 5, 10, 30, tzinfo=timezone.utc)
        assert next_daily_run(now, 0) == datetime(2024, 3, 6, 0, 0, tzinfo=timezone.utc)
        assert next_daily_run(now, 12) == datetime(2024, 3, 5, 12, 0, tzinfo=timezone.utc)

    def test_next_daily_run_at_exact_time_moves_to_tomorrow(self):
        now = datetime(2024, 3, 5, 0, 0, tzinfo=timezone.utc)
        assert next_daily_run(now, 0) == datetime(2024, 3, 6, 0, 0, tzinfo=timezone.utc)

    def test_next_monthly_run(self):
        now = datetime(2024, 3, 5, tzinfo=timezone.utc)
        assert next_monthly_run(now, 1, 1) == datetime(2024, 4, 1, 1, 0, tzinfo=timezone.utc)
        early = datetime(2024, 3, 1, 0, 30, tzinfo=timezone.utc)
        assert next_monthly_run(early, 1, 1) == datetime(2024, 3, 1, 1, 0, tzinfo=timezone.utc)

    def test_next_monthly_run_december_wrap(self):
        now = datetime(2024, 12, 15, tzinfo=timezone.utc)
        assert next_monthly_run(now, 1, 1) == datetime(2025, 1, 1, 1, 0, tzinfo=timezone.utc)

    def test_seconds_until_never_negative(self):
        now = datetime(2024, 3, 5, tzinfo=timezone.utc)
        assert seconds_until(now - timedelta(seconds=5), now) == 0.0
        assert seconds_until(now + timedelta(minutes=1), now) == 60.0
