"""
HealthWatch 命令行入口模块。

提供 CLI 命令：monitor（前台运行调度循环）、serve（启动 API 服务）、
check（执行一次完整检查周期）、sla（生成 SLA 月报）和 cleanup（清理过期日志）。
"""
import asyncio
import logging
import signal
import sys

import click

from healthwatch import __version__

logger = logging.getLogger("healthwatch")


async def _create_tables():
    from healthwatch.core.database import Base, engine
    from healthwatch import models  # noqa: F401

    async with engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)


async def _shutdown_resources():
    from healthwatch.core.database import engine
    from healthwatch.core.redis import close_redis

    await close_redis()
    await engine.dispose()


@click.group(invoke_without_command=True)
@click.option("--verbose", "-v", is_flag=True, help="Verbose output")
@click.version_option(version=__version__)
@click.pass_context
def cli(ctx, verbose):
    """HealthWatch - 合成健康监控与告警。"""
    ctx.ensure_object(dict)
    ctx.obj["verbose"] = verbose

    level = logging.DEBUG if verbose else logging.INFO
    logging.basicConfig(
        level=level,
        format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
    )

    if ctx.invoked_subcommand is None:
        click.echo(f"HealthWatch v{__version__}")
        click.echo("Use --help for available commands")


@cli.command()
def monitor():
    """以前台模式运行健康检查、日志清理和 SLA 月报循环。"""
    from healthwatch.core.config import settings
    from healthwatch.core.database import async_session
    from healthwatch.tasks.scheduler import monitoring_runtime, start_background_tasks, stop_background_tasks

    async def _run():
        await _create_tables()
        stop = asyncio.Event()
        loop = asyncio.get_running_loop()

        # 注册信号处理，优雅关闭
        def _shutdown(sig):
            logger.info(f"Received {sig.name}, shutting down...")
            stop.set()

        for sig in (signal.SIGINT, signal.SIGTERM):
            loop.add_signal_handler(sig, _shutdown, sig)

        logger.info(f"Starting HealthWatch monitor v{__version__}")
        logger.info(f"Target: {settings.target_base_url}")
        logger.info(f"Check interval: {settings.check_interval_minutes} min")
        try:
            async with monitoring_runtime(settings, async_session) as health_monitor:
                tasks = start_background_tasks(health_monitor, settings, async_session)
                await stop.wait()
                await stop_background_tasks(tasks)
        finally:
            await _shutdown_resources()

    try:
        asyncio.run(_run())
    except Exception:
        logger.exception("Monitor crashed")
        sys.exit(1)


@cli.command()
@click.option("--host", default="0.0.0.0", help="Bind address")
@click.option("--port", default=8000, type=int, help="Bind port")
def serve(host, port):
    """启动 API 服务。"""
    import uvicorn

    uvicorn.run("healthwatch.main:app", host=host, port=port)


@cli.command()
def check():
    """执行一次带重试的完整检查周期（持久化 + 告警），输出摘要。"""
    from healthwatch.core.config import settings
    from healthwatch.core.database import async_session
    from healthwatch.tasks.scheduler import monitoring_runtime

    async def _run():
        await _create_tables()
        try:
            async with monitoring_runtime(settings, async_session) as health_monitor:
                return await health_monitor.run_cycle()
        finally:
            await _shutdown_resources()

    summary = asyncio.run(_run())
    if summary is None:
        click.echo("❌ Check did not run", err=True)
        sys.exit(1)
    click.echo(f"Attempts: {summary.attempts}")
    click.echo(f"✅ OK: {summary.ok}")
    click.echo(f"⚠️  Warnings: {summary.warnings}")
    click.echo(f"🔴 Critical: {summary.critical}")
    click.echo(f"Alerts fired: {summary.alerts_fired}, suppressed: {summary.alerts_suppressed}")
    if summary.critical:
        sys.exit(2)


@cli.command()
@click.option("--year", type=int, default=None, help="Report year (default: previous month)")
@click.option("--month", type=int, default=None, help="Report month 1-12 (default: previous month)")
def sla(year, month):
    """生成（或覆盖）指定月份的 SLA 报告。"""
    from datetime import datetime, timezone

    from healthwatch.core.config import settings
    from healthwatch.core.database import async_session
    from healthwatch.core.exceptions import ValidationError
    from healthwatch.services.sla import previous_month, upsert_sla_report

    if year is None or month is None:
        prev_year, prev_month = previous_month(datetime.now(timezone.utc).date())
        if year is None:
            year = prev_year
        if month is None:
            month = prev_month

    async def _run():
        await _create_tables()
        try:
            async with async_session() as db:
                return await upsert_sla_report(
                    db, year, month, check_interval_minutes=settings.check_interval_minutes
                )
        finally:
            await _shutdown_resources()

    try:
        report = asyncio.run(_run())
    except ValidationError as e:
        click.echo(f"❌ {e.message}: {e.detail}", err=True)
        sys.exit(1)
    click.echo(f"SLA {report.year:04d}-{report.month:02d}")
    click.echo(f"   Uptime: {report.uptime_percent:.2f}%")
    click.echo(f"   Checks: {report.total_checks} (failed {report.failed_checks})")
    click.echo(f"   Downtime: ~{report.downtime_minutes} min")
    click.echo(f"   Avg latency: {report.avg_latency_ms}ms")


@cli.command()
@click.option("--days", type=int, default=None, help="Retention window in days")
def cleanup(days):
    """删除超过保留期限的健康日志。"""
    from healthwatch.core.database import async_session
    from healthwatch.tasks.log_cleanup import cleanup_old_logs

    async def _run():
        await _create_tables()
        try:
            return await cleanup_old_logs(async_session, days)
        finally:
            await _shutdown_resources()

    deleted = asyncio.run(_run())
    click.echo(f"Deleted {deleted} log entries")


def main():
    """CLI 入口函数。"""
    cli()


if __name__ == "__main__":
    main()
