"""
命令行测试

数据库、Redis 与监控运行时均以替身注入，命令本身只验证参数解析、默认值与退出码。
"""
from contextlib import asynccontextmanager, nullcontext
from datetime import datetime, timezone
from types import SimpleNamespace

import pytest
from click.testing import CliRunner

import healthwatch.cli as cli_module
import healthwatch.core.database as database_module
import healthwatch.services.sla as sla_module
import healthwatch.tasks.scheduler as scheduler_module
from healthwatch.cli import cli
from healthwatch.schemas.health import CycleSummary


async def _noop():
    return None


@pytest.fixture
def runner(monkeypatch):
    monkeypatch.setattr(cli_module, "_create_tables", _noop)
    monkeypatch.setattr(cli_module, "_shutdown_resources", _noop)
    monkeypatch.setattr(database_module, "async_session", lambda: nullcontext(None))
    return CliRunner()


@pytest.fixture
def recorded_periods(monkeypatch):
    periods = []

    async def fake_upsert(db, year, month, **kwargs):
        periods.append((year, month))
        return SimpleNamespace(
            year=year, month=month, uptime_percent=99.5, total_checks=200,
            failed_checks=1, downtime_minutes=5, avg_latency_ms=120,
        )

    monkeypatch.setattr(sla_module, "upsert_sla_report", fake_upsert)
    return periods


def _summary(critical: int) -> CycleSummary:
    now = datetime.now(timezone.utc)
    return CycleSummary(
        started_at=now, finished_at=now, attempts=3 if critical else 1,
        total=11, ok=11 - critical, warnings=0, critical=critical,
        alerts_fired=critical,
    )


def _fake_runtime(summary):
    @asynccontextmanager
    async def runtime(cfg, session_factory):
        async def run_cycle():
            return summary
        yield SimpleNamespace(run_cycle=run_cycle)
    return runtime


class TestSlaCommand:
    def test_defaults_to_previous_month(self, runner, recorded_periods):
        expected = sla_module.previous_month(datetime.now(timezone.utc).date())

        result = runner.invoke(cli, ["sla"])
        assert result.exit_code == 0, result.output
        assert recorded_periods == [expected]
        assert f"SLA {expected[0]:04d}-{expected[1]:02d}" in result.output
        assert "Uptime: 99.50%" in result.output

    def test_explicit_period(self, runner, recorded_periods):
        result = runner.invoke(cli, ["sla", "--year", "2024", "--month", "12"])
        assert result.exit_code == 0, result.output
        assert recorded_periods == [(2024, 12)]

    def test_month_zero_is_rejected(self, runner):
        result = runner.invoke(cli, ["sla", "--year", "2024", "--month", "0"])
        assert result.exit_code == 1
        assert "Invalid year/month" in result.output


class TestCheckCommand:
    def test_critical_results_exit_2(self, runner, monkeypatch):
        monkeypatch.setattr(scheduler_module, "monitoring_runtime", _fake_runtime(_summary(critical=1)))
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 2
        assert "Critical: 1" in result.output
        assert "Attempts: 3" in result.output

    def test_all_ok_exit_0(self, runner, monkeypatch):
        monkeypatch.setattr(scheduler_module, "monitoring_runtime", _fake_runtime(_summary(critical=0)))
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 0
        assert "OK: 11" in result.output

    def test_skipped_cycle_exit_1(self, runner, monkeypatch):
        monkeypatch.setattr(scheduler_module, "monitoring_runtime", _fake_runtime(None))
        result = runner.invoke(cli, ["check"])
        assert result.exit_code == 1
