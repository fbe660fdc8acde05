"""
SLA 报告生成服务

根据某月 [月初, 次月月初) 半开区间内的健康日志计算可用率、失败次数、平均延迟、
估算停机时长和按分类统计的事件数，并按 (year, month) 覆盖写入报告。
计算只依赖该区间内的日志行，输入不变时重复生成的结果完全一致（generated_at 除外）。

停机时长为估算值：每条 CRITICAL 日志视为一个完整检查间隔的停机。
"""
import logging
from datetime import date, datetime, timezone
from decimal import Decimal, ROUND_HALF_UP
from typing import Optional

from sqlalchemy import and_, func, select
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.core.exceptions import ValidationError
from healthwatch.models.health_log import FAILURE_STATUSES, HealthCategory, HealthLog, HealthStatus
from healthwatch.models.sla_report import SlaReport
from healthwatch.schemas.sla import SlaReportData
from healthwatch.services.repository import HealthRepository

logger = logging.getLogger(__name__)

# 单次检查代表的时长（分钟），需与健康检查周期一致
CHECK_INTERVAL_MINUTES = 5

MIN_YEAR = 2020
MAX_YEAR = 2100


def validate_period(year: int, month: int) -> None:
    """校验年月范围。"""
    if month < 1 or month > 12 or year < MIN_YEAR or year > MAX_YEAR:
        raise ValidationError("Invalid year/month", detail=f"year={year}, month={month}")


def month_range(year: int, month: int) -> tuple[datetime, datetime]:
    """返回 UTC 半开区间 [月初, 次月月初)。"""
    start = datetime(year, month, 1, tzinfo=timezone.utc)
    if month == 12:
        end = datetime(year + 1, 1, 1, tzinfo=timezone.utc)
    else:
        end = datetime(year, month + 1, 1, tzinfo=timezone.utc)
    return start, end


def previous_month(today: date) -> tuple[int, int]:
    """返回上一个自然月的 (year, month)，一月回绕到上一年十二月。"""
    if today.month == 1:
        return today.year - 1, 12
    return today.year, today.month - 1


def _round_half_up(value: Decimal, places: str) -> Decimal:
    return value.quantize(Decimal(places), rounding=ROUND_HALF_UP)


def compute_uptime(total: int, failed: int) -> float:
    """可用率百分比，保留两位小数；无数据时为 100。"""
    if total == 0:
        return 100.0
    ratio = Decimal(total - failed) * 100 / Decimal(total)
    return float(_round_half_up(ratio, "0.01"))


async def generate_sla_report(
    db: AsyncSession,
    year: int,
    month: int,
    check_interval_minutes: int = CHECK_INTERVAL_MINUTES,
) -> SlaReportData:
    """
    计算指定月份的 SLA 汇总（不写库）

    Args:
        db: 数据库会话
        year: 年
        month: 月（1-12）
        check_interval_minutes: 单次检查代表的分钟数

    Returns:
        SlaReportData: 汇总结果
    """
    validate_period(year, month)
    start, end = month_range(year, month)
    in_range = and_(HealthLog.tested_at >= start, HealthLog.tested_at < end)

    total = (await db.execute(
        select(func.count(HealthLog.id)).where(in_range)
    )).scalar() or 0

    failed = (await db.execute(
        select(func.count(HealthLog.id)).where(in_range, HealthLog.status.in_(FAILURE_STATUSES))
    )).scalar() or 0

    critical = (await db.execute(
        select(func.count(HealthLog.id)).where(in_range, HealthLog.status == HealthStatus.CRITICAL.value)
    )).scalar() or 0

    avg_latency = (await db.execute(
        select(func.avg(HealthLog.latency_ms)).where(in_range, HealthLog.latency_ms.is_not(None))
    )).scalar()
    avg_latency_ms = int(_round_half_up(Decimal(str(avg_latency)), "1")) if avg_latency is not None else 0

    rows = (await db.execute(
        select(HealthLog.category, func.count(HealthLog.id))
        .where(in_range, HealthLog.status.in_(FAILURE_STATUSES))
        .group_by(HealthLog.category)
    )).all()
    counted = {row[0]: row[1] for row in rows}
    # 所有分类补零，保持枚举顺序
    incidents = {cat.value: int(counted.get(cat.value, 0)) for cat in HealthCategory}

    return SlaReportData(
        year=year,
        month=month,
        uptime_percent=compute_uptime(total, failed),
        total_checks=total,
        failed_checks=failed,
        downtime_minutes=critical * check_interval_minutes,
        avg_latency_ms=avg_latency_ms,
        incidents_by_category=incidents,
    )


async def upsert_sla_report(
    db: AsyncSession,
    year: int,
    month: int,
    now: Optional[datetime] = None,
    check_interval_minutes: int = CHECK_INTERVAL_MINUTES,
) -> SlaReport:
    """
    生成并覆盖写入指定月份的 SLA 报告，可重复调用

    先完整计算再写入；计算失败时不会写入任何部分结果。
    """
    data = await generate_sla_report(db, year, month, check_interval_minutes)
    fields = data.model_dump(exclude={"year", "month"})
    fields["generated_at"] = now or datetime.now(timezone.utc)
    report = await HealthRepository(db).upsert_sla_report(year, month, fields)
    logger.info(
        "SLA report %04d/%02d: uptime=%.2f%% total=%d failed=%d downtime=%dmin",
        year, month, data.uptime_percent, data.total_checks, data.failed_checks, data.downtime_minutes,
    )
    return report


async def get_sla_reports(db: AsyncSession, limit: int = 24) -> list[SlaReport]:
    """获取已存储的 SLA 报告（最新在前）。"""
    return await HealthRepository(db).list_sla_reports(limit)


async def get_current_month_sla(
    db: AsyncSession,
    now: Optional[datetime] = None,
    check_interval_minutes: int = CHECK_INTERVAL_MINUTES,
) -> SlaReportData:
    """实时计算当月 SLA（不写库）。"""
    now = now or datetime.now(timezone.utc)
    return await generate_sla_report(db, now.year, now.month, check_interval_minutes)
