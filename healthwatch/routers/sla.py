"""
SLA 报告路由

查看已存储的月度 SLA 报告及当月实时计算结果，或手动生成指定月份的报告。
"""
from datetime import datetime, timezone

from fastapi import APIRouter, Depends
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.core.config import settings
from healthwatch.core.database import get_db
from healthwatch.core.deps import verify_admin_token
from healthwatch.schemas.sla import SlaGenerateRequest, SlaOverviewResponse, SlaReportResponse
from healthwatch.services.sla import get_current_month_sla, get_sla_reports, upsert_sla_report

router = APIRouter(
    prefix="/api/v1/health/sla",
    tags=["sla"],
    dependencies=[Depends(verify_admin_token)],
)


@router.get("", response_model=SlaOverviewResponse)
async def sla_overview(db: AsyncSession = Depends(get_db)):
    """已存储报告（最新在前）+ 当月实时 SLA。"""
    reports = await get_sla_reports(db)
    current = await get_current_month_sla(db, check_interval_minutes=settings.check_interval_minutes)
    return SlaOverviewResponse(
        reports=[SlaReportResponse.model_validate(r) for r in reports],
        current_month=current,
    )


@router.post("", response_model=SlaReportResponse)
async def generate_sla(body: SlaGenerateRequest, db: AsyncSession = Depends(get_db)):
    """生成（或覆盖）指定月份的 SLA 报告，缺省为当前 UTC 月份。"""
    now = datetime.now(timezone.utc)
    report = await upsert_sla_report(
        db,
        body.year if body.year is not None else now.year,
        body.month if body.month is not None else now.month,
        now=now,
        check_interval_minutes=settings.check_interval_minutes,
    )
    return SlaReportResponse.model_validate(report)
