"""
公开状态页路由

无需认证，只返回各分类状态、24 小时可用率和近期事件，不包含 URL、响应体等细节。
"""
from fastapi import APIRouter, Depends, Response
from sqlalchemy.ext.asyncio import AsyncSession

from healthwatch.core.database import get_db
from healthwatch.schemas.health import PublicStatusResponse
from healthwatch.services.health_query import get_public_status

router = APIRouter(prefix="/api/v1/status", tags=["status"])


@router.get("", response_model=PublicStatusResponse)
async def public_status(response: Response, db: AsyncSession = Depends(get_db)):
    """公开服务状态。"""
    response.headers["Cache-Control"] = "public, max-age=60"
    return await get_public_status(db)
