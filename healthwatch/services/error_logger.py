"""
应用错误记录服务 (Application Error Logger Service)

把线上真实请求触发的错误写入 health_logs（source="user"，status=CRITICAL），
与主动探测结果共用一张表，便于在看板中统一展示。
记录失败只写日志，绝不向调用方抛出，避免错误处理本身引发新的错误。

Records errors raised by real traffic into health_logs (source="user",
status=CRITICAL). Recording never raises: a failed write is logged and dropped.
"""
import logging
import traceback
from typing import Any, Optional

from fastapi import HTTPException
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.exceptions import BusinessError
from healthwatch.models.health_log import HealthCategory, HealthStatus, LogSource
from healthwatch.schemas.health import CheckResult
from healthwatch.services.repository import HealthRepository

logger = logging.getLogger(__name__)

MESSAGE_MAX_CHARS = 500
STACK_MAX_CHARS = 2000
DETAILS_MAX_CHARS = 3000

# 路径前缀 → 分类，按顺序匹配
PATH_CATEGORIES: list[tuple[str, HealthCategory]] = [
    ("/api/auth/", HealthCategory.AUTH),
    ("/api/requests/", HealthCategory.REQUESTS),
    ("/api/messages/", HealthCategory.MESSAGING),
    ("/api/upload", HealthCategory.UPLOADS),
    ("/api/", HealthCategory.API),
]


def infer_category(url_path: Optional[str]) -> HealthCategory:
    """根据请求路径推断错误分类，无法识别时归为 API。"""
    if url_path:
        for prefix, category in PATH_CATEGORIES:
            if url_path.startswith(prefix):
                return category
    return HealthCategory.API


def is_system_error(error: BaseException) -> bool:
    """非预期异常（非 HTTPException / BusinessError）视为系统错误。"""
    return not isinstance(error, (HTTPException, BusinessError))


def _format_details(
    error: BaseException,
    url_path: Optional[str],
    method: Optional[str],
    details: Optional[dict[str, Any]],
) -> str:
    parts = []
    if method or url_path:
        parts.append(f"{method or '-'} {url_path or '-'}")
    stack = "".join(traceback.format_exception(type(error), error, error.__traceback__))
    if stack:
        parts.append(stack[:STACK_MAX_CHARS])
    if details:
        parts.append("\n".join(f"{k}: {v}" for k, v in details.items()))
    return "\n".join(parts)[:DETAILS_MAX_CHARS]


async def log_api_error(
    session_factory: async_sessionmaker[AsyncSession],
    error: BaseException,
    service: str,
    category: Optional[HealthCategory] = None,
    url_path: Optional[str] = None,
    method: Optional[str] = None,
    details: Optional[dict[str, Any]] = None,
) -> bool:
    """
    记录一条用户触发的应用错误

    Args:
        session_factory: 数据库会话工厂
        error: 捕获到的异常
        service: 出错的服务/接口名
        category: 分类，缺省时根据 url_path 推断
        url_path: 请求路径
        method: 请求方法
        details: 额外上下文

    Returns:
        bool: 是否写入成功
    """
    result = CheckResult(
        service=service,
        category=category or infer_category(url_path),
        status=HealthStatus.CRITICAL,
        url=url_path,
        error_message=(str(error) or type(error).__name__)[:MESSAGE_MAX_CHARS],
        details=_format_details(error, url_path, method, details),
    )
    try:
        async with session_factory() as db:
            await HealthRepository(db).create_log_entry(result, source=LogSource.USER.value)
    except Exception as e:
        # 记录失败不能影响原请求的错误处理
        logger.error(f"Failed to record application error for {service}: {e}")
        return False
    return True
