"""
错误监控中间件 (Error Monitoring Middleware)

记录请求处理中未捕获的异常（记录后继续抛出）以及响应时间超过阈值的慢请求，
写入 health_logs 作为用户侧错误。
"""
import logging
import time

from fastapi import Request
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.responses import Response

from healthwatch.core.database import async_session
from healthwatch.services.error_logger import is_system_error, log_api_error

logger = logging.getLogger(__name__)

# 慢请求阈值（秒）
SLOW_REQUEST_SECONDS = 5.0


class SlowResponseError(Exception):
    """响应时间超过阈值。"""


class ErrorMonitoringMiddleware(BaseHTTPMiddleware):
    """捕获未处理异常和慢请求并记录。"""

    def __init__(self, app, session_factory=None, slow_threshold: float = SLOW_REQUEST_SECONDS):
        super().__init__(app)
        self.session_factory = session_factory or async_session
        self.slow_threshold = slow_threshold

    async def dispatch(self, request: Request, call_next) -> Response:
        start = time.monotonic()
        path = request.url.path
        try:
            response = await call_next(request)
        except Exception as exc:
            if is_system_error(exc):
                await log_api_error(
                    self.session_factory, exc, service=f"{request.method} {path}",
                    url_path=path, method=request.method,
                )
            raise

        elapsed = time.monotonic() - start
        if elapsed > self.slow_threshold:
            logger.warning(f"Slow request {request.method} {path}: {elapsed:.1f}s")
            await log_api_error(
                self.session_factory,
                SlowResponseError(f"Slow response: {elapsed * 1000:.0f}ms"),
                service=f"{request.method} {path}",
                url_path=path,
                method=request.method,
                details={"status_code": response.status_code, "duration_ms": int(elapsed * 1000)},
            )
        return response
