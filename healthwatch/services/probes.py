"""
探测集合模块 (Probe Set Module)

每个探测都是一个独立的异步函数，返回一个 CheckResult（捆绑探测返回列表）。
预期内的失败（超时、连接拒绝、非预期状态码）一律编码为 CRITICAL 结果，绝不抛出异常。

三类探测：
- 计时 HTTP 探测：状态码在预期集合内为 OK，延迟超过阈值为 WARNING，否则 CRITICAL；
- 反向路径工作流探测：本应拒绝的请求返回 200 即为 CRITICAL（安全回归），400/401/403 才是健康；
- 安全探测：只要出现危险信号（回显脚本标签、注入导致 500、未认证访问管理接口成功）即为 CRITICAL。

Each probe is an independent coroutine returning one CheckResult (bundled probes
return a list). Expected failure modes are encoded as CRITICAL results, never raised.
"""
import asyncio
import logging
import time
from contextlib import asynccontextmanager
from dataclasses import dataclass, field
from typing import AsyncIterator, Awaitable, Callable, Optional, Sequence, Union

import httpx
from sqlalchemy import text
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker

from healthwatch.core.config import Settings
from healthwatch.models.health_log import HealthCategory, HealthStatus
from healthwatch.schemas.health import CheckResult

logger = logging.getLogger(__name__)

# 预期内拒绝的状态码 (Rejections expected from negative-path workflows)
LOGIN_REJECTED_STATUSES = frozenset({400, 401, 403, 422, 429})
POST_REJECTED_STATUSES = frozenset({400, 401, 403})


@dataclass
class ProbeContext:
    """
    探测运行上下文 (Probe Runtime Context)

    共享的 HTTP 客户端与数据库会话工厂显式注入，而非模块级单例，便于测试替换。
    """
    client: httpx.AsyncClient
    session_factory: async_sessionmaker[AsyncSession]
    base_url: str = "http://localhost:3000"
    timeout: float = 10.0
    slow_latency_ms: int = 2000
    details_max_chars: int = 500

    def url(self, path: str) -> str:
        return f"{self.base_url.rstrip('/')}{path}"


@dataclass
class HttpObservation:
    """一次计时 HTTP 请求的观测值，status=0 表示传输层失败。"""
    status: int
    latency_ms: int
    text: Optional[str] = None
    error: Optional[str] = None

    @property
    def transport_failed(self) -> bool:
        return self.error is not None


ProbeFunc = Callable[[ProbeContext], Awaitable[Union[CheckResult, list[CheckResult]]]]


@dataclass(frozen=True)
class ProbeDefinition:
    """探测注册项：稳定的服务名、分类和探测函数。"""
    name: str
    category: HealthCategory
    run: ProbeFunc


@dataclass(frozen=True)
class EndpointSpec:
    """API 端点探测配置。"""
    name: str
    path: str
    category: HealthCategory
    expect_status: frozenset[int] = field(default_factory=lambda: frozenset({200}))


API_ENDPOINTS: list[EndpointSpec] = [
    EndpointSpec("api-categories", "/api/categories", HealthCategory.API, frozenset({200})),
    EndpointSpec("api-requests-list", "/api/requests", HealthCategory.REQUESTS, frozenset({200, 401})),
    EndpointSpec("api-auth-session", "/api/auth/session", HealthCategory.AUTH, frozenset({200})),
    EndpointSpec("api-upload-health", "/api/upload", HealthCategory.UPLOADS, frozenset({200, 401, 405})),
    EndpointSpec("api-notifications", "/api/notifications", HealthCategory.MESSAGING, frozenset({200, 401})),
]


def _elapsed_ms(start: float) -> int:
    return int(round((time.monotonic() - start) * 1000))


async def timed_request(ctx: ProbeContext, method: str, url: str, **kwargs) -> HttpObservation:
    """
    发送带超时的 HTTP 请求并测量耗时

    传输层异常（超时、连接拒绝等）转换为 status=0 的观测值，不向上抛出。
    ctx.timeout 是整个请求（含读取响应体）的总时限，httpx 的 timeout 只约束单步读写。
    """
    start = time.monotonic()
    try:
        resp = await asyncio.wait_for(
            ctx.client.request(method, url, timeout=ctx.timeout, **kwargs),
            timeout=ctx.timeout,
        )
    except asyncio.TimeoutError:
        return HttpObservation(
            status=0, latency_ms=_elapsed_ms(start), error=f"timed out after {ctx.timeout:g}s"
        )
    except httpx.HTTPError as e:
        return HttpObservation(status=0, latency_ms=_elapsed_ms(start), error=str(e) or type(e).__name__)
    return HttpObservation(status=resp.status_code, latency_ms=_elapsed_ms(start), text=resp.text)


def _transport_failure(
    service: str, category: HealthCategory, url: str, obs: HttpObservation
) -> CheckResult:
    return CheckResult(
        service=service,
        category=category,
        status=HealthStatus.CRITICAL,
        latency_ms=obs.latency_ms,
        status_code=None,
        url=url,
        error_message=f"Request failed: {obs.error}",
    )


# ── 计时 HTTP 探测 (Timed HTTP Probe) ─────────────────────────────────

def classify_http_status(status: int, latency_ms: int, expected: frozenset[int], slow_ms: int) -> HealthStatus:
    """预期状态码内：超过延迟阈值为 WARNING，否则 OK；不在预期内为 CRITICAL。"""
    if status not in expected:
        return HealthStatus.CRITICAL
    if latency_ms > slow_ms:
        return HealthStatus.WARNING
    return HealthStatus.OK


async def check_endpoint(ctx: ProbeContext, spec: EndpointSpec) -> CheckResult:
    url = ctx.url(spec.path)
    obs = await timed_request(ctx, "GET", url)
    if obs.transport_failed:
        return _transport_failure(spec.name, spec.category, url, obs)

    status = classify_http_status(obs.status, obs.latency_ms, spec.expect_status, ctx.slow_latency_ms)
    failed = status is HealthStatus.CRITICAL
    return CheckResult(
        service=spec.name,
        category=spec.category,
        status=status,
        latency_ms=obs.latency_ms,
        status_code=obs.status,
        url=url,
        error_message=f"Unexpected status {obs.status}" if failed else None,
        details=(obs.text or "")[: ctx.details_max_chars] if failed else None,
    )


async def check_api_endpoints(
    ctx: ProbeContext, endpoints: Sequence[EndpointSpec] = tuple(API_ENDPOINTS)
) -> list[CheckResult]:
    """并发探测全部 API 端点，结果顺序与配置顺序一致。"""
    return list(await asyncio.gather(*(check_endpoint(ctx, ep) for ep in endpoints)))


# ── 数据库探测 (Database Probe) ───────────────────────────────────────

async def check_database(ctx: ProbeContext) -> CheckResult:
    """执行 SELECT 1 检查数据库连通性。"""
    start = time.monotonic()
    try:
        async with ctx.session_factory() as session:
            await asyncio.wait_for(session.execute(text("SELECT 1")), timeout=ctx.timeout)
    except asyncio.TimeoutError:
        return CheckResult(
            service="db-connection",
            category=HealthCategory.DATABASE,
            status=HealthStatus.CRITICAL,
            latency_ms=_elapsed_ms(start),
            error_message=f"Database query timed out after {ctx.timeout:g}s",
        )
    except (SQLAlchemyError, OSError) as e:
        return CheckResult(
            service="db-connection",
            category=HealthCategory.DATABASE,
            status=HealthStatus.CRITICAL,
            latency_ms=_elapsed_ms(start),
            error_message=str(e)[:500] or "Database unreachable",
        )
    return CheckResult(
        service="db-connection",
        category=HealthCategory.DATABASE,
        status=HealthStatus.OK,
        latency_ms=_elapsed_ms(start),
    )


# ── 反向路径工作流探测 (Negative-Path Workflow Probes) ────────────────

def classify_login_status(status: int) -> HealthStatus:
    """无效凭据登录：被拒绝为 OK；返回 200 说明无效凭据被接受，属于安全缺陷；其余为 WARNING。"""
    if status in LOGIN_REJECTED_STATUSES:
        return HealthStatus.OK
    if status == 200:
        return HealthStatus.CRITICAL
    return HealthStatus.WARNING


def classify_unauthenticated_post(status: int) -> HealthStatus:
    """未认证提交：只有 400/401/403 是健康的。"""
    return HealthStatus.OK if status in POST_REJECTED_STATUSES else HealthStatus.CRITICAL


async def check_auth_workflow(ctx: ProbeContext) -> CheckResult:
    url = ctx.url("/api/auth/login")
    obs = await timed_request(
        ctx, "POST", url,
        json={"email": "healthcheck@internal.test", "password": "invalid_probe"},
    )
    if obs.transport_failed:
        return _transport_failure("auth-login-workflow", HealthCategory.AUTH, url, obs)

    status = classify_login_status(obs.status)
    error_message = None
    if status is HealthStatus.CRITICAL:
        error_message = "Invalid credentials were accepted (HTTP 200)"
    elif status is HealthStatus.WARNING:
        error_message = f"Auth endpoint returned unexpected status {obs.status}"
    return CheckResult(
        service="auth-login-workflow",
        category=HealthCategory.AUTH,
        status=status,
        latency_ms=obs.latency_ms,
        status_code=obs.status,
        url=url,
        error_message=error_message,
    )


async def check_request_post_workflow(ctx: ProbeContext) -> CheckResult:
    url = ctx.url("/api/requests")
    obs = await timed_request(
        ctx, "POST", url,
        json={"title": "__healthcheck__", "description": "synthetic test"},
    )
    if obs.transport_failed:
        return _transport_failure("request-post-workflow", HealthCategory.REQUESTS, url, obs)

    status = classify_unauthenticated_post(obs.status)
    return CheckResult(
        service="request-post-workflow",
        category=HealthCategory.REQUESTS,
        status=status,
        latency_ms=obs.latency_ms,
        status_code=obs.status,
        url=url,
        error_message=f"Request post endpoint returned {obs.status}" if status.is_failure else None,
    )


# ── 安全探测 (Security Probes) ────────────────────────────────────────

XSS_PAYLOAD = "<script>alert(1)</script>"
SQLI_PAYLOAD = "' OR '1'='1"


async def _security_probe(
    ctx: ProbeContext,
    service: str,
    url: str,
    is_dangerous: Callable[[HttpObservation], bool],
    message: str,
    **kwargs,
) -> CheckResult:
    obs = await timed_request(ctx, "GET", url, **kwargs)
    url = str(httpx.URL(url, params=kwargs.get("params")))
    if obs.transport_failed:
        return _transport_failure(service, HealthCategory.SECURITY, url, obs)
    dangerous = is_dangerous(obs)
    return CheckResult(
        service=service,
        category=HealthCategory.SECURITY,
        status=HealthStatus.CRITICAL if dangerous else HealthStatus.OK,
        latency_ms=obs.latency_ms,
        status_code=obs.status,
        url=url,
        error_message=message if dangerous else None,
    )


async def check_security_probes(ctx: ProbeContext) -> list[CheckResult]:
    """XSS 回显、SQL 注入报错、未认证访问管理接口三项安全探测。"""
    requests_url = ctx.url("/api/requests")
    admin_url = ctx.url("/api/admin/users")
    return list(await asyncio.gather(
        _security_probe(
            ctx, "security-xss-probe", requests_url,
            lambda obs: "<script>" in (obs.text or ""),
            "XSS: raw <script> echoed back in response",
            params={"search": XSS_PAYLOAD},
        ),
        _security_probe(
            ctx, "security-sqli-probe", requests_url,
            lambda obs: obs.status == 500,
            "SQLi probe caused a 500 error, possible vulnerability",
            params={"search": SQLI_PAYLOAD},
        ),
        _security_probe(
            ctx, "security-auth-bypass", admin_url,
            lambda obs: obs.status == 200,
            "Unauthenticated access to admin endpoint succeeded",
        ),
    ))


# ── 探测注册表 (Probe Registry) ──────────────────────────────────────

# 顺序即报告顺序：数据库、工作流模拟、端点与安全捆绑探测
DEFAULT_PROBES: list[ProbeDefinition] = [
    ProbeDefinition("db-connection", HealthCategory.DATABASE, check_database),
    ProbeDefinition("auth-login-workflow", HealthCategory.AUTH, check_auth_workflow),
    ProbeDefinition("request-post-workflow", HealthCategory.REQUESTS, check_request_post_workflow),
    ProbeDefinition("api-endpoints", HealthCategory.API, check_api_endpoints),
    ProbeDefinition("security-probes", HealthCategory.SECURITY, check_security_probes),
]


@asynccontextmanager
async def probe_context(
    cfg: Settings, session_factory: async_sessionmaker[AsyncSession]
) -> AsyncIterator[ProbeContext]:
    """创建共享 HTTP 客户端的探测上下文，退出时关闭客户端。"""
    async with httpx.AsyncClient(timeout=cfg.probe_timeout_seconds, follow_redirects=False) as client:
        yield ProbeContext(
            client=client,
            session_factory=session_factory,
            base_url=cfg.target_base_url,
            timeout=cfg.probe_timeout_seconds,
            slow_latency_ms=cfg.slow_latency_ms,
            details_max_chars=cfg.details_max_chars,
        )
