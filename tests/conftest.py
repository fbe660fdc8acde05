"""
HealthWatch 测试基础配置

提供 SQLite in-memory 异步数据库、mock Redis、模拟被探测应用的 httpx MockTransport
以及 FastAPI 测试客户端等通用 fixture。所有测试不依赖外部 PostgreSQL/Redis/网络。
"""
import os
from typing import AsyncGenerator, Callable

import httpx
import pytest
import pytest_asyncio
from httpx import ASGITransport, AsyncClient
from sqlalchemy import BigInteger
from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.ext.compiler import compiles

# 必须在导入 healthwatch 之前设置环境变量，避免真实连接
os.environ["DATABASE_URL_OVERRIDE"] = "sqlite+aiosqlite:///:memory:"
os.environ["REDIS_HOST"] = "localhost"
os.environ["ADMIN_API_TOKEN"] = "test-admin-token"
os.environ["SCHEDULER_ENABLED"] = "false"
os.environ["TARGET_BASE_URL"] = "http://target.test"

from healthwatch.core.database import Base, get_db  # noqa: E402
import healthwatch.models  # noqa: E402,F401  注册全部表
import healthwatch.core.redis as redis_module  # noqa: E402
from healthwatch.core.redis import get_redis  # noqa: E402
from healthwatch.services.probes import ProbeContext  # noqa: E402

TEST_DATABASE_URL = "sqlite+aiosqlite:///:memory:"
ADMIN_TOKEN = "test-admin-token"


# SQLite 不支持 BigInteger autoincrement，编译时替换为 Integer
@compiles(BigInteger, "sqlite")
def compile_big_int_sqlite(type_, compiler, **kw):
    return "INTEGER"


# ── Mock Redis ────────────────────────────────────────────────────────
class FakeRedis:
    """内存级 Redis 模拟，支持 get/set/delete/publish。"""

    def __init__(self):
        self._store: dict[str, str] = {}
        self.published: list[tuple[str, str]] = []

    async def get(self, key: str) -> str | None:
        return self._store.get(key)

    async def set(self, key: str, value: str, ex: int | None = None, **kwargs) -> None:
        self._store[key] = value

    async def delete(self, *keys: str) -> None:
        for k in keys:
            self._store.pop(k, None)

    async def publish(self, channel: str, message: str) -> int:
        self.published.append((channel, message))
        return 0

    async def aclose(self) -> None:
        pass


# ── Fixtures ──────────────────────────────────────────────────────────

@pytest_asyncio.fixture
async def engine():
    """每个测试一个独立的内存数据库，测试前建表。"""
    test_engine = create_async_engine(TEST_DATABASE_URL, echo=False)
    async with test_engine.begin() as conn:
        await conn.run_sync(Base.metadata.create_all)
    yield test_engine
    await test_engine.dispose()


@pytest.fixture
def session_factory(engine) -> async_sessionmaker[AsyncSession]:
    return async_sessionmaker(engine, class_=AsyncSession, expire_on_commit=False)


@pytest_asyncio.fixture
async def db_session(session_factory) -> AsyncGenerator[AsyncSession, None]:
    """提供一个干净的数据库会话。"""
    async with session_factory() as session:
        yield session


@pytest.fixture
def fake_redis() -> FakeRedis:
    return FakeRedis()


@pytest_asyncio.fixture
async def make_probe_context(session_factory):
    """
    构造探测上下文的工厂：被探测应用由 handler(request) -> httpx.Response 模拟。
    """
    clients: list[httpx.AsyncClient] = []

    def _make(handler: Callable[[httpx.Request], httpx.Response], **kwargs) -> ProbeContext:
        client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
        clients.append(client)
        return ProbeContext(
            client=client,
            session_factory=kwargs.pop("session_factory", session_factory),
            base_url="http://target.test",
            timeout=kwargs.pop("timeout", 1.0),
            **kwargs,
        )

    yield _make
    for client in clients:
        await client.aclose()


@pytest_asyncio.fixture
async def client(db_session: AsyncSession, fake_redis: FakeRedis) -> AsyncGenerator[AsyncClient, None]:
    """提供配置好依赖覆盖的异步 HTTP 测试客户端。"""
    from healthwatch.main import app

    async def override_get_db():
        yield db_session

    async def override_get_redis():
        return fake_redis

    app.dependency_overrides[get_db] = override_get_db
    app.dependency_overrides[get_redis] = override_get_redis

    original_redis_client = redis_module.redis_client
    redis_module.redis_client = fake_redis

    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac

    app.dependency_overrides.clear()
    redis_module.redis_client = original_redis_client


@pytest.fixture
def auth_headers() -> dict:
    """管理员认证头。"""
    return {"Authorization": f"Bearer {ADMIN_TOKEN}"}
