"""
数据库连接模块 (Database Connection Module)

基于 SQLAlchemy 2.0 异步模式创建数据库引擎和会话工厂，为健康日志、告警状态和 SLA 报告提供持久化。

Creates the database engine and session factory on SQLAlchemy 2.0 async mode,
providing persistence for health logs, alert state and SLA reports.
"""
from datetime import datetime, timezone

from sqlalchemy.ext.asyncio import AsyncSession, async_sessionmaker, create_async_engine
from sqlalchemy.orm import DeclarativeBase

from healthwatch.core.config import settings

engine = create_async_engine(
    settings.database_url,
    echo=False,
)

# 提交后不过期对象，便于访问已保存的数据 (Don't expire objects after commit)
async_session = async_sessionmaker(
    engine,
    class_=AsyncSession,
    expire_on_commit=False,
)


class Base(DeclarativeBase):
    """ORM 模型基类 (ORM Model Base Class)"""
    pass


async def get_db() -> AsyncSession:
    """
    FastAPI 依赖项：获取数据库会话 (FastAPI Dependency: Get Database Session)

    使用异步上下文管理器确保会话在请求结束后正确关闭，防止连接泄漏。
    """
    async with async_session() as session:
        yield session


def as_utc(value: datetime) -> datetime:
    """SQLite 读出的时间不带时区，统一视为 UTC；带时区的值原样返回。"""
    if value.tzinfo is None:
        return value.replace(tzinfo=timezone.utc)
    return value
