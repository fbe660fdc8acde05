"""
Redis 客户端

HealthWatch 只把 Redis 用作尽力而为的旁路：缓存最近一次周期摘要、发布告警事件。
客户端带短超时，Redis 卡住时命令很快失败，由调用方记录警告后继续，不拖慢监控周期。
所有键与频道名统一带 healthwatch: 前缀。
"""
import redis.asyncio as redis

from healthwatch.core.config import settings

KEY_PREFIX = "healthwatch"

# 进程内共享的客户端，首次使用时创建
redis_client: redis.Redis | None = None


def redis_key(*parts: str) -> str:
    """拼接带命名空间的键名，例如 redis_key("alert", "fired") -> "healthwatch:alert:fired"。"""
    return ":".join((KEY_PREFIX, *parts))


def build_redis_client(url: str, timeout: float) -> redis.Redis:
    """创建客户端（不立即建立连接）。"""
    return redis.from_url(
        url,
        decode_responses=True,
        socket_connect_timeout=timeout,
        socket_timeout=timeout,
    )


async def get_redis() -> redis.Redis:
    """FastAPI 依赖 / 监控周期共用的客户端获取入口。"""
    global redis_client
    if redis_client is None:
        redis_client = build_redis_client(settings.redis_url, settings.redis_socket_timeout_seconds)
    return redis_client


async def close_redis() -> None:
    global redis_client
    client, redis_client = redis_client, None
    if client is not None:
        await client.aclose()
