"""
Redis 客户端测试（不建立真实连接）
"""
import healthwatch.core.redis as redis_module
from healthwatch.core.redis import close_redis, get_redis, redis_key
from healthwatch.services.cycle_cache import ALERT_EVENTS_CHANNEL, LAST_CYCLE_KEY


def test_redis_key_namespace():
    assert redis_key("last_cycle") == "healthwatch:last_cycle"
    assert LAST_CYCLE_KEY == "healthwatch:last_cycle"
    assert ALERT_EVENTS_CHANNEL == "healthwatch:alert:fired"


async def test_client_is_lazy_shared_and_short_timeout(monkeypatch):
    monkeypatch.setattr(redis_module, "redis_client", None)
    monkeypatch.setattr(redis_module.settings, "redis_socket_timeout_seconds", 0.5)

    first = await get_redis()
    assert await get_redis() is first
    kwargs = first.connection_pool.connection_kwargs
    assert kwargs["socket_timeout"] == 0.5
    assert kwargs["socket_connect_timeout"] == 0.5

    await close_redis()
    assert redis_module.redis_client is None
    await close_redis()
