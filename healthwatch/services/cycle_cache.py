"""
周期摘要缓存与告警事件发布

最近一次周期摘要写入 Redis（1 小时过期），供看板读取；触发的告警发布到 Redis 频道。
均为尽力而为：Redis 不可用时只记录警告，不影响监控周期。
"""
import logging
from typing import Optional, Sequence

import redis.asyncio as redis
from redis.exceptions import RedisError

from healthwatch.core.redis import redis_key
from healthwatch.schemas.health import CheckResult, CycleSummary

logger = logging.getLogger(__name__)

LAST_CYCLE_KEY = redis_key("last_cycle")
LAST_CYCLE_TTL_SECONDS = 3600
ALERT_EVENTS_CHANNEL = redis_key("alert", "fired")


async def cache_cycle_summary(r: redis.Redis, summary: CycleSummary) -> None:
    try:
        await r.set(LAST_CYCLE_KEY, summary.model_dump_json(), ex=LAST_CYCLE_TTL_SECONDS)
    except (RedisError, OSError) as e:
        logger.warning(f"Failed to cache cycle summary: {e}")


async def load_last_cycle(r: redis.Redis) -> Optional[CycleSummary]:
    """读取最近一次周期摘要，不存在或 Redis 不可用时返回 None。"""
    try:
        raw = await r.get(LAST_CYCLE_KEY)
    except (RedisError, OSError) as e:
        logger.warning(f"Failed to read cycle summary: {e}")
        return None
    if not raw:
        return None
    return CycleSummary.model_validate_json(raw)


async def publish_fired_alerts(r: redis.Redis, fired: Sequence[CheckResult]) -> int:
    """逐条发布已触发的告警，返回成功发布的条数。"""
    published = 0
    for result in fired:
        try:
            await r.publish(ALERT_EVENTS_CHANNEL, result.model_dump_json())
        except (RedisError, OSError) as e:
            logger.warning(f"Failed to publish alert event for {result.service}: {e}")
            break
        published += 1
    return published
