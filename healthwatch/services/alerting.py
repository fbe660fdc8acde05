"""
告警去重服务 (Alert Deduplication Service)

对每个非健康结果查询该服务的告警状态：冷却期内直接抑制（不发送、不修改状态），
否则渲染告警并并发发送到所有渠道，发送结束后（无论成功与否）更新告警状态。
对健康结果无条件重置 fail_count，但保留 last_alert_at 历史。

状态机（按服务隐式推导）：
- Healthy  → Alertable：首次出现非健康结果
- Alertable → Alerted：告警已发送
- Alerted  → Alerted：冷却期内再次失败（被抑制）
- Alerted  → Alertable：冷却期结束且仍不健康
- 任意状态 → Healthy：出现 OK 结果（恢复无冷却）

Per degraded result, consults the service's alert state and either suppresses
(cooldown active; no notification, no state change) or fires to every channel and
then records the alert. Healthy results unconditionally zero fail_count but keep
last_alert_at.
"""
import logging
from dataclasses import dataclass, field
from datetime import datetime, timedelta, timezone
from typing import Optional, Sequence

from healthwatch.core.database import as_utc
from healthwatch.schemas.health import CheckResult
from healthwatch.services.notifier import Channel, dispatch_to_channels, render_alert
from healthwatch.services.repository import HealthRepository

logger = logging.getLogger(__name__)

# 同一服务两次告警之间的最短间隔
ALERT_COOLDOWN = timedelta(minutes=30)


@dataclass
class AlertOutcome:
    """一个周期内的告警处理汇总。"""
    fired: list[CheckResult] = field(default_factory=list)
    suppressed: list[str] = field(default_factory=list)
    reset: list[str] = field(default_factory=list)
    deliveries: dict[str, dict[str, bool]] = field(default_factory=dict)


async def send_smart_alert(
    repo: HealthRepository,
    result: CheckResult,
    channels: Sequence[Channel],
    now: datetime,
    cooldown: timedelta = ALERT_COOLDOWN,
) -> Optional[dict[str, bool]]:
    """
    对单个非健康结果执行冷却检查并发送告警

    Returns:
        发送时返回各渠道投递结果；被冷却抑制时返回 None
    """
    state = await repo.get_alert_state(result.service)

    if state is not None and state.last_alert_at is not None:
        if now - as_utc(state.last_alert_at) < cooldown:
            logger.info(f"Alert suppressed for {result.service} (cooldown active)")
            return None

    subject, body = render_alert(result, now)
    delivered = await dispatch_to_channels(channels, subject, body)

    # 无论投递是否成功都记为已发送，投递失败不重试
    previous = state.fail_count if state is not None else 0
    await repo.upsert_alert_state(
        result.service,
        last_alert_at=now,
        fail_count=previous + 1,
        is_suppressed=False,
    )
    logger.warning(f"Alert fired for {result.service}: {result.status.value} ({len(channels)} channel(s))")
    return delivered


async def reset_alert_state(repo: HealthRepository, service: str) -> None:
    """服务恢复：清零 fail_count，不删除记录，不修改 last_alert_at。"""
    await repo.upsert_alert_state(service, fail_count=0, is_suppressed=False)


async def process_results(
    repo: HealthRepository,
    results: Sequence[CheckResult],
    channels: Sequence[Channel],
    now: Optional[datetime] = None,
    cooldown: timedelta = ALERT_COOLDOWN,
) -> AlertOutcome:
    """按顺序处理一个周期的全部结果，同一服务的状态只在此处串行修改。"""
    now = now or datetime.now(timezone.utc)
    outcome = AlertOutcome()
    for result in results:
        if result.status.is_failure:
            delivered = await send_smart_alert(repo, result, channels, now, cooldown)
            if delivered is None:
                outcome.suppressed.append(result.service)
            else:
                outcome.fired.append(result)
                outcome.deliveries[result.service] = delivered
        else:
            await reset_alert_state(repo, result.service)
            outcome.reset.append(result.service)
    return outcome
