"""
调度时间计算

以 UTC 计算每日/每月任务的下一次触发时间。
"""
from datetime import datetime, timedelta, timezone


def next_daily_run(now: datetime, hour: int, minute: int = 0) -> datetime:
    """下一个每日 hour:minute（UTC），严格晚于 now。"""
    candidate = now.replace(hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        candidate += timedelta(days=1)
    return candidate


def next_monthly_run(now: datetime, day: int, hour: int, minute: int = 0) -> datetime:
    """下一个每月 day 日 hour:minute（UTC），严格晚于 now。day 需在 1-28 之间。"""
    candidate = now.replace(day=day, hour=hour, minute=minute, second=0, microsecond=0)
    if candidate <= now:
        if now.month == 12:
            candidate = candidate.replace(year=now.year + 1, month=1)
        else:
            candidate = candidate.replace(month=now.month + 1)
    return candidate


def seconds_until(target: datetime, now: datetime | None = None) -> float:
    now = now or datetime.now(timezone.utc)
    return max((target - now).total_seconds(), 0.0)
