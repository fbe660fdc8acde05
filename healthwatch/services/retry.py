"""
重试协调模块 (Retry Coordinator Module)

只要有任一探测失败，就等待后重新执行整个探测集合，最多 MAX_RETRIES 次。
只有最后一次尝试的结果会被持久化和告警，中间失败的尝试不单独记录。
"""
import asyncio
import logging
from dataclasses import dataclass
from typing import Awaitable, Callable

from healthwatch.schemas.health import CheckResult

logger = logging.getLogger(__name__)

MAX_RETRIES = 3
RETRY_DELAY_SECONDS = 5.0


@dataclass
class RetryOutcome:
    """最终一次尝试的结果及实际尝试次数。"""
    results: list[CheckResult]
    attempts: int

    @property
    def failures(self) -> list[CheckResult]:
        return [r for r in self.results if r.status.is_failure]


async def run_with_retry(
    run_probe_set: Callable[[], Awaitable[list[CheckResult]]],
    max_retries: int = MAX_RETRIES,
    delay_seconds: float = RETRY_DELAY_SECONDS,
    sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
) -> RetryOutcome:
    """
    带重试地执行探测集合

    Args:
        run_probe_set: 无参协程函数，返回整个探测集合的结果
        max_retries: 最大尝试次数
        delay_seconds: 两次尝试之间的等待时间
        sleep: 等待函数（测试时可替换）

    Returns:
        RetryOutcome: 全部成功的那次尝试或最后一次尝试的结果
    """
    last_results: list[CheckResult] = []
    attempt = 1
    while attempt <= max_retries:
        results = await run_probe_set()
        last_results = results
        failures = [r for r in results if r.status.is_failure]
        if not failures:
            return RetryOutcome(results=results, attempts=attempt)

        logger.info(
            "Attempt %d/%d - %d failure(s): %s",
            attempt, max_retries, len(failures), ", ".join(r.service for r in failures),
        )
        if attempt < max_retries:
            await sleep(delay_seconds)
        attempt += 1

    return RetryOutcome(results=last_results, attempts=max_retries)
