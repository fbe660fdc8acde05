"""
探测执行器模块 (Probe Runner Module)

并发执行全部探测并等待全部完成，结果按注册顺序拼接。
单个探测抛出异常时转换为该探测的 CRITICAL 合成结果，不影响其他探测。

Runs the whole probe set concurrently and waits for all of them; results are
concatenated in registration order. A probe that raises is converted into a
synthetic CRITICAL result for that probe and never poisons its siblings.
"""
import asyncio
import logging
from typing import Sequence

from healthwatch.models.health_log import HealthStatus
from healthwatch.schemas.health import CheckResult
from healthwatch.services.probes import ProbeContext, ProbeDefinition

logger = logging.getLogger(__name__)


def _crashed_result(probe: ProbeDefinition, exc: BaseException) -> CheckResult:
    """探测自身崩溃时的合成结果。"""
    return CheckResult(
        service=probe.name,
        category=probe.category,
        status=HealthStatus.CRITICAL,
        error_message=f"Probe crashed: {type(exc).__name__}: {exc}"[:500],
    )


class ProbeRunner:
    """探测执行器，持有探测注册表和共享的探测上下文。"""

    def __init__(self, probes: Sequence[ProbeDefinition], context: ProbeContext):
        self.probes = list(probes)
        self.context = context

    async def run(self) -> list[CheckResult]:
        """并发执行全部探测（fan-out），等待全部结束（fan-in）后返回拼接结果。"""
        outcomes = await asyncio.gather(
            *(probe.run(self.context) for probe in self.probes),
            return_exceptions=True,
        )

        results: list[CheckResult] = []
        for probe, outcome in zip(self.probes, outcomes):
            if isinstance(outcome, Exception):
                logger.error("Probe %s raised instead of returning a result", probe.name, exc_info=outcome)
                results.append(_crashed_result(probe, outcome))
            elif isinstance(outcome, BaseException):
                raise outcome
            elif isinstance(outcome, list):
                results.extend(outcome)
            else:
                results.append(outcome)
        return results

    async def __call__(self) -> list[CheckResult]:
        return await self.run()
