"""연속 프리롤 스케줄러.

count 회의 프리롤을 순서대로 요청한다. 각 요청은 adBreakDone 완료 신호(future)와
preroll_timeout_sec 타임아웃을 경쟁시키고, 타임아웃이면 광고 실패로 보고 다음 단계로 넘어간다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass, field

from loguru import logger

from adcycle.config import RotationSettings, rotation_settings
from adcycle.interstitial import InterstitialTrigger
from adcycle.timers import TimerRegistry


@dataclass
class PrerollCycleResult:
    requested: int = 0
    completed: int = 0
    timed_out: int = 0
    abandoned: int = 0
    steps: list[str] = field(default_factory=list)


class SequentialPrerollScheduler:
    def __init__(
        self,
        trigger: InterstitialTrigger,
        timers: TimerRegistry,
        settings: RotationSettings | None = None,
    ):
        self.trigger = trigger
        self.timers = timers
        self.settings = settings or rotation_settings
        self._task: asyncio.Task | None = None

    @property
    def running(self) -> bool:
        return self._task is not None and not self._task.done()

    def start(self, count: int) -> asyncio.Task:
        """프리롤 사이클 시작. 진행 중인 사이클이 있으면 취소하고 새로 시작."""
        if self.running:
            logger.warning("[preroll] 진행 중인 프리롤 사이클 취소 후 재시작")
            self._task.cancel()
        self._task = self.timers.spawn(self.run(count), name="preroll-cycle")
        return self._task

    def cancel(self) -> None:
        if self.running:
            self._task.cancel()
        self._task = None

    async def run(self, count: int) -> PrerollCycleResult:
        result = PrerollCycleResult()
        for current in range(max(0, count)):
            request = self.trigger.show_preroll()
            result.requested += 1
            try:
                shown = await asyncio.wait_for(
                    asyncio.shield(request.completion),
                    timeout=self.settings.preroll_timeout_sec,
                )
            except asyncio.TimeoutError:
                # 완료 신호 없음 → 실패로 간주하고 다음 단계 진행 (무한 대기 방지)
                logger.warning("[preroll] 프리롤 {}/{} 완료 미확인, 다음 진행", current + 1, count)
                result.timed_out += 1
                result.steps.append("timeout")
                continue

            if shown:
                result.completed += 1
                result.steps.append("completed")
                await asyncio.sleep(self.settings.settle_delay_sec)
            else:
                result.abandoned += 1
                result.steps.append("abandoned")

        logger.info(
            "[preroll] 프리롤 사이클 종료: {}회 요청 (완료 {}, 타임아웃 {}, 포기 {})",
            result.requested,
            result.completed,
            result.timed_out,
            result.abandoned,
        )
        return result
