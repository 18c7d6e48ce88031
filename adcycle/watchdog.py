"""비네트 누락 워치독 -- 시간 기반 폴백 감지.

마지막 비네트 이후 missed_window_sec 이 지나면 틱마다 누락 카운트를 올리고,
maxVignetteMissed 에 도달하면 인터스티셜 트리거를 직접 호출한다.
hashchange 미매칭 폴백(cycle.record_unmatched)과 같은 카운터를 공유한다.
"""

from __future__ import annotations

from typing import Any, Callable

from loguru import logger

from adcycle.config import RotationSettings, VignetteConfig, rotation_settings
from adcycle.timers import TimerRegistry
from adcycle.tracking import TrackingStore, epoch_ms

WATCHDOG_JOB_ID = "missed-vignette-watchdog"


class MissedVignetteWatchdog:
    def __init__(
        self,
        store: TrackingStore,
        config: VignetteConfig,
        on_missed: Callable[[], Any],
        timers: TimerRegistry,
        settings: RotationSettings | None = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.store = store
        self.config = config
        self.on_missed = on_missed
        self.timers = timers
        self.settings = settings or rotation_settings
        self._clock = clock

    @property
    def active(self) -> bool:
        return self.config.enabled and self.config.max_vignette_missed > 0

    @property
    def running(self) -> bool:
        return self.timers.has_job(WATCHDOG_JOB_ID)

    def start(self) -> bool:
        if not self.active:
            return False
        self.timers.every(self.settings.watchdog_interval_sec, self.check, job_id=WATCHDOG_JOB_ID)
        logger.debug("[watchdog] 시작 ({}s 간격)", self.settings.watchdog_interval_sec)
        return True

    def stop(self) -> None:
        self.timers.cancel_job(WATCHDOG_JOB_ID)

    def check(self) -> bool:
        """틱 1회. 트리거를 호출했으면 True."""
        if not self.active:
            return False

        tracking = self.store.get()
        if tracking is None or tracking.last_vignette_time <= 0:
            return False

        window_ms = self.settings.missed_window_sec * 1000
        if self._clock() - tracking.last_vignette_time <= window_ms:
            return False

        tracking = self.store.mutate(
            lambda t: {"missed_vignette_count": t.missed_vignette_count + 1}
        )
        limit = self.config.max_vignette_missed
        logger.info("[watchdog] 비네트 누락, missed: {}/{}", tracking.missed_vignette_count, limit)

        if tracking.missed_vignette_count >= limit:
            logger.info("[watchdog] 누락 임계값 도달, 프리롤 트리거")
            self.on_missed()
            return True
        return False
