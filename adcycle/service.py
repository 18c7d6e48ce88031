"""AdSense 비네트/프리롤 로테이션 서비스 -- 공개 연산 진입점.

설정/스토리지/호스트/시계를 주입받는 명시적 인스턴스. 하나의 이벤트 루프 위에서만 사용한다.

사용법:
  rotation = init({"platform": "ads", "pubId": "ca-pub-xxx", "adsenseConfig": {...}}, host=page_host)
  rotation.show_preroll(before_ad=pause_game, ad_break_done=resume_game)
  ...
  rotation.cleanup()
"""

from __future__ import annotations

import asyncio
from dataclasses import fields
from typing import Any, Callable

from loguru import logger

from adcycle.config import RotationSettings, SdkConfig, rotation_settings
from adcycle.cycle import CycleAction, CycleDecision, CycleStateMachine
from adcycle.errors import ConfigurationError, NotInitializedError
from adcycle.host import AdHost
from adcycle.interstitial import AdBreakCallbacks, InterstitialTrigger, PrerollRequest
from adcycle.preroll_scheduler import SequentialPrerollScheduler
from adcycle.storage import MemorySessionStorage, SessionStorage
from adcycle.timers import TimerRegistry
from adcycle.tracking import (
    INITIAL_PREROLL_FLAG,
    INITIAL_REWARD_FLAG,
    AdCycleTracking,
    TrackingStore,
    epoch_ms,
)
from adcycle.watchdog import MissedVignetteWatchdog


class AdSenseRotation:
    """비네트/프리롤 공정 로테이션."""

    def __init__(
        self,
        config: SdkConfig,
        host: AdHost,
        storage: SessionStorage | None = None,
        settings: RotationSettings | None = None,
        clock: Callable[[], int] = epoch_ms,
    ):
        if config.platform != "ads":
            raise ConfigurationError(f"platform '{config.platform}' is not handled by the ad rotation")

        self.config = config
        self.host = host
        self.settings = settings or rotation_settings
        self.storage = storage if storage is not None else MemorySessionStorage()
        self.store = TrackingStore(self.storage)
        self.timers = TimerRegistry()

        self.cycle = CycleStateMachine(self.store, config.vignette, clock=clock)
        self.trigger = InterstitialTrigger(
            host,
            self.timers,
            on_preroll_done=self.cycle.record_preroll,
            settings=self.settings,
            reward_name=config.reward.name,
        )
        self.preroll_scheduler = SequentialPrerollScheduler(self.trigger, self.timers, settings=self.settings)
        self.watchdog = MissedVignetteWatchdog(
            self.store,
            config.vignette,
            on_missed=self._internal_show_preroll,
            timers=self.timers,
            settings=self.settings,
            clock=clock,
        )

        self._initialized = False
        self._hash_listener: Callable[[str], None] | None = None

    # ── Lifecycle ──

    @property
    def initialized(self) -> bool:
        return self._initialized

    @property
    def listening(self) -> bool:
        return self._hash_listener is not None

    def start(self) -> "AdSenseRotation":
        """초기화: 리스너 연결, 초기 프리롤/리워드 예약. 실행 중인 이벤트 루프 안에서 호출."""
        if self._initialized:
            logger.warning("[rotation] 이미 초기화됨")
            return self
        self._initialized = True

        vignette = self.config.vignette
        if vignette.enabled:
            self.enable_hash_listener()
        if vignette.initial_preroll_delay > 0:
            self._setup_initial_preroll()
        if self.config.reward.initial_reward_delay > 0:
            self._setup_initial_reward()

        logger.info(
            "[rotation] 초기화 완료 (pubId={}, vignette={}, listener={})",
            self.config.pub_id,
            vignette.enabled,
            self.listening,
        )
        return self

    def cleanup(self) -> None:
        """리스너 해제 + 모든 타이머/태스크/주기 작업 취소."""
        if self._hash_listener is not None:
            self.host.remove_fragment_listener(self._hash_listener)
            self._hash_listener = None
        self.preroll_scheduler.cancel()
        self.timers.cancel_all()
        logger.debug("[rotation] 정리 완료")

    async def __aenter__(self):
        return self.start()

    async def __aexit__(self, *args):
        self.cleanup()

    def _require_initialized(self, operation: str) -> None:
        if not self._initialized:
            raise NotInitializedError(f"{operation}() called before start()")

    # ── hashchange ──

    def enable_hash_listener(self) -> bool:
        """비네트/프리롤 감지 리스너 + 누락 워치독 시작."""
        self._require_initialized("enable_hash_listener")
        if not self.config.vignette.enabled:
            return False
        if self._hash_listener is not None:
            return True

        self.store.ensure()
        self._hash_listener = self._on_fragment_change
        self.host.add_fragment_listener(self._hash_listener)
        self.watchdog.start()

        # 현재 fragment 로 최초 판정
        self._on_fragment_change(self.host.current_fragment())
        self.cycle.init_cycle_state()
        return True

    def _on_fragment_change(self, fragment: str) -> None:
        decision = self.cycle.handle_fragment(fragment)
        self._dispatch(decision, delay=self.settings.trigger_delay_sec)

    def _dispatch(self, decision: CycleDecision, delay: float | None = None) -> None:
        if decision.action is CycleAction.START_PREROLL_CYCLE:
            if delay is None:
                self.preroll_scheduler.start(decision.preroll_count)
            else:
                self.timers.call_later(delay, self.preroll_scheduler.start, decision.preroll_count, name="preroll-cycle")
        elif decision.action is CycleAction.TRIGGER_FALLBACK:
            if delay is None:
                self._internal_show_preroll()
            else:
                self.timers.call_later(delay, self._internal_show_preroll, name="fallback-preroll")

    def check_and_trigger_preroll(self) -> bool:
        """현재 레코드 기준으로 프리롤이 필요하면 즉시 트리거."""
        self._require_initialized("check_and_trigger_preroll")
        decision = self.cycle.should_trigger_preroll()
        self._dispatch(decision)
        return decision.fires

    # ── 광고 요청 ──

    def _internal_show_preroll(self) -> PrerollRequest:
        return self.trigger.show_preroll()

    def show_preroll(self, callbacks: AdBreakCallbacks | None = None, **handlers: Callable[..., Any]) -> PrerollRequest:
        """수동 프리롤. handlers: before_ad, ad_dismissed, ad_viewed, after_ad, ad_break_done."""
        self._require_initialized("show_preroll")
        return self.trigger.show_preroll(callbacks or AdBreakCallbacks(**handlers))

    def trigger_preroll(self, callbacks: AdBreakCallbacks | None = None, **handlers: Callable[..., Any]) -> PrerollRequest:
        return self.show_preroll(callbacks, **handlers)

    def show_reward(
        self,
        callbacks: AdBreakCallbacks | None = None,
        name: str | None = None,
        **handlers: Callable[..., Any],
    ) -> asyncio.Task:
        """수동 리워드. handlers 에 before_reward(show_ad_fn) 추가 가능."""
        self._require_initialized("show_reward")
        callbacks = self._with_reward_defaults(callbacks or AdBreakCallbacks(**handlers))
        return self.trigger.show_reward(callbacks, name=name)

    def trigger_reward(
        self,
        callbacks: AdBreakCallbacks | None = None,
        name: str | None = None,
        **handlers: Callable[..., Any],
    ) -> asyncio.Task:
        return self.show_reward(callbacks, name=name, **handlers)

    def _with_reward_defaults(self, callbacks: AdBreakCallbacks | None) -> AdBreakCallbacks:
        """호출별 콜백이 없는 항목은 rewardConfig 콜백으로 채운다."""
        reward = self.config.reward
        callbacks = callbacks or AdBreakCallbacks()
        return AdBreakCallbacks(
            **{f.name: getattr(callbacks, f.name) or getattr(reward, f.name) for f in fields(AdBreakCallbacks)}
        )

    # ── 초기 1회 광고 ──

    def _setup_initial_preroll(self) -> None:
        delay = self.config.vignette.initial_preroll_delay
        if self.store.is_flag_set(INITIAL_PREROLL_FLAG):
            logger.info("[rotation] 초기 프리롤 이미 실행됨, 건너뜀")
            return

        def _fire():
            if self.store.is_flag_set(INITIAL_PREROLL_FLAG):
                return
            self.store.set_flag(INITIAL_PREROLL_FLAG)
            logger.info("[rotation] 초기 프리롤 트리거 ({}s 후)", delay)
            self._internal_show_preroll()

        self.timers.call_later(delay, _fire, name="initial-preroll")

    def _setup_initial_reward(self) -> None:
        delay = self.config.reward.initial_reward_delay
        if self.store.is_flag_set(INITIAL_REWARD_FLAG):
            logger.info("[rotation] 초기 리워드 이미 실행됨, 건너뜀")
            return

        def _fire():
            if self.store.is_flag_set(INITIAL_REWARD_FLAG):
                return
            self.store.set_flag(INITIAL_REWARD_FLAG)
            logger.info("[rotation] 초기 리워드 트리거 ({}s 후)", delay)
            self.trigger.show_reward(self._with_reward_defaults(None))

        self.timers.call_later(delay, _fire, name="initial-reward")

    # ── 추적 데이터 ──

    def get_tracking_stats(self) -> AdCycleTracking | None:
        return self.store.get()

    def reset_tracking(self) -> AdCycleTracking:
        """추적 레코드 삭제 후 기본값으로 재생성."""
        self.store.reset()
        return self.store.ensure()

    def reset_initial_preroll(self) -> None:
        self.store.clear_flag(INITIAL_PREROLL_FLAG)

    def reset_initial_reward(self) -> None:
        self.store.clear_flag(INITIAL_REWARD_FLAG)


def init(
    options: dict | None,
    host: AdHost,
    storage: SessionStorage | None = None,
    settings: RotationSettings | None = None,
    clock: Callable[[], int] = epoch_ms,
) -> AdSenseRotation:
    """init 옵션 검증 후 시작된 로테이션 서비스 반환. 설정 오류는 즉시 ConfigurationError."""
    config = SdkConfig.from_options(options)

    if config.use_ga and not config.ga_measurement_id:
        logger.warning("[rotation] useGa is true but gaMeasurementId is missing")
    if config.use_gtm and not config.gtm_container_id:
        logger.warning("[rotation] useGtm is true but gtmContainerId is missing")

    return AdSenseRotation(config, host, storage=storage, settings=settings, clock=clock).start()
