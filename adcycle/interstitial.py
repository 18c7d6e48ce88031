"""인터스티셜(프리롤/리워드) 트리거 -- 준비 여부가 불확실한 광고 큐에 재시도 푸시.

준비 안 됨: 0.5s(처음 2회) / 1s 대기 후 재시도.
push 오류 중 'interstitial' 메시지: 1s / 2s 대기 후 재시도.
그 외 push 오류: 즉시 포기 (로그만).
최대 시도 초과: 로그 후 조용히 포기 -- 호출자에게 예외를 올리지 않는다.
"""

from __future__ import annotations

import asyncio
from dataclasses import dataclass
from typing import Any, Callable

from loguru import logger

from adcycle.config import RotationSettings, rotation_settings
from adcycle.errors import is_interstitial_unavailable
from adcycle.host import (
    AD_BREAK_DONE,
    AD_DISMISSED,
    AD_VIEWED,
    AFTER_AD,
    BEFORE_AD,
    BEFORE_REWARD,
    AdApiProbe,
    AdBreak,
    AdHost,
)
from adcycle.timers import TimerRegistry


@dataclass
class AdBreakCallbacks:
    """호출자 라이프사이클 콜백. ad_break_done 은 광고 노출 여부와 무관하게 항상 호출."""

    before_ad: Callable[[], Any] | None = None
    ad_dismissed: Callable[[], Any] | None = None
    ad_viewed: Callable[[], Any] | None = None
    after_ad: Callable[[], Any] | None = None
    ad_break_done: Callable[[], Any] | None = None
    before_reward: Callable[[Callable[[], Any] | None], Any] | None = None


class PrerollRequest:
    """프리롤 요청 1건. completion 은 adBreakDone 시 True, 포기 시 False."""

    def __init__(self):
        self.completion: asyncio.Future[bool] = asyncio.get_running_loop().create_future()
        self.attempts = 0
        self.task: asyncio.Task | None = None

    @property
    def done(self) -> bool:
        return self.completion.done()

    def resolve(self, shown: bool) -> None:
        if not self.completion.done():
            self.completion.set_result(shown)


def is_ad_api_ready(probe: AdApiProbe, script_marker: str = "adsbygoogle.js") -> bool:
    """광고 큐 핸들(array/object) + 네트워크 스크립트 태그 존재 여부."""
    if probe.queue_type not in ("array", "object"):
        return False
    return any(script_marker in src for src in probe.script_srcs)


def _safe_call(label: str, fn: Callable[..., Any] | None, *args: Any) -> None:
    if fn is None:
        return
    try:
        fn(*args)
    except Exception as e:
        logger.error("[interstitial] {} 콜백 실패: {}", label, e)


class InterstitialTrigger:
    def __init__(
        self,
        host: AdHost,
        timers: TimerRegistry,
        on_preroll_done: Callable[[], Any] | None = None,
        settings: RotationSettings | None = None,
        reward_name: str = "c3_reward",
    ):
        self.host = host
        self.timers = timers
        self.on_preroll_done = on_preroll_done
        self.settings = settings or rotation_settings
        self.reward_name = reward_name

    async def is_ready(self) -> bool:
        probe = await self.host.probe_ad_api()
        return is_ad_api_ready(probe, self.settings.ad_script_marker)

    # ── 프리롤 ──

    def show_preroll(self, callbacks: AdBreakCallbacks | None = None) -> PrerollRequest:
        """프리롤 요청 (fire-and-forget). 반환된 요청의 completion 으로 완료를 관찰할 수 있다."""
        request = PrerollRequest()
        ad_break = self._build_preroll(request, callbacks)
        request.task = self.timers.spawn(self._push_with_retry(ad_break, request), name=f"preroll-{ad_break.id}")
        return request

    def _build_preroll(self, request: PrerollRequest, callbacks: AdBreakCallbacks | None) -> AdBreak:
        def _done():
            logger.info("[interstitial] 프리롤 완료 (adBreakDone)")
            _safe_call("preroll bookkeeping", self.on_preroll_done)
            if callbacks is not None:
                _safe_call(AD_BREAK_DONE, callbacks.ad_break_done)
            request.resolve(True)

        handlers: dict[str, Callable[..., Any]] = {AD_BREAK_DONE: _done}
        if callbacks is not None:
            # 수동 요청: 네트워크가 보고하는 하위 이벤트만 전달
            for event, fn in (
                (BEFORE_AD, callbacks.before_ad),
                (AD_DISMISSED, callbacks.ad_dismissed),
                (AD_VIEWED, callbacks.ad_viewed),
                (AFTER_AD, callbacks.after_ad),
            ):
                handlers[event] = self._forwarder("preroll", event, fn)
        return AdBreak(type="preroll", callbacks=handlers)

    @staticmethod
    def _forwarder(kind: str, event: str, fn: Callable[[], Any] | None) -> Callable[[], None]:
        def _forward():
            logger.debug("[interstitial] {} ad - {}", kind, event)
            _safe_call(event, fn)

        return _forward

    def _retry_delay(self, attempt: int, unavailable: bool) -> float:
        fast = attempt < self.settings.fast_retry_attempts
        if unavailable:
            return self.settings.unavailable_delay_sec if fast else self.settings.unavailable_slow_delay_sec
        return self.settings.not_ready_delay_sec if fast else self.settings.not_ready_slow_delay_sec

    async def _push_with_retry(self, ad_break: AdBreak, request: PrerollRequest) -> bool:
        await self.host.ensure_ad_queue()
        max_attempts = self.settings.max_trigger_attempts

        for attempt in range(max_attempts):
            request.attempts = attempt + 1
            last = attempt == max_attempts - 1

            if not await self.is_ready():
                logger.debug("[interstitial] 광고 API 미준비 (attempt {}/{})", attempt + 1, max_attempts)
                if not last:
                    await asyncio.sleep(self._retry_delay(attempt, unavailable=False))
                continue

            try:
                await self.host.push_ad_break(ad_break)
            except Exception as e:
                if is_interstitial_unavailable(e):
                    logger.warning("[interstitial] interstitial API 미가용 (attempt {}/{}): {}", attempt + 1, max_attempts, e)
                    if not last:
                        await asyncio.sleep(self._retry_delay(attempt, unavailable=True))
                    continue
                logger.error("[interstitial] 프리롤 트리거 실패: {}", e)
                request.resolve(False)
                return False

            logger.info("[interstitial] 프리롤 트리거 (attempt {})", attempt + 1)
            return True

        logger.error("[interstitial] 최대 재시도 {}회 후에도 interstitial API 미가용, 포기", max_attempts)
        request.resolve(False)
        return False

    # ── 리워드 ──

    def show_reward(self, callbacks: AdBreakCallbacks | None = None, name: str | None = None) -> asyncio.Task:
        """리워드 광고 1회 푸시 (재시도 없음)."""
        callbacks = callbacks or AdBreakCallbacks()
        reward_name = name or self.reward_name

        def _before_reward(show_ad_fn: Callable[[], Any] | None = None):
            logger.debug("[interstitial] reward ad - {}", BEFORE_REWARD)
            if callbacks.before_reward is not None:
                _safe_call(BEFORE_REWARD, callbacks.before_reward, show_ad_fn)
            elif show_ad_fn is not None:
                _safe_call("showAdFn", show_ad_fn)

        handlers: dict[str, Callable[..., Any]] = {
            BEFORE_AD: self._forwarder("reward", BEFORE_AD, callbacks.before_ad),
            BEFORE_REWARD: _before_reward,
            AD_DISMISSED: self._forwarder("reward", AD_DISMISSED, callbacks.ad_dismissed),
            AD_VIEWED: self._forwarder("reward", AD_VIEWED, callbacks.ad_viewed),
            AFTER_AD: self._forwarder("reward", AFTER_AD, callbacks.after_ad),
            AD_BREAK_DONE: self._forwarder("reward", AD_BREAK_DONE, callbacks.ad_break_done),
        }
        ad_break = AdBreak(type="reward", name=reward_name, callbacks=handlers)
        return self.timers.spawn(self._push_once(ad_break), name=f"reward-{ad_break.id}")

    async def _push_once(self, ad_break: AdBreak) -> bool:
        try:
            await self.host.ensure_ad_queue()
            await self.host.push_ad_break(ad_break)
        except Exception as e:
            logger.error("[interstitial] 리워드 트리거 실패: {}", e)
            return False
        logger.info("[interstitial] 리워드 트리거: {}", ad_break.name)
        return True
