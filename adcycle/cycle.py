"""비네트/프리롤 사이클 상태 머신.

hashchange 로 전달된 fragment 를 비네트(google_vignette) / 프리롤(goog_fullscreen_ad) /
미매칭으로 분류해 카운터를 갱신하고, 사이클 전환 시 실행할 동작을 CycleDecision 으로 돌려준다.
타이머 예약과 광고 요청은 호출자(AdSenseRotation) 몫이다.
"""

from __future__ import annotations

from dataclasses import dataclass
from enum import Enum
from typing import Callable

from loguru import logger

from adcycle.config import VignetteConfig
from adcycle.tracking import AdCycleTracking, CycleKind, TrackingStore, epoch_ms

# 광고 네트워크 호환성 계약 -- 변경 금지
VIGNETTE_MARKER = "google_vignette"
PREROLL_MARKER = "goog_fullscreen_ad"


class FragmentKind(str, Enum):
    VIGNETTE = "vignette"
    PREROLL = "preroll"
    UNMATCHED = "unmatched"
    UNCHANGED = "unchanged"


class CycleAction(str, Enum):
    NONE = "none"
    START_PREROLL_CYCLE = "start_preroll_cycle"
    TRIGGER_FALLBACK = "trigger_fallback"


@dataclass(frozen=True)
class CycleDecision:
    action: CycleAction = CycleAction.NONE
    preroll_count: int = 0
    tracking: AdCycleTracking | None = None

    @property
    def fires(self) -> bool:
        return self.action is not CycleAction.NONE


NO_ACTION = CycleDecision()


def classify_fragment(fragment: str, previous: str | None) -> FragmentKind:
    """fragment 분류. previous 가 None 이면 비교 기준이 없으므로 미매칭으로 세지 않는다."""
    fragment = fragment or ""
    if VIGNETTE_MARKER in fragment:
        return FragmentKind.VIGNETTE
    if PREROLL_MARKER in fragment:
        return FragmentKind.PREROLL
    if fragment and previous is not None and fragment != previous:
        return FragmentKind.UNMATCHED
    return FragmentKind.UNCHANGED


class CycleStateMachine:
    def __init__(
        self,
        store: TrackingStore,
        config: VignetteConfig,
        clock: Callable[[], int] = epoch_ms,
    ):
        self.store = store
        self.config = config
        self._clock = clock
        self._last_fragment: str | None = None

    @property
    def enabled(self) -> bool:
        return self.config.enabled

    def init_cycle_state(self) -> AdCycleTracking:
        """레코드가 없으면 비네트 사이클 기본값으로 생성."""
        return self.store.ensure()

    def handle_fragment(self, fragment: str) -> CycleDecision:
        if not self.enabled:
            return NO_ACTION

        kind = classify_fragment(fragment, self._last_fragment)
        self._last_fragment = fragment or ""

        if kind is FragmentKind.VIGNETTE:
            return self.record_vignette()
        if kind is FragmentKind.PREROLL:
            return self.record_preroll()
        if kind is FragmentKind.UNMATCHED:
            return self.record_unmatched()
        return NO_ACTION

    # ── 분기별 처리 ──

    def record_vignette(self) -> CycleDecision:
        rule = self.config.vignette_to_preroll
        observed = {}

        def _apply(t: AdCycleTracking) -> dict:
            count = t.vignette_count + 1
            observed["count"] = count
            changes = {
                "vignette_count": count,
                "total_vignette_count": t.total_vignette_count + 1,
                "last_vignette_time": self._clock(),
                "missed_vignette_count": 0,
                "current_cycle": CycleKind.VIGNETTE,
            }
            if t.current_cycle is CycleKind.PREROLL:
                changes["preroll_count"] = 0
            if rule.count > 0 and count >= rule.count:
                changes.update(vignette_count=0, preroll_count=0, current_cycle=CycleKind.PREROLL)
            return changes

        tracking = self.store.mutate(_apply)
        logger.info("[cycle] 비네트 감지, count: {}/{}", observed["count"], rule.count)

        if tracking.current_cycle is CycleKind.PREROLL:
            trigger = self.config.preroll_trigger_count
            logger.info("[cycle] 비네트 임계값 도달, 프리롤 {}회 트리거 예정", trigger)
            return CycleDecision(CycleAction.START_PREROLL_CYCLE, preroll_count=trigger, tracking=tracking)
        return CycleDecision(tracking=tracking)

    def record_preroll(self) -> CycleDecision:
        """프리롤 1회 기록. hashchange 프리롤 분기와 adBreakDone 콜백이 공유."""
        rule = self.config.preroll_to_vignette
        observed = {}

        def _apply(t: AdCycleTracking) -> dict:
            count = t.preroll_count + 1
            observed["count"] = count
            changes = {
                "preroll_count": count,
                "total_preroll_count": t.total_preroll_count + 1,
                "missed_vignette_count": 0,
                "current_cycle": CycleKind.PREROLL,
            }
            if t.current_cycle is CycleKind.VIGNETTE:
                changes["vignette_count"] = 0
            if rule.count > 0 and count >= rule.count:
                changes.update(vignette_count=0, preroll_count=0, current_cycle=CycleKind.VIGNETTE)
            return changes

        tracking = self.store.mutate(_apply)
        logger.info("[cycle] 프리롤 기록, count: {}/{}", observed["count"], rule.count)

        if tracking.current_cycle is CycleKind.VIGNETTE:
            # 비네트는 네트워크가 노출하므로 상태만 기록
            logger.info("[cycle] 프리롤 임계값 도달, 비네트 사이클 진입 ({} vignettes)", rule.trigger)
        return CycleDecision(tracking=tracking)

    def record_unmatched(self) -> CycleDecision:
        """광고 마커 없는 fragment 변경 → 누락 카운트 증가 (폴백)."""
        tracking = self.store.mutate(
            lambda t: {"missed_vignette_count": t.missed_vignette_count + 1}
        )
        limit = self.config.max_vignette_missed
        logger.debug("[cycle] 미매칭 fragment, missed: {}/{}", tracking.missed_vignette_count, limit)

        if (
            limit > 0
            and tracking.missed_vignette_count >= limit
            and tracking.current_cycle is CycleKind.VIGNETTE
        ):
            logger.info("[cycle] 누락 임계값 도달, 폴백 프리롤 트리거 예정")
            return CycleDecision(CycleAction.TRIGGER_FALLBACK, preroll_count=1, tracking=tracking)
        return CycleDecision(tracking=tracking)

    def should_trigger_preroll(self) -> CycleDecision:
        """이벤트 없이 현재 레코드만으로 프리롤 필요 여부 판단."""
        if not self.enabled:
            return NO_ACTION
        tracking = self.store.get()
        if tracking is None or tracking.current_cycle is not CycleKind.VIGNETTE:
            return NO_ACTION

        rule = self.config.vignette_to_preroll
        if rule.count > 0 and tracking.vignette_count >= rule.count:
            return CycleDecision(
                CycleAction.START_PREROLL_CYCLE,
                preroll_count=self.config.preroll_trigger_count,
                tracking=tracking,
            )

        limit = self.config.max_vignette_missed
        if limit > 0 and tracking.missed_vignette_count >= limit:
            return CycleDecision(CycleAction.TRIGGER_FALLBACK, preroll_count=1, tracking=tracking)
        return NO_ACTION
