"""호스트 페이지 계약 -- 광고 큐 + 내비게이션(fragment) 신호.

광고 네트워크는 append-only 명령 큐(adsbygoogle)를 노출하고, 푸시된 ad break 의
라이프사이클 콜백을 자기 타이밍에 호출한다. PageHost 는 프로세스 내 구현으로,
임베더와 테스트가 같은 계약을 직접 구동할 수 있게 한다.
"""

from __future__ import annotations

import itertools
from dataclasses import dataclass, field
from typing import Any, Callable, Protocol

from loguru import logger

# 광고 네트워크 콜백 이름 (호환성 계약 -- 변경 금지)
BEFORE_AD = "beforeAd"
BEFORE_REWARD = "beforeReward"
AD_DISMISSED = "adDismissed"
AD_VIEWED = "adViewed"
AFTER_AD = "afterAd"
AD_BREAK_DONE = "adBreakDone"

AD_BREAK_EVENTS = (BEFORE_AD, BEFORE_REWARD, AD_DISMISSED, AD_VIEWED, AFTER_AD, AD_BREAK_DONE)

FragmentListener = Callable[[str], None]

_ids = itertools.count(1)


@dataclass
class AdBreak:
    """광고 큐에 푸시되는 ad break 명령."""

    type: str
    name: str | None = None
    callbacks: dict[str, Callable[..., Any]] = field(default_factory=dict)
    id: int = field(default_factory=lambda: next(_ids))

    def fire(self, event: str, *args: Any) -> Any:
        """네트워크가 라이프사이클 이벤트를 보고할 때 호출."""
        callback = self.callbacks.get(event)
        if callback is None:
            return None
        return callback(*args)

    def to_payload(self) -> dict[str, Any]:
        payload: dict[str, Any] = {"type": self.type}
        if self.name:
            payload["name"] = self.name
        payload.update(self.callbacks)
        return payload


@dataclass(frozen=True)
class AdApiProbe:
    """광고 API 준비 상태 스냅샷.

    queue_type: "array" | "object" | 그 외 typeof 결과 | None(핸들 없음)
    """

    queue_type: str | None
    script_srcs: tuple[str, ...] = ()


class AdHost(Protocol):
    async def probe_ad_api(self) -> AdApiProbe: ...

    async def ensure_ad_queue(self) -> None: ...

    async def push_ad_break(self, ad_break: AdBreak) -> None: ...

    def add_fragment_listener(self, listener: FragmentListener) -> None: ...

    def remove_fragment_listener(self, listener: FragmentListener) -> None: ...

    def current_fragment(self) -> str: ...


class PageHost:
    """프로세스 내 호스트 페이지."""

    def __init__(
        self,
        ad_queue: list | dict | None = None,
        scripts: list[str] | None = None,
        fragment: str = "",
        on_push: Callable[[AdBreak], None] | None = None,
    ):
        self.ad_queue = ad_queue
        self.scripts: list[str] = list(scripts or [])
        self.fragment = fragment
        self.on_push = on_push
        self._listeners: list[FragmentListener] = []

    # ── 광고 큐 ──

    def load_ad_script(self, src: str = "https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js"):
        """네트워크 스크립트 로드 완료 상태로 전환."""
        if self.ad_queue is None:
            self.ad_queue = []
        self.scripts.append(src)

    async def probe_ad_api(self) -> AdApiProbe:
        if self.ad_queue is None:
            queue_type = None
        elif isinstance(self.ad_queue, list):
            queue_type = "array"
        elif isinstance(self.ad_queue, dict):
            queue_type = "object"
        else:
            queue_type = type(self.ad_queue).__name__
        return AdApiProbe(queue_type=queue_type, script_srcs=tuple(self.scripts))

    async def ensure_ad_queue(self) -> None:
        if self.ad_queue is None:
            self.ad_queue = []

    async def push_ad_break(self, ad_break: AdBreak) -> None:
        if not isinstance(self.ad_queue, list):
            raise TypeError("adsbygoogle.push is not a function")
        self.ad_queue.append(ad_break)
        if self.on_push is not None:
            self.on_push(ad_break)

    @property
    def ad_breaks(self) -> list[AdBreak]:
        if not isinstance(self.ad_queue, list):
            return []
        return [item for item in self.ad_queue if isinstance(item, AdBreak)]

    # ── 내비게이션 ──

    def add_fragment_listener(self, listener: FragmentListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_fragment_listener(self, listener: FragmentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    @property
    def listener_count(self) -> int:
        return len(self._listeners)

    def current_fragment(self) -> str:
        return self.fragment

    def navigate(self, fragment: str) -> None:
        """fragment 변경 + hashchange 통지."""
        if not fragment.startswith("#") and fragment:
            fragment = f"#{fragment}"
        if fragment == self.fragment:
            return
        self.fragment = fragment
        for listener in list(self._listeners):
            try:
                listener(fragment)
            except Exception as e:
                logger.error("[host] hashchange 리스너 실패: {}", e)
