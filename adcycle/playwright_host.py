"""Playwright 페이지 호스트 -- 실제 브라우저 페이지의 adsbygoogle / hashchange 를 연결.

expose_function 으로 hashchange 와 ad break 라이프사이클 콜백을 Python 으로 끌어오고,
evaluate 로 window.adsbygoogle 에 명령을 푸시한다.
"""

from __future__ import annotations

import asyncio

from loguru import logger
from playwright.async_api import Page

from adcycle.host import BEFORE_REWARD, AD_BREAK_DONE, AdApiProbe, AdBreak, FragmentListener

_HASH_BINDING = "__adcycleHashChange"
_EVENT_BINDING = "__adcycleAdEvent"

_HASH_BRIDGE_JS = """
() => {
    if (window.__adcycleHashBridge) return;
    window.__adcycleHashBridge = true;
    window.addEventListener('hashchange', () => {
        window.__adcycleHashChange(window.location.hash);
    });
}
"""

_PROBE_JS = """
() => {
    const q = window.adsbygoogle;
    let queueType = null;
    if (q !== undefined && q !== null) {
        queueType = Array.isArray(q) ? 'array' : typeof q;
    }
    const scripts = Array.from(document.querySelectorAll('script[src]')).map((s) => s.src);
    return { queueType, scripts };
}
"""

_PUSH_JS = """
({ id, type, name, events }) => {
    const o = { type };
    if (name) o.name = name;
    for (const ev of events) {
        if (ev === 'beforeReward') {
            o[ev] = (showAdFn) => {
                window.__adcycleShowAd = window.__adcycleShowAd || {};
                if (showAdFn) window.__adcycleShowAd[id] = showAdFn;
                window.__adcycleAdEvent(id, ev, !!showAdFn);
            };
        } else {
            o[ev] = () => window.__adcycleAdEvent(id, ev, false);
        }
    }
    window.adsbygoogle.push(o);
}
"""


class PlaywrightPageHost:
    """Playwright Page 위의 AdHost 구현."""

    def __init__(self, page: Page):
        self.page = page
        self._fragment = ""
        self._listeners: list[FragmentListener] = []
        self._pending: dict[int, AdBreak] = {}
        self._show_tasks: set[asyncio.Task] = set()
        self._attached = False

    async def attach(self) -> None:
        """바인딩 등록 + hashchange 브릿지 설치. 페이지 이동 전후 모두 호출 가능."""
        if self._attached:
            return
        await self.page.expose_function(_HASH_BINDING, self._on_hash_change)
        await self.page.expose_function(_EVENT_BINDING, self._on_ad_event)
        await self.page.add_init_script(f"({_HASH_BRIDGE_JS})()")
        await self.page.evaluate(_HASH_BRIDGE_JS)
        await self.refresh_fragment()
        self._attached = True
        logger.info("[playwright-host] 페이지 연결: {}", self.page.url)

    async def refresh_fragment(self) -> str:
        """페이지 이동 후 현재 hash 를 다시 읽는다. 리스너는 호출하지 않음."""
        self._fragment = await self.page.evaluate("() => window.location.hash") or ""
        return self._fragment

    # ── 광고 큐 ──

    async def probe_ad_api(self) -> AdApiProbe:
        data = await self.page.evaluate(_PROBE_JS)
        return AdApiProbe(queue_type=data.get("queueType"), script_srcs=tuple(data.get("scripts") or ()))

    async def ensure_ad_queue(self) -> None:
        await self.page.evaluate("() => { window.adsbygoogle = window.adsbygoogle || []; }")

    async def push_ad_break(self, ad_break: AdBreak) -> None:
        self._pending[ad_break.id] = ad_break
        try:
            await self.page.evaluate(
                _PUSH_JS,
                {
                    "id": ad_break.id,
                    "type": ad_break.type,
                    "name": ad_break.name,
                    "events": list(ad_break.callbacks),
                },
            )
        except Exception:
            self._pending.pop(ad_break.id, None)
            raise

    def _on_ad_event(self, ad_id: int, event: str, has_show_fn: bool = False) -> None:
        ad_break = self._pending.get(ad_id)
        if ad_break is None:
            logger.debug("[playwright-host] 알 수 없는 ad break {} 이벤트 {}", ad_id, event)
            return

        if event == BEFORE_REWARD:
            ad_break.fire(event, self._show_ad_fn(ad_id) if has_show_fn else None)
        else:
            ad_break.fire(event)

        if event == AD_BREAK_DONE:
            self._pending.pop(ad_id, None)

    def _show_ad_fn(self, ad_id: int):
        def _show():
            task = asyncio.get_running_loop().create_task(
                self.page.evaluate(f"() => window.__adcycleShowAd[{int(ad_id)}]()")
            )
            self._show_tasks.add(task)
            task.add_done_callback(self._show_tasks.discard)

        return _show

    # ── 내비게이션 ──

    def _on_hash_change(self, fragment: str) -> None:
        self._fragment = fragment or ""
        for listener in list(self._listeners):
            try:
                listener(self._fragment)
            except Exception as e:
                logger.error("[playwright-host] hashchange 리스너 실패: {}", e)

    def add_fragment_listener(self, listener: FragmentListener) -> None:
        if listener not in self._listeners:
            self._listeners.append(listener)

    def remove_fragment_listener(self, listener: FragmentListener) -> None:
        if listener in self._listeners:
            self._listeners.remove(listener)

    def current_fragment(self) -> str:
        return self._fragment
