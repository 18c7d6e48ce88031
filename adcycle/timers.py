"""취소 가능한 타이머 레지스트리.

지연 호출(call_later), 백그라운드 태스크(spawn), 주기 작업(every)을 한 곳에서 소유하고
cancel_all() 한 번으로 모두 정리한다. 콜백 예외는 로그만 남기고 호스트로 전파하지 않는다.
"""

from __future__ import annotations

import asyncio
from typing import Any, Callable, Coroutine

from apscheduler.schedulers.asyncio import AsyncIOScheduler
from apscheduler.triggers.interval import IntervalTrigger
from loguru import logger


class TimerRegistry:
    def __init__(self):
        self._handles: set[asyncio.TimerHandle] = set()
        self._tasks: set[asyncio.Task] = set()
        self._scheduler: AsyncIOScheduler | None = None

    # ── one-shot ──

    def call_later(self, delay: float, fn: Callable[..., Any], *args: Any, name: str = "") -> asyncio.TimerHandle:
        """delay 초 후 fn(*args). 실행 중인 이벤트 루프 필요."""
        loop = asyncio.get_running_loop()
        handle: asyncio.TimerHandle | None = None

        def _run():
            self._handles.discard(handle)
            try:
                fn(*args)
            except Exception as e:
                logger.error("[timers] {} 콜백 실패: {}", name or getattr(fn, "__name__", "callback"), e)

        handle = loop.call_later(max(0.0, delay), _run)
        self._handles.add(handle)
        return handle

    def spawn(self, coro: Coroutine[Any, Any, Any], name: str = "") -> asyncio.Task:
        """코루틴을 추적 태스크로 실행."""
        task = asyncio.get_running_loop().create_task(coro, name=name or None)
        self._tasks.add(task)
        task.add_done_callback(self._on_task_done)
        return task

    def _on_task_done(self, task: asyncio.Task) -> None:
        self._tasks.discard(task)
        if task.cancelled():
            return
        exc = task.exception()
        if exc is not None:
            logger.error("[timers] 태스크 {} 실패: {}", task.get_name(), exc)

    # ── interval ──

    def every(self, interval: float, fn: Callable[[], Any], job_id: str) -> None:
        """interval 초마다 fn() -- 이벤트 루프 스레드에서 실행."""
        if self._scheduler is None:
            self._scheduler = AsyncIOScheduler()
            self._scheduler.start()

        async def _tick():
            try:
                fn()
            except Exception as e:
                logger.error("[timers] 주기 작업 {} 실패: {}", job_id, e)

        self._scheduler.add_job(
            _tick,
            IntervalTrigger(seconds=interval),
            id=job_id,
            replace_existing=True,
            coalesce=True,
            max_instances=1,
        )

    def has_job(self, job_id: str) -> bool:
        return self._scheduler is not None and self._scheduler.get_job(job_id) is not None

    def cancel_job(self, job_id: str) -> None:
        if self.has_job(job_id):
            self._scheduler.remove_job(job_id)

    # ── teardown ──

    @property
    def pending(self) -> int:
        jobs = len(self._scheduler.get_jobs()) if self._scheduler is not None else 0
        return len(self._handles) + len(self._tasks) + jobs

    def cancel_all(self) -> None:
        for handle in list(self._handles):
            handle.cancel()
        self._handles.clear()

        for task in list(self._tasks):
            task.cancel()
        self._tasks.clear()

        if self._scheduler is not None:
            self._scheduler.remove_all_jobs()
            self._scheduler.shutdown(wait=False)
            self._scheduler = None
