"""연속 프리롤 스케줄러 테스트."""

import asyncio
import sys
from pathlib import Path

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adcycle.cycle import CycleStateMachine
from adcycle.host import AD_BREAK_DONE
from adcycle.interstitial import InterstitialTrigger
from adcycle.preroll_scheduler import SequentialPrerollScheduler
from adcycle.timers import TimerRegistry
from conftest import CountingHost


def _scheduler(host, settings, on_done=None):
    timers = TimerRegistry()
    trigger = InterstitialTrigger(host, timers, on_preroll_done=on_done, settings=settings)
    return SequentialPrerollScheduler(trigger, timers, settings=settings), timers


@pytest.mark.asyncio
async def test_timeout_still_requests_next_preroll(ready_host, fast_settings):
    # 네트워크가 adBreakDone 을 한 번도 호출하지 않음
    scheduler, _ = _scheduler(ready_host, fast_settings)
    result = await scheduler.run(2)

    assert result.requested == 2
    assert result.timed_out == 2
    assert result.steps == ["timeout", "timeout"]
    assert len(ready_host.ad_breaks) == 2


@pytest.mark.asyncio
async def test_completed_prerolls_advance_without_timeout(fast_settings, store, vignette_config, clock):
    host = CountingHost(
        ad_queue=[],
        scripts=["https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js"],
        on_push=lambda ad_break: asyncio.get_running_loop().call_soon(ad_break.fire, AD_BREAK_DONE),
    )
    machine = CycleStateMachine(store, vignette_config, clock=clock)
    fast_settings.preroll_timeout_sec = 5
    scheduler, _ = _scheduler(host, fast_settings, on_done=machine.record_preroll)

    result = await asyncio.wait_for(scheduler.run(3), 2)

    assert result.completed == 3
    assert result.timed_out == 0
    assert store.get().total_preroll_count == 3


@pytest.mark.asyncio
async def test_abandoned_request_moves_on(fast_settings):
    host = CountingHost(ad_queue=[], scripts=[])
    fast_settings.max_trigger_attempts = 2
    fast_settings.preroll_timeout_sec = 5
    scheduler, _ = _scheduler(host, fast_settings)

    result = await asyncio.wait_for(scheduler.run(2), 2)
    assert result.abandoned == 2
    assert host.probes == 4


@pytest.mark.asyncio
async def test_zero_count_is_noop(ready_host, fast_settings):
    scheduler, _ = _scheduler(ready_host, fast_settings)
    result = await scheduler.run(0)
    assert result.requested == 0
    assert ready_host.ad_breaks == []


@pytest.mark.asyncio
async def test_cancel_stops_cycle(ready_host, fast_settings):
    fast_settings.preroll_timeout_sec = 5
    scheduler, timers = _scheduler(ready_host, fast_settings)
    task = scheduler.start(3)
    await asyncio.sleep(0.02)
    assert scheduler.running

    timers.cancel_all()
    await asyncio.sleep(0.01)
    assert task.cancelled()
    assert len(ready_host.ad_breaks) == 1
