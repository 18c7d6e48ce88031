from pathlib import Path
import sys

import pytest

sys.path.insert(0, str(Path(__file__).resolve().parent.parent))

from adcycle.config import RotationSettings, VignetteConfig
from adcycle.host import AdApiProbe, PageHost
from adcycle.storage import MemorySessionStorage
from adcycle.tracking import TrackingStore

AD_SCRIPT = "https://pagead2.googlesyndication.com/pagead/js/adsbygoogle.js"


class FakeClock:
    def __init__(self, now_ms: int = 1_700_000_000_000):
        self.now_ms = now_ms

    def __call__(self) -> int:
        return self.now_ms

    def advance(self, seconds: float):
        self.now_ms += int(seconds * 1000)


class CountingHost(PageHost):
    """probe/push 횟수를 세고, push 오류를 순서대로 주입할 수 있는 호스트."""

    def __init__(self, *args, push_errors=None, ready_after: int | None = None, **kwargs):
        super().__init__(*args, **kwargs)
        self.probes = 0
        self.push_attempts = 0
        self.push_errors = list(push_errors or [])
        self.ready_after = ready_after

    async def probe_ad_api(self) -> AdApiProbe:
        self.probes += 1
        if self.ready_after is not None and self.probes >= self.ready_after and AD_SCRIPT not in self.scripts:
            self.load_ad_script(AD_SCRIPT)
        return await super().probe_ad_api()

    async def push_ad_break(self, ad_break):
        self.push_attempts += 1
        if self.push_errors:
            raise self.push_errors.pop(0)
        await super().push_ad_break(ad_break)


@pytest.fixture
def fast_settings() -> RotationSettings:
    return RotationSettings(
        trigger_delay_sec=0.005,
        watchdog_interval_sec=0.05,
        missed_window_sec=60,
        max_trigger_attempts=5,
        fast_retry_attempts=2,
        not_ready_delay_sec=0.001,
        not_ready_slow_delay_sec=0.002,
        unavailable_delay_sec=0.002,
        unavailable_slow_delay_sec=0.003,
        preroll_timeout_sec=0.05,
        settle_delay_sec=0.001,
    )


@pytest.fixture
def clock() -> FakeClock:
    return FakeClock()


@pytest.fixture
def storage() -> MemorySessionStorage:
    return MemorySessionStorage()


@pytest.fixture
def store(storage) -> TrackingStore:
    return TrackingStore(storage)


@pytest.fixture
def vignette_config() -> VignetteConfig:
    return VignetteConfig(
        enabled=True,
        vignette_to_preroll={"count": 3, "trigger": 1},
        preroll_to_vignette={"count": 1, "trigger": 3},
        max_vignette_missed=2,
    )


@pytest.fixture
def ready_host() -> CountingHost:
    return CountingHost(ad_queue=[], scripts=[AD_SCRIPT])
