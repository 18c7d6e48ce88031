"""adcycle -- AdSense 비네트/프리롤 광고 사이클 로테이션."""

from adcycle.config import RewardConfig, RotationSettings, SdkConfig, ThresholdRule, VignetteConfig
from adcycle.cycle import CycleAction, CycleDecision, CycleStateMachine
from adcycle.errors import (
    AdCycleError,
    ConfigurationError,
    InterstitialUnavailableError,
    NotInitializedError,
)
from adcycle.host import AdBreak, PageHost
from adcycle.interstitial import AdBreakCallbacks, InterstitialTrigger, PrerollRequest
from adcycle.preroll_scheduler import SequentialPrerollScheduler
from adcycle.service import AdSenseRotation, init
from adcycle.storage import FileSessionStorage, MemorySessionStorage
from adcycle.tracking import AdCycleTracking, CycleKind, TrackingStore
from adcycle.watchdog import MissedVignetteWatchdog

__version__ = "1.0.6"

__all__ = [
    "AdBreak",
    "AdBreakCallbacks",
    "AdCycleError",
    "AdCycleTracking",
    "AdSenseRotation",
    "ConfigurationError",
    "CycleAction",
    "CycleDecision",
    "CycleKind",
    "CycleStateMachine",
    "FileSessionStorage",
    "InterstitialTrigger",
    "InterstitialUnavailableError",
    "MemorySessionStorage",
    "MissedVignetteWatchdog",
    "NotInitializedError",
    "PageHost",
    "PrerollRequest",
    "RewardConfig",
    "RotationSettings",
    "SdkConfig",
    "SequentialPrerollScheduler",
    "ThresholdRule",
    "TrackingStore",
    "VignetteConfig",
    "init",
]
