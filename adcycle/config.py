"""SDK 설정 모델 + 런타임 타이밍 설정.

SdkConfig 는 호스트 페이지가 넘기는 init 옵션(camelCase)을 그대로 받아들이고,
RotationSettings 는 타이밍 상수를 환경변수(ADCYCLE_*)로 덮어쓸 수 있게 한다.
"""

from __future__ import annotations

from typing import Any, Callable, Literal

from pydantic import BaseModel, ConfigDict, Field, ValidationError, model_validator
from pydantic.alias_generators import to_camel
from pydantic_settings import BaseSettings

from adcycle.errors import ConfigurationError

SUPPORTED_PLATFORMS = ("ads", "gpt", "afs")


class _CamelModel(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)


# ── Vignette / Preroll ──
class ThresholdRule(_CamelModel):
    count: int = Field(default=0, ge=0, description="전환 임계값 (0 = 전환 비활성)")
    trigger: int = Field(default=1, ge=0, description="전환 시 트리거할 광고 수")


class VignetteConfig(_CamelModel):
    enabled: bool = False
    vignette_to_preroll: ThresholdRule = Field(
        default_factory=lambda: ThresholdRule(count=3, trigger=1)
    )
    preroll_to_vignette: ThresholdRule = Field(
        default_factory=lambda: ThresholdRule(count=1, trigger=3)
    )
    max_vignette_missed: int = Field(default=2, ge=0, description="폴백 트리거까지 허용할 누락 수")
    initial_preroll_delay: float = Field(default=0, ge=0, description="초기 프리롤 지연(초), 0=비활성")

    @property
    def preroll_trigger_count(self) -> int:
        """비네트→프리롤 전환 시 연속 트리거 수 (최소 1)."""
        return self.vignette_to_preroll.trigger or 1


class RewardConfig(_CamelModel):
    """리워드 광고 설정. 콜백은 호출별 콜백이 없을 때의 기본값."""

    name: str = "c3_reward"
    initial_reward_delay: float = Field(default=0, ge=0, description="초기 리워드 지연(초), 0=비활성")

    before_ad: Callable[[], Any] | None = None
    before_reward: Callable[[Callable[[], Any] | None], Any] | None = None
    ad_dismissed: Callable[[], Any] | None = None
    ad_viewed: Callable[[], Any] | None = None
    after_ad: Callable[[], Any] | None = None
    ad_break_done: Callable[[], Any] | None = None


class AdSenseConfig(_CamelModel):
    # 처리되지 않은 키는 그대로 통과 (model_extra)
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    vignette_config: VignetteConfig = Field(default_factory=VignetteConfig)
    reward_config: RewardConfig = Field(default_factory=RewardConfig)


# ── 최상위 init 옵션 ──
class SdkConfig(_CamelModel):
    # 스크립트 주입용 키(nativeAfgSupport, channelId, preloadAd 등)는 model_extra 로 통과
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, extra="allow")

    platform: Literal["ads", "gpt", "afs"]
    pub_id: str = ""
    use_ga: bool = False
    use_gtm: bool = False
    ga_measurement_id: str = ""
    gtm_container_id: str = ""
    adsense_config: AdSenseConfig = Field(default_factory=AdSenseConfig)

    @model_validator(mode="before")
    @classmethod
    def _hoist_vignette_config(cls, data: Any) -> Any:
        # adsenseConfig.vignetteConfig 가 없으면 최상위 vignetteConfig 사용
        if not isinstance(data, dict):
            return data
        data = dict(data)
        top_level = data.pop("vignetteConfig", None) or data.pop("vignette_config", None)
        if top_level is None:
            return data
        adsense = dict(data.get("adsenseConfig") or data.get("adsense_config") or {})
        if not (adsense.get("vignetteConfig") or adsense.get("vignette_config")):
            adsense["vignetteConfig"] = top_level
        data.pop("adsense_config", None)
        data["adsenseConfig"] = adsense
        return data

    @model_validator(mode="after")
    def _require_pub_id(self) -> "SdkConfig":
        if not self.pub_id and self.platform != "afs":
            raise ValueError("pubId is required")
        return self

    @property
    def vignette(self) -> VignetteConfig:
        return self.adsense_config.vignette_config

    @property
    def reward(self) -> RewardConfig:
        return self.adsense_config.reward_config

    @classmethod
    def from_options(cls, options: dict | None) -> "SdkConfig":
        """init 옵션 dict 검증. 오류는 ConfigurationError 로 즉시 raise."""
        options = dict(options or {})
        platform = options.get("platform")
        if not platform:
            raise ConfigurationError("platform is required")
        if platform not in SUPPORTED_PLATFORMS:
            raise ConfigurationError(f"Unsupported platform: {platform}")
        try:
            return cls.model_validate(options)
        except ValidationError as e:
            raise ConfigurationError(_summarize(e)) from e


def _summarize(error: ValidationError) -> str:
    parts = []
    for item in error.errors():
        loc = ".".join(str(p) for p in item.get("loc", ()))
        msg = item.get("msg", "")
        if msg.startswith("Value error, "):
            msg = msg[len("Value error, "):]
        parts.append(f"{loc}: {msg}" if loc else msg)
    return "; ".join(parts)


class RotationSettings(BaseSettings):
    # 지연 트리거 (같은 이벤트 틱 안에서 발화 방지)
    trigger_delay_sec: float = 0.1

    # 워치독
    watchdog_interval_sec: float = 30.0
    missed_window_sec: float = 60.0

    # 인터스티셜 재시도
    max_trigger_attempts: int = 5
    fast_retry_attempts: int = 2
    not_ready_delay_sec: float = 0.5
    not_ready_slow_delay_sec: float = 1.0
    unavailable_delay_sec: float = 1.0
    unavailable_slow_delay_sec: float = 2.0

    # 연속 프리롤
    preroll_timeout_sec: float = 30.0
    settle_delay_sec: float = 0.5

    # 세션 스토리지 (FileSessionStorage)
    storage_dir: str = "session_data"
    session_id: str = "default"

    # 네트워크 스크립트 판별 (src 부분 문자열)
    ad_script_marker: str = "adsbygoogle.js"

    model_config = {"env_prefix": "ADCYCLE_"}


rotation_settings = RotationSettings()
