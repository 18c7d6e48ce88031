"""광고 사이클 추적 레코드 + 세션 스토어.

세션당 레코드 하나(c3_adsense_ad_tracking)를 JSON 으로 보관한다.
모든 카운터 증감은 mutate() 로 처리 -- 읽기와 쓰기 사이에 await 가 없으므로
이벤트 루프 위에서는 타이머 콜백과 내비게이션 콜백이 끼어들 수 없다.
"""

from __future__ import annotations

import json
import time
from enum import Enum
from typing import Any, Callable

from loguru import logger
from pydantic import BaseModel, ConfigDict, Field, ValidationError
from pydantic.alias_generators import to_camel

from adcycle.storage import SessionStorage

TRACKING_KEY = "c3_adsense_ad_tracking"
INITIAL_PREROLL_FLAG = "c3_adsense_initial_preroll_triggered"
INITIAL_REWARD_FLAG = "c3_adsense_initial_reward_triggered"


class CycleKind(str, Enum):
    VIGNETTE = "vignette"
    PREROLL = "preroll"


class AdCycleTracking(BaseModel):
    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True)

    vignette_count: int = Field(default=0, ge=0, description="현재 사이클 비네트 수")
    preroll_count: int = Field(default=0, ge=0, description="현재 사이클 프리롤 수")
    last_vignette_time: int = Field(default=0, ge=0, description="마지막 비네트 시각 (epoch ms, 0=없음)")
    missed_vignette_count: int = Field(default=0, ge=0)
    total_vignette_count: int = Field(default=0, ge=0)
    total_preroll_count: int = Field(default=0, ge=0)
    current_cycle: CycleKind = CycleKind.VIGNETTE

    def to_json(self) -> str:
        return self.model_dump_json(by_alias=True)

    def as_dict(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True, mode="json")


class TrackingStore:
    """세션 스토리지 위의 추적 레코드 read-merge-write."""

    def __init__(self, storage: SessionStorage, key: str = TRACKING_KEY):
        self._storage = storage
        self._key = key

    def get(self) -> AdCycleTracking | None:
        """저장된 레코드. 없거나 손상되었으면 None."""
        raw = self._storage.get_item(self._key)
        if not raw:
            return None
        try:
            return AdCycleTracking.model_validate(json.loads(raw))
        except (ValueError, ValidationError) as e:
            logger.warning("[tracking] 손상된 추적 레코드 무시: {}", e)
            return None

    def ensure(self) -> AdCycleTracking:
        """레코드가 없으면 기본값으로 생성."""
        current = self.get()
        if current is None:
            current = AdCycleTracking()
            self._persist(current)
            logger.debug("[tracking] 추적 레코드 초기화")
        return current

    def update(self, partial: dict[str, Any] | None = None, **fields: Any) -> AdCycleTracking:
        """partial 을 현재 레코드(없으면 기본값)에 병합 후 저장."""
        changes = {**(partial or {}), **fields}
        current = self.get() or AdCycleTracking()
        merged = AdCycleTracking.model_validate({**current.model_dump(), **_normalize(changes)})
        self._persist(merged)
        return merged

    def mutate(self, fn: Callable[[AdCycleTracking], dict[str, Any] | None]) -> AdCycleTracking:
        """현재 레코드로 변경분을 계산하고 같은 동기 구간에서 병합/저장."""
        current = self.get() or AdCycleTracking()
        changes = fn(current) or {}
        merged = AdCycleTracking.model_validate({**current.model_dump(), **_normalize(changes)})
        self._persist(merged)
        return merged

    def reset(self) -> None:
        self._storage.remove_item(self._key)

    def _persist(self, record: AdCycleTracking) -> None:
        self._storage.set_item(self._key, record.to_json())

    # ── one-shot 플래그 ──

    def is_flag_set(self, key: str) -> bool:
        return self._storage.get_item(key) == "true"

    def set_flag(self, key: str) -> None:
        self._storage.set_item(key, "true")

    def clear_flag(self, key: str) -> None:
        self._storage.remove_item(key)


_ALIAS_TO_FIELD = {
    field.alias or name: name for name, field in AdCycleTracking.model_fields.items()
}


def _normalize(changes: dict[str, Any]) -> dict[str, Any]:
    """camelCase 키도 허용."""
    normalized: dict[str, Any] = {}
    for key, value in changes.items():
        name = _ALIAS_TO_FIELD.get(key, key)
        if name not in AdCycleTracking.model_fields:
            raise KeyError(f"unknown tracking field: {key}")
        normalized[name] = value
    return normalized


def epoch_ms() -> int:
    """현재 시각 (epoch ms)."""
    return int(time.time() * 1000)
