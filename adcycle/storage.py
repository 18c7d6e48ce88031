"""세션 스코프 key-value 스토리지 -- 브라우저 sessionStorage 대응.

값은 항상 문자열. 세션이 끝나면 삭제되는 것이 원칙이며,
FileSessionStorage 는 세션 ID 단위로 파일을 두어 프로세스 재시작 간에도 유지한다.

저장 경로: {storage_dir}/{session_id}.json
"""

from __future__ import annotations

import json
import os
from datetime import UTC, datetime
from pathlib import Path
from typing import Protocol

from loguru import logger


class SessionStorage(Protocol):
    def get_item(self, key: str) -> str | None: ...

    def set_item(self, key: str, value: str) -> None: ...

    def remove_item(self, key: str) -> None: ...


class MemorySessionStorage:
    """인메모리 스토리지 (프로세스 수명 = 세션 수명)."""

    def __init__(self, initial: dict[str, str] | None = None):
        self._items: dict[str, str] = dict(initial or {})

    def get_item(self, key: str) -> str | None:
        return self._items.get(key)

    def set_item(self, key: str, value: str) -> None:
        self._items[key] = str(value)

    def remove_item(self, key: str) -> None:
        self._items.pop(key, None)

    def clear(self) -> None:
        self._items.clear()

    def __len__(self) -> int:
        return len(self._items)


class FileSessionStorage:
    """파일 기반 세션 스토리지."""

    def __init__(self, storage_dir: str | None = None, session_id: str = "default"):
        self.storage_dir = Path(storage_dir or os.getenv("ADCYCLE_STORAGE_DIR", "session_data"))
        self.session_id = session_id

    @property
    def path(self) -> Path:
        return self.storage_dir / f"{self.session_id}.json"

    def _read(self) -> dict[str, str]:
        if not self.path.exists():
            return {}
        try:
            data = json.loads(self.path.read_text(encoding="utf-8"))
            items = data.get("items", {})
            if not isinstance(items, dict):
                return {}
            return {str(k): str(v) for k, v in items.items()}
        except Exception as e:
            logger.warning("[session-storage] {} 로드 실패: {}", self.session_id, e)
            return {}

    def _write(self, items: dict[str, str]) -> None:
        self.path.parent.mkdir(parents=True, exist_ok=True)
        data = {
            "session_id": self.session_id,
            "updated_at": datetime.now(UTC).isoformat(),
            "items": items,
        }
        self.path.write_text(json.dumps(data, ensure_ascii=False, indent=2), encoding="utf-8")

    def get_item(self, key: str) -> str | None:
        return self._read().get(key)

    def set_item(self, key: str, value: str) -> None:
        items = self._read()
        items[key] = str(value)
        self._write(items)

    def remove_item(self, key: str) -> None:
        items = self._read()
        if items.pop(key, None) is not None:
            self._write(items)

    def clear(self) -> None:
        """세션 종료 -- 파일 삭제."""
        self.path.unlink(missing_ok=True)
