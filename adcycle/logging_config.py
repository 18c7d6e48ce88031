"""로깅 설정 (loguru) -- 콘솔 + 일자별 회전 파일."""

import os
import sys
from pathlib import Path

from loguru import logger

LOG_LEVEL = os.getenv("LOG_LEVEL", "INFO").upper()
LOG_DIR = Path(os.getenv("LOG_DIR", "logs"))


def setup_logging(level: str | None = None, log_dir: Path | None = None, to_file: bool = True):
    """기본 sink 를 교체. 라이브러리 자체는 sink 를 건드리지 않는다."""
    level = (level or LOG_LEVEL).upper()
    logger.remove()
    logger.add(sys.stderr, level=level, format="{time:HH:mm:ss} | {level:<7} | {message}")

    if to_file:
        log_dir = log_dir or LOG_DIR
        log_dir.mkdir(parents=True, exist_ok=True)
        logger.add(
            str(log_dir / "adcycle_{time:YYYY-MM-DD}.log"),
            rotation="1 day",
            retention="7 days",
            level="DEBUG",
            encoding="utf-8",
        )
    return logger
