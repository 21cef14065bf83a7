"""
로깅 모듈.

[ 역할 ]
    signal_allocator 루트 로거에 파일 + 콘솔 핸들러를 붙인다.
    각 모듈은 logging.getLogger("signal_allocator.<영역>")을 쓰므로 여기로 전파된다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/signal_allocator_20240601.log)
    log_dir=None이면 파일 핸들러 없이 콘솔만.

[ 호출하는 곳 ]
    - run_allocator.py, scripts/warm_cache.py
"""

import logging
import sys
from datetime import datetime
from pathlib import Path
from typing import Optional

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"

# 상위 라이브러리 로그는 경고 이상만
NOISY_LOGGERS = ("yfinance", "urllib3", "peewee", "clickhouse_connect")


def setup_logger(
    name: str = "signal_allocator",
    level: str = "INFO",
    log_dir: Optional[str] = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 이미 핸들러가 있으면 레벨만 바꾸고 그대로 반환."""
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    if log_dir:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(log_path / f"{name}_{today}.log", encoding="utf-8")
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    for noisy in NOISY_LOGGERS:
        logging.getLogger(noisy).setLevel(logging.WARNING)

    return logger
