"""
로깅 모듈.

[ 역할 ]
    파일 + 콘솔 로거를 설정. 시그널 생성, 지갑 거래, 백테스트 진행 내역을 기록.
    하위 모듈은 logging.getLogger("horizon_trader.<영역>")만 쓰고,
    핸들러는 진입점에서 여기 setup_logger()로 한 번만 붙인다.

[ 로그 파일 위치 ]
    {log_dir}/{name}_{YYYYMMDD}.log (예: logs/horizon_trader_20240601.log)

[ 로거 이름 ]
    horizon_trader.indicators / .strategy / .wallet / .backtest

[ 호출하는 곳 ]
    - run_backtest.py에서 setup_logger() 호출
"""

import logging
import sys
from datetime import datetime
from pathlib import Path

LOG_FORMAT = "%(asctime)s [%(levelname)s] %(name)s: %(message)s"


def setup_logger(
    name: str = "horizon_trader",
    level: str = "INFO",
    log_dir: str | None = "logs",
    console: bool = True,
) -> logging.Logger:
    """로거 설정. 파일 핸들러(일별) + 콘솔 핸들러 등록.

    log_dir가 None이면 파일 핸들러 없이 콘솔만.
    이미 핸들러가 붙은 로거는 레벨만 바꾸고 그대로 반환.
    """
    logger = logging.getLogger(name)
    logger.setLevel(getattr(logging, level.upper()))

    if logger.handlers:
        return logger

    formatter = logging.Formatter(LOG_FORMAT, datefmt="%Y-%m-%d %H:%M:%S")

    # 파일 핸들러
    if log_dir is not None:
        log_path = Path(log_dir)
        log_path.mkdir(parents=True, exist_ok=True)
        today = datetime.now().strftime("%Y%m%d")
        file_handler = logging.FileHandler(
            log_path / f"{name}_{today}.log",
            encoding="utf-8",
        )
        file_handler.setFormatter(formatter)
        logger.addHandler(file_handler)

    # 콘솔 핸들러
    if console:
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        logger.addHandler(console_handler)

    return logger
