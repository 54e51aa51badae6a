import logging
import sys
from datetime import datetime, timezone
from pathlib import Path
from typing import Optional

from arena.config import Config

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'

_file_handler: Optional[logging.Handler] = None


def _shared_file_handler(formatter: logging.Formatter) -> logging.Handler:
    """One arena_<date>.log handler shared by every arena logger"""
    global _file_handler
    if _file_handler is None:
        log_dir = Path(Config.LOG_DIR)
        log_dir.mkdir(parents=True, exist_ok=True)
        day = datetime.now(timezone.utc).strftime("%Y%m%d")
        _file_handler = logging.FileHandler(log_dir / f'arena_{day}.log', encoding='utf-8')
        _file_handler.setLevel(logging.DEBUG)
        _file_handler.setFormatter(formatter)
    return _file_handler


def setup_logger(name: str, level: Optional[int] = None) -> logging.Logger:
    """
    Get an arena logger writing to stdout and, unless LOG_TO_FILE is off, the daily log file.

    Args:
        name: Logger name, usually ``__name__``
        level: Override for the console level (DEBUG when Config.DEBUG, else INFO)
    """
    logger = logging.getLogger(name)
    if logger.handlers:
        return logger

    if level is None:
        level = logging.DEBUG if Config.DEBUG else logging.INFO
    logger.setLevel(min(level, logging.DEBUG) if Config.LOG_TO_FILE else level)

    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stdout)
    console_handler.setLevel(level)
    console_handler.setFormatter(formatter)
    logger.addHandler(console_handler)

    if Config.LOG_TO_FILE:
        logger.addHandler(_shared_file_handler(formatter))

    return logger
