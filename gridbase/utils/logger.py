"""
Logging Configuration Module
Root handlers for the API process, the ingestion worker and the scripts.
"""

import logging
import sys
import time
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Dict, Iterable

from gridbase.config_manager import ConfigManager

DEFAULT_FORMAT = '%(asctime)s - %(name)s - %(levelname)s - [%(threadName)s] %(message)s'

# SQL echo, scheduler ticks and per-request access lines drown out batch progress.
QUIET_LOGGERS = ('sqlalchemy.engine', 'sqlalchemy.pool', 'apscheduler', 'werkzeug')


class UTCFormatter(logging.Formatter):
    """Formatter whose timestamps are UTC, matching the timestamps stored in the database."""
    converter = time.gmtime


def _level(value, default: int = logging.INFO) -> int:
    level = logging.getLevelName(str(value or '').upper())
    return level if isinstance(level, int) else default


def _quiet(names: Iterable[str]) -> None:
    for name in names:
        logging.getLogger(name).setLevel(logging.WARNING)


def setup_logging(overrides: Dict = None) -> None:
    """
    Install the root handlers. Call once at process startup.

    The ``logging`` config section drives it:
    level, format, file (empty disables the file), max_bytes, backup_count,
    console (default true) and quiet (extra logger names lowered to WARNING).

    Args:
        overrides: Keys that replace the configured ones (scripts use this for --verbose)
    """
    log_config = dict(ConfigManager().get_logging_config())
    log_config.update(overrides or {})

    log_level = _level(log_config.get('level'))
    formatter = UTCFormatter(log_config.get('format') or DEFAULT_FORMAT)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)
    for handler in list(root_logger.handlers):
        root_logger.removeHandler(handler)
        handler.close()

    if log_config.get('console', True):
        console_handler = logging.StreamHandler(sys.stdout)
        console_handler.setFormatter(formatter)
        root_logger.addHandler(console_handler)

    log_file = log_config.get('file')
    if log_file:
        Path(log_file).parent.mkdir(parents=True, exist_ok=True)
        file_handler = RotatingFileHandler(
            log_file,
            maxBytes=int(log_config.get('max_bytes', 10485760)),  # 10MB
            backupCount=int(log_config.get('backup_count', 5)),
            encoding='utf-8',
        )
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    _quiet(QUIET_LOGGERS)
    _quiet(log_config.get('quiet') or ())


def get_logger(name: str) -> logging.Logger:
    """Module logger; use ``get_logger(__name__)``."""
    return logging.getLogger(name)
