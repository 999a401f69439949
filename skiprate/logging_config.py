"""
Logging configuration for skiprate.

The library modules only create loggers; handlers are attached here, by the
command line front end or by an embedding application.
"""
import logging
import logging.handlers
import os
import sys
from pathlib import Path
from typing import Optional

LOG_FORMAT = '%(asctime)s - %(name)s - %(levelname)s: %(message)s'
DATE_FORMAT = '%Y-%m-%d %H:%M:%S'
LOG_LEVEL_ENV = 'SKIPRATE_LOG_LEVEL'

NOISY_LOGGERS = ('aiohttp', 'asyncio')


def _resolve_level(debug: bool) -> int:
    if debug:
        return logging.DEBUG
    name = os.getenv(LOG_LEVEL_ENV, '').upper()
    level = logging.getLevelName(name) if name else logging.INFO
    return level if isinstance(level, int) else logging.INFO


def setup_logging(debug: bool = False, log_file: Optional[str] = None) -> logging.Logger:
    """
    Configure the root logger.

    Args:
        debug: Force DEBUG level; otherwise SKIPRATE_LOG_LEVEL or INFO is used
        log_file: Optional path for a size-rotating log file

    Returns:
        logging.Logger: the skiprate package logger
    """
    log_level = _resolve_level(debug)
    formatter = logging.Formatter(LOG_FORMAT, datefmt=DATE_FORMAT)

    console_handler = logging.StreamHandler(sys.stderr)
    console_handler.setLevel(log_level)
    console_handler.setFormatter(formatter)

    root_logger = logging.getLogger()
    root_logger.setLevel(log_level)

    # Remove existing handlers
    for handler in root_logger.handlers[:]:
        root_logger.removeHandler(handler)
    root_logger.addHandler(console_handler)

    if log_file:
        path = Path(log_file)
        path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            path,
            maxBytes=50*1024*1024,  # 50MB
            backupCount=10
        )
        file_handler.setLevel(log_level)
        file_handler.setFormatter(formatter)
        root_logger.addHandler(file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    package_logger = logging.getLogger('skiprate')
    package_logger.setLevel(log_level)
    package_logger.debug("Logging initialized")
    return package_logger


def get_logger(name: str) -> logging.Logger:
    """
    Get a logger by name, creating it if it doesn't exist

    Args:
        name: Name of the logger

    Returns:
        logging.Logger: Logger instance
    """
    return logging.getLogger(name)
