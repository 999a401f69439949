"""
Tests for logging setup
"""

import logging
import logging.handlers

import pytest

from skiprate.logging_config import get_logger, setup_logging


def _is_pytest_handler(handler):
    return type(handler).__module__.startswith("_pytest")


@pytest.fixture(autouse=True)
def restore_logging(monkeypatch):
    monkeypatch.delenv("SKIPRATE_LOG_LEVEL", raising=False)
    root = logging.getLogger()
    before = root.handlers[:]
    level = root.level
    package_level = logging.getLogger('skiprate').level
    yield
    # pytest attaches its own capture handlers per phase
    for handler in root.handlers[:]:
        if handler not in before and not _is_pytest_handler(handler):
            root.removeHandler(handler)
            handler.close()
    for handler in before:
        if handler not in root.handlers and not _is_pytest_handler(handler):
            root.addHandler(handler)
    root.setLevel(level)
    logging.getLogger('skiprate').setLevel(package_level)


def test_default_level_is_info(monkeypatch):
    monkeypatch.delenv("SKIPRATE_LOG_LEVEL", raising=False)
    logger = setup_logging()
    assert logger.name == 'skiprate'
    assert logger.level == logging.INFO
    assert len(logging.getLogger().handlers) == 1


def test_debug_flag_wins(monkeypatch):
    monkeypatch.setenv("SKIPRATE_LOG_LEVEL", "ERROR")
    assert setup_logging(debug=True).level == logging.DEBUG


def test_level_from_environment(monkeypatch):
    monkeypatch.setenv("SKIPRATE_LOG_LEVEL", "warning")
    assert setup_logging().level == logging.WARNING


def test_unknown_level_falls_back_to_info(monkeypatch):
    monkeypatch.setenv("SKIPRATE_LOG_LEVEL", "chatty")
    assert setup_logging().level == logging.INFO


def test_noisy_loggers_are_quieted():
    setup_logging(debug=True)
    assert logging.getLogger('aiohttp').level == logging.WARNING
    assert logging.getLogger('asyncio').level == logging.WARNING


def test_log_file_handler(tmp_path):
    log_file = tmp_path / "logs" / "skiprate.log"
    setup_logging(log_file=str(log_file))

    handlers = logging.getLogger().handlers
    rotating = [h for h in handlers if isinstance(h, logging.handlers.RotatingFileHandler)]
    assert len(rotating) == 1
    assert rotating[0].maxBytes == 50 * 1024 * 1024
    assert rotating[0].backupCount == 10

    get_logger('skiprate.test').info("written to file")
    rotating[0].flush()
    assert "written to file" in log_file.read_text()


def test_repeated_setup_does_not_stack_handlers():
    setup_logging()
    setup_logging()
    assert len(logging.getLogger().handlers) == 1
