"""Tests for config/logging_config.py."""

import logging
from logging.handlers import RotatingFileHandler

from sentinel_monitor.config.logging_config import setup_logging


def test_setup_logging_installs_console_and_rotating_file(tmp_path):
    logger = setup_logging("sentinel_monitor.test_setup", level="DEBUG", log_dir=str(tmp_path))
    try:
        kinds = {type(h) for h in logger.handlers}
        assert kinds == {logging.StreamHandler, RotatingFileHandler}
        assert logger.level == logging.DEBUG

        logger.info("hello")
        for h in logger.handlers:
            h.flush()
        assert "| INFO     | sentinel_monitor.test_setup | hello" in (tmp_path / "sentinel_monitor.log").read_text()
    finally:
        for h in list(logger.handlers):
            h.close()
            logger.removeHandler(h)


def test_setup_logging_is_idempotent(tmp_path):
    first = setup_logging("sentinel_monitor.test_idem", log_dir=str(tmp_path))
    try:
        second = setup_logging("sentinel_monitor.test_idem", log_dir=str(tmp_path))
        assert first is second
        assert len(second.handlers) == 2
    finally:
        for h in list(first.handlers):
            h.close()
            first.removeHandler(h)
