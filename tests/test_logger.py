"""Tests for logging configuration."""

from __future__ import annotations

import logging

import pytest

from blocket_notifier.utils.logger import NOISY_LOGGERS, configure_logging, get_logger


@pytest.fixture
def restore_logging():
    yield
    configure_logging("INFO")


def test_configured_file_receives_debug_lines(tmp_path, restore_logging):
    log_file = tmp_path / "logs" / "run.log"
    configure_logging("WARNING", log_file)

    get_logger("blocket_notifier.test").debug("detail page parsed")
    for handler in logging.getLogger().handlers:
        handler.flush()

    assert "detail page parsed" in log_file.read_text(encoding="utf-8")


def test_request_loggers_are_quieted():
    get_logger("blocket_notifier.test")

    for name in NOISY_LOGGERS:
        assert logging.getLogger(name).level == logging.WARNING
