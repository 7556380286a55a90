"""Blocket Notifier — Logging Setup.

Console output plus a rotating debug log file on the root logger.
Modules get their logger from get_logger(); the entry point calls
configure_logging() once the settings are known to apply the level
and log file from settings.yaml.

A crawl issues hundreds of requests per run, so the per-request INFO
lines of the HTTP and scheduler libraries are raised to WARNING.
"""

from __future__ import annotations

import logging
import sys
from logging.handlers import RotatingFileHandler
from pathlib import Path
from typing import Optional

# ── Defaults ──────────────────────────────────────────────
LOG_DIR = Path(__file__).resolve().parent.parent.parent / "logs"
LOG_FILE = LOG_DIR / "blocket_notifier.log"
MAX_BYTES = 10 * 1024 * 1024  # 10 MB
BACKUP_COUNT = 5

LINE_FORMAT = "%(asctime)s │ %(levelname)-8s │ %(name)s │ %(message)s"
DATE_FORMAT = "%Y-%m-%d %H:%M:%S"

# Third-party loggers that log every request or job run at INFO
NOISY_LOGGERS = (
    "httpx",
    "httpcore",
    "apscheduler.scheduler",
    "apscheduler.executors.default",
    "telegram.ext",
)

LEVEL_COLORS = {
    logging.DEBUG: "\033[36m",
    logging.INFO: "\033[32m",
    logging.WARNING: "\033[33m",
    logging.ERROR: "\033[31m",
    logging.CRITICAL: "\033[41m",
}
RESET = "\033[0m"

_console_handler: Optional[logging.Handler] = None
_file_handler: Optional[logging.Handler] = None


class ConsoleFormatter(logging.Formatter):
    """Colors the level and timestamp when writing to a terminal."""

    def __init__(self, use_color: bool) -> None:
        super().__init__(fmt=LINE_FORMAT, datefmt=DATE_FORMAT)
        self.use_color = use_color

    def formatTime(self, record: logging.LogRecord, datefmt: Optional[str] = None) -> str:
        stamp = super().formatTime(record, datefmt)
        if not self.use_color:
            return stamp
        return f"{LEVEL_COLORS.get(record.levelno, '')}{stamp}{RESET}"

    def format(self, record: logging.LogRecord) -> str:
        if not self.use_color:
            return super().format(record)
        # Copy so other handlers still see the plain level name
        colored = logging.makeLogRecord(record.__dict__)
        color = LEVEL_COLORS.get(record.levelno, "")
        colored.levelname = f"{color}{record.levelname:<8}{RESET}"
        return super().format(colored)


def _make_file_handler(path: Path, max_bytes: int, backup_count: int) -> logging.Handler:
    path.parent.mkdir(parents=True, exist_ok=True)
    handler = RotatingFileHandler(
        filename=str(path),
        maxBytes=max_bytes,
        backupCount=backup_count,
        encoding="utf-8",
    )
    handler.setLevel(logging.DEBUG)
    handler.setFormatter(logging.Formatter(fmt=LINE_FORMAT, datefmt=DATE_FORMAT))
    return handler


def _setup_logging() -> None:
    """Install the default handlers once; later calls are no-ops."""
    global _console_handler, _file_handler
    if _console_handler is not None:
        return

    root_logger = logging.getLogger()
    root_logger.setLevel(logging.DEBUG)

    console = logging.StreamHandler(sys.stdout)
    console.setLevel(logging.INFO)
    console.setFormatter(ConsoleFormatter(use_color=sys.stdout.isatty()))
    root_logger.addHandler(console)
    _console_handler = console

    _file_handler = _make_file_handler(LOG_FILE, MAX_BYTES, BACKUP_COUNT)
    root_logger.addHandler(_file_handler)

    for name in NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)


def configure_logging(
    level: str = "INFO",
    log_file: Optional[str | Path] = None,
    max_bytes: int = MAX_BYTES,
    backup_count: int = BACKUP_COUNT,
) -> None:
    """Apply the logging settings.

    Args:
        level: Console level name such as "DEBUG" or "WARNING". The
            file always receives DEBUG.
        log_file: Where the rotating log goes; None keeps the default
            logs/blocket_notifier.log.
        max_bytes: Rotation size for the log file.
        backup_count: Rotated files to keep.
    """
    global _file_handler
    _setup_logging()
    _console_handler.setLevel(level.upper())

    target = Path(log_file) if log_file else LOG_FILE
    root_logger = logging.getLogger()
    if _file_handler is not None:
        root_logger.removeHandler(_file_handler)
        _file_handler.close()
    _file_handler = _make_file_handler(target, max_bytes, backup_count)
    root_logger.addHandler(_file_handler)


def get_logger(name: str) -> logging.Logger:
    """Named logger with the default handlers installed.

    Args:
        name: The logger name, typically __name__ of the calling module.
    """
    _setup_logging()
    return logging.getLogger(name)
