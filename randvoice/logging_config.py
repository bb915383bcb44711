"""Centralized logging setup: console (colored) + rotating file.

Call ``setup_logging()`` once at startup.  All modules use ``logging.getLogger(__name__)``.
"""

from __future__ import annotations

import atexit
import logging
import queue
import sys
from logging.handlers import QueueHandler, QueueListener, RotatingFileHandler
from pathlib import Path

from randvoice.log_context import ContextFilter

MAX_BYTES = 5 * 1024 * 1024  # 5 MB per file
BACKUP_COUNT = 3
LOG_FILE_NAME = "server.log"

CONSOLE_FMT = "%(asctime)s %(levelname)s %(name)s: %(ctx)s%(message)s"
FILE_FMT = "%(asctime)s [%(levelname)s] %(name)s:%(lineno)d: %(ctx)s%(message)s"
DATE_FMT = "%H:%M:%S"
FILE_DATE_FMT = "%Y-%m-%d %H:%M:%S"

# One access line per status probe is noise on a long-lived signaling server.
_NOISY_LOGGERS = ("aiohttp.access", "aiohttp.server", "aiohttp.websocket")

logger = logging.getLogger(__name__)

_LEVEL_COLORS = {
    "DEBUG": "\x1b[36m",
    "INFO": "\x1b[32m",
    "WARNING": "\x1b[33m",
    "ERROR": "\x1b[31m",
    "CRITICAL": "\x1b[35m",
}
_RESET = "\x1b[0m"

_listener: QueueListener | None = None
_atexit_hooked = False


def _stop_listener() -> None:
    global _listener  # noqa: PLW0603
    if _listener is not None:
        _listener.stop()
        _listener = None


class _ColorFormatter(logging.Formatter):
    """Pads level names and colors them when writing to a TTY."""

    def __init__(self, fmt: str, datefmt: str | None = None, use_color: bool = True) -> None:
        super().__init__(fmt, datefmt)
        self._use_color = use_color

    def format(self, record: logging.LogRecord) -> str:
        original = record.levelname
        padded = f"{original:<8}"
        if self._use_color:
            padded = f"{_LEVEL_COLORS.get(original, '')}{padded}{_RESET}"
        record.levelname = padded
        try:
            return super().format(record)
        finally:
            record.levelname = original


def _console_handler(level: int, ctx_filter: logging.Filter) -> logging.Handler:
    handler = logging.StreamHandler(sys.stderr)
    handler.setLevel(level)
    handler.addFilter(ctx_filter)
    use_color = hasattr(sys.stderr, "isatty") and sys.stderr.isatty()
    handler.setFormatter(_ColorFormatter(CONSOLE_FMT, datefmt=DATE_FMT, use_color=use_color))
    return handler


def _queued_file_handler(log_dir: Path, ctx_filter: logging.Filter) -> logging.Handler:
    """Rotating file handler fed through a queue so disk I/O stays off the event loop."""
    global _listener, _atexit_hooked  # noqa: PLW0603

    log_dir.mkdir(parents=True, exist_ok=True)
    file_handler = RotatingFileHandler(
        log_dir / LOG_FILE_NAME,
        maxBytes=MAX_BYTES,
        backupCount=BACKUP_COUNT,
        encoding="utf-8",
    )
    file_handler.setLevel(logging.DEBUG)
    file_handler.setFormatter(logging.Formatter(FILE_FMT, datefmt=FILE_DATE_FMT))

    records: queue.Queue[logging.LogRecord] = queue.Queue()
    queue_handler = QueueHandler(records)
    queue_handler.setLevel(logging.DEBUG)
    queue_handler.addFilter(ctx_filter)

    _listener = QueueListener(records, file_handler, respect_handler_level=True)
    _listener.start()
    if not _atexit_hooked:
        atexit.register(_stop_listener)
        _atexit_hooked = True
    return queue_handler


def setup_logging(
    level: int = logging.INFO,
    verbose: bool = False,
    log_dir: Path | None = None,
) -> None:
    """Configure root logger with console + optional rotating file handler.

    Args:
        level: Minimum log level. DEBUG if verbose, else INFO.
        verbose: If True, sets DEBUG level.
        log_dir: Directory for ``server.log``. If None, file logging is skipped.
    """
    if verbose:
        level = logging.DEBUG

    _stop_listener()
    ctx_filter = ContextFilter()

    root = logging.getLogger()
    root.setLevel(level)
    root.handlers.clear()

    if sys.stderr is not None:
        root.addHandler(_console_handler(level, ctx_filter))
    if log_dir is not None:
        root.addHandler(_queued_file_handler(log_dir, ctx_filter))

    for name in _NOISY_LOGGERS:
        logging.getLogger(name).setLevel(logging.WARNING)

    logger.info("Logging initialized (level=%s)", logging.getLevelName(level))
