"""Logging setup shared by the CLI and the GUI.

One rotating file in the per-user directory plus an optional console
handler. Per-advance scheduler lines carry ``PLAYBACK_TRACE_TAG`` and are
dropped unless ``LOOPPLAYER_PLAYBACK_TRACE`` is set or the perf preset is on.
"""

from __future__ import annotations

import logging
import logging.handlers
import os
import time
from enum import Enum
from pathlib import Path
from typing import Optional

from .platform_paths import get_user_data_dir


DEFAULT_LOG_FILENAME = "loopplayer.log"
PLAYBACK_TRACE_TAG = "[playback.trace]"
_PLAYBACK_TRACE_FLAG = "LOOPPLAYER_PLAYBACK_TRACE"
_FORMAT = "[%(asctime)s] %(levelname)s %(name)s: %(message)s"


class LogMode(str, Enum):
    """Verbosity presets selectable with ``--log-mode``."""

    QUIET = "quiet"
    NORMAL = "normal"
    PERF = "perf"


_LOG_MODE: LogMode = LogMode.NORMAL


def get_default_log_path() -> Path:
    """Log file in the user data directory, or the cwd when that is unusable."""
    directory = get_user_data_dir()
    try:
        directory.mkdir(parents=True, exist_ok=True)
    except OSError:
        directory = Path.cwd()
    return directory / DEFAULT_LOG_FILENAME


def set_log_mode(mode: LogMode | str | None) -> LogMode:
    """Record the active preset; unknown names fall back to normal."""
    global _LOG_MODE
    if isinstance(mode, LogMode):
        _LOG_MODE = mode
    else:
        try:
            _LOG_MODE = LogMode((mode or "normal").lower())
        except ValueError:
            _LOG_MODE = LogMode.NORMAL
    return _LOG_MODE


def get_log_mode() -> LogMode:
    return _LOG_MODE


def is_perf_logging_enabled() -> bool:
    return _LOG_MODE is LogMode.PERF


def playback_trace_allowed() -> bool:
    if os.environ.get(_PLAYBACK_TRACE_FLAG, "").strip().lower() in {"1", "true", "yes", "on"}:
        return True
    return is_perf_logging_enabled()


class _PlaybackTraceFilter(logging.Filter):
    def filter(self, record: logging.LogRecord) -> bool:  # type: ignore[override]
        try:
            message = record.getMessage()
        except Exception:
            return True
        return PLAYBACK_TRACE_TAG not in message or playback_trace_allowed()


_TRACE_FILTER = _PlaybackTraceFilter()


def _resolve_level(level: str | int) -> int:
    if isinstance(level, str):
        return getattr(logging, level.upper(), logging.INFO)
    return int(level)


def setup_logging(
    *,
    level: str | int = "INFO",
    log_file: Optional[str | Path] = None,
    logger_name: Optional[str] = None,
    log_mode: LogMode | str | None = None,
    add_console: bool = True,
) -> logging.Logger:
    """Attach file and console handlers to *logger_name* (root by default).

    Calling it again only adjusts levels; handlers are never duplicated.
    The perf preset forces DEBUG, the quiet preset keeps the console at
    WARNING or above.
    """
    file_level = _resolve_level(level)
    mode = set_log_mode(log_mode) if log_mode is not None else get_log_mode()
    if mode is LogMode.PERF:
        file_level = min(file_level, logging.DEBUG)
    console_level = max(logging.WARNING, file_level) if mode is LogMode.QUIET else file_level

    logger = logging.getLogger(logger_name) if logger_name else logging.getLogger()
    logger.setLevel(file_level)
    if _TRACE_FILTER not in logger.filters:
        logger.addFilter(_TRACE_FILTER)

    if logger.handlers:
        for handler in logger.handlers:
            console = type(handler) is logging.StreamHandler
            handler.setLevel(console_level if console else file_level)
        return logger

    formatter = logging.Formatter(fmt=_FORMAT, datefmt="%H:%M:%S")
    log_path = Path(log_file) if log_file else get_default_log_path()
    try:
        log_path.parent.mkdir(parents=True, exist_ok=True)
        file_handler = logging.handlers.RotatingFileHandler(
            log_path, maxBytes=1_000_000, backupCount=3, encoding="utf-8"
        )
    except OSError:
        # Unwritable log location: console only
        file_handler = None
    if file_handler is not None:
        file_handler.setLevel(file_level)
        file_handler.setFormatter(formatter)
        file_handler.addFilter(_TRACE_FILTER)
        logger.addHandler(file_handler)

    if add_console:
        console = logging.StreamHandler()
        console.setLevel(console_level)
        console.setFormatter(formatter)
        console.addFilter(_TRACE_FILTER)
        logger.addHandler(console)
    return logger


class BurstSampler:
    """Counts repeated events and reports the total at most once per window.

    The scheduler records every advance and logs one trace line per window
    instead of one per frame.
    """

    def __init__(self, interval_s: float = 2.0) -> None:
        self.interval_s = max(0.1, float(interval_s))
        self._count = 0
        self._deadline = time.monotonic() + self.interval_s

    def record(self, amount: int = 1) -> Optional[int]:
        self._count += max(0, amount)
        now = time.monotonic()
        if now < self._deadline:
            return None
        self._deadline = now + self.interval_s
        total, self._count = self._count, 0
        return total

    def flush(self) -> int:
        total, self._count = self._count, 0
        self._deadline = time.monotonic() + self.interval_s
        return total
