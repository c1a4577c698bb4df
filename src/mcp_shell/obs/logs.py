"""Logging setup and the in-memory recent-entries buffer."""

from __future__ import annotations

import logging
import sys
import threading
from collections import deque
from datetime import datetime, timezone

from mcp_shell.config import LoggingConfig

ROOT_LOGGER = "mcp_shell"
_STDERR_FORMAT = "%(asctime)s %(levelname)s %(name)s: %(message)s"


class RecentLogHandler(logging.Handler):
    """Keeps the last `capacity` records as formatted lines."""

    def __init__(self, capacity: int = 1000) -> None:
        super().__init__()
        self._entries: deque[str] = deque(maxlen=capacity)
        self._entries_lock = threading.Lock()

    @property
    def capacity(self) -> int:
        return self._entries.maxlen or 0

    def emit(self, record: logging.LogRecord) -> None:
        try:
            timestamp = datetime.fromtimestamp(record.created, tz=timezone.utc).isoformat()
            line = f"[{timestamp}] {record.levelname}: {record.getMessage()}"
        except Exception:
            self.handleError(record)
            return
        with self._entries_lock:
            self._entries.append(line)

    def recent(self, count: int = 50) -> list[str]:
        if count <= 0:
            return []
        with self._entries_lock:
            return list(self._entries)[-count:]

    def clear(self) -> None:
        with self._entries_lock:
            self._entries.clear()


_recent_handler = RecentLogHandler()


def configure_logging(config: LoggingConfig | None = None) -> RecentLogHandler:
    """Attach the stderr and recent-entries handlers to the package logger.

    stdout is left untouched because the stdio transport owns it. Calling this
    again replaces the handlers installed by a previous call.
    """

    global _recent_handler
    config = config or LoggingConfig()
    logger = logging.getLogger(ROOT_LOGGER)
    for handler in list(logger.handlers):
        if getattr(handler, "_mcp_shell_owned", False):
            logger.removeHandler(handler)

    stream_handler = logging.StreamHandler(sys.stderr)
    stream_handler.setFormatter(logging.Formatter(_STDERR_FORMAT))
    _recent_handler = RecentLogHandler(capacity=config.max_logs)
    for handler in (stream_handler, _recent_handler):
        handler._mcp_shell_owned = True  # type: ignore[attr-defined]
        logger.addHandler(handler)

    logger.setLevel(config.level.upper())
    return _recent_handler


def attach_recent_handler(config: LoggingConfig | None = None) -> RecentLogHandler:
    """Make sure package records reach the recent-entries buffer.

    Used when the shell is embedded without `configure_logging`, for example
    behind the HTTP app. An already attached buffer is kept as is. The package
    logger level is only set when nothing has set it yet.
    """

    global _recent_handler
    logger = logging.getLogger(ROOT_LOGGER)
    if _recent_handler in logger.handlers:
        return _recent_handler

    config = config or LoggingConfig()
    _recent_handler = RecentLogHandler(capacity=config.max_logs)
    _recent_handler._mcp_shell_owned = True  # type: ignore[attr-defined]
    logger.addHandler(_recent_handler)
    if logger.level == logging.NOTSET:
        logger.setLevel(config.level.upper())
    return _recent_handler


def recent_logs(count: int = 50) -> str:
    """Return the most recent entries, one per line, oldest first."""

    return "\n".join(_recent_handler.recent(count))
