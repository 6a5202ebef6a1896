"""Per-statement log records sent to a process-wide output sink."""

from __future__ import annotations

import threading
from typing import Callable

from edgeserve.async_logging import AsyncLogging
from edgeserve.logstream import LogStream

DEFAULT_LOG_FILE = "web_server.log"

Sink = Callable[[bytes], object]

_lock = threading.Lock()
_sink: Sink | None = None
_async_logger: AsyncLogging | None = None


def _default_sink(data: bytes) -> None:
    global _async_logger
    with _lock:
        if _async_logger is None:
            _async_logger = AsyncLogging(DEFAULT_LOG_FILE)
            _async_logger.start()
        logger = _async_logger
    logger.append(data)


def set_output(func: Sink | None) -> Sink | None:
    """Route log records to ``func``; ``None`` restores the default file. Returns the previous sink."""
    global _sink
    with _lock:
        previous, _sink = _sink, func
    return previous


def output(data: bytes) -> None:
    """Send a finished record to the current sink."""
    sink = _sink
    if sink is None:
        _default_sink(data)
    else:
        sink(data)


class Logger:
    """One log record: write into ``stream()``, then ``finish()`` to emit it."""

    def __init__(self, filename: str, line: int) -> None:
        self._stream = LogStream()
        self._basename = filename
        self._line = line
        self._finished = False

    def stream(self) -> LogStream:
        return self._stream

    def finish(self) -> None:
        """Append the source location and emit the record once."""
        if self._finished:
            return
        self._finished = True
        self._stream << " - " << self._basename << ":" << self._line << "\n"
        output(self._stream.buffer().data())

    def __enter__(self) -> "Logger":
        return self

    def __exit__(self, *args: object) -> None:
        self.finish()