"""Append-only log files with periodic flushing."""

from __future__ import annotations

import threading

_FILE_BUFFER_SIZE = 64 * 1024
DEFAULT_FLUSH_EVERY_N = 1024


class AppendFile:
    """A file opened for appending through a 64 KiB write buffer."""

    def __init__(self, filename: str) -> None:
        self._file = open(filename, "ab", buffering=_FILE_BUFFER_SIZE)

    def append(self, data: bytes | str) -> None:
        """Write all of ``data`` to the file buffer."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._file.write(data)

    def flush(self) -> None:
        self._file.flush()

    def close(self) -> None:
        self._file.close()

    def __enter__(self) -> "AppendFile":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


class LogFile:
    """A thread-safe log file that flushes after every ``flush_every_n`` appends."""

    def __init__(self, basename: str, flush_every_n: int = DEFAULT_FLUSH_EVERY_N) -> None:
        self.basename = basename
        self._flush_every_n = flush_every_n
        self._count = 0
        self._lock = threading.Lock()
        self._file = AppendFile(basename)

    def append(self, data: bytes | str) -> None:
        with self._lock:
            self._file.append(data)
            self._count += 1
            if self._count >= self._flush_every_n:
                self._count = 0
                self._file.flush()

    def flush(self) -> None:
        with self._lock:
            self._file.flush()

    def close(self) -> None:
        with self._lock:
            self._file.close()