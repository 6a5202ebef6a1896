"""Double-buffered logging that writes to a file from a background thread."""

from __future__ import annotations

import threading

from edgeserve.logfile import LogFile
from edgeserve.logstream import LARGE_BUFFER, FixedBuffer
from edgeserve.sync import CountDownLatch, NamedThread

_MAX_PENDING_BUFFERS = 25
_KEPT_BUFFERS = 2


class AsyncLogging:
    """Collects log lines in memory and lets a background thread write them out."""

    def __init__(self, basename: str, flush_interval: float = 2) -> None:
        self._basename = basename
        self._flush_interval = flush_interval
        self._running = False
        self._cond = threading.Condition()
        self._current = FixedBuffer(LARGE_BUFFER)
        self._next: FixedBuffer | None = FixedBuffer(LARGE_BUFFER)
        self._buffers: list[FixedBuffer] = []
        self._latch = CountDownLatch(1)
        self._thread = NamedThread(self._thread_func, "Logging")

    def append(self, data: bytes | str) -> None:
        """Queue a log line; wakes the writer when a buffer fills up."""
        if isinstance(data, str):
            data = data.encode("utf-8")
        with self._cond:
            if self._current.avail() > len(data):
                self._current.append(data)
                return
            self._buffers.append(self._current)
            if self._next is not None:
                self._current = self._next
                self._next = None
            else:
                self._current = FixedBuffer(LARGE_BUFFER)
            self._current.append(data)
            self._cond.notify()

    def start(self) -> None:
        self._running = True
        self._thread.start()
        self._latch.wait()

    def stop(self) -> None:
        """Stop the writer thread after it has written everything queued."""
        if not self._running:
            raise RuntimeError("logger is not running")
        self._running = False
        with self._cond:
            self._cond.notify()
        self._thread.join()

    def __enter__(self) -> "AsyncLogging":
        self.start()
        return self

    def __exit__(self, *args: object) -> None:
        if self._running:
            self.stop()

    def _thread_func(self) -> None:
        self._latch.count_down()
        output = LogFile(self._basename)
        spare1: FixedBuffer | None = FixedBuffer(LARGE_BUFFER)
        spare2: FixedBuffer | None = FixedBuffer(LARGE_BUFFER)
        to_write: list[FixedBuffer] = []
        try:
            while self._running:
                with self._cond:
                    if not self._buffers:
                        self._cond.wait(self._flush_interval)
                    self._buffers.append(self._current)
                    self._current = spare1
                    spare1 = None
                    to_write, self._buffers = self._buffers, to_write
                    if self._next is None:
                        self._next = spare2
                        spare2 = None

                if len(to_write) > _MAX_PENDING_BUFFERS:
                    del to_write[_KEPT_BUFFERS:]

                for buf in to_write:
                    output.append(buf.data())

                del to_write[_KEPT_BUFFERS:]

                if spare1 is None:
                    spare1 = to_write.pop()
                    spare1.reset()
                if spare2 is None:
                    spare2 = to_write.pop()
                    spare2.reset()

                to_write.clear()
                output.flush()

            with self._cond:
                pending = self._buffers + [self._current]
                self._buffers = []
                for buf in pending:
                    output.append(buf.data())
                self._current.reset()
            output.flush()
        finally:
            output.close()