"""Thread helpers: a countdown latch and a named thread that reports its OS id."""

from __future__ import annotations

import threading
from typing import Callable

_DEFAULT_THREAD_NAME = "Thread"
_FINISHED_THREAD_NAME = "finished"

_local = threading.local()


def current_tid() -> int:
    """Return the operating-system id of the calling thread, cached per thread."""
    tid = getattr(_local, "tid", None)
    if tid is None:
        tid = threading.get_native_id()
        _local.tid = tid
    return tid


def current_thread_name() -> str:
    """Return the name the calling thread runs under."""
    name = getattr(_local, "name", None)
    if name is None:
        return threading.current_thread().name
    return name


class CountDownLatch:
    """Blocks waiters until the count has been brought down to zero."""

    def __init__(self, count: int) -> None:
        self._cond = threading.Condition()
        self._count = count

    def wait(self) -> None:
        """Block until the count reaches zero."""
        with self._cond:
            while self._count > 0:
                self._cond.wait()

    def count_down(self) -> None:
        """Decrement the count, waking all waiters when it reaches zero."""
        with self._cond:
            self._count -= 1
            if self._count == 0:
                self._cond.notify_all()

    @property
    def count(self) -> int:
        with self._cond:
            return self._count


class NamedThread:
    """A thread with a name that publishes its OS thread id once running."""

    def __init__(self, func: Callable[[], object], name: str = "") -> None:
        self._func = func
        self._name = name or _DEFAULT_THREAD_NAME
        self._started = False
        self._joined = False
        self._tid = 0
        self._latch = CountDownLatch(1)
        self._thread: threading.Thread | None = None

    def _run(self) -> None:
        self._tid = current_tid()
        self._latch.count_down()
        _local.name = self._name
        try:
            self._func()
        finally:
            _local.name = _FINISHED_THREAD_NAME

    def start(self) -> None:
        """Start the thread and wait until its id is known."""
        if self._started:
            raise RuntimeError("thread already started")
        self._started = True
        self._thread = threading.Thread(target=self._run, name=self._name, daemon=True)
        try:
            self._thread.start()
        except RuntimeError:
            self._started = False
            self._thread = None
            raise
        self._latch.wait()

    def join(self) -> None:
        """Wait for the thread to finish."""
        if not self._started or self._thread is None:
            raise RuntimeError("thread not started")
        if self._joined:
            raise RuntimeError("thread already joined")
        self._joined = True
        self._thread.join()

    @property
    def started(self) -> bool:
        return self._started

    @property
    def tid(self) -> int:
        return self._tid

    @property
    def name(self) -> str:
        return self._name