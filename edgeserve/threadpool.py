"""A fixed-size pool of worker threads fed from a bounded task queue."""

from __future__ import annotations

import enum
import threading
import traceback
from collections import deque
from typing import Any, Callable

MAX_THREADS = 1024
MAX_QUEUE = 65535
DEFAULT_THREADS = 4
DEFAULT_QUEUE = 1024

Task = Callable[[Any], object]


class ShutdownOption(enum.IntEnum):
    IMMEDIATE = 1
    GRACEFUL = 2


class ThreadPoolError(Exception):
    """Base class for thread pool failures."""


class QueueFullError(ThreadPoolError):
    """The task queue has no free slot."""


class PoolShutdownError(ThreadPoolError):
    """The pool is shutting down or has shut down."""


def handle_request(request: Any) -> None:
    """Run one I/O step for a connection: write if possible, else read, then rearm."""
    if request.can_write():
        request.handle_write()
    elif request.can_read():
        request.handle_read()
    request.handle_conn()


class ThreadPool:
    """Worker threads that run queued ``func(args)`` tasks.

    Out-of-range sizes fall back to 4 threads and a queue of 1024.
    """

    def __init__(self, thread_count: int = DEFAULT_THREADS, queue_size: int = DEFAULT_QUEUE) -> None:
        if not (0 < thread_count <= MAX_THREADS and 0 < queue_size <= MAX_QUEUE):
            thread_count = DEFAULT_THREADS
            queue_size = DEFAULT_QUEUE
        self._queue_size = queue_size
        self._queue: deque[tuple[Task, Any]] = deque()
        self._cond = threading.Condition()
        self._shutdown: ShutdownOption | None = None
        self._threads: list[threading.Thread] = []
        for i in range(thread_count):
            thread = threading.Thread(target=self._worker, name=f"pool-{i}", daemon=True)
            thread.start()
            self._threads.append(thread)

    def submit(self, args: Any, func: Task = handle_request) -> None:
        """Queue ``func(args)``; raises if the queue is full or the pool is shut down."""
        with self._cond:
            if len(self._queue) == self._queue_size:
                raise QueueFullError("thread pool queue is full")
            if self._shutdown is not None:
                raise PoolShutdownError("thread pool is shut down")
            self._queue.append((func, args))
            self._cond.notify()

    def shutdown(self, option: ShutdownOption = ShutdownOption.GRACEFUL) -> None:
        """Stop the workers and wait for them.

        A graceful shutdown drains the queue first; an immediate one drops it.
        """
        with self._cond:
            if self._shutdown is not None:
                raise PoolShutdownError("thread pool is already shut down")
            self._shutdown = ShutdownOption(option)
            self._cond.notify_all()
        for thread in self._threads:
            thread.join()

    def __enter__(self) -> "ThreadPool":
        return self

    def __exit__(self, *args: object) -> None:
        if self._shutdown is None:
            self.shutdown()

    def _worker(self) -> None:
        while True:
            with self._cond:
                while not self._queue and self._shutdown is None:
                    self._cond.wait()
                if self._shutdown is ShutdownOption.IMMEDIATE or (
                    self._shutdown is ShutdownOption.GRACEFUL and not self._queue
                ):
                    return
                func, args = self._queue.popleft()
            try:
                func(args)
            except Exception:
                traceback.print_exc()