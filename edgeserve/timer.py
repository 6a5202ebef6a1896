"""Connection timeouts kept in a lazily pruned min-heap."""

from __future__ import annotations

import heapq
import threading
import time
from typing import Any, Callable, Optional

ExpireCallback = Callable[[Any], object]


def _now_ms() -> int:
    return int(time.monotonic() * 1000)


class TimerNode:
    """A deadline for one request.

    When the node is discarded while it still holds its request, ``on_expire``
    is called with that request so the owner can drop the connection.
    """

    def __init__(
        self,
        request: Any,
        timeout: int,
        on_expire: Optional[ExpireCallback] = None,
    ) -> None:
        self._request = request
        self._on_expire = on_expire
        self._deleted = False
        self._expires_at = _now_ms() + timeout

    def update(self, timeout: int) -> None:
        """Move the deadline to ``timeout`` milliseconds from now."""
        self._expires_at = _now_ms() + timeout

    def is_valid(self) -> bool:
        """Return whether the deadline lies in the future; marks the node deleted if not."""
        if _now_ms() < self._expires_at:
            return True
        self.mark_deleted()
        return False

    def clear_request(self) -> None:
        """Detach the request so discarding the node leaves it alone."""
        self._request = None
        self.mark_deleted()

    def mark_deleted(self) -> None:
        self._deleted = True

    @property
    def deleted(self) -> bool:
        return self._deleted

    @property
    def expires_at(self) -> int:
        """Deadline in milliseconds on the monotonic clock."""
        return self._expires_at

    def __lt__(self, other: "TimerNode") -> bool:
        return self._expires_at < other._expires_at

    def _release(self) -> None:
        request, self._request = self._request, None
        if request is not None and self._on_expire is not None:
            self._on_expire(request)


class TimerManager:
    """Holds timer nodes ordered by deadline and discards expired ones."""

    def __init__(self, on_expire: Optional[ExpireCallback] = None) -> None:
        self._on_expire = on_expire
        self._heap: list[TimerNode] = []
        self._lock = threading.Lock()

    def add_timer(self, request: Any, timeout: int) -> TimerNode:
        """Create a node for ``request`` and link it to the request."""
        node = TimerNode(request, timeout, self._on_expire)
        with self._lock:
            heapq.heappush(self._heap, node)
        request.link_timer(node)
        return node

    def handle_expired(self) -> None:
        """Pop nodes from the front while they are deleted or past their deadline.

        Deleted nodes behind a still-valid front node stay until they reach
        the front, which keeps removal free of heap searches.
        """
        released: list[TimerNode] = []
        with self._lock:
            while self._heap:
                front = self._heap[0]
                if front.deleted or not front.is_valid():
                    released.append(heapq.heappop(self._heap))
                else:
                    break
        for node in released:
            node._release()

    def __len__(self) -> int:
        with self._lock:
            return len(self._heap)