"""Readiness-driven HTTP server: accepts clients, hands ready ones to a thread pool."""

from __future__ import annotations

import argparse
import logging
import selectors
import socket
import sys
import threading
from typing import Iterable, Optional

from edgeserve.connection import READ, WRITE, Connection
from edgeserve.threadpool import ThreadPool, ThreadPoolError
from edgeserve.timer import TimerManager, TimerNode
from edgeserve.util import ignore_sigpipe, set_nonblocking

PORT = 8888
LISTENQ = 1024
MAXFDS = 1000
THREADPOOL_THREAD_NUM = 4
QUEUE_SIZE = 65535
TIMER_TIME_OUT = 500
POLL_INTERVAL = 0.5
PATH = "/"

_log = logging.getLogger(__name__)


class Server:
    """Watches a listening socket and its client connections.

    Client sockets are armed for one event at a time: once an event is
    reported the connection is taken out of the selector and handed to the
    thread pool, which re-arms it through ``modify`` when it is done.
    """

    def __init__(
        self,
        listen_sock: socket.socket,
        thread_count: int = THREADPOOL_THREAD_NUM,
        queue_size: int = QUEUE_SIZE,
    ) -> None:
        set_nonblocking(listen_sock)
        self._listen = listen_sock
        self._listen_fd = listen_sock.fileno()
        self._selector = selectors.DefaultSelector()
        self._selector.register(self._listen_fd, READ, None)
        self._registered: dict[int, Connection] = {}
        self._lock = threading.RLock()
        self._timers = TimerManager(self._expire)
        self._pool = ThreadPool(thread_count, queue_size)
        self._stop = threading.Event()
        self._loop_lock = threading.Lock()
        self._serving_thread: Optional[threading.Thread] = None
        self._closed = False

    def _expire(self, conn: Connection) -> None:
        self.remove(conn)
        conn.close()

    def add(self, conn: Connection, events: int) -> None:
        """Start watching ``conn`` for ``events``; raises if it is already watched."""
        fd = conn.fileno()
        with self._lock:
            if self._closed:
                raise OSError("server is closed")
            if fd in self._registered:
                raise FileExistsError(f"descriptor {fd} is already registered")
            try:
                self._selector.register(fd, events, conn)
            except (ValueError, KeyError) as exc:
                raise OSError(str(exc)) from exc
            self._registered[fd] = conn

    def modify(self, conn: Connection, events: int) -> None:
        """Re-arm ``conn`` for ``events``, registering it again if needed."""
        fd = conn.fileno()
        with self._lock:
            if self._closed:
                raise OSError("server is closed")
            try:
                if fd in self._registered:
                    self._selector.modify(fd, events, conn)
                else:
                    self._selector.register(fd, events, conn)
            except (ValueError, KeyError) as exc:
                self._registered.pop(fd, None)
                raise OSError(str(exc)) from exc
            self._registered[fd] = conn

    def remove(self, conn: Connection) -> None:
        """Stop watching ``conn``; a connection that is not watched is ignored."""
        with self._lock:
            fd = conn.fileno()
            if self._registered.get(fd) is not conn:
                fd = next((k for k, v in self._registered.items() if v is conn), -1)
            if fd < 0 or self._registered.pop(fd, None) is None:
                return
            if not self._closed:
                try:
                    self._selector.unregister(fd)
                except (KeyError, ValueError):
                    pass

    def add_timer(self, conn: Connection, timeout: int) -> TimerNode:
        """Drop ``conn`` unless it becomes active within ``timeout`` milliseconds."""
        return self._timers.add_timer(conn, timeout)

    def accept_connections(self) -> None:
        """Accept every pending client and arm it for reading."""
        while True:
            try:
                sock, addr = self._listen.accept()
            except InterruptedError:
                continue
            except (BlockingIOError, OSError):
                return
            _log.debug("accepted connection from %s", addr)
            if sock.fileno() >= MAXFDS:
                sock.close()
                continue
            set_nonblocking(sock)
            conn = Connection(sock, self, PATH)
            try:
                self.add(conn, READ)
            except OSError:
                conn.close()
                continue
            self.add_timer(conn, TIMER_TIME_OUT)

    def dispatch(self, ready: Iterable[tuple[selectors.SelectorKey, int]]) -> list[Connection]:
        """Turn reported events into connections ready for a worker.

        Each returned connection has been disarmed and separated from its timer.
        """
        found: list[Connection] = []
        for key, mask in ready:
            if key.fd == self._listen_fd:
                self.accept_connections()
                continue
            with self._lock:
                conn = self._registered.pop(key.fd, None)
                if conn is not None and not self._closed:
                    try:
                        self._selector.unregister(key.fd)
                    except (KeyError, ValueError):
                        pass
            if conn is None:
                _log.debug("event for unknown descriptor %d", key.fd)
                continue
            if mask & READ:
                conn.enable_read()
            if mask & WRITE:
                conn.enable_write()
            conn.separate_timer()
            found.append(conn)
        return found

    def poll_once(self, timeout: Optional[float] = None) -> list[Connection]:
        """Wait up to ``timeout`` seconds, queue ready connections and prune timers.

        Returns the connections handed to the pool. When the pool refuses one,
        it and the rest of this round are dropped.
        """
        try:
            ready = self._selector.select(timeout)
        except InterruptedError:
            ready = []
        conns = self.dispatch(ready)
        submitted: list[Connection] = []
        for index, conn in enumerate(conns):
            try:
                self._pool.submit(conn)
            except ThreadPoolError:
                for dropped in conns[index:]:
                    dropped.close()
                break
            submitted.append(conn)
        self._timers.handle_expired()
        return submitted

    def serve_forever(self) -> None:
        """Poll until ``close`` is called."""
        with self._loop_lock:
            self._serving_thread = threading.current_thread()
            try:
                while not self._stop.is_set():
                    self.poll_once(POLL_INTERVAL)
            finally:
                self._serving_thread = None

    def close(self) -> None:
        """Stop serving, finish queued work and close every socket."""
        self._stop.set()
        if self._serving_thread is not threading.current_thread():
            with self._loop_lock:
                pass
        with self._lock:
            if self._closed:
                return
            self._closed = True
        self._pool.shutdown()
        with self._lock:
            conns = list(self._registered.values())
            self._registered.clear()
        for conn in conns:
            conn.close()
        self._selector.close()
        self._listen.close()

    def __enter__(self) -> "Server":
        return self

    def __exit__(self, *args: object) -> None:
        self.close()


def socket_bind_listen(port: int) -> socket.socket:
    """Create a TCP socket listening on all interfaces at ``port`` (1024-65535)."""
    if port < 1024 or port > 65535:
        raise ValueError(f"port {port} is outside 1024-65535")
    sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
    try:
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.bind(("", port))
        sock.listen(LISTENQ)
    except OSError:
        sock.close()
        raise
    return sock


def main(argv: Optional[list[str]] = None) -> int:
    parser = argparse.ArgumentParser(description="Serve static files and convert uploaded images.")
    parser.add_argument("--port", type=int, default=PORT)
    parser.add_argument("--threads", type=int, default=THREADPOOL_THREAD_NUM)
    parser.add_argument("--queue-size", type=int, default=QUEUE_SIZE)
    args = parser.parse_args(argv)

    ignore_sigpipe()
    try:
        listen_sock = socket_bind_listen(args.port)
    except (OSError, ValueError) as exc:
        print(f"socket bind failed: {exc}", file=sys.stderr)
        return 1
    server = Server(listen_sock, args.threads, args.queue_size)
    try:
        server.serve_forever()
    except KeyboardInterrupt:
        pass
    finally:
        server.close()
    return 0