"""Socket read/write helpers for non-blocking I/O."""

from __future__ import annotations

import os
import signal
import socket

MAX_BUFF = 4096


def read_available(sock: socket.socket) -> bytes:
    """Read until the socket would block or the peer closes; empty means nothing was read."""
    chunks: list[bytes] = []
    while True:
        try:
            chunk = sock.recv(MAX_BUFF)
        except InterruptedError:
            continue
        except BlockingIOError:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def read_exact(sock: socket.socket, n: int) -> bytes:
    """Read up to ``n`` bytes, stopping early if the socket would block or closes."""
    chunks: list[bytes] = []
    left = n
    while left > 0:
        try:
            chunk = sock.recv(left)
        except InterruptedError:
            continue
        except BlockingIOError:
            break
        if not chunk:
            break
        chunks.append(chunk)
        left -= len(chunk)
    return b"".join(chunks)


def write_all(sock: socket.socket, data: bytes) -> int:
    """Send as much of ``data`` as possible and return the number of bytes sent."""
    view = memoryview(data)
    sent = 0
    while sent < len(view):
        try:
            n = sock.send(view[sent:])
        except InterruptedError:
            continue
        except BlockingIOError:
            break
        if n == 0:
            break
        sent += n
    return sent


def ignore_sigpipe() -> None:
    """Ignore SIGPIPE so writes to closed peers raise instead of killing the process."""
    if hasattr(signal, "SIGPIPE"):
        signal.signal(signal.SIGPIPE, signal.SIG_IGN)


def set_nonblocking(sock: socket.socket | int) -> None:
    """Put a socket or raw file descriptor into non-blocking mode."""
    if isinstance(sock, int):
        os.set_blocking(sock, False)
    else:
        sock.setblocking(False)