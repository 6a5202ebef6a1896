"""Per-connection request state: reading, parsing, answering and re-arming."""

from __future__ import annotations

import enum
import selectors
import socket
import weakref
from typing import Any, Optional

from edgeserve.http import (
    KEEP_ALIVE_TIMEOUT_MS,
    HeaderParser,
    HttpError,
    Method,
    RequestLine,
    error_response,
    image_response,
    keep_alive_requested,
    parse_request_line,
    static_file_response,
)
from edgeserve.util import read_available, write_all

READ = selectors.EVENT_READ
WRITE = selectors.EVENT_WRITE

REQUEST_TIMEOUT_MS = 2000
MISSING_LENGTH_MESSAGE = "Bad Request: Lack of argument (Content-length)"


class _Stage(enum.Enum):
    PARSE_URI = 1
    PARSE_HEADERS = 2
    RECV_BODY = 3
    ANALYSIS = 4
    FINISH = 5


class Connection:
    """One client socket and the HTTP request being read from it.

    ``poller`` must provide ``add_timer(conn, timeout)``, ``modify(conn, events)``
    and ``remove(conn)``; events are ``READ``/``WRITE`` bit masks.
    """

    def __init__(self, sock: socket.socket, poller: Any, path: str = "/") -> None:
        self._sock = sock
        self._poller = poller
        self.path = path
        self._in = b""
        self._out = b""
        self._events = 0
        self._error = False
        self._stage = _Stage.PARSE_URI
        self._request: Optional[RequestLine] = None
        self._headers = HeaderParser()
        self._keep_alive = False
        self._timer: Optional[weakref.ref] = None
        self._able_read = True
        self._able_write = False

    def fileno(self) -> int:
        return self._sock.fileno()

    def link_timer(self, timer: Any) -> None:
        """Remember the timer guarding this connection without keeping it alive."""
        self._timer = weakref.ref(timer)

    def separate_timer(self) -> None:
        """Detach from the current timer so its expiry leaves this connection alone."""
        timer = self._timer() if self._timer is not None else None
        if timer is not None:
            timer.clear_request()
        self._timer = None

    def reset(self) -> None:
        """Prepare for the next request on a persistent connection."""
        self._in = b""
        self.path = ""
        self._request = None
        self._stage = _Stage.PARSE_URI
        self._headers.reset()
        self.separate_timer()

    def handle_read(self) -> None:
        """Read what the socket holds and advance the request as far as it allows."""
        try:
            data = read_available(self._sock)
        except OSError:
            self._error = True
            self.handle_error(400, "Bad Request")
            return
        if not data:
            # Nothing to read: treat it as the peer having closed.
            self._error = True
            return
        self._in += data

        try:
            self._process()
        except HttpError as exc:
            self._error = True
            self.handle_error(exc.code, exc.message)
            return

        if self._out:
            self._events |= WRITE
        if self._stage is _Stage.FINISH:
            if self._keep_alive:
                self.reset()
                self._events |= READ
        else:
            self._events |= READ

    def _process(self) -> None:
        if self._stage is _Stage.PARSE_URI:
            parsed = parse_request_line(self._in)
            if parsed is None:
                return
            self._request, self._in = parsed
            self._stage = _Stage.PARSE_HEADERS

        if self._stage is _Stage.PARSE_HEADERS:
            done, self._in = self._headers.feed(self._in)
            if not done:
                return
            if self._request is not None and self._request.method is Method.POST:
                self._stage = _Stage.RECV_BODY
            else:
                self._stage = _Stage.ANALYSIS

        if self._stage is _Stage.RECV_BODY:
            if len(self._in) < self._content_length():
                return
            self._stage = _Stage.ANALYSIS

        if self._stage is _Stage.ANALYSIS:
            self._out += self._analyse()
            self._stage = _Stage.FINISH

    def _content_length(self) -> int:
        value = self._headers.headers.get("Content-length")
        if value is None:
            raise HttpError(400, MISSING_LENGTH_MESSAGE)
        try:
            return int(value)
        except ValueError:
            raise HttpError(400, "Bad Request") from None

    def _analyse(self) -> bytes:
        assert self._request is not None
        self._keep_alive = keep_alive_requested(self._headers.headers)
        if self._request.method is Method.POST:
            length = self._content_length()
            body, self._in = self._in[:length], self._in[length:]
            return image_response(body, self._keep_alive)
        return static_file_response(self._request.file_name, self._keep_alive)

    def handle_write(self) -> None:
        """Send pending output; ask for another write event if some is left."""
        if self._error:
            return
        try:
            sent = write_all(self._sock, self._out)
        except OSError:
            self._events = 0
            self._error = True
            return
        self._out = self._out[sent:]
        if self._out:
            self._events |= WRITE

    def handle_conn(self) -> None:
        """Re-arm the socket for the next event, or drop the connection."""
        if self._error:
            self._release()
            return
        if self._events:
            timeout = KEEP_ALIVE_TIMEOUT_MS if self._keep_alive else REQUEST_TIMEOUT_MS
            events = self._events
            if events & READ and events & WRITE:
                events = WRITE
        elif self._keep_alive:
            timeout = KEEP_ALIVE_TIMEOUT_MS
            events = READ
        else:
            self._release()
            return
        self.disable_read_and_write()
        # The timer goes in before re-arming so a fast next event finds it.
        self._poller.add_timer(self, timeout)
        self._events = 0
        try:
            self._poller.modify(self, events)
        except OSError:
            self.separate_timer()
            self._release()

    def handle_error(self, code: int, message: str) -> None:
        """Send an error page straight to the peer, ignoring partial writes."""
        try:
            write_all(self._sock, error_response(code, message))
        except OSError:
            pass

    def enable_read(self) -> None:
        self._able_read = True

    def enable_write(self) -> None:
        self._able_write = True

    def disable_read_and_write(self) -> None:
        self._able_read = False
        self._able_write = False

    def can_read(self) -> bool:
        return self._able_read

    def can_write(self) -> bool:
        return self._able_write

    def _release(self) -> None:
        try:
            self._poller.remove(self)
        finally:
            self.close()

    def close(self) -> None:
        self._sock.close()