"""HTTP/1.x request parsing and response building for the static-file and image server."""

from __future__ import annotations

import enum
import io
import os
from dataclasses import dataclass

from PIL import Image, UnidentifiedImageError

KEEP_ALIVE_TIMEOUT_MS = 5 * 60 * 1000
MAX_HEADER_VALUE = 255
RECEIVED_IMAGE_FILE = "receive.bmp"
DEFAULT_FILE = "index.html"

_CR = ord("\r")
_LF = ord("\n")
_COLON = ord(":")
_SPACE = ord(" ")

_MIME_TYPES = {
    ".html": "text/html",
    ".avi": "video/x-msvideo",
    ".bmp": "image/bmp",
    ".c": "text/plain",
    ".doc": "application/msword",
    ".gif": "image/gif",
    ".gz": "application/x-gzip",
    ".htm": "text/html",
    ".ico": "application/x-ico",
    ".jpg": "image/jpeg",
    ".png": "image/png",
    ".txt": "text/plain",
    ".mp3": "audio/mp3",
    "default": "text/html",
}

_BMP_MODES = {"1", "L", "P", "RGB", "RGBA"}


class Method(enum.IntEnum):
    POST = 1
    GET = 2


class HttpVersion(enum.IntEnum):
    HTTP_10 = 1
    HTTP_11 = 2


class HttpError(Exception):
    """A request that must be answered with an HTTP error status."""

    def __init__(self, code: int, message: str) -> None:
        super().__init__(f"{code} {message}")
        self.code = code
        self.message = message


@dataclass(frozen=True)
class RequestLine:
    method: Method
    file_name: str
    version: HttpVersion


def mime_type(suffix: str) -> str:
    """Return the content type for a file suffix such as ``.png``."""
    return _MIME_TYPES.get(suffix, _MIME_TYPES["default"])


def _bad_request() -> HttpError:
    return HttpError(400, "Bad Request")


def parse_request_line(buffer: bytes) -> tuple[RequestLine, bytes] | None:
    """Parse the request line at the start of ``buffer``.

    Returns ``None`` while the line is incomplete, otherwise the parsed line
    and the bytes that follow its carriage return. Raises ``HttpError`` (400)
    for a malformed line.
    """
    end = buffer.find(b"\r")
    if end < 0:
        return None
    line = buffer[:end]
    rest = buffer[end + 1:]

    pos = line.find(b"GET")
    if pos >= 0:
        method = Method.GET
    else:
        pos = line.find(b"POST")
        if pos < 0:
            raise _bad_request()
        method = Method.POST

    pos = line.find(b"/", pos)
    if pos < 0:
        raise _bad_request()
    space = line.find(b" ", pos)
    if space < 0:
        raise _bad_request()
    if space - pos > 1:
        target = line[pos + 1:space].split(b"?", 1)[0]
        file_name = os.fsdecode(target)
    else:
        file_name = DEFAULT_FILE

    pos = line.find(b"/", space)
    if pos < 0 or len(line) - pos <= 3:
        raise _bad_request()
    version_text = line[pos + 1:pos + 4]
    if version_text == b"1.0":
        version = HttpVersion.HTTP_10
    elif version_text == b"1.1":
        version = HttpVersion.HTTP_11
    else:
        raise _bad_request()
    return RequestLine(method, file_name, version), rest


class _State(enum.Enum):
    START = enum.auto()
    KEY = enum.auto()
    COLON = enum.auto()
    SPACE_AFTER_COLON = enum.auto()
    VALUE = enum.auto()
    CR = enum.auto()
    LF = enum.auto()
    END_CR = enum.auto()
    END_LF = enum.auto()


class HeaderParser:
    """Incremental parser for ``Key: value`` header lines ending in a blank line."""

    def __init__(self) -> None:
        self.headers: dict[str, str] = {}
        self._state = _State.START

    @property
    def done(self) -> bool:
        return self._state is _State.END_LF

    def reset(self) -> None:
        self.headers = {}
        self._state = _State.START

    def feed(self, buffer: bytes) -> tuple[bool, bytes]:
        """Consume header bytes.

        Returns ``(True, body)`` once the blank line is seen, with ``body`` the
        bytes after it. Otherwise returns ``(False, pending)``: the unfinished
        line, which should be fed again with more data appended. Raises
        ``HttpError`` (400) on a malformed header.
        """
        if self.done:
            return True, buffer
        state = self._state
        boundary = state
        line_begin = 0
        key_start = key_end = value_start = 0

        for i, ch in enumerate(buffer):
            if state is _State.START:
                if ch in (_CR, _LF):
                    line_begin = i + 1
                    continue
                state = _State.KEY
                key_start = line_begin = i
                boundary = _State.START
            elif state is _State.KEY:
                if ch == _COLON:
                    key_end = i
                    if key_end - key_start <= 0:
                        raise _bad_request()
                    state = _State.COLON
                elif ch in (_CR, _LF):
                    raise _bad_request()
            elif state is _State.COLON:
                if ch != _SPACE:
                    raise _bad_request()
                state = _State.SPACE_AFTER_COLON
            elif state is _State.SPACE_AFTER_COLON:
                state = _State.VALUE
                value_start = i
            elif state is _State.VALUE:
                if ch == _CR:
                    if i - value_start <= 0:
                        raise _bad_request()
                    key = buffer[key_start:key_end].decode("latin-1")
                    value = buffer[value_start:i].decode("latin-1")
                    state = _State.CR
                elif i - value_start > MAX_HEADER_VALUE:
                    raise _bad_request()
            elif state is _State.CR:
                if ch != _LF:
                    raise _bad_request()
                self.headers[key] = value
                state = _State.LF
                line_begin = i + 1
                boundary = _State.LF
            elif state is _State.LF:
                if ch == _CR:
                    state = _State.END_CR
                else:
                    key_start = i
                    state = _State.KEY
            elif state is _State.END_CR:
                if ch != _LF:
                    raise _bad_request()
                self._state = _State.END_LF
                return True, buffer[i + 1:]

        self._state = boundary if state is not _State.START else _State.START
        return False, buffer[line_begin:]


def keep_alive_requested(headers: dict[str, str]) -> bool:
    """Return whether the client asked for a persistent connection."""
    return headers.get("Connection") == "keep-alive"


def _status_header(keep_alive: bool) -> str:
    header = "HTTP/1.1 200 OK\r\n"
    if keep_alive:
        header += f"Connection: keep-alive\r\nKeep-Alive: timeout={KEEP_ALIVE_TIMEOUT_MS}\r\n"
    return header


def error_response(code: int, message: str) -> bytes:
    """Build a complete HTML error response that closes the connection."""
    short_msg = " " + message
    body = (
        "<html><title>Something went wrong</title>"
        '<body bgcolor="ffffff">'
        f"{code}{short_msg}"
        "<hr><em> Web Server</em>\n</body></html>"
    ).encode("utf-8")
    header = (
        f"HTTP/1.1 {code}{short_msg}\r\n"
        "Content-type: text/html\r\n"
        "Connection: close\r\n"
        f"Content-length: {len(body)}\r\n"
        "\r\n"
    ).encode("utf-8")
    return header + body


def static_file_response(file_name: str, keep_alive: bool) -> bytes:
    """Build a 200 response carrying the file's contents; raises ``HttpError`` (404) if absent."""
    dot = file_name.find(".")
    content_type = mime_type("default" if dot < 0 else file_name[dot:])
    try:
        with open(file_name, "rb") as f:
            content = f.read()
    except OSError:
        raise HttpError(404, "Not Found!") from None
    header = _status_header(keep_alive)
    header += f"Content-type: {content_type}\r\n"
    header += f"Content-length: {len(content)}\r\n\r\n"
    return header.encode("latin-1") + content


def image_response(body: bytes, keep_alive: bool) -> bytes:
    """Decode an uploaded image, keep a BMP copy, and answer with it re-encoded as PNG."""
    try:
        with Image.open(io.BytesIO(body)) as img:
            img.load()
            image = img.copy()
    except (UnidentifiedImageError, OSError, ValueError):
        raise _bad_request() from None

    bmp = image if image.mode in _BMP_MODES else image.convert("RGBA")
    bmp.save(RECEIVED_IMAGE_FILE, format="BMP")

    out = io.BytesIO()
    image.save(out, format="PNG")
    encoded = out.getvalue()

    header = _status_header(keep_alive)
    header += f"Content-length: {len(encoded)}\r\n\r\n"
    return header.encode("latin-1") + encoded