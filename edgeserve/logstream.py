"""Fixed-capacity byte buffers and a stream that formats values into them."""

from __future__ import annotations

SMALL_BUFFER = 4000
LARGE_BUFFER = 4000 * 1000

MAX_NUMERIC_SIZE = 32


class FixedBuffer:
    """A byte buffer of fixed capacity; appends that do not fit are dropped."""

    def __init__(self, size: int = SMALL_BUFFER) -> None:
        self._data = bytearray(size)
        self._size = size
        self._len = 0

    def append(self, data: bytes) -> None:
        """Append data if it fits strictly within the remaining space."""
        n = len(data)
        if self.avail() > n:
            self._data[self._len:self._len + n] = data
            self._len += n

    def data(self) -> bytes:
        """Return the bytes written so far."""
        return bytes(self._data[:self._len])

    def avail(self) -> int:
        return self._size - self._len

    def reset(self) -> None:
        self._len = 0

    def bzero(self) -> None:
        """Zero the whole storage without moving the write position."""
        self._data[:] = bytes(self._size)

    def __len__(self) -> int:
        return self._len


class LogStream:
    """Accumulates formatted values with ``<<`` into a small fixed buffer."""

    def __init__(self) -> None:
        self._buffer = FixedBuffer(SMALL_BUFFER)

    def __lshift__(self, value: object) -> "LogStream":
        if isinstance(value, bool):
            self._buffer.append(b"1" if value else b"0")
        elif isinstance(value, int):
            if self._buffer.avail() >= MAX_NUMERIC_SIZE:
                self._write_numeric(str(value).encode("ascii"))
        elif isinstance(value, float):
            if self._buffer.avail() >= MAX_NUMERIC_SIZE:
                self._write_numeric(("%.12g" % value).encode("ascii"))
        elif value is None:
            self._buffer.append(b"(null)")
        elif isinstance(value, (bytes, bytearray)):
            self._buffer.append(bytes(value))
        else:
            self._buffer.append(str(value).encode("utf-8"))
        return self

    def _write_numeric(self, text: bytes) -> None:
        # Space was already checked against the numeric maximum.
        buf = self._buffer
        n = len(text[:MAX_NUMERIC_SIZE - 1])
        buf._data[buf._len:buf._len + n] = text[:n]
        buf._len += n

    def append(self, data: bytes | str) -> None:
        if isinstance(data, str):
            data = data.encode("utf-8")
        self._buffer.append(data)

    def buffer(self) -> FixedBuffer:
        return self._buffer

    def reset_buffer(self) -> None:
        self._buffer.reset()