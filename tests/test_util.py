import os
import signal
import socket

import pytest

from edgeserve.util import (
    ignore_sigpipe,
    read_available,
    read_exact,
    set_nonblocking,
    write_all,
)


@pytest.fixture
def pair():
    a, b = socket.socketpair()
    yield a, b
    a.close()
    b.close()


def test_read_available_returns_pending_data(pair):
    writer, reader = pair
    writer.sendall(b"abc")
    set_nonblocking(reader)
    assert read_available(reader) == b"abc"
    assert read_available(reader) == b""


def test_read_available_reads_many_chunks(pair):
    writer, reader = pair
    payload = bytes(range(256)) * 40
    writer.sendall(payload)
    set_nonblocking(reader)
    assert read_available(reader) == payload


def test_read_available_stops_at_eof(pair):
    writer, reader = pair
    writer.sendall(b"bye")
    writer.close()
    assert read_available(reader) == b"bye"


def test_read_exact_limits_length(pair):
    writer, reader = pair
    writer.sendall(b"hello world")
    assert read_exact(reader, 5) == b"hello"
    set_nonblocking(reader)
    assert read_exact(reader, 100) == b" world"


def test_write_all_round_trip(pair):
    writer, reader = pair
    set_nonblocking(writer)
    assert write_all(writer, b"data") == 4
    assert reader.recv(16) == b"data"


def test_write_all_stops_when_buffer_full(pair):
    writer, _ = pair
    set_nonblocking(writer)
    payload = b"x" * (16 * 1024 * 1024)
    sent = write_all(writer, payload)
    assert 0 < sent < len(payload)


def test_write_all_to_closed_peer_raises(pair):
    writer, reader = pair
    reader.close()
    with pytest.raises(OSError):
        write_all(writer, b"data")


def test_set_nonblocking_socket_and_fd(pair):
    a, b = pair
    set_nonblocking(a)
    assert a.getblocking() is False
    set_nonblocking(b.fileno())
    assert os.get_blocking(b.fileno()) is False


def test_ignore_sigpipe_turns_broken_pipe_into_error(pair):
    writer, reader = pair
    previous = signal.getsignal(signal.SIGPIPE)
    try:
        signal.signal(signal.SIGPIPE, signal.SIG_DFL)
        ignore_sigpipe()
        assert signal.getsignal(signal.SIGPIPE) == signal.SIG_IGN
        reader.close()
        with pytest.raises(OSError):
            write_all(writer, b"data")
    finally:
        signal.signal(signal.SIGPIPE, previous)