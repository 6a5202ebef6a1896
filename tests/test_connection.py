import io
import socket

import pytest
from PIL import Image

from edgeserve.connection import (
    MISSING_LENGTH_MESSAGE,
    READ,
    REQUEST_TIMEOUT_MS,
    WRITE,
    Connection,
)
from edgeserve.http import KEEP_ALIVE_TIMEOUT_MS, error_response, static_file_response
from edgeserve.timer import TimerNode


class FakePoller:
    def __init__(self):
        self.timers = []
        self.modified = []
        self.removed = []

    def add_timer(self, conn, timeout):
        self.timers.append(timeout)

    def modify(self, conn, events):
        self.modified.append(events)

    def remove(self, conn):
        self.removed.append(conn)


@pytest.fixture
def pair(tmp_path, monkeypatch):
    monkeypatch.chdir(tmp_path)
    server_sock, client = socket.socketpair()
    server_sock.setblocking(False)
    client.settimeout(2)
    poller = FakePoller()
    conn = Connection(server_sock, poller, "/")
    yield conn, client, poller
    client.close()
    server_sock.close()


def recv_all(client):
    chunks = []
    client.settimeout(0.5)
    while True:
        try:
            chunk = client.recv(65536)
        except socket.timeout:
            break
        if not chunk:
            break
        chunks.append(chunk)
    return b"".join(chunks)


def test_get_existing_file(pair, tmp_path):
    conn, client, poller = pair
    (tmp_path / "hello.txt").write_bytes(b"hi there")
    client.sendall(b"GET /hello.txt HTTP/1.1\r\nHost: x\r\n\r\n")
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [WRITE]
    assert poller.timers == [REQUEST_TIMEOUT_MS]
    assert not conn.can_read() and not conn.can_write()
    conn.handle_write()
    conn.handle_conn()
    assert poller.removed == [conn]
    data = recv_all(client)
    assert data == static_file_response("hello.txt", False)
    assert data.startswith(b"HTTP/1.1 200 OK\r\n")
    assert data.endswith(b"hi there")


def test_missing_file_sends_404_and_drops(pair):
    conn, client, poller = pair
    client.sendall(b"GET /nope.html HTTP/1.1\r\n\r\n")
    conn.handle_read()
    conn.handle_conn()
    assert poller.removed == [conn]
    assert poller.modified == []
    assert recv_all(client) == error_response(404, "Not Found!")


def test_bad_request_line(pair):
    conn, client, poller = pair
    client.sendall(b"PUT /x HTTP/1.1\r\n\r\n")
    conn.handle_read()
    conn.handle_conn()
    assert recv_all(client) == error_response(400, "Bad Request")
    assert poller.removed == [conn]


def test_peer_closed_drops_silently(pair):
    conn, client, poller = pair
    client.shutdown(socket.SHUT_WR)
    conn.handle_read()
    conn.handle_conn()
    assert poller.removed == [conn]
    assert recv_all(client) == b""


def test_partial_request_rearms_for_read(pair):
    conn, client, poller = pair
    client.sendall(b"GET /index.html HTTP/1.1\r\nHost: ")
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [READ]
    assert poller.timers == [REQUEST_TIMEOUT_MS]
    assert poller.removed == []


def test_request_split_across_reads(pair, tmp_path):
    conn, client, poller = pair
    (tmp_path / "index.html").write_bytes(b"<p>home</p>")
    client.sendall(b"GET / HTTP/1.1\r\nHo")
    conn.handle_read()
    conn.handle_conn()
    client.sendall(b"st: x\r\n\r\n")
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [READ, WRITE]
    conn.handle_write()
    assert recv_all(client) == static_file_response("index.html", False)


def test_keep_alive_rearms_read_after_write(pair, tmp_path):
    conn, client, poller = pair
    (tmp_path / "a.txt").write_bytes(b"abc")
    client.sendall(b"GET /a.txt HTTP/1.1\r\nConnection: keep-alive\r\n\r\n")
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [WRITE]
    assert poller.timers == [KEEP_ALIVE_TIMEOUT_MS]
    conn.handle_write()
    conn.handle_conn()
    assert poller.modified == [WRITE, READ]
    assert poller.timers == [KEEP_ALIVE_TIMEOUT_MS, KEEP_ALIVE_TIMEOUT_MS]
    assert poller.removed == []
    data = recv_all(client)
    assert data == static_file_response("a.txt", True)
    assert b"Connection: keep-alive\r\n" in data


def test_post_without_length(pair):
    conn, client, poller = pair
    client.sendall(b"POST / HTTP/1.1\r\nHost: x\r\n\r\nbody")
    conn.handle_read()
    conn.handle_conn()
    assert recv_all(client) == error_response(400, MISSING_LENGTH_MESSAGE)
    assert poller.removed == [conn]


def test_post_image_returns_png(pair, tmp_path):
    conn, client, poller = pair
    buf = io.BytesIO()
    Image.new("RGB", (3, 2), (10, 20, 30)).save(buf, format="PNG")
    body = buf.getvalue()
    head = f"POST / HTTP/1.1\r\nContent-length: {len(body)}\r\n\r\n".encode()
    client.sendall(head + body)
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [WRITE]
    conn.handle_write()
    data = recv_all(client)
    header, _, payload = data.partition(b"\r\n\r\n")
    assert header.startswith(b"HTTP/1.1 200 OK")
    with Image.open(io.BytesIO(payload)) as img:
        assert img.format == "PNG"
        assert img.size == (3, 2)
    assert (tmp_path / "receive.bmp").exists()


def test_post_waits_for_full_body(pair):
    conn, client, poller = pair
    client.sendall(b"POST / HTTP/1.1\r\nContent-length: 100\r\n\r\nshort")
    conn.handle_read()
    conn.handle_conn()
    assert poller.modified == [READ]
    assert poller.removed == []


def test_separate_timer_clears_linked_node(pair):
    conn, _client, _poller = pair
    node = TimerNode(conn, 1000)
    conn.link_timer(node)
    assert node.deleted is False
    conn.separate_timer()
    assert node.deleted is True


def test_reset_separates_timer(pair):
    conn, _client, _poller = pair
    node = TimerNode(conn, 1000)
    conn.link_timer(node)
    conn.reset()
    assert node.deleted is True
    assert conn.path == ""


def test_read_write_flags(pair):
    conn, _client, _poller = pair
    assert conn.can_read() is True
    assert conn.can_write() is False
    conn.enable_write()
    assert conn.can_write() is True
    conn.disable_read_and_write()
    assert (conn.can_read(), conn.can_write()) == (False, False)
    conn.enable_read()
    assert conn.can_read() is True


def test_fileno_and_close(pair):
    conn, client, _poller = pair
    assert conn.fileno() >= 0
    conn.close()
    assert conn.fileno() == -1
    assert recv_all(client) == b""