"""
Unit tests for request framing on a Connection, using socketpair().
"""

import socket
import threading
import time

import pytest

from todoserver.core import Connection, ConnectionState, IncompleteRequestError
from todoserver.http import HTTPParseError


@pytest.fixture
def pair():
    server_side, client_side = socket.socketpair()
    conn = Connection(socket=server_side, address=("127.0.0.1", 40000), idle_timeout=1.0)
    yield conn, client_side
    conn.close()
    client_side.close()


class TestReadRequest:

    def test_reads_head_and_body(self, pair):
        conn, client = pair
        client.sendall(b"POST /api/todos HTTP/1.1\r\nContent-Length: 2\r\n\r\n{}")

        assert conn.read_request() == b"POST /api/todos HTTP/1.1\r\nContent-Length: 2\r\n\r\n{}"
        assert conn.requests_handled == 1

    def test_pipelined_requests_stay_buffered(self, pair):
        conn, client = pair
        first = b"GET /healthz HTTP/1.1\r\n\r\n"
        second = b"DELETE /api/todos/1 HTTP/1.1\r\n\r\n"
        client.sendall(first + second)

        assert conn.read_request() == first
        assert conn.read_request() == second

    def test_body_split_across_packets(self, pair):
        conn, client = pair
        client.sendall(b"PUT /api/todos/1 HTTP/1.1\r\nContent-Length: 13\r\n\r\n{\"title\":")
        client.sendall(b"\"x\"}")

        assert conn.read_request().endswith(b'{"title":"x"}')

    def test_clean_eof_returns_none(self, pair):
        conn, client = pair
        client.shutdown(socket.SHUT_WR)
        assert conn.read_request() is None

    def test_eof_inside_headers(self, pair):
        conn, client = pair
        client.sendall(b"GET / HTTP/1.1\r\nHost: x")
        client.shutdown(socket.SHUT_WR)

        with pytest.raises(IncompleteRequestError):
            conn.read_request()

    def test_eof_inside_body(self, pair):
        conn, client = pair
        client.sendall(b"POST / HTTP/1.1\r\nContent-Length: 10\r\n\r\n{}")
        client.shutdown(socket.SHUT_WR)

        with pytest.raises(IncompleteRequestError, match="2 of 10"):
            conn.read_request()

    def test_idle_timeout(self, pair):
        conn, client = pair
        conn.idle_timeout = 0.1

        with pytest.raises(TimeoutError):
            conn.read_request()

    def test_timeout_covers_the_whole_request(self, pair):
        """A byte every 0.1s never idles a recv(), but the request still times out."""
        conn, client = pair
        conn.idle_timeout = 0.5
        stop = threading.Event()

        def dribble():
            for byte in b"GET /api/todos HTTP/1.1\r\nHost: localhost\r\nX-Pad: " + b"a" * 100:
                if stop.wait(0.1):
                    return
                try:
                    client.send(bytes([byte]))
                except OSError:
                    return

        sender = threading.Thread(target=dribble)
        sender.start()
        started = time.monotonic()
        try:
            with pytest.raises(TimeoutError):
                conn.read_request()
            assert time.monotonic() - started < 1.5
        finally:
            stop.set()
            sender.join(timeout=5)


class TestChunkedFraming:

    def test_chunked_body_split_across_packets(self, pair):
        conn, client = pair
        head = b"POST /api/todos HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n"
        body = b"7\r\n{\"title\r\nd\r\n\":\"buy milk\"}\r\n0\r\n\r\n"
        following = b"GET /healthz HTTP/1.1\r\n\r\n"

        client.sendall(head + body[:9])
        client.sendall(body[9:] + following)

        assert conn.read_request() == head + body
        assert conn.read_request() == following

    def test_eof_inside_chunked_body(self, pair):
        conn, client = pair
        client.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\n4\r\nbu")
        client.shutdown(socket.SHUT_WR)

        with pytest.raises(IncompleteRequestError, match="chunked"):
            conn.read_request()

    def test_malformed_chunk_size(self, pair):
        conn, client = pair
        client.sendall(b"POST / HTTP/1.1\r\nTransfer-Encoding: chunked\r\n\r\nzz\r\n")

        with pytest.raises(HTTPParseError, match="Invalid chunk size"):
            conn.read_request()


class TestWriteAndClose:

    def test_send_response(self, pair):
        conn, client = pair
        assert conn.send_response(b"HTTP/1.1 204 No Content\r\n\r\n") is True
        assert client.recv(1024) == b"HTTP/1.1 204 No Content\r\n\r\n"

    def test_close_half_closes_first(self, pair):
        conn, client = pair
        conn.drain_timeout = 0.1
        conn.close()

        assert client.recv(1024) == b""
        assert conn.state is ConnectionState.CLOSED

    def test_close_is_idempotent(self, pair):
        conn, _ = pair
        conn.close()
        conn.close()
        assert conn.state is ConnectionState.CLOSED
