"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted socket: frames requests out of the TCP byte stream,
writes responses, and closes the link politely.

TCP has no message boundaries, so requests are assembled in a buffer:

    recv() chunks:   "PUT /api/todo"  "s/3 HTTP/1.1\r\nContent-Len"  ...
                          │
                          ▼
    _buffer:         PUT /api/todos/3 HTTP/1.1\r\n
                     Content-Length: 13\r\n
                     \r\n                     ◄── headers complete
                     {"done":true}            ◄── 13 body bytes
                     GET /api/todos ...       ◄── next request, kept

=============================================================================
HOW A READ ENDS
=============================================================================

    ┌──────────────────────────────────┬────────────────────────────────┐
    │  What happened                   │ read_request()                 │
    ├──────────────────────────────────┼────────────────────────────────┤
    │  complete request                │ returns its bytes              │
    │  peer closed between requests    │ returns None                   │
    │  peer closed mid-request         │ raises IncompleteRequestError  │
    │  request outlasts idle_timeout   │ raises TimeoutError            │
    │  malformed chunk framing         │ raises HTTPParseError          │
    │  connection reset                │ raises ConnectionResetError    │
    └──────────────────────────────────┴────────────────────────────────┘

The session loop stops on all of these except the first. idle_timeout is a
deadline for the whole request, measured from the start of read_request():
a client that dribbles one byte at a time cannot hold the connection open
beyond it. Chunked bodies are framed by decoding the chunks as they arrive.

=============================================================================
"""

import socket
import time
import logging
from enum import Enum
from dataclasses import dataclass, field
from typing import Optional, Tuple
import uuid

from ..http.request import decode_chunked, is_chunked


logger = logging.getLogger(__name__)


class IncompleteRequestError(ConnectionError):
    """The peer closed the stream in the middle of a request."""


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    KEEP_ALIVE = "keep_alive"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    One client connection.

        with Connection(sock, addr, idle_timeout=30.0) as conn:
            raw = conn.read_request()
            conn.send_response(response_bytes)
        # half-closed, drained and closed here
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    last_activity: float = field(default_factory=time.time)
    requests_handled: int = 0

    buffer_size: int = 8192
    idle_timeout: float = 30.0

    # How long close() waits for the peer's FIN
    drain_timeout: float = 0.5

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.idle_timeout)

    @property
    def client_ip(self) -> str:
        return self.address[0]

    # ─── Reading ────────────────────────────────────────────────────────────

    def read_request(self) -> Optional[bytes]:
        """
        Read exactly one request: headers, then the body.

        The body is framed by Transfer-Encoding: chunked when present,
        otherwise by Content-Length. The whole request must arrive within
        idle_timeout of the call. Bytes that arrive after the request stay
        buffered for the next call.

        Returns:
            The request bytes, or None if the peer closed cleanly before
            sending anything.

        Raises:
            TimeoutError: the request did not complete within idle_timeout.
            IncompleteRequestError: the stream ended inside a request.
            HTTPParseError: the chunk framing is malformed.
            ConnectionError: the socket was reset.
        """
        self.state = ConnectionState.READING
        deadline = time.monotonic() + self.idle_timeout

        try:
            while b"\r\n\r\n" not in self._buffer:
                if not self._recv_until(deadline):
                    if self._buffer:
                        raise IncompleteRequestError("connection closed inside request headers")
                    return None

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            headers = self._buffer[:header_end]

            if is_chunked(self._find_header(headers, "transfer-encoding")):
                while True:
                    decoded = decode_chunked(self._buffer[body_start:])
                    if decoded is not None:
                        request_end = body_start + decoded[1]
                        break
                    if not self._recv_until(deadline):
                        raise IncompleteRequestError("connection closed inside chunked body")
            else:
                content_length = max(self._parse_content_length(headers), 0)
                while len(self._buffer) - body_start < content_length:
                    if not self._recv_until(deadline):
                        raise IncompleteRequestError(
                            f"connection closed after {len(self._buffer) - body_start} "
                            f"of {content_length} body bytes"
                        )
                request_end = body_start + content_length

        except socket.timeout:
            raise TimeoutError(f"request not complete within {self.idle_timeout}s") from None

        request_data = self._buffer[:request_end]
        self._buffer = self._buffer[request_end:]

        self.requests_handled += 1
        return request_data

    def _recv_until(self, deadline: float) -> bool:
        """
        One recv() bounded by the request deadline. False on EOF.

        Raises:
            socket.timeout: the deadline has passed.
        """
        remaining = deadline - time.monotonic()
        if remaining <= 0:
            raise socket.timeout("request deadline passed")
        self.socket.settimeout(remaining)

        chunk = self.socket.recv(self.buffer_size)
        if not chunk:
            return False
        self._buffer += chunk
        self.last_activity = time.time()
        return True

    @staticmethod
    def _find_header(headers: bytes, name: str) -> str:
        """Value of a header in the raw header block, or ""."""
        prefix = name.lower() + ":"
        header_str = headers.decode("utf-8", errors="replace")
        for line in header_str.split("\r\n"):
            if line.lower().startswith(prefix):
                return line.split(":", 1)[1].strip()
        return ""

    @classmethod
    def _parse_content_length(cls, headers: bytes) -> int:
        """
        Find Content-Length in the raw header block.

        A missing or unreadable value counts as 0 here; the request parser
        rejects an unreadable one properly afterwards.
        """
        try:
            return int(cls._find_header(headers, "content-length") or 0)
        except ValueError:
            return 0

    # ─── Writing ────────────────────────────────────────────────────────────

    def send_response(self, data: bytes) -> bool:
        """sendall() the response. False if the peer has gone away."""
        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except OSError as e:
            logger.warning("[%s] Send failed: %s", self.id, e)
            return False
        self.last_activity = time.time()
        return True

    def set_keep_alive(self) -> None:
        self.state = ConnectionState.KEEP_ALIVE

    # ─── Closing ────────────────────────────────────────────────────────────

    def close(self) -> None:
        """
        Half-close, drain, close.

            shutdown(SHUT_WR)  ──►  FIN to the client, our side is done
            recv() until EOF   ──►  swallow anything still in flight,
                                    for drain_timeout at most
            close()            ──►  release the descriptor

        Every step tolerates a peer that is already gone.
        """
        if self.state == ConnectionState.CLOSED:
            return

        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass

        try:
            drain_deadline = time.monotonic() + self.drain_timeout
            while True:
                remaining = drain_deadline - time.monotonic()
                if remaining <= 0:
                    break
                self.socket.settimeout(remaining)
                if not self.socket.recv(1024):
                    break
        except OSError:
            pass

        try:
            self.socket.close()
        except OSError:
            pass

        self.state = ConnectionState.CLOSED
        logger.debug("[%s] Connection closed after %d requests", self.id, self.requests_handled)

    def __enter__(self) -> "Connection":
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
