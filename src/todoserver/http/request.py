"""
=============================================================================
HTTP REQUEST PARSER
=============================================================================

Turns the raw bytes of one HTTP/1.x request into an HTTPRequest. The
connection layer has already framed the message (headers up to the blank
line, then the body as Content-Length bytes or as chunks); this module only
has to make sense of it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                     WHAT THE TODO API RECEIVES                      │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   PUT /api/todos/7 HTTP/1.1\r\n              ◄── request line       │
    │   Host: localhost:8080\r\n                   ◄── headers            │
    │   Content-Type: application/json\r\n                                │
    │   Content-Length: 27\r\n                                            │
    │   \r\n                                       ◄── end of headers     │
    │   {"title":"milk","done":true}               ◄── body               │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHAT HAPPENS ON A BAD REQUEST
=============================================================================

Parsing failures raise HTTPParseError. The session loop treats any of them
as the end of the conversation and closes the connection without writing a
response. A body that is valid HTTP but not valid JSON is a different
matter: that surfaces through HTTPRequest.json and becomes a 400 from the
todo handlers.

There is no request size limit here.

=============================================================================
CHUNKED BODIES
=============================================================================

    Transfer-Encoding: chunked

    7\r\n                   ◄── chunk size, hex (";ext" allowed and ignored)
    {"title\r\n
    d\r\n
    ":"buy milk"}\r\n
    0\r\n                   ◄── last chunk
    \r\n                    ◄── end of (empty) trailer section

Transfer-Encoding wins over Content-Length when both are sent. Codings
other than a final "chunked" are rejected.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Optional, Dict, Any, Tuple, List
from urllib.parse import parse_qs, urlparse, unquote
import re
import json


class HTTPParseError(Exception):
    """Raised when a request cannot be parsed; the connection is dropped."""


_CHUNK_SIZE = re.compile(rb"[0-9A-Fa-f]+")


def is_chunked(transfer_encoding: str) -> bool:
    """
    Whether a Transfer-Encoding value ends in "chunked".

    An empty value is "not chunked". Any other final coding cannot be
    framed at all.

    Raises:
        HTTPParseError: for a final coding other than chunked.
    """
    if not transfer_encoding.strip():
        return False
    codings = [c.strip().lower() for c in transfer_encoding.split(",")]
    if codings[-1] != "chunked":
        raise HTTPParseError(f"Unsupported Transfer-Encoding: {transfer_encoding}")
    return True


def decode_chunked(data: bytes) -> Optional[Tuple[bytes, int]]:
    """
    Decode a chunked body from the start of data.

    Returns:
        (body, bytes consumed including trailers), or None if data stops
        before the end of the message.

    Raises:
        HTTPParseError: if the chunk framing is malformed.
    """
    body = bytearray()
    pos = 0

    while True:
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            return None

        size_field = data[pos:line_end].split(b";", 1)[0].strip()
        if not _CHUNK_SIZE.fullmatch(size_field):
            raise HTTPParseError(f"Invalid chunk size: {size_field!r}")
        size = int(size_field, 16)
        pos = line_end + 2

        if size == 0:
            break

        if len(data) < pos + size + 2:
            return None
        if data[pos + size:pos + size + 2] != b"\r\n":
            raise HTTPParseError("Chunk data not followed by CRLF")
        body += data[pos:pos + size]
        pos += size + 2

    # Trailer fields are read and dropped
    while True:
        line_end = data.find(b"\r\n", pos)
        if line_end == -1:
            return None
        line = data[pos:line_end]
        pos = line_end + 2
        if not line:
            return bytes(body), pos


@dataclass
class HTTPRequest:
    """
    One parsed HTTP request.

        method:         GET, POST, PUT, DELETE, OPTIONS, ...
        path:           URL-decoded path without the query string
        version:        "HTTP/1.1" or "HTTP/1.0"
        headers:        lowercase header name -> value
        query_params:   parsed query string; routing ignores it
        body:           Content-Length bytes, or the decoded chunks
        path_params:    filled in by the router (":id", "*path")
        client_address: (ip, port) of the peer, for the access log
    """

    method: str
    path: str
    version: str = "HTTP/1.1"

    headers: Dict[str, str] = field(default_factory=dict)
    query_params: Dict[str, List[str]] = field(default_factory=dict)
    body: bytes = b""

    path_params: Dict[str, str] = field(default_factory=dict)

    client_address: Tuple[str, int] = ("", 0)

    _body_json: Optional[Any] = field(default=None, repr=False)

    # ─── Header shortcuts ───────────────────────────────────────────────────

    @property
    def user_agent(self) -> str:
        return self.headers.get("user-agent", "")

    @property
    def json(self) -> Any:
        """
        The body decoded as JSON, parsed once and cached.

        An empty body gives None. The Content-Type header is not checked:
        clients that forget it still get their todo created.

        Raises:
            HTTPParseError: if the body is not valid UTF-8 JSON.
        """
        if self._body_json is None and self.body:
            try:
                self._body_json = json.loads(self.body.decode("utf-8"))
            except (json.JSONDecodeError, UnicodeDecodeError) as e:
                raise HTTPParseError(f"Invalid JSON body: {e}")
        return self._body_json

    @property
    def is_keep_alive(self) -> bool:
        """
        Whether the client wants the connection kept open.

            HTTP/1.1: open unless "Connection: close"
            HTTP/1.0: closed unless "Connection: keep-alive"
        """
        connection = self.headers.get("connection", "").lower()

        if self.version == "HTTP/1.1":
            return connection != "close"
        return connection == "keep-alive"

    def get_header(self, name: str, default: str = "") -> str:
        """Case-insensitive header lookup."""
        return self.headers.get(name.lower(), default)


class RequestParser:
    """
    Parses one framed request into an HTTPRequest.

        raw bytes
            │
            ├── split at \\r\\n\\r\\n ──────── missing? → HTTPParseError
            ├── request line ─────────────── METHOD SP URI SP HTTP/x.y
            │                                 bad shape or version?
            │                                              → HTTPParseError
            ├── headers ──────────────────── lowercase names, folded lines,
            │                                 repeats joined with ", "
            └── body ─────────────────────── chunked, or Content-Length bytes
                                              short?       → HTTPParseError
    """

    # Method tokens are not restricted to a fixed list: unknown methods are
    # routed like any other and end up as 404.
    REQUEST_LINE_PATTERN = re.compile(r"^([A-Z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:]+):\s*(.*)$")

    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def parse(
        self,
        data: bytes,
        client_address: Tuple[str, int] = ("", 0)
    ) -> HTTPRequest:
        """
        Parse raw request bytes.

        Args:
            data: Request head and body as read from the socket.
            client_address: Peer (ip, port), kept for logging.

        Raises:
            HTTPParseError: if the request is malformed.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        header_section = data[:header_end].decode("utf-8", errors="replace")
        body = data[header_end + 4:]

        lines = header_section.split("\r\n")
        method, path, query_params, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        if is_chunked(headers.get("transfer-encoding", "")):
            decoded = decode_chunked(body)
            if decoded is None:
                raise HTTPParseError("Incomplete chunked body")
            body, _ = decoded
            return HTTPRequest(
                method=method,
                path=path,
                version=version,
                headers=headers,
                query_params=query_params,
                body=body,
                client_address=client_address,
            )

        try:
            content_length = int(headers.get("content-length", 0))
        except ValueError:
            raise HTTPParseError(
                f"Invalid Content-Length: {headers['content-length']!r}"
            ) from None
        if content_length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {content_length}")
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return HTTPRequest(
            method=method,
            path=path,
            version=version,
            headers=headers,
            query_params=query_params,
            body=body[:content_length],
            client_address=client_address,
        )

    def _parse_request_line(
        self,
        line: str
    ) -> Tuple[str, str, Dict[str, List[str]], str]:
        """
        Split "METHOD URI VERSION" and separate the query string.

            "GET /api/todos?x=1 HTTP/1.1"
             ─┬─ ─────┬──── ─┬─ ───┬────
              │       │      │     └── version
              │       │      └──────── query_params (not used for routing)
              │       └─────────────── path
              └─────────────────────── method
        """
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line}")

        method, uri, version = match.groups()

        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}")

        # "*" is the asterisk-form used by "OPTIONS * HTTP/1.1"
        if uri == "*":
            return method, "*", {}, version

        parsed = urlparse(uri)
        path = unquote(parsed.path) or "/"
        query_params = parse_qs(parsed.query, keep_blank_values=True)

        return method, path, query_params, version

    def _parse_headers(self, lines: List[str]) -> Dict[str, str]:
        """
        Parse "Name: value" lines into a lowercase-keyed dict.

        Continuation lines (leading space or tab) extend the previous
        header. Repeated headers are joined with ", ". Lines without a
        colon are skipped.
        """
        headers: Dict[str, str] = {}
        current_name = None

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if current_name is not None:
                    headers[current_name] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                continue

            name, value = match.groups()
            name = name.strip().lower()
            value = value.strip()
            current_name = name

            if name in headers:
                headers[name] += ", " + value
            else:
                headers[name] = value

        return headers


def parse_request(
    data: bytes,
    client_address: Tuple[str, int] = ("", 0)
) -> HTTPRequest:
    """Parse one request with a throwaway RequestParser."""
    return RequestParser().parse(data, client_address)
