"""
=============================================================================
HTTP RESPONSE BUILDER
=============================================================================

Builds the responses the todo service sends. Every one of them, success or
failure, goes through ResponseBuilder and carries the same three CORS
headers so a browser front-end on another origin can read it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  HTTP/1.1 201 Created\r\n                                           │
    │  Content-Type: application/json\r\n                                 │
    │  Access-Control-Allow-Origin: *\r\n                ┐                │
    │  Access-Control-Allow-Methods: GET, POST, PUT,     │  .cors()       │
    │                                DELETE, OPTIONS\r\n │                │
    │  Access-Control-Allow-Headers: Content-Type,       │                │
    │                                Accept\r\n          ┘                │
    │  Content-Length: 42\r\n                            ┐                │
    │  Date: Mon, 19 Oct 2026 12:00:00 GMT\r\n           │  to_bytes()    │
    │  Server: todoserver/1.0\r\n                        ┘                │
    │  \r\n                                                               │
    │  {"id":1,"title":"buy milk","done":false}                           │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
BODY FLAVOURS
=============================================================================

    .json(data)   application/json, compact separators
    .text(msg)    text/plain; charset=utf-8
    (nothing)     empty body: OPTIONS preflight, 204 No Content

=============================================================================
KEEP-ALIVE
=============================================================================

A response remembers the HTTP version and keep-alive decision of the request
it answers. A Connection header is only written when the decision differs
from what that version assumes anyway:

    HTTP/1.1 + keep_alive=False  →  Connection: close
    HTTP/1.0 + keep_alive=True   →  Connection: keep-alive
    otherwise                    →  (no header)

=============================================================================
"""

from dataclasses import dataclass, field
from datetime import datetime, timezone
from typing import Dict, Any, Optional
import json

from .status_codes import HTTPStatus


DEFAULT_SERVER_NAME = "todoserver/1.0"

CORS_ALLOW_METHODS = ("GET", "POST", "PUT", "DELETE", "OPTIONS")
CORS_ALLOW_HEADERS = ("Content-Type", "Accept")

JSON_CONTENT_TYPE = "application/json"
TEXT_CONTENT_TYPE = "text/plain; charset=utf-8"


@dataclass
class HTTPResponse:
    """
    A response ready to be serialized with to_bytes().

    version and keep_alive are copied from the request by the session loop
    just before the response is written.
    """

    status: HTTPStatus = HTTPStatus.OK
    headers: Dict[str, str] = field(default_factory=dict)
    body: bytes = b""
    version: str = "HTTP/1.1"
    keep_alive: bool = True

    @property
    def status_line(self) -> str:
        return f"{self.version} {int(self.status)} {self.status.phrase}"

    @property
    def text(self) -> str:
        """Body decoded as UTF-8 (handy in tests and logs)."""
        return self.body.decode("utf-8", errors="replace")

    def json(self) -> Any:
        return json.loads(self.body.decode("utf-8"))

    def set_header(self, name: str, value: str) -> "HTTPResponse":
        self.headers[name] = value
        return self

    def to_bytes(self, server_name: str = DEFAULT_SERVER_NAME) -> bytes:
        """
        Serialize status line, headers and body.

        Content-Length, Date and Server are filled in unless the caller set
        them. 204 responses get neither a body nor a Content-Length.
        """
        response_headers = dict(self.headers)

        if self.status.allows_body:
            response_headers.setdefault("Content-Length", str(len(self.body)))
            body = self.body
        else:
            response_headers.pop("Content-Length", None)
            body = b""

        response_headers.setdefault("Date", format_http_date(datetime.now(timezone.utc)))
        response_headers.setdefault("Server", server_name)

        connection = _connection_header(self.version, self.keep_alive)
        if connection:
            response_headers.setdefault("Connection", connection)

        lines = [self.status_line]
        for name, value in response_headers.items():
            lines.append(f"{name}: {value}")
        lines.append("")

        header_bytes = "\r\n".join(lines).encode("utf-8") + b"\r\n"
        return header_bytes + body


def _connection_header(version: str, keep_alive: bool) -> Optional[str]:
    if version == "HTTP/1.1":
        return None if keep_alive else "close"
    return "keep-alive" if keep_alive else None


class ResponseBuilder:
    """
    Fluent builder for HTTPResponse.

        response = (ResponseBuilder()
            .status(HTTPStatus.CREATED)
            .json({"id": 1, "title": "buy milk", "done": False})
            .cors("https://app.example.com")
            .build())

    Every method but build() and to_bytes() returns the builder.
    """

    def __init__(self, server_name: str = DEFAULT_SERVER_NAME):
        self._status = HTTPStatus.OK
        self._headers: Dict[str, str] = {}
        self._body: bytes = b""
        self._version = "HTTP/1.1"
        self._keep_alive = True
        self._server_name = server_name

    def status(self, status: HTTPStatus) -> "ResponseBuilder":
        self._status = HTTPStatus(status)
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        self._headers[name] = value
        return self

    def text(self, text: str) -> "ResponseBuilder":
        """Plain-text body, used for every error message."""
        self._body = text.encode("utf-8")
        self._headers["Content-Type"] = TEXT_CONTENT_TYPE
        return self

    def json(self, data: Any) -> "ResponseBuilder":
        """
        JSON body with compact separators.

        Non-ASCII titles are written as UTF-8 rather than \\u escapes.
        """
        self._body = json.dumps(
            data, ensure_ascii=False, separators=(",", ":")
        ).encode("utf-8")
        self._headers["Content-Type"] = JSON_CONTENT_TYPE
        return self

    def cors(self, origin: str = "*") -> "ResponseBuilder":
        """
        Add the CORS headers.

        Only the origin is configurable. The method and header lists are
        fixed to what the todo API accepts.
        """
        self._headers["Access-Control-Allow-Origin"] = origin
        self._headers["Access-Control-Allow-Methods"] = ", ".join(CORS_ALLOW_METHODS)
        self._headers["Access-Control-Allow-Headers"] = ", ".join(CORS_ALLOW_HEADERS)
        return self

    def version(self, version: str) -> "ResponseBuilder":
        self._version = version
        return self

    def keep_alive(self, keep_alive: bool = True) -> "ResponseBuilder":
        self._keep_alive = keep_alive
        return self

    def close_connection(self) -> "ResponseBuilder":
        return self.keep_alive(False)

    def build(self) -> HTTPResponse:
        return HTTPResponse(
            status=self._status,
            headers=self._headers,
            body=self._body,
            version=self._version,
            keep_alive=self._keep_alive,
        )

    def to_bytes(self) -> bytes:
        return self.build().to_bytes(self._server_name)


def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an RFC 7231 HTTP-date.

        Mon, 19 Oct 2026 12:00:00 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# SHORTCUTS
# =============================================================================
# The three shapes the todo handlers return. All of them carry CORS.

def json_response(
    data: Any,
    status: HTTPStatus = HTTPStatus.OK,
    origin: str = "*",
) -> HTTPResponse:
    return ResponseBuilder().status(status).json(data).cors(origin).build()


def text_response(
    message: str,
    status: HTTPStatus = HTTPStatus.OK,
    origin: str = "*",
) -> HTTPResponse:
    return ResponseBuilder().status(status).text(message).cors(origin).build()


def empty_response(
    status: HTTPStatus = HTTPStatus.OK,
    origin: str = "*",
) -> HTTPResponse:
    return ResponseBuilder().status(status).cors(origin).build()
