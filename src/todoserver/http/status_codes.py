"""
=============================================================================
HTTP STATUS CODES
=============================================================================

The status codes the todo service actually emits. Kept as an IntEnum so a
status compares equal to its number and formats into the status line
directly.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  2xx   │ 200 OK          - reads, health checks, preflight         │
    │        │ 201 Created     - POST /api/todos                         │
    │        │ 204 No Content  - PUT / DELETE /api/todos/{id}            │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  4xx   │ 400 Bad Request - invalid JSON, title required, invalid id│
    │        │ 404 Not Found   - anything the router does not know       │
    ├────────┼───────────────────────────────────────────────────────────┤
    │  5xx   │ 500 Internal    - database unreachable or bad column      │
    │        │ 503 Unavailable - connection refused by admission limit   │
    └────────┴───────────────────────────────────────────────────────────┘

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes and reason phrases.

        >>> HTTPStatus.CREATED == 201
        True
        >>> HTTPStatus.CREATED.phrase
        'Created'
    """

    # 2xx SUCCESS
    OK = 200
    CREATED = 201
    NO_CONTENT = 204

    # 4xx CLIENT ERRORS
    BAD_REQUEST = 400
    NOT_FOUND = 404

    # 5xx SERVER ERRORS
    INTERNAL_SERVER_ERROR = 500
    SERVICE_UNAVAILABLE = 503

    @property
    def phrase(self) -> str:
        """
        Reason phrase for the status line.

            HTTP/1.1 204 No Content
                     ─── ──────────
                      │       └── phrase
                      └────────── code
        """
        return _STATUS_PHRASES.get(self, "Unknown")

    @property
    def allows_body(self) -> bool:
        """204 and 1xx responses must not carry a body or Content-Length."""
        return not (self < 200 or self == HTTPStatus.NO_CONTENT)


_STATUS_PHRASES = {
    HTTPStatus.OK: "OK",
    HTTPStatus.CREATED: "Created",
    HTTPStatus.NO_CONTENT: "No Content",
    HTTPStatus.BAD_REQUEST: "Bad Request",
    HTTPStatus.NOT_FOUND: "Not Found",
    HTTPStatus.INTERNAL_SERVER_ERROR: "Internal Server Error",
    HTTPStatus.SERVICE_UNAVAILABLE: "Service Unavailable",
}
