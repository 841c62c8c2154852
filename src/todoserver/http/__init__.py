"""
=============================================================================
HTTP PROTOCOL LAYER
=============================================================================

Bytes in, bytes out. Nothing in this package knows about todos or the
database; the todo handlers sit on top of it.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  request.py       raw bytes → HTTPRequest                           │
    │  router.py        HTTPRequest → handler → HTTPResponse              │
    │  response.py      HTTPResponse (+ CORS) → raw bytes                 │
    │  status_codes.py  the status codes the service emits                │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
"""

from .request import HTTPRequest, RequestParser, HTTPParseError, parse_request
from .response import (
    HTTPResponse,
    ResponseBuilder,
    json_response,
    text_response,
    empty_response,
    CORS_ALLOW_METHODS,
    CORS_ALLOW_HEADERS,
)
from .router import Router, Route, RouteMatch
from .status_codes import HTTPStatus

__all__ = [
    "HTTPRequest",
    "RequestParser",
    "HTTPParseError",
    "parse_request",

    "HTTPResponse",
    "ResponseBuilder",
    "json_response",
    "text_response",
    "empty_response",
    "CORS_ALLOW_METHODS",
    "CORS_ALLOW_HEADERS",

    "Router",
    "Route",
    "RouteMatch",

    "HTTPStatus",
]
