"""
=============================================================================
URL ROUTER
=============================================================================

Maps (method, path) to a handler function. Routes are tried in the order
they were registered and the first match wins.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  OPTIONS  /*path           → preflight       (any path, even "*")   │
    │  GET      /healthz         → liveness                               │
    │  GET      /db/healthz      → database probe                         │
    │  GET      /api/todos       → list                                   │
    │  POST     /api/todos       → create                                 │
    │  (any)    /api/todos/*id   → validate id, then PUT / DELETE         │
    │  otherwise                 → 404 "Not found"                        │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
PATTERN SYNTAX
=============================================================================

    /static      exact segment
    /:name       one segment, no slashes          → path_params["name"]
    /*name       everything that is left,         → path_params["name"]
                 possibly empty or with slashes

Only a missing leading slash is normalized. A trailing slash is part of the
path: "/api/todos/" reaches the id route with an empty id.

There is no 405 handling. A path that exists under another method is simply
not found.

=============================================================================
"""

from dataclasses import dataclass, field
from typing import Callable, Optional, Dict, List
import re

from .request import HTTPRequest
from .response import HTTPResponse, text_response
from .status_codes import HTTPStatus


Handler = Callable[[HTTPRequest], HTTPResponse]


@dataclass
class Route:
    """A URL pattern bound to a handler. method=None matches any method."""

    path: str
    method: Optional[str]
    handler: Handler
    _pattern: Optional[re.Pattern] = field(default=None, repr=False)


@dataclass
class RouteMatch:
    route: Route
    params: Dict[str, str]


def default_not_found(request: HTTPRequest) -> HTTPResponse:
    return text_response("Not found", HTTPStatus.NOT_FOUND)


class Router:
    """
    Ordered list of routes with decorator helpers.

        router = Router()

        @router.get("/healthz")
        def healthz(request):
            return json_response({"status": "ok"})

        @router.route("/api/todos/*id")      # any method
        def todo_item(request):
            ...
    """

    def __init__(self, prefix: str = "", not_found: Optional[Handler] = None):
        self.prefix = prefix.rstrip("/")
        self.not_found = not_found or default_not_found
        self._routes: List[Route] = []

    def add_route(
        self,
        path: str,
        handler: Handler,
        method: Optional[str] = None
    ) -> Route:
        full_path = self.prefix + path
        pattern = self._compile_pattern(full_path)

        route = Route(
            path=full_path,
            method=method.upper() if method else None,
            handler=handler,
            _pattern=pattern,
        )
        self._routes.append(route)
        return route

    def _compile_pattern(self, path: str) -> re.Pattern:
        """
        Compile a route pattern into an anchored regex.

            "/api/todos/*id"  →  ^/api/todos/(?P<id>.*)$
            "/users/:id"      →  ^/users/(?P<id>[^/]+)$
        """
        regex_parts = ["^"]

        for segment in path.split("/"):
            if not segment:
                continue

            regex_parts.append("/")

            if segment.startswith(":"):
                param_name = segment[1:]
                regex_parts.append(f"(?P<{param_name}>[^/]+)")
            elif segment.startswith("*"):
                param_name = segment[1:] or "wildcard"
                regex_parts.append(f"(?P<{param_name}>.*)")
                break
            else:
                regex_parts.append(re.escape(segment))

        if len(regex_parts) == 1:
            regex_parts.append("/")
        regex_parts.append("$")
        return re.compile("".join(regex_parts))

    @staticmethod
    def normalize_path(path: str) -> str:
        return path if path.startswith("/") else "/" + path

    def match(self, method: str, path: str) -> Optional[RouteMatch]:
        """First route whose method and pattern both accept the request."""
        path = self.normalize_path(path)
        method = method.upper()

        for route in self._routes:
            if route.method and route.method != method:
                continue
            match = route._pattern.match(path) if route._pattern else None
            if match:
                return RouteMatch(route=route, params=match.groupdict())

        return None

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        match = self.match(request.method, request.path)
        if match:
            request.path_params = match.params
            return match.route.handler(request)
        return self.not_found(request)

    def route(self, path: str, method: Optional[str] = None) -> Callable[[Handler], Handler]:
        def decorator(handler: Handler) -> Handler:
            self.add_route(path, handler, method)
            return handler
        return decorator

    def get(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "GET")

    def post(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "POST")

    def options(self, path: str) -> Callable[[Handler], Handler]:
        return self.route(path, "OPTIONS")

    def routes(self) -> List[Route]:
        return list(self._routes)

    def describe(self) -> List[str]:
        """One "METHOD  path" line per route, for the startup log."""
        return [f"{route.method or '*':<8}{route.path}" for route in self._routes]
