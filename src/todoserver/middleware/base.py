"""
=============================================================================
MIDDLEWARE PIPELINE
=============================================================================

Middleware wraps the todo API the way layers wrap an onion. The server
builds one handler out of the pipeline at startup and calls it for every
request the session loop reads.

    ┌─────────────────────────────────────────────────────────┐
    │  LoggingMiddleware   (times the call, writes access log)│
    │  ┌───────────────────────────────────────────────────┐  │
    │  │                                                   │  │
    │  │        TodoAPI.handle                             │  │
    │  │        (router + error boundary)                  │  │
    │  │                                                   │  │
    │  └───────────────────────────────────────────────────┘  │
    └─────────────────────────────────────────────────────────┘

The first middleware added is the outermost one.

=============================================================================
"""

from abc import ABC, abstractmethod
from typing import Callable, List
import logging

from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger(__name__)


# The rest of the chain, as seen from one middleware
NextHandler = Callable[[HTTPRequest], HTTPResponse]


class Middleware(ABC):
    """
    One layer of the pipeline.

        class AddVersion(Middleware):
            def __call__(self, request, next):
                response = next(request)
                response.set_header("X-Todo-Version", "1")
                return response

    Returning without calling next() short-circuits the request.
    """

    @abstractmethod
    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        ...

    @property
    def name(self) -> str:
        return self.__class__.__name__


class MiddlewarePipeline:
    """Ordered middleware list that can wrap a final handler."""

    def __init__(self):
        self._middleware: List[Middleware] = []

    def add(self, middleware: Middleware) -> "MiddlewarePipeline":
        self._middleware.append(middleware)
        logger.debug("Added middleware: %s", middleware.name)
        return self

    def wrap(self, handler: NextHandler) -> NextHandler:
        """
        Build the chain around handler.

            [A, B] + handler  →  A(B(handler))

        Wrapping runs in reverse so A ends up outermost.
        """
        current = handler
        for middleware in reversed(self._middleware):
            current = self._bind(middleware, current)
        return current

    @staticmethod
    def _bind(middleware: Middleware, next_handler: NextHandler) -> NextHandler:
        def wrapped(request: HTTPRequest) -> HTTPResponse:
            return middleware(request, next_handler)
        return wrapped

    def __len__(self) -> int:
        return len(self._middleware)

    def __iter__(self):
        return iter(self._middleware)
