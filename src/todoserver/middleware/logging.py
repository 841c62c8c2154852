"""
=============================================================================
ACCESS LOG MIDDLEWARE
=============================================================================

One log line per request on the "todoserver.access" logger, written after
the todo API has produced its response.

    text (Apache-like):
        127.0.0.1 - - [19/Oct/2026:12:00:00 +0000] "POST /api/todos" 201 41 3.12ms

    json:
        {"request_id": "1f0c2a9b", "method": "POST", "path": "/api/todos",
         "status_code": 201, "content_length": 41, "duration_ms": 3.12, ...}

Every logged response also carries the same id in X-Request-ID so a client
can quote it back. Paths in skip_paths (by default the liveness probe) are
neither logged nor tagged.

=============================================================================
"""

import time
import json
import uuid
import logging
from typing import Optional, List
from dataclasses import dataclass, asdict

from .base import Middleware, NextHandler
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse


logger = logging.getLogger("todoserver.access")


@dataclass
class RequestLog:
    """One access log entry."""

    request_id: str
    method: str
    path: str
    client_ip: str
    user_agent: str
    status_code: int
    content_length: int
    duration_ms: float
    timestamp: str

    def to_dict(self) -> dict:
        entry = asdict(self)
        entry["duration_ms"] = round(self.duration_ms, 2)
        return entry

    def to_text(self) -> str:
        return (
            f'{self.client_ip} - - [{self.timestamp}] '
            f'"{self.method} {self.path}" {self.status_code} '
            f'{self.content_length} {self.duration_ms:.2f}ms'
        )


class LoggingMiddleware(Middleware):
    """
    Times each request and writes the access log.

        pipeline.add(LoggingMiddleware(log_format="json"))

    Should be added first so its timing covers everything else.
    """

    def __init__(
        self,
        log_format: str = "text",
        include_request_id: bool = True,
        log_level: int = logging.INFO,
        skip_paths: Optional[List[str]] = None,
    ):
        self.log_format = log_format
        self.include_request_id = include_request_id
        self.log_level = log_level
        self.skip_paths = set(skip_paths if skip_paths is not None else ["/healthz"])

    def __call__(self, request: HTTPRequest, next: NextHandler) -> HTTPResponse:
        request_id = uuid.uuid4().hex[:8]
        start_time = time.perf_counter()

        try:
            response = next(request)
        except Exception as e:
            duration_ms = (time.perf_counter() - start_time) * 1000
            logger.error(
                "Request failed: %s %s - %s: %s (%.2fms)",
                request.method, request.path, type(e).__name__, e, duration_ms,
            )
            raise

        duration_ms = (time.perf_counter() - start_time) * 1000

        if request.path in self.skip_paths:
            return response

        entry = RequestLog(
            request_id=request_id,
            method=request.method,
            path=request.path,
            client_ip=request.client_address[0] or "-",
            user_agent=request.user_agent or "-",
            status_code=int(response.status),
            content_length=len(response.body),
            duration_ms=duration_ms,
            timestamp=time.strftime("%d/%b/%Y:%H:%M:%S %z"),
        )

        if self.log_format == "json":
            logger.log(self.log_level, json.dumps(entry.to_dict()))
        else:
            logger.log(self.log_level, entry.to_text())

        if self.include_request_id:
            response.headers["X-Request-ID"] = request_id

        return response
