"""
Unit tests for the middleware pipeline and access logging.
"""

import json
import logging

import pytest

from todoserver.http import HTTPRequest, HTTPResponse, HTTPStatus, ResponseBuilder
from todoserver.middleware import LoggingMiddleware, Middleware, MiddlewarePipeline, RequestLog


def ok_handler(request: HTTPRequest) -> HTTPResponse:
    return ResponseBuilder().text("done").build()


def failing_handler(request: HTTPRequest) -> HTTPResponse:
    raise RuntimeError("boom")


class Tag(Middleware):
    """Appends its label to X-Trace on the way out."""

    def __init__(self, label: str):
        self.label = label

    def __call__(self, request, next):
        response = next(request)
        trace = response.headers.get("X-Trace", "")
        response.set_header("X-Trace", trace + self.label)
        return response


class ShortCircuit(Middleware):
    def __call__(self, request, next):
        return ResponseBuilder().status(HTTPStatus.SERVICE_UNAVAILABLE).text("nope").build()


class TestMiddlewarePipeline:

    def test_empty_pipeline_returns_handler(self):
        assert MiddlewarePipeline().wrap(ok_handler) is ok_handler

    def test_first_added_is_outermost(self):
        pipeline = MiddlewarePipeline().add(Tag("a")).add(Tag("b"))
        response = pipeline.wrap(ok_handler)(HTTPRequest(method="GET", path="/"))

        # b runs closer to the handler, so it appends first
        assert response.headers["X-Trace"] == "ba"
        assert len(pipeline) == 2
        assert [m.name for m in pipeline] == ["Tag", "Tag"]

    def test_short_circuit(self):
        pipeline = MiddlewarePipeline().add(ShortCircuit())
        response = pipeline.wrap(failing_handler)(HTTPRequest(method="GET", path="/"))
        assert response.status == HTTPStatus.SERVICE_UNAVAILABLE


class TestLoggingMiddleware:

    def test_text_access_log(self, caplog):
        middleware = LoggingMiddleware()
        request = HTTPRequest(method="GET", path="/api/todos", client_address=("10.1.2.3", 5555))

        with caplog.at_level(logging.INFO, logger="todoserver.access"):
            response = middleware(request, ok_handler)

        assert len(response.headers["X-Request-ID"]) == 8
        assert '10.1.2.3 - - [' in caplog.text
        assert '"GET /api/todos" 200 4 ' in caplog.text

    def test_json_access_log(self, caplog):
        middleware = LoggingMiddleware(log_format="json", include_request_id=False)
        request = HTTPRequest(method="POST", path="/api/todos")

        with caplog.at_level(logging.INFO, logger="todoserver.access"):
            response = middleware(request, ok_handler)

        assert "X-Request-ID" not in response.headers
        entry = json.loads(caplog.records[-1].getMessage())
        assert entry["method"] == "POST"
        assert entry["status_code"] == 200
        assert entry["client_ip"] == "-"

    def test_skip_paths(self, caplog):
        middleware = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="todoserver.access"):
            middleware(HTTPRequest(method="GET", path="/healthz"), ok_handler)

        assert caplog.records == []

    def test_errors_are_logged_and_reraised(self, caplog):
        middleware = LoggingMiddleware()

        with caplog.at_level(logging.INFO, logger="todoserver.access"):
            with pytest.raises(RuntimeError, match="boom"):
                middleware(HTTPRequest(method="GET", path="/x"), failing_handler)

        assert "Request failed: GET /x - RuntimeError: boom" in caplog.text


def test_request_log_rounds_duration():
    entry = RequestLog(
        request_id="abcd1234",
        method="GET",
        path="/",
        client_ip="-",
        user_agent="-",
        status_code=200,
        content_length=0,
        duration_ms=1.23456,
        timestamp="19/Oct/2026:10:00:00 +0000",
    )
    assert entry.to_dict()["duration_ms"] == 1.23
    assert entry.to_text() == '- - - [19/Oct/2026:10:00:00 +0000] "GET /" 200 0 1.23ms'
