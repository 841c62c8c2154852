"""
=============================================================================
HEALTH CHECK HANDLERS
=============================================================================

Two probes, one shallow and one deep:

    ┌─────────────────┬──────────────────────────────────────────────────┐
    │  GET /healthz   │ Liveness. The process answers, nothing else is   │
    │                 │ checked. Always 200 {"status":"ok"}.             │
    ├─────────────────┼──────────────────────────────────────────────────┤
    │  GET /db/healthz│ Database. Runs the reconnect sweep if needed,    │
    │                 │ then SELECT 1.                                   │
    │                 │   200 {"status":"ok","db":true}                  │
    │                 │   500 "db error: <detail>"                       │
    └─────────────────┴──────────────────────────────────────────────────┘

The deep probe raises on failure and lets the todo API's error boundary
turn the exception into the 500 text response, the same path every other
database failure takes.

Health responses are never cached.

=============================================================================
"""

from ..db.session import DatabaseSession
from ..http.request import HTTPRequest
from ..http.response import HTTPResponse, ResponseBuilder
from ..http.status_codes import HTTPStatus


class HealthHandler:
    """
    Liveness and database probes.

        health = HealthHandler(db, cors_origin="*")
        router.get("/healthz")(health.liveness)
        router.get("/db/healthz")(health.database)
    """

    def __init__(self, db: DatabaseSession, cors_origin: str = "*"):
        self.db = db
        self.cors_origin = cors_origin

    def liveness(self, request: HTTPRequest) -> HTTPResponse:
        return self._ok({"status": "ok"})

    def database(self, request: HTTPRequest) -> HTTPResponse:
        self.db.probe()
        return self._ok({"status": "ok", "db": True})

    def _ok(self, data: dict) -> HTTPResponse:
        return (ResponseBuilder()
            .status(HTTPStatus.OK)
            .json(data)
            .cors(self.cors_origin)
            .header("Cache-Control", "no-store")
            .build())
