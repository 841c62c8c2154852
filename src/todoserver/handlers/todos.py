"""
=============================================================================
TODO API
=============================================================================

The request router for the todo collection. Owns the route table, turns
request bodies and path ids into validated values, runs the statements on
the shared DatabaseSession and shapes rows into JSON.

    ┌──────────┬──────────────────┬──────────────────────┬─────────────────┐
    │  Method  │ Path             │ Success              │ Client errors   │
    ├──────────┼──────────────────┼──────────────────────┼─────────────────┤
    │  OPTIONS │ (any)            │ 200, empty           │                 │
    │  GET     │ /healthz         │ 200 {"status":"ok"}  │                 │
    │  GET     │ /db/healthz      │ 200 {.., "db":true}  │                 │
    │  GET     │ /api/todos       │ 200 [todo, ...]      │                 │
    │  POST    │ /api/todos       │ 201 {id,title,done}  │ invalid JSON    │
    │          │                  │                      │ title required  │
    │  PUT     │ /api/todos/{id}  │ 204                  │ invalid id      │
    │          │                  │                      │ invalid JSON    │
    │  DELETE  │ /api/todos/{id}  │ 204                  │ invalid id      │
    │  (other) │                  │ 404 "Not found"      │                 │
    └──────────┴──────────────────┴──────────────────────┴─────────────────┘

=============================================================================
ERROR BOUNDARY
=============================================================================

handle() is the outermost frame for one request:

    ValidationError                  → 400 text, message as-is
    DatabaseConnectionError          ┐
    FieldTypeError                   ├→ 500 text "db error: <detail>", logged
    sqlalchemy SQLAlchemyError       ┘

Nothing here tears the shared connection down. A broken link is noticed by
the ping at the start of the next request.

=============================================================================
KNOWN QUIRKS (kept on purpose)
=============================================================================

PUT replaces both columns. A body without "title" writes "" and a body
without "done" writes false; there is no merge with the stored row.

DELETE has no existence check. Deleting an id that is not there, or
deleting the same id twice, is a 204 every time.

=============================================================================
"""

import logging
import re
from typing import Any, Dict

from sqlalchemy.engine import Row
from sqlalchemy.exc import SQLAlchemyError

from ..db.fields import INT64_MAX, to_bool, to_int, to_str
from ..db.session import DatabaseSession
from ..errors import ServiceError, ValidationError
from ..http.request import HTTPRequest, HTTPParseError
from ..http.response import HTTPResponse, json_response, text_response, empty_response
from ..http.router import Router
from ..http.status_codes import HTTPStatus
from .health import HealthHandler


logger = logging.getLogger(__name__)


_TODO_ID = re.compile(r"[0-9]+")


def parse_todo_id(raw: str) -> int:
    """
    Validate the id segment of /api/todos/{id}.

    ASCII digits only (no sign, no whitespace) and small enough for a
    BIGINT column.

    Raises:
        ValidationError: "invalid id"
    """
    if not _TODO_ID.fullmatch(raw):
        raise ValidationError("invalid id")
    todo_id = int(raw)
    if todo_id > INT64_MAX:
        raise ValidationError("invalid id")
    return todo_id


def row_to_todo(row: Row) -> Dict[str, Any]:
    return {
        "id": to_int(row.id),
        "title": to_str(row.title),
        "done": to_bool(row.done),
        "created_at": to_str(row.created_at),
    }


def _describe(error: Exception) -> str:
    # DBAPI errors wrap the driver's exception; its message is the useful part
    original = getattr(error, "orig", None)
    return str(original if original is not None else error)


class TodoAPI:
    """
    Router plus handlers for the todo service.

        api = TodoAPI(DatabaseSession(DatabaseConfig.from_env()), cors_origin="*")
        response = api.handle(request)
    """

    def __init__(self, db: DatabaseSession, cors_origin: str = "*"):
        self.db = db
        self.cors_origin = cors_origin
        self.health = HealthHandler(db, cors_origin)
        self.router = Router(not_found=self.not_found)
        self._register_routes()

    def _register_routes(self) -> None:
        router = self.router

        # Preflight first: OPTIONS on any path, "*" included
        router.options("/*path")(self.preflight)

        router.get("/healthz")(self.health.liveness)
        router.get("/db/healthz")(self.health.database)

        router.get("/api/todos")(self.list_todos)
        router.post("/api/todos")(self.create_todo)

        # Any method, so a bad id is a 400 whatever the method
        router.route("/api/todos/*id")(self.todo_item)

    # ─── Entry point ────────────────────────────────────────────────────────

    def handle(self, request: HTTPRequest) -> HTTPResponse:
        try:
            return self.router.handle(request)
        except ValidationError as e:
            return text_response(str(e), e.status_code, self.cors_origin)
        except (ServiceError, SQLAlchemyError) as e:
            logger.error("%s %s failed: %s", request.method, request.path, _describe(e))
            return text_response(
                f"db error: {_describe(e)}",
                HTTPStatus.INTERNAL_SERVER_ERROR,
                self.cors_origin,
            )

    # ─── Handlers ───────────────────────────────────────────────────────────

    def preflight(self, request: HTTPRequest) -> HTTPResponse:
        return empty_response(HTTPStatus.OK, self.cors_origin)

    def not_found(self, request: HTTPRequest) -> HTTPResponse:
        return text_response("Not found", HTTPStatus.NOT_FOUND, self.cors_origin)

    def list_todos(self, request: HTTPRequest) -> HTTPResponse:
        with self.db.exclusive():
            rows = self.db.fetch_all("list")
            todos = [row_to_todo(row) for row in rows]
        return json_response(todos, HTTPStatus.OK, self.cors_origin)

    def create_todo(self, request: HTTPRequest) -> HTTPResponse:
        body = self._json_object(request)
        title = body.get("title")
        if not isinstance(title, str):
            raise ValidationError("title required")

        # The id read must see our insert, not a concurrent one
        with self.db.exclusive():
            self.db.execute("insert", title=title)
            todo_id = to_int(self.db.scalar("last_insert_id"))

        return json_response(
            {"id": todo_id, "title": title, "done": False},
            HTTPStatus.CREATED,
            self.cors_origin,
        )

    def todo_item(self, request: HTTPRequest) -> HTTPResponse:
        todo_id = parse_todo_id(request.path_params.get("id", ""))

        if request.method == "PUT":
            return self.update_todo(request, todo_id)
        if request.method == "DELETE":
            return self.delete_todo(request, todo_id)
        return self.not_found(request)

    def update_todo(self, request: HTTPRequest, todo_id: int) -> HTTPResponse:
        body = self._json_object(request)

        title = body.get("title")
        if not isinstance(title, str):
            title = ""
        done = body.get("done")
        if not isinstance(done, bool):
            done = False

        with self.db.exclusive():
            self.db.execute("update", title=title, done=done, id=todo_id)

        return empty_response(HTTPStatus.NO_CONTENT, self.cors_origin)

    def delete_todo(self, request: HTTPRequest, todo_id: int) -> HTTPResponse:
        with self.db.exclusive():
            self.db.execute("delete", id=todo_id)
        return empty_response(HTTPStatus.NO_CONTENT, self.cors_origin)

    # ─── Helpers ────────────────────────────────────────────────────────────

    @staticmethod
    def _json_object(request: HTTPRequest) -> Dict[str, Any]:
        try:
            data = request.json
        except HTTPParseError:
            raise ValidationError("invalid JSON") from None
        if not isinstance(data, dict):
            raise ValidationError("invalid JSON")
        return data
