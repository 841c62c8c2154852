"""
=============================================================================
TODO SERVER
=============================================================================

Wires the pieces together and runs the per-connection session loop.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                     │
    │   SocketServer ──accept──► _handle_connection(conn)                 │
    │                                  │                                  │
    │                    over max_connections? ──yes──► 503, close        │
    │                                  │ no                               │
    │                                  ▼                                  │
    │                     threading.Thread(_process_connection)           │
    │                                  │                                  │
    │            ┌─────────────────────┴──────────────────────┐           │
    │            │  loop:                                     │           │
    │            │    read_request()      request deadline    │           │
    │            │    RequestParser.parse                     │           │
    │            │    middleware ─► TodoAPI.handle            │           │
    │            │    send_response                           │           │
    │            │    keep-alive? ──no──► stop                │           │
    │            └────────────────────────────────────────────┘           │
    │                                  │                                  │
    │                    shutdown(SHUT_WR), drain, close                  │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHEN THE LOOP STOPS
=============================================================================

    peer closed between requests        stop
    timeout / reset / truncated         stop, nothing written
    request does not parse              stop, nothing written
    handler raised                      500 text, loop goes on
    request or server not keep-alive    stop after the response

A database failure is not a reason to stop: TodoAPI turns it into a 500
and the connection stays usable.

=============================================================================
"""

import logging
import threading
from typing import Optional

from sqlalchemy.exc import SQLAlchemyError

from .config import ServerConfig, DatabaseConfig
from .core import SocketServer, Connection, ConnectionState
from .db.session import DatabaseSession
from .errors import DatabaseConnectionError
from .handlers.todos import TodoAPI
from .http import (
    HTTPRequest, RequestParser, HTTPParseError,
    HTTPResponse, ResponseBuilder, HTTPStatus,
    Router, text_response,
)
from .middleware import MiddlewarePipeline, Middleware, NextHandler


logger = logging.getLogger(__name__)


class TodoServer:
    """
    The todo HTTP service.

        server = TodoServer(ServerConfig.from_env(), DatabaseConfig.from_env())
        server.use(LoggingMiddleware())
        server.run(create_schema=True)      # blocks until SIGINT / SIGTERM

    A ready-made DatabaseSession can be passed in instead of a
    DatabaseConfig, which is how the tests point the server at SQLite.
    """

    def __init__(
        self,
        config: Optional[ServerConfig] = None,
        db_config: Optional[DatabaseConfig] = None,
        db: Optional[DatabaseSession] = None,
    ):
        self.config = config or ServerConfig()
        self.config.validate()

        if db is None:
            db_config = db_config or DatabaseConfig()
            db_config.validate()
            db = DatabaseSession(db_config)
        self.db = db

        self.api = TodoAPI(self.db, cors_origin=self.config.cors_origin)

        self._socket_server = SocketServer(self.config)
        self._parser = RequestParser()
        self._middleware = MiddlewarePipeline()
        self._handler: Optional[NextHandler] = None
        self._running = False

        self._slots: Optional[threading.BoundedSemaphore] = None
        if self.config.max_connections is not None:
            self._slots = threading.BoundedSemaphore(self.config.max_connections)

        self._active_lock = threading.Lock()
        self._active_connections = 0

    # ─── Setup ──────────────────────────────────────────────────────────────

    def use(self, middleware: Middleware) -> "TodoServer":
        self._middleware.add(middleware)
        return self

    @property
    def router(self) -> Router:
        return self.api.router

    @property
    def address(self):
        return self._socket_server.address

    @property
    def ready(self) -> threading.Event:
        """Set once the listening socket is bound."""
        return self._socket_server.ready

    @property
    def active_connections(self) -> int:
        return self._active_connections

    # ─── Lifecycle ──────────────────────────────────────────────────────────

    def run(self, create_schema: bool = False, setup_logging: bool = True) -> None:
        """
        Start serving (blocking).

        The database is contacted once up front. If it is down the error is
        logged and the server starts anyway; the first request that needs
        the database tries again.
        """
        self._running = True
        if setup_logging:
            self._setup_logging()

        self._handler = self._middleware.wrap(self.api.handle)

        logger.info("Starting todo server on %s:%s", self.config.host, self.config.port)
        for line in self.router.describe():
            logger.debug("route %s", line)

        self._connect_database(create_schema)

        try:
            self._socket_server.start(self._handle_connection)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._shutdown()

    def shutdown(self) -> None:
        """Ask the accept loop to stop; run() returns shortly after."""
        self._socket_server.shutdown()

    def _setup_logging(self) -> None:
        level = getattr(logging, self.config.log_level.upper(), logging.INFO)
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("todoserver").setLevel(level)

    def _connect_database(self, create_schema: bool) -> None:
        try:
            self.db.ensure_connected()
            if create_schema:
                self.db.create_schema()
        except (DatabaseConnectionError, SQLAlchemyError) as e:
            logger.error("Database unavailable at startup, will retry per request: %s", e)

    def _shutdown(self) -> None:
        logger.info("Shutting down server...")
        self._running = False
        self.db.close()
        logger.info("Server stopped")

    # ─── Connections ────────────────────────────────────────────────────────

    def _handle_connection(self, conn: Connection) -> None:
        """Start a session thread for conn, or refuse it if over the limit."""
        if self._slots is not None and not self._slots.acquire(blocking=False):
            logger.warning("[%s] Connection limit reached, rejecting %s", conn.id, conn.client_ip)
            self._reject(conn)
            return

        thread = threading.Thread(
            target=self._run_session,
            args=(conn,),
            name=f"conn-{conn.id}",
            daemon=True,
        )
        thread.start()

    def _run_session(self, conn: Connection) -> None:
        with self._active_lock:
            self._active_connections += 1
        try:
            self._process_connection(conn)
        finally:
            with self._active_lock:
                self._active_connections -= 1
            if self._slots is not None:
                self._slots.release()

    def _reject(self, conn: Connection) -> None:
        response = (ResponseBuilder()
            .status(HTTPStatus.SERVICE_UNAVAILABLE)
            .text("Server overloaded")
            .cors(self.config.cors_origin)
            .close_connection()
            .build())
        conn.send_response(response.to_bytes(self.config.server_name))
        conn.close()

    def _process_connection(self, conn: Connection) -> None:
        """The session loop for one connection (runs in its own thread)."""
        with conn:
            while self._running:
                try:
                    raw_request = conn.read_request()
                except TimeoutError:
                    logger.debug("[%s] Request timeout", conn.id)
                    break
                except HTTPParseError as e:
                    logger.debug("[%s] Malformed request framing: %s", conn.id, e)
                    break
                except OSError as e:
                    # ConnectionError and its subclasses land here too
                    logger.debug("[%s] Read failed: %s", conn.id, e)
                    break

                if raw_request is None:
                    break

                try:
                    request = self._parser.parse(raw_request, conn.address)
                except HTTPParseError as e:
                    logger.debug("[%s] Malformed request: %s", conn.id, e)
                    break

                conn.state = ConnectionState.PROCESSING
                response = self._dispatch(conn, request)

                keep_alive = (
                    request.is_keep_alive
                    and self.config.keep_alive
                    and response.keep_alive
                )
                response.version = request.version
                response.keep_alive = keep_alive

                if not conn.send_response(response.to_bytes(self.config.server_name)):
                    break

                if not keep_alive:
                    break

                conn.set_keep_alive()

    def _dispatch(self, conn: Connection, request: HTTPRequest) -> HTTPResponse:
        try:
            return self._handler(request)
        except Exception:
            logger.exception("[%s] Unhandled error for %s %s", conn.id, request.method, request.path)
            return text_response(
                "Internal Server Error",
                HTTPStatus.INTERNAL_SERVER_ERROR,
                self.config.cors_origin,
            )


def create_app(
    config: Optional[ServerConfig] = None,
    db_config: Optional[DatabaseConfig] = None,
) -> TodoServer:
    """Build a TodoServer from explicit or environment configuration."""
    return TodoServer(
        config or ServerConfig.from_env(),
        db_config or DatabaseConfig.from_env(),
    )
