"""
pytest configuration and fixtures.

Database tests run against a throwaway SQLite file per test; no MySQL
server is needed.
"""

import socket
import threading
from typing import Callable, Generator, List, Optional
import pytest

from todoserver import TodoServer, ServerConfig, DatabaseConfig
from todoserver.db import DatabaseSession
from todoserver.handlers import TodoAPI


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request."""
    return (
        b"GET /api/todos?page=1 HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: application/json\r\n"
        b"Connection: keep-alive\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with JSON body."""
    body = b'{"title": "buy milk"}'
    return (
        b"POST /api/todos HTTP/1.1\r\n"
        b"Host: localhost:8080\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"Connection: close\r\n"
        b"\r\n"
    ) + body


# ─── Database ───────────────────────────────────────────────────────────────

@pytest.fixture
def db_config(tmp_path) -> DatabaseConfig:
    """SQLite database in the test's temp directory."""
    return DatabaseConfig(
        host="127.0.0.1",
        port=3306,
        name=str(tmp_path / "todos.db"),
        driver="sqlite",
    )


@pytest.fixture
def db(db_config: DatabaseConfig) -> Generator[DatabaseSession, None, None]:
    """Connected session with the todos table created."""
    session = DatabaseSession(db_config)
    session.create_schema()
    yield session
    session.close()


@pytest.fixture
def api(db: DatabaseSession) -> TodoAPI:
    return TodoAPI(db, cors_origin="*")


# ─── Live server ────────────────────────────────────────────────────────────

class TestServer:
    """Runs a TodoServer in a background thread."""

    def __init__(self, server: TodoServer):
        self.server = server
        self._thread: Optional[threading.Thread] = None

    @property
    def port(self) -> int:
        return self.server.address[1]

    def start(self):
        self._thread = threading.Thread(
            target=self.server.run,
            kwargs={"setup_logging": False},
            daemon=True,
        )
        self._thread.start()

        if not self.server.ready.wait(timeout=5.0):
            raise RuntimeError("Server failed to start")

    def stop(self):
        self.server.shutdown()
        if self._thread and self._thread.is_alive():
            self._thread.join(timeout=5.0)

    def connect(self) -> socket.socket:
        sock = socket.create_connection(("127.0.0.1", self.port), timeout=5.0)
        return sock


@pytest.fixture
def server_factory(db: DatabaseSession) -> Generator[Callable[..., TestServer], None, None]:
    """
    Start live TodoServers backed by the SQLite session.

        srv = server_factory(max_connections=1)

    Keyword arguments override ServerConfig fields; the port is picked by
    the OS. Every server started is stopped at teardown.
    """
    started: List[TestServer] = []

    def start(middleware=(), **overrides) -> TestServer:
        options = dict(host="127.0.0.1", port=0, idle_timeout=5.0, log_level="WARNING")
        options.update(overrides)

        server = TodoServer(ServerConfig(**options), db=db)
        for layer in middleware:
            server.use(layer)

        test_srv = TestServer(server)
        test_srv.start()
        started.append(test_srv)
        return test_srv

    yield start

    for test_srv in started:
        test_srv.stop()


@pytest.fixture
def test_server(server_factory) -> TestServer:
    """A live TodoServer with default settings."""
    return server_factory()
