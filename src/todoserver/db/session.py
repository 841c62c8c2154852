"""
=============================================================================
DATABASE SESSION MANAGER
=============================================================================

One shared link to the database for the whole process, its five prepared
statements, and the lock that serializes every use of them.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                         DatabaseSession                             │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   _lock ─────────── threading.RLock, held for the WHOLE of a        │
    │                     request's database interaction                  │
    │                                                                     │
    │   _engine ────────┐                                                 │
    │   _connection ────┼── one SQLAlchemy Connection, or None            │
    │   _generation ────┘   bumped on every successful (re)connect        │
    │                                                                     │
    │   _statements ───── list / insert / update / delete /               │
    │                     last_insert_id, each tagged with the            │
    │                     generation it was prepared on                   │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
RECONNECT SWEEP
=============================================================================

ensure_connected() is called before every query. It is cheap when the link
is healthy (one SELECT 1) and does a full sweep when it is not:

    ping current connection ──ok──► return
            │
          failed / none
            │
            ▼
    getaddrinfo(host, port) ──► [(ip1, port), (ip2, port), ...]
            │
            ▼
    for each endpoint, in resolver order:
        build engine → connect → SELECT 1
            ├── ok ────► adopt it, generation += 1, prepare all five, return
            └── error ─► log at DEBUG, dispose, try the next one
            │
          all failed
            ▼
    raise DatabaseConnectionError   (session left disconnected)

The sweep runs under the lock, so a slow reconnect stalls every other
request. There is no retry beyond the one sweep: the next request simply
tries again.

=============================================================================
STATEMENTS AND GENERATIONS
=============================================================================

A statement prepared on generation N is never executed on generation N+1.
ensure_prepared() compares every statement's generation with the current
one and, if any differs or is missing, prepares all five again as a unit.

"Preparing" here means building a SQLAlchemy text() clause for each
statement and tagging it with the current generation. Nothing is sent to
the server at that point: the driver compiles and sends the SQL on each
execute(). What the generation tag guarantees is that a clause object built
for an old connection is never used on a new one.

=============================================================================
TRANSACTIONS
=============================================================================

Engines are created with isolation_level="AUTOCOMMIT". Each statement is
its own transaction; the insert and the last_insert_id read that follows it
share the lock, not a transaction.

=============================================================================
"""

import logging
import socket
import threading
from contextlib import contextmanager
from dataclasses import dataclass
from typing import Callable, Dict, Iterator, List, Optional, Tuple

from sqlalchemy import create_engine, text
from sqlalchemy.engine import Connection, Engine, Row, URL
from sqlalchemy.exc import SQLAlchemyError
from sqlalchemy.pool import NullPool
from sqlalchemy.sql.elements import TextClause

from ..config import DatabaseConfig
from ..errors import DatabaseConnectionError
from .statements import PROBE_SQL, STATEMENT_NAMES, schema_for, statements_for


logger = logging.getLogger(__name__)


Endpoint = Tuple[str, int]

# Builds an Engine for one resolved endpoint
EngineFactory = Callable[[DatabaseConfig, str, int], Engine]


@dataclass(frozen=True)
class PreparedStatement:
    """A statement bound to the connection generation it was prepared on."""

    name: str
    clause: TextClause
    generation: int


def default_engine_factory(config: DatabaseConfig, host: str, port: int) -> Engine:
    """
    Create a single-connection engine for one endpoint.

    NullPool: closing the Connection closes the socket, and the next
    connect() opens a new one.
    SQLite URLs ignore host and port and use config.name as the file path.
    """
    if config.is_sqlite:
        url = URL.create(config.driver, database=config.name)
        return create_engine(
            url,
            poolclass=NullPool,
            isolation_level="AUTOCOMMIT",
            connect_args={"check_same_thread": False},
        )

    url = URL.create(
        config.driver,
        username=config.user,
        password=config.password,
        host=host,
        port=port,
        database=config.name,
    )
    return create_engine(url, poolclass=NullPool, isolation_level="AUTOCOMMIT")


class DatabaseSession:
    """
    The process-wide database session.

    Typical use from a request handler:

        with db.exclusive():
            db.execute("insert", title="buy milk")
            new_id = db.scalar("last_insert_id")

    exclusive() holds the lock, reconnects if needed and makes sure the
    statements belong to the current connection, for the whole block.
    """

    def __init__(
        self,
        config: Optional[DatabaseConfig] = None,
        engine_factory: Optional[EngineFactory] = None,
    ):
        self.config = config or DatabaseConfig()
        self._engine_factory = engine_factory or default_engine_factory

        self._lock = threading.RLock()
        self._engine: Optional[Engine] = None
        self._connection: Optional[Connection] = None
        self._generation = 0
        self._statements: Dict[str, PreparedStatement] = {}

    # ─── State ──────────────────────────────────────────────────────────────

    @property
    def generation(self) -> int:
        return self._generation

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    @property
    def dialect(self) -> Optional[str]:
        return self._engine.dialect.name if self._engine is not None else None

    # ─── Connection management ──────────────────────────────────────────────

    def ensure_connected(self) -> None:
        """
        Make sure there is a live connection, reconnecting if needed.

        Raises:
            DatabaseConnectionError: if no resolved endpoint accepts us.
        """
        with self._lock:
            if self._connection is not None:
                if self._ping(self._connection):
                    return
                logger.warning(
                    "Database connection to %s:%s lost, reconnecting",
                    self.config.host, self.config.port,
                )

            self._disconnect()

            endpoints = self._resolve()
            last_error: Optional[BaseException] = None

            for host, port in endpoints:
                try:
                    engine = self._engine_factory(self.config, host, port)
                except (SQLAlchemyError, OSError) as e:
                    logger.debug("Cannot build engine for %s:%s: %s", host, port, e)
                    last_error = e
                    continue

                try:
                    connection = engine.connect()
                except (SQLAlchemyError, OSError) as e:
                    logger.debug("Connect to %s:%s failed: %s", host, port, e)
                    engine.dispose()
                    last_error = e
                    continue

                if not self._ping(connection):
                    logger.debug("Probe on %s:%s failed", host, port)
                    self._close_quietly(connection, engine)
                    last_error = ConnectionError(f"probe failed on {host}:{port}")
                    continue

                self._engine = engine
                self._connection = connection
                self._generation += 1
                self._prepare_all()

                logger.info(
                    "Connected to database %s at %s:%s (generation %d)",
                    self.config.name, host, port, self._generation,
                )
                return

            raise DatabaseConnectionError(
                f"cannot connect to {self.config.host}:{self.config.port}: {last_error}"
            )

    def ensure_prepared(self) -> None:
        """Re-prepare all five statements if any is stale or missing."""
        with self._lock:
            if self._connection is None:
                raise DatabaseConnectionError("not connected")
            if not self._statements_current():
                logger.info("Re-preparing statements for generation %d", self._generation)
                self._prepare_all()

    def probe(self) -> None:
        """Connect if needed and run SELECT 1. Used by /db/healthz."""
        with self._lock:
            self.ensure_connected()
            self._connection.execute(text(PROBE_SQL)).scalar()

    @contextmanager
    def exclusive(self) -> Iterator["DatabaseSession"]:
        """Hold the lock with a live connection and current statements."""
        with self._lock:
            self.ensure_connected()
            self.ensure_prepared()
            yield self

    def close(self) -> None:
        with self._lock:
            self._disconnect()

    # ─── Queries ────────────────────────────────────────────────────────────

    def execute(self, name: str, **params) -> int:
        """Run a prepared statement; returns the affected row count."""
        with self._lock:
            result = self._connection_for(name).execute(self._statements[name].clause, params)
            return result.rowcount

    def fetch_all(self, name: str, **params) -> List[Row]:
        with self._lock:
            result = self._connection_for(name).execute(self._statements[name].clause, params)
            return list(result.fetchall())

    def scalar(self, name: str, **params):
        with self._lock:
            result = self._connection_for(name).execute(self._statements[name].clause, params)
            return result.scalar()

    def create_schema(self) -> None:
        """CREATE TABLE IF NOT EXISTS for the connected dialect."""
        with self.exclusive():
            self._connection.execute(text(schema_for(self.dialect)))
            logger.info("Schema ready (%s)", self.dialect)

    # ─── Internals ──────────────────────────────────────────────────────────

    def _connection_for(self, name: str) -> Connection:
        if name not in STATEMENT_NAMES:
            raise KeyError(f"unknown statement: {name}")
        self.ensure_prepared()
        return self._connection

    def _resolve(self) -> List[Endpoint]:
        """Resolve host/port to endpoints, keeping resolver order, no repeats."""
        try:
            infos = socket.getaddrinfo(
                self.config.host, self.config.port, type=socket.SOCK_STREAM
            )
        except OSError as e:
            raise DatabaseConnectionError(
                f"cannot resolve {self.config.host}:{self.config.port}: {e}"
            ) from e

        endpoints: List[Endpoint] = []
        for _family, _type, _proto, _canonname, sockaddr in infos:
            endpoint = (sockaddr[0], sockaddr[1])
            if endpoint not in endpoints:
                endpoints.append(endpoint)
        return endpoints

    def _ping(self, connection: Connection) -> bool:
        try:
            connection.execute(text(PROBE_SQL)).scalar()
            return True
        except (SQLAlchemyError, OSError) as e:
            logger.debug("Ping failed: %s", e)
            return False

    def _statements_current(self) -> bool:
        return all(
            name in self._statements
            and self._statements[name].generation == self._generation
            for name in STATEMENT_NAMES
        )

    def _prepare_all(self) -> None:
        catalogue = statements_for(self.dialect)
        self._statements = {
            name: PreparedStatement(name, text(catalogue[name]), self._generation)
            for name in STATEMENT_NAMES
        }

    def _disconnect(self) -> None:
        if self._connection is not None or self._engine is not None:
            self._close_quietly(self._connection, self._engine)
        self._connection = None
        self._engine = None
        self._statements = {}

    @staticmethod
    def _close_quietly(connection: Optional[Connection], engine: Optional[Engine]) -> None:
        # The link is usually already dead here; closing it may raise again.
        if connection is not None:
            try:
                connection.close()
            except (SQLAlchemyError, OSError) as e:
                logger.debug("Error closing connection: %s", e)
        if engine is not None:
            engine.dispose()
