"""
=============================================================================
CONFIGURATION
=============================================================================

Two dataclasses: one for the HTTP side, one for the database. Both can be
built from the environment and both validate eagerly, so a typo in a port
number stops the process at startup instead of on the first request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                    CONFIGURATION HIERARCHY                          │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                     │
    │   Priority (highest to lowest):                                     │
    │                                                                     │
    │   1. Command-line arguments                                         │
    │      └── python -m todoserver --db-host db.internal                 │
    │                                                                     │
    │   2. Environment variables                                          │
    │      └── DB_HOST=db.internal python -m todoserver                   │
    │                                                                     │
    │   3. Default values (in the dataclasses below)                      │
    │                                                                     │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
ENVIRONMENT VARIABLES
=============================================================================

    HTTP_HOST              bind address              0.0.0.0
    HTTP_PORT              listen port               8080
    HTTP_IDLE_TIMEOUT      seconds between requests  30
    HTTP_MAX_CONNECTIONS   admission limit           (unbounded)
    HTTP_LOG_LEVEL         DEBUG / INFO / ...        INFO
    HTTP_LOG_FORMAT        text / json               text
    CORS_ORIGIN            Access-Control-Allow-...  *

    DB_HOST                database host             127.0.0.1
    DB_PORT                database port             3306
    DB_NAME                schema (file for SQLite)  todos
    DB_USER                user                      todo
    DB_PASSWORD            password                  todo
    DB_DRIVER              SQLAlchemy driver name    mysql+pymysql

=============================================================================
"""

import os
from dataclasses import dataclass
from typing import Optional


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")
LOG_FORMATS = ("text", "json")

# Dialects with a statement catalogue in db/statements.py
SUPPORTED_DIALECTS = ("mysql", "mariadb", "sqlite")


def _optional_int(value: Optional[str]) -> Optional[int]:
    return int(value) if value not in (None, "") else None


@dataclass
class ServerConfig:
    """
    HTTP listener and session-loop settings.

        ServerConfig(host="127.0.0.1", port=9000, cors_origin="http://localhost:5173")
    """

    # ─────────────────────────────────────────────────────────────────────
    # NETWORK
    # ─────────────────────────────────────────────────────────────────────

    host: str = "0.0.0.0"
    port: int = 8080

    backlog: int = 128
    """Accept queue length passed to listen()."""

    buffer_size: int = 8192
    """recv() chunk size."""

    # ─────────────────────────────────────────────────────────────────────
    # HTTP
    # ─────────────────────────────────────────────────────────────────────

    idle_timeout: float = 30.0
    """
    How long a connection may sit between (or inside) requests before the
    session loop gives up on it. Applied to every read.
    """

    keep_alive: bool = True
    """When False every response closes the connection."""

    max_connections: Optional[int] = None
    """
    Admission limit. None means one thread per connection with no cap;
    otherwise connections over the limit get a 503 and are closed.
    """

    cors_origin: str = "*"
    """Value of Access-Control-Allow-Origin on every response."""

    # ─────────────────────────────────────────────────────────────────────
    # LOGGING
    # ─────────────────────────────────────────────────────────────────────

    log_level: str = "INFO"
    log_format: str = "text"

    server_name: str = "todoserver/1.0"

    @classmethod
    def from_env(cls) -> "ServerConfig":
        return cls(
            host=os.getenv("HTTP_HOST", "0.0.0.0"),
            port=int(os.getenv("HTTP_PORT", "8080")),
            idle_timeout=float(os.getenv("HTTP_IDLE_TIMEOUT", "30")),
            max_connections=_optional_int(os.getenv("HTTP_MAX_CONNECTIONS")),
            cors_origin=os.getenv("CORS_ORIGIN", "*"),
            log_level=os.getenv("HTTP_LOG_LEVEL", "INFO"),
            log_format=os.getenv("HTTP_LOG_FORMAT", "text"),
        )

    def validate(self) -> None:
        """Fail fast on values that can only break later."""
        if not 0 <= self.port < 65536:
            raise ValueError(f"Invalid port: {self.port}. Must be 0-65535.")

        if self.backlog < 1:
            raise ValueError("backlog must be >= 1")

        if self.buffer_size < 1024:
            raise ValueError("buffer_size must be >= 1024")

        if self.idle_timeout <= 0:
            raise ValueError("idle_timeout must be > 0")

        if self.max_connections is not None and self.max_connections < 1:
            raise ValueError("max_connections must be >= 1 or unset")

        if not self.cors_origin:
            raise ValueError("cors_origin must not be empty")

        if self.log_level.upper() not in LOG_LEVELS:
            raise ValueError(f"Invalid log level: {self.log_level}")

        if self.log_format not in LOG_FORMATS:
            raise ValueError(f"Invalid log format: {self.log_format}")


@dataclass
class DatabaseConfig:
    """
    Where the todo table lives.

    driver is a SQLAlchemy driver name. For "sqlite" drivers host and port
    are still resolved but not used, and name is the database file path.
    """

    host: str = "127.0.0.1"
    port: int = 3306
    name: str = "todos"
    user: str = "todo"
    password: str = "todo"
    driver: str = "mysql+pymysql"

    @property
    def dialect(self) -> str:
        """Dialect part of the driver name: "mysql" for "mysql+pymysql"."""
        return self.driver.split("+")[0]

    @property
    def is_sqlite(self) -> bool:
        return self.dialect == "sqlite"

    @classmethod
    def from_env(cls) -> "DatabaseConfig":
        return cls(
            host=os.getenv("DB_HOST", "127.0.0.1"),
            port=int(os.getenv("DB_PORT", "3306")),
            name=os.getenv("DB_NAME", "todos"),
            user=os.getenv("DB_USER", "todo"),
            password=os.getenv("DB_PASSWORD", "todo"),
            driver=os.getenv("DB_DRIVER", "mysql+pymysql"),
        )

    def validate(self) -> None:
        if not 0 < self.port < 65536:
            raise ValueError(f"Invalid database port: {self.port}. Must be 1-65535.")

        if not self.host:
            raise ValueError("database host must not be empty")

        if not self.name:
            raise ValueError("database name must not be empty")

        if self.dialect not in SUPPORTED_DIALECTS:
            raise ValueError(
                f"Unsupported database driver: {self.driver!r}. "
                f"Use one of: {', '.join(SUPPORTED_DIALECTS)}"
            )

    def __repr__(self) -> str:
        # Keep the password out of logs
        return (
            f"DatabaseConfig(host={self.host!r}, port={self.port}, name={self.name!r}, "
            f"user={self.user!r}, driver={self.driver!r})"
        )
