"""
=============================================================================
TODOSERVER
=============================================================================

A small HTTP/1.1 service for a todo list, written on raw sockets and
threads, storing its records in MySQL through SQLAlchemy Core.

    ┌─────────────────────────────────────────────────────────────────────┐
    │  core/         listening socket, per-connection framing             │
    │  http/         request parser, router, response builder (+ CORS)    │
    │  middleware/   access log                                           │
    │  handlers/     todo CRUD routes, health probes                      │
    │  db/           shared session, statement catalogue, field decoding  │
    │  server.py     session loop, thread per connection                  │
    │  config.py     ServerConfig, DatabaseConfig                         │
    │  errors.py     ValidationError, DatabaseConnectionError, ...        │
    └─────────────────────────────────────────────────────────────────────┘

    python -m todoserver --db-host 127.0.0.1 --create-schema

=============================================================================
"""

__version__ = "1.0.0"

from .server import TodoServer, create_app
from .config import ServerConfig, DatabaseConfig

__all__ = ["TodoServer", "create_app", "ServerConfig", "DatabaseConfig", "__version__"]
