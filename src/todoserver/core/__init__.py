"""
=============================================================================
NETWORK CORE
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │  SocketServer   listening socket, accept loop, signal handling      │
    │        │                                                            │
    │        │ one Connection per accepted socket                         │
    │        ▼                                                            │
    │  Connection     request framing, sendall, half-close                │
    └─────────────────────────────────────────────────────────────────────┘

Threads are not managed here. The todo server starts one per connection.

=============================================================================
"""

from .socket_server import SocketServer
from .connection import Connection, ConnectionState, IncompleteRequestError

__all__ = [
    "SocketServer",
    "Connection",
    "ConnectionState",
    "IncompleteRequestError",
]
