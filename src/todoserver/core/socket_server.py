"""
=============================================================================
LISTENER
=============================================================================

Owns the listening socket and the accept loop. It knows nothing about HTTP:
every accepted socket is wrapped in a Connection and handed to a callback,
which for the todo server starts a session thread.

    start(handler)
        │
        ├──► socket() + SO_REUSEADDR + TCP_NODELAY
        ├──► bind(host, port) ─── port 0 picks a free port (tests)
        ├──► listen(backlog)
        ├──► SIGINT / SIGTERM → shutdown()   (main thread only)
        │
        └──► while running:
                accept()          1 s timeout so shutdown is noticed
                Connection(...)
                handler(conn)

=============================================================================
"""

import socket
import signal
import logging
import threading
from typing import Optional, Callable, Tuple

from ..config import ServerConfig
from .connection import Connection


logger = logging.getLogger(__name__)


ConnectionHandler = Callable[[Connection], None]


class SocketServer:
    """
    TCP accept loop.

        server = SocketServer(config)
        server.start(on_connection)    # blocks until shutdown()
    """

    ACCEPT_POLL_INTERVAL = 1.0

    def __init__(self, config: ServerConfig):
        self.config = config
        self._socket: Optional[socket.socket] = None
        self._running = False
        self._bound_address: Optional[Tuple[str, int]] = None

        # Set once the socket is listening; tests wait on it
        self.ready = threading.Event()
        self._original_handlers: dict = {}

    @property
    def address(self) -> Tuple[str, int]:
        """The address actually bound, or the configured one before start()."""
        return self._bound_address or (self.config.host, self.config.port)

    def _create_socket(self) -> socket.socket:
        family = socket.AF_INET6 if ":" in self.config.host else socket.AF_INET
        sock = socket.socket(family, socket.SOCK_STREAM)

        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)

        # accept() wakes up periodically to check _running
        sock.settimeout(self.ACCEPT_POLL_INTERVAL)
        return sock

    def _setup_signals(self) -> None:
        # signal.signal() only works from the main thread; embedded servers
        # (the test-suite runs one in a daemon thread) skip this.
        if threading.current_thread() is not threading.main_thread():
            return

        def shutdown_handler(signum, frame):
            logger.info("Received %s, shutting down", signal.Signals(signum).name)
            self.shutdown()

        self._original_handlers[signal.SIGTERM] = signal.signal(signal.SIGTERM, shutdown_handler)
        self._original_handlers[signal.SIGINT] = signal.signal(signal.SIGINT, shutdown_handler)

    def _restore_signals(self) -> None:
        for sig, handler in self._original_handlers.items():
            signal.signal(sig, handler)
        self._original_handlers.clear()

    def start(self, connection_handler: ConnectionHandler) -> None:
        """Bind, listen and run the accept loop until shutdown()."""
        self._socket = self._create_socket()

        try:
            self._socket.bind((self.config.host, self.config.port))
        except OSError as e:
            logger.error("Failed to bind to %s:%s: %s", self.config.host, self.config.port, e)
            self._socket.close()
            self._socket = None
            raise

        self._socket.listen(self.config.backlog)
        self._bound_address = self._socket.getsockname()[:2]

        self._running = True
        self._setup_signals()

        logger.info("Listening on %s:%s", *self._bound_address)
        self.ready.set()

        try:
            self._accept_loop(connection_handler)
        finally:
            self._cleanup()

    def _accept_loop(self, connection_handler: ConnectionHandler) -> None:
        while self._running:
            try:
                client_socket, client_address = self._socket.accept()
            except socket.timeout:
                continue
            except OSError as e:
                if self._running:
                    logger.error("Accept error: %s", e)
                break

            logger.debug("Accepted connection from %s:%s", client_address[0], client_address[1])

            conn = Connection(
                socket=client_socket,
                address=client_address[:2],
                buffer_size=self.config.buffer_size,
                idle_timeout=self.config.idle_timeout,
            )
            connection_handler(conn)

    def shutdown(self) -> None:
        """Stop the accept loop. Safe to call more than once, from any thread."""
        if self._running:
            logger.info("Stopping listener")
        self._running = False

    def _cleanup(self) -> None:
        self._restore_signals()

        if self._socket:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None

        self.ready.clear()
        logger.info("Listener stopped")
