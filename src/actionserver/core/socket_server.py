"""
=============================================================================
TCP LISTENER
=============================================================================

Binds the listening socket and runs the accept loop on a background
thread. Every accepted client socket is wrapped in a Connection and handed
to a callback; what happens next is the Server's business.

=============================================================================
SOCKET LIFECYCLE
=============================================================================

    socket() ──► setsockopt() ──► bind() ──► listen(backlog) ──► accept()...
                                                                   │
                        one new client socket per accept() ◄───────┘

    backlog:   how many connections the kernel queues before accept()
               picks them up. 0 means "let the platform decide"
               (socket.SOMAXCONN).

=============================================================================
SOCKET OPTIONS
=============================================================================

SO_REUSEADDR   rebind right after a restart instead of waiting out
               TIME_WAIT ("Address already in use").

TCP_NODELAY    disable Nagle's algorithm. Streamed chunks are small and
               must reach the client when they are written, not when the
               kernel has collected enough of them.

Accept timeout 1 second, so the loop notices shutdown() promptly:

    while running:
        try:
            accept()          # blocks for 1 second max
        except timeout:
            continue          # check the running flag, loop again

=============================================================================
"""

import logging
import socket
import threading
from typing import Callable, Optional, Tuple

from .connection import Connection


logger = logging.getLogger(__name__)

ConnectionHandler = Callable[[Connection], None]


class SocketServer:
    """
    Background TCP accept loop.

    Usage:
        listener = SocketServer("localhost", 0, backlog=4)
        listener.start(handle_connection)   # returns immediately
        host, port = listener.address
        ...
        listener.shutdown()
    """

    ACCEPT_TIMEOUT = 1.0

    def __init__(
        self,
        host: str,
        port: int,
        backlog: int = 0,
        buffer_size: int = 8192,
        connection_timeout: Optional[float] = 30.0,
    ):
        self.host = host
        self.port = port
        self.backlog = backlog
        self.buffer_size = buffer_size
        self.connection_timeout = connection_timeout

        self._socket: Optional[socket.socket] = None
        self._thread: Optional[threading.Thread] = None
        self._running = False

    @property
    def is_running(self) -> bool:
        return self._running

    @property
    def address(self) -> Tuple[str, int]:
        """
        The bound (host, port).

        After start() this is the real address, so a configured port of 0
        reports the port the OS picked.
        """
        if self._socket is not None:
            host, port = self._socket.getsockname()[:2]
            return (host, port)
        return (self.host, self.port)

    def _create_socket(self) -> socket.socket:
        sock = socket.socket(socket.AF_INET, socket.SOCK_STREAM)
        sock.setsockopt(socket.SOL_SOCKET, socket.SO_REUSEADDR, 1)
        sock.setsockopt(socket.IPPROTO_TCP, socket.TCP_NODELAY, 1)
        sock.settimeout(self.ACCEPT_TIMEOUT)
        return sock

    def start(self, connection_handler: ConnectionHandler) -> None:
        """
        Bind, listen and start accepting on a background thread.

        Raises:
            RuntimeError: If already started.
            OSError: If the address cannot be bound.
        """
        if self._running:
            raise RuntimeError("Socket server already running")

        sock = self._create_socket()
        try:
            sock.bind((self.host, self.port))
            sock.listen(self.backlog if self.backlog > 0 else socket.SOMAXCONN)
        except OSError:
            sock.close()
            raise

        self._socket = sock
        self._running = True

        host, port = self.address
        logger.info(f"Listening on {host}:{port} (backlog {self.backlog or 'default'})")

        self._thread = threading.Thread(
            target=self._accept_loop,
            args=(connection_handler,),
            name=f"accept-{port}",
            daemon=True,
        )
        self._thread.start()

    def _accept_loop(self, connection_handler: ConnectionHandler) -> None:
        sock = self._socket
        try:
            while self._running:
                try:
                    client_socket, client_address = sock.accept()
                except socket.timeout:
                    continue
                except OSError as e:
                    if self._running:
                        logger.error(f"Accept error: {e}")
                    break

                logger.debug(f"Accepted connection from {client_address[0]}:{client_address[1]}")

                conn = Connection(
                    socket=client_socket,
                    address=client_address,
                    buffer_size=self.buffer_size,
                    timeout=self.connection_timeout,
                )

                try:
                    connection_handler(conn)
                except Exception as e:
                    # One bad connection must not stop the listener.
                    logger.exception(f"[{conn.id}] Connection handler failed: {e}")
                    conn.abort()
        finally:
            self._close_socket()

    def shutdown(self, timeout: Optional[float] = None) -> None:
        """
        Stop accepting and wait for the accept thread to exit.

        Safe to call more than once. Connections already handed off are
        not touched.
        """
        if not self._running and self._thread is None:
            return

        logger.info("Stopping listener...")
        self._running = False

        thread, self._thread = self._thread, None
        if thread is not None and thread is not threading.current_thread():
            thread.join(timeout if timeout is not None else self.ACCEPT_TIMEOUT * 2)
        self._close_socket()

    def _close_socket(self) -> None:
        if self._socket is not None:
            try:
                self._socket.close()
            except OSError:
                pass
            self._socket = None
