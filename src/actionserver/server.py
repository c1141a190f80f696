"""
=============================================================================
SERVER
=============================================================================

Ties the pieces together: listener, executor, parser, handler table, and
one ResponseSender per request.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                           Server                                     │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   SocketServer ──accept──► _handle_connection(conn)                 │
    │   (accept thread)               │                                    │
    │                                 ├── executor.submit(...)  (pool)     │
    │                                 └── or inline             (serial)   │
    │                                 ▼                                    │
    │                        _process_connection(conn)                     │
    │                                 │                                    │
    │           read_request ──► RequestParser ──► Request                 │
    │                                 │                                    │
    │           Exchange + CancellationToken ──► ResponseSender            │
    │                                 │                                    │
    │           HandlerTable.resolve(path) ──► dispatch(method)            │
    │                                 │                                    │
    │           errors ──► 500 / truncated stream / abort, then close      │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
LIFECYCLE
=============================================================================

    NOT_STARTED ──start()──► RUNNING ──stop()──► STOPPED
         │                                          ▲
         └──────────── stop() ✗ LifecycleError      │ stop() again: no-op

    start() twice      → LifecycleError
    start() after stop → LifecycleError (no restart)

=============================================================================
WHEN THINGS GO WRONG
=============================================================================

    Malformed request            400 (505 for an unknown HTTP version)
    Client too slow              408
    Executor queue full          503
    No handler for the path      404
    Handler raised, nothing sent 500
    Handler raised mid-stream    connection dropped, no terminating chunk
                                 (HTTP/1.0: the body is close-delimited, so
                                 the client cannot tell a cut stream from
                                 a complete one)
    Handler returned silently    500, or the stream is ended for it
    Client went away             logged, connection dropped

Nothing a handler does can take the server down.

=============================================================================
GRACEFUL STOP
=============================================================================

    1. stop accepting
    2. wait up to `timeout` for in-flight requests to finish
    3. cancel whatever is still running (their CancellationTokens)
    4. give them a moment to notice, then report STOPPED

=============================================================================
"""

import logging
import signal
import threading
import time
from enum import Enum
from typing import Any, Dict, Mapping, Optional, Set, Tuple

from .cancellation import CancellationToken
from .config import ServerConfig
from .core import Connection, Exchange, SocketServer
from .errors import (
    ConfigurationError,
    LifecycleError,
    RequestCancelledError,
    TransportIOFailure,
)
from .handler import Handler, dispatch
from .http import HTTPParseError, HTTPStatus, Request, RequestParser
from .http.response import error_response, internal_error, not_found
from .routing import HandlerTable
from .sender import ResponseSender, SenderState


logger = logging.getLogger(__name__)
access_logger = logging.getLogger("actionserver.access")


class LifecycleState(Enum):
    NOT_STARTED = "not_started"
    RUNNING = "running"
    STOPPED = "stopped"


class Server:
    """
    An HTTP server dispatching to path-bound Handlers.

    =========================================================================
    USAGE
    =========================================================================

        server = (ServerBuilder()
            .hostname("localhost")
            .port(8000)
            .backlog(4)
            .executor(ThreadPool(max_workers=3).start())
            .add_handler(FooHandler())
            .add_handler(FooStreamHandler())
            .build())

        server.serve_forever()          # blocks, Ctrl+C stops it

    Or, embedded / in tests:

        with Server.create_basic("localhost", 0, {"/foo": FooHandler()}) as server:
            host, port = server.address
            ...

    The server does not own its executor: whoever created the executor
    shuts it down, after stop().
    =========================================================================
    """

    STOP_GRACE = 2.0

    def __init__(self, config: ServerConfig):
        self.config = config

        self._handlers = HandlerTable(config.handlers)
        self._parser = RequestParser()
        self._listener = SocketServer(
            config.hostname,
            config.port,
            backlog=config.backlog,
            buffer_size=config.buffer_size,
            connection_timeout=config.read_timeout,
        )

        self._state = LifecycleState.NOT_STARTED
        self._lifecycle_lock = threading.Lock()
        self._stopped = threading.Event()
        self._address: Optional[Tuple[str, int]] = None

        # Tokens of requests between accept and close; guarded by _idle.
        self._in_flight: Set[CancellationToken] = set()
        self._idle = threading.Condition()

    @classmethod
    def create_basic(cls, hostname: str, port: int, handlers: Mapping[str, Handler]) -> "Server":
        """A serial server (no executor) with the platform's default backlog."""
        return cls(ServerConfig(hostname=hostname, port=port, backlog=0, handlers=handlers))

    def to_builder(self) -> "ServerBuilder":
        """A builder pre-filled with this server's configuration."""
        return ServerBuilder.from_config(self.config)

    # =========================================================================
    # PROPERTIES
    # =========================================================================

    @property
    def state(self) -> LifecycleState:
        return self._state

    @property
    def address(self) -> Tuple[str, int]:
        """The bound (host, port); the configured one before start()."""
        return self._address or (self.config.hostname, self.config.port)

    @property
    def handlers(self) -> HandlerTable:
        return self._handlers

    @property
    def in_flight(self) -> int:
        with self._idle:
            return len(self._in_flight)

    # =========================================================================
    # LIFECYCLE
    # =========================================================================

    def start(self) -> None:
        """
        Bind and start accepting on a background thread. Returns at once.

        Raises:
            LifecycleError: If the server was already started.
            OSError: If the address cannot be bound.
        """
        with self._lifecycle_lock:
            if self._state is not LifecycleState.NOT_STARTED:
                raise LifecycleError(f"Cannot start a server that is {self._state.name}")

            self._handlers.freeze()
            self._listener.start(self._handle_connection)
            self._address = self._listener.address
            self._state = LifecycleState.RUNNING

        host, port = self._address
        mode = "serial" if self.config.executor is None else type(self.config.executor).__name__
        logger.info(f"Server running on http://{host}:{port} ({mode})")
        self._handlers.log_routes()

    def stop(self, timeout: float = 30.0) -> None:
        """
        Stop accepting, drain in-flight requests, then cancel stragglers.

        Args:
            timeout: Seconds to wait for in-flight requests before their
                     CancellationTokens are fired.

        Raises:
            LifecycleError: If the server was never started.
        """
        with self._lifecycle_lock:
            if self._state is LifecycleState.NOT_STARTED:
                raise LifecycleError("Cannot stop a server that was never started")
            if self._state is LifecycleState.STOPPED:
                return

            logger.info("Stopping server...")
            self._listener.shutdown()

            if not self._wait_idle(timeout):
                with self._idle:
                    pending = list(self._in_flight)
                logger.warning(f"Drain timeout after {timeout}s, cancelling {len(pending)} request(s)")
                for token in pending:
                    token.cancel("server stopping")
                if not self._wait_idle(self.STOP_GRACE):
                    logger.warning(f"{self.in_flight} request(s) still running after cancellation")

            self._state = LifecycleState.STOPPED
            self._stopped.set()

        logger.info("Server stopped")

    def serve_forever(self) -> None:
        """
        Configure logging, start, and block until stopped.

        From the main thread SIGINT and SIGTERM stop the server gracefully.
        """
        self._setup_logging()
        self.start()
        self._print_startup_banner()

        stop_requested = threading.Event()
        previous = self._install_signal_handlers(stop_requested)
        try:
            while not (stop_requested.is_set() or self._stopped.is_set()):
                stop_requested.wait(0.5)
        except KeyboardInterrupt:
            logger.info("Received keyboard interrupt")
        finally:
            self._restore_signal_handlers(previous)
            if self._state is LifecycleState.RUNNING:
                self.stop()

    def _setup_logging(self) -> None:
        level = self.config.log_level_number
        logging.basicConfig(
            level=level,
            format="%(asctime)s [%(levelname)s] %(name)s: %(message)s",
            datefmt="%Y-%m-%d %H:%M:%S",
        )
        logging.getLogger("actionserver").setLevel(level)

    def _print_startup_banner(self) -> None:
        host, port = self.address
        print()
        print("=" * 64)
        print(f"  {self.config.server_name} listening on http://{host}:{port}")
        for path in sorted(self._handlers.paths):
            print(f"    {path}")
        print("  Press Ctrl+C to stop")
        print("=" * 64)
        print()

    @staticmethod
    def _install_signal_handlers(stop_requested: threading.Event) -> Dict[int, Any]:
        if threading.current_thread() is not threading.main_thread():
            return {}

        def on_signal(signum, frame):
            logger.info(f"Received {signal.Signals(signum).name}, shutting down")
            stop_requested.set()

        previous = {}
        for signum in (signal.SIGINT, signal.SIGTERM):
            previous[signum] = signal.signal(signum, on_signal)
        return previous

    @staticmethod
    def _restore_signal_handlers(previous: Dict[int, Any]) -> None:
        for signum, handler in previous.items():
            signal.signal(signum, handler)

    def __enter__(self):
        self.start()
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        if self._state is LifecycleState.RUNNING:
            self.stop()
        return False

    # =========================================================================
    # IN-FLIGHT TRACKING
    # =========================================================================

    def _track(self, token: CancellationToken) -> None:
        with self._idle:
            self._in_flight.add(token)

    def _untrack(self, token: CancellationToken) -> None:
        with self._idle:
            self._in_flight.discard(token)
            if not self._in_flight:
                self._idle.notify_all()

    def _wait_idle(self, timeout: Optional[float]) -> bool:
        with self._idle:
            return self._idle.wait_for(lambda: not self._in_flight, timeout)

    # =========================================================================
    # CONNECTION HANDLING
    # =========================================================================

    def _handle_connection(self, conn: Connection) -> None:
        """Runs on the accept thread: hand off, or handle inline."""
        token = CancellationToken(self.config.request_timeout)
        self._track(token)

        executor = self.config.executor
        if executor is None:
            self._process_connection(conn, token)
            return

        try:
            accepted = executor.submit(self._process_connection, conn, token)
        except RuntimeError as e:
            logger.warning(f"[{conn.id}] Executor refused connection: {e}")
            accepted = False

        # ThreadPool returns a bool; concurrent.futures returns a Future.
        if accepted is False:
            logger.warning(f"[{conn.id}] Executor saturated, rejecting connection")
            try:
                self._reject(conn, HTTPStatus.SERVICE_UNAVAILABLE, "Server overloaded")
            finally:
                self._untrack(token)

    def _process_connection(self, conn: Connection, token: CancellationToken) -> None:
        """Read, parse, dispatch and close one connection."""
        start = time.time()
        request: Optional[Request] = None
        sender: Optional[ResponseSender] = None

        try:
            try:
                raw = conn.read_request()
            except TimeoutError:
                self._reject(conn, HTTPStatus.REQUEST_TIMEOUT, "Request timeout")
                return
            if raw is None:
                return

            try:
                request = self._parser.parse(raw, conn.address)
            except HTTPParseError as e:
                logger.info(f"[{conn.id}] Bad request from {conn.address[0]}: {e}")
                self._reject(conn, e.status_code, str(e))
                return

            exchange = Exchange(conn, request.version, self.config.server_name)
            sender = ResponseSender(exchange, token)
            self._serve(conn, request, sender)

        except TransportIOFailure as e:
            logger.warning(f"[{conn.id}] {e}")
        except Exception as e:
            logger.exception(f"[{conn.id}] Connection error: {e}")
        finally:
            if not conn.closed:
                conn.abort()
            self._untrack(token)
            if request is not None:
                self._log_access(conn, request, sender, start)

    def _serve(self, conn: Connection, request: Request, sender: ResponseSender) -> None:
        handler = self._handlers.resolve(request.path)

        try:
            if handler is None:
                logger.debug(f"[{conn.id}] No handler for {request.path}")
                sender.send(not_found())
            else:
                dispatch(handler, request.method, request, sender)

        except TransportIOFailure as e:
            logger.warning(f"[{conn.id}] Client went away: {e}")
            sender.abort()
        except RequestCancelledError as e:
            logger.info(f"[{conn.id}] {request.method} {request.path}: {e}")
            sender.abort()
        except Exception as e:
            logger.exception(f"[{conn.id}] Handler error on {request.method} {request.path}: {e}")
            self._fail(sender)

        else:
            if sender.state is SenderState.READY:
                logger.warning(f"[{conn.id}] {handler!r} returned without responding")
                self._fail(sender)
            elif sender.state is SenderState.CHUNKING:
                logger.warning(f"[{conn.id}] {handler!r} did not end its chunked response")
                try:
                    sender.end_chunk_encoding()
                except (TransportIOFailure, RequestCancelledError) as e:
                    logger.warning(f"[{conn.id}] Could not end stream: {e}")
                    sender.abort()

    @staticmethod
    def _fail(sender: ResponseSender) -> None:
        """Best effort: 500 if nothing went out yet, else drop the stream."""
        if sender.state is SenderState.READY:
            try:
                sender.send(internal_error())
            except (TransportIOFailure, RequestCancelledError):
                sender.abort()
        else:
            sender.abort()

    def _reject(self, conn: Connection, status: int, message: str) -> None:
        """Answer before a Request exists (parse errors, timeouts, overload)."""
        sender = ResponseSender(Exchange(conn, server_name=self.config.server_name))
        try:
            sender.send(error_response(HTTPStatus(status), message))
        except TransportIOFailure as e:
            logger.debug(f"[{conn.id}] Could not send {status}: {e}")

    @staticmethod
    def _log_access(
        conn: Connection,
        request: Request,
        sender: Optional[ResponseSender],
        start: float,
    ) -> None:
        status = sender.status_code if sender and sender.status_code is not None else "-"
        sent = sender.bytes_sent if sender else 0
        duration_ms = (time.time() - start) * 1000
        access_logger.info(
            f'{conn.address[0]} "{request.method} {request.uri} {request.version}" '
            f"{status} {sent} {duration_ms:.1f}ms"
        )


class ServerBuilder:
    """
    Fluent construction of a Server.

    hostname, port and backlog must be given; build() raises
    ConfigurationError otherwise. Duplicate paths are rejected as soon
    as they are registered.
    """

    def __init__(self):
        self._values: Dict[str, Any] = {}
        self._handlers = HandlerTable()

    @classmethod
    def from_config(cls, config: ServerConfig) -> "ServerBuilder":
        builder = cls()
        builder._values = dict(
            hostname=config.hostname,
            port=config.port,
            backlog=config.backlog,
            executor=config.executor,
            read_timeout=config.read_timeout,
            request_timeout=config.request_timeout,
            buffer_size=config.buffer_size,
            server_name=config.server_name,
            log_level=config.log_level,
        )
        builder._handlers = HandlerTable(config.handlers)
        return builder

    def hostname(self, hostname: str) -> "ServerBuilder":
        self._values["hostname"] = hostname
        return self

    def port(self, port: int) -> "ServerBuilder":
        self._values["port"] = port
        return self

    def backlog(self, backlog: int) -> "ServerBuilder":
        self._values["backlog"] = backlog
        return self

    def executor(self, executor: Any) -> "ServerBuilder":
        """Any object with submit(fn, *args); None for serial handling."""
        self._values["executor"] = executor
        return self

    def read_timeout(self, seconds: Optional[float]) -> "ServerBuilder":
        self._values["read_timeout"] = seconds
        return self

    def request_timeout(self, seconds: Optional[float]) -> "ServerBuilder":
        self._values["request_timeout"] = seconds
        return self

    def buffer_size(self, size: int) -> "ServerBuilder":
        self._values["buffer_size"] = size
        return self

    def server_name(self, name: str) -> "ServerBuilder":
        self._values["server_name"] = name
        return self

    def log_level(self, level: str) -> "ServerBuilder":
        self._values["log_level"] = level
        return self

    def register(self, path: str, handler: Handler) -> "ServerBuilder":
        self._handlers.register(path, handler)
        return self

    def add_handler(self, handler: Handler) -> "ServerBuilder":
        """Register a handler at its own `resource_path`."""
        path = getattr(handler, "resource_path", None)
        if not path:
            raise ConfigurationError(f"{handler!r} does not declare a resource_path")
        return self.register(path, handler)

    def set_handlers(self, handlers: Mapping[str, Handler]) -> "ServerBuilder":
        """Replace every registered handler."""
        self._handlers = HandlerTable(handlers)
        return self

    def build_config(self) -> ServerConfig:
        return ServerConfig(handlers=self._handlers.to_dict(), **self._values)

    def build(self) -> Server:
        return Server(self.build_config())
