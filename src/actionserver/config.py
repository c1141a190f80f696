"""
=============================================================================
SERVER CONFIGURATION
=============================================================================

Everything a Server needs, in one immutable, validated value.

=============================================================================
FAIL FAST
=============================================================================

A ServerConfig is checked when it is CONSTRUCTED, not when the server
starts and certainly not when the first request arrives:

    ServerConfig(hostname="localhost", port=8000)
    → ConfigurationError: backlog is required

hostname, port and backlog have no defaults on purpose. Everything else
does.

=============================================================================
CONFIGURATION SOURCES
=============================================================================

    1. Command-line arguments      python -m actionserver --port 9000
    2. Environment variables       ACTIONSERVER_PORT=9000
    3. ServerBuilder / keyword arguments in code

Environment variables (ServerConfig.from_env):

    ACTIONSERVER_HOST           hostname          (default: localhost)
    ACTIONSERVER_PORT           port              (default: 8000)
    ACTIONSERVER_BACKLOG        backlog           (default: 4)
    ACTIONSERVER_LOG_LEVEL      log level         (default: INFO)
    ACTIONSERVER_READ_TIMEOUT   read timeout, s   (default: 30)

=============================================================================
"""

import logging
import os
from dataclasses import dataclass, field
from typing import Any, Mapping, Optional

from .errors import ConfigurationError
from .handler import Handler


LOG_LEVELS = ("DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL")


@dataclass(frozen=True)
class ServerConfig:
    """
    Immutable server configuration.

    Attributes:
        hostname: Interface to bind ("localhost", "0.0.0.0", ...).
        port: TCP port, 0 lets the OS pick one.
        backlog: Pending-connection queue size, 0 for the platform default.
        executor: Object with submit(fn, *args). None handles requests one
                  at a time on the accept thread.
        handlers: Resource path → Handler.
        read_timeout: Seconds a client may take to send its request.
        request_timeout: Optional deadline in seconds for each request,
                         enforced through its CancellationToken.
        buffer_size: Bytes per socket read.
        server_name: Value of the Server response header.
        log_level: Level used by serve_forever() when it configures logging.
    """

    hostname: Optional[str] = None
    port: Optional[int] = None
    backlog: Optional[int] = None
    executor: Optional[Any] = None
    handlers: Mapping[str, Handler] = field(default_factory=dict)

    read_timeout: Optional[float] = 30.0
    request_timeout: Optional[float] = None
    buffer_size: int = 8192
    server_name: str = "actionserver/1.0"
    log_level: str = "INFO"

    def __post_init__(self):
        # Own a copy; the caller's dict may change after construction.
        object.__setattr__(self, "handlers", dict(self.handlers or {}))
        self.validate()

    def validate(self) -> None:
        """
        Raises:
            ConfigurationError: On the first missing or invalid field.
        """
        if self.hostname is None:
            raise ConfigurationError("hostname is required")
        if not isinstance(self.hostname, str) or not self.hostname:
            raise ConfigurationError(f"Invalid hostname: {self.hostname!r}")

        if self.port is None:
            raise ConfigurationError("port is required")
        if not isinstance(self.port, int) or not 0 <= self.port <= 65535:
            raise ConfigurationError(f"Invalid port: {self.port!r}. Must be 0-65535.")

        if self.backlog is None:
            raise ConfigurationError("backlog is required")
        if not isinstance(self.backlog, int) or self.backlog < 0:
            raise ConfigurationError(f"Invalid backlog: {self.backlog!r}. Must be >= 0.")

        if self.executor is not None and not callable(getattr(self.executor, "submit", None)):
            raise ConfigurationError(
                f"executor must have a submit() method, got {type(self.executor).__name__}"
            )

        if self.read_timeout is not None and self.read_timeout <= 0:
            raise ConfigurationError("read_timeout must be > 0")
        if self.request_timeout is not None and self.request_timeout <= 0:
            raise ConfigurationError("request_timeout must be > 0")
        if self.buffer_size < 1024:
            raise ConfigurationError("buffer_size must be >= 1024")
        if self.log_level.upper() not in LOG_LEVELS:
            raise ConfigurationError(f"Invalid log level: {self.log_level!r}")

    @property
    def log_level_number(self) -> int:
        return getattr(logging, self.log_level.upper())

    @classmethod
    def from_env(cls, **overrides: Any) -> "ServerConfig":
        """
        Build a configuration from ACTIONSERVER_* environment variables.

        Keyword arguments win over the environment, which is how the
        executor and handlers (not expressible as strings) get in.
        """
        try:
            values = dict(
                hostname=os.getenv("ACTIONSERVER_HOST", "localhost"),
                port=int(os.getenv("ACTIONSERVER_PORT", "8000")),
                backlog=int(os.getenv("ACTIONSERVER_BACKLOG", "4")),
                log_level=os.getenv("ACTIONSERVER_LOG_LEVEL", "INFO"),
                read_timeout=float(os.getenv("ACTIONSERVER_READ_TIMEOUT", "30")),
            )
        except ValueError as e:
            raise ConfigurationError(f"Invalid environment configuration: {e}") from e

        values.update(overrides)
        return cls(**values)
