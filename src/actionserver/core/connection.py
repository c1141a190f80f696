"""
=============================================================================
CLIENT CONNECTION
=============================================================================

Wraps one accepted client socket with buffered reading of a complete
request and error-translated writing.

Every connection carries exactly one request: read it, write one response
(single-shot or streamed), close.

=============================================================================
CONNECTION STATE MACHINE
=============================================================================

    NEW ──────► READING ──────► PROCESSING ──────► WRITING
     │             │                │                 │
     │             ▼                ▼                 ▼
     └──────────────────────────► CLOSING ◄───────────┘
                                    │
                                    ▼
                                  CLOSED

=============================================================================
WHY READ "BY HAND"?
=============================================================================

TCP delivers a byte stream, not messages. One recv() may hold half a
request line, or the headers plus part of the body. read_request() keeps
pulling until it has:

    1. the full header block (ends with \\r\\n\\r\\n), then
    2. exactly Content-Length body bytes.

=============================================================================
"""

import logging
import socket
import time
import uuid
from dataclasses import dataclass, field
from enum import Enum
from typing import Optional, Tuple

from ..errors import TransportIOFailure


logger = logging.getLogger(__name__)


class ConnectionState(Enum):
    NEW = "new"
    READING = "reading"
    PROCESSING = "processing"
    WRITING = "writing"
    CLOSING = "closing"
    CLOSED = "closed"


@dataclass
class Connection:
    """
    A client connection.

    Attributes:
        socket: The accepted client socket.
        address: Client (ip, port).
        id: Short identifier used in log lines.
        buffer_size: Bytes requested per recv().
        timeout: Socket timeout for reads and writes, None blocks forever.
    """

    socket: socket.socket
    address: Tuple[str, int]

    id: str = field(default_factory=lambda: uuid.uuid4().hex[:8])
    state: ConnectionState = ConnectionState.NEW
    created_at: float = field(default_factory=time.time)
    buffer_size: int = 8192
    timeout: Optional[float] = 30.0

    _buffer: bytes = field(default=b"", repr=False)

    def __post_init__(self):
        self.socket.setblocking(True)
        self.socket.settimeout(self.timeout)

    @property
    def closed(self) -> bool:
        return self.state == ConnectionState.CLOSED

    @property
    def age(self) -> float:
        """Seconds since the connection was accepted."""
        return time.time() - self.created_at

    # =========================================================================
    # READING
    # =========================================================================

    def read_request(self) -> Optional[bytes]:
        """
        Read one complete request (headers plus Content-Length body).

        Returns:
            The request bytes, or None if the client closed the connection
            before sending a full header block.

        Raises:
            TimeoutError: If the client stops sending mid-request.
            TransportIOFailure: If the socket read fails.
        """
        self.state = ConnectionState.READING

        try:
            while b"\r\n\r\n" not in self._buffer:
                chunk = self._recv()
                if not chunk:
                    return None
                self._buffer += chunk

            header_end = self._buffer.find(b"\r\n\r\n")
            body_start = header_end + 4
            content_length = self._scan_content_length(self._buffer[:header_end])

            while len(self._buffer) - body_start < content_length:
                chunk = self._recv()
                if not chunk:
                    break  # short body, the parser reports it
                self._buffer += chunk

        except socket.timeout:
            raise TimeoutError("Request read timeout") from None

        request_end = body_start + content_length
        data, self._buffer = self._buffer[:request_end], self._buffer[request_end:]
        self.state = ConnectionState.PROCESSING
        return data

    def _recv(self) -> bytes:
        try:
            return self.socket.recv(self.buffer_size)
        except socket.timeout:
            raise
        except (ConnectionResetError, BrokenPipeError):
            return b""
        except OSError as e:
            raise TransportIOFailure(f"[{self.id}] read failed: {e}") from e

    @staticmethod
    def _scan_content_length(head: bytes) -> int:
        """
        Find Content-Length in a raw header block.

        Needed BEFORE the request is parsed, to know how much body to read.
        Invalid values count as 0; the parser rejects them properly.
        """
        for line in head.split(b"\r\n")[1:]:
            name, sep, value = line.partition(b":")
            if sep and name.strip().lower() == b"content-length":
                try:
                    return max(0, int(value.strip()))
                except ValueError:
                    return 0
        return 0

    # =========================================================================
    # WRITING
    # =========================================================================

    def write(self, data: bytes) -> None:
        """
        Send all of `data`.

        sendall() keeps calling send() until every byte is handed to the
        kernel. With TCP_NODELAY on the listening socket nothing is held
        back, so each write reaches the client as soon as it is made.

        Raises:
            TransportIOFailure: If the client disconnected or the write
                timed out.
        """
        if self.closed:
            raise TransportIOFailure(f"[{self.id}] write on closed connection")

        self.state = ConnectionState.WRITING
        try:
            self.socket.sendall(data)
        except (socket.timeout, OSError) as e:
            raise TransportIOFailure(f"[{self.id}] write failed: {e}") from e

    # =========================================================================
    # CLOSING
    # =========================================================================

    def close(self) -> None:
        """
        Close gracefully: send FIN, drain what the client still sends,
        release the socket. Safe to call more than once.

            Server                              Client
               │   FIN ──────────────────────────► │  shutdown(SHUT_WR)
               │ ◄───────────────────────── ACK    │
               │ ◄───────────────────────── FIN    │  client closes
               │   ACK ──────────────────────────► │
        """
        if self.closed:
            return
        self.state = ConnectionState.CLOSING

        try:
            self.socket.shutdown(socket.SHUT_WR)
        except OSError:
            pass  # peer already gone

        try:
            self.socket.settimeout(0.5)
            while self.socket.recv(1024):
                pass
        except OSError:
            pass

        self._release()

    def abort(self) -> None:
        """Close immediately without the FIN/drain sequence."""
        if self.closed:
            return
        self.state = ConnectionState.CLOSING
        self._release()

    def _release(self) -> None:
        try:
            self.socket.close()
        except OSError:
            pass
        self.state = ConnectionState.CLOSED
        logger.debug(f"[{self.id}] Connection closed after {self.age:.3f}s")

    def __enter__(self):
        return self

    def __exit__(self, exc_type, exc_val, exc_tb):
        self.close()
        return False
