"""
=============================================================================
RESPONSE CHANNEL (EXCHANGE)
=============================================================================

The Exchange is the writable side of one connection as ResponseSender sees
it. It knows HOW to put a response on the wire; the sender decides WHEN.

=============================================================================
TWO WAYS TO END A BODY
=============================================================================

    KNOWN LENGTH (send)                 UNKNOWN LENGTH (chunks)
    ───────────────────                 ───────────────────────

    HTTP/1.1 200 OK                     HTTP/1.1 200 OK
    Content-Length: 5                   Transfer-Encoding: chunked
    Connection: close                   Connection: close

    hello                               6\\r\\n
                                        foo 0\\n\\r\\n        ← one chunk
                                        6\\r\\n
                                        foo 1\\n\\r\\n
                                        0\\r\\n\\r\\n          ← terminator

The client knows the body is complete when it has read Content-Length
bytes, or when it sees the zero-length terminator chunk.

HTTP/1.0 clients do not understand chunked framing. For them the body is
written raw and the end is signalled by closing the connection.

Writes are NOT buffered: every call goes straight to sendall(), so a chunk
is on its way to the client by the time write_body() returns.

=============================================================================
"""

import logging
from datetime import datetime, timezone
from typing import List, Optional

from ..http.headers import HeaderName, Headers
from ..http.response import format_http_date
from ..http.status_codes import reason_phrase
from .connection import Connection


logger = logging.getLogger(__name__)

CRLF = b"\r\n"


class Exchange:
    """
    Writable response channel bound to one Connection.

    Attributes:
        connection: The underlying client connection.
        version: HTTP version of the request, decides chunked framing.
        server_name: Value for the Server header.
    """

    def __init__(
        self,
        connection: Connection,
        version: str = "HTTP/1.1",
        server_name: str = "actionserver",
    ):
        self.connection = connection
        self.version = version
        self.server_name = server_name

        self.headers_sent = False
        self.chunked = False
        self.status_code: Optional[int] = None
        self.bytes_written = 0  # body bytes only

    @property
    def closed(self) -> bool:
        return self.connection.closed

    def send_headers(self, status_code: int, headers: Headers, content_length: Optional[int]) -> None:
        """
        Write the status line and header block.

        Args:
            status_code: Numeric status.
            headers: Handler-supplied headers, written value by value.
            content_length: Exact body size, or None when the body is
                            streamed and its length is unknown.
        """
        if self.headers_sent:
            raise RuntimeError("Response headers already sent")

        framing = {
            HeaderName.CONTENT_LENGTH.lower(),
            HeaderName.TRANSFER_ENCODING.lower(),
            HeaderName.CONNECTION.lower(),
        }
        builder = Headers.builder()
        present = set()
        for name, values in headers.items():
            if name.lower() in framing:
                continue
            present.add(name.lower())
            builder.add_all(name, values)

        if content_length is None:
            if self.version == "HTTP/1.1":
                builder.set(HeaderName.TRANSFER_ENCODING, "chunked")
                self.chunked = True
        else:
            builder.set(HeaderName.CONTENT_LENGTH, str(content_length))

        if HeaderName.DATE.lower() not in present:
            builder.set(HeaderName.DATE, format_http_date(datetime.now(timezone.utc)))
        if HeaderName.SERVER.lower() not in present:
            builder.set(HeaderName.SERVER, self.server_name)
        # One request per connection, always.
        builder.set(HeaderName.CONNECTION, "close")

        lines: List[str] = [f"{self.version} {status_code} {reason_phrase(status_code)}".rstrip()]
        for name, values in builder.build().items():
            for value in values:
                lines.append(f"{name}: {value}")

        head = "\r\n".join(lines).encode("iso-8859-1") + CRLF + CRLF
        self.connection.write(head)
        self.headers_sent = True
        self.status_code = status_code

    def write_body(self, data: bytes) -> None:
        """
        Write body bytes, chunk-framed when the response is chunked.

        An empty write is skipped: under chunked framing a zero-length
        chunk would terminate the body.
        """
        if not self.headers_sent:
            raise RuntimeError("Response headers must be sent before the body")
        if not data:
            return

        if self.chunked:
            self.connection.write(f"{len(data):x}".encode("ascii") + CRLF + data + CRLF)
        else:
            self.connection.write(data)
        self.bytes_written += len(data)

    def finish(self) -> None:
        """Terminate the body (zero-length chunk if chunked) and close."""
        if self.chunked:
            self.connection.write(b"0" + CRLF + CRLF)
        self.close()

    def close(self) -> None:
        self.connection.close()

    def abort(self) -> None:
        """Drop the connection without completing the response."""
        logger.debug(f"[{self.connection.id}] Aborting response")
        self.connection.abort()
