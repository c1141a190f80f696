"""
=============================================================================
HTTP RESPONSE
=============================================================================

Response is the immutable value a handler hands to its ResponseSender.
It holds only what the handler decides: status, headers, body. Framing
(Content-Length vs chunked, Date, Server, Connection) is added on the way
out by the transport, see core/exchange.py.

=============================================================================
THE BUILDER PATTERN
=============================================================================

    response = (ResponseBuilder()
        .status(HTTPStatus.OK)
        .header(HeaderName.CONTENT_TYPE, "text/plain")
        .body("We have a male foo named Rex who is 3 years old")
        .build())

        builder.status(...).header(...).body(...).build()
        ────────┬──────────────┬───────────┬─────────┬──
                └──────────────┴───────────┘         │
                     all return self           returns Response

Defaults are explicit: no headers, empty body, status 0 ("unset"). Nothing
is validated at build time; a status of 0 builds fine and it is up to the
caller to pick a meaningful one.

=============================================================================
"""

import json
from dataclasses import dataclass, field
from datetime import datetime
from typing import Any, Union

from .headers import HeaderName, Headers, HeadersBuilder
from .status_codes import HTTPStatus


@dataclass(frozen=True)
class Response:
    """
    An immutable HTTP response.

    Attributes:
        status_code: Numeric status (0 when never set).
        headers: Response headers.
        body: Raw body bytes.
    """

    status_code: int = 0
    headers: Headers = field(default_factory=Headers.empty)
    body: bytes = b""

    @property
    def body_text(self) -> str:
        """The body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    def to_builder(self) -> "ResponseBuilder":
        return (ResponseBuilder()
            .status(self.status_code)
            .headers(self.headers)
            .body(self.body))


class ResponseBuilder:
    """
    Fluent builder for Response.

    Headers may be supplied whole with headers(), or one at a time with
    header(); header() always adds on top of what is already there.
    """

    def __init__(self):
        self._status = 0
        self._headers = HeadersBuilder()
        self._body = b""

    # =========================================================================
    # STATUS
    # =========================================================================

    def status(self, status: Union[int, HTTPStatus]) -> "ResponseBuilder":
        """Set the status from a number or a symbolic HTTPStatus."""
        self._status = int(status)
        return self

    # =========================================================================
    # HEADERS
    # =========================================================================

    def headers(self, headers: Headers) -> "ResponseBuilder":
        """Replace all headers with a copy of `headers`."""
        self._headers = headers.to_builder()
        return self

    def header(self, name: str, value: str) -> "ResponseBuilder":
        """Add one header value."""
        self._headers.add(name, value)
        return self

    def content_type(self, content_type: str) -> "ResponseBuilder":
        self._headers.set(HeaderName.CONTENT_TYPE, content_type)
        return self

    # =========================================================================
    # BODY
    # =========================================================================

    def body(self, body: Union[str, bytes], charset: str = "utf-8") -> "ResponseBuilder":
        """
        Set the body.

        Strings are encoded with `charset` (UTF-8 by default); bytes are
        used as they are.
        """
        self._body = body.encode(charset) if isinstance(body, str) else bytes(body)
        return self

    def text(self, text: str, charset: str = "utf-8") -> "ResponseBuilder":
        """Plain text body with a matching Content-Type."""
        self.content_type(f"text/plain; charset={charset}")
        return self.body(text, charset)

    def json(self, data: Any, pretty: bool = False) -> "ResponseBuilder":
        """JSON body with a matching Content-Type."""
        indent = 2 if pretty else None
        self.content_type("application/json; charset=utf-8")
        return self.body(json.dumps(data, indent=indent, ensure_ascii=False))

    def build(self) -> Response:
        return Response(
            status_code=self._status,
            headers=self._headers.build(),
            body=self._body,
        )


# =============================================================================
# UTILITY FUNCTIONS
# =============================================================================

def format_http_date(dt: datetime) -> str:
    """
    Format a UTC datetime as an HTTP-date (RFC 7231).

    Example: Thu, 15 Jan 2026 12:30:45 GMT
    """
    days = ["Mon", "Tue", "Wed", "Thu", "Fri", "Sat", "Sun"]
    months = ["Jan", "Feb", "Mar", "Apr", "May", "Jun",
              "Jul", "Aug", "Sep", "Oct", "Nov", "Dec"]
    return (
        f"{days[dt.weekday()]}, "
        f"{dt.day:02d} {months[dt.month - 1]} {dt.year} "
        f"{dt.hour:02d}:{dt.minute:02d}:{dt.second:02d} GMT"
    )


# =============================================================================
# CONVENIENCE FUNCTIONS
# =============================================================================

def ok(text: str = "") -> Response:
    """A 200 OK response with a plain text body (no Content-Type set)."""
    return ResponseBuilder().status(HTTPStatus.OK).body(text).build()


def not_found() -> Response:
    """
    A 404 Not Found response with an EMPTY body.

    This is what unimplemented handler operations and unknown methods send.
    """
    return ResponseBuilder().status(HTTPStatus.NOT_FOUND).build()


def error_response(status: HTTPStatus, message: str = "") -> Response:
    """An error response whose body is `message` as plain text."""
    builder = ResponseBuilder().status(status)
    if message:
        builder.text(message)
    return builder.build()


def internal_error(message: str = "Internal Server Error") -> Response:
    """A 500 response. Keep the message generic; it reaches the client."""
    return error_response(HTTPStatus.INTERNAL_SERVER_ERROR, message)
