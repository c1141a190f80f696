"""
=============================================================================
HTTP DATA MODEL
=============================================================================

The immutable values that flow between the transport and handlers:

    headers.py       Headers / HeadersBuilder / HeaderName
    request.py       Request / RequestBuilder / RequestParser
    response.py      Response / ResponseBuilder / helpers
    status_codes.py  HTTPStatus

Nothing in this package touches a socket.

=============================================================================
"""

from .headers import HeaderName, Headers, HeadersBuilder
from .request import (
    HTTPParseError,
    Request,
    RequestBuilder,
    RequestParser,
    parse_query,
    parse_request,
)
from .response import (
    Response,
    ResponseBuilder,
    error_response,
    format_http_date,
    internal_error,
    not_found,
    ok,
)
from .status_codes import HTTPStatus, reason_phrase

__all__ = [
    "HeaderName",
    "Headers",
    "HeadersBuilder",
    "HTTPParseError",
    "Request",
    "RequestBuilder",
    "RequestParser",
    "parse_query",
    "parse_request",
    "Response",
    "ResponseBuilder",
    "error_response",
    "format_http_date",
    "internal_error",
    "not_found",
    "ok",
    "HTTPStatus",
    "reason_phrase",
]
