"""
=============================================================================
HTTP STATUS CODES (RFC 7231)
=============================================================================

Symbolic status codes so handlers can write HTTPStatus.NOT_FOUND instead of
a bare 404. ResponseBuilder.status() accepts either form.

    ┌────────┬───────────────────────────────────────────────────────────┐
    │  1xx   │ INFORMATIONAL  request received, continuing              │
    │  2xx   │ SUCCESS        request received, understood, accepted    │
    │  3xx   │ REDIRECTION    further action needed                     │
    │  4xx   │ CLIENT ERROR   problem with the request                  │
    │  5xx   │ SERVER ERROR   problem with the server                   │
    └────────┴───────────────────────────────────────────────────────────┘

Responses carry a plain int status, so the wire layer must be able to name
codes that are not members of this enum (or 0, "unset"). reason_phrase()
covers that case.

=============================================================================
"""

from enum import IntEnum


class HTTPStatus(IntEnum):
    """
    HTTP status codes with their reason phrases.

    Being an IntEnum, members compare equal to plain ints:

        >>> HTTPStatus.OK == 200
        True
        >>> HTTPStatus.NOT_FOUND.phrase
        'Not Found'
    """

    def __new__(cls, code: int, phrase: str):
        member = int.__new__(cls, code)
        member._value_ = code
        member._phrase = phrase
        return member

    CONTINUE = 100, "Continue"
    SWITCHING_PROTOCOLS = 101, "Switching Protocols"

    OK = 200, "OK"
    CREATED = 201, "Created"
    ACCEPTED = 202, "Accepted"
    NO_CONTENT = 204, "No Content"
    PARTIAL_CONTENT = 206, "Partial Content"

    MOVED_PERMANENTLY = 301, "Moved Permanently"
    FOUND = 302, "Found"
    SEE_OTHER = 303, "See Other"
    NOT_MODIFIED = 304, "Not Modified"
    TEMPORARY_REDIRECT = 307, "Temporary Redirect"
    PERMANENT_REDIRECT = 308, "Permanent Redirect"

    BAD_REQUEST = 400, "Bad Request"
    UNAUTHORIZED = 401, "Unauthorized"
    FORBIDDEN = 403, "Forbidden"
    NOT_FOUND = 404, "Not Found"
    METHOD_NOT_ALLOWED = 405, "Method Not Allowed"
    NOT_ACCEPTABLE = 406, "Not Acceptable"
    REQUEST_TIMEOUT = 408, "Request Timeout"
    CONFLICT = 409, "Conflict"
    GONE = 410, "Gone"
    LENGTH_REQUIRED = 411, "Length Required"
    PAYLOAD_TOO_LARGE = 413, "Payload Too Large"
    URI_TOO_LONG = 414, "URI Too Long"
    UNSUPPORTED_MEDIA_TYPE = 415, "Unsupported Media Type"
    UNPROCESSABLE_ENTITY = 422, "Unprocessable Entity"
    TOO_MANY_REQUESTS = 429, "Too Many Requests"

    INTERNAL_SERVER_ERROR = 500, "Internal Server Error"
    NOT_IMPLEMENTED = 501, "Not Implemented"
    BAD_GATEWAY = 502, "Bad Gateway"
    SERVICE_UNAVAILABLE = 503, "Service Unavailable"
    GATEWAY_TIMEOUT = 504, "Gateway Timeout"
    HTTP_VERSION_NOT_SUPPORTED = 505, "HTTP Version Not Supported"

    @property
    def phrase(self) -> str:
        """
        Reason phrase used in the status line:

            HTTP/1.1 404 Not Found
                     ─── ─────────
                      │      └── phrase
                      └───────── code
        """
        return self._phrase

    @property
    def is_informational(self) -> bool:
        return 100 <= self < 200

    @property
    def is_success(self) -> bool:
        return 200 <= self < 300

    @property
    def is_redirect(self) -> bool:
        return 300 <= self < 400

    @property
    def is_client_error(self) -> bool:
        return 400 <= self < 500

    @property
    def is_server_error(self) -> bool:
        return 500 <= self < 600

    @property
    def is_error(self) -> bool:
        """True for 4xx and 5xx codes."""
        return self >= 400


def reason_phrase(code: int) -> str:
    """Reason phrase for any integer code, "" when the code is not known."""
    try:
        return HTTPStatus(code).phrase
    except ValueError:
        return ""
