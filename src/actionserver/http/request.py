"""
=============================================================================
HTTP REQUEST
=============================================================================

Two halves live here:

1. Request / RequestBuilder - the immutable value handlers receive.
2. RequestParser - the transport step that turns raw socket bytes into a
   Request.

=============================================================================
HTTP REQUEST ANATOMY
=============================================================================

    ┌─────────────────────────────────────────────────────────────────────┐
    │                                                                      │
    │    GET /action/foo?name=Rex&age=3 HTTP/1.1\r\n     ← request line   │
    │    ─┬─ ────────────┬─────────────  ────┬────                        │
    │   Method          URI               Version                          │
    │                    │                                                 │
    │         ┌──────────┴──────────┐                                     │
    │       Path              Query component                             │
    │    /action/foo          name=Rex&age=3                              │
    │                                                                      │
    │    Host: localhost:8000\r\n                          ← headers       │
    │    Accept: text/plain\r\n                                            │
    │    \r\n                                              ← blank line    │
    │    <body bytes>                                      ← body          │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
QUERY PARAMETERS
=============================================================================

The query component is parsed lazily, on first access, and cached:

    "name=Rex&age=3&gender=male"
        │
        ├── split on "&"   → ["name=Rex", "age=3", "gender=male"]
        ├── split on first "=" → ("name", "Rex"), ("age", "3"), ...
        └── percent-decode both sides as UTF-8 ("+" is a space)

        → {"name": "Rex", "age": "3", "gender": "male"}

Each key maps to ONE value; when a key repeats, the last one wins. A
missing key is the caller's error: query_param() raises RequestError rather
than returning a silent default.

=============================================================================
"""

import re
from dataclasses import dataclass, field
from functools import cached_property
from types import MappingProxyType
from typing import List, Mapping, Tuple, Union
from urllib.parse import unquote, unquote_plus, urlsplit

from ..errors import RequestError
from .headers import Headers, HeadersBuilder


class HTTPParseError(Exception):
    """
    Raised when raw request bytes cannot be parsed.

    Carries the status code the transport should answer with:

        400 Bad Request                 - malformed syntax
        505 HTTP Version Not Supported  - not HTTP/1.0 or HTTP/1.1
    """

    def __init__(self, message: str, status_code: int = 400):
        super().__init__(message)
        self.status_code = status_code


@dataclass(frozen=True)
class Request:
    """
    An immutable HTTP request.

    Attributes:
        method:  Request method token as received ("GET", "POST", ...).
        uri:     Request target, path plus optional query ("/a?b=c").
        headers: Request headers (exact-match names).
        body:    Raw body bytes.
        version: HTTP version of the request line.
        client_address: (ip, port) of the peer, ("", 0) when unknown.
    """

    method: str = "GET"
    uri: str = ""
    headers: Headers = field(default_factory=Headers.empty)
    body: bytes = b""
    version: str = "HTTP/1.1"
    client_address: Tuple[str, int] = ("", 0)

    # =========================================================================
    # URI PARTS
    # =========================================================================

    @property
    def path(self) -> str:
        """The percent-decoded URI path without the query, e.g. "/action/foo"."""
        return unquote(urlsplit(self.uri).path, encoding="utf-8")

    @property
    def query(self) -> str:
        """The raw (still percent-encoded) query component, "" if none."""
        return urlsplit(self.uri).query

    @property
    def text(self) -> str:
        """The body decoded as UTF-8."""
        return self.body.decode("utf-8", errors="replace")

    # =========================================================================
    # QUERY PARAMETERS
    # =========================================================================

    @cached_property
    def query_params(self) -> Mapping[str, str]:
        """
        Decoded query parameters, computed once on first access.

        cached_property stores straight into the instance __dict__, so it
        works on a frozen dataclass without going through __setattr__.
        """
        return MappingProxyType(parse_query(self.query))

    def query_param(self, key: str) -> str:
        """
        The decoded value of a query parameter.

        Raises:
            RequestError: If the parameter is not in the query.
        """
        try:
            return self.query_params[key]
        except KeyError:
            raise RequestError(key, self.query) from None

    def to_builder(self) -> "RequestBuilder":
        return (RequestBuilder()
            .method(self.method)
            .uri(self.uri)
            .headers(self.headers)
            .body(self.body)
            .version(self.version)
            .client_address(self.client_address))


def parse_query(query: str) -> dict:
    """
    Parse a raw query component into a {key: value} dict.

    Empty segments ("a=1&&b=2") are skipped. A segment without "=" maps its
    key to "". Only the first "=" separates key from value, so "k=a=b"
    yields {"k": "a=b"}.
    """
    params = {}
    if not query:
        return params
    for segment in query.split("&"):
        if not segment:
            continue
        key, _, value = segment.partition("=")
        params[unquote_plus(key, encoding="utf-8")] = unquote_plus(value, encoding="utf-8")
    return params


class RequestBuilder:
    """Fluent builder for Request. Unset fields keep the Request defaults."""

    def __init__(self):
        self._method = "GET"
        self._uri = ""
        self._headers = Headers.empty()
        self._body = b""
        self._version = "HTTP/1.1"
        self._client_address: Tuple[str, int] = ("", 0)

    def method(self, method: str) -> "RequestBuilder":
        self._method = method
        return self

    def uri(self, uri: str) -> "RequestBuilder":
        self._uri = uri
        return self

    def headers(self, headers: Headers) -> "RequestBuilder":
        self._headers = headers
        return self

    def body(self, body: Union[str, bytes], charset: str = "utf-8") -> "RequestBuilder":
        """Set the body; strings are encoded with `charset`."""
        self._body = body.encode(charset) if isinstance(body, str) else bytes(body)
        return self

    def version(self, version: str) -> "RequestBuilder":
        self._version = version
        return self

    def client_address(self, address: Tuple[str, int]) -> "RequestBuilder":
        self._client_address = address
        return self

    def build(self) -> Request:
        return Request(
            method=self._method,
            uri=self._uri,
            headers=self._headers,
            body=self._body,
            version=self._version,
            client_address=self._client_address,
        )


class RequestParser:
    """
    Parses raw HTTP/1.x request bytes into Request objects.

    ==========================================================================
    PARSER STEPS
    ==========================================================================

        Raw bytes
            │
            ├── 1. Find the \\r\\n\\r\\n separator    (missing → 400)
            ├── 2. Parse request line           (malformed → 400,
            │                                    bad version → 505)
            ├── 3. Parse "Name: value" headers  (repeats → extra values)
            ├── 4. Slice body by Content-Length (short body → 400)
            └── 5. Build the Request

    The method token is NOT validated against a list here. Any token is
    passed through so that dispatch can answer unknown methods with the
    handler's not-found default instead of a transport-level error.

    ==========================================================================
    """

    REQUEST_LINE_PATTERN = re.compile(r"^([!#$%&'*+\-.^_`|~0-9A-Za-z]+) ([^ ]+) (HTTP/\d\.\d)$")
    HEADER_PATTERN = re.compile(r"^([^:\s][^:]*):\s*(.*)$")
    SUPPORTED_VERSIONS = ("HTTP/1.0", "HTTP/1.1")

    def parse(self, data: bytes, client_address: Tuple[str, int] = ("", 0)) -> Request:
        """
        Parse one complete request.

        Args:
            data: Request bytes as read by Connection.read_request().
            client_address: Peer (ip, port), kept on the Request for logging.

        Raises:
            HTTPParseError: If the request is malformed.
        """
        header_end = data.find(b"\r\n\r\n")
        if header_end == -1:
            raise HTTPParseError("Incomplete request: no header terminator")

        head = data[:header_end].decode("iso-8859-1")
        body = data[header_end + 4:]

        lines = head.split("\r\n")
        method, uri, version = self._parse_request_line(lines[0])
        headers = self._parse_headers(lines[1:])

        content_length = self._content_length(headers)
        if len(body) < content_length:
            raise HTTPParseError(
                f"Incomplete body: expected {content_length} bytes, got {len(body)}"
            )

        return Request(
            method=method,
            uri=uri,
            headers=headers,
            body=body[:content_length],
            version=version,
            client_address=client_address,
        )

    def _parse_request_line(self, line: str) -> Tuple[str, str, str]:
        match = self.REQUEST_LINE_PATTERN.match(line)
        if not match:
            raise HTTPParseError(f"Invalid request line: {line!r}")

        method, uri, version = match.groups()
        if version not in self.SUPPORTED_VERSIONS:
            raise HTTPParseError(f"Unsupported HTTP version: {version}", status_code=505)
        return method, uri, version

    def _parse_headers(self, lines: list) -> Headers:
        """
        Parse header lines, keeping the name's wire casing.

        A repeated header becomes additional values under the same name
        instead of being comma-joined. Obsolete line folding (a line
        starting with whitespace) is appended to the previous value.
        """
        fields: List[List[str]] = []

        for line in lines:
            if not line:
                continue

            if line[0] in (" ", "\t"):
                if not fields:
                    raise HTTPParseError("Header continuation without a header")
                fields[-1][1] += " " + line.strip()
                continue

            match = self.HEADER_PATTERN.match(line)
            if not match:
                raise HTTPParseError(f"Malformed header line: {line!r}")
            fields.append([match.group(1).strip(), match.group(2).strip()])

        builder = HeadersBuilder()
        for name, value in fields:
            builder.add(name, value)
        return builder.build()

    @staticmethod
    def _content_length(headers: Headers) -> int:
        # Names are exact-match, so gather every spelling of the header here.
        values = {
            value.strip()
            for name, header_values in headers.items()
            if name.lower() == "content-length"
            for value in header_values
        }
        if not values:
            return 0
        if len(values) > 1:
            raise HTTPParseError(f"Conflicting Content-Length values: {sorted(values)}")

        value = values.pop()
        try:
            length = int(value)
        except ValueError:
            raise HTTPParseError(f"Invalid Content-Length: {value!r}") from None
        if length < 0:
            raise HTTPParseError(f"Invalid Content-Length: {length}")
        return length


def parse_request(data: bytes, client_address: Tuple[str, int] = ("", 0)) -> Request:
    """Convenience wrapper around RequestParser().parse()."""
    return RequestParser().parse(data, client_address)
