"""
=============================================================================
ACTIONSERVER - Path-Routed HTTP Server With Chunked Streaming
=============================================================================

A thin request/response layer over a raw-socket HTTP/1.x transport:

    1. IMMUTABLE DATA MODEL
       Headers, Request and Response, each with a builder.

    2. PATH + METHOD DISPATCH
       One Handler per resource path; handle_get / handle_post / ...
       Anything a handler does not implement answers 404.

    3. A DISCIPLINED RESPONSE SENDER
       Either one send(), or send_next_chunk()... end_chunk_encoding().
       Anything else is a ProtocolStateError.

=============================================================================
PACKAGE STRUCTURE
=============================================================================

    actionserver/
    ├── __init__.py          # This file - package exports
    ├── __main__.py          # CLI entry point (python -m actionserver)
    ├── server.py            # Server, ServerBuilder, lifecycle
    ├── config.py            # ServerConfig dataclass
    ├── handler.py           # Handler base class, HTTPMethod, dispatch()
    ├── routing.py           # HandlerTable (path → Handler)
    ├── sender.py            # ResponseSender state machine
    ├── cancellation.py      # CancellationToken
    ├── errors.py            # Exception hierarchy
    ├── core/                # Transport
    │   ├── socket_server.py # TCP listener + accept loop
    │   ├── connection.py    # Buffered client connection
    │   ├── exchange.py      # Response framing (length / chunked)
    │   └── thread_pool.py   # Worker pool
    ├── http/                # Data model
    │   ├── headers.py       # Headers / HeadersBuilder
    │   ├── request.py       # Request + parser
    │   ├── response.py      # Response + builder
    │   └── status_codes.py  # HTTPStatus
    └── handlers/            # Demo handlers (foo, foostream)

=============================================================================
QUICK START
=============================================================================

    from actionserver import Handler, Server, ok

    class Hello(Handler):
        def handle_get(self, request, sender):
            sender.send(ok(f"hello {request.query_param('name')}"))

    Server.create_basic("localhost", 8000, {"/hello": Hello()}).serve_forever()

=============================================================================
"""

__version__ = "1.0.0"

from .cancellation import CancellationToken
from .config import ServerConfig
from .core import ThreadPool
from .errors import (
    ActionServerError,
    ConfigurationError,
    LifecycleError,
    ProtocolStateError,
    RequestCancelledError,
    RequestError,
    TransportIOFailure,
    ValueCountError,
)
from .handler import Handler, HTTPMethod, dispatch
from .http import (
    HeaderName,
    Headers,
    HeadersBuilder,
    HTTPStatus,
    Request,
    RequestBuilder,
    Response,
    ResponseBuilder,
    internal_error,
    not_found,
    ok,
)
from .routing import HandlerTable
from .sender import ResponseSender, SenderState
from .server import LifecycleState, Server, ServerBuilder

__all__ = [
    "__version__",
    "CancellationToken",
    "ServerConfig",
    "ThreadPool",
    "ActionServerError",
    "ConfigurationError",
    "LifecycleError",
    "ProtocolStateError",
    "RequestCancelledError",
    "RequestError",
    "TransportIOFailure",
    "ValueCountError",
    "Handler",
    "HTTPMethod",
    "dispatch",
    "HeaderName",
    "Headers",
    "HeadersBuilder",
    "HTTPStatus",
    "Request",
    "RequestBuilder",
    "Response",
    "ResponseBuilder",
    "internal_error",
    "not_found",
    "ok",
    "HandlerTable",
    "ResponseSender",
    "SenderState",
    "LifecycleState",
    "Server",
    "ServerBuilder",
]
