"""
=============================================================================
ERROR TAXONOMY
=============================================================================

Every error raised on purpose by actionserver derives from ActionServerError,
so callers can catch the whole family with one except clause.

    ┌─────────────────────────────────────────────────────────────────────┐
    │                        ERROR HIERARCHY                              │
    ├─────────────────────────────────────────────────────────────────────┤
    │                                                                      │
    │   ActionServerError                                                  │
    │    ├── ConfigurationError     bad/missing config, duplicate path    │
    │    ├── LifecycleError         start twice, stop before start        │
    │    ├── ProtocolStateError     illegal ResponseSender call           │
    │    ├── ValueCountError        get_only() on 0 or 2+ header values   │
    │    ├── RequestError           required query parameter missing      │
    │    ├── RequestCancelledError  request cancelled / deadline passed   │
    │    └── TransportIOFailure     socket write/read failed              │
    │                                                                      │
    └─────────────────────────────────────────────────────────────────────┘

=============================================================================
WHO HANDLES WHAT
=============================================================================

The first five are contract violations: they fail ONE request (or the
construction of one server), never the whole process. The server turns an
error escaping a handler into a 500 response when nothing has been written
yet.

TransportIOFailure and RequestCancelledError mean the connection itself is
gone or abandoned. Nothing useful can be written, so the server just closes
the socket.

=============================================================================
"""


class ActionServerError(Exception):
    """Base class for all actionserver errors."""


class ConfigurationError(ActionServerError):
    """A required server field is missing or invalid, or a path is registered twice."""


class LifecycleError(ActionServerError):
    """A server lifecycle method was called in the wrong state."""


class ProtocolStateError(ActionServerError):
    """
    A ResponseSender method was called in a state that does not allow it.

    Attributes:
        state: Name of the sender state at the time of the call.
        operation: Name of the rejected operation.
    """

    def __init__(self, message: str, state: str = "", operation: str = ""):
        super().__init__(message)
        self.state = state
        self.operation = operation


class ValueCountError(ActionServerError, ValueError):
    """A header expected to hold exactly one value holds zero or several."""

    def __init__(self, name: str, count: int):
        super().__init__(f"Expected 1 value for header {name!r} but found {count}")
        self.name = name
        self.count = count


class RequestError(ActionServerError, KeyError):
    """A query parameter the handler requires is absent from the request."""

    def __init__(self, key: str, query: str = ""):
        super().__init__(key)
        self.key = key
        self.query = query

    def __str__(self) -> str:
        # KeyError.__str__ would repr() the key; keep a readable message
        return f"Key {self.key!r} is not in query parameters {self.query!r}"


class RequestCancelledError(ActionServerError):
    """Work was attempted on a request whose cancellation token has fired."""


class TransportIOFailure(ActionServerError):
    """
    Reading from or writing to the client connection failed.

    The original OSError is chained as __cause__.
    """
