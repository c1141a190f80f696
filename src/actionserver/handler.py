"""
=============================================================================
HANDLERS AND METHOD DISPATCH
=============================================================================

A Handler serves ONE resource path. It implements any subset of the five
HTTP method operations; every operation it leaves alone answers 404.

    class FooHandler(Handler):
        resource_path = "/action/foo"

        def handle_get(self, request, sender):
            sender.send(ok("hello"))

    GET    /action/foo  → FooHandler.handle_get      (overridden)
    POST   /action/foo  → Handler.handle_post        (404, empty body)
    HEAD   /action/foo  → not a known method         (404, empty body)

=============================================================================
THE HANDLER CONTRACT
=============================================================================

Each operation must, before it returns, either

    - call sender.send(response) exactly once, or
    - call sender.send_next_chunk(...) one or more times and then
      sender.end_chunk_encoding().

Errors are NOT swallowed here. Whatever a handler raises travels up to the
Server, which turns it into a 500 (or truncates a stream) and logs it.

=============================================================================
"""

from enum import Enum
from typing import Optional

from .http.request import Request
from .http.response import not_found
from .sender import ResponseSender


class HTTPMethod(Enum):
    """The methods a Handler can implement."""

    GET = "GET"
    POST = "POST"
    PUT = "PUT"
    PATCH = "PATCH"
    DELETE = "DELETE"

    @classmethod
    def parse(cls, token: str) -> Optional["HTTPMethod"]:
        """
        The member for a request-line method token, or None.

        Method tokens are case-sensitive: "get" is not GET.
        """
        try:
            return cls(token)
        except ValueError:
            return None


class Handler:
    """
    Base class for resource handlers.

    Attributes:
        resource_path: Optional path the handler declares for itself, used
                       by ServerBuilder.add_handler().
    """

    resource_path: Optional[str] = None

    def handle_get(self, request: Request, sender: ResponseSender) -> None:
        sender.send(not_found())

    def handle_post(self, request: Request, sender: ResponseSender) -> None:
        sender.send(not_found())

    def handle_put(self, request: Request, sender: ResponseSender) -> None:
        sender.send(not_found())

    def handle_patch(self, request: Request, sender: ResponseSender) -> None:
        sender.send(not_found())

    def handle_delete(self, request: Request, sender: ResponseSender) -> None:
        sender.send(not_found())

    def __repr__(self) -> str:
        path = f" {self.resource_path}" if self.resource_path else ""
        return f"<{type(self).__name__}{path}>"


_OPERATIONS = {
    HTTPMethod.GET: "handle_get",
    HTTPMethod.POST: "handle_post",
    HTTPMethod.PUT: "handle_put",
    HTTPMethod.PATCH: "handle_patch",
    HTTPMethod.DELETE: "handle_delete",
}


def dispatch(handler: Handler, method: str, request: Request, sender: ResponseSender) -> None:
    """
    Call the handler operation for `method`.

    Unknown methods get the same 404 an unimplemented operation would send.
    Exceptions from the handler propagate.
    """
    parsed = HTTPMethod.parse(method)
    if parsed is None:
        sender.send(not_found())
        return

    getattr(handler, _OPERATIONS[parsed])(request, sender)
