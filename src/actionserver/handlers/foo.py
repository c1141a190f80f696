"""
Demo handlers.

    GET /action/foo?name=Rex&age=3&gender=male
        → 200 "We have a male foo named Rex who is 3 years old"

    GET /action/foostream?times=3&delay=500
        → 200, chunked: "foo 0\\n", "foo 1\\n", "foo 2\\n", one every 500 ms
"""

import logging

from ..errors import RequestError
from ..handler import Handler
from ..http import HeaderName, Headers, HTTPStatus, Request, ResponseBuilder, error_response
from ..sender import ResponseSender, SenderState


logger = logging.getLogger(__name__)


class FooHandler(Handler):
    """Describes a foo from its query parameters."""

    resource_path = "/action/foo"

    def handle_get(self, request: Request, sender: ResponseSender) -> None:
        try:
            name = request.query_param("name")
            age = request.query_param("age")
            gender = request.query_param("gender")
        except RequestError as e:
            sender.send(error_response(HTTPStatus.BAD_REQUEST, str(e)))
            return

        body = f"We have a {gender} foo named {name} who is {age} years old"
        sender.send(ResponseBuilder().status(HTTPStatus.OK).body(body).build())


class FooStreamHandler(Handler):
    """
    Streams `times` lines, pausing `delay` milliseconds after each.

    The pause sleeps on the request's cancellation token, so a stopping
    server or a vanished client ends the stream at the next pause.
    """

    resource_path = "/action/foostream"

    HEADERS = (Headers.builder()
        .add(HeaderName.ACCESS_CONTROL_ALLOW_ORIGIN, "*")
        .add(HeaderName.CONTENT_TYPE, "text/plain")
        .build())

    def handle_get(self, request: Request, sender: ResponseSender) -> None:
        try:
            times = int(request.query_param("times"))
            delay = int(request.query_param("delay"))
        except (RequestError, ValueError) as e:
            sender.send(error_response(HTTPStatus.BAD_REQUEST, str(e)))
            return

        logger.debug(f"Streaming {times} chunk(s), {delay}ms apart")
        for i in range(times):
            chunk = (ResponseBuilder()
                .status(HTTPStatus.OK)
                .headers(self.HEADERS)
                .body(f"foo {i}\n")
                .build())
            sender.send_next_chunk(chunk)
            sender.cancellation.sleep(delay / 1000)

        if sender.state is SenderState.READY:
            # times == 0: nothing was streamed, so there is nothing to end.
            sender.send(ResponseBuilder().status(HTTPStatus.OK).headers(self.HEADERS).build())
        else:
            sender.end_chunk_encoding()
