"""
End-to-end tests against a running Server on a real socket.
"""

import http.client
import socket
import threading
import time

import pytest

from actionserver import (
    Handler,
    HTTPStatus,
    LifecycleError,
    LifecycleState,
    ResponseBuilder,
    Server,
    ServerBuilder,
    ThreadPool,
    ok,
)
from actionserver.handlers import FooHandler, FooStreamHandler

from conftest import decode_chunked, read_until_closed, split_response


DEMO = {
    FooHandler.resource_path: FooHandler(),
    FooStreamHandler.resource_path: FooStreamHandler(),
}


class BrokenHandler(Handler):
    def handle_get(self, request, sender):
        raise RuntimeError("handler bug")


class BrokenStreamHandler(Handler):
    def handle_get(self, request, sender):
        sender.send_next_chunk(ResponseBuilder().status(200).body("partial\n").build())
        raise RuntimeError("mid-stream bug")


class SilentHandler(Handler):
    def handle_get(self, request, sender):
        pass


class BlockingHandler(Handler):
    def __init__(self):
        self.started = threading.Event()
        self.release = threading.Event()

    def handle_get(self, request, sender):
        self.started.set()
        self.release.wait(5.0)
        sender.send(ok("released"))


def get(server: Server, uri: str) -> http.client.HTTPResponse:
    host, port = server.address
    conn = http.client.HTTPConnection(host, port, timeout=5.0)
    conn.request("GET", uri)
    return conn.getresponse()


class TestEndToEnd:
    """Requests through the full stack."""

    def test_foo(self, serve):
        """Test the single-response demo handler."""
        server = serve(DEMO)
        response = get(server, "/action/foo?name=Rex&age=3&gender=male")

        assert response.status == 200
        assert response.read() == b"We have a male foo named Rex who is 3 years old"
        assert response.getheader("Connection") == "close"

    def test_foostream(self, serve):
        """Test the chunked demo handler through http.client."""
        server = serve(DEMO)
        response = get(server, "/action/foostream?times=3&delay=10")

        assert response.status == 200
        assert response.getheader("Transfer-Encoding") == "chunked"
        assert response.getheader("Access-Control-Allow-Origin") == "*"
        assert response.getheader("Content-Type") == "text/plain"
        assert response.read() == b"foo 0\nfoo 1\nfoo 2\n"

    def test_chunks_arrive_separately_and_in_order(self, serve, raw_request):
        """Test chunk framing on the wire."""
        server = serve(DEMO)
        raw = raw_request(server.address, b"GET /action/foostream?times=4&delay=20 HTTP/1.1\r\n\r\n")

        _, headers, body = split_response(raw)
        assert headers["Transfer-Encoding"] == ["chunked"]
        assert decode_chunked(body) == [b"foo 0\n", b"foo 1\n", b"foo 2\n", b"foo 3\n"]
        assert body.endswith(b"0\r\n\r\n")

    def test_first_chunk_sent_before_stream_ends(self, serve):
        """Test that chunks are flushed as they are produced."""
        server = serve(DEMO)
        with socket.create_connection(server.address, timeout=5.0) as sock:
            start = time.monotonic()
            sock.sendall(b"GET /action/foostream?times=2&delay=1000 HTTP/1.1\r\n\r\n")
            received = b""
            while b"foo 0\n" not in received:
                data = sock.recv(65536)
                assert data, "stream closed before the first chunk"
                received += data
            elapsed = time.monotonic() - start
            rest = read_until_closed(sock)

        assert elapsed < 0.9
        assert b"foo 1\n" not in received
        assert b"foo 1\n" in rest

    def test_http10_stream_is_close_delimited(self, serve, raw_request):
        """Test streaming to an HTTP/1.0 client."""
        server = serve(DEMO)
        raw = raw_request(server.address, b"GET /action/foostream?times=2&delay=0 HTTP/1.0\r\n\r\n")

        status_line, headers, body = split_response(raw)
        assert status_line == "HTTP/1.0 200 OK"
        assert "Transfer-Encoding" not in headers
        assert body == b"foo 0\nfoo 1\n"

    def test_serial_mode(self, serve):
        """Test handling on the accept thread without an executor."""
        server = serve(DEMO, workers=0)

        for _ in range(3):
            response = get(server, "/action/foo?name=a&age=1&gender=b")
            assert response.status == 200
            response.read()

    def test_concurrent_streams(self, serve):
        """Test that two streams run side by side on a pool."""
        server = serve(DEMO, workers=2)
        results = []

        def fetch():
            results.append(get(server, "/action/foostream?times=3&delay=200").read())

        threads = [threading.Thread(target=fetch) for _ in range(2)]
        start = time.monotonic()
        for t in threads:
            t.start()
        for t in threads:
            t.join(10.0)

        assert results == [b"foo 0\nfoo 1\nfoo 2\n"] * 2
        assert time.monotonic() - start < 1.2  # serially it would take ~1.2s


class TestErrorResponses:
    """Error translation at the server boundary."""

    def test_unregistered_path(self, serve):
        """Test 404 for a path with no handler."""
        response = get(serve(DEMO), "/nothing/here")

        assert response.status == 404
        assert response.read() == b""

    def test_trailing_slash(self, serve):
        """Test that /action/foo/ reaches the same handler."""
        response = get(serve(DEMO), "/action/foo/?name=a&age=1&gender=b")

        assert response.status == 200

    def test_subpath_reaches_registered_prefix(self, serve):
        """Test that /action/foo/sub is served by the /action/foo handler."""
        response = get(serve({"/action/foo": FooHandler()}), "/action/foo/sub?name=Rex&age=3&gender=male")

        assert response.status == 200
        assert response.read() == b"We have a male foo named Rex who is 3 years old"

    def test_partial_segment_not_matched(self, serve):
        """Test that /action/foobar is not served by /action/foo."""
        response = get(serve({"/action/foo": FooHandler()}), "/action/foobar?name=Rex&age=3&gender=male")

        assert response.status == 404

    def test_percent_encoded_path(self, serve):
        """Test that the path is decoded before routing."""
        response = get(serve(DEMO), "/action/f%6Fo?name=Rex&age=3&gender=male")

        assert response.status == 200

    def test_unimplemented_method(self, serve):
        """Test 404 for POST on a GET-only handler."""
        host, port = serve(DEMO).address
        conn = http.client.HTTPConnection(host, port, timeout=5.0)
        conn.request("POST", "/action/foo", body=b"x")

        assert conn.getresponse().status == 404

    def test_unknown_method(self, serve, raw_request):
        """Test that OPTIONS gets 404 instead of silence."""
        server = serve(DEMO)
        raw = raw_request(server.address, b"OPTIONS /action/foo HTTP/1.1\r\n\r\n")

        assert split_response(raw)[0] == "HTTP/1.1 404 Not Found"

    def test_handler_exception(self, serve):
        """Test 500 when a handler raises before responding."""
        response = get(serve({"/broken": BrokenHandler()}), "/broken")

        assert response.status == 500
        assert response.read() == b"Internal Server Error"

    def test_mid_stream_exception_truncates(self, serve, raw_request):
        """Test that a failing stream ends without the terminating chunk."""
        server = serve({"/broken": BrokenStreamHandler()})
        raw = raw_request(server.address, b"GET /broken HTTP/1.1\r\n\r\n")

        status_line, _, body = split_response(raw)
        assert status_line == "HTTP/1.1 200 OK"
        assert decode_chunked(body) == [b"partial\n"]
        assert not body.endswith(b"0\r\n\r\n")

    def test_mid_stream_exception_http10(self, serve, raw_request):
        """Test that an HTTP/1.0 stream cut short looks like a plain close."""
        server = serve({"/broken": BrokenStreamHandler()})
        raw = raw_request(server.address, b"GET /broken HTTP/1.0\r\n\r\n")

        status_line, headers, body = split_response(raw)
        assert status_line == "HTTP/1.0 200 OK"
        assert "Content-Length" not in headers
        assert "Transfer-Encoding" not in headers
        assert body == b"partial\n"

    def test_silent_handler(self, serve):
        """Test 500 when a handler returns without responding."""
        response = get(serve({"/silent": SilentHandler()}), "/silent")

        assert response.status == 500

    def test_missing_query_param(self, serve):
        """Test the demo handler's 400 on a missing parameter."""
        response = get(serve(DEMO), "/action/foo?name=Rex")

        assert response.status == 400

    def test_malformed_request(self, serve, raw_request):
        """Test 400 for garbage."""
        raw = raw_request(serve(DEMO).address, b"NOT HTTP AT ALL\r\n\r\n")

        assert split_response(raw)[0] == "HTTP/1.1 400 Bad Request"

    def test_conflicting_content_length(self, serve, raw_request):
        """Test 400 when the request declares two different body lengths."""
        raw = raw_request(
            serve(DEMO).address,
            b"POST /action/foo HTTP/1.1\r\nContent-Length: 2\r\nContent-Length: 5\r\n\r\nhello",
        )

        assert split_response(raw)[0] == "HTTP/1.1 400 Bad Request"

    def test_unsupported_version(self, serve, raw_request):
        """Test 505 for an HTTP version other than 1.0 and 1.1."""
        raw = raw_request(serve(DEMO).address, b"GET /action/foo HTTP/3.0\r\n\r\n")

        assert split_response(raw)[0].startswith("HTTP/1.1 505")

    def test_read_timeout(self, serve):
        """Test 408 when the client stops mid-request."""
        server = serve(DEMO, read_timeout=0.3)
        with socket.create_connection(server.address, timeout=5.0) as sock:
            sock.sendall(b"GET /action/foo HTTP/1.1\r\n")
            raw = read_until_closed(sock)

        assert split_response(raw)[0] == "HTTP/1.1 408 Request Timeout"

    def test_overload(self):
        """Test 503 when the executor queue is full."""
        blocking = BlockingHandler()
        pool = ThreadPool(max_workers=1, queue_size=1).start()
        server = (ServerBuilder()
            .hostname("127.0.0.1").port(0).backlog(8)
            .executor(pool)
            .register("/block", blocking)
            .build())
        server.start()
        try:
            first = socket.create_connection(server.address, timeout=5.0)
            first.sendall(b"GET /block HTTP/1.1\r\n\r\n")
            assert blocking.started.wait(5.0)

            second = socket.create_connection(server.address, timeout=5.0)
            second.sendall(b"GET /block HTTP/1.1\r\n\r\n")
            time.sleep(0.2)  # let the accept loop queue it

            with socket.create_connection(server.address, timeout=5.0) as third:
                third.sendall(b"GET /block HTTP/1.1\r\n\r\n")
                assert split_response(read_until_closed(third))[0] == "HTTP/1.1 503 Service Unavailable"

            blocking.release.set()
            assert split_response(read_until_closed(first))[2] == b"released"
            assert split_response(read_until_closed(second))[2] == b"released"
            first.close()
            second.close()
        finally:
            blocking.release.set()
            server.stop(timeout=2.0)
            pool.shutdown(wait=False, timeout=2.0)


class TestLifecycle:
    """Server lifecycle and shutdown."""

    def test_address_reports_bound_port(self, serve):
        """Test that port 0 resolves to the real port."""
        server = serve(DEMO)

        assert server.state is LifecycleState.RUNNING
        assert server.address[1] != 0

    def test_start_twice(self, serve):
        """Test that a running server cannot be started again."""
        server = serve(DEMO)

        with pytest.raises(LifecycleError):
            server.start()

    def test_stop_before_start(self):
        """Test that stopping an unstarted server is an error."""
        server = Server.create_basic("127.0.0.1", 0, DEMO)

        with pytest.raises(LifecycleError):
            server.stop()

    def test_stop_is_idempotent_and_final(self):
        """Test stop twice, then start again."""
        server = Server.create_basic("127.0.0.1", 0, DEMO)
        server.start()
        server.stop()
        server.stop()

        assert server.state is LifecycleState.STOPPED
        with pytest.raises(LifecycleError):
            server.start()

    def test_stopped_server_refuses_connections(self):
        """Test that the listening socket is closed after stop()."""
        server = Server.create_basic("127.0.0.1", 0, DEMO)
        server.start()
        address = server.address
        server.stop()

        with pytest.raises(OSError):
            socket.create_connection(address, timeout=1.0).close()

    def test_context_manager(self):
        """Test `with server:`."""
        with Server.create_basic("127.0.0.1", 0, DEMO) as server:
            response = get(server, "/action/foo?name=a&age=1&gender=b")
            assert response.status == 200

        assert server.state is LifecycleState.STOPPED

    def test_handlers_frozen_after_start(self, serve):
        """Test that registration is closed once running."""
        server = serve(DEMO)

        assert server.handlers.frozen

    def test_stop_cancels_long_stream(self, serve):
        """Test that stop() cancels a stream that outlives the drain timeout."""
        server = serve(DEMO)
        received = []

        def stream():
            with socket.create_connection(server.address, timeout=10.0) as sock:
                sock.sendall(b"GET /action/foostream?times=1000&delay=100 HTTP/1.1\r\n\r\n")
                received.append(read_until_closed(sock, timeout=10.0))

        client = threading.Thread(target=stream)
        client.start()
        deadline = time.monotonic() + 5.0
        while server.in_flight == 0 and time.monotonic() < deadline:
            time.sleep(0.02)

        start = time.monotonic()
        server.stop(timeout=0.3)
        client.join(10.0)

        assert time.monotonic() - start < 3.0
        assert server.in_flight == 0
        _, _, body = split_response(received[0])
        assert b"foo 0\n" in body
        assert not body.endswith(b"0\r\n\r\n")

    def test_stop_drains_short_requests(self, serve):
        """Test that stop() lets an in-flight request finish."""
        server = serve(DEMO)
        results = []

        def fetch():
            results.append(get(server, "/action/foostream?times=3&delay=100").read())

        client = threading.Thread(target=fetch)
        client.start()
        deadline = time.monotonic() + 5.0
        while server.in_flight == 0 and time.monotonic() < deadline:
            time.sleep(0.02)

        server.stop(timeout=5.0)
        client.join(5.0)

        assert results == [b"foo 0\nfoo 1\nfoo 2\n"]

    def test_request_timeout(self, serve, raw_request):
        """Test that a per-request deadline cuts a stream short."""
        server = serve(DEMO, request_timeout=0.3)
        raw = raw_request(server.address, b"GET /action/foostream?times=100&delay=100 HTTP/1.1\r\n\r\n")

        _, _, body = split_response(raw)
        chunks = decode_chunked(body)
        assert 0 < len(chunks) < 100
        assert not body.endswith(b"0\r\n\r\n")
