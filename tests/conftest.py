"""
pytest configuration and fixtures.
"""

import socket
from typing import Callable, Generator, List, Tuple

import pytest

# Add src to path for imports
import sys
from pathlib import Path
sys.path.insert(0, str(Path(__file__).parent.parent / "src"))

from actionserver import ResponseSender, Server, ServerBuilder, ThreadPool
from actionserver.cancellation import CancellationToken
from actionserver.core import Connection, Exchange


def read_until_closed(sock: socket.socket, timeout: float = 5.0) -> bytes:
    """Read from `sock` until the peer closes it."""
    sock.settimeout(timeout)
    chunks = []
    while True:
        try:
            data = sock.recv(65536)
        except ConnectionResetError:
            break
        if not data:
            break
        chunks.append(data)
    return b"".join(chunks)


def split_response(raw: bytes) -> Tuple[str, dict, bytes]:
    """Split raw response bytes into (status line, {name: [values]}, body)."""
    head, _, body = raw.partition(b"\r\n\r\n")
    lines = head.decode("iso-8859-1").split("\r\n")
    headers: dict = {}
    for line in lines[1:]:
        name, _, value = line.partition(":")
        headers.setdefault(name.strip(), []).append(value.strip())
    return lines[0], headers, body


def decode_chunked(body: bytes) -> List[bytes]:
    """Chunk payloads of a chunked body, terminator excluded."""
    chunks = []
    while body:
        size_line, _, rest = body.partition(b"\r\n")
        size = int(size_line, 16)
        if size == 0:
            break
        chunks.append(rest[:size])
        body = rest[size + 2:]
    return chunks


@pytest.fixture
def sample_get_request() -> bytes:
    """Sample HTTP GET request with a query string."""
    return (
        b"GET /action/foo?name=Rex&age=3&gender=male HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"User-Agent: pytest\r\n"
        b"Accept: text/plain\r\n"
        b"\r\n"
    )


@pytest.fixture
def sample_post_request() -> bytes:
    """Sample HTTP POST request with a body."""
    body = b'{"name": "Rex"}'
    return (
        b"POST /action/foo HTTP/1.1\r\n"
        b"Host: localhost:8000\r\n"
        b"Content-Type: application/json\r\n"
        + f"Content-Length: {len(body)}\r\n".encode()
        + b"\r\n"
        + body
    )


@pytest.fixture
def free_port() -> int:
    """Get a free port for testing."""
    with socket.socket(socket.AF_INET, socket.SOCK_STREAM) as s:
        s.bind(("127.0.0.1", 0))
        return s.getsockname()[1]


@pytest.fixture
def socket_pair() -> Generator[Tuple[Connection, socket.socket], None, None]:
    """A server-side Connection wired to a plain client socket."""
    server_sock, client_sock = socket.socketpair()
    conn = Connection(socket=server_sock, address=("127.0.0.1", 50000), timeout=5.0)
    yield conn, client_sock
    conn.abort()
    client_sock.close()


@pytest.fixture
def make_sender(socket_pair) -> Callable[..., Tuple[ResponseSender, Callable[[], bytes]]]:
    """
    Factory for a ResponseSender over a socket pair.

    Returns (sender, read_wire); read_wire() returns everything the sender
    wrote once the connection is closed.
    """
    conn, client = socket_pair

    def factory(version: str = "HTTP/1.1", token: CancellationToken = None):
        exchange = Exchange(conn, version=version, server_name="test-server")
        sender = ResponseSender(exchange, token)
        return sender, lambda: read_until_closed(client)

    return factory


@pytest.fixture
def serve() -> Generator[Callable[..., Server], None, None]:
    """
    Factory that starts a Server on an ephemeral port.

        server = serve({"/foo": FooHandler()}, workers=2)
        host, port = server.address

    Servers and pools are stopped after the test.
    """
    started: List[Tuple[Server, ThreadPool]] = []

    def factory(handlers, workers: int = 2, **options) -> Server:
        pool = ThreadPool(max_workers=workers).start() if workers else None
        builder = (ServerBuilder()
            .hostname("127.0.0.1")
            .port(0)
            .backlog(8)
            .executor(pool)
            .read_timeout(options.pop("read_timeout", 5.0))
            .set_handlers(handlers))
        for name, value in options.items():
            getattr(builder, name)(value)
        server = builder.build()
        server.start()
        started.append((server, pool))
        return server

    yield factory

    for server, pool in started:
        if server.state.name == "RUNNING":
            server.stop(timeout=2.0)
        if pool is not None:
            pool.shutdown(wait=False, timeout=2.0)


@pytest.fixture
def raw_request() -> Callable[[Tuple[str, int], bytes], bytes]:
    """Send raw bytes to an address and return the full raw response."""

    def send(address: Tuple[str, int], data: bytes) -> bytes:
        with socket.create_connection(address, timeout=5.0) as sock:
            sock.sendall(data)
            return read_until_closed(sock)

    return send
