"""
=============================================================================
CLI ENTRY POINT
=============================================================================

Runs the demo server with the two bundled handlers.

    python -m actionserver                       # localhost:8000, 3 workers
    python -m actionserver --port 9000
    python -m actionserver --workers 0           # serial, no thread pool
    ACTIONSERVER_LOG_LEVEL=DEBUG python -m actionserver

Then:

    curl 'http://localhost:8000/action/foo?name=Rex&age=3&gender=male'
    curl -N 'http://localhost:8000/action/foostream?times=5&delay=500'

Command-line arguments win over ACTIONSERVER_* environment variables,
which win over the built-in defaults.

=============================================================================
"""

import argparse
import sys
from typing import List, Optional

from . import __version__
from .config import LOG_LEVELS, ServerConfig
from .core import ThreadPool
from .errors import ConfigurationError
from .handlers import FooHandler, FooStreamHandler
from .server import ServerBuilder


def build_parser() -> argparse.ArgumentParser:
    parser = argparse.ArgumentParser(
        prog="actionserver",
        description="Path-routed HTTP server with chunked streaming",
        formatter_class=argparse.RawDescriptionHelpFormatter,
        epilog="""
Examples:
  python -m actionserver                   # Run with defaults
  python -m actionserver --port 3000       # Custom port
  python -m actionserver --host 0.0.0.0    # Listen on all interfaces
  python -m actionserver --workers 0       # Handle requests one at a time
        """,
    )
    parser.add_argument("--host", "-H", help="Host to bind to (default: localhost)")
    parser.add_argument("--port", "-p", type=int, help="Port to listen on (default: 8000)")
    parser.add_argument("--backlog", "-b", type=int, help="Pending connection queue (default: 4)")
    parser.add_argument(
        "--workers", "-w",
        type=int,
        default=3,
        help="Worker threads, 0 for serial handling (default: 3)",
    )
    parser.add_argument(
        "--log-level", "-l",
        choices=LOG_LEVELS,
        help="Logging level (default: INFO)",
    )
    parser.add_argument("--version", "-v", action="version", version=f"actionserver {__version__}")
    return parser


def main(argv: Optional[List[str]] = None) -> int:
    args = build_parser().parse_args(argv)

    overrides = {
        key: value
        for key, value in (
            ("hostname", args.host),
            ("port", args.port),
            ("backlog", args.backlog),
            ("log_level", args.log_level),
        )
        if value is not None
    }

    if args.workers < 0:
        print("error: --workers must be >= 0", file=sys.stderr)
        return 2

    pool = ThreadPool(max_workers=args.workers) if args.workers > 0 else None

    try:
        config = ServerConfig.from_env(executor=pool, **overrides)
        server = (ServerBuilder.from_config(config)
            .add_handler(FooHandler())
            .add_handler(FooStreamHandler())
            .build())
    except ConfigurationError as e:
        print(f"error: {e}", file=sys.stderr)
        return 2

    if pool is not None:
        pool.start()
    try:
        server.serve_forever()
    except OSError as e:
        print(f"error: cannot listen on {config.hostname}:{config.port}: {e}", file=sys.stderr)
        return 1
    finally:
        if pool is not None:
            pool.shutdown(wait=False, timeout=5.0)

    return 0


if __name__ == "__main__":
    sys.exit(main())
