"""
=============================================================================
HANDLER TABLE
=============================================================================

Maps resource paths to Handlers. One handler per path; a request goes to
the handler with the longest registered path that prefixes it, matching
whole segments only. No patterns.

    ┌──────────────────────┬─────────────────────┐
    │ /action/foo          │ FooHandler()        │
    │ /action/foostream    │ FooStreamHandler()  │
    └──────────────────────┴─────────────────────┘

    GET /action/foo?name=Rex    → FooHandler       (query is not the path)
    GET /action/foo/            → FooHandler       (trailing slash ignored)
    GET /action/foo/bar         → FooHandler       (longest prefix)
    GET /action/foobar          → None → 404       (not a whole segment)
    GET /action/Foo             → None → 404       (case-sensitive)

=============================================================================
RULES
=============================================================================

1. A path starts with "/".
2. A path may be registered once. A second registration is a
   ConfigurationError, not a silent replacement.
3. The table is frozen when the server starts. After that it is read by
   many worker threads and never written, so lookups need no lock.

=============================================================================
"""

import logging
from typing import Dict, Iterator, List, Mapping, Optional

from .errors import ConfigurationError
from .handler import Handler


logger = logging.getLogger(__name__)


def normalize_path(path: str) -> str:
    """Strip a trailing slash, keeping "/" itself."""
    if len(path) > 1 and path.endswith("/"):
        return path.rstrip("/") or "/"
    return path


class HandlerTable:
    """
    Path → Handler registry.

    Usage:
        table = HandlerTable()
        table.register("/action/foo", FooHandler())
        table.freeze()
        handler = table.resolve(request.path)
    """

    def __init__(self, handlers: Optional[Mapping[str, Handler]] = None):
        self._handlers: Dict[str, Handler] = {}
        self._frozen = False

        for path, handler in (handlers or {}).items():
            self.register(path, handler)

    @property
    def frozen(self) -> bool:
        return self._frozen

    def register(self, path: str, handler: Handler) -> "HandlerTable":
        """
        Bind `handler` to `path`.

        Raises:
            ConfigurationError: If the path is invalid or already taken, the
                handler is not a Handler, or the table is frozen.
        """
        if self._frozen:
            raise ConfigurationError(f"Cannot register {path!r}: handler table is frozen")
        if not isinstance(path, str) or not path.startswith("/"):
            raise ConfigurationError(f"Resource path must start with '/': {path!r}")
        if not isinstance(handler, Handler):
            raise ConfigurationError(
                f"Handler for {path!r} must be a Handler, got {type(handler).__name__}"
            )

        key = normalize_path(path)
        if key in self._handlers:
            raise ConfigurationError(
                f"Duplicate resource path {key!r}: already served by {self._handlers[key]!r}"
            )

        self._handlers[key] = handler
        logger.debug(f"Registered {handler!r} at {key}")
        return self

    def freeze(self) -> None:
        self._frozen = True

    def resolve(self, path: str) -> Optional[Handler]:
        """
        The handler for the longest registered path that prefixes `path`,
        or None.

        Prefixes end on a segment boundary: /action/foo serves
        /action/foo/sub but not /action/foobar.
        """
        candidate = normalize_path(path)
        while True:
            handler = self._handlers.get(candidate)
            if handler is not None:
                return handler
            if candidate == "/":
                return None
            candidate = candidate.rsplit("/", 1)[0] or "/"

    @property
    def paths(self) -> List[str]:
        return list(self._handlers)

    def to_dict(self) -> Dict[str, Handler]:
        return dict(self._handlers)

    def log_routes(self) -> None:
        """Log every registered path at INFO."""
        if not self._handlers:
            logger.warning("No handlers registered, every request will get 404")
        for path, handler in sorted(self._handlers.items()):
            logger.info(f"  {path:30} → {type(handler).__name__}")

    def __contains__(self, path: str) -> bool:
        return normalize_path(path) in self._handlers

    def __iter__(self) -> Iterator[str]:
        return iter(self._handlers)

    def __len__(self) -> int:
        return len(self._handlers)

    def __repr__(self) -> str:
        state = "frozen" if self._frozen else "open"
        return f"<HandlerTable {len(self)} path(s), {state}>"
