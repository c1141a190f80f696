"""
=============================================================================
HTTP HEADERS
=============================================================================

An immutable, ordered, multi-valued header container plus the builder used
to assemble one.

=============================================================================
WHY MULTI-VALUED?
=============================================================================

HTTP allows the same field name to appear more than once:

    Set-Cookie: session=abc
    Set-Cookie: theme=dark

A plain dict[str, str] either loses one of them or forces callers to
comma-join values (which is wrong for Set-Cookie). Here every name maps to
a tuple of one or more values, in the order they were added:

    ┌─────────────────────────────────────────────────────────────────────┐
    │   name               values                                         │
    ├─────────────────────────────────────────────────────────────────────┤
    │   "Content-Type"     ("text/plain",)                                │
    │   "Set-Cookie"       ("session=abc", "theme=dark")                  │
    └─────────────────────────────────────────────────────────────────────┘

INVARIANT: a name present in the container has AT LEAST one value.
Removing a name removes it completely; there are no empty entries.

=============================================================================
BUILD ONCE, NEVER MUTATE
=============================================================================

    headers = (HeadersBuilder()
        .add("Accept", "text/html")
        .add("Accept", "application/json")
        .set("Content-Type", "text/plain")
        .build())

    headers.get("Accept")          # ("text/html", "application/json")
    headers.get_only("Accept")     # ValueCountError (2 values)
    headers.get_only("Content-Type")   # "text/plain"

build() copies the builder's storage, so a builder can keep being used
after build() without affecting instances already built, and two Headers
instances never share storage.

Names are matched EXACTLY: "content-type" and "Content-Type" are different
keys. Use the HeaderName constants to stay consistent.

=============================================================================
"""

from typing import Dict, Iterable, Iterator, List, Optional, Sequence, Tuple, Union

from ..errors import ValueCountError


class HeaderName:
    """Well-known header names, spelled the way they go on the wire."""

    ACCESS_CONTROL_ALLOW_ORIGIN = "Access-Control-Allow-Origin"
    ACCESS_CONTROL_ALLOW_METHODS = "Access-Control-Allow-Methods"
    ACCEPT = "Accept"
    ACCEPT_LANGUAGE = "Accept-Language"
    CONTENT_TYPE = "Content-Type"
    CONTENT_LANGUAGE = "Content-Language"
    CONTENT_LENGTH = "Content-Length"
    TRANSFER_ENCODING = "Transfer-Encoding"
    CONNECTION = "Connection"
    DATE = "Date"
    SERVER = "Server"


class Headers:
    """
    Immutable mapping of header name to an ordered tuple of values.

    Supports `name in headers`, `len(headers)`, iteration over names and
    `headers[name]` (KeyError when absent), alongside the explicit
    get/get_only/contains API.
    """

    __slots__ = ("_values",)

    def __init__(self, values: Optional[Dict[str, Sequence[str]]] = None):
        # Copy into fresh tuples; empty sequences are dropped to keep the
        # "at least one value" invariant.
        self._values: Dict[str, Tuple[str, ...]] = {
            name: tuple(vals) for name, vals in (values or {}).items() if vals
        }

    @classmethod
    def empty(cls) -> "Headers":
        """A Headers instance with no entries."""
        return cls()

    @classmethod
    def builder(cls) -> "HeadersBuilder":
        return HeadersBuilder()

    # =========================================================================
    # LOOKUPS
    # =========================================================================

    def get(self, name: str) -> Tuple[str, ...]:
        """All values for the header in insertion order, or () if unset."""
        return self._values.get(name, ())

    def get_only(self, name: str) -> str:
        """
        The single value of a header.

        Raises:
            ValueCountError: If the header has zero or more than one value.
        """
        values = self.get(name)
        if len(values) != 1:
            raise ValueCountError(name, len(values))
        return values[0]

    def contains(self, name: str) -> bool:
        return name in self._values

    def contains_value(self, value: Union[str, Sequence[str]]) -> bool:
        """
        True if some header holds exactly this value list.

        A string is treated as a one-element list, so contains_value("*")
        matches a header whose ONLY value is "*".
        """
        wanted = (value,) if isinstance(value, str) else tuple(value)
        return any(values == wanted for values in self._values.values())

    def size(self) -> int:
        """Number of distinct header names."""
        return len(self._values)

    def names(self) -> List[str]:
        return list(self._values)

    def items(self) -> Iterator[Tuple[str, Tuple[str, ...]]]:
        return iter(self._values.items())

    def to_dict(self) -> Dict[str, List[str]]:
        """A mutable copy; changing it does not affect this instance."""
        return {name: list(values) for name, values in self._values.items()}

    def to_builder(self) -> "HeadersBuilder":
        """A builder pre-filled with a copy of these headers."""
        return HeadersBuilder(self._values)

    # =========================================================================
    # PYTHON PROTOCOLS
    # =========================================================================

    def __contains__(self, name: object) -> bool:
        return name in self._values

    def __getitem__(self, name: str) -> Tuple[str, ...]:
        return self._values[name]

    def __iter__(self) -> Iterator[str]:
        return iter(self._values)

    def __len__(self) -> int:
        return len(self._values)

    def __eq__(self, other: object) -> bool:
        if not isinstance(other, Headers):
            return NotImplemented
        return self._values == other._values

    def __hash__(self) -> int:
        return hash(tuple(sorted(self._values.items())))

    def __repr__(self) -> str:
        return f"Headers({self._values!r})"


class HeadersBuilder:
    """
    Accumulates header values and finalizes them into a Headers instance.

    Every mutator returns self for chaining.
    """

    def __init__(self, initial: Optional[Dict[str, Sequence[str]]] = None):
        self._values: Dict[str, List[str]] = {
            name: list(vals) for name, vals in (initial or {}).items() if vals
        }

    def add(self, name: str, value: str) -> "HeadersBuilder":
        """Append one value to the header."""
        self._values.setdefault(name, []).append(value)
        return self

    def add_all(self, name: str, values: Iterable[str]) -> "HeadersBuilder":
        """Append a batch of values. An empty batch leaves the header untouched."""
        values = list(values)
        if values:
            self._values.setdefault(name, []).extend(values)
        return self

    def set(self, name: str, value: str) -> "HeadersBuilder":
        """Replace every existing value of the header with a single value."""
        self._values[name] = [value]
        return self

    def remove(self, name: str) -> "HeadersBuilder":
        """Delete the header entirely. Removing an absent header is a no-op."""
        self._values.pop(name, None)
        return self

    def build(self) -> Headers:
        return Headers(self._values)
