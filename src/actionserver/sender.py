"""
=============================================================================
RESPONSE SENDER
=============================================================================

Every request gets exactly one ResponseSender. It is the only way a
handler can talk back to the client, and it makes sure the handler does
so in a legal order.

=============================================================================
STATE MACHINE
=============================================================================

                         send()
        ┌─────────┐ ─────────────────────────────────► ┌────────┐
        │  READY  │                                    │  SENT  │
        └─────────┘ ──┐                           ┌──► └────────┘
                      │ send_next_chunk()         │
                      ▼                           │ end_chunk_encoding()
                 ┌──────────┐                     │
                 │ CHUNKING │ ────────────────────┘
                 └──────────┘
                   │      ▲
                   └──────┘ send_next_chunk()

Anything not drawn above raises ProtocolStateError:

    send()                 from CHUNKING or SENT
    send_next_chunk()      from SENT
    end_chunk_encoding()   from READY or SENT

The check happens BEFORE any I/O, so an illegal call writes nothing.

=============================================================================
WHAT GOES ON THE WIRE
=============================================================================

    send(r)               status + headers + Content-Length + body, close
    send_next_chunk(r)    1st call: status + headers (streamed) + body
                          later:    body only (status/headers ignored)
    end_chunk_encoding()  terminator, close

=============================================================================
"""

import logging
from enum import Enum
from typing import Callable, Dict, Optional, Tuple

from .cancellation import CancellationToken
from .core.exchange import Exchange
from .errors import ProtocolStateError, TransportIOFailure
from .http.response import Response


logger = logging.getLogger(__name__)


class SenderState(Enum):
    READY = "ready"
    CHUNKING = "chunking"
    SENT = "sent"


class SenderEvent(Enum):
    SEND = "send"
    CHUNK = "send_next_chunk"
    END = "end_chunk_encoding"


TRANSITIONS: Dict[Tuple[SenderState, SenderEvent], SenderState] = {
    (SenderState.READY, SenderEvent.SEND): SenderState.SENT,
    (SenderState.READY, SenderEvent.CHUNK): SenderState.CHUNKING,
    (SenderState.CHUNKING, SenderEvent.CHUNK): SenderState.CHUNKING,
    (SenderState.CHUNKING, SenderEvent.END): SenderState.SENT,
}

_ILLEGAL = {
    SenderEvent.SEND: "only one non-chunked response per request",
    SenderEvent.CHUNK: "response already completed, no more chunks can be sent",
    SenderEvent.END: "chunks must be sent before ending chunked encoding",
}


def transition(state: SenderState, event: SenderEvent) -> SenderState:
    """
    Next state for `event` in `state`.

    Raises:
        ProtocolStateError: If the event is not legal in that state.
    """
    try:
        return TRANSITIONS[(state, event)]
    except KeyError:
        raise ProtocolStateError(
            f"{_ILLEGAL[event]} (state: {state.name})",
            state=state.name,
            operation=event.value,
        ) from None


class ResponseSender:
    """
    Per-request writer enforcing single-shot vs. chunked discipline.

    Owned by one dispatch task and never shared, so there is no locking.

    Attributes:
        cancellation: The request's CancellationToken. Handlers that pace
                      a stream should sleep on it.
    """

    def __init__(self, exchange: Exchange, cancellation: Optional[CancellationToken] = None):
        self._exchange = exchange
        self._state = SenderState.READY
        self.cancellation = cancellation or CancellationToken()

    @property
    def state(self) -> SenderState:
        return self._state

    @property
    def status_code(self) -> Optional[int]:
        """Status of the response on the wire, None until something was written."""
        return self._exchange.status_code

    @property
    def bytes_sent(self) -> int:
        """Body bytes written so far."""
        return self._exchange.bytes_written

    @property
    def is_complete(self) -> bool:
        return self._state == SenderState.SENT

    # =========================================================================
    # HANDLER API
    # =========================================================================

    def send(self, response: Response) -> None:
        """
        Send one complete response and close the connection.

        Raises:
            ProtocolStateError: If anything was already sent.
            RequestCancelledError: If the request was cancelled.
            TransportIOFailure: If the write failed.
        """
        def write():
            self._exchange.send_headers(response.status_code, response.headers, len(response.body))
            self._exchange.write_body(response.body)
            self._exchange.finish()

        self._perform(SenderEvent.SEND, write)

    def send_next_chunk(self, response: Response) -> None:
        """
        Stream `response.body` as the next chunk.

        The first chunk fixes the status and headers; for later chunks
        only the body is used.

        Raises:
            ProtocolStateError: If the response is already complete.
            RequestCancelledError: If the request was cancelled.
            TransportIOFailure: If the write failed.
        """
        first = self._state == SenderState.READY

        def write():
            if first:
                self._exchange.send_headers(response.status_code, response.headers, None)
            self._exchange.write_body(response.body)

        self._perform(SenderEvent.CHUNK, write)

    def end_chunk_encoding(self) -> None:
        """
        Finish a chunked response and close the connection.

        Raises:
            ProtocolStateError: If no chunk was sent, or the response is
                already complete.
            TransportIOFailure: If the write failed.
        """
        self._perform(SenderEvent.END, self._exchange.finish)

    def abort(self) -> None:
        """Drop the connection without completing the response."""
        if self._state == SenderState.SENT:
            return
        logger.debug(f"Aborting response in state {self._state.name}")
        self._state = SenderState.SENT
        self._exchange.abort()

    # =========================================================================
    # INTERNALS
    # =========================================================================

    def _perform(self, event: SenderEvent, write: Callable[[], None]) -> None:
        next_state = transition(self._state, event)
        self.cancellation.raise_if_cancelled()

        try:
            write()
        except TransportIOFailure as e:
            self.cancellation.cancel(f"write failed: {e}")
            self._state = SenderState.SENT
            self._exchange.abort()
            raise

        self._state = next_state
