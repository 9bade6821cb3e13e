"""Browser transport — Server-Sent Events down, form POSTs up.

The browser opens ``/__tandem/stream?session=...&version=...``.  That request
becomes an ``SSETransport``: its outbound side is the async generator behind
a Chirp ``EventStream``, and its inbound side is fed by the frames the
browser POSTs to ``/__tandem/send``.  Because an EventSource cannot send,
the stream request itself stands in for the client's ``Hello``.

``HttpAcceptor`` parks new transports until the session's host task
accepts them, and remembers the current transport of each session so that
POSTed frames reach it.
"""

from __future__ import annotations

import asyncio
import threading
import uuid
from collections import defaultdict
from typing import TYPE_CHECKING, Any

from tandem._errors import ChannelUnavailable, TransportClosed
from tandem.sync.messages import encode_message, message_kind

if TYPE_CHECKING:
    from collections.abc import AsyncIterator

    from tandem.sync.messages import Message


_CLOSED: Any = object()


class SSETransport:
    """Server end of one browser connection.

    Args:
        session_id: Session the browser connected for.

    """

    __slots__ = ("_closed", "_inbound", "_outbound", "connection_id", "session_id")

    def __init__(self, session_id: str) -> None:
        self.session_id = session_id
        self.connection_id = str(uuid.uuid4())
        self._outbound: asyncio.Queue[Any] = asyncio.Queue()
        self._inbound: asyncio.Queue[Any] = asyncio.Queue()
        self._closed = False

    @property
    def closed(self) -> bool:
        return self._closed

    async def send(self, message: Message) -> None:
        from chirp import SSEEvent

        if self._closed:
            raise TransportClosed("browser disconnected")
        self._outbound.put_nowait(SSEEvent(data=encode_message(message), event=message_kind(message)))

    async def receive(self) -> Message:
        item = await self._inbound.get()
        if item is _CLOSED:
            self._inbound.put_nowait(_CLOSED)
            raise TransportClosed("browser disconnected")
        return item

    def feed(self, message: Message) -> None:
        """Deliver a frame the browser POSTed.

        Raises:
            TransportClosed: If this connection is already gone.

        """
        if self._closed:
            raise TransportClosed("browser disconnected")
        self._inbound.put_nowait(message)

    async def close(self) -> None:
        self.sever()

    def sever(self) -> None:
        """Close without awaiting (usable from sync code)."""
        if self._closed:
            return
        self._closed = True
        self._inbound.put_nowait(_CLOSED)
        self._outbound.put_nowait(_CLOSED)

    async def events(self) -> AsyncIterator[Any]:
        """Yield SSE events until the transport closes.

        Used as the generator for Chirp's ``EventStream``.  When the browser
        goes away the generator is cancelled or closed; either way the
        transport is closed so the session notices the loss.

        """
        try:
            while True:
                item = await self._outbound.get()
                if item is _CLOSED:
                    return
                yield item
        except (asyncio.CancelledError, GeneratorExit):
            pass
        finally:
            self.sever()


class HttpAcceptor:
    """Hands browser transports to waiting session tasks.

    Thread-safe for the routing table; the waiting queues are only touched
    from the event loop.

    """

    def __init__(self) -> None:
        self._waiting: dict[str, asyncio.Queue[SSETransport]] = defaultdict(asyncio.Queue)
        self._current: dict[str, SSETransport] = {}
        self._lock = threading.Lock()

    def offer(self, transport: SSETransport) -> None:
        """Register a freshly opened stream for its session."""
        with self._lock:
            previous = self._current.get(transport.session_id)
            self._current[transport.session_id] = transport
        if previous is not None:
            # A newer stream supersedes the old one (page reconnected).
            previous.sever()
        self._waiting[transport.session_id].put_nowait(transport)

    def current(self, session_id: str) -> SSETransport | None:
        """The live transport for a session, if any."""
        with self._lock:
            transport = self._current.get(session_id)
        if transport is None or transport.closed:
            return None
        return transport

    def forget(self, session_id: str) -> None:
        """Drop routing state for a terminated session."""
        with self._lock:
            self._current.pop(session_id, None)
        self._waiting.pop(session_id, None)

    async def accept(self, session_id: str, timeout: float) -> SSETransport:
        try:
            async with asyncio.timeout(timeout):
                while True:
                    transport = await self._waiting[session_id].get()
                    if not transport.closed:
                        return transport
        except TimeoutError:
            msg = f"no browser connected for session {session_id} within {timeout}s"
            raise ChannelUnavailable(msg) from None
