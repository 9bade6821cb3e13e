"""Transport seams and the in-process transport.

A ``Transport`` is one live, ordered, bidirectional message stream for one
session.  The server obtains transports from an ``Acceptor`` (clients dial
in); the client obtains them from a ``Connector``.  Both sides treat a
``TransportClosed`` from ``send`` or ``receive`` as "the link is gone" and
hand the situation to their recovery logic.

``MemoryHub`` pairs the two sides in-process.  It is used for embedding a
client and server in the same event loop and throughout the test suite; it
can refuse connections and drop live links on demand.
"""

from __future__ import annotations

import asyncio
from collections import defaultdict
from collections.abc import Awaitable, Callable
from typing import TYPE_CHECKING, Any, Protocol

from tandem._errors import ChannelUnavailable, TransportClosed

if TYPE_CHECKING:
    from tandem.sync.messages import Message


class Transport(Protocol):
    """One end of a live message stream."""

    @property
    def closed(self) -> bool: ...

    async def send(self, message: Message) -> None:
        """Transmit a message.  Raises ``TransportClosed`` if the link is gone."""
        ...

    async def receive(self) -> Message:
        """Wait for the next message.  Raises ``TransportClosed`` on loss."""
        ...

    async def close(self) -> None: ...


class Acceptor(Protocol):
    """Server-side source of transports, keyed by session id."""

    async def accept(self, session_id: str, timeout: float) -> Transport:
        """Wait for a client to dial in for ``session_id``.

        Raises:
            ChannelUnavailable: If nobody connects within ``timeout`` seconds.

        """
        ...


type Connector = Callable[[str], Awaitable[Transport]]


# ---------------------------------------------------------------------------
# In-process transport
# ---------------------------------------------------------------------------

_CLOSED: Any = object()


class _Pipe:
    """Shared state of a transport pair: two queues and a closed flag."""

    __slots__ = ("closed", "to_client", "to_server")

    def __init__(self) -> None:
        self.to_server: asyncio.Queue[Any] = asyncio.Queue()
        self.to_client: asyncio.Queue[Any] = asyncio.Queue()
        self.closed = False

    def close(self) -> None:
        """Sever the link.  In-flight messages are lost, like a dropped socket."""
        if self.closed:
            return
        self.closed = True
        for q in (self.to_server, self.to_client):
            while not q.empty():
                q.get_nowait()
            q.put_nowait(_CLOSED)


class MemoryTransport:
    """One end of an in-process pipe."""

    __slots__ = ("_inbox", "_outbox", "_pipe")

    def __init__(self, pipe: _Pipe, *, server_side: bool) -> None:
        self._pipe = pipe
        self._inbox = pipe.to_server if server_side else pipe.to_client
        self._outbox = pipe.to_client if server_side else pipe.to_server

    @property
    def closed(self) -> bool:
        return self._pipe.closed

    async def send(self, message: Message) -> None:
        if self._pipe.closed:
            raise TransportClosed("transport closed")
        self._outbox.put_nowait(message)

    async def receive(self) -> Message:
        item = await self._inbox.get()
        if item is _CLOSED:
            # Leave the marker for any later receive() on this end.
            self._inbox.put_nowait(_CLOSED)
            raise TransportClosed("transport closed")
        return item

    async def close(self) -> None:
        self._pipe.close()


class MemoryHub:
    """Connects in-process clients to an in-process server.

    The hub is both an ``Acceptor`` (``accept``) and a ``Connector``
    (``connect``).  Each ``connect`` creates a fresh pipe, returns the client
    end, and parks the server end until the server accepts it.

    """

    def __init__(self) -> None:
        self._waiting: dict[str, asyncio.Queue[MemoryTransport]] = defaultdict(asyncio.Queue)
        self._live: dict[str, list[_Pipe]] = defaultdict(list)
        self._refusals: float = 0
        self.connect_attempts = 0

    def refuse(self, count: int | None = None) -> None:
        """Refuse the next ``count`` connects (all of them when None)."""
        self._refusals = float("inf") if count is None else count

    def accept_connections(self) -> None:
        """Stop refusing connects."""
        self._refusals = 0

    async def connect(self, session_id: str) -> MemoryTransport:
        self.connect_attempts += 1
        if self._refusals > 0:
            self._refusals -= 1
            msg = f"hub refused connection for session {session_id}"
            raise ChannelUnavailable(msg)
        pipe = _Pipe()
        self._live[session_id] = [p for p in self._live[session_id] if not p.closed]
        self._live[session_id].append(pipe)
        self._waiting[session_id].put_nowait(MemoryTransport(pipe, server_side=True))
        return MemoryTransport(pipe, server_side=False)

    async def accept(self, session_id: str, timeout: float) -> MemoryTransport:
        try:
            async with asyncio.timeout(timeout):
                while True:
                    transport = await self._waiting[session_id].get()
                    if not transport.closed:
                        return transport
        except TimeoutError:
            msg = f"no client connected for session {session_id} within {timeout}s"
            raise ChannelUnavailable(msg) from None

    def drop(self, session_id: str) -> int:
        """Sever every live link of a session.  Returns the number dropped."""
        pipes = [p for p in self._live.pop(session_id, []) if not p.closed]
        for p in pipes:
            p.close()
        return len(pipes)
