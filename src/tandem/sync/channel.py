"""Session channel — the server end of each session's connection.

Owns, per session, the current transport, the outbound queue, and the
acknowledgement bookkeeping:

1. ``open`` waits for the client to dial in and completes the ``Hello``
   handshake, queueing a resync when the client's version is behind.
2. ``send`` enqueues a patch and returns immediately; a writer task drains
   the queue onto the transport in order.  While the transport is gone the
   queue keeps filling up to ``outbound_capacity``; past that it is dropped
   and replaced by a full resync.
3. ``receive`` returns the next client event, handling acknowledgements and
   resync requests on the way.
4. ``resume`` waits for the client to come back after a loss and always
   starts the new connection with a full resync, since patches in flight
   at the moment of loss may never have arrived.

One writer task per live transport.  All state for a session is touched
only from that session's host task and its writer, which share one event
loop, so nothing here is locked.
"""

from __future__ import annotations

import asyncio
import sys
from collections import deque
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import TYPE_CHECKING

from tandem._errors import (
    ChannelError,
    ChannelUnavailable,
    ProtocolError,
    SessionClosed,
    StaleAck,
    TransportClosed,
)
from tandem._types import ConnectionStatus
from tandem.config import SyncConfig
from tandem.observability.events import now_ns
from tandem.sync.messages import (
    AckMessage,
    EventMessage,
    Hello,
    Message,
    PatchMessage,
    ResyncMessage,
    ResyncRequest,
)
from tandem.sync.session import Session

if TYPE_CHECKING:
    from tandem.observability.collector import SyncCollector
    from tandem.sync.messages import Event
    from tandem.sync.transport import Acceptor, Transport
    from tandem.view.patch import Patch
    from tandem.view.tree import ViewState


@dataclass(slots=True)
class _Link:
    """Per-session connection state."""

    session: Session
    snapshot: Callable[[], ViewState]
    transport: Transport | None = None
    outbound: deque[Message] = field(default_factory=deque)
    sent_version: int = 0
    needs_resync: bool = False
    wakeup: asyncio.Event = field(default_factory=asyncio.Event)
    writer: asyncio.Task[None] | None = None


class SessionChannel:
    """Ordered, acknowledged patch delivery for many sessions.

    Args:
        acceptor: Source of server-side transports.
        config: Capacities and timeouts.
        collector: Optional observability collector.

    """

    def __init__(
        self,
        acceptor: Acceptor,
        *,
        config: SyncConfig | None = None,
        collector: SyncCollector | None = None,
    ) -> None:
        self._acceptor = acceptor
        self._config = config if config is not None else SyncConfig()
        self._collector = collector
        self._links: dict[str, _Link] = {}

    # ----- Contract -----

    async def open(self, session_id: str, snapshot: Callable[[], ViewState]) -> Session:
        """Establish the channel for a new session.

        Args:
            session_id: Token the client will dial in with.
            snapshot: Returns the session's current ViewState; called
                whenever a full resync is needed.

        Raises:
            ChannelUnavailable: If no client connects and completes the
                handshake within ``accept_timeout``.
            ChannelError: If the session is already open.

        """
        if session_id in self._links:
            msg = f"session {session_id} is already open"
            raise ChannelError(msg)

        transport, hello = await self._accept_handshake(session_id, self._config.accept_timeout)
        session = Session(session_id=session_id, acked_version=hello.version)
        link = _Link(session=session, snapshot=snapshot, sent_version=hello.version)
        self._links[session_id] = link
        self._attach(link, transport, client_version=hello.version, resume=False)
        if self._collector is not None:
            self._collector.record_open(session_id, client_version=hello.version)
        return session

    def send(self, session: Session, patch: Patch) -> None:
        """Queue a patch for delivery.  Never blocks.

        Raises:
            SessionClosed: If the session was closed.

        """
        link = self._link(session)
        if link.needs_resync:
            # A resync is owed on reattach; it will cover this patch.
            return
        if len(link.outbound) >= self._config.outbound_capacity:
            link.outbound.clear()
            if link.transport is None:
                link.needs_resync = True
                print(
                    f"  Outbound queue full for {session.session_id}: "
                    "dropping queued patches, resync on reconnect",
                    file=sys.stderr,
                )
            else:
                self._queue_resync(link, reason="overflow")
            return
        link.outbound.append(PatchMessage(patch))
        link.wakeup.set()

    async def receive(self, session: Session) -> Event:
        """Wait for the next client event.

        Acks and resync requests are consumed here.  Stale acks are logged
        and ignored.

        Raises:
            TransportClosed: When the transport is lost (the session moves
                to ``Reconnecting``; call ``resume``).
            SessionClosed: If the session was closed.

        """
        link = self._link(session)
        while True:
            transport = link.transport
            if transport is None:
                msg = f"session {session.session_id} has no transport"
                raise TransportClosed(msg)
            try:
                message = await transport.receive()
            except TransportClosed:
                self._lose(link, transport)
                raise

            if isinstance(message, EventMessage):
                return message.event
            if isinstance(message, AckMessage):
                try:
                    self.acknowledge(session, message.version)
                except StaleAck as exc:
                    print(f"  Stale ack from {session.session_id}: {exc}", file=sys.stderr)
                    if self._collector is not None:
                        self._collector.record_ack(session.session_id, exc.version, stale=True)
            elif isinstance(message, ResyncRequest):
                self._queue_resync(link, reason="requested")

    async def close(self, session: Session, *, reason: str = "closed") -> None:
        """Close the session: cancel its writer and discard its outbound queue."""
        link = self._links.pop(session.session_id, None)
        if link is None:
            return
        session.status = ConnectionStatus.TERMINATED
        link.outbound.clear()
        if link.writer is not None and not link.writer.done():
            link.writer.cancel()
        transport, link.transport = link.transport, None
        if transport is not None:
            await transport.close()
        if self._collector is not None:
            self._collector.record_status(session.session_id, session.status)
            self._collector.record_close(session.session_id, reason=reason)

    # ----- Recovery -----

    async def resume(self, session: Session, timeout: float) -> None:
        """Wait for the client to reconnect, then resync it.

        Raises:
            ChannelUnavailable: If no client returns within ``timeout``.
            SessionClosed: If the session was closed.

        """
        link = self._link(session)
        transport, hello = await self._accept_handshake(session.session_id, timeout)
        if not session.is_live:
            await transport.close()
            raise SessionClosed(session.session_id)
        self._attach(link, transport, client_version=hello.version, resume=True)

    def acknowledge(self, session: Session, version: int) -> None:
        """Advance the session's acknowledged version.

        Raises:
            StaleAck: If ``version`` is not newer than the last ack or was
                never sent.

        """
        link = self._link(session)
        if not session.acked_version < version <= link.sent_version:
            raise StaleAck(version, session.acked_version, link.sent_version)
        session.acked_version = version
        if self._collector is not None:
            self._collector.record_ack(session.session_id, version)

    def request_resync(self, session: Session) -> None:
        """Replace whatever is queued with the full current tree."""
        self._queue_resync(self._link(session), reason="requested")

    def pending(self, session: Session) -> int:
        """Number of messages waiting to be written for a session."""
        return len(self._link(session).outbound)

    def is_open(self, session_id: str) -> bool:
        return session_id in self._links

    # ----- Internals -----

    def _link(self, session: Session) -> _Link:
        link = self._links.get(session.session_id)
        if link is None or link.session is not session:
            raise SessionClosed(session.session_id)
        return link

    async def _accept_handshake(self, session_id: str, timeout: float) -> tuple[Transport, Hello]:
        """Accept transports until one completes a handshake or time runs out."""
        try:
            async with asyncio.timeout(timeout):
                while True:
                    transport = await self._acceptor.accept(session_id, timeout)
                    try:
                        hello = await transport.receive()
                    except TransportClosed:
                        continue
                    if isinstance(hello, Hello) and hello.session_id == session_id:
                        return transport, hello
                    await transport.close()
                    print(
                        f"  Handshake for {session_id} rejected: expected hello, got "
                        f"{type(hello).__name__}",
                        file=sys.stderr,
                    )
        except (TimeoutError, ProtocolError) as exc:
            msg = f"no handshake for session {session_id} within {timeout}s"
            raise ChannelUnavailable(msg) from exc

    def _attach(
        self, link: _Link, transport: Transport, *, client_version: int, resume: bool
    ) -> None:
        link.transport = transport
        link.session.status = ConnectionStatus.CONNECTED
        link.session.lost_ns = 0

        if resume:
            self._queue_resync(link, reason="reconnect")
        elif link.needs_resync:
            self._queue_resync(link, reason="overflow")
        elif client_version != link.snapshot().version:
            self._queue_resync(link, reason="handshake")

        link.writer = asyncio.create_task(self._write_loop(link, transport))
        if self._collector is not None:
            self._collector.record_status(link.session.session_id, link.session.status)

    def _lose(self, link: _Link, transport: Transport) -> None:
        if link.transport is not transport:
            return
        link.transport = None
        link.session.status = ConnectionStatus.RECONNECTING
        link.session.lost_ns = now_ns()
        link.wakeup.set()  # let the writer notice and exit
        if self._collector is not None:
            self._collector.record_status(link.session.session_id, link.session.status, attempt=1)

    def _queue_resync(self, link: _Link, *, reason: str) -> None:
        state = link.snapshot()
        link.outbound.clear()
        link.outbound.append(ResyncMessage(state, link.session.last_event_seq))
        link.needs_resync = False
        link.wakeup.set()
        if self._collector is not None:
            self._collector.record_resync(link.session.session_id, state.version, reason=reason)

    async def _write_loop(self, link: _Link, transport: Transport) -> None:
        """Drain ``link.outbound`` onto ``transport`` until it is replaced or lost."""
        while link.transport is transport:
            while link.outbound and link.transport is transport:
                message = link.outbound[0]
                try:
                    await transport.send(message)
                except TransportClosed:
                    self._lose(link, transport)
                    return
                # The queue may have been replaced by a resync during the await.
                if link.outbound and link.outbound[0] is message:
                    link.outbound.popleft()
                if isinstance(message, PatchMessage):
                    link.sent_version = max(link.sent_version, message.patch.version)
                elif isinstance(message, ResyncMessage):
                    link.sent_version = max(link.sent_version, message.state.version)
            link.wakeup.clear()
            if link.transport is not transport:
                return
            await link.wakeup.wait()
