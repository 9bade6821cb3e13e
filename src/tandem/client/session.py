"""Client session — renderer, supervisor, and one transport at a time.

Lifecycle::

    connect()          dial, send hello, supervisor -> Connected
    reader task        patch  -> renderer.apply_patch -> ack
                       resync -> renderer.adopt -> ack -> replay held input
    writer task        drains outgoing frames (events, acks) in order
    transport lost     unsent and recently sent events go back to the
                       pending queue, input is held, supervisor takes over
    reconnect ok       the server always answers with a resync; input is
                       replayed once it has been adopted
    terminated         queued input and buffered patches are discarded

Recently sent events are requeued because the link may have dropped them
in flight.  The resync reports the highest event sequence number the server
applied, so anything it already has is dropped before replay, and the
server ignores sequence numbers it has seen in any case.
"""

from __future__ import annotations

import asyncio
import random
import sys
from collections import deque
from typing import TYPE_CHECKING

from tandem._errors import PatchOutOfOrder, TransportClosed
from tandem._types import ConnectionStatus
from tandem.client.renderer import ClientRenderer
from tandem.config import SyncConfig
from tandem.sync.messages import (
    AckMessage,
    EventMessage,
    Hello,
    PatchMessage,
    ResyncMessage,
    ResyncRequest,
)
from tandem.sync.supervisor import ReconnectSupervisor

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tandem.observability.collector import SyncCollector
    from tandem.sync.messages import Event, Message
    from tandem.sync.supervisor import SupervisorState
    from tandem.sync.transport import Connector, Transport
    from tandem.view.tree import ViewState


class ClientSession:
    """The client end of one session.

    Args:
        connector: Dials a new transport for a session id.
        session_id: Token issued by the server with the page.
        config: Backoff, capacity, and reorder settings.
        initial: Server-rendered starting state, if any.
        rng: Random source for backoff jitter.
        sleep: Awaitable sleep used between reconnect attempts.
        collector: Optional observability collector.

    """

    def __init__(
        self,
        connector: Connector,
        session_id: str,
        *,
        config: SyncConfig | None = None,
        initial: ViewState | None = None,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        collector: SyncCollector | None = None,
    ) -> None:
        self._connector = connector
        self._config = config if config is not None else SyncConfig()
        self._collector = collector
        self.session_id = session_id
        self.renderer = ClientRenderer(
            self._transmit,
            reorder_window=self._config.reorder_window,
            pending_capacity=self._config.pending_capacity,
            initial=initial,
        )
        self.supervisor = ReconnectSupervisor(
            self._dial,
            config=self._config,
            rng=rng,
            sleep=sleep,
            session_id=session_id,
            collector=collector,
        )
        self.supervisor.watch(self._on_status)
        self._transport: Transport | None = None
        self._outgoing: deque[Message] = deque()
        self._sent: deque[Event] = deque(maxlen=self._config.pending_capacity)
        self._wakeup = asyncio.Event()
        self._tasks: list[asyncio.Task[None]] = []
        self._acked = self.renderer.version
        self._awaiting_resync = False

    @property
    def status(self) -> ConnectionStatus:
        return self.supervisor.status

    @property
    def version(self) -> int:
        return self.renderer.version

    def watch(self, observer: Callable[[SupervisorState], None]) -> Callable[[], None]:
        """Observe connection status transitions (drives the overlay)."""
        return self.supervisor.watch(observer)

    async def connect(self) -> None:
        """Open the first connection.

        Raises:
            ChannelUnavailable: If the connector cannot reach the server.

        """
        await self._dial()
        self.supervisor.connected()
        if not self._awaiting_resync:
            self._replay()

    def capture_event(self, event: Event) -> Event | None:
        """Record a user interaction (see ``ClientRenderer.capture_event``)."""
        return self.renderer.capture_event(event)

    def retry(self) -> None:
        """User-initiated retry after ``Disconnected``."""
        self.supervisor.retry()

    async def close(self) -> None:
        """Stop reconnecting, cancel I/O tasks, and close the transport."""
        await self.supervisor.close()
        transport, self._transport = self._transport, None
        self._cancel_tasks()
        self._outgoing.clear()
        if transport is not None:
            await transport.close()

    # ----- Connection -----

    async def _dial(self) -> None:
        """One connection attempt: dial and say hello."""
        transport = await self._connector(self.session_id)
        try:
            await transport.send(Hello(self.session_id, self.renderer.version))
        except TransportClosed:
            await transport.close()
            raise
        self._cancel_tasks()
        self._transport = transport
        self._tasks = [
            asyncio.create_task(self._read_loop(transport)),
            asyncio.create_task(self._write_loop(transport)),
        ]
        self._wakeup.set()

    def _handle_loss(self, transport: Transport) -> None:
        if self._transport is not transport:
            return
        self._transport = None
        unsent = [m.event for m in self._outgoing if isinstance(m, EventMessage)]
        self._outgoing.clear()
        self.renderer.requeue([*self._sent, *unsent])
        self._sent.clear()
        self.renderer.hold_input()
        self._awaiting_resync = True
        self._wakeup.set()
        print(f"  Connection to session {self.session_id} lost", file=sys.stderr)
        self.supervisor.connection_lost()

    def _cancel_tasks(self) -> None:
        current = asyncio.current_task()
        for task in self._tasks:
            if task is not current and not task.done():
                task.cancel()
        self._tasks = []

    # ----- I/O -----

    def _transmit(self, event: Event) -> None:
        self._send(EventMessage(event))

    def _send(self, message: Message) -> None:
        self._outgoing.append(message)
        self._wakeup.set()

    def _ack(self) -> None:
        version = self.renderer.version
        if version > self._acked:
            self._acked = version
            self._send(AckMessage(version))

    def _replay(self) -> None:
        count = self.renderer.replay_pending()
        if count and self._collector is not None:
            self._collector.record_replay(self.session_id, count)

    async def _read_loop(self, transport: Transport) -> None:
        while True:
            try:
                message = await transport.receive()
            except TransportClosed:
                self._handle_loss(transport)
                return
            if isinstance(message, PatchMessage):
                try:
                    self.renderer.apply_patch(message.patch)
                except PatchOutOfOrder as exc:
                    print(f"  {exc}; requesting resync", file=sys.stderr)
                    self._send(ResyncRequest(self.renderer.version))
                    continue
                self._ack()
            elif isinstance(message, ResyncMessage):
                self.renderer.adopt(message.state)
                self.renderer.confirm(message.last_event_seq)
                self._ack()
                if self._awaiting_resync:
                    self._awaiting_resync = False
                    self._replay()

    async def _write_loop(self, transport: Transport) -> None:
        while self._transport is transport:
            while self._outgoing and self._transport is transport:
                message = self._outgoing[0]
                try:
                    await transport.send(message)
                except TransportClosed:
                    self._handle_loss(transport)
                    return
                if self._outgoing and self._outgoing[0] is message:
                    self._outgoing.popleft()
                if isinstance(message, EventMessage):
                    self._sent.append(message.event)
            self._wakeup.clear()
            if self._transport is not transport:
                return
            await self._wakeup.wait()

    def _on_status(self, state: SupervisorState) -> None:
        self.renderer.status = state.status
        if state.status is ConnectionStatus.TERMINATED:
            self._outgoing.clear()
            self._sent.clear()
            dropped = self.renderer.discard_input()
            if dropped:
                print(
                    f"  Session {self.session_id} ended: {dropped} queued events discarded",
                    file=sys.stderr,
                )
