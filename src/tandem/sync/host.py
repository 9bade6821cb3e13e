"""Session host — the server-side task that owns each session.

Ties one component, one emitter, and the shared channel together::

    create()   page request: instantiate component, render version 0
    start()    spawn the session task:
                 open channel (wait for the client's hello)
                 loop: receive event -> component.handle_event -> commit
                 on transport loss: wait up to ``session_timeout`` for the
                 client to come back, resync it, continue
               on timeout, close, or a malformed tree: terminate and
               reclaim the session
    commit()   server-initiated mutation (timers, background data)

Each session's mutations and diffs run on its own task, so sessions never
share mutable state and one slow session cannot stall another.
"""

from __future__ import annotations

import asyncio
import inspect
import sys
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Protocol, runtime_checkable

from tandem._errors import ChannelUnavailable, MalformedTree, SessionClosed, TransportClosed
from tandem._types import ConnectionStatus
from tandem.config import SyncConfig
from tandem.sync.channel import SessionChannel
from tandem.sync.emitter import StateDiffEmitter
from tandem.sync.session import SessionRegistry, new_session_id

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable

    from tandem.observability.collector import SyncCollector
    from tandem.sync.messages import Event
    from tandem.sync.session import Session
    from tandem.sync.transport import Acceptor
    from tandem.view.patch import Patch
    from tandem.view.tree import Node


@runtime_checkable
class Component(Protocol):
    """What a page component provides to the host.

    ``handle_event`` mutates the component's own state (sync or async);
    the host re-renders and diffs afterwards.  Components that also define
    ``on_status(status)`` are told about connection status changes.

    """

    def render(self) -> Node: ...

    def handle_event(self, event: Event) -> Awaitable[None] | None: ...


@dataclass(slots=True)
class HostedSession:
    """Everything the host keeps for one session."""

    session_id: str
    component: Component
    emitter: StateDiffEmitter
    session: Session | None = None
    task: asyncio.Task[None] | None = None
    opened: asyncio.Event = field(default_factory=asyncio.Event)

    @property
    def status(self) -> ConnectionStatus:
        if self.session is None:
            return ConnectionStatus.DISCONNECTED
        return self.session.status


class SessionHost:
    """Runs components for many concurrent sessions.

    Args:
        factory: Creates a fresh component per session.
        acceptor: Where client transports come from.
        config: Timeouts and capacities.
        collector: Optional observability collector.

    """

    def __init__(
        self,
        factory: Callable[[], Component],
        acceptor: Acceptor,
        *,
        config: SyncConfig | None = None,
        collector: SyncCollector | None = None,
    ) -> None:
        self._factory = factory
        self._config = config if config is not None else SyncConfig()
        self._collector = collector
        self.channel = SessionChannel(acceptor, config=self._config, collector=collector)
        self.registry = SessionRegistry()
        self._reapers: set[asyncio.Task[None]] = set()

    @property
    def config(self) -> SyncConfig:
        return self._config

    def create(self, session_id: str | None = None) -> HostedSession:
        """Instantiate a component and render its initial view (version 0).

        Raises:
            MalformedTree: If the component's first render is malformed.

        """
        sid = session_id or new_session_id()
        component = self._factory()
        emitter = StateDiffEmitter(component.render, session_id=sid, collector=self._collector)
        hosted = HostedSession(session_id=sid, component=component, emitter=emitter)
        self.registry.add(sid, hosted)
        return hosted

    def start(self, hosted: HostedSession) -> asyncio.Task[None]:
        """Spawn the session task."""
        hosted.task = asyncio.create_task(self._serve(hosted), name=f"tandem:{hosted.session_id}")
        return hosted.task

    def get(self, session_id: str) -> HostedSession | None:
        return self.registry.get(session_id)

    def commit(self, session_id: str) -> Patch | None:
        """Publish a server-initiated mutation of a session's component.

        Must be called from the event loop.  A malformed tree terminates the
        session (reason ``error``) as it does for client events.

        Raises:
            SessionClosed: If the session is unknown or terminated.
            MalformedTree: If the component rendered a malformed tree.

        """
        hosted = self.registry.get(session_id)
        if hosted is None:
            raise SessionClosed(session_id)
        try:
            return hosted.emitter.commit()
        except MalformedTree as exc:
            print(f"  Session {session_id} terminated, malformed view tree: {exc}", file=sys.stderr)
            reaper = asyncio.create_task(self.close(session_id, reason="error"))
            self._reapers.add(reaper)
            reaper.add_done_callback(self._reapers.discard)
            raise

    async def close(self, session_id: str, *, reason: str = "closed") -> None:
        """Terminate a session and reclaim its resources."""
        hosted = self.registry.discard(session_id)
        if hosted is None:
            return
        if hosted.session is not None:
            await self.channel.close(hosted.session, reason=reason)
            self._notify(hosted, ConnectionStatus.TERMINATED)
        elif self._collector is not None:
            self._collector.record_close(session_id, reason=reason)
        task = hosted.task
        if task is not None and not task.done() and task is not asyncio.current_task():
            task.cancel()

    async def shutdown(self) -> None:
        """Close every session."""
        for session_id in list(self.registry):
            await self.close(session_id)

    # ----- Session task -----

    async def _serve(self, hosted: HostedSession) -> None:
        sid = hosted.session_id
        try:
            session = await self.channel.open(sid, lambda: hosted.emitter.state)
        except ChannelUnavailable as exc:
            print(f"  Session {sid} never connected: {exc}", file=sys.stderr)
            await self.close(sid, reason="timeout")
            return

        hosted.session = session
        hosted.opened.set()
        unsubscribe = hosted.emitter.subscribe(lambda patch: self.channel.send(session, patch))
        self._notify(hosted, ConnectionStatus.CONNECTED)
        reason = "closed"
        try:
            while session.is_live:
                try:
                    event = await self.channel.receive(session)
                except TransportClosed:
                    self._notify(hosted, ConnectionStatus.RECONNECTING)
                    try:
                        await self.channel.resume(session, self._config.session_timeout)
                    except ChannelUnavailable:
                        print(f"  Session {sid} timed out waiting for reconnect", file=sys.stderr)
                        reason = "timeout"
                        break
                    self._notify(hosted, ConnectionStatus.CONNECTED)
                    continue
                await self._dispatch(hosted, session, event)
        except MalformedTree as exc:
            print(f"  Session {sid} terminated, malformed view tree: {exc}", file=sys.stderr)
            reason = "error"
        except SessionClosed:
            pass
        finally:
            unsubscribe()
            await self.close(sid, reason=reason)

    async def _dispatch(self, hosted: HostedSession, session: Session, event: Event) -> None:
        """Apply one client event, at most once per sequence number."""
        if event.seq and event.seq <= session.last_event_seq:
            return
        try:
            result = hosted.component.handle_event(event)
            if inspect.isawaitable(result):
                await result
        except MalformedTree:
            raise
        except Exception as exc:
            print(
                f"  Handler error ({hosted.session_id}, {event.name}): {exc}",
                file=sys.stderr,
            )
        if event.seq:
            session.last_event_seq = event.seq
        hosted.emitter.commit()

    def _notify(self, hosted: HostedSession, status: ConnectionStatus) -> None:
        on_status = getattr(hosted.component, "on_status", None)
        if on_status is None:
            return
        try:
            on_status(status)
        except Exception as exc:
            print(f"  Status handler error ({hosted.session_id}): {exc}", file=sys.stderr)
