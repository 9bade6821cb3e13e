"""Tests for tandem.sync.channel — ordered, acknowledged patch delivery."""

from __future__ import annotations

import asyncio

import pytest

from tandem._errors import (
    ChannelError,
    ChannelUnavailable,
    SessionClosed,
    StaleAck,
    TransportClosed,
)
from tandem._types import ConnectionStatus
from tandem.config import SyncConfig
from tandem.observability import AckReceived, EventLog, ResyncSent, SessionEnded, SessionOpened, SyncCollector
from tandem.sync.channel import SessionChannel
from tandem.sync.messages import (
    AckMessage,
    Event,
    EventMessage,
    Hello,
    PatchMessage,
    ResyncMessage,
    ResyncRequest,
)
from tandem.sync.transport import MemoryHub, MemoryTransport
from tandem.view.differ import diff_states
from tandem.view.patch import Patch
from tandem.view.tree import ViewState, element


class _View:
    """Stand-in for an emitter: a state that can be bumped."""

    def __init__(self) -> None:
        self.state = ViewState(0, element("div", "r", text="0"))

    def bump(self) -> Patch:
        root = element("div", "r", text=str(self.state.version + 1))
        patch = diff_states(self.state, root)
        self.state = ViewState(patch.version, root)
        return patch


async def _open(
    channel: SessionChannel, hub: MemoryHub, view: _View, *, client_version: int = 0,
) -> tuple[object, MemoryTransport]:
    opening = asyncio.create_task(channel.open("s1", lambda: view.state))
    client = await hub.connect("s1")
    await client.send(Hello("s1", client_version))
    session = await opening
    return session, client


async def _next(client: MemoryTransport) -> object:
    return await asyncio.wait_for(client.receive(), 1.0)


@pytest.fixture
def collector() -> SyncCollector:
    return SyncCollector(EventLog())


class TestOpen:
    """SessionChannel.open — handshake and initial resync."""

    @pytest.mark.asyncio
    async def test_open_connects_session(self, fast_config: SyncConfig, collector: SyncCollector) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        session, _client = await _open(channel, hub, _View())

        assert session.status is ConnectionStatus.CONNECTED
        assert session.acked_version == 0
        assert channel.is_open("s1")
        assert collector.log.query(event_type=SessionOpened)

    @pytest.mark.asyncio
    async def test_matching_version_gets_no_resync(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, client = await _open(channel, hub, view)

        patch = view.bump()
        channel.send(session, patch)
        assert await _next(client) == PatchMessage(patch)

    @pytest.mark.asyncio
    async def test_stale_client_gets_resync(self, fast_config: SyncConfig, collector: SyncCollector) -> None:
        hub = MemoryHub()
        view = _View()
        view.bump()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        _session, client = await _open(channel, hub, view, client_version=-1)

        message = await _next(client)
        assert isinstance(message, ResyncMessage)
        assert message.state == view.state
        [resync] = collector.log.query(event_type=ResyncSent)
        assert resync.reason == "handshake"

    @pytest.mark.asyncio
    async def test_no_client_raises_unavailable(self) -> None:
        channel = SessionChannel(MemoryHub(), config=SyncConfig(accept_timeout=0.02))
        with pytest.raises(ChannelUnavailable):
            await channel.open("s1", lambda: _View().state)

    @pytest.mark.asyncio
    async def test_wrong_first_frame_is_rejected(self) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=SyncConfig(accept_timeout=0.05))
        opening = asyncio.create_task(channel.open("s1", lambda: _View().state))
        client = await hub.connect("s1")
        await client.send(AckMessage(1))
        with pytest.raises(ChannelUnavailable):
            await opening

    @pytest.mark.asyncio
    async def test_open_twice_rejected(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        await _open(channel, hub, view)
        with pytest.raises(ChannelError, match="already open"):
            await channel.open("s1", lambda: view.state)


class TestSendReceive:
    """send / receive / acknowledge while connected."""

    @pytest.mark.asyncio
    async def test_patches_delivered_in_order(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, client = await _open(channel, hub, view)

        patches = [view.bump() for _ in range(4)]
        for patch in patches:
            channel.send(session, patch)
        received = [await _next(client) for _ in patches]
        assert received == [PatchMessage(p) for p in patches]

    @pytest.mark.asyncio
    async def test_ack_advances_acked_version(self, fast_config: SyncConfig, collector: SyncCollector) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        session, client = await _open(channel, hub, view)

        channel.send(session, view.bump())
        channel.send(session, view.bump())
        await _next(client)
        await _next(client)

        await client.send(AckMessage(2))
        await client.send(EventMessage(Event("click", seq=1)))
        event = await channel.receive(session)

        assert event == Event("click", seq=1)
        assert session.acked_version == 2
        [ack] = collector.log.query(event_type=AckReceived)
        assert ack.version == 2
        assert not ack.stale

    @pytest.mark.asyncio
    async def test_stale_ack_ignored(self, fast_config: SyncConfig, collector: SyncCollector) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        session, client = await _open(channel, hub, _View())

        await client.send(AckMessage(5))  # never sent
        await client.send(EventMessage(Event("click", seq=1)))
        event = await channel.receive(session)

        assert event.name == "click"
        assert session.acked_version == 0
        [ack] = collector.log.query(event_type=AckReceived)
        assert ack.stale

    @pytest.mark.asyncio
    async def test_acknowledge_rejects_old_and_unsent(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, client = await _open(channel, hub, view)
        channel.send(session, view.bump())
        await _next(client)

        channel.acknowledge(session, 1)
        with pytest.raises(StaleAck):
            channel.acknowledge(session, 1)
        with pytest.raises(StaleAck):
            channel.acknowledge(session, 2)

    @pytest.mark.asyncio
    async def test_resync_request_answered_with_full_tree(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, client = await _open(channel, hub, view)
        view.bump()

        await client.send(ResyncRequest(0))
        await client.send(EventMessage(Event("noop")))
        await channel.receive(session)

        message = await _next(client)
        assert isinstance(message, ResyncMessage)
        assert message.state.version == 1


class TestLossAndResume:
    """Transport loss, bounded queueing, and resync on reconnect."""

    @pytest.mark.asyncio
    async def test_loss_moves_session_to_reconnecting(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=fast_config)
        session, _client = await _open(channel, hub, _View())

        hub.drop("s1")
        with pytest.raises(TransportClosed):
            await channel.receive(session)
        assert session.status is ConnectionStatus.RECONNECTING
        assert session.lost_ns > 0

    @pytest.mark.asyncio
    async def test_patches_queue_while_lost(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, _client = await _open(channel, hub, view)
        hub.drop("s1")
        with pytest.raises(TransportClosed):
            await channel.receive(session)

        for _ in range(3):
            channel.send(session, view.bump())
        assert channel.pending(session) == 3

    @pytest.mark.asyncio
    async def test_overflow_drops_queue(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config)
        session, _client = await _open(channel, hub, view)
        hub.drop("s1")
        with pytest.raises(TransportClosed):
            await channel.receive(session)

        for _ in range(fast_config.outbound_capacity + 3):
            channel.send(session, view.bump())
        assert channel.pending(session) == 0

    @pytest.mark.asyncio
    async def test_resume_always_starts_with_resync(
        self, fast_config: SyncConfig, collector: SyncCollector,
    ) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        session, _client = await _open(channel, hub, view)
        hub.drop("s1")
        with pytest.raises(TransportClosed):
            await channel.receive(session)

        for _ in range(fast_config.outbound_capacity + 3):
            channel.send(session, view.bump())

        resuming = asyncio.create_task(channel.resume(session, 1.0))
        client = await hub.connect("s1")
        await client.send(Hello("s1", 0))
        await resuming

        assert session.status is ConnectionStatus.CONNECTED
        message = await _next(client)
        assert isinstance(message, ResyncMessage)
        assert message.state == view.state

        # Delivery continues with patches after the resync
        patch = view.bump()
        channel.send(session, patch)
        assert await _next(client) == PatchMessage(patch)
        reasons = [e.reason for e in collector.log.query(event_type=ResyncSent)]
        assert "reconnect" in reasons

    @pytest.mark.asyncio
    async def test_resume_times_out(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=fast_config)
        session, _client = await _open(channel, hub, _View())
        hub.drop("s1")
        with pytest.raises(TransportClosed):
            await channel.receive(session)
        with pytest.raises(ChannelUnavailable):
            await channel.resume(session, 0.02)


class TestClose:
    """SessionChannel.close — terminal and idempotent."""

    @pytest.mark.asyncio
    async def test_close_terminates(self, fast_config: SyncConfig, collector: SyncCollector) -> None:
        hub = MemoryHub()
        view = _View()
        channel = SessionChannel(hub, config=fast_config, collector=collector)
        session, client = await _open(channel, hub, view)

        await channel.close(session, reason="closed")
        assert session.status is ConnectionStatus.TERMINATED
        assert not channel.is_open("s1")
        assert client.closed
        with pytest.raises(SessionClosed):
            channel.send(session, view.bump())
        [ended] = collector.log.query(event_type=SessionEnded)
        assert ended.reason == "closed"

    @pytest.mark.asyncio
    async def test_close_twice_is_harmless(self, fast_config: SyncConfig) -> None:
        hub = MemoryHub()
        channel = SessionChannel(hub, config=fast_config)
        session, _client = await _open(channel, hub, _View())
        await channel.close(session)
        await channel.close(session)
