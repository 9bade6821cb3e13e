"""Synchronization layer — channel, emitter, supervisor, and host.

Server side:
    SessionHost -> StateDiffEmitter -> SessionChannel -> Transport

Client side:
    tandem.client.ClientSession -> ReconnectSupervisor + ClientRenderer
"""

from tandem.sync.channel import SessionChannel
from tandem.sync.emitter import StateDiffEmitter
from tandem.sync.host import Component, HostedSession, SessionHost
from tandem.sync.messages import (
    AckMessage,
    Event,
    EventMessage,
    Hello,
    Message,
    PatchMessage,
    ResyncMessage,
    ResyncRequest,
    decode_message,
    encode_message,
    message_kind,
)
from tandem.sync.session import Session, SessionRegistry, new_session_id
from tandem.sync.supervisor import (
    TRANSITIONS,
    BackoffPolicy,
    ReconnectSupervisor,
    SupervisorState,
    Trigger,
)
from tandem.sync.transport import Acceptor, Connector, MemoryHub, MemoryTransport, Transport

__all__ = [
    "TRANSITIONS",
    "AckMessage",
    "Acceptor",
    "BackoffPolicy",
    "Component",
    "Connector",
    "Event",
    "EventMessage",
    "Hello",
    "HostedSession",
    "MemoryHub",
    "MemoryTransport",
    "Message",
    "PatchMessage",
    "ReconnectSupervisor",
    "ResyncMessage",
    "ResyncRequest",
    "Session",
    "SessionChannel",
    "SessionHost",
    "SessionRegistry",
    "StateDiffEmitter",
    "SupervisorState",
    "Transport",
    "Trigger",
    "decode_message",
    "encode_message",
    "message_kind",
    "new_session_id",
]
