"""Unified event model for session observability.

Defines event types for session lifecycle, patch delivery, and reconnection.

All events are frozen dataclasses with:
- ``session_id``: The session the event belongs to
- ``timestamp_ns``: Monotonic nanosecond timestamp
- Descriptive fields for the specific event type

Thread Safety:
    All events are frozen (immutable) and safe to share across threads.

"""

import time
from dataclasses import dataclass
from typing import Literal


# ---------------------------------------------------------------------------
# Session lifecycle
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class SessionOpened:
    """A session's channel was established for the first time."""

    session_id: str
    client_version: int
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class SessionEnded:
    """A session was closed and its resources reclaimed.

    Attributes:
        session_id: The session.
        reason: ``closed`` (explicit), ``timeout`` (grace period expired),
            or ``error`` (fatal diff or handler failure).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session_id: str
    reason: Literal["closed", "timeout", "error"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class StatusChanged:
    """The connection status of a session changed.

    Attributes:
        session_id: The session.
        status: New status value (``connected``, ``reconnecting``, ...).
        attempt: Reconnect attempt number (0 when not reconnecting).
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session_id: str
    status: str
    attempt: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Delivery
# ---------------------------------------------------------------------------


@dataclass(frozen=True, slots=True)
class PatchEmitted:
    """The emitter committed a new version.

    Attributes:
        session_id: The session.
        version: Version the patch produces.
        ops: Number of operations in the patch.
        diff_ms: Time spent rendering and diffing in milliseconds.
        timestamp_ns: Monotonic nanosecond timestamp.

    """

    session_id: str
    version: int
    ops: int
    diff_ms: float
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class ResyncSent:
    """A full tree was queued for the client instead of patches."""

    session_id: str
    version: int
    reason: Literal["reconnect", "overflow", "requested", "handshake"]
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class AckReceived:
    """An acknowledgement arrived.  ``stale`` acks were ignored."""

    session_id: str
    version: int
    stale: bool
    timestamp_ns: int


@dataclass(frozen=True, slots=True)
class EventsReplayed:
    """Events buffered during an outage were transmitted after reconnect."""

    session_id: str
    count: int
    timestamp_ns: int


# ---------------------------------------------------------------------------
# Union type
# ---------------------------------------------------------------------------

type SyncEvent = (
    SessionOpened
    | SessionEnded
    | StatusChanged
    | PatchEmitted
    | ResyncSent
    | AckReceived
    | EventsReplayed
)


def now_ns() -> int:
    """Return the current monotonic clock value in nanoseconds."""
    return time.monotonic_ns()
