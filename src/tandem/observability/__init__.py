"""Session observability — one event model for server and client.

Aggregates events from:
- **Channel**: session open/close, resyncs, acknowledgements
- **Emitter**: committed patches with diff timing
- **Supervisor / host**: connection status transitions, replayed input

All events are frozen dataclasses with nanosecond timestamps, safe for
concurrent production from multiple threads.

Quick Start:
    >>> from tandem.observability import SyncCollector, EventLog
    >>> log = EventLog()
    >>> collector = SyncCollector(log)
    >>> # Pass collector to SessionHost / ClientSession

"""

from tandem.observability.collector import SyncCollector
from tandem.observability.events import (
    AckReceived,
    EventsReplayed,
    PatchEmitted,
    ResyncSent,
    SessionEnded,
    SessionOpened,
    StatusChanged,
    SyncEvent,
    now_ns,
)
from tandem.observability.log import EventLog

__all__ = [
    "AckReceived",
    "EventLog",
    "EventsReplayed",
    "PatchEmitted",
    "ResyncSent",
    "SessionEnded",
    "SessionOpened",
    "StatusChanged",
    "SyncCollector",
    "SyncEvent",
    "now_ns",
]
