"""Sync collector — records session events into an EventLog.

The channel, emitter, host, and client session each take an optional
collector.  When present they report lifecycle and delivery events through
the ``record_*`` methods below; when absent they skip the bookkeeping.

Thread Safety:
    The collector delegates to ``EventLog`` which is internally locked.

"""

from __future__ import annotations

from typing import TYPE_CHECKING, Any

from tandem.observability.events import (
    AckReceived,
    EventsReplayed,
    PatchEmitted,
    ResyncSent,
    SessionEnded,
    SessionOpened,
    StatusChanged,
    now_ns,
)
from tandem.observability.log import EventLog

if TYPE_CHECKING:
    from tandem.observability.events import SyncEvent


class SyncCollector:
    """Unified event collector for server and client sessions.

    Args:
        log: The EventLog to store events in.

    """

    __slots__ = ("_log",)

    def __init__(self, log: EventLog | None = None) -> None:
        self._log = log if log is not None else EventLog()

    @property
    def log(self) -> EventLog:
        """The underlying event log."""
        return self._log

    def record(self, event: SyncEvent | Any) -> None:
        """Record a prebuilt event.

        Also the entry point for HTTP server lifecycle events when the
        collector is passed to ``App.run`` as ``lifecycle_collector``.

        """
        self._log.append(event)

    # ----- Lifecycle -----

    def record_open(self, session_id: str, *, client_version: int = 0) -> None:
        self._log.append(
            SessionOpened(session_id=session_id, client_version=client_version, timestamp_ns=now_ns())
        )

    def record_close(self, session_id: str, *, reason: str = "closed") -> None:
        self._log.append(
            SessionEnded(
                session_id=session_id,
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_status(self, session_id: str, status: str, *, attempt: int = 0) -> None:
        """Record a connection status transition."""
        self._log.append(
            StatusChanged(
                session_id=session_id, status=str(status), attempt=attempt, timestamp_ns=now_ns()
            )
        )

    # ----- Delivery -----

    def record_patch(
        self, session_id: str, version: int, *, ops: int = 0, diff_ms: float = 0.0
    ) -> None:
        self._log.append(
            PatchEmitted(
                session_id=session_id, version=version, ops=ops,
                diff_ms=diff_ms, timestamp_ns=now_ns(),
            )
        )

    def record_resync(self, session_id: str, version: int, *, reason: str) -> None:
        self._log.append(
            ResyncSent(
                session_id=session_id,
                version=version,
                reason=reason,  # type: ignore[arg-type]
                timestamp_ns=now_ns(),
            )
        )

    def record_ack(self, session_id: str, version: int, *, stale: bool = False) -> None:
        self._log.append(
            AckReceived(session_id=session_id, version=version, stale=stale, timestamp_ns=now_ns())
        )

    def record_replay(self, session_id: str, count: int) -> None:
        self._log.append(EventsReplayed(session_id=session_id, count=count, timestamp_ns=now_ns()))
