"""Event log — bounded, lock-protected store of session events.

Holds the most recent ``SyncEvent`` objects (oldest dropped first) and
answers the questions asked when debugging a session: what happened to
session X, in order; how often did clients fall back to a full resync;
how many acks were stale.

The log also accepts foreign events (the HTTP server's lifecycle events
when the collector doubles as Chirp's ``lifecycle_collector``); filters
read fields with ``getattr`` so those pass through untouched.

Thread Safety:
    Every method takes ``self._lock``; events are frozen, so returned
    lists can be read without it.

"""

import threading
from collections import Counter, deque
from typing import Any

from tandem.observability.events import AckReceived, ResyncSent, StatusChanged, SyncEvent


class EventLog:
    """Ring buffer of session events.

    Args:
        max_events: Capacity; older events are evicted past it.

    """

    __slots__ = ("_events", "_lock", "_max_events")

    def __init__(self, max_events: int = 10_000) -> None:
        self._max_events = max_events
        self._events: deque[SyncEvent] = deque(maxlen=max_events)
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._events)

    def append(self, event: SyncEvent) -> None:
        with self._lock:
            self._events.append(event)

    def clear(self) -> int:
        """Drop everything.  Returns how many events were dropped."""
        with self._lock:
            dropped = len(self._events)
            self._events.clear()
        return dropped

    def _snapshot(self) -> list[SyncEvent]:
        with self._lock:
            return list(self._events)

    # ----- Queries -----

    def query(
        self,
        *,
        event_type: type | None = None,
        session_id: str | None = None,
        since_ns: int = 0,
        limit: int = 100,
    ) -> list[SyncEvent]:
        """Filtered events, newest first.

        Args:
            event_type: Keep only instances of this class.
            session_id: Keep only this session's events.
            since_ns: Keep only events stamped at or after this time.
            limit: Stop after this many matches.

        """
        matches: list[SyncEvent] = []
        for event in reversed(self._snapshot()):
            if len(matches) >= limit:
                break
            if event_type is not None and not isinstance(event, event_type):
                continue
            if since_ns and getattr(event, "timestamp_ns", 0) < since_ns:
                continue
            if session_id is not None and getattr(event, "session_id", None) != session_id:
                continue
            matches.append(event)
        return matches

    def recent(self, n: int = 20) -> list[SyncEvent]:
        """The last ``n`` events, oldest first."""
        return self._snapshot()[-n:]

    def timeline(self, session_id: str) -> list[SyncEvent]:
        """Every retained event of one session, oldest first."""
        return [e for e in self._snapshot() if getattr(e, "session_id", None) == session_id]

    def status_history(self, session_id: str) -> list[str]:
        """The status values a session went through, in order."""
        return [e.status for e in self.timeline(session_id) if isinstance(e, StatusChanged)]

    # ----- Summary -----

    def stats(self) -> dict[str, Any]:
        """Counts for the stats endpoint.

        ``by_type`` counts events per class name, ``resyncs`` counts full
        resyncs per reason, and ``stale_acks`` counts ignored acks.

        """
        events = self._snapshot()
        by_type = Counter(type(e).__name__ for e in events)
        resyncs = Counter(e.reason for e in events if isinstance(e, ResyncSent))
        sessions = {sid for e in events if (sid := getattr(e, "session_id", None))}
        return {
            "total": len(events),
            "max_events": self._max_events,
            "sessions": len(sessions),
            "by_type": dict(by_type),
            "resyncs": dict(resyncs),
            "stale_acks": sum(1 for e in events if isinstance(e, AckReceived) and e.stale),
        }
