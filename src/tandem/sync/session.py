"""Sessions and the session registry.

A ``Session`` is the server's record of one client view: its id, its
connection status, and the last version the client acknowledged.  It is
owned and mutated only by that session's host task.

The ``SessionRegistry`` is the one structure shared across sessions: a
lock-protected id -> entry map used by the web layer to route incoming
frames and by the stats endpoint.
"""

from __future__ import annotations

import secrets
import threading
from dataclasses import dataclass, field
from typing import TYPE_CHECKING, Any

from tandem._types import ConnectionStatus
from tandem.observability.events import now_ns

if TYPE_CHECKING:
    from collections.abc import Iterator


def new_session_id() -> str:
    """Generate an opaque, URL-safe session token."""
    return secrets.token_urlsafe(16)


@dataclass(slots=True)
class Session:
    """Server-side record of one client-server pairing.

    Attributes:
        session_id: Opaque token identifying the session.
        status: Current connection status.
        acked_version: Last version the client acknowledged.
        last_event_seq: Highest client event sequence number applied.
        created_ns: Monotonic creation timestamp.
        lost_ns: When the transport was last lost (0 while connected).

    """

    session_id: str
    status: ConnectionStatus = ConnectionStatus.CONNECTED
    acked_version: int = 0
    last_event_seq: int = 0
    created_ns: int = field(default_factory=now_ns)
    lost_ns: int = 0

    @property
    def is_live(self) -> bool:
        """True until the session is terminated."""
        return self.status is not ConnectionStatus.TERMINATED


class SessionRegistry:
    """Maps session ids to whatever the host stores for each session.

    Thread-safe: the map is protected by a lock.  Per-worker: each server
    process has its own registry, so a client must reconnect to the worker
    that owns its session.

    """

    def __init__(self) -> None:
        self._entries: dict[str, Any] = {}
        self._lock = threading.Lock()

    def __len__(self) -> int:
        with self._lock:
            return len(self._entries)

    def __contains__(self, session_id: object) -> bool:
        with self._lock:
            return session_id in self._entries

    def add(self, session_id: str, entry: Any) -> None:
        with self._lock:
            self._entries[session_id] = entry

    def get(self, session_id: str) -> Any | None:
        with self._lock:
            return self._entries.get(session_id)

    def discard(self, session_id: str) -> Any | None:
        """Remove and return an entry (None when absent)."""
        with self._lock:
            return self._entries.pop(session_id, None)

    def snapshot(self) -> dict[str, Any]:
        """Copy of the map (no lock held on return)."""
        with self._lock:
            return dict(self._entries)

    def __iter__(self) -> Iterator[str]:
        return iter(self.snapshot())
