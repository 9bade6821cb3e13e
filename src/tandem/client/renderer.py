"""Client renderer — the client's copy of the view and its input queue.

Patches:
    A patch applies only on top of the version it was computed from.
    Anything at or below the current version is a duplicate and is dropped.
    A patch from the future is parked in a small reorder buffer keyed by
    its base version; as soon as the gap closes the buffered chain is
    applied in version order.  When the buffer is full the gap is declared
    unrecoverable and ``PatchOutOfOrder`` asks the caller to resync.

Input:
    ``capture_event`` stamps each event with a sequence number.  Events go
    straight to ``transmit`` only while connected, not held, and with
    nothing older still queued; otherwise they join the pending queue so
    capture order is never broken.  After a reconnect the queue is held
    until the full resync lands, then ``replay_pending`` sends it in order.
"""

from __future__ import annotations

import dataclasses
import sys
from enum import StrEnum
from typing import TYPE_CHECKING

from tandem._errors import MalformedTree, PatchOutOfOrder
from tandem._types import ConnectionStatus
from tandem.client.pending import PendingInputQueue
from tandem.view.patch import apply_patch
from tandem.view.tree import ViewState

if TYPE_CHECKING:
    from collections.abc import Callable, Iterable

    from tandem.sync.messages import Event
    from tandem.view.patch import Patch
    from tandem.view.tree import Node


class PatchOutcome(StrEnum):
    APPLIED = "applied"
    DISCARDED = "discarded"
    BUFFERED = "buffered"


class ClientRenderer:
    """Applies patches and queues input for one client view.

    Args:
        transmit: Sends one event to the server.  Called synchronously, in
            capture order.
        reorder_window: Out-of-order patches buffered before giving up.
        pending_capacity: Events queued while not connected.
        initial: Server-rendered starting state, if the page shipped one.

    """

    def __init__(
        self,
        transmit: Callable[[Event], None],
        *,
        reorder_window: int = 32,
        pending_capacity: int = 1024,
        initial: ViewState | None = None,
    ) -> None:
        self._transmit = transmit
        self._reorder_window = reorder_window
        self._state = initial
        self._buffer: dict[int, Patch] = {}
        self._seq = 0
        self._holding = False
        self.pending = PendingInputQueue(pending_capacity)
        self.status = ConnectionStatus.DISCONNECTED

    # ----- View -----

    @property
    def state(self) -> ViewState | None:
        return self._state

    @property
    def version(self) -> int:
        """Current version, or -1 before any state has been received."""
        return self._state.version if self._state is not None else -1

    @property
    def root(self) -> Node | None:
        return self._state.root if self._state is not None else None

    @property
    def buffered(self) -> int:
        return len(self._buffer)

    def apply_patch(self, patch: Patch) -> PatchOutcome:
        """Apply, buffer, or drop a patch.

        Raises:
            PatchOutOfOrder: If the reorder buffer is full or the patch does
                not fit the local tree.  The buffer is cleared; the caller
                should request a resync.

        """
        if patch.version <= self.version:
            return PatchOutcome.DISCARDED
        if self._state is None or patch.base_version != self._state.version:
            if patch.base_version in self._buffer:
                return PatchOutcome.DISCARDED
            if len(self._buffer) >= self._reorder_window:
                self._buffer.clear()
                raise PatchOutOfOrder(self.version, patch.base_version)
            self._buffer[patch.base_version] = patch
            return PatchOutcome.BUFFERED
        self._apply(patch)
        self._drain_buffer()
        return PatchOutcome.APPLIED

    def adopt(self, state: ViewState) -> bool:
        """Replace the local tree with a full server snapshot.

        Returns:
            False if ``state`` is older than what is already shown.

        """
        if state.version < self.version:
            return False
        self._state = state
        self._buffer = {base: p for base, p in self._buffer.items() if base >= state.version}
        self._drain_buffer()
        return True

    def _apply(self, patch: Patch) -> None:
        assert self._state is not None
        try:
            root = apply_patch(self._state.root, patch)
        except MalformedTree as exc:
            self._buffer.clear()
            raise PatchOutOfOrder(self._state.version, patch.base_version) from exc
        self._state = ViewState(version=patch.version, root=root)

    def _drain_buffer(self) -> None:
        while self._state is not None:
            patch = self._buffer.pop(self._state.version, None)
            if patch is None:
                return
            self._apply(patch)

    # ----- Input -----

    def capture_event(self, event: Event) -> Event | None:
        """Record a user interaction.

        Returns:
            The event stamped with its sequence number, or None when the
            pending queue is full or the session is terminated and the
            event was dropped.

        """
        if self.status is ConnectionStatus.TERMINATED:
            print(f"  Session terminated: dropped {event.name!r}", file=sys.stderr)
            return None
        self._seq += 1
        stamped = dataclasses.replace(event, seq=self._seq)
        if self.status is ConnectionStatus.CONNECTED and not self._holding and not self.pending:
            self._transmit(stamped)
            return stamped
        if not self.pending.append(stamped):
            print(
                f"  Input queue full ({self.pending.capacity}): dropped {event.name!r}",
                file=sys.stderr,
            )
            return None
        return stamped

    def hold_input(self) -> None:
        """Queue all input until ``replay_pending`` (awaiting a resync)."""
        self._holding = True

    def discard_input(self) -> int:
        """Forget queued input and buffered patches (the session is gone).

        Returns:
            Number of queued events dropped.

        """
        self._holding = False
        self._buffer.clear()
        return len(self.pending.drain())

    def requeue(self, events: Iterable[Event]) -> None:
        """Return events that may not have reached the server to the queue front."""
        self.pending.requeue(events)

    def confirm(self, last_event_seq: int) -> int:
        """Drop queued events the server has already applied.

        Returns:
            Number of events dropped.

        """
        queued = self.pending.drain()
        kept = [e for e in queued if e.seq > last_event_seq]
        self.pending.requeue(kept)
        return len(queued) - len(kept)

    def replay_pending(self) -> int:
        """Release held input and transmit everything queued, oldest first.

        Returns:
            Number of events transmitted.

        """
        self._holding = False
        events = self.pending.drain()
        for event in events:
            self._transmit(event)
        return len(events)
