"""Bounded FIFO of user events waiting to be transmitted."""

from __future__ import annotations

from collections import deque
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from collections.abc import Iterable, Iterator

    from tandem.sync.messages import Event


class PendingInputQueue:
    """Events captured while the client cannot transmit, in capture order.

    Full means full: ``append`` refuses new events instead of evicting old
    ones, since dropping the oldest input would reorder what the user did.

    """

    __slots__ = ("_capacity", "_events")

    def __init__(self, capacity: int) -> None:
        self._capacity = capacity
        self._events: deque[Event] = deque()

    @property
    def capacity(self) -> int:
        return self._capacity

    def __len__(self) -> int:
        return len(self._events)

    def __bool__(self) -> bool:
        return bool(self._events)

    def __iter__(self) -> Iterator[Event]:
        return iter(self._events)

    def append(self, event: Event) -> bool:
        """Queue an event.  Returns False (and drops it) when full."""
        if len(self._events) >= self._capacity:
            return False
        self._events.append(event)
        return True

    def requeue(self, events: Iterable[Event]) -> None:
        """Put events that were never transmitted back at the front.

        ``events`` must be in capture order; they are placed ahead of
        everything already queued.  Capacity is not enforced here, the
        events were accepted once already.

        """
        self._events.extendleft(reversed(list(events)))

    def drain(self) -> list[Event]:
        """Remove and return every queued event, oldest first."""
        events = list(self._events)
        self._events.clear()
        return events
