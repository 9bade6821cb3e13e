"""State diff emitter — turns server-side mutations into patches.

Each session owns one emitter.  The emitter holds the session's current
``ViewState`` and a render callback supplied by the component.  After every
mutation the host calls ``commit()``, which:

1. Re-renders the component into a fresh tree
2. Diffs it against the current tree (keyed, deterministic)
3. If anything changed, advances the version and stores the new state
4. Hands the patch to every subscriber (normally ``SessionChannel.send``)

``commit`` is synchronous, so two commits can never interleave and
patches reach subscribers in strictly increasing version order.
"""

from __future__ import annotations

import time
from typing import TYPE_CHECKING

from tandem.view.differ import diff_states
from tandem.view.tree import ViewState, validate_tree

if TYPE_CHECKING:
    from collections.abc import Callable

    from tandem.observability.collector import SyncCollector
    from tandem.view.patch import Patch
    from tandem.view.tree import Node


class StateDiffEmitter:
    """Renders, diffs, and publishes patches for one session.

    Args:
        render: Produces the component's current tree.  Called once at
            construction (version 0) and once per ``commit``.
        session_id: Used to tag observability events.
        collector: Optional observability collector.

    Raises:
        MalformedTree: If the initial render has duplicate sibling keys.

    """

    __slots__ = ("_collector", "_listeners", "_render", "_session_id", "_state")

    def __init__(
        self,
        render: Callable[[], Node],
        *,
        session_id: str = "",
        collector: SyncCollector | None = None,
    ) -> None:
        self._render = render
        self._session_id = session_id
        self._collector = collector
        self._listeners: list[Callable[[Patch], None]] = []
        root = render()
        validate_tree(root)
        self._state = ViewState(version=0, root=root)

    @property
    def state(self) -> ViewState:
        """The current ViewState (replaced, never mutated, on commit)."""
        return self._state

    @property
    def version(self) -> int:
        return self._state.version

    def subscribe(self, listener: Callable[[Patch], None]) -> Callable[[], None]:
        """Register a patch listener.  Returns a callable that unsubscribes it."""
        self._listeners.append(listener)

        def unsubscribe() -> None:
            if listener in self._listeners:
                self._listeners.remove(listener)

        return unsubscribe

    def commit(self) -> Patch | None:
        """Re-render and publish the difference.

        Returns:
            The new patch, or None when the render produced an equal tree
            (no version is consumed).

        Raises:
            MalformedTree: If the new tree is malformed.  Fatal to the session.

        """
        t0 = time.perf_counter()
        new_root = self._render()
        patch = diff_states(self._state, new_root)
        if not patch.ops:
            return None
        self._state = ViewState(version=patch.version, root=new_root)
        diff_ms = (time.perf_counter() - t0) * 1000

        if self._collector is not None:
            self._collector.record_patch(
                self._session_id, patch.version, ops=len(patch.ops), diff_ms=diff_ms
            )

        for listener in list(self._listeners):
            listener(patch)
        return patch
