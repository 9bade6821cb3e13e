"""Shared test fixtures for tandem."""

from __future__ import annotations

import asyncio
from pathlib import Path
from typing import Any

import pytest

from tandem.config import SyncConfig
from tandem.sync.messages import Event
from tandem.view.tree import Node, element

# Fake-sleep value that blocks until released; used as the grace period so
# tests can observe the Disconnected state before it expires.
HELD_GRACE = 5.0


class Counter:
    """Minimal component: a count and an increment button."""

    def __init__(self) -> None:
        self.count = 0
        self.handled: list[Event] = []
        self.statuses: list[str] = []

    def render(self) -> Node:
        return element(
            "div", "counter",
            element("span", "value", text=str(self.count)),
            element("button", "inc", text="+", on_click="increment"),
        )

    def handle_event(self, event: Event) -> None:
        self.handled.append(event)
        if event.name == "increment":
            self.count += 1
        elif event.name == "boom":
            raise ValueError("handler exploded")

    def on_status(self, status: str) -> None:
        self.statuses.append(status)


class TodoList:
    """Keyed list component: add, remove, and move items."""

    def __init__(self, items: list[tuple[str, str]] | None = None) -> None:
        self.items = list(items or [])

    def render(self) -> Node:
        return element(
            "ul", "todos",
            *(element("li", key, text=title) for key, title in self.items),
        )

    async def handle_event(self, event: Event) -> None:
        payload: dict[str, Any] = dict(event.payload)
        if event.name == "add":
            self.items.append((payload["id"], payload["title"]))
        elif event.name == "remove":
            self.items = [i for i in self.items if i[0] != event.target]
        elif event.name == "to-top":
            item = next(i for i in self.items if i[0] == event.target)
            self.items.remove(item)
            self.items.insert(0, item)


class FakeSleep:
    """Records requested delays and returns immediately.

    Delays listed in ``hold`` block until ``release()`` is called.
    """

    def __init__(self, hold: tuple[float, ...] = ()) -> None:
        self.calls: list[float] = []
        self._hold = set(hold)
        self._gate = asyncio.Event()

    async def __call__(self, delay: float) -> None:
        self.calls.append(delay)
        if delay in self._hold:
            await self._gate.wait()
        else:
            await asyncio.sleep(0)

    def release(self) -> None:
        self._gate.set()


async def settle(rounds: int = 50) -> None:
    """Let every runnable task advance."""
    for _ in range(rounds):
        await asyncio.sleep(0)


@pytest.fixture
def fast_config(tmp_path: Path) -> SyncConfig:
    """Small delays and limits for in-process sessions."""
    return SyncConfig(
        root=tmp_path,
        backoff_base=0.01,
        backoff_factor=2.0,
        backoff_ceiling=0.08,
        backoff_jitter=0.2,
        max_attempts=3,
        grace_period=HELD_GRACE,
        outbound_capacity=8,
        pending_capacity=16,
        reorder_window=4,
        accept_timeout=1.0,
    )
