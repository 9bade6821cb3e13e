"""Reconnect supervisor — connection-loss recovery as an explicit state machine.

States and triggers::

    Connected      --transport_lost-------> Reconnecting(1)
    Reconnecting(n)--attempt_failed-------> Reconnecting(n+1)
    Reconnecting(n)--handshake_ok---------> Connected
    Reconnecting(n)--attempts_exhausted---> Disconnected
    Disconnected   --retry----------------> Reconnecting(1)
    Disconnected   --handshake_ok---------> Connected        (manual connect)
    Disconnected   --grace_expired--------> Terminated
    any but Terminated --close------------> Terminated

Every transition goes through ``_fire`` and the table below; anything not in
the table is a programming error.  Observers registered with ``watch`` see
every transition, which is what drives the reconnect overlay.

Any exception raised by a reconnect attempt (``ChannelError``, ``OSError``,
a garbled handshake) counts as a failed attempt; failures are
handled here and never propagate to observers as exceptions.  Only the
``Disconnected`` and ``Terminated`` states are meant to be user-visible.
"""

from __future__ import annotations

import asyncio
import random
import sys
from dataclasses import dataclass
from enum import StrEnum
from typing import TYPE_CHECKING

from tandem._errors import ReconnectExhausted, TandemError
from tandem._types import ConnectionStatus
from tandem.config import SyncConfig

if TYPE_CHECKING:
    from collections.abc import Awaitable, Callable, Iterator

    from tandem.observability.collector import SyncCollector


class Trigger(StrEnum):
    TRANSPORT_LOST = "transport_lost"
    ATTEMPT_FAILED = "attempt_failed"
    HANDSHAKE_OK = "handshake_ok"
    ATTEMPTS_EXHAUSTED = "attempts_exhausted"
    RETRY = "retry"
    GRACE_EXPIRED = "grace_expired"
    CLOSE = "close"


_C = ConnectionStatus

TRANSITIONS: dict[tuple[ConnectionStatus, Trigger], ConnectionStatus] = {
    (_C.CONNECTED, Trigger.TRANSPORT_LOST): _C.RECONNECTING,
    (_C.RECONNECTING, Trigger.ATTEMPT_FAILED): _C.RECONNECTING,
    (_C.RECONNECTING, Trigger.HANDSHAKE_OK): _C.CONNECTED,
    (_C.RECONNECTING, Trigger.ATTEMPTS_EXHAUSTED): _C.DISCONNECTED,
    (_C.DISCONNECTED, Trigger.RETRY): _C.RECONNECTING,
    (_C.DISCONNECTED, Trigger.HANDSHAKE_OK): _C.CONNECTED,
    (_C.DISCONNECTED, Trigger.GRACE_EXPIRED): _C.TERMINATED,
    (_C.CONNECTED, Trigger.CLOSE): _C.TERMINATED,
    (_C.RECONNECTING, Trigger.CLOSE): _C.TERMINATED,
    (_C.DISCONNECTED, Trigger.CLOSE): _C.TERMINATED,
}


@dataclass(frozen=True, slots=True)
class SupervisorState:
    """Observable connection state.

    Attributes:
        status: Current status.
        attempt: Reconnect attempt in progress (0 unless ``Reconnecting``;
            the attempt count that was exhausted while ``Disconnected``).

    """

    status: ConnectionStatus
    attempt: int = 0


class BackoffPolicy:
    """Exponential backoff with a ceiling and jitter.

    The nominal delay before attempt ``n`` is
    ``min(ceiling, base * factor ** (n - 1))``.  A ``jitter`` fraction of it
    is randomized, then each delay in a schedule is clamped to be no
    shorter than the one before it and no longer than the ceiling.

    Args:
        base: Nominal delay before the first attempt (seconds).
        factor: Growth factor per attempt.
        ceiling: Upper bound on any delay (seconds).
        jitter: Randomized fraction of each nominal delay, within [0, 1].
        rng: Random source (injectable for tests).

    """

    __slots__ = ("base", "ceiling", "factor", "jitter", "_rng")

    def __init__(
        self,
        base: float,
        factor: float,
        ceiling: float,
        jitter: float,
        *,
        rng: random.Random | None = None,
    ) -> None:
        self.base = base
        self.factor = factor
        self.ceiling = ceiling
        self.jitter = jitter
        self._rng = rng if rng is not None else random.Random()

    @classmethod
    def from_config(cls, config: SyncConfig, *, rng: random.Random | None = None) -> BackoffPolicy:
        return cls(
            config.backoff_base,
            config.backoff_factor,
            config.backoff_ceiling,
            config.backoff_jitter,
            rng=rng,
        )

    def nominal(self, attempt: int) -> float:
        """Un-jittered delay before ``attempt`` (1-based)."""
        return min(self.ceiling, self.base * self.factor ** (attempt - 1))

    def schedule(self) -> Iterator[float]:
        """Infinite, non-decreasing sequence of jittered delays."""
        previous = 0.0
        attempt = 1
        while True:
            nominal = self.nominal(attempt)
            spread = nominal * self.jitter
            delay = nominal - spread + spread * self._rng.random()
            delay = min(self.ceiling, max(previous, delay))
            previous = delay
            attempt += 1
            yield delay


class ReconnectSupervisor:
    """Drives reconnection for one session.

    Args:
        reconnect: Coroutine function performing one attempt (dial +
            handshake).  Raising any exception marks the
            attempt as failed; returning marks it successful.
        config: Backoff, attempt, and grace settings.
        initial: Starting status (``Disconnected`` until the first connect).
        rng: Random source for jitter.
        sleep: Awaitable sleep function (injectable for tests).
        session_id: Used to tag observability events.
        collector: Optional observability collector.

    """

    def __init__(
        self,
        reconnect: Callable[[], Awaitable[None]],
        *,
        config: SyncConfig | None = None,
        initial: ConnectionStatus = ConnectionStatus.DISCONNECTED,
        rng: random.Random | None = None,
        sleep: Callable[[float], Awaitable[None]] = asyncio.sleep,
        session_id: str = "",
        collector: SyncCollector | None = None,
    ) -> None:
        self._reconnect = reconnect
        self._config = config if config is not None else SyncConfig()
        self._policy = BackoffPolicy.from_config(self._config, rng=rng)
        self._sleep = sleep
        self._session_id = session_id
        self._collector = collector
        self._state = SupervisorState(initial)
        self._observers: list[Callable[[SupervisorState], None]] = []
        self._loop_task: asyncio.Task[None] | None = None
        self._grace_task: asyncio.Task[None] | None = None
        self.last_error: TandemError | None = None
        self.delays: list[float] = []

    # ----- Observation -----

    @property
    def state(self) -> SupervisorState:
        return self._state

    @property
    def status(self) -> ConnectionStatus:
        return self._state.status

    @property
    def policy(self) -> BackoffPolicy:
        return self._policy

    def watch(self, observer: Callable[[SupervisorState], None]) -> Callable[[], None]:
        """Register a transition observer.  Returns an unsubscribe callable."""
        self._observers.append(observer)

        def unwatch() -> None:
            if observer in self._observers:
                self._observers.remove(observer)

        return unwatch

    async def wait_for(self, *statuses: ConnectionStatus) -> SupervisorState:
        """Suspend until the status is one of ``statuses``."""
        if self._state.status in statuses:
            return self._state
        future: asyncio.Future[SupervisorState] = asyncio.get_running_loop().create_future()

        def check(state: SupervisorState) -> None:
            if state.status in statuses and not future.done():
                future.set_result(state)

        unwatch = self.watch(check)
        try:
            return await future
        finally:
            unwatch()

    # ----- Triggers -----

    def connected(self) -> None:
        """A manual connect succeeded (first connect, or from ``Disconnected``)."""
        if self._state.status is ConnectionStatus.DISCONNECTED:
            self._cancel_grace()
            self._fire(Trigger.HANDSHAKE_OK)

    def connection_lost(self) -> None:
        """The transport dropped.  Starts the reconnect loop when connected."""
        if self._state.status is not ConnectionStatus.CONNECTED:
            return
        self._fire(Trigger.TRANSPORT_LOST, attempt=1)
        self._start_loop()

    def retry(self) -> None:
        """User-initiated retry from ``Disconnected``."""
        if self._state.status is not ConnectionStatus.DISCONNECTED:
            return
        self._cancel_grace()
        self.last_error = None
        self._fire(Trigger.RETRY, attempt=1)
        self._start_loop()

    async def close(self) -> None:
        """Cancel any in-flight attempt or grace timer and terminate."""
        tasks = [t for t in (self._loop_task, self._grace_task) if t is not None and not t.done()]
        for task in tasks:
            if task is not asyncio.current_task():
                task.cancel()
        for task in tasks:
            if task is not asyncio.current_task():
                try:
                    await task
                except asyncio.CancelledError:
                    pass
        if self._state.status is not ConnectionStatus.TERMINATED:
            self._fire(Trigger.CLOSE)

    # ----- Internals -----

    def _fire(self, trigger: Trigger, *, attempt: int = 0) -> None:
        target = TRANSITIONS.get((self._state.status, trigger))
        if target is None:
            msg = f"no transition from {self._state.status} on {trigger}"
            raise TandemError(msg)
        self._state = SupervisorState(target, attempt)
        if self._collector is not None:
            self._collector.record_status(self._session_id, target, attempt=attempt)
        for observer in list(self._observers):
            try:
                observer(self._state)
            except Exception as exc:
                print(f"  Status observer error: {exc}", file=sys.stderr)

    def _start_loop(self) -> None:
        self._loop_task = asyncio.create_task(self._run())

    def _cancel_grace(self) -> None:
        if self._grace_task is not None and not self._grace_task.done():
            self._grace_task.cancel()
        self._grace_task = None

    async def _run(self) -> None:
        schedule = self._policy.schedule()
        attempt = 1
        while True:
            delay = next(schedule)
            self.delays.append(delay)
            await self._sleep(delay)
            try:
                await self._reconnect()
            except Exception as exc:
                print(f"  Reconnect attempt {attempt} failed: {exc}", file=sys.stderr)
                if attempt >= self._config.max_attempts:
                    self.last_error = ReconnectExhausted(attempt)
                    print(f"  Connection lost: {self.last_error}", file=sys.stderr)
                    self._fire(Trigger.ATTEMPTS_EXHAUSTED, attempt=attempt)
                    self._grace_task = asyncio.create_task(self._expire())
                    return
                attempt += 1
                self._fire(Trigger.ATTEMPT_FAILED, attempt=attempt)
                continue
            self._fire(Trigger.HANDSHAKE_OK)
            return

    async def _expire(self) -> None:
        await self._sleep(self._config.grace_period)
        if self._state.status is ConnectionStatus.DISCONNECTED:
            self._fire(Trigger.GRACE_EXPIRED)
