"""Tandem configuration.

SyncConfig is the central configuration object, frozen after creation.
"""

from dataclasses import dataclass, field
from pathlib import Path

from tandem._errors import ConfigError


@dataclass(frozen=True, slots=True)
class SyncConfig:
    """Configuration for a Tandem server and its clients.

    Attributes:
        root: Project root (where ``tandem.yaml`` lives).  Always resolved
              to an absolute path on construction.
        host: Bind address for ``serve``.
        port: Bind port for ``serve``.
        backoff_base: Delay before the first reconnect attempt, in seconds.
        backoff_factor: Multiplier applied to the delay after each failure.
        backoff_ceiling: Upper bound on any single reconnect delay, in seconds.
        backoff_jitter: Fraction of each nominal delay that is randomized
            (0 disables jitter, 1 randomizes the full delay).
        max_attempts: Failed attempts tolerated before ``Disconnected``.
        grace_period: Seconds a ``Disconnected`` session survives without a
            retry before it is ``Terminated``.
        outbound_capacity: Patches queued per session before the queue is
            dropped in favour of a full resync.
        pending_capacity: Events a client buffers while not connected.
        reorder_window: Out-of-order patches a client buffers while waiting
            for a gap to close before it requests a resync.
        accept_timeout: Seconds the server waits for a client to dial in
            when a session is first opened.

    """

    root: Path = field(default_factory=Path.cwd)
    host: str = "127.0.0.1"
    port: int = 3000
    backoff_base: float = 0.5
    backoff_factor: float = 2.0
    backoff_ceiling: float = 30.0
    backoff_jitter: float = 0.2
    max_attempts: int = 8
    grace_period: float = 60.0
    outbound_capacity: int = 256
    pending_capacity: int = 1024
    reorder_window: int = 32
    accept_timeout: float = 10.0

    def __post_init__(self) -> None:
        if not self.root.is_absolute():
            object.__setattr__(self, "root", self.root.resolve())
        if self.backoff_base <= 0:
            msg = f"backoff_base must be positive, got {self.backoff_base}"
            raise ConfigError(msg)
        if self.backoff_factor < 1:
            msg = f"backoff_factor must be >= 1, got {self.backoff_factor}"
            raise ConfigError(msg)
        if self.backoff_ceiling < self.backoff_base:
            msg = (
                f"backoff_ceiling ({self.backoff_ceiling}) is below "
                f"backoff_base ({self.backoff_base})"
            )
            raise ConfigError(msg)
        if not 0.0 <= self.backoff_jitter <= 1.0:
            msg = f"backoff_jitter must be within [0, 1], got {self.backoff_jitter}"
            raise ConfigError(msg)
        for name in ("max_attempts", "outbound_capacity", "pending_capacity", "reorder_window"):
            if getattr(self, name) < 1:
                msg = f"{name} must be at least 1, got {getattr(self, name)}"
                raise ConfigError(msg)
        if self.grace_period < 0 or self.accept_timeout <= 0:
            msg = "grace_period must be >= 0 and accept_timeout must be positive"
            raise ConfigError(msg)

    @property
    def reconnect_window(self) -> float:
        """Worst-case seconds a client spends retrying before giving up."""
        return sum(
            min(self.backoff_ceiling, self.backoff_base * self.backoff_factor ** n)
            for n in range(self.max_attempts)
        )

    @property
    def session_timeout(self) -> float:
        """Seconds the server keeps a lost session before reclaiming it."""
        return self.reconnect_window + self.grace_period
