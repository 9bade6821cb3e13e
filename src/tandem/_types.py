"""Shared type definitions for tandem."""

from collections.abc import Awaitable, Callable
from enum import StrEnum
from typing import Any


class ConnectionStatus(StrEnum):
    """Connection status of a session, as shown to the presentation layer."""

    CONNECTED = "connected"
    RECONNECTING = "reconnecting"
    DISCONNECTED = "disconnected"
    TERMINATED = "terminated"


# Opaque session token
type SessionID = str

# Stable identity of a node among its siblings
type NodeKey = str

# Position of a node as the chain of keys below the root
type KeyPath = tuple[NodeKey, ...]

# Monotonic view-state version
type Version = int

# Attribute values carried on nodes
type AttrValue = str | int | float | bool | None

# Callback that may or may not be a coroutine function
type MaybeAsync = Callable[..., Awaitable[Any] | None]
