"""Wire messages and their JSON codec.

Every frame on a transport is one of the message dataclasses below.  The
JSON form is an object with a ``kind`` tag; ``encode_message`` and
``decode_message`` are the only functions that know about it.

Direction:
    client -> server: ``hello``, ``event``, ``ack``, ``resync-request``
    server -> client: ``patch``, ``resync``
"""

from __future__ import annotations

import json
from collections.abc import Mapping
from dataclasses import dataclass, field
from typing import Any

from tandem._errors import ProtocolError
from tandem.view.patch import Patch
from tandem.view.tree import ViewState


@dataclass(frozen=True, slots=True)
class Event:
    """A user interaction captured by the client.

    Attributes:
        name: Event name (``"click"``, ``"input"``, ...).
        target: Key of the node the event fired on.
        payload: Event data (input value, coordinates, ...).
        seq: Client-assigned capture sequence number (0 until captured).

    """

    name: str
    target: str = ""
    payload: Mapping[str, Any] = field(default_factory=dict)
    seq: int = 0


@dataclass(frozen=True, slots=True)
class Hello:
    """Handshake sent by the client as the first frame of every connection."""

    session_id: str
    version: int


@dataclass(frozen=True, slots=True)
class PatchMessage:
    patch: Patch


@dataclass(frozen=True, slots=True)
class ResyncMessage:
    """Full tree, sent instead of patches when the client may have missed some.

    ``last_event_seq`` is the highest client event sequence number the server
    has applied; the client drops queued events at or below it.

    """

    state: ViewState
    last_event_seq: int = 0


@dataclass(frozen=True, slots=True)
class EventMessage:
    event: Event


@dataclass(frozen=True, slots=True)
class AckMessage:
    """The client is now at ``version``."""

    version: int


@dataclass(frozen=True, slots=True)
class ResyncRequest:
    """The client hit a gap it cannot close and asks for the full tree."""

    version: int


type Message = Hello | PatchMessage | ResyncMessage | EventMessage | AckMessage | ResyncRequest


def message_kind(message: Message) -> str:
    """Return the ``kind`` tag used on the wire for ``message``."""
    return _KINDS[type(message)]


def encode_message(message: Message) -> str:
    """Serialize a message to its JSON wire form."""
    return json.dumps(to_wire(message), separators=(",", ":"))


def decode_message(raw: str | bytes) -> Message:
    """Parse a JSON frame.

    Raises:
        ProtocolError: On invalid JSON, unknown kinds, or missing fields.

    """
    try:
        data = json.loads(raw)
    except (json.JSONDecodeError, UnicodeDecodeError) as exc:
        msg = f"invalid frame: {exc}"
        raise ProtocolError(msg) from exc
    if not isinstance(data, dict):
        msg = "frame must be a JSON object"
        raise ProtocolError(msg)
    return from_wire(data)


def to_wire(message: Message) -> dict[str, Any]:
    kind = message_kind(message)
    if isinstance(message, Hello):
        body: dict[str, Any] = {"session": message.session_id, "version": message.version}
    elif isinstance(message, PatchMessage):
        body = {"patch": message.patch.to_dict()}
    elif isinstance(message, ResyncMessage):
        body = {"state": message.state.to_dict(), "events": message.last_event_seq}
    elif isinstance(message, EventMessage):
        e = message.event
        body = {"name": e.name, "target": e.target, "payload": dict(e.payload), "seq": e.seq}
    else:
        body = {"version": message.version}
    return {"kind": kind, **body}


def from_wire(data: Mapping[str, Any]) -> Message:
    kind = data.get("kind")
    try:
        if kind == "hello":
            return Hello(session_id=str(data["session"]), version=int(data["version"]))
        if kind == "patch":
            return PatchMessage(patch=Patch.from_dict(data["patch"]))
        if kind == "resync":
            return ResyncMessage(
                state=ViewState.from_dict(data["state"]),
                last_event_seq=int(data.get("events", 0)),
            )
        if kind == "event":
            return EventMessage(
                event=Event(
                    name=str(data["name"]),
                    target=str(data.get("target", "")),
                    payload=dict(data.get("payload") or {}),
                    seq=int(data.get("seq", 0)),
                )
            )
        if kind == "ack":
            return AckMessage(version=int(data["version"]))
        if kind == "resync-request":
            return ResyncRequest(version=int(data["version"]))
    except (KeyError, TypeError, ValueError) as exc:
        msg = f"malformed {kind!r} frame: {exc}"
        raise ProtocolError(msg) from exc
    msg = f"unknown frame kind {kind!r}"
    raise ProtocolError(msg)


_KINDS: dict[type, str] = {
    Hello: "hello",
    PatchMessage: "patch",
    ResyncMessage: "resync",
    EventMessage: "event",
    AckMessage: "ack",
    ResyncRequest: "resync-request",
}
