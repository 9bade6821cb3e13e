"""Tandem error hierarchy.

All tandem-specific errors inherit from TandemError for easy catching.
"""


class TandemError(Exception):
    """Base error for all tandem operations."""


class ConfigError(TandemError):
    """Invalid or missing configuration."""


class ProtocolError(TandemError):
    """A wire message could not be decoded or was not expected."""


class MalformedTree(TandemError):
    """A view tree violates the node invariants (duplicate keys, root swap).

    Raised by the differ.  This is a programming error in the component
    that produced the tree and is fatal to the session.
    """


class SessionClosed(TandemError):
    """Operation attempted on a session that was closed or terminated."""


class ChannelError(TandemError):
    """Error in the session channel (transport, acknowledgement)."""


class ChannelUnavailable(ChannelError):
    """No transport could be established for a session."""


class TransportClosed(ChannelError):
    """The transport under a session went away mid-stream."""


class StaleAck(ChannelError):
    """An acknowledgement named a version the server no longer tracks.

    Attributes:
        version: The acknowledged version.
        acked: The session's last-acknowledged version.
        sent: The highest version transmitted to the client.

    """

    def __init__(self, version: int, acked: int, sent: int) -> None:
        super().__init__(f"ack for v{version} outside tracked range (v{acked}, v{sent}]")
        self.version = version
        self.acked = acked
        self.sent = sent


class PatchOutOfOrder(TandemError):
    """The client saw a version gap it could not close from its buffer.

    Attributes:
        expected: The base version the renderer needed next.
        received: The base version of the patch that arrived.

    """

    def __init__(self, expected: int, received: int) -> None:
        super().__init__(f"expected patch from v{expected}, got one from v{received}")
        self.expected = expected
        self.received = received


class ReconnectExhausted(TandemError):
    """The reconnect supervisor ran out of attempts."""

    def __init__(self, attempts: int) -> None:
        super().__init__(f"gave up after {attempts} reconnect attempts")
        self.attempts = attempts
