"""Tests for tandem._errors."""

from tandem._errors import (
    ChannelError,
    ChannelUnavailable,
    ConfigError,
    MalformedTree,
    PatchOutOfOrder,
    ProtocolError,
    ReconnectExhausted,
    SessionClosed,
    StaleAck,
    TandemError,
    TransportClosed,
)


class TestErrorHierarchy:
    """All tandem errors inherit from TandemError."""

    def test_tandem_error_is_exception(self) -> None:
        assert issubclass(TandemError, Exception)

    def test_channel_errors_share_a_base(self) -> None:
        for error_cls in (ChannelUnavailable, TransportClosed, StaleAck):
            assert issubclass(error_cls, ChannelError)

    def test_catch_all_tandem_errors(self) -> None:
        """All specific errors are catchable via TandemError."""
        for error_cls in (ConfigError, ProtocolError, MalformedTree, SessionClosed, ChannelUnavailable):
            try:
                raise error_cls("test")
            except TandemError:
                pass


class TestStructuredErrors:
    """Errors that carry the numbers needed to act on them."""

    def test_stale_ack_attributes(self) -> None:
        exc = StaleAck(3, acked=5, sent=7)
        assert (exc.version, exc.acked, exc.sent) == (3, 5, 7)
        assert "v3" in str(exc)

    def test_patch_out_of_order_attributes(self) -> None:
        exc = PatchOutOfOrder(expected=5, received=9)
        assert exc.expected == 5
        assert exc.received == 9
        assert "v5" in str(exc)

    def test_reconnect_exhausted_attempts(self) -> None:
        exc = ReconnectExhausted(8)
        assert exc.attempts == 8
        assert "8" in str(exc)
