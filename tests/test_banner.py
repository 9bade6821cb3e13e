"""Tests for tandem.banner — startup banner output."""

from __future__ import annotations

import io
import sys
from pathlib import Path
from unittest.mock import patch

from tandem.banner import print_banner
from tandem.config import SyncConfig


class TestPrintBanner:
    """Tests for the startup banner."""

    def _capture_banner(self, config: SyncConfig | None = None, **kwargs: object) -> str:
        """Call print_banner and capture stderr output."""
        buf = io.StringIO()
        with patch.object(sys, "stderr", buf):
            cfg = config if config is not None else SyncConfig(root=Path("/tmp/test-app"))
            print_banner(cfg, "counter:Counter", **kwargs)  # type: ignore[arg-type]
        return buf.getvalue()

    def test_serve_banner(self) -> None:
        output = self._capture_banner(load_ms=42.5)

        assert "Tandem" in output
        assert "counter:Counter" in output
        assert "42ms" in output
        assert "/__tandem/stream" in output
        assert "http://127.0.0.1:3000" in output

    def test_reconnect_policy_shown(self) -> None:
        config = SyncConfig(
            root=Path("/tmp/test-app"),
            max_attempts=4,
            backoff_base=1.0,
            backoff_ceiling=8.0,
            grace_period=10.0,
        )
        output = self._capture_banner(config)

        assert "4 attempts" in output
        assert "1s..8s" in output
        # 1 + 2 + 4 + 8 seconds of retrying plus the grace period
        assert "sessions kept 25s" in output
        assert "grace 10s" in output

    def test_no_timing_when_zero(self) -> None:
        output = self._capture_banner()
        assert "0ms" not in output

    def test_warnings_displayed(self) -> None:
        output = self._capture_banner(warnings=["running with one worker"])
        assert "running with one worker" in output

    def test_custom_host_port(self) -> None:
        config = SyncConfig(root=Path("/tmp/test-app"), host="0.0.0.0", port=8000)
        output = self._capture_banner(config)
        assert "http://0.0.0.0:8000" in output
