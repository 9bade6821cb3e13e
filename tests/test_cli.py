"""Tests for tandem._cli — argument parsing and command dispatch."""

from __future__ import annotations

from pathlib import Path
from unittest.mock import patch

import pytest

from tandem._cli import _build_parser, main


class TestBuildParser:
    """_build_parser — CLI argument parsing."""

    def test_serve_default_args(self) -> None:
        parser = _build_parser()
        args = parser.parse_args(["serve", "counter:Counter"])
        assert args.command == "serve"
        assert args.target == "counter:Counter"
        assert args.root == "."
        assert args.host is None
        assert args.port is None
        assert args.max_attempts is None

    def test_serve_all_flags(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([
            "serve", "app:make",
            "--root", "project/",
            "--host", "0.0.0.0",
            "--port", "8000",
            "--max-attempts", "4",
            "--backoff-base", "0.25",
            "--backoff-ceiling", "10",
            "--grace-period", "30",
        ])
        assert args.root == "project/"
        assert args.host == "0.0.0.0"
        assert args.port == 8000
        assert args.max_attempts == 4
        assert args.backoff_base == 0.25
        assert args.backoff_ceiling == 10.0
        assert args.grace_period == 30.0

    def test_serve_requires_target(self) -> None:
        parser = _build_parser()
        with pytest.raises(SystemExit):
            parser.parse_args(["serve"])

    def test_no_command_returns_none(self) -> None:
        parser = _build_parser()
        args = parser.parse_args([])
        assert args.command is None


class TestMain:
    """main — dispatch and error reporting."""

    def test_no_command_prints_help(self, capsys: pytest.CaptureFixture[str]) -> None:
        with pytest.raises(SystemExit) as info:
            main([])
        assert info.value.code == 0
        assert "serve" in capsys.readouterr().out

    def test_serve_passes_overrides(self) -> None:
        with patch("tandem.web.app.serve") as serve:
            main(["serve", "counter:Counter", "--port", "9000"])
        serve.assert_called_once()
        args, kwargs = serve.call_args
        assert args == ("counter:Counter",)
        assert kwargs["port"] == 9000
        assert kwargs["host"] is None

    def test_bad_target_exits_with_error(
        self, tmp_path: Path, capsys: pytest.CaptureFixture[str],
    ) -> None:
        with pytest.raises(SystemExit) as info:
            main(["serve", "no_colon_here", "--root", str(tmp_path)])
        assert info.value.code == 1
        assert "module:attr" in capsys.readouterr().err
