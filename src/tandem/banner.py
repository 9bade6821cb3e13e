"""Startup banner — status output for ``tandem serve``.

Prints the served component, the sync endpoints, and the reconnect policy.
Detects ``NO_COLOR`` / ``TERM`` for safe fallback.
"""

from __future__ import annotations

import os
import sys
from typing import TYPE_CHECKING

if TYPE_CHECKING:
    from tandem.config import SyncConfig


# ---------------------------------------------------------------------------
# ANSI helpers — respect NO_COLOR (https://no-color.org)
# ---------------------------------------------------------------------------

def _supports_color() -> bool:
    """Return True if the terminal supports ANSI colors."""
    if os.environ.get("NO_COLOR"):
        return False
    if os.environ.get("TERM") == "dumb":
        return False
    return hasattr(sys.stderr, "isatty") and sys.stderr.isatty()


_COLOR = _supports_color()

_RESET = "\033[0m" if _COLOR else ""
_BOLD = "\033[1m" if _COLOR else ""
_DIM = "\033[2m" if _COLOR else ""
_CYAN = "\033[36m" if _COLOR else ""
_GREEN = "\033[32m" if _COLOR else ""
_YELLOW = "\033[33m" if _COLOR else ""


def _clickable_url(url: str) -> str:
    """Wrap *url* in an OSC 8 hyperlink escape if the terminal supports it."""
    if not _COLOR:
        return url
    return f"\033]8;;{url}\033\\{_BOLD}{_CYAN}{url}{_RESET}\033]8;;\033\\"


def _seconds(value: float) -> str:
    return f"{value:g}s"


def print_banner(
    config: SyncConfig,
    target: str,
    *,
    load_ms: float = 0.0,
    warnings: list[str] | None = None,
) -> None:
    """Print the Tandem startup banner to stderr.

    Args:
        config: Resolved SyncConfig.
        target: The ``module:attr`` component being served.
        load_ms: Time spent loading the component in milliseconds.
        warnings: Optional list of warning messages to display.

    """
    from tandem import __version__

    header = f"  {_BOLD}⇄  Tandem{_RESET} {_DIM}v{__version__}{_RESET}  {_CYAN}[serve]{_RESET}"
    timing = f" {_DIM}in {load_ms:.0f}ms{_RESET}" if load_ms > 0 else ""

    lines: list[str] = [
        "",
        header,
        f"  {_DIM}{'─' * 43}{_RESET}",
        f"  {_DIM}├─{_RESET} component {_BOLD}{target}{_RESET} loaded{timing}",
        f"  {_DIM}├─{_RESET} {_GREEN}live{_RESET} on {_DIM}/__tandem/stream{_RESET}",
        (
            f"  {_DIM}├─{_RESET} reconnect: {config.max_attempts} attempts, "
            f"backoff {_seconds(config.backoff_base)}..{_seconds(config.backoff_ceiling)}"
        ),
        (
            f"  {_DIM}└─{_RESET} sessions kept {_seconds(config.session_timeout)} "
            f"after loss {_DIM}(grace {_seconds(config.grace_period)}){_RESET}"
        ),
        "",
        f"  {_clickable_url(f'http://{config.host}:{config.port}')}",
    ]

    if warnings:
        lines.append("")
        lines.extend(f"  {_YELLOW}!{_RESET} {w}" for w in warnings)

    lines.append("")

    print("\n".join(lines), file=sys.stderr)
