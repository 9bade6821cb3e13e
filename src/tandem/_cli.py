"""Tandem CLI — tandem serve.

Entry point for the ``tandem`` command-line interface.
"""

from __future__ import annotations

import argparse
import sys


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser for the tandem CLI."""
    parser = argparse.ArgumentParser(
        prog="tandem",
        description="Server-push UI sessions with supervised reconnects.",
    )
    parser.add_argument(
        "--version",
        action="version",
        version=f"%(prog)s {_get_version()}",
    )

    subparsers = parser.add_subparsers(dest="command", help="Available commands")

    # tandem serve
    serve_parser = subparsers.add_parser(
        "serve",
        help="Serve a component with live sessions",
    )
    serve_parser.add_argument("target", help="Component factory as module:attr")
    serve_parser.add_argument("--root", default=".", help="Project root directory")
    serve_parser.add_argument("--host", default=None, help="Bind address")
    serve_parser.add_argument("--port", type=int, default=None, help="Bind port")
    serve_parser.add_argument(
        "--max-attempts", type=int, default=None, help="Reconnect attempts before giving up",
    )
    serve_parser.add_argument(
        "--backoff-base", type=float, default=None, help="First reconnect delay (seconds)",
    )
    serve_parser.add_argument(
        "--backoff-ceiling", type=float, default=None, help="Longest reconnect delay (seconds)",
    )
    serve_parser.add_argument(
        "--grace-period", type=float, default=None,
        help="Seconds a lost session is kept after reconnects run out",
    )

    return parser


def _get_version() -> str:
    """Get the package version."""
    from tandem import __version__

    return __version__


def main(argv: list[str] | None = None) -> None:
    """CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.command is None:
        parser.print_help()
        sys.exit(0)

    from tandem._errors import TandemError
    from tandem.web.app import serve

    if args.command == "serve":
        try:
            serve(
                args.target,
                root=args.root,
                host=args.host,
                port=args.port,
                max_attempts=args.max_attempts,
                backoff_base=args.backoff_base,
                backoff_ceiling=args.backoff_ceiling,
                grace_period=args.grace_period,
            )
        except TandemError as exc:
            print(f"  Error: {exc}", file=sys.stderr)
            sys.exit(1)


if __name__ == "__main__":
    main()
