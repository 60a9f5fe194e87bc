"""Main CLI entry point for pxlsrender."""

from __future__ import annotations

import argparse
import sys

from .. import __version__
from .render_cli import build_render_parser


def main(argv: list[str] | None = None) -> int:
    parser = argparse.ArgumentParser(
        prog="pxlsrender",
        description="Replay pxls canvas logs into video frames",
    )
    parser.add_argument("--version", action="version", version=f"pxlsrender {__version__}")
    subparsers = parser.add_subparsers(dest="command")
    build_render_parser(subparsers)
    args = parser.parse_args(argv)
    if args.command is None:
        parser.print_help()
        return 0
    return args.func(args)


def cli_entry() -> None:
    sys.exit(main())
