"""
CLI command for rendering a pxls log into frames.

Usage:
    pxlsrender render pixels.log --step 15m -o frames/canvas.png
    pxlsrender render pixels.log --style heat --format rgb -o - | ffmpeg ...
    pxlsrender render --config renders.yaml --jobs 2
"""

from __future__ import annotations

import argparse
import logging
import sys
from typing import Any, Dict

from ..config import (
    ConfigFile,
    ProgramConfig,
    build_render_configs,
    load_config_file,
    parse_count,
)
from ..exceptions import ConfigError, PxlsRenderError
from ..logparse import read_actions
from ..render import RenderCommand, run_renders
from ..types import PixelFormat, StepKind, Style

logger = logging.getLogger(__name__)


def configure_logging(verbose: int = 0, quiet: bool = False) -> None:
    """Send log records to stderr; stdout may carry the frame stream."""
    if quiet:
        level = logging.ERROR
    elif verbose >= 2:
        level = logging.DEBUG
    elif verbose == 1:
        level = logging.INFO
    else:
        level = logging.WARNING
    logging.basicConfig(
        level=level,
        format="%(asctime)s %(levelname)s %(name)s: %(message)s",
        stream=sys.stderr,
        force=True,
    )


def _cli_options(args: argparse.Namespace) -> Dict[str, Any]:
    """Render options given on the command line; None where not given."""
    return {
        "output": args.output,
        "format": args.format,
        "style": args.style,
        "heat_window": args.heat_window,
        "step": args.step,
        "step_type": args.step_type,
        "skip": args.skip,
        "screenshot": args.screenshot,
        "background": args.bg,
        "color": args.color,
        "region": args.region,
        "palette": args.palette,
        "fill_gaps": args.fill_gaps,
    }


def _program_config(args: argparse.Namespace, config_file: ConfigFile | None) -> ProgramConfig:
    file_log = config_file.log if config_file else None
    file_threads = config_file.threads if config_file else None
    file_quiet = config_file.quiet if config_file else None
    threads = args.threads if args.threads is not None else file_threads
    return ProgramConfig(
        log_source=args.log or file_log or "-",
        quiet=bool(args.quiet or file_quiet),
        threads=parse_count(threads, "threads", minimum=1) if threads is not None else None,
        dry_run=args.dry_run,
    )


def _read_log(program: ProgramConfig):
    logger.info("Reading actions from %s", "stdin" if program.reads_stdin else program.log_source)
    if program.reads_stdin:
        try:
            return read_actions(sys.stdin)
        except UnicodeDecodeError as exc:
            raise ConfigError(f"Cannot decode log from stdin: {exc}") from exc
    try:
        with open(program.log_source, encoding="utf-8") as stream:
            return read_actions(stream)
    except OSError as exc:
        raise ConfigError(f"Cannot read log {program.log_source}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise ConfigError(f"Cannot decode log {program.log_source} as UTF-8: {exc}") from exc


def cmd_render(args: argparse.Namespace) -> int:
    """Main handler for ``pxlsrender render``."""
    configure_logging(args.verbose, args.quiet)
    try:
        config_file = load_config_file(args.config) if args.config else None
        program = _program_config(args, config_file)
        if program.quiet and not args.quiet:
            configure_logging(quiet=True)
        configs = build_render_configs(_cli_options(args), config_file)
        actions, bounds = _read_log(program)
        commands = [
            RenderCommand(c, bounds, workers=program.threads, quiet=program.quiet)
            for c in configs
        ]
    except PxlsRenderError as exc:
        print(f"Error: {exc}", file=sys.stderr)
        return 1

    if program.dry_run:
        for command in commands:
            frames = command.plan(actions)
            print(f"{command.config.destination}: {frames} frames", file=sys.stderr)
        return 0

    results = run_renders(commands, actions, jobs=args.jobs)
    failed = [r for r in results if not r.ok]
    for result in failed:
        print(f"Error: {result.destination}: {result.error}", file=sys.stderr)
    if failed:
        return 1
    if not program.quiet:
        written = sum(r.stats.frames for r in results)
        print(f"Done! {written} frames from {len(actions)} actions.", file=sys.stderr)
    return 0


def build_render_parser(subparsers: argparse._SubParsersAction) -> None:
    """Register the ``render`` subcommand and its arguments."""
    p = subparsers.add_parser(
        "render",
        help="Render a pxls log into frames",
        description=(
            "Replay a pxls placement log into frames. Always produces at least "
            "2 frames per render: the background, then one per step."
        ),
    )
    p.add_argument(
        "log", nargs="?", default=None,
        help="Path to the pxls log, or - for stdin (default: stdin)",
    )
    p.add_argument(
        "-o", "--output", default=None,
        help="Image path template ({base}_{i}.{ext}), or - for a raw stream on stdout (default: -)",
    )
    p.add_argument(
        "--format", choices=[f.value for f in PixelFormat], default=None,
        help="Pixel format of each frame (default: rgba)",
    )
    p.add_argument(
        "--style", choices=[s.value for s in Style], default=None,
        help="Render style (default: normal)",
    )
    p.add_argument(
        "--heat-window", default=None,
        help="Fade-out time of the heat style, e.g. 15m, 3h (default: 15m)",
    )
    p.add_argument(
        "--step", default=None,
        help="Time per frame (e.g. 500, 30s, 15m) or actions per frame with "
             "--step-type count (default: 15m)",
    )
    p.add_argument(
        "--step-type", choices=[k.value for k in StepKind], default=None,
        help="Cut frames by time window or by action count (default: time)",
    )
    p.add_argument(
        "--skip", type=int, default=None,
        help="Number of leading frames to withhold; frame 0 is the background (default: 0)",
    )
    p.add_argument(
        "--screenshot", action="store_true", default=None,
        help="Emit a single frame of the final canvas",
    )
    p.add_argument(
        "--bg", default=None,
        help="Background image, cropped to the region",
    )
    p.add_argument(
        "--color", type=int, nargs="+", metavar="C", default=None,
        help="Background color as R G B [A] (default: white)",
    )
    p.add_argument(
        "--region", type=int, nargs=4, metavar=("X1", "Y1", "X2", "Y2"), default=None,
        help="Canvas region to render (default: bounds of the log)",
    )
    p.add_argument(
        "--palette", default=None,
        help="Palette file (.json, .csv, .gpl, .txt, .aco; default: built-in)",
    )
    p.add_argument(
        "--fill-gaps", action="store_true", default=None,
        help="Emit an unchanged frame for every empty time step",
    )
    p.add_argument(
        "--config", default=None,
        help="YAML file describing one or more renders",
    )
    p.add_argument(
        "--threads", type=int, default=None,
        help="Worker threads per frame update (default: number of CPUs)",
    )
    p.add_argument(
        "--jobs", type=int, default=1,
        help="Renders to run concurrently (default: 1)",
    )
    p.add_argument(
        "--dry-run", action="store_true",
        help="Validate and report the frame count without writing anything",
    )
    p.add_argument(
        "-v", "--verbose", action="count", default=0,
        help="More logging on stderr (-v info, -vv debug)",
    )
    p.add_argument(
        "-q", "--quiet", action="store_true",
        help="Only log errors; no progress bar",
    )
    p.set_defaults(func=cmd_render)
