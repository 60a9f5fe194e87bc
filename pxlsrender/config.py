"""
Render configuration: value parsing, YAML config files and layer merging.

A render is described by a flat mapping of options.  Options come from up
to three layers, merged with the first non-None value winning::

    command line  >  entry in ``renders``  >  ``defaults``  >  built-in

and are then validated into an immutable ``RenderConfig``.  All problems
surface here as ``ConfigError`` before any output is touched.
"""

from __future__ import annotations

import io
import logging
import re
import sys
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any, Dict, List, Mapping, Optional, Sequence

import yaml
from PIL import Image

from pxlsrender.exceptions import ConfigError
from pxlsrender.pixel import Rgba
from pxlsrender.types import PixelFormat, Region, Step, StepKind, Style

logger = logging.getLogger(__name__)

STDIN_ALIASES = ("-", "stdin", "pipe:0")
STDOUT_ALIASES = ("-", "stdout", "pipe:1")

DEFAULT_STEP_MILLIS = 900_000
DEFAULT_HEAT_WINDOW = 900_000

_UNITS = {"": 1, "s": 1_000, "m": 60_000, "h": 3_600_000, "d": 86_400_000}
_DURATION_RE = re.compile(r"^\s*(-?\d+)\s*([smhd]?)\s*$", re.IGNORECASE)

RENDER_KEYS = frozenset({
    "output", "format", "style", "heat_window", "step", "step_type", "skip",
    "screenshot", "background", "color", "region", "palette", "fill_gaps",
})
PROGRAM_KEYS = frozenset({"log", "threads", "quiet", "defaults", "renders"})


# ---------------------------------------------------------------------------
# Value parsers
# ---------------------------------------------------------------------------

def parse_duration(value: Any) -> int:
    """
    Milliseconds for ``value``.

    Accepts an integer (milliseconds) or a string with an optional unit
    suffix: ``"500"``, ``"30s"``, ``"15m"``, ``"3h"``, ``"1d"``.
    """
    if isinstance(value, bool):
        raise ConfigError(f"Invalid duration: {value!r}")
    if isinstance(value, int):
        millis = value
    else:
        match = _DURATION_RE.match(str(value))
        if match is None:
            raise ConfigError(
                f"Invalid duration: {value!r} (expected e.g. 500, 30s, 15m, 3h, 1d)"
            )
        millis = int(match.group(1)) * _UNITS[match.group(2).lower()]
    if millis <= 0:
        raise ConfigError(f"Duration must be positive, got {value!r}")
    return millis


def parse_count(value: Any, name: str, minimum: int = 0) -> int:
    if isinstance(value, bool):
        raise ConfigError(f"{name} must be an integer, got {value!r}")
    try:
        number = int(value)
    except (TypeError, ValueError):
        raise ConfigError(f"{name} must be an integer, got {value!r}") from None
    if number < minimum:
        raise ConfigError(f"{name} must be at least {minimum}, got {number}")
    return number


def parse_color(value: Any) -> Rgba:
    """``[r, g, b]``, ``[r, g, b, a]`` or ``"#RRGGBB[AA]"``."""
    if isinstance(value, str):
        text = value.strip().lstrip("#")
        if len(text) not in (6, 8):
            raise ConfigError(f"Invalid color: {value!r}")
        try:
            channels = list(bytes.fromhex(text))
        except ValueError:
            raise ConfigError(f"Invalid color: {value!r}") from None
    elif isinstance(value, Sequence) and len(value) in (3, 4):
        channels = [parse_count(c, "color channel") for c in value]
    else:
        raise ConfigError(f"Invalid color: {value!r}")
    if any(c > 255 for c in channels):
        raise ConfigError(f"Color channels must be within 0..255: {value!r}")
    return Rgba(*channels)


def parse_region(value: Any) -> Region:
    if not isinstance(value, Sequence) or isinstance(value, str) or len(value) != 4:
        raise ConfigError(f"Region needs four values x1 y1 x2 y2, got {value!r}")
    coords = [parse_count(c, "region coordinate") for c in value]
    try:
        region = Region(*coords)
    except ValueError as exc:
        raise ConfigError(str(exc)) from exc
    if region.width == 0 or region.height == 0:
        raise ConfigError(f"Region is empty: {value!r}")
    return region


def _parse_enum(enum_cls, value: Any, name: str):
    try:
        return enum_cls(str(value).lower())
    except ValueError:
        choices = ", ".join(m.value for m in enum_cls)
        raise ConfigError(f"Unknown {name} {value!r} (choose from {choices})") from None


def _parse_bool(value: Any, name: str) -> bool:
    if isinstance(value, bool):
        return value
    raise ConfigError(f"{name} must be true or false, got {value!r}")


# ---------------------------------------------------------------------------
# Destinations
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class Destination:
    """Where frames go: the raw stdout stream, or numbered image files."""

    path: Optional[Path] = None     # None = raw stream on stdout

    @classmethod
    def parse(cls, value: Any) -> Destination:
        text = str(value).strip()
        if not text:
            raise ConfigError("Output destination must not be empty")
        if text in STDOUT_ALIASES:
            return cls()
        path = Path(text)
        image_format = Image.registered_extensions().get(path.suffix.lower())
        if image_format is None:
            raise ConfigError(
                f"Cannot infer an image format from {text!r}; "
                f"use an extension such as .png"
            )
        if image_format not in Image.SAVE:
            raise ConfigError(f"Pillow cannot write {image_format} images ({text!r})")
        return cls(path)

    @property
    def image_format(self) -> Optional[str]:
        """Pillow format name for a file destination."""
        if self.path is None:
            return None
        return Image.registered_extensions().get(self.path.suffix.lower())

    def check_format(self, fmt: PixelFormat) -> None:
        """Raise ConfigError unless frames in *fmt* can be written here."""
        if self.path is None:
            return
        if fmt is PixelFormat.YUV420P:
            raise ConfigError(
                "yuv420p can only be written to stdout; "
                f"choose rgba or rgb for {self}"
            )
        mode = "RGBA" if fmt is PixelFormat.RGBA else "RGB"
        try:
            Image.new(mode, (1, 1)).save(io.BytesIO(), format=self.image_format)
        except (OSError, KeyError, ValueError) as exc:
            raise ConfigError(
                f"Cannot write {fmt.value} frames as {self.image_format} ({self}): {exc}"
            ) from exc

    @property
    def is_stdout(self) -> bool:
        return self.path is None

    def frame_path(self, index: int) -> Path:
        """``{base}_{index}.{ext}`` for a file destination."""
        if self.path is None:
            raise ValueError("stdout destination has no frame paths")
        return self.path.with_name(f"{self.path.stem}_{index}{self.path.suffix}")

    def __str__(self) -> str:
        return "stdout" if self.path is None else str(self.path)


# ---------------------------------------------------------------------------
# Config objects
# ---------------------------------------------------------------------------

@dataclass(frozen=True)
class ProgramConfig:
    """Settings shared by every render in one invocation."""
    log_source: str = "-"
    quiet: bool = False
    threads: Optional[int] = None    # None = os.cpu_count()
    dry_run: bool = False

    @property
    def reads_stdin(self) -> bool:
        return self.log_source in STDIN_ALIASES


@dataclass(frozen=True)
class RenderConfig:
    """A fully validated render."""
    destination: Destination = field(default_factory=Destination)
    format: PixelFormat = PixelFormat.RGBA
    style: Style = Style.NORMAL
    heat_window: int = DEFAULT_HEAT_WINDOW
    step: Step = field(default_factory=Step)
    skip: int = 0
    background_path: Optional[Path] = None
    background_color: Optional[Rgba] = None
    region: Optional[Region] = None
    palette_path: Optional[Path] = None
    fill_gaps: bool = False

    @classmethod
    def from_options(cls, options: Mapping[str, Any]) -> RenderConfig:
        """Validate a merged option mapping (keys as in ``RENDER_KEYS``)."""
        unknown = set(k for k, v in options.items() if v is not None) - RENDER_KEYS
        if unknown:
            raise ConfigError(f"Unknown render option(s): {', '.join(sorted(unknown))}")

        def opt(key, default=None):
            value = options.get(key)
            return default if value is None else value

        destination = Destination.parse(opt("output", "-"))
        fmt = _parse_enum(PixelFormat, opt("format", PixelFormat.RGBA.value), "format")
        destination.check_format(fmt)

        step_kind = _parse_enum(StepKind, opt("step_type", StepKind.TIME.value), "step type")
        screenshot = _parse_bool(opt("screenshot", False), "screenshot")
        if screenshot:
            if options.get("step") is not None or options.get("skip") is not None:
                raise ConfigError("screenshot cannot be combined with step or skip")
            step = Step(StepKind.TIME, sys.maxsize)
            skip = 1
        else:
            raw_step = opt("step", DEFAULT_STEP_MILLIS)
            if step_kind is StepKind.TIME:
                value = parse_duration(raw_step)
            else:
                value = parse_count(raw_step, "step", minimum=1)
            step = Step(step_kind, value)
            skip = parse_count(opt("skip", 0), "skip")

        background = opt("background")
        palette = opt("palette")
        color = opt("color")
        region = opt("region")
        if background is not None and color is not None:
            raise ConfigError("background image and background color are exclusive")

        return cls(
            destination=destination,
            format=fmt,
            style=_parse_enum(Style, opt("style", Style.NORMAL.value), "style"),
            heat_window=parse_duration(opt("heat_window", DEFAULT_HEAT_WINDOW)),
            step=step,
            skip=skip,
            background_path=Path(background) if background is not None else None,
            background_color=parse_color(color) if color is not None else None,
            region=parse_region(region) if region is not None else None,
            palette_path=Path(palette) if palette is not None else None,
            fill_gaps=_parse_bool(opt("fill_gaps", False), "fill_gaps"),
        )


def merge_layers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """Per key, the value of the first layer where it is not None."""
    merged: Dict[str, Any] = {}
    for layer in layers:
        for key, value in (layer or {}).items():
            if value is not None and merged.get(key) is None:
                merged[key] = value
    return merged


def merge_render_layers(*layers: Optional[Mapping[str, Any]]) -> Dict[str, Any]:
    """
    ``merge_layers`` for render options.

    A layer that turns ``screenshot`` on hides the ``step`` and ``skip``
    of the layers below it; a step given next to it in the same layer (or
    above it) is still a conflict.
    """
    layers = [dict(layer or {}) for layer in layers]
    for i, layer in enumerate(layers):
        if layer.get("screenshot") is None:
            continue
        if layer["screenshot"] is True:
            for lower in layers[i + 1:]:
                lower.pop("step", None)
                lower.pop("skip", None)
        break
    return merge_layers(*layers)


# ---------------------------------------------------------------------------
# YAML config files
# ---------------------------------------------------------------------------

@dataclass
class ConfigFile:
    """Parsed contents of a YAML config file."""
    log: Optional[str] = None
    threads: Optional[int] = None
    quiet: Optional[bool] = None
    defaults: Dict[str, Any] = field(default_factory=dict)
    renders: List[Dict[str, Any]] = field(default_factory=list)


def _mapping(value: Any, where: str) -> Dict[str, Any]:
    if value is None:
        return {}
    if not isinstance(value, dict):
        raise ConfigError(f"{where} must be a mapping, got {type(value).__name__}")
    unknown = set(value) - RENDER_KEYS
    if unknown:
        raise ConfigError(f"Unknown option(s) in {where}: {', '.join(sorted(map(str, unknown)))}")
    return dict(value)


def parse_config(text: str, source: str = "<config>") -> ConfigFile:
    try:
        data = yaml.safe_load(text) or {}
    except yaml.YAMLError as exc:
        raise ConfigError(f"Invalid YAML in {source}: {exc}") from exc
    if not isinstance(data, dict):
        raise ConfigError(f"{source}: top level must be a mapping")
    unknown = set(data) - PROGRAM_KEYS
    if unknown:
        raise ConfigError(f"{source}: unknown key(s) {', '.join(sorted(map(str, unknown)))}")

    renders = data.get("renders") or []
    if not isinstance(renders, list):
        raise ConfigError(f"{source}: renders must be a list")

    threads = data.get("threads")
    quiet = data.get("quiet")
    return ConfigFile(
        log=str(data["log"]) if data.get("log") is not None else None,
        threads=parse_count(threads, "threads", minimum=1) if threads is not None else None,
        quiet=_parse_bool(quiet, "quiet") if quiet is not None else None,
        defaults=_mapping(data.get("defaults"), "defaults"),
        renders=[_mapping(r, f"renders[{i}]") for i, r in enumerate(renders)],
    )


def load_config_file(path: str | Path) -> ConfigFile:
    path = Path(path)
    try:
        text = path.read_text(encoding="utf-8")
    except OSError as exc:
        raise ConfigError(f"Cannot read config file {path}: {exc}") from exc
    config = parse_config(text, str(path))
    logger.info("Loaded %d render(s) from %s", len(config.renders), path)
    return config


def build_render_configs(
    cli_options: Mapping[str, Any],
    config_file: Optional[ConfigFile] = None,
) -> List[RenderConfig]:
    """
    One RenderConfig per configured render.

    Without a config file (or with an empty ``renders`` list) the command
    line alone describes a single render.
    """
    defaults = config_file.defaults if config_file else {}
    entries = config_file.renders if config_file and config_file.renders else [{}]
    configs = [
        RenderConfig.from_options(merge_render_layers(cli_options, entry, defaults))
        for entry in entries
    ]
    to_stdout = sum(1 for c in configs if c.destination.is_stdout)
    if to_stdout > 1:
        raise ConfigError(f"{to_stdout} renders target stdout; at most one may")
    return configs
