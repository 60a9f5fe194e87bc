"""
Palettes: the built-in default and readers for common palette files.

Supported files
---------------
.json   pxls board info, ``{"palette": [{"name": ..., "value": "RRGGBB"}, ...]}``
.csv    header row, then ``name,#RRGGBB,R,G,B``
.gpl    GIMP palette
.txt    Paint.NET palette, one ``AARRGGBB`` per line, ``;`` comments
.aco    Photoshop color swatches, version 1, RGB entries only
"""

from __future__ import annotations

import json
import logging
import struct
from pathlib import Path
from typing import Callable, Dict, List

from pxlsrender.exceptions import PaletteError
from pxlsrender.pixel import Rgba

logger = logging.getLogger(__name__)

Palette = List[Rgba]

DEFAULT_PALETTE: tuple[Rgba, ...] = (
    Rgba(0, 0, 0),        # Black
    Rgba(34, 34, 34),     # Dark Grey
    Rgba(85, 85, 85),     # Deep Grey
    Rgba(136, 136, 136),  # Medium Grey
    Rgba(205, 205, 205),  # Light Grey
    Rgba(255, 255, 255),  # White
    Rgba(255, 213, 188),  # Beige
    Rgba(255, 183, 131),  # Peach
    Rgba(182, 109, 61),   # Brown
    Rgba(119, 67, 31),    # Chocolate
    Rgba(252, 117, 16),   # Rust
    Rgba(252, 168, 14),   # Orange
    Rgba(253, 232, 23),   # Yellow
    Rgba(255, 244, 145),  # Pastel Yellow
    Rgba(190, 255, 64),   # Lime
    Rgba(112, 221, 19),   # Green
    Rgba(49, 161, 23),    # Dark Green
    Rgba(11, 95, 53),     # Forest
    Rgba(39, 126, 108),   # Dark Teal
    Rgba(50, 182, 159),   # Light Teal
    Rgba(136, 255, 243),  # Aqua
    Rgba(36, 181, 254),   # Azure
    Rgba(18, 92, 199),    # Blue
    Rgba(38, 41, 96),     # Navy
    Rgba(139, 47, 168),   # Purple
    Rgba(210, 76, 233),   # Mauve
    Rgba(255, 89, 239),   # Magenta
    Rgba(255, 169, 217),  # Pink
    Rgba(255, 100, 116),  # Watermelon
    Rgba(240, 37, 35),    # Red
    Rgba(177, 18, 6),     # Rose
    Rgba(116, 12, 0),     # Maroon
)


def _hex_rgb(value: str) -> Rgba:
    value = value.strip().lstrip("#")
    if len(value) != 6:
        raise PaletteError(f"Invalid hex color: {value!r}")
    try:
        raw = bytes.fromhex(value)
    except ValueError as exc:
        raise PaletteError(f"Invalid hex color: {value!r}") from exc
    return Rgba(raw[0], raw[1], raw[2], 255)


def _channel(token: str) -> int:
    try:
        value = int(token)
    except ValueError as exc:
        raise PaletteError(f"Invalid color channel: {token!r}") from exc
    if not 0 <= value <= 255:
        raise PaletteError(f"Color channel out of range: {value}")
    return value


def parse_json(text: str) -> Palette:
    try:
        data = json.loads(text)
    except json.JSONDecodeError as exc:
        raise PaletteError(f"Invalid JSON palette: {exc}") from exc
    entries = data.get("palette") if isinstance(data, dict) else None
    if not isinstance(entries, list):
        raise PaletteError('Cannot find "palette" list in JSON palette.')
    palette = []
    for entry in entries:
        if not isinstance(entry, dict) or not isinstance(entry.get("value"), str):
            raise PaletteError(f"Invalid palette entry: {entry!r}")
        palette.append(_hex_rgb(entry["value"]))
    return palette


def parse_csv(text: str) -> Palette:
    palette = []
    for line in text.splitlines()[1:]:  # skip 'Name,#hexadecimal,R,G,B'
        if not line.strip():
            continue
        fields = line.split(",")
        if len(fields) < 5:
            raise PaletteError(f"Invalid CSV palette row: {line!r}")
        r, g, b = (_channel(f.strip()) for f in fields[2:5])
        palette.append(Rgba(r, g, b, 255))
    return palette


def parse_gpl(text: str) -> Palette:
    lines = iter(text.splitlines())
    if next(lines, "").strip() != "GIMP Palette":
        raise PaletteError("Invalid GIMP palette: missing magic header.")
    for line in lines:
        if line.strip() == "#":
            break
    palette = []
    for line in lines:
        fields = line.split()
        if not fields:
            continue
        if len(fields) < 3:
            raise PaletteError(f"Invalid GIMP palette row: {line!r}")
        r, g, b = (_channel(f) for f in fields[:3])
        palette.append(Rgba(r, g, b, 255))
    return palette


def parse_txt(text: str) -> Palette:
    palette = []
    for line in text.splitlines():
        token = line.split(";", 1)[0].split()
        if not token:
            continue
        value = token[0]
        try:
            raw = bytes.fromhex(value)
        except ValueError as exc:
            raise PaletteError(f"Invalid Paint.NET color: {value!r}") from exc
        if len(raw) != 4:
            raise PaletteError(f"Invalid Paint.NET color: {value!r}")
        a, r, g, b = raw
        palette.append(Rgba(r, g, b, a))
    return palette


def parse_aco(data: bytes) -> Palette:
    try:
        version, count = struct.unpack_from(">HH", data, 0)
        if version != 1:
            raise PaletteError(f"Unsupported ACO version: {version}")
        palette = []
        offset = 4
        for _ in range(count):
            space, w, x, y, _z = struct.unpack_from(">HHHHH", data, offset)
            offset += 10
            if space != 0:
                raise PaletteError(f"Unsupported ACO color space: {space}")
            palette.append(Rgba(w // 257, x // 257, y // 257, 255))
    except struct.error as exc:
        raise PaletteError("Unexpected end of ACO file.") from exc
    return palette


_TEXT_PARSERS: Dict[str, Callable[[str], Palette]] = {
    ".json": parse_json,
    ".csv": parse_csv,
    ".gpl": parse_gpl,
    ".txt": parse_txt,
}


def load_palette(path: str | Path) -> Palette:
    """Read a palette file, choosing the parser from its extension."""
    path = Path(path)
    ext = path.suffix.lower()
    try:
        if ext == ".aco":
            palette = parse_aco(path.read_bytes())
        elif ext in _TEXT_PARSERS:
            palette = _TEXT_PARSERS[ext](path.read_text(encoding="utf-8"))
        else:
            supported = ", ".join(sorted([*_TEXT_PARSERS, ".aco"]))
            raise PaletteError(
                f"Unsupported palette file: {path.name}. Supported: {supported}"
            )
    except OSError as exc:
        raise PaletteError(f"Cannot read palette {path}: {exc}") from exc
    except UnicodeDecodeError as exc:
        raise PaletteError(f"Palette {path} is not valid UTF-8: {exc}") from exc
    if not palette:
        raise PaletteError(f"Palette {path} contains no colors.")
    logger.info("Loaded %d colors from %s", len(palette), path)
    return palette
