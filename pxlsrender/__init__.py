"""
pxlsrender -- replay pxls canvas logs into video frames.

Parses placement logs, partitions them into per-frame slices, paints each
slice with one of several render styles and streams the frames as raw
RGBA/RGB/YUV 4:2:0 bytes or writes them as numbered still images.
"""

__version__ = "0.1.0"

from pxlsrender.exceptions import PxlsRenderError
from pxlsrender.pixel import Rgb, Rgba
from pxlsrender.types import (
    Action,
    ActionKind,
    PixelFormat,
    Region,
    Step,
    StepKind,
    Style,
)

__all__ = [
    "Action",
    "ActionKind",
    "PixelFormat",
    "PxlsRenderError",
    "Region",
    "Rgb",
    "Rgba",
    "Step",
    "StepKind",
    "Style",
]
