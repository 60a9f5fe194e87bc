"""
Render styles.

Each style is a stateful strategy with a single ``update(actions, frame)``
entry point.  The orchestrator calls it exactly once per emitted frame with
the actions of that frame's slice (possibly none), in slice order.  Styles
that only paint the touched pixels write them one by one; styles that keep
a per-pixel grid recompute the whole frame from it with a fork-join
producer.

    normal        palette color of the placed index
    virgin        every touched pixel in one color
    action        color keyed by action kind
    milliseconds  \
    seconds        > phase of the timestamp within a period, black->color->white
    minutes       /
    combined      millisecond/second/minute phases packed into R/G/B
    activity      visit count through a fixed gradient
    heat          fading glow since the last visit
    age           time of the last visit, oldest->newest
"""

from __future__ import annotations

import abc
import logging
from typing import Optional, Sequence

import numpy as np

from pxlsrender.frames import Frame
from pxlsrender.gradient import Gradient
from pxlsrender.pixel import BLACK, Pixel, Rgba
from pxlsrender.types import Action, ActionKind, Step, StepKind, Style

logger = logging.getLogger(__name__)


ACTIVITY_COLORS = (
    Rgba(11, 21, 97),
    Rgba(32, 156, 194),
    Rgba(122, 222, 142),
    Rgba(245, 250, 212),
    Rgba(247, 151, 45),
    Rgba(211, 17, 34),
    Rgba(0, 0, 0),
    Rgba(131, 22, 161),
    Rgba(240, 101, 243),
)
ACTIVITY_WEIGHTS = (0.0, 10.0, 50.0, 100.0, 500.0, 1000.0, 5000.0, 10000.0, 50000.0)

ACTION_COLORS = {
    ActionKind.UNDO: Rgba(255, 0, 255),
    ActionKind.PLACE: Rgba(0, 0, 255),
    ActionKind.OVERWRITE: Rgba(0, 255, 255),
    ActionKind.ROLLBACK: Rgba(0, 255, 0),
    ActionKind.ROLLBACK_UNDO: Rgba(255, 255, 0),
    ActionKind.NUKE: Rgba(255, 0, 0),
}

TOUCHED_COLOR = BLACK
HEAT_COLOR = Rgba(205, 92, 92)
AGE_COLOR = Rgba(0, 0, 255)

MILLISECOND_PERIOD = 1_000
SECOND_PERIOD = 60_000
MINUTE_PERIOD = 3_600_000


# ---------------------------------------------------------------------------
# Two-segment interpolation: black -> color -> white
# ---------------------------------------------------------------------------

def color_lerp(color: Pixel, val: float) -> Rgba:
    """
    Scale *color* from black (val=0) to itself (val=0.5) to white (val=1).

    Channels are truncated to integers; alpha is always opaque.
    """
    if val < 0.5:
        scale = val * 2.0
        channels = [c * scale for c in color[:3]]
    else:
        scale = (val - 0.5) * 2.0
        channels = [c + (255 - c) * scale for c in color[:3]]
    r, g, b = (_saturate(c) for c in channels)
    return Rgba(r, g, b, 255)


def color_lerp_array(color: Pixel, vals: np.ndarray) -> np.ndarray:
    """Vectorised :func:`color_lerp`, returning uint8 RGBA of shape vals.shape + (4,)."""
    vals = np.asarray(vals, dtype=np.float64)[..., None]
    base = np.array(color[:3], dtype=np.float64)
    low = base * (vals * 2.0)
    high = base + (255.0 - base) * ((vals - 0.5) * 2.0)
    rgb = np.where(vals < 0.5, low, high)
    out = np.empty(vals.shape[:-1] + (4,), dtype=np.uint8)
    out[..., :3] = np.clip(np.trunc(np.nan_to_num(rgb)), 0, 255)
    out[..., 3] = 255
    return out


def _saturate(value: float) -> int:
    if value != value:  # NaN
        return 0
    return max(0, min(255, int(value)))


def _phase(time: int, period: int) -> float:
    return ((time - 1) % period) / period


# ---------------------------------------------------------------------------
# Renderer interface
# ---------------------------------------------------------------------------

class Renderer(abc.ABC):
    """A render style: turns one slice of actions into pixel writes."""

    style: Style

    @abc.abstractmethod
    def update(self, actions: Sequence[Action], frame: Frame) -> None:
        """Apply *actions* (the current slice) to *frame*."""


class NormalRenderer(Renderer):
    """Replays placements in their palette colors."""

    style = Style.NORMAL

    def __init__(self, background: Frame, palette: Sequence[Rgba]) -> None:
        self.background = background
        self.palette = tuple(palette)

    def resolve(self, action: Action) -> Rgba:
        index = action.index
        if index is not None and 0 <= index < len(self.palette):
            return self.palette[index]
        # Transparent, absent or unknown index: fall back to the background.
        pixel = self.background.get(action.x, action.y)
        return pixel.to_rgba() if pixel is not None else BLACK

    def update(self, actions, frame):
        for action in actions:
            frame.put(action.x, action.y, self.resolve(action))


class VirginRenderer(Renderer):
    """Marks every pixel that has ever been touched."""

    style = Style.VIRGIN

    def __init__(self, color: Rgba = TOUCHED_COLOR) -> None:
        self.color = color

    def update(self, actions, frame):
        for action in actions:
            frame.put(action.x, action.y, self.color)


class ActionRenderer(Renderer):
    """Colors each pixel by the kind of the last action on it."""

    style = Style.ACTION

    def update(self, actions, frame):
        for action in actions:
            color = ACTION_COLORS.get(action.kind, TOUCHED_COLOR)
            frame.put(action.x, action.y, color)


class PlacementRenderer(Renderer):
    """Colors each pixel by where its timestamp falls within *period*."""

    def __init__(self, style: Style, color: Rgba, period: int) -> None:
        self.style = style
        self.color = color
        self.period = period

    def update(self, actions, frame):
        for action in actions:
            frame.put(action.x, action.y,
                      color_lerp(self.color, _phase(action.time, self.period)))


class CombinedRenderer(Renderer):
    """Packs the millisecond, second and minute phases into R, G and B."""

    style = Style.COMBINED

    def update(self, actions, frame):
        for action in actions:
            r = int(_phase(action.time, MILLISECOND_PERIOD) * 255.0)
            g = int(_phase(action.time, SECOND_PERIOD) * 255.0)
            b = int(_phase(action.time, MINUTE_PERIOD) * 255.0)
            frame.put(action.x, action.y, Rgba(r, g, b, 255))


# ---------------------------------------------------------------------------
# Grid-backed styles
# ---------------------------------------------------------------------------

def _coords(actions: Sequence[Action]):
    xs = np.fromiter((a.x for a in actions), dtype=np.intp, count=len(actions))
    ys = np.fromiter((a.y for a in actions), dtype=np.intp, count=len(actions))
    return ys, xs


class ActivityRenderer(Renderer):
    """Shows how many times each pixel has been placed."""

    style = Style.ACTIVITY

    def __init__(self, width: int, height: int) -> None:
        self.totals = np.zeros((height, width), dtype=np.uint32)
        self.gradient = Gradient.build(ACTIVITY_COLORS, ACTIVITY_WEIGHTS)

    def update(self, actions, frame):
        if actions:
            np.add.at(self.totals, _coords(actions), 1)
        frame.put_from_producer(
            lambda start, stop: self.gradient.at_array(self.totals[start:stop])
        )


class HeatRenderer(Renderer):
    """
    Glows where pixels were placed recently.

    A visited pixel fades linearly from HEAT_COLOR to black over *window*
    milliseconds, measured against the current step boundary: the end of
    the latest time bucket reached when stepping by time, or the newest
    timestamp seen when stepping by action count.
    """

    style = Style.HEAT

    def __init__(self, width: int, height: int, window: int,
                 step: Optional[Step] = None) -> None:
        if window <= 0:
            raise ValueError(f"Heat window must be positive, got {window}")
        self.window = float(window)
        self.step_millis = step.value if step and step.kind is StepKind.TIME else None
        self.last_seen = np.zeros((height, width), dtype=np.int64)
        self.touched = np.zeros((height, width), dtype=bool)
        self.current_step = 1
        self.latest: Optional[int] = None

    @property
    def boundary(self) -> int:
        if self.step_millis is not None:
            return self.step_millis * self.current_step
        return self.latest if self.latest is not None else 0

    def update(self, actions, frame):
        for action in actions:
            self.last_seen[action.y, action.x] = action.time
            self.touched[action.y, action.x] = True
            if self.latest is None or action.time > self.latest:
                self.latest = action.time
            if (self.step_millis is not None
                    and action.time > self.step_millis * self.current_step):
                self.current_step = action.time // self.step_millis + 1

        boundary = self.boundary
        base = np.array(HEAT_COLOR[:3], dtype=np.float64)

        def produce(start: int, stop: int) -> np.ndarray:
            diff = (boundary - self.last_seen[start:stop]) / self.window
            val = np.clip(1.0 - diff, 0.0, 1.0)
            val = np.where(self.touched[start:stop], val, 0.0)
            out = np.empty((stop - start, frame.width, 4), dtype=np.uint8)
            out[..., :3] = np.trunc(val[..., None] * base)
            out[..., 3] = 255
            return out

        frame.put_from_producer(produce)


class AgeRenderer(Renderer):
    """Shades visited pixels from oldest (black) to newest (white) placement."""

    style = Style.AGE

    def __init__(self, width: int, height: int) -> None:
        self.last_seen = np.zeros((height, width), dtype=np.int64)
        self.touched = np.zeros((height, width), dtype=bool)
        self.min: Optional[int] = None
        self.max: Optional[int] = None

    def update(self, actions, frame):
        for action in actions:
            self.last_seen[action.y, action.x] = action.time
            self.touched[action.y, action.x] = True
            self.min = action.time if self.min is None else min(self.min, action.time)
            self.max = action.time if self.max is None else max(self.max, action.time)

        lo, hi = self.min, self.max

        def produce(start: int, stop: int) -> np.ndarray:
            ages = self.last_seen[start:stop]
            touched = self.touched[start:stop]
            if lo is None or hi == lo:
                # A single instant: every visited pixel is the newest.
                normalized = np.ones(ages.shape, dtype=np.float64)
            else:
                normalized = (ages - lo) / float(hi - lo)
            out = color_lerp_array(AGE_COLOR, normalized)
            out[~touched] = BLACK
            return out

        frame.put_from_producer(produce)


# ---------------------------------------------------------------------------
# Style dispatch
# ---------------------------------------------------------------------------

def create_renderer(
    style: Style,
    background: Frame,
    palette: Sequence[Rgba],
    step: Step,
    heat_window: int,
) -> Renderer:
    """Build the renderer for *style*, sized to *background*."""
    width, height = background.dimensions()
    if style is Style.NORMAL:
        return NormalRenderer(background.copy(), palette)
    if style is Style.VIRGIN:
        return VirginRenderer()
    if style is Style.ACTION:
        return ActionRenderer()
    if style is Style.MILLISECONDS:
        return PlacementRenderer(style, Rgba(255, 0, 0), MILLISECOND_PERIOD)
    if style is Style.SECONDS:
        return PlacementRenderer(style, Rgba(0, 255, 0), SECOND_PERIOD)
    if style is Style.MINUTES:
        return PlacementRenderer(style, Rgba(0, 0, 255), MINUTE_PERIOD)
    if style is Style.COMBINED:
        return CombinedRenderer()
    if style is Style.ACTIVITY:
        return ActivityRenderer(width, height)
    if style is Style.HEAT:
        return HeatRenderer(width, height, heat_window, step)
    if style is Style.AGE:
        return AgeRenderer(width, height)
    raise ValueError(f"Unknown render style: {style!r}")
