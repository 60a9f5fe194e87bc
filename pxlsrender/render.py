"""
Render orchestration.

A ``RenderCommand`` is built from one ``RenderConfig`` plus the canvas
bounds observed in the log.  Construction does all validation and loads
the palette and background, so a bad render fails before any output is
touched.  ``run`` then replays an action list::

    background frame                      (frame 0)
    for each slice of the action list:    (frames 1..n)
        renderer.update(slice, frame)
        sink.write(frame)

with the first ``skip`` frames withheld from the sink.  Several commands
may run against the same action list at once; each owns its frame and
renderer state.
"""

from __future__ import annotations

import logging
import sys
import time
from concurrent.futures import ThreadPoolExecutor, as_completed
from dataclasses import dataclass
from typing import BinaryIO, List, Optional, Sequence, Tuple

from PIL import Image, UnidentifiedImageError
from tqdm import tqdm

from pxlsrender.assembly import FrameSink, open_sink
from pxlsrender.batching import frame_slices, slice_sizes
from pxlsrender.config import RenderConfig
from pxlsrender.exceptions import BackgroundError, ConfigError, PxlsRenderError
from pxlsrender.frames import Frame, frame_type
from pxlsrender.palette import DEFAULT_PALETTE, load_palette
from pxlsrender.pixel import WHITE
from pxlsrender.renderers import create_renderer
from pxlsrender.types import Action, PixelFormat, Region

logger = logging.getLogger(__name__)

Bounds = Tuple[int, int, int, int]


# ---------------------------------------------------------------------------
# Statistics
# ---------------------------------------------------------------------------

@dataclass
class RenderStats:
    destination: str
    frames: int = 0           # frames written to the sink
    actions: int = 0          # actions replayed
    dropped: int = 0          # actions outside the canvas
    elapsed_s: float = 0.0

    @property
    def fps(self) -> float:
        return self.frames / self.elapsed_s if self.elapsed_s > 0 else 0.0

    def summary(self) -> str:
        return (f"{self.destination}: {self.frames} frames, "
                f"{self.actions} actions ({self.dropped} dropped) "
                f"in {self.elapsed_s:.2f}s ({self.fps:.1f} fps)")


# ---------------------------------------------------------------------------
# Canvas setup
# ---------------------------------------------------------------------------

def _load_background_image(config: RenderConfig, region: Region) -> Image.Image:
    """The background image, cropped to *region*, padded with white if smaller."""
    path = config.background_path
    try:
        with Image.open(path) as source:
            image = source.convert("RGBA")
    except (OSError, UnidentifiedImageError) as exc:
        raise BackgroundError(f"Cannot load background {path}: {exc}") from exc

    x2 = min(region.x2, image.width)
    y2 = min(region.y2, image.height)
    canvas = Image.new("RGBA", (region.width, region.height), WHITE)
    if x2 > region.x1 and y2 > region.y1:
        canvas.paste(image.crop((region.x1, region.y1, x2, y2)), (0, 0))
    else:
        logger.warning("Region %s lies outside background %s", region, path)
    return canvas


def resolve_canvas(config: RenderConfig, bounds: Optional[Bounds]) -> Region:
    """
    The part of the canvas a render covers, in log coordinates.

    An explicit region wins; otherwise a background image covers itself
    from the origin, and a plain canvas covers the observed bounds.
    """
    if config.region is not None:
        return config.region
    if config.background_path is not None:
        try:
            with Image.open(config.background_path) as image:
                return Region(0, 0, image.width, image.height)
        except (OSError, UnidentifiedImageError) as exc:
            raise BackgroundError(
                f"Cannot load background {config.background_path}: {exc}"
            ) from exc
    if bounds is None:
        raise ConfigError("Cannot infer canvas size: the log is empty and no "
                          "region or background image was given")
    return Region.from_bounds(bounds)


# ---------------------------------------------------------------------------
# A single render
# ---------------------------------------------------------------------------

class RenderCommand:
    """One configured render, ready to replay an action list."""

    def __init__(
        self,
        config: RenderConfig,
        bounds: Optional[Bounds] = None,
        workers: Optional[int] = None,
        quiet: bool = False,
        stream: Optional[BinaryIO] = None,
    ) -> None:
        self.config = config
        self.workers = workers
        self.quiet = quiet
        self.stream = stream

        self.region = resolve_canvas(config, bounds)
        if self.region.width == 0 or self.region.height == 0:
            raise ConfigError(f"Canvas {self.region} is empty")
        config.destination.check_format(config.format)
        if config.format is PixelFormat.YUV420P:
            if self.region.width % 2 or self.region.height % 2:
                raise ConfigError(
                    f"yuv420p needs even dimensions, canvas is "
                    f"{self.region.width}x{self.region.height}; pass --region"
                )

        self.palette = (load_palette(config.palette_path)
                        if config.palette_path is not None else list(DEFAULT_PALETTE))
        self.background = self._build_background()
        logger.info("%s: %dx%d canvas at offset %s, style %s, format %s",
                    config.destination, self.region.width, self.region.height,
                    self.region.start, config.style.value, config.format.value)

    def _build_background(self) -> Frame:
        cls = frame_type(self.config.format)
        if self.config.background_path is not None:
            image = _load_background_image(self.config, self.region)
            return cls.from_image(image, workers=self.workers)
        color = self.config.background_color or WHITE
        return cls.from_pixel(self.region.width, self.region.height, color,
                              workers=self.workers)

    # -- actions ------------------------------------------------------------

    def prepare_actions(self, actions: Sequence[Action]) -> List[Action]:
        """Actions inside the canvas, translated to frame coordinates."""
        region = self.region
        dx, dy = region.start
        visible = [
            a if (dx, dy) == (0, 0) else Action(a.time, a.x - dx, a.y - dy,
                                                a.user, a.index, a.kind)
            for a in actions if region.contains(a.x, a.y)
        ]
        dropped = len(actions) - len(visible)
        if dropped:
            logger.debug("%s: dropped %d actions outside %s",
                         self.config.destination, dropped, region)
        return visible

    def plan(self, actions: Sequence[Action]) -> int:
        """Number of frames ``run`` would write, without rendering."""
        visible = self.prepare_actions(actions)
        sizes = slice_sizes(visible, self.config.step, self.config.fill_gaps)
        logger.debug("%s: slice sizes %s", self.config.destination, sizes)
        return max(0, 1 + len(sizes) - self.config.skip)

    # -- rendering ----------------------------------------------------------

    def run(self, actions: Sequence[Action], sink: Optional[FrameSink] = None) -> RenderStats:
        """Replay *actions* and write every frame past ``skip`` to the sink."""
        config = self.config
        t_start = time.perf_counter()
        visible = self.prepare_actions(actions)
        stats = RenderStats(str(config.destination), actions=len(visible),
                            dropped=len(actions) - len(visible))

        frame = self.background.copy()
        renderer = create_renderer(config.style, self.background, self.palette,
                                   config.step, config.heat_window)
        frame_index = 0

        def emit() -> None:
            nonlocal frame_index
            if frame_index >= config.skip:
                sink.write(frame)
                stats.frames += 1
            frame_index += 1

        if sink is None:
            sink = open_sink(config.destination, self.stream)
        bar = tqdm(total=len(visible), desc=str(config.destination), unit="action",
                   file=sys.stderr, dynamic_ncols=True,
                   disable=True if self.quiet else None)
        try:
            with sink:
                emit()
                for batch in frame_slices(visible, config.step, config.fill_gaps):
                    renderer.update(batch, frame)
                    emit()
                    bar.update(len(batch))
        finally:
            bar.close()

        stats.elapsed_s = time.perf_counter() - t_start
        logger.info(stats.summary())
        return stats


# ---------------------------------------------------------------------------
# Several renders over one action list
# ---------------------------------------------------------------------------

@dataclass
class RenderResult:
    destination: str
    stats: Optional[RenderStats] = None
    error: Optional[Exception] = None

    @property
    def ok(self) -> bool:
        return self.error is None


def _run_one(command: RenderCommand, actions: Sequence[Action]) -> RenderResult:
    destination = str(command.config.destination)
    try:
        return RenderResult(destination, stats=command.run(actions))
    except PxlsRenderError as exc:
        logger.error("Render to %s failed: %s", destination, exc)
        return RenderResult(destination, error=exc)


def run_renders(
    commands: Sequence[RenderCommand],
    actions: Sequence[Action],
    jobs: int = 1,
) -> List[RenderResult]:
    """
    Run every command over the same actions.

    A failing render is logged and reported in its result; the others
    carry on.  Results come back in the order of *commands*.
    """
    if jobs <= 1 or len(commands) <= 1:
        return [_run_one(c, actions) for c in commands]

    results: List[Optional[RenderResult]] = [None] * len(commands)
    with ThreadPoolExecutor(max_workers=min(jobs, len(commands))) as pool:
        futures = {pool.submit(_run_one, c, actions): i for i, c in enumerate(commands)}
        for future in as_completed(futures):
            results[futures[future]] = future.result()
    return results
