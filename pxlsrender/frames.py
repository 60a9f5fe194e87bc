"""
Frame buffers in the three supported pixel encodings.

    RgbaFrame     4 bytes per pixel, row-major
    RgbFrame      3 bytes per pixel, row-major
    Yuv420pFrame  planar Y (full resolution) + Cb + Cr (half width, half height)

Every frame has a fixed size for its lifetime.  ``serialize()`` returns the
frame in its native on-the-wire layout: for RGBA and RGB that is a
zero-copy view of the pixel grid, for YUV 4:2:0 it is the derived plane
buffer, which is kept in step with the RGB source on every write.
"""

from __future__ import annotations

import abc
import logging
import math
from typing import Callable, ClassVar, Iterable, Optional, Tuple, Type

import numpy as np
from PIL import Image

from pxlsrender.pixel import Pixel, Rgb, Rgba
from pxlsrender.processing import fork_join
from pxlsrender.types import PixelFormat

logger = logging.getLogger(__name__)

# ``producer(row_start, row_stop)`` returns the RGBA pixels of those rows as
# a uint8 array of shape (row_stop - row_start, width, 4).
Producer = Callable[[int, int], np.ndarray]


class Frame(abc.ABC):
    """Owned, fixed-size 2-D pixel buffer."""

    FORMAT: ClassVar[PixelFormat]
    PIXEL: ClassVar[Type[Pixel]]

    def __init__(self, pixels: np.ndarray, workers: int = 1) -> None:
        channels = self.PIXEL.CHANNELS
        if pixels.ndim != 3 or pixels.shape[2] != channels:
            raise ValueError(
                f"{type(self).__name__} needs an (h, w, {channels}) array, "
                f"got shape {pixels.shape}"
            )
        self._data = np.ascontiguousarray(pixels, dtype=np.uint8)
        self.workers = workers

    # -- construction -------------------------------------------------------

    @classmethod
    def from_pixel(cls, width: int, height: int, pixel: Pixel,
                   workers: int = 1) -> Frame:
        """A frame of *width* x *height* filled with one color."""
        sample = _convert(pixel, cls.PIXEL)
        data = np.empty((height, width, cls.PIXEL.CHANNELS), dtype=np.uint8)
        data[...] = sample
        return cls(data, workers=workers)

    @classmethod
    def from_image(cls, image: Image.Image, workers: int = 1) -> Frame:
        """A frame holding a decoded Pillow image."""
        return cls(np.array(image.convert(cls.PIXEL.MODE), dtype=np.uint8),
                   workers=workers)

    def copy(self) -> Frame:
        return type(self)(self._data.copy(), workers=self.workers)

    # -- access -------------------------------------------------------------

    @property
    def width(self) -> int:
        return self._data.shape[1]

    @property
    def height(self) -> int:
        return self._data.shape[0]

    def dimensions(self) -> Tuple[int, int]:
        return self.width, self.height

    def get(self, x: int, y: int) -> Optional[Pixel]:
        """The pixel at (x, y), or None when the point lies outside the frame."""
        if 0 <= x < self.width and 0 <= y < self.height:
            return self.PIXEL(*(int(c) for c in self._data[y, x]))
        return None

    def put(self, x: int, y: int, pixel: Pixel) -> None:
        """Overwrite the pixel at (x, y).  The point must lie inside the frame."""
        self._check_bounds(x, y)
        self._data[y, x] = _convert(pixel, self.PIXEL)

    def put_from_iter(self, pixels: Iterable[Pixel]) -> None:
        """Replace every pixel from a row-major sequence."""
        samples = [_convert(p, self.PIXEL) for p in pixels]
        if len(samples) != self.width * self.height:
            raise ValueError(
                f"Expected {self.width * self.height} pixels, got {len(samples)}"
            )
        self._data[...] = np.array(samples, dtype=np.uint8).reshape(self._data.shape)

    def put_from_producer(self, producer: Producer) -> None:
        """Replace every pixel, computing disjoint row bands in parallel."""
        channels = self.PIXEL.CHANNELS

        def fill(start: int, stop: int) -> None:
            self._data[start:stop] = producer(start, stop)[..., :channels]

        fork_join(self.height, fill, workers=self.workers)

    @property
    def pixels(self) -> np.ndarray:
        """Read-only view of the pixel grid, shape (h, w, channels)."""
        view = self._data.view()
        view.flags.writeable = False
        return view

    @abc.abstractmethod
    def serialize(self) -> memoryview:
        """The frame in its native byte layout."""

    def to_image(self) -> Image.Image:
        return Image.fromarray(self._data)

    def _check_bounds(self, x: int, y: int) -> None:
        if not (0 <= x < self.width and 0 <= y < self.height):
            raise IndexError(
                f"{(x, y)} lies outside a {self.width}x{self.height} frame"
            )

    def __repr__(self) -> str:
        return f"{type(self).__name__}({self.width}x{self.height})"


class RgbaFrame(Frame):
    FORMAT = PixelFormat.RGBA
    PIXEL = Rgba

    def serialize(self) -> memoryview:
        return self._data.reshape(-1).data


class RgbFrame(Frame):
    FORMAT = PixelFormat.RGB
    PIXEL = Rgb

    def serialize(self) -> memoryview:
        return self._data.reshape(-1).data


# ---------------------------------------------------------------------------
# YUV 4:2:0
# ---------------------------------------------------------------------------

def _luma(r, g, b):
    return ((66 * r + 129 * g + 25 * b) >> 8) + 16


def _chroma_b(r, g, b):
    return ((-38 * r - 74 * g + 112 * b) >> 8) + 128


def _chroma_r(r, g, b):
    return ((112 * r - 94 * g - 18 * b) >> 8) + 128


class Yuv420pFrame(Frame):
    """
    RGB source plane plus a derived planar YUV 4:2:0 buffer.

    Each chroma sample covers a 2x2 block of luma samples and is the root
    mean square of the four per-pixel chroma values (integer mean of the
    squares, then integer square root), not their arithmetic mean.
    """

    FORMAT = PixelFormat.YUV420P
    PIXEL = Rgb

    def __init__(self, pixels: np.ndarray, workers: int = 1) -> None:
        super().__init__(pixels, workers=workers)
        if self.width % 2 or self.height % 2:
            raise ValueError(
                f"YUV 4:2:0 frames need even dimensions, got {self.width}x{self.height}"
            )
        size = self.width * self.height
        self._yuv = np.zeros(size + size // 2, dtype=np.uint8)
        self._y = self._yuv[:size].reshape(self.height, self.width)
        self._u = self._yuv[size:size + size // 4].reshape(self.height // 2, self.width // 2)
        self._v = self._yuv[size + size // 4:].reshape(self.height // 2, self.width // 2)
        self._regenerate()

    def put(self, x: int, y: int, pixel: Pixel) -> None:
        super().put(x, y, pixel)
        self._regenerate_block(x, y)

    def put_from_iter(self, pixels: Iterable[Pixel]) -> None:
        super().put_from_iter(pixels)
        self._regenerate()

    def put_from_producer(self, producer: Producer) -> None:
        def fill(start: int, stop: int) -> None:
            self._data[start:stop] = producer(start, stop)[..., :3]
            self._convert_rows(start, stop)

        fork_join(self.height, fill, workers=self.workers, align=2)

    def serialize(self) -> memoryview:
        return self._yuv.data

    @property
    def planes(self) -> Tuple[np.ndarray, np.ndarray, np.ndarray]:
        """Read-only (Y, Cb, Cr) views of the derived buffer."""
        views = (self._y.view(), self._u.view(), self._v.view())
        for v in views:
            v.flags.writeable = False
        return views

    def _regenerate(self) -> None:
        fork_join(self.height, self._convert_rows, workers=self.workers, align=2)

    def _convert_rows(self, start: int, stop: int) -> None:
        rgb = self._data[start:stop].astype(np.int32)
        r, g, b = rgb[..., 0], rgb[..., 1], rgb[..., 2]
        self._y[start:stop] = _luma(r, g, b)

        rows, cols = (stop - start) // 2, self.width // 2
        u_sq = (_chroma_b(r, g, b) ** 2).reshape(rows, 2, cols, 2).sum(axis=(1, 3))
        v_sq = (_chroma_r(r, g, b) ** 2).reshape(rows, 2, cols, 2).sum(axis=(1, 3))
        self._u[start // 2:stop // 2] = np.floor(np.sqrt(u_sq // 4))
        self._v[start // 2:stop // 2] = np.floor(np.sqrt(v_sq // 4))

    def _regenerate_block(self, x: int, y: int) -> None:
        x0, y0 = x & ~1, y & ~1
        u_sq = v_sq = 0
        for dy in (0, 1):
            for dx in (0, 1):
                r, g, b = (int(c) for c in self._data[y0 + dy, x0 + dx])
                self._y[y0 + dy, x0 + dx] = _luma(r, g, b)
                u_sq += _chroma_b(r, g, b) ** 2
                v_sq += _chroma_r(r, g, b) ** 2
        self._u[y0 // 2, x0 // 2] = math.isqrt(u_sq // 4)
        self._v[y0 // 2, x0 // 2] = math.isqrt(v_sq // 4)

    def copy(self) -> Yuv420pFrame:
        clone = type(self).__new__(type(self))
        clone._data = self._data.copy()
        clone.workers = self.workers
        size = self.width * self.height
        clone._yuv = self._yuv.copy()
        clone._y = clone._yuv[:size].reshape(self.height, self.width)
        clone._u = clone._yuv[size:size + size // 4].reshape(self.height // 2, self.width // 2)
        clone._v = clone._yuv[size + size // 4:].reshape(self.height // 2, self.width // 2)
        return clone


# ---------------------------------------------------------------------------
# Format dispatch
# ---------------------------------------------------------------------------

FRAME_TYPES: dict[PixelFormat, Type[Frame]] = {
    PixelFormat.RGBA: RgbaFrame,
    PixelFormat.RGB: RgbFrame,
    PixelFormat.YUV420P: Yuv420pFrame,
}


def frame_type(fmt: PixelFormat) -> Type[Frame]:
    return FRAME_TYPES[fmt]


def frame_size_bytes(fmt: PixelFormat, width: int, height: int) -> int:
    """Length of one serialized frame, which raw-stream consumers must know."""
    if fmt is PixelFormat.YUV420P:
        return width * height * 3 // 2
    return width * height * frame_type(fmt).PIXEL.CHANNELS


def _convert(pixel: Pixel, target: Type[Pixel]) -> Pixel:
    return pixel.to_rgba() if target is Rgba else pixel.to_rgb()
