"""
Fixed-channel color values.

``Rgb`` and ``Rgba`` are plain tuples of 8-bit channels, so they compare,
hash and unpack like the raw sample groups they describe.
"""

from __future__ import annotations

from typing import NamedTuple, Union


class Rgb(NamedTuple):
    r: int
    g: int
    b: int

    CHANNELS = 3
    MODE = "RGB"

    def to_rgb(self) -> Rgb:
        return self

    def to_rgba(self) -> Rgba:
        return Rgba(self.r, self.g, self.b, 255)

    def to_bytes(self) -> bytes:
        return bytes(self)

    @classmethod
    def from_bytes(cls, raw: bytes) -> Rgb:
        if len(raw) != cls.CHANNELS:
            raise ValueError(f"Rgb needs {cls.CHANNELS} bytes, got {len(raw)}")
        return cls(*raw)


class Rgba(NamedTuple):
    r: int
    g: int
    b: int
    a: int = 255

    CHANNELS = 4
    MODE = "RGBA"

    def to_rgb(self) -> Rgb:
        return Rgb(self.r, self.g, self.b)

    def to_rgba(self) -> Rgba:
        return self

    def to_bytes(self) -> bytes:
        return bytes(self)

    @classmethod
    def from_bytes(cls, raw: bytes) -> Rgba:
        if len(raw) != cls.CHANNELS:
            raise ValueError(f"Rgba needs {cls.CHANNELS} bytes, got {len(raw)}")
        return cls(*raw)


Pixel = Union[Rgb, Rgba]

BLACK = Rgba(0, 0, 0, 255)
WHITE = Rgba(255, 255, 255, 255)
