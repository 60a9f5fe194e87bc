"""
Piecewise-linear color gradients over non-negative weights.

A gradient is a weight-sorted list of control points.  Looking up a weight
between two control points interpolates every channel (alpha included) and
floors the result; weights outside the domain clamp to the first or last
color without interpolation.
"""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from typing import Sequence

import numpy as np

from pxlsrender.pixel import Pixel, Rgba


@dataclass(frozen=True)
class ColorStop:
    color: Rgba
    weight: float


class Gradient:
    """Immutable, weight-sorted set of color stops."""

    def __init__(self, stops: Sequence[ColorStop]) -> None:
        if not stops:
            raise ValueError("A gradient needs at least one color stop.")
        ordered = sorted(stops, key=lambda s: s.weight)
        self._stops: tuple[ColorStop, ...] = tuple(ordered)
        self._weights = np.array([s.weight for s in ordered], dtype=np.float64)
        self._colors = np.array([s.color for s in ordered], dtype=np.float64)
        self.domain: tuple[float, float] = (ordered[0].weight, ordered[-1].weight)

    @classmethod
    def build(cls, colors: Sequence[Pixel], weights: Sequence[float]) -> Gradient:
        """Pair *colors* with *weights* and sort them into a gradient."""
        return GradientBuilder().push_many(colors, weights).build()

    @property
    def stops(self) -> tuple[ColorStop, ...]:
        return self._stops

    def at(self, weight: float) -> Rgba:
        """Return the color at *weight*."""
        if math.isnan(weight) or math.isinf(weight):
            raise ValueError(f"Gradient weight must be finite, got {weight!r}")

        stops = self._stops
        for lower, upper in zip(stops, stops[1:]):
            if lower.weight <= weight <= upper.weight:
                offset = weight - lower.weight
                if offset == 0.0:
                    return lower.color
                interp = offset / (upper.weight - lower.weight)
                return Rgba(*(
                    math.floor((hi - lo) * interp + lo)
                    for lo, hi in zip(lower.color, upper.color)
                ))

        if weight < self.domain[0]:
            return stops[0].color
        return stops[-1].color

    def at_array(self, weights: np.ndarray) -> np.ndarray:
        """
        Vectorised :meth:`at` for a whole grid of weights.

        Returns a ``uint8`` array of shape ``weights.shape + (4,)`` whose
        entries match ``at`` element for element.
        """
        w = np.asarray(weights, dtype=np.float64)
        if not np.all(np.isfinite(w)):
            raise ValueError("Gradient weights must be finite.")

        n = len(self._stops)
        if n == 1:
            out = np.empty(w.shape + (4,), dtype=np.uint8)
            out[...] = self._colors[0].astype(np.uint8)
            return out

        # Index of the lower stop of the first bracketing pair.
        lower = np.searchsorted(self._weights, w, side="left") - 1
        lower = np.clip(lower, 0, n - 2)
        lo_w = self._weights[lower]
        hi_w = self._weights[lower + 1]
        lo_c = self._colors[lower]
        hi_c = self._colors[lower + 1]

        offset = w - lo_w
        with np.errstate(divide="ignore", invalid="ignore"):
            interp = np.where(offset == 0.0, 0.0, offset / (hi_w - lo_w))
        mixed = np.floor((hi_c - lo_c) * interp[..., None] + lo_c)
        mixed = np.where((offset == 0.0)[..., None], lo_c, mixed)

        mixed = np.where((w < self.domain[0])[..., None], self._colors[0], mixed)
        mixed = np.where((w > self.domain[1])[..., None], self._colors[-1], mixed)
        return mixed.astype(np.uint8)


@dataclass
class GradientBuilder:
    """Accumulates color stops; :meth:`build` sorts them by weight."""
    stops: list[ColorStop] = field(default_factory=list)

    def push(self, color: Pixel, weight: float) -> GradientBuilder:
        if weight < 0:
            raise ValueError(f"Gradient weights must be non-negative, got {weight}")
        self.stops.append(ColorStop(color.to_rgba(), float(weight)))
        return self

    def push_many(self, colors: Sequence[Pixel], weights: Sequence[float]) -> GradientBuilder:
        if len(colors) != len(weights):
            raise ValueError(
                f"Got {len(colors)} colors but {len(weights)} weights."
            )
        for color, weight in zip(colors, weights):
            self.push(color, weight)
        return self

    def build(self) -> Gradient:
        return Gradient(self.stops)
