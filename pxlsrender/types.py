"""
Core data structures shared by the parser, the render engine and the CLI.
"""

from __future__ import annotations

import enum
from dataclasses import dataclass
from typing import Optional


# Palette index recorded in the log for pixels returned to the background.
TRANSPARENT = -1


class ActionKind(enum.Enum):
    """What kind of canvas mutation an action records."""
    PLACE = "user place"
    UNDO = "user undo"
    OVERWRITE = "mod overwrite"
    ROLLBACK = "rollback"
    ROLLBACK_UNDO = "rollback undo"
    NUKE = "console nuke"


@dataclass(frozen=True)
class Action:
    """A single logged pixel placement (or moderation event)."""
    time: int                          # milliseconds since the epoch
    x: int
    y: int
    user: Optional[str] = None
    index: Optional[int] = None        # palette index or TRANSPARENT
    kind: Optional[ActionKind] = None

    @property
    def is_transparent(self) -> bool:
        return self.index == TRANSPARENT


@dataclass(frozen=True)
class Region:
    """Rectangle over canvas coordinates; start inclusive, end exclusive."""
    x1: int
    y1: int
    x2: int
    y2: int

    def __post_init__(self) -> None:
        if min(self.x1, self.y1, self.x2, self.y2) < 0:
            raise ValueError(f"Region coordinates must be unsigned: {self}")
        if self.x1 > self.x2 or self.y1 > self.y2:
            raise ValueError(f"Region start must not exceed its end: {self}")

    @property
    def width(self) -> int:
        return self.x2 - self.x1

    @property
    def height(self) -> int:
        return self.y2 - self.y1

    @property
    def start(self) -> tuple[int, int]:
        return self.x1, self.y1

    def contains(self, x: int, y: int) -> bool:
        return self.x1 <= x < self.x2 and self.y1 <= y < self.y2

    @classmethod
    def from_bounds(cls, bounds: tuple[int, int, int, int]) -> Region:
        return cls(*bounds)


class PixelFormat(enum.Enum):
    """On-the-wire layout of an emitted frame."""
    RGBA = "rgba"
    RGB = "rgb"
    YUV420P = "yuv420p"


class Style(enum.Enum):
    """Available render styles."""
    NORMAL = "normal"
    HEAT = "heat"
    VIRGIN = "virgin"
    ACTIVITY = "activity"
    ACTION = "action"
    MILLISECONDS = "milliseconds"
    SECONDS = "seconds"
    MINUTES = "minutes"
    COMBINED = "combined"
    AGE = "age"


class StepKind(enum.Enum):
    """How the action stream is cut into frames."""
    TIME = "time"       # step is a window in milliseconds
    COUNT = "count"     # step is a number of actions


@dataclass(frozen=True)
class Step:
    """Partition policy: a strictly positive window of time or actions."""
    kind: StepKind = StepKind.TIME
    value: int = 900_000          # 15 minutes

    def __post_init__(self) -> None:
        if self.value <= 0:
            raise ValueError(f"Step must be strictly positive, got {self.value}")
