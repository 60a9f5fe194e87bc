"""
Partitioning of the action stream into per-frame slices.

Two policies are available, picked once per render from its ``Step``:

- by time: actions sharing ``time // step`` form one slice, in order;
- by count: consecutive runs of ``step`` actions (the last may be short).

Slices are taken from the caller's sequence, which is never modified and
can be shared by concurrent renders.
"""

from __future__ import annotations

import logging
from typing import Iterator, List, Sequence

from pxlsrender.types import Action, Step, StepKind

logger = logging.getLogger(__name__)


def time_slices(actions: Sequence[Action], step_millis: int,
                fill_gaps: bool = False) -> Iterator[Sequence[Action]]:
    """
    Yield one slice per distinct ``time // step_millis`` bucket.

    Buckets with no actions produce nothing unless *fill_gaps* is set, in
    which case an empty slice is yielded for every bucket skipped between
    two populated ones.
    """
    if step_millis <= 0:
        raise ValueError(f"Time step must be positive, got {step_millis}")

    start = 0
    bucket = None
    for i, action in enumerate(actions):
        current = action.time // step_millis
        if bucket is None:
            bucket = current
        elif current != bucket:
            yield actions[start:i]
            if fill_gaps:
                for _ in range(current - bucket - 1):
                    yield actions[i:i]
            start = i
            bucket = current
    if bucket is not None:
        yield actions[start:]


def count_slices(actions: Sequence[Action], count: int) -> Iterator[Sequence[Action]]:
    """Yield consecutive slices of *count* actions."""
    if count <= 0:
        raise ValueError(f"Action count step must be positive, got {count}")
    for start in range(0, len(actions), count):
        yield actions[start:start + count]


def frame_slices(actions: Sequence[Action], step: Step,
                 fill_gaps: bool = False) -> Iterator[Sequence[Action]]:
    """Slices for *step*'s policy."""
    if step.kind is StepKind.TIME:
        return time_slices(actions, step.value, fill_gaps=fill_gaps)
    return count_slices(actions, step.value)


def slice_sizes(actions: Sequence[Action], step: Step,
                fill_gaps: bool = False) -> List[int]:
    """Number of actions in each slice, without rendering anything."""
    return [len(s) for s in frame_slices(actions, step, fill_gaps=fill_gaps)]
