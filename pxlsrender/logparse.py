"""
Reader for pxls canvas logs.

Each line is tab separated::

    2021-06-01 12:00:00,123  <user hash>  <x>  <y>  <index>  <kind>

``index`` is ``-1`` (or ``transparent``) when the pixel went back to the
background.  The reader also tracks the bounding box of every coordinate
seen, which sizes the canvas when no background image is supplied.
"""

from __future__ import annotations

import logging
from datetime import datetime, timedelta, timezone
from typing import Iterable, List, Optional, TextIO, Tuple

from pxlsrender.exceptions import LogParseError, OutOfOrderError
from pxlsrender.types import TRANSPARENT, Action, ActionKind

logger = logging.getLogger(__name__)

DATE_FMT = "%Y-%m-%d %H:%M:%S,%f"
_EPOCH = datetime(1970, 1, 1, tzinfo=timezone.utc)

Bounds = Tuple[int, int, int, int]

_KINDS = {kind.value: kind for kind in ActionKind}


def parse_timestamp(text: str) -> int:
    """Milliseconds since the epoch for a log date (taken as UTC)."""
    moment = datetime.strptime(text.strip(), DATE_FMT).replace(tzinfo=timezone.utc)
    return (moment - _EPOCH) // timedelta(milliseconds=1)


def parse_index(text: str) -> int:
    text = text.strip()
    if text.lower() == "transparent":
        return TRANSPARENT
    index = int(text)
    if index < TRANSPARENT:
        raise ValueError(f"invalid palette index {index}")
    return index


def parse_line(line: str, line_number: int = 0) -> Action:
    """Parse one log line into an Action."""
    fields = line.rstrip("\r\n").split("\t")
    if len(fields) != 6:
        raise LogParseError(
            f"expected 6 tab-separated fields, got {len(fields)}", line_number, line
        )
    date, user, x, y, index, kind = fields
    try:
        time = parse_timestamp(date)
        px, py = int(x), int(y)
        if px < 0 or py < 0:
            raise ValueError(f"negative coordinate ({px}, {py})")
        parsed_index = parse_index(index)
    except ValueError as exc:
        raise LogParseError(str(exc), line_number, line) from exc
    action_kind = _KINDS.get(kind.strip())
    if action_kind is None:
        raise LogParseError(f"unknown action kind {kind!r}", line_number, line)
    return Action(
        time=time,
        x=px,
        y=py,
        user=user or None,
        index=parsed_index,
        kind=action_kind,
    )


def read_actions(lines: Iterable[str] | TextIO) -> Tuple[List[Action], Optional[Bounds]]:
    """
    Parse every non-blank line.

    Returns the actions in log order and their bounds
    ``(min_x, min_y, max_x + 1, max_y + 1)``, or None for an empty log.
    """
    actions: List[Action] = []
    min_x = min_y = max_x = max_y = None
    prev_time = None
    for line_number, line in enumerate(lines, start=1):
        if not line.strip():
            continue
        action = parse_line(line, line_number)
        if prev_time is not None and action.time < prev_time:
            raise OutOfOrderError(
                f"action is out of order ({action.time} < {prev_time})",
                line_number, line,
            )
        prev_time = action.time
        if min_x is None:
            min_x, min_y, max_x, max_y = action.x, action.y, action.x, action.y
        else:
            min_x = min(min_x, action.x)
            min_y = min(min_y, action.y)
            max_x = max(max_x, action.x)
            max_y = max(max_y, action.y)
        actions.append(action)

    logger.info("Parsed %d actions.", len(actions))
    if min_x is None:
        return actions, None
    return actions, (min_x, min_y, max_x + 1, max_y + 1)
