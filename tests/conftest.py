"""
Shared fixtures for the pxlsrender test suite.
"""

from __future__ import annotations

from pathlib import Path

import pytest

from pxlsrender.types import Action, ActionKind


def _make_action(time: int, x: int = 0, y: int = 0, index: int | None = 0,
                kind: ActionKind | None = ActionKind.PLACE) -> Action:
    return Action(time=time, x=x, y=y, user="u", index=index, kind=kind)


SAMPLE_LOG = (
    "2021-06-01 00:00:00,000\tuser1\t10\t20\t5\tuser place\n"
    "2021-06-01 00:00:00,500\tuser2\t11\t20\t0\tuser place\n"
    "\n"
    "2021-06-01 00:00:01,250\tuser1\t10\t21\t-1\tuser undo\n"
    "2021-06-01 00:00:02,000\tmod\t12\t22\t3\tmod overwrite\n"
)


@pytest.fixture
def sample_log() -> str:
    """Four actions over three seconds inside (10, 20)-(13, 23)."""
    return SAMPLE_LOG


@pytest.fixture
def log_file(tmp_path: Path, sample_log: str) -> Path:
    path = tmp_path / "pixels.log"
    path.write_text(sample_log, encoding="utf-8")
    return path


@pytest.fixture
def sample_actions() -> list[Action]:
    """Actions on a 2x2 canvas at t = 500, 1500, 2500."""
    return [
        _make_action(500, 0, 0, index=0),
        _make_action(1500, 1, 1, index=0),
        _make_action(2500, 1, 0, index=5),
    ]
