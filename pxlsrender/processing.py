"""
Fork-join helpers for whole-frame pixel work.

A frame update is split into horizontal bands of rows.  Bands never
overlap, so workers can write straight into disjoint slices of the same
numpy buffer without locking; the pool is joined before the frame is
serialized.  numpy releases the GIL inside its kernels, which is what
makes a thread pool worthwhile here.
"""

from __future__ import annotations

import logging
import os
from concurrent.futures import ThreadPoolExecutor, as_completed
from typing import Callable, List, Optional, Tuple

logger = logging.getLogger(__name__)

# Below this many rows per band the pool overhead outweighs the work.
MIN_ROWS_PER_BAND = 64

BandFn = Callable[[int, int], None]


def default_workers() -> int:
    return os.cpu_count() or 1


def row_bands(height: int, workers: int, align: int = 1) -> List[Tuple[int, int]]:
    """
    Split ``range(height)`` into at most *workers* contiguous bands.

    Every band except possibly the last starts and ends on a multiple of
    *align* (2 for 4:2:0 chroma, so that each chroma row belongs to exactly
    one band).
    """
    if height <= 0:
        return []
    workers = max(1, workers)
    units = -(-height // align)
    per_band = max(-(-units // workers), -(-MIN_ROWS_PER_BAND // align))
    bands = []
    start = 0
    while start < height:
        stop = min(height, start + per_band * align)
        bands.append((start, stop))
        start = stop
    return bands


def fork_join(height: int, fn: BandFn, workers: Optional[int] = None,
              align: int = 1) -> None:
    """Run ``fn(start, stop)`` over every row band and wait for all of them."""
    workers = workers or default_workers()
    bands = row_bands(height, workers, align)
    if len(bands) <= 1 or workers <= 1:
        _process_sequential(bands, fn)
    else:
        _process_parallel(bands, fn, workers)


def _process_sequential(bands, fn):
    for start, stop in bands:
        fn(start, stop)


def _process_parallel(bands, fn, workers):
    logger.debug("Forking %d row bands over %d workers.", len(bands), workers)
    with ThreadPoolExecutor(max_workers=min(workers, len(bands))) as pool:
        futures = [pool.submit(fn, start, stop) for start, stop in bands]
        for future in as_completed(futures):
            future.result()
