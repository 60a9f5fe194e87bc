"""
Frame sinks: where serialized frames go.

Two destinations are supported:

    RawStreamSink       every frame's native bytes, back to back, on a binary
                        stream (stdout).  No headers; consumers derive the
                        frame length from width, height and pixel format.
    ImageSequenceSink   one still image per frame, ``{base}_{i}.{ext}``,
                        encoded by Pillow from the file extension.

Each frame is written (and flushed) before the next one is produced.
"""

from __future__ import annotations

import abc
import logging
import sys
from typing import BinaryIO, Optional

from pxlsrender.config import Destination
from pxlsrender.exceptions import OutputError
from pxlsrender.frames import Frame

logger = logging.getLogger(__name__)


class FrameSink(abc.ABC):
    """Receives frames in order, numbered consecutively from 0."""

    def __init__(self) -> None:
        self.frames_written = 0
        self.bytes_written = 0

    @abc.abstractmethod
    def _write(self, index: int, frame: Frame) -> int:
        """Write one frame and return the number of bytes produced."""

    def write(self, frame: Frame) -> None:
        self.bytes_written += self._write(self.frames_written, frame)
        self.frames_written += 1

    def close(self) -> None:
        pass

    def __enter__(self) -> FrameSink:
        return self

    def __exit__(self, *exc) -> None:
        self.close()


class RawStreamSink(FrameSink):
    """Writes ``frame.serialize()`` to a binary stream and flushes it."""

    def __init__(self, stream: BinaryIO) -> None:
        super().__init__()
        self.stream = stream

    def _write(self, index, frame):
        data = frame.serialize()
        try:
            self.stream.write(data)
            self.stream.flush()
        except OSError as exc:
            raise OutputError(f"Cannot write frame {index} to stream: {exc}") from exc
        return data.nbytes


class ImageSequenceSink(FrameSink):
    """Saves each frame as an image next to the destination path."""

    def __init__(self, destination: Destination) -> None:
        super().__init__()
        if destination.path is None:
            raise ValueError("ImageSequenceSink needs a file destination")
        self.destination = destination
        parent = destination.path.parent
        try:
            parent.mkdir(parents=True, exist_ok=True)
        except OSError as exc:
            raise OutputError(f"Cannot create output directory {parent}: {exc}") from exc

    def _write(self, index, frame):
        path = self.destination.frame_path(index)
        try:
            frame.to_image().save(path)
        except (OSError, KeyError, ValueError) as exc:
            raise OutputError(f"Cannot write frame {index} to {path}: {exc}") from exc
        logger.debug("Wrote %s", path)
        return path.stat().st_size


def open_sink(destination: Destination, stream: Optional[BinaryIO] = None) -> FrameSink:
    """The sink for *destination*; *stream* overrides ``sys.stdout.buffer``."""
    if destination.is_stdout:
        return RawStreamSink(stream if stream is not None else sys.stdout.buffer)
    return ImageSequenceSink(destination)
