"""
Custom exception hierarchy for pxlsrender.

All pxlsrender exceptions inherit from PxlsRenderError so callers can catch
the entire family with a single except clause.
"""

from __future__ import annotations


class PxlsRenderError(Exception):
    """Base exception for all pxlsrender errors."""


class ConfigError(PxlsRenderError):
    """Raised when a render is configured with invalid or conflicting values."""


class PaletteError(PxlsRenderError):
    """Raised when a palette file cannot be parsed."""


class LogParseError(PxlsRenderError):
    """Raised when a line of the action log is malformed."""

    def __init__(self, message: str, line_number: int = 0, line: str = "") -> None:
        super().__init__(f"{message} @ line {line_number}")
        self.line_number = line_number
        self.line = line


class OutOfOrderError(LogParseError):
    """Raised when an action is timestamped before its predecessor."""


class BackgroundError(PxlsRenderError):
    """Raised when the background image cannot be loaded."""


class OutputError(PxlsRenderError):
    """Raised when a frame cannot be written to its destination."""
