"""Error types and failure classification for per-file scan errors.

Classifies exceptions by category to enable:
- Structured logging (which files failed and why)
- Separate reporting of files excluded from scoring
"""

from __future__ import annotations

from slopscan.constants import FailureKind


class SlopscanError(Exception):
    """Base class for engine errors."""


class ParseError(SlopscanError):
    """Malformed source; the file is excluded from detection and indexing."""

    def __init__(
        self,
        path: str,
        message: str,
        line: int | None = None,
        column: int | None = None,
    ) -> None:
        location = f"{path}:{line}" if line is not None else path
        super().__init__(f"{location}: {message}")
        self.path = path
        self.line = line
        self.column = column


def classify_failure(error: Exception) -> FailureKind:
    """Classify a per-file failure for the failure report."""
    if isinstance(error, ParseError):
        return FailureKind.PARSE
    if isinstance(error, (UnicodeDecodeError, UnicodeEncodeError)):
        return FailureKind.DECODE
    return FailureKind.INTERNAL
