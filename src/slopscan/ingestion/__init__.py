"""File ingestion: discover source files and split off test files."""

from pathlib import Path

from slopscan.constants import BINARY_DETECTION_BUFFER
from slopscan.ingestion.schemas import FileSet, SourceInput

__all__ = [
    "FileSet",
    "SourceInput",
    "count_non_empty",
    "discover_files",
    "is_binary",
    "split_lines",
]


def is_binary(path: Path) -> bool:
    """Return True if the file appears to be binary (null byte in first N bytes)."""
    try:
        with open(path, "rb") as f:
            chunk = f.read(BINARY_DETECTION_BUFFER)
        return b"\x00" in chunk
    except OSError:
        return True


def split_lines(content: str) -> list[str]:
    r"""Split on ``\n`` only, matching tree-sitter's row numbering.

    ``str.splitlines`` also breaks on form feeds, U+2028 and other
    separators that can sit inside string literals and comments.
    A trailing ``\r`` is dropped from each line.
    """
    if not content:
        return []
    lines = [line.removesuffix("\r") for line in content.split("\n")]
    if content.endswith("\n"):
        lines.pop()
    return lines


def count_non_empty(content: str) -> int:
    """Count lines that contain something other than whitespace."""
    return sum(1 for line in split_lines(content) if line.strip())


def discover_files(root: Path, settings: object | None = None) -> FileSet:
    """Walk ``root`` and build a :class:`FileSet`."""
    from slopscan.ingestion.discovery import discover_files as _impl

    return _impl(root, settings)
