"""Pydantic models for the ingestion data flow."""

from pydantic import BaseModel, Field


class SourceInput(BaseModel):
    """One discovered file: path, content and its non-empty line count."""

    path: str  # posix path relative to the scan root
    content: str
    non_empty_lines: int = 0
    language: str = "python"


class FileSet(BaseModel):
    """Output of discovery: files to scan plus index-only files.

    ``detect`` files are scanned for findings and counted toward
    density. ``index_only`` files (tests) only feed the reference
    index so their call sites count as callers.
    """

    detect: list[SourceInput] = Field(default_factory=lambda: list[SourceInput]())
    index_only: list[SourceInput] = Field(
        default_factory=lambda: list[SourceInput]()
    )
