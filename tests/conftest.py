"""Shared test fixtures: settings and in-memory source models."""

from __future__ import annotations

import textwrap
from collections.abc import Callable
from pathlib import Path

import pytest

from slopscan.analysis.detectors import Candidate, registered
from slopscan.analysis.static import ReferenceIndex, SourceFile, build_index, build_source_file
from slopscan.config import Settings
from slopscan.ingestion import count_non_empty
from slopscan.ingestion.schemas import SourceInput

FIXTURE_DIR = Path(__file__).resolve().parent / "fixtures" / "sample_repo"

# The sample repo ships its own tests; they are scan input, not part of this suite
collect_ignore = ["fixtures"]


def make_input(path: str, code: str, language: str = "python") -> SourceInput:
    """SourceInput for dedented ``code``."""
    content = textwrap.dedent(code).lstrip("\n")
    return SourceInput(
        path=path,
        content=content,
        non_empty_lines=count_non_empty(content),
        language=language,
    )


def make_source(code: str, path: str = "pkg/mod.py", *, index_only: bool = False) -> SourceFile:
    return build_source_file(make_input(path, code), index_only=index_only)


def make_index(*files: tuple[str, str], tests: tuple[tuple[str, str], ...] = ()) -> ReferenceIndex:
    """Index over ``(path, code)`` pairs; ``tests`` are index-only files."""
    sources = [make_source(code, path) for path, code in files]
    sources.extend(make_source(code, path, index_only=True) for path, code in tests)
    return build_index(sources)


def detect(pattern: str, source: SourceFile, settings: Settings | None = None) -> list[Candidate]:
    """Run a single registered detector."""
    entry = next(d for d in registered() if d.spec.name == pattern)
    return entry.detect(source, settings or Settings(_env_file=None))


@pytest.fixture
def settings() -> Settings:
    """Settings that ignore any local .env file."""
    return Settings(_env_file=None)


@pytest.fixture
def source_factory() -> Callable[..., SourceFile]:
    return make_source
