"""Discover scan inputs in a directory tree via include/exclude globs."""

from __future__ import annotations

import logging
from pathlib import Path

import pathspec

from slopscan.config import EXTENSION_MAP, Settings
from slopscan.ingestion import count_non_empty, is_binary
from slopscan.ingestion.schemas import FileSet, SourceInput

logger = logging.getLogger(__name__)


def discover_files(
    root: Path,
    settings: Settings | object | None = None,
) -> FileSet:
    """Walk the tree under ``root`` and return a :class:`FileSet`.

    * Skips hidden directories and ``settings.skip_directories``.
    * Honors ``.gitignore`` plus the include/exclude globs.
    * Files matching ``settings.test_globs`` go to ``index_only``:
      they are never scanned but their references still count.
    """
    cfg = settings if isinstance(settings, Settings) else Settings()
    skip_dirs = set(cfg.skip_directories)
    include = pathspec.PathSpec.from_lines("gitwildmatch", cfg.include_globs)
    exclude = pathspec.PathSpec.from_lines("gitwildmatch", cfg.exclude_globs)
    tests = pathspec.PathSpec.from_lines("gitwildmatch", cfg.test_globs)

    root = Path(root)
    gitignore_spec = _load_gitignore(root)
    detect: list[SourceInput] = []
    index_only: list[SourceInput] = []

    for file_path in _walk_files(root, skip_dirs, gitignore_spec):
        rel = file_path.relative_to(root).as_posix()
        if not include.match_file(rel) or exclude.match_file(rel):
            continue
        language = EXTENSION_MAP.get(file_path.suffix.lower())
        if language is None or is_binary(file_path):
            continue
        try:
            content = file_path.read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError):
            logger.warning("event=discovery_unreadable path=%s", rel)
            continue

        item = SourceInput(
            path=rel,
            content=content,
            non_empty_lines=count_non_empty(content),
            language=language,
        )
        if tests.match_file(rel):
            if language == "python":
                index_only.append(item)
        else:
            detect.append(item)

    logger.info(
        "event=discovery_done detect=%d index_only=%d",
        len(detect),
        len(index_only),
    )
    return FileSet(detect=detect, index_only=index_only)


def _walk_files(
    root: Path,
    skip_dirs: set[str],
    gitignore_spec: pathspec.PathSpec,
) -> list[Path]:
    """Return all regular files, skipping hidden and excluded directories.

    Symlinks (both directory and file) that resolve outside the root
    are skipped to prevent directory traversal.
    """
    resolved_root = root.resolve()
    return _walk_files_inner(
        root, root, skip_dirs, gitignore_spec, resolved_root
    )


def _walk_files_inner(
    current: Path,
    root: Path,
    skip_dirs: set[str],
    gitignore_spec: pathspec.PathSpec,
    resolved_root: Path,
) -> list[Path]:
    """Recursive walk helper with symlink protection."""
    files: list[Path] = []
    for item in sorted(current.iterdir()):
        if item.is_symlink():
            resolved = item.resolve()
            if not resolved.is_relative_to(resolved_root):
                continue
        rel = str(item.relative_to(root))
        if item.is_dir():
            if item.name.startswith(".") or item.name in skip_dirs:
                continue
            if gitignore_spec.match_file(rel + "/"):
                continue
            files.extend(
                _walk_files_inner(
                    item, root, skip_dirs, gitignore_spec,
                    resolved_root,
                )
            )
        elif item.is_file():
            if not gitignore_spec.match_file(rel):
                files.append(item)
    return files


def _load_gitignore(root: Path) -> pathspec.PathSpec:
    """Load .gitignore patterns using pathspec."""
    gitignore = root / ".gitignore"
    if not gitignore.exists():
        return pathspec.PathSpec.from_lines("gitignore", [])
    try:
        with open(gitignore, encoding="utf-8") as f:
            return pathspec.PathSpec.from_lines("gitignore", f)
    except OSError:
        return pathspec.PathSpec.from_lines("gitignore", [])
