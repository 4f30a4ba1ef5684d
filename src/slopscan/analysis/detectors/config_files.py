"""Config-file patterns (TOML, INI, CFG).

These work on raw text and are reported in the unweighted config class:
they never count toward slop density.
"""

from __future__ import annotations

import re
from dataclasses import dataclass

from slopscan.analysis.detectors.base import Candidate, PatternSpec, config_detector
from slopscan.analysis.schemas import ProposedEdit
from slopscan.config import Settings
from slopscan.constants import Category, Technique
from slopscan.ingestion import split_lines
from slopscan.ingestion.schemas import SourceInput

CONFIG_DUPLICATE_KEY = PatternSpec(
    name="config-duplicate-key",
    category=Category.CONFIG,
    technique=Technique.STRUCTURAL,
    summary="key set twice in one section; the earlier value is dead",
)

CONFIG_COMMENTED_ENTRY = PatternSpec(
    name="config-commented-entry",
    category=Category.CONFIG,
    technique=Technique.STRUCTURAL,
    summary="commented-out key = value line",
)

_SECTION = re.compile(r"^\s*(\[\[?)\s*([^\]]+?)\s*\]\]?\s*(?:[#;].*)?$")
_KEY = re.compile(r"^([A-Za-z0-9_.\-\"' ]+?)\s*[=:]")
_TOML_KEY = re.compile(r"^([A-Za-z0-9_.\-\"' ]+?)\s*=")
_COMMENTED = re.compile(r"^[#;]+\s*([A-Za-z0-9_.\-\"]+)\s*=\s*\S")


@dataclass(frozen=True)
class _Entry:
    section: str
    key: str
    first: int  # 1-indexed, inclusive
    last: int


def _candidate(
    spec: PatternSpec,
    item: SourceInput,
    lines: list[str],
    first: int,
    last: int,
    metadata: dict[str, str],
) -> Candidate:
    return Candidate(
        spec=spec,
        path=item.path,
        start_line=first,
        end_line=last,
        excerpt="\n".join(lines[first - 1 : last]),
        replacement="",
        lines_saved=last - first + 1,
        edits=(
            ProposedEdit(path=item.path, start_line=first, end_line=last, replacement=""),
        ),
        metadata=metadata,
    )


def _is_comment(stripped: str) -> bool:
    return stripped.startswith("#") or stripped.startswith(";")


def _toml_value_end(lines: list[str], row: int, value: str) -> int:
    """Last row of a TOML value that may span lines (arrays, tables, ''' strings)."""
    for quote in ('"""', "'''"):
        if value.startswith(quote) and value.count(quote) == 1:
            for end in range(row + 1, len(lines)):
                if quote in lines[end]:
                    return end
            return len(lines) - 1
    depth = _bracket_depth(value)
    end = row
    while depth > 0 and end + 1 < len(lines):
        end += 1
        depth += _bracket_depth(lines[end])
    return end


def _bracket_depth(text: str) -> int:
    depth = 0
    quote: str | None = None
    for ch in text:
        if quote:
            if ch == quote:
                quote = None
        elif ch in "\"'":
            quote = ch
        elif ch == "#":
            break
        elif ch in "[{":
            depth += 1
        elif ch in "]}":
            depth -= 1
    return depth


def _ini_value_end(lines: list[str], row: int) -> int:
    """INI continuation lines are the indented non-blank lines that follow."""
    end = row
    while end + 1 < len(lines):
        following = lines[end + 1]
        if not following.strip() or following[:1] not in (" ", "\t"):
            break
        end += 1
    return end


def _entries(item: SourceInput, lines: list[str]) -> list[_Entry]:
    toml = item.language == "toml"
    entries: list[_Entry] = []
    section = ""
    tables = 0
    row = 0
    while row < len(lines):
        stripped = lines[row].strip()
        if not stripped or _is_comment(stripped):
            row += 1
            continue
        header = _SECTION.match(lines[row])
        if header:
            if header.group(1) == "[[":
                # each [[array]] header opens a fresh table
                tables += 1
                section = f"{header.group(2)}#{tables}"
            else:
                section = header.group(2)
            row += 1
            continue
        if not toml and lines[row][:1] in (" ", "\t"):
            row += 1
            continue
        match = (_TOML_KEY if toml else _KEY).match(stripped)
        if match is None:
            row += 1
            continue
        key = match.group(1).strip().strip("\"'")
        if toml:
            end = _toml_value_end(lines, row, stripped[match.end():].strip())
        else:
            end = _ini_value_end(lines, row)
        entries.append(_Entry(section, key if toml else key.lower(), row + 1, end + 1))
        row = end + 1
    return entries


@config_detector(CONFIG_DUPLICATE_KEY)
def detect_duplicate_key(item: SourceInput, settings: Settings) -> list[Candidate]:
    lines = split_lines(item.content)
    latest: dict[tuple[str, str], _Entry] = {}
    candidates: list[Candidate] = []
    for entry in _entries(item, lines):
        earlier = latest.get((entry.section, entry.key))
        if earlier is not None:
            candidates.append(
                _candidate(
                    CONFIG_DUPLICATE_KEY, item, lines, earlier.first, earlier.last,
                    {"section": entry.section, "key": entry.key,
                     "overridden_at": str(entry.first)},
                )
            )
        latest[(entry.section, entry.key)] = entry
    return candidates


@config_detector(CONFIG_COMMENTED_ENTRY)
def detect_commented_entry(item: SourceInput, settings: Settings) -> list[Candidate]:
    lines = split_lines(item.content)
    candidates: list[Candidate] = []
    for row, line in enumerate(lines):
        stripped = line.strip()
        if item.language == "toml" and stripped.startswith(";"):
            continue
        match = _COMMENTED.match(stripped)
        if match is None:
            continue
        candidates.append(
            _candidate(
                CONFIG_COMMENTED_ENTRY, item, lines, row + 1, row + 1,
                {"key": match.group(1)},
            )
        )
    return candidates
