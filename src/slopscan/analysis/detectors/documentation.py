"""Documentation that restates the code next to it."""

from __future__ import annotations

import re

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    detector,
    make_candidate,
    node_span,
    words,
)
from slopscan.analysis.static.parser import docstring_node, node_text, statements, walk
from slopscan.analysis.static.source_model import SourceFile, Symbol
from slopscan.analysis.static.type_info import identifiers
from slopscan.config import Settings
from slopscan.constants import Category, SymbolKind, Technique

RESTATING_DOCSTRING = PatternSpec(
    name="restating-docstring",
    category=Category.DOCUMENTATION,
    technique=Technique.STRUCTURAL,
    summary="docstring that only repeats the signature",
)

RESTATING_COMMENT = PatternSpec(
    name="restating-comment",
    category=Category.DOCUMENTATION,
    technique=Technique.STRUCTURAL,
    summary="comment that only repeats the next line of code",
)

_MARKERS = re.compile(
    r"^(TODO|FIXME|XXX|HACK|NOTE|noqa|type:|pragma|pylint|fmt:|mypy|isort|ruff|nosec)",
    re.IGNORECASE,
)

# Docstrings longer than this are assumed to carry more than the signature
_MAX_DOCSTRING_LINES = 3


def _signature_words(source: SourceFile, symbol: Symbol) -> set[str]:
    texts = [symbol.name, *symbol.bases]
    if symbol.return_annotation:
        texts.append(symbol.return_annotation)
    for param_id in symbol.params:
        param = source.symbols.get(param_id)
        if param is None:
            continue
        texts.append(param.name)
        if param.annotation:
            texts.extend(identifiers(param.annotation))
    owner = source.scopes[symbol.scope_id].owner_id
    if symbol.kind == SymbolKind.METHOD and owner is not None:
        texts.append(source.symbols[owner].name)
    found: set[str] = set()
    for text in texts:
        found |= words(text)
    return found


@detector(RESTATING_DOCSTRING)
def detect_restating_docstring(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for symbol in source.symbols_of_kind(
        SymbolKind.FUNCTION, SymbolKind.METHOD, SymbolKind.CLASS
    ):
        node = source.def_nodes.get(symbol.id)
        if node is None or node.type not in ("function_definition", "class_definition"):
            continue
        body = node.child_by_field_name("body")
        doc = docstring_node(body)
        if doc is None or len(statements(body)) < 2:
            continue
        first, last = node_span(doc)
        if last - first + 1 > _MAX_DOCSTRING_LINES:
            continue
        text = "".join(
            node_text(c) for c in doc.named_children[0].named_children
            if c.type == "string_content"
        )
        if "\n\n" in text.strip():
            continue
        if not words(text) <= _signature_words(source, symbol):
            continue
        candidates.append(
            make_candidate(
                RESTATING_DOCSTRING, source, first, last, "",
                symbol_id=symbol.id,
                metadata={"name": symbol.name},
            )
        )
    return candidates


@detector(RESTATING_COMMENT)
def detect_restating_comment(source: SourceFile, settings: Settings) -> list[Candidate]:
    rows = {
        n.start_point[0]
        for n in walk(source.root)
        if n.type == "comment" and source.lines[n.start_point[0]].lstrip().startswith("#")
    }
    candidates: list[Candidate] = []
    for row in sorted(rows):
        if row - 1 in rows or row + 1 in rows or row + 1 >= len(source.lines):
            continue
        following = source.lines[row + 1].strip()
        if not following or following.startswith("#"):
            continue
        text = source.lines[row].strip().lstrip("#").strip()
        if not text or _MARKERS.match(text):
            continue
        tokens = words(text)
        if len(tokens) < settings.min_comment_tokens:
            continue
        if not tokens <= words(following):
            continue
        candidates.append(
            make_candidate(
                RESTATING_COMMENT, source, row + 1, row + 1, "",
                metadata={"comment": text},
            )
        )
    return candidates
