"""Detector registry, candidate type and shared rewrite helpers.

A detector is a pure function of one file. It sees that file's source
model (or raw text, for config files) and never the reference index;
cross-file evidence is the verifier's job.
"""

from __future__ import annotations

import logging
import re
from collections.abc import Callable
from dataclasses import dataclass, field
from typing import Any, TypeAlias

import tree_sitter

from slopscan.analysis.schemas import Finding, ProposedEdit
from slopscan.analysis.static.parser import (
    docstring_node,
    end_line,
    node_text,
    start_line,
    statements,
    walk,
)
from slopscan.analysis.static.source_model import SourceFile
from slopscan.config import Settings
from slopscan.constants import CATEGORY_WEIGHTS, DOC_STOPWORDS, Category, SkipReason, Technique
from slopscan.ingestion import split_lines
from slopscan.ingestion.schemas import SourceInput

logger = logging.getLogger(__name__)

# Node types that can be evaluated, dropped or moved without side effects
_PURE_NODES = frozenset({
    "identifier",
    "string",
    "string_start",
    "string_content",
    "string_end",
    "concatenated_string",
    "escape_sequence",
    "integer",
    "float",
    "true",
    "false",
    "none",
    "ellipsis",
    "list",
    "tuple",
    "set",
    "dictionary",
    "pair",
    "parenthesized_expression",
    "binary_operator",
    "unary_operator",
    "boolean_operator",
    "not_operator",
    "comparison_operator",
    "conditional_expression",
    "expression_list",
})

_WORD = re.compile(r"[A-Z]?[a-z]+|[A-Z]+(?![a-z])|[0-9]+")


@dataclass(frozen=True)
class PatternSpec:
    """Static description of one bloat pattern."""

    name: str
    category: Category
    technique: Technique
    summary: str

    @property
    def weight(self) -> float:
        return CATEGORY_WEIGHTS[self.category]


@dataclass(frozen=True)
class Candidate:
    """An unverified finding produced by a detector."""

    spec: PatternSpec
    path: str
    start_line: int
    end_line: int
    excerpt: str
    replacement: str
    lines_saved: int
    symbol_id: str | None = None
    edits: tuple[ProposedEdit, ...] = ()
    advisory: bool = False
    metadata: dict[str, Any] = field(default_factory=lambda: dict[str, Any]())

    def to_finding(self, finding_id: str) -> Finding:
        return Finding(
            id=finding_id,
            pattern=self.spec.name,
            category=self.spec.category,
            weight=self.spec.weight,
            technique=self.spec.technique,
            path=self.path,
            start_line=self.start_line,
            end_line=self.end_line,
            excerpt=self.excerpt,
            replacement=self.replacement,
            lines_saved=self.lines_saved,
            symbol_id=self.symbol_id,
            metadata=self.metadata,
            edits=list(self.edits),
            skip_reason=SkipReason.ADVISORY if self.advisory else None,
        )


DetectFn: TypeAlias = Callable[[SourceFile, Settings], list[Candidate]]
ConfigDetectFn: TypeAlias = Callable[[SourceInput, Settings], list[Candidate]]


@dataclass(frozen=True)
class Detector:
    spec: PatternSpec
    detect: Callable[[Any, Settings], list[Candidate]]
    config: bool = False


_REGISTRY: dict[str, Detector] = {}


def detector(spec: PatternSpec) -> Callable[[DetectFn], DetectFn]:
    """Register a source-model detector."""

    def decorator(fn: DetectFn) -> DetectFn:
        _REGISTRY[spec.name] = Detector(spec, fn)
        return fn

    return decorator


def config_detector(spec: PatternSpec) -> Callable[[ConfigDetectFn], ConfigDetectFn]:
    """Register a raw-text detector for config files."""

    def decorator(fn: ConfigDetectFn) -> ConfigDetectFn:
        _REGISTRY[spec.name] = Detector(spec, fn, config=True)
        return fn

    return decorator


def registered() -> list[Detector]:
    """All detectors, ordered by pattern name."""
    return [_REGISTRY[name] for name in sorted(_REGISTRY)]


def pattern_names() -> set[str]:
    return set(_REGISTRY)


def run_detectors(source: SourceFile, settings: Settings) -> list[Candidate]:
    """Run every enabled code detector over one file."""
    return _run([d for d in registered() if not d.config], source, source.path, settings)


def run_config_detectors(item: SourceInput, settings: Settings) -> list[Candidate]:
    """Run every enabled config detector over one non-code file."""
    return _run([d for d in registered() if d.config], item, item.path, settings)


def _run(
    detectors: list[Detector], subject: Any, path: str, settings: Settings
) -> list[Candidate]:
    disabled = set(settings.disabled_patterns)
    candidates: list[Candidate] = []
    for entry in detectors:
        if entry.spec.name in disabled:
            continue
        try:
            candidates.extend(entry.detect(subject, settings))
        except Exception:  # noqa: BLE001
            logger.warning(
                "event=detector_failed pattern=%s path=%s",
                entry.spec.name,
                path,
                exc_info=True,
            )
    return sorted(candidates, key=lambda c: (c.start_line, c.end_line, c.spec.name))


# ---------------------------------------------------------------------------
# Candidate helpers
# ---------------------------------------------------------------------------


def make_candidate(
    spec: PatternSpec,
    source: SourceFile,
    first: int,
    last: int,
    replacement: str,
    *,
    edit: bool = True,
    lines_saved: int | None = None,
    symbol_id: str | None = None,
    advisory: bool = False,
    metadata: dict[str, Any] | None = None,
) -> Candidate:
    """Candidate for lines ``first..last`` replaced by ``replacement``.

    With ``edit`` the replacement is also proposed as the edit payload.
    Lines saved default to the lines removed, at least one.
    """
    if lines_saved is None:
        lines_saved = line_savings(first, last, replacement)
    edits = (
        (
            ProposedEdit(
                path=source.path,
                start_line=first,
                end_line=last,
                replacement=replacement,
                block_statements=deleted_block(source, first, last, replacement),
            ),
        )
        if edit and not advisory
        else ()
    )
    return Candidate(
        spec=spec,
        path=source.path,
        start_line=first,
        end_line=last,
        excerpt=source.excerpt(first, last),
        replacement=replacement,
        lines_saved=lines_saved,
        symbol_id=symbol_id,
        edits=edits,
        advisory=advisory,
        metadata=metadata or {},
    )


def line_savings(first: int, last: int, replacement: str) -> int:
    kept = len(split_lines(replacement))
    return max(1, (last - first + 1) - kept)


def deleted_block(
    source: SourceFile, first: int, last: int, replacement: str
) -> tuple[int, ...]:
    """Statement start lines of the innermost block a deletion of
    ``first..last`` removes from; empty for rewrites and module level.
    """
    if replacement.strip():
        return ()
    while last > first and not source.lines[last - 1].strip():
        last -= 1
    node = source.root
    block: tree_sitter.Node | None = None
    while True:
        inner = next(
            (
                c for c in node.named_children
                if start_line(c) <= first and end_line(c) >= last
            ),
            None,
        )
        if inner is None:
            break
        # a statement spanning exactly the range is itself removed
        if inner.type != "block" and node_span(inner) == (first, last):
            break
        if inner.type == "block":
            block = inner
        node = inner
    if block is None:
        return ()
    return tuple(start_line(s) for s in statements(block))


def node_span(node: tree_sitter.Node) -> tuple[int, int]:
    return start_line(node), end_line(node)


# ---------------------------------------------------------------------------
# Text helpers
# ---------------------------------------------------------------------------


def indent_of(line: str) -> str:
    return line[: len(line) - len(line.lstrip())]


def reindent(lines: list[str] | tuple[str, ...], new_indent: str) -> str:
    """Shift a block of lines so its first non-blank line sits at ``new_indent``."""
    code = [line for line in lines if line.strip()]
    if not code:
        return ""
    old_indent = indent_of(code[0])
    delta = len(old_indent) - len(new_indent)
    out: list[str] = []
    for line in lines:
        if not line.strip():
            out.append("")
        elif line.startswith(old_indent):
            out.append(new_indent + line[len(old_indent):])
        else:
            leading = len(line) - len(line.lstrip())
            out.append(line[min(max(delta, 0), leading):])
    return "\n".join(out)


def splice(line: str, start_col: int, end_col: int, text: str) -> str:
    """Replace ``line[start_col:end_col]`` (byte columns) with ``text``."""
    raw = line.encode("utf-8")
    return (raw[:start_col] + text.encode("utf-8") + raw[end_col:]).decode("utf-8")


def has_multiline_string(node: tree_sitter.Node) -> bool:
    """True if re-indenting ``node`` could change a string literal's value."""
    return any(
        n.type == "string" and n.start_point[0] != n.end_point[0] for n in walk(node)
    )


def is_side_effect_free(node: tree_sitter.Node | None) -> bool:
    """Literal-ish expressions only: no calls, attribute loads or subscripts."""
    if node is None:
        return False
    return all(n.type in _PURE_NODES or not n.is_named for n in walk(node))


def is_single_line(node: tree_sitter.Node) -> bool:
    return node.start_point[0] == node.end_point[0]


def words(text: str) -> set[str]:
    """Lower-cased content words, split on case and underscores.

    A trailing plural ``s`` is dropped so ``items`` and ``item`` match.
    """
    tokens: set[str] = set()
    for match in _WORD.findall(text):
        word = match.lower()
        if word in DOC_STOPWORDS:
            continue
        if len(word) > 3 and word.endswith("s"):
            word = word[:-1]
        tokens.add(word)
    return tokens


def single_statement(block: tree_sitter.Node | None) -> tree_sitter.Node | None:
    """The one non-comment statement of ``block``, or None."""
    if block is None:
        return None
    body = [c for c in block.named_children if c.type != "comment"]
    return body[0] if len(body) == 1 else None


def expression_of(statement: tree_sitter.Node | None) -> tree_sitter.Node | None:
    """The expression wrapped by an expression_statement."""
    if statement is None or statement.type != "expression_statement":
        return None
    return statement.named_children[0] if statement.named_child_count == 1 else None


def body_range(
    clause: tree_sitter.Node, block: tree_sitter.Node | None
) -> tuple[int, int] | None:
    """Lines of ``block`` below its ``header:`` line, or None if inline.

    The range starts right after the colon line so leading comments in
    the block move with it.
    """
    if block is None:
        return None
    colon = None
    for child in clause.children:
        if child.type == ":" and child.end_byte <= block.start_byte:
            colon = child
    if colon is None or block.start_point[0] <= colon.start_point[0]:
        return None
    return colon.start_point[0] + 2, end_line(block)


def dedented_body(
    source: SourceFile, clause: tree_sitter.Node, block: tree_sitter.Node | None, indent: str
) -> str | None:
    """Text of a clause body shifted to ``indent``; None when unsafe."""
    span = body_range(clause, block)
    if span is None or block is None or has_multiline_string(block):
        return None
    first, last = span
    return reindent(source.lines[first - 1 : last], indent)


def statement_indent(source: SourceFile, node: tree_sitter.Node) -> str:
    return indent_of(source.lines[node.start_point[0]])


def bare_name(node: tree_sitter.Node | None) -> str | None:
    if node is None or node.type != "identifier":
        return None
    return node_text(node)


def is_private(name: str) -> bool:
    return name.startswith("_") and not name.endswith("__")


def code_statements(block: tree_sitter.Node | None) -> list[tree_sitter.Node]:
    """Block statements minus a leading docstring and ``pass``."""
    doc = docstring_node(block)
    return [
        s for s in statements(block)
        if (doc is None or s.id != doc.id) and s.type != "pass_statement"
    ]


def definition_statement(node: tree_sitter.Node) -> tree_sitter.Node:
    """The decorated_definition wrapping ``node``, or ``node`` itself."""
    parent = node.parent
    if parent is not None and parent.type == "decorated_definition":
        return parent
    return node
