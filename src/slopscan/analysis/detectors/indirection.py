"""Indirection patterns: names bound only to be read once, right away."""

from __future__ import annotations

from collections.abc import Iterator

import tree_sitter

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    detector,
    expression_of,
    is_single_line,
    make_candidate,
    splice,
    statement_indent,
)
from slopscan.analysis.static.dataflow import FlowSummary, trace_function
from slopscan.analysis.static.parser import node_text, statements, walk
from slopscan.analysis.static.source_model import Reference, SourceFile, Symbol
from slopscan.config import Settings
from slopscan.constants import Category, SymbolKind, Technique

IMMEDIATE_RETURN_BINDING = PatternSpec(
    name="immediate-return-binding",
    category=Category.INDIRECTION,
    technique=Technique.DATA_TRACING,
    summary="value bound to a name only to be returned on the next line",
)

SINGLE_USE_VARIABLE = PatternSpec(
    name="single-use-variable",
    category=Category.INDIRECTION,
    technique=Technique.DATA_TRACING,
    summary="value bound to a name read once in the next statement",
)

_SCOPE_NODES = frozenset({
    "function_definition", "class_definition", "lambda", "decorated_definition",
})

# Expressions that can be substituted without parentheses
_ATOMIC = frozenset({
    "identifier", "call", "attribute", "subscript", "string", "concatenated_string",
    "integer", "float", "true", "false", "none", "list", "dictionary", "set",
    "tuple", "parenthesized_expression", "list_comprehension",
    "dictionary_comprehension", "set_comprehension", "generator_expression",
})

# Ancestors that make evaluation of the use conditional or deferred
_BRANCHING = frozenset({
    "boolean_operator", "conditional_expression", "lambda", "list_comprehension",
    "dictionary_comprehension", "set_comprehension", "generator_expression",
})


def _blocks_in(node: tree_sitter.Node) -> Iterator[tree_sitter.Node]:
    """Blocks of one function body, not descending into nested scopes."""
    stack = [node]
    while stack:
        current = stack.pop()
        if current.type == "block":
            yield current
        stack.extend(
            child for child in reversed(current.children) if child.type not in _SCOPE_NODES
        )


def _binding(
    source: SourceFile, function: Symbol, stmt: tree_sitter.Node
) -> tuple[Symbol, tree_sitter.Node] | None:
    """(local, value) for a plain ``name = value`` statement."""
    assign = expression_of(stmt)
    if assign is None or assign.type != "assignment":
        return None
    left = assign.child_by_field_name("left")
    right = assign.child_by_field_name("right")
    if left is None or right is None or left.type != "identifier":
        return None
    if assign.child_by_field_name("type") is not None:
        return None
    if right.type in ("assignment", "yield", "augmented_assignment"):
        return None
    scope_id = function.body_scope_id
    if scope_id is None:
        return None
    symbol = source.resolve(node_text(left), scope_id)
    if symbol is None or symbol.kind != SymbolKind.LOCAL:
        return None
    if symbol.scope_id != scope_id:
        return None
    scope = source.scopes[scope_id]
    if symbol.name in scope.declared_global | scope.declared_nonlocal:
        return None
    return symbol, right


def _single_read(
    summary: FlowSummary, symbol: Symbol, stmt: tree_sitter.Node, scope_id: str
) -> Reference | None:
    reads = summary.reads.get(symbol.id, ())
    if len(reads) != 1:
        return None
    read = reads[0]
    if read.node is None or read.site.scope_id != scope_id:
        return None
    if not stmt.start_byte <= read.node.start_byte < stmt.end_byte:
        return None
    return read


def _pairs(
    source: SourceFile,
) -> Iterator[tuple[Symbol, FlowSummary, tree_sitter.Node, tree_sitter.Node]]:
    for function in source.symbols_of_kind(SymbolKind.FUNCTION, SymbolKind.METHOD):
        node = source.def_nodes.get(function.id)
        if node is None or node.type != "function_definition" or function.body_scope_id is None:
            continue
        summary = trace_function(source, function)
        if summary.opaque:
            continue
        body = node.child_by_field_name("body")
        if body is None:
            continue
        for block in _blocks_in(body):
            stmts = statements(block)
            for first, second in zip(stmts, stmts[1:]):
                if second.start_point[0] == first.end_point[0] + 1:
                    yield function, summary, first, second


# ---------------------------------------------------------------------------
# immediate-return-binding
# ---------------------------------------------------------------------------


def _returns_name(stmt: tree_sitter.Node, name: str) -> bool:
    if stmt.type != "return_statement" or stmt.named_child_count != 1:
        return False
    value = stmt.named_children[0]
    return value.type == "identifier" and node_text(value) == name


@detector(IMMEDIATE_RETURN_BINDING)
def detect_immediate_return_binding(
    source: SourceFile, settings: Settings
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function, summary, first, second in _pairs(source):
        binding = _binding(source, function, first)
        if binding is None:
            continue
        symbol, value = binding
        if not _returns_name(second, symbol.name):
            continue
        if function.body_scope_id is None:
            continue
        if _single_read(summary, symbol, second, function.body_scope_id) is None:
            continue
        replacement = f"{statement_indent(source, first)}return {node_text(value)}"
        candidates.append(
            make_candidate(
                IMMEDIATE_RETURN_BINDING, source,
                first.start_point[0] + 1, second.end_point[0] + 1, replacement,
                symbol_id=symbol.id,
                metadata={"name": symbol.name, "function_id": function.id},
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# single-use-variable
# ---------------------------------------------------------------------------


def _use_is_unconditional(use: tree_sitter.Node, stmt: tree_sitter.Node) -> bool:
    """No short-circuit, deferred or store context between use and statement."""
    child = use
    parent = use.parent
    while parent is not None and parent.id != stmt.id:
        if parent.type in _BRANCHING or parent.type == "interpolation":
            return False
        if parent.type in ("assignment", "augmented_assignment"):
            left = parent.child_by_field_name("left")
            if left is not None and left.start_byte <= child.start_byte < left.end_byte:
                return False
        child = parent
        parent = parent.parent
    return parent is not None


def _evaluates_call_before(stmt: tree_sitter.Node, use: tree_sitter.Node) -> bool:
    for node in walk(stmt):
        if node.type == "named_expression":
            return True
        if node.type in ("call", "await") and node.end_byte <= use.start_byte:
            return True
    return False


@detector(SINGLE_USE_VARIABLE)
def detect_single_use_variable(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function, summary, first, second in _pairs(source):
        if second.type not in ("expression_statement", "return_statement"):
            continue
        binding = _binding(source, function, first)
        if binding is None:
            continue
        symbol, value = binding
        if _returns_name(second, symbol.name) or not is_single_line(value):
            continue
        if function.body_scope_id is None:
            continue
        read = _single_read(summary, symbol, second, function.body_scope_id)
        if read is None or read.node is None:
            continue
        use = read.node
        if not _use_is_unconditional(use, second) or _evaluates_call_before(second, use):
            continue

        text = node_text(value)
        if value.type not in _ATOMIC:
            text = f"({text})"
        lines = list(source.lines[second.start_point[0] : second.end_point[0] + 1])
        row = use.start_point[0] - second.start_point[0]
        lines[row] = splice(lines[row], use.start_point[1], use.end_point[1], text)
        candidates.append(
            make_candidate(
                SINGLE_USE_VARIABLE, source,
                first.start_point[0] + 1, second.end_point[0] + 1, "\n".join(lines),
                symbol_id=symbol.id,
                metadata={"name": symbol.name, "function_id": function.id},
            )
        )
    return candidates
