"""Dead code: unreferenced definitions, unused values and commented-out code."""

from __future__ import annotations

import re
import textwrap
from collections import defaultdict

import tree_sitter

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    code_statements,
    definition_statement,
    detector,
    expression_of,
    is_private,
    is_side_effect_free,
    make_candidate,
    node_span,
)
from slopscan.analysis.static.dataflow import function_locals, trace_function
from slopscan.analysis.static.parser import get_parser, statements, walk
from slopscan.analysis.static.source_model import SourceFile, Symbol
from slopscan.config import Settings
from slopscan.constants import (
    TRANSPARENT_DECORATORS,
    Category,
    ScopeKind,
    SymbolKind,
    Technique,
)

DEAD_FUNCTION = PatternSpec(
    name="dead-function",
    category=Category.DEAD_CODE,
    technique=Technique.CALLER_COUNT,
    summary="function, method or class with no production callers",
)

DEAD_CONSTANT = PatternSpec(
    name="dead-constant",
    category=Category.DEAD_CODE,
    technique=Technique.CALLER_COUNT,
    summary="module constant that is never read",
)

UNUSED_PARAMETER = PatternSpec(
    name="unused-parameter",
    category=Category.DEAD_CODE,
    technique=Technique.DATA_TRACING,
    summary="parameter whose value never reaches a result or side effect",
)

UNUSED_LOCAL = PatternSpec(
    name="unused-local",
    category=Category.DEAD_CODE,
    technique=Technique.DATA_TRACING,
    summary="local assigned a pure value that is never observed",
)

COMMENTED_OUT_CODE = PatternSpec(
    name="commented-out-code",
    category=Category.DEAD_CODE,
    technique=Technique.STRUCTURAL,
    summary="comment block that is valid Python code",
)

_PRAGMA = re.compile(
    r"^#\s*(!|-\*-|type:|noqa|pragma|pylint|fmt:|mypy|isort|ruff|nosec)", re.IGNORECASE
)

_CODE_STATEMENTS = frozenset({
    "import_statement",
    "import_from_statement",
    "return_statement",
    "raise_statement",
    "assert_statement",
    "delete_statement",
    "function_definition",
    "class_definition",
    "decorated_definition",
    "if_statement",
    "for_statement",
    "while_statement",
    "with_statement",
    "try_statement",
})


def _is_dunder(name: str) -> bool:
    return name.startswith("__") and name.endswith("__")


def _eligible_name(source: SourceFile, symbol: Symbol, settings: Settings) -> bool:
    scope = source.scopes[symbol.scope_id]
    if scope.kind == ScopeKind.FUNCTION:
        return True  # nested definitions are never visible outside
    if scope.kind == ScopeKind.MODULE and settings.flag_public_dead_code:
        return not _is_dunder(symbol.name)
    return is_private(symbol.name)


def _leaves_block_nonempty(node: tree_sitter.Node) -> bool:
    parent = node.parent
    if parent is None or parent.type == "module":
        return True
    return len(statements(parent)) > 1


# ---------------------------------------------------------------------------
# dead-function
# ---------------------------------------------------------------------------


@detector(DEAD_FUNCTION)
def detect_dead_function(source: SourceFile, settings: Settings) -> list[Candidate]:
    if source.path.endswith(".pyi"):
        return []
    candidates: list[Candidate] = []
    for symbol in source.symbols_of_kind(
        SymbolKind.FUNCTION, SymbolKind.METHOD, SymbolKind.CLASS
    ):
        if symbol.decorated and not set(symbol.decorators) <= TRANSPARENT_DECORATORS:
            continue
        if _is_dunder(symbol.name) or not _eligible_name(source, symbol, settings):
            continue
        node = source.def_nodes.get(symbol.id)
        if node is None or node.type not in ("function_definition", "class_definition"):
            continue
        statement = definition_statement(node)
        if not _leaves_block_nonempty(statement):
            continue
        first, last = node_span(statement)
        candidates.append(
            make_candidate(
                DEAD_FUNCTION, source, first, last, "",
                symbol_id=symbol.id,
                metadata={"name": symbol.name, "kind": str(symbol.kind)},
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# dead-constant
# ---------------------------------------------------------------------------


@detector(DEAD_CONSTANT)
def detect_dead_constant(source: SourceFile, settings: Settings) -> list[Candidate]:
    if source.path.endswith(".pyi"):
        return []
    candidates: list[Candidate] = []
    for symbol in source.symbols_of_kind(SymbolKind.CONSTANT):
        if _is_dunder(symbol.name) or not _eligible_name(source, symbol, settings):
            continue
        values = source.binding_values.get(symbol.id, ())
        if len(values) != 1 or not is_side_effect_free(values[0]):
            continue
        statement = source.def_nodes.get(symbol.id)
        assign = expression_of(statement)
        if statement is None or assign is None or assign.type != "assignment":
            continue
        left = assign.child_by_field_name("left")
        right = assign.child_by_field_name("right")
        if left is None or left.type != "identifier" or right is None or right.type == "assignment":
            continue
        first, last = node_span(statement)
        candidates.append(
            make_candidate(
                DEAD_CONSTANT, source, first, last, "",
                symbol_id=symbol.id,
                metadata={"name": symbol.name},
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# unused-parameter
# ---------------------------------------------------------------------------


def _is_stub(node: tree_sitter.Node) -> bool:
    code = code_statements(node.child_by_field_name("body"))
    if not code:
        return True
    if len(code) != 1:
        return False
    only = code[0]
    if only.type == "raise_statement":
        return True  # raise NotImplementedError(...)
    expr = expression_of(only)
    return expr is not None and expr.type == "ellipsis"


@detector(UNUSED_PARAMETER)
def detect_unused_parameter(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function in source.symbols_of_kind(SymbolKind.FUNCTION):
        if (
            function.decorated
            or function.scope_id != source.module_scope_id
            or _is_dunder(function.name)
        ):
            continue
        node = source.def_nodes.get(function.id)
        if node is None or _is_stub(node):
            continue
        summary = trace_function(source, function)
        if summary.opaque:
            continue
        for param_id in function.params:
            param = source.symbols.get(param_id)
            if param is None or param.splat or param.name.startswith("_"):
                continue
            if summary.reaches_live(param.id):
                continue
            candidates.append(
                make_candidate(
                    UNUSED_PARAMETER, source, param.start_line, param.end_line,
                    f"drop parameter {param.name!r}",
                    lines_saved=1,
                    symbol_id=function.id,
                    advisory=True,
                    metadata={"param_id": param.id, "param_name": param.name},
                )
            )
    return candidates


# ---------------------------------------------------------------------------
# unused-local
# ---------------------------------------------------------------------------


@detector(UNUSED_LOCAL)
def detect_unused_local(source: SourceFile, settings: Settings) -> list[Candidate]:
    by_block: dict[int, list[Candidate]] = defaultdict(list)
    block_sizes: dict[int, int] = {}
    for function in source.symbols_of_kind(SymbolKind.FUNCTION, SymbolKind.METHOD):
        if function.body_scope_id is None:
            continue
        summary = trace_function(source, function)
        if summary.opaque:
            continue
        scope = source.scopes[function.body_scope_id]
        for local in function_locals(source, function):
            if local.kind != SymbolKind.LOCAL or local.name.startswith("_"):
                continue
            if local.name in scope.declared_global | scope.declared_nonlocal:
                continue
            values = source.binding_values.get(local.id, ())
            if len(values) != 1 or not is_side_effect_free(values[0]):
                continue
            statement = source.def_nodes.get(local.id)
            assign = expression_of(statement)
            if statement is None or assign is None or assign.type != "assignment":
                continue
            left = assign.child_by_field_name("left")
            if left is None or left.type != "identifier":
                continue
            if summary.reaches_live(local.id):
                continue
            block = statement.parent
            if block is None or block.type != "block":
                continue
            first, last = node_span(statement)
            block_sizes[block.id] = len(statements(block))
            by_block[block.id].append(
                make_candidate(
                    UNUSED_LOCAL, source, first, last, "",
                    symbol_id=local.id,
                    metadata={"name": local.name, "function_id": function.id},
                )
            )

    candidates: list[Candidate] = []
    for block_id, found in by_block.items():
        found.sort(key=lambda c: c.start_line)
        if len(found) >= block_sizes[block_id]:
            found = found[:-1]  # keep the block syntactically non-empty
        candidates.extend(found)
    return candidates


# ---------------------------------------------------------------------------
# commented-out-code
# ---------------------------------------------------------------------------


@detector(COMMENTED_OUT_CODE)
def detect_commented_out_code(source: SourceFile, settings: Settings) -> list[Candidate]:
    rows = sorted({
        n.start_point[0]
        for n in walk(source.root)
        if n.type == "comment" and source.lines[n.start_point[0]].lstrip().startswith("#")
    })
    candidates: list[Candidate] = []
    for run in _consecutive(rows):
        texts = [source.lines[row].strip() for row in run]
        if any(_PRAGMA.match(text) for text in texts):
            continue
        body = textwrap.dedent("\n".join(_uncomment(text) for text in texts))
        if not _parses_as_code(body):
            continue
        first, last = run[0] + 1, run[-1] + 1
        candidates.append(make_candidate(COMMENTED_OUT_CODE, source, first, last, ""))
    return candidates


def _consecutive(rows: list[int]) -> list[list[int]]:
    runs: list[list[int]] = []
    for row in rows:
        if runs and runs[-1][-1] == row - 1:
            runs[-1].append(row)
        else:
            runs.append([row])
    return runs


def _uncomment(text: str) -> str:
    body = text[1:]
    return body[1:] if body.startswith(" ") else body


def _parses_as_code(text: str) -> bool:
    if not text.strip() or not any(ch in text for ch in "()=[]:"):
        return False
    parser = get_parser("python")
    if parser is None:
        return False
    tree = parser.parse(text.encode("utf-8"))
    if tree.root_node.has_error:
        return False
    found = [c for c in tree.root_node.named_children if c.type != "comment"]
    return bool(found) and all(_looks_like_code(stmt) for stmt in found)


def _looks_like_code(stmt: tree_sitter.Node) -> bool:
    if stmt.type in _CODE_STATEMENTS:
        return True
    expr = expression_of(stmt)
    if expr is None:
        return False
    if expr.type in ("call", "augmented_assignment"):
        return True
    return expr.type == "assignment" and expr.child_by_field_name("right") is not None
