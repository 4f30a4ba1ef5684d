"""Defensive patterns: guards and handlers that can never fire."""

from __future__ import annotations

import tree_sitter

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    bare_name,
    dedented_body,
    detector,
    make_candidate,
    node_span,
    single_statement,
    statement_indent,
)
from slopscan.analysis.static.parser import node_text, statements, unwrap_parens, walk
from slopscan.analysis.static.source_model import SourceFile, Symbol
from slopscan.analysis.static.type_info import is_concrete
from slopscan.config import Settings
from slopscan.constants import Category, SymbolKind, Technique

UNREACHABLE_NONE_GUARD = PatternSpec(
    name="unreachable-none-guard",
    category=Category.DEFENSIVE,
    technique=Technique.REACHABILITY,
    summary="None check on a parameter whose type and callers rule out None",
)

REDUNDANT_ISINSTANCE_GUARD = PatternSpec(
    name="redundant-isinstance-guard",
    category=Category.DEFENSIVE,
    technique=Technique.REACHABILITY,
    summary="isinstance check that restates the parameter annotation",
)

RERAISE_ONLY_HANDLER = PatternSpec(
    name="reraise-only-handler",
    category=Category.DEFENSIVE,
    technique=Technique.STRUCTURAL,
    summary="try/except whose only handler re-raises unchanged",
)


def _functions(source: SourceFile) -> list[tuple[Symbol, tree_sitter.Node]]:
    found = []
    for symbol in source.symbols_of_kind(SymbolKind.FUNCTION, SymbolKind.METHOD):
        node = source.def_nodes.get(symbol.id)
        if node is not None and node.type == "function_definition":
            found.append((symbol, node))
    return found


def _guardable_params(source: SourceFile, function: Symbol) -> dict[str, Symbol]:
    """Concretely annotated, never rebound, non-defaulted-to-None params."""
    params: dict[str, Symbol] = {}
    for param_id in function.params:
        param = source.symbols.get(param_id)
        if (
            param is None
            or param.splat
            or param.default_is_none
            or not is_concrete(param.annotation)
            or len(source.binding_values.get(param_id, ())) != 1
        ):
            continue
        params[param.name] = param
    return params


def _reachability_metadata(function: Symbol, param: Symbol) -> dict[str, object]:
    return {
        "function_id": function.id,
        "param_id": param.id,
        "param_name": param.name,
        "param_index": param.param_index,
    }


# ---------------------------------------------------------------------------
# unreachable-none-guard
# ---------------------------------------------------------------------------


def _comparison_operator(node: tree_sitter.Node) -> str:
    return " ".join(c.type for c in node.children if not c.is_named)


def _none_test(
    condition: tree_sitter.Node | None, params: dict[str, Symbol]
) -> tuple[Symbol, bool] | None:
    """(param, negated) for ``p is None`` / ``p is not None``."""
    if condition is None:
        return None
    condition = unwrap_parens(condition)
    if condition.type != "comparison_operator" or condition.named_child_count != 2:
        return None
    operator = _comparison_operator(condition)
    if operator not in ("is", "is not"):
        return None
    left, right = condition.named_children
    if right.type != "none":
        left, right = right, left
    name = bare_name(left)
    if right.type != "none" or name is None or name not in params:
        return None
    return params[name], operator == "is not"


@detector(UNREACHABLE_NONE_GUARD)
def detect_unreachable_none_guard(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function, node in _functions(source):
        params = _guardable_params(source, function)
        if not params:
            continue
        body = statements(node.child_by_field_name("body"))
        for stmt in body:
            if stmt.type != "if_statement":
                continue
            test = _none_test(stmt.child_by_field_name("condition"), params)
            if test is None:
                continue
            param, negated = test
            replacement = _guard_rewrite(source, stmt, negated, len(body))
            if replacement is None:
                continue
            first, last = node_span(stmt)
            candidates.append(
                make_candidate(
                    UNREACHABLE_NONE_GUARD, source, first, last, replacement,
                    symbol_id=function.id,
                    metadata=_reachability_metadata(function, param),
                )
            )
    return candidates


def _guard_rewrite(
    source: SourceFile, stmt: tree_sitter.Node, negated: bool, siblings: int
) -> str | None:
    """Replacement once the None branch is known dead (None if unsafe)."""
    alternatives = stmt.children_by_field_name("alternative")
    if any(alt.type == "elif_clause" for alt in alternatives):
        return None
    else_clause = alternatives[0] if alternatives else None
    indent = statement_indent(source, stmt)

    if negated:
        # `if p is not None:` always runs its body
        return dedented_body(source, stmt, stmt.child_by_field_name("consequence"), indent)
    if else_clause is None:
        # `if p is None:` never runs; drop it if the block keeps a statement
        return "" if siblings > 1 else None
    return dedented_body(source, else_clause, else_clause.child_by_field_name("body"), indent)


# ---------------------------------------------------------------------------
# redundant-isinstance-guard
# ---------------------------------------------------------------------------


def _isinstance_test(
    condition: tree_sitter.Node | None, params: dict[str, Symbol]
) -> Symbol | None:
    """Param for ``not isinstance(p, T)`` where ``p: T`` exactly."""
    if condition is None:
        return None
    condition = unwrap_parens(condition)
    if condition.type != "not_operator":
        return None
    call = condition.child_by_field_name("argument")
    if call is None or call.type != "call":
        return None
    if node_text(call.child_by_field_name("function")) != "isinstance":
        return None
    arguments = call.child_by_field_name("arguments")
    args = [a for a in (arguments.named_children if arguments else []) if a.type != "comment"]
    if len(args) != 2 or any(a.type == "keyword_argument" for a in args):
        return None
    name = bare_name(args[0])
    if name is None or name not in params:
        return None
    param = params[name]
    annotation = "".join((param.annotation or "").split())
    if annotation != "".join(node_text(args[1]).split()):
        return None
    return param


@detector(REDUNDANT_ISINSTANCE_GUARD)
def detect_redundant_isinstance_guard(
    source: SourceFile, settings: Settings
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function, node in _functions(source):
        params = _guardable_params(source, function)
        if not params:
            continue
        body = statements(node.child_by_field_name("body"))
        if len(body) < 2:
            continue
        for stmt in body:
            if stmt.type != "if_statement" or stmt.children_by_field_name("alternative"):
                continue
            only = single_statement(stmt.child_by_field_name("consequence"))
            if only is None or only.type != "raise_statement":
                continue
            param = _isinstance_test(stmt.child_by_field_name("condition"), params)
            if param is None:
                continue
            first, last = node_span(stmt)
            metadata = _reachability_metadata(function, param)
            metadata["builtins"] = ["isinstance"]
            metadata["scope_id"] = function.body_scope_id
            candidates.append(
                make_candidate(
                    REDUNDANT_ISINSTANCE_GUARD, source, first, last, "",
                    symbol_id=function.id,
                    metadata=metadata,
                )
            )
    return candidates


# ---------------------------------------------------------------------------
# reraise-only-handler
# ---------------------------------------------------------------------------


@detector(RERAISE_ONLY_HANDLER)
def detect_reraise_only_handler(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "try_statement":
            continue
        clauses = [c for c in node.named_children if c.type.endswith("_clause")]
        if len(clauses) != 1 or clauses[0].type != "except_clause":
            continue
        handler = clauses[0]
        handler_body = next((c for c in handler.named_children if c.type == "block"), None)
        only = single_statement(handler_body)
        if only is None or only.type != "raise_statement" or only.named_child_count:
            continue
        replacement = dedented_body(
            source, node, node.child_by_field_name("body"), statement_indent(source, node)
        )
        if replacement is None:
            continue
        first, last = node_span(node)
        candidates.append(
            make_candidate(RERAISE_ONLY_HANDLER, source, first, last, replacement)
        )
    return candidates
