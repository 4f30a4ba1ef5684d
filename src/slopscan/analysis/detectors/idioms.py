"""Verbose patterns: forms with a strictly equivalent, shorter spelling."""

from __future__ import annotations

from typing import Any

import tree_sitter

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    dedented_body,
    detector,
    expression_of,
    is_single_line,
    make_candidate,
    node_span,
    single_statement,
    splice,
    statement_indent,
)
from slopscan.analysis.static.parser import (
    is_exit_statement,
    node_text,
    statements,
    unwrap_parens,
    walk,
)
from slopscan.analysis.static.source_model import SourceFile
from slopscan.analysis.static.type_info import base_name, is_concrete
from slopscan.config import Settings
from slopscan.constants import CONTAINER_TYPES, Category, ScopeKind, Technique

BOOLEAN_RETURN_CONDITIONAL = PatternSpec(
    name="boolean-return-conditional",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="if/else that returns True and False",
)

MANUAL_ACCUMULATION_LOOP = PatternSpec(
    name="manual-accumulation-loop",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="empty list filled by an append-only loop",
)

LENGTH_TRUTHINESS = PatternSpec(
    name="length-truthiness",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="len(x) compared to zero in a condition",
)

REDUNDANT_ELSE_AFTER_EXIT = PatternSpec(
    name="redundant-else-after-exit",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="else after a branch that always exits",
)

LITERAL_CONSTRUCTOR = PatternSpec(
    name="literal-constructor",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="argument-less list()/dict()/tuple() call",
)

REDUNDANT_PASS = PatternSpec(
    name="redundant-pass",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="pass in a block that has other statements",
)

REDUNDANT_BOOL_WRAPPER = PatternSpec(
    name="redundant-bool-wrapper",
    category=Category.VERBOSE,
    technique=Technique.STRUCTURAL,
    summary="bool() around an expression that is already boolean",
)

_BOOL_BUILTINS = frozenset({
    "isinstance", "issubclass", "hasattr", "callable", "all", "any", "bool",
})

_BOOL_OPERATORS = frozenset({"is", "is not", "in", "not in"})

_LITERALS = {"list": "[]", "dict": "{}", "tuple": "()"}

# Expressions that need parentheses after `not`, `in` or `if`
_LOOSE = frozenset({
    "boolean_operator", "conditional_expression", "lambda", "named_expression",
})

_CONTAINER_VALUES = frozenset({
    "list", "dictionary", "set", "tuple",
    "list_comprehension", "dictionary_comprehension", "set_comprehension",
})

_CONDITION_OWNERS = frozenset({"if_statement", "elif_clause", "while_statement"})

# (operator, literal) → True when the comparison means "non-empty"
_LENGTH_TESTS: dict[tuple[str, str], bool] = {
    (">", "0"): True,
    ("!=", "0"): True,
    (">=", "1"): True,
    ("==", "0"): False,
    ("<", "1"): False,
}

# Parents in which a bare comparison binds the same as bool(comparison)
_SAFE_BOOL_CONTEXTS = frozenset({
    "return_statement",
    "argument_list",
    "keyword_argument",
    "assignment",
    "parenthesized_expression",
    "list",
    "tuple",
    "set",
    "pair",
    "if_statement",
    "elif_clause",
    "while_statement",
})


def _parenthesize(node: tree_sitter.Node) -> str:
    text = node_text(node)
    return f"({text})" if node.type in _LOOSE else text


def _in_place(
    spec: PatternSpec,
    source: SourceFile,
    node: tree_sitter.Node,
    text: str,
    metadata: dict[str, Any],
) -> Candidate:
    """Single-line rewrite of ``node`` to ``text``."""
    row = node.start_point[0]
    new_line = splice(source.lines[row], node.start_point[1], node.end_point[1], text)
    return make_candidate(spec, source, row + 1, row + 1, new_line, lines_saved=1, metadata=metadata)


def _builtin_metadata(source: SourceFile, node: tree_sitter.Node, *names: str) -> dict[str, Any]:
    return {"builtins": sorted(set(names)), "scope_id": source.scope_of(node).id}


# ---------------------------------------------------------------------------
# boolean-return-conditional
# ---------------------------------------------------------------------------


def _returned_bool(stmt: tree_sitter.Node | None) -> bool | None:
    if stmt is None or stmt.type != "return_statement" or stmt.named_child_count != 1:
        return None
    value = stmt.named_children[0]
    if value.type == "true":
        return True
    if value.type == "false":
        return False
    return None


def _is_bool_comparison(node: tree_sitter.Node) -> bool:
    """Identity and membership tests; rich comparisons may return any object."""
    if node.type != "comparison_operator":
        return False
    operators = node.children_by_field_name("operators")
    return bool(operators) and all(op.type in _BOOL_OPERATORS for op in operators)


def _is_boolean(node: tree_sitter.Node, used: list[str]) -> bool:
    node = unwrap_parens(node)
    if node.type in ("not_operator", "true", "false") or _is_bool_comparison(node):
        return True
    if node.type == "boolean_operator":
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        return (
            left is not None and right is not None
            and _is_boolean(left, used) and _is_boolean(right, used)
        )
    if node.type == "call":
        name = node_text(node.child_by_field_name("function"))
        if name in _BOOL_BUILTINS:
            used.append(name)
            return True
    return False


@detector(BOOLEAN_RETURN_CONDITIONAL)
def detect_boolean_return_conditional(
    source: SourceFile, settings: Settings
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "if_statement":
            continue
        condition = node.child_by_field_name("condition")
        if condition is None or not is_single_line(condition):
            continue
        when_true = _returned_bool(single_statement(node.child_by_field_name("consequence")))
        if when_true is None:
            continue

        alternatives = node.children_by_field_name("alternative")
        if len(alternatives) > 1 or (alternatives and alternatives[0].type != "else_clause"):
            continue
        if alternatives:
            closing = alternatives[0]
            otherwise = _returned_bool(single_statement(closing.child_by_field_name("body")))
        else:
            closing = node.next_named_sibling
            if closing is None or closing.start_point[0] != node.end_point[0] + 1:
                continue
            otherwise = _returned_bool(closing)
        if otherwise is None or otherwise == when_true:
            continue

        used: list[str] = []
        if when_true:
            if _is_boolean(condition, used):
                expr = node_text(condition)
            else:
                used.append("bool")
                expr = f"bool({node_text(unwrap_parens(condition))})"
        else:
            expr = f"not {_parenthesize(condition)}"
        replacement = f"{statement_indent(source, node)}return {expr}"
        first, last = node.start_point[0] + 1, closing.end_point[0] + 1
        candidates.append(
            make_candidate(
                BOOLEAN_RETURN_CONDITIONAL, source, first, last, replacement,
                metadata=_builtin_metadata(source, node, *used),
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# manual-accumulation-loop
# ---------------------------------------------------------------------------


def _mentions(node: tree_sitter.Node | None, name: str) -> bool:
    return node is not None and any(
        n.type == "identifier" and node_text(n) == name for n in walk(node)
    )


def _append_call(stmt: tree_sitter.Node | None, acc: str) -> tree_sitter.Node | None:
    """The appended item for ``acc.append(item)``."""
    call = expression_of(stmt)
    if call is None or call.type != "call":
        return None
    func = call.child_by_field_name("function")
    if func is None or func.type != "attribute":
        return None
    if node_text(func.child_by_field_name("object")) != acc:
        return None
    if node_text(func.child_by_field_name("attribute")) != "append":
        return None
    arguments = call.child_by_field_name("arguments")
    args = [a for a in (arguments.named_children if arguments else []) if a.type != "comment"]
    if len(args) != 1 or args[0].type in ("keyword_argument", "list_splat", "dictionary_splat"):
        return None
    return args[0]


def _loop_target_escapes(
    source: SourceFile, loop: tree_sitter.Node, target: tree_sitter.Node, scope_id: str
) -> bool:
    """True if a loop variable is read outside the loop."""
    first, last = node_span(loop)
    for ident in walk(target):
        if ident.type != "identifier":
            continue
        symbol = source.resolve(node_text(ident), scope_id)
        if symbol is None:
            return True
        for ref in source.references:
            if ref.target_id == symbol.id and not first <= ref.site.line <= last:
                return True
    return False


@detector(MANUAL_ACCUMULATION_LOOP)
def detect_manual_accumulation_loop(
    source: SourceFile, settings: Settings
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for block in walk(source.root):
        if block.type not in ("block", "module"):
            continue
        body = statements(block)
        for init, loop in zip(body, body[1:]):
            found = _accumulation(source, init, loop)
            if found is not None:
                candidates.append(found)
    return candidates


def _accumulation(
    source: SourceFile, init: tree_sitter.Node, loop: tree_sitter.Node
) -> Candidate | None:
    assign = expression_of(init)
    if assign is None or assign.type != "assignment" or loop.type != "for_statement":
        return None
    left = assign.child_by_field_name("left")
    right = assign.child_by_field_name("right")
    if left is None or left.type != "identifier" or right is None:
        return None
    if right.type != "list" or right.named_child_count or not is_single_line(init):
        return None
    if loop.start_point[0] - init.end_point[0] > 1 or loop.children[0].type == "async":
        return None
    if loop.child_by_field_name("alternative") is not None:
        return None

    acc = node_text(left)
    scope = source.scope_of(init)
    if scope.kind == ScopeKind.CLASS:
        return None
    target = loop.child_by_field_name("left")
    iterable = loop.child_by_field_name("right")
    inner = single_statement(loop.child_by_field_name("body"))
    condition = None
    if inner is not None and inner.type == "if_statement":
        if inner.children_by_field_name("alternative"):
            return None
        condition = inner.child_by_field_name("condition")
        inner = single_statement(inner.child_by_field_name("consequence"))
    item = _append_call(inner, acc)
    if item is None or target is None or iterable is None:
        return None
    parts = [n for n in (item, target, iterable, condition) if n is not None]
    if not all(is_single_line(n) for n in parts):
        return None
    if any(_mentions(n, acc) for n in (item, iterable, condition)):
        return None
    if _loop_target_escapes(source, loop, target, scope.id):
        return None

    head = source.lines[init.start_point[0]].encode("utf-8")[: right.start_point[1]].decode("utf-8")
    clause = f" if {_parenthesize(condition)}" if condition is not None else ""
    replacement = (
        f"{head}[{node_text(item)} for {node_text(target)} "
        f"in {_parenthesize(iterable)}{clause}]"
    )
    first, last = init.start_point[0] + 1, loop.end_point[0] + 1
    return make_candidate(MANUAL_ACCUMULATION_LOOP, source, first, last, replacement)


# ---------------------------------------------------------------------------
# length-truthiness
# ---------------------------------------------------------------------------


def _in_condition(node: tree_sitter.Node) -> bool:
    current = node
    while current.parent is not None and current.parent.type in (
        "parenthesized_expression", "boolean_operator", "not_operator"
    ):
        current = current.parent
    owner = current.parent
    if owner is None or owner.type not in _CONDITION_OWNERS:
        return False
    condition = owner.child_by_field_name("condition")
    return condition is not None and condition.id == current.id


def _is_container(source: SourceFile, name: str, scope_id: str) -> bool:
    symbol = source.resolve(name, scope_id)
    if symbol is None:
        return False
    if symbol.annotation is not None:
        return is_concrete(symbol.annotation) and base_name(symbol.annotation) in CONTAINER_TYPES
    values = source.binding_values.get(symbol.id, ())
    return len(values) == 1 and values[0] is not None and values[0].type in _CONTAINER_VALUES


@detector(LENGTH_TRUTHINESS)
def detect_length_truthiness(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "comparison_operator" or node.named_child_count != 2:
            continue
        if not is_single_line(node) or not _in_condition(node):
            continue
        operator = " ".join(c.type for c in node.children if not c.is_named)
        left, right = node.named_children
        if left.type != "call" or right.type != "integer":
            continue
        truthy = _LENGTH_TESTS.get((operator, node_text(right)))
        if truthy is None or node_text(left.child_by_field_name("function")) != "len":
            continue
        arguments = left.child_by_field_name("arguments")
        args = arguments.named_children if arguments else []
        if len(args) != 1 or args[0].type != "identifier":
            continue
        name = node_text(args[0])
        scope_id = source.scope_of(node).id
        if not _is_container(source, name, scope_id):
            continue
        text = name if truthy else f"not {name}"
        metadata = _builtin_metadata(source, node, "len")
        metadata["container"] = name
        candidates.append(_in_place(LENGTH_TRUTHINESS, source, node, text, metadata))
    return candidates


# ---------------------------------------------------------------------------
# redundant-else-after-exit
# ---------------------------------------------------------------------------


@detector(REDUNDANT_ELSE_AFTER_EXIT)
def detect_redundant_else_after_exit(
    source: SourceFile, settings: Settings
) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "if_statement":
            continue
        alternatives = node.children_by_field_name("alternative")
        if len(alternatives) != 1 or alternatives[0].type != "else_clause":
            continue
        body = statements(node.child_by_field_name("consequence"))
        if not body or not is_exit_statement(body[-1]):
            continue
        else_clause = alternatives[0]
        if source.lines[else_clause.start_point[0]].strip() != "else:":
            continue
        replacement = dedented_body(
            source, else_clause, else_clause.child_by_field_name("body"),
            statement_indent(source, node),
        )
        if not replacement:
            continue
        first, last = node_span(else_clause)
        candidates.append(
            make_candidate(REDUNDANT_ELSE_AFTER_EXIT, source, first, last, replacement)
        )
    return candidates


# ---------------------------------------------------------------------------
# literal-constructor
# ---------------------------------------------------------------------------


@detector(LITERAL_CONSTRUCTOR)
def detect_literal_constructor(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "call" or not is_single_line(node):
            continue
        func = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        if func is None or func.type != "identifier" or arguments is None:
            continue
        literal = _LITERALS.get(node_text(func))
        if literal is None or arguments.type != "argument_list" or arguments.named_child_count:
            continue
        candidates.append(
            _in_place(
                LITERAL_CONSTRUCTOR, source, node, literal,
                _builtin_metadata(source, node, node_text(func)),
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# redundant-pass
# ---------------------------------------------------------------------------


@detector(REDUNDANT_PASS)
def detect_redundant_pass(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "pass_statement" or node.parent is None:
            continue
        siblings = statements(node.parent)
        if node.parent.type not in ("block", "module") or len(siblings) < 2:
            continue
        # a block of nothing but passes keeps its first one
        if all(s.type == "pass_statement" for s in siblings) and siblings[0].id == node.id:
            continue
        row = node.start_point[0]
        if source.lines[row].strip() != "pass":
            continue
        candidates.append(make_candidate(REDUNDANT_PASS, source, row + 1, row + 1, ""))
    return candidates


# ---------------------------------------------------------------------------
# redundant-bool-wrapper
# ---------------------------------------------------------------------------


@detector(REDUNDANT_BOOL_WRAPPER)
def detect_redundant_bool_wrapper(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for node in walk(source.root):
        if node.type != "call" or not is_single_line(node):
            continue
        if node_text(node.child_by_field_name("function")) != "bool":
            continue
        arguments = node.child_by_field_name("arguments")
        args = arguments.named_children if arguments is not None else []
        if len(args) != 1:
            continue
        inner = unwrap_parens(args[0])
        if inner.type != "not_operator" and not _is_bool_comparison(inner):
            continue
        if node.parent is None or node.parent.type not in _SAFE_BOOL_CONTEXTS:
            continue
        candidates.append(
            _in_place(
                REDUNDANT_BOOL_WRAPPER, source, node, node_text(args[0]),
                _builtin_metadata(source, node, "bool"),
            )
        )
    return candidates
