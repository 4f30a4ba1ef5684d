"""Abstraction patterns: helpers, enums and classes that add a layer for nothing."""

from __future__ import annotations

import tree_sitter

from slopscan.analysis.detectors.base import (
    Candidate,
    PatternSpec,
    code_statements,
    detector,
    expression_of,
    is_private,
    is_single_line,
    make_candidate,
)
from slopscan.analysis.static.parser import node_text
from slopscan.analysis.static.source_model import SourceFile, Symbol
from slopscan.config import Settings
from slopscan.constants import TRANSPARENT_DECORATORS, Category, SymbolKind, Technique

ONE_CALLER_HELPER = PatternSpec(
    name="one-caller-helper",
    category=Category.ABSTRACTION,
    technique=Technique.CALLER_COUNT,
    summary="small private function with exactly one call site",
)

SINGLE_VARIANT_ENUM = PatternSpec(
    name="single-variant-enum",
    category=Category.ABSTRACTION,
    technique=Technique.CALLER_COUNT,
    summary="Enum with a single member",
)

THIN_WRAPPER_CLASS = PatternSpec(
    name="thin-wrapper-class",
    category=Category.ABSTRACTION,
    technique=Technique.ATTRIBUTE_ACCESS,
    summary="class that stores one collaborator and only delegates to it",
)

PARAMETER_OBJECT_TAX = PatternSpec(
    name="parameter-object-tax",
    category=Category.ABSTRACTION,
    technique=Technique.PARAMETER_TAX,
    summary="method-less record built at one or two call sites",
)

_ENUM_BASES = frozenset({"Enum", "IntEnum", "StrEnum", "Flag", "IntFlag"})
_RECORD_BASES = frozenset({"NamedTuple"})


def _module_level(source: SourceFile, kind: SymbolKind) -> list[Symbol]:
    return [
        s for s in source.symbols_of_kind(kind) if s.scope_id == source.module_scope_id
    ]


def _class_body(source: SourceFile, cls: Symbol) -> tree_sitter.Node | None:
    node = source.def_nodes.get(cls.id)
    return node.child_by_field_name("body") if node is not None else None


def _base_names(cls: Symbol) -> set[str]:
    return {base.rsplit(".", 1)[-1] for base in cls.bases}


# ---------------------------------------------------------------------------
# one-caller-helper
# ---------------------------------------------------------------------------


@detector(ONE_CALLER_HELPER)
def detect_one_caller_helper(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for function in _module_level(source, SymbolKind.FUNCTION):
        if function.decorated or not is_private(function.name):
            continue
        node = source.def_nodes[function.id]
        code = code_statements(node.child_by_field_name("body"))
        if not code:
            continue
        body_lines = code[-1].end_point[0] - code[0].start_point[0] + 1
        if body_lines > settings.helper_max_body_lines:
            continue
        if _calls_itself(source, function):
            continue

        inline = _inline_expression(function, code)
        span = function.end_line - function.start_line + 1
        lines_saved = span if inline is not None else max(1, span - body_lines)
        candidates.append(
            make_candidate(
                ONE_CALLER_HELPER, source, function.start_line, function.end_line,
                inline or "",
                edit=False,
                lines_saved=lines_saved,
                symbol_id=function.id,
                metadata={"name": function.name, "inline_expression": inline},
            )
        )
    return candidates


def _calls_itself(source: SourceFile, function: Symbol) -> bool:
    body = function.body_scope_id
    return any(
        ref.site.scope_id == body or ref.site.scope_id.startswith(f"{body}.")
        for ref in source.references_to(function.id)
    )


def _inline_expression(function: Symbol, code: list[tree_sitter.Node]) -> str | None:
    """``expr`` for a parameterless ``return expr`` helper."""
    if function.params or len(code) != 1 or code[0].type != "return_statement":
        return None
    value = code[0].named_children[0] if code[0].named_child_count else None
    if value is None or not is_single_line(value) or value.type in ("yield", "await"):
        return None
    text = node_text(value)
    if value.type in (
        "identifier", "call", "attribute", "subscript", "string", "integer",
        "float", "true", "false", "none", "list", "tuple", "dictionary", "set",
        "parenthesized_expression",
    ):
        return text
    return f"({text})"


# ---------------------------------------------------------------------------
# single-variant-enum
# ---------------------------------------------------------------------------


@detector(SINGLE_VARIANT_ENUM)
def detect_single_variant_enum(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for cls in source.symbols_of_kind(SymbolKind.CLASS):
        if cls.decorated or not _base_names(cls) & _ENUM_BASES:
            continue
        code = code_statements(_class_body(source, cls))
        members = [expression_of(s) for s in code]
        if len(members) != 1 or members[0] is None or members[0].type != "assignment":
            continue
        member = members[0]
        span = cls.end_line - cls.start_line + 1
        candidates.append(
            make_candidate(
                SINGLE_VARIANT_ENUM, source, cls.start_line, cls.end_line,
                node_text(member),
                lines_saved=max(1, span - 1),
                symbol_id=cls.id,
                advisory=True,
                metadata={"member": node_text(member.child_by_field_name("left"))},
            )
        )
    return candidates


# ---------------------------------------------------------------------------
# thin-wrapper-class
# ---------------------------------------------------------------------------


@detector(THIN_WRAPPER_CLASS)
def detect_thin_wrapper_class(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for cls in source.symbols_of_kind(SymbolKind.CLASS):
        if cls.decorated or (cls.bases and cls.bases != ("object",)):
            continue
        code = code_statements(_class_body(source, cls))
        if len(code) < 2 or any(s.type != "function_definition" for s in code):
            continue
        methods = {node_text(s.child_by_field_name("name")): s for s in code}
        init = methods.pop("__init__", None)
        collaborator = _stored_collaborator(init) if init is not None else None
        if collaborator is None or not methods:
            continue
        if not all(_only_delegates(m, collaborator) for m in methods.values()):
            continue
        candidates.append(
            make_candidate(
                THIN_WRAPPER_CLASS, source, cls.start_line, cls.end_line,
                f"use the wrapped {collaborator!r} directly",
                lines_saved=cls.end_line - cls.start_line + 1,
                symbol_id=cls.id,
                advisory=True,
                metadata={"collaborator": collaborator, "members": sorted(methods)},
            )
        )
    return candidates


def _stored_collaborator(init: tree_sitter.Node) -> str | None:
    """``attr`` when ``__init__(self, x)`` is exactly ``self.attr = x``."""
    params = init.child_by_field_name("parameters")
    names = [p for p in (params.named_children if params else []) if p.type != "comment"]
    if len(names) != 2 or any(p.type != "identifier" for p in names):
        return None
    code = code_statements(init.child_by_field_name("body"))
    assign = expression_of(code[0]) if len(code) == 1 else None
    if assign is None or assign.type != "assignment":
        return None
    left = assign.child_by_field_name("left")
    right = assign.child_by_field_name("right")
    if left is None or right is None or left.type != "attribute":
        return None
    if node_text(left.child_by_field_name("object")) != node_text(names[0]):
        return None
    if node_text(right) != node_text(names[1]):
        return None
    return node_text(left.child_by_field_name("attribute"))


def _only_delegates(method: tree_sitter.Node, collaborator: str) -> bool:
    code = code_statements(method.child_by_field_name("body"))
    if len(code) != 1:
        return False
    stmt = code[0]
    if stmt.type == "return_statement":
        expr = stmt.named_children[0] if stmt.named_child_count else None
    else:
        expr = expression_of(stmt)
    current = expr
    while current is not None:
        if current.type == "call":
            current = current.child_by_field_name("function")
        elif current.type == "attribute":
            obj = current.child_by_field_name("object")
            if (
                obj is not None
                and obj.type == "attribute"
                and node_text(obj.child_by_field_name("object")) == "self"
                and node_text(obj.child_by_field_name("attribute")) == collaborator
            ):
                return True
            current = obj
        else:
            return False
    return False


# ---------------------------------------------------------------------------
# parameter-object-tax
# ---------------------------------------------------------------------------


@detector(PARAMETER_OBJECT_TAX)
def detect_parameter_object_tax(source: SourceFile, settings: Settings) -> list[Candidate]:
    candidates: list[Candidate] = []
    for cls in _module_level(source, SymbolKind.CLASS):
        is_dataclass = cls.decorated and set(cls.decorators) <= TRANSPARENT_DECORATORS
        if not (is_dataclass or _base_names(cls) & _RECORD_BASES):
            continue
        code = code_statements(_class_body(source, cls))
        fields = [_annotated_field(s) for s in code]
        if not fields or any(f is None for f in fields):
            continue
        candidates.append(
            make_candidate(
                PARAMETER_OBJECT_TAX, source, cls.start_line, cls.end_line,
                "pass " + ", ".join(f for f in fields if f) + " directly",
                lines_saved=cls.end_line - cls.start_line + 1,
                symbol_id=cls.id,
                advisory=True,
                metadata={"fields": [f for f in fields if f]},
            )
        )
    return candidates


def _annotated_field(stmt: tree_sitter.Node) -> str | None:
    assign = expression_of(stmt)
    if assign is None or assign.type != "assignment":
        return None
    left = assign.child_by_field_name("left")
    if left is None or left.type != "identifier" or assign.child_by_field_name("type") is None:
        return None
    return node_text(left)
