"""Build a resolved source model (scopes, symbols, references) per file.

Pass 1 walks the tree-sitter tree and opens a scope for every module,
class, function, lambda and comprehension, binding each declared name
to exactly one Symbol (later assignments are rebindings of the same
symbol). Pass 2 walks the tree again and resolves every identifier in
load position to the nearest enclosing binding (LEGB, class scopes are
skipped from nested functions). Imports stay unresolved here; the
reference index resolves them once every file's model is known.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from dataclasses import dataclass, field
from enum import StrEnum

import tree_sitter

from slopscan.analysis.static.parser import (
    end_line,
    first_error,
    get_parser,
    node_text,
    start_line,
    unwrap_parens,
)
from slopscan.analysis.static.type_info import is_concrete
from slopscan.constants import (
    REFLECTIVE_SCOPE_CALLS,
    RefKind,
    ScopeKind,
    SymbolKind,
)
from slopscan.errors import ParseError
from slopscan.ingestion import split_lines
from slopscan.ingestion.schemas import SourceInput

logger = logging.getLogger(__name__)

_SCOPE_NODES = frozenset({
    "function_definition",
    "class_definition",
    "lambda",
    "list_comprehension",
    "set_comprehension",
    "dictionary_comprehension",
    "generator_expression",
})

_LITERAL_NODES = frozenset({
    "string",
    "concatenated_string",
    "integer",
    "float",
    "true",
    "false",
    "list",
    "dictionary",
    "set",
    "tuple",
    "list_comprehension",
    "set_comprehension",
    "dictionary_comprehension",
    "lambda",
    "comparison_operator",
    "not_operator",
})

_BUILTIN_CONSTRUCTORS = frozenset({
    "list", "dict", "set", "frozenset", "tuple", "str", "bytes",
    "int", "float", "bool", "bytearray", "complex",
})

_REFLECTIVE_ACCESSORS = frozenset({"getattr", "hasattr", "setattr", "delattr"})


class ArgKind(StrEnum):
    """Static classification of an argument value at a call site."""

    NONE = "none"
    CONCRETE = "concrete"
    DYNAMIC = "dynamic"
    SPLAT = "splat"


# ---------------------------------------------------------------------------
# Model types
# ---------------------------------------------------------------------------


@dataclass(frozen=True, order=True)
class CallSite:
    """A (file, line, enclosing scope) triple: the unit of caller count."""

    path: str
    line: int
    scope_id: str


@dataclass(frozen=True)
class ArgInfo:
    """One argument at a call site."""

    kind: ArgKind
    position: int | None = None
    keyword: str | None = None


@dataclass(frozen=True)
class Symbol:
    """A declaration. Exactly one per (scope, name)."""

    id: str
    name: str
    kind: SymbolKind
    scope_id: str
    path: str
    start_line: int
    end_line: int
    annotation: str | None = None
    decorated: bool = False
    decorators: tuple[str, ...] = ()
    body_scope_id: str | None = None
    params: tuple[str, ...] = ()
    param_index: int | None = None
    default_is_none: bool = False
    has_default: bool = False
    splat: bool = False
    bases: tuple[str, ...] = ()
    import_module: str | None = None
    import_name: str | None = None
    return_annotation: str | None = None


@dataclass
class Scope:
    """A lexical scope and the names it binds."""

    id: str
    kind: ScopeKind
    qualname: str
    parent_id: str | None
    start_line: int
    end_line: int
    owner_id: str | None = None  # symbol that opens this scope
    bindings: dict[str, str] = field(default_factory=lambda: dict[str, str]())
    declared_global: set[str] = field(default_factory=lambda: set[str]())
    declared_nonlocal: set[str] = field(default_factory=lambda: set[str]())
    opaque: bool = False  # uses locals()/vars()/eval/exec


@dataclass(frozen=True)
class Reference:
    """A use of a name at a call site.

    ``target_id`` is the in-file symbol the base name resolves to (it
    may be an import, resolved later). ``members`` is the attribute
    chain applied to that base: ``mod.f()`` → target=mod, members=(f,).
    A reference with no target and one member is opaque by name.
    """

    site: CallSite
    kind: RefKind
    name: str
    target_id: str | None = None
    members: tuple[str, ...] = ()
    args: tuple[ArgInfo, ...] = ()
    bound_call: bool = False
    node: tree_sitter.Node | None = field(
        default=None, compare=False, repr=False, hash=False
    )


@dataclass(frozen=True)
class SourceFile:
    """Parsed, resolved view of one file. Read-only once built."""

    path: str
    module_name: str
    lines: tuple[str, ...]
    non_empty_lines: int
    tree: tree_sitter.Tree = field(compare=False, repr=False)
    scopes: dict[str, Scope] = field(compare=False, repr=False)
    symbols: dict[str, Symbol] = field(compare=False, repr=False)
    references: tuple[Reference, ...] = field(compare=False, repr=False)
    def_nodes: dict[str, tree_sitter.Node] = field(compare=False, repr=False)
    binding_values: dict[str, tuple[tree_sitter.Node | None, ...]] = field(
        compare=False, repr=False
    )
    scope_by_node: dict[int, str] = field(compare=False, repr=False)
    index_only: bool = False

    @property
    def module_scope_id(self) -> str:
        return f"{self.path}::<module>"

    @property
    def root(self) -> tree_sitter.Node:
        return self.tree.root_node

    def excerpt(self, first: int, last: int) -> str:
        """Verbatim lines ``first..last`` (1-indexed, inclusive)."""
        return "\n".join(self.lines[first - 1 : last])

    def scope_of(self, node: tree_sitter.Node) -> Scope:
        """Innermost scope containing ``node``."""
        current: tree_sitter.Node | None = node
        while current is not None:
            scope_id = self.scope_by_node.get(current.id)
            if scope_id is not None and current.id != node.id:
                return self.scopes[scope_id]
            current = current.parent
        return self.scopes[self.module_scope_id]

    def resolve(self, name: str, scope_id: str) -> Symbol | None:
        """Resolve ``name`` from ``scope_id`` using Python's LEGB rule."""
        symbol_id = _resolve_in(self.scopes, name, scope_id)
        return self.symbols.get(symbol_id) if symbol_id else None

    def symbols_of_kind(self, *kinds: SymbolKind) -> list[Symbol]:
        return sorted(
            (s for s in self.symbols.values() if s.kind in kinds),
            key=lambda s: (s.start_line, s.id),
        )

    def references_to(self, symbol_id: str) -> list[Reference]:
        return [r for r in self.references if r.target_id == symbol_id and not r.members]


def _resolve_in(scopes: dict[str, Scope], name: str, scope_id: str) -> str | None:
    scope = scopes.get(scope_id)
    first = True
    while scope is not None:
        if first or scope.kind != ScopeKind.CLASS:
            if name in scope.bindings and name not in scope.declared_nonlocal:
                return scope.bindings[name]
        first = False
        scope = scopes.get(scope.parent_id) if scope.parent_id else None
    return None


def module_name_for(path: str) -> str:
    """Dotted module name for a posix path: ``a/b/__init__.py`` → ``a.b``."""
    parts = path.rsplit(".", 1)[0].split("/")
    if parts and parts[-1] == "__init__":
        parts = parts[:-1]
    return ".".join(p for p in parts if p)


# ---------------------------------------------------------------------------
# Builder
# ---------------------------------------------------------------------------


def build_source_file(item: SourceInput, *, index_only: bool = False) -> SourceFile:
    """Parse and resolve one file.

    Raises :class:`ParseError` on malformed syntax; callers treat that
    as a per-file failure and keep scanning.
    """
    parser = get_parser(item.language)
    if parser is None:
        raise ParseError(item.path, f"no grammar available for {item.language}")

    tree = parser.parse(item.content.encode("utf-8"))
    error = first_error(tree.root_node)
    if error is not None:
        raise ParseError(
            item.path,
            "syntax error",
            line=error.start_point[0] + 1,
            column=error.start_point[1],
        )

    builder = _ModelBuilder(item.path, module_name_for(item.path))
    builder.declare_module(tree.root_node)
    builder.resolve_module(tree.root_node)

    return SourceFile(
        path=item.path,
        module_name=builder.module_name,
        lines=tuple(split_lines(item.content)),
        non_empty_lines=item.non_empty_lines,
        tree=tree,
        scopes=builder.scopes,
        symbols=builder.symbols,
        references=tuple(builder.references),
        def_nodes=builder.def_nodes,
        binding_values={k: tuple(v) for k, v in builder.binding_values.items()},
        scope_by_node=builder.scope_by_node,
        index_only=index_only,
    )


class _ModelBuilder:
    def __init__(self, path: str, module_name: str) -> None:
        self.path = path
        self.module_name = module_name
        self.scopes: dict[str, Scope] = {}
        self.symbols: dict[str, Symbol] = {}
        self.references: list[Reference] = []
        self.def_nodes: dict[str, tree_sitter.Node] = {}
        self.binding_values: dict[str, list[tree_sitter.Node | None]] = defaultdict(list)
        self.scope_by_node: dict[int, str] = {}

    # -- ids ----------------------------------------------------------------

    def _scope_id(self, qualname: str) -> str:
        return f"{self.path}::{qualname or '<module>'}"

    def _symbol_id(self, scope: Scope, name: str) -> str:
        prefix = f"{scope.qualname}." if scope.qualname else ""
        return f"{self.path}::{prefix}{name}"

    def _open_scope(
        self,
        node: tree_sitter.Node,
        kind: ScopeKind,
        qualname: str,
        parent: Scope | None,
        owner_id: str | None = None,
    ) -> Scope:
        scope = Scope(
            id=self._scope_id(qualname),
            kind=kind,
            qualname=qualname,
            parent_id=parent.id if parent else None,
            start_line=start_line(node),
            end_line=end_line(node),
            owner_id=owner_id,
        )
        self.scopes[scope.id] = scope
        self.scope_by_node[node.id] = scope.id
        return scope

    # -- pass 1: declarations ------------------------------------------------

    def declare_module(self, root: tree_sitter.Node) -> None:
        module = self._open_scope(root, ScopeKind.MODULE, "", None)
        self._declare_children(root, module)

    def _bind(
        self,
        scope: Scope,
        name: str,
        kind: SymbolKind,
        node: tree_sitter.Node,
        value: tree_sitter.Node | None = None,
        **extras: object,
    ) -> str:
        if name in scope.declared_global:
            scope = self.scopes[self._scope_id("")]
        elif name in scope.declared_nonlocal and scope.parent_id:
            outer = _resolve_in(self.scopes, name, scope.parent_id)
            if outer is not None:
                self.binding_values[outer].append(value)
                return outer
        if name in scope.bindings:
            symbol_id = scope.bindings[name]
            self.binding_values[symbol_id].append(value)
            return symbol_id
        symbol_id = self._symbol_id(scope, name)
        self.symbols[symbol_id] = Symbol(
            id=symbol_id,
            name=name,
            kind=kind,
            scope_id=scope.id,
            path=self.path,
            start_line=start_line(node),
            end_line=end_line(node),
            **extras,  # type: ignore[arg-type]
        )
        scope.bindings[name] = symbol_id
        self.binding_values[symbol_id].append(value)
        return symbol_id

    def _declare_children(self, node: tree_sitter.Node, scope: Scope) -> None:
        for child in node.children:
            self._declare(child, scope)

    def _declare(self, node: tree_sitter.Node, scope: Scope) -> None:
        kind = node.type
        if kind == "decorated_definition":
            definition = node.child_by_field_name("definition")
            decorators: list[str] = []
            for child in node.children:
                if child.type == "decorator":
                    decorators.append(_decorator_name(child))
                    self._declare_children(child, scope)
            if definition is not None:
                self._declare_definition(
                    definition, scope, decorated=True, decorators=tuple(decorators)
                )
            return
        if kind in ("function_definition", "class_definition"):
            self._declare_definition(node, scope, decorated=False)
            return
        if kind == "lambda":
            self._declare_lambda(node, scope)
            return
        if kind in _SCOPE_NODES:
            self._declare_comprehension(node, scope)
            return
        if kind in ("global_statement", "nonlocal_statement"):
            names = {node_text(c) for c in node.named_children if c.type == "identifier"}
            if kind == "global_statement":
                scope.declared_global.update(names)
            else:
                scope.declared_nonlocal.update(names)
            return
        if kind == "import_statement":
            self._declare_import(node, scope)
            return
        if kind == "import_from_statement":
            self._declare_from_import(node, scope)
            return
        if kind == "assignment":
            self._declare_assignment(node, scope)
            return
        if kind == "augmented_assignment":
            left = node.child_by_field_name("left")
            if left is not None and left.type == "identifier":
                self._bind(scope, node_text(left), self._variable_kind(scope, node_text(left)), node)
            self._declare_children(node, scope)
            return
        if kind == "named_expression":
            name = node.child_by_field_name("name")
            target = self._enclosing_function_scope(scope)
            if name is not None:
                self._bind(
                    target, node_text(name), SymbolKind.LOCAL, node,
                    node.child_by_field_name("value"),
                )
            self._declare_children(node, scope)
            return
        if kind == "for_statement":
            self._declare_target(node.child_by_field_name("left"), scope, None)
            self._declare_children(node, scope)
            return
        if kind == "as_pattern":
            alias = node.child_by_field_name("alias")
            if alias is not None:
                self._declare_target(alias, scope, None)
            self._declare_children(node, scope)
            return
        if kind == "except_clause":
            seen_as = False
            for child in node.children:
                if child.type == "as":
                    seen_as = True
                elif seen_as and child.is_named:
                    self._declare_target(child, scope, None)
                    seen_as = False
            self._declare_children(node, scope)
            return
        if kind == "call":
            func = node.child_by_field_name("function")
            if func is not None and node_text(func) in REFLECTIVE_SCOPE_CALLS:
                scope.opaque = True
        self._declare_children(node, scope)

    def _enclosing_function_scope(self, scope: Scope) -> Scope:
        current = scope
        while current.qualname and "<comp" in current.qualname.rsplit(".", 1)[-1]:
            current = self.scopes[current.parent_id] if current.parent_id else current
        return current

    def _variable_kind(self, scope: Scope, name: str) -> SymbolKind:
        if scope.kind == ScopeKind.MODULE and name.isupper():
            return SymbolKind.CONSTANT
        return SymbolKind.LOCAL

    def _declare_target(
        self,
        target: tree_sitter.Node | None,
        scope: Scope,
        value: tree_sitter.Node | None,
        annotation: str | None = None,
        statement: tree_sitter.Node | None = None,
    ) -> None:
        if target is None:
            return
        if target.type == "identifier":
            name = node_text(target)
            symbol_id = self._bind(
                scope, name, self._variable_kind(scope, name),
                statement or target, value, annotation=annotation,
            )
            if statement is not None:
                self.def_nodes.setdefault(symbol_id, statement)
            return
        if target.type in (
            "pattern_list", "tuple_pattern", "list_pattern", "tuple", "list",
            "list_splat_pattern", "parenthesized_expression", "as_pattern_target",
        ):
            for child in target.named_children:
                self._declare_target(child, scope, None)

    def _declare_assignment(self, node: tree_sitter.Node, scope: Scope) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        type_node = node.child_by_field_name("type")
        annotation = node_text(type_node) if type_node is not None else None
        value = right
        if right is not None and right.type == "assignment":
            # a = b = value: every target gets the innermost value
            value = right
            while value is not None and value.type == "assignment":
                value = value.child_by_field_name("right")
        statement = node.parent if node.parent and node.parent.type == "expression_statement" else node
        self._declare_target(left, scope, value, annotation, statement)
        if type_node is not None:
            self._declare(type_node, scope)
        if right is not None:
            self._declare(right, scope)
        if left is not None and left.type != "identifier":
            self._declare_children(left, scope)

    def _declare_import(self, node: tree_sitter.Node, scope: Scope) -> None:
        for child in node.children_by_field_name("name"):
            if child.type == "aliased_import":
                dotted = node_text(child.child_by_field_name("name"))
                alias = node_text(child.child_by_field_name("alias"))
                self._bind(scope, alias, SymbolKind.IMPORT, node, import_module=dotted)
            else:
                dotted = node_text(child)
                top = dotted.split(".", 1)[0]
                self._bind(scope, top, SymbolKind.IMPORT, node, import_module=top)

    def _declare_from_import(self, node: tree_sitter.Node, scope: Scope) -> None:
        module_node = node.child_by_field_name("module_name")
        module = self._absolute_module(module_node)
        for child in node.children_by_field_name("name"):
            if child.type == "aliased_import":
                name = node_text(child.child_by_field_name("name"))
                alias = node_text(child.child_by_field_name("alias"))
            else:
                name = alias = node_text(child)
            self._bind(
                scope, alias, SymbolKind.IMPORT, node,
                import_module=module, import_name=name,
            )

    def _absolute_module(self, node: tree_sitter.Node | None) -> str:
        if node is None:
            return ""
        if node.type != "relative_import":
            return node_text(node)
        dots = 0
        dotted = ""
        for child in node.children:
            if child.type == "import_prefix":
                dots = node_text(child).count(".")
            elif child.type == "dotted_name":
                dotted = node_text(child)
        package = self.module_name.split(".")
        if not self.path.endswith("__init__.py"):
            package = package[:-1]
        if dots > 1:
            package = package[: len(package) - (dots - 1)]
        return ".".join([*package, dotted] if dotted else package)

    def _declare_definition(
        self,
        node: tree_sitter.Node,
        scope: Scope,
        *,
        decorated: bool,
        decorators: tuple[str, ...] = (),
    ) -> None:
        name_node = node.child_by_field_name("name")
        name = node_text(name_node)
        qualname = f"{scope.qualname}.{name}" if scope.qualname else name
        statement = node.parent if decorated and node.parent is not None else node

        if node.type == "class_definition":
            superclasses = node.child_by_field_name("superclasses")
            bases = tuple(
                node_text(c) for c in (superclasses.named_children if superclasses else [])
                if c.type != "keyword_argument"
            )
            if superclasses is not None:
                self._declare_children(superclasses, scope)
            symbol_id = self._bind(
                scope, name, SymbolKind.CLASS, statement,
                decorated=decorated, decorators=decorators,
                body_scope_id=self._scope_id(qualname), bases=bases,
            )
            self.def_nodes.setdefault(symbol_id, node)
            body_scope = self._open_scope(node, ScopeKind.CLASS, qualname, scope, symbol_id)
            self._declare_children(node.child_by_field_name("body"), body_scope)
            return

        kind = SymbolKind.METHOD if scope.kind == ScopeKind.CLASS else SymbolKind.FUNCTION
        body_scope_id = self._scope_id(qualname)
        params_node = node.child_by_field_name("parameters")
        return_type = node.child_by_field_name("return_type")
        param_specs = _parameter_specs(params_node)
        param_ids = tuple(f"{self.path}::{qualname}.{p.name}" for p in param_specs)

        # defaults and annotations evaluate in the enclosing scope
        if params_node is not None:
            self._declare_children(params_node, scope)

        symbol_id = self._bind(
            scope, name, kind, statement,
            decorated=decorated,
            decorators=decorators,
            body_scope_id=body_scope_id,
            params=param_ids,
            return_annotation=node_text(return_type) if return_type is not None else None,
        )
        self.def_nodes.setdefault(symbol_id, node)
        body_scope = self._open_scope(node, ScopeKind.FUNCTION, qualname, scope, symbol_id)
        for index, spec in enumerate(param_specs):
            self._bind(
                body_scope, spec.name, SymbolKind.PARAMETER, spec.node,
                annotation=spec.annotation,
                param_index=index,
                has_default=spec.has_default,
                default_is_none=spec.default_is_none,
                splat=spec.splat,
            )
        self._declare_children(node.child_by_field_name("body"), body_scope)

    def _declare_lambda(self, node: tree_sitter.Node, scope: Scope) -> None:
        qualname = f"{scope.qualname}.<lambda:{start_line(node)}:{node.start_point[1]}>".lstrip(".")
        params_node = node.child_by_field_name("parameters")
        if params_node is not None:
            self._declare_children(params_node, scope)
        lam = self._open_scope(node, ScopeKind.FUNCTION, qualname, scope)
        for index, spec in enumerate(_parameter_specs(params_node)):
            self._bind(
                lam, spec.name, SymbolKind.PARAMETER, spec.node,
                param_index=index, splat=spec.splat,
            )
        body = node.child_by_field_name("body")
        if body is not None:
            self._declare(body, lam)

    def _declare_comprehension(self, node: tree_sitter.Node, scope: Scope) -> None:
        qualname = f"{scope.qualname}.<comp:{start_line(node)}:{node.start_point[1]}>".lstrip(".")
        comp = self._open_scope(node, ScopeKind.FUNCTION, qualname, scope)
        for child in node.named_children:
            if child.type == "for_in_clause":
                self._declare_target(child.child_by_field_name("left"), comp, None)
                self._declare_children(child, comp)
            else:
                self._declare(child, comp)

    # -- pass 2: references --------------------------------------------------

    def resolve_module(self, root: tree_sitter.Node) -> None:
        self._visit_children(root, self.scopes[self._scope_id("")])

    def _visit_children(self, node: tree_sitter.Node | None, scope: Scope) -> None:
        if node is None:
            return
        for child in node.children:
            self._visit(child, scope)

    def _record(
        self,
        node: tree_sitter.Node,
        scope: Scope,
        kind: RefKind,
        name: str,
        target_id: str | None,
        members: tuple[str, ...] = (),
        args: tuple[ArgInfo, ...] = (),
        bound_call: bool = False,
    ) -> None:
        self.references.append(
            Reference(
                site=CallSite(self.path, start_line(node), scope.id),
                kind=kind,
                name=name,
                target_id=target_id,
                members=members,
                args=args,
                bound_call=bound_call,
                node=node,
            )
        )

    def _visit(self, node: tree_sitter.Node, scope: Scope) -> None:
        kind = node.type
        if kind in ("import_statement", "import_from_statement", "global_statement",
                    "nonlocal_statement", "comment", "future_import_statement"):
            return
        if kind in ("function_definition", "class_definition", "lambda") or (
            kind in _SCOPE_NODES and node.id in self.scope_by_node
        ):
            self._visit_scope(node, scope)
            return
        if kind == "decorated_definition":
            for child in node.children:
                if child.type == "decorator":
                    self._visit_children(child, scope)
            definition = node.child_by_field_name("definition")
            if definition is not None:
                self._visit(definition, scope)
            return
        if kind == "identifier":
            self._load(node, scope, RefKind.VALUE)
            return
        if kind == "attribute":
            self._visit_attribute(node, scope, RefKind.VALUE)
            return
        if kind == "call":
            self._visit_call(node, scope)
            return
        if kind == "assignment":
            self._visit_assignment(node, scope)
            return
        if kind == "augmented_assignment":
            left = node.child_by_field_name("left")
            if left is not None and left.type == "identifier":
                self._load(left, scope, RefKind.VALUE)
            elif left is not None:
                self._visit_store_target(left, scope)
            right = node.child_by_field_name("right")
            if right is not None:
                self._visit(right, scope)
            return
        if kind == "for_statement":
            self._visit_store_target(node.child_by_field_name("left"), scope)
            for field_name in ("right", "body", "alternative"):
                child = node.child_by_field_name(field_name)
                if child is not None:
                    self._visit(child, scope)
            return
        if kind == "named_expression":
            value = node.child_by_field_name("value")
            if value is not None:
                self._visit(value, scope)
            return
        if kind == "keyword_argument":
            value = node.child_by_field_name("value")
            if value is not None:
                self._visit(value, scope)
            return
        if kind == "as_pattern":
            for child in node.named_children:
                if child.type != "as_pattern_target":
                    self._visit(child, scope)
            return
        if kind == "except_clause":
            seen_as = False
            for child in node.children:
                if child.type == "as":
                    seen_as = True
                    continue
                if seen_as and child.is_named:
                    seen_as = False
                    self._visit_store_target(child, scope)
                    continue
                self._visit(child, scope)
            return
        if kind == "type":
            self._visit_annotation(node, scope)
            return
        if kind == "keyword_identifier":
            return
        self._visit_children(node, scope)

    def _visit_scope(self, node: tree_sitter.Node, scope: Scope) -> None:
        inner = self.scopes[self.scope_by_node[node.id]]
        kind = node.type
        if kind == "class_definition":
            superclasses = node.child_by_field_name("superclasses")
            if superclasses is not None:
                for child in superclasses.named_children:
                    if child.type == "identifier":
                        self._load(child, scope, RefKind.BASE)
                    elif child.type == "attribute":
                        self._visit_attribute(child, scope, RefKind.BASE)
                    else:
                        self._visit(child, scope)
            self._visit_children(node.child_by_field_name("body"), inner)
            return
        if kind in ("function_definition", "lambda"):
            params = node.child_by_field_name("parameters")
            if params is not None:
                for param in params.named_children:
                    for field_name in ("value", "type"):
                        child = param.child_by_field_name(field_name)
                        if child is not None:
                            self._visit(child, scope)
            return_type = node.child_by_field_name("return_type")
            if return_type is not None:
                self._visit(return_type, scope)
            body = node.child_by_field_name("body")
            if body is not None:
                if kind == "lambda":
                    self._visit(body, inner)
                else:
                    self._visit_children(body, inner)
            return
        # comprehensions
        for child in node.named_children:
            if child.type == "for_in_clause":
                self._visit_store_target(child.child_by_field_name("left"), inner)
                right = child.child_by_field_name("right")
                if right is not None:
                    self._visit(right, inner)
            else:
                self._visit(child, inner)

    def _visit_assignment(self, node: tree_sitter.Node, scope: Scope) -> None:
        left = node.child_by_field_name("left")
        right = node.child_by_field_name("right")
        type_node = node.child_by_field_name("type")
        if type_node is not None:
            self._visit(type_node, scope)
        if right is not None:
            self._visit(right, scope)
        self._visit_store_target(left, scope)
        if (
            scope.kind == ScopeKind.MODULE
            and left is not None
            and node_text(left) == "__all__"
            and right is not None
        ):
            for item in right.named_children:
                if item.type == "string":
                    name = _string_value(item)
                    self._record(
                        item, scope, RefKind.REFLECTIVE, name,
                        scope.bindings.get(name),
                    )

    def _visit_store_target(self, target: tree_sitter.Node | None, scope: Scope) -> None:
        if target is None or target.type == "identifier":
            return
        if target.type == "attribute":
            obj = target.child_by_field_name("object")
            if obj is not None:
                self._visit(obj, scope)
            return
        if target.type == "subscript":
            self._visit_children(target, scope)
            return
        for child in target.named_children:
            self._visit_store_target(child, scope)

    def _visit_annotation(self, node: tree_sitter.Node, scope: Scope) -> None:
        for child in node.named_children:
            if child.type == "string":
                # forward reference: "ClassName"
                name = _string_value(child)
                if name.isidentifier():
                    self._record(
                        child, scope, RefKind.VALUE, name,
                        _resolve_in(self.scopes, name, scope.id),
                    )
            else:
                self._visit(child, scope)

    def _load(self, node: tree_sitter.Node, scope: Scope, kind: RefKind) -> None:
        name = node_text(node)
        self._record(node, scope, kind, name, _resolve_in(self.scopes, name, scope.id))

    def _visit_attribute(
        self,
        node: tree_sitter.Node,
        scope: Scope,
        kind: RefKind,
        args: tuple[ArgInfo, ...] = (),
    ) -> None:
        members: list[str] = []
        base = node
        while base.type == "attribute":
            attr = base.child_by_field_name("attribute")
            members.append(node_text(attr))
            obj = base.child_by_field_name("object")
            if obj is None:
                break
            base = unwrap_parens(obj)
        members.reverse()

        if base.type != "identifier":
            self._visit(base, scope)
            for member in members:
                self._record(node, scope, RefKind.ATTRIBUTE, member, None, (member,))
            return

        base_name = node_text(base)
        base_symbol_id = _resolve_in(self.scopes, base_name, scope.id)
        self._load(base, scope, RefKind.VALUE)
        target_id = base_symbol_id
        bound_call = False
        base_symbol = self.symbols.get(base_symbol_id) if base_symbol_id else None
        if (
            base_symbol is not None
            and base_symbol.kind == SymbolKind.PARAMETER
            and base_symbol.param_index == 0
        ):
            owner = self._method_class(base_symbol.scope_id)
            if owner is not None:
                target_id = owner
                bound_call = True
        elif base_symbol is not None and base_symbol.kind in (
            SymbolKind.LOCAL, SymbolKind.PARAMETER, SymbolKind.CONSTANT
        ):
            bound_call = True
        ref_kind = kind if kind != RefKind.VALUE else RefKind.ATTRIBUTE
        if target_id is None:
            # builtins or undefined names: members stay opaque by name
            for member in members:
                self._record(node, scope, RefKind.ATTRIBUTE, member, None, (member,))
            return
        self._record(
            node, scope, ref_kind, members[-1], target_id, tuple(members),
            args=args, bound_call=bound_call,
        )

    def _method_class(self, function_scope_id: str) -> str | None:
        function_scope = self.scopes.get(function_scope_id)
        if function_scope is None or function_scope.parent_id is None:
            return None
        parent = self.scopes[function_scope.parent_id]
        if parent.kind != ScopeKind.CLASS:
            return None
        return parent.owner_id

    def _visit_call(self, node: tree_sitter.Node, scope: Scope) -> None:
        func = node.child_by_field_name("function")
        arguments = node.child_by_field_name("arguments")
        args = self._arg_infos(arguments, scope)
        if func is not None:
            inner = unwrap_parens(func)
            if inner.type == "identifier":
                name = node_text(inner)
                self._record(
                    inner, scope, RefKind.CALL, name,
                    _resolve_in(self.scopes, name, scope.id), args=args,
                )
                if name in _REFLECTIVE_ACCESSORS and arguments is not None:
                    self._record_reflective(arguments, scope)
            elif inner.type == "attribute":
                self._visit_attribute(inner, scope, RefKind.CALL, args)
            else:
                self._visit(inner, scope)
        if arguments is not None:
            self._visit(arguments, scope)

    def _record_reflective(self, arguments: tree_sitter.Node, scope: Scope) -> None:
        positional = [a for a in arguments.named_children if a.type != "keyword_argument"]
        if len(positional) >= 2 and positional[1].type == "string":
            name = _string_value(positional[1])
            self._record(positional[1], scope, RefKind.REFLECTIVE, name, None, (name,))

    def _arg_infos(
        self, arguments: tree_sitter.Node | None, scope: Scope
    ) -> tuple[ArgInfo, ...]:
        if arguments is None:
            return ()
        if arguments.type == "generator_expression":
            return (ArgInfo(ArgKind.CONCRETE, position=0),)
        infos: list[ArgInfo] = []
        position = 0
        for arg in arguments.named_children:
            if arg.type == "comment":
                continue
            if arg.type in ("list_splat", "dictionary_splat"):
                infos.append(ArgInfo(ArgKind.SPLAT))
                continue
            if arg.type == "keyword_argument":
                name = node_text(arg.child_by_field_name("name"))
                infos.append(
                    ArgInfo(self._classify(arg.child_by_field_name("value"), scope), keyword=name)
                )
                continue
            infos.append(ArgInfo(self._classify(arg, scope), position=position))
            position += 1
        return tuple(infos)

    def _classify(self, node: tree_sitter.Node | None, scope: Scope, depth: int = 0) -> ArgKind:
        """Static concreteness of an argument expression."""
        if node is None:
            return ArgKind.DYNAMIC
        node = unwrap_parens(node)
        if node.type == "none":
            return ArgKind.NONE
        if node.type in _LITERAL_NODES:
            return ArgKind.CONCRETE
        if node.type == "binary_operator":
            left = self._classify(node.child_by_field_name("left"), scope, depth)
            right = self._classify(node.child_by_field_name("right"), scope, depth)
            if left == right == ArgKind.CONCRETE:
                return ArgKind.CONCRETE
            return ArgKind.DYNAMIC
        if node.type == "call":
            func = node.child_by_field_name("function")
            if func is not None and func.type == "identifier":
                target = _resolve_in(self.scopes, node_text(func), scope.id)
                if target is None and node_text(func) in _BUILTIN_CONSTRUCTORS:
                    return ArgKind.CONCRETE
                symbol = self.symbols.get(target) if target else None
                if symbol is not None and symbol.kind == SymbolKind.CLASS:
                    return ArgKind.CONCRETE
                if symbol is not None and is_concrete(symbol.return_annotation):
                    return ArgKind.CONCRETE
            return ArgKind.DYNAMIC
        if node.type == "identifier" and depth < 4:
            target = _resolve_in(self.scopes, node_text(node), scope.id)
            symbol = self.symbols.get(target) if target else None
            if symbol is None:
                return ArgKind.DYNAMIC
            if symbol.kind in (SymbolKind.FUNCTION, SymbolKind.CLASS):
                return ArgKind.CONCRETE
            if symbol.annotation is not None:
                if symbol.default_is_none or not is_concrete(symbol.annotation):
                    return ArgKind.DYNAMIC
                return ArgKind.CONCRETE
            values = self.binding_values.get(symbol.id, [])
            if symbol.kind in (SymbolKind.LOCAL, SymbolKind.CONSTANT) and len(values) == 1 and values[0] is not None:
                value_scope = self.scopes[symbol.scope_id]
                return self._classify(values[0], value_scope, depth + 1)
        return ArgKind.DYNAMIC


@dataclass(frozen=True)
class _ParamSpec:
    name: str
    node: tree_sitter.Node
    annotation: str | None = None
    has_default: bool = False
    default_is_none: bool = False
    splat: bool = False


def _parameter_specs(params: tree_sitter.Node | None) -> list[_ParamSpec]:
    specs: list[_ParamSpec] = []
    if params is None:
        return specs
    for param in params.named_children:
        kind = param.type
        if kind == "identifier":
            specs.append(_ParamSpec(node_text(param), param))
        elif kind in ("typed_parameter", "typed_default_parameter", "default_parameter"):
            name_node = param.child_by_field_name("name")
            splat = False
            if name_node is None:
                name_node = param.named_children[0] if param.named_children else None
            if name_node is not None and name_node.type in (
                "list_splat_pattern", "dictionary_splat_pattern"
            ):
                splat = True
                name_node = name_node.named_children[0] if name_node.named_children else None
            if name_node is None:
                continue
            type_node = param.child_by_field_name("type")
            value = param.child_by_field_name("value")
            specs.append(
                _ParamSpec(
                    node_text(name_node),
                    param,
                    annotation=node_text(type_node) if type_node is not None else None,
                    has_default=value is not None,
                    default_is_none=value is not None and value.type == "none",
                    splat=splat,
                )
            )
        elif kind in ("list_splat_pattern", "dictionary_splat_pattern"):
            inner = param.named_children[0] if param.named_children else None
            if inner is not None:
                specs.append(_ParamSpec(node_text(inner), param, splat=True))
    return specs


def _string_value(node: tree_sitter.Node) -> str:
    parts = [node_text(c) for c in node.named_children if c.type == "string_content"]
    if parts:
        return "".join(parts)
    return node_text(node).strip("\"'")


def _decorator_name(decorator: tree_sitter.Node) -> str:
    """``@a.b(...)`` → ``a.b``."""
    expr = decorator.named_children[0] if decorator.named_children else None
    if expr is None:
        return ""
    if expr.type == "call":
        return node_text(expr.child_by_field_name("function"))
    return node_text(expr)
