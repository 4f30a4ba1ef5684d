"""Function-local def-use tracing.

A read is *live* when its value can reach a return, a call, an
attribute or subscript access, a control-flow condition, or any other
externally observable use. A read that only feeds the right-hand side
of a plain assignment to another local is a *flow* edge instead; the
binding is dead when nothing in its flow closure is live.
"""

from __future__ import annotations

from collections import defaultdict
from dataclasses import dataclass

import tree_sitter

from slopscan.analysis.static.source_model import Reference, SourceFile, Symbol
from slopscan.constants import SymbolKind

# Expression wrappers that pass values through without side effects.
_PURE_WRAPPERS = frozenset({
    "binary_operator",
    "unary_operator",
    "comparison_operator",
    "boolean_operator",
    "not_operator",
    "parenthesized_expression",
    "tuple",
    "list",
    "set",
    "dictionary",
    "pair",
    "conditional_expression",
    "expression_list",
})


@dataclass(frozen=True)
class FlowSummary:
    """Def-use facts for the locals and parameters of one function."""

    function_id: str
    reads: dict[str, tuple[Reference, ...]]
    flows: dict[str, frozenset[str]]
    live: frozenset[str]
    opaque: bool

    def read_count(self, symbol_id: str) -> int:
        return len(self.reads.get(symbol_id, ()))

    def reaches_live(self, symbol_id: str) -> bool:
        """True if the value bound to ``symbol_id`` can be observed."""
        if self.opaque:
            return True
        seen: set[str] = set()
        stack = [symbol_id]
        while stack:
            current = stack.pop()
            if current in seen:
                continue
            seen.add(current)
            if current in self.live:
                return True
            stack.extend(self.flows.get(current, ()))
        return False


def function_locals(source: SourceFile, function: Symbol) -> list[Symbol]:
    """Parameters and locals bound directly in ``function``'s scope."""
    if function.body_scope_id is None:
        return []
    scope = source.scopes[function.body_scope_id]
    return [
        source.symbols[symbol_id]
        for symbol_id in scope.bindings.values()
        if symbol_id in source.symbols
        and source.symbols[symbol_id].kind in (SymbolKind.PARAMETER, SymbolKind.LOCAL)
    ]


def trace_function(source: SourceFile, function: Symbol) -> FlowSummary:
    """Build the flow summary for one function."""
    scope_id = function.body_scope_id
    if scope_id is None:
        raise ValueError(f"{function.id} has no body scope")
    tracked = {s.id for s in function_locals(source, function)}
    opaque = _scope_tree_opaque(source, scope_id)

    reads: dict[str, list[Reference]] = defaultdict(list)
    flows: dict[str, set[str]] = defaultdict(set)
    live: set[str] = set()

    for ref in source.references:
        if ref.target_id not in tracked or ref.members or ref.node is None:
            continue
        reads[ref.target_id].append(ref)
        if ref.site.scope_id != scope_id:
            live.add(ref.target_id)  # closure read
            continue
        sink = _flow_sink(source, ref.node, scope_id)
        if sink is None:
            live.add(ref.target_id)
        elif sink != ref.target_id:
            flows[ref.target_id].add(sink)

    return FlowSummary(
        function_id=function.id,
        reads={k: tuple(v) for k, v in reads.items()},
        flows={k: frozenset(v) for k, v in flows.items()},
        live=frozenset(live),
        opaque=opaque,
    )


def _scope_tree_opaque(source: SourceFile, scope_id: str) -> bool:
    for scope in source.scopes.values():
        if not scope.opaque:
            continue
        current = scope
        while True:
            if current.id == scope_id:
                return True
            if current.parent_id is None:
                break
            current = source.scopes[current.parent_id]
    return False


def _flow_sink(
    source: SourceFile, node: tree_sitter.Node, scope_id: str
) -> str | None:
    """Local symbol a read flows into, or None if the read is live."""
    parent = node.parent
    if parent is None:
        return None
    if parent.type == "augmented_assignment" and _is_field(parent, "left", node):
        return _local_target(source, node, scope_id)

    current = node
    while current.parent is not None and current.parent.type in _PURE_WRAPPERS:
        current = current.parent
    holder = current.parent
    if holder is None:
        return None
    if holder.type == "assignment" and _is_field(holder, "right", current):
        if holder.parent is not None and holder.parent.type == "assignment":
            return None  # chained assignment
        left = holder.child_by_field_name("left")
        if left is not None and left.type == "identifier":
            return _local_target(source, left, scope_id)
        return None
    if holder.type == "augmented_assignment" and _is_field(holder, "right", current):
        left = holder.child_by_field_name("left")
        if left is not None and left.type == "identifier":
            return _local_target(source, left, scope_id)
    return None


def _local_target(
    source: SourceFile, node: tree_sitter.Node, scope_id: str
) -> str | None:
    symbol = source.resolve(node.text.decode("utf-8") if node.text else "", scope_id)
    if symbol is None or symbol.scope_id != scope_id:
        return None
    return symbol.id


def _is_field(parent: tree_sitter.Node, field_name: str, child: tree_sitter.Node) -> bool:
    candidate = parent.child_by_field_name(field_name)
    return candidate is not None and candidate.id == child.id
