"""tree-sitter parser cache and small node helpers."""

from __future__ import annotations

import importlib
import threading
from collections.abc import Iterator

import tree_sitter

from slopscan.config import GRAMMAR_MODULES

# ---------------------------------------------------------------------------
# Parser cache
# ---------------------------------------------------------------------------

# tree_sitter.Parser is not safe to share across threads; files are
# parsed on a worker pool, so the cache is per thread.
_local = threading.local()
_language_cache: dict[str, tree_sitter.Language] = {}
_language_lock = threading.Lock()


def get_parser(language: str) -> tree_sitter.Parser | None:
    """Get or create a cached tree-sitter parser for this thread."""
    cache: dict[str, tree_sitter.Parser] | None = getattr(_local, "parsers", None)
    if cache is None:
        cache = _local.parsers = {}
    if language in cache:
        return cache[language]

    lang = _get_language(language)
    if lang is None:
        return None
    parser = tree_sitter.Parser(lang)
    cache[language] = parser
    return parser


def _get_language(language: str) -> tree_sitter.Language | None:
    with _language_lock:
        if language in _language_cache:
            return _language_cache[language]

        module_name = GRAMMAR_MODULES.get(language)
        if module_name is None:
            return None

        try:
            mod = importlib.import_module(module_name)
            capsule: object = mod.language()
            lang = tree_sitter.Language(capsule)
        except (ImportError, AttributeError):
            return None
        _language_cache[language] = lang
        return lang


# ---------------------------------------------------------------------------
# Node helpers
# ---------------------------------------------------------------------------


def node_text(node: tree_sitter.Node | None) -> str:
    """Decoded source text of a node ('' for None)."""
    if node is None or node.text is None:
        return ""
    return node.text.decode("utf-8")


def start_line(node: tree_sitter.Node) -> int:
    """1-indexed first line of a node."""
    return node.start_point[0] + 1


def end_line(node: tree_sitter.Node) -> int:
    """1-indexed last line of a node."""
    return node.end_point[0] + 1


def walk(node: tree_sitter.Node) -> Iterator[tree_sitter.Node]:
    """Pre-order traversal of ``node`` and all of its descendants."""
    stack = [node]
    while stack:
        current = stack.pop()
        yield current
        stack.extend(reversed(current.children))


def statements(block: tree_sitter.Node | None) -> list[tree_sitter.Node]:
    """Named statement children of a block, comments excluded."""
    if block is None:
        return []
    return [c for c in block.named_children if c.type != "comment"]


def first_error(node: tree_sitter.Node) -> tree_sitter.Node | None:
    """First ERROR or MISSING node under ``node``, if any."""
    if not node.has_error:
        return None
    for child in walk(node):
        if child.type == "ERROR" or child.is_missing:
            return child
    return node


def unwrap_parens(node: tree_sitter.Node) -> tree_sitter.Node:
    """Strip redundant parentheses around an expression."""
    while node.type == "parenthesized_expression" and node.named_child_count == 1:
        node = node.named_children[0]
    return node


def is_exit_statement(node: tree_sitter.Node) -> bool:
    """True for statements after which control never falls through."""
    return node.type in (
        "return_statement",
        "raise_statement",
        "continue_statement",
        "break_statement",
    )


def docstring_node(block: tree_sitter.Node | None) -> tree_sitter.Node | None:
    """The string node of a leading docstring in a body block."""
    body = statements(block)
    if not body or body[0].type != "expression_statement":
        return None
    expr = body[0].named_children[0] if body[0].named_children else None
    if expr is not None and expr.type == "string":
        return body[0]
    return None
