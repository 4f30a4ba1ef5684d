"""Classify declared type annotations by concreteness.

A concrete annotation names exactly one non-optional type. Anything
involving ``None``, ``Optional``, unions, ``Any`` or ``object`` is
treated as dynamic, as is a missing annotation.
"""

from __future__ import annotations

import re

_DYNAMIC_NAMES = frozenset({
    "Any",
    "object",
    "Optional",
    "Union",
    "None",
    "NoneType",
    "TypeVar",
    "Self",
})

_IDENT = re.compile(r"[A-Za-z_][A-Za-z0-9_]*")


def is_concrete(annotation: str | None) -> bool:
    """True iff the annotation pins a single non-optional type."""
    if annotation is None:
        return False
    text = annotation.strip().strip("\"'")
    if not text or "|" in text:
        return False
    names = {name.rsplit(".", 1)[-1] for name in _dotted_names(text)}
    return not names & _DYNAMIC_NAMES


def base_name(annotation: str | None) -> str | None:
    """Outermost type name: ``list[int]`` → ``list``, ``a.B`` → ``B``."""
    if annotation is None:
        return None
    text = annotation.strip().strip("\"'")
    head = text.split("[", 1)[0].strip()
    if not head:
        return None
    return head.rsplit(".", 1)[-1]


def _dotted_names(text: str) -> list[str]:
    return re.findall(r"[A-Za-z_][A-Za-z0-9_]*(?:\.[A-Za-z_][A-Za-z0-9_]*)*", text)


def identifiers(text: str) -> list[str]:
    """All identifier tokens in an annotation or expression string."""
    return _IDENT.findall(text)
