"""Shared constants: single source of truth for cross-module values.

All magic strings and numbers that appear in 2+ files belong here.
StrEnum members are str-compatible, so downstream code (JSON reports,
log records) works unchanged.
"""

from __future__ import annotations

from enum import StrEnum

# ── String Enums ─────────────────────────────────────────


class SymbolKind(StrEnum):
    """Kinds of declarations tracked by the source model."""

    FUNCTION = "function"
    METHOD = "method"
    CLASS = "class"
    CONSTANT = "constant"
    PARAMETER = "parameter"
    LOCAL = "local"
    IMPORT = "import"


class ScopeKind(StrEnum):
    """Lexical scope kinds (module → class/function → nested function)."""

    MODULE = "module"
    CLASS = "class"
    FUNCTION = "function"


class RefKind(StrEnum):
    """How a reference site uses its target."""

    CALL = "call"  # foo(...)
    VALUE = "value"  # foo passed around, stored, returned
    BASE = "base"  # class Child(foo)
    ATTRIBUTE = "attribute"  # obj.foo where obj is not statically bound
    REFLECTIVE = "reflective"  # getattr(obj, "foo"), __all__ entries


class Category(StrEnum):
    """Bloat categories. Config is the unweighted non-code class."""

    DEFENSIVE = "defensive"
    ABSTRACTION = "abstraction"
    DEAD_CODE = "dead_code"
    VERBOSE = "verbose"
    INDIRECTION = "indirection"
    DOCUMENTATION = "documentation"
    CONFIG = "config"


class Technique(StrEnum):
    """Verification technique mandated by a pattern."""

    CALLER_COUNT = "caller-count"
    REACHABILITY = "reachability"
    DATA_TRACING = "data-tracing"
    PARAMETER_TAX = "parameter-tax"
    ATTRIBUTE_ACCESS = "attribute-access"
    STRUCTURAL = "structural"


class Verdict(StrEnum):
    """Outcome attached to a finding by the verifier."""

    CONFIRMED = "confirmed"
    DISCARDED = "discarded"


class Band(StrEnum):
    """Slop density bands."""

    EXCELLENT = "excellent"
    GOOD = "good"
    NEEDS_WORK = "needs-work"
    HEAVY = "heavy"


class StageOutcome(StrEnum):
    """Outcome of an individual pipeline stage execution."""

    COMPLETED = "completed"
    FAILED = "failed"
    SKIPPED = "skipped"


class FailureKind(StrEnum):
    """Per-file failure classes reported alongside a scan."""

    PARSE = "parse"
    DECODE = "decode"
    INTERNAL = "internal"


class SkipReason(StrEnum):
    """Why a confirmed finding produced no edit operation."""

    ADVISORY = "advisory"  # no mechanical rewrite exists
    CROSS_FILE = "cross-file"
    TEST_CALLERS = "touches-test-file"


class ReportFormat(StrEnum):
    """Supported CLI report formats."""

    TEXT = "text"
    JSON = "json"


# ── Weights and bands ────────────────────────────────────

# Categories 2, 3 and 5 carry 1.5x; the weighting is asserted,
# not derived, and kept fixed.
CATEGORY_WEIGHTS: dict[Category, float] = {
    Category.DEFENSIVE: 1.0,
    Category.ABSTRACTION: 1.5,
    Category.DEAD_CODE: 1.5,
    Category.VERBOSE: 1.0,
    Category.INDIRECTION: 1.5,
    Category.DOCUMENTATION: 1.0,
    Category.CONFIG: 0.0,
}

# Lower bound (inclusive) → band, checked from the top down.
BAND_THRESHOLDS: tuple[tuple[float, Band], ...] = (
    (30.0, Band.HEAVY),
    (15.0, Band.NEEDS_WORK),
    (5.0, Band.GOOD),
    (0.0, Band.EXCELLENT),
)


def band_for_density(density: float) -> Band:
    """Map a density percentage to its band (pure lookup)."""
    for lower, band in BAND_THRESHOLDS:
        if density >= lower:
            return band
    return Band.EXCELLENT


# ── Named Constants ──────────────────────────────────────

FINDING_ID_PREFIX = "SLOP"
FINDING_ID_WIDTH = 4

# Binary sniffing buffer for discovery
BINARY_DETECTION_BUFFER = 8192

# Truncation for error strings in structured logs
ERROR_TRUNCATION_CHARS = 500

# Names that make every local of a function opaque
REFLECTIVE_SCOPE_CALLS = frozenset({"locals", "vars", "eval", "exec"})

# Builtins whose truthiness matches len() != 0
CONTAINER_TYPES = frozenset({
    "list", "dict", "set", "frozenset", "tuple", "str", "bytes",
    "bytearray", "List", "Dict", "Set", "FrozenSet", "Tuple",
    "Sequence", "Mapping", "MutableMapping", "MutableSequence",
    "AbstractSet", "MutableSet",
})

# Words ignored when comparing documentation to code
DOC_STOPWORDS = frozenset({
    "a", "an", "the", "this", "that", "of", "to", "for", "and", "or",
    "in", "on", "is", "it", "its", "be", "by", "with", "from", "as",
    "args", "arguments", "returns", "return", "param", "parameter",
    "parameters", "given", "function", "method", "class", "self",
    "value", "none",
})

# Decorators that leave the decorated class callable by its own name
TRANSPARENT_DECORATORS = frozenset({"dataclass", "dataclasses.dataclass"})

# Length of the hex scan id used to correlate log records
SCAN_ID_HEX_LENGTH = 12
