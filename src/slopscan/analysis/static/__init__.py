"""Source models, reference index and def-use tracing."""

from slopscan.analysis.static.reference_index import (
    UNBOUNDED,
    ReferenceIndex,
    ReferenceIndexBuilder,
    build_index,
)
from slopscan.analysis.static.source_model import (
    CallSite,
    SourceFile,
    Symbol,
    build_source_file,
)

__all__ = [
    "UNBOUNDED",
    "CallSite",
    "ReferenceIndex",
    "ReferenceIndexBuilder",
    "SourceFile",
    "Symbol",
    "build_index",
    "build_source_file",
]
