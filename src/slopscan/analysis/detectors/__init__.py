"""Pattern detectors, one module per bloat category.

Importing this package registers every detector.
"""

from slopscan.analysis.detectors import (  # noqa: F401
    abstraction,
    config_files,
    dead_code,
    defensive,
    documentation,
    idioms,
    indirection,
)
from slopscan.analysis.detectors.base import (
    Candidate,
    Detector,
    PatternSpec,
    pattern_names,
    registered,
    run_config_detectors,
    run_detectors,
)

__all__ = [
    "Candidate",
    "Detector",
    "PatternSpec",
    "pattern_names",
    "registered",
    "run_config_detectors",
    "run_detectors",
]
