"""Environment-based configuration and application constants."""

from __future__ import annotations

import logging
from pathlib import Path
from typing import Annotated, Any

from pydantic import field_validator
from pydantic_settings import BaseSettings, NoDecode

logger = logging.getLogger(__name__)


class Settings(BaseSettings):
    """Reads from .env file and environment variables."""

    # Logging
    log_level: str = "INFO"
    log_dir: Path | None = None  # None = no JSON-lines scan log

    # Scheduling
    max_workers: int = 4

    # Discovery
    include_globs: Annotated[list[str], NoDecode] = [
        "**/*.py",
        "**/*.pyi",
        "**/*.toml",
        "**/*.cfg",
        "**/*.ini",
    ]
    exclude_globs: Annotated[list[str], NoDecode] = []
    test_globs: Annotated[list[str], NoDecode] = [
        "tests/**",
        "test/**",
        "**/test_*.py",
        "**/*_test.py",
        "**/conftest.py",
    ]
    skip_directories: list[str] = [
        "node_modules",
        "vendor",
        ".venv",
        "venv",
        "__pycache__",
        "build",
        "dist",
        ".git",
        ".tox",
        ".mypy_cache",
    ]

    # Detector thresholds
    helper_max_body_lines: int = 6
    wrapper_max_members: int = 2
    param_tax_max_sites: int = 2
    flag_public_dead_code: bool = False
    min_comment_tokens: int = 2
    disabled_patterns: Annotated[list[str], NoDecode] = []

    @field_validator(
        "include_globs",
        "exclude_globs",
        "test_globs",
        "disabled_patterns",
        mode="before",
    )
    @classmethod
    def _parse_list(cls, v: Any) -> Any:
        """Accept comma-separated string or JSON array."""
        if isinstance(v, str):
            return [s.strip() for s in v.split(",") if s.strip()]
        return v

    @field_validator(
        "max_workers",
        "helper_max_body_lines",
        "wrapper_max_members",
        "param_tax_max_sites",
    )
    @classmethod
    def _validate_positive(cls, v: int) -> int:
        if v < 1:
            raise ValueError("threshold must be at least 1")
        return v

    @field_validator("disabled_patterns")
    @classmethod
    def _validate_patterns(cls, v: list[str]) -> list[str]:
        from slopscan.analysis.detectors import pattern_names

        known = pattern_names()
        unknown = [p for p in v if p not in known]
        if unknown:
            logger.warning(
                "Unknown patterns in SLOPSCAN_DISABLED_PATTERNS: %s",
                ", ".join(unknown),
            )
        return v

    model_config = {
        "env_file": ".env",
        "env_file_encoding": "utf-8",
        "env_prefix": "SLOPSCAN_",
        "extra": "ignore",
    }


# File extension → language name mapping
EXTENSION_MAP: dict[str, str] = {
    ".py": "python",
    ".pyi": "python",
    ".toml": "toml",
    ".cfg": "ini",
    ".ini": "ini",
}

# Languages handled by the unweighted config detectors
CONFIG_LANGUAGES = frozenset({"toml", "ini"})

# Grammar module name → import path for tree-sitter grammars
GRAMMAR_MODULES: dict[str, str] = {
    "python": "tree_sitter_python",
}
