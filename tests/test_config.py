"""Tests for environment-based settings."""

from __future__ import annotations

import logging

import pytest
from pydantic import ValidationError

from slopscan.config import CONFIG_LANGUAGES, EXTENSION_MAP, Settings


class TestDefaults:
    def test_thresholds(self, settings: Settings) -> None:
        assert settings.max_workers == 4
        assert settings.helper_max_body_lines == 6
        assert settings.wrapper_max_members == 2
        assert settings.param_tax_max_sites == 2
        assert settings.flag_public_dead_code is False
        assert settings.disabled_patterns == []
        assert settings.log_dir is None

    def test_test_globs(self, settings: Settings) -> None:
        assert "tests/**" in settings.test_globs
        assert "**/conftest.py" in settings.test_globs

    def test_extension_map(self) -> None:
        assert EXTENSION_MAP[".py"] == "python"
        assert EXTENSION_MAP[".toml"] in CONFIG_LANGUAGES
        assert EXTENSION_MAP[".cfg"] in CONFIG_LANGUAGES


class TestEnvironment:
    def test_prefixed_env_vars(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SLOPSCAN_MAX_WORKERS", "8")
        monkeypatch.setenv("SLOPSCAN_FLAG_PUBLIC_DEAD_CODE", "true")
        cfg = Settings(_env_file=None)
        assert cfg.max_workers == 8
        assert cfg.flag_public_dead_code is True

    def test_comma_separated_lists(self, monkeypatch: pytest.MonkeyPatch) -> None:
        monkeypatch.setenv("SLOPSCAN_EXCLUDE_GLOBS", "gen/**, **/migrations/**,")
        monkeypatch.setenv("SLOPSCAN_DISABLED_PATTERNS", "redundant-pass,dead-constant")
        cfg = Settings(_env_file=None)
        assert cfg.exclude_globs == ["gen/**", "**/migrations/**"]
        assert cfg.disabled_patterns == ["redundant-pass", "dead-constant"]

    def test_env_file(self, tmp_path) -> None:
        env_file = tmp_path / ".env"
        env_file.write_text("SLOPSCAN_HELPER_MAX_BODY_LINES=3\n")
        cfg = Settings(_env_file=env_file)
        assert cfg.helper_max_body_lines == 3


class TestValidation:
    @pytest.mark.parametrize(
        "field",
        ["max_workers", "helper_max_body_lines", "wrapper_max_members", "param_tax_max_sites"],
    )
    def test_thresholds_must_be_positive(self, field: str) -> None:
        with pytest.raises(ValidationError):
            Settings(_env_file=None, **{field: 0})

    def test_unknown_pattern_warns(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="slopscan.config"):
            cfg = Settings(_env_file=None, disabled_patterns=["no-such-pattern"])
        assert cfg.disabled_patterns == ["no-such-pattern"]
        assert "Unknown patterns in SLOPSCAN_DISABLED_PATTERNS" in caplog.text
        assert "no-such-pattern" in caplog.text

    def test_known_pattern_silent(self, caplog: pytest.LogCaptureFixture) -> None:
        with caplog.at_level(logging.WARNING, logger="slopscan.config"):
            Settings(_env_file=None, disabled_patterns=["redundant-pass"])
        assert "Unknown patterns" not in caplog.text
