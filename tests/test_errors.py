"""Tests for error types and failure classification."""

from __future__ import annotations

from slopscan.constants import FailureKind
from slopscan.errors import ParseError, SlopscanError, classify_failure


class TestParseError:
    def test_message_with_line(self) -> None:
        err = ParseError("pkg/mod.py", "syntax error", line=3, column=7)
        assert str(err) == "pkg/mod.py:3: syntax error"
        assert err.path == "pkg/mod.py"
        assert err.line == 3
        assert err.column == 7

    def test_message_without_line(self) -> None:
        err = ParseError("pkg/mod.py", "no grammar available for ruby")
        assert str(err) == "pkg/mod.py: no grammar available for ruby"
        assert err.line is None

    def test_is_engine_error(self) -> None:
        assert isinstance(ParseError("a.py", "x"), SlopscanError)


class TestClassifyFailure:
    def test_parse(self) -> None:
        assert classify_failure(ParseError("a.py", "x")) == FailureKind.PARSE

    def test_decode(self) -> None:
        err = UnicodeDecodeError("utf-8", b"\xff", 0, 1, "invalid start byte")
        assert classify_failure(err) == FailureKind.DECODE

    def test_anything_else_is_internal(self) -> None:
        assert classify_failure(RuntimeError("boom")) == FailureKind.INTERNAL
        assert classify_failure(KeyError("k")) == FailureKind.INTERNAL
