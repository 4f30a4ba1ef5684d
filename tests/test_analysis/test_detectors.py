"""Tests for the per-file pattern detectors."""

from __future__ import annotations

import logging
from unittest.mock import patch

from conftest import detect, make_input, make_source
from slopscan.analysis.detectors import (
    Detector,
    pattern_names,
    registered,
    run_config_detectors,
    run_detectors,
)
from slopscan.analysis.static import build_source_file
from slopscan.config import Settings
from slopscan.constants import CATEGORY_WEIGHTS, Category, SkipReason
from slopscan.ingestion.schemas import SourceInput


class TestRegistry:
    def test_every_category_has_detectors(self) -> None:
        categories = {entry.spec.category for entry in registered()}
        assert categories == set(Category)

    def test_registry_sorted_by_name(self) -> None:
        names = [entry.spec.name for entry in registered()]
        assert names == sorted(names)
        assert set(names) == pattern_names()

    def test_weights_come_from_category(self) -> None:
        for entry in registered():
            assert entry.spec.weight == CATEGORY_WEIGHTS[entry.spec.category]

    def test_disabled_pattern_is_skipped(self) -> None:
        source = make_source(
            """
            def make():
                return dict()
            """
        )
        enabled = run_detectors(source, Settings(_env_file=None))
        disabled = run_detectors(
            source, Settings(_env_file=None, disabled_patterns=["literal-constructor"])
        )
        assert any(c.spec.name == "literal-constructor" for c in enabled)
        assert not any(c.spec.name == "literal-constructor" for c in disabled)

    def test_detector_error_is_isolated(self, caplog) -> None:
        source = make_source(
            """
            def make():
                return dict()
            """
        )
        entry = next(d for d in registered() if d.spec.name == "redundant-pass")
        with (
            patch.dict(
                "slopscan.analysis.detectors.base._REGISTRY",
                {"redundant-pass": Detector(entry.spec, _explode)},
            ),
            caplog.at_level(logging.WARNING, logger="slopscan.analysis.detectors.base"),
        ):
            found = run_detectors(source, Settings(_env_file=None))
        assert any(c.spec.name == "literal-constructor" for c in found)
        assert "event=detector_failed pattern=redundant-pass" in caplog.text


def _explode(source, settings):
    raise RuntimeError("boom")


class TestDefensive:
    def test_unreachable_none_guard(self) -> None:
        source = make_source(
            """
            def _render(name: str) -> str:
                if name is None:
                    return ""
                return name.upper()
            """
        )
        [found] = detect("unreachable-none-guard", source)
        assert (found.start_line, found.end_line) == (2, 3)
        assert found.replacement == ""
        assert found.symbol_id == "pkg/mod.py::_render"
        assert found.metadata["param_name"] == "name"

    def test_none_guard_on_optional_param_ignored(self) -> None:
        source = make_source(
            """
            def _render(name: str | None) -> str:
                if name is None:
                    return ""
                return name.upper()
            """
        )
        assert detect("unreachable-none-guard", source) == []

    def test_is_not_none_keeps_body(self) -> None:
        source = make_source(
            """
            def _render(name: str) -> str:
                if name is not None:
                    name = name.strip()
                return name
            """
        )
        # name is rebound, so it is not a guardable parameter
        assert detect("unreachable-none-guard", source) == []

    def test_redundant_isinstance_guard(self) -> None:
        source = make_source(
            """
            def _area(side: int) -> int:
                if not isinstance(side, int):
                    raise TypeError("side")
                return side * side
            """
        )
        [found] = detect("redundant-isinstance-guard", source)
        assert (found.start_line, found.end_line) == (2, 3)
        assert found.metadata["builtins"] == ["isinstance"]

    def test_reraise_only_handler(self) -> None:
        source = make_source(
            """
            def load(path):
                try:
                    return open(path).read()
                except OSError:
                    raise
            """
        )
        [found] = detect("reraise-only-handler", source)
        assert (found.start_line, found.end_line) == (2, 5)
        assert found.replacement == "    return open(path).read()"
        assert found.lines_saved == 3

    def test_handler_that_wraps_is_kept(self) -> None:
        source = make_source(
            """
            def load(path):
                try:
                    return open(path).read()
                except OSError as exc:
                    raise RuntimeError(path) from exc
            """
        )
        assert detect("reraise-only-handler", source) == []


class TestAbstraction:
    def test_one_caller_helper(self) -> None:
        source = make_source(
            """
            def _default_name():
                return "anon"


            def greet():
                return "hi " + _default_name()
            """
        )
        [found] = detect("one-caller-helper", source)
        assert found.symbol_id == "pkg/mod.py::_default_name"
        assert found.metadata["inline_expression"] == '"anon"'
        assert found.lines_saved == 2
        assert found.edits == ()

    def test_public_function_is_not_a_helper(self) -> None:
        source = make_source(
            """
            def default_name():
                return "anon"
            """
        )
        assert detect("one-caller-helper", source) == []

    def test_single_variant_enum(self) -> None:
        source = make_source(
            """
            from enum import Enum


            class Mode(Enum):
                FAST = "fast"
            """
        )
        [found] = detect("single-variant-enum", source)
        assert found.metadata["member"] == "FAST"
        assert found.advisory
        assert found.to_finding("SLOP-0001").skip_reason == SkipReason.ADVISORY

    def test_thin_wrapper_class(self) -> None:
        source = make_source(
            """
            class Client:
                def __init__(self, session):
                    self.session = session

                def get(self, url):
                    return self.session.get(url)

                def post(self, url):
                    return self.session.post(url)
            """
        )
        [found] = detect("thin-wrapper-class", source)
        assert found.metadata == {"collaborator": "session", "members": ["get", "post"]}
        assert found.lines_saved == 9

    def test_wrapper_with_logic_is_kept(self) -> None:
        source = make_source(
            """
            class Client:
                def __init__(self, session):
                    self.session = session

                def get(self, url):
                    url = url.strip()
                    return self.session.get(url)
            """
        )
        assert detect("thin-wrapper-class", source) == []

    def test_parameter_object_tax(self) -> None:
        source = make_source(
            """
            from dataclasses import dataclass


            @dataclass
            class Point:
                x: int
                y: int
            """
        )
        [found] = detect("parameter-object-tax", source)
        assert (found.start_line, found.end_line) == (4, 7)
        assert found.metadata["fields"] == ["x", "y"]


class TestDeadCode:
    def test_dead_private_function(self) -> None:
        source = make_source(
            """
            def _unused(a):
                return a


            def main():
                return 1
            """
        )
        [found] = detect("dead-function", source)
        assert found.symbol_id == "pkg/mod.py::_unused"
        assert (found.start_line, found.end_line) == (1, 2)

    def test_public_function_needs_flag(self, settings: Settings) -> None:
        source = make_source(
            """
            def main():
                return 1
            """
        )
        assert detect("dead-function", source, settings) == []
        flagged = Settings(_env_file=None, flag_public_dead_code=True)
        assert len(detect("dead-function", source, flagged)) == 1

    def test_dead_constant(self) -> None:
        source = make_source(
            """
            _RETRIES = 3


            def main():
                return 1
            """
        )
        [found] = detect("dead-constant", source)
        assert found.symbol_id == "pkg/mod.py::_RETRIES"
        assert found.start_line == 1

    def test_unused_parameter(self) -> None:
        source = make_source(
            """
            def scale(value, factor):
                return value * 2
            """
        )
        [found] = detect("unused-parameter", source)
        assert found.metadata["param_name"] == "factor"
        assert found.advisory

    def test_stub_parameters_ignored(self) -> None:
        source = make_source(
            """
            def scale(value, factor):
                raise NotImplementedError
            """
        )
        assert detect("unused-parameter", source) == []

    def test_unused_local(self) -> None:
        source = make_source(
            """
            def compute(a):
                scratch = [1, 2]
                return a
            """
        )
        [found] = detect("unused-local", source)
        assert found.symbol_id == "pkg/mod.py::compute.scratch"
        assert found.start_line == 2

    def test_local_with_call_value_kept(self) -> None:
        source = make_source(
            """
            def compute(a):
                scratch = print(a)
                return a
            """
        )
        assert detect("unused-local", source) == []

    def test_commented_out_code(self) -> None:
        source = make_source(
            """
            def main():
                # result = compute(1)
                # print(result)
                return 1
            """
        )
        [found] = detect("commented-out-code", source)
        assert (found.start_line, found.end_line) == (2, 3)

    def test_prose_comment_is_not_code(self) -> None:
        source = make_source(
            """
            def main():
                # the answer is always one
                return 1
            """
        )
        assert detect("commented-out-code", source) == []


class TestVerbose:
    def test_boolean_return_conditional(self) -> None:
        source = make_source(
            """
            def is_adult(age: int) -> bool:
                if age >= 18:
                    return True
                else:
                    return False
            """
        )
        [found] = detect("boolean-return-conditional", source)
        assert (found.start_line, found.end_line) == (2, 5)
        assert found.replacement == "    return bool(age >= 18)"
        assert found.lines_saved == 3

    def test_boolean_return_membership_kept_bare(self) -> None:
        source = make_source(
            """
            def known(key, table) -> bool:
                if key in table:
                    return True
                return False
            """
        )
        [found] = detect("boolean-return-conditional", source)
        assert found.replacement == "    return key in table"

    def test_boolean_return_negated(self) -> None:
        source = make_source(
            """
            def is_minor(age: int) -> bool:
                if age >= 18:
                    return False
                return True
            """
        )
        [found] = detect("boolean-return-conditional", source)
        assert found.replacement == "    return not age >= 18"

    def test_manual_accumulation_loop(self) -> None:
        source = make_source(
            """
            def names(users):
                result = []
                for user in users:
                    result.append(user.name)
                return result
            """
        )
        [found] = detect("manual-accumulation-loop", source)
        assert (found.start_line, found.end_line) == (2, 4)
        assert found.replacement == "    result = [user.name for user in users]"

    def test_accumulation_with_filter(self) -> None:
        source = make_source(
            """
            def adults(users):
                result = []
                for user in users:
                    if user.age >= 18:
                        result.append(user)
                return result
            """
        )
        [found] = detect("manual-accumulation-loop", source)
        assert found.replacement == "    result = [user for user in users if user.age >= 18]"

    def test_length_truthiness(self) -> None:
        source = make_source(
            """
            def first(items: list) -> int:
                if len(items) > 0:
                    return items[0]
                return -1
            """
        )
        [found] = detect("length-truthiness", source)
        assert found.replacement == "    if items:"

    def test_length_of_unknown_type_kept(self) -> None:
        source = make_source(
            """
            def first(items):
                if len(items) > 0:
                    return items[0]
                return -1
            """
        )
        assert detect("length-truthiness", source) == []

    def test_redundant_else_after_exit(self) -> None:
        source = make_source(
            """
            def describe(n):
                if n < 0:
                    raise ValueError(n)
                else:
                    print(n)
                    return n
            """
        )
        [found] = detect("redundant-else-after-exit", source)
        assert (found.start_line, found.end_line) == (4, 6)
        assert found.replacement == "    print(n)\n    return n"

    def test_literal_constructor(self) -> None:
        source = make_source(
            """
            def make():
                return dict()
            """
        )
        [found] = detect("literal-constructor", source)
        assert found.replacement == "    return {}"
        assert found.metadata["builtins"] == ["dict"]

    def test_line_separator_in_string_keeps_rows(self) -> None:
        content = 'def b():\n    x = "p\u2028q"\n    print(x)\n    return list()\n'
        source = build_source_file(SourceInput(path="pkg/mod.py", content=content))
        [found] = detect("literal-constructor", source)
        assert found.start_line == 4
        assert found.excerpt == "    return list()"
        assert found.replacement == "    return []"

    def test_constructor_with_arguments_kept(self) -> None:
        source = make_source(
            """
            def make(pairs):
                return dict(pairs)
            """
        )
        assert detect("literal-constructor", source) == []

    def test_redundant_pass(self) -> None:
        source = make_source(
            """
            def work():
                print("x")
                pass
            """
        )
        [found] = detect("redundant-pass", source)
        assert found.start_line == 3

    def test_lone_pass_kept(self) -> None:
        source = make_source(
            """
            def work():
                pass
            """
        )
        assert detect("redundant-pass", source) == []

    def test_repeated_pass_keeps_one(self) -> None:
        source = make_source(
            """
            class Empty:
                pass
                pass
            """
        )
        [found] = detect("redundant-pass", source)
        assert found.start_line == 3

    def test_pass_deletion_names_its_block(self) -> None:
        source = make_source(
            '''
            class ParseError(Exception):
                """Parse error."""
                pass
            '''
        )
        [found] = detect("redundant-pass", source)
        [edit] = found.edits
        assert (edit.start_line, edit.replacement) == (3, "")
        assert edit.block_statements == (2, 3)

    def test_redundant_bool_wrapper(self) -> None:
        source = make_source(
            """
            def check(key, table):
                return bool(key not in table)
            """
        )
        [found] = detect("redundant-bool-wrapper", source)
        assert found.replacement == "    return key not in table"

    def test_rich_comparison_keeps_bool(self) -> None:
        source = make_source(
            """
            def same(a, b):
                return bool(a == b)


            def below(a, b):
                return bool(a < b)
            """
        )
        assert detect("redundant-bool-wrapper", source) == []


class TestIndirection:
    def test_immediate_return_binding(self) -> None:
        source = make_source(
            """
            def total(prices):
                result = sum(prices)
                return result
            """
        )
        [found] = detect("immediate-return-binding", source)
        assert (found.start_line, found.end_line) == (2, 3)
        assert found.replacement == "    return sum(prices)"
        assert found.metadata["function_id"] == "pkg/mod.py::total"

    def test_single_use_variable(self) -> None:
        source = make_source(
            """
            def report(name):
                message = name.upper()
                print(message)
            """
        )
        [found] = detect("single-use-variable", source)
        assert found.replacement == "    print(name.upper())"

    def test_variable_read_twice_kept(self) -> None:
        source = make_source(
            """
            def report(name):
                message = name.upper()
                print(message, message)
            """
        )
        assert detect("single-use-variable", source) == []

    def test_conditional_use_kept(self) -> None:
        source = make_source(
            """
            def report(name, verbose):
                message = name.upper()
                print(verbose and message)
            """
        )
        assert detect("single-use-variable", source) == []


class TestDocumentation:
    def test_restating_docstring(self) -> None:
        source = make_source(
            '''
            def get_user_name(user):
                """Get the user name."""
                return user.name
            '''
        )
        [found] = detect("restating-docstring", source)
        assert found.start_line == 2

    def test_informative_docstring_kept(self) -> None:
        source = make_source(
            '''
            def get_user_name(user):
                """Fall back to the email handle when no display name is set."""
                return user.name
            '''
        )
        assert detect("restating-docstring", source) == []

    def test_restating_comment(self) -> None:
        source = make_source(
            """
            def run(items):
                # sort items
                items.sort()
                return items
            """
        )
        [found] = detect("restating-comment", source)
        assert found.start_line == 2
        assert found.metadata["comment"] == "sort items"

    def test_todo_comment_kept(self) -> None:
        source = make_source(
            """
            def run(items):
                # TODO sort items
                items.sort()
                return items
            """
        )
        assert detect("restating-comment", source) == []


class TestConfig:
    def test_toml_duplicate_key(self, settings: Settings) -> None:
        item = make_input(
            "pyproject.toml",
            """
            [tool.pytest]
            addopts = "-q"
            testpaths = ["tests"]
            addopts = "-v"
            """,
            language="toml",
        )
        [found] = run_config_detectors(item, settings)
        assert found.spec.name == "config-duplicate-key"
        assert (found.start_line, found.end_line) == (2, 2)
        assert found.metadata["overridden_at"] == "4"
        assert found.spec.weight == 0.0

    def test_toml_multiline_value(self, settings: Settings) -> None:
        item = make_input(
            "pyproject.toml",
            """
            [project]
            deps = [
                "a",
            ]
            deps = ["b"]
            """,
            language="toml",
        )
        [found] = run_config_detectors(item, settings)
        assert (found.start_line, found.end_line) == (2, 4)

    def test_same_key_in_other_section_kept(self, settings: Settings) -> None:
        item = make_input(
            "pyproject.toml",
            """
            [a]
            name = "x"

            [b]
            name = "y"
            """,
            language="toml",
        )
        assert run_config_detectors(item, settings) == []

    def test_ini_keys_case_insensitive(self, settings: Settings) -> None:
        item = make_input(
            "setup.cfg",
            """
            [flake8]
            max-line-length = 88
            Max-Line-Length = 100
            """,
            language="ini",
        )
        [found] = run_config_detectors(item, settings)
        assert found.metadata["key"] == "max-line-length"
        assert found.start_line == 2

    def test_commented_entry(self, settings: Settings) -> None:
        item = make_input(
            "pyproject.toml",
            """
            [tool]
            # name = "x"
            # plain comment here
            """,
            language="toml",
        )
        [found] = run_config_detectors(item, settings)
        assert found.spec.name == "config-commented-entry"
        assert found.start_line == 2
        assert found.edits[0].replacement == ""
