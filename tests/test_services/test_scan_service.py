"""End-to-end tests for scan orchestration."""

from __future__ import annotations

import ast
from pathlib import Path
from unittest.mock import patch

import pytest

from conftest import FIXTURE_DIR, make_input
from slopscan.analysis.schemas import EditOperation
from slopscan.config import Settings
from slopscan.constants import FailureKind, SkipReason, StageOutcome
from slopscan.ingestion import split_lines
from slopscan.ingestion.schemas import FileSet, SourceInput
from slopscan.services.scan_service import ScanContext, _verify_stage, run_scan, scan_path

BUILD = """
def build():
    return dict()
"""

HELPER = """
def _default_name():
    return "anon"


def greet():
    return "hi " + _default_name()
"""


MIXED = '''
class ParseError(Exception):
    """Parse error."""
    pass


def _default_name():
    return "anon"


def greet():
    return "hi " + _default_name()


def is_adult(age):
    if age >= 18:
        return True
    return False


def has(key, table):
    return bool(key in table)


def build():
    items = list()
    return items
'''

# U+2028 inside a literal must not shift the rows below it
SEPARATED = 'def b():\n    x = "p\u2028q"\n    print(x)\n    return list()\n'


def _file_set(*files: tuple[str, str], tests: tuple[tuple[str, str], ...] = ()) -> FileSet:
    return FileSet(
        detect=[make_input(path, code) for path, code in files],
        index_only=[make_input(path, code) for path, code in tests],
    )


def _apply(contents: dict[str, str], operations: list[EditOperation]) -> dict[str, str]:
    """Run plan operations in order, the way an editor would."""
    lines = {path: split_lines(text) for path, text in contents.items()}
    for op in operations:
        lines[op.path][op.start_line - 1 : op.end_line] = split_lines(op.replacement)
    return {path: "\n".join(body) + "\n" for path, body in lines.items()}


class TestRunScan:
    async def test_confirmed_findings_scored_and_planned(self, settings: Settings) -> None:
        result = await run_scan(_file_set(("pkg/build.py", BUILD)), settings, scan_id="fixed")
        assert result.scan_id == "fixed"
        assert result.file_count == 1
        assert [f.pattern for f in result.findings] == ["literal-constructor"]
        finding = result.findings[0]
        assert finding.id == "SLOP-0001"
        assert finding.confirmed
        assert finding.weighted_lines == 1.0
        assert result.score.total_non_empty_lines == 2
        assert result.score.density == 50.0
        assert [op.finding_id for op in result.plan.operations] == ["SLOP-0001"]
        assert [s.status for s in result.stages] == [StageOutcome.COMPLETED] * 5

    async def test_stage_names(self, settings: Settings) -> None:
        result = await run_scan(FileSet(), settings)
        assert [s.name for s in result.stages] == [
            "parse_detect",
            "index",
            "verify",
            "score",
            "plan",
        ]
        assert result.findings == []
        assert result.score.density == 0.0

    async def test_parse_failure_is_isolated(self, settings: Settings) -> None:
        result = await run_scan(
            _file_set(("pkg/build.py", BUILD), ("pkg/broken.py", "def broken(:\n    pass\n")),
            settings,
        )
        [failure] = result.failures
        assert failure.path == "pkg/broken.py"
        assert failure.kind == FailureKind.PARSE
        assert failure.line is not None
        assert [f.path for f in result.findings] == ["pkg/build.py"]

    async def test_ids_follow_path_order(self, settings: Settings) -> None:
        result = await run_scan(
            _file_set(("pkg/b.py", BUILD), ("pkg/a.py", BUILD)),
            settings,
        )
        assert [(f.id, f.path) for f in result.findings] == [
            ("SLOP-0001", "pkg/a.py"),
            ("SLOP-0002", "pkg/b.py"),
        ]

    async def test_repeat_scan_is_identical(self, settings: Settings) -> None:
        files = _file_set(("pkg/build.py", BUILD), ("pkg/greet.py", HELPER))
        first = await run_scan(files, settings, scan_id="fixed")
        second = await run_scan(files, settings, scan_id="fixed")
        assert first.findings == second.findings
        assert first.discarded == second.discarded
        assert first.score == second.score
        assert first.plan == second.plan

    async def test_test_callers_are_not_scanned(self, settings: Settings) -> None:
        result = await run_scan(
            _file_set(
                ("pkg/build.py", BUILD),
                tests=(("tests/test_build.py", "def test_build():\n    assert dict() == {}\n"),),
            ),
            settings,
        )
        assert {f.path for f in result.findings} == {"pkg/build.py"}
        assert result.score.total_non_empty_lines == 2

    async def test_failed_stage_skips_the_rest(self, settings: Settings) -> None:
        with patch(
            "slopscan.services.scan_service.score", side_effect=RuntimeError("boom")
        ):
            result = await run_scan(_file_set(("pkg/build.py", BUILD)), settings)
        statuses = {s.name: s.status for s in result.stages}
        assert statuses["verify"] == StageOutcome.COMPLETED
        assert statuses["score"] == StageOutcome.FAILED
        assert statuses["plan"] == StageOutcome.SKIPPED
        assert result.findings == []
        assert result.plan.operations == []
        assert result.stages[3].error == "boom"

    async def test_applied_plan_still_parses(self, settings: Settings) -> None:
        files = FileSet(
            detect=[
                make_input("pkg/mixed.py", MIXED),
                SourceInput(path="pkg/separated.py", content=SEPARATED),
            ]
        )
        result = await run_scan(files, settings)
        assert len(result.plan.operations) >= 3
        assert "would empty block" in {d.reason for d in result.plan.dropped}

        patched = _apply(
            {item.path: item.content for item in files.detect}, result.plan.operations
        )
        for path, text in patched.items():
            ast.parse(text, filename=path)
        separated = split_lines(patched["pkg/separated.py"])
        assert separated[-1] == "    return []"
        assert "\u2028" in separated[1]


class TestScanContext:
    def test_config_excluded_from_line_total(self, settings: Settings) -> None:
        ctx = ScanContext(
            scan_id="x",
            file_set=FileSet(
                detect=[
                    make_input("pkg/build.py", BUILD),
                    make_input("setup.cfg", "[metadata]\nname = x\n", language="ini"),
                ]
            ),
            settings=settings,
        )
        assert ctx.total_non_empty_lines == 2
        assert ctx.config_texts == {"setup.cfg": "[metadata]\nname = x\n"}

    async def test_verify_needs_index(self, settings: Settings) -> None:
        ctx = ScanContext(scan_id="x", file_set=FileSet(), settings=settings)
        with pytest.raises(RuntimeError, match="before the index stage"):
            await _verify_stage(ctx)


class TestScanPath:
    async def test_scans_directory(self, tmp_path: Path, settings: Settings) -> None:
        (tmp_path / "pkg").mkdir()
        (tmp_path / "pkg" / "build.py").write_text(BUILD.lstrip("\n"))
        (tmp_path / "tests").mkdir()
        (tmp_path / "tests" / "test_build.py").write_text("def test_x():\n    pass\n")
        result = await scan_path(tmp_path, settings)
        assert result.file_count == 1
        assert [f.path for f in result.findings] == ["pkg/build.py"]

    async def test_writes_scan_log(self, tmp_path: Path) -> None:
        log_dir = tmp_path / "logs"
        (tmp_path / "mod.py").write_text(BUILD.lstrip("\n"))
        cfg = Settings(_env_file=None, log_dir=log_dir)
        await scan_path(tmp_path, cfg)
        assert log_dir.is_dir()


class TestSampleRepo:
    async def test_sample_repo(self, settings: Settings) -> None:
        result = await scan_path(FIXTURE_DIR, settings)
        by_pattern = {(f.pattern, f.symbol_id): f for f in result.findings}
        assert result.file_count == 4
        assert result.failures == []
        assert ("one-caller-helper", "sample/greeting.py::_default_name") in by_pattern
        legacy = by_pattern[("dead-function", "sample/greeting.py::_legacy_greet")]
        assert legacy.skip_reason == SkipReason.TEST_CALLERS
        assert "literal-constructor" in {f.pattern for f in result.findings}
        assert result.score.config_findings >= 1
        assert all(not f.path.startswith("tests/") for f in result.findings)
