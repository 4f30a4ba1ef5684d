"""Tests for text and JSON report rendering."""

from __future__ import annotations

import json

import pytest

from slopscan.analysis.schemas import (
    DroppedEdit,
    EditOperation,
    EditPlan,
    FileFailure,
    Finding,
    ScanResult,
    ScoreResult,
    SkippedFinding,
    StageSummary,
    Verification,
)
from slopscan.constants import (
    Band,
    Category,
    FailureKind,
    SkipReason,
    StageOutcome,
    Technique,
    Verdict,
)
from slopscan.export import export_json, export_report, export_text


def _finding(finding_id: str, start: int, end: int, **extra) -> Finding:
    return Finding(
        id=finding_id,
        pattern="one-caller-helper",
        category=Category.ABSTRACTION,
        weight=1.5,
        technique=Technique.CALLER_COUNT,
        path="pkg/mod.py",
        start_line=start,
        end_line=end,
        excerpt="def _x():\n    return 1",
        replacement="",
        lines_saved=end - start + 1,
        weighted_lines=(end - start + 1) * 1.5,
        verification=Verification(
            verdict=Verdict.CONFIRMED, technique=Technique.CALLER_COUNT, detail="1 caller"
        ),
        **extra,
    )


def _operation(finding_id: str, start: int, end: int) -> EditOperation:
    return EditOperation(
        path="pkg/mod.py",
        start_line=start,
        end_line=end,
        original_start_line=start,
        original_end_line=end,
        replacement="",
        finding_id=finding_id,
        pattern="one-caller-helper",
        category=Category.ABSTRACTION,
        weight=1.5,
    )


@pytest.fixture
def result() -> ScanResult:
    return ScanResult(
        scan_id="abc123",
        file_count=2,
        findings=[
            _finding("SLOP-0001", 1, 2),
            _finding("SLOP-0002", 5, 5, skip_reason=SkipReason.CROSS_FILE),
        ],
        discarded=[
            _finding("SLOP-0003", 9, 10).model_copy(
                update={
                    "verification": Verification(
                        verdict=Verdict.DISCARDED,
                        technique=Technique.CALLER_COUNT,
                        detail="2 callers",
                    )
                }
            )
        ],
        score=ScoreResult(
            raw_lines=3,
            weighted_lines=4.5,
            total_non_empty_lines=100,
            density=4.5,
            band=Band.EXCELLENT,
            by_category={"abstraction": 4.5},
        ),
        plan=EditPlan(
            operations=[_operation("SLOP-0001", 1, 2)],
            dropped=[
                DroppedEdit(
                    operation=_operation("SLOP-0004", 2, 3),
                    conflicts_with="SLOP-0001",
                    reason="equal weight, later id",
                )
            ],
            skipped=[SkippedFinding(finding_id="SLOP-0002", reason=SkipReason.CROSS_FILE)],
        ),
        failures=[
            FileFailure(
                path="pkg/broken.py",
                kind=FailureKind.PARSE,
                message="pkg/broken.py:1: syntax error",
                line=1,
            )
        ],
        stages=[StageSummary(name="parse_detect", status=StageOutcome.COMPLETED, duration_ms=1.0)],
    )


class TestTextExport:
    def test_header_and_findings(self, result: ScanResult) -> None:
        text = export_text(result)
        lines = text.splitlines()
        assert lines[0] == "slopscan abc123: 2 files, 100 non-empty lines"
        assert lines[1] == "density 4.50% (excellent), 3 lines, 4.5 weighted"
        assert "SLOP-0001 pkg/mod.py:1-2 one-caller-helper (-2 lines, x1.5)" in lines
        assert "SLOP-0002 pkg/mod.py:5 one-caller-helper (-1 lines, x1.5) [cross-file]" in lines
        assert "Files excluded:" in lines
        assert "Edit plan" not in text

    def test_plan_section(self, result: ScanResult) -> None:
        text = export_text(result, include_plan=True)
        assert "Edit plan: 1 operations" in text
        assert "dropped SLOP-0004 (conflicts with SLOP-0001: equal weight, later id)" in text
        assert "skipped SLOP-0002 (cross-file)" in text


class TestJsonExport:
    def test_envelope(self, result: ScanResult) -> None:
        payload = json.loads(export_json(result))
        assert payload["scan_id"] == "abc123"
        assert payload["finding_count"] == 2
        assert payload["score"]["band"] == "excellent"
        assert payload["findings"][0]["id"] == "SLOP-0001"
        assert payload["findings"][0]["verification"]["verdict"] == "confirmed"
        assert payload["findings"][1]["skip_reason"] == "cross-file"
        assert payload["discarded"] == [
            {
                "id": "SLOP-0003",
                "pattern": "one-caller-helper",
                "path": "pkg/mod.py",
                "start_line": 9,
                "reason": "2 callers",
            }
        ]
        assert payload["failures"][0]["kind"] == "parse"
        assert len(payload["plan"]["operations"]) == 1

    def test_plan_optional(self, result: ScanResult) -> None:
        payload = json.loads(export_json(result, include_plan=False))
        assert "plan" not in payload


class TestExportReport:
    def test_dispatch(self, result: ScanResult) -> None:
        assert export_report(result, "text").startswith("slopscan abc123")
        assert json.loads(export_report(result, "json"))["scan_id"] == "abc123"

    def test_unknown_format(self, result: ScanResult) -> None:
        with pytest.raises(ValueError, match="Unsupported format: xml"):
            export_report(result, "xml")
