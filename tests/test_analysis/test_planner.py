"""Tests for the fix planner's ordering and conflict resolution."""

from __future__ import annotations

from slopscan.analysis.planner import plan_edits
from slopscan.analysis.schemas import Finding, ProposedEdit, Verification
from slopscan.constants import (
    CATEGORY_WEIGHTS,
    Category,
    SkipReason,
    Technique,
    Verdict,
)


def _finding(
    finding_id: str,
    category: Category,
    *spans: tuple[int, int],
    path: str = "pkg/mod.py",
    replacement: str = "",
    skip_reason: SkipReason | None = None,
    block: tuple[int, ...] = (),
) -> Finding:
    start, end = spans[0] if spans else (1, 1)
    return Finding(
        id=finding_id,
        pattern=f"{category}-pattern",
        category=category,
        weight=CATEGORY_WEIGHTS[category],
        technique=Technique.STRUCTURAL,
        path=path,
        start_line=start,
        end_line=end,
        excerpt="",
        replacement=replacement,
        lines_saved=end - start + 1,
        edits=[
            ProposedEdit(
                path=path,
                start_line=s,
                end_line=e,
                replacement=replacement,
                block_statements=block,
            )
            for s, e in spans
        ],
        skip_reason=skip_reason,
        verification=Verification(
            verdict=Verdict.CONFIRMED, technique=Technique.STRUCTURAL, detail="ok"
        ),
    )


class TestOrdering:
    def test_code_edits_run_bottom_up(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (3, 4)),
            _finding("SLOP-0002", Category.VERBOSE, (10, 12)),
            _finding("SLOP-0003", Category.VERBOSE, (6, 6)),
        ])
        assert [op.finding_id for op in plan.operations] == [
            "SLOP-0002",
            "SLOP-0003",
            "SLOP-0001",
        ]
        assert plan.dropped == []

    def test_files_grouped_in_path_order(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (1, 1), path="pkg/z.py"),
            _finding("SLOP-0002", Category.VERBOSE, (1, 1), path="pkg/a.py"),
        ])
        assert [op.path for op in plan.operations] == ["pkg/a.py", "pkg/z.py"]

    def test_doc_edits_follow_and_shift(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.DOCUMENTATION, (10, 10)),
            _finding("SLOP-0002", Category.DEAD_CODE, (2, 4)),
            _finding("SLOP-0003", Category.VERBOSE, (20, 21)),
        ])
        assert [op.finding_id for op in plan.operations] == [
            "SLOP-0003",
            "SLOP-0002",
            "SLOP-0001",
        ]
        doc = plan.operations[-1]
        assert (doc.original_start_line, doc.original_end_line) == (10, 10)
        assert (doc.start_line, doc.end_line) == (7, 7)

    def test_replacement_changes_line_delta(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (5, 8), replacement="    return x"),
        ])
        assert plan.operations[0].line_delta == -3


class TestConflicts:
    def test_higher_weight_wins(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (4, 6)),
            _finding("SLOP-0002", Category.ABSTRACTION, (1, 8)),
        ])
        assert [op.finding_id for op in plan.operations] == ["SLOP-0002"]
        [dropped] = plan.dropped
        assert dropped.operation.finding_id == "SLOP-0001"
        assert dropped.conflicts_with == "SLOP-0002"
        assert dropped.reason == "lower weight"

    def test_equal_weight_lower_id_wins(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0002", Category.VERBOSE, (3, 5)),
            _finding("SLOP-0001", Category.VERBOSE, (5, 7)),
        ])
        assert [op.finding_id for op in plan.operations] == ["SLOP-0001"]
        assert plan.dropped[0].reason == "equal weight, later id"

    def test_finding_edits_dropped_together(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.ABSTRACTION, (1, 2), (9, 9)),
            _finding("SLOP-0002", Category.DEFENSIVE, (9, 10), (20, 22)),
        ])
        assert {op.finding_id for op in plan.operations} == {"SLOP-0001"}
        assert len(plan.operations) == 2
        assert [d.operation.start_line for d in plan.dropped] == [9, 20]

    def test_adjacent_edits_do_not_conflict(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (1, 3)),
            _finding("SLOP-0002", Category.VERBOSE, (4, 5)),
        ])
        assert len(plan.operations) == 2
        assert plan.dropped == []

    def test_same_lines_in_other_file_do_not_conflict(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (1, 3), path="pkg/a.py"),
            _finding("SLOP-0002", Category.VERBOSE, (1, 3), path="pkg/b.py"),
        ])
        assert len(plan.operations) == 2


class TestBlockEmptying:
    def test_docstring_and_pass_cannot_both_go(self) -> None:
        # class body: docstring on line 2, pass on line 3
        plan = plan_edits([
            _finding("SLOP-0001", Category.DOCUMENTATION, (2, 2), block=(2, 3)),
            _finding("SLOP-0002", Category.VERBOSE, (3, 3), block=(2, 3)),
        ])
        assert [op.finding_id for op in plan.operations] == ["SLOP-0001"]
        [dropped] = plan.dropped
        assert dropped.operation.finding_id == "SLOP-0002"
        assert dropped.conflicts_with == "SLOP-0001"
        assert dropped.reason == "would empty block"

    def test_higher_weight_deletion_kept(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (2, 2), block=(2, 3, 5)),
            _finding("SLOP-0002", Category.DEAD_CODE, (3, 6), block=(2, 3, 5)),
        ])
        assert [op.finding_id for op in plan.operations] == ["SLOP-0002"]
        assert plan.dropped[0].conflicts_with == "SLOP-0002"
        assert plan.dropped[0].reason == "would empty block"

    def test_statement_left_standing(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (2, 2), block=(2, 3, 4)),
            _finding("SLOP-0002", Category.VERBOSE, (4, 4), block=(2, 3, 4)),
        ])
        assert len(plan.operations) == 2
        assert plan.dropped == []

    def test_other_blocks_are_independent(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.VERBOSE, (2, 2), block=(2, 3)),
            _finding("SLOP-0002", Category.VERBOSE, (7, 7), block=(6, 7)),
        ])
        assert len(plan.operations) == 2


class TestSkipped:
    def test_skip_reasons_recorded(self) -> None:
        plan = plan_edits([
            _finding("SLOP-0001", Category.ABSTRACTION, skip_reason=SkipReason.CROSS_FILE),
            _finding("SLOP-0002", Category.DEAD_CODE, skip_reason=SkipReason.TEST_CALLERS),
            _finding("SLOP-0003", Category.VERBOSE),
        ])
        assert plan.operations == []
        assert [(s.finding_id, s.reason) for s in plan.skipped] == [
            ("SLOP-0001", SkipReason.CROSS_FILE),
            ("SLOP-0002", SkipReason.TEST_CALLERS),
            ("SLOP-0003", SkipReason.ADVISORY),
        ]

    def test_empty_input(self) -> None:
        plan = plan_edits([])
        assert plan.operations == []
        assert plan.dropped == []
        assert plan.skipped == []
