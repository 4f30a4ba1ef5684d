"""Tests for density scoring and bands."""

from __future__ import annotations

import pytest

from slopscan.analysis.schemas import Finding, Verification
from slopscan.analysis.scorer import score
from slopscan.constants import (
    CATEGORY_WEIGHTS,
    Band,
    Category,
    Technique,
    Verdict,
    band_for_density,
)


def _finding(
    finding_id: str,
    category: Category,
    lines_saved: int,
    *,
    verdict: Verdict | None = Verdict.CONFIRMED,
) -> Finding:
    return Finding(
        id=finding_id,
        pattern="test-pattern",
        category=category,
        weight=CATEGORY_WEIGHTS[category],
        technique=Technique.STRUCTURAL,
        path="pkg/mod.py",
        start_line=1,
        end_line=lines_saved,
        excerpt="",
        replacement="",
        lines_saved=lines_saved,
        verification=(
            Verification(verdict=verdict, technique=Technique.STRUCTURAL, detail="ok")
            if verdict is not None
            else None
        ),
    )


class TestBands:
    @pytest.mark.parametrize(
        ("density", "band"),
        [
            (0.0, Band.EXCELLENT),
            (4.99, Band.EXCELLENT),
            (5.0, Band.GOOD),
            (14.99, Band.GOOD),
            (15.0, Band.NEEDS_WORK),
            (29.99, Band.NEEDS_WORK),
            (30.0, Band.HEAVY),
            (250.0, Band.HEAVY),
        ],
    )
    def test_band_boundaries(self, density: float, band: Band) -> None:
        assert band_for_density(density) == band


class TestScore:
    def test_abstraction_weighted(self) -> None:
        scored, result = score([_finding("SLOP-0001", Category.ABSTRACTION, 4)], 100)
        assert scored[0].weighted_lines == 6.0
        assert result.raw_lines == 4
        assert result.weighted_lines == 6.0
        assert result.density == 6.0
        assert result.band == Band.GOOD

    def test_mixed_categories(self) -> None:
        findings = [
            _finding("SLOP-0001", Category.VERBOSE, 3),
            _finding("SLOP-0002", Category.DEAD_CODE, 2),
            _finding("SLOP-0003", Category.DOCUMENTATION, 1),
        ]
        _, result = score(findings, 20)
        assert result.weighted_lines == 7.0
        assert result.density == 35.0
        assert result.band == Band.HEAVY
        assert result.by_category == {
            "dead_code": 3.0,
            "documentation": 1.0,
            "verbose": 3.0,
        }

    def test_config_findings_unweighted(self) -> None:
        findings = [
            _finding("SLOP-0001", Category.CONFIG, 5),
            _finding("SLOP-0002", Category.VERBOSE, 1),
        ]
        scored, result = score(findings, 50)
        assert result.config_findings == 1
        assert result.config_lines == 5
        assert result.raw_lines == 1
        assert result.density == 2.0
        assert scored[0].weighted_lines == 0.0

    def test_empty_project(self) -> None:
        scored, result = score([], 0)
        assert scored == []
        assert result.density == 0.0
        assert result.band == Band.EXCELLENT

    def test_order_independent(self) -> None:
        findings = [
            _finding("SLOP-0001", Category.VERBOSE, 3),
            _finding("SLOP-0002", Category.ABSTRACTION, 7),
            _finding("SLOP-0003", Category.INDIRECTION, 1),
        ]
        forward = score(findings, 300)
        backward = score(list(reversed(findings)), 300)
        assert forward == backward

    def test_unverified_finding_rejected(self) -> None:
        with pytest.raises(ValueError, match="SLOP-0002"):
            score(
                [
                    _finding("SLOP-0001", Category.VERBOSE, 1),
                    _finding("SLOP-0002", Category.VERBOSE, 1, verdict=None),
                ],
                10,
            )

    def test_discarded_finding_rejected(self) -> None:
        with pytest.raises(ValueError):
            score([_finding("SLOP-0001", Category.VERBOSE, 1, verdict=Verdict.DISCARDED)], 10)
