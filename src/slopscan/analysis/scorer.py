"""Scorer: weighted bloat lines and slop density."""

from __future__ import annotations

import logging

from slopscan.analysis.schemas import Finding, ScoreResult
from slopscan.constants import Category, band_for_density

logger = logging.getLogger(__name__)


def score(
    findings: list[Finding], total_non_empty_lines: int
) -> tuple[list[Finding], ScoreResult]:
    """Attach each finding's weighted contribution and aggregate density.

    Only verified, confirmed findings may be scored; anything else is a
    pipeline ordering bug and raises ``ValueError``. Config findings are
    reported on their own and never count toward density.
    """
    unverified = [f.id for f in findings if not f.confirmed]
    if unverified:
        raise ValueError(f"unverified findings reached the scorer: {', '.join(unverified)}")

    scored: list[Finding] = []
    raw_lines = 0
    weighted = 0.0
    config_lines = 0
    config_findings = 0
    by_category: dict[str, float] = {}

    # Summing in id order keeps float totals independent of input order
    for finding in sorted(findings, key=lambda f: f.id):
        if finding.category == Category.CONFIG:
            config_lines += finding.lines_saved
            config_findings += 1
            scored.append(finding.model_copy(update={"weighted_lines": 0.0}))
            continue
        contribution = finding.lines_saved * finding.weight
        raw_lines += finding.lines_saved
        weighted += contribution
        by_category[finding.category] = by_category.get(finding.category, 0.0) + contribution
        scored.append(finding.model_copy(update={"weighted_lines": contribution}))

    density = (weighted / total_non_empty_lines * 100) if total_non_empty_lines else 0.0
    result = ScoreResult(
        raw_lines=raw_lines,
        weighted_lines=weighted,
        total_non_empty_lines=total_non_empty_lines,
        density=round(density, 4),
        band=band_for_density(density),
        config_lines=config_lines,
        config_findings=config_findings,
        by_category=dict(sorted(by_category.items())),
    )
    logger.info(
        "event=scored findings=%d weighted_lines=%.1f density=%.2f band=%s",
        len(scored),
        weighted,
        density,
        result.band,
    )
    return scored, result
