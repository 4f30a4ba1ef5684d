"""Plain-text export for terminals."""

from __future__ import annotations

from slopscan.analysis.schemas import ScanResult


def export_text(result: ScanResult, include_plan: bool = False) -> str:
    """Render a scan result as a human-readable report."""
    score = result.score
    parts: list[str] = [
        f"slopscan {result.scan_id}: {result.file_count} files, "
        f"{score.total_non_empty_lines} non-empty lines",
        f"density {score.density:.2f}% ({score.band}), "
        f"{score.raw_lines} lines, {score.weighted_lines:.1f} weighted",
    ]
    if score.config_findings:
        parts.append(
            f"config: {score.config_findings} findings, {score.config_lines} lines (unweighted)"
        )
    parts.append("")

    for finding in result.findings:
        location = f"{finding.path}:{finding.start_line}"
        if finding.end_line != finding.start_line:
            location += f"-{finding.end_line}"
        note = f" [{finding.skip_reason}]" if finding.skip_reason else ""
        parts.append(
            f"{finding.id} {location} {finding.pattern} "
            f"(-{finding.lines_saved} lines, x{finding.weight}){note}"
        )
        if finding.verification:
            parts.append(f"    {finding.verification.technique}: {finding.verification.detail}")

    if result.failures:
        parts.append("")
        parts.append("Files excluded:")
        for failure in result.failures:
            parts.append(f"  {failure.path} ({failure.kind}): {failure.message}")

    if include_plan:
        parts.append("")
        parts.append(f"Edit plan: {len(result.plan.operations)} operations")
        for op in result.plan.operations:
            parts.append(
                f"  {op.path}:{op.start_line}-{op.end_line} {op.finding_id} {op.pattern}"
            )
        for drop in result.plan.dropped:
            parts.append(
                f"  dropped {drop.operation.finding_id} "
                f"(conflicts with {drop.conflicts_with}: {drop.reason})"
            )
        for skip in result.plan.skipped:
            parts.append(f"  skipped {skip.finding_id} ({skip.reason})")

    return "\n".join(parts)
