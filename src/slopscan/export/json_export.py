"""JSON export: structured scan envelope."""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from slopscan.analysis.schemas import Finding, ScanResult


def export_json(result: ScanResult, include_plan: bool = True) -> str:
    """Export a scan result as structured JSON."""
    payload: dict[str, Any] = {
        "scan_id": result.scan_id,
        "generated_at": datetime.now(UTC).isoformat(),
        "file_count": result.file_count,
        "score": result.score.model_dump(mode="json"),
        "finding_count": len(result.findings),
        "findings": [_finding_to_dict(f) for f in result.findings],
        "discarded": [
            {
                "id": f.id,
                "pattern": f.pattern,
                "path": f.path,
                "start_line": f.start_line,
                "reason": f.verification.detail if f.verification else None,
            }
            for f in result.discarded
        ],
        "failures": [f.model_dump(mode="json") for f in result.failures],
        "stages": [s.model_dump(mode="json") for s in result.stages],
    }
    if include_plan:
        payload["plan"] = result.plan.model_dump(mode="json")
    return json.dumps(payload, indent=2, ensure_ascii=False)


def _finding_to_dict(finding: Finding) -> dict[str, Any]:
    """Convert a Finding to a JSON-serializable dict."""
    return {
        "id": finding.id,
        "pattern": finding.pattern,
        "category": finding.category,
        "weight": finding.weight,
        "path": finding.path,
        "start_line": finding.start_line,
        "end_line": finding.end_line,
        "lines_saved": finding.lines_saved,
        "weighted_lines": finding.weighted_lines,
        "excerpt": finding.excerpt,
        "replacement": finding.replacement,
        "technique": finding.technique,
        "verification": (
            finding.verification.model_dump(mode="json")
            if finding.verification
            else None
        ),
        "skip_reason": finding.skip_reason,
    }
