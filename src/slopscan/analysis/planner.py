"""Fix Planner: turn confirmed findings into an ordered, conflict-free edit script.

Operations are grouped by file. Within a file, code edits run bottom-up
so earlier edits never move later ones; documentation edits follow, with
their line numbers shifted by the net delta of the code edits above them.
Overlapping edits are resolved before the plan is emitted: the higher
weight wins, and on a tie the lower finding id wins. Deletions that would
together leave a block with no statements are resolved the same way.
"""

from __future__ import annotations

import logging
from collections import defaultdict
from typing import TypeAlias

from slopscan.analysis.schemas import (
    DroppedEdit,
    EditOperation,
    EditPlan,
    Finding,
    SkippedFinding,
)
from slopscan.constants import Category, SkipReason

logger = logging.getLogger(__name__)

# a block: its file and the start lines of its statements
_BlockKey: TypeAlias = tuple[str, tuple[int, ...]]


def plan_edits(findings: list[Finding]) -> EditPlan:
    """Build the edit plan for scored, confirmed findings."""
    skipped: list[SkippedFinding] = []
    candidates: list[tuple[Finding, list[EditOperation]]] = []
    for finding in sorted(findings, key=lambda f: f.id):
        if finding.skip_reason is not None:
            skipped.append(SkippedFinding(finding_id=finding.id, reason=finding.skip_reason))
        elif not finding.edits:
            skipped.append(SkippedFinding(finding_id=finding.id, reason=SkipReason.ADVISORY))
        else:
            candidates.append((finding, _operations(finding)))

    accepted, dropped = _resolve_conflicts(candidates)
    operations: list[EditOperation] = []
    for path in sorted(accepted):
        operations.extend(_order_file(accepted[path]))

    logger.info(
        "event=plan_built operations=%d dropped=%d skipped=%d",
        len(operations),
        len(dropped),
        len(skipped),
    )
    return EditPlan(operations=operations, dropped=dropped, skipped=skipped)


def _operations(finding: Finding) -> list[EditOperation]:
    return [
        EditOperation(
            path=edit.path,
            start_line=edit.start_line,
            end_line=edit.end_line,
            original_start_line=edit.start_line,
            original_end_line=edit.end_line,
            replacement=edit.replacement,
            finding_id=finding.id,
            pattern=finding.pattern,
            category=finding.category,
            weight=finding.weight,
        )
        for edit in finding.edits
    ]


def _overlaps(a: EditOperation, b: EditOperation) -> bool:
    return a.path == b.path and a.start_line <= b.end_line and b.start_line <= a.end_line


def _resolve_conflicts(
    candidates: list[tuple[Finding, list[EditOperation]]],
) -> tuple[dict[str, list[EditOperation]], list[DroppedEdit]]:
    """Greedy by priority; a finding's edits are kept or dropped together.

    Edits that do not overlap can still delete every statement of a block
    between them. The finding whose deletions would empty a block is
    dropped in favour of the one that removed from it first.
    """
    ranked = sorted(candidates, key=lambda c: (-c[0].weight, c[0].id))
    accepted: dict[str, list[EditOperation]] = defaultdict(list)
    removed: dict[_BlockKey, dict[int, str]] = defaultdict(dict)
    dropped: list[DroppedEdit] = []
    for finding, ops in ranked:
        winner: str | None = None
        reason = ""
        for op in ops:
            kept = next((k for k in accepted[op.path] if _overlaps(op, k)), None)
            if kept is not None:
                winner = kept.finding_id
                reason = (
                    "lower weight"
                    if finding.weight < kept.weight
                    else "equal weight, later id"
                )
                break
        if winner is None:
            winner = _empties_block(finding, removed)
            reason = "would empty block"
        if winner is None:
            for op in ops:
                accepted[op.path].append(op)
            for key, lines in _removals(finding):
                removed[key].update(dict.fromkeys(lines, finding.id))
            continue
        logger.debug(
            "event=edit_dropped finding=%s conflicts_with=%s reason=%s",
            finding.id,
            winner,
            reason,
        )
        dropped.extend(
            DroppedEdit(operation=op, conflicts_with=winner, reason=reason) for op in ops
        )
    return accepted, dropped


def _removals(finding: Finding) -> list[tuple[_BlockKey, list[int]]]:
    """Statements each deletion of ``finding`` takes out of its block."""
    return [
        (
            (edit.path, edit.block_statements),
            [s for s in edit.block_statements if edit.start_line <= s <= edit.end_line],
        )
        for edit in finding.edits
        if edit.block_statements
    ]


def _empties_block(finding: Finding, removed: dict[_BlockKey, dict[int, str]]) -> str | None:
    """Id of the accepted finding that, with ``finding``, would empty a block.

    A finding that empties a block on its own is blamed on itself.
    """
    pending: dict[_BlockKey, set[int]] = defaultdict(set)
    for key, lines in _removals(finding):
        pending[key].update(lines)
    for key, lines in pending.items():
        earlier = removed.get(key, {})
        if lines | set(earlier) >= set(key[1]):
            return min(earlier.values(), default=finding.id)
    return None


def _order_file(ops: list[EditOperation]) -> list[EditOperation]:
    def bottom_up(op: EditOperation) -> tuple[int, int]:
        return (-op.original_start_line, -op.original_end_line)

    code = sorted((op for op in ops if op.category != Category.DOCUMENTATION), key=bottom_up)
    docs = sorted((op for op in ops if op.category == Category.DOCUMENTATION), key=bottom_up)

    ordered = list(code)
    for op in docs:
        shift = sum(c.line_delta for c in code if c.original_end_line < op.original_start_line)
        ordered.append(
            op.model_copy(
                update={
                    "start_line": op.original_start_line + shift,
                    "end_line": op.original_end_line + shift,
                }
            )
        )
    return ordered
