"""Pydantic models for engine output: findings, scores and edit plans."""

from __future__ import annotations

from typing import Any

from pydantic import BaseModel, ConfigDict, Field

from slopscan.constants import (
    Band,
    Category,
    FailureKind,
    SkipReason,
    StageOutcome,
    Technique,
    Verdict,
)
from slopscan.ingestion import split_lines


class ProposedEdit(BaseModel):
    """A line-range replacement proposed for one finding."""

    model_config = ConfigDict(frozen=True)

    path: str
    start_line: int
    end_line: int
    replacement: str  # "" deletes the range
    # start lines of every statement in the block a deletion sits in
    block_statements: tuple[int, ...] = ()


class Verification(BaseModel):
    """Outcome attached by the verifier."""

    model_config = ConfigDict(frozen=True)

    verdict: Verdict
    technique: Technique
    detail: str
    evidence: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())


class Finding(BaseModel):
    """A candidate (unverified) or verified unit of bloat.

    Stages never mutate a Finding in place; the verifier and scorer
    return updated copies.
    """

    model_config = ConfigDict(frozen=True)

    id: str
    pattern: str
    category: Category
    weight: float
    technique: Technique
    path: str
    start_line: int
    end_line: int
    excerpt: str
    replacement: str
    lines_saved: int
    symbol_id: str | None = None
    metadata: dict[str, Any] = Field(default_factory=lambda: dict[str, Any]())
    edits: list[ProposedEdit] = Field(default_factory=lambda: list[ProposedEdit]())
    skip_reason: SkipReason | None = None
    verification: Verification | None = None
    weighted_lines: float | None = None

    @property
    def confirmed(self) -> bool:
        return (
            self.verification is not None
            and self.verification.verdict == Verdict.CONFIRMED
        )


class EditOperation(BaseModel):
    """One edit in the final plan.

    ``start_line``/``end_line`` are valid at the moment the operation
    is applied in plan order; ``original_*`` are the coordinates in the
    unmodified file.
    """

    model_config = ConfigDict(frozen=True)

    path: str
    start_line: int
    end_line: int
    original_start_line: int
    original_end_line: int
    replacement: str
    finding_id: str
    pattern: str
    category: Category
    weight: float

    @property
    def line_delta(self) -> int:
        """Net change in line count once applied."""
        new_lines = len(split_lines(self.replacement))
        return new_lines - (self.original_end_line - self.original_start_line + 1)


class DroppedEdit(BaseModel):
    """An operation removed to resolve an overlap."""

    operation: EditOperation
    conflicts_with: str  # finding id that won
    reason: str


class SkippedFinding(BaseModel):
    """A confirmed finding that yields no edit operation."""

    finding_id: str
    reason: SkipReason


class EditPlan(BaseModel):
    """Ordered, conflict-free edit script plus audit trail."""

    operations: list[EditOperation] = Field(
        default_factory=lambda: list[EditOperation]()
    )
    dropped: list[DroppedEdit] = Field(default_factory=lambda: list[DroppedEdit]())
    skipped: list[SkippedFinding] = Field(
        default_factory=lambda: list[SkippedFinding]()
    )


class ScoreResult(BaseModel):
    """Aggregate density score."""

    raw_lines: int = 0
    weighted_lines: float = 0.0
    total_non_empty_lines: int = 0
    density: float = 0.0
    band: Band = Band.EXCELLENT
    config_lines: int = 0
    config_findings: int = 0
    by_category: dict[str, float] = Field(default_factory=lambda: dict[str, float]())


class FileFailure(BaseModel):
    """A file excluded from detection and indexing."""

    path: str
    kind: FailureKind
    message: str
    line: int | None = None


class StageSummary(BaseModel):
    """Timing and outcome of one pipeline stage."""

    name: str
    status: StageOutcome
    duration_ms: float
    error: str | None = None


class ScanResult(BaseModel):
    """Everything one scan produces for the reporting/fix collaborators."""

    scan_id: str
    file_count: int = 0
    findings: list[Finding] = Field(default_factory=lambda: list[Finding]())
    discarded: list[Finding] = Field(default_factory=lambda: list[Finding]())
    score: ScoreResult = Field(default_factory=ScoreResult)
    plan: EditPlan = Field(default_factory=EditPlan)
    failures: list[FileFailure] = Field(default_factory=lambda: list[FileFailure]())
    stages: list[StageSummary] = Field(default_factory=lambda: list[StageSummary]())
    total_duration_ms: float = 0.0
