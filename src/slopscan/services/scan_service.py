"""Pipeline orchestration: parse, detect, index, verify, score and plan."""

from __future__ import annotations

import asyncio
import logging
import time
import uuid
from dataclasses import dataclass, field
from pathlib import Path

from slopscan.analysis.detectors import Candidate, run_config_detectors, run_detectors
from slopscan.analysis.pipeline import PipelineStage, StageResult, skipped
from slopscan.analysis.planner import plan_edits
from slopscan.analysis.schemas import (
    EditPlan,
    FileFailure,
    Finding,
    ScanResult,
    ScoreResult,
)
from slopscan.analysis.scorer import score
from slopscan.analysis.static import ReferenceIndex, SourceFile, build_index, build_source_file
from slopscan.analysis.verifier import Verifier
from slopscan.config import CONFIG_LANGUAGES, Settings
from slopscan.constants import (
    FINDING_ID_PREFIX,
    FINDING_ID_WIDTH,
    SCAN_ID_HEX_LENGTH,
)
from slopscan.errors import ParseError, classify_failure
from slopscan.ingestion import discover_files
from slopscan.ingestion.schemas import FileSet, SourceInput
from slopscan.logger import ScanLogger

logger = logging.getLogger(__name__)


@dataclass
class _FileOutcome:
    """Result of parsing and running detectors over one file."""

    path: str
    source: SourceFile | None = None
    candidates: list[Candidate] = field(default_factory=lambda: list[Candidate]())
    failure: FileFailure | None = None


@dataclass
class ScanContext:
    """State handed from stage to stage.

    Each stage writes only its own fields and never mutates what an
    earlier stage produced.
    """

    scan_id: str
    file_set: FileSet
    settings: Settings

    sources: list[SourceFile] = field(default_factory=lambda: list[SourceFile]())
    candidates: list[Finding] = field(default_factory=lambda: list[Finding]())
    failures: list[FileFailure] = field(default_factory=lambda: list[FileFailure]())
    index: ReferenceIndex | None = None
    confirmed: list[Finding] = field(default_factory=lambda: list[Finding]())
    discarded: list[Finding] = field(default_factory=lambda: list[Finding]())
    scored: list[Finding] = field(default_factory=lambda: list[Finding]())
    score: ScoreResult | None = None
    plan: EditPlan | None = None

    @property
    def total_non_empty_lines(self) -> int:
        """Non-empty lines of every code file in the detection set."""
        return sum(
            item.non_empty_lines
            for item in self.file_set.detect
            if item.language not in CONFIG_LANGUAGES
        )

    @property
    def config_texts(self) -> dict[str, str]:
        return {
            item.path: item.content
            for item in self.file_set.detect
            if item.language in CONFIG_LANGUAGES
        }


async def run_scan(
    file_set: FileSet,
    settings: Settings | None = None,
    scan_id: str | None = None,
) -> ScanResult:
    """Run the full pipeline over an already discovered file set.

    Stages:
      1. Parse + detect every file concurrently (per-file isolation)
      2. Build the reference index (barrier: needs every file)
      3. Verify candidates concurrently against the frozen index
      4. Score confirmed findings
      5. Plan edits

    A failed stage skips the stages after it, so a plan is never built
    from partial results.
    """
    cfg = settings or Settings()
    sid = scan_id or uuid.uuid4().hex[:SCAN_ID_HEX_LENGTH]
    ctx = ScanContext(scan_id=sid, file_set=file_set, settings=cfg)
    scan_logger = ScanLogger(cfg.log_dir, cfg.log_level) if cfg.log_dir else None
    t0 = time.monotonic()

    stages: list[PipelineStage[ScanContext, None]] = [
        PipelineStage(name="parse_detect", execute=_parse_detect_stage),
        PipelineStage(name="index", execute=_index_stage),
        PipelineStage(name="verify", execute=_verify_stage),
        PipelineStage(name="score", execute=_score_stage),
        PipelineStage(name="plan", execute=_plan_stage),
    ]
    results: list[StageResult[None]] = []
    for stage in stages:
        if results and not results[-1].ok:
            results.append(skipped(stage.name))
            continue
        results.append(await stage.run(ctx))

    total_ms = (time.monotonic() - t0) * 1000
    result = ScanResult(
        scan_id=sid,
        file_count=len(file_set.detect),
        findings=ctx.scored if ctx.score is not None else [],
        discarded=sorted(ctx.discarded, key=lambda f: f.id),
        score=ctx.score or ScoreResult(total_non_empty_lines=ctx.total_non_empty_lines),
        plan=ctx.plan or EditPlan(),
        failures=sorted(ctx.failures, key=lambda f: f.path),
        stages=[r.summary() for r in results],
        total_duration_ms=round(total_ms, 3),
    )

    if scan_logger is not None:
        scan_logger.record_result(result)
    logger.info(
        "event=scan_done scan_id=%s files=%d findings=%d density=%.2f duration_ms=%.1f",
        sid,
        result.file_count,
        len(result.findings),
        result.score.density,
        total_ms,
    )
    return result


async def scan_path(root: str | Path, settings: Settings | None = None) -> ScanResult:
    """Discover files under ``root`` and scan them."""
    cfg = settings or Settings()
    file_set = await asyncio.to_thread(discover_files, Path(root), cfg)
    return await run_scan(file_set, cfg)


def scan_path_sync(root: str | Path, settings: Settings | None = None) -> ScanResult:
    """Blocking wrapper around :func:`scan_path` for the CLI."""
    return asyncio.run(scan_path(root, settings))


# -- stages --


async def _parse_detect_stage(ctx: ScanContext) -> None:
    semaphore = asyncio.Semaphore(ctx.settings.max_workers)

    async def _one(item: SourceInput, index_only: bool) -> _FileOutcome:
        async with semaphore:
            return await asyncio.to_thread(_analyze_file, item, ctx.settings, index_only)

    work = [_one(item, False) for item in ctx.file_set.detect]
    work.extend(_one(item, True) for item in ctx.file_set.index_only)
    outcomes = await asyncio.gather(*work)

    candidates: list[Candidate] = []
    for outcome in sorted(outcomes, key=lambda o: o.path):
        if outcome.failure is not None:
            ctx.failures.append(outcome.failure)
        if outcome.source is not None:
            ctx.sources.append(outcome.source)
        candidates.extend(outcome.candidates)
    ctx.candidates = _assign_ids(candidates)
    logger.info(
        "event=detect_done files=%d failures=%d candidates=%d",
        len(outcomes),
        len(ctx.failures),
        len(ctx.candidates),
    )


async def _index_stage(ctx: ScanContext) -> None:
    ctx.index = await asyncio.to_thread(build_index, ctx.sources)


async def _verify_stage(ctx: ScanContext) -> None:
    if ctx.index is None:
        raise RuntimeError("verify stage ran before the index stage")
    verifier = Verifier(ctx.index, ctx.settings, ctx.config_texts)
    ctx.confirmed, ctx.discarded = await asyncio.to_thread(verifier.verify, ctx.candidates)


async def _score_stage(ctx: ScanContext) -> None:
    ctx.scored, ctx.score = score(ctx.confirmed, ctx.total_non_empty_lines)


async def _plan_stage(ctx: ScanContext) -> None:
    ctx.plan = plan_edits(ctx.scored)


# -- helpers --


def _analyze_file(item: SourceInput, settings: Settings, index_only: bool) -> _FileOutcome:
    """Parse one file and run its detectors; failures stay local to the file."""
    outcome = _FileOutcome(path=item.path)
    try:
        if item.language in CONFIG_LANGUAGES:
            if not index_only:
                outcome.candidates = run_config_detectors(item, settings)
            return outcome
        outcome.source = build_source_file(item, index_only=index_only)
        if not index_only:
            outcome.candidates = run_detectors(outcome.source, settings)
    except ParseError as exc:
        logger.warning("event=parse_failed path=%s error=%s", item.path, exc)
        outcome.source = None
        outcome.candidates = []
        outcome.failure = FileFailure(
            path=item.path, kind=classify_failure(exc), message=str(exc), line=exc.line
        )
    except Exception as exc:  # noqa: BLE001
        logger.warning("event=file_failed path=%s", item.path, exc_info=True)
        outcome.source = None
        outcome.candidates = []
        outcome.failure = FileFailure(
            path=item.path, kind=classify_failure(exc), message=str(exc)
        )
    return outcome


def _assign_ids(candidates: list[Candidate]) -> list[Finding]:
    """Stable ids from a global (path, line range, pattern) sort."""
    ordered = sorted(
        candidates, key=lambda c: (c.path, c.start_line, c.end_line, c.spec.name)
    )
    return [
        c.to_finding(f"{FINDING_ID_PREFIX}-{n:0{FINDING_ID_WIDTH}d}")
        for n, c in enumerate(ordered, start=1)
    ]
