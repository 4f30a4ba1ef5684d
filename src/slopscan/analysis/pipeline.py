"""Typed, timed pipeline stages with error isolation."""

from __future__ import annotations

import logging
import time
from collections.abc import Awaitable, Callable
from dataclasses import dataclass
from typing import Generic, TypeVar

from slopscan.analysis.schemas import StageSummary
from slopscan.constants import ERROR_TRUNCATION_CHARS, StageOutcome

logger = logging.getLogger(__name__)

TInput = TypeVar("TInput")
TOutput = TypeVar("TOutput")


@dataclass
class StageResult(Generic[TOutput]):
    """Outcome of a single pipeline stage execution."""

    stage_name: str
    output: TOutput | None
    duration_ms: float
    status: StageOutcome
    error: str | None = None

    @property
    def ok(self) -> bool:
        return self.status == StageOutcome.COMPLETED

    def summary(self) -> StageSummary:
        return StageSummary(
            name=self.stage_name,
            status=self.status,
            duration_ms=round(self.duration_ms, 3),
            error=self.error,
        )


@dataclass
class PipelineStage(Generic[TInput, TOutput]):
    """A named, typed, async pipeline stage with error isolation."""

    name: str
    execute: Callable[[TInput], Awaitable[TOutput]]

    async def run(
        self, input_data: TInput
    ) -> StageResult[TOutput]:
        """Execute the stage, capturing timing and errors."""
        start = time.monotonic()
        try:
            output = await self.execute(input_data)
            elapsed = (time.monotonic() - start) * 1000
            logger.debug(
                "event=stage_completed stage=%s duration_ms=%.1f", self.name, elapsed
            )
            return StageResult(
                stage_name=self.name,
                output=output,
                duration_ms=elapsed,
                status=StageOutcome.COMPLETED,
            )
        except Exception as exc:
            elapsed = (time.monotonic() - start) * 1000
            logger.warning(
                "event=stage_failed stage=%s error=%s", self.name, exc
            )
            return StageResult(
                stage_name=self.name,
                output=None,
                duration_ms=elapsed,
                status=StageOutcome.FAILED,
                error=str(exc)[:ERROR_TRUNCATION_CHARS],
            )


def skipped(name: str) -> StageResult[TOutput]:
    """Placeholder result for a stage that never ran."""
    return StageResult(
        stage_name=name,
        output=None,
        duration_ms=0.0,
        status=StageOutcome.SKIPPED,
    )
