"""JSON-lines scan log: one file of records correlated by scan_id.

Every record carries ``type``, ``timestamp`` and ``scan_id``. A finished
scan writes, in order, one ``stage`` record per pipeline stage, one
``failure`` record per excluded file and a closing ``scan`` summary.
"""

import json
import logging
import os
from collections import Counter
from datetime import UTC, datetime
from pathlib import Path
from typing import Any

from slopscan.analysis.schemas import ScanResult
from slopscan.constants import ERROR_TRUNCATION_CHARS

__all__ = ["ScanLogger"]

SCAN_LOG_NAME = "scan.log"


class ScanLogger:
    """Appends scan records to ``<log_dir>/scan.log``."""

    def __init__(self, log_dir: Path, level: str = "INFO") -> None:
        log_dir.mkdir(parents=True, exist_ok=True)
        self.path = log_dir / SCAN_LOG_NAME
        self._logger = logging.getLogger("slopscan.scan")
        self._logger.setLevel(getattr(logging, level.upper()))
        self._logger.propagate = False

        # one scan log per process; a new log_dir replaces the old file
        for existing in list(self._logger.handlers):
            if isinstance(existing, logging.FileHandler) and (
                existing.baseFilename != os.path.abspath(self.path)
            ):
                self._logger.removeHandler(existing)
                existing.close()
        if not self._logger.handlers:
            handler = logging.FileHandler(self.path)
            handler.setFormatter(logging.Formatter("%(message)s"))
            self._logger.addHandler(handler)

    def emit(
        self, record_type: str, scan_id: str, level: int = logging.INFO, **fields: Any
    ) -> None:
        """Write one record; ``error`` values are truncated."""
        if isinstance(fields.get("error"), str):
            fields["error"] = fields["error"][:ERROR_TRUNCATION_CHARS]
        record = {
            "type": record_type,
            "timestamp": datetime.now(UTC).isoformat(),
            "scan_id": scan_id,
            **fields,
        }
        self._logger.log(level, json.dumps(record, default=str))

    def record_result(self, result: ScanResult) -> None:
        sid = result.scan_id
        for stage in result.stages:
            self.emit(
                "stage",
                sid,
                logging.ERROR if stage.error else logging.INFO,
                stage=stage.name,
                status=stage.status,
                duration_ms=stage.duration_ms,
                error=stage.error,
            )
        for failure in result.failures:
            self.emit(
                "failure",
                sid,
                logging.WARNING,
                path=failure.path,
                kind=failure.kind,
                line=failure.line,
                error=failure.message,
            )
        self.emit(
            "scan",
            sid,
            file_count=result.file_count,
            confirmed=len(result.findings),
            discarded=len(result.discarded),
            patterns=dict(sorted(Counter(f.pattern for f in result.findings).items())),
            density=result.score.density,
            band=result.score.band,
            operations=len(result.plan.operations),
            duration_ms=result.total_duration_ms,
        )
