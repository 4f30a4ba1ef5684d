"""Export module: scan report rendering."""

from collections.abc import Callable

from slopscan.analysis.schemas import ScanResult
from slopscan.constants import ReportFormat
from slopscan.export.json_export import export_json
from slopscan.export.text import export_text

__all__ = [
    "export_json",
    "export_report",
    "export_text",
]

_EXPORTERS: dict[str, Callable[[ScanResult, bool], str]] = {
    ReportFormat.TEXT: export_text,
    ReportFormat.JSON: export_json,
}


def export_report(
    result: ScanResult,
    fmt: str = "text",
    include_plan: bool = False,
) -> str:
    """Dispatch export of a scan result by format string."""
    exporter = _EXPORTERS.get(fmt)
    if exporter is None:
        valid = ", ".join(_EXPORTERS)
        msg = f"Unsupported format: {fmt}. Use: {valid}"
        raise ValueError(msg)
    return exporter(result, include_plan)
