"""CLI entry point: ``slopscan scan`` and ``slopscan patterns``."""

from __future__ import annotations

import argparse
import sys
from pathlib import Path

from slopscan import __version__
from slopscan.analysis.schemas import ScanResult
from slopscan.config import Settings
from slopscan.constants import ReportFormat
from slopscan.logging_config import setup_logging


def main(argv: list[str] | None = None) -> None:
    """Main CLI entry point."""
    parser = _build_parser()
    args = parser.parse_args(argv)

    if args.version:
        print(f"slopscan {__version__}")
        return

    if args.command == "scan":
        _run_scan(args)
    elif args.command == "patterns":
        _run_patterns()
    else:
        parser.print_help()


def _build_parser() -> argparse.ArgumentParser:
    """Build the argument parser."""
    parser = argparse.ArgumentParser(
        prog="slopscan",
        description=(
            "Static bloat analysis: detect, verify, score "
            "and plan removal of redundant code."
        ),
    )
    parser.add_argument(
        "--version",
        action="store_true",
        help="Print version and exit",
    )

    sub = parser.add_subparsers(dest="command")

    scan = sub.add_parser(
        "scan",
        help="Scan a project directory",
    )
    scan.add_argument(
        "path",
        type=str,
        help="Path to the project root",
    )
    scan.add_argument(
        "--format",
        "-f",
        choices=[f.value for f in ReportFormat],
        default=ReportFormat.TEXT.value,
        help="Report format (default: text)",
    )
    scan.add_argument(
        "--output",
        "-o",
        default=None,
        help="Write the report to a file instead of stdout",
    )
    scan.add_argument(
        "--plan",
        action="store_true",
        help="Include the ordered edit plan in the report",
    )
    scan.add_argument(
        "--verbose",
        "-v",
        action="store_true",
        help="Enable verbose output",
    )

    sub.add_parser(
        "patterns",
        help="List the registered bloat patterns",
    )

    return parser


def _run_scan(args: argparse.Namespace) -> None:
    """Execute the scan command."""
    from slopscan.services.scan_service import scan_path_sync

    root = Path(args.path).resolve()
    if not root.is_dir():
        print(f"Error: {root} is not a directory", file=sys.stderr)
        sys.exit(1)

    settings = Settings()
    setup_logging("DEBUG" if args.verbose else settings.log_level)

    result = scan_path_sync(root, settings)

    if args.verbose:
        for stage in result.stages:
            print(
                f"  [{stage.status}] {stage.name} "
                f"({stage.duration_ms:.0f}ms)",
                file=sys.stderr,
            )
            if stage.error:
                print(f"    Error: {stage.error}", file=sys.stderr)

    _write_report(result, args.format, args.plan, args.output)


def _write_report(
    result: ScanResult,
    fmt: str,
    include_plan: bool,
    output: str | None,
) -> None:
    """Render the report to ``output`` or stdout."""
    from slopscan.export import export_report

    report = export_report(result, fmt, include_plan)
    if output is None:
        print(report)
        return
    path = Path(output)
    path.parent.mkdir(parents=True, exist_ok=True)
    path.write_text(report + "\n", encoding="utf-8")


def _run_patterns() -> None:
    """Print every registered pattern with its category and weight."""
    from slopscan.analysis.detectors import registered

    for entry in registered():
        spec = entry.spec
        weight = "unweighted" if spec.weight == 0 else f"x{spec.weight}"
        print(
            f"{spec.name:28} {spec.category:14} {weight:11} "
            f"{spec.technique:17} {spec.summary}"
        )


if __name__ == "__main__":
    main()
