#!/usr/bin/env python3
"""
Results Collection and Reporting

Benchmark reports are written as one JSON file per query run. This module
defines the report structure and renders a markdown summary over any number
of report files.

Usage:
    tpcxbb-report tpcxbb-q5-collect-1700000000000.json [...] --output summary.md
"""
import argparse
import json
import sys
from dataclasses import asdict, dataclass, field
from datetime import datetime
from pathlib import Path
from typing import Any, Dict, List, Optional

STATUS_COMPLETED = "Completed"
STATUS_FAILED = "Failed"


@dataclass
class Environment:
    """Where the benchmark ran."""

    env_vars: Dict[str, str]
    spark_conf: Dict[str, str]
    spark_version: str


@dataclass
class BenchConfiguration:
    """Benchmark settings that influence timings."""

    gc_between_runs: bool


@dataclass
class BenchmarkReport:
    """Timings and outcome of every iteration of one query run."""

    filename: str
    start_time: int
    env: Environment
    configuration: BenchConfiguration
    action: str
    query: str
    write_options: Dict[str, str] = field(default_factory=dict)
    row_counts: List[int] = field(default_factory=list)
    query_times: List[int] = field(default_factory=list)
    query_status: List[str] = field(default_factory=list)
    exceptions: List[str] = field(default_factory=list)

    @property
    def succeeded(self) -> bool:
        return bool(self.query_status) and all(s == STATUS_COMPLETED for s in self.query_status)

    @property
    def cold_time_ms(self) -> Optional[int]:
        """Time of the first iteration."""
        return self.query_times[0] if self.query_times else None

    @property
    def hot_times_ms(self) -> List[int]:
        """Times of every iteration after the first."""
        return self.query_times[1:]

    @property
    def hot_average_ms(self) -> Optional[float]:
        hot = self.hot_times_ms
        return sum(hot) / len(hot) if hot else None

    @property
    def best_time_ms(self) -> Optional[int]:
        hot = self.hot_times_ms
        return min(hot) if hot else None

    def to_dict(self) -> Dict[str, Any]:
        """Convert to dictionary for JSON serialization."""
        return asdict(self)

    @classmethod
    def from_dict(cls, data: Dict[str, Any]) -> "BenchmarkReport":
        data = dict(data)
        data["env"] = Environment(**data["env"])
        data["configuration"] = BenchConfiguration(**data["configuration"])
        return cls(**data)


def write_report(report: BenchmarkReport, path: Path) -> Path:
    """Write a report as indented JSON, creating parent directories."""
    path = Path(path)
    path.parent.mkdir(parents=True, exist_ok=True)
    with open(path, "w") as f:
        json.dump(report.to_dict(), f, indent=2)
    return path


def load_report(path: Path) -> BenchmarkReport:
    """Load a report written by write_report."""
    with open(path) as f:
        return BenchmarkReport.from_dict(json.load(f))


def _fmt_ms(value: Optional[float]) -> str:
    return "-" if value is None else f"{value:.1f}"


def generate_summary(reports: List[BenchmarkReport]) -> str:
    """Render a markdown summary of benchmark reports.

    Args:
        reports: Reports to summarize, listed in query order

    Returns:
        Markdown text
    """
    timestamp = datetime.now().strftime("%Y-%m-%d %H:%M:%S")

    lines = [
        "# TPCx-BB Benchmark Summary",
        "",
        f"**Date:** {timestamp}",
        f"**Reports:** {len(reports)}",
        "",
    ]

    if reports:
        versions = sorted({r.env.spark_version for r in reports})
        lines.extend([f"**Spark Version:** {', '.join(versions)}", ""])

    lines.extend([
        "## Results",
        "",
        "| Query | Action | Iterations | Cold (ms) | Hot Avg (ms) | Best (ms) | Status |",
        "|-------|--------|------------|-----------|--------------|-----------|--------|",
    ])

    def query_key(report: BenchmarkReport):
        digits = report.query.lstrip("qQ")
        return (int(digits) if digits.isdigit() else sys.maxsize, report.query, report.start_time)

    for r in sorted(reports, key=query_key):
        status = "OK" if r.succeeded else "FAILED"
        lines.append(
            f"| {r.query} | {r.action} | {len(r.query_times)} | {_fmt_ms(r.cold_time_ms)} "
            f"| {_fmt_ms(r.hot_average_ms)} | {_fmt_ms(r.best_time_ms)} | {status} |"
        )

    lines.append("")

    failed = [r for r in reports if r.exceptions]
    if failed:
        lines.extend(["## Errors", ""])
        for r in failed:
            for error in r.exceptions:
                lines.append(f"- **{r.query}** ({r.action}): {error}")
        lines.append("")

    return "\n".join(lines)


def main(argv: Optional[List[str]] = None) -> int:
    parser = argparse.ArgumentParser(
        description="Summarize TPCx-BB benchmark report files",
    )
    parser.add_argument("reports", nargs="+", help="JSON report files")
    parser.add_argument("--output", help="Markdown file to write (default: stdout)")
    args = parser.parse_args(argv)

    try:
        reports = [load_report(Path(p)) for p in args.reports]
    except (OSError, ValueError, KeyError, TypeError) as e:
        print(f"Error: could not load report: {e}")
        return 1

    summary = generate_summary(reports)
    if args.output:
        Path(args.output).write_text(summary)
        print(f"Summary saved to: {args.output}")
    else:
        print(summary)
    return 0


if __name__ == "__main__":
    sys.exit(main())
