"""Structured coverage summaries.

Transforms store data into JSON-ready dicts. Output schema for
``build_summary``:
{
    "summary": {
        "total_files": int,
        "active_files": int,
        "degraded_files": int,
        "lines_found": int,
        "lines_executed": int,
        "lines_covered": int,
        "execution_percent": float,
        "coverage_percent": float,
        "blocks_found": int,
        "blocks_executed": int,
        "block_percent": float | null,
        "functions_found": int,
        "functions_executed": int,
        "function_percent": float | null
    },
    "files": [
        {
            "path": str,
            "lines_found": int,
            "lines_executed": int,
            "lines_covered": int,
            "execution_percent": float,
            "coverage_percent": float,
            "uncovered_lines": [int, ...],  # executable, never executed
            "degraded": bool,
            "discovered_only": bool
        },
        ...
    ]
}
"""

from __future__ import annotations

from collections.abc import Iterable
from typing import Any

from tracecov.store.models import FileRecord, summarize
from tracecov.store.store import CoverageSnapshot, CoverageStore


def _records(source: CoverageStore | CoverageSnapshot) -> list[FileRecord]:
    if isinstance(source, CoverageSnapshot):
        return list(source.files.values())
    return source.files()


def _percent(part: int, whole: int) -> float:
    return round(part / whole * 100.0, 2) if whole > 0 else 0.0


def compute_file_stats(records: Iterable[FileRecord]) -> list[dict[str, Any]]:
    """Per-file statistics, sorted by path."""
    file_stats = []
    for fr in sorted(records, key=lambda r: r.path):
        found = fr.lines_found
        stats: dict[str, Any] = {
            "path": fr.path,
            "lines_found": found,
            "lines_executed": fr.lines_executed,
            "lines_covered": fr.lines_covered,
            "execution_percent": _percent(fr.lines_executed, found),
            "coverage_percent": _percent(fr.lines_covered, found),
            "uncovered_lines": fr.uncovered_lines,
            "degraded": fr.degraded,
            "discovered_only": fr.discovered and not fr.active,
        }
        if fr.blocks_found:
            stats["blocks_found"] = fr.blocks_found
            stats["blocks_executed"] = fr.blocks_executed
        if fr.functions_found:
            stats["functions_found"] = fr.functions_found
            stats["functions_executed"] = fr.functions_executed
        file_stats.append(stats)
    return file_stats


def build_summary(
    source: CoverageStore | CoverageSnapshot,
    *,
    include_files: bool = True,
    max_files: int | None = None,
    max_uncovered_lines: int = 20,
) -> dict[str, Any]:
    """Build a structured summary from a store or snapshot.

    Args:
        source: Live store or read-only snapshot.
        include_files: Whether to include per-file details.
        max_files: Limit number of files (lowest execution first). None = all.
        max_uncovered_lines: Max uncovered lines to list per file.

    Returns:
        Structured dict suitable for JSON serialization.
    """
    records = _records(source)
    totals = summarize(records)

    summary_dict: dict[str, Any] = {
        "total_files": totals.total_files,
        "active_files": totals.active_files,
        "degraded_files": totals.degraded_files,
        "lines_found": totals.lines_found,
        "lines_executed": totals.lines_executed,
        "lines_covered": totals.lines_covered,
        "execution_percent": totals.execution_percent,
        "coverage_percent": totals.coverage_percent,
        "blocks_found": totals.blocks_found,
        "blocks_executed": totals.blocks_executed,
        "block_percent": (
            _percent(totals.blocks_executed, totals.blocks_found) if totals.blocks_found else None
        ),
        "functions_found": totals.functions_found,
        "functions_executed": totals.functions_executed,
        "function_percent": (
            _percent(totals.functions_executed, totals.functions_found)
            if totals.functions_found
            else None
        ),
    }

    result: dict[str, Any] = {"summary": summary_dict}

    if include_files:
        file_stats = compute_file_stats(records)

        # Lowest execution first to surface problem areas
        file_stats.sort(key=lambda f: f["execution_percent"])

        if max_files is not None:
            file_stats = file_stats[:max_files]

        for fs in file_stats:
            uncovered = fs["uncovered_lines"]
            if len(uncovered) > max_uncovered_lines:
                fs["uncovered_lines"] = uncovered[:max_uncovered_lines]
                fs["uncovered_lines_truncated"] = True

        result["files"] = file_stats

    return result


def build_text_summary(source: CoverageStore | CoverageSnapshot) -> str:
    """One-line human-readable summary."""
    totals = summarize(_records(source))
    if totals.lines_found == 0:
        return "No coverage data"
    return (
        f"Executed: {totals.execution_percent:.1f}% "
        f"({totals.lines_executed}/{totals.lines_found} lines), "
        f"covered: {totals.coverage_percent:.1f}% ({totals.lines_covered} lines)"
    )
