"""Classification pass run once at collection stop.

Heuristic paths (degraded analysis, files first seen without source) can
leave execution marks on lines that static analysis proves cannot run.
This pass strips those marks so that, for every line,
``covered => executed => executable`` holds before the store is handed to
reporting. It never sets ``executed`` on a line that was not hit.
"""

from __future__ import annotations

from collections.abc import Mapping
from dataclasses import dataclass

from tracecov.analysis.lexical import classify_lines
from tracecov.analysis.models import AnalysisResult, LineClassification
from tracecov.core.errors import InternalError
from tracecov.core.logging import get_logger
from tracecov.store.models import FileRecord, LineRecord
from tracecov.store.store import CoverageStore

log = get_logger("store.patchup")


@dataclass(frozen=True, slots=True)
class PatchStats:
    lines_patched: int = 0  # executed/covered marks stripped
    lines_classified: int = 0  # lines given a classification by this pass
    files_patched: int = 0

    def __add__(self, other: PatchStats) -> PatchStats:
        return PatchStats(
            lines_patched=self.lines_patched + other.lines_patched,
            lines_classified=self.lines_classified + other.lines_classified,
            files_patched=self.files_patched + other.files_patched,
        )


def _apply(record: FileRecord, classifications: Mapping[int, LineClassification]) -> int:
    for number, classification in classifications.items():
        rec = record.lines.get(number)
        if rec is None:
            rec = LineRecord(line=number)
            record.lines[number] = rec
        rec.executable = classification.executable
        rec.line_type = classification.line_type
        rec.reason = classification.reason
    return len(classifications)


def reclassify(
    record: FileRecord,
    analysis: AnalysisResult | None = None,
    *,
    structural_executable: bool = False,
) -> PatchStats:
    """Strip execution marks from lines that cannot execute.

    A record that was never analyzed is classified first: from *analysis*
    when given, otherwise lexically from the record's own source. Such a
    record is marked degraded when only the lexical classifier was used.
    Lines hit in a file with no source at all are taken as executable,
    since the hit itself is the only evidence available.
    """
    classified = 0
    if not record.analyzed:
        if analysis is not None:
            classified = _apply(record, analysis.lines)
            record.analyzed = True
            record.degraded = record.degraded or analysis.degraded
            record.content_hash = analysis.content_hash
        elif record.source_lines:
            lexical = classify_lines(record.source_lines, structural_executable=structural_executable)
            classified = _apply(record, {c.line: c for c in lexical})
            record.analyzed = True
            record.degraded = True
        else:
            for rec in record.lines.values():
                if rec.executed and not rec.executable:
                    rec.executable = True
                    rec.reason = "executed; no source available"
                    classified += 1

    patched = 0
    for rec in record.lines.values():
        if not rec.executable and (rec.executed or rec.covered):
            rec.executed = False
            rec.covered = False
            rec.execution_count = 0
            patched += 1
        elif rec.covered and not rec.executed:
            rec.covered = False
            patched += 1

    if patched:
        log.debug("lines_patched", path=record.path, patched=patched, degraded=record.degraded)
    return PatchStats(
        lines_patched=patched,
        lines_classified=classified,
        files_patched=1 if patched or classified else 0,
    )


def patch_all(
    store: CoverageStore,
    analyses: Mapping[str, AnalysisResult] | None = None,
    *,
    structural_executable: bool = False,
) -> PatchStats:
    """Run ``reclassify`` over every file in *store*."""
    analyses = analyses or {}
    total = PatchStats()
    for record in store.files():
        total += reclassify(
            record,
            analyses.get(record.path),
            structural_executable=structural_executable,
        )
    log.debug(
        "patch_all_complete",
        files=len(store),
        lines_patched=total.lines_patched,
        lines_classified=total.lines_classified,
    )
    return total


def find_violations(store: CoverageStore) -> list[tuple[str, int, str]]:
    """Lines breaking ``covered => executed => executable``."""
    violations: list[tuple[str, int, str]] = []
    for record in store.files():
        for number, rec in sorted(record.lines.items()):
            if rec.covered and not rec.executed:
                violations.append((record.path, number, "covered but not executed"))
            if rec.executed and not rec.executable:
                violations.append((record.path, number, "executed but not executable"))
    return violations


def validate_invariants(store: CoverageStore) -> list[tuple[str, int, str]]:
    """Log every invariant violation; returns them for the caller to inspect."""
    violations = find_violations(store)
    if violations:
        err = InternalError.unexpected(
            "line state invariant violated after patch-up",
            count=len(violations),
            first=f"{violations[0][0]}:{violations[0][1]}",
        )
        log.error("invariant_violation", error=err.error_name, **err.details)
    return violations
