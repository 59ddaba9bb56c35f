"""Unified coverage data model.

File-centric, three-state model shared by every collector:

- executable: the static analyzer says the line can run (set once);
- executed:   a collector saw it run at least once;
- covered:    an assertion's stack passed through it while it was executed.

``covered => executed => executable`` holds for every line once the patch-up
pass has run. Aggregates are computed properties, never stored counters, so
they cannot drift from the records they summarize.
"""

from __future__ import annotations

from dataclasses import dataclass, field

from tracecov.analysis.models import ROOT_BLOCK_ID, BlockKind, FunctionKind, LineType


@dataclass(slots=True)
class LineRecord:
    """Per-line state. ``line_type`` is None until the file is analyzed."""

    line: int
    executable: bool = False
    executed: bool = False
    covered: bool = False
    execution_count: int = 0
    line_type: LineType | None = None
    reason: str | None = None


@dataclass(slots=True)
class BlockRecord:
    """A control-flow region with its parent link and execution state."""

    block_id: str
    kind: BlockKind
    start_line: int
    end_line: int
    parent_id: str | None = ROOT_BLOCK_ID
    label: str | None = None
    entry_line: int | None = None
    children: set[str] = field(default_factory=set)
    executed: bool = False
    execution_count: int = 0
    flagged: bool = False  # reattached to root by the relationship resolver


@dataclass(slots=True)
class FunctionRecord:
    function_id: str
    name: str | None
    kind: FunctionKind
    start_line: int
    def_line: int
    end_line: int
    body_line: int | None = None
    executed: bool = False
    execution_count: int = 0


@dataclass(slots=True)
class FileRecord:
    """Coverage data for a single file, keyed by normalized absolute path.

    ``discovered`` marks a file registered explicitly (or noticed but not
    tracked); ``active`` marks a file a collector is tracking. ``degraded``
    marks heuristic data: analysis or instrumentation failed and a fallback
    produced what is recorded.
    """

    path: str
    source_lines: list[str] = field(default_factory=list)
    lines: dict[int, LineRecord] = field(default_factory=dict)
    blocks: dict[str, BlockRecord] = field(default_factory=dict)
    functions: dict[str, FunctionRecord] = field(default_factory=dict)
    pending: dict[str, set[str]] = field(default_factory=dict)  # missing parent id → child ids
    discovered: bool = False
    active: bool = False
    analyzed: bool = False
    degraded: bool = False
    instrumented: bool = False
    content_hash: str | None = None
    entry_index: dict[int, list[str]] = field(default_factory=dict)  # entry line → block ids
    code_index: dict[tuple[int, str], str] = field(default_factory=dict)  # (first line, name) → fn id
    body_index: dict[int, list[str]] = field(default_factory=dict)  # body line → fn ids

    @property
    def lines_found(self) -> int:
        """Number of executable lines."""
        return sum(1 for rec in self.lines.values() if rec.executable)

    @property
    def lines_executed(self) -> int:
        return sum(1 for rec in self.lines.values() if rec.executable and rec.executed)

    @property
    def lines_covered(self) -> int:
        return sum(
            1 for rec in self.lines.values() if rec.executable and rec.executed and rec.covered
        )

    @property
    def execution_rate(self) -> float:
        """Fraction of executable lines executed (0.0 to 1.0)."""
        found = self.lines_found
        return self.lines_executed / found if found else 0.0

    @property
    def coverage_rate(self) -> float:
        """Fraction of executable lines covered by assertions (0.0 to 1.0)."""
        found = self.lines_found
        return self.lines_covered / found if found else 0.0

    @property
    def uncovered_lines(self) -> list[int]:
        """Executable lines never executed, sorted."""
        return sorted(n for n, rec in self.lines.items() if rec.executable and not rec.executed)

    @property
    def blocks_found(self) -> int:
        return sum(1 for b in self.blocks.values() if b.kind is not BlockKind.ROOT)

    @property
    def blocks_executed(self) -> int:
        return sum(1 for b in self.blocks.values() if b.kind is not BlockKind.ROOT and b.executed)

    @property
    def block_rate(self) -> float:
        found = self.blocks_found
        return self.blocks_executed / found if found else 0.0

    @property
    def functions_found(self) -> int:
        return len(self.functions)

    @property
    def functions_executed(self) -> int:
        return sum(1 for f in self.functions.values() if f.executed)

    @property
    def function_rate(self) -> float:
        found = self.functions_found
        return self.functions_executed / found if found else 0.0

    @property
    def source(self) -> str:
        return "\n".join(self.source_lines)


@dataclass(frozen=True, slots=True)
class CoverageSummary:
    """Aggregate coverage statistics.

    Computed from the file records on demand; an immutable snapshot.
    """

    total_files: int
    active_files: int
    degraded_files: int
    lines_found: int
    lines_executed: int
    lines_covered: int
    blocks_found: int
    blocks_executed: int
    functions_found: int
    functions_executed: int
    execution_rate: float
    coverage_rate: float
    block_rate: float
    function_rate: float

    @property
    def execution_percent(self) -> float:
        return round(self.execution_rate * 100.0, 2)

    @property
    def coverage_percent(self) -> float:
        return round(self.coverage_rate * 100.0, 2)


def summarize(files: list[FileRecord]) -> CoverageSummary:
    lines_found = sum(f.lines_found for f in files)
    lines_executed = sum(f.lines_executed for f in files)
    lines_covered = sum(f.lines_covered for f in files)
    blocks_found = sum(f.blocks_found for f in files)
    blocks_executed = sum(f.blocks_executed for f in files)
    functions_found = sum(f.functions_found for f in files)
    functions_executed = sum(f.functions_executed for f in files)

    return CoverageSummary(
        total_files=len(files),
        active_files=sum(1 for f in files if f.active),
        degraded_files=sum(1 for f in files if f.degraded),
        lines_found=lines_found,
        lines_executed=lines_executed,
        lines_covered=lines_covered,
        blocks_found=blocks_found,
        blocks_executed=blocks_executed,
        functions_found=functions_found,
        functions_executed=functions_executed,
        execution_rate=lines_executed / lines_found if lines_found > 0 else 0.0,
        coverage_rate=lines_covered / lines_found if lines_found > 0 else 0.0,
        block_rate=blocks_executed / blocks_found if blocks_found > 0 else 0.0,
        function_rate=functions_executed / functions_found if functions_found > 0 else 0.0,
    )
