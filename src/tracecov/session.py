"""Coverage session lifecycle.

A session owns one ``CoverageStore`` and one collector for the duration of
a run:

    with CoverageSession() as session:
        run_tests()
        session.on_assertion()      # from the test framework's assert hook
    snapshot = session.snapshot()

``stop`` finalizes the store: block relationships are resolved for every
file, the patch-up pass strips marks from non-executable lines, and the
``covered => executed => executable`` invariant is checked. The snapshot
handed out afterwards is a detached copy of the store.
"""

from __future__ import annotations

from collections.abc import Iterable
from pathlib import Path
from types import TracebackType
from typing import Any

from tracecov.analysis.cache import AnalysisCache
from tracecov.analysis.models import ROOT_BLOCK_ID
from tracecov.assertions import StackFrame, capture_stack, link_assertion
from tracecov.collectors.base import Collector
from tracecov.collectors.trace import TraceCollector
from tracecov.config.models import TracecovConfig
from tracecov.core.errors import (
    CollectorStateError,
    PathResolutionError,
    StoreError,
    StoreInitError,
)
from tracecov.core.filters import PathFilter
from tracecov.core.logging import (
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
    set_session_id,
)
from tracecov.core.paths import normalize_path
from tracecov.instrumentation.collector import InstrumentationCollector
from tracecov.instrumentation.sourcemap import SourceMap
from tracecov.store.models import CoverageSummary
from tracecov.store.patchup import patch_all, validate_invariants
from tracecov.store.relationships import RelationshipStats, fix_relationships
from tracecov.store.store import CoverageSnapshot, CoverageStore

log = get_logger("session")


class CoverageSession:
    """Start/stop lifecycle around a collector and its store."""

    def __init__(
        self,
        config: TracecovConfig | None = None,
        store: CoverageStore | None = None,
        *,
        root: Path | None = None,
    ) -> None:
        if store is not None and not isinstance(store, CoverageStore):
            raise StoreInitError.failed(f"expected CoverageStore, got {type(store).__name__}")
        self._config = config or TracecovConfig()
        self._store = store if store is not None else CoverageStore()
        self._filter = PathFilter(
            self._config.tracking.include,
            self._config.tracking.exclude,
            root=root,
        )
        self._analysis = AnalysisCache(self._config.analysis)
        self._collector: Collector | None = None
        self._session_id: str | None = None

    @property
    def config(self) -> TracecovConfig:
        return self._config

    @property
    def store(self) -> CoverageStore:
        return self._store

    @property
    def collector(self) -> Collector | None:
        return self._collector

    @property
    def is_running(self) -> bool:
        return self._collector is not None and self._collector.is_running

    @property
    def session_id(self) -> str | None:
        return self._session_id

    @property
    def sourcemaps(self) -> dict[str, SourceMap]:
        if isinstance(self._collector, InstrumentationCollector):
            return self._collector.sourcemaps
        return {}

    def _make_collector(self) -> Collector:
        strategy = self._config.tracking.strategy
        if strategy == "instrument":
            return InstrumentationCollector(
                self._store,
                self._filter,
                self._analysis,
                self._config.instrumentation,
                self._config.tracking,
            )
        return TraceCollector(self._store, self._filter, self._analysis, self._config.tracking)

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    def start(self) -> None:
        """Begin collecting into a fresh store.

        Any records from a previous run are dropped, so files are registered
        after this call. The session's logging configuration is applied
        here, before the collector starts.
        """
        if self.is_running:
            raise CollectorStateError.already_running(self._collector.name)  # type: ignore[union-attr]

        configure_logging(config=self._config.logging)
        self._store.reset()
        self._analysis.clear()
        self._session_id = get_session_id() or set_session_id()
        self._collector = self._make_collector()
        self._collector.start()
        log.info(
            "session_started",
            strategy=self._collector.name,
            include=self._filter.include,
            exclude=self._filter.exclude,
        )

    def stop(self) -> CoverageSnapshot:
        if not self.is_running:
            raise CollectorStateError.not_running(
                self._collector.name if self._collector else self._config.tracking.strategy
            )
        assert self._collector is not None
        self._collector.stop()

        relationships = self.finalize()
        summary = self._store.summary()
        log.info(
            "session_stopped",
            files=summary.total_files,
            lines_found=summary.lines_found,
            lines_executed=summary.lines_executed,
            lines_covered=summary.lines_covered,
            reattached=relationships.reattached,
            **self._collector.stats(),
        )
        clear_session_id()
        return self.snapshot()

    def finalize(self) -> RelationshipStats:
        """Resolve block relationships and run patch-up on every file."""
        total = RelationshipStats()
        for record in self._store.files():
            total += fix_relationships(record, finalize=True)
        patch = patch_all(
            self._store,
            dict(self._analysis.items()),
            structural_executable=self._config.analysis.structural_keywords_executable,
        )
        validate_invariants(self._store)
        log.debug(
            "session_finalized",
            relationships_fixed=total.relationships_fixed,
            pending_resolved=total.pending_resolved,
            lines_patched=patch.lines_patched,
        )
        return total

    def __enter__(self) -> CoverageSession:
        self.start()
        return self

    def __exit__(
        self,
        exc_type: type[BaseException] | None,
        exc: BaseException | None,
        tb: TracebackType | None,
    ) -> None:
        if self.is_running:
            self.stop()

    # ------------------------------------------------------------------
    # Inputs
    # ------------------------------------------------------------------

    def register_file(self, path: str | Path) -> str | None:
        """Make *path* part of the report even if it never runs.

        Returns:
            The normalized path, or None if it could not be registered.
        """
        try:
            normalized = normalize_path(str(path))
        except PathResolutionError as e:
            log.warning("register_failed", error=e.error_name, **e.details)
            return None
        try:
            source_text = Path(normalized).read_text(encoding="utf-8")
        except (OSError, UnicodeDecodeError) as e:
            log.warning("register_failed", path=normalized, phase="read", reason=str(e))
            self._store.mark_discovered(normalized, degraded=True)
            return normalized

        analysis = self._analysis.get_or_analyze(normalized, source_text)
        record = self._store.initialize_file(
            normalized, source_text, analysis, discovered=True, active=False
        )
        if self._config.tracking.auto_fix_blocks:
            fix_relationships(record, finalize=False)
        return normalized

    def register_files(self, paths: Iterable[str | Path]) -> list[str]:
        return [p for p in (self.register_file(path) for path in paths) if p is not None]

    def on_assertion(
        self, frames: Iterable[StackFrame | tuple[str, int]] | None = None
    ) -> list[tuple[str, int]]:
        """Link an assertion's stack to the lines it passed through."""
        if frames is None:
            frames = capture_stack(skip=1)
        return link_assertion(self._store, frames, self.sourcemaps)

    # ------------------------------------------------------------------
    # Outputs
    # ------------------------------------------------------------------

    def snapshot(self) -> CoverageSnapshot:
        return self._store.snapshot()

    def summary(self) -> CoverageSummary:
        return self._store.summary()

    def meets_threshold(self, threshold_percent: float, *, covered: bool = False) -> bool:
        """True if execution (or, with ``covered``, assertion) coverage reaches the threshold."""
        summary = self._store.summary()
        percent = summary.coverage_percent if covered else summary.execution_percent
        return percent >= threshold_percent

    def get_file_details(self, path: str | Path) -> dict[str, Any]:
        """Source, per-line classification and hierarchies for one file.

        Raises:
            StoreError: If the file is not in the store.
        """
        try:
            normalized = normalize_path(str(path))
        except PathResolutionError as e:
            raise StoreError.unknown_file(str(path)) from e
        record = self._store.require_file(normalized)

        lines = []
        source = record.source_lines
        for number in sorted(set(record.lines) | set(range(1, len(source) + 1))):
            rec = record.lines.get(number)
            lines.append(
                {
                    "line": number,
                    "text": source[number - 1] if number <= len(source) else "",
                    "line_type": rec.line_type.value if rec and rec.line_type else None,
                    "executable": bool(rec and rec.executable),
                    "executed": bool(rec and rec.executed),
                    "covered": bool(rec and rec.covered),
                    "execution_count": rec.execution_count if rec else 0,
                    "reason": rec.reason if rec else None,
                }
            )

        def _block_tree(block_id: str) -> dict[str, Any]:
            block = record.blocks[block_id]
            return {
                "id": block.block_id,
                "kind": block.kind.value,
                "label": block.label,
                "start_line": block.start_line,
                "end_line": block.end_line,
                "executed": block.executed,
                "execution_count": block.execution_count,
                "flagged": block.flagged,
                "children": [
                    _block_tree(c)
                    for c in sorted(
                        block.children,
                        key=lambda c: (record.blocks[c].start_line, c),
                    )
                    if c in record.blocks
                ],
            }

        functions = [
            {
                "id": fn.function_id,
                "name": fn.name,
                "kind": fn.kind.value,
                "start_line": fn.start_line,
                "end_line": fn.end_line,
                "executed": fn.executed,
                "execution_count": fn.execution_count,
            }
            for fn in sorted(record.functions.values(), key=lambda f: (f.start_line, f.function_id))
        ]

        return {
            "path": record.path,
            "source": record.source,
            "degraded": record.degraded,
            "discovered": record.discovered,
            "active": record.active,
            "instrumented": record.instrumented,
            "lines": lines,
            "blocks": _block_tree(ROOT_BLOCK_ID) if ROOT_BLOCK_ID in record.blocks else None,
            "functions": functions,
            "execution_rate": record.execution_rate,
            "coverage_rate": record.coverage_rate,
        }
