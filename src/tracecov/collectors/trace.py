"""Runtime trace collector.

Installs a ``sys.settrace`` hook (and ``threading.settrace`` for threads
started while running) and turns interpreter events into store hits:

- ``call``: the function whose first line (``co_firstlineno``, the first
  decorator if any) and name match the code object is marked executed;
- ``line``: the line is marked executed, which also enters every block
  whose entry line it is.

Files are initialized lazily the first time an event arrives for them:
source comes from ``linecache``, analysis from the shared ``AnalysisCache``.
Path normalization and the include/exclude decision are cached per
``co_filename``, so the steady-state cost of an event is two dict lookups
plus the store update.

A failure handling one event (unresolvable path, vanished file) skips that
event and never reaches the program being measured. Nothing on the callback
path logs: the program may hold an output lock when an event fires, so
failures are counted and reported once when the hook is removed.
"""

from __future__ import annotations

import linecache
import os
import sys
import threading
from types import FrameType
from typing import Any, Callable

from tracecov.analysis.cache import AnalysisCache
from tracecov.collectors.base import Collector
from tracecov.config.models import TrackingConfig
from tracecov.core.errors import PathResolutionError
from tracecov.core.filters import PathFilter
from tracecov.core.logging import get_logger, muted
from tracecov.core.paths import normalize_path
from tracecov.store.relationships import fix_relationships
from tracecov.store.store import CoverageStore

log = get_logger("collectors.trace")

TraceFunction = Callable[[FrameType, str, Any], Any]

_UNSEEN = object()


class TraceCollector(Collector):
    """Collects line and call events through the interpreter's trace hook."""

    name = "trace"

    def __init__(
        self,
        store: CoverageStore,
        path_filter: PathFilter | None = None,
        analysis_cache: AnalysisCache | None = None,
        config: TrackingConfig | None = None,
    ) -> None:
        super().__init__(store)
        self._config = config or TrackingConfig()
        self._filter = path_filter or PathFilter(self._config.include, self._config.exclude)
        self._analysis = analysis_cache or AnalysisCache()

        # co_filename -> normalized path, or None when the file is not tracked
        self._paths: dict[str, str | None] = {}
        # normalized path -> executable lines; None for degraded files
        self._executable: dict[str, frozenset[int] | None] = {}
        self._unavailable: set[str] = set()

        self._previous: TraceFunction | None = None
        self._previous_thread: TraceFunction | None = None

        self.events_seen = 0
        self.hits_recorded = 0
        self.calls_recorded = 0
        self.events_skipped = 0
        self.files_tracked = 0
        self.files_excluded = 0
        self.paths_unresolvable = 0
        self.sources_unavailable = 0
        self.errors = 0

    @property
    def analysis_cache(self) -> AnalysisCache:
        return self._analysis

    def stats(self) -> dict[str, Any]:
        return {
            "events_seen": self.events_seen,
            "hits_recorded": self.hits_recorded,
            "calls_recorded": self.calls_recorded,
            "events_skipped": self.events_skipped,
            "files_tracked": self.files_tracked,
            "files_excluded": self.files_excluded,
            "paths_unresolvable": self.paths_unresolvable,
            "sources_unavailable": self.sources_unavailable,
            "errors": self.errors,
        }

    # ------------------------------------------------------------------
    # Hook installation
    # ------------------------------------------------------------------

    def _start(self) -> None:
        log.debug("trace_installed", track_threads=self._config.track_threads)
        self._previous = sys.gettrace()
        sys.settrace(self._trace)
        if self._config.track_threads:
            self._previous_thread = threading.gettrace()
            threading.settrace(self._trace)
        # Frames already on the stack only see line events if given a local tracer.
        frame = sys._getframe(1)
        while frame is not None:
            frame.f_trace = self._trace
            frame = frame.f_back

    def _stop(self) -> None:
        sys.settrace(self._previous)
        if self._config.track_threads:
            threading.settrace(self._previous_thread)  # type: ignore[arg-type]
        self._previous = None
        self._previous_thread = None
        log.debug("trace_removed", **self.stats())

    def _trace(self, frame: FrameType, event: str, arg: Any) -> TraceFunction | None:
        code = frame.f_code
        try:
            if event == "call":
                if self._resolve(code.co_filename) is None:
                    return None
                self.on_event("call", code.co_filename, code.co_firstlineno, code_name=code.co_name)
            elif event == "line":
                self.on_event("line", code.co_filename, frame.f_lineno)
        except Exception:  # one bad event must not break the traced program
            self.errors += 1
        return self._trace

    # ------------------------------------------------------------------
    # Event handling
    # ------------------------------------------------------------------

    def _resolve(self, filename: str) -> str | None:
        cached = self._paths.get(filename, _UNSEEN)
        if cached is not _UNSEEN:
            return cached  # type: ignore[return-value]

        normalized: str | None
        with muted():
            try:
                normalized = normalize_path(filename)
            except PathResolutionError:
                self.paths_unresolvable += 1
                normalized = None
            else:
                if not self._filter.should_track(normalized):
                    self.files_excluded += 1
                    normalized = None
        self._paths[filename] = normalized
        return normalized

    def _ensure_file(self, path: str) -> bool:
        if path in self._executable:
            return True
        if path in self._unavailable:
            return False

        with muted():
            return self._initialize(path)

    def _initialize(self, path: str) -> bool:
        source_lines = linecache.getlines(path)
        if not source_lines and not os.path.isfile(path):
            self._unavailable.add(path)
            self._store.mark_discovered(path, degraded=True)
            self.sources_unavailable += 1
            return False

        source_text = "".join(source_lines)
        analysis = self._analysis.get_or_analyze(path, source_text)
        record = self._store.initialize_file(path, source_text, analysis)
        if self._config.auto_fix_blocks:
            fix_relationships(record, finalize=False)
        self._executable[path] = None if analysis.degraded else analysis.executable_lines
        self.files_tracked += 1
        return True

    def on_event(
        self,
        event_kind: str,
        file_id_unresolved: str,
        line: int,
        *,
        code_name: str | None = None,
    ) -> bool:
        """Handle one interpreter event.

        Args:
            event_kind: ``"line"`` or ``"call"``.
            file_id_unresolved: The code object's ``co_filename``.
            line: Line number for ``line`` events, ``co_firstlineno`` for calls.
            code_name: The code object's ``co_name`` (calls only).

        Returns:
            True if the event was recorded.
        """
        self.events_seen += 1
        path = self._resolve(file_id_unresolved)
        if path is None or not self._ensure_file(path):
            self.events_skipped += 1
            return False

        if event_kind == "line":
            executable = self._executable[path]
            if executable is not None and line not in executable:
                self.events_skipped += 1
                return False
            self._store.mark_executed(path, line)
            self.hits_recorded += 1
            return True

        if event_kind == "call":
            function_id = (
                self._store.function_for_code(path, line, code_name) if code_name else None
            )
            if function_id is None:
                # Module bodies and unknown code objects
                self.events_skipped += 1
                return False
            self._store.mark_function_executed(path, function_id)
            self.calls_recorded += 1
            return True

        self.events_skipped += 1
        return False
