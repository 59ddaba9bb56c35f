"""Module-load interception.

``ImportInterceptor`` sits at the front of ``sys.meta_path``. For a module it
should instrument, it resolves the spec with
``importlib.machinery.PathFinder`` (which never consults ``sys.meta_path``,
so resolution cannot recurse back into the interceptor) and swaps in a
loader that compiles instrumented source.

Guards, checked in this order:

(d) static exclusion: ``tracecov`` and its submodules, configured module
    patterns, files the path filter rejects, and the optional
    ``instrumentation_predicate``. Checked before any work is done;
(a) re-entry: a module whose load is already in progress executes its
    original source;
(c) nesting depth: past ``max_recursion_depth`` nested intercepted loads,
    ``RecursionLimitExceeded`` is raised and caught for that module alone,
    which executes uninstrumented and is recorded as discovered-only;
(b) instrumented-source cache: unchanged files are not transformed twice.

A module whose source fails to instrument also executes its original
source. Instrumentation problems never surface as import errors.
"""

from __future__ import annotations

import fnmatch
import importlib.abc
import importlib.machinery
import importlib.util
import sys
from collections.abc import Callable, Sequence
from importlib.machinery import ModuleSpec
from types import CodeType, ModuleType
from typing import Any

from tracecov.analysis.cache import AnalysisCache
from tracecov.config.models import InstrumentationConfig
from tracecov.core.errors import (
    InstrumentationError,
    PathResolutionError,
    RecursionLimitExceeded,
)
from tracecov.core.filters import PathFilter
from tracecov.core.logging import get_logger
from tracecov.core.paths import normalize_path
from tracecov.instrumentation.cache import InstrumentedSourceCache
from tracecov.instrumentation.runtime import Tracker
from tracecov.instrumentation.sourcemap import SourceMap
from tracecov.instrumentation.transformer import (
    TRACKER_NAME,
    InstrumentedSource,
    InstrumentOptions,
    instrument,
)
from tracecov.store.relationships import fix_relationships
from tracecov.store.store import CoverageStore

log = get_logger("instrumentation.loader")

BUILTIN_EXCLUDED_MODULES = ("tracecov", "tracecov.*")

ModuleLoadCallback = Callable[[str, str, bool], None]
InstrumentationPredicate = Callable[[str, str], bool]


class InstrumentingLoader(importlib.machinery.SourceFileLoader):
    """Source loader that executes instrumented code.

    Instrumented code is compiled in memory and never written to
    ``__pycache__``. The uninstrumented fallback goes through the regular
    ``SourceFileLoader`` path, bytecode cache included.
    """

    def __init__(self, fullname: str, path: str, interceptor: ImportInterceptor) -> None:
        super().__init__(fullname, path)
        self._interceptor = interceptor

    def exec_module(self, module: ModuleType) -> None:
        self._interceptor._exec(self, module)

    def exec_original(self, module: ModuleType) -> None:
        super().exec_module(module)


class ImportInterceptor(importlib.abc.MetaPathFinder):
    """Meta path finder that instruments matching modules as they load."""

    def __init__(
        self,
        store: CoverageStore,
        *,
        config: InstrumentationConfig | None = None,
        path_filter: PathFilter | None = None,
        analysis_cache: AnalysisCache | None = None,
        tracker: Tracker | None = None,
        auto_fix_blocks: bool = True,
        on_module_load: ModuleLoadCallback | None = None,
        instrumentation_predicate: InstrumentationPredicate | None = None,
    ) -> None:
        self._store = store
        self._config = config or InstrumentationConfig()
        self._filter = path_filter or PathFilter()
        self._analysis = analysis_cache or AnalysisCache()
        self._tracker = tracker or Tracker(store)
        self._auto_fix_blocks = auto_fix_blocks
        self._cache = InstrumentedSourceCache() if self._config.cache_enabled else None
        self._excluded_patterns = BUILTIN_EXCLUDED_MODULES + tuple(self._config.excluded_modules)

        self.on_module_load = on_module_load
        self.instrumentation_predicate = instrumentation_predicate

        self.sourcemaps: dict[str, SourceMap] = {}
        self._instrumenting: set[str] = set()
        self._depth = 0
        self._name_excluded: dict[str, bool] = {}
        self._path_allowed: dict[str, bool] = {}
        self._installed = False

        self.modules_instrumented = 0
        self.modules_uninstrumented = 0
        self.reentrant_loads = 0
        self.recursion_skips = 0
        self.failures = 0

    @property
    def tracker(self) -> Tracker:
        return self._tracker

    @property
    def cache(self) -> InstrumentedSourceCache | None:
        return self._cache

    @property
    def depth(self) -> int:
        return self._depth

    # ------------------------------------------------------------------
    # Installation
    # ------------------------------------------------------------------

    def install(self) -> None:
        if self._installed:
            log.warning("interceptor_already_installed")
            return
        sys.meta_path.insert(0, self)
        self._installed = True
        log.debug("interceptor_installed")

    def uninstall(self) -> None:
        if not self._installed:
            log.warning("interceptor_not_installed")
            return
        sys.meta_path[:] = [f for f in sys.meta_path if f is not self]
        self._installed = False
        log.debug("interceptor_uninstalled", **self.stats())

    @property
    def is_installed(self) -> bool:
        return self._installed

    def stats(self) -> dict[str, Any]:
        stats: dict[str, Any] = {
            "modules_instrumented": self.modules_instrumented,
            "modules_uninstrumented": self.modules_uninstrumented,
            "reentrant_loads": self.reentrant_loads,
            "recursion_skips": self.recursion_skips,
            "failures": self.failures,
            "tracker_hits": self._tracker.hits,
        }
        if self._cache is not None:
            stats.update(self._cache.stats())
        return stats

    # ------------------------------------------------------------------
    # Exclusion (guard d)
    # ------------------------------------------------------------------

    def is_module_excluded(self, fullname: str) -> bool:
        excluded = self._name_excluded.get(fullname)
        if excluded is None:
            excluded = any(fnmatch.fnmatchcase(fullname, p) for p in self._excluded_patterns)
            self._name_excluded[fullname] = excluded
        return excluded

    def _should_instrument_path(self, fullname: str, path: str) -> bool:
        allowed = self._path_allowed.get(path)
        if allowed is None:
            allowed = self._filter.should_track(path)
            self._path_allowed[path] = allowed
        if allowed and self.instrumentation_predicate is not None:
            return bool(self.instrumentation_predicate(fullname, path))
        return allowed

    # ------------------------------------------------------------------
    # MetaPathFinder
    # ------------------------------------------------------------------

    def find_spec(
        self,
        fullname: str,
        path: Sequence[str] | None = None,
        target: ModuleType | None = None,
    ) -> ModuleSpec | None:
        if self.is_module_excluded(fullname):
            return None

        spec = importlib.machinery.PathFinder.find_spec(fullname, path)
        if spec is None or spec.origin is None:
            return None
        if not isinstance(spec.loader, importlib.machinery.SourceFileLoader):
            return None

        try:
            normalized = normalize_path(spec.origin)
        except PathResolutionError:
            return None
        if not self._should_instrument_path(fullname, normalized):
            return None

        spec.loader = InstrumentingLoader(fullname, spec.origin, self)
        return spec

    def invalidate_caches(self) -> None:
        self._name_excluded.clear()
        self._path_allowed.clear()

    # ------------------------------------------------------------------
    # Loading
    # ------------------------------------------------------------------

    def _enter(self, fullname: str) -> None:
        if self._depth >= self._config.max_recursion_depth:
            raise RecursionLimitExceeded.exceeded(
                fullname, self._depth + 1, self._config.max_recursion_depth
            )
        self._depth += 1
        self._instrumenting.add(fullname)

    def _leave(self, fullname: str) -> None:
        self._instrumenting.discard(fullname)
        self._depth -= 1

    def _notify(self, fullname: str, path: str, instrumented: bool) -> None:
        if self.on_module_load is not None:
            self.on_module_load(fullname, path, instrumented)

    def _exec(self, loader: InstrumentingLoader, module: ModuleType) -> None:
        fullname = module.__name__
        path = normalize_path(loader.path)

        if fullname in self._instrumenting:
            self.reentrant_loads += 1
            log.debug("reentrant_load", module=fullname, path=path)
            self._run_original(loader, module, path)
            return

        try:
            self._enter(fullname)
        except RecursionLimitExceeded as e:
            self.recursion_skips += 1
            log.warning("instrumentation_skipped", error=e.error_name, path=path, **e.details)
            self._run_original(loader, module, path)
            return

        try:
            code = self._instrumented_code(loader, path)
            if code is None:
                self._run_original(loader, module, path)
                return
            module.__dict__[TRACKER_NAME] = self._tracker
            self.modules_instrumented += 1
            self._notify(fullname, path, True)
            exec(code, module.__dict__)
        finally:
            self._leave(fullname)

    def _run_original(self, loader: InstrumentingLoader, module: ModuleType, path: str) -> None:
        self._store.mark_discovered(path)
        self.modules_uninstrumented += 1
        self._notify(module.__name__, path, False)
        loader.exec_original(module)

    def _instrumented_code(self, loader: InstrumentingLoader, path: str) -> CodeType | None:
        try:
            source_text = importlib.util.decode_source(loader.get_data(loader.path))
        except (OSError, UnicodeDecodeError, SyntaxError) as e:
            self.failures += 1
            log.warning("instrumentation_failed", path=path, phase="read", reason=str(e))
            return None

        try:
            instrumented = self.instrument_source(path, source_text)
        except InstrumentationError as e:
            self.failures += 1
            log.warning("instrumentation_failed", error=e.error_name, **e.details)
            self._store.mark_discovered(path, degraded=True)
            return None
        return compile(instrumented.text, loader.path, "exec", dont_inherit=True)

    def instrument_source(self, path: str, source_text: str) -> InstrumentedSource:
        """Instrument *source_text* for the normalized *path* and register it.

        Raises:
            InstrumentationError: If the source does not parse.
        """
        analysis = self._analysis.get_or_analyze(path, source_text)
        instrumented = self._cache.get(path, analysis.content_hash) if self._cache else None
        if instrumented is None:
            options = InstrumentOptions(
                executable_lines=None if analysis.degraded else analysis.executable_lines
            )
            instrumented = instrument(source_text, path, options)
            if self._cache is not None:
                self._cache.put(path, analysis.content_hash, instrumented)

        record = self._store.initialize_file(path, source_text, analysis)
        if self._auto_fix_blocks:
            fix_relationships(record, finalize=False)
        self._store.set_instrumented(path)
        self.sourcemaps[path] = instrumented.sourcemap
        log.debug(
            "module_instrumented",
            path=path,
            tracked_lines=len(instrumented.tracked_lines),
            degraded=analysis.degraded,
        )
        return instrumented

    def instrument_file(self, path: str) -> InstrumentedSource | None:
        """Instrument a file by path, under the same guards as imports.

        Returns:
            The instrumented source, or None when the file is excluded,
            unreadable, already being instrumented, or fails to instrument.
        """
        try:
            normalized = normalize_path(path)
        except PathResolutionError as e:
            log.debug("path_unresolvable", path=path, phase="instrument", reason=e.details.get("reason"))
            return None
        if not self._should_instrument_path(normalized, normalized):
            return None
        if normalized in self._instrumenting:
            self.reentrant_loads += 1
            return None

        try:
            self._enter(normalized)
        except RecursionLimitExceeded as e:
            self.recursion_skips += 1
            log.warning("instrumentation_skipped", error=e.error_name, path=normalized, **e.details)
            self._store.mark_discovered(normalized)
            return None

        try:
            with open(normalized, "rb") as f:
                source_text = importlib.util.decode_source(f.read())
            return self.instrument_source(normalized, source_text)
        except OSError as e:
            self.failures += 1
            log.warning("instrumentation_failed", path=normalized, phase="read", reason=str(e))
            return None
        except InstrumentationError as e:
            self.failures += 1
            log.warning("instrumentation_failed", error=e.error_name, **e.details)
            self._store.mark_discovered(normalized, degraded=True)
            return None
        finally:
            self._leave(normalized)
