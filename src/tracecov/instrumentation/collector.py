"""Instrumentation collection strategy."""

from __future__ import annotations

from typing import Any

from tracecov.analysis.cache import AnalysisCache
from tracecov.collectors.base import Collector
from tracecov.config.models import InstrumentationConfig, TrackingConfig
from tracecov.core.filters import PathFilter
from tracecov.instrumentation.loader import (
    ImportInterceptor,
    InstrumentationPredicate,
    ModuleLoadCallback,
)
from tracecov.instrumentation.sourcemap import SourceMap
from tracecov.instrumentation.transformer import InstrumentedSource
from tracecov.store.store import CoverageStore


class InstrumentationCollector(Collector):
    """Collects hits from instrumented modules imported while running.

    Only modules imported after ``start`` are instrumented; modules already
    in ``sys.modules`` keep running their original code.
    """

    name = "instrument"

    def __init__(
        self,
        store: CoverageStore,
        path_filter: PathFilter | None = None,
        analysis_cache: AnalysisCache | None = None,
        config: InstrumentationConfig | None = None,
        tracking: TrackingConfig | None = None,
        *,
        on_module_load: ModuleLoadCallback | None = None,
        instrumentation_predicate: InstrumentationPredicate | None = None,
    ) -> None:
        super().__init__(store)
        tracking = tracking or TrackingConfig()
        self._interceptor = ImportInterceptor(
            store,
            config=config,
            path_filter=path_filter or PathFilter(tracking.include, tracking.exclude),
            analysis_cache=analysis_cache,
            auto_fix_blocks=tracking.auto_fix_blocks,
            on_module_load=on_module_load,
            instrumentation_predicate=instrumentation_predicate,
        )

    @property
    def interceptor(self) -> ImportInterceptor:
        return self._interceptor

    @property
    def sourcemaps(self) -> dict[str, SourceMap]:
        return self._interceptor.sourcemaps

    def _start(self) -> None:
        self._interceptor.tracker.enabled = True
        self._interceptor.install()

    def _stop(self) -> None:
        self._interceptor.uninstall()
        self._interceptor.tracker.enabled = False

    def instrument_file(self, path: str) -> InstrumentedSource | None:
        return self._interceptor.instrument_file(path)

    def stats(self) -> dict[str, Any]:
        return self._interceptor.stats()
