"""Source instrumentation: transform, sourcemaps and import interception.

Usage:
    from tracecov.instrumentation import instrument

    result = instrument(source_text, "/abs/path/mod.py")
    result.text                          # source with tracking calls
    result.sourcemap.get_original_line(4)
"""

from tracecov.instrumentation.cache import InstrumentedSourceCache
from tracecov.instrumentation.collector import InstrumentationCollector
from tracecov.instrumentation.loader import (
    BUILTIN_EXCLUDED_MODULES,
    ImportInterceptor,
    InstrumentingLoader,
)
from tracecov.instrumentation.runtime import Tracker
from tracecov.instrumentation.sourcemap import SourceMap
from tracecov.instrumentation.transformer import (
    TRACKER_NAME,
    InstrumentedSource,
    InstrumentOptions,
    collect_tracked_lines,
    instrument,
)

__all__ = [
    "BUILTIN_EXCLUDED_MODULES",
    "TRACKER_NAME",
    "ImportInterceptor",
    "InstrumentationCollector",
    "InstrumentedSource",
    "InstrumentedSourceCache",
    "InstrumentingLoader",
    "InstrumentOptions",
    "SourceMap",
    "Tracker",
    "collect_tracked_lines",
    "instrument",
]
