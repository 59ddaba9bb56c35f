"""tracecov: three-state line coverage for Python.

Every line is tracked as executable (static analysis says it can run),
executed (a collector saw it run) and covered (an assertion's stack passed
through it).

Usage:
    from tracecov import CoverageSession, load_config

    with CoverageSession(load_config()) as session:
        run_tests()
    print(session.summary().execution_percent)
"""

from tracecov.analysis import AnalysisCache, AnalysisResult, analyze
from tracecov.assertions import AssertionHook, StackFrame, capture_stack, link_assertion
from tracecov.collectors import Collector, TraceCollector
from tracecov.config import TracecovConfig, load_config
from tracecov.core.errors import TracecovError
from tracecov.instrumentation import InstrumentationCollector, instrument
from tracecov.session import CoverageSession
from tracecov.store import (
    CoverageSnapshot,
    CoverageStore,
    CoverageSummary,
    build_summary,
    merge_stores,
)

__version__ = "0.1.0"

__all__ = [
    "__version__",
    "AnalysisCache",
    "AnalysisResult",
    "AssertionHook",
    "Collector",
    "CoverageSession",
    "CoverageSnapshot",
    "CoverageStore",
    "CoverageSummary",
    "InstrumentationCollector",
    "StackFrame",
    "TraceCollector",
    "TracecovConfig",
    "TracecovError",
    "analyze",
    "build_summary",
    "capture_stack",
    "instrument",
    "link_assertion",
    "load_config",
    "merge_stores",
]
