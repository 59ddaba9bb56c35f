"""Collection strategies sharing one store contract."""

from tracecov.collectors.base import Collector
from tracecov.collectors.trace import TraceCollector

__all__ = ["Collector", "TraceCollector"]
