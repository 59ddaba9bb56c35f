"""Collector interface.

A collector turns program execution into hits on a ``CoverageStore``.
Sessions depend only on this interface, so the trace and instrumentation
strategies are interchangeable at runtime.
"""

from __future__ import annotations

from abc import ABC, abstractmethod
from typing import Any, ClassVar

from tracecov.core.errors import CollectorStateError
from tracecov.store.store import CoverageStore


class Collector(ABC):
    """Base class for collection strategies."""

    name: ClassVar[str] = "collector"

    def __init__(self, store: CoverageStore) -> None:
        self._store = store
        self._running = False

    @property
    def store(self) -> CoverageStore:
        return self._store

    @property
    def is_running(self) -> bool:
        return self._running

    def start(self) -> None:
        if self._running:
            raise CollectorStateError.already_running(self.name)
        self._start()
        self._running = True

    def stop(self) -> None:
        if not self._running:
            raise CollectorStateError.not_running(self.name)
        try:
            self._stop()
        finally:
            self._running = False

    @abstractmethod
    def _start(self) -> None:
        """Install hooks."""

    @abstractmethod
    def _stop(self) -> None:
        """Remove hooks."""

    @abstractmethod
    def stats(self) -> dict[str, Any]:
        """Counters describing work done so far."""
