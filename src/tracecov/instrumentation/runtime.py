"""Tracking primitive called by instrumented code.

Instrumented modules get a ``Tracker`` bound into their globals under
``__tracecov_track__``. Each call records one hit per line it names; the
file id and lines are literals baked in by the transformer, so the call does
no path work. Header calls name several lines at once (a decorated ``def``
reports every decorator and the ``def`` line).
"""

from __future__ import annotations

from tracecov.store.store import CoverageStore


class Tracker:
    """Callable that records instrumented hits into a store.

    A hit on a function's first body statement also marks that function
    executed: the inserted call runs exactly once per entry, unlike a
    ``call`` trace event which also fires on generator resumption.

    Hits arriving while the tracker is disabled are dropped, which lets
    modules imported during a session keep running after it stops.
    """

    __slots__ = ("_store", "enabled", "hits")

    def __init__(self, store: CoverageStore) -> None:
        self._store = store
        self.enabled = True
        self.hits = 0

    @property
    def store(self) -> CoverageStore:
        return self._store

    def __call__(self, file_id: str, line: int, *more: int) -> None:
        if not self.enabled:
            return
        store = self._store
        for number in (line, *more):
            store.mark_executed(file_id, number)
            for function_id in store.functions_entered_at(file_id, number):
                store.mark_function_executed(file_id, function_id)
            self.hits += 1
