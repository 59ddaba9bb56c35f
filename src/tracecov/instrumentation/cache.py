"""Cache of instrumented source keyed by (normalized path, content hash).

A hit skips re-parsing and re-transforming a module whose content has not
changed. The cache is an optimization only: clearing it never changes what
gets recorded.
"""

from __future__ import annotations

from typing import Any

from tracecov.core.logging import get_logger
from tracecov.instrumentation.transformer import InstrumentedSource

log = get_logger("instrumentation.cache")


class InstrumentedSourceCache:
    def __init__(self) -> None:
        self._entries: dict[tuple[str, str], InstrumentedSource] = {}
        self.hits = 0
        self.misses = 0

    def get(self, path: str, content_hash: str) -> InstrumentedSource | None:
        entry = self._entries.get((path, content_hash))
        if entry is None:
            self.misses += 1
            return None
        self.hits += 1
        return entry

    def put(self, path: str, content_hash: str, instrumented: InstrumentedSource) -> None:
        # Only the current content of a path is worth keeping.
        for key in [k for k in self._entries if k[0] == path and k[1] != content_hash]:
            del self._entries[key]
        self._entries[(path, content_hash)] = instrumented
        log.debug("instrumented_cached", path=path, cache_size=len(self._entries))

    def remove(self, path: str) -> None:
        for key in [k for k in self._entries if k[0] == path]:
            del self._entries[key]

    def has_path(self, path: str) -> bool:
        return any(k[0] == path for k in self._entries)

    def reset(self) -> None:
        self._entries.clear()
        self.hits = 0
        self.misses = 0

    def stats(self) -> dict[str, Any]:
        lookups = self.hits + self.misses
        return {
            "cache_size": len(self._entries),
            "cache_hits": self.hits,
            "cache_misses": self.misses,
            "hit_ratio": self.hits / lookups if lookups else 0.0,
        }

    def __len__(self) -> int:
        return len(self._entries)
