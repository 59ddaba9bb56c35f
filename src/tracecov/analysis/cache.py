"""Analysis memoization keyed by (normalized path, content hash)."""

from __future__ import annotations

from tracecov.analysis.analyzer import analyze, hash_content
from tracecov.analysis.models import AnalysisResult
from tracecov.config.models import AnalysisConfig


class AnalysisCache:
    """Reuses analysis results for unchanged content.

    Re-analysis only happens when a file's content hash changes, so the
    collectors can call ``get_or_analyze`` freely when they first see a file.
    """

    def __init__(self, config: AnalysisConfig | None = None) -> None:
        self._config = config or AnalysisConfig()
        self._entries: dict[tuple[str, str], AnalysisResult] = {}
        self._latest: dict[str, AnalysisResult] = {}
        self.hits = 0
        self.misses = 0

    @property
    def config(self) -> AnalysisConfig:
        return self._config

    def get_or_analyze(self, path: str, source_text: str) -> AnalysisResult:
        key = (path, hash_content(source_text))
        cached = self._entries.get(key)
        if cached is not None:
            self.hits += 1
            self._latest[path] = cached
            return cached
        self.misses += 1
        result = analyze(source_text, path, self._config)
        self._entries[key] = result
        self._latest[path] = result
        return result

    def get(self, path: str) -> AnalysisResult | None:
        """Most recent analysis for *path*, if any."""
        return self._latest.get(path)

    def items(self) -> list[tuple[str, AnalysisResult]]:
        return list(self._latest.items())

    def clear(self) -> None:
        self._entries.clear()
        self._latest.clear()
        self.hits = 0
        self.misses = 0

    def __len__(self) -> int:
        return len(self._entries)
