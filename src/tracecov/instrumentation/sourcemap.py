"""Line mapping between instrumented and original source.

Instrumentation inserts one tracking line before each tracked statement, so
every original line moves down by the number of insertions above it. The
map records both directions; lines inserted by the transformer have no
original line.
"""

from __future__ import annotations

import re
from collections.abc import Iterable, Sequence
from dataclasses import dataclass, field

# Traceback form: File "/path/mod.py", line 12
_TRACEBACK_RE = re.compile(r'File "(?P<path>[^"]+)", line (?P<line>\d+)')
# Compiler form: /path/mod.py:12: or /path/mod.py:12:4:
_COMPACT_RE = re.compile(r"(?P<path>(?:[A-Za-z]:)?[^\s:\"]+):(?P<line>\d+)(?P<tail>:\d+)?:")


@dataclass(slots=True)
class SourceMap:
    instrumented_to_original: dict[int, int] = field(default_factory=dict)
    original_to_instrumented: dict[int, int] = field(default_factory=dict)

    def add_mapping(self, instrumented_line: int, original_line: int) -> None:
        self.instrumented_to_original[instrumented_line] = original_line
        self.original_to_instrumented[original_line] = instrumented_line

    def get_original_line(self, instrumented_line: int) -> int | None:
        return self.instrumented_to_original.get(instrumented_line)

    def get_instrumented_line(self, original_line: int) -> int | None:
        return self.original_to_instrumented.get(original_line)

    def __len__(self) -> int:
        return len(self.instrumented_to_original)

    def translate_error(self, message: str, path: str) -> str:
        """Rewrite line numbers in *message* that refer to *path*.

        Handles ``File "path", line N`` (tracebacks) and ``path:N:`` /
        ``path:N:C:`` (compiler style). References to other files, or to
        lines the transformer inserted, are left unchanged.
        """

        def _matches(found: str) -> bool:
            return found == path or found.endswith(path) or path.endswith(found)

        def _traceback(m: re.Match[str]) -> str:
            original = self.get_original_line(int(m.group("line")))
            if original is None or not _matches(m.group("path")):
                return m.group(0)
            return f'File "{m.group("path")}", line {original}'

        def _compact(m: re.Match[str]) -> str:
            original = self.get_original_line(int(m.group("line")))
            if original is None or not _matches(m.group("path")):
                return m.group(0)
            return f"{m.group('path')}:{original}{m.group('tail') or ''}:"

        translated = _TRACEBACK_RE.sub(_traceback, message)
        if translated == message:
            translated = _COMPACT_RE.sub(_compact, message)
        return translated

    def translate_frames(self, frames: Sequence[tuple[str, int]]) -> list[tuple[str, int]]:
        """Map (path, instrumented line) pairs to original lines.

        Frames whose line has no original counterpart are dropped.
        """
        translated: list[tuple[str, int]] = []
        for path, line in frames:
            original = self.get_original_line(line)
            if original is not None:
                translated.append((path, original))
        return translated

    @classmethod
    def identity(cls, lines: Iterable[int]) -> SourceMap:
        sm = cls()
        for line in lines:
            sm.add_mapping(line, line)
        return sm
