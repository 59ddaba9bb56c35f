"""Assertion linkage: promote executed lines to covered.

When a test framework evaluates an assertion it hands over the call stack at
that point. Every frame on it that sits on an executed, executable line is
marked covered: the assertion verified behaviour that passed through that
line. Execution counts are not touched.

Instrumented files report instrumented line numbers in their frames; those
are translated back through the file's sourcemap first.
"""

from __future__ import annotations

import re
import sys
from collections.abc import Iterable, Mapping
from dataclasses import dataclass
from typing import TYPE_CHECKING

from tracecov.core.errors import PathResolutionError
from tracecov.core.logging import get_logger
from tracecov.core.paths import normalize_path
from tracecov.instrumentation.sourcemap import SourceMap
from tracecov.store.store import CoverageStore

if TYPE_CHECKING:
    from tracecov.session import CoverageSession

log = get_logger("assertions")

_TRACEBACK_FRAME_RE = re.compile(r'File "(?P<path>[^"]+)", line (?P<line>\d+)')


@dataclass(frozen=True, slots=True)
class StackFrame:
    path: str
    line: int


def capture_stack(skip: int = 0) -> list[StackFrame]:
    """Frames of the caller's stack, innermost first.

    Args:
        skip: Additional frames to drop above the caller.
    """
    frames: list[StackFrame] = []
    frame = sys._getframe(skip + 1)
    while frame is not None:
        frames.append(StackFrame(frame.f_code.co_filename, frame.f_lineno))
        frame = frame.f_back
    return frames


def parse_traceback(text: str) -> list[StackFrame]:
    """Frames from formatted traceback text, in the order they appear."""
    return [
        StackFrame(m.group("path"), int(m.group("line")))
        for m in _TRACEBACK_FRAME_RE.finditer(text)
    ]


def link_assertion(
    store: CoverageStore,
    stack_frames: Iterable[StackFrame | tuple[str, int]],
    sourcemaps: Mapping[str, SourceMap] | None = None,
) -> list[tuple[str, int]]:
    """Mark each qualifying frame's line covered.

    Frames in files the store does not know, frames that cannot be resolved
    or translated, and lines that are not executed and executable are
    skipped.

    Returns:
        (path, original line) pairs that are covered after the call.
    """
    sourcemaps = sourcemaps or {}
    linked: list[tuple[str, int]] = []
    seen: set[tuple[str, int]] = set()

    for frame in stack_frames:
        raw_path, line = (frame.path, frame.line) if isinstance(frame, StackFrame) else frame
        try:
            path = normalize_path(raw_path)
        except PathResolutionError:
            continue

        record = store.get_file(path)
        if record is None:
            continue
        if record.instrumented:
            sourcemap = sourcemaps.get(path)
            if sourcemap is None:
                continue
            original = sourcemap.get_original_line(line)
            if original is None:
                continue
            line = original

        key = (path, line)
        if key in seen:
            continue
        seen.add(key)
        if store.mark_covered(path, line):
            linked.append(key)

    if linked:
        log.debug("assertion_linked", lines=len(linked))
    return linked


class AssertionHook:
    """Entry point for test frameworks, called once per assertion."""

    def __init__(self, session: CoverageSession) -> None:
        self._session = session
        self.assertions = 0
        self.lines_linked = 0

    def on_assertion(
        self, frames: Iterable[StackFrame | tuple[str, int]] | None = None
    ) -> list[tuple[str, int]]:
        if frames is None:
            frames = capture_stack(skip=1)
        linked = self._session.on_assertion(frames)
        self.assertions += 1
        self.lines_linked += len(linked)
        return linked

    __call__ = on_assertion
