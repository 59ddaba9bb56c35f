"""Include/exclude path filtering with tiered architecture.

Tier 0 (hardcoded): never tracked, not user-configurable.
    - the tracecov package itself (a tracer must not trace its own bookkeeping)
    - the interpreter's stdlib and installed site-packages

Tier 1 (user patterns): fnmatch globs against the normalized path.
    - ``include`` empty means "everything not excluded"
    - ``exclude`` wins over ``include``

Patterns are matched against the full normalized path and against the path
relative to ``root`` when one is given, so both ``*/src/*`` and ``src/*``
style patterns work.
"""

from __future__ import annotations

import fnmatch
import os
import sysconfig
from collections.abc import Iterable
from pathlib import Path


def _hardcoded_roots() -> tuple[str, ...]:
    package_dir = Path(__file__).resolve().parent.parent
    roots: set[str] = {os.path.normcase(str(package_dir))}
    for key in ("stdlib", "platstdlib", "purelib", "platlib"):
        path = sysconfig.get_paths().get(key)
        if path:
            roots.add(os.path.normcase(os.path.realpath(path)))
    return tuple(sorted(roots))


HARDCODED_ROOTS: tuple[str, ...] = _hardcoded_roots()


def is_hardcoded_excluded(normalized_path: str) -> bool:
    """True if the path is inside a tier-0 root."""
    return any(
        normalized_path == root or normalized_path.startswith(root + os.sep)
        for root in HARDCODED_ROOTS
    )


def matches_glob(path: str, patterns: Iterable[str]) -> bool:
    """True if *path* matches any fnmatch pattern."""
    return any(fnmatch.fnmatch(path, pattern) for pattern in patterns)


class PathFilter:
    """Decides which files a collector tracks.

    Example:
        f = PathFilter(include=["*/myproj/*"], exclude=["*/tests/*"])
        f.should_track("/work/myproj/app.py")        # True
        f.should_track("/work/myproj/tests/t.py")    # False
    """

    def __init__(
        self,
        include: Iterable[str] = (),
        exclude: Iterable[str] = (),
        *,
        root: Path | None = None,
        track_hardcoded: bool = False,
    ) -> None:
        self._include = [os.path.normcase(p) for p in include]
        self._exclude = [os.path.normcase(p) for p in exclude]
        self._root = os.path.normcase(os.path.realpath(root)) if root is not None else None
        self._track_hardcoded = track_hardcoded

    @property
    def include(self) -> list[str]:
        return list(self._include)

    @property
    def exclude(self) -> list[str]:
        return list(self._exclude)

    def _candidates(self, normalized_path: str) -> list[str]:
        candidates = [normalized_path]
        if self._root is not None and normalized_path.startswith(self._root + os.sep):
            rel = normalized_path[len(self._root) + 1 :]
            candidates.append(rel)
            candidates.append(rel.replace(os.sep, "/"))
        return candidates

    def should_track(self, normalized_path: str) -> bool:
        if not self._track_hardcoded and is_hardcoded_excluded(normalized_path):
            return False

        candidates = self._candidates(normalized_path)
        if any(matches_glob(c, self._exclude) for c in candidates):
            return False
        if not self._include:
            return True
        return any(matches_glob(c, self._include) for c in candidates)
