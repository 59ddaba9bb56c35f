"""Path normalization for file identity.

Every file record in the store is keyed by the value returned from
``normalize_path``: absolute, symlinks resolved, case-normalized for the
platform. Code objects compiled from strings carry pseudo filenames such as
``<string>`` or ``<frozen importlib._bootstrap>``; those never name a file on
disk and are rejected.
"""

from __future__ import annotations

import os
from functools import lru_cache

from tracecov.core.errors import PathResolutionError

_PSEUDO_PREFIXES = ("<", "[")


def is_pseudo_path(path: str) -> bool:
    """True for interpreter pseudo filenames like ``<string>``."""
    return not path or path.startswith(_PSEUDO_PREFIXES)


@lru_cache(maxsize=4096)
def normalize_path(path: str) -> str:
    """Return the canonical identity for *path*.

    Raises:
        PathResolutionError: If *path* is empty or a pseudo filename.
    """
    if not isinstance(path, str):
        raise PathResolutionError.unresolvable(repr(path), "not a string")
    if is_pseudo_path(path):
        raise PathResolutionError.unresolvable(path, "pseudo filename")
    try:
        resolved = os.path.realpath(os.path.abspath(path))
    except (OSError, ValueError) as e:
        raise PathResolutionError.unresolvable(path, str(e)) from e
    return os.path.normcase(resolved)


def clear_path_cache() -> None:
    """Forget memoized normalizations (e.g. after a chdir in tests)."""
    normalize_path.cache_clear()
