"""Root conftest.py for test configuration.

Ensures local src/ directory takes priority over any installed packages.
"""

import importlib
import logging
import sys
import textwrap
from collections.abc import Callable, Iterator
from pathlib import Path

import pytest
import structlog

# Insert local src directory at the beginning of sys.path
# This ensures that the local tracecov package is used, not any installed one
_src_dir = Path(__file__).parent.parent / "src"
if str(_src_dir) not in sys.path:
    sys.path.insert(0, str(_src_dir))

# Force reimport of tracecov modules if already imported
for module_name in list(sys.modules.keys()):
    if module_name.startswith("tracecov"):
        del sys.modules[module_name]

from tracecov.core.logging import clear_session_id  # noqa: E402
from tracecov.core.paths import clear_path_cache, normalize_path  # noqa: E402
from tracecov.store.store import CoverageStore  # noqa: E402


@pytest.fixture(autouse=True)
def _isolate_state() -> Iterator[None]:
    """Path memoization and the session id never leak between tests."""
    clear_path_cache()
    clear_session_id()
    yield
    clear_session_id()


@pytest.fixture(autouse=True)
def _restore_logging() -> Iterator[None]:
    """Sessions configure logging globally; put it back after each test."""
    config = structlog.get_config()
    root = logging.getLogger()
    handlers, level = list(root.handlers), root.level
    yield
    structlog.configure(**config)
    for handler in root.handlers:
        if handler not in handlers:
            handler.close()
    root.handlers[:] = handlers
    root.setLevel(level)


@pytest.fixture
def store() -> CoverageStore:
    return CoverageStore()


@pytest.fixture
def write_module(tmp_path: Path) -> Callable[[str, str], str]:
    """Write dedented source under tmp_path; returns the normalized path."""

    def _write(name: str, source: str) -> str:
        path = tmp_path / name
        path.parent.mkdir(parents=True, exist_ok=True)
        path.write_text(textwrap.dedent(source).lstrip("\n"))
        return normalize_path(str(path))

    return _write


@pytest.fixture
def import_root(tmp_path: Path, monkeypatch: pytest.MonkeyPatch) -> Iterator[Path]:
    """tmp_path on sys.path; modules imported from it are dropped afterwards."""
    monkeypatch.syspath_prepend(str(tmp_path))
    before = set(sys.modules)
    importlib.invalidate_caches()
    yield tmp_path
    roots = (str(tmp_path), normalize_path(str(tmp_path)))
    for name in set(sys.modules) - before:
        origin = getattr(sys.modules.get(name), "__file__", None) or ""
        if origin.startswith(roots):
            del sys.modules[name]
