"""Tests for the coverage session lifecycle."""

import importlib
import importlib.util
from collections.abc import Callable
from pathlib import Path
from types import ModuleType

import pytest

from tracecov.config.models import LoggingConfig, LogOutputConfig, TracecovConfig, TrackingConfig
from tracecov.core.errors import CollectorStateError, StoreError, StoreInitError
from tracecov.core.logging import get_log_file_path, get_session_id
from tracecov.core.paths import normalize_path
from tracecov.session import CoverageSession
from tracecov.store.patchup import find_violations
from tracecov.store.store import CoverageStore

BRANCHES = """
def check(x):
    if x > 0:
        y = 1
    else:
        y = 2
    return y
"""


def _config(root: Path, strategy: str = "trace") -> TracecovConfig:
    return TracecovConfig(
        tracking=TrackingConfig(strategy=strategy, include=[normalize_path(str(root)) + "/*"])
    )


def _load(path: str, name: str) -> ModuleType:
    spec = importlib.util.spec_from_file_location(name, path)
    assert spec is not None and spec.loader is not None
    module = importlib.util.module_from_spec(spec)
    spec.loader.exec_module(module)
    return module


class TestTraceSession:
    """A full run with the trace strategy."""

    def test_given_session_when_code_runs_and_asserts_then_three_states_reported(
        self, tmp_path: Path, write_module: Callable[[str, str], str]
    ) -> None:
        # Given
        path = write_module("session_branches.py", BRANCHES)
        unused = write_module("session_unused.py", "def never():\n    return 0\n")
        session = CoverageSession(_config(tmp_path))

        # When
        session.start()
        try:
            session.register_file(unused)
            module = _load(path, "tracecov_session_branches")
            module.check(5)
            session.on_assertion([(path, 3), (path, 5)])
        finally:
            snapshot = session.stop()

        # Then
        record = snapshot.files[path]
        assert record.lines[3].executed is True
        assert record.lines[3].covered is True
        assert record.lines[5].executable is True
        assert record.lines[5].executed is False
        assert record.lines[5].covered is False
        assert record.lines[4].executed is False  # else: is structural
        assert snapshot.files[unused].discovered is True
        assert snapshot.files[unused].lines_executed == 0
        assert snapshot.summary.total_files == 2
        assert snapshot.summary.lines_covered == 1
        assert find_violations(session.store) == []

    def test_given_partial_run_when_threshold_checked_then_compared_to_rate(
        self, tmp_path: Path, write_module: Callable[[str, str], str]
    ) -> None:
        # Given
        path = write_module("session_threshold.py", BRANCHES)
        with CoverageSession(_config(tmp_path)) as session:
            _load(path, "tracecov_session_threshold").check(5)

        # When / Then
        assert session.meets_threshold(50.0)
        assert not session.meets_threshold(100.0)
        assert not session.meets_threshold(1.0, covered=True)

    def test_given_context_manager_when_exited_then_stopped_and_id_cleared(
        self, tmp_path: Path
    ) -> None:
        # Given
        session = CoverageSession(_config(tmp_path))

        # When
        with session:
            running = session.is_running
            during = get_session_id()

        # Then
        assert running is True
        assert during == session.session_id
        assert session.is_running is False
        assert get_session_id() is None

    def test_given_restart_when_started_then_previous_records_dropped(
        self, tmp_path: Path, write_module: Callable[[str, str], str]
    ) -> None:
        # Given
        path = write_module("session_restart.py", BRANCHES)
        session = CoverageSession(_config(tmp_path))
        with session:
            session.register_file(path)

        # When
        session.start()
        session.stop()

        # Then
        assert path not in session.store


class TestInstrumentSession:
    def test_given_instrument_strategy_when_imported_then_hits_and_coverage_mapped(
        self, import_root: Path
    ) -> None:
        # Given
        (import_root / "tc_session_inst.py").write_text(BRANCHES.lstrip("\n"))
        importlib.invalidate_caches()
        path = normalize_path(str(import_root / "tc_session_inst.py"))
        session = CoverageSession(_config(import_root, "instrument"))

        # When
        session.start()
        try:
            module = importlib.import_module("tc_session_inst")
            module.check(-1)
            instrumented_line = session.sourcemaps[path].get_instrumented_line(5)
            session.on_assertion([(path, instrumented_line)])
        finally:
            snapshot = session.stop()

        # Then
        record = snapshot.files[path]
        assert record.instrumented is True
        assert record.lines[5].covered is True
        assert record.lines[3].executed is False
        assert record.functions["check:1"].executed is True


class TestFileDetails:
    def test_given_registered_file_when_details_requested_then_lines_and_tree(
        self, write_module: Callable[[str, str], str]
    ) -> None:
        # Given
        path = write_module("session_details.py", BRANCHES)
        session = CoverageSession()
        session.register_file(path)

        # When
        details = session.get_file_details(path)

        # Then
        assert details["path"] == path
        assert details["discovered"] is True
        assert [line["line"] for line in details["lines"]][:6] == [1, 2, 3, 4, 5, 6]
        assert details["lines"][3]["executable"] is False  # else:
        assert details["blocks"]["id"] == "root"
        assert details["blocks"]["children"][0]["id"] == "function:1"
        assert details["functions"][0]["id"] == "check:1"

    def test_given_unknown_file_when_details_requested_then_store_error(
        self, tmp_path: Path
    ) -> None:
        with pytest.raises(StoreError):
            CoverageSession().get_file_details(tmp_path / "missing.py")

    def test_given_unreadable_file_when_registered_then_degraded(self, tmp_path: Path) -> None:
        # Given
        session = CoverageSession()

        # When
        path = session.register_file(tmp_path / "missing.py")

        # Then
        assert path is not None
        assert session.store.require_file(path).degraded is True


class TestSessionErrors:
    def test_given_wrong_store_type_when_created_then_store_init_error(self) -> None:
        with pytest.raises(StoreInitError):
            CoverageSession(store=object())  # type: ignore[arg-type]

    def test_given_idle_session_when_stopped_then_state_error(self) -> None:
        with pytest.raises(CollectorStateError):
            CoverageSession().stop()

    def test_given_running_session_when_started_again_then_state_error(
        self, tmp_path: Path
    ) -> None:
        # Given
        session = CoverageSession(_config(tmp_path))
        session.start()

        # When / Then
        try:
            with pytest.raises(CollectorStateError):
                session.start()
        finally:
            session.stop()

    def test_given_existing_store_when_session_created_then_shared(self) -> None:
        store = CoverageStore()
        assert CoverageSession(store=store).store is store


class TestSessionLogging:
    """The session applies its logging configuration when it starts."""

    @pytest.mark.parametrize(
        ("level", "expected", "absent"),
        [
            ("WARNING", [], ["session_started", "trace_installed", "session_stopped"]),
            ("INFO", ["session_started", "session_stopped"], ["trace_installed"]),
            ("DEBUG", ["session_started", "trace_installed", "trace_removed"], []),
        ],
    )
    def test_given_configured_level_when_session_runs_then_file_output_filtered(
        self, tmp_path: Path, level: str, expected: list[str], absent: list[str]
    ) -> None:
        # Given
        log_file = tmp_path / "logs" / "session.log"
        config = TracecovConfig(
            tracking=TrackingConfig(include=[normalize_path(str(tmp_path)) + "/*"]),
            logging=LoggingConfig(
                level=level,
                outputs=[LogOutputConfig(format="json", destination=str(log_file))],
            ),
        )
        session = CoverageSession(config)

        # When
        with session:
            pass

        # Then
        content = log_file.read_text()
        assert get_log_file_path() == log_file
        for event in expected:
            assert f'"event": "{event}"' in content
        for event in absent:
            assert f'"event": "{event}"' not in content
