"""Tests for structured logging."""

import json
import logging
from pathlib import Path

import pytest
import structlog
from structlog.testing import capture_logs

from tracecov.config.models import LoggingConfig, LogOutputConfig
from tracecov.core.logging import (
    clear_session_id,
    configure_logging,
    get_log_file_path,
    get_logger,
    get_session_id,
    is_muted,
    muted,
    set_session_id,
)


def _reset_logging() -> None:
    structlog.reset_defaults()
    root = logging.getLogger()
    for handler in list(root.handlers):
        handler.close()
    root.handlers.clear()


class TestSessionIdCorrelation:
    """Session ID context variable tests."""

    def setup_method(self) -> None:
        """Clear session ID before each test."""
        clear_session_id()

    def test_given_session_id_when_set_then_can_retrieve(self) -> None:
        """Session ID can be set and retrieved."""
        # Given
        session_id = "run-123"

        # When
        result = set_session_id(session_id)

        # Then
        assert result == session_id
        assert get_session_id() == session_id

    def test_given_no_id_when_set_then_generates_uuid(self) -> None:
        """Set generates UUID-based ID when none provided."""
        # Given
        # (no explicit ID)

        # When
        sid = set_session_id()

        # Then
        assert len(sid) == 12  # uuid4().hex[:12]
        assert get_session_id() == sid

    def test_given_set_id_when_clear_then_removes_id(self) -> None:
        """Clear removes the current session ID."""
        # Given
        set_session_id("to-clear")

        # When
        clear_session_id()

        # Then
        assert get_session_id() is None


class TestLoggingConfiguration:
    """Logging configuration tests."""

    def setup_method(self) -> None:
        _reset_logging()

    def teardown_method(self) -> None:
        _reset_logging()
        clear_session_id()

    def test_given_file_output_when_log_then_valid_json_with_session(self, tmp_path: Path) -> None:
        """JSON output carries level, timestamp and the active session id."""
        # Given
        log_file = tmp_path / "tracecov.log"
        config = LoggingConfig(
            level="INFO",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )
        configure_logging(config=config)
        set_session_id("abc123")

        # When
        get_logger("store").info("file_initialized", path="/m.py")

        # Then
        data = json.loads(log_file.read_text().strip().splitlines()[-1])
        assert data["event"] == "file_initialized"
        assert data["path"] == "/m.py"
        assert data["logger"] == "store"
        assert data["session_id"] == "abc123"
        assert data["level"] == "info"
        assert "timestamp" in data

    def test_given_file_output_when_configured_then_log_path_tracked(self, tmp_path: Path) -> None:
        # Given
        log_file = tmp_path / "logs" / "run.log"
        config = LoggingConfig(outputs=[LogOutputConfig(destination=str(log_file))])

        # When
        configure_logging(config=config)

        # Then
        assert get_log_file_path() == log_file
        assert log_file.parent.is_dir()

    def test_given_config_object_when_configure_then_takes_precedence(self, tmp_path: Path) -> None:
        """LoggingConfig object takes precedence over simple params."""
        # Given
        log_file = tmp_path / "test.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[LogOutputConfig(format="json", destination=str(log_file))],
        )

        # When - config's DEBUG should override the level="ERROR" param
        configure_logging(config=config, json_format=False, level="ERROR")
        get_logger().debug("debug msg")

        # Then
        assert "debug msg" in log_file.read_text()

    def test_given_multi_output_config_when_configure_then_levels_per_output(
        self, tmp_path: Path
    ) -> None:
        """Each output filters by its own level."""
        # Given
        debug_file = tmp_path / "debug.log"
        warn_file = tmp_path / "warn.log"
        config = LoggingConfig(
            level="DEBUG",
            outputs=[
                LogOutputConfig(format="json", destination=str(warn_file), level="WARNING"),
                LogOutputConfig(format="console", destination=str(debug_file)),
            ],
        )

        # When
        configure_logging(config=config)
        logger = get_logger()
        logger.debug("event_seen")
        logger.warning("block_reattached")

        # Then
        warn_content = warn_file.read_text()
        assert "block_reattached" in warn_content
        assert "event_seen" not in warn_content
        debug_content = debug_file.read_text()
        assert "event_seen" in debug_content
        assert "block_reattached" in debug_content


class TestMuted:
    """Dropping tracecov events for a stretch of code."""

    def test_given_muted_block_when_logging_then_only_outside_events_kept(self) -> None:
        # Given
        logger = get_logger("collectors.trace")

        # When
        with capture_logs() as captured:
            logger.info("before")
            with muted():
                inside = is_muted()
                logger.warning("dropped")
            logger.info("after")

        # Then
        assert inside is True
        assert is_muted() is False
        assert [entry["event"] for entry in captured] == ["before", "after"]
        assert captured[0]["logger"] == "collectors.trace"

    def test_given_unconfigured_structlog_when_muted_then_nothing_written(
        self, capsys: pytest.CaptureFixture[str]
    ) -> None:
        # Given
        structlog.reset_defaults()

        # When
        with muted():
            get_logger("store").debug("file_initialized")
        get_logger("store").debug("file_seen")

        # Then
        out = capsys.readouterr().out
        assert "file_initialized" not in out
        assert "file_seen" in out
