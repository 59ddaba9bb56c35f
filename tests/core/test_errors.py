"""Tests for error types and codes."""

import pytest

from tracecov.core.errors import (
    AnalysisError,
    CollectorStateError,
    ConfigError,
    ErrorCode,
    InstrumentationError,
    InternalError,
    PathResolutionError,
    RecursionLimitExceeded,
    RelationshipInconsistency,
    StoreError,
    StoreInitError,
    TracecovError,
)


class TestErrorCode:
    """Error code value tests."""

    @pytest.mark.parametrize(
        ("code", "expected_range"),
        [
            (ErrorCode.CONFIG_PARSE_ERROR, 2000),
            (ErrorCode.CONFIG_INVALID_VALUE, 2000),
            (ErrorCode.ANALYSIS_PARSE_FAILED, 3000),
            (ErrorCode.ANALYSIS_TIMEOUT, 3000),
            (ErrorCode.PATH_UNRESOLVABLE, 4000),
            (ErrorCode.INSTRUMENTATION_RECURSION_LIMIT, 5000),
            (ErrorCode.RELATIONSHIP_INCONSISTENCY, 6000),
            (ErrorCode.STORE_INIT_FAILED, 6000),
            (ErrorCode.INTERNAL_ERROR, 9000),
        ],
    )
    def test_given_error_code_when_checked_then_in_correct_range(
        self, code: ErrorCode, expected_range: int
    ) -> None:
        """Error codes fall within their designated numeric range."""
        # Given
        error_code = code

        # When
        value = error_code.value

        # Then
        assert expected_range <= value < expected_range + 1000


class TestTracecovError:
    """Base error behavior tests."""

    def test_given_error_when_to_dict_then_serializes_all_fields(self) -> None:
        """Error serializes to dict with all required fields."""
        # Given
        error = TracecovError(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message="Test message",
            retryable=True,
            details={"key": "value"},
        )

        # When
        result = error.to_dict()

        # Then
        assert result == {
            "code": 2001,
            "error": "CONFIG_PARSE_ERROR",
            "message": "Test message",
            "retryable": True,
            "details": {"key": "value"},
        }

    def test_given_error_when_str_then_human_readable(self) -> None:
        """Error string representation is human readable."""
        # Given
        error = TracecovError(code=ErrorCode.INTERNAL_ERROR, message="Something broke")

        # When
        result = str(error)

        # Then
        assert result == "[9001] INTERNAL_ERROR: Something broke"

    def test_given_error_when_raised_then_catchable_as_exception(self) -> None:
        """Errors are real exceptions and keep their structured fields."""
        # Given
        error = StoreError.unknown_file("/a.py")

        # When / Then
        with pytest.raises(TracecovError) as exc_info:
            raise error
        assert exc_info.value.details == {"path": "/a.py"}


class TestConfigError:
    """ConfigError factory method tests."""

    def test_given_parse_failure_when_created_then_carries_path_and_reason(self) -> None:
        # Given / When
        error = ConfigError.parse_error("/etc/cfg.yaml", "bad indent")

        # Then
        assert error.code == ErrorCode.CONFIG_PARSE_ERROR
        assert error.details == {"path": "/etc/cfg.yaml", "reason": "bad indent"}

    def test_given_invalid_value_when_created_then_value_is_stringified(self) -> None:
        # Given / When
        error = ConfigError.invalid_value("analysis.timeout_sec", -1, "must be positive")

        # Then
        assert error.code == ErrorCode.CONFIG_INVALID_VALUE
        assert error.details["value"] == "-1"
        assert "analysis.timeout_sec" in error.message


class TestRecoverableErrors:
    """Factories for errors contained to a file or event."""

    def test_given_parse_failure_when_created_then_retryable_with_phase(self) -> None:
        # Given / When
        error = AnalysisError.parse_failed("/m.py", "invalid syntax", line=3)

        # Then
        assert error.retryable is True
        assert error.details == {
            "path": "/m.py",
            "reason": "invalid syntax",
            "line": 3,
            "phase": "parse",
        }

    def test_given_timeout_when_created_then_records_walk_phase(self) -> None:
        # Given / When
        error = AnalysisError.timeout("/m.py", 5.0, line=40)

        # Then
        assert error.code == ErrorCode.ANALYSIS_TIMEOUT
        assert error.details["phase"] == "walk"
        assert error.details["line"] == 40

    def test_given_recursion_limit_when_created_then_is_instrumentation_error(self) -> None:
        # Given / When
        error = RecursionLimitExceeded.exceeded("pkg.mod", 33, 32)

        # Then
        assert isinstance(error, InstrumentationError)
        assert error.code == ErrorCode.INSTRUMENTATION_RECURSION_LIMIT
        assert error.details == {"module": "pkg.mod", "depth": 33, "limit": 32, "phase": "load"}

    def test_given_pseudo_path_when_unresolvable_then_reason_kept(self) -> None:
        # Given / When
        error = PathResolutionError.unresolvable("<string>", "pseudo filename")

        # Then
        assert error.code == ErrorCode.PATH_UNRESOLVABLE
        assert error.details["reason"] == "pseudo filename"

    @pytest.mark.parametrize(
        ("error", "block_id"),
        [
            (RelationshipInconsistency.orphan("/m.py", "if:3", "for:1"), "if:3"),
            (RelationshipInconsistency.cycle("/m.py", "while:9"), "while:9"),
        ],
    )
    def test_given_relationship_problem_when_created_then_names_block(
        self, error: RelationshipInconsistency, block_id: str
    ) -> None:
        # Then
        assert error.code == ErrorCode.RELATIONSHIP_INCONSISTENCY
        assert error.details["block_id"] == block_id

    def test_given_collector_misuse_when_created_then_names_collector(self) -> None:
        # Given / When
        running = CollectorStateError.already_running("trace")
        idle = CollectorStateError.not_running("instrument")

        # Then
        assert running.details == {"collector": "trace"}
        assert "not running" in idle.message


class TestFatalErrors:
    """Store initialization and internal errors."""

    def test_given_store_init_failure_when_created_then_is_store_error(self) -> None:
        # Given / When
        error = StoreInitError.failed("out of memory")

        # Then
        assert isinstance(error, StoreError)
        assert error.code == ErrorCode.STORE_INIT_FAILED

    def test_given_internal_error_when_created_then_details_from_kwargs(self) -> None:
        # Given / When
        error = InternalError.unexpected("invariant broken", count=2, first="/m.py:3")

        # Then
        assert error.details == {"count": 2, "first": "/m.py:3"}
        assert error.message == "Internal error: invariant broken"
