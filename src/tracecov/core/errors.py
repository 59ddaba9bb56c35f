"""tracecov error types with typed error codes.

Error code ranges:
- 2xxx: Config
- 3xxx: Analysis
- 4xxx: Collection
- 5xxx: Instrumentation
- 6xxx: Store
- 9xxx: Internal

Everything below 6xxx is recoverable: it is contained to the file or event
that raised it and logged. Only ``StoreInitError`` is fatal to a session.
"""

from dataclasses import dataclass, field
from enum import IntEnum
from typing import Any


class ErrorCode(IntEnum):
    """Typed error codes for programmatic handling."""

    # Config (2xxx)
    CONFIG_PARSE_ERROR = 2001
    CONFIG_INVALID_VALUE = 2002
    CONFIG_FILE_NOT_FOUND = 2004

    # Analysis (3xxx)
    ANALYSIS_PARSE_FAILED = 3001
    ANALYSIS_TIMEOUT = 3002

    # Collection (4xxx)
    PATH_UNRESOLVABLE = 4001
    COLLECTOR_STATE = 4002

    # Instrumentation (5xxx)
    INSTRUMENTATION_FAILED = 5001
    INSTRUMENTATION_RECURSION_LIMIT = 5002

    # Store (6xxx)
    RELATIONSHIP_INCONSISTENCY = 6001
    STORE_INIT_FAILED = 6002
    UNKNOWN_FILE = 6003

    # Internal (9xxx)
    INTERNAL_ERROR = 9001


@dataclass(frozen=True, slots=True)
class TracecovError(Exception):
    """Base error with structured context for log events."""

    code: ErrorCode
    message: str
    retryable: bool = False
    details: dict[str, Any] = field(default_factory=dict)

    @property
    def error_name(self) -> str:
        """String identifier for logging (e.g., 'ANALYSIS_PARSE_FAILED')."""
        return self.code.name

    def to_dict(self) -> dict[str, Any]:
        """Serialize for structured log output."""
        return {
            "code": self.code.value,
            "error": self.error_name,
            "message": self.message,
            "retryable": self.retryable,
            "details": self.details,
        }

    def __str__(self) -> str:
        return f"[{self.code.value}] {self.error_name}: {self.message}"


class ConfigError(TracecovError):
    """Configuration-related errors."""

    @classmethod
    def parse_error(cls, path: str, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_PARSE_ERROR,
            message=f"Failed to parse config at {path}: {reason}",
            details={"path": path, "reason": reason},
        )

    @classmethod
    def invalid_value(cls, field: str, value: Any, reason: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_INVALID_VALUE,
            message=f"Invalid value for '{field}': {reason}",
            details={"field": field, "value": str(value), "reason": reason},
        )

    @classmethod
    def file_not_found(cls, path: str) -> "ConfigError":
        return cls(
            code=ErrorCode.CONFIG_FILE_NOT_FOUND,
            message=f"Config file not found: {path}",
            details={"path": path},
        )


class AnalysisError(TracecovError):
    """Static analysis failed; recoverable via the lexical classifier."""

    @classmethod
    def parse_failed(cls, path: str, reason: str, line: int | None = None) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_PARSE_FAILED,
            message=f"Failed to parse {path}: {reason}",
            retryable=True,
            details={"path": path, "reason": reason, "line": line, "phase": "parse"},
        )

    @classmethod
    def timeout(cls, path: str, timeout_sec: float, line: int | None = None) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_TIMEOUT,
            message=f"Analysis of {path} exceeded {timeout_sec}s",
            retryable=True,
            details={"path": path, "timeout_sec": timeout_sec, "line": line, "phase": "walk"},
        )

    @classmethod
    def too_large(cls, path: str, line_count: int, limit: int) -> "AnalysisError":
        return cls(
            code=ErrorCode.ANALYSIS_TIMEOUT,
            message=f"{path} has {line_count} lines, above the AST limit of {limit}",
            details={"path": path, "line_count": line_count, "limit": limit, "phase": "parse"},
        )


class PathResolutionError(TracecovError):
    """A code object's filename could not be mapped to a real file."""

    @classmethod
    def unresolvable(cls, path: str, reason: str) -> "PathResolutionError":
        return cls(
            code=ErrorCode.PATH_UNRESOLVABLE,
            message=f"Cannot resolve path {path!r}: {reason}",
            details={"path": path, "reason": reason},
        )


class CollectorStateError(TracecovError):
    """Lifecycle misuse: start while running, stop while idle."""

    @classmethod
    def already_running(cls, name: str) -> "CollectorStateError":
        return cls(
            code=ErrorCode.COLLECTOR_STATE,
            message=f"Collector '{name}' is already running",
            details={"collector": name},
        )

    @classmethod
    def not_running(cls, name: str) -> "CollectorStateError":
        return cls(
            code=ErrorCode.COLLECTOR_STATE,
            message=f"Collector '{name}' is not running",
            details={"collector": name},
        )


class InstrumentationError(TracecovError):
    """A file could not be instrumented; it runs uninstrumented instead."""

    @classmethod
    def failed(cls, path: str, reason: str, line: int | None = None) -> "InstrumentationError":
        return cls(
            code=ErrorCode.INSTRUMENTATION_FAILED,
            message=f"Failed to instrument {path}: {reason}",
            details={"path": path, "reason": reason, "line": line, "phase": "transform"},
        )


class RecursionLimitExceeded(InstrumentationError):
    """Module-load interception recursed past its ceiling."""

    @classmethod
    def exceeded(cls, module: str, depth: int, limit: int) -> "RecursionLimitExceeded":
        return cls(
            code=ErrorCode.INSTRUMENTATION_RECURSION_LIMIT,
            message=f"Instrumenting '{module}' reached depth {depth} (limit {limit})",
            details={"module": module, "depth": depth, "limit": limit, "phase": "load"},
        )


class RelationshipInconsistency(TracecovError):
    """A block had no resolvable parent and was reattached to root."""

    @classmethod
    def orphan(cls, path: str, block_id: str, parent_id: str | None) -> "RelationshipInconsistency":
        return cls(
            code=ErrorCode.RELATIONSHIP_INCONSISTENCY,
            message=f"Block '{block_id}' in {path} has unresolved parent '{parent_id}'",
            details={"path": path, "block_id": block_id, "parent_id": parent_id},
        )

    @classmethod
    def cycle(cls, path: str, block_id: str) -> "RelationshipInconsistency":
        return cls(
            code=ErrorCode.RELATIONSHIP_INCONSISTENCY,
            message=f"Block '{block_id}' in {path} is part of a parent cycle",
            details={"path": path, "block_id": block_id},
        )


class StoreError(TracecovError):
    """Data store errors."""

    @classmethod
    def unknown_file(cls, path: str) -> "StoreError":
        return cls(
            code=ErrorCode.UNKNOWN_FILE,
            message=f"File is not tracked: {path}",
            details={"path": path},
        )


class StoreInitError(StoreError):
    """The data store could not be initialized. Fatal to the session."""

    @classmethod
    def failed(cls, reason: str) -> "StoreInitError":
        return cls(
            code=ErrorCode.STORE_INIT_FAILED,
            message=f"Coverage store initialization failed: {reason}",
            details={"reason": reason},
        )


class InternalError(TracecovError):
    """Internal/unexpected errors."""

    @classmethod
    def unexpected(cls, reason: str, **details: Any) -> "InternalError":
        return cls(
            code=ErrorCode.INTERNAL_ERROR,
            message=f"Internal error: {reason}",
            details=details,
        )
