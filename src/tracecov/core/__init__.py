"""Core module exports."""

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
from tracecov.core.filters import PathFilter, matches_glob
from tracecov.core.logging import (
    clear_session_id,
    configure_logging,
    get_logger,
    get_session_id,
    set_session_id,
)
from tracecov.core.paths import clear_path_cache, is_pseudo_path, normalize_path

__all__ = [
    # Errors
    "AnalysisError",
    "CollectorStateError",
    "ConfigError",
    "ErrorCode",
    "InstrumentationError",
    "InternalError",
    "PathResolutionError",
    "RecursionLimitExceeded",
    "RelationshipInconsistency",
    "StoreError",
    "StoreInitError",
    "TracecovError",
    # Logging
    "clear_session_id",
    "configure_logging",
    "get_logger",
    "get_session_id",
    "set_session_id",
    # Paths
    "PathFilter",
    "clear_path_cache",
    "is_pseudo_path",
    "matches_glob",
    "normalize_path",
]
