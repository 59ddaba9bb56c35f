"""Pydantic configuration models with env var support.

Configuration Hierarchy (highest to lowest precedence):
1. Direct kwargs to load_config()
2. Environment variables (TRACECOV__SECTION__KEY)
3. Repo YAML (.tracecov/config.yaml)
4. Global YAML (~/.config/tracecov/config.yaml)
5. Built-in defaults (this file)

Environment Variable Format:
    TRACECOV__<SECTION>__<KEY>=<VALUE>

Examples:
    TRACECOV__LOGGING__LEVEL=DEBUG
    TRACECOV__TRACKING__STRATEGY=instrument
    TRACECOV__ANALYSIS__TIMEOUT_SEC=10
"""

from pathlib import Path
from typing import Literal

from pydantic import BaseModel, Field, field_validator

LogLevel = Literal["DEBUG", "INFO", "WARNING", "ERROR", "CRITICAL"]
Strategy = Literal["trace", "instrument"]


class LogOutputConfig(BaseModel):
    """Single logging output configuration.

    Env vars: Not directly configurable via env (use YAML for multi-output).
    """

    format: Literal["json", "console"] = "console"
    destination: str = "stderr"  # stderr, stdout, or absolute file path
    level: LogLevel | None = None  # Inherits from parent if None

    @field_validator("destination")
    @classmethod
    def validate_destination(cls, v: str) -> str:
        if v in ("stderr", "stdout"):
            return v
        path = Path(v).expanduser()
        if not path.is_absolute():
            raise ValueError(f"File destination must be absolute path: {v}")
        return str(path)


class LoggingConfig(BaseModel):
    """Logging configuration.

    Env vars:
        TRACECOV__LOGGING__LEVEL: Log level (DEBUG, INFO, WARNING, ERROR, CRITICAL)
    """

    level: LogLevel = Field(
        default="WARNING",
        description="Root log level. DEBUG logs per-file tracking decisions.",
    )
    outputs: list[LogOutputConfig] = Field(default_factory=lambda: [LogOutputConfig()])


class AnalysisConfig(BaseModel):
    """Static analyzer configuration.

    Env vars:
        TRACECOV__ANALYSIS__STRUCTURAL_KEYWORDS_EXECUTABLE: Count else/try/finally lines
        TRACECOV__ANALYSIS__TIMEOUT_SEC: AST walk time limit per file
        TRACECOV__ANALYSIS__MAX_AST_LINES: Files above this use the lexical classifier
    """

    structural_keywords_executable: bool = Field(
        default=False,
        description="Treat else:/try:/finally: and closing-bracket lines as executable. "
        "They carry no independent effect, so the default excludes them.",
    )
    timeout_sec: float = Field(
        default=5.0,
        description="Time limit for the AST walk of a single file. On timeout the rest "
        "of the file is classified lexically and the file is marked degraded.",
    )
    max_ast_lines: int = Field(
        default=50_000,
        description="Files longer than this skip the AST entirely.",
    )

    @field_validator("timeout_sec")
    @classmethod
    def validate_timeout(cls, v: float) -> float:
        if v <= 0:
            raise ValueError(f"timeout_sec must be positive, got {v}")
        return v


class TrackingConfig(BaseModel):
    """Collection configuration.

    Env vars:
        TRACECOV__TRACKING__STRATEGY: trace | instrument
        TRACECOV__TRACKING__TRACK_THREADS: Also trace threads started during a session
    """

    strategy: Strategy = Field(
        default="trace",
        description="trace: sys.settrace line events. instrument: rewrite imported "
        "modules to call the tracking primitive.",
    )
    include: list[str] = Field(
        default_factory=list,
        description="fnmatch globs of files to track. Empty tracks everything not excluded.",
    )
    exclude: list[str] = Field(
        default_factory=list,
        description="fnmatch globs of files never to track. Wins over include.",
    )
    track_threads: bool = Field(
        default=True,
        description="Install the tracer for threads started while the session runs.",
    )
    auto_fix_blocks: bool = Field(
        default=True,
        description="Run the block relationship resolver as each file is initialized.",
    )


class InstrumentationConfig(BaseModel):
    """Source instrumentation configuration.

    Env vars:
        TRACECOV__INSTRUMENTATION__MAX_RECURSION_DEPTH: Nested load ceiling
        TRACECOV__INSTRUMENTATION__CACHE_ENABLED: Reuse instrumented output
    """

    max_recursion_depth: int = Field(
        default=32,
        description="Ceiling on nested intercepted loads. Past it, the module "
        "being loaded runs uninstrumented.",
    )
    excluded_modules: list[str] = Field(
        default_factory=list,
        description="fnmatch globs on module names never instrumented, "
        "in addition to tracecov itself.",
    )
    cache_enabled: bool = Field(
        default=True,
        description="Cache instrumented source by (path, content hash).",
    )

    @field_validator("max_recursion_depth")
    @classmethod
    def validate_depth(cls, v: int) -> int:
        if v < 1:
            raise ValueError(f"max_recursion_depth must be >= 1, got {v}")
        return v


class TracecovConfig(BaseModel):
    """Root configuration for tracecov.

    All settings can be configured via:
    1. Environment variables: TRACECOV__SECTION__KEY
    2. YAML config files (repo or global)
    3. Direct kwargs to load_config()
    """

    logging: LoggingConfig = Field(default_factory=LoggingConfig)
    analysis: AnalysisConfig = Field(default_factory=AnalysisConfig)
    tracking: TrackingConfig = Field(default_factory=TrackingConfig)
    instrumentation: InstrumentationConfig = Field(default_factory=InstrumentationConfig)
