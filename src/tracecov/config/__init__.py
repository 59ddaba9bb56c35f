"""Config module exports."""

from tracecov.config.loader import TracecovSettings, load_config
from tracecov.config.models import (
    AnalysisConfig,
    InstrumentationConfig,
    LoggingConfig,
    LogOutputConfig,
    TracecovConfig,
    TrackingConfig,
)

__all__ = [
    "load_config",
    "AnalysisConfig",
    "InstrumentationConfig",
    "LoggingConfig",
    "LogOutputConfig",
    "TracecovConfig",
    "TracecovSettings",
    "TrackingConfig",
]
