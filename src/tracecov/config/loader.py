"""Configuration loading with pydantic-settings.

Supports loading configuration from multiple sources with precedence:
1. Direct kwargs (highest priority)
2. Environment variables (TRACECOV__SECTION__KEY)
3. An explicit config file, when one is named
4. Repo config (.tracecov/config.yaml)
5. Global config (~/.config/tracecov/config.yaml)
6. Built-in defaults (lowest priority)
"""

from pathlib import Path
from typing import Any

import yaml
from pydantic import ValidationError
from pydantic_settings import BaseSettings, PydanticBaseSettingsSource, SettingsConfigDict

from tracecov.config.models import (
    AnalysisConfig,
    InstrumentationConfig,
    LoggingConfig,
    TracecovConfig,
    TrackingConfig,
)
from tracecov.core.errors import ConfigError

GLOBAL_CONFIG_PATH = Path("~/.config/tracecov/config.yaml").expanduser()
REPO_CONFIG_NAME = Path(".tracecov") / "config.yaml"


def _load_yaml(path: Path) -> dict[str, Any]:
    if not path.exists():
        return {}
    try:
        with path.open() as f:
            data = yaml.safe_load(f) or {}
    except yaml.YAMLError as e:
        raise ConfigError.parse_error(str(path), str(e)) from e
    if not isinstance(data, dict):
        raise ConfigError.parse_error(str(path), "top level must be a mapping")
    return data


def _deep_merge(base: dict[str, Any], override: dict[str, Any]) -> dict[str, Any]:
    result = base.copy()
    for key, value in override.items():
        if key in result and isinstance(result[key], dict) and isinstance(value, dict):
            result[key] = _deep_merge(result[key], value)
        else:
            result[key] = value
    return result


class _YamlSource(PydanticBaseSettingsSource):
    """Settings source that reads from pre-loaded YAML config."""

    def __init__(self, settings_cls: type[BaseSettings], yaml_config: dict[str, Any]) -> None:
        super().__init__(settings_cls)
        self._yaml_config = yaml_config

    def get_field_value(
        self,
        field: Any,  # noqa: ARG002
        field_name: str,
    ) -> tuple[Any, str, bool]:
        val = self._yaml_config.get(field_name)
        return val, field_name, val is not None

    def __call__(self) -> dict[str, Any]:
        return self._yaml_config


def _make_settings_class(yaml_config: dict[str, Any]) -> type[BaseSettings]:
    """Create a Settings class with instance-based YAML source."""

    class TracecovSettings(BaseSettings):
        """Root config. Env vars: TRACECOV__LOGGING__LEVEL, TRACECOV__TRACKING__STRATEGY, etc."""

        model_config = SettingsConfigDict(
            env_prefix="TRACECOV__",
            env_nested_delimiter="__",
            case_sensitive=False,
        )

        logging: LoggingConfig = LoggingConfig()
        analysis: AnalysisConfig = AnalysisConfig()
        tracking: TrackingConfig = TrackingConfig()
        instrumentation: InstrumentationConfig = InstrumentationConfig()

        @classmethod
        def settings_customise_sources(
            cls,
            settings_cls: type[BaseSettings],
            init_settings: PydanticBaseSettingsSource,
            env_settings: PydanticBaseSettingsSource,
            dotenv_settings: PydanticBaseSettingsSource,  # noqa: ARG003
            file_secret_settings: PydanticBaseSettingsSource,  # noqa: ARG003
        ) -> tuple[PydanticBaseSettingsSource, ...]:
            # Precedence (first wins): init kwargs > env vars > yaml files
            return (init_settings, env_settings, _YamlSource(settings_cls, yaml_config))

    return TracecovSettings


TracecovSettings = _make_settings_class({})


def load_config(
    repo_root: Path | None = None,
    config_path: Path | str | None = None,
    **kwargs: Any,
) -> TracecovConfig:
    """Load config: defaults < global yaml < repo yaml < config_path < env vars < kwargs.

    Args:
        repo_root: Directory holding ``.tracecov/config.yaml``.
                   Defaults to current working directory.
        config_path: A YAML file that must exist, layered over both
                     discovered files.
        **kwargs: Override values (highest precedence), one per section.

    Returns:
        Fully resolved configuration object.

    Raises:
        ConfigError: On invalid YAML syntax, validation errors, or a
            missing ``config_path``.
    """
    repo_root = repo_root or Path.cwd()

    yaml_config = _load_yaml(GLOBAL_CONFIG_PATH)
    repo_config = _load_yaml(repo_root / REPO_CONFIG_NAME)
    if repo_config:
        yaml_config = _deep_merge(yaml_config, repo_config)
    if config_path is not None:
        explicit = Path(config_path).expanduser()
        if not explicit.is_file():
            raise ConfigError.file_not_found(str(explicit))
        yaml_config = _deep_merge(yaml_config, _load_yaml(explicit))

    settings_cls = _make_settings_class(yaml_config)
    try:
        settings = settings_cls(**kwargs)
    except ValidationError as e:
        err = e.errors()[0]
        field = ".".join(str(loc) for loc in err["loc"])
        raise ConfigError.invalid_value(field, err.get("input"), err["msg"]) from e
    return TracecovConfig.model_validate(settings.model_dump())
