# src/vantage/config.py
from __future__ import annotations

import contextvars
import logging
import os
import sys
from collections.abc import Mapping
from contextlib import contextmanager
from pathlib import Path
from typing import Any, Iterator, Literal, cast

import yaml
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict
from pydantic_settings.sources import PydanticBaseSettingsSource

from vantage.exceptions import ConfigurationError

MAIN_CONFIG_FILE = "vantage.yml"
LEGACY_REDIS_CONFIG_FILE = "redis.yml"
DEFAULT_CONFIG_ROOT = "config"
DEFAULT_ENVIRONMENT = "development"
DEFAULT_ADD_PARTICIPANT_PATH = "/vantage/add_participant"

# Checked in order; the first non-empty value wins.
ENVIRONMENT_VARIABLES = ("VANTAGE_ENV", "APP_ENV")

_FRAMEWORK_LOGGERS = {
    "django": "django",
    "flask": "flask.app",
}


def active_environment() -> str:
    """Name of the configuration environment selected by the process environment."""
    for name in ENVIRONMENT_VARIABLES:
        value = os.environ.get(name)
        if value:
            return value
    return DEFAULT_ENVIRONMENT


# ---------------------------------------------------------------------------
# Config files
# ---------------------------------------------------------------------------


class ConfigFiles:
    """
    Access to the YAML files under the configuration root.

    `vantage.yml` maps environment names to either a connection string or a
    mapping of options, plus an optional top-level `metrics` mapping of
    metric id -> URL. `redis.yml` is the legacy format mapping environment
    names to `host:port[/db]` strings.

    `${VAR}` references are expanded from the process environment before the
    YAML is parsed. Files are re-read on every call.
    """

    def __init__(self, root: str | Path | None = None) -> None:
        self._root = Path(root) if root is not None else None

    @property
    def root(self) -> Path:
        if self._root is not None:
            return self._root
        return Path(os.environ.get("VANTAGE_CONFIG_ROOT") or DEFAULT_CONFIG_ROOT)

    def path(self, basename: str = MAIN_CONFIG_FILE) -> Path:
        return self.root / basename

    def exists(self, basename: str = MAIN_CONFIG_FILE) -> bool:
        return self.path(basename).is_file()

    def load(self, basename: str = MAIN_CONFIG_FILE) -> dict[str, Any]:
        path = self.path(basename)
        try:
            text = path.read_text(encoding="utf-8")
        except OSError as e:
            raise ConfigurationError(f"Failed to read config file {path}: {e}") from e

        try:
            data = yaml.safe_load(os.path.expandvars(text))
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Failed to parse config file {path}: {e}") from e

        if data is None:
            return {}
        if not isinstance(data, dict):
            raise ConfigurationError(f"Config file {path} did not parse into a mapping")
        return cast(dict[str, Any], data)

    def section(self, environment: str, basename: str = MAIN_CONFIG_FILE) -> Any:
        """Entry for `environment`, or None when the file or the entry is missing."""
        if not self.exists(basename):
            return None
        return self.load(basename).get(environment)

    def __repr__(self) -> str:
        return f"ConfigFiles(root={str(self.root)!r})"


def section_options(section: Any) -> dict[str, Any]:
    """
    Turn an environment entry into settings input.

    A mapping is used as-is (keys as strings); a bare string is a connection
    URL.
    """
    if section is None:
        return {}
    if isinstance(section, Mapping):
        return {str(k): v for k, v in section.items()}
    if isinstance(section, str):
        return {"connection": section}
    raise ConfigurationError(
        f"Environment entry must be a connection string or a mapping, got {type(section).__name__}"
    )


# ---------------------------------------------------------------------------
# Framework awareness
# ---------------------------------------------------------------------------


def detect_framework() -> str | None:
    """Name of the host web framework when one has been imported."""
    for name in _FRAMEWORK_LOGGERS:
        if name in sys.modules:
            return name
    return None


def framework_defaults(framework: str | None, environment: str) -> dict[str, Any]:
    # Under a web framework only production collects by default.
    if framework is None:
        return {}
    return {"collecting": environment == "production"}


def framework_logger(framework: str | None) -> logging.Logger | None:
    if framework is None:
        return None
    return logging.getLogger(_FRAMEWORK_LOGGERS.get(framework, framework))


# ---------------------------------------------------------------------------
# Settings sources
# ---------------------------------------------------------------------------

_CONFIG_SECTION_CTX: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "VANTAGE_CONFIG_SECTION_CTX",
    default=None,
)

_DEFAULTS_CTX: contextvars.ContextVar[dict[str, Any] | None] = contextvars.ContextVar(
    "VANTAGE_DEFAULTS_CTX",
    default=None,
)


class _ContextMappingSettingsSource(PydanticBaseSettingsSource):
    """Settings source returning the mapping currently held by a context variable."""

    def __init__(
        self,
        settings_cls: type[BaseSettings],
        var: contextvars.ContextVar[dict[str, Any] | None],
    ) -> None:
        super().__init__(settings_cls)
        self._var = var

    def get_field_value(self, field: Any, field_name: str) -> tuple[Any, str, bool]:
        # The whole mapping is returned from __call__.
        raise NotImplementedError

    def __call__(self) -> dict[str, Any]:
        return dict(self._var.get() or {})


@contextmanager
def _settings_context(section: dict[str, Any], defaults: dict[str, Any]) -> Iterator[None]:
    section_token = _CONFIG_SECTION_CTX.set(section)
    defaults_token = _DEFAULTS_CTX.set(defaults)
    try:
        yield
    finally:
        _DEFAULTS_CTX.reset(defaults_token)
        _CONFIG_SECTION_CTX.reset(section_token)


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────


class LoggingSettings(BaseModel):
    level: Literal["CRITICAL", "ERROR", "WARNING", "INFO", "DEBUG"] = "ERROR"
    format: str = "%(asctime)-20s %(name)-30s %(levelname)-8s: %(message)s"


class PlaygroundSettings(BaseSettings):
    """
    Merged playground configuration.

    Precedence (highest → lowest):

    1. Init kwargs (explicit Playground options)
    2. Environment variables (VANTAGE_*)
    3. .env and .env.local
    4. Config file entry for the active environment
    5. Framework defaults
    6. Defaults in this class
    """

    model_config = SettingsConfigDict(
        env_prefix="VANTAGE_",
        env_file=(".env", ".env.local"),
        env_file_encoding="utf-8",
        env_nested_delimiter="__",
        extra="ignore",
        validate_default=True,
    )

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        # Earlier sources override later sources.
        return (
            init_settings,
            env_settings,
            dotenv_settings,
            _ContextMappingSettingsSource(settings_cls, _CONFIG_SECTION_CTX),
            _ContextMappingSettingsSource(settings_cls, _DEFAULTS_CTX),
        )

    collecting: bool = Field(True, description="Record participants and metric data.")
    load_path: Path = Field(Path("experiments"), description="Directory holding definition files.")
    add_participant_path: str = Field(
        DEFAULT_ADD_PARTICIPANT_PATH,
        description="Path of the add-participant action used by the JS callback.",
    )
    connection: str | dict[str, Any] | None = Field(
        None,
        description="Connection URL or adapter options used when autoconnecting.",
    )
    autoconnect: bool = Field(True, description="Connect to the datastore on construction.")
    eager_load: bool = Field(True, description="Load metrics and experiments on construction.")
    failover_on_datastore_error: bool = Field(
        False,
        description="Route datastore errors to the on_datastore_error hook instead of raising.",
    )
    use_js: bool = Field(False, description="Add participants through the JS callback.")

    logging: LoggingSettings = LoggingSettings()


def load_settings(
    config_files: ConfigFiles,
    environment: str | None = None,
    *,
    defaults: dict[str, Any] | None = None,
    **overrides: Any,
) -> PlaygroundSettings:
    """
    Build settings for `environment` (default: the active environment).

    `overrides` are init kwargs → highest precedence. `defaults` sit just
    above the class defaults (framework-aware defaults go here).
    """
    env = environment or active_environment()
    section = section_options(config_files.section(env))
    with _settings_context(section, defaults or {}):
        try:
            return PlaygroundSettings(**overrides)
        except ValidationError as e:
            raise ConfigurationError(f"Invalid configuration for {env}: {e}") from e
