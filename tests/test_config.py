from __future__ import annotations

import logging
import sys
import types
from pathlib import Path

import pytest

from vantage.config import (
    ConfigFiles,
    active_environment,
    detect_framework,
    framework_defaults,
    framework_logger,
    load_settings,
    section_options,
)
from vantage.exceptions import ConfigurationError


# ─────────────────────────────────────────────────────────────
# Environment selection
# ─────────────────────────────────────────────────────────────


def test_active_environment_defaults_to_development() -> None:
    assert active_environment() == "development"


def test_active_environment_prefers_vantage_env(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("APP_ENV", "staging")
    assert active_environment() == "staging"

    monkeypatch.setenv("VANTAGE_ENV", "production")
    assert active_environment() == "production"


def test_active_environment_skips_empty_values(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.setenv("VANTAGE_ENV", "")
    monkeypatch.setenv("APP_ENV", "test")
    assert active_environment() == "test"


# ─────────────────────────────────────────────────────────────
# Config files
# ─────────────────────────────────────────────────────────────


def test_config_files_default_root_is_relative_config_dir(monkeypatch: pytest.MonkeyPatch) -> None:
    assert ConfigFiles().root == Path("config")

    monkeypatch.setenv("VANTAGE_CONFIG_ROOT", "/etc/vantage")
    assert ConfigFiles().root == Path("/etc/vantage")
    assert ConfigFiles("elsewhere").root == Path("elsewhere")


def test_config_files_load_expands_environment_variables(write_file, monkeypatch: pytest.MonkeyPatch) -> None:
    write_file("config/vantage.yml", "production:\n  adapter: redis\n  host: ${REDIS_HOST}\n")
    monkeypatch.setenv("REDIS_HOST", "cache.internal")

    files = ConfigFiles()
    assert files.exists()
    assert files.load() == {"production": {"adapter": "redis", "host": "cache.internal"}}
    assert files.section("production") == {"adapter": "redis", "host": "cache.internal"}
    assert files.section("staging") is None


def test_config_files_missing_file_has_no_sections() -> None:
    files = ConfigFiles()
    assert not files.exists()
    assert files.section("development") is None


def test_config_files_empty_file_loads_as_empty_mapping(write_file) -> None:
    write_file("config/vantage.yml", "")
    assert ConfigFiles().load() == {}


def test_config_files_rejects_non_mapping_root(write_file) -> None:
    write_file("config/vantage.yml", "- just\n- a list\n")
    with pytest.raises(ConfigurationError, match="mapping"):
        ConfigFiles().load()


def test_config_files_wraps_yaml_errors(write_file) -> None:
    write_file("config/vantage.yml", "development: [unclosed\n")
    with pytest.raises(ConfigurationError, match="parse"):
        ConfigFiles().load()


def test_section_options_string_becomes_connection() -> None:
    assert section_options("redis://localhost:6379") == {"connection": "redis://localhost:6379"}
    assert section_options(None) == {}
    assert section_options({1: "x"}) == {"1": "x"}
    with pytest.raises(ConfigurationError):
        section_options(42)


# ─────────────────────────────────────────────────────────────
# Framework awareness
# ─────────────────────────────────────────────────────────────


def test_detect_framework_reads_imported_modules(monkeypatch: pytest.MonkeyPatch) -> None:
    monkeypatch.delitem(sys.modules, "django", raising=False)
    monkeypatch.delitem(sys.modules, "flask", raising=False)
    assert detect_framework() is None

    monkeypatch.setitem(sys.modules, "flask", types.ModuleType("flask"))
    assert detect_framework() == "flask"


def test_framework_defaults_collect_only_in_production() -> None:
    assert framework_defaults(None, "production") == {}
    assert framework_defaults("django", "production") == {"collecting": True}
    assert framework_defaults("django", "development") == {"collecting": False}


def test_framework_logger() -> None:
    assert framework_logger(None) is None
    assert framework_logger("flask") is logging.getLogger("flask.app")


# ─────────────────────────────────────────────────────────────
# Settings
# ─────────────────────────────────────────────────────────────


def test_load_settings_defaults() -> None:
    settings = load_settings(ConfigFiles())

    assert settings.collecting is True
    assert settings.load_path == Path("experiments")
    assert settings.add_participant_path == "/vantage/add_participant"
    assert settings.connection is None
    assert settings.autoconnect is True
    assert settings.failover_on_datastore_error is False
    assert settings.logging.level == "ERROR"


def test_load_settings_precedence(write_file, monkeypatch: pytest.MonkeyPatch) -> None:
    write_file(
        "config/vantage.yml",
        "test:\n  adapter: redis\n  collecting: false\n  load_path: from_file\n  use_js: true\n",
    )
    monkeypatch.setenv("VANTAGE_LOAD_PATH", "from_env")

    settings = load_settings(
        ConfigFiles(),
        "test",
        defaults={"collecting": True, "eager_load": False},
        use_js=False,
    )

    assert settings.collecting is False  # file beats framework defaults
    assert settings.eager_load is False  # defaults beat class defaults
    assert settings.load_path == Path("from_env")  # env beats file
    assert settings.use_js is False  # explicit options beat everything


def test_load_settings_string_section_is_connection(write_file) -> None:
    write_file("config/vantage.yml", "development: redis://localhost:6379/2\n")
    assert load_settings(ConfigFiles()).connection == "redis://localhost:6379/2"


def test_load_settings_dotenv(write_file) -> None:
    write_file(".env", "VANTAGE_COLLECTING=false\nVANTAGE_LOGGING__LEVEL=DEBUG\n")
    settings = load_settings(ConfigFiles())
    assert settings.collecting is False
    assert settings.logging.level == "DEBUG"


def test_load_settings_wraps_validation_errors() -> None:
    with pytest.raises(ConfigurationError, match="development"):
        load_settings(ConfigFiles(), collecting="not-a-bool")
