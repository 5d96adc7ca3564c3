"""Tests for Guion settings."""

import json
from pathlib import Path

import pytest
from pydantic import ValidationError

from guion.config import (
    GuionSettings,
    get_settings,
    get_settings_for_cli,
    reset_settings,
    set_settings,
)
from guion.exceptions import ConfigurationError


class TestDefaults:
    """Default values."""

    def test_defaults(self, monkeypatch):
        monkeypatch.delenv("GUION_DATABASE_PATH", raising=False)
        settings = GuionSettings()

        assert settings.database_path == Path.cwd() / "guion.db"
        assert settings.store_batch_size == 200
        assert settings.progress_update_interval == 0.1
        assert settings.fountain_batch_size == 100
        assert settings.fdx_batch_size == 10
        assert settings.chapter_heading_level == 2
        assert settings.order_index_base == 1
        assert settings.export_chunk_size == 1024 * 1024
        assert settings.max_workers == 4
        assert settings.log_level == "WARNING"
        assert settings.log_format == "console"

    def test_memory_database_path_kept(self):
        assert str(GuionSettings(database_path=":memory:").database_path) == ":memory:"


class TestEnvironment:
    """GUION_ environment variables."""

    def test_env_values(self, monkeypatch, tmp_path):
        monkeypatch.setenv("GUION_EXPORT_CHUNK_SIZE", "4096")
        monkeypatch.setenv("GUION_LOG_LEVEL", "debug")
        monkeypatch.setenv("GUION_DATABASE_PATH", str(tmp_path / "env.db"))

        settings = GuionSettings()

        assert settings.export_chunk_size == 4096
        assert settings.log_level == "DEBUG"
        assert settings.database_path == (tmp_path / "env.db").resolve()

    def test_get_settings_reads_env_after_reset(self, monkeypatch):
        monkeypatch.setenv("GUION_MAX_WORKERS", "9")
        reset_settings()
        assert get_settings().max_workers == 9

    def test_set_settings(self):
        custom = GuionSettings(max_workers=2)
        set_settings(custom)
        assert get_settings() is custom


class TestValidation:
    """Invalid values are rejected."""

    @pytest.mark.parametrize(
        "field,value",
        [
            ("chapter_heading_level", 0),
            ("chapter_heading_level", 7),
            ("export_chunk_size", 0),
            ("progress_update_interval", -1.0),
            ("store_batch_size", 0),
            ("max_workers", 0),
            ("log_level", "LOUD"),
            ("log_format", "xml"),
        ],
    )
    def test_rejected(self, field, value):
        with pytest.raises(ValidationError):
            GuionSettings(**{field: value})

    def test_path_field_rejects_collections(self):
        with pytest.raises(ValidationError):
            GuionSettings(database_path={"not": "a path"})

    def test_log_values_normalised(self):
        settings = GuionSettings(log_level="info", log_format="JSON")
        assert settings.log_level == "INFO"
        assert settings.log_format == "json"


class TestFromFile:
    """Configuration files."""

    def test_yaml(self, tmp_path):
        config = tmp_path / "guion.yaml"
        config.write_text("export_chunk_size: 2048\nchapter_heading_level: 3\n")

        settings = GuionSettings.from_file(config)

        assert settings.export_chunk_size == 2048
        assert settings.chapter_heading_level == 3

    def test_empty_yaml(self, tmp_path):
        config = tmp_path / "empty.yml"
        config.write_text("")
        assert GuionSettings.from_file(config).max_workers == 4

    def test_toml(self, tmp_path):
        config = tmp_path / "guion.toml"
        config.write_text('log_level = "ERROR"\nmax_workers = 2\n')

        settings = GuionSettings.from_file(config)

        assert settings.log_level == "ERROR"
        assert settings.max_workers == 2

    def test_json(self, tmp_path):
        config = tmp_path / "guion.json"
        config.write_text(json.dumps({"order_index_base": 0}))
        assert GuionSettings.from_file(config).order_index_base == 0

    def test_unsupported_format(self, tmp_path):
        config = tmp_path / "guion.ini"
        config.write_text("[guion]\n")

        with pytest.raises(ConfigurationError) as exc_info:
            GuionSettings.from_file(config)
        assert exc_info.value.details["detected_format"] == ".ini"

    def test_missing_file(self, tmp_path):
        with pytest.raises(FileNotFoundError):
            GuionSettings.from_file(tmp_path / "absent.yaml")

    def test_common_key_mistake(self, tmp_path):
        config = tmp_path / "guion.yaml"
        config.write_text("chunk_size: 10\n")

        with pytest.raises(ConfigurationError) as exc_info:
            GuionSettings.from_file(config)
        assert exc_info.value.hint == "Use 'export_chunk_size' instead of 'chunk_size'"


class TestPrecedence:
    """CLI overrides beat files, files beat the environment."""

    def test_file_beats_env(self, tmp_path, monkeypatch):
        monkeypatch.setenv("GUION_MAX_WORKERS", "8")
        config = tmp_path / "guion.yaml"
        config.write_text("max_workers: 3\n")

        settings = GuionSettings.from_multiple_sources(config_files=[config])

        assert settings.max_workers == 3

    def test_later_file_wins(self, tmp_path):
        first = tmp_path / "a.yaml"
        first.write_text("max_workers: 3\nfdx_batch_size: 7\n")
        second = tmp_path / "b.json"
        second.write_text(json.dumps({"max_workers": 5}))

        settings = GuionSettings.from_multiple_sources(config_files=[first, second])

        assert settings.max_workers == 5
        assert settings.fdx_batch_size == 7

    def test_cli_beats_file(self, tmp_path):
        config = tmp_path / "guion.yaml"
        config.write_text("log_level: ERROR\n")

        settings = GuionSettings.from_multiple_sources(
            config_files=[config], cli_args={"log_level": "DEBUG", "debug": None}
        )

        assert settings.log_level == "DEBUG"
        assert settings.debug is False

    def test_missing_file_skipped(self, tmp_path):
        settings = GuionSettings.from_multiple_sources(
            config_files=[tmp_path / "absent.yaml"]
        )
        assert settings.max_workers == 4


class TestGetSettingsForCli:
    """Settings resolution for the command line."""

    def test_config_file_and_overrides(self, tmp_path):
        config = tmp_path / "guion.toml"
        config.write_text("max_workers = 6\n")

        settings = get_settings_for_cli(config, {"debug": True})

        assert settings.max_workers == 6
        assert settings.debug is True

    def test_missing_config_file(self, tmp_path):
        missing = tmp_path / "absent.yaml"

        with pytest.raises(ConfigurationError) as exc_info:
            get_settings_for_cli(missing)

        assert "Configuration file not found" in exc_info.value.message
        assert exc_info.value.details == {"path": str(missing)}
