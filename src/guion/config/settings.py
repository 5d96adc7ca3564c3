"""Guion configuration settings."""

from __future__ import annotations

import json
import os
import tomllib
from pathlib import Path
from typing import Any, cast

import yaml
from pydantic import Field, field_validator
from pydantic_settings import BaseSettings, SettingsConfigDict

from guion.exceptions import ConfigurationError, check_config_keys


class GuionSettings(BaseSettings):
    """Guion configuration settings.

    Settings are loaded with the following precedence (highest to lowest):
    1. CLI arguments (when provided via command flags)
       Example: guion import a.fountain --db /custom/path.db

    2. Config file values (YAML, TOML, or JSON)
       Example: guion --config myconfig.yaml parse a.fdx
       Multiple files: Later files override earlier ones

    3. Environment variables (prefixed with GUION_)
       Example: export GUION_EXPORT_CHUNK_SIZE=65536

    4. .env file (in current directory or specified path)

    5. Default values (defined in field declarations below)
    """

    model_config = SettingsConfigDict(
        env_prefix="GUION_",
        env_file=".env",
        env_file_encoding="utf-8",
        extra="ignore",
    )

    # Storage settings
    database_path: Path = Field(
        default_factory=lambda: Path.cwd() / "guion.db",
        description="Path to the SQLite element store",
    )
    database_timeout: float = Field(
        default=30.0,
        description="SQLite connection timeout in seconds",
        ge=0.1,
    )
    store_batch_size: int = Field(
        default=200,
        description="Elements inserted between cancellation checks when storing",
        ge=1,
    )

    # Debug settings
    debug: bool = Field(
        default=False,
        description="Enable debug mode",
    )

    # Logging settings
    log_level: str = Field(
        default="WARNING",
        description="Logging level (DEBUG, INFO, WARNING, ERROR, CRITICAL)",
        pattern="^(?i)(DEBUG|INFO|WARNING|ERROR|CRITICAL)$",
    )
    log_format: str = Field(
        default="console",
        description="Log output format (console, json, structured)",
        pattern="^(?i)(console|json|structured)$",
    )
    log_file: Path | None = Field(
        default=None,
        description="Optional log file path",
    )

    # Progress settings
    progress_update_interval: float = Field(
        default=0.1,
        description="Minimum seconds between two progress handler calls",
        ge=0.0,
    )

    # Parser settings
    fountain_batch_size: int = Field(
        default=100,
        description="Lines parsed between progress updates and cancellation checks",
        ge=1,
    )
    fdx_batch_size: int = Field(
        default=10,
        description="Paragraphs parsed between progress updates and cancellation checks",
        ge=1,
    )
    fdx_read_size: int = Field(
        default=64 * 1024,
        description="Bytes fed to the XML scanner per step",
        ge=1,
    )

    # Ordering settings
    chapter_heading_level: int = Field(
        default=2,
        description="Section heading level that starts a new chapter",
        ge=1,
        le=6,
    )
    order_index_base: int = Field(
        default=1,
        description="First order index assigned inside every chapter",
        ge=0,
    )

    # Export settings
    export_chunk_size: int = Field(
        default=1024 * 1024,  # 1 MiB
        description="Bytes written per chunk when exporting bundles",
        gt=0,
    )

    # Bulk import settings
    max_workers: int = Field(
        default=4,
        description="Concurrent imports in a bulk import",
        ge=1,
    )

    @field_validator("database_path", "log_file", mode="before")
    @classmethod
    def expand_path(cls, v: Any) -> Path | None:
        """Expand environment variables and ``~`` then resolve the path."""
        if v is None:
            return None
        if isinstance(v, str):
            if v == ":memory:":
                return Path(v)
            return Path(os.path.expandvars(v)).expanduser().resolve()
        if isinstance(v, Path):
            return v if str(v) == ":memory:" else v.resolve()
        if isinstance(v, (dict, list, set, tuple)):  # noqa: UP038
            raise ValueError(
                f"Path fields cannot accept {type(v).__name__} types. "
                f"Expected str or Path, got: {v!r}"
            )
        return Path(str(v)).resolve()

    @field_validator("log_level", mode="before")
    @classmethod
    def normalize_log_level(cls, v: Any) -> str:
        """Normalize log level to uppercase for case-insensitive handling."""
        if isinstance(v, str):
            return v.upper()
        raise ValueError(f"log_level must be a string, got {type(v).__name__}")

    @field_validator("log_format", mode="before")
    @classmethod
    def normalize_log_format(cls, v: Any) -> str:
        """Normalize log format to lowercase for case-insensitive handling."""
        if isinstance(v, str):
            return v.lower()
        raise ValueError(f"log_format must be a string, got {type(v).__name__}")

    @classmethod
    def from_env(cls) -> GuionSettings:
        """Create settings from environment variables."""
        return cls()

    @classmethod
    def from_file(cls, config_path: Path | str) -> GuionSettings:
        """Load settings from a configuration file.

        Args:
            config_path: Path to configuration file (YAML, TOML, or JSON).

        Returns:
            Settings loaded from the file.

        Raises:
            ConfigurationError: If file format is not supported.
            FileNotFoundError: If config file doesn't exist.
        """
        config_path = Path(config_path)
        if not config_path.exists():
            raise FileNotFoundError(f"Configuration file not found: {config_path}")

        suffix = config_path.suffix.lower()

        if suffix in {".yml", ".yaml"}:
            with config_path.open(encoding="utf-8") as f:
                data = yaml.safe_load(f) or {}
        elif suffix == ".toml":
            with config_path.open("rb") as f:
                data = tomllib.load(f)
        elif suffix == ".json":
            with config_path.open(encoding="utf-8") as f:
                data = json.load(f)
        else:
            raise ConfigurationError(
                message=f"Unsupported configuration file format: {suffix}",
                hint="Use one of the supported formats: .yml, .yaml, .toml, or .json",
                details={
                    "file": str(config_path),
                    "detected_format": suffix,
                    "supported_formats": [".yml", ".yaml", ".toml", ".json"],
                },
            )

        check_config_keys(data)
        return cls(**data)

    @classmethod
    def from_multiple_sources(
        cls,
        config_files: list[Path | str] | None = None,
        env_file: Path | str | None = None,
        cli_args: dict[str, Any] | None = None,
    ) -> GuionSettings:
        """Load settings with proper precedence from multiple sources.

        Args:
            config_files: Config files to load (later files override earlier).
            env_file: Path to .env file (default: .env in current directory).
            cli_args: Dictionary of CLI arguments; ``None`` values are ignored.

        Returns:
            Merged settings from all sources.
        """
        data: dict[str, Any] = {}

        for config_file in config_files or []:
            try:
                file_settings = cls.from_file(config_file)
            except FileNotFoundError:
                from guion.config.logging import get_logger as _get_logger

                _get_logger("guion.config.settings").warning(
                    "Configuration file not found, using defaults",
                    config_file=str(config_file),
                )
                continue
            data.update(file_settings.model_dump(exclude_unset=True))

        if env_file:
            settings = cast("GuionSettings", cast(Any, cls)(_env_file=env_file, **data))
        else:
            settings = cls(**data)

        if cli_args:
            cli_data = {k: v for k, v in cli_args.items() if v is not None}
            if cli_data:
                updated_data = settings.model_dump()
                updated_data.update(cli_data)
                settings = cls(**updated_data)

        return settings


# Global settings instance
_settings: GuionSettings | None = None
_config_paths_cache: list[Path | str] | None = None


def _get_config_paths() -> list[Path | str]:
    """Get the existing config files, lowest priority first."""
    global _config_paths_cache

    if _config_paths_cache is not None:
        return _config_paths_cache

    potential_paths = [
        Path.home() / ".config" / "guion" / "config.yaml",
        Path.home() / ".config" / "guion" / "config.toml",
        Path.home() / ".config" / "guion" / "config.json",
        Path.cwd() / "guion.yaml",
        Path.cwd() / "guion.toml",
        Path.cwd() / "guion.json",
    ]

    existing_paths: list[Path | str] = []
    for path in potential_paths:
        try:
            if path.is_file():
                existing_paths.append(path)
        except OSError:
            continue

    _config_paths_cache = existing_paths
    return existing_paths


def get_settings() -> GuionSettings:
    """Get the global settings instance.

    Returns:
        Global GuionSettings instance.
    """
    global _settings
    if _settings is None:
        config_paths = _get_config_paths()
        if config_paths:
            _settings = GuionSettings.from_multiple_sources(config_files=config_paths)
        else:
            _settings = GuionSettings.from_env()
    return _settings


def set_settings(settings: GuionSettings) -> None:
    """Set the global settings instance."""
    global _settings
    _settings = settings


def clear_settings_cache() -> None:
    """Force get_settings() to re-read environment and config files."""
    global _settings, _config_paths_cache
    _settings = None
    _config_paths_cache = None


def reset_settings() -> None:
    """Reset the global settings instance."""
    clear_settings_cache()


def get_settings_for_cli(
    config_file: Path | None = None,
    cli_overrides: dict[str, Any] | None = None,
) -> GuionSettings:
    """Get settings for CLI commands with consistent precedence.

    Args:
        config_file: Optional specific config file. Standard locations are
            used when omitted.
        cli_overrides: CLI argument overrides; only non-None values apply.

    Returns:
        GuionSettings instance with all sources merged.

    Raises:
        ConfigurationError: If config_file is specified but doesn't exist.
    """
    if config_file is not None:
        if not config_file.exists():
            raise ConfigurationError(
                message=f"Configuration file not found: {config_file}",
                hint="Check the --config path",
                details={"path": str(config_file)},
            )
        config_files: list[Path | str] = [config_file]
    else:
        config_files = _get_config_paths()
    return GuionSettings.from_multiple_sources(
        config_files=config_files, cli_args=cli_overrides
    )
