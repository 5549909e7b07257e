"""
Configuration Manager for PyFileHub using Pydantic Settings.

This module provides a type-safe configuration system with:
- Automatic config file discovery
- Environment variable override support with proper type conversion
- Configuration validation with clear error messages
- No circular dependencies with logging

The storage option models themselves live in
pyfilehub.core.storage.file.options so that backends can be constructed
without loading any configuration file.
"""

from __future__ import annotations

import os
import yaml
import logging
from typing import Any, ClassVar, Literal
from pydantic import BaseModel, Field, ValidationError
from pydantic_settings import BaseSettings, SettingsConfigDict, PydanticBaseSettingsSource

from pyfilehub.core.storage.file.options import (
    BlobStorageOptions,
    FileSystemStorageOptions,
    MimeTypeValidationOptions,
)


# Use basic logging during config initialization (before custom logger is
# set up)
_basic_logger = logging.getLogger(__name__)


class FileStorageSettings(BaseModel):
    """File storage configuration."""
    backend: Literal["filesystem", "blob", "cloud"] = Field(
        default="filesystem",
        description="Storage backend: local filesystem, object storage, "
                    "or object storage with shared access urls")
    filesystem: FileSystemStorageOptions = Field(
        default_factory=FileSystemStorageOptions)
    blob: BlobStorageOptions = Field(default_factory=BlobStorageOptions)
    mime_type_validation: MimeTypeValidationOptions = Field(
        default_factory=MimeTypeValidationOptions)


class LoggingSettings(BaseModel):
    """Logging configuration (raw dict for logging.config.dictConfig)."""
    version: int = Field(default=1)
    disable_existing_loggers: bool = Field(default=False)
    formatters: dict[str, Any] = Field(default_factory=dict)
    handlers: dict[str, Any] = Field(default_factory=dict)
    root: dict[str, Any] = Field(default_factory=dict)
    loggers: dict[str, Any] = Field(default_factory=dict)

    model_config = {'extra': 'allow'}


class AppSettings(BaseSettings):
    """
    Main application settings.

    Values are read from a YAML file and overridden by environment
    variables of the form PYFILEHUB_SECTION__KEY, for example
    PYFILEHUB_FILE_STORAGE__BACKEND=blob.
    """

    file_storage: FileStorageSettings = Field(
        default_factory=FileStorageSettings)
    logging: LoggingSettings = Field(default_factory=LoggingSettings)

    model_config = SettingsConfigDict(
        env_prefix="PYFILEHUB_",
        env_nested_delimiter="__",
        case_sensitive=False,
        extra="ignore",
    )

    # YAML data of the file currently being loaded
    _temp_config_data: ClassVar[dict[str, Any] | None] = None

    @classmethod
    def settings_customise_sources(
        cls,
        settings_cls: type[BaseSettings],
        init_settings: PydanticBaseSettingsSource,
        env_settings: PydanticBaseSettingsSource,
        dotenv_settings: PydanticBaseSettingsSource,
        file_secret_settings: PydanticBaseSettingsSource,
    ) -> tuple[PydanticBaseSettingsSource, ...]:
        """
        Customize the sources and their priority for loading settings.

        Priority (highest to lowest):
        1. Environment variables
        2. YAML file data (if loaded via from_yaml)
        3. Init arguments and defaults
        """
        class YamlSettingsSource(PydanticBaseSettingsSource):
            def get_field_value(
                    self, field: Any, field_name: str) -> tuple[Any, str, bool]:
                if cls._temp_config_data and field_name in cls._temp_config_data:
                    return cls._temp_config_data[field_name], field_name, False
                return None, field_name, False

            def __call__(self) -> dict[str, Any]:
                return cls._temp_config_data or {}

        return (
            env_settings,
            YamlSettingsSource(settings_cls),
            init_settings,
        )

    @classmethod
    def from_yaml(cls, config_path: str | None = None) -> 'AppSettings':
        """
        Load configuration from YAML file with fallback search strategy.

        Search order:
        1. PYFILEHUB_CONFIG_PATH environment variable (if set)
        2. ./config.yaml (project root)
        3. pyfilehub/config/config.yaml (package location)

        Args:
            config_path: Explicit path to config file (skips search if provided)

        Returns:
            AppSettings instance

        Raises:
            FileNotFoundError: If no config file is found in any location
            ValueError: If the file is not valid YAML or fails validation
        """
        if config_path is None:
            config_path = cls._find_config_file()

        _basic_logger.info(f"Loading configuration from: {config_path}")

        try:
            with open(config_path, "r") as f:
                config_data = yaml.safe_load(f) or {}
        except FileNotFoundError:
            _basic_logger.error(f"Configuration file not found: {config_path}")
            raise FileNotFoundError(
                f"Configuration file not found: {config_path}\n"
                f"Tried search paths: {cls._get_search_paths()}"
            )
        except yaml.YAMLError as e:
            _basic_logger.error(f"Invalid YAML in config file: {e}")
            raise ValueError(
                f"Invalid YAML in configuration file {config_path}: {e}")

        if not isinstance(config_data, dict):
            raise ValueError(
                f"Configuration file {config_path} must contain a mapping")

        cls._temp_config_data = config_data

        try:
            settings = cls()
            _basic_logger.info(
                "Configuration loaded and validated successfully")
            return settings
        except ValidationError as e:
            _basic_logger.error(f"Configuration validation failed: {e}")
            raise ValueError(f"Configuration validation failed:\n{e}")
        finally:
            cls._temp_config_data = None

    @staticmethod
    def _get_search_paths() -> list[str]:
        """Get list of paths to search for config file."""
        return [
            os.getenv("PYFILEHUB_CONFIG_PATH", ""),
            "./config.yaml",
            os.path.join(os.path.dirname(__file__), "config.yaml"),
        ]

    @classmethod
    def _find_config_file(cls) -> str:
        """
        Search for config file in multiple locations.

        Raises:
            FileNotFoundError: If no config file is found
        """
        search_paths = cls._get_search_paths()

        for path in search_paths:
            if path and os.path.isfile(path):
                _basic_logger.debug(f"Found config file at: {path}")
                return path

        error_msg = (
            "No configuration file found. Searched in:\n" +
            "\n".join(f"  - {p}" for p in search_paths if p) +
            "\n\nPlease either:\n"
            "  1. Set PYFILEHUB_CONFIG_PATH environment variable\n"
            "  2. Place config.yaml in project root"
        )
        _basic_logger.error(error_msg)
        raise FileNotFoundError(error_msg)


class ConfigManager:
    """Process-wide singleton wrapper around AppSettings."""

    _instance: 'ConfigManager' | None = None
    _settings: AppSettings | None = None
    _config_path: str | None = None

    def __init__(self):
        """Initialize ConfigManager. Use get_instance() instead."""
        pass

    @classmethod
    def get_instance(cls) -> 'ConfigManager':
        """Get singleton instance of ConfigManager."""
        if cls._instance is None:
            cls._instance = cls()
        return cls._instance

    @classmethod
    def reset_instance(cls):
        """Reset singleton instance (for testing)."""
        cls._instance = None
        cls._settings = None
        cls._config_path = None

    def load(self, config_path: str | None = None) -> dict[str, Any]:
        """
        Load configuration from file.

        Args:
            config_path: Optional path to config file

        Returns:
            Configuration as dictionary
        """
        if self._settings is not None and config_path is None:
            return self._settings.model_dump()

        self._config_path = config_path
        self._settings = AppSettings.from_yaml(config_path)

        return self._settings.model_dump()

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get configuration value using dot notation.

        Args:
            key: Config key in dot notation (e.g., "file_storage.backend")
            default: Default value if key not found

        Returns:
            Configuration value or default
        """
        if self._settings is None:
            self.load()

        value = self._settings.model_dump()

        for k in key.split("."):
            if isinstance(value, dict):
                value = value.get(k, default)
                if value is default:
                    break
            else:
                return default

        return value

    def get_config(self) -> dict[str, Any]:
        """Get entire configuration as dictionary."""
        if self._settings is None:
            self.load()
        return self._settings.model_dump()

    def get_config_path(self) -> str | None:
        """Get path to loaded configuration file."""
        return self._config_path

    @property
    def settings(self) -> AppSettings:
        if self._settings is None:
            self.load()
        return self._settings

    @property
    def file_storage(self) -> FileStorageSettings:
        """Get file storage settings."""
        return self.settings.file_storage

    @property
    def logging_config(self) -> dict[str, Any]:
        """Get logging configuration."""
        return self.settings.logging.model_dump()


def get_config_manager() -> ConfigManager:
    """Get the ConfigManager singleton instance."""
    return ConfigManager.get_instance()


__all__ = [
    'ConfigManager',
    'AppSettings',
    'get_config_manager',
    'FileStorageSettings',
    'LoggingSettings',
]
