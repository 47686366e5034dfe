"""Configuration loader for plugged-kbd.

This module handles loading and validating TOML configuration files.
"""

import tomllib
from pathlib import Path
from typing import Any, ClassVar

from .models import AppConfig

_PATH_KEYS = ('devices_file', 'rules_file', 'log_file')
_BOOL_KEYS = ('always_show_menuitem', 'debug_messages', 'teach_in')
_NUMBER_KEYS = ('poll_interval', 'source_check_interval', 'command_timeout')


class ConfigLoader:
    """Load and validate TOML configuration files."""

    DEFAULT_PATHS: ClassVar[list[Path]] = [
        Path.home() / '.config/plugged-kbd/config.toml',
        Path('/etc/plugged-kbd/config.toml'),
    ]

    @staticmethod
    def load(config_path: Path | None = None) -> tuple[AppConfig, Path | None]:
        """Load configuration from TOML file.

        Args:
            config_path: Path to config file. If None, tries default paths and
                falls back to the built-in defaults.

        Returns:
            tuple[AppConfig, Path | None]: Parsed configuration and path to the
            loaded file (None when the defaults are used)

        Raises:
            FileNotFoundError: If an explicit config file does not exist
            ValueError: If configuration is invalid
            tomllib.TOMLDecodeError: If TOML syntax is invalid
        """
        if config_path:
            if not config_path.exists():
                raise FileNotFoundError(f'Config file not found: {config_path}')  # noqa: TRY003
            return (ConfigLoader._load_from_path(config_path), config_path.resolve())

        for path in ConfigLoader.DEFAULT_PATHS:
            if path.exists():
                return (ConfigLoader._load_from_path(path), path.resolve())

        return (AppConfig(), None)

    @staticmethod
    def _load_from_path(path: Path) -> AppConfig:
        """Load and parse TOML from specific path.

        Raises:
            ValueError: If configuration is invalid
            tomllib.TOMLDecodeError: If TOML syntax is invalid
        """
        try:
            with path.open('rb') as f:
                data = tomllib.load(f)
        except tomllib.TOMLDecodeError as e:
            raise tomllib.TOMLDecodeError(  # noqa: TRY003
                f'Invalid TOML syntax in {path}: {e}'
            ) from e

        return ConfigLoader._parse_config(data)

    @staticmethod
    def _parse_config(data: dict[str, Any]) -> AppConfig:
        """Parse TOML data into AppConfig.

        Keys are read from the ``[app]`` table; the settings names with dashes
        (``always-show-menuitem``, ``debug-messages``, ``teach-in``) are
        accepted as well.

        Raises:
            ValueError: If configuration is invalid
        """
        app_data = data.get('app', {})
        if not isinstance(app_data, dict):
            raise ValueError("'app' must be a table")  # noqa: TRY003
        app_data = {key.replace('-', '_'): value for key, value in app_data.items()}

        known = set(_PATH_KEYS) | set(_BOOL_KEYS) | set(_NUMBER_KEYS) | {'default_source', 'log_level'}
        unknown = sorted(set(app_data) - known)
        if unknown:
            raise ValueError(f'Unknown configuration key(s): {", ".join(unknown)}')  # noqa: TRY003

        kwargs: dict[str, Any] = {}
        for key in _PATH_KEYS:
            if key in app_data:
                value = app_data[key]
                if not isinstance(value, str):
                    raise ValueError(f"'{key}' must be a string")  # noqa: TRY003
                kwargs[key] = Path(value).expanduser()

        for key in (*_BOOL_KEYS, *_NUMBER_KEYS, 'default_source'):
            if key in app_data:
                kwargs[key] = app_data[key]

        if 'log_level' in app_data:
            log_level = app_data['log_level']
            if not isinstance(log_level, str):
                raise ValueError("'log_level' must be a string")  # noqa: TRY003
            kwargs['log_level'] = log_level.upper()

        try:
            config = AppConfig(**kwargs)
        except (TypeError, ValueError) as e:
            raise ValueError(f'Invalid configuration: {e}') from e  # noqa: TRY003

        return config
