"""
Catalog configuration

Provides configuration loading and validation for the DJ Catalog CLI.
Values are layered: built-in defaults, then a JSON configuration file, then
environment variables (a ``.env`` file is honoured), then command-line flags.
"""

import copy
import json
import os
import platform
from pathlib import Path
from typing import Any, Callable, Dict, Optional, Tuple

from dotenv import load_dotenv

from ..core.exceptions import ConfigurationError


DEFAULT_DATA_DIR = os.path.expanduser("~/.djcatalog")

LOG_LEVELS = ('DEBUG', 'INFO', 'WARNING', 'ERROR', 'CRITICAL')


def _str_to_bool(value: str) -> bool:
    """Parse an on/off style environment value"""
    return value.lower() in ('true', '1', 'yes', 'on', 'enabled')


def _log_level(value: str) -> str:
    level = str(value).upper()
    if level not in LOG_LEVELS:
        raise ValueError(f"unknown log level {value!r}")
    return level


# Environment variable -> (section, key, converter)
ENV_MAPPINGS: Dict[str, Tuple[str, str, Callable[[str], Any]]] = {
    'DJCATALOG_DB_PATH': ('database', 'path', str),
    'DJCATALOG_LOG_LEVEL': ('logging', 'console_level', _log_level),
    'DJCATALOG_MIN_CONFIDENCE': ('cleanup', 'min_confidence', float),
    'DJCATALOG_MIN_AUTO_SCORE': ('matching', 'min_auto_score', float),
    'DJCATALOG_PROGRESS': ('ui', 'progress_bars', _str_to_bool),
}


class CLIConfig:
    """
    Layered settings for the catalog commands

    Features:
    - Platform-specific default configuration path
    - JSON configuration file
    - Environment variable overrides (with ``.env`` discovery)
    - Validation of thresholds and log levels
    """

    def __init__(self, config_path: Optional[str] = None):
        """Resolve the config file location and pull in any .env file"""
        self.config_path = config_path or self._get_default_config_path()
        self._config_cache: Optional[Dict[str, Any]] = None
        self._defaults = self._get_default_config()

        # Look for .env in current directory and parent directories
        env_path = self._find_env_file()
        if env_path:
            load_dotenv(env_path)

    def _get_default_config_path(self) -> str:
        """Per-user config.json location for the current platform"""
        if platform.system() == "Windows":
            config_dir = os.path.expandvars(r"%APPDATA%\DJCatalog")
        elif platform.system() == "Darwin":  # macOS
            config_dir = os.path.expanduser("~/Library/Application Support/DJCatalog")
        else:  # Linux and others
            config_dir = os.path.expanduser("~/.config/djcatalog")
        return os.path.join(config_dir, "config.json")

    def _find_env_file(self) -> Optional[str]:
        """Walk up from the working directory looking for a .env file"""
        current_dir = Path.cwd()

        # Check current directory and up to 3 parent directories
        for _ in range(4):
            env_file = current_dir / '.env'
            if env_file.exists():
                return str(env_file)
            if current_dir == current_dir.parent:  # Reached root
                break
            current_dir = current_dir.parent

        return None

    def _get_default_config(self) -> Dict[str, Any]:
        """Built-in thresholds, database location and logging defaults"""
        return {
            "database": {
                "path": os.path.join(DEFAULT_DATA_DIR, "catalog.db"),
            },
            "cleanup": {
                "min_confidence": 0.7,
            },
            "matching": {
                "min_auto_score": 0.92,
            },
            "sync": {
                "min_confidence": 0.45,
            },
            "logging": {
                "log_dir": os.path.join(DEFAULT_DATA_DIR, "logs"),
                "console_level": "INFO",
                "file_level": "DEBUG",
                "enable_console": True,
                "enable_file": True,
            },
            "ui": {
                "progress_bars": True,
            },
        }

    def load_config(self, force_reload: bool = False) -> Dict[str, Any]:
        """
        Merge defaults, the config file and environment overrides

        Args:
            force_reload: Re-read the file and environment instead of the cached result

        Returns:
            Validated settings keyed by section

        Raises:
            ConfigurationError: If the file or an environment override is invalid
        """
        if self._config_cache is not None and not force_reload:
            return self._config_cache

        config = copy.deepcopy(self._defaults)

        file_config = self._load_from_file()
        if file_config:
            config = self._deep_merge(config, file_config)

        env_config = self._load_from_environment()
        if env_config:
            config = self._deep_merge(config, env_config)

        config = self._validate_config(config)
        self._config_cache = config
        return config

    def _load_from_file(self) -> Optional[Dict[str, Any]]:
        """Read the JSON config file, or None when it does not exist"""
        if not os.path.exists(self.config_path):
            return None
        try:
            with open(self.config_path, 'r', encoding='utf-8') as f:
                data = json.load(f)
        except (OSError, json.JSONDecodeError) as e:
            raise ConfigurationError("Failed to load config file", details=str(e), filepath=self.config_path)
        if not isinstance(data, dict):
            raise ConfigurationError("Configuration must be a JSON object", filepath=self.config_path)
        return data

    def _load_from_environment(self) -> Dict[str, Any]:
        """Collect DJCATALOG_* overrides, converted per ENV_MAPPINGS"""
        config: Dict[str, Any] = {}

        for env_var, (section, key, converter) in ENV_MAPPINGS.items():
            value = os.environ.get(env_var)
            if value is None or value == "":
                continue
            try:
                converted_value = converter(value)
            except ValueError as e:
                raise ConfigurationError(f"Invalid environment variable {env_var}={value}", details=str(e))
            config.setdefault(section, {})[key] = converted_value

        return config

    def _deep_merge(self, base: Dict[str, Any], update: Dict[str, Any]) -> Dict[str, Any]:
        """Overlay ``update`` onto ``base`` section by section"""
        result = base.copy()

        for key, value in update.items():
            if key in result and isinstance(result[key], dict) and isinstance(value, dict):
                result[key] = self._deep_merge(result[key], value)
            else:
                result[key] = value

        return result

    @staticmethod
    def _threshold(config: Dict[str, Any], section: str, key: str) -> float:
        value = config.get(section, {}).get(key)
        try:
            value = float(value)
        except (TypeError, ValueError):
            raise ConfigurationError(f"{section}.{key} must be a number", details=repr(value))
        if value > 1.0:
            value = value / 100.0
        if not 0.0 <= value <= 1.0:
            raise ConfigurationError(f"{section}.{key} must be between 0 and 1", details=repr(value))
        return value

    def _validate_config(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """Validate and normalize configuration values"""
        config['cleanup']['min_confidence'] = self._threshold(config, 'cleanup', 'min_confidence')
        config['sync']['min_confidence'] = self._threshold(config, 'sync', 'min_confidence')
        config['matching']['min_auto_score'] = self._threshold(config, 'matching', 'min_auto_score')

        logging_config = config['logging']
        for key in ('console_level', 'file_level'):
            try:
                logging_config[key] = _log_level(logging_config[key])
            except ValueError as e:
                raise ConfigurationError(f"logging.{key} is invalid", details=str(e))

        if not config['database'].get('path'):
            raise ConfigurationError("database.path must not be empty")
        return config

    def save_config(self, config: Optional[Dict[str, Any]] = None):
        """Save configuration to file"""
        if config is None:
            config = self.load_config()

        os.makedirs(os.path.dirname(self.config_path), exist_ok=True)
        with open(self.config_path, 'w', encoding='utf-8') as f:
            json.dump(config, f, indent=2, ensure_ascii=False)

        self._config_cache = None

    def get_option(self, path: str, default: Any = None) -> Any:
        """
        Look up a single setting by its dotted name

        Args:
            path: Dot-separated path (e.g., 'matching.min_auto_score')
            default: Returned when any part of the path is missing

        Returns:
            The setting, or ``default``
        """
        value: Any = self.load_config()
        try:
            for key in path.split('.'):
                value = value[key]
            return value
        except (KeyError, TypeError):
            return default


def load_config_from_args(args) -> Dict[str, Any]:
    """
    Load configuration and apply command line overrides

    Args:
        args: Parsed command line arguments

    Returns:
        Configuration dictionary
    """
    config = CLIConfig(getattr(args, 'config', None)).load_config()

    if getattr(args, 'db', None):
        config['database']['path'] = args.db
    if getattr(args, 'log_level', None):
        config['logging']['console_level'] = _log_level(args.log_level)
    if getattr(args, 'log_dir', None):
        config['logging']['log_dir'] = args.log_dir
    if getattr(args, 'no_console_log', False):
        config['logging']['enable_console'] = False
    if getattr(args, 'no_progress', False):
        config['ui']['progress_bars'] = False

    return config


__all__ = ['CLIConfig', 'load_config_from_args']
