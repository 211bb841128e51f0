"""
Configuration Manager
---------------------
Loads configuration from YAML with environment variable overrides.

Recognised keys:
    database.path              SQLite settings store (default: toolgate.db)
    logging.level              DEBUG | INFO | WARNING | ERROR
    logging.dir                Directory for JSON log files
    tools.extra_definitions    YAML tool definition files to load at startup
    server.host / server.port  Service bus bind address
"""

from pathlib import Path
from typing import Any, Dict, List, Optional
import logging
import os

import yaml

ENV_PREFIX = "TOOLGATE_"

DEFAULTS: Dict[str, Any] = {
    "database": {"path": "toolgate.db"},
    "logging": {"level": "INFO", "dir": "logs"},
    "tools": {"extra_definitions": []},
    "server": {"host": "127.0.0.1", "port": 8000},
}


class ConfigManager:
    """
    Centralized configuration management.

    Environment variables override file config, which overrides DEFAULTS.
    `database.path` is overridden by TOOLGATE_DATABASE_PATH.
    """

    def __init__(self, config_path: Optional[str] = "config.yaml"):
        self._config_path = Path(config_path) if config_path else None
        self._config: Dict[str, Any] = {}
        self._logger = logging.getLogger("toolgate.infra.config")

        self._load_config()

    def _load_config(self) -> None:
        if self._config_path is None:
            self._config = {}
            return

        if self._config_path.exists():
            with open(self._config_path, 'r') as f:
                self._config = yaml.safe_load(f) or {}
            self._logger.info(f"Loaded config from {self._config_path}")
        else:
            self._config = {}
            self._logger.warning(f"Config file not found: {self._config_path}")

    def get(self, key: str, default: Any = None) -> Any:
        """
        Get a configuration value.
        Supports dot notation: 'section.key'
        """
        env_key = f"{ENV_PREFIX}{key.upper().replace('.', '_')}"
        env_value = os.getenv(env_key)
        if env_value is not None:
            return env_value

        for source in (self._config, DEFAULTS):
            value = _lookup(source, key)
            if value is not None:
                return value

        return default

    def get_int(self, key: str, default: int = 0) -> int:
        value = self.get(key, default)
        try:
            return int(value)
        except (TypeError, ValueError):
            self._logger.warning(f"Invalid integer for {key}: {value!r}, using {default}")
            return default

    def get_list(self, key: str) -> List[Any]:
        value = self.get(key, [])
        if isinstance(value, str):
            return [item.strip() for item in value.split(",") if item.strip()]
        return list(value or [])

    def set(self, key: str, value: Any) -> None:
        """Set a configuration value (runtime only, not persisted)."""
        parts = key.split('.')
        config = self._config

        for part in parts[:-1]:
            if part not in config:
                config[part] = {}
            config = config[part]

        config[parts[-1]] = value

    def get_section(self, section: str) -> Dict[str, Any]:
        merged = dict(DEFAULTS.get(section, {}))
        merged.update(self._config.get(section, {}) or {})
        return merged

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()


def _lookup(config: Dict[str, Any], key: str) -> Any:
    value: Any = config
    for part in key.split('.'):
        if isinstance(value, dict) and part in value:
            value = value[part]
        else:
            return None
    return value
