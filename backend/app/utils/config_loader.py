"""Configuration loader for TOML config files"""

import toml
import os
from typing import Dict, Any, Optional

CONFIG_ENV_VAR = "CHAT_CLONE_CONFIG"
DEFAULT_CONFIG_PATH = "config.toml"
REQUIRED_SECTIONS = ['app', 'llm', 'database', 'files', 'auth']


class ConfigLoader:
    """
    Load and validate configuration from a TOML file.

    The path defaults to $CHAT_CLONE_CONFIG, then ./config.toml. Only
    non-secret settings live here; API keys, the database URL and the
    session secret are read from the environment by the config models.
    """

    def __init__(self, config_path: Optional[str] = None):
        self.config_path = config_path or os.getenv(CONFIG_ENV_VAR, DEFAULT_CONFIG_PATH)
        self._config: Dict[str, Any] = {}
        self.load()

    def load(self) -> None:
        if not os.path.exists(self.config_path):
            raise FileNotFoundError(
                f"Configuration file not found: {self.config_path}\n"
                f"Copy config.example.toml to {self.config_path} or set {CONFIG_ENV_VAR}"
            )

        with open(self.config_path, 'r', encoding='utf-8') as f:
            self._config = toml.load(f)

        self._validate()

    def _validate(self) -> None:
        for section in REQUIRED_SECTIONS:
            if section not in self._config:
                raise ValueError(f"Missing required configuration section: {section}")
            if not isinstance(self._config[section], dict):
                raise ValueError(f"Configuration section [{section}] must be a table")

    def get(self, key: str, default: Any = None) -> Any:
        """Get a configuration value by dot-notation key, e.g. 'llm.default_model'"""
        value = self._config
        for part in key.split('.'):
            if not isinstance(value, dict) or part not in value:
                return default
            value = value[part]
        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """A whole table (dot-notation allowed); empty if absent"""
        return self.get(section, {}) or {}


_config: Optional[ConfigLoader] = None


def get_config() -> ConfigLoader:
    """Get the process-wide configuration, loading it on first use"""
    global _config
    if _config is None:
        _config = ConfigLoader()
    return _config


def reload_config(config_path: Optional[str] = None) -> ConfigLoader:
    """Re-read the configuration, optionally from a different file"""
    global _config
    _config = ConfigLoader(config_path)
    return _config
