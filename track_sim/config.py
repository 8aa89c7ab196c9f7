"""Configuration module for the track simulation."""

import yaml
import os
from typing import Dict, Any, Optional


DEFAULT_CONFIG_PATH = os.path.join(os.path.dirname(__file__), '..', 'config', 'default.yaml')


class Config:
    """Configuration manager that loads settings from YAML files.

    Values are addressed with dot paths (``'dqn.gamma'``). Every caller passes
    its own default, so an empty configuration still yields a runnable setup.
    """

    def __init__(self, config_path: Optional[str] = None, data: Optional[Dict[str, Any]] = None):
        """Initialize configuration from a file path, a dict, or the default file."""
        self._config = {}
        if data is not None:
            self._config = dict(data)
        elif config_path:
            self.load_config(config_path)
        elif os.path.exists(DEFAULT_CONFIG_PATH):
            self.load_config(DEFAULT_CONFIG_PATH)

    def load_config(self, config_path: str):
        """Load configuration from a YAML file."""
        with open(config_path, 'r') as f:
            self._config = yaml.safe_load(f) or {}

    def get(self, key_path: str, default=None):
        """Get a configuration value using dot notation (e.g., 'track.outer')."""
        keys = key_path.split('.')
        value = self._config

        try:
            for key in keys:
                value = value[key]
        except (KeyError, TypeError):
            return default
        # An explicit null in YAML means "use the default"
        return default if value is None else value

    def set(self, key_path: str, value: Any):
        """Set a configuration value using dot notation."""
        keys = key_path.split('.')
        config = self._config

        # Navigate to the parent dictionary
        for key in keys[:-1]:
            if not isinstance(config.get(key), dict):
                config[key] = {}
            config = config[key]

        config[keys[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """Return the configuration as a dictionary."""
        return self._config.copy()


# Global configuration instance
config = Config()
