"""
Configuration management for xmlstore.

This module handles loading and accessing configuration values from config.yaml.
The storage engine itself never reads this module; the command line front-end
resolves the settings here and passes them to XMLDatabase explicitly.
"""

import yaml
from pathlib import Path
from typing import Any, Dict, Optional
import logging


class ConfigManager:
    """
    Manages configuration loading and access for xmlstore.
    """

    def __init__(self, config_path: str = "config.yaml"):
        """
        Initialize the configuration manager.

        Args:
            config_path: Path to the configuration file
        """
        self.config_path = Path(config_path)
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _load_config(self) -> None:
        """Load configuration from YAML file."""
        try:
            if not self.config_path.exists():
                raise FileNotFoundError(f"Configuration file not found: {self.config_path}")

            with open(self.config_path, 'r', encoding='utf-8') as f:
                self._config = yaml.safe_load(f) or {}

            logging.info(f"Configuration loaded from {self.config_path}")

        except (OSError, yaml.YAMLError) as e:
            logging.error(f"Failed to load configuration: {e}")
            # Fall back to default configuration
            self._config = self._get_default_config()

    def _get_default_config(self) -> Dict[str, Any]:
        """Get default configuration values as fallback."""
        return {
            "storage": {
                "base_dir": ".",
                "path": "store.xml",
                "encoding": "UTF-8",
                "pretty_print": True
            },
            "schema": {
                "root_tag": "store",
                "container_tag": "items",
                "record_tag": "item"
            },
            "logging": {
                "level": "INFO",
                "format": "%(asctime)s - %(name)s - %(levelname)s - %(message)s",
                "file": None
            }
        }

    def get(self, key_path: str, default: Any = None) -> Any:
        """
        Get a configuration value using dot notation.

        Args:
            key_path: Dot-separated path to the configuration value (e.g., "storage.path")
            default: Default value if key is not found

        Returns:
            The configuration value

        Examples:
            config.get("storage.path")  # Returns "store.xml"
            config.get("schema.record_tag")  # Returns "item"
        """
        keys = key_path.split('.')
        value = self._config

        for key in keys:
            if isinstance(value, dict) and key in value:
                value = value[key]
            else:
                return default

        return value

    def get_section(self, section: str) -> Dict[str, Any]:
        """
        Get an entire configuration section.

        Args:
            section: Name of the configuration section

        Returns:
            Dictionary containing the section configuration
        """
        return self._config.get(section) or {}

    def reload(self) -> None:
        """Reload configuration from file."""
        self._load_config()

    # Convenience properties for commonly used values

    @property
    def base_dir(self) -> Path:
        """Get the directory store paths are resolved against."""
        return Path(self.get("storage.base_dir", "."))

    @property
    def store_path(self) -> str:
        """Get the store file path, relative to base_dir."""
        return self.get("storage.path", "store.xml")

    @property
    def encoding(self) -> str:
        """Get the output encoding for saved documents."""
        return self.get("storage.encoding", "UTF-8")

    @property
    def pretty_print(self) -> bool:
        """Get whether saved documents are indented."""
        return bool(self.get("storage.pretty_print", True))

    @property
    def schema_settings(self) -> Dict[str, str]:
        """Get the tag names used by the default schema."""
        return self.get("schema", {
            "root_tag": "store",
            "container_tag": "items",
            "record_tag": "item"
        })

    @property
    def log_level(self) -> str:
        """Get the logging level name."""
        return self.get("logging.level", "INFO")

    @property
    def log_format(self) -> str:
        """Get the logging format string."""
        return self.get("logging.format", "%(asctime)s - %(name)s - %(levelname)s - %(message)s")

    @property
    def log_filename(self) -> Optional[str]:
        """Get log file name, None to log to stderr only."""
        return self.get("logging.file")


# Global configuration instance
config = ConfigManager()


def get_config() -> ConfigManager:
    """
    Get the global configuration instance.

    Returns:
        The global ConfigManager instance
    """
    return config
