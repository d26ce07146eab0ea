"""
Configuration manager for loading and validating YAML configuration files.
"""

import yaml
import logging
from pathlib import Path
from typing import Optional, Dict, Any

from pydantic import ValidationError

from .models import DipBuyerConfig
from ..exceptions import ConfigurationError


logger = logging.getLogger(__name__)


class ConfigurationManager:
    """Manages loading and validation of YAML configuration files.

    Configuration is resolved exactly once at startup. Any problem with a
    configuration file is fatal: undefined thresholds would silently disable
    dip detection for a symbol.
    """

    DEFAULT_CONFIG_FILENAME = "dip_buyer.yaml"

    def load_config(self, config_path: Optional[str] = None) -> DipBuyerConfig:
        """
        Load and validate configuration from YAML file.

        Args:
            config_path: Path to configuration file. If None, the default file is
                used when present, otherwise the built-in defaults.

        Returns:
            Validated DipBuyerConfig instance.

        Raises:
            ConfigurationError: If the file is missing, unreadable or invalid.
        """
        if config_path is None:
            default_path = Path(self.get_default_config_path())
            if not default_path.exists():
                logger.info("No configuration file given, using built-in defaults")
                return DipBuyerConfig()
            config_path = str(default_path)

        config_dict = self._load_yaml_file(config_path)
        config = self.validate_config(config_dict)
        logger.info(f"Loaded configuration from {config_path}")
        return config

    def validate_config(self, config: Dict[str, Any]) -> DipBuyerConfig:
        """
        Validate configuration dictionary using Pydantic.

        Args:
            config: Configuration dictionary to validate.

        Returns:
            Validated DipBuyerConfig instance.

        Raises:
            ConfigurationError: If validation fails.
        """
        try:
            return DipBuyerConfig(**config)
        except ValidationError as e:
            logger.error(f"Configuration validation failed: {e}")
            raise ConfigurationError(f"Invalid configuration: {e}") from e

    def get_default_config_path(self) -> str:
        """Get the default configuration file path."""
        return self.DEFAULT_CONFIG_FILENAME

    def _load_yaml_file(self, file_path: str) -> Dict[str, Any]:
        """Load YAML file and return as dictionary."""
        path = Path(file_path)
        if not path.exists():
            raise ConfigurationError(f"Configuration file not found: {file_path}")

        try:
            with open(path, 'r', encoding='utf-8') as file:
                data = yaml.safe_load(file) or {}
        except yaml.YAMLError as e:
            raise ConfigurationError(f"Invalid YAML in {file_path}: {e}") from e

        if not isinstance(data, dict):
            raise ConfigurationError(f"Configuration root must be a mapping: {file_path}")
        return data
