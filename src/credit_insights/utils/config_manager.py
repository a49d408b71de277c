"""Configuration management for statement insights and the bureau client."""

import json
import os
import yaml
from typing import Dict, Any, Optional, Mapping
import logging

from ..models.core import AppConfig, BureauConfig


logger = logging.getLogger(__name__)


# Environment variables that override file settings for the bureau client
ENV_OVERRIDES = {
    'BUREAU_API_URL': ('base_url', str),
    'BUREAU_API_KEY': ('api_key', str),
    'BUREAU_MAX_RETRIES': ('max_retries', int),
}


class ConfigManager:
    """Manages loading and validation of application configuration"""

    def __init__(self, config_path: Optional[str] = None, environ: Optional[Mapping[str, str]] = None):
        """Initialize configuration manager

        Args:
            config_path: Path to configuration file. If None, searches for default locations.
            environ: Environment mapping used for overrides. Defaults to os.environ.
        """
        self.config_path = config_path
        self.environ = os.environ if environ is None else environ
        self._config_cache: Optional[AppConfig] = None

    def load_config(self, force_reload: bool = False) -> AppConfig:
        """Load configuration from file or return default

        Args:
            force_reload: Force reload from file even if cached

        Returns:
            AppConfig instance with loaded or default configuration
        """
        if self._config_cache is not None and not force_reload:
            return self._config_cache

        config_data = self._load_config_file()

        try:
            bureau_data = dict(config_data.get('bureau') or {})
            self._apply_env_overrides(bureau_data)
            self._validate_config_data({'bureau': bureau_data})

            self._config_cache = AppConfig(
                date_formats=config_data.get('date_formats'),
                chunk_size=config_data.get('chunk_size', 1000),
                bureau=BureauConfig(**bureau_data)
            )
            logger.info(f"Configuration loaded successfully from {self.config_path or 'defaults'}")
            return self._config_cache

        except (TypeError, ValueError) as e:
            logger.warning(f"Error loading configuration: {e}. Using defaults.")
            self._config_cache = AppConfig()
            return self._config_cache

    def _load_config_file(self) -> Dict[str, Any]:
        """Load configuration from file

        Returns:
            Dictionary with configuration data or empty dict if no file found
        """
        config_file = self._find_config_file()

        if not config_file or not os.path.exists(config_file):
            logger.info("No configuration file found, using defaults")
            return {}

        try:
            with open(config_file, 'r', encoding='utf-8') as f:
                if config_file.endswith('.json'):
                    data = json.load(f)
                elif config_file.endswith(('.yml', '.yaml')):
                    data = yaml.safe_load(f)
                else:
                    logger.warning(f"Unsupported config file format: {config_file}")
                    return {}

            self._validate_config_data(data)
            logger.info(f"Configuration loaded from {config_file}")
            return data

        except (OSError, ValueError, yaml.YAMLError) as e:
            logger.error(f"Error reading configuration file {config_file}: {e}")
            return {}

    def _find_config_file(self) -> Optional[str]:
        """Find configuration file in standard locations"""
        if self.config_path:
            return self.config_path

        search_paths = [
            'insights_config.json',
            'insights_config.yml',
            'insights_config.yaml',
            'config/insights_config.json',
            'config/insights_config.yml',
            'config/insights_config.yaml',
            os.path.expanduser('~/.credit_insights/config.json'),
            os.path.expanduser('~/.credit_insights/config.yml'),
        ]

        for path in search_paths:
            if os.path.exists(path):
                return path

        return None

    def _validate_config_data(self, data: Dict[str, Any]) -> None:
        """Validate configuration data structure

        Raises:
            ValueError: If configuration data is invalid
        """
        if not isinstance(data, dict):
            raise ValueError("Configuration must be a dictionary")

        if 'date_formats' in data:
            if not isinstance(data['date_formats'], list):
                raise ValueError("date_formats must be a list")
            for fmt in data['date_formats']:
                if not isinstance(fmt, str):
                    raise ValueError("All date formats must be strings")

        if 'chunk_size' in data:
            chunk_size = data['chunk_size']
            if isinstance(chunk_size, bool) or not isinstance(chunk_size, int) or chunk_size < 1:
                raise ValueError("chunk_size must be a positive integer")

        if 'bureau' in data:
            bureau = data['bureau']
            if not isinstance(bureau, dict):
                raise ValueError("bureau must be a dictionary")

            unknown = set(bureau) - set(BureauConfig.__dataclass_fields__)
            if unknown:
                raise ValueError(f"Unknown bureau settings: {', '.join(sorted(unknown))}")

            if 'max_retries' in bureau:
                if not isinstance(bureau['max_retries'], int) or bureau['max_retries'] < 0:
                    raise ValueError("bureau.max_retries must be a non-negative integer")

            for key in ['base_delay', 'max_delay', 'timeout']:
                if key in bureau:
                    value = bureau[key]
                    if isinstance(value, bool) or not isinstance(value, (int, float)) or value < 0:
                        raise ValueError(f"bureau.{key} must be a non-negative number")

    def _apply_env_overrides(self, bureau_data: Dict[str, Any]) -> None:
        """Apply BUREAU_* environment variables on top of file settings"""
        for env_name, (key, cast) in ENV_OVERRIDES.items():
            if self.environ.get(env_name):
                bureau_data[key] = cast(self.environ[env_name])
                logger.debug(f"Configuration override from {env_name}")

        # Delay is given in milliseconds
        if self.environ.get('BUREAU_RETRY_DELAY_MS'):
            bureau_data['base_delay'] = int(self.environ['BUREAU_RETRY_DELAY_MS']) / 1000.0
            logger.debug("Configuration override from BUREAU_RETRY_DELAY_MS")

    def save_config_template(self, output_path: str) -> None:
        """Generate and save a configuration file template

        Args:
            output_path: Path where to save the template
        """
        template = {
            "date_formats": [
                "%Y-%m-%d",
                "%m/%d/%Y",
                "%d/%m/%Y",
                "%Y-%m-%d %H:%M:%S",
                "%m/%d/%Y %H:%M:%S",
                "%m/%d/%y",
                "%d/%m/%y",
                "%y-%m-%d"
            ],
            "chunk_size": 1000,
            "bureau": {
                "base_url": "http://localhost:3001",
                "api_key": "",
                "max_retries": 3,
                "base_delay": 1.0,
                "max_delay": 30.0,
                "timeout": 10.0
            }
        }

        try:
            output_dir = os.path.dirname(output_path)
            if output_dir:
                os.makedirs(output_dir, exist_ok=True)

            with open(output_path, 'w', encoding='utf-8') as f:
                if output_path.endswith(('.yml', '.yaml')):
                    yaml.dump(template, f, default_flow_style=False, indent=2)
                else:
                    json.dump(template, f, indent=2)

            logger.info(f"Configuration template saved to {output_path}")

        except OSError as e:
            logger.error(f"Error saving configuration template: {e}")
            raise

    def reset_config(self) -> None:
        """Reset configuration cache, forcing reload on next access"""
        self._config_cache = None
        logger.debug("Configuration cache reset")
