"""
Configuration management for modeltidy.

This module provides functionality for managing configuration,
including loading from environment variables, files and default values.
"""

import os
import sys
import json
import logging
import threading
from typing import Dict, Optional, Any
from copy import deepcopy
import yaml

# Set up logging
logger = logging.getLogger(__name__)


LOG_LEVELS = {
    'debug': logging.DEBUG,
    'info': logging.INFO,
    'warn': logging.WARNING,
    'warning': logging.WARNING,
    'error': logging.ERROR,
}


def to_int(value: Any) -> Optional[int]:
    """
    Convert a value to an integer.

    Args:
        value: Value to convert

    Returns:
        Integer value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return int(value)
    except (ValueError, TypeError):
        return None


def to_float(value: Any) -> Optional[float]:
    """
    Convert a value to a float.

    Args:
        value: Value to convert

    Returns:
        Float value, or None if conversion failed
    """
    if value is None:
        return None

    try:
        return float(value)
    except (ValueError, TypeError):
        return None


class Config:
    """
    Configuration for the tidiers.

    Values are layered: defaults, then environment variables, then
    explicit overrides.
    """

    def __init__(self, overrides: Optional[Dict[str, Any]] = None):
        """
        Initialize configuration.

        Args:
            overrides: Optional configuration overrides
        """
        self._lock = threading.RLock()
        self._config = {}
        self._initialized = False

        # Load configuration
        self.load_config(overrides)

    def load_config(self, overrides: Optional[Dict[str, Any]] = None) -> None:
        """
        Load configuration from all sources.

        Args:
            overrides: Optional configuration overrides
        """
        with self._lock:
            # Start with default configuration
            config = self._get_defaults()

            # Apply environment variables
            config = self._apply_env_vars(config)

            # Apply overrides
            if overrides:
                config = self._apply_overrides(config, overrides)

            # Store configuration
            self._config = config
            self._initialized = True

            logger.debug("Configuration loaded")

    def _get_defaults(self) -> Dict[str, Any]:
        """
        Get default configuration values.

        Returns:
            Default configuration
        """
        return {
            # Tidier option defaults
            'tidy': {
                'conf-level': 0.95,
                'lm-conf-method': 'profile',
                'mixed-conf-method': 'wald',
                'pca-mode': 'samples',
                'ran-pars-scale': 'sdcor'
            },

            # Profile likelihood search
            'profile': {
                'max-steps': 12,       # bracket doublings per side
                'xtol': 1e-8,          # root-finding tolerance
                'grid-points': 20      # points per side for variance profiles
            },

            # Logging
            'logging': {
                'level': 'warn'
            }
        }

    def _apply_env_vars(self, config: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply environment variables to configuration.

        Args:
            config: Current configuration

        Returns:
            Updated configuration
        """
        # Make a copy
        config = deepcopy(config)

        # Tidier options
        config['tidy']['conf-level'] = to_float(os.environ.get('MODELTIDY_CONF_LEVEL', config['tidy']['conf-level']))
        config['tidy']['lm-conf-method'] = os.environ.get('MODELTIDY_LM_CONF_METHOD', config['tidy']['lm-conf-method']).lower()
        config['tidy']['mixed-conf-method'] = os.environ.get('MODELTIDY_MIXED_CONF_METHOD', config['tidy']['mixed-conf-method']).lower()
        config['tidy']['pca-mode'] = os.environ.get('MODELTIDY_PCA_MODE', config['tidy']['pca-mode']).lower()
        config['tidy']['ran-pars-scale'] = os.environ.get('MODELTIDY_RAN_PARS_SCALE', config['tidy']['ran-pars-scale']).lower()

        # Profile likelihood search
        config['profile']['max-steps'] = to_int(os.environ.get('MODELTIDY_PROFILE_MAX_STEPS', config['profile']['max-steps']))
        config['profile']['xtol'] = to_float(os.environ.get('MODELTIDY_PROFILE_XTOL', config['profile']['xtol']))
        config['profile']['grid-points'] = to_int(os.environ.get('MODELTIDY_PROFILE_GRID', config['profile']['grid-points']))

        # Logging
        config['logging']['level'] = os.environ.get('LOG_LEVEL', config['logging']['level']).lower()

        return config

    def _apply_overrides(self, config: Dict[str, Any], overrides: Dict[str, Any]) -> Dict[str, Any]:
        """
        Apply configuration overrides.

        Args:
            config: Current configuration
            overrides: Configuration overrides

        Returns:
            Updated configuration
        """
        # Make a copy
        config = deepcopy(config)

        # Helper function for deep update
        def deep_update(d, u):
            for k, v in u.items():
                if isinstance(v, dict) and k in d and isinstance(d[k], dict):
                    d[k] = deep_update(d[k], v)
                else:
                    d[k] = v
            return d

        # Apply overrides
        return deep_update(config, overrides)

    def get(self, path: str, default: Any = None) -> Any:
        """
        Get a configuration value.

        Args:
            path: Configuration path (dot-separated)
            default: Default value if not found

        Returns:
            Configuration value, or default if not found
        """
        if not self._initialized:
            self.load_config()

        # Split path into components
        components = path.split('.')

        # Start with full configuration
        value = self._config

        # Traverse path
        for component in components:
            if isinstance(value, dict) and component in value:
                value = value[component]
            else:
                return default

        return value

    def set(self, path: str, value: Any) -> None:
        """
        Set a configuration value.

        Args:
            path: Configuration path (dot-separated)
            value: Configuration value
        """
        with self._lock:
            if not self._initialized:
                self.load_config()

            # Split path into components
            components = path.split('.')

            # Start with full configuration
            config = self._config

            # Traverse path
            for component in components[:-1]:
                if component not in config:
                    config[component] = {}

                config = config[component]

            # Set value
            config[components[-1]] = value

    def to_dict(self) -> Dict[str, Any]:
        """
        Convert configuration to a dictionary.

        Returns:
            Configuration dictionary
        """
        if not self._initialized:
            self.load_config()

        return deepcopy(self._config)

    def save_to_file(self, filepath: str) -> None:
        """
        Save configuration to a file.

        Args:
            filepath: Path to save configuration
        """
        if not self._initialized:
            self.load_config()

        # Determine file format from extension
        if filepath.endswith('.json'):
            with open(filepath, 'w') as f:
                json.dump(self._config, f, indent=2)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'w') as f:
                yaml.dump(self._config, f, default_flow_style=False)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

    def load_from_file(self, filepath: str) -> None:
        """
        Load configuration from a file.

        Args:
            filepath: Path to load configuration from
        """
        # Determine file format from extension
        if filepath.endswith('.json'):
            with open(filepath, 'r') as f:
                overrides = json.load(f)
        elif filepath.endswith('.yaml') or filepath.endswith('.yml'):
            with open(filepath, 'r') as f:
                overrides = yaml.safe_load(f)
        else:
            raise ValueError(f"Unsupported file format: {filepath}")

        # Apply overrides
        self.load_config(overrides)


class ConfigManager:
    """
    Singleton manager for configuration.
    """

    _instance = None
    _lock = threading.RLock()

    @classmethod
    def get_config(cls, overrides: Optional[Dict[str, Any]] = None) -> Config:
        """
        Get the configuration instance.

        Args:
            overrides: Optional configuration overrides

        Returns:
            Config instance
        """
        with cls._lock:
            if cls._instance is None:
                cls._instance = Config(overrides)
            elif overrides:
                cls._instance.load_config(overrides)

            return cls._instance

    @classmethod
    def reset(cls) -> None:
        """Drop the current instance so the next call reloads from the environment."""
        with cls._lock:
            cls._instance = None


def get_option(path: str, value: Any = None) -> Any:
    """
    Resolve a tidier option, falling back to the configured default.

    Args:
        path: Configuration path of the default
        value: Value supplied by the caller, or None

    Returns:
        The supplied value, or the configured default when it is None
    """
    if value is not None:
        return value
    return ConfigManager.get_config().get(path)


def configure_logging(config: Optional[Config] = None) -> logging.Logger:
    """
    Attach a stdout handler to the package logger if it has none.

    Args:
        config: Configuration to read the log level from

    Returns:
        The package logger
    """
    config = config or ConfigManager.get_config()
    package_logger = logging.getLogger('modeltidy')

    if not package_logger.handlers:
        handler = logging.StreamHandler(sys.stdout)
        formatter = logging.Formatter('%(asctime)s - %(name)s - %(levelname)s - %(message)s')
        handler.setFormatter(formatter)
        package_logger.addHandler(handler)

    level = LOG_LEVELS.get(str(config.get('logging.level', 'warn')).lower(), logging.WARNING)
    package_logger.setLevel(level)
    return package_logger
