"""Configuration manager for the weather station dashboard."""

import os
import yaml
from typing import Dict, Any, Optional

from ..series.models import Metric


DEFAULT_SCHEDULER_CONFIG = {
    'poll_interval': 5.0,
    'rotate_interval': 15.0,
    'date_refresh_interval': 60.0,
    'workers': 3,
    'shutdown_timeout': 5.0,
}

# Polling, chart rotation and date refresh each hold a worker for their lifetime
MIN_SCHEDULER_WORKERS = 3

DEFAULT_RETRY_CONFIG = {
    'initial_delay': 1.0,
    'backoff_factor': 2,
    'max_delay': 30.0,
    'max_attempts': 3,
}


class ConfigManager:
    """Manages configuration loading and validation."""

    def __init__(self, config_path: Optional[str] = None) -> None:
        """Initialize configuration manager.

        Args:
            config_path: Path to configuration file. If None, looks for CONFIG_PATH
                        and then config.yaml in the current directory.
        """
        self._config_path = config_path or self._find_config_file()
        self._config: Dict[str, Any] = {}
        self._load_config()

    def _find_config_file(self) -> str:
        """Find configuration file in standard locations."""
        possible_paths = [
            os.environ.get('CONFIG_PATH'),
            'config.yaml',
            os.path.join(os.path.dirname(__file__), '../../config.yaml')
        ]

        for path in possible_paths:
            if path and os.path.exists(path):
                return os.path.abspath(path)

        raise FileNotFoundError(
            "Configuration file not found. Please create config.yaml or set CONFIG_PATH environment variable."
        )

    def _load_config(self) -> None:
        """Load configuration from YAML file and environment variables."""
        if not os.path.exists(self._config_path):
            raise FileNotFoundError(f"Configuration file not found: {self._config_path}")

        try:
            with open(self._config_path, 'r') as file:
                self._config = yaml.safe_load(file) or {}
        except (OSError, yaml.YAMLError) as e:
            raise RuntimeError(f"Failed to load configuration: {e}")

        # Override with environment variables
        self._apply_env_overrides()

        self._validate_config()

    def _apply_env_overrides(self) -> None:
        """Apply environment variable overrides."""
        env_mappings = {
            'HUB_HOST': ['hub', 'host'],
            'HUB_PORT': ['hub', 'port'],
            'LOG_LEVEL': ['logging', 'level'],
            'INFLUXDB_URL': ['influxdb', 'url'],
            'INFLUXDB_TOKEN': ['influxdb', 'token'],
            'INFLUXDB_ORG': ['influxdb', 'org'],
            'INFLUXDB_BUCKET': ['influxdb', 'bucket'],
        }

        for env_var, config_path in env_mappings.items():
            value = os.environ.get(env_var)
            if value:
                self._set_nested_value(config_path, value)

    def _set_nested_value(self, path: list, value: Any) -> None:
        """Set nested configuration value."""
        current = self._config
        for key in path[:-1]:
            if not isinstance(current.get(key), dict):
                current[key] = {}
            current = current[key]
        current[path[-1]] = value

    def _validate_config(self) -> None:
        """Validate required configuration values."""
        required_sections = ['hub', 'sensors']

        for section in required_sections:
            if not isinstance(self._config.get(section), dict):
                raise ValueError(f"Missing required configuration section: {section}")

        if not self._config['hub'].get('host'):
            raise ValueError("Hub host must be set in config or HUB_HOST environment variable")

        try:
            int(self._config['hub'].get('port', 4223))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid hub port: {self._config['hub'].get('port')}")

        for name in self._config['sensors']:
            try:
                Metric.from_name(name)
            except ValueError:
                raise ValueError(f"Unknown sensor in configuration: {name}")

        scheduler = self._config.get('scheduler') or {}
        try:
            workers = int(scheduler.get('workers', MIN_SCHEDULER_WORKERS))
        except (TypeError, ValueError):
            raise ValueError(f"Invalid scheduler workers: {scheduler.get('workers')}")
        if workers < MIN_SCHEDULER_WORKERS:
            raise ValueError(f"scheduler.workers must be at least {MIN_SCHEDULER_WORKERS}, got {workers}")

        influxdb = self._config.get('influxdb') or {}
        if influxdb.get('enabled') and not influxdb.get('token'):
            raise ValueError("InfluxDB token must be set in config or INFLUXDB_TOKEN environment variable")

    def get(self, path: str, default: Any = None) -> Any:
        """Get configuration value using dot notation.

        Args:
            path: Configuration path using dot notation (e.g., 'hub.host')
            default: Default value if path not found

        Returns:
            Configuration value or default
        """
        keys = path.split('.')
        current = self._config

        try:
            for key in keys:
                current = current[key]
            return current
        except (KeyError, TypeError):
            return default

    def set_history_source(self, metric: Metric, path: str) -> None:
        """Override the history file for a metric (used by the command line)."""
        self._set_nested_value(['history', metric.value], path)

    def get_hub_config(self) -> Dict[str, Any]:
        """Get hub connection configuration with the port coerced to int."""
        hub = self._config['hub'].copy()
        hub['port'] = int(hub.get('port', 4223))
        hub.setdefault('auto_reconnect', True)
        hub.setdefault('timeout', 2.5)
        return hub

    def get_sensor_uids(self) -> Dict[Metric, str]:
        """Get bricklet UIDs keyed by metric, in polling order."""
        by_metric = {Metric.from_name(name): str(uid)
                     for name, uid in self._config['sensors'].items() if uid}
        return {metric: by_metric[metric] for metric in Metric if metric in by_metric}

    def get_history_sources(self) -> Dict[Metric, Optional[str]]:
        """Get the history file for every metric (None where not configured)."""
        history = self._config.get('history') or {}
        sources: Dict[Metric, Optional[str]] = {metric: None for metric in Metric}
        for name, path in history.items():
            sources[Metric.from_name(name)] = path or None
        return sources

    def get_scheduler_config(self) -> Dict[str, Any]:
        """Get scheduler intervals, filled in with defaults."""
        return {**DEFAULT_SCHEDULER_CONFIG, **(self._config.get('scheduler') or {})}

    def get_series_config(self) -> Dict[str, Any]:
        """Get series retention configuration."""
        return dict(self._config.get('series') or {})

    def get_logging_config(self) -> Dict[str, Any]:
        """Get logging configuration."""
        return dict(self._config.get('logging') or {})

    def get_influxdb_config(self) -> Dict[str, Any]:
        """Get InfluxDB configuration."""
        return dict(self._config.get('influxdb') or {})

    def get_retry_config(self) -> Dict[str, Any]:
        """Get retry configuration."""
        return {**DEFAULT_RETRY_CONFIG, **(self._config.get('retry') or {})}

    @property
    def config_path(self) -> str:
        """Get path to configuration file."""
        return self._config_path
