"""
Configuration for the resilient socket.

``SocketOptions`` is the immutable snapshot a ``ConnectionManager`` is
built with. ``ConfigLoader`` reads options from a YAML or JSON file and
applies ``RESOCKET_*`` environment overrides on top.
"""

import json
import os
from dataclasses import dataclass, field, fields, replace
from pathlib import Path
from typing import Any, Callable, Dict, Mapping, Optional

import yaml

from .exceptions import ConfigError


Callback = Optional[Callable[..., Any]]

CALLBACK_FIELDS = ('on_open', 'on_close', 'on_message', 'on_error')


@dataclass(frozen=True)
class SocketOptions:
    """Connection manager options.

    Intervals and timeouts are in seconds.
    """
    on_open: Callback = None
    on_close: Callback = None
    on_message: Callback = None
    on_error: Callback = None
    heartbeat_message: str = "ping"
    heartbeat_interval: float = 15.0
    reconnect_enabled: bool = True
    max_reconnect_attempts: int = 10
    pending_send_interval: float = 1.0
    reconnect_interval: float = 0.0       # 0 reconnects immediately
    connect_timeout: Optional[float] = None  # None never times out a connect

    def __post_init__(self) -> None:
        self.validate()

    @classmethod
    def from_mapping(cls, overrides: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> "SocketOptions":
        """Merge overrides over the defaults.

        Keys set to ``None`` keep their default value. Unknown keys raise
        ``ConfigError``.
        """
        merged: Dict[str, Any] = dict(overrides or {})
        merged.update(kwargs)

        known = {f.name for f in fields(cls)}
        unknown = sorted(set(merged) - known)
        if unknown:
            raise ConfigError(f"Unknown socket options: {', '.join(unknown)}")

        return cls(**{k: v for k, v in merged.items() if v is not None})

    def merged(self, **overrides: Any) -> "SocketOptions":
        """Return a copy with non-None overrides applied."""
        return replace(self, **{k: v for k, v in overrides.items() if v is not None})

    def validate(self) -> bool:
        """Validate configuration

        Raises:
            ConfigError: If configuration is invalid
        """
        if not isinstance(self.heartbeat_message, str) or not self.heartbeat_message:
            raise ConfigError(f"Invalid heartbeat message: {self.heartbeat_message!r}")

        if self.heartbeat_interval <= 0:
            raise ConfigError(f"Invalid heartbeat interval: {self.heartbeat_interval}")

        if isinstance(self.max_reconnect_attempts, bool) or not isinstance(self.max_reconnect_attempts, int) \
                or self.max_reconnect_attempts < 0:
            raise ConfigError(f"Invalid max reconnect attempts: {self.max_reconnect_attempts}")

        if self.pending_send_interval <= 0:
            raise ConfigError(f"Invalid pending send interval: {self.pending_send_interval}")

        if self.reconnect_interval < 0:
            raise ConfigError(f"Invalid reconnect interval: {self.reconnect_interval}")

        if self.connect_timeout is not None and self.connect_timeout <= 0:
            raise ConfigError(f"Invalid connect timeout: {self.connect_timeout}")

        for name in CALLBACK_FIELDS:
            value = getattr(self, name)
            if value is not None and not callable(value):
                raise ConfigError(f"{name} must be callable")

        return True

    def to_dict(self) -> Dict[str, Any]:
        """Convert the non-callback options to a dictionary"""
        return {f.name: getattr(self, f.name) for f in fields(self) if f.name not in CALLBACK_FIELDS}


@dataclass
class ClientSettings:
    """Everything the command line driver needs to start a connection."""
    url: Optional[str] = None
    log_level: str = "INFO"
    options: SocketOptions = field(default_factory=SocketOptions)


class ConfigLoader:
    """Loads ``ClientSettings`` from a file and the environment."""

    def __init__(self, env_prefix: str = "RESOCKET_") -> None:
        self._env_prefix = env_prefix

    def load_settings(self, config_file: Optional[str] = None) -> ClientSettings:
        """
        Load settings from file and environment variables.

        Args:
            config_file: Path to configuration file (optional)

        Returns:
            Loaded and validated settings
        """
        config_data: Dict[str, Any] = {}

        if config_file:
            config_data = self._load_from_file(config_file)

        config_data.update(self._load_from_environment())

        url = config_data.pop("url", None)
        log_level = str(config_data.pop("log_level", "INFO")).upper()
        options = SocketOptions.from_mapping(config_data)

        return ClientSettings(url=url, log_level=log_level, options=options)

    def _load_from_file(self, file_path: str) -> Dict[str, Any]:
        """Load configuration from file."""
        path = Path(file_path)

        if not path.exists():
            raise ConfigError(f"Configuration file not found: {file_path}")

        if path.suffix.lower() in ['.yaml', '.yml']:
            data = self._load_yaml(path)
        elif path.suffix.lower() == '.json':
            data = self._load_json(path)
        else:
            raise ConfigError(f"Unsupported configuration file format: {path.suffix}")

        if not isinstance(data, dict):
            raise ConfigError(f"Configuration in {file_path} must be a mapping")
        return data

    def _load_yaml(self, path: Path) -> Any:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return yaml.safe_load(f) or {}
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Error reading {path}: {e}")

    def _load_json(self, path: Path) -> Any:
        try:
            with open(path, 'r', encoding='utf-8') as f:
                return json.load(f)
        except json.JSONDecodeError as e:
            raise ConfigError(f"Invalid JSON in {path}: {e}")
        except OSError as e:
            raise ConfigError(f"Error reading {path}: {e}")

    def _load_from_environment(self) -> Dict[str, Any]:
        """Load configuration overrides from environment variables."""
        config: Dict[str, Any] = {}

        env_mappings = {
            f"{self._env_prefix}URL": ("url", str),
            f"{self._env_prefix}LOG_LEVEL": ("log_level", str),
            f"{self._env_prefix}HEARTBEAT_MESSAGE": ("heartbeat_message", str),
            f"{self._env_prefix}HEARTBEAT_INTERVAL": ("heartbeat_interval", float),
            f"{self._env_prefix}RECONNECT": ("reconnect_enabled", self._parse_bool),
            f"{self._env_prefix}MAX_RECONNECT_ATTEMPTS": ("max_reconnect_attempts", int),
            f"{self._env_prefix}RECONNECT_INTERVAL": ("reconnect_interval", float),
            f"{self._env_prefix}CONNECT_TIMEOUT": ("connect_timeout", float),
        }

        for env_var, (key, converter) in env_mappings.items():
            value = os.getenv(env_var)
            if value is not None:
                try:
                    config[key] = converter(value)
                except (ValueError, TypeError) as e:
                    raise ConfigError(f"Invalid value for {env_var}: {value} ({e})")

        return config

    def _parse_bool(self, value: str) -> bool:
        """Parse boolean value from string."""
        return value.lower() in ('true', '1', 'yes', 'on', 'enabled')
