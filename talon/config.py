"""
Config system - client configuration with layered loading.

``ClientConfig`` is the process-level configuration shared by every
interceptor created from it. ``ConfigLoader`` merges configuration from
files and the environment with precedence:

    overrides > environment variables > .env file > config files > defaults
"""

from typing import Any, Dict, Iterable, Optional
from dataclasses import dataclass, field
from pathlib import Path
from urllib.parse import urlsplit
import json
import os

from dotenv import dotenv_values

from .codecs import Codec, JsonCodec
from .faults import ConfigError
from .filters import FilterPipeline
from .transport import HttpxTransport, Transport


@dataclass
class ClientConfig:
    """
    Configuration shared by all clients built from it.

    Read-mostly: mutating it after clients are created is the caller's
    responsibility and is not guarded.

    Attributes:
        http_host: Base address relative routes are resolved against
        default_headers: Headers sent with every request
        filters: Request pipeline (a list is converted)
        transport: Wire transport
        codec: Body codec
        timeout: Default per-call timeout in seconds (None = no timeout)
        raise_for_status: Raise ResponseError for non-2xx responses
    """
    http_host: Optional[str] = None
    default_headers: Dict[str, str] = field(default_factory=dict)
    filters: FilterPipeline = field(default_factory=FilterPipeline)
    transport: Transport = field(default_factory=HttpxTransport)
    codec: Codec = field(default_factory=JsonCodec)
    timeout: Optional[float] = 30.0
    raise_for_status: bool = True

    def __post_init__(self):
        if not isinstance(self.filters, FilterPipeline):
            self.filters = FilterPipeline(self.filters or ())

        if self.http_host is not None:
            self.http_host = _validate_host(self.http_host)

        if self.timeout is not None:
            if isinstance(self.timeout, bool) or not isinstance(self.timeout, (int, float)) or self.timeout <= 0:
                raise ConfigError(
                    f"timeout must be a positive number, got {self.timeout!r}",
                    key="timeout",
                )
            self.timeout = float(self.timeout)

        if self.transport is None or not callable(getattr(self.transport, "send", None)):
            raise ConfigError("transport must define an async send()", key="transport")
        if self.codec is None or not callable(getattr(self.codec, "deserialize", None)):
            raise ConfigError("codec must define serialize() and deserialize()", key="codec")

        self.default_headers = {str(k): str(v) for k, v in (self.default_headers or {}).items()}

    @classmethod
    def from_mapping(
        cls,
        data: Dict[str, Any],
        *,
        filters: Iterable[Any] = (),
        transport: Optional[Transport] = None,
        codec: Optional[Codec] = None,
    ) -> "ClientConfig":
        """
        Build a config from plain data (as loaded from YAML/env).

        Components that cannot come from data (filters, transport, codec)
        are passed explicitly.
        """
        known = {"http_host", "default_headers", "timeout", "raise_for_status"}
        unknown = set(data) - known
        if unknown:
            raise ConfigError(
                f"Unknown client config keys: {', '.join(sorted(unknown))}",
                key=sorted(unknown)[0],
            )

        headers = data.get("default_headers") or {}
        if not isinstance(headers, dict):
            raise ConfigError(
                f"default_headers expected mapping, got {type(headers).__name__}",
                key="default_headers",
            )

        raise_for_status = data.get("raise_for_status", True)
        if not isinstance(raise_for_status, bool):
            raise ConfigError(
                f"raise_for_status expected bool, got {type(raise_for_status).__name__}",
                key="raise_for_status",
            )

        kwargs: Dict[str, Any] = {
            "http_host": data.get("http_host"),
            "default_headers": headers,
            "timeout": data.get("timeout", 30.0),
            "raise_for_status": raise_for_status,
            "filters": FilterPipeline(filters),
        }
        if transport is not None:
            kwargs["transport"] = transport
        if codec is not None:
            kwargs["codec"] = codec
        return cls(**kwargs)


def _validate_host(host: Any) -> str:
    if not isinstance(host, str):
        raise ConfigError(f"http_host expected string, got {type(host).__name__}", key="http_host")
    parts = urlsplit(host)
    if parts.scheme not in ("http", "https") or not parts.netloc:
        raise ConfigError(
            f"http_host must be an absolute http(s) URL, got {host!r}",
            key="http_host",
        )
    return host


class ConfigLoader:
    """
    Loads and merges configuration from multiple sources with precedence:
    overrides > environment variables > .env file > config files > defaults
    """

    def __init__(self, env_prefix: str = "TALON_"):
        self.env_prefix = env_prefix
        self.config_data: Dict[str, Any] = {}

    @classmethod
    def load(
        cls,
        paths: Optional[list] = None,
        env_prefix: str = "TALON_",
        env_file: Optional[str] = None,
        overrides: Optional[Dict[str, Any]] = None,
    ) -> "ConfigLoader":
        """
        Load configuration from multiple sources.

        Merge order (later overrides earlier):
        1. Config files (YAML or JSON), in the order given
        2. .env file (only keys with the prefix)
        3. Environment variables (prefix, ``__`` separates nesting levels)
        4. Manual overrides

        Args:
            paths: Config file paths (glob patterns supported)
            env_prefix: Prefix for environment variables
            env_file: Path to .env file
            overrides: Manual overrides (highest precedence)

        Returns:
            Configured ConfigLoader instance
        """
        loader = cls(env_prefix=env_prefix)

        for pattern in paths or []:
            loader._load_from_files(str(pattern))

        if env_file:
            loader._load_env_file(env_file)

        loader._load_from_env()

        if overrides:
            loader._merge_dict(loader.config_data, overrides)

        return loader

    def _load_from_files(self, pattern: str):
        """Load config from JSON or YAML files."""
        from glob import glob

        matches = sorted(glob(pattern))
        if not matches and not any(ch in pattern for ch in "*?["):
            raise ConfigError(f"Config file '{pattern}' not found", code="CONFIG_MISSING", key=pattern)

        for path_str in matches:
            path = Path(path_str)
            if path.suffix == ".json":
                self._load_json_file(path)
            elif path.suffix in (".yaml", ".yml"):
                self._load_yaml_file(path)
            else:
                raise ConfigError(f"Unsupported config file type '{path.suffix}'", key=path_str)

    def _load_json_file(self, path: Path):
        """Load config from JSON file."""
        with open(path) as f:
            try:
                data = json.load(f)
            except json.JSONDecodeError as e:
                raise ConfigError(f"Invalid JSON in '{path}': {e}", key=str(path)) from e
        self._merge_dict(self.config_data, data)

    def _load_yaml_file(self, path: Path):
        """Load config from YAML file."""
        import yaml
        with open(path) as f:
            try:
                data = yaml.safe_load(f)
            except yaml.YAMLError as e:
                raise ConfigError(f"Invalid YAML in '{path}': {e}", key=str(path)) from e
        if data:
            if not isinstance(data, dict):
                raise ConfigError(f"Config file '{path}' must contain a mapping", key=str(path))
            self._merge_dict(self.config_data, data)

    def _load_env_file(self, path: str):
        """Load config from .env file."""
        if not Path(path).exists():
            return

        for key, value in dotenv_values(path).items():
            if key.startswith(self.env_prefix) and value is not None:
                self._set_nested(key, value)

    def _load_from_env(self):
        """Load config from environment variables."""
        for key, value in os.environ.items():
            if key.startswith(self.env_prefix):
                self._set_nested(key, value)

    def _set_nested(self, key: str, value: str):
        """Convert TALON_CLIENT__HTTP_HOST to {"client": {"http_host": ...}}."""
        key = key[len(self.env_prefix):]

        parts = key.lower().split("__")

        current = self.config_data
        for part in parts[:-1]:
            if not isinstance(current.get(part), dict):
                current[part] = {}
            current = current[part]

        current[parts[-1]] = self._parse_value(value)

    def _parse_value(self, value: str) -> Any:
        """Parse string value to appropriate type."""
        if value.lower() in ("true", "yes"):
            return True
        if value.lower() in ("false", "no"):
            return False

        try:
            if "." in value:
                return float(value)
            return int(value)
        except ValueError:
            pass

        if value.startswith(("{", "[")):
            try:
                return json.loads(value)
            except json.JSONDecodeError:
                pass

        return value

    def _merge_dict(self, target: dict, source: dict):
        """Deep merge source into target."""
        for key, value in source.items():
            if key in target and isinstance(target[key], dict) and isinstance(value, dict):
                self._merge_dict(target[key], value)
            else:
                target[key] = value

    def get(self, path: str, default: Any = None) -> Any:
        """Get config value by dot-separated path."""
        current = self.config_data

        for part in path.split("."):
            if isinstance(current, dict) and part in current:
                current = current[part]
            else:
                return default

        return current

    def to_dict(self) -> dict:
        return self.config_data.copy()


def load_client_config(
    paths: Optional[list] = None,
    *,
    section: str = "client",
    env_prefix: str = "TALON_",
    env_file: Optional[str] = None,
    overrides: Optional[Dict[str, Any]] = None,
    filters: Iterable[Any] = (),
    transport: Optional[Transport] = None,
    codec: Optional[Codec] = None,
) -> ClientConfig:
    """
    Load a ClientConfig from files and the environment.

    Example (config/client.yaml)::

        client:
          http_host: https://api.example.com
          timeout: 10
          default_headers:
            Accept: application/json

    Environment: ``TALON_CLIENT__HTTP_HOST=https://staging.example.com``.
    """
    loader = ConfigLoader.load(paths, env_prefix=env_prefix, env_file=env_file, overrides=overrides)
    data = loader.get(section, {})
    if not isinstance(data, dict):
        raise ConfigError(f"Config section '{section}' must be a mapping", key=section)
    return ClientConfig.from_mapping(data, filters=filters, transport=transport, codec=codec)
