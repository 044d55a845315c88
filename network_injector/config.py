"""Frozen dataclasses for configuration, YAML loader with env-var interpolation, and CLI overrides."""

from __future__ import annotations

import os
import re
import socket
import types
import typing
from dataclasses import dataclass, field, replace
from pathlib import Path
from typing import Any

import yaml

from .exceptions import ConfigError

_ENV_PATTERN = re.compile(r"\$\{([^}]+)\}")
_BIND_PATTERN = re.compile(r"^(?P<host>\[[0-9a-fA-F:.]+\]|[^:]*):(?P<port>\d+)$")


def _interpolate_env(value: str) -> str:
    """Replace ${ENV_VAR} placeholders with environment variable values."""

    def _replace(match: re.Match) -> str:
        env_key = match.group(1)
        env_val = os.environ.get(env_key)
        if env_val is None:
            raise ConfigError(f"Environment variable '{env_key}' is not set")
        return env_val

    return _ENV_PATTERN.sub(_replace, value)


def _walk_and_interpolate(obj: Any) -> Any:
    """Recursively interpolate env vars in strings throughout a nested structure."""
    if isinstance(obj, str):
        return _interpolate_env(obj)
    if isinstance(obj, dict):
        return {k: _walk_and_interpolate(v) for k, v in obj.items()}
    if isinstance(obj, list):
        return [_walk_and_interpolate(v) for v in obj]
    return obj


@dataclass(frozen=True)
class OpenStackConfig:
    cloud: str = ""  # empty = OS_CLOUD / OS_* environment
    region_name: str = ""
    interface: str = ""  # "public", "internal" or "admin"; empty = SDK default


@dataclass(frozen=True)
class InjectorConfig:
    network_tag: str = ""
    dns_name: str = ""
    hostname: str = ""  # empty = socket.gethostname()
    device_id: str = "network-injector"


@dataclass(frozen=True)
class NamespaceConfig:
    prefix: str = "injector-"
    interface_prefix: str = "inj"
    integration_bridge: str = "br-int"
    command_timeout: int = 30


@dataclass(frozen=True)
class HAProxyConfig:
    binary: str = "haproxy"
    run_dir: str = "/var/run/network-injector"
    listen_port: int = 80
    upstream_host: str = "localhost"
    proxy_path: str = "/var/run/socat-proxy/proxy.sock"
    start_timeout: int = 10
    stop_timeout: int = 10


@dataclass(frozen=True)
class PollingConfig:
    interval_seconds: int = 60


@dataclass(frozen=True)
class MetricsConfig:
    bind_address: str = ":8080"


@dataclass(frozen=True)
class LoggingConfig:
    level: str = "INFO"
    format: str = "text"  # "json" or "text"


@dataclass(frozen=True)
class AppConfig:
    openstack: OpenStackConfig = field(default_factory=OpenStackConfig)
    injector: InjectorConfig = field(default_factory=InjectorConfig)
    namespace: NamespaceConfig = field(default_factory=NamespaceConfig)
    haproxy: HAProxyConfig = field(default_factory=HAProxyConfig)
    polling: PollingConfig = field(default_factory=PollingConfig)
    metrics: MetricsConfig = field(default_factory=MetricsConfig)
    logging: LoggingConfig = field(default_factory=LoggingConfig)


def _get_dataclass_type(ft: Any) -> type | None:
    """Return the underlying dataclass type from a type annotation (handles Optional/X|None)."""
    if isinstance(ft, type) and hasattr(ft, "__dataclass_fields__"):
        return ft
    if isinstance(ft, types.UnionType):
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    origin = getattr(ft, "__origin__", None)
    if origin is typing.Union:
        args = [a for a in ft.__args__ if a is not type(None)]
        if len(args) == 1 and isinstance(args[0], type) and hasattr(args[0], "__dataclass_fields__"):
            return args[0]
    return None


def _build_nested(cls: type, data: dict[str, Any]) -> Any:
    """Construct a frozen dataclass, recursively building nested dataclass fields."""
    if not isinstance(data, dict):
        return data
    field_types = {f.name: f.type for f in cls.__dataclass_fields__.values()}
    kwargs: dict[str, Any] = {}
    for key, value in data.items():
        if key not in field_types:
            continue
        ft = field_types[key]
        # Resolve string annotations to actual types in the module scope
        if isinstance(ft, str):
            ft = eval(ft, globals(), {cls.__name__: cls})  # noqa: S307
        dc_type = _get_dataclass_type(ft)
        if dc_type is not None and isinstance(value, dict):
            kwargs[key] = _build_nested(dc_type, value)
        else:
            kwargs[key] = value
    return cls(**kwargs)


def load_config(path: str | Path | None = None, overrides: dict[str, Any] | None = None) -> AppConfig:
    """Load configuration from an optional YAML file, apply overrides and validate.

    ``overrides`` maps dotted keys (``"injector.network_tag"``) to values; ``None``
    values are ignored so unset CLI flags do not clobber file settings.
    """
    raw: Any = {}
    if path is not None:
        path = Path(path)
        if not path.is_file():
            raise ConfigError(f"Configuration file not found: {path}")

        with open(path) as f:
            raw = yaml.safe_load(f)

        if raw is None:
            raw = {}
        if not isinstance(raw, dict):
            raise ConfigError("Configuration file must be a YAML mapping")

    raw = _walk_and_interpolate(raw)
    config = _build_nested(AppConfig, raw)
    if overrides:
        config = apply_overrides(config, overrides)
    config = _resolve_hostname(config)
    _validate(config)
    return config


def apply_overrides(config: AppConfig, overrides: dict[str, Any]) -> AppConfig:
    """Return a copy of ``config`` with dotted-key overrides applied."""
    for dotted, value in overrides.items():
        if value is None:
            continue
        section_name, _, key = dotted.partition(".")
        section = getattr(config, section_name, None)
        if section is None or key not in section.__dataclass_fields__:
            raise ConfigError(f"Unknown configuration key: {dotted}")
        config = replace(config, **{section_name: replace(section, **{key: value})})
    return config


def parse_bind_address(address: str) -> tuple[str, int]:
    """Split a ``[host]:port`` bind address; an empty host means all interfaces."""
    match = _BIND_PATTERN.match(address)
    if match is None:
        raise ConfigError(f"Invalid bind address '{address}', expected [host]:port")
    host = match.group("host").strip("[]")
    return host, int(match.group("port"))


def _resolve_hostname(config: AppConfig) -> AppConfig:
    if config.injector.hostname:
        return config
    try:
        hostname = socket.gethostname()
    except OSError as exc:
        raise ConfigError(f"Could not determine host name: {exc}") from exc
    if not hostname:
        raise ConfigError("Could not determine host name, set injector.hostname or --host")
    return replace(config, injector=replace(config.injector, hostname=hostname))


def _validate(config: AppConfig) -> None:
    """Validate configuration values."""
    if not config.injector.network_tag:
        raise ConfigError(
            "Network tag for scanned OpenStack networks is required (--network-tag or injector.network_tag)"
        )

    if config.polling.interval_seconds < 1:
        raise ConfigError("polling.interval_seconds must be >= 1")

    if config.logging.format not in ("json", "text"):
        raise ConfigError("logging.format must be 'json' or 'text'")

    if not 0 < config.haproxy.listen_port < 65536:
        raise ConfigError("haproxy.listen_port must be between 1 and 65535")

    parse_bind_address(config.metrics.bind_address)
