"""Configuration loader for clusterssh."""

from __future__ import annotations

import math
from dataclasses import dataclass, field
from pathlib import Path
from typing import Any

import yaml

from .credentials import DEFAULT_KEY_FILES
from .errors import ConfigError
from .hosts import DEFAULT_PORT
from .orchestrator import DEFAULT_GRACE_PERIOD


@dataclass
class Defaults:
    """Default values applied to every host and run."""

    user: str | None = None
    port: int = DEFAULT_PORT
    connect_timeout: float | None = 30
    grace_period: float = DEFAULT_GRACE_PERIOD
    max_output: int | None = None
    key_files: list[Path] = field(
        default_factory=lambda: [Path(p).expanduser() for p in DEFAULT_KEY_FILES]
    )


@dataclass
class Config:
    """Main configuration for a run."""

    defaults: Defaults = field(default_factory=Defaults)
    hosts: list[str] = field(default_factory=list)  # unparsed host specs
    source_path: Path | None = None  # Path to the original config file


def load_config(config_path: str | Path) -> Config:
    """Load and validate configuration from a YAML file."""
    config_path = Path(config_path).expanduser().resolve()

    if not config_path.exists():
        raise FileNotFoundError(f"Config file not found: {config_path}")

    with open(config_path) as f:
        try:
            raw = yaml.safe_load(f)
        except yaml.YAMLError as e:
            raise ConfigError(f"Invalid YAML in {config_path}: {e}") from e

    config = _parse_config(raw or {})
    config.source_path = config_path
    return config


def _parse_config(raw: Any) -> Config:
    """Parse raw YAML data into Config object."""
    if not isinstance(raw, dict):
        raise ConfigError("Configuration must be a mapping")

    defaults = _parse_defaults(raw)

    hosts_raw = raw.get("hosts") or []
    if not isinstance(hosts_raw, list):
        raise ConfigError("'hosts' must be a list of host specifications")
    hosts = []
    for spec in hosts_raw:
        if not isinstance(spec, str):
            raise ConfigError(f"Host entry must be a string, got {spec!r}")
        hosts.append(spec)

    return Config(defaults=defaults, hosts=hosts)


def _parse_defaults(raw: dict[str, Any]) -> Defaults:
    """Parse the defaults section."""
    defaults_raw = raw.get("defaults") or {}
    if not isinstance(defaults_raw, dict):
        raise ConfigError("'defaults' must be a mapping")

    key_files_raw = defaults_raw.get("key_files", list(DEFAULT_KEY_FILES))
    if not isinstance(key_files_raw, list):
        raise ConfigError("'key_files' must be a list of paths")

    port = _positive(defaults_raw, "port", DEFAULT_PORT, cast=int)
    if port > 65535:
        raise ConfigError(f"'port' must be at most 65535, got {port}")

    return Defaults(
        user=defaults_raw.get("user"),
        port=port,
        connect_timeout=_optional_positive(defaults_raw, "connect_timeout", 30),
        grace_period=_positive(defaults_raw, "grace_period", DEFAULT_GRACE_PERIOD),
        max_output=_optional_positive(defaults_raw, "max_output", None, cast=int),
        key_files=[Path(str(p)).expanduser() for p in key_files_raw],
    )


def _positive(raw: dict[str, Any], key: str, default: Any, cast=float) -> Any:
    value = raw.get(key, default)
    try:
        value = cast(value)
    except (TypeError, ValueError) as e:
        raise ConfigError(f"'{key}' must be a number, got {value!r}") from e
    if not math.isfinite(value):
        raise ConfigError(f"'{key}' must be a finite number, got {value!r}")
    if value <= 0:
        raise ConfigError(f"'{key}' must be positive, got {value!r}")
    return value


def _optional_positive(raw: dict[str, Any], key: str, default: Any, cast=float) -> Any:
    if raw.get(key, default) is None:
        return None
    return _positive(raw, key, default, cast=cast)
