"""
Transport configuration for patched-sync.

A transport is selected by a tagged configuration: the "transport" key names
the variant and the remaining keys are that variant's parameters.

    transport: polling-http
    get_url: https://example.com/doc/1
    patch_url: https://example.com/doc/1/patch
    interval: 10000
    options:
      headers:
        Authorization: Bearer ...

The same shape is accepted as a plain dict by PatchedSync, or loaded from a
YAML file with load_config().
"""

import os
from dataclasses import dataclass, field, fields
from pathlib import Path
from typing import Any, ClassVar, Dict, Mapping, Optional, Type, Union

import yaml

from .exceptions import ConfigurationError

DEFAULT_INTERVAL_MS = 30000
DEFAULT_CONFIG_PATH = Path.home() / ".patched-sync" / "config.yaml"
CONFIG_ENV_VAR = "PATCHED_SYNC_CONFIG"

# Names used by earlier releases
TRANSPORT_ALIASES = {
    "fetch": "polling-http",
    "xmlhttprequest": "single-shot-http",
    "websocket": "socket",
}
PARAM_ALIASES = {
    "get_message": "get_message_name",
    "patch_message": "patch_message_name",
}


def _require(config: Any, *names: str) -> None:
    for name in names:
        if not getattr(config, name):
            raise ConfigurationError(f"{config.tag} transport requires '{name}'")


@dataclass
class PollingHttpConfig:
    """HTTP transport with a periodic GET poll (httpx)."""
    get_url: Optional[str] = None
    patch_url: Optional[str] = None
    interval: Optional[int] = DEFAULT_INTERVAL_MS
    options: Dict[str, Any] = field(default_factory=dict)

    tag: ClassVar[str] = "polling-http"

    def __post_init__(self) -> None:
        _require(self, "get_url", "patch_url")
        self.interval = _normalize_interval(self.interval, self.tag)


@dataclass
class SingleShotHttpConfig:
    """HTTP transport issuing one blocking request per call (requests)."""
    get_url: Optional[str] = None
    patch_url: Optional[str] = None
    interval: Optional[int] = DEFAULT_INTERVAL_MS
    options: Dict[str, Any] = field(default_factory=dict)

    tag: ClassVar[str] = "single-shot-http"

    def __post_init__(self) -> None:
        _require(self, "get_url", "patch_url")
        self.interval = _normalize_interval(self.interval, self.tag)


@dataclass
class SocketConfig:
    """Bidirectional WebSocket transport (websockets)."""
    socket_url: Optional[str] = None
    get_message_name: Optional[str] = None
    patch_message_name: Optional[str] = None
    options: Dict[str, Any] = field(default_factory=dict)

    tag: ClassVar[str] = "socket"

    def __post_init__(self) -> None:
        _require(self, "socket_url", "get_message_name", "patch_message_name")


TransportConfig = Union[PollingHttpConfig, SingleShotHttpConfig, SocketConfig]

CONFIG_CLASSES: Dict[str, Type[Any]] = {
    cls.tag: cls for cls in (PollingHttpConfig, SingleShotHttpConfig, SocketConfig)
}


def _normalize_interval(interval: Any, tag: str) -> int:
    # 0 / None fall back to the default, as in earlier releases
    if not interval:
        return DEFAULT_INTERVAL_MS
    if isinstance(interval, bool) or not isinstance(interval, (int, float)) or interval < 0:
        raise ConfigurationError(f"{tag} interval must be a positive number of milliseconds, got {interval!r}")
    return int(interval)


def canonical_transport_name(name: str) -> str:
    """Map a legacy transport name to its current tag."""
    return TRANSPORT_ALIASES.get(name, name)


def parse_transport_config(data: Mapping[str, Any]) -> TransportConfig:
    """
    Build a transport config from a tagged mapping.

    Args:
        data: Mapping with a "transport" tag plus the variant's parameters

    Returns:
        PollingHttpConfig, SingleShotHttpConfig or SocketConfig

    Raises:
        ConfigurationError: If the tag is missing or unknown, a parameter is not
                            recognized, or a required parameter is missing
    """
    tag = data.get("transport")
    if not tag:
        raise ConfigurationError("No transport was defined (config 'transport')")
    if not isinstance(tag, str):
        raise ConfigurationError(f"Transport tag must be a string, got {type(tag).__name__}")

    tag = canonical_transport_name(tag)
    config_class = CONFIG_CLASSES.get(tag)
    if config_class is None:
        available = ", ".join(sorted(CONFIG_CLASSES))
        raise ConfigurationError(f"Unknown transport: '{tag}'. Available: {available}")

    accepted = {f.name for f in fields(config_class)}
    params: Dict[str, Any] = {}
    for key, value in data.items():
        if key == "transport":
            continue
        key = PARAM_ALIASES.get(key, key)
        if key not in accepted:
            raise ConfigurationError(f"Unknown parameter '{key}' for {tag} transport")
        params[key] = value

    if not isinstance(params.get("options", {}), Mapping):
        raise ConfigurationError(f"{tag} options must be a mapping")
    if "options" in params:
        params["options"] = dict(params["options"])

    return config_class(**params)


def get_config_path(explicit: Optional[Union[str, Path]] = None) -> Path:
    """Get the config file path.

    Priority: explicit argument > PATCHED_SYNC_CONFIG env var > default path.
    """
    if explicit:
        return Path(explicit)
    env_path = os.getenv(CONFIG_ENV_VAR)
    if env_path:
        return Path(env_path)
    return DEFAULT_CONFIG_PATH


def load_config(path: Optional[Union[str, Path]] = None) -> TransportConfig:
    """
    Load a transport config from a YAML file.

    Raises:
        ConfigurationError: If the file is missing, unreadable or invalid
    """
    config_path = get_config_path(path)
    if not config_path.exists():
        raise ConfigurationError(f"Config file not found: {config_path}")

    try:
        data = yaml.safe_load(config_path.read_text()) or {}
    except yaml.YAMLError as e:
        raise ConfigurationError(f"Invalid YAML in {config_path}: {e}") from e

    if not isinstance(data, Mapping):
        raise ConfigurationError(f"{config_path} must contain a mapping")

    return parse_transport_config(data)


__all__ = [
    "DEFAULT_INTERVAL_MS",
    "PollingHttpConfig",
    "SingleShotHttpConfig",
    "SocketConfig",
    "TransportConfig",
    "CONFIG_CLASSES",
    "canonical_transport_name",
    "parse_transport_config",
    "get_config_path",
    "load_config",
]
