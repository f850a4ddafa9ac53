"""
Transport registry.

Register new transports with the @register_transport decorator:

    from patched_sync.transports import register_transport
    from patched_sync.transports.base import Transport

    @register_transport("my-transport")
    class MyTransport(Transport):
        ...

Then build the configured transport:

    from patched_sync.transports import create_transport
    transport = create_transport({"transport": "polling-http", "get_url": ..., "patch_url": ...})

Built-in tags: polling-http, single-shot-http, socket.
"""

import logging
from typing import Any, Dict, List, Mapping, Type

from ..config import CONFIG_CLASSES, canonical_transport_name, parse_transport_config
from ..exceptions import ConfigurationError
from .base import PatchDocument, Transport, UpdateCallback

logger = logging.getLogger(__name__)

_TRANSPORT_REGISTRY: Dict[str, Type[Transport]] = {}


def register_transport(name: str):
    """Decorator to register a transport class under a tag."""
    def decorator(cls: Type[Transport]) -> Type[Transport]:
        if not issubclass(cls, Transport):
            raise TypeError(f"{cls.__name__} must inherit from Transport")
        _TRANSPORT_REGISTRY[name] = cls
        return cls
    return decorator


def get_transport_class(name: str) -> Type[Transport]:
    """
    Look up a registered transport class by tag (legacy names accepted).

    Raises:
        ConfigurationError: If no transport is registered under that tag
    """
    tag = canonical_transport_name(name)
    if tag not in _TRANSPORT_REGISTRY:
        available = ", ".join(sorted(_TRANSPORT_REGISTRY.keys()))
        raise ConfigurationError(f"Unknown transport: '{name}'. Available: {available}")
    return _TRANSPORT_REGISTRY[tag]


def list_transports() -> List[str]:
    """Return tags of all registered transports."""
    return sorted(_TRANSPORT_REGISTRY.keys())


def create_transport(spec: Any) -> Transport:
    """
    Resolve a transport spec to a transport instance.

    Args:
        spec: A Transport instance or any object with async get() and patch()
              methods (returned as-is), a config dataclass from
              patched_sync.config, or a tagged mapping {"transport": <tag>, ...}

    Returns:
        A Transport instance

    Raises:
        ConfigurationError: If the spec is missing, of an unsupported type, of
                            an unknown tag, or lacks required parameters
    """
    if spec is None:
        raise ConfigurationError("A transport configuration is required")

    if isinstance(spec, Transport):
        return spec

    if isinstance(spec, Mapping):
        spec = parse_transport_config(spec)
    elif callable(getattr(spec, "get", None)) and callable(getattr(spec, "patch", None)):
        # Duck-typed transport that does not inherit from Transport
        return spec

    if not isinstance(spec, tuple(CONFIG_CLASSES.values())):
        raise ConfigurationError(
            f"Transport must be a Transport instance, a transport config or a mapping, got {type(spec).__name__}"
        )

    cls = get_transport_class(spec.tag)
    transport = cls.from_config(spec)
    logger.info(f"Created {spec.tag} transport: {transport!r}")
    return transport


# Import built-in transports so they self-register.
from .polling_http import PollingHttpTransport  # noqa: E402
from .single_shot_http import ReadyState, SingleShotHttpTransport  # noqa: E402
from .websocket import SocketTransport  # noqa: E402

__all__ = [
    "Transport",
    "PatchDocument",
    "UpdateCallback",
    "register_transport",
    "get_transport_class",
    "list_transports",
    "create_transport",
    "PollingHttpTransport",
    "SingleShotHttpTransport",
    "ReadyState",
    "SocketTransport",
]
