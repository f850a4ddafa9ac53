"""
Transport capability base class.

Defines the interface the sync engine consumes. All transports must inherit
from Transport and implement get() and patch(); polling transports also
implement start() and stop() and set supports_polling.

This provides a pluggable architecture for different remote peers (HTTP,
WebSockets, in-process test doubles) while the engine keeps a single
exchange protocol.

Example:
    class InMemoryTransport(Transport):
        OPTIONS = frozenset({"latency"})

        def __init__(self, remote: dict):
            super().__init__()
            self.remote = remote

        async def get(self) -> dict:
            return copy.deepcopy(self.remote)

        async def patch(self, document: list) -> list:
            self.remote = jsonpatch.apply_patch(self.remote, document)
            return []
"""

from abc import ABC, abstractmethod
from typing import Any, Callable, ClassVar, Dict, FrozenSet, List, Mapping, Optional

from ..exceptions import ConfigurationError

PatchDocument = List[Dict[str, Any]]
UpdateCallback = Callable[[Any], None]


class Transport(ABC):
    """
    Abstract base class for transports.

    Implementations must handle:
    - Request encoding and response decoding
    - Mapping every failure (network, status >= 400, non-JSON) to TransportError
    - Connection management
    """

    # Option names accepted by config()
    OPTIONS: ClassVar[FrozenSet[str]] = frozenset()

    # Whether start()/stop() run a periodic poll
    supports_polling: ClassVar[bool] = False

    def __init__(self) -> None:
        self._options: Dict[str, Any] = {}

    @classmethod
    def from_config(cls, config: Any) -> "Transport":
        """Build a transport from its config dataclass (see patched_sync.config)."""
        raise ConfigurationError(f"{cls.__name__} cannot be built from a configuration")

    @abstractmethod
    async def get(self) -> Any:
        """
        Fetch the full remote object.

        Raises:
            TransportError: If the request fails or the response is not JSON
        """
        pass

    @abstractmethod
    async def patch(self, document: PatchDocument) -> PatchDocument:
        """
        Send a patch document to the remote peer.

        Args:
            document: JSON Patch operations produced by a local change

        Returns:
            The peer's counter-patch (possibly empty)

        Raises:
            TransportError: If the request fails or the response is not a patch document
        """
        pass

    def config(self, options: Optional[Mapping[str, Any]] = None, **kwargs: Any) -> None:
        """
        Update request options.

        Accepts a mapping, keyword arguments, or both (keywords win).

        Raises:
            ConfigurationError: If an option is not recognized by this transport
        """
        updates = dict(options or {})
        updates.update(kwargs)

        unknown = sorted(set(updates) - self.OPTIONS)
        if unknown:
            available = ", ".join(sorted(self.OPTIONS)) or "none"
            raise ConfigurationError(
                f"Unknown option(s) for {self.__class__.__name__}: {', '.join(unknown)}. Available: {available}"
            )

        for name, value in updates.items():
            self._set_option(name, value)

    def _set_option(self, name: str, value: Any) -> None:
        self._options[name] = value

    @property
    def options(self) -> Dict[str, Any]:
        """Copy of the current request options."""
        return dict(self._options)

    def start(self, on_update: UpdateCallback) -> None:
        """Start polling the remote object, calling on_update(obj) each interval."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support polling")

    def stop(self) -> None:
        """Stop polling."""
        raise NotImplementedError(f"{self.__class__.__name__} does not support polling")

    async def close(self) -> None:
        """Close connections and cleanup resources."""
        pass

    async def __aenter__(self) -> "Transport":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__}>"
