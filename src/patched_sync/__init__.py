"""
patched-sync - keep an object up to date with a remote copy through JSON Patch.

Local changes are merged optimistically, sent as JSON Patch documents, and
reconciled with the counter-patch the remote peer returns.
"""

__version__ = "0.1.0"
__license__ = "MIT"

from .engine import PatchedSync
from .merge import DELETE, ArrayOp, DeleteMarker, deep_merge
from .events import EventKind
from .event_bus import EventBus
from .history import HistoryLedger, HistoryRecord
from .config import (
    PollingHttpConfig,
    SingleShotHttpConfig,
    SocketConfig,
    load_config,
    parse_transport_config,
)
from .exceptions import PatchedSyncError, ConfigurationError, TransportError, PatchApplyError
from .transports import (
    Transport,
    PollingHttpTransport,
    SingleShotHttpTransport,
    SocketTransport,
    create_transport,
    register_transport,
)

__all__ = [
    "PatchedSync",
    "DELETE",
    "ArrayOp",
    "DeleteMarker",
    "deep_merge",
    "EventKind",
    "EventBus",
    "HistoryLedger",
    "HistoryRecord",
    "PollingHttpConfig",
    "SingleShotHttpConfig",
    "SocketConfig",
    "load_config",
    "parse_transport_config",
    "PatchedSyncError",
    "ConfigurationError",
    "TransportError",
    "PatchApplyError",
    "Transport",
    "PollingHttpTransport",
    "SingleShotHttpTransport",
    "SocketTransport",
    "create_transport",
    "register_transport",
]
