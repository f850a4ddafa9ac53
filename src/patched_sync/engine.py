"""
PatchedSync - keeps a local object in sync with a remote copy through JSON Patch.

The engine owns the canonical state. Local edits are merged optimistically,
diffed into a patch document, recorded in the history ledger and sent through
the transport; the peer's counter-patch is then applied on top, so remote
edits win at every path they touch while local edits elsewhere survive.

Usage:
    from patched_sync import PatchedSync, DELETE

    sync = PatchedSync(
        {"transport": "polling-http", "get_url": "https://example.com/doc", "patch_url": "https://example.com/doc"},
        {"title": "draft", "tags": []},
    )
    sync.on("patch", lambda state: print("synced", state))

    await sync.fetch()
    await sync.change({"title": "final", "tags": {"operations": [{"op": "push", "value": "done"}]}})
    await sync.change({"title": DELETE})

Concurrency:
    No mutual exclusion by default. Overlapping change()/patch()/fetch() calls
    each merge into the state current when they start, and each counter-patch
    is applied to the state current when its round trip resolves, so the last
    round trip to resolve has the final word at the paths it touches. Pass
    single_flight=True to run the operations of one instance strictly one at a
    time instead.
"""

import asyncio
import contextlib
import copy
import logging
import uuid
from typing import Any, AsyncIterator, Callable, List, Optional, Union

from . import codec
from .event_bus import EventBus
from .events import EventKind
from .history import HistoryLedger, PatchDocument
from .merge import DELETE, deep_merge
from .transports import Transport, create_transport

logger = logging.getLogger(__name__)


class PatchedSync:
    """
    Create and manage a synchronized object.

    Ties the parts together: listens to local changes, notifies subscribers of
    lifecycle events, records patch history and keeps the object up to date
    with the remote peer.
    """

    DELETE = DELETE

    def __init__(self,
                 transport: Any,
                 initial_object: Any = None,
                 single_flight: bool = False):
        """
        Args:
            transport: A Transport instance, a transport config dataclass, or a
                       tagged mapping such as {"transport": "socket", "socket_url": ...,
                       "get_message_name": ..., "patch_message_name": ...}
            initial_object: Initial state, deep-copied (default: empty dict)
            single_flight: Serialize fetch/change/patch calls on this instance

        Raises:
            ConfigurationError: If the transport spec is missing or invalid
        """
        self._state: Any = copy.deepcopy(initial_object) if initial_object is not None else {}
        self._bus = EventBus()
        self._history = HistoryLedger()
        self._single_flight = single_flight
        self._flight_lock: Optional[asyncio.Lock] = None
        self.instance_id = uuid.uuid4().hex[:12]

        self.transport = create_transport(transport)
        logger.info(f"PatchedSync {self.instance_id} initialized with {self.transport!r}")

    # ------------------------------------------------------------------
    # Events
    # ------------------------------------------------------------------

    def on(self, event_name: Union[str, EventKind], callback: Callable[[Any], None]) -> str:
        """
        Listen to an event.

        Event names:
        - get:start, get:end, get:error: a fetch() started, completed or failed
        - patch:start, patch:end, patch:error: a change()/patch() started, completed or failed

        "get" and "patch" alone mean the ":end" event; "*" listens to every
        start and end event (not the error events).

        Returns:
            Subscription id for off()

        Raises:
            ValueError: If the event name is unknown
        """
        return self._bus.subscribe(event_name, callback)

    def off(self, subscription_id: str) -> bool:
        """Remove a subscription made with on(). Returns True if it existed."""
        return self._bus.unsubscribe(subscription_id)

    def notify(self, event_name: Union[str, EventKind], data: Any = None) -> None:
        """Fire an event; every listener gets its own copy of data. Unknown names are ignored."""
        self._bus.publish(event_name, data)

    def _notify_failure(self, kind: EventKind, operation: str, error: BaseException) -> None:
        logger.warning(f"PatchedSync {self.instance_id} {operation} failed: {error}")
        self.notify(kind, {
            "operation": operation,
            "error": str(error),
            "error_type": type(error).__name__,
            "status_code": getattr(error, "status_code", None),
        })

    # ------------------------------------------------------------------
    # State
    # ------------------------------------------------------------------

    def get(self) -> Any:
        """Return a copy of the current state. No I/O, no events."""
        return copy.deepcopy(self._state)

    @contextlib.asynccontextmanager
    async def _flight(self) -> AsyncIterator[None]:
        if not self._single_flight:
            yield
            return
        if self._flight_lock is None:
            self._flight_lock = asyncio.Lock()
        async with self._flight_lock:
            yield

    async def fetch(self) -> Any:
        """
        Replace the state with the remote object.

        Returns:
            Copy of the new state

        Raises:
            TransportError: If the transport fails (after firing get:error)
        """
        async with self._flight():
            self.notify(EventKind.GET_START)
            try:
                remote = await self.transport.get()
            except Exception as e:
                self._notify_failure(EventKind.GET_ERROR, "fetch", e)
                raise

            self._state = copy.deepcopy(remote)
            self.notify(EventKind.GET_END, self._state)
            return self.get()

    async def change(self, changes: Any) -> Any:
        """
        Merge a partial change into the state and sync it.

        Works like a deep dict update that never removes anything implicitly:
        keys missing from ``changes`` are kept, DELETE removes a key, and an
        array is either replaced by a new list or edited in place with
        ``{"operations": [{"op": "push"|"unshift"|"splice"|"remove", ...}]}``
        (see patched_sync.merge).

        The local patch is recorded in history before it is sent and stays
        applied if the transport fails.

        Returns:
            Copy of the state after the peer's counter-patch

        Raises:
            TransportError: If the transport fails (after firing patch:error)
            PatchApplyError: If the counter-patch does not fit the state
        """
        async with self._flight():
            self.notify(EventKind.PATCH_START)
            try:
                merged = deep_merge(self._state, changes)
                local_patch = codec.diff(self._state, merged)
                self._history.append(local_patch)
                self._state = merged
                return await self._exchange(local_patch)
            except Exception as e:
                self._notify_failure(EventKind.PATCH_ERROR, "change", e)
                raise

    async def patch(self, full_object: Any) -> Any:
        """
        Make the state equal to ``full_object`` and sync the difference.

        Unlike change(), keys missing from ``full_object`` are removed.

        Returns:
            Copy of the state after the peer's counter-patch
        """
        async with self._flight():
            self.notify(EventKind.PATCH_START)
            try:
                local_patch = codec.diff(self._state, full_object)
                self._history.append(local_patch)
                self._state = copy.deepcopy(full_object)
                return await self._exchange(local_patch)
            except Exception as e:
                self._notify_failure(EventKind.PATCH_ERROR, "patch", e)
                raise

    async def _exchange(self, local_patch: PatchDocument) -> Any:
        remote_patch = await self.transport.patch(copy.deepcopy(local_patch))
        logger.debug(
            f"PatchedSync {self.instance_id} sent {len(local_patch)} ops, "
            f"received {len(remote_patch or [])} ops"
        )

        # Counter-patch goes last: remote edits win wherever they touch
        self._state = codec.apply(self._state, remote_patch, evaluate_tests=False)
        self.notify(EventKind.PATCH_END, self._state)
        return self.get()

    # ------------------------------------------------------------------
    # Polling
    # ------------------------------------------------------------------

    def _can_poll(self) -> bool:
        # Duck-typed transports poll when they expose start/stop
        if isinstance(self.transport, Transport):
            return self.transport.supports_polling
        return callable(getattr(self.transport, "start", None)) and callable(getattr(self.transport, "stop", None))

    def start(self) -> bool:
        """
        Start the transport's polling; every polled object replaces the state.

        Returns:
            True if polling started, False if the transport cannot poll
        """
        if not self._can_poll():
            logger.warning(f"{self.transport!r} does not support polling; start() ignored")
            return False
        self.transport.start(self._on_remote_update)
        return True

    def stop(self) -> bool:
        """Stop the transport's polling. Returns False if the transport cannot poll."""
        if not self._can_poll():
            return False
        self.transport.stop()
        return True

    def _on_remote_update(self, remote: Any) -> None:
        self._state = copy.deepcopy(remote)
        logger.debug(f"PatchedSync {self.instance_id} state replaced by polled object")

    # ------------------------------------------------------------------
    # History
    # ------------------------------------------------------------------

    def history(self, reverse_index: int = 0) -> Optional[PatchDocument]:
        """
        A patch document from this instance's history.

        Args:
            reverse_index: 0 for the most recent patch, 1 for the one before, ...

        Returns:
            Copy of the patch document, or None if there is no such entry
        """
        return self._history.get(reverse_index)

    def history_all(self) -> List[PatchDocument]:
        """Copies of every patch document made by this instance, oldest first."""
        return self._history.all()

    # ------------------------------------------------------------------
    # Lifecycle
    # ------------------------------------------------------------------

    async def close(self) -> None:
        """Stop polling and close the transport."""
        self.stop()
        close = getattr(self.transport, "close", None)
        if close is not None:
            await close()

    async def __aenter__(self) -> "PatchedSync":
        return self

    async def __aexit__(self, exc_type: Any, exc_val: Any, exc_tb: Any) -> None:
        await self.close()

    def __repr__(self) -> str:
        return f"<PatchedSync {self.instance_id} transport={self.transport!r} history={len(self._history)}>"
