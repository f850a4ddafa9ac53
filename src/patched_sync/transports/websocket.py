"""
WebSocket transport (websockets).

Frames are JSON objects ``{"message": <name>, "data": <payload>}``:

- get() sends ``{"message": get_message_name}`` and resolves with the data of
  the next incoming ``get_message_name`` frame
- patch(doc) sends ``{"message": patch_message_name, "data": doc}`` and
  resolves with the data of the next incoming ``patch_message_name`` frame

Replies resolve pending requests in FIFO order per message name. A
``get_message_name`` frame that arrives with no request waiting is a server
push and is handed to the start() callback, if any.
"""

import asyncio
import json
import logging
from collections import deque
from typing import Any, Awaitable, Callable, Deque, Dict, Optional

import websockets

from ..codec import validate_patch
from ..config import SocketConfig
from ..exceptions import ConfigurationError, TransportError
from . import register_transport
from .base import PatchDocument, Transport, UpdateCallback

logger = logging.getLogger(__name__)

Connector = Callable[..., Awaitable[Any]]


@register_transport(SocketConfig.tag)
class SocketTransport(Transport):
    """
    Bidirectional transport over one WebSocket connection, opened lazily.

    Options (see config()):
        headers: Extra HTTP headers for the opening handshake
        open_timeout: Seconds to wait for the handshake (None = library default)
    """

    OPTIONS = frozenset({"headers", "open_timeout"})
    supports_polling = True
    config_class = SocketConfig

    def __init__(self,
                 socket_url: str,
                 get_message_name: str,
                 patch_message_name: str,
                 connect: Optional[Connector] = None):
        """
        Args:
            socket_url: ws:// or wss:// URL
            get_message_name: Message name for fetching the full object
            patch_message_name: Message name for exchanging patches
            connect: Coroutine function opening a connection; defaults to websockets.connect
        """
        super().__init__()
        self.socket_url = socket_url
        self.get_message_name = get_message_name
        self.patch_message_name = patch_message_name

        self._options = {"headers": {}, "open_timeout": None}
        self._connect = connect or websockets.connect
        self._connection: Any = None
        self._connect_lock: Optional[asyncio.Lock] = None
        self._reader_task: Optional[asyncio.Task] = None
        self._pending: Dict[str, Deque[asyncio.Future]] = {
            get_message_name: deque(),
            patch_message_name: deque(),
        }
        self._on_update: Optional[UpdateCallback] = None

    @classmethod
    def from_config(cls, config: SocketConfig) -> "SocketTransport":
        transport = cls(config.socket_url, config.get_message_name, config.patch_message_name)
        transport.config(config.options)
        return transport

    def _set_option(self, name: str, value: Any) -> None:
        if name == "headers" and not isinstance(value, dict):
            raise ConfigurationError("headers must be a mapping of header names to values")
        self._options[name] = value

    @property
    def is_connected(self) -> bool:
        return self._connection is not None

    async def _ensure_connected(self) -> Any:
        if self._connection is not None:
            return self._connection

        if self._connect_lock is None:
            self._connect_lock = asyncio.Lock()

        async with self._connect_lock:
            if self._connection is not None:
                return self._connection

            kwargs: Dict[str, Any] = {}
            if self._options["headers"]:
                kwargs["additional_headers"] = self._options["headers"]
            if self._options["open_timeout"] is not None:
                kwargs["open_timeout"] = self._options["open_timeout"]

            try:
                connection = await self._connect(self.socket_url, **kwargs)
            except (OSError, asyncio.TimeoutError, websockets.exceptions.WebSocketException) as e:
                raise TransportError(f"Failed to connect to {self.socket_url}: {e}") from e

            self._connection = connection
            self._reader_task = asyncio.get_running_loop().create_task(self._read_loop(connection))
            logger.info(f"WebSocket connected: {self.socket_url}")
            return connection

    async def _read_loop(self, connection: Any) -> None:
        reason = "connection closed"
        try:
            async for raw in connection:
                self._dispatch(raw)
        except websockets.exceptions.ConnectionClosed as e:
            reason = f"connection closed: {e}"
        finally:
            if self._connection is connection:
                self._connection = None
            self._fail_pending(TransportError(f"WebSocket {self.socket_url} {reason}"))
            logger.info(f"WebSocket disconnected: {self.socket_url}")

    def _dispatch(self, raw: Any) -> None:
        try:
            frame = json.loads(raw)
        except (TypeError, ValueError):
            logger.warning(f"Ignoring non-JSON frame from {self.socket_url}")
            return

        if not isinstance(frame, dict) or not isinstance(frame.get("message"), str):
            logger.warning(f"Ignoring frame without a message name from {self.socket_url}")
            return

        name = frame["message"]
        data = frame.get("data")

        waiting = self._pending.get(name)
        while waiting:
            future = waiting.popleft()
            if not future.done():
                future.set_result(data)
                return

        if name == self.get_message_name and self._on_update is not None:
            try:
                self._on_update(data)
            except Exception as e:
                logger.error(f"Error in update callback for {self.socket_url}: {e}", exc_info=True)
            return

        logger.debug(f"Unsolicited '{name}' frame from {self.socket_url}")

    def _fail_pending(self, error: TransportError) -> None:
        for waiting in self._pending.values():
            while waiting:
                future = waiting.popleft()
                if not future.done():
                    future.set_exception(error)

    async def _request(self, name: str, frame: Dict[str, Any]) -> Any:
        connection = await self._ensure_connected()
        future = asyncio.get_running_loop().create_future()
        self._pending[name].append(future)

        try:
            await connection.send(json.dumps(frame))
        except (OSError, websockets.exceptions.WebSocketException) as e:
            if future in self._pending[name]:
                self._pending[name].remove(future)
            raise TransportError(f"Failed to send '{name}' to {self.socket_url}: {e}") from e

        return await future

    async def get(self) -> Any:
        data = await self._request(self.get_message_name, {"message": self.get_message_name})
        if data is None:
            raise TransportError(f"'{self.get_message_name}' reply from {self.socket_url} carried no data")
        return data

    async def patch(self, document: PatchDocument) -> PatchDocument:
        data = await self._request(
            self.patch_message_name,
            {"message": self.patch_message_name, "data": document}
        )
        if data is None:
            return []
        try:
            return validate_patch(data)
        except ValueError as e:
            raise TransportError(f"Invalid patch document from {self.socket_url}: {e}", body=data) from e

    def start(self, on_update: UpdateCallback) -> None:
        """
        Forward server-pushed objects to on_update and open the connection.

        Must be called with a running event loop.
        """
        self._on_update = on_update
        if self._connection is None:
            task = asyncio.get_running_loop().create_task(self._ensure_connected())
            task.add_done_callback(self._log_connect_failure)
        logger.info(f"Listening for '{self.get_message_name}' pushes on {self.socket_url}")

    def _log_connect_failure(self, task: asyncio.Task) -> None:
        if not task.cancelled() and task.exception() is not None:
            logger.warning(f"WebSocket connect for updates failed: {task.exception()}")

    def stop(self) -> None:
        """Stop forwarding server pushes; the connection stays open."""
        self._on_update = None

    async def close(self) -> None:
        """Close the connection and fail any request still waiting for a reply."""
        self.stop()
        connection = self._connection
        self._connection = None
        if connection is not None:
            await connection.close()
        if self._reader_task is not None:
            self._reader_task.cancel()
            try:
                await self._reader_task
            except asyncio.CancelledError:
                pass
            self._reader_task = None
        self._fail_pending(TransportError(f"WebSocket {self.socket_url} closed"))

    def __repr__(self) -> str:
        status = "connected" if self.is_connected else "disconnected"
        return f"<{self.__class__.__name__} {self.socket_url} ({status})>"
