"""
Single-shot HTTP transport (requests).

Every get()/patch() issues one request through a requests.Session in a worker
thread, so the event loop is never blocked. Progress and ready-state callbacks
are delivered back on the event loop thread.

Ready states follow the XMLHttpRequest numbering (see ReadyState).
"""

import asyncio
import json
import logging
from enum import IntEnum
from typing import Any, Callable, List, Optional

import requests

from ..config import DEFAULT_INTERVAL_MS, SingleShotHttpConfig
from ..exceptions import ConfigurationError, TransportError
from . import register_transport
from ._http import DEFAULT_HEADERS, decode_response, expect_object, expect_patch
from .base import PatchDocument, Transport

logger = logging.getLogger(__name__)

CHUNK_SIZE = 8192


class ReadyState(IntEnum):
    """Request lifecycle states reported to on_ready_state_change."""
    UNSENT = 0
    OPENED = 1
    HEADERS_RECEIVED = 2
    LOADING = 3
    DONE = 4


@register_transport(SingleShotHttpConfig.tag)
class SingleShotHttpTransport(Transport):
    """
    One request per call, no polling.

    Options (see config()):
        with_credentials: Keep cookies across requests (default True); False
                          clears the session cookies before each request
        on_progress: Callable(loaded_bytes, total_bytes_or_None) per body chunk
        on_ready_state_change: Callable(ReadyState) on each state transition
        headers: Extra headers; replaces the previously configured extra headers
        timeout: Per-request timeout in seconds (None = unbounded)
    """

    OPTIONS = frozenset({"with_credentials", "on_progress", "on_ready_state_change", "headers", "timeout"})
    config_class = SingleShotHttpConfig

    def __init__(self,
                 get_url: str,
                 patch_url: str,
                 interval: Optional[int] = DEFAULT_INTERVAL_MS,
                 session: Optional[requests.Session] = None):
        """
        Args:
            get_url: URL returning the full remote object
            patch_url: JSON Patch endpoint
            interval: Kept for configuration parity with polling-http (0 / None -> 30000)
            session: Optional preconfigured requests.Session; closed by close() only if we created it
        """
        super().__init__()
        self.get_url = get_url
        self.patch_url = patch_url
        self.interval = interval or DEFAULT_INTERVAL_MS

        self._options = {
            "with_credentials": True,
            "on_progress": None,
            "on_ready_state_change": None,
            "headers": {},
            "timeout": None,
        }

        self._session = session
        self._owns_session = session is None

    @classmethod
    def from_config(cls, config: SingleShotHttpConfig) -> "SingleShotHttpTransport":
        transport = cls(config.get_url, config.patch_url, config.interval)
        transport.config(config.options)
        return transport

    def _set_option(self, name: str, value: Any) -> None:
        if name in ("on_progress", "on_ready_state_change") and value is not None and not callable(value):
            raise ConfigurationError(f"{name} must be callable")
        if name == "headers" and not isinstance(value, dict):
            raise ConfigurationError("headers must be a mapping of header names to values")
        if name == "with_credentials":
            value = bool(value)
        self._options[name] = value

    def _get_session(self) -> requests.Session:
        if self._session is None:
            self._session = requests.Session()
            self._owns_session = True
        return self._session

    async def _request(self, method: str, url: str, body: Any = None) -> Any:
        loop = asyncio.get_running_loop()

        def emit(callback: Optional[Callable[..., None]], *args: Any) -> None:
            if callback is not None:
                loop.call_soon_threadsafe(callback, *args)

        return await asyncio.to_thread(self._send, method, url, body, emit)

    def _send(self, method: str, url: str, body: Any, emit: Callable[..., None]) -> Any:
        on_progress = self._options["on_progress"]
        on_ready_state_change = self._options["on_ready_state_change"]

        try:
            data = json.dumps(body) if body is not None else None
        except (TypeError, ValueError) as e:
            raise TransportError(f"{method} {url} body must be JSON: {e}") from e

        headers = dict(DEFAULT_HEADERS)
        headers.update(self._options["headers"])

        session = self._get_session()
        if not self._options["with_credentials"]:
            session.cookies.clear()

        emit(on_ready_state_change, ReadyState.OPENED)
        try:
            response = session.request(
                method,
                url,
                headers=headers,
                data=data,
                stream=True,
                timeout=self._options["timeout"],
            )
            try:
                emit(on_ready_state_change, ReadyState.HEADERS_RECEIVED)
                total = int(response.headers.get("Content-Length") or 0) or None

                chunks: List[bytes] = []
                loaded = 0
                for chunk in response.iter_content(chunk_size=CHUNK_SIZE):
                    if not chunk:
                        continue
                    chunks.append(chunk)
                    loaded += len(chunk)
                    emit(on_ready_state_change, ReadyState.LOADING)
                    emit(on_progress, loaded, total)

                text = b"".join(chunks).decode(response.encoding or "utf-8", errors="replace")
            finally:
                response.close()
        except requests.RequestException as e:
            raise TransportError(f"{method} {url} failed: {e}") from e
        finally:
            emit(on_ready_state_change, ReadyState.DONE)

        logger.debug(f"{method} {url} -> {response.status_code} ({loaded} bytes)")
        return decode_response(method, url, response.status_code, text)

    async def get(self) -> Any:
        body = await self._request("GET", self.get_url)
        return expect_object("GET", self.get_url, body)

    async def patch(self, document: PatchDocument) -> PatchDocument:
        body = await self._request("PATCH", self.patch_url, document)
        return expect_patch("PATCH", self.patch_url, body)

    async def close(self) -> None:
        """Close the requests session if we own it."""
        if self._session is not None and self._owns_session:
            self._session.close()
            self._session = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} get={self.get_url} patch={self.patch_url}>"
