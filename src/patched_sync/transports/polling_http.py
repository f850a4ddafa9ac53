"""
Polling HTTP transport (httpx).

GET fetches the full remote object, PATCH sends a JSON Patch array and reads
the counter-patch array back. start() polls the GET endpoint every
``interval`` milliseconds on the running event loop.

Usage:
    transport = PollingHttpTransport("https://example.com/doc", "https://example.com/doc/patch", 10000)
    transport.config(headers={"Authorization": "Bearer ..."}, credentials="omit")
    obj = await transport.get()
"""

import asyncio
import json
import logging
from typing import Any, Dict, Optional

import httpx

from ..config import DEFAULT_INTERVAL_MS, PollingHttpConfig
from ..exceptions import ConfigurationError, TransportError
from . import register_transport
from ._http import DEFAULT_HEADERS, decode_response, expect_object, expect_patch
from .base import PatchDocument, Transport, UpdateCallback

logger = logging.getLogger(__name__)

REDIRECT_MODES = ("follow", "error", "manual")
CREDENTIALS_MODES = ("omit", "same-origin", "include")

# cache mode -> Cache-Control request header
CACHE_CONTROL = {
    "no-store": "no-store",
    "no-cache": "no-cache",
    "reload": "no-cache",
}


@register_transport(PollingHttpConfig.tag)
class PollingHttpTransport(Transport):
    """
    HTTP transport with periodic polling.

    Options (see config()):
        mode: CORS mode; recorded for compatibility, no effect outside a browser
        cache: "default", "no-store", "reload", "no-cache", ... (sent as Cache-Control)
        credentials: "omit" drops cookies before every request, otherwise the
                     client keeps cookies across requests
        redirect: "follow", "error" (redirect -> TransportError) or "manual"
        referrer: Referer header value, "no-referrer" to send none
        headers: Extra headers, merged into the current ones
        timeout: Per-request timeout in seconds (None = unbounded)
    """

    OPTIONS = frozenset({"mode", "cache", "credentials", "redirect", "referrer", "headers", "timeout"})
    supports_polling = True
    config_class = PollingHttpConfig

    def __init__(self,
                 get_url: str,
                 patch_url: str,
                 interval: Optional[int] = DEFAULT_INTERVAL_MS,
                 client: Optional[httpx.AsyncClient] = None):
        """
        Args:
            get_url: URL returning the full remote object
            patch_url: JSON Patch endpoint
            interval: Poll interval in milliseconds (0 / None -> 30000)
            client: Optional preconfigured httpx.AsyncClient; closed by close() only if we created it
        """
        super().__init__()
        self.get_url = get_url
        self.patch_url = patch_url
        self.interval = interval or DEFAULT_INTERVAL_MS

        self._options = {
            "mode": "cors",
            "cache": "no-cache",
            "credentials": "same-origin",
            "headers": {"Content-Type": "application/json"},
            "redirect": "follow",
            "referrer": "no-referrer",
            "timeout": None,
        }

        self._client = client
        self._owns_client = client is None
        self._poll_task: Optional[asyncio.Task] = None

    @classmethod
    def from_config(cls, config: PollingHttpConfig) -> "PollingHttpTransport":
        transport = cls(config.get_url, config.patch_url, config.interval)
        transport.config(config.options)
        return transport

    def _set_option(self, name: str, value: Any) -> None:
        if name == "headers":
            if not isinstance(value, dict):
                raise ConfigurationError("headers must be a mapping of header names to values")
            self._options["headers"] = {**self._options["headers"], **value}
            return
        if name == "redirect" and value not in REDIRECT_MODES:
            raise ConfigurationError(f"redirect must be one of {', '.join(REDIRECT_MODES)}, got {value!r}")
        if name == "credentials" and value not in CREDENTIALS_MODES:
            raise ConfigurationError(f"credentials must be one of {', '.join(CREDENTIALS_MODES)}, got {value!r}")
        self._options[name] = value

    def _get_client(self) -> httpx.AsyncClient:
        if self._client is None:
            self._client = httpx.AsyncClient()
            self._owns_client = True
        return self._client

    def _request_headers(self) -> Dict[str, str]:
        headers = dict(DEFAULT_HEADERS)
        headers.update(self._options["headers"])

        cache_control = CACHE_CONTROL.get(self._options["cache"])
        if cache_control:
            headers.setdefault("Cache-Control", cache_control)

        referrer = self._options["referrer"]
        if referrer and referrer not in ("no-referrer", "about:client"):
            headers["Referer"] = referrer

        return headers

    async def _request(self, method: str, url: str, body: Any = None) -> Any:
        try:
            content = json.dumps(body) if body is not None else None
        except (TypeError, ValueError) as e:
            raise TransportError(f"{method} {url} body must be JSON: {e}") from e

        client = self._get_client()
        if self._options["credentials"] == "omit":
            client.cookies.clear()

        try:
            response = await client.request(
                method,
                url,
                headers=self._request_headers(),
                content=content,
                follow_redirects=self._options["redirect"] == "follow",
                timeout=self._options["timeout"],
            )
        except httpx.HTTPError as e:
            raise TransportError(f"{method} {url} failed: {e}") from e

        if self._options["redirect"] == "error" and response.is_redirect:
            raise TransportError(
                f"{method} {url} was redirected while redirect mode is 'error'",
                status_code=response.status_code
            )

        logger.debug(f"{method} {url} -> {response.status_code}")
        return decode_response(method, url, response.status_code, response.text)

    async def get(self) -> Any:
        body = await self._request("GET", self.get_url)
        return expect_object("GET", self.get_url, body)

    async def patch(self, document: PatchDocument) -> PatchDocument:
        body = await self._request("PATCH", self.patch_url, document)
        return expect_patch("PATCH", self.patch_url, body)

    def start(self, on_update: UpdateCallback) -> None:
        """
        Start polling the GET endpoint.

        Must be called with a running event loop. Failed polls are logged and
        retried on the next tick.
        """
        if self._poll_task is not None and not self._poll_task.done():
            logger.warning(f"Polling of {self.get_url} already started")
            return

        self._poll_task = asyncio.get_running_loop().create_task(self._poll(on_update))
        logger.info(f"Polling {self.get_url} every {self.interval}ms")

    async def _poll(self, on_update: UpdateCallback) -> None:
        while True:
            await asyncio.sleep(self.interval / 1000)
            try:
                obj = await self.get()
            except TransportError as e:
                logger.warning(f"Poll of {self.get_url} failed: {e}")
                continue
            try:
                on_update(obj)
            except Exception as e:
                logger.error(f"Error in poll update callback for {self.get_url}: {e}", exc_info=True)

    def stop(self) -> None:
        """Stop polling (no-op if not started)."""
        if self._poll_task is None:
            return
        self._poll_task.cancel()
        self._poll_task = None
        logger.info(f"Stopped polling {self.get_url}")

    @property
    def is_polling(self) -> bool:
        return self._poll_task is not None and not self._poll_task.done()

    async def close(self) -> None:
        """Stop polling and close the HTTP client if we own it."""
        poll_task = self._poll_task
        self.stop()
        if poll_task is not None:
            try:
                await poll_task
            except asyncio.CancelledError:
                pass
        if self._client is not None and self._owns_client:
            await self._client.aclose()
            self._client = None

    def __repr__(self) -> str:
        return f"<{self.__class__.__name__} get={self.get_url} patch={self.patch_url}>"
