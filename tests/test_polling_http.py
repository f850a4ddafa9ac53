"""Unit Tests for PollingHttpTransport

Requests go through httpx.MockTransport, no network involved.
"""
import asyncio
import json
from unittest.mock import Mock

import httpx
import pytest

from patched_sync.exceptions import ConfigurationError, TransportError
from patched_sync.transports import PollingHttpTransport

GET_URL = "https://example.com/doc"
PATCH_URL = "https://example.com/doc/patch"


def make_transport(handler, interval=10000):
    client = httpx.AsyncClient(transport=httpx.MockTransport(handler))
    return PollingHttpTransport(GET_URL, PATCH_URL, interval, client=client)


class TestOptions:
    def test_interval_defaults(self):
        assert PollingHttpTransport(GET_URL, PATCH_URL, 0).interval == 30000
        assert PollingHttpTransport(GET_URL, PATCH_URL, None).interval == 30000

    def test_headers_are_merged(self):
        transport = PollingHttpTransport(GET_URL, PATCH_URL)

        transport.config(headers={"Authorization": "Bearer token"})
        transport.config({"headers": {"X-Trace": "1"}})

        assert transport.options["headers"] == {
            "Content-Type": "application/json",
            "Authorization": "Bearer token",
            "X-Trace": "1",
        }

    def test_mapping_and_keywords(self):
        transport = PollingHttpTransport(GET_URL, PATCH_URL)

        transport.config({"cache": "no-store", "credentials": "omit"}, credentials="include")

        assert transport.options["cache"] == "no-store"
        assert transport.options["credentials"] == "include"

    @pytest.mark.parametrize("options", [
        {"redirect": "sideways"},
        {"credentials": "always"},
        {"headers": ["Content-Type"]},
        {"with_credentials": False},
    ])
    def test_invalid_options(self, options):
        with pytest.raises(ConfigurationError):
            PollingHttpTransport(GET_URL, PATCH_URL).config(options)


class TestRequests:
    @pytest.mark.asyncio
    async def test_get(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={"a": 1})

        transport = make_transport(handler)

        assert await transport.get() == {"a": 1}
        request = seen[0]
        assert request.method == "GET"
        assert str(request.url) == GET_URL
        assert request.headers["Accept"] == "application/json"
        assert request.headers["Cache-Control"] == "no-cache"
        assert "Referer" not in request.headers

    @pytest.mark.asyncio
    async def test_patch_sends_document_and_reads_counter_patch(self):
        seen = []
        counter = [{"op": "replace", "path": "/b", "value": "not b"}]

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json=counter)

        transport = make_transport(handler)
        document = [{"op": "replace", "path": "/a", "value": "not a"}]

        assert await transport.patch(document) == counter
        assert seen[0].method == "PATCH"
        assert str(seen[0].url) == PATCH_URL
        assert json.loads(seen[0].content) == document
        assert seen[0].headers["Content-Type"] == "application/json"

    @pytest.mark.asyncio
    async def test_extra_headers_and_referrer(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        transport = make_transport(handler)
        transport.config(headers={"Authorization": "Bearer token"}, referrer="https://app.example.com/")

        await transport.get()

        assert seen[0].headers["Authorization"] == "Bearer token"
        assert seen[0].headers["Referer"] == "https://app.example.com/"

    @pytest.mark.asyncio
    async def test_credentials_omit_drops_cookies(self):
        seen = []

        def handler(request):
            seen.append(request)
            return httpx.Response(200, json={})

        transport = make_transport(handler)
        transport._client.cookies.set("session", "secret")
        transport.config(credentials="omit")

        await transport.get()

        assert "cookie" not in seen[0].headers

    @pytest.mark.asyncio
    async def test_empty_patch_response_is_empty_counter_patch(self):
        transport = make_transport(lambda request: httpx.Response(204))

        assert await transport.patch([]) == []

    @pytest.mark.asyncio
    async def test_empty_get_response_is_error(self):
        transport = make_transport(lambda request: httpx.Response(200))

        with pytest.raises(TransportError, match="empty body"):
            await transport.get()

    @pytest.mark.asyncio
    async def test_error_status(self):
        transport = make_transport(lambda request: httpx.Response(500, json={"error": "boom"}))

        with pytest.raises(TransportError) as exc_info:
            await transport.get()

        assert exc_info.value.status_code == 500
        assert exc_info.value.body == {"error": "boom"}

    @pytest.mark.asyncio
    async def test_textual_response(self):
        transport = make_transport(lambda request: httpx.Response(200, text="<html>oops</html>"))

        with pytest.raises(TransportError, match="not JSON") as exc_info:
            await transport.get()

        assert exc_info.value.body == "<html>oops</html>"

    @pytest.mark.asyncio
    async def test_invalid_counter_patch(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"op": "add"}))

        with pytest.raises(TransportError, match="invalid patch document"):
            await transport.patch([])

    @pytest.mark.asyncio
    async def test_network_error(self):
        def handler(request):
            raise httpx.ConnectError("connection refused")

        transport = make_transport(handler)

        with pytest.raises(TransportError, match="connection refused"):
            await transport.get()

    @pytest.mark.asyncio
    async def test_redirect_followed(self):
        def handler(request):
            if request.url.path == "/doc":
                return httpx.Response(302, headers={"Location": "https://example.com/moved"})
            return httpx.Response(200, json={"moved": True})

        transport = make_transport(handler)

        assert await transport.get() == {"moved": True}

    @pytest.mark.asyncio
    async def test_redirect_error_mode(self):
        transport = make_transport(
            lambda request: httpx.Response(302, headers={"Location": "https://example.com/moved"})
        )
        transport.config(redirect="error")

        with pytest.raises(TransportError, match="redirect") as exc_info:
            await transport.get()

        assert exc_info.value.status_code == 302

    @pytest.mark.asyncio
    async def test_unserializable_body(self):
        """A body that cannot be encoded as JSON raises TransportError before sending."""
        seen = []
        transport = make_transport(lambda request: seen.append(request) or httpx.Response(200, json=[]))

        with pytest.raises(TransportError, match="must be JSON"):
            await transport.patch([{"op": "add", "path": "/a", "value": object()}])

        assert seen == []


class TestPolling:
    @pytest.mark.asyncio
    async def test_polls_until_stopped(self):
        transport = make_transport(lambda request: httpx.Response(200, json={"tick": True}), interval=10)
        on_update = Mock()

        transport.start(on_update)
        assert transport.is_polling
        await asyncio.sleep(0.1)
        transport.stop()

        assert not transport.is_polling
        assert on_update.call_count >= 1
        on_update.assert_called_with({"tick": True})

        calls = on_update.call_count
        await asyncio.sleep(0.05)
        assert on_update.call_count == calls

    @pytest.mark.asyncio
    async def test_failed_poll_is_retried(self):
        calls = []

        def handler(request):
            calls.append(request)
            if len(calls) == 1:
                return httpx.Response(503)
            return httpx.Response(200, json={"ok": True})

        transport = make_transport(handler, interval=10)
        received = []

        transport.start(received.append)
        await asyncio.sleep(0.1)
        await transport.close()

        assert received
        assert received[0] == {"ok": True}

    @pytest.mark.asyncio
    async def test_close_waits_for_poll_task(self):
        transport = make_transport(lambda request: httpx.Response(200, json={}), interval=10)
        transport.start(Mock())
        poll_task = transport._poll_task

        await transport.close()

        assert poll_task.done()
        assert poll_task.cancelled()
        assert not transport.is_polling

    def test_stop_without_start(self):
        PollingHttpTransport(GET_URL, PATCH_URL).stop()

    @pytest.mark.asyncio
    async def test_close_releases_owned_client(self):
        transport = PollingHttpTransport(GET_URL, PATCH_URL)
        client = transport._get_client()

        await transport.close()

        assert client.is_closed

    @pytest.mark.asyncio
    async def test_close_keeps_borrowed_client(self):
        client = httpx.AsyncClient(transport=httpx.MockTransport(lambda request: httpx.Response(200)))
        transport = PollingHttpTransport(GET_URL, PATCH_URL, client=client)

        await transport.close()

        assert not client.is_closed
        await client.aclose()
