"""Pytest fixtures for patched-sync tests"""
import copy

import pytest

from patched_sync.transports.base import Transport


class StubTransport(Transport):
    """In-process transport for engine tests.

    get_fn() returns the remote object, patch_fn(document) the counter-patch.
    Both default to empty results; every sent patch is recorded.
    """

    OPTIONS = frozenset({"headers"})

    def __init__(self, get_fn=None, patch_fn=None):
        super().__init__()
        self.get_fn = get_fn or (lambda: {})
        self.patch_fn = patch_fn or (lambda document: [])
        self.sent = []
        self.get_calls = 0

    async def get(self):
        self.get_calls += 1
        return self.get_fn()

    async def patch(self, document):
        self.sent.append(copy.deepcopy(document))
        return self.patch_fn(document)


class PollingStubTransport(StubTransport):
    """StubTransport that records start/stop and lets tests push updates."""

    supports_polling = True

    def __init__(self, *args, **kwargs):
        super().__init__(*args, **kwargs)
        self.on_update = None
        self.stopped = False

    def start(self, on_update):
        self.on_update = on_update

    def stop(self):
        self.stopped = True


@pytest.fixture
def stub_transport():
    """Transport that accepts every patch and returns no counter-edits."""
    return StubTransport()


@pytest.fixture
def abc_object():
    """Flat three-key object used across engine tests."""
    return {"a": "a", "b": "b", "c": "c"}


@pytest.fixture
def nested_object():
    """Nested object used by the deep change tests."""
    return {
        "a": "a",
        "b": {
            "a": "a",
            "b": {
                "a": "a",
                "b": "b",
                "c": "c",
            },
        },
        "c": "c",
    }
