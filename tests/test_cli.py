"""Tests for the patched-sync CLI

Uses Click's test runner; the engine is built on an in-process transport.
"""

import json
from unittest.mock import patch

import pytest
from click.testing import CliRunner

from patched_sync import PatchedSync, codec
from patched_sync.cli import cli
from patched_sync.exceptions import TransportError

from conftest import StubTransport


@pytest.fixture
def runner():
    return CliRunner()


@pytest.fixture
def remote():
    """Transport serving {"a": "a", "b": "b"}."""
    return StubTransport(get_fn=lambda: {"a": "a", "b": "b"})


def invoke(runner, transport, args):
    with patch("patched_sync.cli.build_engine", lambda config_path: PatchedSync(transport)):
        return runner.invoke(cli, args)


class TestCLITransports:
    def test_lists_builtin_transports(self, runner):
        result = runner.invoke(cli, ["transports"])

        assert result.exit_code == 0
        assert result.output.split() == ["polling-http", "single-shot-http", "socket"]


class TestCLIFetch:
    def test_prints_remote_object(self, runner, remote):
        result = invoke(runner, remote, ["fetch"])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"a": "a", "b": "b"}

    def test_transport_failure(self, runner):
        def fail():
            raise TransportError("GET /doc failed with status 503", status_code=503)

        result = invoke(runner, StubTransport(get_fn=fail), ["fetch"])

        assert result.exit_code == 1
        assert "Error: GET /doc failed with status 503" in result.output

    def test_missing_config_file(self, runner, tmp_path):
        result = runner.invoke(cli, ["--config", str(tmp_path / "missing.yaml"), "fetch"])

        assert result.exit_code == 1
        assert "Config file not found" in result.output

    def test_verbose_and_quiet_conflict(self, runner, remote):
        result = invoke(runner, remote, ["-v", "-q", "fetch"])

        assert result.exit_code != 0
        assert "mutually exclusive" in result.output


class TestCLIPatch:
    def test_sends_difference(self, runner, remote, tmp_path):
        target = tmp_path / "target.json"
        target.write_text(json.dumps({"a": "not a"}))

        result = invoke(runner, remote, ["patch", str(target)])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"a": "not a"}
        assert len(remote.sent) == 1
        assert codec.apply({"a": "a", "b": "b"}, remote.sent[0]) == {"a": "not a"}

    def test_invalid_json_file(self, runner, remote, tmp_path):
        target = tmp_path / "target.json"
        target.write_text("{not json")

        result = invoke(runner, remote, ["patch", str(target)])

        assert result.exit_code == 2
        assert "not valid JSON" in result.output
        assert remote.sent == []


class TestCLIChange:
    def test_merges_change(self, runner, remote, tmp_path):
        changes = tmp_path / "changes.json"
        changes.write_text(json.dumps({"c": {"d": 1}}))

        result = invoke(runner, remote, ["change", str(changes)])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"a": "a", "b": "b", "c": {"d": 1}}

    def test_delete_token_removes_key(self, runner, remote, tmp_path):
        changes = tmp_path / "changes.json"
        changes.write_text(json.dumps({"b": "$delete"}))

        result = invoke(runner, remote, ["change", str(changes)])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"a": "a"}
        assert remote.sent == [[{"op": "remove", "path": "/b"}]]

    def test_array_operations(self, runner, tmp_path):
        transport = StubTransport(get_fn=lambda: {"tags": ["x"]})
        changes = tmp_path / "changes.json"
        changes.write_text(json.dumps({"tags": {"operations": [{"op": "push", "value": "y"}]}}))

        result = invoke(runner, transport, ["change", str(changes)])

        assert result.exit_code == 0
        assert json.loads(result.output) == {"tags": ["x", "y"]}
