"""CLI tests — click commands against an in-process app."""

import asyncio
import json

import httpx
import pytest
from click.testing import CliRunner

from hookrelay.cli import main as cli
from hookrelay.relay.registry import Subscriber


@pytest.fixture()
def runner(app, monkeypatch):
    """CliRunner whose HTTP client talks to the test app."""

    def in_process_client():
        return httpx.AsyncClient(
            transport=httpx.ASGITransport(app=app),
            base_url="http://test",
        )

    monkeypatch.setattr(cli, "_client", in_process_client)
    return CliRunner()


def test_send_acknowledged(runner):
    result = runner.invoke(cli.main, ["send", "abc123", "-d", '{"x": 1}'])
    assert result.exit_code == 0, result.output
    assert "/in/abc123" in result.output
    assert "sent" in result.output


def test_send_reaches_registered_subscriber(runner, registry):
    sub = Subscriber("cli")
    registry.register("cli", sub)

    result = runner.invoke(
        cli.main,
        ["send", "cli", "-X", "patch", "-d", '{"x": 1}', "-H", "X-Test: yes"],
    )

    assert result.exit_code == 0, result.output
    assert sub.pending == 1
    envelope = json.loads(asyncio.run(asyncio.wait_for(sub.next_frame(), timeout=1.0)))
    assert envelope["method"] == "PATCH"
    assert envelope["body"] == {"x": 1}
    assert envelope["headers"]["x-test"] == "yes"


def test_send_rejects_malformed_header(runner):
    result = runner.invoke(cli.main, ["send", "k", "-H", "no-colon"])
    assert result.exit_code == 2
    assert "Name: value" in result.output


def test_health_prints_json(runner, registry):
    registry.register("a", Subscriber("a"))

    result = runner.invoke(cli.main, ["health"])

    assert result.exit_code == 0, result.output
    data = json.loads(result.output)
    assert data["keys"] == 1
    assert data["subscribers"] == 1


def test_send_reports_unreachable_relay(monkeypatch):
    def refusing_client():
        def refuse(request):
            raise httpx.ConnectError("connection refused", request=request)

        return httpx.AsyncClient(
            transport=httpx.MockTransport(refuse),
            base_url="http://test",
        )

    monkeypatch.setattr(cli, "_client", refusing_client)

    result = CliRunner().invoke(cli.main, ["send", "k"])

    assert result.exit_code == 1
    assert "not reachable" in result.output


def test_version():
    result = CliRunner().invoke(cli.main, ["--version"])
    assert result.exit_code == 0
    assert "hookrelay" in result.output
