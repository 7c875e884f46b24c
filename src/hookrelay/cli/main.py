"""Hookrelay CLI — run the relay and poke at it.

Usage:
    hookrelay serve                              # Run the relay (single worker)
    hookrelay serve --port 8080 --reload         # Dev mode
    hookrelay send abc123 -d '{"x": 1}'          # Act as a producer for key abc123
    hookrelay send abc123 -X PUT -H 'X-Test: 1'  # Any method, extra headers
    hookrelay health                             # Keys and subscribers on a running relay
"""

from __future__ import annotations

import asyncio
import concurrent.futures
import json
import os
import sys
from typing import Optional

import click
import httpx

from hookrelay import __version__

# ---------------------------------------------------------------------------
# Config
# ---------------------------------------------------------------------------

DEFAULT_RELAY_URL = "http://localhost:4000"


def _relay_url() -> str:
    return os.environ.get("HOOKRELAY_URL", DEFAULT_RELAY_URL).rstrip("/")


def _client() -> httpx.AsyncClient:
    """Build an async HTTP client pointed at the relay."""
    return httpx.AsyncClient(base_url=_relay_url(), timeout=10.0)


# ---------------------------------------------------------------------------
# Helpers
# ---------------------------------------------------------------------------


def _run(coro):
    """Run an async coroutine from a synchronous Click handler.

    Offloads to a thread when a loop is already running (e.g. CliRunner
    inside an async test).
    """
    try:
        asyncio.get_running_loop()
    except RuntimeError:
        return asyncio.run(coro)
    else:
        with concurrent.futures.ThreadPoolExecutor(max_workers=1) as pool:
            return pool.submit(asyncio.run, coro).result()


def _parse_headers(values: tuple[str, ...]) -> list[tuple[str, str]]:
    """'Name: value' strings → header pairs."""
    headers = []
    for raw in values:
        name, sep, value = raw.partition(":")
        if not sep or not name.strip():
            raise click.BadParameter(f"expected 'Name: value', got {raw!r}", param_hint="--header")
        headers.append((name.strip(), value.strip()))
    return headers


def _pretty_json(data: dict | list) -> str:
    return json.dumps(data, indent=2, default=str)


def _fail(message: str) -> None:
    click.secho(f"Error: {message}", fg="red", err=True)
    sys.exit(1)


# ---------------------------------------------------------------------------
# CLI group
# ---------------------------------------------------------------------------


@click.group()
@click.version_option(version=__version__, prog_name="hookrelay")
def main():
    """Hookrelay — watch webhooks arrive in real time."""


# ---------------------------------------------------------------------------
# hookrelay serve
# ---------------------------------------------------------------------------


@main.command()
@click.option("--host", default=None, help="Bind address (default: HOOKRELAY_HOST)")
@click.option("--port", "-p", type=int, default=None, help="Port (default: HOOKRELAY_PORT)")
@click.option("--reload", is_flag=True, help="Restart on code changes (development)")
def serve(host: Optional[str], port: Optional[int], reload: bool):
    """Run the relay. Always one worker — the registry lives in-process."""
    import uvicorn

    from hookrelay.config import settings
    from hookrelay.log import configure_logging

    configure_logging(settings.log_level, json=settings.log_json)
    uvicorn.run(
        "hookrelay.main:app",
        host=host or settings.host,
        port=port or settings.port,
        reload=reload,
        workers=1,
        log_level=settings.log_level.lower(),
    )


# ---------------------------------------------------------------------------
# hookrelay send
# ---------------------------------------------------------------------------


@main.command()
@click.argument("key")
@click.option("--method", "-X", default="POST", show_default=True, help="HTTP method")
@click.option("--data", "-d", default=None, help="Request body")
@click.option(
    "--content-type",
    default="application/json",
    show_default=True,
    help="Content-Type sent with --data",
)
@click.option("--header", "-H", "headers", multiple=True, help="Extra header, 'Name: value'")
def send(key: str, method: str, data: Optional[str], content_type: str, headers: tuple[str, ...]):
    """Send a request to /in/KEY, as a producer would."""
    _run(_send_impl(key, method, data, content_type, _parse_headers(headers)))


async def _send_impl(
    key: str,
    method: str,
    data: Optional[str],
    content_type: str,
    headers: list[tuple[str, str]],
):
    if data is not None:
        headers = [("Content-Type", content_type), *headers]

    async with _client() as c:
        try:
            r = await c.request(
                method.upper(),
                f"/in/{key}",
                content=data.encode() if data is not None else None,
                headers=headers,
            )
        except httpx.ConnectError:
            _fail(f"relay not reachable at {_relay_url()}")
        r.raise_for_status()
        ack = r.json()

    click.secho(f"✓ {method.upper()} /in/{ack['key']} → {ack['status']}", fg="green")


# ---------------------------------------------------------------------------
# hookrelay health
# ---------------------------------------------------------------------------


@main.command()
def health():
    """Show relay status — version, live keys, open subscriber sockets."""
    _run(_health_impl())


async def _health_impl():
    async with _client() as c:
        try:
            r = await c.get("/health")
        except httpx.ConnectError:
            _fail(f"relay not reachable at {_relay_url()}")
        r.raise_for_status()
        click.echo(_pretty_json(r.json()))


if __name__ == "__main__":
    main()
