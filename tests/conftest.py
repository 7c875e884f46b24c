"""Test fixtures — a fresh app (and registry) per test.

Learn: create_app() hangs a new KeyRegistry off app.state, so tests never
share subscribers. Two kinds of client:

1. `client` — httpx AsyncClient over ASGITransport, for plain HTTP.
   ASGITransport doesn't run lifespan, which is fine: the registry is
   built by the factory, not at startup.
2. `ws_client` — Starlette's TestClient, entered as a context manager so
   every request and socket shares one event loop (subscriber outboxes are
   asyncio queues and must stay on the loop that drains them).
"""

import pytest
import pytest_asyncio
from fastapi.testclient import TestClient
from httpx import ASGITransport, AsyncClient

from hookrelay.config import Settings
from hookrelay.main import create_app


@pytest.fixture()
def settings():
    return Settings(send_timeout_seconds=1.0, subscriber_queue_size=10)


@pytest.fixture()
def app(settings):
    return create_app(settings)


@pytest.fixture()
def registry(app):
    return app.state.registry


@pytest_asyncio.fixture()
async def client(app):
    """HTTP client talking to the app in-process."""
    transport = ASGITransport(app=app)
    async with AsyncClient(transport=transport, base_url="http://test") as ac:
        yield ac


@pytest.fixture()
def ws_client(app):
    """Sync client for WebSocket round trips. Runs lifespan on enter/exit."""
    with TestClient(app) as tc:
        yield tc
