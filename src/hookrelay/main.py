"""FastAPI application factory.

Learn: create_app() returns a configured FastAPI instance with its own
KeyRegistry on app.state — tests build as many isolated apps as they
like. Lifespan closes every subscriber at shutdown so no broadcast keeps
writing to sockets that are going away.
"""

from contextlib import asynccontextmanager

import structlog
from fastapi import FastAPI
from fastapi.middleware.cors import CORSMiddleware

from hookrelay import __version__
from hookrelay.api import api_router
from hookrelay.config import Settings, settings as default_settings
from hookrelay.relay.registry import KeyRegistry

logger = structlog.get_logger()


@asynccontextmanager
async def lifespan(app: FastAPI):
    """Startup and shutdown lifecycle.

    Learn: Anything before `yield` runs at startup, after `yield` at shutdown.
    """
    settings: Settings = app.state.settings
    logger.info(
        "hookrelay.starting",
        version=__version__,
        environment=settings.environment,
        port=settings.port,
    )

    yield

    closed = app.state.registry.close_all()
    logger.info("hookrelay.shutdown", subscribers_closed=closed)


def create_app(settings: Settings | None = None) -> FastAPI:
    """Build and return the FastAPI application."""
    if settings is None:
        settings = default_settings

    app = FastAPI(
        title="Hookrelay",
        description="Live webhook inspection relay — /in/{key} to /ws?key={key}",
        version=__version__,
        lifespan=lifespan,
    )
    app.state.settings = settings
    app.state.registry = KeyRegistry()

    # ── Middleware stack ──────────────────────────────────────
    # Note: Starlette middleware executes in reverse order of registration.
    # Request flow: RequestId → Security → CORS → handler

    from hookrelay.middleware.request_id import RequestIdMiddleware
    from hookrelay.middleware.security import SecurityHeadersMiddleware

    app.add_middleware(
        CORSMiddleware,
        allow_origins=settings.cors_origins,
        allow_methods=["*"],
        allow_headers=["*"],
    )
    app.add_middleware(SecurityHeadersMiddleware)
    app.add_middleware(RequestIdMiddleware)

    # Intake + health
    app.include_router(api_router)

    # Subscriber sockets
    from hookrelay.relay.websocket import router as ws_router
    app.include_router(ws_router)

    return app


# Default app instance (used by uvicorn: hookrelay.main:app)
app = create_app()
