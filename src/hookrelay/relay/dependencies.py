"""FastAPI dependencies for the relay."""

from starlette.requests import HTTPConnection

from hookrelay.config import Settings
from hookrelay.relay.registry import KeyRegistry


def get_registry(conn: HTTPConnection) -> KeyRegistry:
    """The registry created by create_app(). Works for HTTP and WebSocket routes."""
    return conn.app.state.registry


def get_settings(conn: HTTPConnection) -> Settings:
    """Settings the app was built with."""
    return conn.app.state.settings
