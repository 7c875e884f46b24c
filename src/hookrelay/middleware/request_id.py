"""Request ID middleware — unique ID per request for tracing.

Learn: Every HTTP request gets an ID, either from the incoming
X-Request-ID header (so a producer can correlate its own logs) or
auto-generated. The ID is bound to structlog's contextvars so it
appears in every log entry for that request, and echoed back.

BaseHTTPMiddleware only wraps HTTP — WebSocket upgrades pass through.
"""

import uuid

import structlog
from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class RequestIdMiddleware(BaseHTTPMiddleware):
    """Generate and propagate a unique request ID."""

    async def dispatch(self, request: Request, call_next) -> Response:
        request_id = request.headers.get("X-Request-ID") or uuid.uuid4().hex

        structlog.contextvars.clear_contextvars()
        structlog.contextvars.bind_contextvars(
            request_id=request_id,
            path=request.url.path,
        )

        response: Response = await call_next(request)
        response.headers["X-Request-ID"] = request_id
        return response
