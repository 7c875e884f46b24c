"""Security headers middleware.

Learn: Intake responses are tiny JSON acks, but they still go to
arbitrary callers, so every response gets the standard hardening headers:
- X-Content-Type-Options: no MIME sniffing of the JSON ack
- X-Frame-Options: nothing here is meant to be framed
- Referrer-Policy: keys are secrets-by-obscurity; don't leak them in Referer
"""

from starlette.middleware.base import BaseHTTPMiddleware
from starlette.requests import Request
from starlette.responses import Response


class SecurityHeadersMiddleware(BaseHTTPMiddleware):
    """Add security headers to all responses."""

    async def dispatch(self, request: Request, call_next) -> Response:
        response: Response = await call_next(request)
        response.headers["X-Content-Type-Options"] = "nosniff"
        response.headers["X-Frame-Options"] = "DENY"
        response.headers["Referrer-Policy"] = "no-referrer"
        if request.url.scheme == "https":
            response.headers["Strict-Transport-Security"] = (
                "max-age=31536000; includeSubDomains"
            )
        return response
