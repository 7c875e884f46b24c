"""Intake API — producers send anything to /in/{key}.

Learn: Every method is accepted. FastAPI routes always carry a method
list, so intake is a bare ASGI endpoint on a Starlette route instead;
a class endpoint registered without methods matches all of them.

The handler:
1. Builds an envelope from the request
2. Offers it to every subscriber currently on the key
3. Acknowledges — whether or not anyone was listening

The acknowledgement is only sent after broadcast() returns, so two
sequential producer requests reach subscribers in the order they were sent.
"""

import structlog
from fastapi import APIRouter
from starlette.requests import Request
from starlette.responses import JSONResponse
from starlette.types import Receive, Scope, Send

from hookrelay.relay.broadcast import broadcast
from hookrelay.relay.dependencies import get_registry
from hookrelay.relay.envelope import build_envelope

logger = structlog.get_logger()
router = APIRouter()


async def relay_request(request: Request) -> JSONResponse:
    """Relay one producer request to the key's subscribers."""
    key = request.path_params["key"]
    envelope = await build_envelope(request)
    delivered = broadcast(get_registry(request), key, envelope)
    logger.debug(
        "relay.intake",
        key=key,
        method=envelope.method,
        source=envelope.source,
        delivered=delivered,
    )
    return JSONResponse({"status": "sent", "key": key})


class IntakeEndpoint:
    """ASGI wrapper so the route isn't restricted to any method."""

    async def __call__(self, scope: Scope, receive: Receive, send: Send) -> None:
        request = Request(scope, receive)
        response = await relay_request(request)
        await response(scope, receive, send)


router.add_route("/in/{key}", IntakeEndpoint(), include_in_schema=False)
