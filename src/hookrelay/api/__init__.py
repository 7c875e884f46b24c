"""HTTP route aggregation.

All routers registered here get mounted in main.py.

Learn: The relay has no auth layer — anyone who knows a key may publish
to it, and keys are the only namespace. Intake lives at the root (/in/...)
because producers are third-party webhook senders that are configured
with a bare URL.
"""

from fastapi import APIRouter

from hookrelay.api.health import router as health_router
from hookrelay.api.intake import router as intake_router

api_router = APIRouter()

api_router.include_router(health_router, tags=["health"])
api_router.include_router(intake_router, tags=["intake"])
