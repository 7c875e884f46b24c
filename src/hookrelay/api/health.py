"""Health check endpoint.

Learn: Liveness plus a glance at the registry — how many keys have
listeners and how many sockets are open in total.
"""

from fastapi import APIRouter, Depends

from hookrelay import __version__
from hookrelay.relay.dependencies import get_registry
from hookrelay.relay.registry import KeyRegistry

router = APIRouter()


@router.get("/health")
async def health_check(registry: KeyRegistry = Depends(get_registry)):
    """Server status and registry size."""
    keys, subscribers = registry.stats()
    return {
        "status": "ok",
        "version": __version__,
        "keys": keys,
        "subscribers": subscribers,
    }
