"""Fan-out of one envelope to every subscriber on a key.

Learn: This is fire-and-forget. Each open subscriber gets the frame
offered to its outbox; closed or backed-up subscribers are skipped.
Nothing here awaits a client, so returning from broadcast() means the
frame is committed to every outbox that accepted it — which is what
lets sequential producer requests arrive in order.
"""

import structlog

from hookrelay.relay.envelope import RequestEnvelope
from hookrelay.relay.registry import KeyRegistry

logger = structlog.get_logger()


def broadcast(registry: KeyRegistry, key: str, envelope: RequestEnvelope) -> int:
    """Push envelope to the key's current subscribers. Returns how many took it."""
    subscribers = registry.subscribers_for(key)
    if not subscribers:
        logger.debug("relay.broadcast_no_subscribers", key=key)
        return 0

    frame = envelope.to_frame()
    delivered = 0
    for subscriber in subscribers:
        if not subscriber.is_open:
            continue
        if subscriber.offer(frame):
            delivered += 1

    logger.info(
        "relay.broadcast",
        key=key,
        method=envelope.method,
        subscribers=len(subscribers),
        delivered=delivered,
    )
    return delivered
