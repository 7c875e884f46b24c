"""WebSocket endpoint — subscribers listen on /ws?key=...

Learn: Each client connects to /ws?key={key}. The handler:
1. Refuses the upgrade outright when key is missing or empty
2. Registers a Subscriber under the key, then accepts the handshake
3. Runs a writer (outbox → socket) and a reader (socket → pings/disconnect)
4. Deregisters in `finally`, whatever ended the connection

Registering before accept() means a client that sees an open socket is
already receiving broadcasts for its key.
"""

import asyncio
import json

import structlog
from fastapi import APIRouter, Depends, WebSocket
from starlette.websockets import WebSocketDisconnect, WebSocketState

from hookrelay.config import Settings
from hookrelay.relay.dependencies import get_registry, get_settings
from hookrelay.relay.registry import KeyRegistry, Subscriber

logger = structlog.get_logger()
router = APIRouter()

# Policy violation, sent before accept() so the upgrade is refused
REFUSED_CLOSE_CODE = 1008


@router.websocket("/ws")
async def subscribe(
    websocket: WebSocket,
    registry: KeyRegistry = Depends(get_registry),
    settings: Settings = Depends(get_settings),
):
    """Long-lived push channel for one key."""
    key = websocket.query_params.get("key", "")
    if not key:
        logger.info("relay.subscription_refused", reason="missing key")
        await websocket.close(code=REFUSED_CLOSE_CODE)
        return

    subscriber = Subscriber(key, queue_size=settings.subscriber_queue_size)
    registry.register(key, subscriber)
    tasks: list[asyncio.Task] = []

    try:
        await websocket.accept()

        tasks.append(asyncio.create_task(
            _writer(websocket, subscriber, settings.send_timeout_seconds)
        ))
        tasks.append(asyncio.create_task(_reader(websocket, subscriber)))

        # Usually the reader finishes first (client went away)
        done, pending = await asyncio.wait(
            tasks,
            return_when=asyncio.FIRST_COMPLETED,
        )
        for task in pending:
            task.cancel()
        for task in done:
            if not task.cancelled() and task.exception() is not None:
                logger.info(
                    "relay.connection_error",
                    key=key,
                    subscriber=subscriber.id,
                    error=str(task.exception()),
                )
    finally:
        for task in tasks:
            task.cancel()
        subscriber.close()
        registry.deregister(key, subscriber)
        if websocket.client_state == WebSocketState.CONNECTED:
            try:
                await websocket.close()
            except RuntimeError:
                # Transport already gone
                pass


async def _writer(websocket: WebSocket, subscriber: Subscriber, timeout: float) -> None:
    """Drain the subscriber's outbox onto the socket."""
    while True:
        frame = await subscriber.next_frame()
        if frame is None:
            return
        try:
            await asyncio.wait_for(websocket.send_text(frame), timeout=timeout)
        except asyncio.TimeoutError:
            logger.warning(
                "relay.send_timeout",
                key=subscriber.key,
                subscriber=subscriber.id,
                timeout=timeout,
            )
        except (WebSocketDisconnect, RuntimeError) as e:
            logger.info(
                "relay.send_failed",
                key=subscriber.key,
                subscriber=subscriber.id,
                error=str(e),
            )
            return


async def _reader(websocket: WebSocket, subscriber: Subscriber) -> None:
    """Watch for disconnect. Queues a pong for {"type": "ping"}; ignores everything else."""
    while True:
        message = await websocket.receive()
        if message["type"] == "websocket.disconnect":
            logger.debug(
                "relay.client_disconnected",
                key=subscriber.key,
                subscriber=subscriber.id,
                code=message.get("code"),
            )
            return

        text = message.get("text")
        if not text:
            continue
        try:
            msg = json.loads(text)
        except json.JSONDecodeError:
            continue
        if isinstance(msg, dict) and msg.get("type") == "ping":
            # Through the outbox, so the writer stays the only sender
            subscriber.offer(json.dumps({"type": "pong"}))
