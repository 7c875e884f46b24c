"""Key registry — which subscribers are listening on which key.

Learn: Keys are never created explicitly. An entry appears when the first
subscriber registers and is deleted the moment the last one leaves, so
abandoned keys cost nothing.

All access goes through one threading.Lock. Every operation is a few dict
and set operations with no awaits inside, so holding a plain lock from the
event loop is safe, and the mapping itself can be read and mutated from
other threads. Subscriber outboxes are asyncio queues: offer() and close()
must run on the event loop that drains them.
Broadcast never iterates the live set — it gets a copy taken under the lock.
"""

import asyncio
import threading
import uuid

import structlog

logger = structlog.get_logger()


class Subscriber:
    """One live push channel registered under a key.

    Learn: Broadcasts never write to the socket directly. They offer()
    the frame into a bounded outbox; the connection's own writer task
    drains it. A stalled client therefore only fills its own outbox —
    it can't hold up the producer or the other subscribers.
    """

    def __init__(self, key: str, queue_size: int = 100):
        self.key = key
        self.id = uuid.uuid4().hex[:12]
        self._outbox: asyncio.Queue[str | None] = asyncio.Queue(maxsize=queue_size)
        self._closed = False

    @property
    def is_open(self) -> bool:
        return not self._closed

    @property
    def pending(self) -> int:
        """Frames waiting in the outbox."""
        return self._outbox.qsize()

    def offer(self, frame: str) -> bool:
        """Queue a frame without blocking. False means it was skipped."""
        if self._closed:
            return False
        try:
            self._outbox.put_nowait(frame)
        except asyncio.QueueFull:
            logger.warning(
                "relay.subscriber_outbox_full",
                key=self.key,
                subscriber=self.id,
            )
            return False
        return True

    async def next_frame(self) -> str | None:
        """Wait for the next frame. None means the subscriber was closed."""
        if self._closed and self._outbox.empty():
            return None
        return await self._outbox.get()

    def close(self) -> None:
        """Stop accepting frames and wake the writer so it can exit."""
        if self._closed:
            return
        self._closed = True
        # Pending frames are dropped; the sentinel must fit.
        while True:
            try:
                self._outbox.get_nowait()
            except asyncio.QueueEmpty:
                break
        self._outbox.put_nowait(None)

    def __repr__(self) -> str:
        state = "open" if self.is_open else "closed"
        return f"<Subscriber {self.id} key={self.key!r} {state}>"


class KeyRegistry:
    """Thread-safe mapping of key → set of live subscribers."""

    def __init__(self):
        self._entries: dict[str, set[Subscriber]] = {}
        self._lock = threading.Lock()
        self._shut_down = False

    def register(self, key: str, subscriber: Subscriber) -> None:
        """Add a subscriber under key, creating the entry if needed.

        After close_all() the registry admits nobody: the subscriber is
        closed immediately instead of being stored.
        """
        with self._lock:
            if self._shut_down:
                subscriber.close()
                return
            self._entries.setdefault(key, set()).add(subscriber)
            count = len(self._entries[key])
        logger.info(
            "relay.subscriber_registered",
            key=key,
            subscriber=subscriber.id,
            subscribers=count,
        )

    def deregister(self, key: str, subscriber: Subscriber) -> None:
        """Remove a subscriber; drop the entry when it empties.

        Idempotent — a subscriber that isn't registered is ignored.
        """
        with self._lock:
            members = self._entries.get(key)
            if members is None or subscriber not in members:
                return
            members.discard(subscriber)
            remaining = len(members)
            if not remaining:
                del self._entries[key]
        logger.info(
            "relay.subscriber_deregistered",
            key=key,
            subscriber=subscriber.id,
            subscribers=remaining,
        )

    def subscribers_for(self, key: str) -> list[Subscriber]:
        """Snapshot of the subscribers for key (empty if none)."""
        with self._lock:
            members = self._entries.get(key)
            return list(members) if members else []

    def count(self, key: str) -> int:
        with self._lock:
            return len(self._entries.get(key, ()))

    def keys(self) -> list[str]:
        with self._lock:
            return list(self._entries)

    def stats(self) -> tuple[int, int]:
        """(number of keys, number of subscribers)."""
        with self._lock:
            return len(self._entries), sum(len(m) for m in self._entries.values())

    def __contains__(self, key: str) -> bool:
        with self._lock:
            return key in self._entries

    def close_all(self) -> int:
        """Close every subscriber and empty the registry. Returns how many.

        Called at process shutdown. Later broadcasts see no subscribers and
        later registrations are refused.
        """
        with self._lock:
            self._shut_down = True
            members = [s for entry in self._entries.values() for s in entry]
            self._entries.clear()
        for subscriber in members:
            subscriber.close()
        logger.info("relay.registry_closed", subscribers=len(members))
        return len(members)
