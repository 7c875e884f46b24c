"""Key-addressed relay — registry, envelopes, and the subscriber socket.

Learn: Data flows one way:
1. Producer → /in/{key} → envelope built → registry snapshot for key
2. Each subscriber's outbox ← serialized envelope → WebSocket client

The registry is the only shared mutable state. It lives on app.state and
is handed to both endpoints through a dependency.
"""

from hookrelay.relay.registry import KeyRegistry, Subscriber

__all__ = ["KeyRegistry", "Subscriber"]
