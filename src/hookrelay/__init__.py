"""Hookrelay — live webhook inspection relay.

Producers send any HTTP request to /in/{key}; every WebSocket client
subscribed at /ws?key={key} receives it as a JSON envelope in real time.
"""

__version__ = "0.1.0"
