"""Intake API tests — /in/{key} acknowledges and fans out.

Learn: Subscribers here are registered straight into app.state.registry
and read from their outboxes, so broadcast behavior is checked without
any sockets. WebSocket round trips live in test_websocket.py.
"""

import asyncio
import json
from concurrent.futures import ThreadPoolExecutor

import pytest

from hookrelay.relay.registry import Subscriber


async def next_envelope(sub: Subscriber) -> dict:
    frame = await asyncio.wait_for(sub.next_frame(), timeout=1.0)
    return json.loads(frame)


# ═══════════════════════════════════════════════════════════
# Acknowledgement
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_ack_without_subscribers(client, registry):
    """No listeners is not an error for the producer."""
    r = await client.post("/in/abc123", json={"x": 1})
    assert r.status_code == 200
    assert r.json() == {"status": "sent", "key": "abc123"}
    assert "abc123" not in registry


@pytest.mark.asyncio
@pytest.mark.parametrize("method", ["GET", "POST", "PUT", "PATCH", "DELETE", "OPTIONS", "PROPFIND"])
async def test_every_method_is_accepted(client, registry, method):
    sub = Subscriber("m")
    registry.register("m", sub)

    r = await client.request(method, "/in/m")

    assert r.status_code == 200
    assert r.json() == {"status": "sent", "key": "m"}
    assert (await next_envelope(sub))["method"] == method


@pytest.mark.asyncio
async def test_head_is_accepted(client, registry):
    sub = Subscriber("h")
    registry.register("h", sub)

    r = await client.head("/in/h")

    assert r.status_code == 200
    assert (await next_envelope(sub))["method"] == "HEAD"


@pytest.mark.asyncio
async def test_malformed_json_still_acknowledged(client, registry):
    sub = Subscriber("bad")
    registry.register("bad", sub)

    r = await client.post(
        "/in/bad",
        content=b'{"x": ',
        headers={"Content-Type": "application/json"},
    )

    assert r.status_code == 200
    assert r.json() == {"status": "sent", "key": "bad"}
    assert (await next_envelope(sub))["body"] == {}


@pytest.mark.asyncio
async def test_missing_key_is_not_found(client):
    r = await client.post("/in/")
    assert r.status_code == 404


# ═══════════════════════════════════════════════════════════
# Fan-out
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_envelope_reaches_subscriber(client, registry):
    sub = Subscriber("abc123")
    registry.register("abc123", sub)

    await client.post(
        "/in/abc123",
        json={"x": 1},
        headers={"X-Forwarded-For": "9.9.9.9, 10.0.0.1"},
    )

    envelope = await next_envelope(sub)
    assert envelope["method"] == "POST"
    assert envelope["body"] == {"x": 1}
    assert envelope["source"] == "9.9.9.9"
    assert envelope["headers"]["x-forwarded-for"] == "9.9.9.9, 10.0.0.1"
    assert envelope["headers"]["content-type"] == "application/json"
    assert envelope["timestamp"].endswith("Z")
    assert sub.pending == 0


@pytest.mark.asyncio
async def test_source_defaults_to_peer(client, registry):
    sub = Subscriber("peer")
    registry.register("peer", sub)

    await client.get("/in/peer")

    assert (await next_envelope(sub))["source"] == "127.0.0.1"


@pytest.mark.asyncio
async def test_form_body_relayed_as_mapping(client, registry):
    sub = Subscriber("form")
    registry.register("form", sub)

    await client.post("/in/form", data={"event": "push", "ref": "main"})

    assert (await next_envelope(sub))["body"] == {"event": "push", "ref": "main"}


@pytest.mark.asyncio
async def test_only_matching_key_receives(client, registry):
    mine, other = Subscriber("mine"), Subscriber("other")
    registry.register("mine", mine)
    registry.register("other", other)

    await client.post("/in/mine", json={"n": 1})

    assert (await next_envelope(mine))["body"] == {"n": 1}
    assert other.pending == 0


@pytest.mark.asyncio
async def test_closed_subscriber_is_skipped(client, registry):
    live, closed = Subscriber("k"), Subscriber("k")
    registry.register("k", live)
    registry.register("k", closed)
    closed.close()

    r = await client.post("/in/k", json={"n": 1})

    assert r.status_code == 200
    assert (await next_envelope(live))["body"] == {"n": 1}
    assert await asyncio.wait_for(closed.next_frame(), timeout=1.0) is None


@pytest.mark.asyncio
async def test_backed_up_subscriber_does_not_block_others(client, registry):
    stuck, healthy = Subscriber("k", queue_size=1), Subscriber("k")
    registry.register("k", stuck)
    registry.register("k", healthy)

    for n in range(3):
        r = await client.post("/in/k", json={"n": n})
        assert r.status_code == 200

    assert stuck.pending == 1
    assert [(await next_envelope(healthy))["body"]["n"] for _ in range(3)] == [0, 1, 2]


@pytest.mark.asyncio
async def test_sequential_requests_arrive_in_order(client, registry):
    sub = Subscriber("order")
    registry.register("order", sub)

    for n in range(5):
        await client.post("/in/order", json={"n": n})

    assert [(await next_envelope(sub))["body"]["n"] for _ in range(5)] == list(range(5))


@pytest.mark.asyncio
async def test_late_subscriber_misses_earlier_envelopes(client, registry):
    await client.post("/in/late", json={"n": 1})

    sub = Subscriber("late")
    registry.register("late", sub)
    await client.post("/in/late", json={"n": 2})

    assert (await next_envelope(sub))["body"] == {"n": 2}
    assert sub.pending == 0


@pytest.mark.asyncio
async def test_concurrently_registered_subscribers_all_receive(client, registry):
    subscribers = [Subscriber("crowd") for _ in range(50)]
    with ThreadPoolExecutor(max_workers=10) as pool:
        list(pool.map(lambda s: registry.register("crowd", s), subscribers))

    await client.post("/in/crowd", json={"hello": "all"})

    for sub in subscribers:
        assert (await next_envelope(sub))["body"] == {"hello": "all"}


# ═══════════════════════════════════════════════════════════
# Deeply nested bodies
# ═══════════════════════════════════════════════════════════


@pytest.mark.asyncio
async def test_deeply_nested_json_still_acknowledged(client, registry):
    sub = Subscriber("deep")
    registry.register("deep", sub)

    r = await client.post(
        "/in/deep",
        content=b"[" * 600 + b"]" * 600,
        headers={"Content-Type": "application/json"},
    )

    assert r.status_code == 200
    assert r.json() == {"status": "sent", "key": "deep"}
    body = (await next_envelope(sub))["body"]
    depth = 0
    while isinstance(body, list) and body:
        body = body[0]
        depth += 1
    assert depth == 599


@pytest.mark.asyncio
async def test_json_too_deep_to_decode_is_absent(client, registry):
    sub = Subscriber("abyss")
    registry.register("abyss", sub)

    r = await client.post(
        "/in/abyss",
        content=b"[" * 100_000 + b"]" * 100_000,
        headers={"Content-Type": "application/json"},
    )

    assert r.status_code == 200
    assert r.json() == {"status": "sent", "key": "abyss"}
    assert (await next_envelope(sub))["body"] == {}
