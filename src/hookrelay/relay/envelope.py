"""Envelope builder — one inbound HTTP request → one JSON-ready envelope.

Learn: The envelope is what subscribers see:
    {"method", "headers", "body", "source", "timestamp"}

Building it never fails for well-formed HTTP. A body that doesn't parse
under its declared content type is recorded as absent rather than
rejecting the producer's request.
"""

import enum
import json
from datetime import datetime, timezone
from typing import Any
from urllib.parse import parse_qsl

import structlog
from pydantic import BaseModel, ConfigDict, Field
from starlette.requests import Request

logger = structlog.get_logger()

UNKNOWN_SOURCE = "unknown"

# Checked in order; first non-empty value wins
SOURCE_HEADERS = ("x-real-ip", "x-client-ip")


class BodyKind(str, enum.Enum):
    OBJECT = "object"
    ARRAY = "array"
    STRING = "string"
    NUMBER = "number"
    BOOLEAN = "boolean"
    NULL = "null"
    ABSENT = "absent"


def kind_of(value: Any) -> BodyKind:
    """Classify an already-decoded JSON value."""
    if value is None:
        return BodyKind.NULL
    if isinstance(value, bool):
        return BodyKind.BOOLEAN
    if isinstance(value, (int, float)):
        return BodyKind.NUMBER
    if isinstance(value, str):
        return BodyKind.STRING
    if isinstance(value, list):
        return BodyKind.ARRAY
    return BodyKind.OBJECT


class RequestEnvelope(BaseModel):
    """Immutable snapshot of one producer request."""

    model_config = ConfigDict(frozen=True)

    method: str
    headers: dict[str, str | list[str]]
    body: Any = None
    body_kind: BodyKind = Field(default=BodyKind.ABSENT, exclude=True)
    source: str
    timestamp: str

    def to_frame(self) -> str:
        """Serialize for the wire. An absent body goes out as {}.

        A body too deep to encode is sent as absent rather than failing
        the broadcast.
        """
        payload = {
            "method": self.method,
            "headers": self.headers,
            "body": {} if self.body_kind is BodyKind.ABSENT else self.body,
            "source": self.source,
            "timestamp": self.timestamp,
        }
        try:
            return json.dumps(payload)
        except (ValueError, RecursionError) as e:
            logger.debug("relay.body_unencodable", error=str(e))
            payload["body"] = {}
            return json.dumps(payload)


# ─── Pieces ──────────────────────────────────────────────


def collect_headers(raw: list[tuple[bytes, bytes]]) -> dict[str, str | list[str]]:
    """Headers as received. A repeated header becomes a list."""
    headers: dict[str, str | list[str]] = {}
    for raw_name, raw_value in raw:
        name = raw_name.decode("latin-1")
        value = raw_value.decode("latin-1")
        existing = headers.get(name)
        if existing is None:
            headers[name] = value
        elif isinstance(existing, list):
            existing.append(value)
        else:
            headers[name] = [existing, value]
    return headers


def resolve_source(request: Request) -> str:
    """Best-effort originating address.

    X-Forwarded-For (first hop) → X-Real-IP → X-Client-IP → peer → "unknown".
    """
    forwarded = request.headers.get("x-forwarded-for", "")
    first_hop = forwarded.split(",")[0].strip()
    if first_hop:
        return first_hop

    for header in SOURCE_HEADERS:
        value = request.headers.get(header, "").strip()
        if value:
            return value

    if request.client and request.client.host:
        return request.client.host
    return UNKNOWN_SOURCE


def parse_body(content_type: str, raw: bytes) -> tuple[BodyKind, Any]:
    """Decode a request body by its content type.

    JSON → any JSON value, urlencoded form → flat dict, text/* → str,
    everything else (including empty and malformed bodies) → absent.
    """
    if not raw:
        return BodyKind.ABSENT, None

    media_type = content_type.split(";")[0].strip().lower()
    charset = _charset(content_type)

    try:
        if media_type == "application/json" or media_type.endswith("+json"):
            value = json.loads(raw.decode(charset))
            return kind_of(value), value

        if media_type == "application/x-www-form-urlencoded":
            form: dict[str, str | list[str]] = {}
            pairs = parse_qsl(
                raw.decode(charset),
                keep_blank_values=True,
            )
            for name, value in pairs:
                existing = form.get(name)
                if existing is None:
                    form[name] = value
                elif isinstance(existing, list):
                    existing.append(value)
                else:
                    form[name] = [existing, value]
            return BodyKind.OBJECT, form

        if media_type.startswith("text/"):
            return BodyKind.STRING, raw.decode(charset)
    except (ValueError, LookupError, RecursionError) as e:
        # JSONDecodeError and UnicodeDecodeError are both ValueErrors;
        # LookupError covers an unknown charset, RecursionError a body
        # nested deeper than the decoder allows.
        logger.debug("relay.body_unparseable", content_type=content_type, error=str(e))

    return BodyKind.ABSENT, None


def _charset(content_type: str) -> str:
    for param in content_type.split(";")[1:]:
        name, _, value = param.partition("=")
        if name.strip().lower() == "charset" and value.strip():
            return value.strip().strip('"')
    return "utf-8"


def utc_timestamp(now: datetime | None = None) -> str:
    """ISO-8601 UTC with millisecond precision, e.g. 2024-05-01T12:00:00.123Z."""
    now = now or datetime.now(timezone.utc)
    return now.astimezone(timezone.utc).isoformat(timespec="milliseconds").replace(
        "+00:00", "Z"
    )


# ─── Builder ─────────────────────────────────────────────


async def build_envelope(request: Request) -> RequestEnvelope:
    """Read the request (body included) and build its envelope."""
    raw_body = await request.body()
    body_kind, body = parse_body(request.headers.get("content-type", ""), raw_body)
    return RequestEnvelope(
        method=request.method,
        headers=collect_headers(request.headers.raw),
        body=body,
        body_kind=body_kind,
        source=resolve_source(request),
        timestamp=utc_timestamp(),
    )
