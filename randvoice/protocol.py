"""Wire protocol: event names, JSON frame codec, outbound payload models.

Every WebSocket text frame is a JSON object ``{"event": <name>, "data": <any>}``.
"""

from __future__ import annotations

import json
from datetime import UTC, datetime
from typing import Any

from pydantic import BaseModel, ConfigDict
from pydantic.alias_generators import to_camel

from randvoice.errors import ProtocolError

# -- Inbound (client -> server) --
FIND_RANDOM = "find-random"
REQUEST_MATCH = "request-match"
WEBRTC_OFFER = "webrtc-offer"
WEBRTC_ANSWER = "webrtc-answer"
ICE_CANDIDATE = "ice-candidate"
END_CALL = "end-call"
HEARTBEAT = "heartbeat"

# -- Outbound (server -> client) --
CONNECT_INFO = "connect-info"
ONLINE_COUNT = "online-count"
WAITING_FOR_MATCH = "waiting-for-match"
MATCH_FOUND = "match-found"
CALL_ENDED = "call-ended"
HEARTBEAT_ACK = "heartbeat-ack"
SERVER_STATS = "server-stats"
SERVER_SHUTDOWN = "server-shutdown"

# Signaling events and the payload field each one carries, in both directions.
SIGNAL_FIELDS: dict[str, str] = {
    WEBRTC_OFFER: "offer",
    WEBRTC_ANSWER: "answer",
    ICE_CANDIDATE: "candidate",
}


def utc_timestamp() -> str:
    """ISO-8601 UTC timestamp with millisecond precision and a ``Z`` suffix."""
    return datetime.now(UTC).isoformat(timespec="milliseconds").replace("+00:00", "Z")


class _Payload(BaseModel):
    """Outbound payloads serialize with camelCase keys."""

    model_config = ConfigDict(alias_generator=to_camel, populate_by_name=True, frozen=True)

    def to_wire(self) -> dict[str, Any]:
        return self.model_dump(by_alias=True)


class ConnectInfo(_Payload):
    user_id: str
    server_time: str
    online_count: int


class MatchFound(_Payload):
    partner_id: str
    initiator: bool


class ServerStats(_Payload):
    total_users: int
    waiting_users: int
    active_connections: int
    server_time: str
    uptime: float


class ServerShutdown(_Payload):
    message: str
    timestamp: str


def encode_frame(event: str, data: Any = None) -> str:
    """Serialize one outbound event. ``data=None`` is sent as an event with no payload."""
    frame: dict[str, Any] = {"event": event}
    if isinstance(data, BaseModel):
        data = data.model_dump(by_alias=True)
    if data is not None:
        frame["data"] = data
    return json.dumps(frame, separators=(",", ":"))


def decode_frame(raw: str) -> tuple[str, Any]:
    """Parse one inbound frame into ``(event, data)``.

    Raises:
        ProtocolError: The frame is not a JSON object with a string ``event``.
    """
    try:
        frame = json.loads(raw)
    except (json.JSONDecodeError, ValueError) as exc:
        msg = "frame is not valid JSON"
        raise ProtocolError(msg) from exc
    if not isinstance(frame, dict):
        msg = "frame must be a JSON object"
        raise ProtocolError(msg)
    event = frame.get("event")
    if not isinstance(event, str) or not event:
        msg = "frame has no event name"
        raise ProtocolError(msg)
    return event, frame.get("data")
